import unittest
from unittest import mock

import numpy as np
import pytesseract
from PIL import Image

from screenwatch.ocr import (
    TSV_FORMAT_UNEXPECTED,
    InvocationRecord,
    OcrToken,
    TesseractOcr,
    build_arguments,
    build_text_from_tokens,
    capture_stream,
    compute_confidence,
    format_stream,
    log_invocation,
    parse_tsv,
    result_from_tsv,
    sanitize_arguments,
    sanitize_environment,
)

HEADER = "level\tpage_num\tblock_num\tpar_num\tline_num\tword_num\tleft\ttop\twidth\theight\tconf\ttext"


def tsv(*rows: str) -> str:
    return "\n".join((HEADER,) + rows) + "\n"


def word(line: int, index: int, conf: str, text: str) -> str:
    return f"5\t1\t1\t1\t{line}\t{index}\t{index * 50}\t{line * 20}\t40\t18\t{conf}\t{text}"


STRUCTURE_ROWS = (
    "1\t1\t0\t0\t0\t0\t0\t0\t640\t480\t-1\t",
    "2\t1\t1\t0\t0\t0\t10\t10\t300\t60\t-1\t",
    "4\t1\t1\t1\t1\t0\t10\t10\t300\t20\t-1\t",
)


class TestParseTsv(unittest.TestCase):
    def test_mean_confidence(self):
        result = parse_tsv(
            tsv(
                *STRUCTURE_ROWS,
                word(1, 1, "95", "Start"),
                word(1, 2, "93", "the"),
                word(2, 1, "92", "next"),
                word(2, 2, "90", "round"),
            )
        )
        self.assertIsNone(result.reason)
        self.assertEqual([t.text for t in result.tokens], ["Start", "the", "next", "round"])
        self.assertAlmostEqual(result.aggregate_confidence, 92.5)

    def test_noise_token_excluded_from_mean(self):
        result = parse_tsv(
            tsv(word(1, 1, "80", "Quest"), word(1, 2, "-1", "~"), word(1, 3, "90", "Clear"))
        )
        self.assertEqual(len(result.tokens), 3)
        self.assertTrue(result.tokens[1].is_noise)
        self.assertAlmostEqual(result.aggregate_confidence, 85.0)

    def test_only_noise_tokens(self):
        result = parse_tsv(tsv(word(1, 1, "-1", "~")))
        self.assertEqual(result.aggregate_confidence, 0.0)

    def test_missing_conf_column(self):
        text = "level\tleft\ttop\ttext\n5\t0\t0\thello\n"
        result = parse_tsv(text)
        self.assertEqual(result.reason, TSV_FORMAT_UNEXPECTED)
        self.assertEqual(result.tokens, ())
        self.assertEqual(result.aggregate_confidence, 0.0)

    def test_malformed_rows_skipped(self):
        result = parse_tsv(
            tsv(
                word(1, 1, "88", "good"),
                "5\t1\t1\t1\t1\t2\t10",
                word(1, 3, "abc", "bad"),
                word(1, 4, "76", "fine"),
            )
        )
        self.assertEqual([t.text for t in result.tokens], ["good", "fine"])
        self.assertAlmostEqual(result.aggregate_confidence, 82.0)

    def test_blank_words_ignored(self):
        result = parse_tsv(tsv(word(1, 1, "90", "   "), word(1, 2, "70", "x")))
        self.assertEqual([t.text for t in result.tokens], ["x"])

    def test_empty_input(self):
        for value in (None, "", "  \n"):
            with self.subTest(value=value):
                result = parse_tsv(value)
                self.assertEqual(result.tokens, ())
                self.assertIsNone(result.reason)

    def test_token_geometry(self):
        token = parse_tsv(tsv(word(2, 3, "91", "Go"))).tokens[0]
        self.assertEqual((token.left, token.top, token.width, token.height), (150, 40, 40, 18))
        self.assertEqual((token.line_index, token.word_index), (2, 3))


class TestTextHelpers(unittest.TestCase):
    def test_build_text_from_tokens(self):
        tokens = [
            OcrToken("round", line_index=2, word_index=2, confidence=90),
            OcrToken("Start", line_index=1, word_index=1, confidence=90),
            OcrToken("next", line_index=2, word_index=1, confidence=90),
        ]
        self.assertEqual(build_text_from_tokens(tokens), "Start\nnext round")
        self.assertEqual(build_text_from_tokens([]), "")

    def test_compute_confidence_plain_text(self):
        self.assertEqual(compute_confidence(""), 0.0)
        self.assertEqual(compute_confidence("abcd"), 1.0)
        self.assertEqual(compute_confidence("ab!!"), 0.5)

    def test_compute_confidence_tsv(self):
        value = compute_confidence(tsv(word(1, 1, "80", "a"), word(1, 2, "60", "b")))
        self.assertAlmostEqual(value, 0.7)


class TestInvocationLogging(unittest.TestCase):
    def test_sanitize_arguments(self):
        args = ["in.png", "--api-key=abc", "--token", "xyz", "-l", "eng"]
        self.assertEqual(
            sanitize_arguments(args),
            ["in.png", "--api-key=***", "--token ***", "***", "-l", "eng"],
        )

    def test_trailing_secret_flag(self):
        self.assertEqual(sanitize_arguments(["--password"]), ["--password ***", "***"])

    def test_sanitize_environment(self):
        env = {"OCR_TOKEN": "abc", "PATH": "/usr/bin", "my_secret": "s"}
        self.assertEqual(
            sanitize_environment(env),
            {"OCR_TOKEN": "***", "PATH": "/usr/bin", "my_secret": "***"},
        )
        self.assertEqual(sanitize_environment(None), {})

    def test_stream_truncation(self):
        capture = capture_stream("abcdef", 3)
        self.assertTrue(capture.truncated)
        self.assertEqual(format_stream(capture), "abc...<truncated>")
        self.assertEqual(format_stream(capture_stream("ok", 10)), "ok")

    def test_log_invocation_redacts(self):
        record = InvocationRecord(
            invocation_id="abc123",
            exe_path="tesseract",
            arguments=("in.png", "out", "--token", "hunter2"),
            environment={"API_KEY": "k", "LANG": "C"},
            started_at=10.0,
            completed_at=10.25,
            exit_code=0,
            stdout=capture_stream("", 100),
            stderr=capture_stream("warning text", 4),
        )
        with self.assertLogs("screenwatch.ocr", level="DEBUG") as logs:
            log_invocation(record)

        message = logs.output[0]
        self.assertIn("invocationId=abc123", message)
        self.assertIn("--token ***", message)
        self.assertNotIn("hunter2", message)
        self.assertIn("API_KEY=***", message)
        self.assertIn("durationMs=250.00", message)
        self.assertIn("stderr=warn...<truncated>", message)
        self.assertIn("truncated=True", message)


class TestBuildArguments(unittest.TestCase):
    def test_defaults(self):
        self.assertEqual(
            build_arguments("eng"), ["-l", "eng", "--psm", "6", "--oem", "1"]
        )

    def test_no_language_and_custom_modes(self):
        self.assertEqual(
            build_arguments(None, psm="7", oem="3"), ["--psm", "7", "--oem", "3"]
        )


class TestResultFromTsv(unittest.TestCase):
    def test_noise_only_falls_back_to_text_share(self):
        result = result_from_tsv(tsv(word(1, 1, "-1", "ab!!")))
        self.assertEqual(result.text, "ab!!")
        self.assertEqual(result.confidence, 0.5)

    def test_unexpected_format(self):
        with self.assertLogs("screenwatch.ocr", level="WARNING"):
            result = result_from_tsv("left\ttop\ttext\n0\t0\thello\n")
        self.assertEqual((result.text, result.confidence), ("", 0.0))


class FakeRunner:
    """Returns canned TSV output or raises the configured error."""

    def __init__(self, output="", error=None):
        self.output = output
        self.error = error
        self.calls = []

    def __call__(self, image, lang, config, timeout):
        self.calls.append((image, lang, config, timeout))
        if self.error is not None:
            raise self.error
        return self.output


class TestTesseractOcr(unittest.TestCase):
    def setUp(self):
        self.image = np.zeros((20, 40), dtype=np.uint8)

    def test_text_rebuilt_from_tsv(self):
        runner = FakeRunner(tsv(word(1, 1, "95", "Hello"), word(1, 2, "90", "World")))
        ocr = TesseractOcr(exe_path="tess", lang="eng", timeout=2.0, runner=runner)

        result = ocr.recognize(self.image)

        self.assertEqual(result.text, "Hello World")
        self.assertAlmostEqual(result.confidence, 0.925)
        image, lang, config, timeout = runner.calls[0]
        self.assertIsInstance(image, Image.Image)
        self.assertEqual((lang, timeout), ("eng", 2.0))
        self.assertEqual(config, "--psm 6 --oem 1")

    def test_multiline_text(self):
        runner = FakeRunner(tsv(word(1, 1, "80", "Quest"), word(2, 1, "80", "Clear")))
        result = TesseractOcr(runner=runner).recognize(self.image)
        self.assertEqual(result.text, "Quest\nClear")

    def test_colour_arrays_converted_to_rgb(self):
        runner = FakeRunner(tsv(word(1, 1, "90", "x")))
        bgr = np.zeros((2, 2, 3), dtype=np.uint8)
        bgr[:, :] = (255, 0, 0)
        TesseractOcr(runner=runner).recognize(bgr)
        image = runner.calls[0][0]
        self.assertEqual(image.mode, "RGB")
        self.assertEqual(image.getpixel((0, 0)), (0, 0, 255))

    def test_language_override_and_modes(self):
        runner = FakeRunner(tsv(word(1, 1, "90", "x")))
        TesseractOcr(lang="eng", psm="7", oem="3", runner=runner).recognize(self.image, "deu")
        _, lang, config, _ = runner.calls[0]
        self.assertEqual((lang, config), ("deu", "--psm 7 --oem 3"))

    def test_empty_output(self):
        result = TesseractOcr(runner=FakeRunner("")).recognize(self.image)
        self.assertEqual((result.text, result.confidence), ("", 0.0))

    def test_missing_executable(self):
        runner = FakeRunner(error=pytesseract.TesseractNotFoundError())
        with self.assertLogs("screenwatch.ocr", level="WARNING"):
            result = TesseractOcr(runner=runner).recognize(self.image)
        self.assertEqual((result.text, result.confidence), ("", 0.0))

    def test_timeout(self):
        runner = FakeRunner(error=RuntimeError("Tesseract process timeout"))
        with self.assertLogs("screenwatch.ocr", level="WARNING"):
            result = TesseractOcr(runner=runner, timeout=1.0).recognize(self.image)
        self.assertEqual(result.text, "")

    def test_invocation_logged_when_enabled(self):
        runner = FakeRunner(tsv(word(1, 1, "90", "x")))
        ocr = TesseractOcr(lang="eng", debug_logging=True, runner=runner)
        with self.assertLogs("screenwatch.ocr", level="DEBUG") as logs:
            ocr.recognize(self.image)
        message = logs.output[0]
        self.assertIn("args=-l eng --psm 6 --oem 1", message)
        self.assertIn("exit=0", message)

    def test_invocation_not_logged_when_disabled(self):
        runner = FakeRunner(tsv(word(1, 1, "90", "x")))
        with mock.patch("screenwatch.ocr.log_invocation") as log:
            TesseractOcr(debug_logging=False, runner=runner).recognize(self.image)
        log.assert_not_called()


if __name__ == "__main__":
    unittest.main()
