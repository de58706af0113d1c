"""
OCR Module - text recognition output parsing and the Tesseract adapter.

This module provides three main components:
1. parse_tsv() - turns Tesseract TSV output into tokens plus an aggregate
   confidence, skipping malformed rows instead of failing the whole parse
2. TesseractOcr - runs Tesseract through pytesseract on an image and reports
   the recognized text with a confidence in [0, 1]
3. Invocation logging helpers that redact secrets from arguments and
   environment before anything reaches the log
"""

import logging
import os
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Protocol, Sequence, Tuple

import cv2  # type: ignore
import pytesseract  # type: ignore
from PIL import Image

from .config import get_ocr_config
from .imaging import as_array
from .utils import get_logger

logger = get_logger(__name__)

TSV_FORMAT_UNEXPECTED = "tsv_format_unexpected"
NOISE_CONFIDENCE = -1.0
WORD_LEVEL = 5

TRUNCATION_SUFFIX = "...<truncated>"
REDACTED = "***"
SECRET_MARKERS = ("TOKEN", "SECRET", "PASSWORD", "KEY")


# ==================== DATA CLASSES ====================


@dataclass(frozen=True)
class OcrToken:
    """A recognized word. ``confidence`` of -1 marks an engine-flagged noise token."""

    text: str
    left: int = 0
    top: int = 0
    width: int = 0
    height: int = 0
    line_index: int = 0
    word_index: int = 0
    confidence: float = NOISE_CONFIDENCE

    @property
    def is_noise(self) -> bool:
        return not 0.0 <= self.confidence <= 100.0


@dataclass(frozen=True)
class TsvParseResult:
    """Tokens, mean confidence of non-noise tokens (0-100) and format health."""

    tokens: Tuple[OcrToken, ...] = field(default_factory=tuple)
    aggregate_confidence: float = 0.0
    reason: Optional[str] = None


@dataclass(frozen=True)
class OcrResult:
    """Recognized text with a confidence in [0, 1]."""

    text: str = ""
    confidence: float = 0.0


class TextRecognizer(Protocol):
    """Anything that can read text from an image crop."""

    def recognize(self, image: Any, language: Optional[str] = None) -> OcrResult:
        ...


# ==================== TSV PARSING ====================


def _int_column(cols: List[str], index: Optional[int]) -> int:
    if index is None:
        return 0
    return int(cols[index].strip())


def parse_tsv(tsv: Optional[str]) -> TsvParseResult:
    """Parse Tesseract TSV output.

    The header row must name a ``conf`` column; without it the output is not
    trusted at all and the result carries ``tsv_format_unexpected``. Column
    positions are taken from the header. Rows with the wrong column count or
    a non-numeric value in a numeric column are skipped. Only word-level rows
    with non-blank text become tokens.

    Args:
        tsv: Raw TSV text, header first.

    Returns:
        TsvParseResult: Tokens in row order, the arithmetic mean of non-noise
            confidences (0 when there are none) and the format reason.
    """
    if not tsv or not tsv.strip():
        return TsvParseResult()

    lines = [line for line in tsv.splitlines() if line.strip()]
    header = [name.strip() for name in lines[0].split("\t")]
    if "conf" not in header:
        logger.debug(f"TSV header without conf column: {lines[0][:80]!r}")
        return TsvParseResult(reason=TSV_FORMAT_UNEXPECTED)

    columns: Dict[str, int] = {name: i for i, name in enumerate(header)}
    conf_idx = columns["conf"]
    text_idx = columns.get("text")
    level_idx = columns.get("level")

    tokens: List[OcrToken] = []
    skipped = 0
    for line in lines[1:]:
        cols = line.split("\t")
        if len(cols) != len(header):
            skipped += 1
            continue
        try:
            level = _int_column(cols, level_idx) if level_idx is not None else WORD_LEVEL
            confidence = float(cols[conf_idx].strip())
            token = OcrToken(
                text=cols[text_idx].strip() if text_idx is not None else "",
                left=_int_column(cols, columns.get("left")),
                top=_int_column(cols, columns.get("top")),
                width=_int_column(cols, columns.get("width")),
                height=_int_column(cols, columns.get("height")),
                line_index=_int_column(cols, columns.get("line_num")),
                word_index=_int_column(cols, columns.get("word_num")),
                confidence=confidence,
            )
        except ValueError:
            skipped += 1
            continue

        if level != WORD_LEVEL or not token.text:
            continue
        tokens.append(token)

    scored = [t.confidence for t in tokens if not t.is_noise]
    aggregate = sum(scored) / len(scored) if scored else 0.0

    if skipped:
        logger.debug(f"TSV parse: skipped {skipped} malformed row(s)")
    return TsvParseResult(tuple(tokens), aggregate, None)


def build_text_from_tokens(tokens: Sequence[OcrToken]) -> str:
    """Rebuild text: words joined by spaces per line, lines joined by newlines."""
    if not tokens:
        return ""
    lines: Dict[int, List[OcrToken]] = {}
    for token in tokens:
        lines.setdefault(token.line_index, []).append(token)
    return "\n".join(
        " ".join(t.text for t in sorted(words, key=lambda t: t.word_index))
        for _, words in sorted(lines.items())
    )


def compute_confidence(text_or_tsv: Optional[str]) -> float:
    """Confidence in [0, 1] for raw engine output.

    TSV input uses the aggregate token confidence. Plain text falls back to
    the share of alphanumeric characters.
    """
    if not text_or_tsv:
        return 0.0

    if "\t" in text_or_tsv:
        header = text_or_tsv.split("\n", 1)[0]
        if "conf" in header and "text" in header:
            aggregate = parse_tsv(text_or_tsv).aggregate_confidence
            if aggregate > 0:
                return aggregate / 100.0

    alnum = sum(1 for ch in text_or_tsv if ch.isalnum())
    return alnum / len(text_or_tsv)


# ==================== INVOCATION LOGGING ====================


@dataclass(frozen=True)
class StreamCapture:
    content: str = ""
    truncated: bool = False


@dataclass(frozen=True)
class InvocationRecord:
    """One engine invocation, as it is handed to the invocation log."""

    invocation_id: str
    exe_path: str
    arguments: Tuple[str, ...]
    environment: Dict[str, str]
    started_at: float
    completed_at: float
    exit_code: Optional[int]
    stdout: StreamCapture
    stderr: StreamCapture

    @property
    def duration_ms(self) -> float:
        return (self.completed_at - self.started_at) * 1000.0


def _has_secret_marker(text: Optional[str]) -> bool:
    if not text:
        return False
    upper = text.upper()
    return any(marker in upper for marker in SECRET_MARKERS)


def sanitize_arguments(arguments: Sequence[str]) -> List[str]:
    """Redact secret-looking arguments.

    ``name=value`` becomes ``name=***``. A bare secret flag is kept with a
    redaction marker and the argument that follows it is replaced.
    """
    sanitized: List[str] = []
    redact_next = False
    for arg in arguments:
        if redact_next:
            sanitized.append(REDACTED)
            redact_next = False
            continue
        if not arg or not _has_secret_marker(arg):
            sanitized.append(arg)
            continue
        if "=" in arg:
            sanitized.append(arg[: arg.index("=") + 1] + REDACTED)
        else:
            sanitized.append(f"{arg} {REDACTED}")
            redact_next = True
    if redact_next:
        sanitized.append(REDACTED)
    return sanitized


def sanitize_environment(env: Optional[Dict[str, str]]) -> Dict[str, str]:
    """Replace the values of secret-looking environment keys."""
    if not env:
        return {}
    return {k: (REDACTED if _has_secret_marker(k) else v) for k, v in env.items()}


def capture_stream(content: Optional[str], limit: int) -> StreamCapture:
    content = content or ""
    if len(content) > limit:
        return StreamCapture(content[:limit], True)
    return StreamCapture(content, False)


def format_stream(capture: StreamCapture) -> str:
    if not capture.content:
        return TRUNCATION_SUFFIX if capture.truncated else ""
    return capture.content + TRUNCATION_SUFFIX if capture.truncated else capture.content


def log_invocation(record: InvocationRecord) -> None:
    """Emit one DEBUG line describing an engine invocation with secrets removed."""
    if not logger.isEnabledFor(logging.DEBUG):
        return
    args = " ".join(sanitize_arguments(record.arguments))
    env = "; ".join(f"{k}={v}" for k, v in sanitize_environment(record.environment).items())
    truncated = record.stdout.truncated or record.stderr.truncated
    logger.debug(
        f"tesseract_invocation invocationId={record.invocation_id} "
        f"exe={record.exe_path} args={args} env={env} "
        f"exit={'' if record.exit_code is None else record.exit_code} "
        f"durationMs={record.duration_ms:.2f} "
        f"streams=stdout={format_stream(record.stdout)} "
        f"stderr={format_stream(record.stderr)} truncated={truncated}"
    )


# ==================== TESSERACT ADAPTER ====================


# (image, lang, config, timeout) -> TSV text
OcrRunner = Callable[[Any, Optional[str], str, float], str]

_ENGINE_ENV_PREFIXES = ("TESS", "OMP_")


def run_tesseract(image: Any, lang: Optional[str], config: str, timeout: float) -> str:
    """Default runner: ``pytesseract.image_to_data`` with TSV output."""
    return pytesseract.image_to_data(
        image,
        lang=lang,
        config=config,
        timeout=timeout,
        output_type=pytesseract.Output.STRING,
    )


def build_arguments(
    lang: Optional[str], psm: Optional[str] = None, oem: Optional[str] = None
) -> List[str]:
    """Tesseract arguments for one call.

    Page segmentation mode defaults to 6 and engine mode to 1 when unset.
    """
    args: List[str] = []
    if lang and lang.strip():
        args += ["-l", lang]
    args += ["--psm", psm if psm and psm.strip() else "6"]
    args += ["--oem", oem if oem and oem.strip() else "1"]
    return args


def _engine_environment() -> Dict[str, str]:
    return {k: v for k, v in os.environ.items() if k.startswith(_ENGINE_ENV_PREFIXES)}


def _to_pil(image: Any) -> Image.Image:
    """Hand pytesseract an RGB(A) or L image; arrays arrive in BGR order."""
    if isinstance(image, Image.Image):
        return image
    arr = as_array(image)
    if arr.ndim == 3 and arr.shape[2] == 3:
        arr = cv2.cvtColor(arr, cv2.COLOR_BGR2RGB)
    elif arr.ndim == 3 and arr.shape[2] == 4:
        arr = cv2.cvtColor(arr, cv2.COLOR_BGRA2RGBA)
    elif arr.ndim == 3:
        arr = arr[:, :, 0]
    return Image.fromarray(arr)


def result_from_tsv(tsv: Optional[str]) -> OcrResult:
    """Text rebuilt from word tokens and the aggregate confidence scaled to [0, 1]."""
    parsed = parse_tsv(tsv)
    if parsed.reason:
        logger.warning(f"tesseract_output_unexpected: {parsed.reason}")
        return OcrResult()
    text = build_text_from_tokens(parsed.tokens)
    if parsed.aggregate_confidence > 0:
        return OcrResult(text, parsed.aggregate_confidence / 100.0)
    return OcrResult(text, compute_confidence(text))


class TesseractOcr:
    """Text recognizer backed by Tesseract through pytesseract.

    Engine failures (missing executable, timeout, engine error) are logged
    and reported as an empty result, never raised.
    """

    def __init__(
        self,
        exe_path: Optional[str] = None,
        lang: Optional[str] = None,
        psm: Optional[str] = None,
        oem: Optional[str] = None,
        timeout: Optional[float] = None,
        capture_limit: Optional[int] = None,
        debug_logging: Optional[bool] = None,
        runner: Optional[OcrRunner] = None,
    ):
        """Initialize the adapter; unset values come from the OCR config.

        Args:
            exe_path: Tesseract executable.
            lang: Default recognition language.
            psm: Page segmentation mode.
            oem: OCR engine mode.
            timeout: Seconds to wait for the engine.
            capture_limit: Max characters of engine output kept for the log.
            debug_logging: Emit one redacted DEBUG line per invocation.
            runner: Engine call (defaults to ``run_tesseract``).
        """
        cfg = get_ocr_config()
        self.exe_path = exe_path or cfg["exe_path"]
        self.lang = lang or cfg["lang"]
        self.psm = psm or cfg["psm"]
        self.oem = oem or cfg["oem"]
        self.timeout = timeout if timeout is not None else cfg["timeout"]
        self.capture_limit = capture_limit or cfg["capture_limit"]
        self.debug_logging = cfg["debug_logging"] if debug_logging is None else debug_logging
        if runner is None:
            pytesseract.pytesseract.tesseract_cmd = self.exe_path
            runner = run_tesseract
        self.runner: OcrRunner = runner

    def recognize(self, image: Any, language: Optional[str] = None) -> OcrResult:
        """Recognize text in ``image``.

        Args:
            image: Image crop (array or PIL image).
            language: Language override for this call.

        Returns:
            OcrResult: Text and confidence in [0, 1]; empty on engine failure.
        """
        lang = language or self.lang
        arguments = build_arguments(lang, self.psm, self.oem)
        config = " ".join(build_arguments(None, self.psm, self.oem))

        started = time.time()
        output: Optional[str] = None
        error = ""
        try:
            output = self.runner(_to_pil(image), lang, config, self.timeout)
        except pytesseract.TesseractNotFoundError as e:
            error = str(e)
            logger.warning(f"tesseract_failed: executable not found ({self.exe_path})")
        except RuntimeError as e:
            # pytesseract reports timeouts and engine errors as RuntimeError
            error = str(e)
            logger.warning(f"tesseract_failed: {e}")

        if self.debug_logging:
            log_invocation(
                InvocationRecord(
                    invocation_id=uuid.uuid4().hex,
                    exe_path=self.exe_path,
                    arguments=tuple(arguments),
                    environment=_engine_environment(),
                    started_at=started,
                    completed_at=time.time(),
                    exit_code=None if output is None else 0,
                    stdout=capture_stream(output, self.capture_limit),
                    stderr=capture_stream(error, self.capture_limit),
                )
            )

        if output is None:
            return OcrResult()
        return result_from_tsv(output)
