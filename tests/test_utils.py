import os
import shutil
import tempfile
import unittest

from screenwatch.utils import ensure_directory, list_image_files, validate_file_path


class TestPathValidation(unittest.TestCase):
    def test_valid_paths(self):
        self.assertTrue(validate_file_path("triggers.yaml"))
        self.assertTrue(validate_file_path("/tmp/report.json"))
        self.assertTrue(validate_file_path("dir/..name.json"))

    def test_rejected_paths(self):
        for path in ("", None, "../secret.json", "a/../../b", "bad\x00name"):
            with self.subTest(path=path):
                self.assertFalse(validate_file_path(path))
        self.assertFalse(validate_file_path("/abs/path.json", allow_absolute=False))


class TestFileUtils(unittest.TestCase):
    def setUp(self):
        self.test_dir = tempfile.mkdtemp(prefix="screenwatch_utils_")

    def tearDown(self):
        shutil.rmtree(self.test_dir, ignore_errors=True)

    def test_ensure_directory(self):
        target = os.path.join(self.test_dir, "a", "b")
        self.assertTrue(ensure_directory(target))
        self.assertTrue(os.path.isdir(target))
        self.assertTrue(ensure_directory(target))
        self.assertFalse(ensure_directory(""))

    def test_list_image_files(self):
        for name in ("b.PNG", "a.jpg", "c.jpeg", "notes.txt"):
            open(os.path.join(self.test_dir, name), "wb").close()
        os.makedirs(os.path.join(self.test_dir, "nested.png"))

        found = list_image_files(self.test_dir)
        self.assertEqual(list(found), ["a", "b", "c"])
        self.assertTrue(found["b"].endswith("b.PNG"))


if __name__ == "__main__":
    unittest.main()
