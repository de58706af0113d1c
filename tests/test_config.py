import os
import unittest
from unittest import mock

from screenwatch.config import (
    ENV_PREFIX,
    get_env_bool,
    get_env_float,
    get_env_int,
    get_env_str,
    get_matcher_config,
    get_ocr_config,
    get_trigger_defaults,
)


class TestEnvHelpers(unittest.TestCase):
    def test_values_read_from_environment(self):
        env = {
            f"{ENV_PREFIX}A": "text",
            f"{ENV_PREFIX}B": "12",
            f"{ENV_PREFIX}C": "0.25",
            f"{ENV_PREFIX}D": "yes",
        }
        with mock.patch.dict(os.environ, env):
            self.assertEqual(get_env_str(f"{ENV_PREFIX}A", "x"), "text")
            self.assertEqual(get_env_int(f"{ENV_PREFIX}B", 0), 12)
            self.assertEqual(get_env_float(f"{ENV_PREFIX}C", 0.0), 0.25)
            self.assertTrue(get_env_bool(f"{ENV_PREFIX}D", False))

    def test_invalid_values_fall_back(self):
        env = {f"{ENV_PREFIX}B": "many", f"{ENV_PREFIX}C": "half"}
        with mock.patch.dict(os.environ, env):
            with self.assertLogs("screenwatch.config", level="WARNING"):
                self.assertEqual(get_env_int(f"{ENV_PREFIX}B", 7), 7)
            with self.assertLogs("screenwatch.config", level="WARNING"):
                self.assertEqual(get_env_float(f"{ENV_PREFIX}C", 0.5), 0.5)

    def test_missing_values_use_default(self):
        with mock.patch.dict(os.environ, {}, clear=True):
            self.assertFalse(get_env_bool(f"{ENV_PREFIX}MISSING", False))
            self.assertEqual(get_env_int(f"{ENV_PREFIX}MISSING", 3), 3)


class TestConfigAccessors(unittest.TestCase):
    def test_accessors_return_copies(self):
        config = get_matcher_config()
        config["threshold"] = 0.1
        self.assertNotEqual(get_matcher_config()["threshold"], 0.1)

    def test_expected_keys(self):
        self.assertEqual(set(get_matcher_config()), {"threshold", "max_results", "overlap"})
        self.assertIn("exe_path", get_ocr_config())
        self.assertEqual(get_trigger_defaults()["mode"], "found")


if __name__ == "__main__":
    unittest.main()
