import json
import os
import shutil
import tempfile
import unittest
from datetime import datetime, timezone

from screenwatch.config import DEFAULT_COOLDOWN_SECONDS, DEFAULT_SIMILARITY_THRESHOLD
from screenwatch.data import (
    load_triggers,
    parse_timestamp,
    parse_trigger_type,
    result_to_dict,
    trigger_from_dict,
    trigger_to_dict,
    write_report,
)
from screenwatch.errors import TriggerDefinitionError
from screenwatch.geometry import Region
from screenwatch.triggers import (
    ImageMatchParams,
    TextMatchParams,
    TriggerEvaluationResult,
    TriggerStatus,
    TriggerType,
)

YAML_TRIGGERS = """
triggers:
  - id: boss-appears
    type: ImageMatch
    cooldown_seconds: 30
    params:
      reference_image_id: boss
      region: {x: 0.5, y: 0.0, width: 0.5, height: 0.5}
  - id: quest-text
    type: text_match
    enabled: false
    params:
      target: Quest Clear
      mode: not-found
      language: jpn
  - id: morning
    type: schedule
    params:
      timestamp: "2024-05-01T08:00:00Z"
"""


class TestTriggerRecords(unittest.TestCase):
    def test_type_aliases(self):
        for raw in ("image-match", "ImageMatch", "image_match", "IMAGE-MATCH"):
            with self.subTest(raw=raw):
                self.assertEqual(parse_trigger_type(raw), TriggerType.IMAGE_MATCH)
        with self.assertRaises(ValueError):
            parse_trigger_type("sound")

    def test_defaults_applied(self):
        trigger = trigger_from_dict(
            {"id": "t", "type": "image-match", "params": {"reference_image_id": "icon"}}
        )
        self.assertEqual(trigger.cooldown_seconds, DEFAULT_COOLDOWN_SECONDS)
        self.assertTrue(trigger.enabled)
        self.assertEqual(trigger.params.region, Region.full())
        self.assertEqual(trigger.params.similarity_threshold, DEFAULT_SIMILARITY_THRESHOLD)

    def test_invalid_records(self):
        bad_records = [
            {"type": "delay", "params": {"seconds": 1}},
            {"id": "t", "type": "unknown", "params": {}},
            {"id": "t", "type": "delay", "params": {}},
            {"id": "t", "type": "text-match", "params": {"target": "x", "mode": "sometimes"}},
            {"id": "t", "type": "delay", "params": {"seconds": "soon"}},
            "not a mapping",
        ]
        for record in bad_records:
            with self.subTest(record=record):
                with self.assertRaises(TriggerDefinitionError):
                    trigger_from_dict(record, 3)

    def test_error_names_record(self):
        with self.assertRaises(TriggerDefinitionError) as ctx:
            trigger_from_dict({"type": "delay"}, 4)
        self.assertEqual(ctx.exception.record_index, 4)
        self.assertIn("record 4", str(ctx.exception))

    def test_naive_timestamps_read_as_utc(self):
        trigger = trigger_from_dict(
            {
                "id": "t",
                "type": "schedule",
                "last_fired_at": "2024-01-01T06:00:00",
                "params": {"timestamp": "2024-01-01T00:00:00"},
            }
        )
        self.assertEqual(
            trigger.params.timestamp, datetime(2024, 1, 1, tzinfo=timezone.utc)
        )
        self.assertEqual(trigger.last_fired_at.tzinfo, timezone.utc)
        self.assertEqual(
            parse_timestamp(datetime(2024, 1, 1, 8)),
            datetime(2024, 1, 1, 8, tzinfo=timezone.utc),
        )

    def test_enabled_flag_parsing(self):
        cases = [("false", False), ("No", False), (0, False), ("true", True), ("yes", True), (1, True)]
        for raw, expected in cases:
            with self.subTest(raw=raw):
                trigger = trigger_from_dict(
                    {"id": "t", "type": "delay", "enabled": raw, "params": {"seconds": 1}}
                )
                self.assertIs(trigger.enabled, expected)
        with self.assertRaises(TriggerDefinitionError):
            trigger_from_dict(
                {"id": "t", "type": "delay", "enabled": "maybe", "params": {"seconds": 1}}
            )

    def test_serialized_state_survives_reload(self):
        fired = datetime(2024, 5, 1, 9, 30, tzinfo=timezone.utc)
        first = trigger_from_dict(
            {
                "id": "quest",
                "type": "text-match",
                "cooldown_seconds": 15,
                "last_fired_at": fired.isoformat(),
                "params": {
                    "target": "Clear",
                    "region": {"x": 0.1, "y": 0.2, "width": 0.3, "height": 0.4},
                    "confidence_threshold": 0.7,
                },
            }
        )
        record = json.loads(json.dumps(trigger_to_dict(first)))
        self.assertEqual(record["type"], "text-match")
        self.assertEqual(record["params"]["region"], {"x": 0.1, "y": 0.2, "width": 0.3, "height": 0.4})

        reloaded = trigger_from_dict(record)
        self.assertEqual(reloaded, first)
        self.assertEqual(reloaded.last_fired_at, fired)

    def test_result_to_dict(self):
        at = datetime(2024, 5, 1, tzinfo=timezone.utc)
        result = TriggerEvaluationResult(TriggerStatus.COOLDOWN, at, "cooldown_active", 0.9)
        self.assertEqual(
            result_to_dict(result),
            {
                "status": "cooldown",
                "evaluated_at": "2024-05-01T00:00:00+00:00",
                "reason": "cooldown_active",
                "similarity": 0.9,
                "confidence": None,
            },
        )
        self.assertIsNone(result_to_dict(None))


class TestTriggerFiles(unittest.TestCase):
    def setUp(self):
        self.test_dir = tempfile.mkdtemp(prefix="screenwatch_data_")

    def tearDown(self):
        shutil.rmtree(self.test_dir, ignore_errors=True)

    def write(self, name: str, content: str) -> str:
        path = os.path.join(self.test_dir, name)
        with open(path, "w", encoding="utf-8") as f:
            f.write(content)
        return path

    def test_load_yaml(self):
        triggers = load_triggers(self.write("triggers.yaml", YAML_TRIGGERS))

        self.assertEqual([t.id for t in triggers], ["boss-appears", "quest-text", "morning"])
        boss, quest, morning = triggers
        self.assertIsInstance(boss.params, ImageMatchParams)
        self.assertEqual(boss.cooldown_seconds, 30)
        self.assertEqual(boss.params.region, Region(0.5, 0.0, 0.5, 0.5))
        self.assertIsInstance(quest.params, TextMatchParams)
        self.assertFalse(quest.enabled)
        self.assertEqual((quest.params.mode, quest.params.language), ("not-found", "jpn"))
        self.assertEqual(
            morning.params.timestamp, datetime(2024, 5, 1, 8, 0, tzinfo=timezone.utc)
        )

    def test_load_json_list(self):
        records = [{"id": "wait", "type": "delay", "params": {"seconds": 5}}]
        triggers = load_triggers(self.write("triggers.json", json.dumps(records)))
        self.assertEqual(triggers[0].params.seconds, 5.0)

    def test_bad_files(self):
        with self.assertRaises(FileNotFoundError):
            load_triggers(os.path.join(self.test_dir, "missing.json"))
        with self.assertRaises(ValueError):
            load_triggers(self.write("triggers.txt", "[]"))
        with self.assertRaises(TriggerDefinitionError):
            load_triggers(self.write("scalar.yaml", "just text"))
        with self.assertRaises(TriggerDefinitionError) as ctx:
            load_triggers(self.write("bad.json", json.dumps([{"id": "a", "type": "delay"}])))
        self.assertEqual(ctx.exception.record_index, 0)

    def test_write_report(self):
        path = os.path.join(self.test_dir, "out", "report.json")
        rows = [{"id": "a", "status": "satisfied"}, {"id": "b", "status": "pending"}]

        self.assertTrue(write_report(path, rows))
        with open(path, encoding="utf-8") as f:
            self.assertEqual(json.load(f), rows)
        self.assertEqual(os.listdir(os.path.dirname(path)), ["report.json"])

    def test_write_report_rejects_traversal(self):
        self.assertFalse(write_report("../escape.json", []))


if __name__ == "__main__":
    unittest.main()
