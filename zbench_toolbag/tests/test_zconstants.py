import os
import unittest
from pathlib import Path
from unittest.mock import patch

from zbench_toolbag.zconstants import BenchConfig, normalize_partition_key


class TestBenchConfig(unittest.TestCase):
    @patch.dict(os.environ, {
        "ZBENCH_CONTAINER": "LoadContainer",
        "ZBENCH_PARTITION_KEY": "/documentRef",
        "ZBENCH_CONCURRENCY": "20000",
        "ZBENCH_COOLDOWN_SECONDS": "0.25",
        "ZBENCH_MAX_GENERATIONS": "8",
        "ZBENCH_REPORT_DIR": "/tmp/reports",
        "ZBENCH_TRACK_CHARGE": "false",
    })
    def test_from_env(self):
        config = BenchConfig.from_env()
        self.assertEqual(config.container_name, "LoadContainer")
        self.assertEqual(config.partition_key_field, "documentRef")
        self.assertEqual(config.concurrency, 20000)
        self.assertEqual(config.cooldown_seconds, 0.25)
        self.assertEqual(config.max_generations, 8)
        self.assertEqual(config.report_dir, Path("/tmp/reports"))
        self.assertFalse(config.track_request_charge)

    @patch.dict(os.environ, {"ZBENCH_CONCURRENCY": "many"})
    def test_bad_integer_names_variable(self):
        with self.assertRaises(ValueError) as ctx:
            BenchConfig.from_env()
        self.assertIn("ZBENCH_CONCURRENCY", str(ctx.exception))

    @patch.dict(os.environ, {"ZBENCH_CONCURRENCY": ""})
    def test_blank_value_uses_default(self):
        self.assertEqual(BenchConfig.from_env().concurrency, 5000)

    def test_normalize_partition_key(self):
        self.assertEqual(normalize_partition_key("/documentRef"), "documentRef")
        self.assertEqual(normalize_partition_key("documentRef"), "documentRef")
        self.assertEqual(normalize_partition_key("/metadata/customerRef"), "metadata.customerRef")
        with self.assertRaises(ValueError):
            normalize_partition_key("/")


if __name__ == "__main__":
    unittest.main()
