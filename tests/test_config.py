"""
AOF Stagger — Configuration Loader Tests

Tests YAML loading, zero-value defaults, validation errors, and
AOF_* environment overrides.
"""

import os
import shutil
import sys
import tempfile
import unittest

_project_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if _project_root not in sys.path:
    sys.path.insert(0, _project_root)

from infra.config import (
    CLUSTER_MODE,
    ConfigError,
    FleetConfig,
    SchedulerConfig,
    _load_env_overrides,
    config_from_dict,
    deep_merge,
    load_config,
)


class ConfigFileTestCase(unittest.TestCase):
    def setUp(self):
        self.tmpdir = tempfile.mkdtemp()

    def tearDown(self):
        shutil.rmtree(self.tmpdir, ignore_errors=True)

    def write(self, text, name="config.yaml"):
        path = os.path.join(self.tmpdir, name)
        with open(path, "w") as f:
            f.write(text)
        return path


class TestLoadConfig(ConfigFileTestCase):
    def test_minimal_file_gets_defaults(self):
        path = self.write('hosts: "127.0.0.1:6379,127.0.0.1:6380"\n')
        cfg = load_config(path, include_env_vars=False)
        self.assertIsInstance(cfg, FleetConfig)
        self.assertEqual(cfg.host_list(), ["127.0.0.1:6379", "127.0.0.1:6380"])
        self.assertEqual(cfg.pool_size, 50)
        self.assertEqual(cfg.max_retries, 3)
        self.assertEqual(cfg.timeout, 30)
        self.assertEqual(cfg.idle_time, 1)
        self.assertEqual(cfg.idle_check_seconds, 3600)
        self.assertEqual(cfg.db_mod, 1)
        self.assertEqual(cfg.scheduler, SchedulerConfig())
        self.assertAlmostEqual(cfg.scheduler.poll_interval, 0.01)

    def test_full_file(self):
        path = self.write(
            "hosts: 10.0.0.1:7000\n"
            "password: s3cret\n"
            "db: 2\n"
            "pool_size: 8\n"
            "db_mod: 2\n"
            "scheduler:\n"
            "  poll_interval_ms: 25\n"
            "  growth_threshold_percent: 100\n"
            "  skip_unreachable: true\n"
            "  query_timeout: 1.5\n"
            "logging:\n"
            "  level: debug\n"
        )
        cfg = load_config(path, include_env_vars=False)
        self.assertEqual(cfg.password, "s3cret")
        self.assertEqual(cfg.db, 2)
        self.assertEqual(cfg.pool_size, 8)
        self.assertEqual(cfg.db_mod, CLUSTER_MODE)
        self.assertEqual(cfg.scheduler.poll_interval_ms, 25)
        self.assertEqual(cfg.scheduler.growth_threshold_percent, 100)
        self.assertTrue(cfg.scheduler.skip_unreachable)
        self.assertEqual(cfg.scheduler.query_timeout, 1.5)
        self.assertEqual(cfg.log_level, "DEBUG")

    def test_missing_file(self):
        with self.assertRaises(ConfigError):
            load_config(os.path.join(self.tmpdir, "nope.yaml"))

    def test_missing_hosts(self):
        path = self.write("password: x\n")
        with self.assertRaises(ConfigError) as ctx:
            load_config(path, include_env_vars=False)
        self.assertIn("hosts", str(ctx.exception))

    def test_invalid_yaml(self):
        path = self.write("hosts: [unterminated\n")
        with self.assertRaises(ConfigError):
            load_config(path, include_env_vars=False)

    def test_env_overrides_applied(self):
        path = self.write('hosts: "a:1"\npool_size: 5\n')
        cfg = load_config(path, environ={
            "AOF_POOL_SIZE": "20",
            "AOF_SCHEDULER__SKIP_UNREACHABLE": "true",
            "UNRELATED": "1",
        })
        self.assertEqual(cfg.pool_size, 20)
        self.assertTrue(cfg.scheduler.skip_unreachable)


class TestConfigFromDict(unittest.TestCase):
    def test_zero_values_fall_back(self):
        cfg = config_from_dict({
            "hosts": "a:1", "pool_size": 0, "max_retries": 0, "timeout": 0, "idle_time": 0,
        })
        self.assertEqual((cfg.pool_size, cfg.max_retries, cfg.timeout, cfg.idle_time), (50, 3, 30, 1))

    def test_negative_db_and_mode_coerced(self):
        cfg = config_from_dict({"hosts": "a:1", "db": -4, "db_mod": 0})
        self.assertEqual(cfg.db, 0)
        self.assertEqual(cfg.db_mod, 1)

    def test_sentinel_mode_rejected(self):
        with self.assertRaises(ConfigError):
            config_from_dict({"hosts": "a:1", "db_mod": 3})

    def test_hosts_list_accepted(self):
        cfg = config_from_dict({"hosts": ["a:1", "b:2"]})
        self.assertEqual(cfg.host_list(), ["a:1", "b:2"])

    def test_blank_hosts_dropped(self):
        cfg = config_from_dict({"hosts": "a:1, ,b:2,"})
        self.assertEqual(cfg.host_list(), ["a:1", "b:2"])

    def test_bad_integer(self):
        with self.assertRaises(ConfigError):
            config_from_dict({"hosts": "a:1", "pool_size": "many"})

    def test_non_positive_poll_interval_defaults(self):
        cfg = config_from_dict({"hosts": "a:1", "scheduler": {"poll_interval_ms": 0}})
        self.assertEqual(cfg.scheduler.poll_interval_ms, 10)


class TestOverrides(unittest.TestCase):
    def test_env_nesting_and_types(self):
        overrides = _load_env_overrides({
            "AOF_HOSTS": "x:1,y:2",
            "AOF_SCHEDULER__POLL_INTERVAL_MS": "20",
            "AOF_VERSION": "9.9",
            "CC_ENV": "prod",
        })
        self.assertEqual(overrides, {
            "hosts": "x:1,y:2",
            "scheduler": {"poll_interval_ms": 20},
        })

    def test_deep_merge_keeps_base(self):
        base = {"scheduler": {"poll_interval_ms": 10, "skip_unreachable": False}}
        merged = deep_merge(base, {"scheduler": {"skip_unreachable": True}})
        self.assertEqual(merged["scheduler"], {"poll_interval_ms": 10, "skip_unreachable": True})
        self.assertFalse(base["scheduler"]["skip_unreachable"])


if __name__ == "__main__":
    unittest.main()
