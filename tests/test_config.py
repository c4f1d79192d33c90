from __future__ import annotations

import json
import logging
import os
import unittest
from unittest import mock

from bridge_fakes import FakeEngine

from chain_rpc_bridge.bridge.main import build_engine_config, parse_args
from chain_rpc_bridge.engine import load_engine_factory
from chain_rpc_bridge.errors import ConfigError
from chain_rpc_bridge.feature_flags import FeatureFlags
from chain_rpc_bridge.logging_utils import ConsoleFormatter, JsonFormatter, engine_log_callback


class TestEngineFactoryLoading(unittest.TestCase):
    def test_resolves_module_attribute(self) -> None:
        self.assertIs(load_engine_factory("bridge_fakes:FakeEngine"), FakeEngine)

    def test_rejects_target_without_attribute(self) -> None:
        for target in ("", "bridge_fakes", "bridge_fakes:", ":FakeEngine"):
            with self.subTest(target=target), self.assertRaises(ConfigError):
                load_engine_factory(target)

    def test_unknown_module_or_attribute(self) -> None:
        with self.assertRaises(ConfigError):
            load_engine_factory("no_such_engine_module:start")
        with self.assertRaises(ConfigError):
            load_engine_factory("bridge_fakes:NoSuchFactory")

    def test_non_callable_attribute(self) -> None:
        with self.assertRaises(ConfigError):
            load_engine_factory("bridge_fakes:WESTEND")


class TestFeatureFlags(unittest.TestCase):
    def test_defaults(self) -> None:
        with mock.patch.dict(os.environ, {}, clear=True):
            flags = FeatureFlags.from_env()
        self.assertEqual(flags, FeatureFlags(load_database=True, save_database=False, exit_on_forward_error=False))

    def test_env_overrides(self) -> None:
        env = {"FF_LOAD_DATABASE": "off", "FF_SAVE_DATABASE": "yes", "FF_EXIT_ON_FORWARD_ERROR": "1"}
        with mock.patch.dict(os.environ, env, clear=True):
            flags = FeatureFlags.from_env()
        self.assertFalse(flags.load_database)
        self.assertTrue(flags.save_database)
        self.assertTrue(flags.exit_on_forward_error)


class TestCli(unittest.TestCase):
    def test_chain_specs_keep_order(self) -> None:
        args = parse_args(["--chain-spec", "westend.json", "--chain-spec", "westmint.json", "--port", "9955"])
        self.assertEqual(args.chain_specs, ["westend.json", "westmint.json"])
        self.assertEqual(args.port, 9955)

    def test_chain_spec_is_required(self) -> None:
        with mock.patch("sys.stderr"), self.assertRaises(SystemExit):
            parse_args([])

    def test_engine_config_from_args(self) -> None:
        args = parse_args(["--chain-spec", "a.json", "--engine-log-level", "5", "--forbid-tcp", "--cpu-rate-limit", "1"])
        config = build_engine_config(args)
        self.assertEqual(config.max_log_level, 5)
        self.assertTrue(config.forbid_tcp)
        self.assertFalse(config.forbid_wss)
        self.assertEqual(config.cpu_rate_limit, 1.0)
        self.assertIsNotNone(config.log_callback)


class TestLogging(unittest.TestCase):
    def _record(self, **extra_fields) -> logging.LogRecord:
        record = logging.LogRecord("chain_rpc_bridge.server", logging.INFO, __file__, 1, "client connected", None, None)
        record.extra_fields = extra_fields
        return record

    def test_json_formatter_merges_extra_fields(self) -> None:
        payload = json.loads(JsonFormatter().format(self._record(chain_id="westend")))
        self.assertEqual(payload["message"], "client connected")
        self.assertEqual(payload["level"], "info")
        self.assertEqual(payload["chain_id"], "westend")

    def test_console_formatter_uses_target(self) -> None:
        line = ConsoleFormatter().format(self._record(target="sync-service"))
        self.assertTrue(line.endswith("[sync-service] client connected"))

    def test_engine_levels_are_mapped(self) -> None:
        callback = engine_log_callback()
        with self.assertLogs("chain_rpc_bridge.engine", level="DEBUG") as captured:
            callback(1, "runtime", "bad block")
            callback(3, "sync-service", "finalized #10")
            callback(5, "network", "noise")
        self.assertEqual([r.levelno for r in captured.records], [logging.ERROR, logging.INFO, logging.DEBUG])
        self.assertEqual(captured.records[1].extra_fields, {"target": "sync-service"})


if __name__ == "__main__":
    unittest.main()
