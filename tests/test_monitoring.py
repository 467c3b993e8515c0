from __future__ import annotations

import json
import logging
import tempfile
import unittest
from pathlib import Path
from unittest import IsolatedAsyncioTestCase, mock

from aiohttp import test_utils

import monitoring
from monitoring import HealthCheckServer, JsonFormatter, MetricsRegistry


class MetricsRegistryTests(unittest.TestCase):
    def test_counters_and_gauges(self):
        registry = MetricsRegistry()
        registry.increment("downloads.success")
        registry.increment("downloads.success", 2)
        registry.set_gauge("downloads.queue_depth", 3)

        snapshot = registry.snapshot()
        self.assertEqual(snapshot["counters"], {"downloads.success": 3})
        self.assertEqual(snapshot["gauges"], {"downloads.queue_depth": 3})
        self.assertEqual(registry.counter("missing"), 0)

        registry.reset()
        self.assertEqual(registry.snapshot()["counters"], {})

    def test_json_formatter(self):
        record = logging.LogRecord("bot", logging.INFO, __file__, 1, "hello %s", ("world",), None)
        payload = json.loads(JsonFormatter().format(record))
        self.assertEqual(payload["message"], "hello world")
        self.assertEqual(payload["level"], "INFO")


class SetupLoggingTests(unittest.TestCase):
    def setUp(self):
        self._tmpdir = tempfile.TemporaryDirectory()
        root = logging.getLogger()
        self._saved = (root.level, list(root.handlers))

    def tearDown(self):
        root = logging.getLogger()
        for handler in list(root.handlers):
            root.removeHandler(handler)
            handler.close()
        level, handlers = self._saved
        root.setLevel(level)
        for handler in handlers:
            root.addHandler(handler)
        self._tmpdir.cleanup()

    def test_rotating_file_and_sentry(self):
        log_file = Path(self._tmpdir.name) / "logs" / "bot.log"
        with mock.patch("sentry_sdk.init") as init_mock:
            monitoring.setup_logging("DEBUG", str(log_file), sentry_dsn="https://key@example.com/1", structured=True)

        root = logging.getLogger()
        self.assertEqual(root.level, logging.DEBUG)
        self.assertTrue(any(isinstance(h, logging.handlers.RotatingFileHandler) for h in root.handlers))
        self.assertTrue(log_file.parent.is_dir())
        init_mock.assert_called_once_with(dsn="https://key@example.com/1")
        self.assertEqual(logging.getLogger("aiogram.event").level, logging.WARNING)


class HealthCheckServerTests(IsolatedAsyncioTestCase):
    async def test_health_and_metrics_endpoints(self) -> None:
        monitoring.get_metrics_registry().reset()
        monitoring.increment_metric("updates.received")
        server = HealthCheckServer(snapshot_provider=lambda: {"downloads": {"queue_size": 0}})

        client = test_utils.TestClient(test_utils.TestServer(server.build_app()))
        await client.start_server()
        try:
            resp = await client.get("/health")
            self.assertEqual(resp.status, 200)
            self.assertEqual((await resp.json())["status"], "ok")

            resp = await client.get("/metrics")
            payload = await resp.json()
            self.assertEqual(payload["counters"], {"updates.received": 1})
            self.assertEqual(payload["runtime"], {"downloads": {"queue_size": 0}})
        finally:
            await client.close()

    async def test_failed_bind_releases_runner(self) -> None:
        server = HealthCheckServer(host="127.0.0.1", port=8080)

        with mock.patch.object(monitoring.web.TCPSite, "start", side_effect=OSError("address in use")):
            with self.assertRaises(OSError):
                await server.start()

        self.assertIsNone(server._runner)
        await server.stop()


if __name__ == "__main__":
    unittest.main()
