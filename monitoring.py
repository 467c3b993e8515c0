"""Logging, metrics, and health instrumentation helpers."""

from __future__ import annotations

import json
import logging
import logging.handlers
import threading
import time
from collections import Counter
from pathlib import Path
from typing import Callable, Dict, Optional

from aiohttp import web

logger = logging.getLogger(__name__)

SnapshotProvider = Callable[[], Dict[str, object]]


class JsonFormatter(logging.Formatter):
    """Simple JSON formatter for structured logs."""

    def format(self, record: logging.LogRecord) -> str:  # noqa: D401
        log = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "name": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            log["exc_info"] = self.formatException(record.exc_info)
        if record.stack_info:
            log["stack"] = record.stack_info
        return json.dumps(log, ensure_ascii=True)


class MetricsRegistry:
    """Thread-safe in-memory metrics registry."""

    def __init__(self) -> None:
        self._counters: Counter[str] = Counter()
        self._gauges: Dict[str, float] = {}
        self._lock = threading.Lock()
        self._stamp = time.time()

    def increment(self, name: str, value: int = 1) -> None:
        with self._lock:
            self._counters[name] += value
            self._stamp = time.time()

    def set_gauge(self, name: str, value: float) -> None:
        with self._lock:
            self._gauges[name] = value
            self._stamp = time.time()

    def counter(self, name: str) -> int:
        with self._lock:
            return self._counters.get(name, 0)

    def reset(self) -> None:
        with self._lock:
            self._counters.clear()
            self._gauges.clear()

    def snapshot(self) -> Dict[str, object]:
        with self._lock:
            return {
                "timestamp": self._stamp,
                "counters": dict(self._counters),
                "gauges": dict(self._gauges),
            }


_metrics = MetricsRegistry()
_PROCESS_STARTED_AT = time.time()


def get_metrics_registry() -> MetricsRegistry:
    return _metrics


def increment_metric(name: str, value: int = 1) -> None:
    _metrics.increment(name, value)


def set_metric_gauge(name: str, value: float) -> None:
    _metrics.set_gauge(name, value)


def setup_logging(
    level: str = "INFO",
    log_file: Optional[str] = None,
    max_bytes: int = 10 * 1024 * 1024,
    backup_count: int = 5,
    sentry_dsn: Optional[str] = None,
    structured: bool = False,
) -> None:
    """Configure root logger and optional Sentry."""

    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    for handler in list(root.handlers):
        root.removeHandler(handler)

    formatter: logging.Formatter
    if structured:
        formatter = JsonFormatter()
    else:
        formatter = logging.Formatter("%(asctime)s | %(levelname)s | %(name)s | %(message)s")

    sh = logging.StreamHandler()
    sh.setFormatter(formatter)
    root.addHandler(sh)

    if log_file:
        try:
            path = Path(log_file)
            path.parent.mkdir(parents=True, exist_ok=True)
            fh = logging.handlers.RotatingFileHandler(
                str(path),
                maxBytes=max_bytes,
                backupCount=backup_count,
                encoding="utf-8",
            )
            fh.setFormatter(formatter)
            root.addHandler(fh)
        except OSError:
            # Лог-файл недоступен, продолжаем писать только в консоль
            root.warning("Не удалось открыть файл логов %s, пишем только в stderr", log_file, exc_info=True)

    # aiogram очень разговорчив на INFO при каждом апдейте
    logging.getLogger("aiogram.event").setLevel(logging.WARNING)

    if sentry_dsn:
        try:
            import sentry_sdk

            sentry_sdk.init(dsn=sentry_dsn)
            root.info("Sentry initialized")
        except Exception:
            root.exception("Не удалось инициализировать Sentry (неверный DSN?)")


def capture_exception(exc: BaseException) -> None:
    """Send exception data to Sentry when possible."""

    try:
        import sentry_sdk

        sentry_sdk.capture_exception(exc)
    except Exception:
        logger.debug("Sentry capture failed or sentry_sdk not installed.")


class HealthCheckServer:
    """Minimal aiohttp server exposing /health and /metrics endpoints.

    Runs inside the bot's event loop. ``snapshot_provider`` lets the runtime add
    live queue statistics to the ``/metrics`` payload.
    """

    def __init__(
        self,
        host: str = "0.0.0.0",
        port: int = 8080,
        snapshot_provider: Optional[SnapshotProvider] = None,
    ) -> None:
        self._host = host
        self._port = port
        self._snapshot_provider = snapshot_provider
        self._runner: web.AppRunner | None = None

    def build_app(self) -> web.Application:
        app = web.Application()
        app.router.add_get("/health", self._handle_health)
        app.router.add_get("/metrics", self._handle_metrics)
        return app

    async def _handle_health(self, request: web.Request) -> web.Response:  # noqa: ARG002
        return web.json_response(
            {
                "status": "ok",
                "timestamp": time.time(),
                "uptime_seconds": int(time.time() - _PROCESS_STARTED_AT),
            }
        )

    async def _handle_metrics(self, request: web.Request) -> web.Response:  # noqa: ARG002
        payload = get_metrics_registry().snapshot()
        if self._snapshot_provider:
            try:
                payload["runtime"] = self._snapshot_provider()
            except Exception:
                logger.exception("Snapshot provider failed")
        return web.json_response(payload)

    async def start(self) -> None:
        if self._runner:
            return
        self._runner = web.AppRunner(self.build_app())
        await self._runner.setup()
        site = web.TCPSite(self._runner, host=self._host, port=self._port)
        try:
            await site.start()
        except OSError:
            await self._runner.cleanup()
            self._runner = None
            raise
        logger.info("Healthcheck server listening on %s:%s", self._host, self._port)

    async def stop(self) -> None:
        if not self._runner:
            return
        await self._runner.cleanup()
        self._runner = None
        logger.info("Healthcheck server stopped")
