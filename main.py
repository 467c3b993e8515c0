# main.py
# Точка входа бота Reelser
# - long-polling с ограниченной очередью апдейтов
# - пул воркеров загрузок с дедлайном на запрос
# - поддержка YouTube / TikTok / Instagram
# - опциональный доступ по токенам

import asyncio
import logging
import signal

import config
from bot_app.runtime import build_runtime
from monitoring import setup_logging

setup_logging(
    level=config.LOG_LEVEL,
    log_file=config.LOG_FILE,
    max_bytes=config.LOG_MAX_BYTES,
    backup_count=config.LOG_BACKUP_COUNT,
    sentry_dsn=config.SENTRY_DSN,
    structured=config.STRUCTURED_LOGS,
)

logger = logging.getLogger(__name__)


# ---------- Запуск polling ----------
async def main():
    runtime = build_runtime()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, runtime.request_stop)
        except (NotImplementedError, RuntimeError):
            # Windows: остаётся KeyboardInterrupt
            pass
    logger.info(
        "Бот запущен (long-polling). Воркеров загрузки: %d, воркеров апдейтов: %d",
        config.WORKER_POOL_SIZE,
        config.UPDATE_WORKERS,
    )
    await runtime.run()


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except (KeyboardInterrupt, SystemExit):
        logger.info("Бот остановлен.")
