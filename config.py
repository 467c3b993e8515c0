# config.py
# Конфигурация бота: токен, пути, лимиты загрузок и авторизация.
# Токен должен лежать в переменной окружения TELEGRAM_BOT_TOKEN
# (рекомендуется хранить в системной переменной или .env, НЕ в коде).

import os
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv


load_dotenv()

_TRUE_VALUES = ("1", "true", "t", "yes", "y")
_FALSE_VALUES = ("0", "false", "f", "no", "n")


def _require_env_var(name: str, *, example: Optional[str] = None) -> str:
	"""Read required env var with a helpful error if missing."""
	value = os.environ.get(name, "").strip()
	if not value:
		hint = f"Provide it via .env or export {name}."
		if example:
			hint += f" Example: {name}={example}"
		raise RuntimeError(hint)
	return value


def _int_setting(
	name: str,
	default: int,
	*,
	min_value: int,
	max_value: Optional[int] = None,
) -> int:
	"""Parse bounded integer env vars with descriptive errors."""
	raw = os.environ.get(name)
	value = default if raw is None or not raw.strip() else raw.strip()
	try:
		parsed = int(value)
	except (TypeError, ValueError):
		raise ValueError(f"{name} must be an integer, got {value!r}") from None
	if parsed < min_value:
		raise ValueError(f"{name} must be >= {min_value}, got {parsed}")
	if max_value is not None and parsed > max_value:
		raise ValueError(f"{name} must be <= {max_value}, got {parsed}")
	return parsed


def _bool_setting(name: str, default: bool) -> bool:
	"""Parse yes/no style env vars; unknown values fall back to default."""
	raw = os.environ.get(name)
	if raw is None or not raw.strip():
		return default
	lowered = raw.strip().lower()
	if lowered in _TRUE_VALUES:
		return True
	if lowered in _FALSE_VALUES:
		return False
	return default


def _split_tokens(raw: Optional[str]) -> List[str]:
	if not raw:
		return []
	return [part.strip() for part in raw.split(",") if part.strip()]


def _default_update_workers() -> int:
	return min(10, max(2, os.cpu_count() or 1))


# Telegram token: читаем из окружения
TOKEN = _require_env_var("TELEGRAM_BOT_TOKEN", example="123456:ABCDEF")

# Папка для временных файлов (если не существует, будет создана)
TEMP_DIR = Path(os.environ.get("TEMP_DIR", "./tmp"))
TEMP_DIR.mkdir(parents=True, exist_ok=True)
TEMP_DIR = TEMP_DIR.resolve()

# Ограничения загрузок
MAX_VIDEO_SIZE_MB = _int_setting("MAX_VIDEO_SIZE_MB", default=50, min_value=0, max_value=2048)
VIDEO_QUALITY = os.environ.get("VIDEO_QUALITY", "best").strip() or "best"
# Количество воркеров загрузки; очередь всегда вдвое больше
WORKER_POOL_SIZE = _int_setting(
	"WORKER_POOL_SIZE",
	default=os.cpu_count() or 1,
	min_value=1,
	max_value=64,
)
# Воркеры для входящих апдейтов (независимы от воркеров загрузки)
UPDATE_WORKERS = _int_setting(
	"UPDATE_WORKERS",
	default=_default_update_workers(),
	min_value=1,
	max_value=64,
)
# Дедлайн на один запрос: скачивание, проверка и отправка
DOWNLOAD_TIMEOUT_SECONDS = _int_setting(
	"DOWNLOAD_TIMEOUT",
	default=5 * 60,
	min_value=10,
	max_value=6 * 60 * 60,
)
# Сколько ждать остановки отменённого шага, прежде чем бросить его
CANCEL_GRACE_SECONDS = _int_setting("CANCEL_GRACE_SECONDS", default=5, min_value=0, max_value=120)

# === Авторизация по токенам ===
AUTH_ENABLED = _bool_setting("AUTH_ENABLED", False)
AUTH_TOKENS = _split_tokens(os.environ.get("AUTH_TOKENS", ""))
AUTH_ALLOWED_USERS_FILE = os.environ.get("AUTH_ALLOWED_USERS_FILE", "./allowed_users.txt").strip()

# Язык пользовательских сообщений
BOT_LOCALE = os.environ.get("BOT_LOCALE", "ru").strip().lower() or "ru"

# yt-dlp (опционально)
YTDLP_COOKIES_FILE = os.environ.get("YTDLP_COOKIES_FILE", None)
YTDLP_USER_AGENT = os.environ.get("YTDLP_USER_AGENT", None)

# Логирование (уровень и путь можно переопределить)
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
# Путь до файла логов (опционально). Если задан, будет использоваться ротация.
LOG_FILE = os.environ.get("LOG_FILE", "./logs/reelser-bot.log")
LOG_MAX_BYTES = _int_setting(
	"LOG_MAX_BYTES",
	default=10 * 1024 * 1024,
	min_value=1024,
	max_value=500 * 1024 * 1024,
)
LOG_BACKUP_COUNT = _int_setting("LOG_BACKUP_COUNT", default=5, min_value=1, max_value=50)
STRUCTURED_LOGS = _bool_setting("STRUCTURED_LOGS", False)
# Sentry DSN (опционально). Если не задано, Sentry не инициализируется.
SENTRY_DSN = os.environ.get("SENTRY_DSN", None)

# Healthcheck server configuration
HEALTHCHECK_ENABLED = _bool_setting("HEALTHCHECK_ENABLED", True)
HEALTHCHECK_HOST = os.environ.get("HEALTHCHECK_HOST", "0.0.0.0")
HEALTHCHECK_PORT = _int_setting("HEALTHCHECK_PORT", default=8080, min_value=1, max_value=65535)
