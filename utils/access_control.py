"""Авторизация пользователей по токенам доступа.

Поддерживает:
- статический набор токенов, выданных администратором
- список одобренных пользователей, который растёт по мере успешной авторизации
- сохранение одобренных ID в файл (по одному на строку) и загрузку при старте
"""
from __future__ import annotations

import logging
import os
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterable, Iterator, Optional, Set

from monitoring import increment_metric

logger = logging.getLogger(__name__)

_INT64_MIN = -(2 ** 63)
_INT64_MAX = 2 ** 63 - 1


class _ReadWriteLock:
    """Many concurrent readers or one exclusive writer."""

    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False

    @contextmanager
    def read(self) -> Iterator[None]:
        with self._cond:
            while self._writer:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if not self._readers:
                    self._cond.notify_all()

    @contextmanager
    def write(self) -> Iterator[None]:
        with self._cond:
            while self._writer or self._readers:
                self._cond.wait()
            self._writer = True
        try:
            yield
        finally:
            with self._cond:
                self._writer = False
                self._cond.notify_all()


def parse_user_id(line: str) -> Optional[int]:
    """Return the signed 64-bit user id stored in ``line`` or None."""
    try:
        value = int(line, 10)
    except ValueError:
        return None
    if value < _INT64_MIN or value > _INT64_MAX:
        return None
    return value


class AuthorizationGate:
    """Token-gated allow-list of Telegram users.

    When disabled every check passes. Otherwise a user becomes authorized by
    presenting one of the static tokens once; the approval is kept in memory and
    appended to ``allowed_users_file`` so it survives restarts.
    """

    def __init__(
        self,
        enabled: bool,
        tokens: Iterable[str] = (),
        allowed_users_file: Optional[str | Path] = None,
    ) -> None:
        self._enabled = bool(enabled)
        self._valid_tokens = frozenset(t.strip() for t in tokens if t and t.strip())
        self._allowed_users: Set[int] = set()
        self._lock = _ReadWriteLock()
        path = str(allowed_users_file).strip() if allowed_users_file else ""
        self._allowed_users_file: Optional[Path] = Path(path) if path else None

        if self._enabled and not self._valid_tokens:
            logger.warning("Авторизация включена, но список токенов пуст, новые пользователи не смогут войти")

        self._load_allowed_users()

    def is_enabled(self) -> bool:
        return self._enabled

    def is_authorized(self, user_id: int) -> bool:
        if not self._enabled:
            return True
        with self._lock.read():
            return user_id in self._allowed_users

    def approved_count(self) -> int:
        with self._lock.read():
            return len(self._allowed_users)

    def try_authorize(self, user_id: int, token: str) -> bool:
        """Redeem ``token`` for ``user_id``; True when the user is now authorized."""
        if not self._enabled:
            return True

        presented = (token or "").strip()
        with self._lock.write():
            if presented not in self._valid_tokens:
                logger.warning("Неверный токен авторизации от пользователя %d", user_id)
                increment_metric("auth.rejected")
                return False

            if user_id in self._allowed_users:
                return True

            self._allowed_users.add(user_id)
            try:
                self._append_allowed_user(user_id)
            except OSError as exc:
                logger.warning("Не удалось сохранить пользователя %d в %s: %s", user_id, self._allowed_users_file, exc)

        increment_metric("auth.approved")
        logger.info("Пользователь %d успешно авторизован", user_id)
        return True

    def _load_allowed_users(self) -> None:
        path = self._allowed_users_file
        if path is None:
            return
        try:
            lines = path.read_text(encoding="utf-8").splitlines()
        except FileNotFoundError:
            return
        except OSError as exc:
            logger.warning("Не удалось прочитать файл разрешённых пользователей %s: %s", path, exc)
            return

        loaded = 0
        for raw in lines:
            line = raw.strip()
            if not line or line.startswith("#"):
                continue
            user_id = parse_user_id(line)
            if user_id is None:
                logger.warning("Некорректный ID пользователя %r в файле %s, пропускаем", line, path)
                continue
            self._allowed_users.add(user_id)
            loaded += 1

        logger.info("Загружено %d разрешённых пользователей из %s", loaded, path)

    def _append_allowed_user(self, user_id: int) -> None:
        path = self._allowed_users_file
        if path is None:
            return
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("a", encoding="utf-8") as fh:
            fh.write(f"{user_id}\n")
            fh.flush()
            os.fsync(fh.fileno())
