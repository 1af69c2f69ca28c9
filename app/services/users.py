# app/services/users.py
from __future__ import annotations

import json
import logging
import os
import secrets
from dataclasses import asdict, dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, List, Optional, Protocol

from app.errors import StoreIOError
from app.services.locks import ReadWriteLock
from app.services.atomic import atomic_write_text
from app.services.validator import USERS_FILE_SCHEMA, JsonValidatorService

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class User:
    username: str
    password: str


class CredentialChecker(Protocol):
    def matches(self, stored: str, supplied: str) -> bool: ...


class PlaintextCredentials:
    """
    Passwords are stored and compared as plaintext, which keeps user.json
    compatible with existing deployments. This is NOT secure; swap in a
    hashing checker together with a migration of the file.
    """

    def matches(self, stored: str, supplied: str) -> bool:
        return secrets.compare_digest(stored.encode("utf-8"), supplied.encode("utf-8"))


class Freshness(str, Enum):
    """
    FRESH -> STALE_DETECTED -> RELOADING -> FRESH.
    An authentication attempt that observes STALE_DETECTED always fails.
    """
    FRESH = "fresh"
    STALE_DETECTED = "stale_detected"
    RELOADING = "reloading"


class UserStore:
    """
    File-backed username -> User mapping (`user.json`).

    The file is the source of truth. Its mtime is remembered after every load
    and every save made here; a newer mtime seen during `authenticate` means
    someone edited it out of band, which reloads the mapping, fires
    `on_external_change` (session wipe) and fails that attempt.
    """

    def __init__(
        self,
        file_path: Path,
        *,
        on_external_change: Optional[Callable[[], None]] = None,
        credentials: Optional[CredentialChecker] = None,
        validator: Optional[JsonValidatorService] = None,
    ):
        self.file_path = Path(file_path)
        self._on_external_change = on_external_change
        self._credentials = credentials or PlaintextCredentials()
        self._validator = validator or JsonValidatorService()
        self._users: Dict[str, User] = {}
        self._mtime_ns: Optional[int] = None
        self._state = Freshness.FRESH
        self._lock = ReadWriteLock()

    @property
    def state(self) -> Freshness:
        """
        Diagnostic only, read without the lock. Every transition happens
        inside one exclusive section, so outside callers normally see FRESH;
        code running during a reload (e.g. the validator) sees RELOADING.
        """
        return self._state

    # ---------- Persistence ----------

    def load(self) -> None:
        with self._lock.write():
            self._users, self._mtime_ns = self._read_file()

    def save(self) -> None:
        with self._lock.write():
            self._save_locked()

    def ensure_default_admin(self, username: str, password: str, *, fatal: bool = False) -> bool:
        """
        First-run bootstrap: if the store is empty, create one well-known
        account and persist it. Returns True when the account was created.
        A failed write is logged and tolerated unless `fatal` is set.
        """
        with self._lock.write():
            if self._users:
                return False
            self._users[username] = User(username, password)
            logger.warning(
                "user store empty, created default account %r; change its password", username
            )
            try:
                self._save_locked()
            except StoreIOError:
                if fatal:
                    raise
                logger.exception("could not persist default account, continuing in memory")
            return True

    # ---------- Mutations ----------

    def add_user(self, username: str, password: str) -> None:
        with self._lock.write():
            self._users[username] = User(username, password)
            self._save_locked()

    def remove_user(self, username: str) -> None:
        with self._lock.write():
            self._users.pop(username, None)
            self._save_locked()

    # ---------- Queries ----------

    def get_user(self, username: str) -> Optional[User]:
        with self._lock.read():
            return self._users.get(username)

    def list_users(self) -> List[User]:
        with self._lock.read():
            return sorted(self._users.values(), key=lambda u: u.username)

    def authenticate(self, username: str, password: str) -> bool:
        if self.check_external_modification():
            logger.warning("user file changed on disk, authentication for %r refused", username)
            return False

        with self._lock.read():
            user = self._users.get(username)
        if user is None:
            return False
        return self._credentials.matches(user.password, password)

    def check_external_modification(self) -> bool:
        """
        Returns True when an out-of-band edit was detected (and handled) by
        this call. The mtime check and the reload run under the exclusive
        lock, so two detections never interleave.
        """
        with self._lock.write():
            current = self._stat_mtime_ns()
            if not self._is_newer(current):
                return False

            self._state = Freshness.STALE_DETECTED
            logger.warning("user file modified externally: %s", self.file_path)
            self._mtime_ns = current

            self._state = Freshness.RELOADING
            try:
                users, _ = self._read_file()
            except StoreIOError:
                logger.exception("user file reload failed, keeping previous users")
            else:
                self._users = users
                logger.info("user file reloaded, %d users", len(users))
            self._state = Freshness.FRESH

        # outside our lock: the callback takes the session store's lock
        if self._on_external_change is not None:
            self._on_external_change()
        return True

    # ---------- Internals ----------

    def _is_newer(self, current: Optional[int]) -> bool:
        if current is None:
            # file vanished since we last saw it
            return self._mtime_ns is not None
        return self._mtime_ns is None or current > self._mtime_ns

    def _stat_mtime_ns(self) -> Optional[int]:
        try:
            return self.file_path.stat().st_mtime_ns
        except FileNotFoundError:
            return None
        except OSError as e:
            raise StoreIOError(f"cannot stat user file: {e}") from e

    def _read_file(self) -> tuple[Dict[str, User], Optional[int]]:
        try:
            with self.file_path.open("r", encoding="utf-8") as f:
                mtime_ns = os.fstat(f.fileno()).st_mtime_ns
                raw = f.read()
        except FileNotFoundError:
            return {}, None
        except OSError as e:
            raise StoreIOError(f"cannot read user file: {e}") from e

        try:
            records = json.loads(raw)
        except json.JSONDecodeError as e:
            raise StoreIOError(f"user file is not valid JSON: {e}") from e
        errors = self._validator.errors(records, USERS_FILE_SCHEMA)
        if errors:
            raise StoreIOError(f"user file is malformed: {errors[0]['path']} {errors[0]['message']}")

        # last record wins for a repeated username
        users = {r["username"]: User(r["username"], r["password"]) for r in records}
        return users, mtime_ns

    def _save_locked(self) -> None:
        records = [asdict(u) for u in self._users.values()]
        text = json.dumps(records, indent=2, ensure_ascii=False) + "\n"
        try:
            atomic_write_text(self.file_path, text)
            self._mtime_ns = self.file_path.stat().st_mtime_ns
        except OSError as e:
            logger.error("user file save failed: %s", e)
            raise StoreIOError(f"cannot write user file: {e}") from e
