# app/services/permissions.py
from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterator, Set

from app.errors import StoreIOError
from app.services.atomic import atomic_write_text
from app.services.locks import ReadWriteLock

logger = logging.getLogger(__name__)


def candidate_subpaths(path: str, prefix_only: bool = False) -> Iterator[str]:
    """
    Yield every segment run of `path` that may grant access to it.

    Default: every contiguous run `segments[i:j]` for 0 <= i < j <= n,
    joined with "/". This is wider than the ancestor chain: "x/a/b" is
    granted by an entry "a". With `prefix_only` only `segments[0:j]` are
    yielded, i.e. the path itself and its true ancestors.
    """
    parts = path.split("/")
    n = len(parts)
    starts = range(1) if prefix_only else range(n)
    for i in starts:
        for j in range(i + 1, n + 1):
            yield "/".join(parts[i:j])


class PermissionStore:
    """
    File-backed set of permitted path prefixes (`.permissions`).

    One entry per line; blank lines and `#` comments are skipped on load and
    never written back. Every mutation rewrites the whole file while holding
    the exclusive lock, so repeating it is harmless.
    """

    def __init__(self, file_path: Path, *, prefix_only: bool = False):
        self.file_path = Path(file_path)
        self.prefix_only = prefix_only
        self._entries: Set[str] = set()
        self._lock = ReadWriteLock()

    # ---------- Public API ----------

    def load(self) -> None:
        with self._lock.write():
            try:
                with self.file_path.open("r", encoding="utf-8") as f:
                    lines = f.readlines()
            except FileNotFoundError:
                logger.info("permission file not found: %s", self.file_path)
                self._entries = set()
                return
            except OSError as e:
                raise StoreIOError(f"cannot read permissions: {e}") from e

            entries: Set[str] = set()
            for raw in lines:
                line = raw.strip()
                if not line or line.startswith("#"):
                    continue
                entries.add(line)
            self._entries = entries
            logger.info("permissions loaded: %d", len(entries))

    def add(self, path: str) -> None:
        self._check_entry(path)
        with self._lock.write():
            self._entries.add(path)
            logger.info("permission added: %r", path)
            self._save_locked()

    def remove(self, path: str) -> None:
        with self._lock.write():
            self._entries.discard(path)
            logger.info("permission removed: %r", path)
            self._save_locked()

    def clear_all(self) -> None:
        with self._lock.write():
            self._entries = set()
            logger.info("permissions cleared")
            self._save_locked()

    def has(self, path: str) -> bool:
        with self._lock.read():
            if path in self._entries:
                return True
            for sub in candidate_subpaths(path, self.prefix_only):
                if sub in self._entries:
                    logger.debug("permission match: path=%r entry=%r", path, sub)
                    return True
        return False

    def list(self) -> Set[str]:
        with self._lock.read():
            return set(self._entries)

    # ---------- Internals ----------

    @staticmethod
    def _check_entry(path: str) -> None:
        # one entry per line on disk
        if "\n" in path or "\r" in path:
            raise ValueError("permission entry must be a single line")

    def _save_locked(self) -> None:
        text = "".join(f"{p}\n" for p in sorted(self._entries))
        try:
            atomic_write_text(self.file_path, text)
        except OSError as e:
            # in-memory state keeps the mutation; the next save rewrites everything
            logger.error("permission save failed: %s", e)
            raise StoreIOError(f"cannot write permissions: {e}") from e
