# app/services/filesystem.py
from __future__ import annotations

import shutil
from pathlib import Path
from typing import Any, BinaryIO, Dict, Iterable, Optional

from app.errors import InvalidPath
from app.services.paths import safe_join, to_relative

FILE_TYPES = {
    ".md": "markdown",
    ".markdown": "markdown",
    ".png": "image",
    ".jpg": "image",
    ".jpeg": "image",
    ".gif": "image",
    ".webp": "image",
    ".svg": "image",
    ".pdf": "pdf",
    ".txt": "text",
}

CHUNK = 64 * 1024


def detect_file_type(path: Path) -> str:
    return FILE_TYPES.get(path.suffix.lower(), "text")


class FileSystemService:
    """
    File operations under the served root. Paths handed in are already
    contained (see AccessController); each operation re-checks the real,
    symlink-followed location before touching disk.
    """

    def __init__(
        self,
        root: Path,
        writable_extensions: Iterable[str] = (".md",),
        max_upload_bytes: int = 20 << 20,
    ):
        root.mkdir(parents=True, exist_ok=True)
        self.root = root.resolve()
        self.writable_extensions = {e.lower() for e in writable_extensions}
        self.max_upload_bytes = max_upload_bytes

    def _real(self, p: Path) -> Path:
        real = p.resolve()
        # Prevent symlink escape
        if real != self.root and self.root not in real.parents:
            raise InvalidPath("invalid path", to_relative(self.root, p))
        return real

    def _existing_dir(self, p: Path, message: str) -> Path:
        real = self._real(p)
        if not real.is_dir():
            raise NotADirectoryError(message)
        return real

    # ---------- Reading ----------

    def tree(self, p: Path) -> Dict[str, Any]:
        real = self._real(p)
        if not real.exists():
            raise FileNotFoundError("path not found")
        return self._node(p)

    def _node(self, p: Path) -> Dict[str, Any]:
        node: Dict[str, Any] = {
            "name": p.name,
            "path": to_relative(self.root, p),
            "type": "file",
        }
        if p.is_dir() and not p.is_symlink():
            entries = sorted(p.iterdir(), key=lambda e: e.name.lower())
            node["type"] = "dir"
            node["children"] = [self._node(e) for e in entries]
        return node

    def read_file(self, p: Path) -> Dict[str, str]:
        real = self.raw_path(p)
        return {
            "type": detect_file_type(real),
            "content": real.read_text(encoding="utf-8", errors="replace"),
            "name": p.name,
        }

    def raw_path(self, p: Path) -> Path:
        real = self._real(p)
        if not real.exists():
            raise FileNotFoundError("file not found")
        if real.is_dir():
            raise IsADirectoryError("path is a directory")
        return real

    # ---------- Writing ----------

    def write_text(self, p: Path, content: bytes) -> str:
        real = self._real(p)
        # both the requested name and a symlink's target must be allow-listed
        for candidate in (p, real):
            if candidate.suffix.lower() not in self.writable_extensions:
                allowed = ", ".join(sorted(self.writable_extensions))
                raise ValueError(f"only {allowed} files can be updated")
        if real.is_dir():
            raise IsADirectoryError("path is a directory")
        real.write_bytes(content)
        return "ok"

    def delete(self, p: Path) -> str:
        if p == self.root:
            raise ValueError("cannot delete root directory")
        real = self._real(p.parent) / p.name
        if real.is_dir() and not real.is_symlink():
            shutil.rmtree(real)
        elif real.exists() or real.is_symlink():
            real.unlink()
        # missing target is not an error, same as rm -rf
        return "deleted"

    def create(self, parent: Path, name: str, kind: str, content: str = "") -> str:
        name = name.strip()
        if not name:
            raise ValueError("name is required")
        if name != Path(name).name or name in (".", ".."):
            raise ValueError("invalid name")
        self._existing_dir(parent, "invalid parent directory")

        target = self._real_target(parent, name)
        kind = kind.lower()
        if kind == "dir":
            target.mkdir(parents=True, exist_ok=True)
        elif kind == "file":
            target.write_text(content, encoding="utf-8")
        else:
            raise ValueError("invalid type")
        return to_relative(self.root, target)

    def upload(self, directory: Path, filename: Optional[str], stream: BinaryIO) -> str:
        self._existing_dir(directory, "invalid directory")
        name = Path((filename or "").replace("\\", "/")).name
        if not name or name in (".", ".."):
            raise ValueError("invalid filename")

        target = self._real_target(directory, name)
        written = 0
        try:
            with target.open("wb") as out:
                while True:
                    chunk = stream.read(CHUNK)
                    if not chunk:
                        break
                    written += len(chunk)
                    if written > self.max_upload_bytes:
                        raise ValueError("file too large")
                    out.write(chunk)
        except ValueError:
            target.unlink(missing_ok=True)
            raise
        return to_relative(self.root, target)

    def _real_target(self, directory: Path, name: str) -> Path:
        target = safe_join(self.root, f"{to_relative(self.root, directory)}/{name}")
        self._real(target.parent)
        if target.is_symlink():
            self._real(target)
        return target
