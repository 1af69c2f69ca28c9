# app/services/paths.py
"""
Containment of caller-supplied relative paths inside a fixed root.

Both entry points are pure string operations (no filesystem access) and
reach the same verdict for every input:
  - leading slashes are absorbed, the path is always taken relative to root
  - a path whose lexical normalization climbs above root is rejected
  - NUL bytes are rejected
They guarantee syntactic containment only; a symlink created between the
check and the use is the caller's problem (see FileSystemService).
"""
from __future__ import annotations

import os
import posixpath
from pathlib import Path

from app.errors import InvalidPath


def _root_str(root: Path | str) -> str:
    return os.path.abspath(os.fspath(root))


def _is_contained(root: str, candidate: str) -> bool:
    if candidate == root:
        return True
    prefix = root if root.endswith(os.sep) else root + os.sep
    return candidate.startswith(prefix)


def _check_untrusted(rel_path: str) -> str:
    if rel_path is None:
        return ""
    if "\x00" in rel_path:
        raise InvalidPath("invalid path", rel_path)
    return rel_path


def _climbs(normalized: str) -> bool:
    return normalized == ".." or normalized.startswith("../")


def resolve_path(root: Path | str, rel_path: str) -> Path:
    """
    Lexical variant: normalize under a synthetic leading separator, then join.
    Accept iff the absolute result is root or lies under root + separator.
    """
    rel_path = _check_untrusted(rel_path)
    base = _root_str(root)

    if _climbs(posixpath.normpath(rel_path.lstrip("/") or ".")):
        raise InvalidPath("invalid path", rel_path)

    clean = posixpath.normpath("/" + rel_path).lstrip("/")
    target = os.path.abspath(os.path.join(base, clean))
    if not _is_contained(base, target):
        raise InvalidPath("invalid path", rel_path)
    return Path(target)


def safe_join(root: Path | str, rel_path: str) -> Path:
    """
    Explicit-prefix variant: reject absolute paths and a leading `..` before
    joining, then re-derive the offset from root and re-check it.
    """
    rel_path = _check_untrusted(rel_path)
    base = _root_str(root)

    rel = rel_path.lstrip("/")
    first = rel.split("/", 1)[0]
    if os.path.isabs(rel) or first == "..":
        raise InvalidPath("invalid path", rel_path)

    target = os.path.abspath(os.path.join(base, rel))
    offset = os.path.relpath(target, base)
    if offset == os.pardir or offset.startswith(os.pardir + os.sep) or os.path.isabs(offset):
        raise InvalidPath("invalid path", rel_path)
    if not _is_contained(base, target):
        raise InvalidPath("invalid path", rel_path)
    return Path(target)


def to_relative(root: Path | str, abs_path: Path | str) -> str:
    """Forward-slash offset of `abs_path` from root; "" for root itself."""
    rel = os.path.relpath(os.fspath(abs_path), _root_str(root))
    if rel == ".":
        return ""
    return Path(rel).as_posix()
