# app/services/atomic.py
import os
import tempfile
from pathlib import Path


def atomic_write_text(path: Path, text: str) -> None:
    """
    Write `text` to a temp sibling and move it over `path`, so a reader of the
    file sees either the old or the new contents, never a truncated one.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="\n") as f:
            f.write(text)
        os.replace(tmp, path)
    except BaseException:
        try:
            os.unlink(tmp)
        except FileNotFoundError:
            pass
        raise
