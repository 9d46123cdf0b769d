"""
I/O utilities for realtime-reporter.

Atomic JSON writing used by the file-backed scenario-status store. Writes
go to a temporary file in the target directory, which is then renamed into
place, so readers (e.g. a UI polling the file) never observe a partially
written document.

Functions
---------
atomic_write_json(path, data, *, indent=2, encoding='utf-8')
    Write a JSON object atomically to disk.
read_json(path, default)
    Read a JSON document, returning ``default`` when the file is missing.
"""

from __future__ import annotations
import json
import os
import tempfile
from pathlib import Path
from typing import Any, Mapping


def atomic_write_json(
    path: Path,
    data: Mapping[str, Any],
    *,
    indent: int = 2,
    encoding: str = "utf-8",
) -> None:
    """
    Write a JSON object atomically to disk.

    A temporary file is created in the same directory as the target file,
    written in full, flushed + fsynced, and then renamed to the final path
    via os.replace.
    """
    path.parent.mkdir(parents=True, exist_ok=True)

    tmp_path: Path | None = None
    try:
        with tempfile.NamedTemporaryFile(
            "w",
            delete=False,
            dir=path.parent,
            encoding=encoding,
            suffix=".tmp",
        ) as tmp:
            tmp_path = Path(tmp.name)
            json.dump(data, tmp, indent=indent, ensure_ascii=False, default=str)
            tmp.flush()
            os.fsync(tmp.fileno())

        os.replace(tmp_path, path)
    finally:
        # Clean up the temp file if something failed before os.replace
        if tmp_path is not None and tmp_path.exists():
            tmp_path.unlink()


def read_json(path: Path, default: Any = None, *, encoding: str = "utf-8") -> Any:
    """
    Read a JSON document from ``path``.

    Parameters
    ----------
    path : pathlib.Path
        File to read.
    default : Any
        Returned when the file does not exist.
    """
    if not path.exists():
        return default
    return json.loads(path.read_text(encoding=encoding))
