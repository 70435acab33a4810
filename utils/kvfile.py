"""
Key/value record files — the ``key=value`` per-line format used for feature
descriptors, module info, module config and per-user acknowledgement records.
"""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path
from typing import Mapping

log = logging.getLogger(__name__)


def parse_kv(text: str) -> dict[str, str]:
    """Parse ``key=value`` lines. Blank lines and ``#`` comments are ignored,
    as are lines without an ``=``."""
    data: dict[str, str] = {}
    for line in text.splitlines():
        line = line.rstrip("\r")
        if not line.strip() or line.lstrip().startswith("#"):
            continue
        key, sep, value = line.partition("=")
        if not sep:
            continue
        data[key.strip()] = value
    return data


def read_kv_file(path: Path | str) -> dict[str, str]:
    """Read a record file. Raises FileNotFoundError / OSError / UnicodeDecodeError."""
    return parse_kv(Path(path).read_text(encoding="utf-8"))


def read_kv_file_if_exists(path: Path | str) -> dict[str, str]:
    """Read a record file, returning an empty mapping when it does not exist."""
    try:
        return read_kv_file(path)
    except FileNotFoundError:
        return {}


def write_kv_file(path: Path | str, data: Mapping[str, object]) -> None:
    """Overwrite a record file with ``data``.

    The new content is written to a temp file in the same directory and moved
    into place, so readers never see a half-written record.
    """
    path = Path(path)
    lines = []
    for key, value in data.items():
        if "\n" in key or "=" in key:
            raise ValueError(f"Invalid record key: {key!r}")
        lines.append(f"{key}={str(value).replace(chr(10), ' ')}\n")

    fd, tmp = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.writelines(lines)
        os.replace(tmp, path)
    except BaseException:
        try:
            os.unlink(tmp)
        except OSError:
            pass
        raise
    log.debug("Wrote %d keys to %s", len(lines), path)
