"""
JSON file operations for local transcript storage.

Every helper is async (aiofiles) and reports filesystem failures as
:class:`StorageIOError`. Writes go through a sibling temp file that is
renamed over the target, so a crash mid-write leaves the previous
transcript intact.
"""

import json
import os
import tempfile
from datetime import datetime
from pathlib import Path
from typing import Any

import aiofiles
import aiofiles.os

from ..exceptions import StorageIOError

TEMP_PREFIX = ".tmp_"


async def ensure_directory(path: Path) -> None:
    """Create a directory and its parents if missing."""
    try:
        await aiofiles.os.makedirs(path, exist_ok=True)
    except OSError as e:
        raise StorageIOError("create_directory", str(path), e) from e


async def read_json(path: Path) -> Any | None:
    """Load a JSON document.

    Args:
        path: File to read

    Returns:
        The decoded value, or None when the file is missing or blank
    """
    try:
        async with aiofiles.open(path, encoding="utf-8") as f:
            content = await f.read()
    except FileNotFoundError:
        return None
    except OSError as e:
        raise StorageIOError("read_json", str(path), e) from e

    if not content.strip():
        return None
    try:
        return json.loads(content)
    except json.JSONDecodeError as e:
        raise StorageIOError("parse_json", str(path), e) from e


async def write_json_atomic(path: Path, data: Any, indent: int | None = 2) -> None:
    """Replace a file's content with a JSON document.

    Args:
        path: Target file; parent directories are created
        data: Value to serialize
        indent: JSON indentation, None for compact output
    """
    await ensure_directory(path.parent)
    text = json.dumps(data, indent=indent, default=_json_serializer)

    fd, temp_path = tempfile.mkstemp(dir=path.parent, prefix=TEMP_PREFIX, suffix=path.suffix)
    os.close(fd)
    try:
        async with aiofiles.open(temp_path, "w", encoding="utf-8") as f:
            await f.write(text)
            await f.flush()
            os.fsync(f.fileno())
        await aiofiles.os.replace(temp_path, path)
    except OSError as e:
        try:
            await aiofiles.os.remove(temp_path)
        except OSError:
            pass
        raise StorageIOError("write_json", str(path), e) from e


def _json_serializer(obj: Any) -> Any:
    """Fallback for datetimes, which json cannot encode."""
    if isinstance(obj, datetime):
        return obj.isoformat()
    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")
