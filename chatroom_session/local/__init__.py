"""
Local filesystem helpers.

Async, atomic JSON file operations used by the file-backed slot storage.
"""

from .file_ops import ensure_directory, read_json, write_json_atomic

__all__ = [
    "ensure_directory",
    "read_json",
    "write_json_atomic",
]
