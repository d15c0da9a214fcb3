"""Utility functions for snapvault.

This module provides shared helpers used across the storage engine, such
as content hashing and file-system name sanitizing.
"""

import hashlib
import os
from datetime import datetime
from pathlib import Path
from typing import Union

DATA_FILE_EXTENSION = ".dat"
MAX_EXTENSION_LENGTH = 16

_INVALID_FILE_NAME_CHARS = frozenset('<>:"/\\|?*') | frozenset(
    chr(c) for c in range(32)
)


def compute_hash(data: bytes) -> str:
    """Computes the content hash used to address blobs.

    SHA-1 in upper-case hex is what external file caches use to identify
    files, so hashes reported by foreign captures match ours.

    Args:
        data: The raw file bytes.

    Returns:
        A 40 character upper-case hex string.
    """
    return hashlib.sha1(data).hexdigest().upper()


def compute_file_hash(path: Union[str, Path]) -> str:
    """Computes the content hash of a file on disk, reading it in chunks."""
    digest = hashlib.sha1()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(1024 * 1024), b""):
            digest.update(chunk)
    return digest.hexdigest().upper()


def normalize_extension(extension: str | None) -> str:
    """Normalizes a file extension for use in a blob file name.

    Args:
        extension: Raw extension, with or without the leading dot.

    Returns:
        The lower-cased, dot-prefixed extension, or the data fallback
        extension when the input is blank, too long, or contains
        characters that are not allowed in file names.
    """
    if extension is None or not extension.strip():
        return DATA_FILE_EXTENSION

    ext = extension.strip()
    if not ext.startswith("."):
        ext = "." + ext

    if len(ext) > MAX_EXTENSION_LENGTH:
        return DATA_FILE_EXTENSION

    if any(c in _INVALID_FILE_NAME_CHARS for c in ext):
        return DATA_FILE_EXTENSION

    return ext.lower()


def extension_from_game_path(game_path: str) -> str:
    # Game paths always use forward slashes, regardless of platform
    name = game_path.replace("\\", "/").rsplit("/", 1)[-1]
    return normalize_extension(os.path.splitext(name)[1])


def sanitize_file_system_name(value: str | None, fallback: str) -> str:
    """Replaces characters that are not valid in a directory name.

    Args:
        value: The proposed name.
        fallback: Name to use when nothing usable remains.

    Returns:
        A name safe to use as a single path component.
    """
    sanitized = "".join(
        "_" if c in _INVALID_FILE_NAME_CHARS else c for c in (value or "")
    )
    sanitized = sanitized.rstrip(" .")

    if not sanitized.strip():
        sanitized = fallback if fallback and fallback.strip() else "entry"

    return sanitized


def format_utc_label(moment: datetime) -> str:
    return moment.strftime("%Y-%m-%d %H:%M:%S") + " UTC"
