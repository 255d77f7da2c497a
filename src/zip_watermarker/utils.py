"""
Utility functions for file system operations and name handling.

This module provides helper functions for:
- Validating user-provided filenames and archive entry names
- Allocating and releasing per-request working directories
- Ensuring directory creation
- Deriving the download name of a rebuilt archive
"""

from __future__ import annotations

import logging
import re
import shutil
import tempfile
from contextlib import contextmanager
from pathlib import Path, PurePosixPath
from typing import Iterable, Iterator
from urllib.parse import quote

from .exceptions import UnsafePathError

logger = logging.getLogger(__name__)

UPLOAD_DIRNAME = "uploads"
INPUT_DIRNAME = "in"
OUTPUT_DIRNAME = "out"

_DRIVE = re.compile(r"^[A-Za-z]:")


def ensure_directory(path: Path) -> Path:
    """
    Create a directory if it doesn't exist, including parent directories.

    Args:
        path: The directory path to create

    Returns:
        The same path object for chaining

    Raises:
        OSError: If directory creation fails due to permissions or other I/O errors
    """
    path.mkdir(parents=True, exist_ok=True)
    return path


def safe_filename(filename: str) -> str:
    """
    Reduce an uploaded filename to its final path component.

    Browsers normally send a bare name, but some clients send the full local
    path (including Windows separators). Only the last component is kept.

    Args:
        filename: The filename as submitted in the multipart body

    Returns:
        The bare filename

    Raises:
        UnsafePathError: If nothing usable remains

    Example:
        >>> safe_filename("/home/me/photos.zip")
        "photos.zip"
    """
    name = filename.replace("\\", "/").rsplit("/", 1)[-1]
    if not name or name in {".", ".."} or "\x00" in name:
        raise UnsafePathError(f"Unusable upload filename: {filename!r}")
    return name


def resolve_inside(root: Path, name: str) -> Path:
    """
    Map an archive entry name to a path under root.

    Entry names use forward slashes regardless of platform. Absolute names,
    drive-qualified names and names that climb out of root with ".." are
    rejected rather than silently rewritten.

    Args:
        root: Directory the entry must stay within
        name: Entry name as stored in the archive

    Returns:
        The absolute path for the entry under root

    Raises:
        UnsafePathError: If the name would resolve outside root
    """
    if "\x00" in name:
        raise UnsafePathError(f"Entry name contains NUL: {name!r}")
    posix = PurePosixPath(name.replace("\\", "/"))
    if posix.is_absolute() or (posix.parts and _DRIVE.match(posix.parts[0])):
        raise UnsafePathError(f"Absolute entry name: {name!r}")
    if ".." in posix.parts:
        raise UnsafePathError(f"Entry name escapes working directory: {name!r}")

    base = root.resolve()
    target = base.joinpath(*posix.parts).resolve()
    if target != base and base not in target.parents:
        raise UnsafePathError(f"Entry name escapes working directory: {name!r}")
    return target


def is_media_file(name: str, extensions: Iterable[str]) -> bool:
    """Case-sensitive suffix match of an entry name against media extensions."""
    return any(name.endswith(ext) for ext in extensions)


def watermarked_filename(filename: str, suffix: str = ".watermark") -> str:
    """
    Derive the attachment name of a rebuilt archive.

    Example:
        >>> watermarked_filename("photos.zip")
        "photos.watermark.zip"
        >>> watermarked_filename("photos")
        "photos.watermark.zip"
    """
    path = PurePosixPath(filename)
    if path.suffix.lower() == ".zip":
        return f"{path.stem}{suffix}{path.suffix}"
    return f"{filename}{suffix}.zip"


def content_disposition(filename: str) -> str:
    """
    Attachment header value for filename.

    The quoted filename parameter is always present. Non-ASCII names are
    replaced with "_" there and carried exactly in an RFC 5987 filename*.

    Example:
        >>> content_disposition("my photos.watermark.zip")
        'attachment; filename="my photos.watermark.zip"'
    """
    fallback = "".join(char if " " <= char < "\x7f" else "_" for char in filename)
    fallback = fallback.replace("\\", "\\\\").replace('"', '\\"')
    value = f'attachment; filename="{fallback}"'
    if not filename.isascii():
        value += f"; filename*=utf-8''{quote(filename)}"
    return value


@contextmanager
def working_directory(prefix: str, root: str | None = None, keep: bool = False) -> Iterator[Path]:
    """
    Allocate a private scratch directory for one request.

    The directory and everything in it is removed when the block exits,
    whether normally or through an exception, unless keep is set.

    Args:
        prefix: Name prefix for the directory
        root: Parent directory; the system temp dir when empty
        keep: Leave the directory in place for inspection

    Yields:
        Path to the new directory
    """
    path = Path(tempfile.mkdtemp(prefix=prefix, dir=root or None))
    logger.debug(f"Created temp dir {path}")
    try:
        yield path
    finally:
        if keep:
            logger.debug(f"Keeping temp dir {path}")
        else:
            shutil.rmtree(path, ignore_errors=True)
