from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional, Tuple

from starlette.datastructures import FormData, UploadFile

from .exceptions import UploadTooLargeError
from .utils import ensure_directory, safe_filename

logger = logging.getLogger(__name__)

CHUNK_SIZE = 1024 * 1024


async def dump_form_file(
    form: FormData,
    directory: Path,
    field: str,
    max_bytes: Optional[int] = None,
) -> Optional[Tuple[str, Path]]:
    """
    Save the first file submitted under field into directory.

    A missing field, a plain text value or a file without a filename is not
    an error: None is returned and nothing is read.

    Args:
        form: Parsed multipart form of the request
        directory: Where to write the file
        field: Form field name
        max_bytes: Reject uploads larger than this many bytes

    Returns:
        (bare filename, saved path), or None if the field is absent

    Raises:
        UnsafePathError: If the filename cannot be used on disk
        UploadTooLargeError: If the upload exceeds max_bytes
        OSError: If the file cannot be written
    """
    upload = next((value for value in form.getlist(field) if isinstance(value, UploadFile)), None)
    if upload is None or not upload.filename:
        logger.debug(f"Form field {field!r} missing")
        return None

    name = safe_filename(upload.filename)
    destination = ensure_directory(directory) / name

    written = 0
    try:
        with destination.open("wb") as buffer:
            while chunk := await upload.read(CHUNK_SIZE):
                written += len(chunk)
                if max_bytes is not None and written > max_bytes:
                    raise UploadTooLargeError(f"Form file {field!r} exceeds {max_bytes} bytes")
                buffer.write(chunk)
    except UploadTooLargeError:
        destination.unlink(missing_ok=True)
        raise

    logger.debug(f"Saved form file {name} to {destination}")
    return name, destination
