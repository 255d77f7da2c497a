"""
Error taxonomy for the watermarking pipeline.

Client input problems derive from BadUploadError and map to HTTP 400.
Everything else is an environment or internal failure and maps to HTTP 500.
"""

from __future__ import annotations


class WatermarkerError(Exception):
    """Base class for all pipeline errors."""


class BadUploadError(WatermarkerError):
    """The request carried input that cannot be processed."""


class UnsafePathError(BadUploadError):
    """A filename or archive entry name would escape its target directory."""


class UploadTooLargeError(BadUploadError):
    """An uploaded file exceeded the configured size limit."""


class CompositingError(WatermarkerError):
    """The external compositor could not produce a watermarked file."""


class TranscodeError(WatermarkerError):
    """Rebuilding the archive failed; no partial output is produced."""
