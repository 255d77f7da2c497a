"""
Pytest configuration and fixtures for Zip Watermarker tests.
"""

import io
import struct
import threading
import time
import zipfile
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from zip_watermarker.configuration import load_settings
from zip_watermarker.exceptions import CompositingError
from zip_watermarker.main import create_app

# PNG signature plus a marker; the fake compositor never decodes it
WATERMARK_PNG = b"\x89PNG\r\n\x1a\nwatermark-one"


class RecordingCompositor:
    """
    Stands in for ffmpeg.

    The "watermarked" output is the media bytes followed by a separator and
    the watermark bytes, so tests can tell which watermark was applied.
    """

    def __init__(self, fail_on=(), delay=None):
        self.calls = []
        self.fail_on = set(fail_on)
        self.delay = delay or {}
        self.active = 0
        self.max_active = 0
        self._lock = threading.Lock()

    def overlay(self, media: Path, watermark: Path, output: Path) -> None:
        with self._lock:
            self.calls.append({"media": media, "watermark": watermark.read_bytes(), "output": output})
            self.active += 1
            self.max_active = max(self.max_active, self.active)
        try:
            if media.name in self.delay:
                time.sleep(self.delay[media.name])
            if media.name in self.fail_on:
                raise CompositingError(f"refusing {media.name}")
            output.write_bytes(media.read_bytes() + b"|" + watermark.read_bytes())
        finally:
            with self._lock:
                self.active -= 1

    @property
    def media_names(self):
        return sorted(call["media"].name for call in self.calls)


def build_zip(entries, compression=zipfile.ZIP_DEFLATED) -> bytes:
    """Zip (name, data) pairs in order; data None makes a directory entry."""
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", compression=compression) as archive:
        for name, data in entries:
            if data is None:
                archive.writestr(zipfile.ZipInfo(name), b"")
            else:
                archive.writestr(name, data)
    return buffer.getvalue()


def corrupt_entry(payload: bytes, name: str) -> bytes:
    """Replace the first compressed byte of name with an invalid deflate block header."""
    with zipfile.ZipFile(io.BytesIO(payload)) as archive:
        offset = archive.getinfo(name).header_offset
    data = bytearray(payload)
    name_len, extra_len = struct.unpack("<HH", data[offset + 26 : offset + 30])
    data[offset + 30 + name_len + extra_len] = 0xFF
    return bytes(data)


def read_zip(payload: bytes):
    with zipfile.ZipFile(io.BytesIO(payload)) as archive:
        return [(info, archive.read(info)) for info in archive.infolist()]


@pytest.fixture
def temp_root(tmp_path):
    root = tmp_path / "work"
    root.mkdir()
    return root


@pytest.fixture
def settings(temp_root):
    return load_settings({"temp_root": str(temp_root), "compositor_workers": 2, "debug": False})


@pytest.fixture
def compositor():
    return RecordingCompositor()


@pytest.fixture
def app(settings, compositor):
    application = create_app(settings, compositor=compositor)
    yield application
    application.state.transcoder.shutdown()


@pytest.fixture
def client(app):
    """Create a test client for the FastAPI app."""
    return TestClient(app)


@pytest.fixture
def watermark_png():
    return WATERMARK_PNG


@pytest.fixture
def sample_zip():
    return build_zip([("a.png", b"original-a"), ("notes.txt", b"plain text notes\n")])
