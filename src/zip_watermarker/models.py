from __future__ import annotations

from dataclasses import dataclass
from typing import List

from pydantic import BaseModel, Field, field_validator


class WatermarkerSettings(BaseModel):
    host: str = "0.0.0.0"
    port: int = 8848
    debug: bool = False
    ffmpeg_path: str = "/usr/local/bin/ffmpeg"
    overlay_margin: int = Field(default=10, ge=0)
    media_extensions: List[str] = Field(default_factory=lambda: [".bmp", ".jpg", ".png", ".mp4"])
    output_suffix: str = ".watermark"
    temp_prefix: str = "watermark_"
    temp_root: str = ""
    max_part_size: int = Field(default=1024, gt=0)
    max_upload_bytes: int = Field(default=512 * 1024 * 1024, gt=0)
    compositor_workers: int = Field(default=4, ge=1)

    @field_validator("media_extensions")
    @classmethod
    def _require_dotted(cls, value: List[str]) -> List[str]:
        for ext in value:
            if not ext.startswith("."):
                raise ValueError(f"media extension must start with a dot: {ext!r}")
        return value


@dataclass
class ArchiveEntry:
    """One record of a zip archive: a directory marker or a file payload."""

    name: str
    is_dir: bool
    data: bytes = b""
