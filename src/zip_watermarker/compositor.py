"""
Watermark compositing.

The pipeline only depends on the Compositor protocol: given a media file and
a watermark image, write a watermarked copy of the media to an output path.
FFmpegCompositor fulfils it by running the ffmpeg binary once per file; tests
swap in a recording fake.
"""

from __future__ import annotations

import logging
import subprocess
from pathlib import Path
from typing import List, Protocol

from .exceptions import CompositingError

logger = logging.getLogger(__name__)

# ffmpeg can be chatty; keep only the end of stderr for diagnostics
_STDERR_TAIL = 2000


class Compositor(Protocol):
    def overlay(self, media: Path, watermark: Path, output: Path) -> None:
        """Write media with watermark overlaid to output, or raise CompositingError."""
        ...


class FFmpegCompositor:
    """
    Overlay a watermark with ffmpeg.

    The watermark is anchored at the top-right corner, inset by margin on
    both axes. Audio streams of video inputs are copied unchanged.

    Attributes:
        binary: Path to the ffmpeg executable
        margin: Distance in pixels from the top and right edges
    """

    def __init__(self, binary: str = "/usr/local/bin/ffmpeg", margin: int = 10) -> None:
        self.binary = binary
        self.margin = margin

    def build_command(self, media: Path, watermark: Path, output: Path) -> List[str]:
        return [
            self.binary,
            "-y",
            "-i", str(media),
            "-i", str(watermark),
            "-filter_complex", f"overlay=main_w-overlay_w-{self.margin}:{self.margin}",
            "-codec:a", "copy",
            str(output),
        ]

    def overlay(self, media: Path, watermark: Path, output: Path) -> None:
        cmd = self.build_command(media, watermark, output)
        logger.debug(f"Run ffmpeg {media} {output}")
        try:
            result = subprocess.run(cmd, stdin=subprocess.DEVNULL, capture_output=True, text=True, errors="replace")
        except OSError as exc:
            logger.debug(f"Error starting ffmpeg {self.binary}: {exc}")
            raise CompositingError(f"Could not run {self.binary}") from exc

        if result.returncode != 0:
            logger.debug(f"Error ffmpeg {media} {output} (exit {result.returncode}): {result.stderr[-_STDERR_TAIL:]}")
            raise CompositingError(f"ffmpeg exited with status {result.returncode}")
        if not output.is_file():
            raise CompositingError(f"ffmpeg produced no output for {media.name}")
