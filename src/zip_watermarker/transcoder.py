"""
Archive re-packing with per-entry watermarking.

ArchiveTranscoder walks an uploaded zip in stored order and rebuilds it
entry by entry into a new, store-only zip:

- directory entries are recreated (and mirrored in the scratch area)
- media entries are written to disk and handed to the compositor
- everything else is copied through byte for byte

Compositing jobs run on a bounded thread pool shared by all requests, so a
large archive does not launch one ffmpeg after another, and concurrent
requests cannot spawn an unbounded number of processes. Entries are always
written to the output in input order.
"""

from __future__ import annotations

import io
import logging
import tempfile
import zipfile
import zlib
from concurrent.futures import Future, ThreadPoolExecutor, wait
from pathlib import Path
from typing import Iterable, List, Optional, Set, Tuple

from .compositor import Compositor
from .exceptions import CompositingError, TranscodeError, UnsafePathError
from .models import ArchiveEntry
from .utils import INPUT_DIRNAME, OUTPUT_DIRNAME, ensure_directory, is_media_file, resolve_inside

logger = logging.getLogger(__name__)

DEFAULT_MEDIA_EXTENSIONS = (".bmp", ".jpg", ".png", ".mp4")

# Failures raised by zipfile and the filesystem while reading or writing entries
_ARCHIVE_ERRORS = (
    zipfile.BadZipFile,
    zipfile.LargeZipFile,
    EOFError,
    NotImplementedError,
    RuntimeError,
    OSError,
    zlib.error,
)

_PendingEntry = Tuple[zipfile.ZipInfo, ArchiveEntry, Optional["Future[bytes]"]]


def _stored_header(source: zipfile.ZipInfo) -> zipfile.ZipInfo:
    header = zipfile.ZipInfo(source.filename, date_time=source.date_time)
    header.compress_type = zipfile.ZIP_STORED
    header.external_attr = source.external_attr
    return header


class ArchiveTranscoder:
    """
    Rebuild zip archives with a watermark applied to media entries.

    Attributes:
        compositor: Service that overlays the watermark on one media file
        media_extensions: Case-sensitive name suffixes routed to the compositor
    """

    def __init__(
        self,
        compositor: Compositor,
        media_extensions: Iterable[str] = DEFAULT_MEDIA_EXTENSIONS,
        max_workers: int = 4,
    ) -> None:
        """
        Initialize the transcoder.

        Args:
            compositor: Compositing service invoked once per media entry
            media_extensions: Suffixes identifying media entries
            max_workers: Number of compositing jobs allowed to run at once
        """
        self.compositor = compositor
        self.media_extensions = tuple(media_extensions)
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="compositor")

    def shutdown(self) -> None:
        self._executor.shutdown(wait=True, cancel_futures=True)

    def rebuild(self, archive_path: Path, watermark_path: Path, workdir: Path) -> bytes:
        """
        Produce the complete watermarked archive in memory.

        Args:
            archive_path: Uploaded zip file
            watermark_path: Uploaded watermark image
            workdir: Per-request scratch directory

        Returns:
            Bytes of the finished zip archive

        Raises:
            TranscodeError: If any entry could not be processed
            UnsafePathError: If an entry name would escape the working directory
        """
        buffer = io.BytesIO()
        with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_STORED) as writer:
            self.transcode(archive_path, watermark_path, workdir, writer)
        # the central directory is only written on close
        return buffer.getvalue()

    def transcode(self, archive_path: Path, watermark_path: Path, workdir: Path, writer: zipfile.ZipFile) -> None:
        """
        Copy every entry of archive_path into writer, watermarking media.

        The source is walked first: directories are created, media entries are
        materialized under workdir/in (or a private scratch tree when a name
        repeats) and submitted for compositing. The output is then assembled in
        stored order, each entry fully written before the next. The first
        failure cancels this archive's outstanding jobs.
        """
        ensure_directory(workdir / INPUT_DIRNAME)
        output_root = ensure_directory(workdir / OUTPUT_DIRNAME)
        logger.debug(f"Created dir {output_root}")

        pending: List[_PendingEntry] = []
        claimed: Set[Path] = set()
        try:
            with zipfile.ZipFile(archive_path) as source:
                for info in source.infolist():
                    pending.append(self._route(source, info, watermark_path, workdir, claimed))

            for info, entry, job in pending:
                data = job.result() if job is not None else entry.data
                writer.writestr(_stored_header(info), data)
                logger.debug(f"Wrote entry {entry.name} ({len(data)} bytes)")
        except UnsafePathError:
            self._abandon(pending)
            raise
        except (CompositingError, *_ARCHIVE_ERRORS) as exc:
            self._abandon(pending)
            logger.debug(f"Error rebuilding {archive_path}: {exc}")
            raise TranscodeError(f"Could not rebuild {archive_path.name}") from exc
        except Exception:
            self._abandon(pending)
            raise

    def _route(
        self,
        source: zipfile.ZipFile,
        info: zipfile.ZipInfo,
        watermark_path: Path,
        workdir: Path,
        claimed: Set[Path],
    ) -> _PendingEntry:
        name = info.filename
        if info.is_dir():
            for root in (workdir / INPUT_DIRNAME, workdir / OUTPUT_DIRNAME):
                path = ensure_directory(resolve_inside(root, name))
                logger.debug(f"Created dir {path}")
            return info, ArchiveEntry(name=name, is_dir=True), None

        data = source.read(info)
        if not is_media_file(name, self.media_extensions):
            return info, ArchiveEntry(name=name, is_dir=False, data=data), None

        media = resolve_inside(workdir / INPUT_DIRNAME, name)
        if media in claimed:
            # a repeated name gets its own scratch tree; jobs run concurrently
            scratch = Path(tempfile.mkdtemp(prefix="dup_", dir=workdir))
            media = resolve_inside(scratch / INPUT_DIRNAME, name)
            output = resolve_inside(scratch / OUTPUT_DIRNAME, name)
        else:
            claimed.add(media)
            output = resolve_inside(workdir / OUTPUT_DIRNAME, name)
        ensure_directory(media.parent)
        ensure_directory(output.parent)
        media.write_bytes(data)

        job = self._executor.submit(self._composite, media, watermark_path, output)
        return info, ArchiveEntry(name=name, is_dir=False), job

    def _composite(self, media: Path, watermark_path: Path, output: Path) -> bytes:
        self.compositor.overlay(media, watermark_path, output)
        return output.read_bytes()

    @staticmethod
    def _abandon(pending: List[_PendingEntry]) -> None:
        jobs = [job for _, _, job in pending if job is not None]
        for job in jobs:
            job.cancel()
        # running jobs still write into the working directory
        wait(jobs)
