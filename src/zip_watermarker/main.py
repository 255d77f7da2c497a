from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Dict, Optional, Tuple

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Request
from fastapi.responses import HTMLResponse, Response
from starlette.concurrency import run_in_threadpool
from starlette.datastructures import FormData
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.formparsers import MultiPartException

from . import __version__
from .compositor import Compositor, FFmpegCompositor
from .configuration import load_settings
from .exceptions import BadUploadError, WatermarkerError
from .intake import dump_form_file
from .models import WatermarkerSettings
from .transcoder import ArchiveTranscoder
from .utils import UPLOAD_DIRNAME, content_disposition, watermarked_filename, working_directory

logger = logging.getLogger(__name__)

WATERMARK_FIELD = "png"
ARCHIVE_FIELD = "zip"

UPLOAD_FORM = """<!DOCTYPE html>
<html>
<head>
  <meta charset="utf-8">
  <title>add watermark</title>
  <style>
    label, input, button {
      margin: 5px auto;
      cursor: pointer;
    }
  </style>
</head>
<body>
  <form action="/" method="post" enctype="multipart/form-data">
    <label for="zip">upload zip</label>
    <input type="file" accept=".zip" id="zip" name="zip" required /><br>
    <label for="png">upload png</label>
    <input type="file" accept="image/png" id="png" name="png" required /><br>
    <button type="submit">go</button>
  </form>
</body>
</html>
"""

router = APIRouter()


def get_settings(request: Request) -> WatermarkerSettings:
    return request.app.state.settings


def get_transcoder(request: Request) -> ArchiveTranscoder:
    return request.app.state.transcoder


@router.get("/healthz")
def healthcheck() -> Dict[str, str]:
    return {"status": "ok"}


@router.get("/", response_class=HTMLResponse)
def upload_form() -> str:
    return UPLOAD_FORM


async def _rebuild_upload(
    form: FormData,
    workdir: Path,
    settings: WatermarkerSettings,
    transcoder: ArchiveTranscoder,
) -> Tuple[str, bytes]:
    uploads = workdir / UPLOAD_DIRNAME

    watermark = await dump_form_file(form, uploads, WATERMARK_FIELD, settings.max_upload_bytes)
    if watermark is None:
        raise BadUploadError(f"Missing form file {WATERMARK_FIELD!r}")
    archive = await dump_form_file(form, uploads, ARCHIVE_FIELD, settings.max_upload_bytes)
    if archive is None:
        raise BadUploadError(f"Missing form file {ARCHIVE_FIELD!r}")

    _, watermark_path = watermark
    archive_name, archive_path = archive
    body = await run_in_threadpool(transcoder.rebuild, archive_path, watermark_path, workdir)
    return watermarked_filename(archive_name, settings.output_suffix), body


@router.api_route("/", methods=["POST", "PUT", "PATCH", "DELETE"])
async def watermark_archive(
    request: Request,
    settings: WatermarkerSettings = Depends(get_settings),
    transcoder: ArchiveTranscoder = Depends(get_transcoder),
) -> Response:
    client = request.client.host if request.client else "unknown"
    try:
        form = await request.form(max_part_size=settings.max_part_size)
    except (MultiPartException, StarletteHTTPException) as exc:
        logger.debug(f"Error bad request from {client}: {exc}")
        raise HTTPException(status_code=400, detail="Bad Request") from exc

    try:
        with working_directory(settings.temp_prefix, settings.temp_root, keep=settings.debug) as workdir:
            filename, body = await _rebuild_upload(form, workdir, settings, transcoder)
    except BadUploadError as exc:
        logger.debug(f"Error bad request from {client}: {exc}")
        raise HTTPException(status_code=400, detail="Bad Request") from exc
    except (WatermarkerError, OSError) as exc:
        logger.debug(f"Error processing request from {client}: {exc!r}")
        raise HTTPException(status_code=500, detail="Internal Server Error") from exc
    finally:
        await form.close()

    logger.debug(f"Write response with file {filename}")
    return Response(
        content=body,
        media_type="application/zip",
        headers={"Content-Disposition": content_disposition(filename)},
    )


def create_app(
    settings: Optional[WatermarkerSettings] = None,
    compositor: Optional[Compositor] = None,
) -> FastAPI:
    """
    Build the watermarking service.

    Args:
        settings: Service settings; loaded from config.yaml and the environment when omitted
        compositor: Compositing service; an FFmpegCompositor from settings when omitted

    Returns:
        FastAPI application serving the upload form and the processing endpoint
    """
    settings = settings or load_settings()
    compositor = compositor or FFmpegCompositor(settings.ffmpeg_path, settings.overlay_margin)
    transcoder = ArchiveTranscoder(
        compositor,
        media_extensions=settings.media_extensions,
        max_workers=settings.compositor_workers,
    )

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        yield
        transcoder.shutdown()

    app = FastAPI(title="Zip Watermarker", version=__version__, lifespan=lifespan)
    app.state.settings = settings
    app.state.transcoder = transcoder

    @app.middleware("http")
    async def log_request(request: Request, call_next):
        client = request.client.host if request.client else "unknown"
        logger.debug(f"Got HTTP request from {client} {request.method} {request.url.path}")
        return await call_next(request)

    app.include_router(router)
    return app

