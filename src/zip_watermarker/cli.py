from __future__ import annotations

import argparse
import logging
from typing import List, Optional

import uvicorn

from .configuration import load_settings
from .main import create_app

logger = logging.getLogger(__name__)


def configure_logging(debug: bool) -> None:
    # diagnostics (paths, ffmpeg stderr) are only emitted in debug mode
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="zip-watermarker",
        description="Serve an upload form that stamps a watermark onto every image and video in a zip archive.",
    )
    parser.add_argument(
        "--debug",
        "-debug",
        action="store_true",
        help="log verbose diagnostics and keep per-request working directories",
    )
    return parser


def main(argv: Optional[List[str]] = None) -> None:
    args = build_parser().parse_args(argv)
    overrides = {"debug": True} if args.debug else None
    settings = load_settings(overrides)
    configure_logging(settings.debug)

    logger.debug(f"Start HTTP server on {settings.host}:{settings.port}")
    uvicorn.run(create_app(settings), host=settings.host, port=settings.port, log_level="debug" if settings.debug else "warning")


if __name__ == "__main__":
    main()
