"""
Zip Watermarker - stamp a watermark onto every image and video in a zip archive

This package provides a FastAPI-based web service that accepts an uploaded
zip archive together with a PNG watermark and returns a rebuilt archive in
which every supported media entry carries the watermark. It provides:

- An HTML upload form and a single processing endpoint
- Multipart intake into a per-request working directory
- Archive re-packing with per-entry passthrough or compositing
- Watermark compositing delegated to ffmpeg through a pluggable interface

Key Components:
    - main: FastAPI application factory and HTTP endpoint definitions
    - intake: Multipart form file extraction
    - transcoder: Archive walk, entry routing and in-order reassembly
    - compositor: Compositor interface and the ffmpeg implementation
    - configuration: Config loading and merging logic
    - models: Settings and archive entry models
    - exceptions: Error taxonomy mapped to HTTP status codes
    - utils: Filesystem and naming utilities

Usage:
    Run the server with:
        zip-watermarker

    Or with verbose diagnostics and retained working directories:
        zip-watermarker --debug

    Or under uvicorn directly, which builds the app from config.yaml:
        uvicorn zip_watermarker.main:create_app --factory --port 8848
"""

__version__ = "0.1.0"
