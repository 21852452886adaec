"""HTTP interface serving rendered pages to e-ink devices."""

import logging
import re
from datetime import datetime, timezone
from email.utils import format_datetime
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import PlainTextResponse, Response

from .errors import StorageNotFoundError
from .service import ScreensaverService

logger = logging.getLogger(__name__)

RELOAD_PATH = '/RELOAD'

_PAGE_PATH = re.compile(r"^/([0-9]+)$")


def parse_page_number(path: str, page_count: int) -> Optional[int]:
    """Map '/' to 1 and '/N' to N; None unless 1 <= N <= page_count"""
    if path == '/':
        page_number = 1
    else:
        match = _PAGE_PATH.match(path)
        if not match:
            return None
        page_number = int(match.group(1))
    if page_number < 1 or page_number > page_count:
        return None
    return page_number


def http_date(value: datetime) -> str:
    return format_datetime(value.astimezone(timezone.utc), usegmt=True)


def create_app(service: ScreensaverService) -> FastAPI:
    """Build the FastAPI application around a service instance"""
    app = FastAPI(title="hassInk Server", docs_url=None, redoc_url=None, openapi_url=None)
    app.state.service = service
    config = service.config

    @app.on_event("startup")
    async def startup_event():
        await service.start()

    @app.on_event("shutdown")
    async def shutdown_event():
        await service.stop()

    @app.api_route("/{page_path:path}", methods=["GET", "POST"])
    async def serve_page(request: Request, page_path: str):
        """Serve page N as an image, or reload every page"""
        path = request.url.path

        if request.method == 'POST' and path.upper() == RELOAD_PATH:
            logger.info("Received reload request")
            await service.render_all()
            return PlainTextResponse("Reloaded")

        page_number = parse_page_number(path, len(config.pages))
        if page_number is None:
            logger.info(f"Invalid request: {request.url} for page {path[1:]!r}")
            return PlainTextResponse("Invalid request", status_code=400)

        logger.info(f"Image {page_number} was accessed")
        page_index = page_number - 1
        page_config = config.pages[page_index]

        if config.eager_rerender:
            logger.info("Eager render requested. Rerendering...")
            image_data = await service.render_and_convert_page(page_index)
            last_modified = datetime.now(timezone.utc)
        else:
            try:
                image_data, last_modified = service.store.read(page_config)
            except StorageNotFoundError as e:
                logger.warning(f"Image {page_number} not found: {e}")
                image_data, last_modified = None, None

        service.battery.record(
            page_index,
            request.query_params.get('batteryLevel'),
            request.query_params.get('isCharging'),
        )

        if image_data is None:
            if config.eager_rerender:
                return PlainTextResponse("Failed to render image", status_code=500)
            return PlainTextResponse("Image not found", status_code=404)

        return Response(
            content=image_data,
            media_type=page_config.media_type,
            headers={'Last-Modified': http_date(last_modified)},
        )

    return app
