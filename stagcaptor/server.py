"""HTTP API — ``GET /trace?url=...&proxy=...`` over aiohttp.web."""

from __future__ import annotations

import logging

from aiohttp import web

from stagcaptor.config import Settings
from stagcaptor.core.tracer import RedirectTracer
from stagcaptor.errors import TraceError
from stagcaptor.utils.urls import validate_request

logger = logging.getLogger(__name__)

SERVICE_NAME = "stagCaptorAPI"
USAGE = "GET /trace?url=<encoded_url>[&proxy=<encoded_proxy_url>]"


class TraceAPI:
    """Request handlers. Query parsing and JSON shaping only."""

    def __init__(self, tracer: RedirectTracer) -> None:
        self.tracer = tracer

    async def index(self, request: web.Request) -> web.Response:
        return web.json_response({"service": SERVICE_NAME, "usage": USAGE})

    async def trace(self, request: web.Request) -> web.Response:
        url = request.query.get("url")
        proxy = request.query.get("proxy") or None

        if not url:
            return web.json_response(
                {"error": "Missing required query parameter: url"},
                status=400,
            )

        try:
            validate_request(url, proxy)
        except TraceError as e:
            return web.json_response({"error": e.message}, status=400)

        try:
            result = await self.tracer.trace(url, proxy)
        except TraceError as e:
            return web.json_response(
                {"error": e.message, "input_url": url},
                status=502,
            )

        return web.json_response(result.model_dump())


def create_app(
    settings: Settings | None = None,
    tracer: RedirectTracer | None = None,
) -> web.Application:
    settings = settings or Settings()
    api = TraceAPI(tracer or RedirectTracer(settings.trace))

    app = web.Application()
    app.router.add_get("/", api.index)
    app.router.add_get("/trace", api.trace)
    return app


def run_server(
    settings: Settings,
    host: str | None = None,
    port: int | None = None,
) -> None:
    """Serve the API until interrupted."""
    host = host or settings.server.host
    port = port or settings.server.port
    app = create_app(settings)

    async def _announce(_: web.Application) -> None:
        logger.info("%s listening on http://localhost:%d", SERVICE_NAME, port)

    app.on_startup.append(_announce)
    web.run_app(app, host=host, port=port, print=None)
