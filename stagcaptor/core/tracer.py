"""Redirect tracer — walks a redirect chain one hop at a time."""

from __future__ import annotations

import logging
from typing import Protocol

from stagcaptor.config import TraceSettings
from stagcaptor.errors import TooManyRedirectsError, TraceError
from stagcaptor.models.types import HopResponse, TraceResult
from stagcaptor.utils.urls import resolve_location, validate_request

logger = logging.getLogger(__name__)


class Transport(Protocol):
    async def perform_hop(self, url: str, proxy: str | None = None) -> HopResponse: ...


class RedirectTracer:
    """Follows redirects manually until a non-redirect response.

    Every hop goes through ``transport.perform_hop`` and the chain stops at
    the first response outside the redirect set, at the hop ceiling, or at
    the first transport error. The tracer holds no per-trace state, so one
    instance can serve any number of concurrent traces.

    Usage::

        tracer = RedirectTracer(TraceSettings())
        result = await tracer.trace("http://example.com/a")
        print(result.final_url, result.status, result.hops)
    """

    def __init__(
        self,
        settings: TraceSettings | None = None,
        transport: Transport | None = None,
    ) -> None:
        self.settings = settings or TraceSettings()
        if transport is None:
            from stagcaptor.core.transport import HopTransport

            transport = HopTransport(self.settings)
        self.transport = transport

    async def trace(self, url: str, proxy: str | None = None) -> TraceResult:
        """Trace *url* (optionally via *proxy*) to its final destination.

        Raises TraceError; the error's ``context_url`` is set to *url*.
        """
        try:
            request = validate_request(url, proxy)
            result = await self._follow(request.url, request.proxy)
        except TraceError as e:
            e.context_url = url
            logger.warning("Trace of %s failed: %s", url, e.message)
            raise

        result.input_url = url
        logger.info(
            "Traced %s -> %s (status=%d, hops=%d)",
            url, result.final_url, result.status, result.hops,
        )
        return result

    async def _follow(self, url: str, proxy: str | None) -> TraceResult:
        max_hops = self.settings.max_hops
        current = url
        hops = 0

        while True:
            hop = await self.transport.perform_hop(current, proxy)

            if not hop.is_redirect:
                return TraceResult(final_url=current, status=hop.status_code, hops=hops)

            hops += 1
            if hops > max_hops:
                msg = f"Too many redirects (exceeded {max_hops} hops)"
                raise TooManyRedirectsError(msg, max_hops=max_hops, url=current)

            if not hop.location:
                # Redirect status without a destination: final, and this
                # increment did not correspond to a followed hop.
                return TraceResult(
                    final_url=current, status=hop.status_code, hops=hops - 1,
                )

            next_url = resolve_location(current, hop.location)
            logger.debug("Hop %d: %s -> %s", hops, current, next_url)
            current = next_url
