"""stagcaptor — manual HTTP redirect tracer with single-proxy support."""

from __future__ import annotations

__version__ = "1.0.0"

from typing import TYPE_CHECKING

from stagcaptor.errors import TraceError, TraceErrorKind  # noqa: F401
from stagcaptor.models.types import TraceResult  # noqa: F401

if TYPE_CHECKING:
    from stagcaptor.config import TraceSettings


async def trace(
    url: str,
    proxy: str | None = None,
    settings: TraceSettings | None = None,
) -> TraceResult:
    """Follow *url*'s redirect chain and return where it ends.

    Usage::

        result = await stagcaptor.trace("http://example.com/a")
        result = await stagcaptor.trace("https://example.com", "http://user:pw@proxy:8080")
    """
    from stagcaptor.core.tracer import RedirectTracer

    return await RedirectTracer(settings).trace(url, proxy)
