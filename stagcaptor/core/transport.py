"""Single-hop transport — one request, one response, no redirect following.

Three strategies, chosen per hop:

- Direct: plain or TLS connection straight to the target.
- Proxy-Forward: ``http://`` target through a proxy, absolute-form request.
- Proxy-Tunnel: ``https://`` target through a proxy. ``CONNECT`` first,
  then a TLS handshake with the target over the tunnel socket, then the
  request. Each phase fails on its own.

The whole hop (connect, request, drain) runs under a single deadline and
every connection is closed before ``perform_hop`` returns or raises.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import ssl
from dataclasses import dataclass
from urllib.parse import SplitResult

from stagcaptor.config import TraceSettings
from stagcaptor.errors import (
    ProxyConnectFailedError,
    RequestFailedError,
    RequestTimeoutError,
    TraceError,
    TunnelTLSError,
)
from stagcaptor.models.types import HopResponse, ProxyDescriptor
from stagcaptor.utils.raw_http import (
    ResponseHead,
    build_raw_request,
    drain_body,
    read_response_head,
)
from stagcaptor.utils.urls import (
    absolute_form,
    ascii_host,
    connect_authority,
    host_header,
    parse_proxy,
    request_path,
    target_port,
    validate_target,
)

logger = logging.getLogger(__name__)


@dataclass
class _Connection:
    reader: asyncio.StreamReader
    writer: asyncio.StreamWriter

    async def close(self) -> None:
        self.writer.close()
        with contextlib.suppress(Exception):
            await self.writer.wait_closed()


def _request_failed(
    url: str,
    exc: BaseException,
    proxy_display: str | None,
) -> RequestFailedError:
    msg = f"Request failed for {url}: {str(exc) or type(exc).__name__}"
    if proxy_display:
        msg += f" (via proxy {proxy_display})"
    return RequestFailedError(msg, url=url, proxy=proxy_display)


def make_ssl_context(verify: bool) -> ssl.SSLContext:
    ctx = ssl.create_default_context()
    if not verify:
        ctx.check_hostname = False
        ctx.verify_mode = ssl.CERT_NONE
    return ctx


class HopTransport:
    """Performs exactly one HTTP GET per call and reports status + Location.

    Usage::

        transport = HopTransport(TraceSettings())
        hop = await transport.perform_hop("https://example.com/", "http://proxy:8080")
        print(hop.status_code, hop.location)
    """

    def __init__(self, settings: TraceSettings | None = None) -> None:
        self.settings = settings or TraceSettings()

    async def perform_hop(self, url: str, proxy: str | None = None) -> HopResponse:
        target = validate_target(url)
        descriptor = parse_proxy(proxy) if proxy else None
        proxy_display = descriptor.display if descriptor else None
        timeout = self.settings.timeout

        try:
            async with asyncio.timeout(timeout) as deadline:
                head = await self._exchange(target, descriptor)
        except TimeoutError as e:
            if not deadline.expired():
                # ETIMEDOUT from the OS, not our deadline
                raise _request_failed(url, e, proxy_display) from e
            msg = f"Request timed out after {timeout:g}s for {url}"
            if descriptor:
                msg += f" (via proxy {proxy_display})"
            raise RequestTimeoutError(msg, url=url, proxy=proxy_display) from None
        except TraceError as e:
            if not e.url:
                e.url = url
            raise
        except (OSError, ValueError, asyncio.IncompleteReadError) as e:
            raise _request_failed(url, e, proxy_display) from e

        hop = HopResponse(url=url, status_code=head.status, location=head.get("location"))
        logger.debug(
            "Hop %s -> %d%s", url, hop.status_code,
            f" Location: {hop.location}" if hop.location else "",
        )
        return hop

    async def _exchange(
        self,
        target: SplitResult,
        proxy: ProxyDescriptor | None,
    ) -> ResponseHead:
        if proxy is None:
            return await self._direct(target)
        if target.scheme.lower() == "http":
            return await self._proxy_forward(target, proxy)
        return await self._proxy_tunnel(target, proxy)

    # --- strategies ---

    async def _direct(self, target: SplitResult) -> ResponseHead:
        host = ascii_host(target)
        ssl_ctx: ssl.SSLContext | None = None
        if target.scheme.lower() == "https":
            ssl_ctx = make_ssl_context(self.settings.verify_ssl)

        conn = await self._open(
            host, target_port(target),
            ssl_ctx=ssl_ctx, server_hostname=host if ssl_ctx else None,
        )
        try:
            return await self._get(conn, request_path(target), host_header(target))
        finally:
            await conn.close()

    async def _proxy_forward(
        self,
        target: SplitResult,
        proxy: ProxyDescriptor,
    ) -> ResponseHead:
        conn = await self._open(proxy.host, proxy.port)
        try:
            return await self._get(
                conn, absolute_form(target), host_header(target),
                proxy_authorization=proxy.authorization,
            )
        finally:
            await conn.close()

    async def _proxy_tunnel(
        self,
        target: SplitResult,
        proxy: ProxyDescriptor,
    ) -> ResponseHead:
        conn = await self._open_tunnel(target, proxy)
        try:
            await self._start_tls(conn, target, proxy)
            return await self._get(conn, request_path(target), host_header(target))
        finally:
            await conn.close()

    # --- phases ---

    async def _open(
        self,
        host: str,
        port: int,
        *,
        ssl_ctx: ssl.SSLContext | None = None,
        server_hostname: str | None = None,
    ) -> _Connection:
        kwargs: dict = {"limit": self.settings.max_header_bytes}
        if ssl_ctx is not None:
            kwargs["ssl"] = ssl_ctx
            kwargs["server_hostname"] = server_hostname
        reader, writer = await asyncio.open_connection(host, port, **kwargs)
        return _Connection(reader, writer)

    async def _open_tunnel(
        self,
        target: SplitResult,
        proxy: ProxyDescriptor,
    ) -> _Connection:
        """Phase 1: ``CONNECT host:port`` to the proxy; returns the open socket."""
        authority = connect_authority(target)
        headers = {
            "Host": authority,
            "User-Agent": self.settings.user_agent,
        }
        if proxy.authorization:
            headers["Proxy-Authorization"] = proxy.authorization

        conn = await self._open(proxy.host, proxy.port)
        try:
            conn.writer.write(build_raw_request("CONNECT", authority, headers))
            await conn.writer.drain()
            head = await read_response_head(
                conn.reader, limit=self.settings.max_header_bytes,
            )
        except BaseException:
            await conn.close()
            raise

        if head.status != 200:
            await conn.close()
            msg = (
                f"Proxy CONNECT to {authority} via {proxy.display} "
                f"failed with status {head.status}"
            )
            raise ProxyConnectFailedError(
                msg, status=head.status, proxy=proxy.display,
            )

        logger.debug("Tunnel to %s established via %s", authority, proxy.display)
        return conn

    async def _start_tls(
        self,
        conn: _Connection,
        target: SplitResult,
        proxy: ProxyDescriptor,
    ) -> None:
        """Phase 2: TLS handshake over the tunnel, SNI = target host."""
        host = ascii_host(target)
        ctx = make_ssl_context(self.settings.verify_tunnel_ssl)
        try:
            await conn.writer.start_tls(ctx, server_hostname=host)
        except (ssl.SSLError, ConnectionError) as e:
            msg = f"TLS handshake with {host} through proxy {proxy.display} failed: {e}"
            raise TunnelTLSError(msg, proxy=proxy.display) from e

    async def _get(
        self,
        conn: _Connection,
        target: str,
        host: str,
        *,
        proxy_authorization: str | None = None,
    ) -> ResponseHead:
        headers = {
            "Host": host,
            "User-Agent": self.settings.user_agent,
            "Connection": "close",
        }
        if proxy_authorization:
            headers["Proxy-Authorization"] = proxy_authorization

        conn.writer.write(build_raw_request("GET", target, headers))
        await conn.writer.drain()
        head = await read_response_head(
            conn.reader, limit=self.settings.max_header_bytes,
        )
        discarded = await drain_body(conn.reader, head)
        logger.debug("Discarded %d body bytes", discarded)
        return head
