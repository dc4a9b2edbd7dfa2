"""Shared test fixtures."""

from __future__ import annotations

import asyncio
import contextlib
import ssl
from collections.abc import Callable
from dataclasses import dataclass, field

import pytest
import trustme

from stagcaptor.config import Settings, TraceSettings


@dataclass
class RecordedRequest:
    method: str
    target: str
    headers: dict[str, str] = field(default_factory=dict)


Responder = Callable[[RecordedRequest], bytes | None]


class ScriptedServer:
    """Local TCP server that answers every request head via *responder*.

    The responder returns raw response bytes, or None to never answer (the
    handler then waits for the client to hang up). A 200 answer to CONNECT
    keeps the connection open for the tunneled request; anything else is
    followed by a close.
    """

    def __init__(self, responder: Responder) -> None:
        self.responder = responder
        self.requests: list[RecordedRequest] = []
        self.port = 0
        self._server: asyncio.Server | None = None

    @property
    def base_url(self) -> str:
        return f"http://127.0.0.1:{self.port}"

    async def start(self) -> None:
        self._server = await asyncio.start_server(self._handle, "127.0.0.1", 0)
        self.port = self._server.sockets[0].getsockname()[1]

    async def stop(self) -> None:
        if self._server is not None:
            self._server.close()
            await self._server.wait_closed()

    async def _handle(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
    ) -> None:
        try:
            while True:
                try:
                    data = await reader.readuntil(b"\r\n\r\n")
                except (asyncio.IncompleteReadError, ConnectionError):
                    break
                request = _parse_request(data)
                self.requests.append(request)

                response = self.responder(request)
                if response is None:
                    await reader.read()
                    break
                writer.write(response)
                await writer.drain()
                if request.method != "CONNECT" or b" 200 " not in response.split(b"\r\n", 1)[0]:
                    break
        finally:
            writer.close()
            with contextlib.suppress(Exception):
                await writer.wait_closed()


async def _close(writer: asyncio.StreamWriter) -> None:
    writer.close()
    with contextlib.suppress(Exception):
        await writer.wait_closed()


class TlsOrigin:
    """Local HTTPS server; one request per connection, answered via *responder*.

    Records the SNI name and negotiated protocol of every handshake.
    """

    def __init__(self, cert: trustme.LeafCert, responder: Responder) -> None:
        self.responder = responder
        self.requests: list[RecordedRequest] = []
        self.server_names: list[str | None] = []
        self.tls_versions: list[str | None] = []
        self.port = 0
        self._ctx = ssl.create_default_context(ssl.Purpose.CLIENT_AUTH)
        cert.configure_cert(self._ctx)
        self._ctx.sni_callback = self._on_sni
        self._server: asyncio.Server | None = None

    def _on_sni(self, ssl_obj, server_name, ctx) -> None:
        self.server_names.append(server_name)

    async def start(self) -> None:
        self._server = await asyncio.start_server(
            self._handle, "127.0.0.1", 0, ssl=self._ctx,
        )
        self.port = self._server.sockets[0].getsockname()[1]

    async def stop(self) -> None:
        if self._server is not None:
            self._server.close()
            await self._server.wait_closed()

    async def _handle(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
    ) -> None:
        try:
            data = await reader.readuntil(b"\r\n\r\n")
        except (asyncio.IncompleteReadError, ConnectionError):
            await _close(writer)
            return
        ssl_obj = writer.get_extra_info("ssl_object")
        self.tls_versions.append(ssl_obj.version() if ssl_obj else None)
        request = _parse_request(data)
        self.requests.append(request)
        writer.write(self.responder(request) or b"")
        with contextlib.suppress(ConnectionError):
            await writer.drain()
        await _close(writer)


class TunnelProxy:
    """CONNECT-only proxy that splices every tunnel to one local upstream port."""

    def __init__(self, upstream_port: int) -> None:
        self.upstream_port = upstream_port
        self.requests: list[RecordedRequest] = []
        self.port = 0
        self._server: asyncio.Server | None = None

    @property
    def url(self) -> str:
        return f"http://127.0.0.1:{self.port}"

    async def start(self) -> None:
        self._server = await asyncio.start_server(self._handle, "127.0.0.1", 0)
        self.port = self._server.sockets[0].getsockname()[1]

    async def stop(self) -> None:
        if self._server is not None:
            self._server.close()
            await self._server.wait_closed()

    async def _handle(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
    ) -> None:
        try:
            data = await reader.readuntil(b"\r\n\r\n")
            self.requests.append(_parse_request(data))
            up_reader, up_writer = await asyncio.open_connection(
                "127.0.0.1", self.upstream_port,
            )
            writer.write(b"HTTP/1.1 200 Connection established\r\n\r\n")
            await writer.drain()
            await asyncio.gather(
                _pipe(reader, up_writer),
                _pipe(up_reader, writer),
            )
        except (asyncio.IncompleteReadError, ConnectionError):
            pass
        finally:
            await _close(writer)


async def _pipe(src: asyncio.StreamReader, dst: asyncio.StreamWriter) -> None:
    try:
        while True:
            data = await src.read(65536)
            if not data:
                break
            dst.write(data)
            await dst.drain()
    except ConnectionError:
        pass
    finally:
        await _close(dst)


def _parse_request(data: bytes) -> RecordedRequest:
    lines = data.decode("latin-1").split("\r\n")
    method, target, _ = lines[0].split(" ", 2)
    headers: dict[str, str] = {}
    for line in lines[1:]:
        if ":" in line:
            name, _, value = line.partition(":")
            headers[name.strip()] = value.strip()
    return RecordedRequest(method=method, target=target, headers=headers)


@pytest.fixture
def trace_settings():
    return TraceSettings(timeout=2.0)


@pytest.fixture
def settings(trace_settings):
    return Settings(trace=trace_settings)


@pytest.fixture
async def scripted_server():
    """Factory: ``srv = await scripted_server(responder)``; stopped on teardown."""
    servers: list[ScriptedServer] = []

    async def _start(responder: Responder) -> ScriptedServer:
        srv = ScriptedServer(responder)
        await srv.start()
        servers.append(srv)
        return srv

    yield _start

    for srv in servers:
        await srv.stop()


@pytest.fixture
def unused_port():
    import socket

    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


@pytest.fixture(scope="session")
def tls_ca():
    return trustme.CA()


@pytest.fixture
async def tls_origin(tls_ca):
    """Factory: ``origin = await tls_origin(responder)``.

    The certificate is issued by ``tls_ca`` for ``origin.test`` and 127.0.0.1.
    """
    cert = tls_ca.issue_cert("origin.test", "127.0.0.1")
    origins: list[TlsOrigin] = []

    async def _start(responder: Responder) -> TlsOrigin:
        origin = TlsOrigin(cert, responder)
        await origin.start()
        origins.append(origin)
        return origin

    yield _start

    for origin in origins:
        await origin.stop()


@pytest.fixture
async def tunnel_proxy():
    """Factory: ``proxy = await tunnel_proxy(upstream_port)``."""
    proxies: list[TunnelProxy] = []

    async def _start(upstream_port: int) -> TunnelProxy:
        proxy = TunnelProxy(upstream_port)
        await proxy.start()
        proxies.append(proxy)
        return proxy

    yield _start

    for proxy in proxies:
        await proxy.stop()
