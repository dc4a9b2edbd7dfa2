"""Raw HTTP/1.1 codec over asyncio streams.

Builds request bytes, reads a response head, and drains a response body
without keeping it. Redirects are never followed here: callers get the
status and headers of exactly one response.

Usage::

    writer.write(build_raw_request("GET", "/login", {"Host": "example.com"}))
    await writer.drain()
    head = await read_response_head(reader)
    await drain_body(reader, head)
    print(head.status, head.get("location"))
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)

_CHUNK = 65536
_NO_BODY_STATUSES = frozenset({204, 304})


@dataclass
class ResponseHead:
    """Parsed status line and headers. Header names are stored lowercased."""

    status: int
    reason: str = ""
    version: str = "HTTP/1.1"
    headers: dict[str, list[str]] = field(default_factory=dict)

    def get(self, name: str) -> str | None:
        """First value of header *name*, or None."""
        values = self.headers.get(name.lower())
        return values[0] if values else None


def build_raw_request(
    method: str,
    target: str,
    headers: dict[str, str],
) -> bytes:
    """Build a bodiless HTTP/1.1 request as raw bytes.

    Args:
        method: HTTP method (GET, CONNECT).
        target: Request target: a path, an absolute URL, or ``host:port``.
        headers: Headers in the order they should be sent.
    """
    lines = [f"{method} {target} HTTP/1.1"]
    for name, value in headers.items():
        lines.append(f"{name}: {value}")
    lines.append("")
    lines.append("")
    return "\r\n".join(lines).encode("latin-1")


def parse_response_head(data: bytes) -> ResponseHead:
    """Parse a response head (status line + headers, no body).

    Raises ValueError on a malformed status line.
    """
    text = data.decode("latin-1")
    lines = text.split("\r\n")
    status_line = lines[0]
    parts = status_line.split(" ", 2)
    if len(parts) < 2 or not parts[0].startswith("HTTP/"):
        msg = f"malformed status line: {status_line[:100]!r}"
        raise ValueError(msg)
    try:
        status = int(parts[1])
    except ValueError:
        msg = f"malformed status code: {parts[1][:20]!r}"
        raise ValueError(msg) from None

    head = ResponseHead(
        status=status,
        reason=parts[2] if len(parts) > 2 else "",
        version=parts[0],
    )
    for line in lines[1:]:
        if not line or ":" not in line:
            continue
        name, _, value = line.partition(":")
        head.headers.setdefault(name.strip().lower(), []).append(value.strip())
    return head


async def read_response_head(
    reader: asyncio.StreamReader,
    *,
    limit: int = 65536,
) -> ResponseHead:
    """Read one final response head, skipping interim 1xx responses."""
    while True:
        try:
            data = await reader.readuntil(b"\r\n\r\n")
        except asyncio.IncompleteReadError as e:
            if not e.partial:
                msg = "connection closed before a response was received"
                raise ConnectionError(msg) from None
            msg = "connection closed mid-way through the response head"
            raise ConnectionError(msg) from None
        except asyncio.LimitOverrunError:
            msg = f"response head exceeds {limit} bytes"
            raise ValueError(msg) from None
        if len(data) > limit:
            msg = f"response head exceeds {limit} bytes"
            raise ValueError(msg)

        head = parse_response_head(data[:-4])
        if 100 <= head.status < 200 and head.status != 101:
            logger.debug("Skipping interim %d response", head.status)
            continue
        return head


async def drain_body(
    reader: asyncio.StreamReader,
    head: ResponseHead,
    *,
    method: str = "GET",
) -> int:
    """Read and discard the body that follows *head*; return bytes discarded."""
    if (
        method == "HEAD"
        or head.status in _NO_BODY_STATUSES
        or 100 <= head.status < 200
    ):
        return 0

    transfer_encoding = (head.get("transfer-encoding") or "").lower()
    if "chunked" in transfer_encoding:
        return await _drain_chunked(reader)

    content_length = head.get("content-length")
    if content_length is not None:
        try:
            remaining = int(content_length)
        except ValueError:
            msg = f"invalid Content-Length: {content_length!r}"
            raise ValueError(msg) from None
        total = remaining
        while remaining > 0:
            chunk = await reader.readexactly(min(remaining, _CHUNK))
            remaining -= len(chunk)
        return total

    # No framing: the body runs until the server closes the connection.
    total = 0
    while True:
        chunk = await reader.read(_CHUNK)
        if not chunk:
            return total
        total += len(chunk)


async def _read_line(reader: asyncio.StreamReader) -> bytes:
    try:
        return await reader.readuntil(b"\r\n")
    except asyncio.LimitOverrunError:
        msg = "chunk-size or trailer line exceeds the stream limit"
        raise ValueError(msg) from None


async def _drain_chunked(reader: asyncio.StreamReader) -> int:
    total = 0
    while True:
        size_line = await _read_line(reader)
        size_text = size_line.split(b";", 1)[0].strip()
        try:
            size = int(size_text, 16)
        except ValueError:
            msg = f"invalid chunk size: {size_text[:20]!r}"
            raise ValueError(msg) from None
        if size == 0:
            # trailers, terminated by an empty line
            while await _read_line(reader) != b"\r\n":
                pass
            return total
        remaining = size + 2  # chunk data + CRLF
        while remaining > 0:
            chunk = await reader.readexactly(min(remaining, _CHUNK))
            remaining -= len(chunk)
        total += size
