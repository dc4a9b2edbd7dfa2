"""Trace failures — one exception class per failure kind."""

from __future__ import annotations

from enum import StrEnum
from typing import Any, ClassVar


class TraceErrorKind(StrEnum):
    INVALID_URL = "invalid_url"
    INVALID_PROXY_URL = "invalid_proxy_url"
    UNSUPPORTED_SCHEME = "unsupported_scheme"
    REQUEST_TIMEOUT = "request_timeout"
    REQUEST_FAILED = "request_failed"
    PROXY_CONNECT_FAILED = "proxy_connect_failed"
    TLS_ERROR = "tls_error"
    TOO_MANY_REDIRECTS = "too_many_redirects"


_INPUT_KINDS = frozenset({
    TraceErrorKind.INVALID_URL,
    TraceErrorKind.INVALID_PROXY_URL,
    TraceErrorKind.UNSUPPORTED_SCHEME,
})


class TraceError(Exception):
    """Terminal failure of a trace.

    ``url`` is the URL being fetched when the failure happened, ``proxy``
    the proxy ``host:port`` for proxy-path failures, and ``context_url``
    the URL the trace was started with (filled in by the tracer).
    """

    kind: ClassVar[TraceErrorKind]

    def __init__(
        self,
        message: str,
        *,
        url: str = "",
        proxy: str | None = None,
        context_url: str = "",
    ) -> None:
        super().__init__(message)
        self.message = message
        self.url = url
        self.proxy = proxy
        self.context_url = context_url

    @property
    def is_input_error(self) -> bool:
        """True when the failure was detected before any network I/O."""
        return self.kind in _INPUT_KINDS

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "error": self.message,
            "kind": str(self.kind),
            "input_url": self.context_url,
            "url": self.url,
        }
        if self.proxy:
            data["proxy"] = self.proxy
        return data

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.message!r})"


class InvalidURLError(TraceError):
    kind = TraceErrorKind.INVALID_URL


class InvalidProxyURLError(TraceError):
    kind = TraceErrorKind.INVALID_PROXY_URL


class UnsupportedSchemeError(TraceError):
    kind = TraceErrorKind.UNSUPPORTED_SCHEME


class RequestTimeoutError(TraceError):
    kind = TraceErrorKind.REQUEST_TIMEOUT


class RequestFailedError(TraceError):
    kind = TraceErrorKind.REQUEST_FAILED


class ProxyConnectFailedError(TraceError):
    kind = TraceErrorKind.PROXY_CONNECT_FAILED

    def __init__(self, message: str, *, status: int, **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        self.status = status


class TunnelTLSError(TraceError):
    kind = TraceErrorKind.TLS_ERROR


class TooManyRedirectsError(TraceError):
    kind = TraceErrorKind.TOO_MANY_REDIRECTS

    def __init__(self, message: str, *, max_hops: int, **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        self.max_hops = max_hops
