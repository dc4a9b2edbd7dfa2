"""URL validation — target/proxy parsing, proxy credentials, Location resolution.

Nothing here touches the network.
"""

from __future__ import annotations

from urllib.parse import SplitResult, quote, unquote, urljoin, urlsplit

from stagcaptor.errors import (
    InvalidProxyURLError,
    InvalidURLError,
    RequestFailedError,
    TraceError,
    UnsupportedSchemeError,
)
from stagcaptor.models.types import ProxyDescriptor, TargetRequest

ALLOWED_SCHEMES = frozenset({"http", "https"})
DEFAULT_PORTS = {"http": 80, "https": 443}

# RFC 3986 reserved and sub-delims kept as-is; "%" keeps existing escapes.
_TARGET_SAFE = "/%:@!$&'()*+,;=?~"


def _parse(
    value: str,
    label: str,
    error_cls: type[TraceError],
) -> SplitResult:
    if not isinstance(value, str) or not value.strip():
        raise error_cls(f"Invalid {label}: {value!r}", url=str(value or ""))

    try:
        parsed = urlsplit(value.strip())
        # .port raises ValueError on a non-numeric or out-of-range port
        _ = parsed.port
    except ValueError:
        raise error_cls(f"Invalid {label}: {value}", url=value) from None

    if not parsed.scheme:
        raise error_cls(f"Invalid {label}: {value}", url=value)

    if parsed.scheme.lower() not in ALLOWED_SCHEMES:
        raise UnsupportedSchemeError(
            f"{label} must use http or https protocol: {value}",
            url=value,
        )

    if not parsed.netloc or not parsed.hostname:
        raise error_cls(f"Invalid {label}: {value}", url=value)

    try:
        _idna(parsed.hostname)
    except UnicodeError:
        raise error_cls(f"Invalid {label}: {value}", url=value) from None

    return parsed


def _idna(host: str) -> str:
    if host.isascii():
        return host
    return host.encode("idna").decode("ascii")


def validate_target(url: str) -> SplitResult:
    """Parse *url* as an absolute http(s) URL."""
    return _parse(url, "URL", InvalidURLError)


def validate_proxy(proxy_url: str) -> SplitResult:
    """Parse *proxy_url* as an absolute http(s) proxy URL."""
    return _parse(proxy_url, "proxy URL", InvalidProxyURLError)


def validate_request(url: str, proxy: str | None = None) -> TargetRequest:
    """Validate both halves of a trace input before any I/O."""
    validate_target(url)
    if proxy:
        validate_proxy(proxy)
    return TargetRequest(url=url.strip(), proxy=proxy.strip() if proxy else None)


def parse_proxy(proxy_url: str) -> ProxyDescriptor:
    """Build a ProxyDescriptor, percent-decoding any userinfo."""
    parsed = validate_proxy(proxy_url)
    scheme = parsed.scheme.lower()
    username = unquote(parsed.username) if parsed.username is not None else None
    password = unquote(parsed.password) if parsed.password is not None else None
    return ProxyDescriptor(
        scheme=scheme,
        host=parsed.hostname or "",
        port=parsed.port or DEFAULT_PORTS[scheme],
        username=username,
        password=password,
    )


def target_port(parsed: SplitResult) -> int:
    return parsed.port or DEFAULT_PORTS[parsed.scheme.lower()]


def ascii_host(parsed: SplitResult) -> str:
    """Hostname as sent on the wire: IDNA (punycode) for non-ASCII names."""
    return _idna(parsed.hostname or "")


def _bracketed_host(parsed: SplitResult) -> str:
    host = ascii_host(parsed)
    if ":" in host:
        host = f"[{host}]"
    return host


def host_header(parsed: SplitResult) -> str:
    """``Host`` value: hostname, plus the port when it is not the default."""
    host = _bracketed_host(parsed)
    port = parsed.port
    if port and port != DEFAULT_PORTS[parsed.scheme.lower()]:
        return f"{host}:{port}"
    return host


def connect_authority(parsed: SplitResult) -> str:
    """``host:port`` for a CONNECT request line, port always present."""
    return f"{_bracketed_host(parsed)}:{target_port(parsed)}"


def request_path(parsed: SplitResult) -> str:
    """Origin-form request target: path plus query, never the fragment.

    Spaces, control characters and non-ASCII text are percent-encoded as
    UTF-8; characters that are already escaped are left alone.
    """
    path = quote(parsed.path or "/", safe=_TARGET_SAFE)
    if parsed.query:
        path += "?" + quote(parsed.query, safe=_TARGET_SAFE)
    return path


def absolute_form(parsed: SplitResult) -> str:
    """Absolute-form request target for proxies, without userinfo or fragment."""
    return f"{parsed.scheme.lower()}://{host_header(parsed)}{request_path(parsed)}"


def resolve_location(current_url: str, location: str) -> str:
    """Resolve a ``Location`` header value against the URL that returned it.

    Raises RequestFailedError when the value cannot be parsed as a URL.
    """
    try:
        return urljoin(current_url, location.strip())
    except ValueError:
        msg = f"Invalid redirect Location {location!r} from {current_url}"
        raise RequestFailedError(msg, url=current_url) from None
