"""Trace data types — requests, proxies, hop responses and results."""

from __future__ import annotations

import base64
from pydantic import BaseModel, ConfigDict

REDIRECT_CODES: frozenset[int] = frozenset({301, 302, 303, 307, 308})


class TargetRequest(BaseModel):
    """A validated trace input. Built by ``urls.validate_request``."""

    model_config = ConfigDict(frozen=True)

    url: str
    proxy: str | None = None


class ProxyDescriptor(BaseModel):
    """Upstream proxy endpoint, credentials already percent-decoded."""

    model_config = ConfigDict(frozen=True)

    scheme: str = "http"
    host: str
    port: int
    username: str | None = None
    password: str | None = None

    @property
    def display(self) -> str:
        return f"{self.host}:{self.port}"

    @property
    def authorization(self) -> str | None:
        """``Proxy-Authorization`` value, or None without credentials."""
        if self.username is None:
            return None
        creds = f"{self.username}:{self.password or ''}".encode()
        return "Basic " + base64.b64encode(creds).decode("ascii")


class HopResponse(BaseModel):
    """Status and redirect target of a single request."""

    url: str
    status_code: int
    location: str | None = None

    @property
    def is_redirect(self) -> bool:
        return self.status_code in REDIRECT_CODES


class TraceResult(BaseModel):
    input_url: str = ""
    final_url: str
    status: int
    hops: int
