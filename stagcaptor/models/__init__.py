"""Data models — contracts shared by the transport, tracer and outer layers."""

from stagcaptor.models.types import (
    HopResponse,
    ProxyDescriptor,
    TargetRequest,
    TraceResult,
)

__all__ = [
    "HopResponse",
    "ProxyDescriptor",
    "TargetRequest",
    "TraceResult",
]
