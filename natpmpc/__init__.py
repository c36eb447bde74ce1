"""natpmpc - NAT Port Mapping Protocol (RFC 6886) client."""

from __future__ import annotations

from natpmpc.client import (
    Natpmp,
    NatpmpAsync,
    new_natpmp,
    new_natpmp_async,
    new_natpmp_async_with,
    new_natpmp_with,
)
from natpmpc.exceptions import (
    ConnectError,
    GatewayNotFoundError,
    NATPMPError,
    NetworkFailureError,
    NotAuthorizedError,
    OutOfResourcesError,
    RecvFromError,
    SocketError,
    UndefinedError,
    UnsupportedOpcodeError,
    UnsupportedVersionError,
)
from natpmpc.protocol import (
    NATPMP_MAX_ATTEMPTS,
    NATPMP_PORT,
    GatewayResponse,
    MappingResponse,
    Protocol,
    Response,
)

__version__ = "0.1.0"

__all__ = [
    "NATPMP_MAX_ATTEMPTS",
    "NATPMP_PORT",
    "ConnectError",
    "GatewayNotFoundError",
    "GatewayResponse",
    "MappingResponse",
    "NATPMPError",
    "Natpmp",
    "NatpmpAsync",
    "NetworkFailureError",
    "NotAuthorizedError",
    "OutOfResourcesError",
    "Protocol",
    "RecvFromError",
    "Response",
    "SocketError",
    "UndefinedError",
    "UnsupportedOpcodeError",
    "UnsupportedVersionError",
    "new_natpmp",
    "new_natpmp_async",
    "new_natpmp_async_with",
    "new_natpmp_with",
]
