"""Exception hierarchy for natpmpc.

Every failure of a NAT-PMP exchange is raised to the immediate caller as
one of the classes below. Errors reported by the gateway carry the wire
result code in ``result_code``.
"""

from __future__ import annotations

from typing import Any, ClassVar


class NATPMPError(Exception):
    """Base exception for all natpmpc errors."""

    result_code: ClassVar[int | None] = None

    def __init__(self, message: str | None = None, details: dict[str, Any] | None = None):
        """Initialize NAT-PMP error."""
        message = message or self.__class__.__doc__ or self.__class__.__name__
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        """Return string representation of the error."""
        if self.details:
            return f"{self.message} (Details: {self.details})"
        return self.message


class SocketError(NATPMPError):
    """Cannot create or bind the UDP socket."""


class ConnectError(NATPMPError):
    """Cannot connect the UDP socket to the gateway."""


class GatewayNotFoundError(NATPMPError):
    """Cannot determine the default gateway."""


class RecvFromError(NATPMPError):
    """No response received from the gateway."""


class NetworkFailureError(NATPMPError):
    """Network failure."""

    result_code = 3


class UnsupportedVersionError(NATPMPError):
    """Unsupported NAT-PMP version."""

    result_code = 1


class NotAuthorizedError(NATPMPError):
    """Not authorized or refused by the gateway."""

    result_code = 2


class OutOfResourcesError(NATPMPError):
    """Gateway is out of resources."""

    result_code = 4


class UnsupportedOpcodeError(NATPMPError):
    """Unsupported opcode."""

    result_code = 5


class UndefinedError(NATPMPError):
    """Undefined result code returned by the gateway."""

    def __init__(
        self,
        message: str | None = None,
        details: dict[str, Any] | None = None,
        result_code: int | None = None,
    ):
        """Initialize with the unrecognized result code."""
        super().__init__(message, details)
        self.result_code = result_code  # type: ignore[misc]


class ConfigurationError(NATPMPError):
    """Configuration validation errors."""


_RESULT_CODE_ERRORS: dict[int, type[NATPMPError]] = {
    UnsupportedVersionError.result_code: UnsupportedVersionError,
    NotAuthorizedError.result_code: NotAuthorizedError,
    NetworkFailureError.result_code: NetworkFailureError,
    OutOfResourcesError.result_code: OutOfResourcesError,
    UnsupportedOpcodeError.result_code: UnsupportedOpcodeError,
}


def error_for_result_code(code: int) -> NATPMPError:
    """Build the exception matching a nonzero gateway result code."""
    details = {"result_code": code}
    error_cls = _RESULT_CODE_ERRORS.get(code)
    if error_cls is None:
        return UndefinedError(details=details, result_code=code)
    return error_cls(details=details)
