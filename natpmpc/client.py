"""NAT-PMP client sessions.

A session owns one connected datagram transport and one gateway address.
Each request/response pair is independent: ``send_*`` writes a request,
``read_response_or_retry`` waits for the reply, retrying the receive (never
the decode) up to ``max_attempts`` times.
"""

from __future__ import annotations

import asyncio
import inspect
import ipaddress
import logging
import time
from typing import TYPE_CHECKING

from natpmpc.exceptions import NetworkFailureError, RecvFromError, UnsupportedOpcodeError
from natpmpc.gateway import async_discover_default_gateway, discover_default_gateway
from natpmpc.protocol import (
    NATPMP_MAX_ATTEMPTS,
    NATPMP_RESPONSE_SIZE,
    GatewayResponse,
    MappingResponse,
    Protocol,
    Response,
    decode_response,
    encode_port_mapping_request,
    encode_public_address_request,
)
from natpmpc.transport import (
    DEFAULT_RECV_TIMEOUT,
    AsyncUdpSocket,
    UdpSocket,
    open_async_transport,
    open_transport,
)
from natpmpc.utils.backoff import ExponentialBackoff

if TYPE_CHECKING:
    from natpmpc.models import ClientConfig

logger = logging.getLogger(__name__)

DEFAULT_MAPPING_LIFETIME = 7200  # RFC 6886 section 3.3 recommendation


def _as_ipv4(gateway: ipaddress.IPv4Address | str) -> ipaddress.IPv4Address:
    return ipaddress.IPv4Address(gateway)


def _check_written(written: int, request: bytes) -> None:
    if written != len(request):
        raise NetworkFailureError(
            "Short write to gateway",
            details={"written": written, "expected": len(request)},
        )


def _expect_gateway(response: Response) -> GatewayResponse:
    if not isinstance(response, GatewayResponse):
        raise UnsupportedOpcodeError(
            "Expected a public address response",
            details={"response": type(response).__name__},
        )
    return response


def _expect_mapping(response: Response) -> MappingResponse:
    if not isinstance(response, MappingResponse):
        raise UnsupportedOpcodeError(
            "Expected a port mapping response",
            details={"response": type(response).__name__},
        )
    return response


def backoff_from_config(config: ClientConfig) -> ExponentialBackoff | None:
    """Build the receive backoff policy described by ``config``."""
    if not config.retry_backoff:
        return None
    return ExponentialBackoff(
        base_delay=config.retry_base_delay,
        max_delay=config.retry_max_delay,
    )


class NatpmpAsync:
    """Async NAT-PMP client session."""

    def __init__(
        self,
        transport: AsyncUdpSocket,
        gateway: ipaddress.IPv4Address | str,
        max_attempts: int = NATPMP_MAX_ATTEMPTS,
        backoff: ExponentialBackoff | None = None,
    ):
        """Wrap an already-connected transport.

        Args:
            transport: Connected datagram transport, owned by the session
            gateway: Gateway address the transport is connected to
            max_attempts: Receive attempts before giving up
            backoff: Optional delay policy between failed receives

        """
        self._transport = transport
        self._gateway = _as_ipv4(gateway)
        self.max_attempts = max_attempts
        self.backoff = backoff

    @property
    def gateway(self) -> ipaddress.IPv4Address:
        """NAT-PMP gateway address."""
        return self._gateway

    async def _write(self, request: bytes) -> None:
        try:
            written = await self._transport.send(request)
        except OSError as e:
            raise NetworkFailureError(details={"error": str(e)}) from e
        _check_written(written, request)
        logger.debug("Sent %d byte request to %s", written, self._gateway)

    async def send_public_address_request(self) -> None:
        """Send a public address request.

        Raises:
            NetworkFailureError: If the request cannot be written in full

        """
        await self._write(encode_public_address_request())

    async def send_port_mapping_request(
        self,
        protocol: Protocol,
        private_port: int,
        public_port: int,
        lifetime: int,
    ) -> None:
        """Send a port mapping request.

        Raises:
            NetworkFailureError: If the request cannot be written in full

        """
        await self._write(
            encode_port_mapping_request(protocol, private_port, public_port, lifetime)
        )

    async def read_response_or_retry(self) -> Response:
        """Receive and decode the gateway's reply.

        Only transport failures are retried; the first datagram received is
        decoded and its result returned or raised as is.

        Raises:
            RecvFromError: If every receive attempt failed
            NATPMPError: Any error decoded from the reply

        """
        for attempt in range(self.max_attempts):
            try:
                data = await self._transport.recv(NATPMP_RESPONSE_SIZE)
            except (OSError, asyncio.TimeoutError) as e:
                logger.debug(
                    "Receive attempt %d/%d from %s failed: %s",
                    attempt + 1,
                    self.max_attempts,
                    self._gateway,
                    e,
                )
                if self.backoff is not None and attempt + 1 < self.max_attempts:
                    await asyncio.sleep(self.backoff.next_delay(attempt))
                continue
            return decode_response(data)

        raise RecvFromError(
            details={"gateway": str(self._gateway), "attempts": self.max_attempts}
        )

    async def get_public_address(self) -> GatewayResponse:
        """Request and return the gateway's public address."""
        await self.send_public_address_request()
        return _expect_gateway(await self.read_response_or_retry())

    async def map_port(
        self,
        protocol: Protocol,
        private_port: int,
        public_port: int = 0,
        lifetime: int = DEFAULT_MAPPING_LIFETIME,
    ) -> MappingResponse:
        """Request a port mapping and return what the gateway granted."""
        await self.send_port_mapping_request(
            protocol, private_port, public_port, lifetime
        )
        mapping = _expect_mapping(await self.read_response_or_retry())
        logger.info(
            "Mapped %s port %s -> %s (lifetime: %s s)",
            mapping.protocol.value,
            mapping.private_port,
            mapping.public_port,
            int(mapping.lifetime.total_seconds()),
        )
        return mapping

    async def unmap_port(self, protocol: Protocol, private_port: int) -> MappingResponse:
        """Delete a mapping by requesting 0 lifetime (RFC 6886 section 3.4)."""
        mapping = await self.map_port(protocol, private_port, 0, 0)
        logger.info("Deleted %s port mapping for port %s", protocol.value, private_port)
        return mapping

    async def close(self) -> None:
        """Close the owned transport."""
        close = getattr(self._transport, "close", None)
        if close is None:
            return
        result = close()
        if inspect.isawaitable(result):
            await result

    async def __aenter__(self) -> NatpmpAsync:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()


class Natpmp:
    """Blocking NAT-PMP client session."""

    def __init__(
        self,
        transport: UdpSocket,
        gateway: ipaddress.IPv4Address | str,
        max_attempts: int = NATPMP_MAX_ATTEMPTS,
        backoff: ExponentialBackoff | None = None,
    ):
        """Wrap an already-connected transport."""
        self._transport = transport
        self._gateway = _as_ipv4(gateway)
        self.max_attempts = max_attempts
        self.backoff = backoff

    @property
    def gateway(self) -> ipaddress.IPv4Address:
        """NAT-PMP gateway address."""
        return self._gateway

    def _write(self, request: bytes) -> None:
        try:
            written = self._transport.send(request)
        except OSError as e:
            raise NetworkFailureError(details={"error": str(e)}) from e
        _check_written(written, request)
        logger.debug("Sent %d byte request to %s", written, self._gateway)

    def send_public_address_request(self) -> None:
        self._write(encode_public_address_request())

    def send_port_mapping_request(
        self,
        protocol: Protocol,
        private_port: int,
        public_port: int,
        lifetime: int,
    ) -> None:
        self._write(
            encode_port_mapping_request(protocol, private_port, public_port, lifetime)
        )

    def read_response_or_retry(self) -> Response:
        """Blocking counterpart of :meth:`NatpmpAsync.read_response_or_retry`."""
        for attempt in range(self.max_attempts):
            try:
                data = self._transport.recv(NATPMP_RESPONSE_SIZE)
            except OSError as e:
                logger.debug(
                    "Receive attempt %d/%d from %s failed: %s",
                    attempt + 1,
                    self.max_attempts,
                    self._gateway,
                    e,
                )
                if self.backoff is not None and attempt + 1 < self.max_attempts:
                    time.sleep(self.backoff.next_delay(attempt))
                continue
            return decode_response(data)

        raise RecvFromError(
            details={"gateway": str(self._gateway), "attempts": self.max_attempts}
        )

    def get_public_address(self) -> GatewayResponse:
        self.send_public_address_request()
        return _expect_gateway(self.read_response_or_retry())

    def map_port(
        self,
        protocol: Protocol,
        private_port: int,
        public_port: int = 0,
        lifetime: int = DEFAULT_MAPPING_LIFETIME,
    ) -> MappingResponse:
        self.send_port_mapping_request(protocol, private_port, public_port, lifetime)
        mapping = _expect_mapping(self.read_response_or_retry())
        logger.info(
            "Mapped %s port %s -> %s (lifetime: %s s)",
            mapping.protocol.value,
            mapping.private_port,
            mapping.public_port,
            int(mapping.lifetime.total_seconds()),
        )
        return mapping

    def unmap_port(self, protocol: Protocol, private_port: int) -> MappingResponse:
        mapping = self.map_port(protocol, private_port, 0, 0)
        logger.info("Deleted %s port mapping for port %s", protocol.value, private_port)
        return mapping

    def close(self) -> None:
        close = getattr(self._transport, "close", None)
        if close is not None:
            close()

    def __enter__(self) -> Natpmp:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()


async def new_natpmp_async_with(
    gateway: ipaddress.IPv4Address | str,
    timeout: float | None = DEFAULT_RECV_TIMEOUT,
    max_attempts: int = NATPMP_MAX_ATTEMPTS,
    backoff: ExponentialBackoff | None = None,
) -> NatpmpAsync:
    """Create an async session with a new asyncio transport to ``gateway``.

    Raises:
        SocketError: If the socket cannot be created or bound
        ConnectError: If the socket cannot be connected

    """
    gateway = _as_ipv4(gateway)
    transport = await open_async_transport(gateway, timeout)
    return NatpmpAsync(transport, gateway, max_attempts=max_attempts, backoff=backoff)


async def new_natpmp_async(
    timeout: float | None = DEFAULT_RECV_TIMEOUT,
    max_attempts: int = NATPMP_MAX_ATTEMPTS,
    backoff: ExponentialBackoff | None = None,
) -> NatpmpAsync:
    """Create an async session to the default gateway.

    Raises:
        GatewayNotFoundError: If the default gateway cannot be determined
        SocketError: If the socket cannot be created or bound
        ConnectError: If the socket cannot be connected

    """
    gateway = await async_discover_default_gateway()
    return await new_natpmp_async_with(gateway, timeout, max_attempts, backoff)


def new_natpmp_with(
    gateway: ipaddress.IPv4Address | str,
    timeout: float | None = DEFAULT_RECV_TIMEOUT,
    max_attempts: int = NATPMP_MAX_ATTEMPTS,
    backoff: ExponentialBackoff | None = None,
) -> Natpmp:
    """Create a blocking session with a new UDP socket to ``gateway``."""
    gateway = _as_ipv4(gateway)
    transport = open_transport(gateway, timeout)
    return Natpmp(transport, gateway, max_attempts=max_attempts, backoff=backoff)


def new_natpmp(
    timeout: float | None = DEFAULT_RECV_TIMEOUT,
    max_attempts: int = NATPMP_MAX_ATTEMPTS,
    backoff: ExponentialBackoff | None = None,
) -> Natpmp:
    """Create a blocking session to the default gateway."""
    return new_natpmp_with(discover_default_gateway(), timeout, max_attempts, backoff)
