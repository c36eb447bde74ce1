"""Datagram transports used to reach the NAT-PMP gateway.

The client only consumes ``connect``/``send``/``recv``; anything that
provides them can be handed to a client session.
"""

from __future__ import annotations

import asyncio
import ipaddress
import logging
import socket
from typing import Protocol as TypingProtocol
from typing import runtime_checkable

from natpmpc.exceptions import ConnectError, SocketError
from natpmpc.protocol import NATPMP_PORT

logger = logging.getLogger(__name__)

DEFAULT_RECV_TIMEOUT = 0.25
Address = tuple[str, int]


@runtime_checkable
class UdpSocket(TypingProtocol):
    """Blocking datagram transport."""

    def connect(self, address: Address) -> None: ...

    def send(self, data: bytes) -> int: ...

    def recv(self, bufsize: int) -> bytes: ...


@runtime_checkable
class AsyncUdpSocket(TypingProtocol):
    """Coroutine-based datagram transport."""

    async def connect(self, address: Address) -> None: ...

    async def send(self, data: bytes) -> int: ...

    async def recv(self, bufsize: int) -> bytes: ...


def _bind_udp_socket(local_addr: Address) -> socket.socket:
    try:
        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    except OSError as e:
        raise SocketError(details={"error": str(e)}) from e
    try:
        sock.bind(local_addr)
    except OSError as e:
        sock.close()
        raise SocketError(details={"error": str(e), "local_addr": local_addr}) from e
    return sock


class BlockingUdpSocket:
    """UDP socket with a per-receive timeout."""

    def __init__(
        self,
        timeout: float | None = DEFAULT_RECV_TIMEOUT,
        local_addr: Address = ("0.0.0.0", 0),  # nosec B104 - ephemeral client port
    ):
        """Create and bind the socket.

        Raises:
            SocketError: If the socket cannot be created or bound

        """
        self._sock = _bind_udp_socket(local_addr)
        self._sock.settimeout(timeout)

    def connect(self, address: Address) -> None:
        self._sock.connect(address)

    def send(self, data: bytes) -> int:
        return self._sock.send(data)

    def recv(self, bufsize: int) -> bytes:
        return self._sock.recv(bufsize)

    def close(self) -> None:
        self._sock.close()

    def __enter__(self) -> BlockingUdpSocket:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()


class AsyncioUdpSocket:
    """Non-blocking UDP socket driven by the running event loop."""

    def __init__(
        self,
        timeout: float | None = DEFAULT_RECV_TIMEOUT,
        local_addr: Address = ("0.0.0.0", 0),  # nosec B104 - ephemeral client port
    ):
        """Create and bind the socket.

        Raises:
            SocketError: If the socket cannot be created or bound

        """
        self.timeout = timeout
        self._sock = _bind_udp_socket(local_addr)
        self._sock.setblocking(False)

    async def connect(self, address: Address) -> None:
        # connect() on a datagram socket only records the peer; it never blocks
        self._sock.connect(address)

    async def send(self, data: bytes) -> int:
        await asyncio.get_running_loop().sock_sendall(self._sock, data)
        return len(data)

    async def recv(self, bufsize: int) -> bytes:
        """Receive one datagram.

        Raises:
            TimeoutError: If nothing arrives within ``timeout`` seconds
            OSError: On socket errors (e.g. ICMP port unreachable)

        """
        loop = asyncio.get_running_loop()
        try:
            return await asyncio.wait_for(
                loop.sock_recv(self._sock, bufsize), timeout=self.timeout
            )
        except asyncio.TimeoutError as e:
            msg = f"No datagram within {self.timeout}s"
            raise TimeoutError(msg) from e

    async def close(self) -> None:
        self._sock.close()

    async def __aenter__(self) -> AsyncioUdpSocket:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()


def open_transport(
    gateway: ipaddress.IPv4Address,
    timeout: float | None = DEFAULT_RECV_TIMEOUT,
) -> BlockingUdpSocket:
    """Bind a blocking UDP socket and connect it to the gateway.

    Raises:
        SocketError: If the socket cannot be created or bound
        ConnectError: If the socket cannot be connected

    """
    sock = BlockingUdpSocket(timeout=timeout)
    address = (str(gateway), NATPMP_PORT)
    try:
        sock.connect(address)
    except OSError as e:
        sock.close()
        raise ConnectError(details={"gateway": address[0], "error": str(e)}) from e
    logger.debug("Connected UDP socket to %s:%d", *address)
    return sock


async def open_async_transport(
    gateway: ipaddress.IPv4Address,
    timeout: float | None = DEFAULT_RECV_TIMEOUT,
) -> AsyncioUdpSocket:
    """Bind an asyncio UDP socket and connect it to the gateway.

    Raises:
        SocketError: If the socket cannot be created or bound
        ConnectError: If the socket cannot be connected

    """
    sock = AsyncioUdpSocket(timeout=timeout)
    address = (str(gateway), NATPMP_PORT)
    try:
        await sock.connect(address)
    except OSError as e:
        await sock.close()
        raise ConnectError(details={"gateway": address[0], "error": str(e)}) from e
    logger.debug("Connected asyncio UDP socket to %s:%d", *address)
    return sock
