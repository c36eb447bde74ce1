"""Default gateway discovery.

RFC 6886 section 3.1: the NAT-PMP server is the host's default gateway.
"""

from __future__ import annotations

import asyncio
import ipaddress
import logging
import platform
import socket
import struct
import subprocess
from pathlib import Path

from natpmpc.exceptions import GatewayNotFoundError

logger = logging.getLogger(__name__)

PROC_NET_ROUTE = Path("/proc/net/route")
_RTF_GATEWAY = 0x2
_COMMAND_TIMEOUT = 5


def _gateway_from_proc_route(text: str) -> ipaddress.IPv4Address | None:
    """Parse the Linux kernel routing table.

    Columns: Iface Destination Gateway Flags ...; addresses are
    little-endian hex.
    """
    for line in text.splitlines()[1:]:
        fields = line.split()
        if len(fields) < 4:
            continue
        destination, gateway, flags = fields[1], fields[2], fields[3]
        try:
            if destination != "00000000" or not int(flags, 16) & _RTF_GATEWAY:
                continue
            packed = struct.pack("<I", int(gateway, 16))
        except (ValueError, struct.error):
            continue
        return ipaddress.IPv4Address(socket.inet_ntoa(packed))
    return None


def _gateway_from_command_output(output: str) -> ipaddress.IPv4Address | None:
    # Linux ip: "default via 192.168.1.1 dev eth0"
    # macOS route: "gateway: 192.168.1.1"
    for line in output.splitlines():
        parts = line.split()
        for i, part in enumerate(parts):
            if part in ("via", "gateway:") and i + 1 < len(parts):
                try:
                    return ipaddress.IPv4Address(parts[i + 1].split("/")[0])
                except ValueError:
                    continue
    return None


def _gateway_from_route_print(output: str) -> ipaddress.IPv4Address | None:
    # Windows: "0.0.0.0          0.0.0.0         192.168.1.1     192.168.1.100"
    for line in output.splitlines():
        parts = line.split()
        if len(parts) >= 3 and parts[0] == "0.0.0.0" and parts[1] == "0.0.0.0":  # nosec B104 - routing table parsing
            try:
                return ipaddress.IPv4Address(parts[2])
            except ValueError:
                continue
    return None


def _run(cmd: list[str]) -> str | None:
    try:
        result = subprocess.run(
            cmd,
            check=False,
            capture_output=True,
            text=True,
            timeout=_COMMAND_TIMEOUT,
        )
    except (OSError, subprocess.TimeoutExpired) as e:
        logger.debug("Route command %s failed: %s", cmd[0], e)
        return None
    if result.returncode != 0:
        return None
    return result.stdout


def discover_default_gateway() -> ipaddress.IPv4Address:
    """Return the IPv4 address of the default gateway.

    Raises:
        GatewayNotFoundError: If no default IPv4 route can be found

    """
    system = platform.system()

    if system == "Windows":
        output = _run(["route", "print", "0.0.0.0"])  # nosec B104 - routing table query, not bind
        gateway = _gateway_from_route_print(output) if output else None
        if gateway is not None:
            return gateway
    else:
        if PROC_NET_ROUTE.exists():
            try:
                gateway = _gateway_from_proc_route(
                    PROC_NET_ROUTE.read_text(encoding="ascii")
                )
            except OSError as e:
                logger.debug("Cannot read %s: %s", PROC_NET_ROUTE, e)
            else:
                if gateway is not None:
                    return gateway

        for cmd in (
            ["ip", "-4", "route", "show", "default"],
            ["route", "-n", "get", "default"],
        ):
            output = _run(cmd)
            if not output:
                continue
            gateway = _gateway_from_command_output(output)
            if gateway is not None:
                return gateway

    raise GatewayNotFoundError(details={"platform": system})


async def async_discover_default_gateway() -> ipaddress.IPv4Address:
    """Run :func:`discover_default_gateway` in a worker thread."""
    return await asyncio.to_thread(discover_default_gateway)
