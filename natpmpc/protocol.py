"""NAT-PMP (NAT Port Mapping Protocol) wire codec per RFC 6886.

Requests are encoded into fixed-size buffers and responses are decoded from
a 16-byte receive area. This module performs no I/O.
"""

from __future__ import annotations

import ipaddress
import struct
from dataclasses import dataclass
from datetime import timedelta
from enum import Enum, IntEnum
from typing import Union

from natpmpc.exceptions import (
    UnsupportedOpcodeError,
    UnsupportedVersionError,
    error_for_result_code,
)

# RFC 6886 constants
NATPMP_PORT = 5351
NATPMP_VERSION = 0
NATPMP_MAX_ATTEMPTS = 9
NATPMP_RESPONSE_SIZE = 16

PUBLIC_ADDRESS_REQUEST_SIZE = 2
MAPPING_REQUEST_SIZE = 12


class Protocol(Enum):
    """Transport protocol of a port mapping."""

    UDP = "udp"
    TCP = "tcp"


class NATPMPOpcode(IntEnum):
    """NAT-PMP opcodes from RFC 6886."""

    PUBLIC_ADDRESS_REQUEST = 0
    UDP_MAPPING_REQUEST = 1
    TCP_MAPPING_REQUEST = 2
    PUBLIC_ADDRESS_RESPONSE = 128
    UDP_MAPPING_RESPONSE = 129
    TCP_MAPPING_RESPONSE = 130


class NATPMPResult(IntEnum):
    """NAT-PMP result codes from RFC 6886 section 3.5."""

    SUCCESS = 0
    UNSUPPORTED_VERSION = 1
    NOT_AUTHORIZED = 2  # e.g., gateway has NAT-PMP disabled
    NETWORK_FAILURE = 3
    OUT_OF_RESOURCES = 4
    UNSUPPORTED_OPCODE = 5


@dataclass(frozen=True)
class PublicAddressRequest:
    """Request for the gateway's external address."""


@dataclass(frozen=True)
class MappingRequest:
    """Request to create, renew or delete a port mapping."""

    protocol: Protocol
    private_port: int
    public_port: int
    lifetime: int  # seconds


@dataclass(frozen=True)
class GatewayResponse:
    """Public address reported by the gateway."""

    epoch: int
    public_address: ipaddress.IPv4Address


@dataclass(frozen=True)
class MappingResponse:
    """Port mapping granted by the gateway."""

    protocol: Protocol
    epoch: int
    private_port: int
    public_port: int
    lifetime: timedelta


Response = Union[GatewayResponse, MappingResponse]
Request = Union[PublicAddressRequest, MappingRequest]


def _be16(buf: bytes, offset: int) -> int:
    return struct.unpack("!H", buf[offset : offset + 2])[0]


def _be32(buf: bytes, offset: int) -> int:
    return struct.unpack("!I", buf[offset : offset + 4])[0]


def encode_public_address_request() -> bytes:
    """Encode public address request (RFC 6886 section 3.2)."""
    # Version (1 byte): 0
    # Opcode (1 byte): 0 (PUBLIC_ADDRESS_REQUEST)
    return struct.pack("!BB", NATPMP_VERSION, NATPMPOpcode.PUBLIC_ADDRESS_REQUEST)


def encode_port_mapping_request(
    protocol: Protocol,
    private_port: int,
    public_port: int,
    lifetime: int,
) -> bytes:
    """Encode port mapping request (RFC 6886 section 3.3).

    Args:
        protocol: Protocol.UDP or Protocol.TCP
        private_port: Internal port
        public_port: Suggested external port (0 lets the gateway choose)
        lifetime: Requested lifetime in seconds (0 deletes the mapping)

    Returns:
        The 12-byte request message

    Raises:
        struct.error: If a value does not fit its wire width

    """
    opcode = (
        NATPMPOpcode.UDP_MAPPING_REQUEST
        if protocol is Protocol.UDP
        else NATPMPOpcode.TCP_MAPPING_REQUEST
    )
    # version(1), opcode(1), reserved(2), private_port(2), public_port(2),
    # lifetime(4)
    return struct.pack(
        "!BBHHHI",
        NATPMP_VERSION,
        opcode,
        0,  # reserved
        private_port,
        public_port,
        lifetime,
    )


def decode_request(data: bytes) -> Request:
    """Decode a request message, the inverse of the two encoders.

    Raises:
        UnsupportedVersionError: If the version byte is not 0
        UnsupportedOpcodeError: If the opcode is not a request opcode
        ValueError: If the message is shorter than its opcode requires

    """
    if len(data) < PUBLIC_ADDRESS_REQUEST_SIZE:
        msg = "Request too short"
        raise ValueError(msg)
    if data[0] != NATPMP_VERSION:
        raise UnsupportedVersionError(details={"version": data[0]})
    opcode = data[1]
    if opcode == NATPMPOpcode.PUBLIC_ADDRESS_REQUEST:
        return PublicAddressRequest()
    if opcode not in (
        NATPMPOpcode.UDP_MAPPING_REQUEST,
        NATPMPOpcode.TCP_MAPPING_REQUEST,
    ):
        raise UnsupportedOpcodeError(details={"opcode": opcode})
    if len(data) < MAPPING_REQUEST_SIZE:
        msg = "Request too short"
        raise ValueError(msg)
    return MappingRequest(
        protocol=Protocol.UDP
        if opcode == NATPMPOpcode.UDP_MAPPING_REQUEST
        else Protocol.TCP,
        private_port=_be16(data, 4),
        public_port=_be16(data, 6),
        lifetime=_be32(data, 8),
    )


def decode_response(data: bytes) -> Response:
    """Decode a gateway response.

    The first 16 bytes of ``data`` are read as the receive area; bytes that
    were not received read as zero.

    Raises:
        UnsupportedVersionError: Version is not 0, or result code 1
        UnsupportedOpcodeError: Opcode outside 128..130, or result code 5
        NotAuthorizedError: Result code 2
        NetworkFailureError: Result code 3
        OutOfResourcesError: Result code 4
        UndefinedError: Any other nonzero result code

    """
    buf = bytes(data[:NATPMP_RESPONSE_SIZE]).ljust(NATPMP_RESPONSE_SIZE, b"\x00")

    if buf[0] != NATPMP_VERSION:
        raise UnsupportedVersionError(details={"version": buf[0]})

    opcode = buf[1]
    if not (
        NATPMPOpcode.PUBLIC_ADDRESS_RESPONSE
        <= opcode
        <= NATPMPOpcode.TCP_MAPPING_RESPONSE
    ):
        raise UnsupportedOpcodeError(details={"opcode": opcode})

    result = _be16(buf, 2)
    if result != NATPMPResult.SUCCESS:
        raise error_for_result_code(result)

    epoch = _be32(buf, 4)
    subtype = opcode & 0x7F
    if subtype == NATPMPOpcode.PUBLIC_ADDRESS_REQUEST:
        return GatewayResponse(
            epoch=epoch,
            public_address=ipaddress.IPv4Address(_be32(buf, 8)),
        )

    return MappingResponse(
        protocol=Protocol.UDP
        if subtype == NATPMPOpcode.UDP_MAPPING_REQUEST
        else Protocol.TCP,
        epoch=epoch,
        private_port=_be16(buf, 8),
        public_port=_be16(buf, 10),
        lifetime=timedelta(seconds=_be32(buf, 12)),
    )
