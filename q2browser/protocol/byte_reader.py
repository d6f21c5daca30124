"""
Binary helpers for master server address lists

Master servers answer with a flat run of 6-byte records:
4 bytes of IPv4 address (already in dotted-quad order) followed by a
big-endian 16-bit port.
"""

import socket
import struct
from typing import List, Optional

from q2browser.models import Endpoint

ADDRESS_RECORD_SIZE = 6


def read_big_endian_uint16(data: bytes, offset: int) -> int:
    """
    Read an unsigned 16-bit big-endian integer.

    Args:
        data: Buffer to read from
        offset: Position of the high byte

    Returns:
        Integer in the range 0-65535

    Raises:
        TypeError: If data is None
        IndexError: If fewer than two bytes are available at offset

    Example:
        >>> read_big_endian_uint16(b'\\x6c\\xfc', 0)
        27900
    """
    if data is None:
        raise TypeError("data must not be None")
    if offset < 0 or offset + 2 > len(data):
        raise IndexError(f"offset {offset} is out of bounds for {len(data)} bytes")

    return struct.unpack_from('>H', data, offset)[0]


def parse_server_address(data: bytes, offset: int) -> Optional[Endpoint]:
    """
    Decode one 6-byte address record.

    Running out of data is the normal way a scan over a flat buffer ends,
    so it yields None rather than an error.

    Args:
        data: Buffer holding address records
        offset: Start of the record

    Returns:
        Endpoint, or None if fewer than 6 bytes remain

    Raises:
        TypeError: If data is None
        ValueError: If offset is negative

    Example:
        >>> parse_server_address(bytes([192, 168, 1, 1, 0x6C, 0xFC]), 0)
        Endpoint(address='192.168.1.1', port=27900)
    """
    if data is None:
        raise TypeError("data must not be None")
    if offset < 0:
        raise ValueError(f"offset cannot be negative: {offset}")
    if len(data) < offset + ADDRESS_RECORD_SIZE:
        return None

    address = socket.inet_ntoa(bytes(data[offset:offset + 4]))
    port = read_big_endian_uint16(data, offset + 4)

    return Endpoint(address, port)


def parse_address_records(data: bytes, record_size: int = ADDRESS_RECORD_SIZE,
                          offset: int = 0) -> List[Endpoint]:
    """
    Decode every complete record in a buffer.

    Records are read every ``record_size`` bytes starting at ``offset``;
    a trailing partial record is dropped.

    Args:
        data: Buffer holding address records
        record_size: Distance between record starts
        offset: Position of the first record

    Returns:
        List of decoded endpoints

    Raises:
        ValueError: If record_size is not positive
    """
    if record_size <= 0:
        raise ValueError(f"record_size must be positive: {record_size}")

    servers = []

    while offset + record_size <= len(data):
        endpoint = parse_server_address(data, offset)
        if endpoint is None:
            break
        servers.append(endpoint)
        offset += record_size

    return servers
