"""
Quake II out-of-band (OOB) packet framing

Connectionless packets in both directions are prefixed with four 0xFF
bytes. Anything without that marker is not a control packet.
"""

OOB_HEADER = b'\xff\xff\xff\xff'


def has_oob_header(data: bytes) -> bool:
    """
    Check whether a packet starts with the OOB marker.

    Args:
        data: Raw packet bytes

    Returns:
        True if the first four bytes are 0xFF

    Example:
        >>> has_oob_header(b'\\xff\\xff\\xff\\xffprint')
        True
        >>> has_oob_header(b'\\xff\\xff\\xff')
        False
    """
    return len(data) >= 4 and data[:4] == OOB_HEADER


def prepend_oob_header(data: bytes) -> bytes:
    """
    Build a new packet consisting of the OOB marker followed by ``data``.

    Args:
        data: Packet payload (may be empty)

    Returns:
        Framed packet
    """
    return OOB_HEADER + bytes(data)


def remove_oob_header(data: bytes) -> bytes:
    """
    Strip the OOB marker if present.

    When no marker is present the very same object is returned, not a copy.

    Args:
        data: Raw packet bytes

    Returns:
        Payload after the marker, or ``data`` itself
    """
    if not has_oob_header(data):
        return data
    return bytes(data[4:])


def build_oob_command(command: str) -> bytes:
    """
    Encode a connectionless command such as ``status``.

    Example:
        >>> build_oob_command('status')
        b'\\xff\\xff\\xff\\xffstatus'
    """
    return prepend_oob_header(command.encode('ascii'))
