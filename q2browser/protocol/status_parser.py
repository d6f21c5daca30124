"""
Quake II status reply parsing

A ``status`` reply (after the OOB marker) looks like:

    print\\n
    \\hostname\\My Server\\mapname\\q2dm1\\maxclients\\16\\n
    10 20 "Alice"\\n
    3 45 "Bob"\\n

The first line is the infostring: backslash-delimited key/value pairs
(cvars). Each following line is one player: score, ping and quoted name.
Servers are not always well-behaved, so both parts have a tolerant
fallback.
"""

import logging
import re
from typing import Dict, Optional

from q2browser.models import PlayerInfo, StatusResponse

PRINT_PREFIX = 'print\n'

CVAR_RE = re.compile(r'\\([^\\]+)\\([^\\]*)')
PLAYER_RE = re.compile(r'^(\d+)\s+(\d+)\s+"([^"]*)"')
INT_RE = re.compile(r'[+-]?\d{1,10}', re.ASCII)

INT32_MIN = -2 ** 31
INT32_MAX = 2 ** 31 - 1

logger = logging.getLogger(__name__)


def parse_infostring(infostring: str) -> Dict[str, str]:
    """
    Parse backslash-delimited key/value pairs.

    Pairs are matched with a regular expression first. Only when that finds
    nothing is the string split on backslashes and paired up token by token.
    Duplicate keys keep the last value.

    Args:
        infostring: First line of a status reply

    Returns:
        Dictionary of cvars

    Example:
        >>> parse_infostring('\\\\hostname\\\\MyServer\\\\mapname\\\\q2dm1')
        {'hostname': 'MyServer', 'mapname': 'q2dm1'}
        >>> parse_infostring('hostname\\\\MyServer')
        {'hostname': 'MyServer'}
    """
    cvars = {}

    for match in CVAR_RE.finditer(infostring):
        key, value = match.group(1), match.group(2)
        if key:
            cvars[key] = value

    if not cvars and infostring:
        logger.warning(f"No cvars matched, falling back to token parse. Infostring: {infostring}")

        parts = [part for part in infostring.split('\\') if part]
        for i in range(0, len(parts), 2):
            key = parts[i]
            value = parts[i + 1] if i + 1 < len(parts) else ''
            cvars[key] = value

    return cvars


def _parse_int32(token: str) -> Optional[int]:
    """Decimal token within signed 32-bit range, or None."""
    if not INT_RE.fullmatch(token):
        return None
    value = int(token)
    if not INT32_MIN <= value <= INT32_MAX:
        return None
    return value


def parse_player_line(line: str) -> Optional[PlayerInfo]:
    """
    Parse one player line.

    Args:
        line: ``score ping "name"``, quotes optional

    Returns:
        PlayerInfo, or None if the line is not a player entry

    Example:
        >>> parse_player_line('10 20 "Alice"')
        PlayerInfo(score=10, ping=20, name='Alice')
        >>> parse_player_line('-1 999 Bob the Builder')
        PlayerInfo(score=-1, ping=999, name='Bob the Builder')
    """
    line = line.strip()
    if not line:
        return None

    match = PLAYER_RE.match(line)
    if match:
        score = _parse_int32(match.group(1))
        ping = _parse_int32(match.group(2))
        if score is None or ping is None:
            return None
        return PlayerInfo(score=score, ping=ping, name=match.group(3))

    # Some servers omit the quotes around the name
    parts = line.split()
    if len(parts) < 3:
        return None

    score = _parse_int32(parts[0])
    ping = _parse_int32(parts[1])
    if score is None or ping is None:
        return None

    return PlayerInfo(score=score, ping=ping, name=' '.join(parts[2:]).strip('"'))


def parse_status_response(response: str) -> StatusResponse:
    """
    Parse a status reply into cvars and players.

    Args:
        response: Reply text with the OOB marker already removed

    Returns:
        StatusResponse with cvars and players in reply order

    Example:
        >>> r = parse_status_response('print\\n\\\\hostname\\\\MyServer\\n10 20 "Alice"\\n')
        >>> r.cvars, r.players
        ({'hostname': 'MyServer'}, [PlayerInfo(score=10, ping=20, name='Alice')])
    """
    if response[:len(PRINT_PREFIX)].lower() == PRINT_PREFIX:
        response = response[len(PRINT_PREFIX):]

    infostring, _, players_section = response.partition('\n')
    logger.debug(f"Infostring: {infostring}")

    cvars = parse_infostring(infostring)
    if not cvars:
        logger.warning(f"Still no cvars parsed from infostring: {infostring}")

    players = []
    for line in players_section.split('\n'):
        if not line.strip():
            continue
        player = parse_player_line(line)
        if player is None:
            logger.debug(f"Skipping unparsable player line: {line!r}")
            continue
        players.append(player)

    return StatusResponse(cvars=cvars, players=players)
