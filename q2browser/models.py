"""
Data types shared by the discovery clients and the probe engine
"""

from dataclasses import dataclass, field
from typing import Dict, List, NamedTuple, Optional

from q2browser.protocol.colors import strip_color_codes


class Endpoint(NamedTuple):
    """IPv4 address and port of a game server.

    Being a plain tuple, an Endpoint can be handed straight to
    ``transport.sendto()``.
    """

    address: str
    port: int

    def __str__(self):
        return f"{self.address}:{self.port}"


@dataclass
class PlayerInfo:
    score: int
    ping: int
    name: str = ""


@dataclass
class StatusResponse:
    """Parsed form of a ``status`` reply."""

    cvars: Dict[str, str] = field(default_factory=dict)
    players: List[PlayerInfo] = field(default_factory=list)


@dataclass
class ServerEntry:
    """
    Live status of one game server.

    Only the raw cvars and player list are stored; hostname, map, mod and
    player counts are derived from them on access.
    """

    address: str
    port: int
    ping: Optional[int] = None
    cvars: Dict[str, str] = field(default_factory=dict)
    players: List[PlayerInfo] = field(default_factory=list)
    is_favorite: bool = False
    country_code: Optional[str] = None

    @property
    def endpoint(self) -> Endpoint:
        return Endpoint(self.address, self.port)

    @property
    def full_address(self) -> str:
        return f"{self.address}:{self.port}"

    @property
    def hostname(self) -> str:
        return self.cvars.get('hostname', 'Unknown Server')

    @property
    def display_hostname(self) -> str:
        """Hostname with Quake II color codes removed"""
        return strip_color_codes(self.hostname)

    @property
    def map(self) -> str:
        return self.cvars.get('mapname', 'Unknown')

    @property
    def mod(self) -> str:
        return self.cvars.get('game', 'baseq2')

    @property
    def max_clients(self) -> int:
        try:
            return int(self.cvars.get('maxclients', '0'))
        except ValueError:
            return 0

    @property
    def current_players(self) -> int:
        return len(self.players)
