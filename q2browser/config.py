"""
Configuration for the Quake II server browser

Values come from the environment (and a .env file if present). Every
validated attribute checks its value on assignment, so a bad setting fails
here instead of surfacing later as a network error.
"""

import os
from dotenv import load_dotenv

from q2browser.errors import ConfigurationError
from q2browser.protocol.url_validator import is_valid_http_url

# Load environment variables
load_dotenv()

TRUE_VALUES = ('1', 'true', 'yes', 'on')
FALSE_VALUES = ('0', 'false', 'no', 'off', '')


def _env_int(name: str, default: str) -> int:
    raw = os.getenv(name, default)
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}")


def _env_bool(name: str, default: str) -> bool:
    raw = os.getenv(name, default).strip().lower()
    if raw in TRUE_VALUES:
        return True
    if raw in FALSE_VALUES:
        return False
    raise ConfigurationError(f"{name} must be a boolean, got {raw!r}")


def _check_range(name: str, value: int, low: int, high: int) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or not low <= value <= high:
        raise ConfigurationError(f"{name} must be between {low} and {high}, got {value!r}")
    return value


class Config:
    """Browser configuration"""

    def __init__(self):
        # UDP master server
        self.MASTER_HOST = os.getenv('MASTER_HOST', 'master.quake2.com')
        self.MASTER_PORT = _env_int('MASTER_PORT', '27900')

        # HTTP master server (preferred when enabled)
        self.USE_HTTP_MASTER = _env_bool('USE_HTTP_MASTER', 'true')
        self.HTTP_MASTER_URL = os.getenv('HTTP_MASTER_URL', 'http://q2servers.com/?raw=2')

        # LAN broadcast discovery
        self.ENABLE_LAN_BROADCAST = _env_bool('ENABLE_LAN_BROADCAST', 'true')
        self.LAN_BROADCAST_ADDRESS = os.getenv('LAN_BROADCAST_ADDRESS', '255.255.255.255')
        self.LAN_SERVER_PORT = _env_int('LAN_SERVER_PORT', '27910')

        # Server probing
        self.MAX_CONCURRENT_PROBES = _env_int('MAX_CONCURRENT_PROBES', '75')
        self.PROBE_TIMEOUT_MS = _env_int('PROBE_TIMEOUT_MS', '3000')

        # Addresses ("ip:port") flagged as favorites in results
        self.FAVORITES = [
            item.strip() for item in os.getenv('FAVORITES', '').split(',') if item.strip()
        ]

        # Logging
        self.LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')

    # -------------------------------------------------------------------------
    # Validated settings
    # -------------------------------------------------------------------------

    @property
    def MASTER_HOST(self) -> str:
        return self._master_host

    @MASTER_HOST.setter
    def MASTER_HOST(self, value: str):
        if not value or not isinstance(value, str) or not value.strip():
            raise ConfigurationError("MASTER_HOST must not be empty")
        self._master_host = value.strip()

    @property
    def MASTER_PORT(self) -> int:
        return self._master_port

    @MASTER_PORT.setter
    def MASTER_PORT(self, value: int):
        self._master_port = _check_range('MASTER_PORT', value, 1, 65535)

    @property
    def HTTP_MASTER_URL(self):
        return self._http_master_url

    @HTTP_MASTER_URL.setter
    def HTTP_MASTER_URL(self, value):
        if value is not None and not str(value).strip():
            value = None
        if value is not None and not is_valid_http_url(value):
            raise ConfigurationError(f"HTTP_MASTER_URL must be a valid HTTP or HTTPS URL, got {value!r}")
        self._http_master_url = value

    @property
    def LAN_SERVER_PORT(self) -> int:
        return self._lan_server_port

    @LAN_SERVER_PORT.setter
    def LAN_SERVER_PORT(self, value: int):
        self._lan_server_port = _check_range('LAN_SERVER_PORT', value, 1, 65535)

    @property
    def MAX_CONCURRENT_PROBES(self) -> int:
        return self._max_concurrent_probes

    @MAX_CONCURRENT_PROBES.setter
    def MAX_CONCURRENT_PROBES(self, value: int):
        self._max_concurrent_probes = _check_range('MAX_CONCURRENT_PROBES', value, 1, 200)

    @property
    def PROBE_TIMEOUT_MS(self) -> int:
        return self._probe_timeout_ms

    @PROBE_TIMEOUT_MS.setter
    def PROBE_TIMEOUT_MS(self, value: int):
        self._probe_timeout_ms = _check_range('PROBE_TIMEOUT_MS', value, 1, 60000)

    @classmethod
    def from_env(cls):
        """Create config from environment"""
        return cls()

    def __repr__(self):
        return (
            f"<Config MASTER={self.MASTER_HOST}:{self.MASTER_PORT} "
            f"HTTP={self.HTTP_MASTER_URL if self.USE_HTTP_MASTER else 'off'} "
            f"LAN={'on' if self.ENABLE_LAN_BROADCAST else 'off'} "
            f"PROBES={self.MAX_CONCURRENT_PROBES}x{self.PROBE_TIMEOUT_MS}ms>"
        )


# Singleton instance
config = Config()
