"""
Exception types for the Quake II server browser

Discovery and probing never raise for network conditions (no reply, DNS
miss, malformed packet); those are logged and degrade to empty results.
Only configuration assignment and misuse of a closed probe engine raise.
"""


class Q2BrowserError(Exception):
    """Base class for browser errors"""


class ConfigurationError(Q2BrowserError, ValueError):
    """Raised when a configuration value is rejected at assignment"""


class ProbeEngineClosedError(Q2BrowserError, RuntimeError):
    """Raised when a closed GameServerProbe is used"""

    def __init__(self):
        super().__init__("GameServerProbe is already closed")
