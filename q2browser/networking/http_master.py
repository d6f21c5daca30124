"""
HTTP master server client

Some master servers publish their list over HTTP (e.g. q2servers.com with
``?raw=2``). The body carries the same 6-byte address records as the UDP
master, in one of three layouts:

- "+<digits>" / "-<digits>" prefix giving the record step (q2pro style)
- OOB-framed: 0xFF 0xFF 0xFF 0xFF then records
- raw records (most common)

Error pages are filtered out before any binary decoding.
"""

import asyncio
import logging
from typing import List, Optional

from aiohttp import ClientError, ClientSession, ClientTimeout, hdrs

from q2browser.models import Endpoint
from q2browser.networking.udp import race
from q2browser.protocol.byte_reader import ADDRESS_RECORD_SIZE, parse_address_records
from q2browser.protocol.packet import has_oob_header, remove_oob_header
from q2browser.protocol.url_validator import is_valid_http_url

HTTP_TIMEOUT = 10  # seconds

HTML_SIGNATURES = (b'<html', b'<!doctype')
SIZE_PREFIXES = b'+-'
MAX_PREFIX_DIGITS = 10
MAX_RECORD_SIZE = 2 ** 31 - 1


class HttpMasterServerClient:
    """
    HTTP master server client.

    Transport errors, timeouts, non-2xx statuses and undecodable bodies are
    logged and produce an empty list.
    """

    def __init__(self, config, logger: logging.Logger = None):
        """
        Initialize HTTP master server client.

        Args:
            config: Configuration with HTTP_MASTER_URL
            logger: Optional logger overriding the module logger
        """
        self.config = config
        self.logger = logger if logger is not None else logging.getLogger(__name__)

    async def query_servers(self, cancel_event: asyncio.Event = None) -> List[Endpoint]:
        """
        Fetch and decode the server list.

        Args:
            cancel_event: Optional event that aborts the request when set

        Returns:
            List of server endpoints (possibly empty)
        """
        url = self.config.HTTP_MASTER_URL

        if not url:
            self.logger.warning("[HTTP] HTTP master server URL is not configured")
            return []

        if not is_valid_http_url(url):
            self.logger.error(f"[HTTP] Invalid HTTP master server URL: {url}")
            return []

        self.logger.info(f"[HTTP] Fetching server list from HTTP master: {url}")

        try:
            result = await race(self._fetch(url), cancel_event=cancel_event)
        except asyncio.TimeoutError:
            self.logger.warning("[HTTP] HTTP master server request timed out")
            return []
        except ClientError as e:
            self.logger.error(f"[HTTP] HTTP error fetching master server: {e}", exc_info=True)
            return []
        except Exception as e:
            self.logger.error(f"[HTTP] Error fetching HTTP master server: {e}", exc_info=True)
            return []

        if result.cancelled:
            self.logger.info("[HTTP] HTTP master server request cancelled")
            return []

        data, content_type = result.value
        try:
            servers = self.parse_response(data, content_type)
        except Exception as e:
            self.logger.error(f"[HTTP] Error parsing HTTP master server response: {e}", exc_info=True)
            return []

        self.logger.info(f"[HTTP] Parsed {len(servers)} server(s) from HTTP master server")
        return servers

    async def _fetch(self, url: str):
        """
        Perform the GET request.

        Returns:
            (body bytes, Content-Type media type or '' if the header is absent)
        """
        async with ClientSession(timeout=ClientTimeout(total=HTTP_TIMEOUT)) as http_session:
            async with http_session.get(url) as resp:
                resp.raise_for_status()

                content_type = resp.content_type if hdrs.CONTENT_TYPE in resp.headers else ''
                self.logger.debug(f"[HTTP] Response Content-Type: {content_type}")

                data = await resp.read()
                self.logger.info(f"[HTTP] Received {len(data)} bytes from HTTP master server")

                return data, content_type

    def parse_response(self, data: bytes, content_type: str = '') -> List[Endpoint]:
        """
        Validate and decode a response body.

        Args:
            data: Response body
            content_type: Media type from the Content-Type header, or ''

        Returns:
            List of server endpoints (empty if the body was rejected)
        """
        if not data:
            self.logger.warning("[HTTP] HTTP master server returned empty response")
            return []

        # HTML is checked before the content type
        if data[:10].lower().startswith(HTML_SIGNATURES):
            self.logger.error("[HTTP] HTTP master server returned HTML response (likely an error page). Check the URL.")
            return []

        if self._is_textual(content_type):
            self.logger.error(f"[HTTP] HTTP master server returned unexpected content type: {content_type}. Expected binary data.")
            return []

        if data[0] in SIZE_PREFIXES:
            self.logger.debug("[HTTP] Detected binary format with prefix")
            record_size, offset = self._parse_size_prefix(data)
            return parse_address_records(data, record_size=record_size, offset=offset)

        if has_oob_header(data):
            self.logger.debug("[HTTP] Detected OOB header, removing and parsing")
            return parse_address_records(remove_oob_header(data))

        self.logger.debug("[HTTP] Parsing as pure binary format (6-byte chunks)")
        return parse_address_records(data)

    @staticmethod
    def _is_textual(content_type: Optional[str]) -> bool:
        """True if the content type says text/HTML while binary data was expected."""
        if not content_type:
            return False

        content_type = content_type.lower()
        if 'octet-stream' in content_type or 'application/' in content_type:
            return False
        return 'text/' in content_type or 'html' in content_type

    @staticmethod
    def _parse_size_prefix(data: bytes):
        """
        Read a "+<digits>" / "-<digits>" prefix.

        Returns:
            (record step, offset of the first record). Without usable digits
            (none, zero, or a value past 32 bits) the step is 6 and scanning
            starts right after the sign.

        Example:
            >>> HttpMasterServerClient._parse_size_prefix(b'+6\\xc0\\xa8\\x01\\x01\\x6c\\xfc')
            (6, 2)
        """
        end = 1
        while end < len(data) and 0x30 <= data[end] <= 0x39:
            end += 1

        digits = data[1:end].lstrip(b'0')
        if end > 1 and len(digits) <= MAX_PREFIX_DIGITS:
            record_size = int(digits or b'0')
            if 0 < record_size <= MAX_RECORD_SIZE:
                return record_size, end

        return ADDRESS_RECORD_SIZE, 1
