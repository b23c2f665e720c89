"""
HTTP retrieval of the MIV feed documents
"""
from typing import Optional
import codecs
import logging
import re

import requests

from traffic_feed.core.config import settings
from traffic_feed.core.errors import FetchError

logger = logging.getLogger(__name__)

_XML_ENCODING = re.compile(rb'\A\s*<\?xml[^>]*?\bencoding\s*=\s*["\']([A-Za-z][A-Za-z0-9._-]*)["\']')


def document_encoding(content: bytes) -> str:
    """Encoding named in the XML declaration, UTF-8 when there is none"""
    if content.startswith(codecs.BOM_UTF8):
        return "utf-8-sig"
    match = _XML_ENCODING.match(content)
    return match.group(1).decode("ascii") if match else "utf-8"


class FeedFetcher:
    """
    Fetches a feed document as text
    Single attempt per call; any failure raises FetchError
    """

    def __init__(self, session: Optional[requests.Session] = None, timeout: Optional[float] = None):
        self.session = session or requests.Session()
        self.timeout = timeout if timeout is not None else settings.FETCH_TIMEOUT_SECONDS

    def fetch(self, url: str) -> str:
        try:
            response = self.session.get(url, timeout=self.timeout)
            response.raise_for_status()
        except requests.HTTPError as e:
            status_code = e.response.status_code if e.response is not None else None
            raise FetchError(f"GET {url} returned HTTP {status_code}", url=url, status_code=status_code) from e
        except requests.RequestException as e:
            raise FetchError(f"GET {url} failed: {e}", url=url) from e

        # requests falls back to ISO-8859-1 for text/* without a charset
        response.encoding = document_encoding(response.content)
        logger.debug(f"Fetched {len(response.content)} bytes ({response.encoding}) from {url}")
        return response.text

    def close(self):
        self.session.close()
