"""
Neura WebDialog Heat Pump Client

This module logs into the embedded web interface of a Neura heat pump
(the mobile JSP pages of the WebDialog controller) and reads status
values out of the returned HTML.

Usage:
    client = NeuraClient("192.168.1.50")
    session_id = client.login("user", "password")
    html = client.fetch_page("schema.jsp", session_id)
    raw = extract_value(html, "room")
    value = coerce_value(raw, ValueType.FLOAT)
"""

import os
import re
import logging
from typing import Union
from urllib.parse import urljoin

import requests
from bs4 import BeautifulSoup

from neura_pages import ConfigError, ValueType

logger = logging.getLogger("neura_client")

JSP_PATH = "/neura/mobile/jsp/"
SESSION_FIELD = "SESSIONID"
DEFAULT_TIMEOUT = 10

# The controller declares windows-1252 but actually sends UTF-8
DECLARED_CHARSET = "windows-1252"

# Longest first, "Â°C" is "°C" decoded with the declared charset
CELSIUS_SUFFIXES = ("Â°C", "°C", "°")

# Leading numeric prefix, as lenient legacy float parsing reads it
FLOAT_PREFIX = re.compile(r"[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")


class NeuraError(Exception):
    """Base exception for Neura client errors."""
    pass


class LoginError(NeuraError):
    """Raised when login fails."""
    pass


class FetchError(NeuraError):
    """Raised when a page cannot be retrieved."""
    pass


class ExtractError(NeuraError):
    """Raised when an element or its value attribute is missing."""
    pass


class CoerceError(NeuraError):
    """Raised in strict mode when a float value is not numeric."""
    pass


def parse_html(html: str) -> BeautifulSoup:
    """Parse device HTML into a queryable document."""
    return BeautifulSoup(html, "html.parser")


def extract_value(html: Union[str, BeautifulSoup], element_id: str) -> str:
    """
    Read the value attribute of the element with the given id.

    Args:
        html: Raw page HTML or a document returned by parse_html()
        element_id: Exact id of the element

    Returns:
        The raw attribute text

    Raises:
        ExtractError: If the element or its value attribute is missing
    """
    document = parse_html(html) if isinstance(html, str) else html
    element = document.find(id=element_id)
    if element is None:
        raise ExtractError(f"No element with id '{element_id}'")

    value = element.get("value")
    if value is None:
        raise ExtractError(f"Element '{element_id}' has no value attribute")
    return value


def _strip_celsius(raw: str) -> str:
    text = raw.strip()
    for suffix in CELSIUS_SUFFIXES:
        if text.endswith(suffix):
            return text[:-len(suffix)].strip()
    return text


def coerce_value(raw: str, value_type: ValueType, strict: bool = False):
    """
    Convert raw element text into the published value.

    Floats lose their degree-Celsius suffix and are read from the leading
    numeric part of the text. Text without a number yields 0.0 unless
    strict is set. Booleans are 1 for exactly "ON" and 0 otherwise.

    Raises:
        CoerceError: In strict mode, for float text without a number
        ConfigError: For an unsupported value type
    """
    if value_type is ValueType.FLOAT:
        match = FLOAT_PREFIX.match(_strip_celsius(raw))
        if match is None:
            if strict:
                raise CoerceError(f"Not a number: {raw!r}")
            return 0.0
        return float(match.group(0))

    if value_type is ValueType.BOOL:
        return 1 if raw == "ON" else 0

    raise ConfigError(f"Unsupported value type: {value_type!r}")


def _decode(response: requests.Response) -> str:
    """Force UTF-8 and fix the mislabeled charset declaration."""
    response.encoding = "utf-8"
    return response.text.replace(DECLARED_CHARSET, "UTF-8")


class NeuraClient:
    """Client for the Neura WebDialog web interface."""

    def __init__(self, host: str, timeout: float = DEFAULT_TIMEOUT):
        if "://" not in host:
            host = f"http://{host}"
        self.base_url = urljoin(host.rstrip("/") + "/", JSP_PATH.lstrip("/"))
        self.timeout = timeout
        self.session = requests.Session()
        self.session.headers.update({
            "User-Agent": "Mozilla/5.0 (Linux; Android 10) AppleWebKit/537.36",
            "Accept": "text/html,application/xhtml+xml,*/*;q=0.8",
        })

    def page_url(self, url: str) -> str:
        """Resolve a page URL relative to the JSP base."""
        return urljoin(self.base_url, url)

    def _get(self, url: str, **kwargs) -> requests.Response:
        """Make a GET request to the device."""
        url = self.page_url(url)
        logger.debug(f"GET {url}")
        response = self.session.get(url, timeout=self.timeout, **kwargs)
        logger.debug(f"Response status: {response.status_code}")
        return response

    def _post(self, url: str, **kwargs) -> requests.Response:
        """Make a POST request to the device."""
        url = self.page_url(url)
        logger.debug(f"POST {url}")
        response = self.session.post(url, timeout=self.timeout, **kwargs)
        logger.debug(f"Response status: {response.status_code}")
        return response

    def login(self, username: str, password: str) -> str:
        """
        Login to the heat pump web interface.

        Args:
            username: Web interface user
            password: Web interface password

        Returns:
            The session id required by the inner pages

        Raises:
            LoginError: If login fails
        """
        try:
            # Establish the cookie context first
            self._get("login.jsp")
            response = self._post(
                "mainmenu.jsp",
                data={
                    "USER": username,
                    "PASSWORD": password,
                    "loginButton": "LOGIN",
                },
                allow_redirects=True,
            )
            response.raise_for_status()
        except requests.RequestException as e:
            raise LoginError(f"Login request failed: {e}") from e

        document = parse_html(_decode(response))
        element = document.find(attrs={"name": SESSION_FIELD})
        if element is None:
            logger.debug(f"Response URL: {response.url}")
            raise LoginError("No session id in login response - check credentials")

        session_id = element.get("value")
        if not session_id:
            raise LoginError("Session id element has no value")

        logger.debug("Login successful, got session id")
        return session_id

    def fetch_page(self, url: str, session_id: str) -> str:
        """
        Fetch one status page.

        The inner pages carry the session as a form field, not a cookie.

        Raises:
            FetchError: On transport errors or a non-2xx response
        """
        try:
            response = self._post(url, data={SESSION_FIELD: session_id})
            response.raise_for_status()
        except requests.RequestException as e:
            raise FetchError(f"Could not fetch {self.page_url(url)}: {e}") from e
        return _decode(response)

    def close(self):
        """Close the underlying HTTP session."""
        self.session.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()


def main():
    """Test the client."""
    from neura_pages import DEFAULT_PAGES

    host = os.environ.get("NEURA_HOST")
    username = os.environ.get("NEURA_USERNAME")
    password = os.environ.get("NEURA_PASSWORD")

    if not host or not username or not password:
        print("Set NEURA_HOST, NEURA_USERNAME and NEURA_PASSWORD environment variables")
        return

    with NeuraClient(host) as client:
        try:
            print("\n=== Logging in ===")
            session_id = client.login(username, password)

            for page in DEFAULT_PAGES:
                print(f"\n=== {client.page_url(page.url)} ===")
                document = parse_html(client.fetch_page(page.url, session_id))
                for item in page.items:
                    try:
                        raw = extract_value(document, item.element_id)
                        print(f"  {item.element_id}: {raw!r} -> {coerce_value(raw, item.value_type)}")
                    except ExtractError as e:
                        print(f"  {item.element_id}: {e}")

        except LoginError as e:
            print(f"Login failed: {e}")
        except NeuraError as e:
            print(f"Error: {e}")


if __name__ == "__main__":
    main()
