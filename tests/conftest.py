"""Shared fixtures for neura2mqtt tests."""
from unittest.mock import MagicMock, patch
import pytest
import requests

BASE_URL = "http://heatpump/neura/mobile/jsp/"
LOGIN_URL = BASE_URL + "login.jsp"
MAINMENU_URL = BASE_URL + "mainmenu.jsp"
SCHEMA_URL = BASE_URL + "schema.jsp"

SAMPLE_LOGIN_PAGE_HTML = """
<html>
<head><meta http-equiv="Content-Type" content="text/html; charset=windows-1252"></head>
<body>
<form action="mainmenu.jsp" method="post">
    <input type="text" name="USER">
    <input type="password" name="PASSWORD">
    <input type="submit" name="loginButton" value="LOGIN">
</form>
</body>
</html>
"""

SAMPLE_MAINMENU_HTML = """
<html>
<head><meta http-equiv="Content-Type" content="text/html; charset=windows-1252"></head>
<body>
<form name="menu" action="schema.jsp" method="post">
    <input type="hidden" name="SESSIONID" value="A1B2C3D4E5">
    <a href="javascript:document.menu.submit()">Schema</a>
</form>
</body>
</html>
"""

SAMPLE_SCHEMA_HTML = """
<html>
<head><meta http-equiv="Content-Type" content="text/html; charset=windows-1252"></head>
<body>
<div class="schema">
    <input type="text" id="screed" value="24.5°C" readonly>
    <input type="text" id="room" value="21.5°C" readonly>
    <input type="text" id="heater_rod" value="OFF" readonly>
    <input type="text" id="cylinder" value="48.0°C" readonly>
    <input type="text" id="flow" value="35.2°C" readonly>
    <input type="text" id="return" value="30.1°C" readonly>
    <input type="text" id="comp_in" value="2.5°C" readonly>
    <input type="text" id="comp_out" value="-3.0°C" readonly>
    <input type="text" id="cylinder_pump" value="ON" readonly>
    <input type="text" id="heatpump_2" value="ON" readonly>
    <input type="text" id="circulator_pump" value="OFF" readonly>
</div>
</body>
</html>
"""

SAMPLE_SCENARIO_HTML = """
<html><body>
<span id="temp" value="45.0°C"></span>
<span id="flag" value="ON"></span>
</body></html>
"""


def make_response(text="", status_code=200, url=BASE_URL):
    """Build a fake requests response."""
    response = MagicMock()
    response.text = text
    response.status_code = status_code
    response.url = url
    if status_code >= 400:
        response.raise_for_status.side_effect = requests.HTTPError(f"{status_code} Server Error")
    return response


@pytest.fixture
def mock_session():
    """Replace requests.Session for every NeuraClient created in the test."""
    with patch("neura_client.requests.Session") as session_cls:
        session = session_cls.return_value
        session.get.return_value = make_response(SAMPLE_LOGIN_PAGE_HTML, url=LOGIN_URL)
        yield session


@pytest.fixture
def device(mock_session):
    """Route POSTs by URL; values may be responses or exceptions to raise."""
    routes = {
        MAINMENU_URL: make_response(SAMPLE_MAINMENU_HTML, url=MAINMENU_URL),
        SCHEMA_URL: make_response(SAMPLE_SCHEMA_HTML, url=SCHEMA_URL),
    }

    def post(url, **kwargs):
        response = routes.get(url)
        if response is None:
            return make_response("Not Found", 404, url=url)
        if isinstance(response, Exception):
            raise response
        return response

    mock_session.post.side_effect = post
    return routes


@pytest.fixture
def publisher():
    """A publisher double recording every publish."""
    return MagicMock()


def published(publisher):
    """Return the (topic, value) pairs sent through a publisher double."""
    return [tuple(c.args) for c in publisher.publish.call_args_list]
