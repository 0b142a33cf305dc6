import pytest

from shared.utils import is_ws_url, transport_of


@pytest.mark.parametrize("url", [
    "ws://127.0.0.1:3001",
    "wss://chat.example",
    "WSS://chat.example:443/ws",
    "  ws://localhost:80  ",
])
def test_valid_ws_urls(url):
    assert is_ws_url(url)


@pytest.mark.parametrize("url", [
    "",
    "ws://",
    "http://chat.example",
    "chat.example:3001",
    "ws://host:notaport",
    "ws://host:70000",
    "ws://host:0",
])
def test_invalid_ws_urls(url):
    assert not is_ws_url(url)


def test_transport_of():
    assert transport_of("wss://a") == "wss"
    assert transport_of("ws://a") == "ws"
