# Integration tests
import json
import os

import pytest
import requests
from fastapi.testclient import TestClient

from easycdm.client.license import fetch_decryption_keys
from easycdm.client.loader import create_cdm, load_client
from easycdm.client.remote import RemoteCdm
from easycdm.common.config import Config
from easycdm.common.exceptions import RemoteCdmError
from easycdm.server.core import CdmServer

from .conftest import CONTENT_KEYS

SERVER_URL = "http://127.0.0.1:4000"


class MockResponse:
    def __init__(self, status_code, content):
        self.status_code = status_code
        self.content = content
        self.text = content.decode(errors="replace")

    @property
    def ok(self):
        return self.status_code < 400

    def json(self):
        return json.loads(self.content)


class RoutedHttp:
    """Sends remote CDM calls to a TestClient and license calls to fake servers."""

    def __init__(self, test_client, license_servers):
        self.test_client = test_client
        self.license_servers = license_servers

    def request(self, method, url, **kwargs):
        path = url.replace(SERVER_URL, "")
        response = self.test_client.request(method, path, **kwargs)
        return MockResponse(response.status_code, response.content)

    def post(self, url, data=None, headers=None, timeout=None):
        if url not in self.license_servers:
            raise requests.ConnectionError(url)
        return MockResponse(200, self.license_servers[url](data))


@pytest.fixture
def temp_setup(tmp_path, widevine_client, playready_device):
    """Write client identities and a service configuration to disk."""
    (tmp_path / "android.wvd").write_bytes(widevine_client.dumps())
    (tmp_path / "tv.prd").write_bytes(playready_device.dumps())
    config_file = tmp_path / "easycdm.config.json"
    config_file.write_text(
        json.dumps(
            {
                "clients": [
                    str(tmp_path / "android.wvd"),
                    str(tmp_path / "tv.prd"),
                ],
                "users": {
                    "integration": {"name": "ci", "clients": ["android", "tv"]}
                },
            }
        )
    )
    return {"config_file": config_file}


@pytest.fixture
def server(temp_setup, monkeypatch):
    monkeypatch.setenv("EASYCDM_CONFIG", str(temp_setup["config_file"]))
    return CdmServer()


def test_server_loads_configured_clients(server):
    assert sorted(server.identities) == ["android", "tv"]
    assert server.server_port == Config().SERVER_PORT
    health = TestClient(server.app).get("/health").json()
    assert health["clients"] == ["android", "tv"]


def test_full_integration_flow(server, widevine_pssh, widevine_server):
    """License acquisition through the remote CDM service."""
    http = RoutedHttp(
        TestClient(server.app), {"https://license.test/wv": widevine_server}
    )
    cdm = RemoteCdm(SERVER_URL, "integration", client="android", http=http)

    keys = fetch_decryption_keys(cdm, widevine_pssh, "https://license.test/wv", http=http)
    assert {str(key) for key in keys} == {
        f"{kid.hex()}:{key.hex()}" for kid, key in CONTENT_KEYS.items()
    }
    assert len(widevine_server.requests) == 1


def test_playready_through_remote_cdm(
    server, playready_device, playready_pssh, xmr_license, playready_response
):
    license_, _, ck = xmr_license(playready_device, b"\x0a" * 16)
    http = RoutedHttp(
        TestClient(server.app),
        {"https://license.test/pr": lambda _: playready_response(license_)},
    )
    cdm = RemoteCdm(
        SERVER_URL,
        "integration",
        client="tv",
        key_system="com.microsoft.playready.recommendation",
        http=http,
    )
    [key] = fetch_decryption_keys(cdm, playready_pssh, "https://license.test/pr", http=http)
    assert key.key == ck.hex()


def test_remote_cdm_reports_unreachable_service(widevine_pssh):
    class Unreachable:
        def request(self, method, url, **kwargs):
            raise requests.ConnectionError(url)

    cdm = RemoteCdm(SERVER_URL, "integration", http=Unreachable())
    with pytest.raises(RemoteCdmError) as exc_info:
        cdm.create_session()
    assert exc_info.value.status_code == 502


WIDEVINE_CLIENT = os.getenv("EASYCDM_WIDEVINE_CLIENT")
TEST_LICENSE_SERVER = "https://cwip-shaka-proxy.appspot.com/no_auth"
TEST_PSSH = (
    "AAAAW3Bzc2gAAAAA7e+LqXnWSs6jyCfc1R0h7QAAADsIARIQ62dqu8s0Xpa7z2FmMPGj2hoN"
    "d2lkZXZpbmVfdGVzdCIQZmtqM2xqYVNkZmFsa3IzaioCSEQyAA=="
)


@pytest.mark.skipif(not WIDEVINE_CLIENT, reason="EASYCDM_WIDEVINE_CLIENT is not set")
def test_public_test_license_server():
    cdm = create_cdm(load_client(WIDEVINE_CLIENT))
    keys = fetch_decryption_keys(cdm, TEST_PSSH, TEST_LICENSE_SERVER)
    assert len(keys) == 5
    assert str(keys[0]) == (
        "ccbf5fb4c2965be7aa130ffb3ba9fd73:9cc0c92044cb1d69433f5f5839a159df"
    )
