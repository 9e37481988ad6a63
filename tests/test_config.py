import json
import logging
from pathlib import Path
from typing import Any

import pytest

from easycdm.common.config import Config
from easycdm.common.exceptions import CdmError
from easycdm.common.mixins import Configurable


def test_config_defaults(monkeypatch: Any) -> None:
    for name in (
        "EASYCDM_SERVER_HOST",
        "EASYCDM_SERVER_PORT",
        "EASYCDM_CONFIG",
        "EASYCDM_REQUEST_TIMEOUT",
        "EASYCDM_FORCE_PRIVACY_MODE",
        "EASYCDM_LOG_LEVEL",
    ):
        monkeypatch.delenv(name, raising=False)
    config = Config()
    assert config.SERVER_HOST == "127.0.0.1"
    assert config.SERVER_PORT == 4000  # noqa: PLR2004
    assert config.SERVER_URL == "http://127.0.0.1:4000"
    assert Path("easycdm.config.json") == config.CONFIG_PATH
    assert config.MAX_SESSIONS_PER_SECRET == 16  # noqa: PLR2004
    assert config.REQUEST_TIMEOUT == 30  # noqa: PLR2004
    assert config.FORCE_PRIVACY_MODE is False
    assert config.LOG_LEVEL == logging.INFO


def test_config_from_environment(monkeypatch: Any) -> None:
    monkeypatch.setenv("EASYCDM_SERVER_PORT", "8080")
    monkeypatch.setenv("EASYCDM_FORCE_PRIVACY_MODE", "true")
    monkeypatch.setenv("EASYCDM_LOG_LEVEL", "debug")
    config = Config()
    assert config.SERVER_PORT == 8080  # noqa: PLR2004
    assert config.FORCE_PRIVACY_MODE is True
    assert config.LOG_LEVEL == logging.DEBUG


def test_unknown_log_level_falls_back(monkeypatch: Any) -> None:
    monkeypatch.setenv("EASYCDM_LOG_LEVEL", "chatty")
    assert Config().LOG_LEVEL == logging.INFO


def test_missing_server_config_yields_defaults(tmp_path: Path) -> None:
    server_config = Config().load_server_config(tmp_path / "missing.json")
    assert server_config.clients == []
    assert server_config.users == {}


def test_load_server_config(tmp_path: Path) -> None:
    path = tmp_path / "config.json"
    path.write_text(
        json.dumps(
            {
                "port": 5000,
                "clients": ["device.wvd"],
                "users": {"secret": {"name": "alice", "clients": ["device"]}},
                "forcePrivacyMode": True,
            }
        )
    )
    server_config = Config().load_server_config(path)
    assert server_config.port == 5000  # noqa: PLR2004
    assert server_config.users["secret"].clients == ["device"]
    assert server_config.force_privacy_mode is True


@pytest.mark.parametrize("content", ["{not json", '{"port": "many"}'])
def test_invalid_server_config(tmp_path: Path, content: str) -> None:
    path = tmp_path / "config.json"
    path.write_text(content)
    with pytest.raises(CdmError, match="Invalid server configuration"):
        Config().load_server_config(path)


class Example(Configurable):
    def __init__(self, **overrides: Any) -> None:
        self.apply_overrides(overrides, Config(), ["request_timeout", "log_level"])


def test_configurable_overrides() -> None:
    example = Example(request_timeout=5.0, log_level=None)
    assert example.request_timeout == 5.0  # noqa: PLR2004
    assert example.log_level == Config().LOG_LEVEL


def test_configurable_requires_a_default() -> None:
    class Broken(Configurable):
        def __init__(self) -> None:
            self.apply_overrides({}, Config(), ["no_such_setting"])

    with pytest.raises(AttributeError):
        Broken()
