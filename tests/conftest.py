import logging

import pytest

from connect_bot import config as config_mod
from connect_bot import logging as logging_mod

MUMBLE_ENV = (
    "MUMBLE_SERVER",
    "MUMBLE_USERNAME",
    "MUMBLE_PASSWORD",
    "MUMBLE_INSECURE",
    "MUMBLE_CERT_FILE",
    "MUMBLE_KEY_FILE",
    "MUMBLE_CHANNELS",
    "MUMBLE_DEFAULT_STRING",
    "MUMBLE_SELF_NAME",
)


@pytest.fixture(autouse=True)
def isolated_home(tmp_path, monkeypatch):
    home = tmp_path / "bot-home"
    home.mkdir()
    monkeypatch.setenv("CONNECT_BOT_HOME", str(home))
    for key in MUMBLE_ENV:
        monkeypatch.delenv(key, raising=False)

    monkeypatch.setattr(config_mod, "APP_DIR", home)
    monkeypatch.setattr(config_mod, "CONFIG_FILE", home / "config.toml")
    monkeypatch.setattr(config_mod, "LOCK_FILE", home / "config.lock")

    monkeypatch.setattr(logging_mod, "LOG_DIR", home / "logs")
    monkeypatch.setattr(logging_mod, "LOG_FILE", home / "logs" / "connect-bot.log")

    # Mock keyring for tests
    store = {}

    class FakeKeyring:
        def set_password(self, service, user, password):
            store[(service, user)] = password

        def get_password(self, service, user):
            return store.get((service, user))

    monkeypatch.setattr(config_mod, "keyring", FakeKeyring())
    yield home

    logger = logging.getLogger("connect_bot")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
