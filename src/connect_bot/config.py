"""Configuration management for connect-bot."""
from __future__ import annotations

import dataclasses
import json
import logging
import os
from pathlib import Path
from typing import List, Mapping, Optional

import keyring
import tomllib
from filelock import FileLock
from keyring.errors import KeyringError

from .utils import DEFAULT_PORT, parse_bool, parse_channel_path, split_host_port

log = logging.getLogger(__name__)

APP_DIR = Path(os.environ.get("CONNECT_BOT_HOME", Path.home() / ".connect-bot"))
CONFIG_FILE = APP_DIR / "config.toml"
LOCK_FILE = CONFIG_FILE.with_suffix(".lock")
SERVICE_NAME = "connect-bot"
SELF_NAME = "_ConnectBot"

DEFAULT_HOST = "localhost"
DEFAULT_USERNAME = "gumble-bot"


def _quote(value) -> str:
    return json.dumps(value, ensure_ascii=False)


@dataclasses.dataclass
class ServerConfig:
    """Mumble server and TLS settings."""
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    insecure: bool = False
    certfile: str = ""
    keyfile: str = ""

    @property
    def address(self) -> str:
        return f"{self.host}:{self.port}"


@dataclasses.dataclass
class IdentityConfig:
    """Who the bot is on the server."""
    username: str = DEFAULT_USERNAME
    self_name: str = SELF_NAME


@dataclasses.dataclass
class ChannelConfig:
    """Where the bot sits and what it hands out by default."""
    path: List[str] = dataclasses.field(default_factory=list)
    default_string: str = ""


@dataclasses.dataclass
class BotConfig:
    """Main configuration container."""
    server: ServerConfig
    identity: IdentityConfig
    channel: ChannelConfig
    password: Optional[str] = dataclasses.field(default=None, repr=False)

    @classmethod
    def load(cls) -> "BotConfig":
        """Load configuration from file or create defaults."""
        APP_DIR.mkdir(parents=True, exist_ok=True)
        if CONFIG_FILE.exists():
            data = tomllib.loads(CONFIG_FILE.read_text(encoding="utf-8"))
        else:
            data = {}

        server_tbl = data.get("server", {})
        identity_tbl = data.get("identity", {})
        channel_tbl = data.get("channel", {})

        config = cls(
            server=ServerConfig(
                host=str(server_tbl.get("host", DEFAULT_HOST)),
                port=int(server_tbl.get("port", DEFAULT_PORT)),
                insecure=bool(server_tbl.get("insecure", False)),
                certfile=str(server_tbl.get("certfile", "")),
                keyfile=str(server_tbl.get("keyfile", "")),
            ),
            identity=IdentityConfig(
                username=str(identity_tbl.get("username", DEFAULT_USERNAME)),
                self_name=str(identity_tbl.get("self_name", SELF_NAME)),
            ),
            channel=ChannelConfig(
                path=[str(part) for part in channel_tbl.get("path", [])],
                default_string=str(channel_tbl.get("default_string", "")),
            ),
        )

        if not CONFIG_FILE.exists():
            config.save()

        return config

    @classmethod
    def resolve(cls, environ: Optional[Mapping[str, str]] = None) -> "BotConfig":
        """File config with environment overrides and the stored password."""
        config = cls.load()
        config.apply_env(os.environ if environ is None else environ)
        if config.password is None:
            config.password = get_password(config.identity.username)
        return config

    def apply_env(self, environ: Mapping[str, str]) -> None:
        if environ.get("MUMBLE_SERVER"):
            self.server.host, self.server.port = split_host_port(environ["MUMBLE_SERVER"])
        if environ.get("MUMBLE_USERNAME"):
            self.identity.username = environ["MUMBLE_USERNAME"]
        if environ.get("MUMBLE_PASSWORD"):
            self.password = environ["MUMBLE_PASSWORD"]
        if "MUMBLE_INSECURE" in environ:
            self.server.insecure = parse_bool(environ["MUMBLE_INSECURE"])
        if environ.get("MUMBLE_CERT_FILE"):
            self.server.certfile = environ["MUMBLE_CERT_FILE"]
        if environ.get("MUMBLE_KEY_FILE"):
            self.server.keyfile = environ["MUMBLE_KEY_FILE"]
        if "MUMBLE_CHANNELS" in environ:
            self.channel.path = parse_channel_path(environ["MUMBLE_CHANNELS"])
        if "MUMBLE_DEFAULT_STRING" in environ:
            self.channel.default_string = environ["MUMBLE_DEFAULT_STRING"]
        if environ.get("MUMBLE_SELF_NAME"):
            self.identity.self_name = environ["MUMBLE_SELF_NAME"]

    def save(self) -> None:
        """Save configuration to file. The password never goes to disk."""
        APP_DIR.mkdir(parents=True, exist_ok=True)
        lines = [
            "[server]",
            f"host = {_quote(self.server.host)}",
            f"port = {self.server.port}",
            f"insecure = {'true' if self.server.insecure else 'false'}",
            f"certfile = {_quote(self.server.certfile)}",
            f"keyfile = {_quote(self.server.keyfile)}",
            "",
            "[identity]",
            f"username = {_quote(self.identity.username)}",
            f"self_name = {_quote(self.identity.self_name)}",
            "",
            "[channel]",
            f"path = {_quote(self.channel.path)}",
            f"default_string = {_quote(self.channel.default_string)}",
            "",
        ]
        doc = "\n".join(lines)
        with FileLock(str(LOCK_FILE)):
            CONFIG_FILE.write_text(doc, encoding="utf-8")

    def as_dict(self) -> dict:
        data = dataclasses.asdict(self)
        data["password"] = "***" if self.password else None
        return data


def get_password(username: str) -> Optional[str]:
    """Look up the server password stored for ``username``."""
    try:
        return keyring.get_password(SERVICE_NAME, username)
    except KeyringError as exc:
        log.warning("Keyring unavailable: %s", exc)
        return None


def set_password(username: str, password: str) -> None:
    keyring.set_password(SERVICE_NAME, username, password)
