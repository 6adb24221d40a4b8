import json

from typer.testing import CliRunner

from connect_bot import app
from connect_bot import cli as cli_mod
from connect_bot import config as config_mod
from connect_bot.client import ConnectionFailed


def test_config_command_shows_defaults():
    runner = CliRunner()
    result = runner.invoke(app, ["config"])
    assert result.exit_code == 0
    data = json.loads(result.stdout)
    assert data["server"]["host"] == "localhost"
    assert data["identity"]["self_name"] == "_ConnectBot"


def test_config_command_sets_values():
    runner = CliRunner()
    result = runner.invoke(app, ["config", "--set", "server.host=1.2.3.4"])
    assert result.exit_code == 0
    assert "1.2.3.4" in result.stdout
    result = runner.invoke(app, ["config", "--set", "channel.path=Games,CS"])
    assert result.exit_code == 0
    reloaded = config_mod.BotConfig.load()
    assert reloaded.server.host == "1.2.3.4"
    assert reloaded.channel.path == ["Games", "CS"]


def test_config_command_rejects_bad_input():
    runner = CliRunner()
    assert runner.invoke(app, ["config", "--set", "server.host"]).exit_code == 1
    assert runner.invoke(app, ["config", "--set", "server.nope=1"]).exit_code == 1
    assert runner.invoke(app, ["config", "--set", "server.port=abc"]).exit_code == 1


def test_login_stores_password():
    runner = CliRunner()
    result = runner.invoke(app, ["login", "ConnectBot", "--password", "secret"])
    assert result.exit_code == 0
    assert config_mod.get_password("ConnectBot") == "secret"


def test_run_exits_nonzero_on_connection_failure(monkeypatch):
    def failing(config):
        raise ConnectionFailed("could not connect to localhost:64738")

    monkeypatch.setattr(cli_mod, "run_bot", failing)
    result = CliRunner().invoke(app, ["run"])
    assert result.exit_code == 1
    assert "could not connect" in result.stdout


def test_run_exits_zero_on_disconnect(monkeypatch):
    seen = {}

    def serve(config):
        seen["default"] = config.channel.default_string

    monkeypatch.setattr(cli_mod, "run_bot", serve)
    monkeypatch.setenv("MUMBLE_DEFAULT_STRING", "D")
    result = CliRunner().invoke(app, ["run"])
    assert result.exit_code == 0
    assert seen["default"] == "D"
