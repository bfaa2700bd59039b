import json
import threading
from unittest.mock import patch

import pytest
from click.testing import CliRunner

from tests.helpers import RecordingServer
from webhook_server.cli import cli, load_config, logging_handler, run_server
from webhook_server.config import ServerConfig
from webhook_server.context import Deadline
from webhook_server.exceptions import BindError


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("WEBHOOK_LISTEN_ADDRESS", "WEBHOOK_ENGINE", "WEBHOOK_SHUTDOWN_TIMEOUT"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def mock_run_server():
    with patch("webhook_server.cli.run_server") as mock_run, patch("webhook_server.cli.signal.signal"):
        yield mock_run


def test_serve_builds_configured_server(runner, mock_run_server):
    result = runner.invoke(
        cli,
        ["serve", "--address", "127.0.0.1:9999", "--engine", "aiohttp", "--path", "/a", "--path", "/b"],
    )

    assert result.exit_code == 0, result.output
    server, config, stop_event = mock_run_server.call_args[0]
    assert config.address == "127.0.0.1:9999"
    assert config.engine == "aiohttp"
    assert "/a" in server.handlers and "/b" in server.handlers
    assert isinstance(stop_event, threading.Event)


def test_serve_reports_bind_errors(runner, mock_run_server):
    mock_run_server.side_effect = BindError("address already in use", "127.0.0.1:1")

    result = runner.invoke(cli, ["serve", "--address", "127.0.0.1:1"])

    assert result.exit_code == 1
    assert "address already in use" in result.output


def test_serve_rejects_unknown_engine(runner, mock_run_server):
    result = runner.invoke(cli, ["serve", "--engine", "tornado"])

    assert result.exit_code == 2
    mock_run_server.assert_not_called()


def test_serve_reads_config_file(runner, mock_run_server, tmp_path):
    config_file = tmp_path / "webhook.json"
    config_file.write_text(json.dumps({"engine": "aiohttp", "shutdown_timeout": 3}))

    result = runner.invoke(cli, ["serve", "-c", str(config_file), "--shutdown-timeout", "1.5"])

    assert result.exit_code == 0, result.output
    config = mock_run_server.call_args[0][1]
    assert config.engine == "aiohttp"
    assert config.shutdown_timeout == 1.5


def test_serve_rejects_invalid_config_file(runner, mock_run_server, tmp_path):
    config_file = tmp_path / "webhook.json"
    config_file.write_text(json.dumps({"engine": "tornado"}))

    result = runner.invoke(cli, ["serve", "-c", str(config_file)])

    assert result.exit_code == 2
    assert "Error loading config" in result.output


def test_load_config_precedence(monkeypatch, tmp_path):
    monkeypatch.setenv("WEBHOOK_LISTEN_ADDRESS", "0.0.0.0:1000")
    config_file = tmp_path / "webhook.json"
    config_file.write_text(json.dumps({"address": "0.0.0.0:2000", "engine": "aiohttp"}))

    config = load_config(config_file, address="0.0.0.0:3000", engine=None)

    assert config.address == "0.0.0.0:3000"
    assert config.engine == "aiohttp"


def test_logging_handler_accepts_any_payload():
    logging_handler("/")(b'{"update_id": 1}')


class TestRunServer:
    def test_stops_with_configured_deadline(self):
        server = RecordingServer()
        stop_event = threading.Event()
        stop_event.set()

        with patch.object(server, "stop", wraps=server.stop) as stop:
            run_server(server, ServerConfig(shutdown_timeout=2), stop_event)

        assert server.started == 1
        deadline = stop.call_args[0][0]
        assert isinstance(deadline, Deadline)
        assert deadline.timeout == 2

    def test_bind_error_skips_stop(self):
        server = RecordingServer(start_error=BindError("in use", "x:1"))

        with pytest.raises(BindError):
            run_server(server, ServerConfig(), threading.Event())

        assert server.stopped == 0
