import logging
import subprocess

import pytest

from connectors.foundry_cli import FoundryCLI
from orchestrator.errors import OperationalError


@pytest.fixture
def cli():
    return FoundryCLI(binary="foundry", timeout=5)


def test_run_passes_argument_vector(cli, fake_run):
    fake_run.set("cache", "cd", stdout="ok")
    result = cli.run(["cache", "cd", "/data/my cache; rm -rf /"])
    # The path arrives as one argument, untouched
    assert fake_run.calls == [["foundry", "cache", "cd", "/data/my cache; rm -rf /"]]
    assert fake_run.kwargs[0]["timeout"] == 5
    assert fake_run.kwargs[0].get("shell", False) is False
    assert result.stdout == "ok"


def test_non_zero_exit_is_operational_error(cli, fake_run):
    fake_run.set("cache", "ls", stderr="boom", returncode=3)
    with pytest.raises(OperationalError, match="boom"):
        cli.run(["cache", "ls"])


def test_timeout_is_operational_error(cli, fake_run):
    fake_run.raise_on("cache", "ls", exc=subprocess.TimeoutExpired(["foundry"], 5))
    with pytest.raises(OperationalError, match="timed out"):
        cli.run(["cache", "ls"])


def test_missing_binary_is_operational_error(cli, fake_run):
    fake_run.raise_on("cache", "ls", exc=FileNotFoundError("foundry"))
    with pytest.raises(OperationalError, match="not found in PATH"):
        cli.run(["cache", "ls"])


def test_service_started_notice_is_not_a_warning(cli, fake_run, caplog):
    fake_run.set("cache", "location", stdout="x", stderr="Service is Started on http://127.0.0.1:5273")
    fake_run.set("cache", "ls", stdout="x", stderr="something odd")
    with caplog.at_level(logging.DEBUG, logger="connectors.foundry_cli"):
        cli.run(["cache", "location"])
        cli.run(["cache", "ls"])
    warnings = [r for r in caplog.records if r.levelno == logging.WARNING]
    assert len(warnings) == 1
    assert "something odd" in warnings[0].getMessage()


def test_is_available_uses_platform_lookup(cli, fake_run, monkeypatch):
    monkeypatch.setattr("connectors.foundry_cli.sys.platform", "linux")
    assert cli.is_available() is True
    monkeypatch.setattr("connectors.foundry_cli.sys.platform", "win32")
    assert cli.is_available() is True
    assert [c[0] for c in fake_run.calls] == ["which", "where"]


def test_is_available_false_when_lookup_fails(cli, fake_run):
    fake_run.set("foundry", returncode=1)
    assert cli.is_available() is False


def test_service_url_parsed_from_status(cli, fake_run):
    fake_run.set("service", "status", stdout="🟢 Model management service is running on http://127.0.0.1:5273/openai/status")
    assert cli.service_url() == "http://127.0.0.1:5273"


def test_start_service_falls_back_to_status(cli, fake_run):
    fake_run.set("service", "start", stdout="Starting service...")
    fake_run.set("service", "status", stdout="running on http://localhost:60632/openai/status")
    assert cli.start_service() == "http://localhost:60632"


def test_start_service_without_url(cli, fake_run):
    with pytest.raises(OperationalError, match="service URL"):
        cli.start_service()
