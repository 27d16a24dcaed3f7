"""Shared fixtures: a recording stand-in for subprocess.run and the mock runtime."""

import subprocess

import pytest
from fastapi.testclient import TestClient

from mock_runtime import daemon
from orchestrator.context import build_context
from orchestrator.models import ModelDescriptor
from orchestrator.orchestrator import Orchestrator
from orchestrator.settings import Settings
from orchestrator.store import MemoryModelStore


class FakeRun:
    """
    Replaces subprocess.run for the runtime CLI.
    Answers are keyed by the first two tool arguments, e.g. ("cache", "location").
    Every argv is recorded so tests can assert what (if anything) was spawned.
    """

    def __init__(self):
        self.calls: list[list[str]] = []
        self.kwargs: list[dict] = []
        self.responses: dict[tuple[str, ...], object] = {}

    def set(self, *key: str, stdout: str = "", stderr: str = "", returncode: int = 0):
        self.responses[key] = (stdout, stderr, returncode)

    def set_sequence(self, *key: str, stdouts: list[str]):
        """Answer successive calls in order; the last answer repeats."""
        self.responses[key] = [(out, "", 0) for out in stdouts]

    def raise_on(self, *key: str, exc: BaseException):
        self.responses[key] = exc

    def __call__(self, argv, **kwargs):
        self.calls.append(list(argv))
        self.kwargs.append(kwargs)
        answer = self.responses.get(tuple(argv[1:3]))
        if isinstance(answer, list):
            answer = answer.pop(0) if len(answer) > 1 else answer[0]
        if isinstance(answer, BaseException):
            raise answer
        stdout, stderr, returncode = answer or ("", "", 0)
        return subprocess.CompletedProcess(argv, returncode, stdout, stderr)


@pytest.fixture
def fake_run(monkeypatch):
    fake = FakeRun()
    monkeypatch.setattr("connectors.foundry_cli.subprocess.run", fake)
    return fake


@pytest.fixture
def runtime_client():
    daemon.reset_state()
    with TestClient(daemon.app) as client:
        yield client
    daemon.reset_state()


@pytest.fixture
def settings():
    return Settings(runtime_url="http://testserver", service_process_marker="no-such-runtime-process-marker")


@pytest.fixture
def store():
    return MemoryModelStore([
        ModelDescriptor(id="m-phi4", alias="phi-4-mini"),
        ModelDescriptor(id="m-phi35", alias="phi-3.5-mini"),
        ModelDescriptor(id="m-custom", alias="my-model_1", is_custom=True),
    ])


@pytest.fixture
def orchestrator(settings, runtime_client, store, fake_run):
    return Orchestrator(build_context(settings, client=runtime_client), store)
