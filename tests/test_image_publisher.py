import subprocess
from types import SimpleNamespace

import pytest

from workload_reconciler.errors import TransientCallError
from workload_reconciler.image_publisher import KindImagePublisher


@pytest.fixture
def commands(monkeypatch):
    calls = []

    def fake_run(command, **kwargs):
        calls.append(command)
        return SimpleNamespace(returncode=0, stdout="", stderr="")

    monkeypatch.setattr(subprocess, "run", fake_run)
    return calls


def test_builds_then_loads_into_kind(tmp_path, commands):
    KindImagePublisher(str(tmp_path), "devops-pipeline")("flask-app:latest")

    assert commands == [
        ["docker", "build", "-t", "flask-app:latest", str(tmp_path)],
        ["kind", "load", "docker-image", "flask-app:latest", "--name", "devops-pipeline"],
    ]


def test_missing_build_context(tmp_path, commands):
    with pytest.raises(TransientCallError):
        KindImagePublisher(str(tmp_path / "missing"))("web:latest")
    assert commands == []


def test_failed_build_stops_before_load(tmp_path, monkeypatch):
    calls = []

    def fake_run(command, **kwargs):
        calls.append(command)
        return SimpleNamespace(returncode=1, stdout="", stderr="step 1/3\nERROR: failed to solve\n")

    monkeypatch.setattr(subprocess, "run", fake_run)

    with pytest.raises(TransientCallError, match="failed to solve"):
        KindImagePublisher(str(tmp_path))("web:latest")
    assert len(calls) == 1


def test_missing_binary(tmp_path, monkeypatch):
    def fake_run(command, **kwargs):
        raise FileNotFoundError(command[0])

    monkeypatch.setattr(subprocess, "run", fake_run)

    with pytest.raises(TransientCallError, match="docker is not installed"):
        KindImagePublisher(str(tmp_path))("web:latest")
