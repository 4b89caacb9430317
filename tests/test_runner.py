"""Tests for the command line entry point."""

import json
from pathlib import Path
from unittest.mock import patch

import pytest

from fanout.config import KeyPath, NoCredential, Password
from fanout.executor import HostResult
from fanout.runner import PASSWORD_ENV, format_result, main


@pytest.fixture
def inventory(tmp_path: Path) -> Path:
    path = tmp_path / "inventory.json"
    path.write_text(json.dumps({"hosts": ["a", "b"]}))
    return path


@pytest.fixture(autouse=True)
def no_password_env(monkeypatch):
    monkeypatch.delenv(PASSWORD_ENV, raising=False)


class FakeExecutor:
    """Stands in for Executor and records how it was built."""

    instances: list["FakeExecutor"] = []
    results: list[HostResult] = []

    def __init__(self, params, commands, **kwargs):
        self.params = params
        self.commands = commands
        self.kwargs = kwargs
        FakeExecutor.instances.append(self)

    async def run_all(self):
        return list(FakeExecutor.results)


@pytest.fixture
def fake_executor():
    FakeExecutor.instances = []
    FakeExecutor.results = [
        HostResult(index=1, hostname="b", output="Command 'nproc' output:\n4\n\n"),
        HostResult(index=0, hostname="a", output="Command 'nproc' output:\n8\n\n"),
    ]
    with patch("fanout.runner.Executor", FakeExecutor):
        yield FakeExecutor


def test_requires_user(inventory: Path, capsys) -> None:
    assert main(["--inventory", str(inventory)]) == 1
    assert "--user" in capsys.readouterr().err


def test_missing_inventory(tmp_path: Path, capsys) -> None:
    assert main(["--inventory", str(tmp_path / "none.json"), "--user", "ops"]) == 1
    assert "Error reading inventory" in capsys.readouterr().err


def test_malformed_inventory(tmp_path: Path, capsys) -> None:
    path = tmp_path / "inventory.json"
    path.write_text('{"hosts": "a"}')

    assert main(["--inventory", str(path), "--user", "ops"]) == 1
    assert "Error parsing inventory" in capsys.readouterr().err


def test_prints_every_host(inventory: Path, fake_executor, capsys) -> None:
    code = main(["--inventory", str(inventory), "--user", "ops", "--no-color"])

    out = capsys.readouterr().out
    assert code == 0
    assert "========== Host: a ==========" in out
    assert "========== Host: b ==========" in out
    assert "\033[" not in out


def test_builds_params(inventory: Path, fake_executor, tmp_path: Path) -> None:
    main(
        [
            "--inventory", str(inventory),
            "--user", "ops",
            "--key", "/keys/id",
            "--port", "2222",
            "--timeout", "9",
            "--log-dir", str(tmp_path / "logs"),
        ]
    )

    (executor,) = fake_executor.instances
    assert executor.params.hosts == ("a", "b")
    assert executor.params.username == "ops"
    assert executor.params.credential == KeyPath(Path("/keys/id"))
    assert executor.params.port == 2222
    assert executor.params.timeout == 9.0
    assert executor.kwargs["log_dir"] == tmp_path / "logs"
    assert executor.commands == ["uname -a", "df -h", "uptime", "free -h", "nproc"]


def test_password_from_environment(
    inventory: Path, fake_executor, monkeypatch
) -> None:
    monkeypatch.setenv(PASSWORD_ENV, "hunter2")

    main(["--inventory", str(inventory), "--user", "ops"])

    assert fake_executor.instances[0].params.credential == Password("hunter2")


def test_no_credential_is_not_fatal(inventory: Path, fake_executor) -> None:
    assert main(["--inventory", str(inventory), "--user", "ops"]) == 0
    assert isinstance(fake_executor.instances[0].params.credential, NoCredential)


def test_host_error_sets_exit_status(inventory: Path, fake_executor, capsys) -> None:
    fake_executor.results = [
        HostResult(index=0, hostname="a", output="ok\n"),
        HostResult(index=1, hostname="b", error="dial b: refused"),
    ]

    assert main(["--inventory", str(inventory), "--user", "ops"]) == 1
    captured = capsys.readouterr()
    assert "dial b: refused" in captured.out
    assert "Failed hosts: b" in captured.err


def test_format_result_colors() -> None:
    text = format_result(HostResult(index=0, hostname="x", error="no auth method"))

    assert "\033[1;34m========== Host: x ==========\033[0m" in text
    assert "\033[0;31mError:\033[0m no auth method" in text


def test_format_result_plain_output() -> None:
    result = HostResult(index=0, hostname="x", output="Command 'nproc' output:\n2\n\n")

    assert format_result(result, color=False) == (
        "\n========== Host: x ==========\nCommand 'nproc' output:\n2\n\n"
    )


def test_explicit_zero_timeout_is_kept(inventory: Path, fake_executor) -> None:
    main(["--inventory", str(inventory), "--user", "ops", "--timeout", "0"])

    assert fake_executor.instances[0].params.timeout == 0.0


class FakeDashboard:
    """Stands in for Dashboard; quits before every host has finished."""

    results: list[HostResult] = []

    def __init__(self, params, commands, **kwargs):
        self.results = list(FakeDashboard.results)

    def run(self):
        pass


def test_dashboard_quit_early_is_failure(inventory: Path, capsys) -> None:
    FakeDashboard.results = [HostResult(index=0, hostname="a", output="ok\n")]

    with patch("fanout.runner.Dashboard", FakeDashboard):
        code = main(["--inventory", str(inventory), "--user", "ops", "--dashboard"])

    assert code == 1
    assert "Interrupted: 1/2 hosts finished" in capsys.readouterr().err


def test_dashboard_all_hosts_ok(inventory: Path) -> None:
    FakeDashboard.results = [
        HostResult(index=0, hostname="a", output="ok\n"),
        HostResult(index=1, hostname="b", output="ok\n"),
    ]

    with patch("fanout.runner.Dashboard", FakeDashboard):
        assert main(["--inventory", str(inventory), "--user", "ops", "--dashboard"]) == 0
