from __future__ import annotations

from pathlib import Path

import httpx
import pytest

import main
from main import _parse_args


def test_default_command_invokes_serve() -> None:
    args = _parse_args([])
    assert args.command == "serve"


def test_default_command_accepts_options_without_subcommand() -> None:
    args = _parse_args(["--host", "127.0.0.1", "--port", "8080"])
    assert args.command == "serve"
    assert args.host == "127.0.0.1"
    assert args.port == 8080


def test_user_subcommands() -> None:
    args = _parse_args(["create-user", "ann", "--admin"])
    assert (args.command, args.username, args.admin) == ("create-user", "ann", True)

    args = _parse_args(["setup", "conductor"])
    assert (args.command, args.username) == ("setup", "conductor")

    assert _parse_args(["list-users"]).command == "list-users"
    assert _parse_args(["list-rehearsals"]).command == "list-rehearsals"


def test_status_uses_default_service_url() -> None:
    args = _parse_args(["status"])
    assert args.command == "status"
    assert args.service_url == "http://localhost:3001"


def test_init_db_creates_store(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    db_path = tmp_path / "planner.json"
    monkeypatch.setenv("REHEARSAL_CONFIG", "")
    monkeypatch.setenv("REHEARSAL_DB_PATH", str(db_path))
    monkeypatch.chdir(tmp_path)

    assert main.main(["init-db"]) == 0
    assert db_path.exists()


def test_setup_and_list_users(tmp_path: Path, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]) -> None:
    monkeypatch.setenv("REHEARSAL_CONFIG", "")
    monkeypatch.setenv("REHEARSAL_DB_PATH", str(tmp_path / "planner.sqlite3"))
    monkeypatch.setattr(main, "getpass", lambda prompt="": "Adm1nSecret!pw")

    assert main.main(["setup", "conductor"]) == 0
    assert main.main(["setup", "again"]) == 1
    assert main.main(["list-users"]) == 0

    output = capsys.readouterr().out
    assert "Created administrator conductor" in output
    assert "Setup has already been completed." in output
    assert "conductor" in output.splitlines()[-1]


def test_check_service_reports_health(monkeypatch: pytest.MonkeyPatch) -> None:
    def fake_get(url: str, timeout: float) -> httpx.Response:
        assert url == "http://planner.local/api/health"
        return httpx.Response(200, json={"status": "ok"})

    monkeypatch.setattr(main.httpx, "get", fake_get)
    assert main.main(["status", "--service-url", "http://planner.local/"]) == 0

    def failing_get(url: str, timeout: float) -> httpx.Response:
        raise httpx.ConnectError("connection refused")

    monkeypatch.setattr(main.httpx, "get", failing_get)
    assert main.main(["status", "--service-url", "http://planner.local"]) == 1
