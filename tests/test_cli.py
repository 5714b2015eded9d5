"""
tests/test_cli.py -- The argparse entry point in main.py.

The verifier is swapped for one over the fake mail world, so no DNS or SMTP
traffic leaves the process.
"""

from __future__ import annotations

import pytest

import main
from core.config import Settings
from fakes import TEST_SECRET, make_verifier
from verify.verifier import EmailVerifier


@pytest.fixture
def settings(monkeypatch, tmp_path) -> Settings:
    # A file database: each command disposes its engine, which would drop a memory DB.
    settings = Settings(secret_key=TEST_SECRET, database_url=f"sqlite:///{tmp_path / 'cli.db'}")
    monkeypatch.setattr(main, "get_settings", lambda: settings)
    monkeypatch.setattr(EmailVerifier, "from_settings", classmethod(lambda cls, s: make_verifier()[0]))
    return settings


def test_verify_deliverable(settings, capsys) -> None:
    main.main(["verify", "alice@example.org"])
    assert "accepted by mx1.example.org" in capsys.readouterr().out


def test_verify_failure_exits_1(settings, capsys) -> None:
    with pytest.raises(SystemExit) as exc_info:
        main.main(["verify", "nobody@example.org"])
    assert exc_info.value.code == 1
    assert "unreachable" in capsys.readouterr().out


def test_sign_in_and_out(settings, monkeypatch, capsys) -> None:
    monkeypatch.setattr(main.getpass, "getpass", lambda prompt="": "cli-password")
    main.main(["sign-in", "bob@example.org"])
    assert "Registered bob@example.org" in capsys.readouterr().out
    main.main(["sign-out", "bob@example.org"])
    assert "Removed bob@example.org" in capsys.readouterr().out


def test_sign_in_password_mismatch(settings, monkeypatch) -> None:
    answers = iter(["one", "two"])
    monkeypatch.setattr(main.getpass, "getpass", lambda prompt="": next(answers))
    with pytest.raises(SystemExit):
        main.main(["sign-in", "bob@example.org"])


def test_no_command_prints_help(capsys) -> None:
    main.main([])
    assert "usage: credgate" in capsys.readouterr().out
