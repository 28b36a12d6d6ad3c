"""
Tests for the command line entry point
"""

import pytest

from bank_ops.__main__ import build_parser, main
from bank_ops.config import reload_config


USER_ARGS = [
    "create-user",
    "--identification", "EMP003",
    "--full-name", "Paula Rios",
    "--email", "paula@bank.example",
    "--phone", "6015550103",
    "--address", "Carrera 7 # 32-16",
    "--password", "analyst1",
    "--role", "internal_analyst",
]


@pytest.fixture(autouse=True)
def sqlite_config(tmp_path, monkeypatch):
    monkeypatch.setenv("BANK_OPS_DATABASE_URL", f"sqlite:///{tmp_path / 'cli.db'}")
    monkeypatch.setenv("BANK_OPS_LOG_FORMAT", "text")
    reload_config()
    yield
    monkeypatch.undo()
    reload_config()


class TestCommandLine:

    def test_parser(self):
        args = build_parser().parse_args(["serve", "--port", "9000"])
        assert args.command == "serve"
        assert args.port == 9000
        assert not args.reload

    def test_rejects_system_role(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(USER_ARGS[:-1] + ["system"])

    def test_create_user(self, capsys):
        assert main(USER_ARGS) == 0
        assert "internal_analyst" in capsys.readouterr().out

    def test_duplicate_user_fails(self, capsys):
        assert main(USER_ARGS) == 0
        assert main(USER_ARGS) == 1
        assert "already" in capsys.readouterr().err

    def test_sweep_expired(self, capsys):
        assert main(["sweep-expired"]) == 0
        assert "Expired 0 pending transfers" in capsys.readouterr().out
