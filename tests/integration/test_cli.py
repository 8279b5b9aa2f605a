"""Integration tests for the command line entry point."""

from unittest.mock import AsyncMock

import pytest

from tests.fakes import TOKEN_A
from transfer_indexer import __main__ as cli
from transfer_indexer.config.settings import Settings
from transfer_indexer.config.database import create_engine, create_session_maker
from transfer_indexer.services.stores import CheckpointStore


@pytest.fixture
def settings(tmp_path):
    return Settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'cli.db'}",
        token_addresses=TOKEN_A,
        log_file=None,
        _env_file=None,
    )


class TestCommands:
    """Tests for init-db and status."""

    @pytest.mark.asyncio
    async def test_status_reports_partial_data(self, settings, capsys):
        """Tokens without a checkpoint are reported as partial."""
        await cli.init_db(settings)
        await cli.show_status(settings)

        out = capsys.readouterr().out
        assert TOKEN_A in out
        assert "partial data" in out

    @pytest.mark.asyncio
    async def test_status_shows_checkpoint(self, settings, capsys):
        """Stored checkpoints are printed per token."""
        await cli.init_db(settings)
        engine = create_engine(settings)
        await CheckpointStore(create_session_maker(engine)).set(TOKEN_A, 1234)
        await engine.dispose()

        await cli.show_status(settings)

        out = capsys.readouterr().out
        assert f"{TOKEN_A}  1234" in out
        assert "partial" not in out


class TestMain:
    """Tests for argument dispatch."""

    def test_defaults_to_run(self, monkeypatch):
        """No command runs the indexer."""
        run = AsyncMock()
        monkeypatch.setitem(cli.COMMANDS, "run", run)
        monkeypatch.setattr(cli, "setup_logging", lambda *args: None)
        monkeypatch.setattr("sys.argv", ["transfer-indexer"])

        cli.main()

        run.assert_awaited_once()

    def test_dispatches_status(self, monkeypatch):
        """Named commands are dispatched."""
        status = AsyncMock()
        monkeypatch.setitem(cli.COMMANDS, "status", status)
        monkeypatch.setattr(cli, "setup_logging", lambda *args: None)
        monkeypatch.setattr("sys.argv", ["transfer-indexer", "status"])

        cli.main()

        status.assert_awaited_once()

    def test_unknown_command_exits(self, monkeypatch):
        """argparse rejects unknown commands."""
        monkeypatch.setattr("sys.argv", ["transfer-indexer", "explode"])

        with pytest.raises(SystemExit):
            cli.main()
