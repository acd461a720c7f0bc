"""Tests for the activity-logger CLI."""

import csv
import sqlite3

import fakeredis
import pytest
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import NullPool
from typer.testing import CliRunner

from activity_logger import __version__, cli
from activity_logger.core.cache.redis import RedisCache
from activity_logger.core.database import build_session_factory
from activity_logger.modules.activity_log.services import build_activity_service


runner = CliRunner()


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "cli.db"


@pytest.fixture(autouse=True)
def cli_service(monkeypatch, db_path):
    """Point the CLI at a throwaway SQLite file and an in-process Redis."""
    server = fakeredis.FakeServer()

    def get_service():
        engine = create_async_engine(f"sqlite+aiosqlite:///{db_path}", poolclass=NullPool)
        redis = fakeredis.FakeAsyncRedis(server=server, decode_responses=True)
        return build_activity_service(
            build_session_factory(engine), RedisCache(prefix="test:", client=redis)
        )

    monkeypatch.setattr(cli, "get_service", get_service)


def _table_exists(db_path) -> bool:
    with sqlite3.connect(db_path) as conn:
        row = conn.execute(
            "SELECT name FROM sqlite_master WHERE type='table' AND name='activity_log'"
        ).fetchone()
    return row is not None


class TestVersion:
    def test_version_flag(self):
        result = runner.invoke(cli.app, ["--version"])

        assert result.exit_code == 0
        assert __version__ in result.output


class TestInitDb:
    def test_creates_table(self, db_path):
        result = runner.invoke(cli.app, ["init-db"])

        assert result.exit_code == 0
        assert "ready" in result.output
        assert _table_exists(db_path)


class TestExport:
    def test_writes_csv_to_output(self, tmp_path):
        runner.invoke(cli.app, ["init-db"])
        output = tmp_path / "out.csv"

        result = runner.invoke(cli.app, ["export", "--output", str(output)])

        assert result.exit_code == 0
        with output.open(newline="", encoding="utf-8") as handle:
            assert list(csv.reader(handle)) == [["ID", "Username", "Action", "Log Time"]]

    def test_rejects_unknown_action_category(self, tmp_path):
        result = runner.invoke(
            cli.app, ["export", "--action", "published", "--output", str(tmp_path / "x.csv")]
        )

        assert result.exit_code == 1
        assert "Invalid filter" in result.output

    def test_rejects_malformed_date(self, tmp_path):
        result = runner.invoke(cli.app, ["export", "--start", "yesterday"])

        assert result.exit_code == 1


class TestUninstall:
    def test_force_drops_table(self, db_path):
        runner.invoke(cli.app, ["init-db"])

        result = runner.invoke(cli.app, ["uninstall", "--force"])

        assert result.exit_code == 0
        assert not _table_exists(db_path)

    def test_declined_prompt_keeps_table(self, db_path):
        runner.invoke(cli.app, ["init-db"])

        result = runner.invoke(cli.app, ["uninstall"], input="n\n")

        assert result.exit_code == 0
        assert "Aborted" in result.output
        assert _table_exists(db_path)
