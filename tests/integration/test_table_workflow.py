"""
End-to-end integration tests for the table store.

Tests the full workflow from table creation through batch writes to log-replay
reads, concurrent writers, the local directory store, and the CLI.
"""

import asyncio
import json
import pytest
from click.testing import CliRunner

from tablestore import (
    InMemoryBlobStore,
    LocalBlobStore,
    SchemaMismatchError,
    Table,
    VersionConflictError,
    create_table,
    get_latest_version,
    read_table,
    write_batch,
)
from tablestore.cli import cli
from tablestore.cli.commands import table as table_commands  # noqa: F401  (registers commands)
from tablestore.config import Config
from tablestore.logger import configure_logging


# ============================================================================
# Test Fixtures
# ============================================================================

@pytest.fixture
def config(tmp_path) -> Config:
    """Default configuration that ignores any tablestore.yaml in the cwd."""
    return Config(tmp_path / "tablestore.yaml")


@pytest.fixture
def restore_logging():
    """Reset the shared logger after CLI runs replace its handlers."""
    yield
    configure_logging("INFO")


# ============================================================================
# Core Workflow Tests
# ============================================================================

class TestTableWorkflow:
    """Test create, write and read through the module-level API."""

    def test_create_write_read(self, config):
        """Test the basic create/write/read scenario."""
        store = InMemoryBlobStore()

        async def scenario():
            created = await create_table(
                store,
                "tables/users",
                [{"name": "id", "type": "long"}, {"name": "name", "type": "string"}],
                config=config,
            )
            written = await write_batch(
                store,
                "tables/users",
                [{"id": 1, "name": "Alice"}, {"id": 2, "name": "Bob"}],
                config=config,
            )
            records = await read_table(store, "tables/users", config=config)
            latest = await get_latest_version(store, "tables/users", config=config)
            return created, written, records, latest

        created, written, records, latest = asyncio.run(scenario())

        assert created == {"version": 0}
        assert written["version"] == 1
        assert written["row_count"] == 2
        assert records == [{"id": 1, "name": "Alice"}, {"id": 2, "name": "Bob"}]
        assert latest == 1

    def test_version_monotonicity(self, config):
        """Test each successful write commits exactly the next version."""
        table = Table(InMemoryBlobStore(), "tables/counter", config)

        async def writes():
            await table.create([{"name": "n", "type": "long"}])
            versions = []
            for n in range(5):
                versions.append((await table.write_batch([{"n": n}]))["version"])
            return versions, await table.get_latest_version()

        versions, latest = asyncio.run(writes())

        assert versions == [1, 2, 3, 4, 5]
        assert latest == 5

    def test_schema_mismatch_reported(self, config):
        """Test a drifting batch names index 1 and both field sets."""
        table = Table(InMemoryBlobStore(), "tables/drift", config)

        with pytest.raises(SchemaMismatchError) as exc_info:
            asyncio.run(table.write_batch([{"a": 1, "b": 2}, {"a": 1, "c": 3}]))

        message = str(exc_info.value)
        assert "index 1" in message
        assert "a, b" in message
        assert "a, c" in message
        assert asyncio.run(table.get_latest_version()) == -1

    def test_empty_table_reads_empty(self, config):
        """Test reading a path with no log."""
        assert asyncio.run(read_table(InMemoryBlobStore(), "tables/none", config=config)) == []

    def test_reconstruction_is_idempotent(self, config):
        """Test two reads of an unchanged table are identical."""
        table = Table(InMemoryBlobStore(), "tables/stable", config)
        asyncio.run(table.write_batch([{"k": "a", "v": 1.5}, {"k": "b", "v": 2.5}]))

        assert asyncio.run(table.read()) == asyncio.run(table.read())

    def test_nested_values_round_trip(self, config):
        """Test lists and objects come back as written."""
        table = Table(InMemoryBlobStore(), "tables/nested", config)
        records = [
            {"tags": ["x", "y"], "address": {"city": "A", "zip": "1"}},
            {"tags": [], "address": {"city": "B", "zip": None}},
        ]

        asyncio.run(table.write_batch(records))
        assert asyncio.run(table.read()) == records

    def test_mixed_value_types(self, config):
        """Test a batch with timestamps, booleans, floats and dynamic values."""
        table = Table(InMemoryBlobStore(), "tables/events", config)
        records = [
            {"at": "2024-01-15T10:30:00.250Z", "ok": True, "ratio": 0.5, "extra": {}},
            {"at": "2024-01-16T08:00:00Z", "ok": False, "ratio": 1.0, "extra": {"k": 1}},
        ]

        asyncio.run(table.write_batch(records))

        assert asyncio.run(table.read()) == [
            {"at": "2024-01-15T10:30:00.250Z", "ok": True, "ratio": 0.5, "extra": {}},
            {"at": "2024-01-16T08:00:00.000Z", "ok": False, "ratio": 1.0, "extra": {"k": 1}},
        ]


# ============================================================================
# Concurrency Tests
# ============================================================================

class TestConcurrentWriters:
    """Test two writers racing for the same version."""

    def test_race_one_winner(self, config):
        """Test one write commits and the other gets a version conflict."""
        store = InMemoryBlobStore()
        asyncio.run(Table(store, "tables/race", config).create([{"name": "w", "type": "string"}]))

        async def race():
            return await asyncio.gather(
                Table(store, "tables/race", config).write_batch([{"w": "first"}]),
                Table(store, "tables/race", config).write_batch([{"w": "second"}]),
                return_exceptions=True,
            )

        results = asyncio.run(race())
        successes = [r for r in results if isinstance(r, dict)]
        conflicts = [r for r in results if isinstance(r, VersionConflictError)]

        assert len(successes) == 1
        assert len(conflicts) == 1
        assert successes[0]["version"] == 1
        assert conflicts[0].version == 1

        table = Table(store, "tables/race", config)
        assert asyncio.run(table.get_latest_version()) == 1
        assert asyncio.run(table.read()) == [{"w": "first"}]

    def test_loser_can_retry(self, config):
        """Test the losing writer succeeds at the next version on retry."""
        store = InMemoryBlobStore()
        table = Table(store, "tables/retry", config)
        asyncio.run(table.create([{"name": "w", "type": "string"}]))

        async def race_then_retry():
            results = await asyncio.gather(
                table.write_batch([{"w": "first"}]),
                table.write_batch([{"w": "second"}]),
                return_exceptions=True,
            )
            retried = await table.write_batch([{"w": "second"}])
            return results, retried

        results, retried = asyncio.run(race_then_retry())

        assert isinstance(results[1], VersionConflictError)
        assert retried["version"] == 2
        assert asyncio.run(table.read()) == [{"w": "first"}, {"w": "second"}]


# ============================================================================
# Local Store Tests
# ============================================================================

class TestLocalStore:
    """Test the workflow against a local directory."""

    def test_files_on_disk(self, tmp_path, config):
        """Test the table layout on disk."""
        store = LocalBlobStore(tmp_path / "root")
        table = Table(store, "tables/users", config)

        asyncio.run(table.create([{"name": "id", "type": "long"}]))
        result = asyncio.run(table.write_batch([{"id": 1}, {"id": 2}]))

        table_dir = tmp_path / "root" / "tables" / "users"
        assert (table_dir / result["file"]).is_file()
        assert sorted(p.name for p in (table_dir / "_log").iterdir()) == [
            "00000000000000000000.json",
            "00000000000000000001.json",
        ]

        entry = (table_dir / "_log" / "00000000000000000001.json").read_text(encoding="utf-8")
        actions = [json.loads(line) for line in entry.splitlines()]
        assert [next(iter(a)) for a in actions] == ["commitInfo", "add"]
        assert actions[1]["add"]["path"] == result["file"]

        # A fresh store over the same directory sees the same table
        reopened = Table(LocalBlobStore(tmp_path / "root"), "tables/users", config)
        assert asyncio.run(reopened.read()) == [{"id": 1}, {"id": 2}]


# ============================================================================
# CLI Tests
# ============================================================================

class TestCli:
    """Test the command-line interface."""

    def test_create_write_read_history(self, tmp_path, restore_logging):
        """Test the CLI commands end to end."""
        runner = CliRunner()
        root = tmp_path / "tables"
        common = ["--root", str(root), "--config", str(tmp_path / "tablestore.yaml"), "--log-level", "WARNING"]

        schema = json.dumps([{"name": "id", "type": "long"}, {"name": "name", "type": "string"}])
        result = runner.invoke(cli, ["create", "users", schema] + common)
        assert result.exit_code == 0, result.output
        assert "Created table" in result.output

        batch = tmp_path / "batch.jsonl"
        batch.write_text('{"id": 1, "name": "Alice"}\n{"id": 2, "name": "Bob"}\n', encoding="utf-8")
        result = runner.invoke(cli, ["write", "users", str(batch)] + common)
        assert result.exit_code == 0, result.output
        assert "Wrote 2 rows" in result.output

        result = runner.invoke(cli, ["read", "users", "--format", "json"] + common)
        assert result.exit_code == 0, result.output
        assert json.loads(result.output) == [{"id": 1, "name": "Alice"}, {"id": 2, "name": "Bob"}]

        result = runner.invoke(cli, ["read", "users"] + common)
        assert result.exit_code == 0, result.output
        assert "Alice" in result.output

        result = runner.invoke(cli, ["history", "users"] + common)
        assert result.exit_code == 0, result.output
        assert "WRITE" in result.output
        assert "CREATE" in result.output

    def test_create_twice_fails(self, tmp_path, restore_logging):
        """Test errors exit with a non-zero status."""
        runner = CliRunner()
        common = ["--root", str(tmp_path / "tables"), "--config", str(tmp_path / "tablestore.yaml"), "--log-level", "WARNING"]
        schema = '[{"name": "id", "type": "long"}]'

        assert runner.invoke(cli, ["create", "t", schema] + common).exit_code == 0

        result = runner.invoke(cli, ["create", "t", schema] + common)
        assert result.exit_code != 0
        assert "already exists" in result.output

    def test_version(self):
        """Test the version command."""
        result = CliRunner().invoke(cli, ["version"])

        assert result.exit_code == 0
        assert "Table Store v" in result.output
