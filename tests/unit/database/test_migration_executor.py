"""
Unit tests for MigrationRunner.

Tests cover:
- Idempotent application (hasRun skips recorded units)
- Batch isolation on rollback
- Version-scoped rollback
- Missing unit files during rollback
- Failure in the middle of a run
- Status reporting
"""

import pytest

from trellis.common.migrations import MigrationFailedError, MigrationLedger, MigrationRunner


def unit(table):
    return f"-- UP\nCREATE TABLE {table} (id INTEGER PRIMARY KEY);\n\n-- DOWN\nDROP TABLE {table};\n"


@pytest.fixture
def runner(database):
    return MigrationRunner(database)


@pytest.fixture
def ledger(runner):
    return runner.ledger


@pytest.fixture
def migrations_dir(tmp_path):
    path = tmp_path / "migrations"
    path.mkdir()
    return path


class TestMigrate:
    """Test forward migrations."""

    def test_applies_in_order_as_one_batch(self, runner, ledger, database, migrations_dir):
        (migrations_dir / "2024_01_02_b.sql").write_text(unit("b"))
        (migrations_dir / "2024_01_01_a.sql").write_text(unit("a"))

        applied = runner.migrate("Sample", migrations_dir, "1.0.0")

        assert applied == ["2024_01_01_a.sql", "2024_01_02_b.sql"]
        assert database.has_table("a")
        assert database.has_table("b")
        entries = ledger.list_for_version("Sample")
        assert {e.batch for e in entries} == {1}
        assert {e.version for e in entries} == {"1.0.0"}

    def test_second_run_is_noop(self, runner, ledger, migrations_dir):
        """Running twice applies each unit at most once."""
        (migrations_dir / "2024_01_01_a.sql").write_text(unit("a"))

        runner.migrate("Sample", migrations_dir, "1.0.0")
        second = runner.migrate("Sample", migrations_dir, "1.0.0")

        assert second == []
        assert len(ledger.list_for_version("Sample")) == 1
        assert ledger.last_batch("Sample") == 1

    def test_new_units_get_next_batch(self, runner, ledger, migrations_dir):
        (migrations_dir / "2024_01_01_a.sql").write_text(unit("a"))
        runner.migrate("Sample", migrations_dir, "1.0.0")

        (migrations_dir / "2024_02_01_c.sql").write_text(unit("c"))
        applied = runner.migrate("Sample", migrations_dir, "2.0.0")

        assert applied == ["2024_02_01_c.sql"]
        assert ledger.find("Sample", "2024_02_01_c.sql").batch == 2
        assert ledger.find("Sample", "2024_02_01_c.sql").version == "2.0.0"

    def test_missing_directory_is_noop(self, runner, tmp_path):
        assert runner.migrate("Sample", tmp_path / "none", "1.0.0") == []

    def test_python_unit(self, runner, database, migrations_dir):
        (migrations_dir / "2024_01_01_a.sql").write_text(unit("a"))
        (migrations_dir / "2024_01_02_seed.py").write_text(
            "def upgrade(connection):\n"
            "    connection.exec_driver_sql('INSERT INTO a (id) VALUES (7)')\n"
            "\n"
            "def downgrade(connection):\n"
            "    connection.exec_driver_sql('DELETE FROM a WHERE id = 7')\n"
        )

        runner.migrate("Sample", migrations_dir, "1.0.0")

        with database.engine.connect() as conn:
            assert conn.exec_driver_sql("SELECT id FROM a").scalar() == 7

    def test_failure_mid_loop(self, runner, ledger, database, migrations_dir):
        """Units before the failing one stay applied and recorded."""
        (migrations_dir / "2024_01_01_a.sql").write_text(unit("a"))
        (migrations_dir / "2024_01_02_bad.sql").write_text(
            "-- UP\nCREATE TABLE broken (id INTEGER PRIMARY KEY;\n-- DOWN\nDROP TABLE broken;\n"
        )
        (migrations_dir / "2024_01_03_c.sql").write_text(unit("c"))

        with pytest.raises(MigrationFailedError) as exc_info:
            runner.migrate("Sample", migrations_dir, "1.0.0")

        assert exc_info.value.migration == "2024_01_02_bad.sql"
        assert exc_info.value.plugin == "Sample"
        assert exc_info.value.cause is not None
        assert str(exc_info.value)
        assert ledger.has_run("Sample", "2024_01_01_a.sql")
        assert not ledger.has_run("Sample", "2024_01_02_bad.sql")
        assert not ledger.has_run("Sample", "2024_01_03_c.sql")
        assert database.has_table("a")
        assert not database.has_table("c")

    def test_rerun_after_fix_resumes(self, runner, ledger, migrations_dir):
        (migrations_dir / "2024_01_01_a.sql").write_text(unit("a"))
        bad = migrations_dir / "2024_01_02_b.sql"
        bad.write_text("-- UP\nCREATE TABLE b (;\n-- DOWN\nDROP TABLE b;\n")

        with pytest.raises(MigrationFailedError):
            runner.migrate("Sample", migrations_dir, "1.0.0")

        bad.write_text(unit("b"))
        applied = runner.migrate("Sample", migrations_dir, "1.0.0")

        assert applied == ["2024_01_02_b.sql"]


class TestRollback:
    """Test batched rollback."""

    def test_batch_isolation(self, runner, ledger, database, migrations_dir):
        """Rolling back once removes exactly the last batch."""
        (migrations_dir / "2024_01_01_a.sql").write_text(unit("a"))
        (migrations_dir / "2024_01_02_b.sql").write_text(unit("b"))
        runner.migrate("Sample", migrations_dir, "1.0.0")
        (migrations_dir / "2024_01_03_c.sql").write_text(unit("c"))
        runner.migrate("Sample", migrations_dir, "1.0.0")

        reverted = runner.rollback("Sample", migrations_dir)

        assert reverted == ["2024_01_03_c.sql"]
        assert not database.has_table("c")
        assert database.has_table("a") and database.has_table("b")
        assert [e.migration for e in ledger.list_for_version("Sample")] == [
            "2024_01_02_b.sql", "2024_01_01_a.sql"
        ]

    def test_reverse_order_within_batch(self, runner, migrations_dir):
        (migrations_dir / "2024_01_01_a.sql").write_text(unit("a"))
        (migrations_dir / "2024_01_02_b.sql").write_text(unit("b"))
        runner.migrate("Sample", migrations_dir, "1.0.0")

        assert runner.rollback("Sample", migrations_dir) == ["2024_01_02_b.sql", "2024_01_01_a.sql"]

    def test_version_scoped(self, runner, ledger, database, migrations_dir):
        (migrations_dir / "2024_01_01_a.sql").write_text(unit("a"))
        runner.migrate("Sample", migrations_dir, "1.0.0")
        (migrations_dir / "2024_02_01_m2.sql").write_text(unit("m2"))
        runner.migrate("Sample", migrations_dir, "2.0.0")

        reverted = runner.rollback("Sample", migrations_dir, version="2.0.0")

        assert reverted == ["2024_02_01_m2.sql"]
        assert not database.has_table("m2")
        assert ledger.has_run("Sample", "2024_01_01_a.sql")

    def test_version_without_entries(self, runner, migrations_dir):
        (migrations_dir / "2024_01_01_a.sql").write_text(unit("a"))
        runner.migrate("Sample", migrations_dir, "1.0.0")

        assert runner.rollback("Sample", migrations_dir, version="3.0.0") == []

    def test_missing_file_entry_remains(self, runner, ledger, database, migrations_dir):
        """Entries whose file is gone are skipped and stay recorded."""
        (migrations_dir / "2024_01_01_a.sql").write_text(unit("a"))
        (migrations_dir / "2024_01_02_b.sql").write_text(unit("b"))
        runner.migrate("Sample", migrations_dir, "1.0.0")
        (migrations_dir / "2024_01_01_a.sql").unlink()

        reverted = runner.rollback("Sample", migrations_dir)

        assert reverted == ["2024_01_02_b.sql"]
        assert ledger.has_run("Sample", "2024_01_01_a.sql")
        assert not ledger.has_run("Sample", "2024_01_02_b.sql")
        assert database.has_table("a")

    def test_nothing_to_rollback(self, runner, migrations_dir):
        assert runner.rollback("Sample", migrations_dir) == []

    def test_reverse_failure(self, runner, ledger, migrations_dir):
        (migrations_dir / "2024_01_01_a.sql").write_text(
            "-- UP\nCREATE TABLE a (id INTEGER PRIMARY KEY);\n-- DOWN\nDROP TABLE not_there;\n"
        )
        runner.migrate("Sample", migrations_dir, "1.0.0")

        with pytest.raises(MigrationFailedError) as exc_info:
            runner.rollback("Sample", migrations_dir)

        assert exc_info.value.direction == "down"
        assert ledger.has_run("Sample", "2024_01_01_a.sql")

    def test_reset_all_batches(self, runner, ledger, database, migrations_dir):
        (migrations_dir / "2024_01_01_a.sql").write_text(unit("a"))
        runner.migrate("Sample", migrations_dir, "1.0.0")
        (migrations_dir / "2024_01_02_b.sql").write_text(unit("b"))
        runner.migrate("Sample", migrations_dir, "2.0.0")

        reverted = runner.reset("Sample", migrations_dir)

        assert reverted == ["2024_01_02_b.sql", "2024_01_01_a.sql"]
        assert ledger.list_for_version("Sample") == []
        assert not database.has_table("a")


class TestStatus:
    """Test status reporting."""

    def test_status(self, runner, migrations_dir):
        (migrations_dir / "2024_01_01_a.sql").write_text(unit("a"))
        runner.migrate("Sample", migrations_dir, "1.0.0")
        (migrations_dir / "2024_01_02_b.sql").write_text(unit("b"))

        status = runner.status("Sample", migrations_dir)

        assert [(s.name, s.label) for s in status] == [
            ("2024_01_01_a.sql", "Ran (Batch 1)"),
            ("2024_01_02_b.sql", "Pending"),
        ]
        assert status[0].version == "1.0.0"


def test_custom_ledger_is_used(database, migrations_dir):
    ledger = MigrationLedger(database)
    runner = MigrationRunner(database, ledger=ledger)
    (migrations_dir / "2024_01_01_a.sql").write_text(unit("a"))

    runner.migrate("Sample", migrations_dir, "1.0.0")

    assert ledger.has_run("Sample", "2024_01_01_a.sql")
