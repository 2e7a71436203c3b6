"""
Unit tests for MigrationManager class.

Tests cover:
- Migration file discovery and sorting
- SQL file parsing (UP/DOWN extraction)
- Python migration modules
- Statement splitting
- Error handling and validation
"""

import pytest

from trellis.common.migrations import InvalidMigrationError, MigrationManager, split_sql_statements
from trellis.common.migrations.migration import PYTHON, SQL, MigrationStatus, MigrationUnit


@pytest.fixture
def migrations_dir(tmp_path):
    """Migration directory with valid units and files to ignore."""
    path = tmp_path / "migrations"
    path.mkdir()

    (path / "2024_12_01_000000_add_rating.sql").write_text(
        "-- UP\nALTER TABLE quotes ADD COLUMN rating INT;\n-- DOWN\nALTER TABLE quotes DROP COLUMN rating;\n"
    )
    (path / "2024_11_26_000000_create_quotes.sql").write_text(
        "-- UP\nCREATE TABLE quotes (id INTEGER PRIMARY KEY);\n-- DOWN\nDROP TABLE quotes;\n"
    )
    (path / "2024_12_05_000000_seed.py").write_text(
        "def upgrade(connection):\n"
        "    connection.exec_driver_sql(\"INSERT INTO quotes (id) VALUES (1)\")\n"
        "\n"
        "def downgrade(connection):\n"
        "    connection.exec_driver_sql(\"DELETE FROM quotes WHERE id = 1\")\n"
    )

    # Ignored
    (path / "README.md").write_text("# Migrations")
    (path / "_helpers.py").write_text("X = 1\n")
    (path / ".hidden.sql").write_text("-- UP\nSELECT 1;\n-- DOWN\nSELECT 1;\n")
    (path / "subdir.sql").mkdir()

    return path


class TestMigrationDiscovery:
    """Test migration file discovery."""

    def test_discover_sorted_by_name(self, migrations_dir):
        """Units come back in lexical file name order."""
        units = MigrationManager().discover(migrations_dir)

        assert [u.name for u in units] == [
            "2024_11_26_000000_create_quotes.sql",
            "2024_12_01_000000_add_rating.sql",
            "2024_12_05_000000_seed.py",
        ]

    def test_discover_kinds(self, migrations_dir):
        units = MigrationManager().discover(migrations_dir)

        assert [u.kind for u in units] == [SQL, SQL, PYTHON]

    def test_discover_missing_directory(self, tmp_path):
        """A plugin without a migration directory has no units."""
        assert MigrationManager().discover(tmp_path / "nope") == []

    def test_discover_none(self):
        assert MigrationManager().discover(None) == []

    def test_find_existing(self, migrations_dir):
        unit = MigrationManager().find(migrations_dir, "2024_11_26_000000_create_quotes.sql")

        assert unit is not None
        assert unit.up_sql == "CREATE TABLE quotes (id INTEGER PRIMARY KEY);"

    def test_find_missing_returns_none(self, migrations_dir):
        assert MigrationManager().find(migrations_dir, "2020_01_01_gone.sql") is None

    def test_discover_invalid_file_raises(self, migrations_dir):
        (migrations_dir / "2025_01_01_000000_broken.sql").write_text("CREATE TABLE x (id INT);\n")

        with pytest.raises(InvalidMigrationError):
            MigrationManager().discover(migrations_dir)


class TestSqlParsing:
    """Test UP/DOWN section extraction."""

    def write(self, tmp_path, content, name="2024_01_01_000000_unit.sql"):
        path = tmp_path / name
        path.write_text(content)
        return path

    def test_parse_sections(self, tmp_path):
        path = self.write(
            tmp_path,
            "-- UP\nCREATE TABLE a (id INT);\nCREATE TABLE b (id INT);\n\n-- DOWN\nDROP TABLE b;\nDROP TABLE a;\n"
        )

        unit = MigrationManager().load_unit(path)

        assert unit.up_sql == "CREATE TABLE a (id INT);\nCREATE TABLE b (id INT);"
        assert unit.down_sql == "DROP TABLE b;\nDROP TABLE a;"

    def test_markers_case_insensitive(self, tmp_path):
        path = self.write(tmp_path, "-- up\nSELECT 1;\n-- down\nSELECT 2;\n")

        unit = MigrationManager().load_unit(path)

        assert unit.up_sql == "SELECT 1;"
        assert unit.down_sql == "SELECT 2;"

    def test_missing_up_marker(self, tmp_path):
        path = self.write(tmp_path, "CREATE TABLE a (id INT);\n-- DOWN\nDROP TABLE a;\n")

        with pytest.raises(InvalidMigrationError, match="UP"):
            MigrationManager().load_unit(path)

    def test_missing_down_marker(self, tmp_path):
        path = self.write(tmp_path, "-- UP\nCREATE TABLE a (id INT);\n")

        with pytest.raises(InvalidMigrationError, match="DOWN"):
            MigrationManager().load_unit(path)

    def test_down_before_up(self, tmp_path):
        path = self.write(tmp_path, "-- DOWN\nDROP TABLE a;\n-- UP\nCREATE TABLE a (id INT);\n")

        with pytest.raises(InvalidMigrationError, match="before"):
            MigrationManager().load_unit(path)

    def test_empty_down_section(self, tmp_path):
        path = self.write(tmp_path, "-- UP\nCREATE TABLE a (id INT);\n-- DOWN\n\n")

        with pytest.raises(InvalidMigrationError, match="empty DOWN"):
            MigrationManager().load_unit(path)

    def test_invalid_filename(self, tmp_path):
        path = self.write(tmp_path, "-- UP\nSELECT 1;\n-- DOWN\nSELECT 1;\n", name="bad name.sql")

        with pytest.raises(InvalidMigrationError, match="filename"):
            MigrationManager().load_unit(path)

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            MigrationManager().load_unit(tmp_path / "2024_01_01_000000_none.sql")


class TestPythonUnits:
    """Test Python migration modules."""

    def test_missing_downgrade(self, tmp_path):
        path = tmp_path / "2024_01_01_000000_only_up.py"
        path.write_text("def upgrade(connection):\n    pass\n")

        with pytest.raises(InvalidMigrationError, match="downgrade"):
            MigrationManager().load_unit(path)

    def test_import_error_is_invalid_migration(self, tmp_path):
        path = tmp_path / "2024_01_01_000000_broken.py"
        path.write_text("import does_not_exist_anywhere\n")

        with pytest.raises(InvalidMigrationError, match="failed to import"):
            MigrationManager().load_unit(path)

    def test_hooks_are_callable(self, migrations_dir):
        unit = MigrationManager().find(migrations_dir, "2024_12_05_000000_seed.py")

        assert callable(unit.upgrade)
        assert callable(unit.downgrade)


class TestSplitStatements:
    """Test SQL statement splitting."""

    def test_split_multiple(self):
        assert split_sql_statements("CREATE TABLE a (id INT);\nCREATE TABLE b (id INT);") == [
            "CREATE TABLE a (id INT)",
            "CREATE TABLE b (id INT)",
        ]

    def test_semicolon_in_string_literal(self):
        statements = split_sql_statements("INSERT INTO a (v) VALUES ('x;y');\nSELECT 1;")

        assert statements == ["INSERT INTO a (v) VALUES ('x;y')", "SELECT 1"]

    def test_comment_lines_skipped(self):
        statements = split_sql_statements("-- create\nCREATE TABLE a (id INT);\n-- done\n")

        assert statements == ["CREATE TABLE a (id INT)"]

    def test_statement_without_trailing_semicolon(self):
        assert split_sql_statements("DROP TABLE a") == ["DROP TABLE a"]

    def test_empty(self):
        assert split_sql_statements("\n\n") == []


class TestModels:
    """Test migration data models."""

    def test_unit_ordering(self):
        a = MigrationUnit(name="2024_01_01_a.sql", file_path="/a", up_sql="SELECT 1", down_sql="SELECT 1")
        b = MigrationUnit(name="2024_02_01_b.sql", file_path="/b", up_sql="SELECT 1", down_sql="SELECT 1")

        assert sorted([b, a]) == [a, b]

    def test_unknown_kind(self):
        with pytest.raises(ValueError):
            MigrationUnit(name="x.txt", file_path="/x", kind="text")

    def test_status_label(self):
        assert MigrationStatus(name="a.sql", ran=True, batch=2).label == "Ran (Batch 2)"
        assert MigrationStatus(name="a.sql", ran=False).label == "Pending"
