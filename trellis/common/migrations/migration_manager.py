"""
Migration file discovery and parsing for plugin schema evolution.

This module provides the MigrationManager class which handles:
- Discovery of migration files in a plugin's migration directory
- Parsing of SQL migration files (extracting UP/DOWN sections)
- Loading of Python migration modules (upgrade/downgrade functions)

Units are ordered lexically by file name. By convention names start with a
timestamp, so lexical order is chronological order:
    2024_11_26_082209_create_quotes.sql
    2024_12_01_101500_add_rating.py

SQL file format:
    -- UP
    CREATE TABLE my_table (id INTEGER PRIMARY KEY);

    -- DOWN
    DROP TABLE my_table;

Python file format:
    def upgrade(connection):
        connection.exec_driver_sql('CREATE TABLE my_table (id INTEGER PRIMARY KEY)')

    def downgrade(connection):
        connection.exec_driver_sql('DROP TABLE my_table')
"""

import importlib.util
import logging
import re
from pathlib import Path
from typing import List, Optional, Tuple

from .errors import InvalidMigrationError
from .migration import PYTHON, SQL, MigrationUnit

logger = logging.getLogger(__name__)


def split_sql_statements(sql: str) -> List[str]:
    """Split SQL string into individual statements.

    Handles semicolon-separated statements while preserving string literals
    and skipping comment lines. Required for SQLite which can only execute
    one statement at a time.

    Args:
        sql: SQL string with one or more statements

    Returns:
        List of individual SQL statements (without trailing semicolons)
    """
    statements = []
    current = []
    in_string = False
    string_char = None

    for line in sql.split('\n'):
        if not in_string and line.strip().startswith('--'):
            continue

        start = 0
        for i, char in enumerate(line):
            if char in ('"', "'"):
                if not in_string:
                    in_string = True
                    string_char = char
                elif char == string_char:
                    in_string = False
                    string_char = None
            elif char == ';' and not in_string:
                current.append(line[start:i])
                stmt = '\n'.join(current).strip()
                if stmt:
                    statements.append(stmt)
                current = []
                start = i + 1

        remainder = line[start:]
        if remainder.strip() and (in_string or not remainder.strip().startswith('--')):
            current.append(remainder)

    if current:
        stmt = '\n'.join(current).strip()
        if stmt:
            statements.append(stmt)

    return statements


class MigrationManager:
    """
    Discovers and parses migration units.

    Does NOT execute migrations (see MigrationRunner).

    Example:
        >>> manager = MigrationManager()
        >>> manager.discover(Path('plugins/Quotes/migrations'))
        [<MigrationUnit(2024_11_26_000000_create_quotes.sql)>]
    """

    # Section markers in SQL migration files
    UP_MARKER = '-- UP'
    DOWN_MARKER = '-- DOWN'

    SUFFIXES = {'.sql': SQL, '.py': PYTHON}

    # Unit names are used as ledger keys and module names
    NAME_PATTERN = re.compile(r'^[A-Za-z0-9][A-Za-z0-9_.\-]*$')

    def is_migration_file(self, file_path: Path) -> bool:
        """Whether a directory entry looks like a migration unit."""
        return (
            file_path.is_file()
            and file_path.suffix in self.SUFFIXES
            and not file_path.name.startswith(('_', '.'))
        )

    def discover(self, migrations_dir: Optional[Path]) -> List[MigrationUnit]:
        """
        Discover all migration units in a directory.

        Args:
            migrations_dir: Plugin migration directory (None or missing
                directory means the plugin has no migrations)

        Returns:
            List of MigrationUnit objects sorted by file name

        Raises:
            InvalidMigrationError: If a migration file cannot be parsed
        """
        if migrations_dir is None:
            return []

        migrations_dir = Path(migrations_dir)
        if not migrations_dir.is_dir():
            logger.debug(f"No migrations directory at {migrations_dir}")
            return []

        units = []
        for file_path in sorted(migrations_dir.iterdir(), key=lambda p: p.name):
            if not self.is_migration_file(file_path):
                continue
            unit = self.load_unit(file_path)
            logger.debug(f"Discovered migration: {unit}")
            units.append(unit)

        return sorted(units)

    def find(self, migrations_dir: Optional[Path], name: str) -> Optional[MigrationUnit]:
        """
        Load a single unit by file name.

        Returns:
            MigrationUnit, or None if the file no longer exists
        """
        if migrations_dir is None:
            return None
        file_path = Path(migrations_dir) / name
        if not file_path.is_file():
            return None
        return self.load_unit(file_path)

    def load_unit(self, file_path: Path) -> MigrationUnit:
        """
        Parse a migration file of either kind.

        Raises:
            FileNotFoundError: If file doesn't exist
            InvalidMigrationError: If the file is malformed
        """
        file_path = Path(file_path)
        if not file_path.exists():
            raise FileNotFoundError(f"Migration file not found: {file_path}")

        if not self.NAME_PATTERN.match(file_path.name):
            raise InvalidMigrationError(f"Invalid migration filename: {file_path.name}")

        kind = self.SUFFIXES.get(file_path.suffix)
        if kind == SQL:
            return self.parse_sql_file(file_path)
        if kind == PYTHON:
            return self.load_python_file(file_path)
        raise InvalidMigrationError(f"Unsupported migration file type: {file_path.name}")

    def parse_sql_file(self, file_path: Path) -> MigrationUnit:
        """
        Parse a SQL migration file and extract UP/DOWN sections.

        Raises:
            InvalidMigrationError: If UP or DOWN section missing or empty
        """
        content = file_path.read_text(encoding='utf-8')
        up_sql, down_sql = self._parse_sections(content, file_path.name)

        try:
            return MigrationUnit(
                name=file_path.name,
                file_path=str(file_path.absolute()),
                kind=SQL,
                up_sql=up_sql,
                down_sql=down_sql,
            )
        except ValueError as e:
            raise InvalidMigrationError(str(e)) from e

    def load_python_file(self, file_path: Path) -> MigrationUnit:
        """
        Import a Python migration module.

        The module is executed under a private name and is not added to
        sys.modules, so editing the file takes effect on the next load.

        Raises:
            InvalidMigrationError: If the module fails to import or lacks
                upgrade()/downgrade()
        """
        module_name = '_trellis_migration_' + re.sub(r'\W', '_', file_path.stem)
        spec = importlib.util.spec_from_file_location(module_name, file_path)
        if spec is None or spec.loader is None:
            raise InvalidMigrationError(f"Cannot load migration module {file_path.name}")

        module = importlib.util.module_from_spec(spec)
        try:
            spec.loader.exec_module(module)
        except Exception as e:
            raise InvalidMigrationError(
                f"Migration {file_path.name} failed to import: {e}"
            ) from e

        try:
            return MigrationUnit(
                name=file_path.name,
                file_path=str(file_path.absolute()),
                kind=PYTHON,
                upgrade=getattr(module, 'upgrade', None),
                downgrade=getattr(module, 'downgrade', None),
            )
        except ValueError as e:
            raise InvalidMigrationError(str(e)) from e

    def _parse_sections(self, content: str, filename: str) -> Tuple[str, str]:
        """
        Parse UP and DOWN sections from SQL migration file content.

        Returns:
            Tuple of (up_sql, down_sql)

        Raises:
            InvalidMigrationError: If a marker is missing or out of order
        """
        lines = content.split('\n')

        up_start = None
        down_start = None

        # Find section markers (case-insensitive)
        for i, line in enumerate(lines):
            line_stripped = line.strip().upper()
            if line_stripped == self.UP_MARKER:
                up_start = i + 1
            elif line_stripped == self.DOWN_MARKER:
                down_start = i + 1

        if up_start is None:
            raise InvalidMigrationError(
                f"Migration {filename} missing '{self.UP_MARKER}' marker"
            )

        if down_start is None:
            raise InvalidMigrationError(
                f"Migration {filename} missing '{self.DOWN_MARKER}' marker"
            )

        if up_start >= down_start:
            raise InvalidMigrationError(
                f"Migration {filename} has '{self.DOWN_MARKER}' before "
                f"'{self.UP_MARKER}' (UP at line {up_start}, "
                f"DOWN at line {down_start})"
            )

        up_sql = '\n'.join(lines[up_start:down_start - 1]).strip()
        down_sql = '\n'.join(lines[down_start:]).strip()

        return up_sql, down_sql
