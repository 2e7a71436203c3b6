"""
Migration data models for plugin schema evolution.

This module defines the data structures used by the migration runner:
- MigrationUnit: One migration file (forward/reverse action pair)
- MigrationStatus: Whether a unit on disk has run, and in which batch

Applied units themselves are rows of the plugin_migrations table
(see trellis.common.models.PluginMigration).
"""

from dataclasses import dataclass
from typing import Callable, Optional

from sqlalchemy.engine import Connection

SQL = 'sql'
PYTHON = 'python'


@dataclass
class MigrationUnit:
    """
    Represents a single migration file.

    A unit is either a SQL file with UP and DOWN sections, or a Python module
    with upgrade(connection) and downgrade(connection) functions.

    Attributes:
        name: Full filename, the identifier recorded in the ledger
            (e.g., '2024_11_26_082209_create_quotes.sql')
        file_path: Absolute path to migration file
        kind: 'sql' or 'python'
        up_sql: SQL statements for applying the unit (SQL units)
        down_sql: SQL statements for reverting the unit (SQL units)
        upgrade: Forward callable (Python units)
        downgrade: Reverse callable (Python units)

    Example:
        >>> unit = MigrationUnit(
        ...     name='2024_11_26_000000_create_quotes.sql',
        ...     file_path='/plugins/Quotes/migrations/2024_11_26_000000_create_quotes.sql',
        ...     kind='sql',
        ...     up_sql='CREATE TABLE quotes (id INTEGER PRIMARY KEY);',
        ...     down_sql='DROP TABLE quotes;',
        ... )
        >>> unit
        <MigrationUnit(2024_11_26_000000_create_quotes.sql)>
    """

    name: str
    file_path: str
    kind: str = SQL
    up_sql: str = ''
    down_sql: str = ''
    upgrade: Optional[Callable[[Connection], None]] = None
    downgrade: Optional[Callable[[Connection], None]] = None

    def __post_init__(self):
        """Validate unit after initialization."""
        if self.kind == SQL:
            if not self.up_sql.strip():
                raise ValueError(f"Migration {self.name} has empty UP section")
            if not self.down_sql.strip():
                raise ValueError(f"Migration {self.name} has empty DOWN section")
        elif self.kind == PYTHON:
            if not callable(self.upgrade) or not callable(self.downgrade):
                raise ValueError(
                    f"Migration {self.name} must define upgrade() and downgrade()"
                )
        else:
            raise ValueError(f"Unknown migration kind '{self.kind}' for {self.name}")

    def __lt__(self, other: 'MigrationUnit') -> bool:
        """Lexical order of file names, which is chronological by convention."""
        if not isinstance(other, MigrationUnit):
            return NotImplemented
        return self.name < other.name

    def __repr__(self) -> str:
        return f"<MigrationUnit({self.name})>"


@dataclass
class MigrationStatus:
    """
    Status of one migration file for a plugin.

    Attributes:
        name: Unit file name
        ran: Whether the unit is recorded in the ledger
        batch: Ledger batch number (None if pending)
        version: Plugin version under which it ran (None if pending)
    """

    name: str
    ran: bool
    batch: Optional[int] = None
    version: Optional[str] = None

    @property
    def label(self) -> str:
        return f"Ran (Batch {self.batch})" if self.ran else 'Pending'
