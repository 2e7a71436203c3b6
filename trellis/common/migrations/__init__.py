"""
Plugin schema migrations.

This package provides:
- MigrationUnit: One migration file (forward/reverse action pair)
- MigrationStatus: Ran/pending status of a unit on disk
- MigrationManager: Discovery and parsing of migration files
- MigrationLedger: Persisted record of applied units per plugin and batch
- MigrationRunner: Applies and reverts units, keeping the ledger in step
"""

from .errors import (
    DuplicateMigrationEntryError,
    InvalidMigrationError,
    MigrationError,
    MigrationFailedError,
)
from .ledger import MigrationLedger
from .migration import MigrationStatus, MigrationUnit
from .migration_executor import MigrationRunner
from .migration_manager import MigrationManager, split_sql_statements

__all__ = [
    'MigrationUnit',
    'MigrationStatus',
    'MigrationManager',
    'MigrationLedger',
    'MigrationRunner',
    'MigrationError',
    'InvalidMigrationError',
    'MigrationFailedError',
    'DuplicateMigrationEntryError',
    'split_sql_statements',
]
