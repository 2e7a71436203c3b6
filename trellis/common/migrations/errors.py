"""
trellis/common/migrations/errors.py

Migration-specific exceptions.
"""


class MigrationError(Exception):
    """Base exception for migration errors."""
    pass


class InvalidMigrationError(MigrationError, ValueError):
    """Migration file is malformed (bad name, missing section or hook)."""
    pass


class DuplicateMigrationEntryError(MigrationError):
    """Migration unit is already recorded as applied for this plugin."""

    def __init__(self, plugin: str, migration: str):
        self.plugin = plugin
        self.migration = migration
        super().__init__(
            f"Migration '{migration}' is already recorded for plugin '{plugin}'"
        )


class MigrationFailedError(MigrationError):
    """
    A migration unit's forward or reverse action raised.

    The message is the innermost error's message, so callers that only print
    str(error) still show what the database complained about.

    Attributes:
        plugin: Plugin name
        migration: Unit file name
        direction: 'up' or 'down'
        cause: Original exception
    """

    def __init__(self, plugin: str, migration: str, cause: BaseException, direction: str = 'up'):
        self.plugin = plugin
        self.migration = migration
        self.direction = direction
        self.cause = cause
        super().__init__(str(cause) or cause.__class__.__name__)

    def describe(self) -> str:
        action = 'apply' if self.direction == 'up' else 'roll back'
        return f"Failed to {action} migration {self.migration} for plugin {self.plugin}: {self}"
