#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Migration runner with batch tracking.

Applies or reverts a plugin's directory of migration units against the host
schema and keeps the migration ledger in step:

- migrate(): every unit not yet in the ledger, in file name order, as one
  new batch
- rollback(): the units of the latest batch (optionally only those recorded
  under one plugin version), newest first
- reset(): every batch, newest first

Each unit runs in its own transaction together with its ledger write. A
failing unit stops the run; units applied before it stay applied and
recorded. Nothing is compensated automatically, but a later run picks up
where the failed one stopped because recorded units are skipped.
"""
import logging
import time
from pathlib import Path
from typing import List, Optional

from sqlalchemy.engine import Connection

from ..models import PluginMigration
from .errors import MigrationFailedError
from .ledger import MigrationLedger
from .migration import SQL, MigrationStatus, MigrationUnit
from .migration_manager import MigrationManager, split_sql_statements


class MigrationRunner:
    """
    Executes plugin migration units and updates the ledger.

    Attributes:
        database: Database instance for session management
        ledger: MigrationLedger recording applied units
        manager: MigrationManager discovering units on disk
        logger: Logger for execution tracking

    Example:
        runner = MigrationRunner(database)

        # Apply everything new for version 1.0.0
        applied = runner.migrate('Quotes', Path('plugins/Quotes/migrations'), '1.0.0')

        # Undo the last batch
        reverted = runner.rollback('Quotes', Path('plugins/Quotes/migrations'))
    """

    def __init__(self, database, ledger: Optional[MigrationLedger] = None,
                 manager: Optional[MigrationManager] = None):
        self.database = database
        self.ledger = ledger or MigrationLedger(database)
        self.manager = manager or MigrationManager()
        self.logger = logging.getLogger(__name__)

    # =================================================================
    # Forward
    # =================================================================

    def migrate(self, plugin: str, migrations_dir: Optional[Path], version: str) -> List[str]:
        """
        Apply every unit of a directory that has not run yet.

        Args:
            plugin: Plugin name
            migrations_dir: Directory of migration units
            version: Plugin version recorded with each applied unit

        Returns:
            Names of the units applied by this call (empty if up to date)

        Raises:
            InvalidMigrationError: If a unit file is malformed
            MigrationFailedError: If a unit's forward action fails
        """
        units = self.manager.discover(migrations_dir)
        if not units:
            return []

        batch = self.ledger.next_batch(plugin)
        applied = []

        for unit in units:
            if self.ledger.has_run(plugin, unit.name):
                self.logger.debug('Skipping migration %s for %s (already ran)', unit.name, plugin)
                continue

            self.apply_unit(plugin, unit, version, batch)
            applied.append(unit.name)

        if applied:
            self.logger.info(
                'Migrated plugin %s: %d unit(s) in batch %d', plugin, len(applied), batch
            )
        return applied

    def apply_unit(self, plugin: str, unit: MigrationUnit, version: str, batch: int) -> None:
        """Run one unit's forward action and record it, in one transaction."""
        start_time = time.time()
        self.logger.info('Applying migration %s for plugin %s', unit.name, plugin)

        try:
            with self.database.session() as session:
                self._execute(unit, session.connection(), forward=True)
                self.ledger.record(plugin, unit.name, version, batch, session=session)
        except Exception as e:
            self.logger.error(
                'Failed to apply migration %s for plugin %s: %s', unit.name, plugin, e
            )
            raise MigrationFailedError(plugin, unit.name, e, direction='up') from e

        self.logger.info(
            'Applied migration %s for plugin %s (%dms)',
            unit.name, plugin, int((time.time() - start_time) * 1000)
        )

    # =================================================================
    # Reverse
    # =================================================================

    def rollback(self, plugin: str, migrations_dir: Optional[Path],
                 version: Optional[str] = None) -> List[str]:
        """
        Revert the latest batch of a plugin.

        Args:
            plugin: Plugin name
            migrations_dir: Directory holding the unit files
            version: Only revert units recorded under this plugin version;
                the batch is then the latest batch among those rows

        Returns:
            Names of the units reverted. Ledger rows whose file no longer
            exists are skipped and stay recorded.

        Raises:
            MigrationFailedError: If a unit's reverse action fails
        """
        batch = self.ledger.last_batch(plugin, version=version)
        if batch == 0:
            self.logger.debug('Nothing to roll back for plugin %s', plugin)
            return []

        entries = self.ledger.list_for_version(plugin, version=version, batch=batch)
        reverted = self._revert_entries(plugin, migrations_dir, entries)

        self.logger.info(
            'Rolled back plugin %s batch %d: %d unit(s)', plugin, batch, len(reverted)
        )
        return reverted

    def reset(self, plugin: str, migrations_dir: Optional[Path]) -> List[str]:
        """Revert every batch of a plugin, newest batch first."""
        reverted = []
        for batch in reversed(self.ledger.batches(plugin)):
            entries = self.ledger.list_for_version(plugin, batch=batch)
            reverted.extend(self._revert_entries(plugin, migrations_dir, entries))

        self.logger.info('Reset plugin %s: %d unit(s) rolled back', plugin, len(reverted))
        return reverted

    def _revert_entries(self, plugin: str, migrations_dir: Optional[Path],
                        entries: List[PluginMigration]) -> List[str]:
        reverted = []
        for entry in entries:
            unit = self.manager.find(migrations_dir, entry.migration)
            if unit is None:
                self.logger.warning(
                    'Migration file %s for plugin %s not found, leaving it recorded',
                    entry.migration, plugin
                )
                continue

            self.revert_unit(plugin, unit, entry.id)
            reverted.append(unit.name)
        return reverted

    def revert_unit(self, plugin: str, unit: MigrationUnit, record_id: int) -> None:
        """Run one unit's reverse action and delete its ledger row, in one transaction."""
        self.logger.info('Rolling back migration %s for plugin %s', unit.name, plugin)

        try:
            with self.database.session() as session:
                self._execute(unit, session.connection(), forward=False)
                self.ledger.remove(plugin, record_id, session=session)
        except Exception as e:
            self.logger.error(
                'Failed to roll back migration %s for plugin %s: %s', unit.name, plugin, e
            )
            raise MigrationFailedError(plugin, unit.name, e, direction='down') from e

    # =================================================================
    # Status
    # =================================================================

    def status(self, plugin: str, migrations_dir: Optional[Path]) -> List[MigrationStatus]:
        """
        Status of each unit file on disk, in file name order.

        Example:
            for row in runner.status('Quotes', path):
                print(row.name, row.label)   # ... Ran (Batch 1) / Pending
        """
        statuses = []
        for unit in self.manager.discover(migrations_dir):
            entry = self.ledger.find(plugin, unit.name)
            if entry is None:
                statuses.append(MigrationStatus(name=unit.name, ran=False))
            else:
                statuses.append(MigrationStatus(
                    name=unit.name, ran=True, batch=entry.batch, version=entry.version
                ))
        return statuses

    # =================================================================
    # Execution
    # =================================================================

    def _execute(self, unit: MigrationUnit, connection: Connection, forward: bool) -> None:
        if unit.kind == SQL:
            sql = unit.up_sql if forward else unit.down_sql
            for stmt in split_sql_statements(sql):
                connection.exec_driver_sql(stmt)
        else:
            hook = unit.upgrade if forward else unit.downgrade
            hook(connection)
