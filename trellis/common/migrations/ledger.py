"""
Migration ledger: the persisted history of applied plugin migration units.

Each row of plugin_migrations says "unit M of plugin P ran under version V in
batch B". Rows are appended when a unit is applied and deleted when it is
rolled back. A (plugin, migration) pair is recorded at most once while
applied.

Every method accepts an optional session so that a unit's schema change and
its ledger write can share one transaction. Without a session each call runs
in its own short transaction.
"""

import logging
from contextlib import contextmanager
from typing import Iterator, List, Optional

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session

from ..models import PluginMigration
from .errors import DuplicateMigrationEntryError

logger = logging.getLogger(__name__)


class MigrationLedger:
    """
    Read/write access to plugin_migrations.

    Example:
        ledger = MigrationLedger(database)
        batch = ledger.next_batch('Quotes')
        if not ledger.has_run('Quotes', '2024_11_26_000000_create_quotes.sql'):
            ...
            ledger.record('Quotes', '2024_11_26_000000_create_quotes.sql', '1.0.0', batch)
    """

    def __init__(self, database):
        self.database = database

    @contextmanager
    def _scope(self, session: Optional[Session]) -> Iterator[Session]:
        """Join the caller's session, or open a transaction of our own."""
        if session is not None:
            yield session
        else:
            with self.database.session() as own:
                yield own

    def has_run(self, plugin: str, migration: str, session: Optional[Session] = None) -> bool:
        """Exact match on plugin + unit name, independent of version."""
        return self.find(plugin, migration, session=session) is not None

    def find(self, plugin: str, migration: str,
             session: Optional[Session] = None) -> Optional[PluginMigration]:
        """Return the ledger row for a unit, or None if it has not run."""
        with self._scope(session) as s:
            return s.execute(
                select(PluginMigration)
                .where(PluginMigration.plugin == plugin)
                .where(PluginMigration.migration == migration)
                .order_by(PluginMigration.id.desc())
                .limit(1)
            ).scalar_one_or_none()

    def last_batch(self, plugin: str, version: Optional[str] = None,
                   session: Optional[Session] = None) -> int:
        """
        Highest batch number for a plugin, or 0 if nothing has run.

        Args:
            plugin: Plugin name
            version: Only consider rows recorded under this plugin version
        """
        query = select(func.max(PluginMigration.batch)).where(PluginMigration.plugin == plugin)
        if version is not None:
            query = query.where(PluginMigration.version == version)

        with self._scope(session) as s:
            return s.execute(query).scalar() or 0

    def next_batch(self, plugin: str, session: Optional[Session] = None) -> int:
        """Batch number for the next run: last batch + 1 (1 for a fresh plugin)."""
        return self.last_batch(plugin, session=session) + 1

    def batches(self, plugin: str, session: Optional[Session] = None) -> List[int]:
        """Distinct batch numbers for a plugin, ascending."""
        with self._scope(session) as s:
            return list(s.execute(
                select(PluginMigration.batch)
                .where(PluginMigration.plugin == plugin)
                .distinct()
                .order_by(PluginMigration.batch)
            ).scalars())

    def record(self, plugin: str, migration: str, version: str, batch: int,
               session: Optional[Session] = None) -> PluginMigration:
        """
        Append one ledger row.

        Raises:
            DuplicateMigrationEntryError: If the unit is already recorded
        """
        with self._scope(session) as s:
            if self.has_run(plugin, migration, session=s):
                raise DuplicateMigrationEntryError(plugin, migration)

            entry = PluginMigration(
                plugin=plugin,
                migration=migration,
                version=version,
                batch=batch,
            )
            s.add(entry)
            s.flush()
            logger.debug(f"Recorded migration {migration} for {plugin} (v{version}, batch {batch})")
            return entry

    def remove(self, plugin: str, record_id: int, session: Optional[Session] = None) -> bool:
        """
        Delete one ledger row.

        Returns:
            True if a row was deleted
        """
        with self._scope(session) as s:
            result = s.execute(
                delete(PluginMigration)
                .where(PluginMigration.plugin == plugin)
                .where(PluginMigration.id == record_id)
            )
            return result.rowcount > 0

    def list_for_version(self, plugin: str, version: Optional[str] = None,
                         batch: Optional[int] = None,
                         session: Optional[Session] = None) -> List[PluginMigration]:
        """
        Ledger rows for a plugin, newest first.

        Newest-first insertion order is the rollback order.

        Args:
            plugin: Plugin name
            version: Only rows recorded under this version
            batch: Only rows of this batch
        """
        query = select(PluginMigration).where(PluginMigration.plugin == plugin)
        if version is not None:
            query = query.where(PluginMigration.version == version)
        if batch is not None:
            query = query.where(PluginMigration.batch == batch)
        query = query.order_by(PluginMigration.id.desc())

        with self._scope(session) as s:
            return list(s.execute(query).scalars())
