"""
trellis/plugin/records.py

Plugin record store: persistent per-plugin state.
"""

import logging
from contextlib import contextmanager
from typing import Iterator, List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..common.models import MigrateStatus, PluginRecord

logger = logging.getLogger(__name__)

_FIELDS = ('version', 'active', 'migrate_status')


class PluginRecordStore:
    """
    Read/write access to the plugins table.

    One row per plugin identity. Rows are created lazily and never deleted.
    Every method accepts an optional session to join an enclosing transaction.

    Example:
        store = PluginRecordStore(database)
        record = store.ensure('extended_plan.plugin:ExtendedPlan', active=False)
        store.update(record.identity, active=True, migrate_status='success')
    """

    def __init__(self, database):
        self.database = database

    @contextmanager
    def _scope(self, session: Optional[Session]) -> Iterator[Session]:
        if session is not None:
            yield session
        else:
            with self.database.session() as own:
                yield own

    def get(self, identity: str, session: Optional[Session] = None) -> Optional[PluginRecord]:
        with self._scope(session) as s:
            return s.execute(
                select(PluginRecord).where(PluginRecord.identity == identity)
            ).scalar_one_or_none()

    def ensure(self, identity: str, active: bool = False,
               session: Optional[Session] = None) -> PluginRecord:
        """Return the record for identity, creating a pending one if missing."""
        with self._scope(session) as s:
            record = self.get(identity, session=s)
            if record is None:
                record = PluginRecord(
                    identity=identity,
                    active=active,
                    migrate_status=MigrateStatus.PENDING,
                )
                s.add(record)
                s.flush()
                logger.info(f"Created plugin record {identity} (active={active})")
            return record

    def upsert(self, identity: str, session: Optional[Session] = None, **fields) -> PluginRecord:
        """
        Create or update a record.

        Args:
            identity: Plugin identity
            **fields: version, active and/or migrate_status
        """
        self._check(fields)
        with self._scope(session) as s:
            record = self.get(identity, session=s)
            if record is None:
                record = PluginRecord(identity=identity)
                s.add(record)
            for key, value in fields.items():
                setattr(record, key, value)
            return record

    def update(self, identity: str, session: Optional[Session] = None,
               **fields) -> Optional[PluginRecord]:
        """Update an existing record; returns None if there is none."""
        self._check(fields)
        with self._scope(session) as s:
            record = self.get(identity, session=s)
            if record is None:
                return None
            for key, value in fields.items():
                setattr(record, key, value)
            return record

    def all(self, session: Optional[Session] = None) -> List[PluginRecord]:
        with self._scope(session) as s:
            return list(s.execute(select(PluginRecord).order_by(PluginRecord.id)).scalars())

    def active(self, session: Optional[Session] = None) -> List[PluginRecord]:
        """Records that are activated and migrated successfully."""
        with self._scope(session) as s:
            return list(s.execute(
                select(PluginRecord)
                .where(PluginRecord.active.is_(True))
                .where(PluginRecord.migrate_status == MigrateStatus.SUCCESS)
                .order_by(PluginRecord.id)
            ).scalars())

    @staticmethod
    def _check(fields: dict) -> None:
        unknown = set(fields) - set(_FIELDS)
        if unknown:
            raise TypeError(f"Unknown plugin record field(s): {', '.join(sorted(unknown))}")
        status = fields.get('migrate_status')
        if status is not None and status not in MigrateStatus.ALL:
            raise ValueError(f"Invalid migrate_status '{status}'")
