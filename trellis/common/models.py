#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
SQLAlchemy ORM Models for trellis
=================================

Defines the two tables the plugin lifecycle depends on, using SQLAlchemy 2.0
ORM with type hints:

- PluginRecord: One row per plugin identity (installed version, active flag,
  migration status). Never deleted, uninstall only flips flags.
- PluginMigration: Append-only ledger of migration units applied per plugin,
  grouped into batches for rollback.

Usage:
    from trellis.common.models import Base, PluginRecord

    engine = create_engine('sqlite:///trellis.db')
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        record = session.execute(
            select(PluginRecord).where(PluginRecord.identity == 'sample.plugin:Sample')
        ).scalar_one_or_none()
"""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Boolean, CheckConstraint, DateTime, Index, Integer, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ============================================================================
# Base Class
# ============================================================================

class Base(DeclarativeBase):
    """
    Base class for all ORM models.

    Usage:
        class MyModel(Base):
            __tablename__ = 'my_table'
            id: Mapped[int] = mapped_column(Integer, primary_key=True)
    """
    pass


# ============================================================================
# Migration Status
# ============================================================================

class MigrateStatus:
    """Allowed values of PluginRecord.migrate_status."""

    PENDING = 'pending'
    SUCCESS = 'success'
    FAILED = 'failed'
    ROLLBACK = 'rollback'

    ALL = (PENDING, SUCCESS, FAILED, ROLLBACK)


# ============================================================================
# Plugin Records
# ============================================================================

class PluginRecord(Base):
    """
    Persistent state of one plugin.

    Source of truth for "is this plugin currently active". Rows are created
    lazily the first time a plugin descriptor is observed and are never
    deleted, so the table also serves as install history.
    """
    __tablename__ = 'plugins'

    id: Mapped[int] = mapped_column(
        Integer,
        primary_key=True,
        autoincrement=True
    )

    identity: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        nullable=False,
        comment="Fully-qualified plugin class (descriptor entry reference)"
    )

    version: Mapped[Optional[str]] = mapped_column(
        String(50),
        nullable=True,
        comment="Installed plugin version (dotted triplet)"
    )

    active: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        server_default='0',
        comment="Whether the plugin is activated"
    )

    migrate_status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=MigrateStatus.PENDING,
        server_default=MigrateStatus.PENDING,
        comment="pending, success, failed or rollback"
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        onupdate=utcnow
    )

    __table_args__ = (
        CheckConstraint(
            "migrate_status IN ('pending', 'success', 'failed', 'rollback')",
            name='check_migrate_status'
        ),
    )

    @property
    def is_active(self) -> bool:
        """Active scope: activated and migrated successfully."""
        return bool(self.active) and self.migrate_status == MigrateStatus.SUCCESS

    def as_dict(self) -> dict:
        return {
            'identity': self.identity,
            'version': self.version,
            'active': bool(self.active),
            'migrate_status': self.migrate_status,
        }

    def __repr__(self) -> str:
        return (
            f"<PluginRecord(identity='{self.identity}', "
            f"version={self.version!r}, active={self.active}, "
            f"migrate_status='{self.migrate_status}')>"
        )


# ============================================================================
# Migration Ledger
# ============================================================================

class PluginMigration(Base):
    """
    One applied migration unit.

    Rows are inserted when a unit's forward action succeeds and deleted when
    its reverse action succeeds. The autoincrement id gives insertion order,
    which is the rollback order within a batch.
    """
    __tablename__ = 'plugin_migrations'

    id: Mapped[int] = mapped_column(
        Integer,
        primary_key=True,
        autoincrement=True
    )

    plugin: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        comment="Plugin name (descriptor directory name)"
    )

    migration: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        comment="Migration unit file name"
    )

    version: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        comment="Plugin version under which the unit ran"
    )

    batch: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        comment="Run number per plugin, rolled back as a unit"
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow
    )

    __table_args__ = (
        Index('idx_plugin_migrations_batch', 'plugin', 'batch'),
    )

    def __repr__(self) -> str:
        return (
            f"<PluginMigration(plugin='{self.plugin}', "
            f"migration='{self.migration}', version='{self.version}', "
            f"batch={self.batch})>"
        )
