#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Database access for plugin records and the migration ledger.

Uses SQLAlchemy ORM with a synchronous engine. Every lifecycle operation runs
to completion on the calling thread, so one engine plus short-lived sessions
is all that is needed.

Supports SQLite (dev/test) and any other SQLAlchemy backend (production).
"""
import logging
import pathlib
import urllib.parse
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine, inspect
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from .models import Base


def normalize_database_url(database_url: str) -> str:
    """
    Convert file paths to SQLAlchemy URLs.

    Args:
        database_url: SQLAlchemy URL or file path
            SQLite URL: 'sqlite:///path/to/db.db'
            SQLite path: '/path/to/db.db' or 'C:\\path\\to\\db.db'
            In-memory: ':memory:'

    Returns:
        SQLAlchemy database URL
    """
    if '://' in database_url:
        return database_url
    if database_url == ':memory:':
        return 'sqlite://'

    path_obj = pathlib.Path(database_url)
    if not path_obj.is_absolute():
        path_obj = path_obj.resolve()
    encoded_path = urllib.parse.quote(path_obj.as_posix(), safe='/:')
    return f'sqlite:///{encoded_path}'


class Database:
    """
    Engine and session factory for the plugin tables.

    Attributes:
        engine: SQLAlchemy engine
        session_factory: Factory for creating sessions
        database_url: Normalized database URL

    Example:
        db = Database('sqlite:///trellis.db')
        db.create_tables()
        with db.session() as session:
            session.add(PluginRecord(identity='sample.plugin:Sample'))
        db.close()
    """

    def __init__(self, database_url: str = 'sqlite:///trellis.db', echo: bool = False):
        """
        Initialize database engine and session factory.

        Note:
            Tables are created via Alembic migrations in production.
            create_tables() exists for development and tests.
        """
        self.logger = logging.getLogger(__name__)
        self.database_url = normalize_database_url(database_url)

        engine_kwargs = {
            'echo': echo,
            'pool_pre_ping': True,
        }

        # In-memory SQLite must share a single connection or each session
        # would see its own empty database
        if self.database_url in ('sqlite://', 'sqlite:///:memory:'):
            engine_kwargs.update({
                'poolclass': StaticPool,
                'connect_args': {'check_same_thread': False},
            })

        self.engine = create_engine(self.database_url, **engine_kwargs)

        # autoflush is off: pending record changes of an open lifecycle
        # transaction must not be written until that transaction commits
        self.session_factory = sessionmaker(
            self.engine,
            expire_on_commit=False,
            autoflush=False,
        )

        self.logger.debug('Database engine initialized: %s', self.engine.url.render_as_string())

    @contextmanager
    def session(self) -> Iterator[Session]:
        """
        Transactional session scope.

        Commits when the block exits normally, rolls back and re-raises on
        any exception, and always closes the session.

        Example:
            with db.session() as session:
                session.add(record)
        """
        session = self.session_factory()
        try:
            yield session
            session.commit()
        except BaseException:
            session.rollback()
            raise
        finally:
            session.close()

    def create_tables(self) -> None:
        """Create the plugin tables if they do not exist."""
        Base.metadata.create_all(self.engine)
        self.logger.debug('Ensured plugin tables exist')

    def drop_tables(self) -> None:
        """Drop the plugin tables."""
        Base.metadata.drop_all(self.engine)

    def has_table(self, table_name: str) -> bool:
        """Check whether a table exists in the connected schema."""
        return inspect(self.engine).has_table(table_name)

    def close(self) -> None:
        """Dispose of all pooled connections."""
        self.engine.dispose()

    def __repr__(self) -> str:
        return f"<Database: {self.engine.url.render_as_string()}>"
