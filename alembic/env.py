"""
Alembic Migration Environment for trellis
=========================================

Creates and evolves the host schema (plugins, plugin_migrations). Plugin
schemas are not managed here; each plugin ships its own migration units.

Usage:
    alembic revision --autogenerate -m "Description"
    alembic upgrade head
    alembic downgrade -1
"""

import os
from logging.config import fileConfig
from pathlib import Path

from sqlalchemy import engine_from_config, pool
from sqlalchemy.engine import Connection

from alembic import context

from trellis.common.config import ENV_DATABASE_URL, load_settings
from trellis.common.database import normalize_database_url
from trellis.common.models import Base

# Alembic Config object
config = context.config

# Interpret the config file for Python logging (if present)
if config.config_file_name is not None:
    fileConfig(config.config_file_name, disable_existing_loggers=False)

# Target metadata for autogeneration
target_metadata = Base.metadata


# ============================================================================
# Database URL Loading
# ============================================================================

CONFIG_FILES = ('trellis.yaml', 'trellis.yml', 'trellis.json')


def load_database_url() -> str:
    """
    Resolve the database URL.

    Tries (in order):
    1. TRELLIS_DATABASE_URL environment variable
    2. sqlalchemy.url option (alembic.ini or -x / Config.set_main_option)
    3. trellis.yaml / trellis.yml / trellis.json in the working directory
    4. Default SQLite (trellis.db)
    """
    if os.environ.get(ENV_DATABASE_URL):
        return normalize_database_url(os.environ[ENV_DATABASE_URL])

    url = config.get_main_option('sqlalchemy.url')
    if url:
        return normalize_database_url(url)

    for filename in CONFIG_FILES:
        if Path(filename).is_file():
            return normalize_database_url(load_settings(filename).database_url)

    return normalize_database_url(load_settings().database_url)


database_url = load_database_url()
config.set_main_option('sqlalchemy.url', database_url.replace('%', '%%'))


# ============================================================================
# Migration Functions
# ============================================================================

def run_migrations_offline() -> None:
    """
    Run migrations in 'offline' mode.

    Emits SQL to the script output instead of executing it.
    """
    context.configure(
        url=database_url,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        compare_type=True,
        compare_server_default=True,
    )

    with context.begin_transaction():
        context.run_migrations()


def do_run_migrations(connection: Connection) -> None:
    context.configure(
        connection=connection,
        target_metadata=target_metadata,
        compare_type=True,
        compare_server_default=True,
        render_as_batch=True,  # Required for SQLite ALTER TABLE support
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    """Run migrations in 'online' mode with a short-lived engine."""
    configuration = config.get_section(config.config_ini_section, {})
    configuration["sqlalchemy.url"] = database_url

    connectable = engine_from_config(
        configuration,
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,  # Don't pool connections for migrations
    )

    with connectable.connect() as connection:
        do_run_migrations(connection)

    connectable.dispose()


# ============================================================================
# Main Entry Point
# ============================================================================

if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
