"""
Host schema migrations under alembic/.
"""

import pytest
from alembic import command
from alembic.config import Config
from sqlalchemy import create_engine, inspect

from trellis.common.models import Base

pytestmark = pytest.mark.integration


@pytest.fixture
def alembic_config(repo_root, tmp_path, monkeypatch):
    monkeypatch.delenv('TRELLIS_DATABASE_URL', raising=False)
    monkeypatch.chdir(tmp_path)

    config = Config()
    config.set_main_option('script_location', str(repo_root / 'alembic'))
    config.set_main_option('sqlalchemy.url', f"sqlite:///{tmp_path / 'alembic.db'}")
    return config


def table_names(url):
    engine = create_engine(url)
    try:
        return set(inspect(engine).get_table_names())
    finally:
        engine.dispose()


def test_upgrade_and_downgrade(alembic_config):
    url = alembic_config.get_main_option('sqlalchemy.url')

    command.upgrade(alembic_config, 'head')
    assert {'plugins', 'plugin_migrations'} <= table_names(url)

    command.downgrade(alembic_config, 'base')
    assert not {'plugins', 'plugin_migrations'} & table_names(url)


def test_schema_matches_models(alembic_config):
    """The revision creates the columns the ORM models map."""
    command.upgrade(alembic_config, 'head')

    engine = create_engine(alembic_config.get_main_option('sqlalchemy.url'))
    try:
        inspector = inspect(engine)
        for table in Base.metadata.sorted_tables:
            columns = {c['name'] for c in inspector.get_columns(table.name)}
            assert columns == {c.name for c in table.columns}
    finally:
        engine.dispose()
