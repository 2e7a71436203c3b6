"""
Global pytest configuration and fixtures for trellis tests

Provides:
- Temporary SQLite database with the plugin tables
- Plugin directories written on disk (descriptor, code, migrations)
- Plugin manager wired to both
"""

import textwrap
from pathlib import Path
from typing import Dict, Optional

import pytest

from trellis.common.config import PluginSettings
from trellis.common.database import Database
from trellis.plugin import PluginManager


REPO_ROOT = Path(__file__).resolve().parent.parent


# ============================================================================
# Pytest Configuration
# ============================================================================

def pytest_configure(config):
    """Configure pytest with custom settings"""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests")


# ============================================================================
# Plugin Directories
# ============================================================================

PLUGIN_SOURCE = '''
from trellis.plugin import Plugin


class {cls}(Plugin):
    """Test plugin recording its hook calls."""

    def __init__(self, host, descriptor=None):
        super().__init__(host, descriptor)
        self.calls = []

    def register(self):
        self.calls.append('register')
        self.register_service('{service}', lambda: '{cls} service')

    def boot(self):
        self.calls.append('boot')
        self.register_route('{prefix}', {{'': lambda: 'hello from {cls}'}}, name='{prefix}')

    def unregister(self):
        self.calls.append('unregister')
        self.unregister_route_and_view('{prefix}')
        self.unregister_service('{service}')
'''


def make_plugin(root: Path, name: str = 'Sample', version: str = '1.0.0',
                migrations: Optional[Dict[str, str]] = None,
                namespace: Optional[str] = None,
                source: Optional[str] = None) -> Path:
    """
    Write a plugin directory under root.

    Calling it again for the same name redeploys the plugin in place: the
    descriptor and code are rewritten and the given migrations are added
    next to the existing ones.

    Args:
        root: Search root directory
        name: Plugin (directory) name
        version: Declared version
        migrations: Migration file name -> content
        namespace: Importable namespace (default: name.lower())
        source: plugin.py content (default: hook-recording test plugin)

    Returns:
        Plugin directory
    """
    namespace = namespace or name.lower()
    plugin_dir = root / name
    package_dir = plugin_dir / 'src' / namespace
    package_dir.mkdir(parents=True, exist_ok=True)

    (plugin_dir / 'plugin.yaml').write_text(textwrap.dedent(f'''\
        version: "{version}"
        entry: {namespace}.plugin:{name}
        description: {name} test plugin
        namespaces:
          {namespace}: src/{namespace}
    '''))

    (package_dir / '__init__.py').write_text('')
    (package_dir / 'plugin.py').write_text(source or PLUGIN_SOURCE.format(
        cls=name, service=f'{namespace}.service', prefix=namespace
    ))

    migrations_dir = plugin_dir / 'migrations'
    migrations_dir.mkdir(exist_ok=True)
    for filename, content in (migrations or {}).items():
        (migrations_dir / filename).write_text(content)

    return plugin_dir


def sql_unit(up: str, down: str) -> str:
    """Content of a SQL migration unit."""
    return f"-- UP\n{up}\n\n-- DOWN\n{down}\n"


def create_table_unit(table: str) -> str:
    return sql_unit(
        f"CREATE TABLE {table} (id INTEGER PRIMARY KEY, value TEXT);",
        f"DROP TABLE {table};"
    )


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def database(tmp_path):
    """File-backed SQLite database with the plugin tables created."""
    db = Database(f"sqlite:///{tmp_path / 'trellis.db'}")
    db.create_tables()
    yield db
    db.close()


@pytest.fixture
def plugins_dir(tmp_path):
    """Empty plugin search root."""
    path = tmp_path / 'plugins'
    path.mkdir()
    return path


@pytest.fixture
def settings(plugins_dir, tmp_path):
    """Settings pointing at the temporary search root and database."""
    return PluginSettings(
        paths=[str(plugins_dir)],
        database_url=f"sqlite:///{tmp_path / 'trellis.db'}",
    )


@pytest.fixture
def manager(database, settings):
    """PluginManager over the temporary database and search root."""
    mgr = PluginManager(database, settings)
    yield mgr
    mgr.close()


@pytest.fixture
def plugin_factory(plugins_dir):
    """make_plugin() bound to the temporary search root."""
    def _make(name='Sample', root=None, **kwargs):
        return make_plugin(root or plugins_dir, name, **kwargs)
    return _make


@pytest.fixture
def table_unit():
    """create_table_unit() for building migration dictionaries."""
    return create_table_unit


@pytest.fixture
def repo_root():
    """Repository checkout (shipped plugins, alembic scripts)."""
    return REPO_ROOT
