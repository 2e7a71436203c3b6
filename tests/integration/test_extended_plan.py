"""
The shipped ExtendedPlan plugin: service override, route and view.
"""

import shutil

import pytest

from trellis.plugin import PluginManager, RouteNotFoundError

pytestmark = pytest.mark.integration


class SimplePlanService:
    def get_plan(self):
        return 'simple'


@pytest.fixture
def extended_plan(repo_root, plugins_dir):
    """Copy of plugins/ExtendedPlan in the temporary search root."""
    target = plugins_dir / 'ExtendedPlan'
    shutil.copytree(repo_root / 'plugins' / 'ExtendedPlan', target,
                    ignore=shutil.ignore_patterns('__pycache__'))
    return target


@pytest.fixture
def host_manager(manager, extended_plan):
    """Manager started with the host's default plan service."""
    manager.start()
    manager.host.services.set_default('plan', SimplePlanService)
    return manager


def test_install_overrides_plan(host_manager, database):
    manager = host_manager
    assert manager.host.services.resolve('plan').get_plan() == 'simple'

    manager.install('ExtendedPlan')

    assert manager.host.services.resolve('plan').get_plan() == 'extended'
    page = manager.host.routes.dispatch('/extendedPlan')
    assert 'service value:extended' in page
    assert manager.host.routes.url_for('extendedPlan') == '/extendedPlan'
    assert database.has_table('extended_plans')
    with database.engine.connect() as conn:
        assert conn.exec_driver_sql('SELECT name FROM extended_plans').scalar() == 'extended'


def test_uninstall_restores_default(host_manager, database):
    manager = host_manager
    manager.install('ExtendedPlan')

    manager.uninstall('ExtendedPlan')

    assert manager.host.services.resolve('plan').get_plan() == 'simple'
    with pytest.raises(RouteNotFoundError):
        manager.host.routes.dispatch('/extendedPlan')
    assert manager.host.views.find('extendedPlan::index') is None
    assert not database.has_table('extended_plans')


def test_active_after_restart(host_manager, database, settings):
    host_manager.install('ExtendedPlan')
    host_manager.close()

    restarted = PluginManager(database, settings)
    try:
        restarted.start()
        restarted.host.services.set_default('plan', SimplePlanService)

        assert restarted.host.services.resolve('plan').get_plan() == 'extended'
        assert 'service value:extended' in restarted.host.routes.dispatch('/extendedPlan')
    finally:
        restarted.close()


def test_descriptor(host_manager, extended_plan):
    descriptor = host_manager.registry.require('ExtendedPlan')

    assert descriptor.version == '1.0.0'
    assert descriptor.identity == 'extended_plan.plugin:ExtendedPlan'
    assert descriptor.migrations_path == (extended_plan / 'migrations').resolve()
