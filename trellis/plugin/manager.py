"""
trellis/plugin/manager.py

Plugin lifecycle management: loading, install, uninstall and version change.
"""

import logging
import shutil
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional, Set

from sqlalchemy.exc import SQLAlchemyError

from ..common.config import PluginSettings
from ..common.migrations import MigrationError, MigrationRunner
from ..common.migrations.migration import MigrationStatus
from ..common.models import MigrateStatus, PluginRecord
from .descriptor import PluginDescriptor, compare_versions, parse_version
from .errors import (
    AlreadyAtVersionError,
    PluginAlreadyInstalledError,
    PluginNotInstalledError,
)
from .host import PluginHost
from .records import PluginRecordStore
from .registry import PluginRegistry


class PluginState(Enum):
    """
    Plugin lifecycle states, derived from the plugin record.

    States:
        UNINSTALLED: No record, or record not active
        PENDING: Active, migrations not yet successful
        ACTIVE: Active and migrated
        FAILED: Last migration run failed
        ROLLED_BACK: Uninstalled, migrations rolled back
    """

    UNINSTALLED = "uninstalled"
    PENDING = "pending"
    ACTIVE = "active"
    FAILED = "failed"
    ROLLED_BACK = "rolled_back"

    @classmethod
    def from_record(cls, record: Optional[PluginRecord]) -> 'PluginState':
        if record is None:
            return cls.UNINSTALLED
        if record.migrate_status == MigrateStatus.FAILED:
            return cls.FAILED
        if not record.active:
            if record.migrate_status == MigrateStatus.ROLLBACK:
                return cls.ROLLED_BACK
            return cls.UNINSTALLED
        if record.migrate_status == MigrateStatus.SUCCESS:
            return cls.ACTIVE
        return cls.PENDING


class PluginManager:
    """
    Orchestrates plugin descriptors, records, instances and migrations.

    The manager is the only writer of a record's active flag and migrate
    status. It holds no locks: callers must not run two lifecycle operations
    for the same plugin concurrently.

    Args:
        database: Database holding the plugin tables
        settings: PluginSettings (search paths, activation policies)
        registry: PluginRegistry (default: built from settings.paths)
        host: PluginHost the plugin hooks act on
        runner: MigrationRunner (default: built on database)
        logger: Optional logger instance

    Example:
        manager = PluginManager(database, settings)
        manager.start()

        manager.install('ExtendedPlan')
        manager.change_version('ExtendedPlan', '1.1.0')
        manager.uninstall('ExtendedPlan')
    """

    def __init__(
        self,
        database,
        settings: Optional[PluginSettings] = None,
        registry: Optional[PluginRegistry] = None,
        host: Optional[PluginHost] = None,
        runner: Optional[MigrationRunner] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.database = database
        self.settings = settings or PluginSettings()
        self.logger = logger or logging.getLogger("plugin.manager")

        self.registry = registry or PluginRegistry(self.settings.search_paths)
        self.host = host or PluginHost()
        self.runner = runner or MigrationRunner(database)
        self.records = PluginRecordStore(database)

        # Loaded instances: name -> plugin object
        self._plugins: Dict[str, object] = {}

        # Hook bookkeeping so fan-outs are idempotent
        self._registered: Set[str] = set()
        self._booted: Set[str] = set()

    # =================================================================
    # Startup
    # =================================================================

    def start(self) -> None:
        """
        Bring the host up with every active plugin.

        Unloads any running plugins, resets the capability tables, scans the
        search paths, loads the plugins whose record is active, activates
        pending ones when auto-activation is on, then registers and boots
        them.
        """
        for name in list(self._plugins):
            self._drop(name)
        self.host.reset()
        self.registry.load()
        self.load_plugins()

        if self.settings.auto_activate:
            for name in list(self._plugins):
                record = self.records.get(self.registry.require(name).identity)
                if record is not None and record.migrate_status != MigrateStatus.SUCCESS:
                    self.activate(name)

        self.register_plugins()
        self.boot_plugins()
        self.logger.info(f"Started with {len(self._plugins)} active plugin(s)")

    def load_plugins(self, name: Optional[str] = None) -> List[str]:
        """
        Instantiate the plugins whose record is active.

        A record is created on first sight of a descriptor, active according
        to the auto-activate policy. A database error while reading a record
        is logged and the plugin is treated as inactive.

        Args:
            name: Only consider this plugin

        Returns:
            Names loaded by this call
        """
        names = [name] if name is not None else self.registry.names()
        loaded = []

        for plugin_name in names:
            descriptor = self.registry.require(plugin_name)
            if plugin_name in self._plugins:
                continue
            if not self._is_active(descriptor):
                self.logger.debug(f"Skipping inactive plugin {plugin_name}")
                continue

            self._plugins[plugin_name] = self.registry.create(plugin_name, self.host)
            loaded.append(plugin_name)
            self.logger.debug(f"Loaded plugin: {plugin_name}")

        return loaded

    def _is_active(self, descriptor: PluginDescriptor) -> bool:
        try:
            record = self.records.ensure(descriptor.identity, active=self.settings.auto_activate)
            return bool(record.active)
        except SQLAlchemyError as e:
            self.logger.error(f"Plugin activation error for {descriptor.name}: {e}")
            return False

    def activate(self, name: str) -> None:
        """Run a loaded plugin's pending migrations and mark it active."""
        descriptor = self.registry.require(name)
        self._migrate(descriptor, descriptor.version)
        self.records.update(
            descriptor.identity, active=True, version=descriptor.version,
            migrate_status=MigrateStatus.SUCCESS,
        )
        self.logger.debug(f"Activated plugin: {name}")

    # =================================================================
    # Hooks
    # =================================================================

    def register_plugins(self, name: Optional[str] = None) -> None:
        """Call register() on loaded plugins (or one) not registered yet."""
        for plugin_name, plugin in self._select(name):
            if plugin_name in self._registered:
                continue
            plugin.register()
            self._registered.add(plugin_name)
            self.logger.debug(f"Registered plugin: {plugin_name}")

    def boot_plugins(self, name: Optional[str] = None) -> None:
        """Call boot() on registered plugins (or one) not booted yet."""
        for plugin_name, plugin in self._select(name):
            if plugin_name in self._booted:
                continue
            plugin.boot()
            self._booted.add(plugin_name)
            self.logger.debug(f"Booted plugin: {plugin_name}")

    def _select(self, name: Optional[str]):
        if name is None:
            return list(self._plugins.items())
        plugin = self._plugins.get(name)
        return [(name, plugin)] if plugin is not None else []

    def _drop(self, name: str) -> None:
        """Unregister (if hooked) and forget a loaded instance."""
        plugin = self._plugins.pop(name, None)
        if plugin is not None and name in self._registered:
            plugin.unregister()
            self.logger.debug(f"Unregistered plugin: {name}")
        self._registered.discard(name)
        self._booted.discard(name)

    # =================================================================
    # Install / Uninstall
    # =================================================================

    def install(self, name: str) -> PluginRecord:
        """
        Install and activate a plugin.

        Marks the record active/pending at the descriptor version, loads the
        plugin, applies its migrations, marks the record successful and
        finally calls register() and boot().

        Raises:
            DescriptorNotFoundError: If the plugin is unknown
            PluginAlreadyInstalledError: If it is already active and loaded
            MigrationError: If a migration fails (record left 'failed')
        """
        descriptor = self.registry.require(name)
        record = self.records.get(descriptor.identity)
        if (
            record is not None
            and record.is_active
            and name in self._plugins
        ):
            raise PluginAlreadyInstalledError(name)

        self.logger.info(f"Installing plugin {descriptor}")
        self.records.upsert(
            descriptor.identity,
            active=True,
            version=descriptor.version,
            migrate_status=MigrateStatus.PENDING,
        )

        self.load_plugins(name)

        try:
            self._migrate(descriptor, descriptor.version)
        except MigrationError as e:
            self.records.update(descriptor.identity, migrate_status=MigrateStatus.FAILED)
            self.logger.error(f"Failed to install plugin {name}: {e}")
            raise

        record = self.records.update(descriptor.identity, migrate_status=MigrateStatus.SUCCESS)

        self.register_plugins(name)
        self.boot_plugins(name)

        self.logger.info(f"Installed plugin {descriptor}")
        return record

    def uninstall(self, name: str) -> PluginRecord:
        """
        Deactivate a plugin and roll back all of its migrations.

        unregister() runs first so the plugin releases its overrides, routes
        and views before its schema goes away. With delete_on_uninstall the
        plugin's base path is removed from disk and its descriptor forgotten.

        Raises:
            DescriptorNotFoundError: If the plugin is unknown
            MigrationError: If a rollback fails
        """
        descriptor = self.registry.require(name)
        self.logger.info(f"Uninstalling plugin {descriptor}")

        self._drop(name)

        try:
            self.runner.reset(name, descriptor.migrations_path)
        except MigrationError as e:
            self.logger.error(f"Failed to roll back plugin {name}: {e}")
            raise

        if self.settings.delete_on_uninstall:
            self._delete_code(descriptor)

        record = self.records.upsert(
            descriptor.identity,
            active=False,
            migrate_status=MigrateStatus.ROLLBACK,
        )

        self.logger.info(f"Uninstalled plugin {name}")
        return record

    def _delete_code(self, descriptor: PluginDescriptor) -> None:
        base_path = Path(descriptor.base_path)
        if base_path.exists():
            shutil.rmtree(base_path)
            self.logger.info(f"Deleted plugin code at {base_path}")
        self.registry.forget(descriptor.name)

    # =================================================================
    # Version change
    # =================================================================

    def change_version(self, name: str, version: str) -> PluginRecord:
        """
        Move an installed plugin to another version.

        The plugin code for the target version must already be deployed in
        the plugin directory. Upgrading applies the migrations that have not
        run yet; downgrading rolls back the latest batch recorded under the
        current version.

        The record update and the reload sequence share one transaction: if
        any step fails the record keeps its previous version and status.
        Migration units already applied or reverted by a failed call stay
        that way, and the in-memory plugin list may no longer match the
        record.

        Args:
            name: Plugin name
            version: Target version (dotted triplet)

        Raises:
            DescriptorNotFoundError: If the plugin is unknown
            InvalidVersionError: If version is not a dotted triplet
            PluginNotInstalledError: If the plugin has no active record
            AlreadyAtVersionError: If the plugin is already at an equal
                version ('1.0.00' equals '1.0.0')
            MigrationError: If a migration fails
        """
        descriptor = self.registry.require(name)
        version = str(parse_version(version))

        with self.database.session() as session:
            record = self.records.get(descriptor.identity, session=session)
            if record is None or not record.active:
                raise PluginNotInstalledError(name)

            current_version = record.version
            if compare_versions(current_version, version) == 0:
                raise AlreadyAtVersionError(name, version)

            is_upgrade = compare_versions(current_version, version) < 0
            self.logger.info(
                f"{'Upgrading' if is_upgrade else 'Downgrading'} plugin {name} "
                f"from {current_version} to {version}"
            )

            try:
                record.version = version
                record.migrate_status = MigrateStatus.PENDING

                self._drop(name)

                descriptor = self.registry.reload(name)
                self._plugins[name] = self.registry.create(name, self.host)

                if is_upgrade:
                    self._migrate(descriptor, version)
                else:
                    self.runner.rollback(
                        name, descriptor.migrations_path, version=current_version
                    )

                self.register_plugins(name)
                self.boot_plugins(name)

                record.active = True
                record.migrate_status = MigrateStatus.SUCCESS
            except Exception as e:
                self.logger.error(f"Failed to change plugin {name} to version {version}: {e}")
                raise

        self.logger.info(f"Plugin {name} is now at version {version}")
        return record

    # =================================================================
    # Migrations
    # =================================================================

    def _migrate(self, descriptor: PluginDescriptor, version: str) -> List[str]:
        return self.runner.migrate(descriptor.name, descriptor.migrations_path, version)

    def _migrations_path(self, name: str, path) -> Optional[Path]:
        if path is not None:
            return Path(path)
        return self.registry.require(name).migrations_path

    def run_migrations(self, name: Optional[str] = None, version: Optional[str] = None,
                       path=None) -> Dict[str, List[str]]:
        """
        Apply pending migrations of one plugin or every loaded plugin.

        Args:
            name: Plugin name (None: every loaded plugin)
            version: Version recorded with the units (default: descriptor version)
            path: Migration directory override (single plugin only)

        Returns:
            Plugin name -> units applied
        """
        results = {}
        for plugin_name in self._targets(name):
            version_used = version or self.registry.require(plugin_name).version
            results[plugin_name] = self.runner.migrate(
                plugin_name, self._migrations_path(plugin_name, path), version_used
            )
        return results

    def rollback_migrations(self, name: Optional[str] = None, version: Optional[str] = None,
                            path=None) -> Dict[str, List[str]]:
        """Roll back the latest batch of one plugin or every loaded plugin."""
        results = {}
        for plugin_name in self._targets(name):
            results[plugin_name] = self.runner.rollback(
                plugin_name, self._migrations_path(plugin_name, path), version=version
            )
        return results

    def migration_status(self, name: str, path=None) -> List[MigrationStatus]:
        return self.runner.status(name, self._migrations_path(name, path))

    def _targets(self, name: Optional[str]) -> List[str]:
        if name is not None:
            self.registry.require(name)
            return [name]
        return list(self._plugins)

    # =================================================================
    # Queries
    # =================================================================

    def get(self, name: str):
        """Loaded plugin instance, or None."""
        return self._plugins.get(name)

    def loaded(self) -> List[str]:
        return list(self._plugins)

    def get_plugins(self) -> List[PluginRecord]:
        """Every plugin record."""
        return self.records.all()

    def get_active_plugins(self) -> List[PluginRecord]:
        """Records that are active and migrated successfully."""
        return self.records.active()

    def state(self, name: str) -> PluginState:
        descriptor = self.registry.require(name)
        return PluginState.from_record(self.records.get(descriptor.identity))

    def close(self) -> None:
        """Unregister every loaded plugin and release the registry."""
        for name in list(self._plugins):
            self._drop(name)
        self.registry.close()
        self.logger.info("All plugins unloaded")
