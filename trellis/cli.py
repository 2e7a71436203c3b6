#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""Command line interface for plugin lifecycle operations.

Usage:
    trellis init-db
    trellis list
    trellis install ExtendedPlan
    trellis version ExtendedPlan 1.1.0 --force
    trellis migrate ExtendedPlan --plugin-version 1.1.0 --force
    trellis rollback ExtendedPlan --force
    trellis status ExtendedPlan
    trellis uninstall ExtendedPlan --force

Every command accepts -c/--config with a JSON or YAML settings file.
Exit code is 0 on success and 1 on failure, with the error on stderr.
"""
import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional, Sequence

from sqlalchemy.exc import SQLAlchemyError

from . import __version__
from .common.config import ConfigError, configure_logging, load_settings
from .common.database import Database
from .common.migrations import MigrationError
from .plugin import PluginError, PluginManager

DEFAULT_MIGRATION_VERSION = '1.0.0'

logger = logging.getLogger(__name__)


def confirm(question: str) -> bool:
    """Ask a yes/no question on stdin; anything but yes is no."""
    try:
        answer = input(f"{question} [y/N] ")
    except EOFError:
        return False
    return answer.strip().lower() in ('y', 'yes')


def format_table(headers: Sequence[str], rows: List[Sequence[str]]) -> str:
    """Render rows as a plain text table."""
    widths = [len(h) for h in headers]
    for row in rows:
        widths = [max(w, len(str(cell))) for w, cell in zip(widths, row)]

    border = '+' + '+'.join('-' * (w + 2) for w in widths) + '+'

    def line(cells):
        return '| ' + ' | '.join(str(c).ljust(w) for c, w in zip(cells, widths)) + ' |'

    out = [border, line(headers), border]
    out.extend(line(row) for row in rows)
    out.append(border)
    return '\n'.join(out)


# ============================================================================
# Commands
# ============================================================================

def cmd_init_db(args, manager: PluginManager) -> int:
    manager.database.create_tables()
    print(f"✓ Plugin tables ready in {manager.database.engine.url.render_as_string()}")
    return 0


def cmd_list(args, manager: PluginManager) -> int:
    manager.registry.load()
    rows = []
    for descriptor in manager.registry.descriptors():
        record = manager.records.get(descriptor.identity)
        rows.append([
            descriptor.name,
            descriptor.version,
            record.version if record is not None and record.version else '-',
            manager.state(descriptor.name).value,
        ])

    if not rows:
        print("No plugins found")
        return 0

    print(format_table(['Plugin', 'Available', 'Installed', 'State'], rows))
    return 0


def cmd_install(args, manager: PluginManager) -> int:
    manager.start()
    record = manager.install(args.plugin)
    print(f"✓ Installed {args.plugin} v{record.version}")
    return 0


def cmd_uninstall(args, manager: PluginManager) -> int:
    if not args.force and not confirm(f"Are you sure you want to uninstall {args.plugin}?"):
        print("Aborted")
        return 0

    manager.start()
    manager.uninstall(args.plugin)
    print(f"✓ Uninstalled {args.plugin}")
    return 0


def cmd_version(args, manager: PluginManager) -> int:
    if not args.force and not confirm(
            f"Are you sure you want to change {args.plugin}'s version to {args.version}?"):
        print("Aborted")
        return 0

    manager.start()
    manager.change_version(args.plugin, args.version)
    print(f"✓ Successfully changed {args.plugin}'s version to {args.version}")
    return 0


def _names(args, manager: PluginManager) -> List[str]:
    manager.registry.load()
    if args.plugin:
        manager.registry.require(args.plugin)
        return [args.plugin]
    return manager.registry.names()


def cmd_migrate(args, manager: PluginManager) -> int:
    if not args.force and not confirm("Are you sure you want to run plugin migrations?"):
        print("Aborted")
        return 0

    if args.path:
        if not args.plugin:
            raise PluginError("A plugin name is required with --path")
        applied = manager.runner.migrate(
            args.plugin, Path(args.path), args.plugin_version or DEFAULT_MIGRATION_VERSION
        )
        results = {args.plugin: applied}
    else:
        results = {}
        for name in _names(args, manager):
            results.update(manager.run_migrations(name, version=args.plugin_version))

    for name, applied in results.items():
        for migration in applied:
            print(f"Migrated: {migration}")
        if not applied:
            print(f"Nothing to migrate for {name}")
    return 0


def cmd_rollback(args, manager: PluginManager) -> int:
    if not args.force and not confirm("Are you sure you want to rollback plugin migrations?"):
        print("Aborted")
        return 0

    if args.path:
        if not args.plugin:
            raise PluginError("A plugin name is required with --path")
        reverted = manager.runner.rollback(args.plugin, Path(args.path), version=args.plugin_version)
        results = {args.plugin: reverted}
    else:
        results = {}
        for name in _names(args, manager):
            results.update(manager.rollback_migrations(name, version=args.plugin_version))

    for name, reverted in results.items():
        for migration in reverted:
            print(f"Rolled back: {migration}")
        if not reverted:
            print(f"Nothing to rollback for {name}")
    return 0


def cmd_status(args, manager: PluginManager) -> int:
    if args.path:
        path = Path(args.path)
    else:
        manager.registry.load()
        descriptor = manager.registry.get(args.plugin)
        if descriptor is not None:
            path = descriptor.migrations_path
        elif manager.settings.paths:
            path = Path(manager.settings.paths[0]) / args.plugin / 'migrations'
        else:
            print(f"Plugin '{args.plugin}' not found and no plugin paths are configured",
                  file=sys.stderr)
            return 1

    if not path.is_dir():
        print(f"Migration path does not exist: {path}", file=sys.stderr)
        return 1

    if not manager.database.has_table('plugin_migrations'):
        print("Plugin migrations table does not exist. Please run 'trellis init-db' first.",
              file=sys.stderr)
        return 1

    rows = [[s.name, s.label] for s in manager.runner.status(args.plugin, path)]
    print(format_table(['Migration name', 'Batch / Status'], rows))
    return 0


# ============================================================================
# Entry point
# ============================================================================

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='trellis',
        description='Manage plugin installation, versions and migrations'
    )
    parser.add_argument('-c', '--config', help='Settings file (JSON or YAML)')
    parser.add_argument('--version', action='version', version=f'%(prog)s {__version__}')

    sub = parser.add_subparsers(dest='command', required=True)

    p = sub.add_parser('init-db', help='Create the plugin tables')
    p.set_defaults(func=cmd_init_db)

    p = sub.add_parser('list', help='List plugins and their state')
    p.set_defaults(func=cmd_list)

    p = sub.add_parser('install', help='Install and activate a plugin')
    p.add_argument('plugin')
    p.set_defaults(func=cmd_install)

    p = sub.add_parser('uninstall', help='Roll back and deactivate a plugin')
    p.add_argument('plugin')
    p.add_argument('--force', action='store_true', help='Do not ask for confirmation')
    p.set_defaults(func=cmd_uninstall)

    p = sub.add_parser('version', help='Change an installed plugin\'s version')
    p.add_argument('plugin')
    p.add_argument('version')
    p.add_argument('--force', action='store_true', help='Do not ask for confirmation')
    p.set_defaults(func=cmd_version)

    for command, func, help_text in (
            ('migrate', cmd_migrate, 'Run plugin migrations'),
            ('rollback', cmd_rollback, 'Roll back the last batch of plugin migrations')):
        p = sub.add_parser(command, help=help_text)
        p.add_argument('plugin', nargs='?')
        p.add_argument('--force', action='store_true', help='Do not ask for confirmation')
        p.add_argument('--path', help='Migration directory (requires a plugin name)')
        p.add_argument('--plugin-version', dest='plugin_version',
                       help='Plugin version to record or roll back')
        p.set_defaults(func=func)

    p = sub.add_parser('status', help='Show the status of each plugin migration')
    p.add_argument('plugin')
    p.add_argument('--path', help='Migration directory')
    p.set_defaults(func=cmd_status)

    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        settings = load_settings(args.config)
    except ConfigError as e:
        print(f"✗ {e}", file=sys.stderr)
        return 1

    # Same rule as logging.basicConfig: leave an already configured root alone
    if not logging.getLogger().handlers:
        configure_logging(settings)

    database = Database(settings.database_url)
    manager = PluginManager(database, settings)
    try:
        return args.func(args, manager)
    except MigrationError as e:
        logger.error(f"Migration failed: {e}")
        print(f"✗ {e}", file=sys.stderr)
        return 1
    except (PluginError, SQLAlchemyError) as e:
        logger.error(f"Command '{args.command}' failed: {e}")
        print(f"✗ {e}", file=sys.stderr)
        return 1
    finally:
        manager.close()
        database.close()


if __name__ == '__main__':
    sys.exit(main())
