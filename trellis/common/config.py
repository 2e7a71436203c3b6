#!/usr/bin/env python3
# -*- coding: utf-8 -*-
import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

import yaml

DEFAULT_LOG_FORMAT = '[%(asctime).19s] [%(name)s] [%(levelname)s] %(message)s'

ENV_DATABASE_URL = 'TRELLIS_DATABASE_URL'
ENV_PLUGIN_PATHS = 'TRELLIS_PLUGIN_PATHS'
ENV_AUTO_ACTIVATE = 'TRELLIS_AUTO_ACTIVATE'
ENV_DELETE_ON_UNINSTALL = 'TRELLIS_DELETE_ON_UNINSTALL'

_TRUE_VALUES = ('1', 'true', 'yes', 'on')
_FALSE_VALUES = ('0', 'false', 'no', 'off', '')


class ConfigError(Exception):
    """Configuration file missing or invalid."""
    pass


def configure_logger(logger,
                     log_file=None,
                     log_format=None,
                     log_level=logging.INFO):
    """Configure a logger with a file or stream handler

    Args:
        logger: Logger instance or logger name string
        log_file: File path string or file-like object (None for stderr)
        log_format: Format string for log messages
        log_level: Logging level (e.g., logging.INFO, logging.DEBUG)

    Returns:
        Configured logger instance
    """
    if isinstance(log_file, str):
        handler = logging.FileHandler(
            log_file,
            mode='a',
            encoding='utf-8',
            errors='replace'
        )
    else:
        handler = logging.StreamHandler(log_file)  # Default to stderr if None

    formatter = logging.Formatter(log_format or DEFAULT_LOG_FORMAT)

    if isinstance(logger, str):
        logger = logging.getLogger(logger)

    handler.setFormatter(formatter)
    logger.addHandler(handler)
    logger.setLevel(log_level)

    return logger


def parse_log_level(level) -> int:
    """Parse 'debug', 'INFO', 20 etc. into a logging constant."""
    if isinstance(level, int):
        return level
    value = getattr(logging, str(level).upper(), None)
    if not isinstance(value, int):
        raise ConfigError(f"Unknown log level: {level!r}")
    return value


def _parse_bool(value, key: str) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in _TRUE_VALUES:
        return True
    if text in _FALSE_VALUES:
        return False
    raise ConfigError(f"Invalid boolean for '{key}': {value!r}")


@dataclass
class PluginSettings:
    """
    Process-wide plugin settings, read once at startup.

    Attributes:
        paths: Search root directories scanned for plugin directories
        auto_activate: Activate newly observed plugins automatically
        delete_on_uninstall: Delete plugin code from disk on uninstall
        database_url: SQLAlchemy URL of the plugin tables
        log_level: Root log level name
        log_file: Log file path (None logs to stderr)
    """
    paths: List[str] = field(default_factory=lambda: ['plugins'])
    auto_activate: bool = False
    delete_on_uninstall: bool = False
    database_url: str = 'sqlite:///trellis.db'
    log_level: str = 'info'
    log_file: Optional[str] = None

    @property
    def search_paths(self) -> List[Path]:
        return [Path(p) for p in self.paths]

    @classmethod
    def from_dict(cls, conf: dict) -> 'PluginSettings':
        """Build settings from a parsed configuration dictionary."""
        if not isinstance(conf, dict):
            raise ConfigError('Configuration root must be a mapping')

        plugin_conf = conf.get('plugin', {}) or {}
        logging_conf = conf.get('logging', {}) or {}
        if not isinstance(plugin_conf, dict) or not isinstance(logging_conf, dict):
            raise ConfigError("'plugin' and 'logging' sections must be mappings")

        settings = cls()

        paths = plugin_conf.get('paths', settings.paths)
        if isinstance(paths, str):
            paths = [paths]
        if not isinstance(paths, list) or not all(isinstance(p, str) for p in paths):
            raise ConfigError("'plugin.paths' must be a list of directories")
        settings.paths = paths

        settings.auto_activate = _parse_bool(
            plugin_conf.get('auto_activate', settings.auto_activate), 'plugin.auto_activate')
        settings.delete_on_uninstall = _parse_bool(
            plugin_conf.get('delete_on_uninstall', settings.delete_on_uninstall),
            'plugin.delete_on_uninstall')

        settings.database_url = str(conf.get('database_url', settings.database_url))
        settings.log_level = str(logging_conf.get('level', settings.log_level))
        settings.log_file = logging_conf.get('file', settings.log_file)

        parse_log_level(settings.log_level)
        return settings

    def apply_environment(self, environ=None) -> 'PluginSettings':
        """Override settings from TRELLIS_* environment variables."""
        environ = os.environ if environ is None else environ

        if environ.get(ENV_DATABASE_URL):
            self.database_url = environ[ENV_DATABASE_URL]
        if environ.get(ENV_PLUGIN_PATHS):
            self.paths = [p for p in environ[ENV_PLUGIN_PATHS].split(os.pathsep) if p]
        if ENV_AUTO_ACTIVATE in environ:
            self.auto_activate = _parse_bool(environ[ENV_AUTO_ACTIVATE], ENV_AUTO_ACTIVATE)
        if ENV_DELETE_ON_UNINSTALL in environ:
            self.delete_on_uninstall = _parse_bool(
                environ[ENV_DELETE_ON_UNINSTALL], ENV_DELETE_ON_UNINSTALL)
        return self


def read_config_file(config_file) -> dict:
    """Load a JSON or YAML configuration file into a dictionary

    The format is chosen from the extension: '.yaml'/'.yml' is YAML,
    everything else is JSON.

    Raises:
        ConfigError: If the file is missing or cannot be parsed
    """
    config_path = Path(config_file)
    if not config_path.is_file():
        raise ConfigError(f"Config file not found: {config_path}")

    try:
        with open(config_path, 'r', encoding='utf-8') as fp:
            if config_path.suffix in ('.yaml', '.yml'):
                conf = yaml.safe_load(fp)
            else:
                conf = json.load(fp)
    except (yaml.YAMLError, json.JSONDecodeError) as e:
        raise ConfigError(f"Invalid config file {config_path}: {e}") from e

    return conf or {}


def load_settings(config_file=None, environ=None) -> PluginSettings:
    """Load plugin settings from a config file and the environment

    Args:
        config_file: Path to a JSON or YAML file (None uses defaults)
        environ: Environment mapping (defaults to os.environ)

    Returns:
        PluginSettings instance

    Example:
        settings = load_settings('trellis.yaml')
        print(settings.paths, settings.auto_activate)
    """
    if config_file is None:
        settings = PluginSettings()
    else:
        settings = PluginSettings.from_dict(read_config_file(config_file))
    return settings.apply_environment(environ)


def configure_logging(settings: PluginSettings) -> logging.Logger:
    """Configure the root logger from settings."""
    return configure_logger(
        logging.getLogger(),
        log_file=settings.log_file,
        log_format=DEFAULT_LOG_FORMAT,
        log_level=parse_log_level(settings.log_level)
    )
