"""
trellis/plugin/descriptor.py

Plugin descriptor structure and descriptor file parsing.
"""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional

import yaml
from packaging.version import Version

from .errors import InvalidVersionError, PluginConfigError

logger = logging.getLogger(__name__)

DESCRIPTOR_FILES = ('plugin.yaml', 'plugin.yml', 'plugin.json')


def parse_version(version) -> Version:
    """
    Parse a dotted numeric triplet ('1.2.3') into a comparable Version.

    Raises:
        InvalidVersionError: If the string is not major.minor.patch
    """
    text = str(version).strip()
    parts = text.split('.')
    if len(parts) != 3 or not all(p.isdigit() for p in parts):
        raise InvalidVersionError(
            f"Plugin version '{version}' must be semantic version (e.g., '1.0.0')"
        )
    return Version(text)


def compare_versions(current: Optional[str], target: str) -> int:
    """
    Compare two plugin versions numerically.

    A missing current version sorts below every target.

    Returns:
        -1 if current < target, 0 if equal, 1 if current > target

    Example:
        >>> compare_versions('1.9.0', '1.10.0')
        -1
    """
    target_version = parse_version(target)
    if current is None:
        return -1
    current_version = parse_version(current)
    if current_version < target_version:
        return -1
    if current_version > target_version:
        return 1
    return 0


@dataclass
class PluginDescriptor:
    """
    Static description of one plugin directory.

    Attributes:
        name: Plugin name (the directory name, unique key)
        path: Plugin directory
        version: Declared version (dotted triplet)
        entry: Factory reference, 'module.path:Attribute'
        namespaces: Importable namespace -> source directory
        migrations_path: Directory of migration units
        base_path: Directory deleted when code is removed on uninstall
        description: Short description

    Example:
        descriptor = load_descriptor(Path('plugins/ExtendedPlan'))
        descriptor.identity    # 'extended_plan.plugin:ExtendedPlan'
    """
    name: str
    path: Path
    version: str
    entry: str
    namespaces: Dict[str, Path] = field(default_factory=dict)
    migrations_path: Optional[Path] = None
    base_path: Optional[Path] = None
    description: str = ''

    def __post_init__(self):
        parse_version(self.version)
        module, _, attr = self.entry.partition(':')
        if not module or not attr:
            raise PluginConfigError(
                f"Plugin '{self.name}' entry '{self.entry}' must be 'module:Attribute'"
            )
        if self.base_path is None:
            self.base_path = self.path

    @property
    def identity(self) -> str:
        """Fully-qualified plugin class, the key of the plugin record."""
        return self.entry

    def __str__(self) -> str:
        return f"{self.name} v{self.version}"


def find_descriptor_file(directory: Path) -> Optional[Path]:
    """Return the first descriptor file present in a plugin directory."""
    for filename in DESCRIPTOR_FILES:
        candidate = directory / filename
        if candidate.is_file():
            return candidate
    return None


def _read(descriptor_file: Path) -> dict:
    try:
        with open(descriptor_file, 'r', encoding='utf-8') as fp:
            if descriptor_file.suffix == '.json':
                data = json.load(fp)
            else:
                data = yaml.safe_load(fp)
    except (OSError, yaml.YAMLError, json.JSONDecodeError) as e:
        raise PluginConfigError(f"Cannot read descriptor {descriptor_file}: {e}") from e

    if not isinstance(data, dict):
        raise PluginConfigError(f"Descriptor {descriptor_file} must be a mapping")
    return data


def _resolve(directory: Path, value, key: str) -> Path:
    if not isinstance(value, str) or not value:
        raise PluginConfigError(f"Descriptor key '{key}' must be a non-empty path")
    return (directory / value).resolve()


def load_descriptor(directory: Path) -> PluginDescriptor:
    """
    Parse the descriptor file of a plugin directory.

    Args:
        directory: Plugin directory (its name becomes the plugin name)

    Returns:
        PluginDescriptor with every path resolved against the directory

    Raises:
        PluginConfigError: If the descriptor is missing or malformed
    """
    directory = Path(directory).resolve()
    descriptor_file = find_descriptor_file(directory)
    if descriptor_file is None:
        raise PluginConfigError(f"No descriptor file in {directory}")

    data = _read(descriptor_file)

    for key in ('version', 'entry'):
        if not data.get(key):
            raise PluginConfigError(f"Descriptor {descriptor_file} missing '{key}'")

    namespaces_conf = data.get('namespaces') or {}
    if not isinstance(namespaces_conf, dict):
        raise PluginConfigError(f"Descriptor {descriptor_file} 'namespaces' must be a mapping")

    namespaces = {}
    for namespace, source in namespaces_conf.items():
        if not isinstance(namespace, str) or not namespace.isidentifier():
            raise PluginConfigError(f"Invalid namespace '{namespace}' in {descriptor_file}")
        namespaces[namespace] = _resolve(directory, source, f'namespaces.{namespace}')

    try:
        descriptor = PluginDescriptor(
            name=directory.name,
            path=directory,
            version=str(data['version']),
            entry=str(data['entry']),
            namespaces=namespaces,
            migrations_path=_resolve(directory, data.get('migrations', 'migrations'), 'migrations'),
            base_path=_resolve(directory, data.get('base_path', '.'), 'base_path'),
            description=str(data.get('description', '')),
        )
    except InvalidVersionError as e:
        raise PluginConfigError(f"Descriptor {descriptor_file}: {e}") from e

    logger.debug(f"Loaded descriptor {descriptor} from {descriptor_file}")
    return descriptor
