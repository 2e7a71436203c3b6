"""
trellis/plugin/loader.py

Code loader mapping plugin namespaces to source directories.

A descriptor declares namespaces such as ``extended_plan: src/extended_plan``.
The loader is installed on sys.meta_path and answers imports of those
namespaces from the mapped directory; submodules are then found through the
package's ``__path__`` by the regular path finder.
"""

import importlib
import importlib.abc
import importlib.machinery
import importlib.util
import logging
import sys
from pathlib import Path
from typing import Any, Dict, Optional

from .errors import PluginLoadError


class NamespaceLoader(importlib.abc.MetaPathFinder):
    """
    Meta path finder for plugin namespaces.

    Example:
        loader = NamespaceLoader()
        loader.register('extended_plan', Path('plugins/ExtendedPlan/src/extended_plan'))
        factory = loader.import_entry('extended_plan.plugin:ExtendedPlan')
    """

    def __init__(self, logger: Optional[logging.Logger] = None):
        self._namespaces: Dict[str, Path] = {}
        self.logger = logger or logging.getLogger(__name__)

    @property
    def namespaces(self) -> Dict[str, Path]:
        return dict(self._namespaces)

    def register(self, namespace: str, path: Path) -> None:
        """
        Map a namespace to a directory.

        Modules already imported under the namespace are dropped so the next
        import reads the code currently on disk.
        """
        self._namespaces[namespace] = Path(path).resolve()
        self.purge(namespace)
        self.install()
        self.logger.debug(f"Registered namespace {namespace} -> {path}")

    def forget(self, namespace: str) -> None:
        """Remove a namespace mapping and its imported modules."""
        if self._namespaces.pop(namespace, None) is not None:
            self.purge(namespace)
            self.logger.debug(f"Forgot namespace {namespace}")

    def purge(self, namespace: str) -> None:
        """Drop a namespace and its submodules from sys.modules."""
        prefix = namespace + '.'
        for module_name in [m for m in sys.modules if m == namespace or m.startswith(prefix)]:
            del sys.modules[module_name]
        importlib.invalidate_caches()

    def install(self) -> None:
        if self not in sys.meta_path:
            sys.meta_path.insert(0, self)

    def clear(self) -> None:
        """Forget every namespace and remove the finder from sys.meta_path."""
        for namespace in list(self._namespaces):
            self.forget(namespace)
        if self in sys.meta_path:
            sys.meta_path.remove(self)

    def find_spec(self, fullname, path=None, target=None):
        directory = self._namespaces.get(fullname)
        if directory is None:
            return None

        init_file = directory / '__init__.py'
        if init_file.is_file():
            return importlib.util.spec_from_file_location(
                fullname, init_file, submodule_search_locations=[str(directory)]
            )

        if directory.is_dir():
            spec = importlib.machinery.ModuleSpec(fullname, None, is_package=True)
            spec.submodule_search_locations = [str(directory)]
            return spec

        return None

    def import_entry(self, entry: str) -> Any:
        """
        Resolve a 'module.path:Attribute' reference.

        Raises:
            PluginLoadError: If the module cannot be imported or lacks the attribute
        """
        module_name, _, attr_path = entry.partition(':')
        try:
            obj = importlib.import_module(module_name)
        except Exception as e:
            raise PluginLoadError(f"Cannot import '{module_name}': {e}") from e

        for attr in attr_path.split('.'):
            try:
                obj = getattr(obj, attr)
            except AttributeError as e:
                raise PluginLoadError(
                    f"Module '{module_name}' has no attribute '{attr_path}'"
                ) from e
        return obj
