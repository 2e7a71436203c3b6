"""
trellis/plugin/routes.py

Mounted routes and view namespaces, owned by the plugin host.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from string import Template
from typing import Callable, Dict, List, Mapping, Optional

from .errors import RouteNotFoundError

logger = logging.getLogger(__name__)


def join_path(prefix: str, subpath: str) -> str:
    """
    Join a mount prefix and a handler subpath into a normalized path.

    Example:
        >>> join_path('extended-plan', '/plans/')
        '/extended-plan/plans'
    """
    parts = [p for p in f"{prefix}/{subpath}".split('/') if p]
    return '/' + '/'.join(parts)


@dataclass
class Route:
    """
    One mounted handler.

    Attributes:
        path: Normalized absolute path
        handler: Callable invoked by dispatch()
        name: Optional route name
        prefix: Mount prefix the route belongs to
    """
    path: str
    handler: Callable
    name: Optional[str] = None
    prefix: str = '/'


class RouteTable:
    """
    Routes mounted under prefixes.

    Example:
        routes = RouteTable()
        routes.mount('extended-plan', {'': index, 'plans': list_plans}, name='extendedPlan')
        routes.dispatch('/extended-plan/plans')
        routes.unmount('extended-plan')
    """

    def __init__(self):
        self._routes: Dict[str, Route] = {}

    def mount(self, prefix: str, handlers: Mapping[str, Callable],
              name: Optional[str] = None) -> List[Route]:
        """
        Mount a set of handlers under a prefix.

        Args:
            prefix: Path prefix, e.g. 'extended-plan'
            handlers: Subpath -> handler ('' is the prefix itself)
            name: Route name prefix; each route is named '<name>.<subpath>'

        Returns:
            Routes mounted. Re-mounting an existing path replaces it.
        """
        mount_point = join_path(prefix, '')
        mounted = []
        for subpath, handler in handlers.items():
            if not callable(handler):
                raise TypeError(f"Handler for '{subpath}' is not callable")
            path = join_path(prefix, subpath)
            route_name = None
            if name:
                suffix = subpath.strip('/').replace('/', '.')
                route_name = f"{name}.{suffix}" if suffix else name
            route = Route(path=path, handler=handler, name=route_name, prefix=mount_point)
            self._routes[path] = route
            mounted.append(route)

        logger.debug(f"Mounted {len(mounted)} route(s) under {mount_point}")
        return mounted

    def unmount(self, prefix: str) -> int:
        """
        Remove every route whose path starts with the prefix.

        Returns:
            Number of routes removed
        """
        mount_point = join_path(prefix, '')
        if mount_point == '/':
            matched = list(self._routes)
        else:
            matched = [
                path for path in self._routes
                if path == mount_point or path.startswith(mount_point + '/')
            ]
        for path in matched:
            del self._routes[path]

        if matched:
            logger.debug(f"Unmounted {len(matched)} route(s) under {mount_point}")
        return len(matched)

    def resolve(self, path: str) -> Optional[Route]:
        return self._routes.get(join_path(path, ''))

    def dispatch(self, path: str, *args, **kwargs):
        """
        Call the handler mounted at path.

        Raises:
            RouteNotFoundError: If no handler is mounted there
        """
        route = self.resolve(path)
        if route is None:
            raise RouteNotFoundError(f"No route mounted at {join_path(path, '')}")
        return route.handler(*args, **kwargs)

    def url_for(self, name: str) -> Optional[str]:
        for route in self._routes.values():
            if route.name == name:
                return route.path
        return None

    def routes(self) -> List[Route]:
        return [self._routes[path] for path in sorted(self._routes)]

    def clear(self) -> None:
        self._routes.clear()

    def __len__(self) -> int:
        return len(self._routes)


class ViewTable:
    """
    View namespaces: 'ns::view' names resolved to template files.

    Example:
        views = ViewTable()
        views.add_namespace('extendedPlan', Path('plugins/ExtendedPlan/views'))
        views.find('extendedPlan::index')    # .../views/index.html
    """

    EXTENSIONS = ('', '.html', '.txt')

    def __init__(self):
        self._namespaces: Dict[str, Path] = {}
        self._cache: Dict[str, Path] = {}

    def add_namespace(self, namespace: str, path) -> None:
        self._namespaces[namespace] = Path(path)
        self.flush()

    def remove_namespace(self, namespace: str) -> bool:
        removed = self._namespaces.pop(namespace, None) is not None
        self.flush()
        return removed

    def find(self, name: str) -> Optional[Path]:
        """
        Resolve 'ns::view' (or 'ns::dir.view') to a file.

        Returns:
            Path of the view file, or None if the namespace or file is unknown
        """
        if name in self._cache:
            return self._cache[name]

        namespace, sep, view = name.partition('::')
        if not sep or namespace not in self._namespaces:
            return None

        base = self._namespaces[namespace] / view.replace('.', '/')
        for extension in self.EXTENSIONS:
            candidate = base.with_name(base.name + extension)
            if candidate.is_file():
                self._cache[name] = candidate
                return candidate
        return None

    def render(self, name: str, **context) -> str:
        """
        Read a view and substitute $name or ${name} placeholders from context.

        Literal braces (CSS, scripts) pass through untouched; write $$ for a
        literal dollar sign.

        Raises:
            LookupError: If the view is unknown
            KeyError: If a placeholder has no value in context
        """
        path = self.find(name)
        if path is None:
            raise LookupError(f"View '{name}' not found")
        return Template(path.read_text(encoding='utf-8')).substitute(context)

    def namespaces(self) -> Dict[str, Path]:
        return dict(self._namespaces)

    def flush(self) -> None:
        """Forget resolved view paths."""
        self._cache.clear()

    def clear(self) -> None:
        self._namespaces.clear()
        self.flush()
