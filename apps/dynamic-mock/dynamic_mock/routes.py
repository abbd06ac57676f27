"""In-memory route table keyed by uppercase method and normalized path."""

from __future__ import annotations

import threading
from typing import Any, Iterable

from .models import MockDefinition, RouteSummary, coerce_headers, coerce_method, coerce_status


def normalize_path(path: str | None) -> str:
    """Return ``path`` with a guaranteed leading slash; empty input maps to ``/``."""

    if not path:
        return "/"
    if not path.startswith("/"):
        return "/" + path
    return path


def route_key(method: str, path: str | None) -> str:
    return f"{method.upper()} {normalize_path(path)}"


def build_definition(
    *,
    path: Any,
    response: Any,
    method: Any = None,
    status: Any = None,
    headers: Any = None,
) -> MockDefinition:
    """Normalize raw registration or snapshot fields into a ``MockDefinition``."""

    return MockDefinition(
        method=coerce_method(method),
        path=normalize_path(path if isinstance(path, str) else None),
        status=coerce_status(status),
        response=response,
        headers=coerce_headers(headers),
    )


class RouteTable:
    """Thread-safe mapping of route keys to mock definitions.

    Writers are serialized by a lock. Lookups read the dict directly since a
    single key assignment is atomic; iteration copies under the lock.
    """

    def __init__(self, definitions: Iterable[MockDefinition] = ()) -> None:
        self._lock = threading.Lock()
        self._routes: dict[str, MockDefinition] = {}
        for definition in definitions:
            self.put(definition.method, definition.path, definition)

    def put(self, method: str, path: str, definition: MockDefinition) -> MockDefinition:
        canonical = definition.model_copy(
            update={"method": method.upper(), "path": normalize_path(path)}
        )
        key = route_key(canonical.method, canonical.path)
        with self._lock:
            self._routes[key] = canonical
        return canonical

    def get(self, method: str, path: str) -> MockDefinition | None:
        return self._routes.get(route_key(method, path))

    def list(self) -> list[RouteSummary]:
        return [definition.summary() for definition in self.definitions()]

    def definitions(self) -> list[MockDefinition]:
        with self._lock:
            return list(self._routes.values())

    def __len__(self) -> int:
        return len(self._routes)
