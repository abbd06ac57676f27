"""Transport-independent request handling for the dynamic mock server."""

from __future__ import annotations

import json
import threading
from dataclasses import dataclass, field
from http import HTTPStatus
from typing import Any, Mapping

import structlog
from pydantic import ValidationError

from .config import ServerSettings
from .models import REGISTER_ERROR, MockDefinition, RegisterRequest
from .persistence import SnapshotError, SnapshotStore
from .rate_limit import RateLimiter
from .routes import RouteTable, build_definition, normalize_path

LOGGER = structlog.get_logger("dynamic_mock.dispatcher")

REGISTER_PATH = "/register"
ROUTES_PATH = "/__routes"
HEALTH_PATH = "/health"
MAX_BODY_BYTES = 1024 * 1024

JSON_CONTENT_TYPE = "application/json"
TEXT_CONTENT_TYPE = "text/plain; charset=utf-8"


@dataclass
class MockReply:
    """Response produced by the dispatcher, written out by the transport."""

    status: int
    body: bytes = b""
    headers: dict[str, str] = field(default_factory=dict)

    @classmethod
    def json(
        cls,
        status: int,
        payload: Any,
        headers: Mapping[str, str] | None = None,
    ) -> "MockReply":
        merged = {"Content-Type": JSON_CONTENT_TYPE}
        merged.update(headers or {})
        return cls(status=int(status), body=json.dumps(payload).encode("utf-8"), headers=merged)


class RequestDispatcher:
    """Owns the route table, snapshot store and rate limiter for one process.

    Registrations take a single writer lock around the table update and the
    snapshot rewrite, so every snapshot reflects a complete table state.
    """

    def __init__(self, table: RouteTable, store: SnapshotStore, limiter: RateLimiter) -> None:
        self.table = table
        self.store = store
        self.limiter = limiter
        self._write_lock = threading.Lock()

    @classmethod
    def from_settings(cls, settings: ServerSettings) -> "RequestDispatcher":
        store = SnapshotStore(settings.data_file)
        table = RouteTable(store.load())
        limiter = RateLimiter(
            settings.rate_limit_seconds,
            settings.rate_limit_exempt,
            prune_interval=settings.rate_limit_prune_seconds,
        )
        return cls(table, store, limiter)

    def dispatch(
        self,
        *,
        method: str,
        path: str,
        client_id: str,
        headers: Mapping[str, str] | None = None,
        body: bytes = b"",
    ) -> MockReply:
        method = method.upper()
        path = path.split("?", 1)[0]
        logger = LOGGER.bind(client_ip=client_id, method=method, path=path)

        decision = self.limiter.check(client_id, path)
        if not decision.allowed:
            logger.warning("rate_limited", retry_after=decision.retry_after)
            return MockReply.json(
                HTTPStatus.TOO_MANY_REQUESTS,
                {"error": "Too many requests", "retry_after_seconds": decision.retry_after},
                headers={"Retry-After": str(decision.retry_after)},
            )

        if method == "POST" and path == REGISTER_PATH:
            return self.register(headers or {}, body, logger)
        if method in {"GET", "HEAD"} and path == ROUTES_PATH:
            return MockReply.json(HTTPStatus.OK, [item.model_dump() for item in self.table.list()])
        if method in {"GET", "HEAD"} and path == HEALTH_PATH:
            return MockReply.json(HTTPStatus.OK, {"status": "ok"})

        definition = self.table.get(method, normalize_path(path))
        if definition is None:
            logger.info("request_unmatched")
            return MockReply.json(HTTPStatus.NOT_FOUND, {"error": "Not found"})
        return render(definition)

    def register(self, headers: Mapping[str, str], body: bytes, logger: Any = LOGGER) -> MockReply:
        """Store a mock from a registration body and persist the table."""

        content_type = _header(headers, "Content-Type") or ""
        payload: Any = {}
        if "json" in content_type.lower():
            if len(body) > MAX_BODY_BYTES:
                return MockReply.json(HTTPStatus.REQUEST_ENTITY_TOO_LARGE, {"error": "Payload too large"})
            if body.strip():
                try:
                    payload = json.loads(body.decode("utf-8"))
                except (ValueError, RecursionError):
                    return MockReply.json(HTTPStatus.BAD_REQUEST, {"error": "Invalid JSON body"})

        try:
            request = RegisterRequest.model_validate(payload)
        except ValidationError:
            return MockReply.json(HTTPStatus.BAD_REQUEST, {"error": REGISTER_ERROR})

        definition = build_definition(
            path=request.path,
            method=request.method,
            status=request.status,
            response=request.response,
            headers=request.headers,
        )
        with self._write_lock:
            stored = self.table.put(definition.method, definition.path, definition)
            try:
                self.store.save(self.table.definitions())
            except SnapshotError:
                logger.exception("route_persist_failed", route_method=stored.method, route_path=stored.path)
                return MockReply.json(HTTPStatus.INTERNAL_SERVER_ERROR, {"error": "Failed to persist route"})

        logger.info("route_registered", route_method=stored.method, route_path=stored.path, status=stored.status)
        return MockReply.json(
            HTTPStatus.OK,
            {"message": "Registered", "method": stored.method, "path": stored.path},
        )


def render(definition: MockDefinition) -> MockReply:
    """Build the reply for a stored mock, JSON for structured values and text otherwise."""

    value = definition.response
    if value is None or isinstance(value, (dict, list)):
        reply = MockReply.json(definition.status, value)
    else:
        reply = MockReply(
            status=definition.status,
            body=_as_text(value).encode("utf-8"),
            headers={"Content-Type": TEXT_CONTENT_TYPE},
        )
    for name, header_value in definition.headers.items():
        for existing in [key for key in reply.headers if key.lower() == name.lower()]:
            del reply.headers[existing]
        reply.headers[name] = header_value
    return reply


def _as_text(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _header(headers: Mapping[str, str], name: str) -> str | None:
    lowered = name.lower()
    for key, value in headers.items():
        if key.lower() == lowered:
            return value
    return None
