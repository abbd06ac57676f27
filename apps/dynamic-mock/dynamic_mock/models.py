"""Pydantic models describing registered mocks and their snapshot shape."""

from __future__ import annotations

import re
from typing import Any, Mapping

import structlog
from pydantic import BaseModel, Field, model_validator

LOGGER = structlog.get_logger("dynamic_mock.models")

DEFAULT_METHOD = "GET"
DEFAULT_STATUS = 200
REGISTER_ERROR = "path and response required"

# RFC 7230 token characters allowed in a header name.
_HEADER_NAME = re.compile(r"[!#$%&'*+\-.^_`|~0-9A-Za-z]+")


class MockDefinition(BaseModel):
    """Canned response served for one (method, path) pair."""

    method: str = DEFAULT_METHOD
    path: str = "/"
    status: int = DEFAULT_STATUS
    response: Any = None
    headers: dict[str, str] = Field(default_factory=dict)

    def as_serializable(self) -> dict[str, Any]:
        """Return the snapshot record for this mock."""

        return {
            "path": self.path,
            "method": self.method,
            "status": self.status,
            "response": self.response,
            "headers": dict(self.headers),
        }

    def summary(self) -> "RouteSummary":
        return RouteSummary(path=self.path, method=self.method, status=self.status)


class RouteSummary(BaseModel):
    """Introspection view of a mock, without body or headers."""

    path: str
    method: str
    status: int


class RegisterRequest(BaseModel):
    """Validated body of a registration call; ``path`` and ``response`` are required."""

    path: str
    response: Any = None
    method: Any = None
    status: Any = None
    headers: Any = None

    @model_validator(mode="before")
    @classmethod
    def _require_path_and_response(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            raise ValueError(REGISTER_ERROR)
        path = data.get("path")
        if not isinstance(path, str) or not path or "response" not in data:
            raise ValueError(REGISTER_ERROR)
        return data


def coerce_method(value: Any) -> str:
    if value is None or value == "":
        return DEFAULT_METHOD
    return str(value).upper()


def coerce_status(value: Any) -> int:
    """Return a usable HTTP status, falling back to 200 for anything else."""

    if isinstance(value, bool) or value is None:
        return DEFAULT_STATUS
    if isinstance(value, str):
        try:
            value = float(value.strip())
        except ValueError:
            return DEFAULT_STATUS
    if isinstance(value, float):
        if not value.is_integer():
            return DEFAULT_STATUS
        value = int(value)
    if not isinstance(value, int) or not 100 <= value <= 599:
        return DEFAULT_STATUS
    return value


def coerce_headers(value: Any) -> dict[str, str]:
    """Stringify header values, dropping pairs that cannot be sent on the wire."""

    if not isinstance(value, Mapping):
        return {}
    headers: dict[str, str] = {}
    for key, item in value.items():
        name, text = str(key), _header_value(item)
        if not is_valid_header(name, text):
            LOGGER.warning("header_dropped", header=name)
            continue
        headers[name] = text
    return headers


def is_valid_header(name: str, value: str) -> bool:
    """True when ``name`` is a token and ``value`` is single-line latin-1 text."""

    if not _HEADER_NAME.fullmatch(name) or any(ch in value for ch in "\r\n\x00"):
        return False
    try:
        value.encode("latin-1")
    except UnicodeEncodeError:
        return False
    return True


def _header_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return "null"
    return str(value)
