"""Process-wide settings, read once from the environment at startup."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Mapping

from pydantic import BaseModel, Field, field_validator

ENV_VARS = {
    "host": "HOST",
    "port": "PORT",
    "data_file": "DATA_FILE",
    "rate_limit_seconds": "RATE_LIMIT_SECONDS",
    "rate_limit_exempt": "RATE_LIMIT_EXEMPT",
    "rate_limit_prune_seconds": "RATE_LIMIT_PRUNE_SECONDS",
    "log_level": "LOG_LEVEL",
}


class ServerSettings(BaseModel):
    """Bind address, snapshot location and rate-limit policy."""

    host: str = "0.0.0.0"
    port: int = Field(default=8080, ge=0, le=65535)
    data_file: Path = Path("./data.json")
    rate_limit_seconds: int = Field(default=10, ge=0)
    rate_limit_exempt: tuple[str, ...] = ()
    rate_limit_prune_seconds: int = Field(default=60, ge=1)
    log_level: str = "info"

    @field_validator("rate_limit_exempt", mode="before")
    @classmethod
    def _split_exempt(cls, value: Any) -> Any:
        if isinstance(value, str):
            value = value.split(",")
        if value is None:
            return ()
        return tuple(item.strip() for item in value if item and item.strip())

    @classmethod
    def from_env(
        cls,
        environ: Mapping[str, str] | None = None,
        **overrides: Any,
    ) -> "ServerSettings":
        """Build settings with priority: explicit overrides > environment > defaults."""

        env = os.environ if environ is None else environ
        values: dict[str, Any] = {}
        for field_name, env_name in ENV_VARS.items():
            raw = env.get(env_name)
            if raw is not None and raw.strip() != "":
                values[field_name] = raw.strip()
        values.update({key: value for key, value in overrides.items() if value is not None})
        return cls.model_validate(values)
