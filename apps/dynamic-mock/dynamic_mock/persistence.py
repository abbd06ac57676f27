"""Snapshot persistence for the route table."""

from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path
from typing import Any, Iterable

import structlog

from .models import MockDefinition
from .routes import build_definition

LOGGER = structlog.get_logger("dynamic_mock.persistence")


class SnapshotError(RuntimeError):
    """Raised when the snapshot file cannot be written."""


class SnapshotStore:
    """Loads and atomically rewrites the JSON snapshot of registered mocks."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self._logger = LOGGER.bind(snapshot=str(self.path))

    def load(self) -> list[MockDefinition]:
        """Return the persisted mocks, or an empty list when none can be read.

        A missing file is the normal first-boot case. An unreadable or corrupt
        file is logged and ignored so the server still starts.
        """

        if not self.path.exists():
            self._logger.info("snapshot_missing")
            return []
        try:
            payload = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError, RecursionError) as exc:
            self._logger.warning("snapshot_load_failed", error=str(exc))
            return []
        if not isinstance(payload, list):
            self._logger.warning(
                "snapshot_load_failed",
                error=f"expected a JSON array, got {type(payload).__name__}",
            )
            return []

        definitions: list[MockDefinition] = []
        for index, item in enumerate(payload):
            if not isinstance(item, dict):
                self._logger.warning("snapshot_item_skipped", index=index)
                continue
            definitions.append(
                build_definition(
                    path=item.get("path"),
                    method=item.get("method"),
                    status=item.get("status"),
                    response=item.get("response"),
                    headers=item.get("headers"),
                )
            )
        self._logger.info("snapshot_loaded", routes=len(definitions))
        return definitions

    def save(self, definitions: Iterable[MockDefinition]) -> None:
        """Replace the snapshot with ``definitions`` via temp file and rename."""

        records = [definition.as_serializable() for definition in definitions]
        body = json.dumps(records, indent=2)
        try:
            self._atomic_write(body)
        except OSError as exc:
            raise SnapshotError(f"Failed to write snapshot {self.path}: {exc}") from exc
        self._logger.debug("snapshot_saved", routes=len(records))

    def _atomic_write(self, body: str) -> None:
        directory = self.path.parent
        directory.mkdir(parents=True, exist_ok=True)
        handle = tempfile.NamedTemporaryFile(
            "w",
            encoding="utf-8",
            dir=directory,
            prefix=f"{self.path.name}.",
            suffix=".tmp",
            delete=False,
        )
        tmp_path = Path(handle.name)
        try:
            with handle:
                handle.write(body)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(tmp_path, self.path)
        except BaseException:
            _discard(tmp_path)
            raise


def _discard(path: Path) -> None:
    try:
        path.unlink()
    except FileNotFoundError:
        pass

