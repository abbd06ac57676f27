"""Per-client cooldown rate limiter."""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Callable, Iterable

import structlog

LOGGER = structlog.get_logger("dynamic_mock.rate_limit")


@dataclass(frozen=True)
class RateDecision:
    allowed: bool
    retry_after: int = 0


ADMIT = RateDecision(allowed=True)


class RateLimiter:
    """Admits at most one request per ``window`` seconds for each client.

    Requests for exempt paths are always admitted and leave no trace. A
    rejection does not refresh the client's timestamp, so the cooldown keeps
    counting from the last accepted request.
    """

    def __init__(
        self,
        window: int,
        exempt_paths: Iterable[str] = (),
        *,
        prune_interval: int = 60,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.window = window
        self.exempt_paths = frozenset(exempt_paths)
        self.prune_interval = prune_interval
        self._clock = clock
        self._lock = threading.Lock()
        self._last_seen: dict[str, int] = {}
        self._last_prune: int | None = None

    def check(self, client_id: str, path: str) -> RateDecision:
        """Decide whether ``client_id`` may proceed with a request for ``path``.

        Any internal failure admits the request.
        """

        try:
            return self._check(client_id, path)
        except Exception:
            LOGGER.exception("rate_limiter_failed", client_ip=client_id, path=path)
            return ADMIT

    def _check(self, client_id: str, path: str) -> RateDecision:
        if path in self.exempt_paths:
            return ADMIT
        now = int(self._clock())
        with self._lock:
            self._maybe_prune(now)
            last = self._last_seen.get(client_id)
            if last is not None and now - last < self.window:
                return RateDecision(allowed=False, retry_after=self.window - (now - last))
            self._last_seen[client_id] = now
        return ADMIT

    def prune(self) -> int:
        """Drop clients whose cooldown has fully elapsed; return how many."""

        now = int(self._clock())
        with self._lock:
            return self._prune(now)

    @property
    def tracked_clients(self) -> int:
        return len(self._last_seen)

    def _maybe_prune(self, now: int) -> None:
        if self._last_prune is None:
            self._last_prune = now
            return
        if now - self._last_prune >= self.prune_interval:
            self._prune(now)

    def _prune(self, now: int) -> int:
        stale = [client for client, last in self._last_seen.items() if now - last >= self.window]
        for client in stale:
            del self._last_seen[client]
        self._last_prune = now
        if stale:
            LOGGER.debug("rate_limiter_pruned", removed=len(stale), remaining=len(self._last_seen))
        return len(stale)
