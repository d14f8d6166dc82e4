"""
Controller context for quorumctl

Everything a component needs from the process (settings, the object store, the
HTTP client, clocks and randomness) is built once at startup, handed to each
component's constructor, and torn down on shutdown.
"""

import random
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

import httpx

from .config import Settings
from .constants import USER_AGENT
from .log import get_logger
from .store import ObjectStore

logger = get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass
class ControllerContext:
    """Explicitly constructed process context"""

    settings: Settings
    store: Any
    http: httpx.Client
    now: Callable[[], datetime] = _utcnow
    sleep: Callable[[float], None] = time.sleep
    monotonic: Callable[[], float] = time.monotonic
    rng: random.Random = field(default_factory=random.Random)

    @classmethod
    def from_settings(cls, settings: Settings) -> "ControllerContext":
        """
        Open the object store and HTTP client described by settings

        Raises:
            ValueError: If no database URL is configured
        """
        if not settings.database_url:
            raise ValueError("A database URL is required")
        store = ObjectStore(settings.database_url)
        http = httpx.Client(
            timeout=settings.prometheus_timeout,
            headers={"Accept": "application/json", "User-Agent": USER_AGENT},
        )
        logger.debug(
            "Controller context created",
            extra={
                "workers": settings.workers,
                "dry_run": settings.dry_run,
                "prometheus_url": settings.prometheus_url,
            },
        )
        return cls(settings=settings, store=store, http=http)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def close(self):
        """Release the HTTP client and the store's connection pool"""
        self.http.close()
        close = getattr(self.store, "close", None)
        if close is not None:
            close()
