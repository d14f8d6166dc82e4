"""
Version-conflict-safe applier for quorumctl

Every create or update of a managed object goes through ConflictSafeApplier. On
a stale version token the object is read again, the caller's change is merged
into the fresh body, and the write is retried with bounded exponential backoff.
"""

import copy
import random
import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

from .cancellation import CancellationToken
from .config import BackoffSettings
from .errors import ApplyExhaustedError, ConflictError
from .log import get_logger
from .store import StoredObject

logger = get_logger(__name__)

# Receives a private copy of the current body (None if the object does not
# exist) and returns the body to write, or None to leave the object alone.
Mutation = Callable[[dict[str, Any] | None], dict[str, Any] | None]


class ApplyOutcome(Enum):
    CREATED = "created"
    UPDATED = "updated"
    UNCHANGED = "unchanged"
    DRY_RUN = "dry_run"


@dataclass(frozen=True)
class ApplyResult:
    outcome: ApplyOutcome
    obj: StoredObject | None
    attempts: int
    body: dict[str, Any] | None = None

    @property
    def changed(self) -> bool:
        return self.outcome in (ApplyOutcome.CREATED, ApplyOutcome.UPDATED)


class Backoff:
    """Exponential backoff with jitter, capped per step and in total"""

    def __init__(self, settings: BackoffSettings, rng: random.Random | None = None):
        self.settings = settings
        self.rng = rng or random.Random()

    def delay(self, retry: int) -> float:
        """Delay before retry number `retry` (0-based)"""
        s = self.settings
        base = s.initial * (s.factor**retry)
        if s.jitter > 0:
            base *= 1.0 + s.jitter * self.rng.random()
        return min(base, s.max_delay)


class ConflictSafeApplier:
    def __init__(
        self,
        store,
        backoff: BackoffSettings,
        sleep: Callable[[float], None] = time.sleep,
        rng: random.Random | None = None,
    ):
        self.store = store
        self.backoff = Backoff(backoff, rng)
        self.sleep = sleep

    def apply(
        self,
        kind: str,
        name: str,
        mutate: Mutation,
        dry_run: bool = False,
        token: CancellationToken | None = None,
    ) -> ApplyResult:
        """
        Create or update an object, retrying on version conflicts

        Args:
            kind: Object kind
            name: Object name
            mutate: Re-merges the desired change into a freshly read body
            dry_run: Compute the change but never write it
            token: Checked before every attempt and every sleep

        Returns:
            ApplyResult describing what happened

        Raises:
            ApplyExhaustedError: If every attempt hit a conflict, or the
                backoff budget ran out first
            ReconcileCancelledError: If the token was cancelled
        """
        settings = self.backoff.settings
        slept = 0.0
        attempts = 0

        while True:
            if token is not None:
                token.raise_if_cancelled(f"applying {kind}/{name}")
            attempts += 1

            current = self.store.get(kind, name)
            current_body = copy.deepcopy(current.body) if current else None
            new_body = mutate(current_body)

            if new_body is None or (current is not None and new_body == current.body):
                return ApplyResult(ApplyOutcome.UNCHANGED, current, attempts)

            if dry_run:
                logger.info(
                    "Dry run: would write object",
                    extra={"kind": kind, "name": name, "create": current is None},
                )
                return ApplyResult(ApplyOutcome.DRY_RUN, current, attempts, new_body)

            try:
                if current is None:
                    obj = self.store.create(kind, name, new_body)
                    outcome = ApplyOutcome.CREATED
                else:
                    obj = self.store.update(
                        kind, name, new_body, current.resource_version
                    )
                    outcome = ApplyOutcome.UPDATED
            except ConflictError:
                if attempts >= settings.steps:
                    logger.warning(
                        "Conflict retries exhausted",
                        extra={"kind": kind, "name": name, "attempts": attempts},
                    )
                    raise ApplyExhaustedError(kind, name, attempts) from None

                delay = self.backoff.delay(attempts - 1)
                if slept + delay > settings.max_elapsed:
                    logger.warning(
                        "Conflict backoff budget exhausted",
                        extra={"kind": kind, "name": name, "slept": slept},
                    )
                    raise ApplyExhaustedError(kind, name, attempts) from None

                logger.debug(
                    "Version conflict, retrying",
                    extra={
                        "kind": kind,
                        "name": name,
                        "attempt": attempts,
                        "delay": delay,
                    },
                )
                if token is not None:
                    token.raise_if_cancelled(f"retrying {kind}/{name}")
                self.sleep(delay)
                slept += delay
                continue

            logger.debug(
                "Object written",
                extra={
                    "kind": kind,
                    "name": name,
                    "outcome": outcome.value,
                    "resource_version": obj.resource_version,
                    "attempts": attempts,
                },
            )
            return ApplyResult(outcome, obj, attempts, new_body)
