"""
Tests for the version-conflict-safe applier.
"""

import pytest

from quorumctl.applier import ApplyOutcome, Backoff, ConflictSafeApplier
from quorumctl.cancellation import CancellationToken
from quorumctl.config import BackoffSettings
from quorumctl.errors import (
    ApplyExhaustedError,
    ReconcileCancelledError,
    TransientReconcileError,
)
from tests.fakes import FakeStore

NO_JITTER = BackoffSettings(jitter=0.0)


def set_replicas(replicas):
    def mutate(body):
        body = body or {}
        body["replicas"] = replicas
        return body

    return mutate


class TestBackoff:
    """Test cases for the backoff schedule."""

    def test_exponential_growth(self):
        """Test that delays double from the initial delay."""
        backoff = Backoff(NO_JITTER)

        assert backoff.delay(0) == pytest.approx(0.01)
        assert backoff.delay(1) == pytest.approx(0.02)
        assert backoff.delay(3) == pytest.approx(0.08)

    def test_capped_at_max_delay(self):
        """Test that no single delay exceeds the cap."""
        backoff = Backoff(NO_JITTER)

        assert backoff.delay(20) == 1.0

    def test_jitter_only_lengthens(self):
        """Test that jitter stays within its fraction of the base delay."""
        backoff = Backoff(BackoffSettings(jitter=0.1))

        for _ in range(20):
            assert 0.01 <= backoff.delay(0) <= 0.011


class TestConflictSafeApplier:
    """Test cases for ConflictSafeApplier.apply."""

    def setup_method(self):
        self.store = FakeStore()
        self.sleeps = []
        self.applier = ConflictSafeApplier(
            self.store, NO_JITTER, sleep=self.sleeps.append
        )

    def test_create_when_missing(self):
        """Test that a missing object is created at version 1."""
        result = self.applier.apply("fleet", "c-primary", set_replicas(3))

        assert result.outcome is ApplyOutcome.CREATED
        assert result.changed is True
        assert result.obj.resource_version == 1
        assert self.store.body("fleet", "c-primary") == {"replicas": 3}

    def test_update_existing(self):
        """Test that an existing object is updated at the next version."""
        self.store.put("fleet", "c-primary", {"replicas": 1, "status": {}})

        result = self.applier.apply("fleet", "c-primary", set_replicas(3))

        assert result.outcome is ApplyOutcome.UPDATED
        assert result.obj.resource_version == 2
        assert self.store.body("fleet", "c-primary") == {
            "replicas": 3,
            "status": {},
        }

    def test_equal_body_is_unchanged(self):
        """Test that writing the same body performs no write."""
        self.store.put("fleet", "c-primary", {"replicas": 3})

        result = self.applier.apply("fleet", "c-primary", set_replicas(3))

        assert result.outcome is ApplyOutcome.UNCHANGED
        assert result.changed is False
        assert self.store.writes == []

    def test_none_mutation_is_unchanged(self):
        """Test that a mutation returning None leaves the object alone."""
        result = self.applier.apply("fleet", "c-primary", lambda body: None)

        assert result.outcome is ApplyOutcome.UNCHANGED
        assert self.store.body("fleet", "c-primary") is None

    def test_dry_run_never_writes(self):
        """Test that dry-run reports the body it would write."""
        self.store.put("fleet", "c-primary", {"replicas": 1})

        result = self.applier.apply(
            "fleet", "c-primary", set_replicas(5), dry_run=True
        )

        assert result.outcome is ApplyOutcome.DRY_RUN
        assert result.body == {"replicas": 5}
        assert self.store.writes == []
        assert self.store.body("fleet", "c-primary") == {"replicas": 1}

    def test_conflict_is_retried_with_backoff(self):
        """Test that version conflicts are retried after increasing delays."""
        self.store.put("fleet", "c-primary", {"replicas": 1})
        self.store.conflicts[("fleet", "c-primary")] = 2

        result = self.applier.apply("fleet", "c-primary", set_replicas(3))

        assert result.outcome is ApplyOutcome.UPDATED
        assert result.attempts == 3
        assert self.sleeps == [pytest.approx(0.01), pytest.approx(0.02)]

    def test_retry_merges_into_fresh_body(self):
        """Test that a concurrent writer's change survives the retry."""
        self.store.put("fleet", "c-primary", {"replicas": 1})
        self.store.conflicts[("fleet", "c-primary")] = 1

        def concurrent_write(_delay):
            body = self.store.body("fleet", "c-primary")
            body["status"] = {"members": ["m0"]}
            self.store.put("fleet", "c-primary", body)

        applier = ConflictSafeApplier(self.store, NO_JITTER, sleep=concurrent_write)
        result = applier.apply("fleet", "c-primary", set_replicas(3))

        assert result.attempts == 2
        assert self.store.body("fleet", "c-primary") == {
            "replicas": 3,
            "status": {"members": ["m0"]},
        }

    def test_exhausted_after_max_attempts(self):
        """Test that persistent conflicts raise a transient error."""
        self.store.put("fleet", "c-primary", {"replicas": 1})
        self.store.conflicts[("fleet", "c-primary")] = 100

        with pytest.raises(ApplyExhaustedError) as exc_info:
            self.applier.apply("fleet", "c-primary", set_replicas(3))

        assert exc_info.value.attempts == 5
        assert isinstance(exc_info.value, TransientReconcileError)
        assert len(self.sleeps) == 4

    def test_exhausted_when_backoff_budget_runs_out(self):
        """Test that total backoff is bounded by max_elapsed."""
        settings = BackoffSettings(
            initial=1.0, factor=1.0, jitter=0.0, max_delay=1.0, max_elapsed=1.5
        )
        applier = ConflictSafeApplier(self.store, settings, sleep=self.sleeps.append)
        self.store.put("fleet", "c-primary", {"replicas": 1})
        self.store.conflicts[("fleet", "c-primary")] = 100

        with pytest.raises(ApplyExhaustedError) as exc_info:
            applier.apply("fleet", "c-primary", set_replicas(3))

        assert exc_info.value.attempts == 2
        assert self.sleeps == [1.0]

    def test_cancelled_token_stops_before_writing(self):
        """Test that a cancelled token prevents any attempt."""
        token = CancellationToken()
        token.cancel("shutdown")

        with pytest.raises(ReconcileCancelledError, match="shutdown"):
            self.applier.apply("fleet", "c-primary", set_replicas(3), token=token)

        assert self.store.writes == []

    def test_mutation_receives_private_copy(self):
        """Test that the mutation cannot alter the stored object in place."""
        self.store.put("fleet", "c-primary", {"replicas": 1, "zones": {"a": 1}})

        def mutate(body):
            body["zones"]["a"] = 2
            return None

        self.applier.apply("fleet", "c-primary", mutate)

        assert self.store.body("fleet", "c-primary")["zones"] == {"a": 1}
