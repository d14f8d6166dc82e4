"""
Tests for the continuous reconcile supervisor.

The supervisor runs against the in-memory store with short poll intervals and
no debounce; each test stops it once the expected reconciles have happened.
"""

import asyncio
import time

import pytest

from quorumctl.config import Settings
from quorumctl.constants import KIND_CLUSTER_STATUS, KIND_FLEET
from quorumctl.engine import Engine
from quorumctl.supervisor import Supervisor
from tests.fakes import add_cluster, desired_body, make_context


def fast_settings(**overrides) -> Settings:
    values = dict(
        database_url="postgresql://test/db",
        debounce=0,
        watch_poll_interval=0.01,
        reconcile_interval=60,
        workers=2,
    )
    values.update(overrides)
    return Settings(**values)


async def run_until(supervisor, condition, timeout=5.0, during=None):
    """Run the supervisor until condition() holds, then stop it"""
    task = asyncio.create_task(supervisor.run())
    deadline = time.monotonic() + timeout
    acted = False
    while not condition():
        if during is not None and not acted and supervisor.completed:
            during()
            acted = True
        if time.monotonic() > deadline:
            supervisor.stop("test timeout")
            await task
            pytest.fail("condition not reached before timeout")
        await asyncio.sleep(0.01)
    supervisor.stop("test done")
    await task


@pytest.fixture
def make_supervisor(store, clock):
    engines = []

    def factory(**overrides):
        settings = fast_settings(**overrides)
        engine = Engine(settings, ctx=make_context(store, settings, clock=clock))
        engines.append(engine)
        return Supervisor(engine, install_signal_handlers=False)

    yield factory
    for engine in engines:
        engine.ctx.close()


class TestSupervisor:
    """Test cases for Supervisor.run."""

    def test_reconciles_every_cluster_on_start(self, store, make_supervisor):
        """Test that each existing cluster is reconciled once it is seen."""
        add_cluster(store, "alpha", desired_body())
        add_cluster(store, "beta", desired_body())
        supervisor = make_supervisor()

        asyncio.run(
            run_until(
                supervisor,
                lambda: store.get(KIND_CLUSTER_STATUS, "alpha")
                and store.get(KIND_CLUSTER_STATUS, "beta"),
            )
        )

        assert supervisor.completed >= 2
        assert store.body(KIND_FLEET, "beta-primary")["replicas"] == 3

    def test_desired_state_change_triggers_reconcile(self, store, make_supervisor):
        """Test that a new version of a cluster is picked up by the watcher."""
        add_cluster(store, "alpha", desired_body())
        supervisor = make_supervisor()

        def fleet_resized():
            body = store.body(KIND_FLEET, "alpha-primary")
            return body is not None and body["replicas"] == 5

        asyncio.run(
            run_until(
                supervisor,
                fleet_resized,
                during=lambda: add_cluster(store, "alpha", desired_body(primaries=5)),
            )
        )

        assert supervisor.completed >= 2

    def test_filter_skips_other_clusters(self, store, make_supervisor):
        """Test that only clusters matching the filter are reconciled."""
        add_cluster(store, "prod-a", desired_body())
        add_cluster(store, "staging-a", desired_body())
        supervisor = make_supervisor(cluster_filter="^prod")

        asyncio.run(
            run_until(supervisor, lambda: store.get(KIND_CLUSTER_STATUS, "prod-a"))
        )

        assert store.get(KIND_CLUSTER_STATUS, "staging-a") is None

    def test_resync_reconciles_again(self, store, make_supervisor):
        """Test that the periodic resync re-reconciles unchanged clusters."""
        add_cluster(store, "alpha", desired_body())
        supervisor = make_supervisor(reconcile_interval=0.05)

        asyncio.run(run_until(supervisor, lambda: supervisor.completed >= 3))

        assert supervisor.completed >= 3

    def test_stop_cancels_token(self, store, make_supervisor):
        """Test that stopping cancels the token in-flight reconciles observe."""
        add_cluster(store, "alpha", desired_body())
        supervisor = make_supervisor()

        asyncio.run(run_until(supervisor, lambda: supervisor.completed >= 1))

        assert supervisor.stopping is True
        assert supervisor.token.cancelled is True


class TestScheduling:
    """Test cases for per-cluster coalescing."""

    def test_event_during_reconcile_marks_dirty(self, make_supervisor):
        """Test that an event for a running cluster schedules one follow-up."""
        supervisor = make_supervisor()
        supervisor._running.add("alpha")

        supervisor._schedule("alpha")
        supervisor._schedule("alpha")

        assert supervisor._dirty == {"alpha"}
        assert supervisor._timers == {}

    def test_reconcile_deadline_follows_context_clock(self, store, clock):
        """Test that per-reconcile deadlines are measured on the context clock."""
        ticks = [0.0]
        settings = fast_settings(reconcile_deadline=30)
        ctx = make_context(store, settings, clock=clock)
        ctx.monotonic = lambda: ticks[0]
        supervisor = Supervisor(
            Engine(settings, ctx=ctx), install_signal_handlers=False
        )

        token = supervisor.token.child(settings.reconcile_deadline)
        ticks[0] = 29.0
        assert token.cancelled is False
        ticks[0] = 30.0
        assert token.cancelled is True
        assert token.reason == "deadline exceeded"
        ctx.close()
