"""
Pytest configuration and fixtures for quorumctl tests.

This module provides fixtures for an in-memory versioned store, a controllable
clock, a controller context wired to both, and a real database for the
integration tests.
"""

import os
from collections.abc import Iterator
from uuid import uuid4

import psycopg
import pytest
from psycopg.rows import dict_row

from quorumctl.config import Settings
from quorumctl.models import (
    AutoScalingMetric,
    GroupScalingPolicy,
    MetricSnapshot,
    MetricType,
    MetricValue,
    QuorumProtection,
    RoleMetrics,
)
from quorumctl.reconciler import Reconciler
from quorumctl.store import ObjectStore
from tests.fakes import FakeClock, FakeStore, make_context
from tests.integration_helpers import drop_tables


@pytest.fixture(scope="session")
def database_url() -> str:
    """Get the PostgreSQL connection URL from environment."""
    url = os.environ.get("DATABASE_URL")
    if not url:
        pytest.skip("DATABASE_URL environment variable not set")
    return url


@pytest.fixture
def db_connection(database_url: str) -> Iterator[psycopg.Connection]:
    """Create a database connection for the test."""
    conn = psycopg.connect(database_url, autocommit=True)
    conn.row_factory = dict_row
    yield conn
    conn.close()


@pytest.fixture
def clean_test_tables(db_connection: psycopg.Connection, database_url: str):
    """Drop and recreate the quorumctl tables around a test."""
    drop_tables(db_connection)
    with ObjectStore(database_url) as store:
        store.ensure_tables()

    yield

    drop_tables(db_connection)


@pytest.fixture
def test_cluster_name() -> str:
    """Generate a unique cluster name for testing."""
    return f"test-cluster-{uuid4().hex[:8]}"


@pytest.fixture
def store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def settings() -> Settings:
    return Settings(database_url="postgresql://test/db", formation_timeout=600)


@pytest.fixture
def ctx(store, settings, clock) -> Iterator:
    context = make_context(store, settings=settings, clock=clock)
    yield context
    context.close()


@pytest.fixture
def reconciler(ctx) -> Reconciler:
    return Reconciler(ctx)


@pytest.fixture
def cpu_policy() -> GroupScalingPolicy:
    """Primary policy scaling on CPU alone, with quorum protection."""
    return GroupScalingPolicy(
        enabled=True,
        min_replicas=3,
        max_replicas=7,
        metrics=(AutoScalingMetric(type=MetricType.CPU, target="70%"),),
        quorum_protection=QuorumProtection(enabled=True, min_healthy_primaries=2),
    )


def snapshot_with(
    primary_cpu: float = 0.5,
    healthy_primaries: int = 3,
    secondary_cpu: float = 0.5,
    healthy_secondaries: int = 0,
    fallbacks: set[str] | None = None,
) -> MetricSnapshot:
    """Build a snapshot with the given CPU readings."""
    return MetricSnapshot(
        primaries=RoleMetrics(
            total=healthy_primaries,
            healthy=healthy_primaries,
            cpu=MetricValue(current=primary_cpu),
        ),
        secondaries=RoleMetrics(
            total=healthy_secondaries,
            healthy=healthy_secondaries,
            cpu=MetricValue(current=secondary_cpu),
        ),
        fallbacks=fallbacks or set(),
    )
