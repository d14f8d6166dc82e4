"""
Integration tests for quorumctl against a real PostgreSQL database.

These tests use the tool the way an operator would:
1. Write desired cluster state into the object table
2. Run the CLI tool using 'uv run quorumctl apply'
3. Verify the fleets, observed state and audit rows it wrote

They are skipped unless DATABASE_URL is set.
"""

import pytest

from quorumctl.constants import KIND_CLUSTER, KIND_CLUSTER_STATUS, KIND_FLEET
from quorumctl.errors import ConflictError
from quorumctl.store import ObjectStore
from tests.fakes import desired_body
from tests.integration_helpers import (
    get_actions,
    get_object_body,
    put_object,
    run_quorumctl_command,
)


@pytest.mark.integration
class TestCli:
    """Integration tests for the dry-run, apply and status commands."""

    def test_apply_creates_fleets(
        self, db_connection, clean_test_tables, test_cluster_name, database_url
    ):
        """Test that apply creates both fleets and records the actions."""
        put_object(db_connection, KIND_CLUSTER, test_cluster_name, desired_body())

        result = run_quorumctl_command("apply", database_url)

        assert result.returncode == 0, f"Command failed: {result.stderr}"
        primary = get_object_body(
            db_connection, KIND_FLEET, f"{test_cluster_name}-primary"
        )
        assert primary["replicas"] == 3
        assert primary["template"]["image"] == "db:1.0"
        status = get_object_body(db_connection, KIND_CLUSTER_STATUS, test_cluster_name)
        assert status["phase"] == "Forming"

        actions = get_actions(db_connection, test_cluster_name)
        assert {a["kind"] for a in actions} == {KIND_FLEET, KIND_CLUSTER_STATUS}
        assert all(a["executed"] for a in actions)

    def test_dry_run_writes_nothing(
        self, db_connection, clean_test_tables, test_cluster_name, database_url
    ):
        """Test that dry-run prints the plan without touching the store."""
        put_object(db_connection, KIND_CLUSTER, test_cluster_name, desired_body())

        result = run_quorumctl_command("dry-run", database_url)

        assert result.returncode == 0, f"Command failed: {result.stderr}"
        assert "Planned actions:" in result.stdout
        assert (
            get_object_body(db_connection, KIND_FLEET, f"{test_cluster_name}-primary")
            is None
        )
        assert get_actions(db_connection, test_cluster_name) == []

    def test_second_apply_is_idempotent(
        self, db_connection, clean_test_tables, test_cluster_name, database_url
    ):
        """Test that re-applying unchanged desired state writes no fleet."""
        put_object(db_connection, KIND_CLUSTER, test_cluster_name, desired_body())
        run_quorumctl_command("apply", database_url)
        before = len(get_actions(db_connection, test_cluster_name))

        result = run_quorumctl_command("apply", database_url)

        assert result.returncode == 0, f"Command failed: {result.stderr}"
        assert len(get_actions(db_connection, test_cluster_name)) == before

    def test_filter_clusters(
        self, db_connection, clean_test_tables, test_cluster_name, database_url
    ):
        """Test that --filter-clusters limits which clusters are reconciled."""
        other = f"{test_cluster_name}-other"
        put_object(db_connection, KIND_CLUSTER, test_cluster_name, desired_body())
        put_object(db_connection, KIND_CLUSTER, other, desired_body())

        result = run_quorumctl_command(
            "apply",
            database_url,
            extra_args=["--filter-clusters", f"^{test_cluster_name}$"],
        )

        assert result.returncode == 0, f"Command failed: {result.stderr}"
        assert get_object_body(db_connection, KIND_CLUSTER_STATUS, other) is None

    def test_status(
        self, db_connection, clean_test_tables, test_cluster_name, database_url
    ):
        """Test that status shows the phase written by apply."""
        put_object(db_connection, KIND_CLUSTER, test_cluster_name, desired_body())
        run_quorumctl_command("apply", database_url)

        result = run_quorumctl_command("status", database_url)

        assert result.returncode == 0, f"Command failed: {result.stderr}"
        assert f"Cluster: {test_cluster_name}" in result.stdout
        assert "Phase: Forming" in result.stdout


@pytest.mark.integration
class TestObjectStore:
    """Integration tests for optimistic concurrency in ObjectStore."""

    def test_stale_version_conflicts(
        self, clean_test_tables, test_cluster_name, database_url
    ):
        """Test that only one of two writers holding the same version wins."""
        with ObjectStore(database_url) as store:
            created = store.create(KIND_CLUSTER, test_cluster_name, desired_body())

            updated = store.update(
                KIND_CLUSTER,
                test_cluster_name,
                desired_body(primaries=5),
                created.resource_version,
            )
            assert updated.resource_version == created.resource_version + 1

            with pytest.raises(ConflictError):
                store.update(
                    KIND_CLUSTER,
                    test_cluster_name,
                    desired_body(primaries=7),
                    created.resource_version,
                )
            with pytest.raises(ConflictError):
                store.create(KIND_CLUSTER, test_cluster_name, desired_body())

            current = store.get(KIND_CLUSTER, test_cluster_name)
            assert current.body["topology"]["primaries"] == 5
