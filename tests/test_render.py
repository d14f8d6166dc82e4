"""
Tests for rendering member templates from desired state and the gate.
"""

from quorumctl.constants import (
    CONFIG_DISCOVERY_SEEDS,
    CONFIG_MINIMUM_MEMBERS,
    CONFIG_PREFERRED_BOOTSTRAPPER,
    CONFIG_ROLE_CONSTRAINTS,
)
from quorumctl.fleet import expected_members
from quorumctl.models import ClusterDesiredState, EnvVar, Role
from quorumctl.quorum import QuorumGuard
from quorumctl.render import render_template
from tests.fakes import desired_body


def desired(**overrides) -> ClusterDesiredState:
    return ClusterDesiredState.from_dict("c", desired_body(**overrides))


class TestRenderTemplate:
    """Test cases for render_template."""

    def test_gate_is_embedded_in_config(self):
        """Test that the gate reaches the engine through its configuration."""
        state = desired(primaries=3)
        gate = QuorumGuard().compute_gate(
            expected_members("c", state.topology), has_existing_data=False
        )

        rendered = render_template(state, Role.PRIMARY, gate)

        assert rendered.config[CONFIG_MINIMUM_MEMBERS] == "3"
        assert rendered.config[CONFIG_PREFERRED_BOOTSTRAPPER] == "c-primary-0"
        seeds = rendered.config[CONFIG_DISCOVERY_SEEDS].split(",")
        assert seeds == [
            "c-primary-0.c-internal:5000",
            "c-primary-1.c-internal:5000",
            "c-primary-2.c-internal:5000",
        ]
        assert rendered.config["storage.engine"] == "lsm"

    def test_identity_env_and_labels(self):
        """Test that cluster and role identity are injected."""
        state = desired(
            env=[{"name": "LOG_LEVEL", "value": "info"}, {"name": "MEMBER_ROLE"}]
        )
        gate = QuorumGuard().compute_gate([], has_existing_data=False)

        rendered = render_template(state, Role.SECONDARY, gate)

        assert rendered.env == (
            EnvVar("CLUSTER_NAME", "c"),
            EnvVar("MEMBER_ROLE", "secondary"),
            EnvVar("LOG_LEVEL", "info"),
        )
        assert rendered.labels == {
            "quorumctl/cluster": "c",
            "quorumctl/role": "secondary",
        }

    def test_containers_follow_sidecar_order(self):
        """Test that the engine runs first, then sidecars in declared order."""
        state = desired(sidecars=["exporter", "backup"])
        gate = QuorumGuard().compute_gate([], has_existing_data=False)

        rendered = render_template(state, Role.PRIMARY, gate)

        assert rendered.containers == ("engine", "exporter", "backup")

    def test_role_constraints_are_copied(self):
        """Test that explicit role constraints pass through unchanged."""
        state = desired(
            member_roles={
                "c-primary-0": "primary",
                "c-primary-1": "unconstrained",
                "c-secondary-0": "secondary",
            }
        )
        gate = QuorumGuard().compute_gate([], has_existing_data=False)

        rendered = render_template(state, Role.PRIMARY, gate)

        assert rendered.config[CONFIG_ROLE_CONSTRAINTS] == (
            "c-primary-0=primary,c-secondary-0=secondary"
        )

    def test_fingerprint_is_stable(self):
        """Test that rendering twice yields the same fingerprint."""
        state = desired()
        gate = QuorumGuard().compute_gate(
            expected_members("c", state.topology), has_existing_data=True
        )

        first = render_template(state, Role.PRIMARY, gate)
        second = render_template(state, Role.PRIMARY, gate)

        assert first.fingerprint() == second.fingerprint()
