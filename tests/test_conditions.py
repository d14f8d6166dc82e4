"""
Tests for condition helpers.
"""

from datetime import UTC, datetime, timedelta

import pytest

from quorumctl import conditions as cond
from quorumctl.models import ConditionStatus, Phase

T0 = datetime(2024, 1, 1, tzinfo=UTC)


class TestSetCondition:
    """Test cases for set_condition."""

    def test_new_condition_is_added(self):
        """Test that an absent condition is appended."""
        conditions = []

        changed = cond.set_condition(
            conditions, cond.READY, ConditionStatus.TRUE, "ClusterReady", "ok", T0
        )

        assert changed is True
        assert len(conditions) == 1
        assert conditions[0].last_transition_time == T0

    def test_same_status_and_reason_keeps_transition_time(self):
        """Test that only the message changes when nothing transitioned."""
        conditions = []
        cond.set_condition(
            conditions, cond.READY, ConditionStatus.TRUE, "ClusterReady", "one", T0
        )

        changed = cond.set_condition(
            conditions,
            cond.READY,
            ConditionStatus.TRUE,
            "ClusterReady",
            "two",
            T0 + timedelta(minutes=1),
        )

        assert changed is False
        assert conditions[0].message == "two"
        assert conditions[0].last_transition_time == T0

    def test_status_change_moves_transition_time(self):
        """Test that a status flip replaces the condition in place."""
        later = T0 + timedelta(minutes=1)
        conditions = []
        cond.set_condition(
            conditions, cond.READY, ConditionStatus.TRUE, "ClusterReady", "", T0
        )
        cond.set_condition(
            conditions, cond.SPLIT_BRAIN, ConditionStatus.FALSE, "Single", "", T0
        )

        changed = cond.set_condition(
            conditions, cond.READY, ConditionStatus.FALSE, "ClusterDegraded", "", later
        )

        assert changed is True
        assert [c.type for c in conditions] == [cond.READY, cond.SPLIT_BRAIN]
        assert conditions[0].last_transition_time == later


class TestReadyCondition:
    """Test cases for mapping phases to the Ready condition."""

    @pytest.mark.parametrize(
        "phase,status,reason",
        [
            (Phase.READY, ConditionStatus.TRUE, cond.REASON_CLUSTER_READY),
            (Phase.SCALING, ConditionStatus.TRUE, cond.REASON_SCALING),
            (Phase.DEGRADED, ConditionStatus.FALSE, cond.REASON_DEGRADED),
            (
                Phase.AWAITING_QUORUM,
                ConditionStatus.UNKNOWN,
                cond.REASON_AWAITING_QUORUM,
            ),
            (Phase.FORMING, ConditionStatus.UNKNOWN, cond.REASON_FORMING),
        ],
    )
    def test_phase_mapping(self, phase, status, reason):
        """Test the Ready condition for every phase."""
        assert cond.phase_to_ready_condition(phase) == (status, reason)
