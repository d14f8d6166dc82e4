"""
Structured conditions for observed cluster state

Condition helpers preserve last_transition_time when neither status nor reason
changes, so the time reflects when a condition actually began.
"""

from datetime import datetime

from .models import Condition, ConditionStatus, Phase

# Condition types
READY = "Ready"
FORMATION_COMPLETE = "FormationComplete"
SPLIT_BRAIN = "SplitBrain"
FORMATION_TIMEOUT = "FormationTimeout"
QUORUM_PROTECTION = "QuorumProtection"
METRICS_FALLBACK = "MetricsFallback"
MEMBERS_HEALTHY = "MembersHealthy"

# Reasons
REASON_CLUSTER_READY = "ClusterReady"
REASON_FORMING = "ClusterForming"
REASON_AWAITING_QUORUM = "AwaitingQuorum"
REASON_SCALING = "Scaling"
REASON_DEGRADED = "ClusterDegraded"
REASON_DISJOINT_MEMBERSHIP = "DisjointMembership"
REASON_SINGLE_MEMBERSHIP = "SingleMembership"
REASON_FORMED = "Formed"
REASON_NOT_FORMED = "NotFormed"
REASON_TIMED_OUT = "FormationTimedOut"
REASON_WITHIN_WINDOW = "WithinFormationWindow"
REASON_INSUFFICIENT_HEALTHY_PRIMARIES = "InsufficientHealthyPrimaries"
REASON_QUORUM_HEALTHY = "QuorumHealthy"
REASON_FALLBACK_VALUES = "FallbackValuesUsed"
REASON_LIVE_VALUES = "LiveValues"
REASON_ALL_MEMBERS_READY = "AllMembersReady"
REASON_MEMBERS_NOT_READY = "MembersNotReady"
REASON_AUTOSCALING_INACTIVE = "AutoscalingInactive"
REASON_PROTECTION_DISABLED = "QuorumProtectionDisabled"


def find_condition(
    conditions: list[Condition], condition_type: str
) -> Condition | None:
    for condition in conditions:
        if condition.type == condition_type:
            return condition
    return None


def set_condition(
    conditions: list[Condition],
    condition_type: str,
    status: ConditionStatus,
    reason: str,
    message: str,
    now: datetime,
) -> bool:
    """
    Upsert a condition in place

    Returns:
        True if the condition is new or its status or reason changed
    """
    existing = find_condition(conditions, condition_type)
    if existing is not None and existing.status == status and existing.reason == reason:
        existing.message = message
        return False

    condition = Condition(
        type=condition_type,
        status=status,
        reason=reason,
        message=message,
        last_transition_time=now,
    )
    if existing is None:
        conditions.append(condition)
    else:
        conditions[conditions.index(existing)] = condition
    return True


def mark_inactive(
    conditions: list[Condition],
    condition_type: str,
    reason: str,
    message: str,
    now: datetime,
) -> None:
    """Set an existing condition to Unknown; absent conditions stay absent"""
    if find_condition(conditions, condition_type) is not None:
        set_condition(
            conditions, condition_type, ConditionStatus.UNKNOWN, reason, message, now
        )


def phase_to_ready_condition(phase: Phase) -> tuple[ConditionStatus, str]:
    """Map a phase to the status and reason of the Ready condition"""
    if phase is Phase.READY:
        return ConditionStatus.TRUE, REASON_CLUSTER_READY
    if phase is Phase.SCALING:
        return ConditionStatus.TRUE, REASON_SCALING
    if phase is Phase.DEGRADED:
        return ConditionStatus.FALSE, REASON_DEGRADED
    if phase is Phase.AWAITING_QUORUM:
        return ConditionStatus.UNKNOWN, REASON_AWAITING_QUORUM
    return ConditionStatus.UNKNOWN, REASON_FORMING
