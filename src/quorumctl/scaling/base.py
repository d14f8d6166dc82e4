"""
Base group scaler interface for quorumctl

Defines the GroupScaler abstract base class that the primary and secondary
scalers implement.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field

from ..log import get_logger
from ..models import (
    GroupScalingPolicy,
    MetricSnapshot,
    Role,
    ScaleAction,
    ScalingDecision,
)
from .decision import ScaleDecisionEngine

logger = get_logger(__name__)


@dataclass(frozen=True)
class ScalingContext:
    """Everything a group scaler needs for one evaluation"""

    cluster: str
    policy: GroupScalingPolicy
    snapshot: MetricSnapshot
    current_replicas: int
    other_replicas: int
    zone_counts: dict[str, int] = field(default_factory=dict)


class GroupScaler(ABC):
    """
    Abstract base class for member group scalers

    A scaler receives the metric snapshot and the group's policy and returns a
    ScalingDecision whose target already satisfies every safety constraint of
    the group. Scalers never write; the reconciler applies the decision.
    """

    role: Role

    def __init__(self, engine: ScaleDecisionEngine):
        self.engine = engine

    @abstractmethod
    def scale(self, ctx: ScalingContext) -> ScalingDecision:
        """
        Compute a constrained scaling decision

        Args:
            ctx: Policy, metrics and current sizes for the group

        Returns:
            ScalingDecision; action NONE means no write for this group
        """

    def _none(
        self, ctx: ScalingContext, reason: str, suppressed: bool = False
    ) -> ScalingDecision:
        return ScalingDecision(
            action=ScaleAction.NONE,
            target_replicas=ctx.current_replicas,
            reason=reason,
            group=self.role,
            current_replicas=ctx.current_replicas,
            suppressed=suppressed,
        )

    def _finalize(
        self,
        ctx: ScalingContext,
        proposed: ScalingDecision,
        target: int,
        notes: list[str],
    ) -> ScalingDecision:
        """Derive the action from the constrained target"""
        if target > ctx.current_replicas:
            action = ScaleAction.UP
        elif target < ctx.current_replicas:
            action = ScaleAction.DOWN
        else:
            action = ScaleAction.NONE

        reason = proposed.reason
        if notes:
            reason += " (" + ", ".join(notes) + ")"
        if action is ScaleAction.NONE:
            return self._none(ctx, f"Target unchanged after constraints: {reason}")

        logger.info(
            "Scaling decision",
            extra={
                "cluster": ctx.cluster,
                "group": self.role.value,
                "action": action.value,
                "from": ctx.current_replicas,
                "to": target,
                "confidence": proposed.confidence,
            },
        )
        return ScalingDecision(
            action=action,
            target_replicas=target,
            reason=reason,
            confidence=proposed.confidence,
            group=self.role,
            current_replicas=ctx.current_replicas,
        )
