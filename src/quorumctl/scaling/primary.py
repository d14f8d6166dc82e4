"""
Primary group scaler

Quorum protection is checked before anything else: with too few healthy
primaries no primary scaling happens at all, whatever the metrics say.
"""

from ..log import get_logger
from ..models import Role, ScaleAction, ScalingDecision
from .base import GroupScaler, ScalingContext
from .constraints import (
    check_quorum_protection,
    clamp,
    ensure_odd_replicas,
    validate_topology,
)

logger = get_logger(__name__)


class PrimaryScaler(GroupScaler):
    role = Role.PRIMARY

    def scale(self, ctx: ScalingContext) -> ScalingDecision:
        policy = ctx.policy
        violation = check_quorum_protection(
            ctx.snapshot.primaries.healthy, policy.quorum_protection
        )
        if violation:
            logger.warning(
                "Quorum protection blocked primary scaling",
                extra={
                    "cluster": ctx.cluster,
                    "healthy_primaries": ctx.snapshot.primaries.healthy,
                    "reason": violation,
                },
            )
            return self._none(ctx, violation, suppressed=True)

        proposed = self.engine.decide(
            self.role, policy, ctx.snapshot, ctx.current_replicas
        )
        if proposed.action is ScaleAction.NONE:
            return proposed

        notes = []
        target = proposed.target_replicas
        if not policy.allow_quorum_break:
            odd = ensure_odd_replicas(target, policy.min_replicas, policy.max_replicas)
            if odd != target:
                notes.append(f"adjusted to odd count {odd}")
                target = odd

        clamped = clamp(target, policy.min_replicas, policy.max_replicas)
        if clamped != target:
            notes.append(
                f"clamped to {clamped} within "
                f"[{policy.min_replicas}, {policy.max_replicas}]"
            )
            target = clamped

        problem = validate_topology(target, ctx.other_replicas)
        if problem:
            logger.info(
                "Topology validation blocked primary scaling",
                extra={"cluster": ctx.cluster, "reason": problem},
            )
            return self._none(ctx, problem)

        return self._finalize(ctx, proposed, target, notes)
