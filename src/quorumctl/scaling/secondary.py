"""
Secondary group scaler

Secondaries carry no quorum, so they scale on metric pressure alone, bounded
by the policy and, when enabled, spread across zones.
"""

from ..log import get_logger
from ..models import Role, ScaleAction, ScalingDecision
from .base import GroupScaler, ScalingContext
from .constraints import calculate_zone_distribution, clamp, validate_topology

logger = get_logger(__name__)


class SecondaryScaler(GroupScaler):
    role = Role.SECONDARY

    def scale(self, ctx: ScalingContext) -> ScalingDecision:
        policy = ctx.policy
        proposed = self.engine.decide(
            self.role, policy, ctx.snapshot, ctx.current_replicas
        )
        if proposed.action is ScaleAction.NONE:
            return proposed

        notes = []
        target = clamp(
            proposed.target_replicas, policy.min_replicas, policy.max_replicas
        )
        if target != proposed.target_replicas:
            notes.append(
                f"clamped to {target} within "
                f"[{policy.min_replicas}, {policy.max_replicas}]"
            )

        problem = validate_topology(ctx.other_replicas, target)
        if problem:
            logger.info(
                "Topology validation blocked secondary scaling",
                extra={"cluster": ctx.cluster, "reason": problem},
            )
            return self._none(ctx, problem)

        decision = self._finalize(ctx, proposed, target, notes)
        zone_aware = policy.zone_aware
        if (
            decision.action is not ScaleAction.NONE
            and zone_aware is not None
            and zone_aware.enabled
        ):
            decision.zone_targets = calculate_zone_distribution(
                target, ctx.zone_counts, zone_aware.min_replicas_per_zone
            )
            logger.debug(
                "Zone targets computed",
                extra={
                    "cluster": ctx.cluster,
                    "current": ctx.zone_counts,
                    "targets": decision.zone_targets,
                },
            )
        return decision
