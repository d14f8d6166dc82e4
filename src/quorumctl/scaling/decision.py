"""
Scale decision engine

Combines weighted metric scores into a one-step scale decision for a group.
"""

from ..constants import (
    DEFAULT_FALLBACK_CONFIDENCE_PENALTY,
    NEUTRAL_SCORE,
    SCALE_DOWN_SCORE,
    SCALE_UP_SCORE,
)
from ..errors import MetricsQueryError
from ..log import get_logger
from ..models import (
    GroupScalingPolicy,
    MetricSnapshot,
    MetricType,
    Role,
    ScaleAction,
    ScalingDecision,
)
from .evaluators import (
    MetricEvaluation,
    MetricEvaluator,
    build_evaluator_registry,
    validate_evaluator_registry,
)

logger = get_logger(__name__)


class ScaleDecisionEngine:
    """
    Turns metric pressure into a bounded decision

    An average score above 0.8 scales up by one, below 0.2 scales down by one,
    anything else does nothing. Moving one step at a time avoids oscillation
    and large disruptive jumps.
    """

    def __init__(
        self,
        evaluators: dict[MetricType, MetricEvaluator] | None = None,
        fallback_penalty: float = DEFAULT_FALLBACK_CONFIDENCE_PENALTY,
    ):
        if evaluators is None:
            evaluators = build_evaluator_registry()
        validate_evaluator_registry(evaluators)
        self.evaluators = evaluators
        self.fallback_penalty = fallback_penalty

    def decide(
        self,
        role: Role,
        policy: GroupScalingPolicy,
        snapshot: MetricSnapshot,
        current_replicas: int,
    ) -> ScalingDecision:
        if not policy.metrics:
            return ScalingDecision(
                action=ScaleAction.NONE,
                target_replicas=current_replicas,
                reason="No scaling metrics configured",
                group=role,
                current_replicas=current_replicas,
            )

        weighted = 0.0
        total_weight = 0.0
        used_fallback = False
        parts = []
        for metric in policy.metrics:
            try:
                evaluation = self.evaluators[metric.type].evaluate(
                    metric, role, snapshot
                )
            except MetricsQueryError as e:
                evaluation = MetricEvaluation(
                    NEUTRAL_SCORE, f"{metric.type.value}: {e}"
                )
            weight = metric.parsed_weight
            weighted += evaluation.score * weight
            total_weight += weight
            used_fallback = used_fallback or evaluation.fallback
            parts.append(f"{evaluation.reason} [score {evaluation.score:.2f}]")

        if total_weight <= 0:
            return ScalingDecision(
                action=ScaleAction.NONE,
                target_replicas=current_replicas,
                reason="Metric weights sum to zero",
                group=role,
                current_replicas=current_replicas,
            )

        average = weighted / total_weight
        if average > SCALE_UP_SCORE:
            action = ScaleAction.UP
            target = current_replicas + 1
            confidence = average
            summary = f"Average score {average:.2f} > {SCALE_UP_SCORE}"
        elif average < SCALE_DOWN_SCORE:
            action = ScaleAction.DOWN
            target = current_replicas - 1
            confidence = 1.0 - average
            summary = f"Average score {average:.2f} < {SCALE_DOWN_SCORE}"
        else:
            action = ScaleAction.NONE
            target = current_replicas
            confidence = 0.0
            summary = f"Average score {average:.2f} within thresholds"

        if used_fallback and action is not ScaleAction.NONE:
            confidence *= self.fallback_penalty
            summary += " (fallback values used, confidence reduced)"

        decision = ScalingDecision(
            action=action,
            target_replicas=target,
            reason=f"{summary}: {'; '.join(parts)}",
            confidence=round(confidence, 4),
            group=role,
            current_replicas=current_replicas,
        )
        logger.debug(
            "Scale decision computed",
            extra={
                "group": role.value,
                "average_score": average,
                "action": action.value,
                "target_replicas": target,
                "confidence": decision.confidence,
            },
        )
        return decision
