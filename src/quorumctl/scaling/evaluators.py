"""
Metric evaluators for the scale decision engine

Every metric type is scored the same way against its target: above target
scores min(current/target, 1), below half the target scores
max(0, 1 - current/target), and anything in between is neutral (0.5). What
differs per type is where the current value comes from.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass

from ..constants import NEUTRAL_SCORE
from ..log import get_logger
from ..models import AutoScalingMetric, MetricSnapshot, MetricType, Role

logger = get_logger(__name__)


@dataclass(frozen=True)
class MetricEvaluation:
    score: float
    reason: str
    fallback: bool = False


@dataclass(frozen=True)
class Reading:
    value: float
    fallback: bool = False


def parse_target(target: str) -> float | None:
    """
    Parse a metric target

    A trailing % means a fraction ("80%" is 0.8). Returns None for targets that
    are unparsable or not positive.
    """
    raw = str(target).strip()
    percent = raw.endswith("%")
    if percent:
        raw = raw[:-1].strip()
    try:
        value = float(raw)
    except ValueError:
        return None
    if percent:
        value /= 100.0
    if value <= 0:
        return None
    return value


def score_against_target(current: float, target: float) -> float:
    if current > target:
        return min(current / target, 1.0)
    if current < target * 0.5:
        return max(0.0, 1.0 - current / target)
    return NEUTRAL_SCORE


class MetricEvaluator(ABC):
    """Scores one metric type"""

    metric_type: MetricType
    label: str

    @abstractmethod
    def read(
        self, metric: AutoScalingMetric, role: Role, snapshot: MetricSnapshot
    ) -> Reading | None:
        """Current value of the metric, or None if none is available"""

    def evaluate(
        self, metric: AutoScalingMetric, role: Role, snapshot: MetricSnapshot
    ) -> MetricEvaluation:
        target = parse_target(metric.target)
        if target is None:
            logger.warning(
                "Invalid metric target, scoring neutral",
                extra={"metric": self.label, "target": metric.target},
            )
            return MetricEvaluation(
                NEUTRAL_SCORE, f"{self.label}: invalid target {metric.target!r}"
            )

        reading = self.read(metric, role, snapshot)
        if reading is None:
            return MetricEvaluation(NEUTRAL_SCORE, f"{self.label}: no value available")

        score = score_against_target(reading.value, target)
        if reading.value > target:
            relation = ">"
        elif reading.value < target * 0.5:
            relation = "<<"
        else:
            relation = "~"
        reason = f"{self.label} {reading.value:.3g} {relation} {target:.3g}"
        if reading.fallback:
            reason += " (fallback)"
        return MetricEvaluation(score, reason, reading.fallback)


class CpuEvaluator(MetricEvaluator):
    metric_type = MetricType.CPU
    label = "cpu"

    def read(self, metric, role, snapshot):
        return Reading(
            snapshot.for_role(role).cpu.current,
            f"{role.value}.cpu" in snapshot.fallbacks,
        )


class MemoryEvaluator(MetricEvaluator):
    metric_type = MetricType.MEMORY
    label = "memory"

    def read(self, metric, role, snapshot):
        return Reading(
            snapshot.for_role(role).memory.current,
            f"{role.value}.memory" in snapshot.fallbacks,
        )


class ConnectionEvaluator(MetricEvaluator):
    metric_type = MetricType.CONNECTION_COUNT
    label = "connections"

    def read(self, metric, role, snapshot):
        return Reading(
            snapshot.for_role(role).connections.current,
            f"{role.value}.connections" in snapshot.fallbacks,
        )


class ThroughputEvaluator(MetricEvaluator):
    metric_type = MetricType.THROUGHPUT
    label = "throughput"

    def read(self, metric, role, snapshot):
        return Reading(
            snapshot.for_role(role).throughput.current,
            f"{role.value}.throughput" in snapshot.fallbacks,
        )


class QueryLatencyEvaluator(MetricEvaluator):
    """p95 query latency in milliseconds, measured cluster-wide"""

    metric_type = MetricType.QUERY_LATENCY
    label = "p95 latency ms"

    def read(self, metric, role, snapshot):
        return Reading(
            snapshot.query.p95_latency_ms, "query_latency" in snapshot.fallbacks
        )


class CustomEvaluator(MetricEvaluator):
    """External time-series value prefetched by the collector"""

    metric_type = MetricType.CUSTOM
    label = "custom"

    def read(self, metric, role, snapshot):
        external = snapshot.external.get(metric.external_key)
        if external is None:
            return None
        return Reading(external.value, external.fallback)


def build_evaluator_registry() -> dict[MetricType, MetricEvaluator]:
    registry = {
        evaluator.metric_type: evaluator
        for evaluator in (
            CpuEvaluator(),
            MemoryEvaluator(),
            ConnectionEvaluator(),
            ThroughputEvaluator(),
            QueryLatencyEvaluator(),
            CustomEvaluator(),
        )
    }
    validate_evaluator_registry(registry)
    return registry


def validate_evaluator_registry(registry: dict[MetricType, MetricEvaluator]) -> None:
    """
    Raises:
        ValueError: If any metric type has no evaluator
    """
    missing = [t.value for t in MetricType if t not in registry]
    if missing:
        raise ValueError(f"No evaluator registered for metric types: {missing}")
