"""
Metrics collection for quorumctl

Builds a MetricSnapshot for one autoscaling cycle from member-reported signals
and, for custom metrics, from the external time-series source. Missing signals
are replaced with configured fallback values and the category is recorded so
that the decision engine can lower its confidence.
"""

from collections.abc import Iterable

from .cancellation import CancellationToken
from .config import FallbackValues
from .constants import (
    CONNECTION_THRESHOLD,
    CPU_THRESHOLD,
    MEMORY_THRESHOLD,
    THROUGHPUT_THRESHOLD,
    TREND_BAND,
)
from .errors import MetricsQueryError
from .log import get_logger
from .models import (
    ClusterDesiredState,
    FleetState,
    MemberStatus,
    MetricSnapshot,
    MetricType,
    MetricValue,
    QueryMetrics,
    Role,
    RoleMetrics,
    Trend,
)
from .prometheus import PrometheusClient

logger = get_logger(__name__)


def compute_trend(current: float, previous: float | None) -> Trend:
    """Direction of change against the previous value, with a 10% dead band"""
    if previous is None:
        return Trend.UNKNOWN
    if previous == 0:
        return Trend.INCREASING if current > 0 else Trend.STABLE
    if current > previous * (1 + TREND_BAND):
        return Trend.INCREASING
    if current < previous * (1 - TREND_BAND):
        return Trend.DECREASING
    return Trend.STABLE


def _mean(values: list[float]) -> float:
    return sum(values) / len(values)


def _reported(members: Iterable[MemberStatus], attr: str) -> list[float]:
    return [float(v) for m in members if (v := getattr(m, attr)) is not None]


class MetricsCollector:
    def __init__(
        self,
        prometheus: PrometheusClient,
        fallbacks: FallbackValues,
        now=None,
    ):
        self.prometheus = prometheus
        self.fallbacks = fallbacks
        self.now = now or prometheus.now

    def collect(
        self,
        desired: ClusterDesiredState,
        fleets: dict[Role, FleetState | None],
        previous: MetricSnapshot | None = None,
        token: CancellationToken | None = None,
    ) -> MetricSnapshot:
        """
        Collect a fresh snapshot for one cluster

        Args:
            desired: Desired state, whose custom metrics are prefetched
            fleets: Both fleets of the cluster
            previous: Snapshot of the previous cycle, source of previous/trend
            token: Checked before each external query

        Returns:
            MetricSnapshot for this cycle
        """
        snapshot = MetricSnapshot(collected_at=self.now())
        snapshot.primaries = self._role_metrics(
            Role.PRIMARY,
            fleets.get(Role.PRIMARY),
            previous.primaries if previous else None,
            snapshot.fallbacks,
        )
        snapshot.secondaries = self._role_metrics(
            Role.SECONDARY,
            fleets.get(Role.SECONDARY),
            previous.secondaries if previous else None,
            snapshot.fallbacks,
        )
        snapshot.query = self._query_metrics(fleets, snapshot.fallbacks)
        self._prefetch_external(desired, snapshot, token)

        logger.debug(
            "Metrics collected",
            extra={
                "cluster": desired.name,
                "primaries_healthy": snapshot.primaries.healthy,
                "secondaries_healthy": snapshot.secondaries.healthy,
                "fallbacks": sorted(snapshot.fallbacks),
            },
        )
        return snapshot

    def _role_metrics(
        self,
        role: Role,
        fleet: FleetState | None,
        previous: RoleMetrics | None,
        fallbacks: set[str],
    ) -> RoleMetrics:
        if fleet is None:
            return RoleMetrics()

        ready = fleet.ready_members
        metrics = RoleMetrics(
            total=max(fleet.replicas, len(fleet.members)), healthy=len(ready)
        )
        # Per-member averages over ready members
        specs = (
            ("cpu", "cpu_usage", self.fallbacks.cpu, CPU_THRESHOLD),
            ("memory", "memory_usage", self.fallbacks.memory, MEMORY_THRESHOLD),
            (
                "connections",
                "connections",
                self.fallbacks.connections,
                CONNECTION_THRESHOLD,
            ),
            (
                "throughput",
                "throughput",
                self.fallbacks.throughput,
                THROUGHPUT_THRESHOLD,
            ),
        )
        for field_name, attr, fallback, threshold in specs:
            if not ready:
                current = 0.0
            else:
                values = _reported(ready, attr)
                if values:
                    current = _mean(values)
                else:
                    current = fallback
                    fallbacks.add(f"{role.value}.{field_name}")
                    logger.debug(
                        "No member reported metric, using fallback",
                        extra={"role": role.value, "metric": field_name},
                    )
            prev = getattr(previous, field_name).current if previous else None
            setattr(
                metrics,
                field_name,
                MetricValue(
                    current=current,
                    previous=prev if prev is not None else 0.0,
                    trend=compute_trend(current, prev),
                    threshold=threshold,
                ),
            )
        return metrics

    def _query_metrics(
        self, fleets: dict[Role, FleetState | None], fallbacks: set[str]
    ) -> QueryMetrics:
        ready = [m for f in fleets.values() if f is not None for m in f.ready_members]
        if not ready:
            return QueryMetrics()

        metrics = QueryMetrics()
        avg = _reported(ready, "query_latency_avg_ms")
        p95 = _reported(ready, "query_latency_p95_ms")
        if avg or p95:
            metrics.average_latency_ms = _mean(avg) if avg else max(p95)
            metrics.p95_latency_ms = max(p95) if p95 else _mean(avg)
        else:
            metrics.average_latency_ms = self.fallbacks.query_latency_avg_ms
            metrics.p95_latency_ms = self.fallbacks.query_latency_p95_ms
            fallbacks.add("query_latency")

        qps = _reported(ready, "queries_per_second")
        if qps:
            metrics.queries_per_second = sum(qps)
        else:
            metrics.queries_per_second = self.fallbacks.queries_per_second
            fallbacks.add("queries_per_second")

        metrics.slow_queries = int(sum(_reported(ready, "slow_queries")))
        return metrics

    def _prefetch_external(
        self,
        desired: ClusterDesiredState,
        snapshot: MetricSnapshot,
        token: CancellationToken | None,
    ) -> None:
        """Query each distinct custom metric once; failures never abort the cycle"""
        policy = desired.autoscaling
        for role in (Role.PRIMARY, Role.SECONDARY):
            if not policy.manages(role):
                continue
            for metric in policy.group(role).metrics:
                if metric.type is not MetricType.CUSTOM or not metric.query:
                    continue
                if metric.external_key in snapshot.external:
                    continue
                if token is not None:
                    token.raise_if_cancelled("querying external metrics")
                try:
                    value = self.prometheus.query_scalar(
                        metric.query, metric.server_url
                    )
                except MetricsQueryError as e:
                    logger.warning(
                        "Unreadable external metric response",
                        extra={"query": metric.query, "error": str(e)},
                    )
                    continue
                snapshot.external[metric.external_key] = value
                if value.fallback:
                    snapshot.fallbacks.add("custom")

