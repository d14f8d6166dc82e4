"""
Configuration for quorumctl

Settings are read once at startup from QUORUMCTL_* environment variables (a
.env file is loaded by the CLI) and then passed explicitly to every component.
"""

import os
from collections.abc import Mapping
from dataclasses import dataclass, field, replace

from .constants import (
    DEFAULT_BACKOFF_FACTOR,
    DEFAULT_BACKOFF_INITIAL,
    DEFAULT_BACKOFF_JITTER,
    DEFAULT_BACKOFF_MAX_DELAY,
    DEFAULT_BACKOFF_MAX_ELAPSED,
    DEFAULT_BACKOFF_STEPS,
    DEFAULT_DEBOUNCE,
    DEFAULT_FALLBACK_CONFIDENCE_PENALTY,
    DEFAULT_FORMATION_TIMEOUT_SECONDS,
    DEFAULT_PROMETHEUS_TIMEOUT_SECONDS,
    DEFAULT_PROMETHEUS_URL,
    DEFAULT_QUEUE_SIZE,
    DEFAULT_RECONCILE_DEADLINE,
    DEFAULT_RECONCILE_INTERVAL,
    DEFAULT_WATCH_POLL_INTERVAL,
    DEFAULT_WORKERS,
)


@dataclass(frozen=True)
class BackoffSettings:
    """Exponential backoff used by the conflict-safe applier"""

    initial: float = DEFAULT_BACKOFF_INITIAL
    factor: float = DEFAULT_BACKOFF_FACTOR
    jitter: float = DEFAULT_BACKOFF_JITTER
    max_delay: float = DEFAULT_BACKOFF_MAX_DELAY
    steps: int = DEFAULT_BACKOFF_STEPS
    max_elapsed: float = DEFAULT_BACKOFF_MAX_ELAPSED

    def validate(self) -> None:
        if self.initial < 0:
            raise ValueError("backoff initial delay must be >= 0")
        if self.factor < 1.0:
            raise ValueError("backoff factor must be >= 1.0")
        if self.jitter < 0:
            raise ValueError("backoff jitter must be >= 0")
        if self.max_delay < self.initial:
            raise ValueError("backoff max delay must be >= initial delay")
        if self.steps < 1:
            raise ValueError("backoff steps must be >= 1")
        if self.max_elapsed < 0:
            raise ValueError("backoff max elapsed must be >= 0")


@dataclass(frozen=True)
class FallbackValues:
    """
    Substitute values used when a metric source cannot be reached

    These are placeholders, not measurements. Any cycle that uses one records a
    MetricsFallback condition and lowers the confidence of its decision.
    """

    cpu: float = 0.65
    memory: float = 0.70
    connections: float = 45.0
    queries_per_second: float = 18.5
    throughput: float = 850.0
    query_latency_p95_ms: float = 500.0
    query_latency_avg_ms: float = 100.0
    default: float = 0.5

    def for_query(self, query: str) -> float:
        """Pick a fallback for an external query by the pattern of its text"""
        lowered = query.lower()
        if "cpu" in lowered:
            return self.cpu
        if "memory" in lowered:
            return self.memory
        if "connection" in lowered:
            return self.connections
        if "query" in lowered or "qps" in lowered:
            return self.queries_per_second
        if "throughput" in lowered:
            return self.throughput
        return self.default


@dataclass(frozen=True)
class Settings:
    """Typed controller configuration"""

    database_url: str | None = None
    cluster_filter: str | None = None
    dry_run: bool = False
    reconcile_interval: float = DEFAULT_RECONCILE_INTERVAL
    reconcile_deadline: float = DEFAULT_RECONCILE_DEADLINE
    debounce: float = DEFAULT_DEBOUNCE
    watch_poll_interval: float = DEFAULT_WATCH_POLL_INTERVAL
    queue_size: int = DEFAULT_QUEUE_SIZE
    workers: int = DEFAULT_WORKERS
    formation_timeout: float = DEFAULT_FORMATION_TIMEOUT_SECONDS
    prometheus_url: str = DEFAULT_PROMETHEUS_URL
    prometheus_timeout: float = DEFAULT_PROMETHEUS_TIMEOUT_SECONDS
    fallback_confidence_penalty: float = DEFAULT_FALLBACK_CONFIDENCE_PENALTY
    log_json: bool = False
    backoff: BackoffSettings = field(default_factory=BackoffSettings)
    fallbacks: FallbackValues = field(default_factory=FallbackValues)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "Settings":
        """Build settings from QUORUMCTL_* variables, falling back to defaults"""
        env = os.environ if environ is None else environ
        defaults = cls()

        backoff = BackoffSettings(
            initial=_float(env, "QUORUMCTL_BACKOFF_INITIAL", defaults.backoff.initial),
            factor=_float(env, "QUORUMCTL_BACKOFF_FACTOR", defaults.backoff.factor),
            jitter=_float(env, "QUORUMCTL_BACKOFF_JITTER", defaults.backoff.jitter),
            max_delay=_float(
                env, "QUORUMCTL_BACKOFF_MAX_DELAY", defaults.backoff.max_delay
            ),
            steps=_int(env, "QUORUMCTL_BACKOFF_STEPS", defaults.backoff.steps),
            max_elapsed=_float(
                env, "QUORUMCTL_BACKOFF_MAX_ELAPSED", defaults.backoff.max_elapsed
            ),
        )
        fb = defaults.fallbacks
        fallbacks = FallbackValues(
            cpu=_float(env, "QUORUMCTL_FALLBACK_CPU", fb.cpu),
            memory=_float(env, "QUORUMCTL_FALLBACK_MEMORY", fb.memory),
            connections=_float(env, "QUORUMCTL_FALLBACK_CONNECTIONS", fb.connections),
            queries_per_second=_float(
                env, "QUORUMCTL_FALLBACK_QPS", fb.queries_per_second
            ),
            throughput=_float(env, "QUORUMCTL_FALLBACK_THROUGHPUT", fb.throughput),
            query_latency_p95_ms=_float(
                env, "QUORUMCTL_FALLBACK_LATENCY_P95_MS", fb.query_latency_p95_ms
            ),
            query_latency_avg_ms=_float(
                env, "QUORUMCTL_FALLBACK_LATENCY_AVG_MS", fb.query_latency_avg_ms
            ),
            default=_float(env, "QUORUMCTL_FALLBACK_DEFAULT", fb.default),
        )

        settings = cls(
            database_url=env.get("DATABASE_URL") or None,
            cluster_filter=env.get("QUORUMCTL_CLUSTER_FILTER") or None,
            dry_run=_bool(env, "QUORUMCTL_DRY_RUN", defaults.dry_run),
            reconcile_interval=_float(
                env, "QUORUMCTL_RECONCILE_INTERVAL", defaults.reconcile_interval
            ),
            reconcile_deadline=_float(
                env, "QUORUMCTL_RECONCILE_DEADLINE", defaults.reconcile_deadline
            ),
            debounce=_float(env, "QUORUMCTL_DEBOUNCE", defaults.debounce),
            watch_poll_interval=_float(
                env, "QUORUMCTL_WATCH_POLL_INTERVAL", defaults.watch_poll_interval
            ),
            queue_size=_int(env, "QUORUMCTL_QUEUE_SIZE", defaults.queue_size),
            workers=_int(env, "QUORUMCTL_WORKERS", defaults.workers),
            formation_timeout=_float(
                env, "QUORUMCTL_FORMATION_TIMEOUT", defaults.formation_timeout
            ),
            prometheus_url=env.get("QUORUMCTL_PROMETHEUS_URL")
            or defaults.prometheus_url,
            prometheus_timeout=_float(
                env, "QUORUMCTL_PROMETHEUS_TIMEOUT", defaults.prometheus_timeout
            ),
            fallback_confidence_penalty=_float(
                env,
                "QUORUMCTL_FALLBACK_CONFIDENCE_PENALTY",
                defaults.fallback_confidence_penalty,
            ),
            log_json=_bool(env, "QUORUMCTL_LOG_JSON", defaults.log_json),
            backoff=backoff,
            fallbacks=fallbacks,
        )
        settings.validate()
        return settings

    def with_overrides(self, **changes) -> "Settings":
        """Return a copy with CLI overrides applied (None values are ignored)"""
        changes = {k: v for k, v in changes.items() if v is not None}
        updated = replace(self, **changes)
        updated.validate()
        return updated

    def validate(self) -> None:
        """
        Validate settings

        Raises:
            ValueError: If a setting is out of range
        """
        if self.reconcile_interval <= 0:
            raise ValueError("reconcile interval must be > 0")
        if self.reconcile_deadline <= 0:
            raise ValueError("reconcile deadline must be > 0")
        if self.debounce < 0:
            raise ValueError("debounce must be >= 0")
        if self.watch_poll_interval <= 0:
            raise ValueError("watch poll interval must be > 0")
        if self.queue_size < 1:
            raise ValueError("queue size must be >= 1")
        if self.workers < 1:
            raise ValueError("workers must be >= 1")
        if self.formation_timeout <= 0:
            raise ValueError("formation timeout must be > 0")
        if self.prometheus_timeout <= 0:
            raise ValueError("prometheus timeout must be > 0")
        if not 0.0 <= self.fallback_confidence_penalty <= 1.0:
            raise ValueError("fallback confidence penalty must be within [0, 1]")
        self.backoff.validate()


def _float(env: Mapping[str, str], key: str, default: float) -> float:
    raw = env.get(key)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError as e:
        raise ValueError(f"{key} must be a number, got {raw!r}") from e


def _int(env: Mapping[str, str], key: str, default: int) -> int:
    raw = env.get(key)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ValueError(f"{key} must be an integer, got {raw!r}") from e


def _bool(env: Mapping[str, str], key: str, default: bool) -> bool:
    raw = env.get(key)
    if raw is None or raw == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")
