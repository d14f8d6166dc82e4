"""
Data models for quorumctl

Contains dataclasses for desired and observed cluster state, member runtime
templates, formation gates, metric snapshots and scaling decisions. Objects read
from the versioned store are converted with from_dict/to_dict.
"""

import hashlib
import json
from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from .constants import (
    CURRENT_STATUS_VERSION,
    DEFAULT_METRIC_WEIGHT,
    DEFAULT_MIN_HEALTHY_PRIMARIES,
    DEFAULT_MIN_REPLICAS_PER_ZONE,
    ENGINE_CONTAINER,
)


class Phase(Enum):
    """Lifecycle phase of a cluster as derived each reconcile"""

    FORMING = "Forming"
    AWAITING_QUORUM = "AwaitingQuorum"
    READY = "Ready"
    SCALING = "Scaling"
    DEGRADED = "Degraded"


class Role(Enum):
    """Scalable member groups"""

    PRIMARY = "primary"
    SECONDARY = "secondary"


class RoleConstraint(Enum):
    UNCONSTRAINED = "unconstrained"
    PRIMARY = "primary"
    SECONDARY = "secondary"


class BootstrapHint(Enum):
    PREFERRED_BOOTSTRAPPER = "preferred-bootstrapper"
    JOINER = "joiner"


class MetricType(Enum):
    CPU = "cpu"
    MEMORY = "memory"
    CONNECTION_COUNT = "connection_count"
    THROUGHPUT = "throughput"
    QUERY_LATENCY = "query_latency"
    CUSTOM = "custom"


class ScaleAction(Enum):
    NONE = "none"
    UP = "up"
    DOWN = "down"


class Trend(Enum):
    UNKNOWN = "unknown"
    DECREASING = "decreasing"
    STABLE = "stable"
    INCREASING = "increasing"


class ConditionStatus(Enum):
    TRUE = "True"
    FALSE = "False"
    UNKNOWN = "Unknown"


def _dt_to_str(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _dt_from_str(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


@dataclass(frozen=True)
class EnvVar:
    """An environment entry, either a literal value or an indirect reference"""

    name: str
    value: str | None = None
    value_from: str | None = None

    def matches(self, other: "EnvVar") -> bool:
        """Whether other carries the same value (or the same reference)"""
        return (
            self.name == other.name
            and self.value == other.value
            and self.value_from == other.value_from
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"name": self.name}
        if self.value is not None:
            data["value"] = self.value
        if self.value_from is not None:
            data["value_from"] = self.value_from
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "EnvVar":
        return cls(
            name=data["name"],
            value=data.get("value"),
            value_from=data.get("value_from"),
        )


@dataclass(frozen=True)
class ResourceRequirements:
    """Requests and limits keyed by resource name (e.g. cpu, memory)"""

    requests: dict[str, str] = field(default_factory=dict)
    limits: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"requests": dict(self.requests), "limits": dict(self.limits)}

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "ResourceRequirements":
        data = data or {}
        return cls(
            requests={k: str(v) for k, v in (data.get("requests") or {}).items()},
            limits={k: str(v) for k, v in (data.get("limits") or {}).items()},
        )


@dataclass(frozen=True)
class MemberRuntimeTemplate:
    """The rendered per-member execution template of a fleet"""

    image: str
    resources: ResourceRequirements = field(default_factory=ResourceRequirements)
    env: tuple[EnvVar, ...] = ()
    config: dict[str, str] = field(default_factory=dict)
    service_account: str | None = None
    containers: tuple[str, ...] = (ENGINE_CONTAINER,)
    labels: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "image": self.image,
            "resources": self.resources.to_dict(),
            "env": [e.to_dict() for e in self.env],
            "config": dict(self.config),
            "service_account": self.service_account,
            "containers": list(self.containers),
            "labels": dict(self.labels),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "MemberRuntimeTemplate":
        return cls(
            image=data["image"],
            resources=ResourceRequirements.from_dict(data.get("resources")),
            env=tuple(EnvVar.from_dict(e) for e in data.get("env") or []),
            config={k: str(v) for k, v in (data.get("config") or {}).items()},
            service_account=data.get("service_account"),
            containers=tuple(data.get("containers") or (ENGINE_CONTAINER,)),
            labels=dict(data.get("labels") or {}),
        )

    def fingerprint(self) -> str:
        """Stable digest of the canonical template, used to detect drift"""
        canonical = json.dumps(self.to_dict(), sort_keys=True, separators=(",", ":"))
        return hashlib.sha256(canonical.encode()).hexdigest()[:16]


@dataclass(frozen=True)
class Topology:
    primaries: int
    secondaries: int = 0

    @property
    def member_count(self) -> int:
        return self.primaries + self.secondaries

    def replicas_for(self, role: Role) -> int:
        return self.primaries if role is Role.PRIMARY else self.secondaries

    def with_replicas(self, role: Role, replicas: int) -> "Topology":
        if role is Role.PRIMARY:
            return Topology(primaries=replicas, secondaries=self.secondaries)
        return Topology(primaries=self.primaries, secondaries=replicas)

    def to_dict(self) -> dict[str, int]:
        return {"primaries": self.primaries, "secondaries": self.secondaries}

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "Topology | None":
        if not data:
            return None
        return cls(
            primaries=int(data["primaries"]),
            secondaries=int(data.get("secondaries", 0)),
        )


@dataclass(frozen=True)
class QuorumProtection:
    enabled: bool = True
    min_healthy_primaries: int = DEFAULT_MIN_HEALTHY_PRIMARIES


@dataclass(frozen=True)
class ZoneAwareScaling:
    enabled: bool = False
    min_replicas_per_zone: int = DEFAULT_MIN_REPLICAS_PER_ZONE


@dataclass(frozen=True)
class AutoScalingMetric:
    """One weighted signal of a scaling policy"""

    type: MetricType
    target: str
    weight: str | float | None = None
    query: str | None = None
    server_url: str | None = None

    @property
    def parsed_weight(self) -> float:
        """Configured weight; unset or unparsable weights count as 1"""
        if self.weight is None or self.weight == "":
            return DEFAULT_METRIC_WEIGHT
        try:
            return float(self.weight)
        except (TypeError, ValueError):
            return DEFAULT_METRIC_WEIGHT

    @property
    def external_key(self) -> str:
        """Lookup key of a custom metric's value in a MetricSnapshot"""
        return f"{self.server_url or ''}|{self.query or ''}"

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "AutoScalingMetric":
        source = data.get("source") or {}
        return cls(
            type=MetricType(data["type"]),
            target=str(data["target"]),
            weight=data.get("weight"),
            query=data.get("query") or source.get("query"),
            server_url=data.get("server_url") or source.get("server_url"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "target": self.target,
            "weight": self.weight,
            "query": self.query,
            "server_url": self.server_url,
        }


@dataclass(frozen=True)
class GroupScalingPolicy:
    """Autoscaling bounds and signals for one member group"""

    enabled: bool = False
    min_replicas: int = 1
    max_replicas: int = 1
    metrics: tuple[AutoScalingMetric, ...] = ()
    quorum_protection: QuorumProtection | None = None
    allow_quorum_break: bool = False
    zone_aware: ZoneAwareScaling | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "GroupScalingPolicy | None":
        if data is None:
            return None
        quorum = data.get("quorum_protection")
        zone = data.get("zone_aware")
        return cls(
            enabled=bool(data.get("enabled", False)),
            min_replicas=int(data.get("min_replicas", 1)),
            max_replicas=int(data.get("max_replicas", data.get("min_replicas", 1))),
            metrics=tuple(
                AutoScalingMetric.from_dict(m) for m in data.get("metrics") or []
            ),
            quorum_protection=QuorumProtection(**quorum) if quorum else None,
            allow_quorum_break=bool(data.get("allow_quorum_break", False)),
            zone_aware=ZoneAwareScaling(**zone) if zone else None,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "enabled": self.enabled,
            "min_replicas": self.min_replicas,
            "max_replicas": self.max_replicas,
            "metrics": [m.to_dict() for m in self.metrics],
            "quorum_protection": asdict(self.quorum_protection)
            if self.quorum_protection
            else None,
            "allow_quorum_break": self.allow_quorum_break,
            "zone_aware": asdict(self.zone_aware) if self.zone_aware else None,
        }


@dataclass(frozen=True)
class AutoScalingPolicy:
    enabled: bool = False
    primaries: GroupScalingPolicy | None = None
    secondaries: GroupScalingPolicy | None = None

    def group(self, role: Role) -> GroupScalingPolicy | None:
        return self.primaries if role is Role.PRIMARY else self.secondaries

    def manages(self, role: Role) -> bool:
        """Whether the autoscaler owns the replica count of this group"""
        group = self.group(role)
        return self.enabled and group is not None and group.enabled

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "AutoScalingPolicy":
        if not data:
            return cls()
        return cls(
            enabled=bool(data.get("enabled", False)),
            primaries=GroupScalingPolicy.from_dict(data.get("primaries")),
            secondaries=GroupScalingPolicy.from_dict(data.get("secondaries")),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "enabled": self.enabled,
            "primaries": self.primaries.to_dict() if self.primaries else None,
            "secondaries": self.secondaries.to_dict() if self.secondaries else None,
        }


@dataclass(frozen=True)
class ClusterDesiredState:
    """User-declared intent for a cluster; read-only to the controller"""

    name: str
    topology: Topology
    image: str
    resources: ResourceRequirements = field(default_factory=ResourceRequirements)
    service_account: str | None = None
    sidecars: tuple[str, ...] = ()
    env: tuple[EnvVar, ...] = ()
    config: dict[str, str] = field(default_factory=dict)
    member_roles: dict[str, RoleConstraint] = field(default_factory=dict)
    autoscaling: AutoScalingPolicy = field(default_factory=AutoScalingPolicy)
    formation_timeout_seconds: int | None = None
    resource_version: int | None = None

    @classmethod
    def from_dict(
        cls, name: str, data: dict[str, Any], resource_version: int | None = None
    ) -> "ClusterDesiredState":
        """
        Create ClusterDesiredState from a stored body

        Raises:
            ValueError: If a required key is missing
        """
        for key in ("topology", "image"):
            if key not in data:
                raise ValueError(f"Missing required desired state key: {key}")
        return cls(
            name=name,
            topology=Topology.from_dict(data["topology"]),
            image=data["image"],
            resources=ResourceRequirements.from_dict(data.get("resources")),
            service_account=data.get("service_account"),
            sidecars=tuple(data.get("sidecars") or ()),
            env=tuple(EnvVar.from_dict(e) for e in data.get("env") or []),
            config={k: str(v) for k, v in (data.get("config") or {}).items()},
            member_roles={
                member: RoleConstraint(role)
                for member, role in (data.get("member_roles") or {}).items()
            },
            autoscaling=AutoScalingPolicy.from_dict(data.get("autoscaling")),
            formation_timeout_seconds=data.get("formation_timeout_seconds"),
            resource_version=resource_version,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "topology": self.topology.to_dict(),
            "image": self.image,
            "resources": self.resources.to_dict(),
            "service_account": self.service_account,
            "sidecars": list(self.sidecars),
            "env": [e.to_dict() for e in self.env],
            "config": dict(self.config),
            "member_roles": {m: r.value for m, r in self.member_roles.items()},
            "autoscaling": self.autoscaling.to_dict(),
            "formation_timeout_seconds": self.formation_timeout_seconds,
        }


@dataclass(frozen=True)
class MemberStatus:
    """Per-member readiness and signals as reported by the substrate"""

    name: str
    role: Role
    index: int
    address: str | None = None
    host: str | None = None
    ready: bool = False
    has_data: bool = False
    visible_peers: tuple[str, ...] = ()
    quorate: bool = False
    cpu_usage: float | None = None
    memory_usage: float | None = None
    connections: float | None = None
    queries_per_second: float | None = None
    throughput: float | None = None
    query_latency_p95_ms: float | None = None
    query_latency_avg_ms: float | None = None
    slow_queries: int | None = None

    @classmethod
    def from_dict(cls, role: Role, data: dict[str, Any]) -> "MemberStatus":
        return cls(
            name=data["name"],
            role=role,
            index=int(data.get("index", 0)),
            address=data.get("address"),
            host=data.get("host"),
            ready=bool(data.get("ready", False)),
            has_data=bool(data.get("has_data", False)),
            visible_peers=tuple(data.get("visible_peers") or ()),
            quorate=bool(data.get("quorate", False)),
            cpu_usage=data.get("cpu_usage"),
            memory_usage=data.get("memory_usage"),
            connections=data.get("connections"),
            queries_per_second=data.get("queries_per_second"),
            throughput=data.get("throughput"),
            query_latency_p95_ms=data.get("query_latency_p95_ms"),
            query_latency_avg_ms=data.get("query_latency_avg_ms"),
            slow_queries=data.get("slow_queries"),
        )


@dataclass
class FleetState:
    """A replicated-unit group (fleet) as stored in the substrate"""

    name: str
    cluster: str
    role: Role
    replicas: int = 0
    template: MemberRuntimeTemplate | None = None
    zone_targets: dict[str, int] = field(default_factory=dict)
    members: tuple[MemberStatus, ...] = ()
    resource_version: int | None = None

    @classmethod
    def from_dict(
        cls, name: str, data: dict[str, Any], resource_version: int | None = None
    ) -> "FleetState":
        role = Role(data["role"])
        template = data.get("template")
        status = data.get("status") or {}
        return cls(
            name=name,
            cluster=data["cluster"],
            role=role,
            replicas=int(data.get("replicas", 0)),
            template=MemberRuntimeTemplate.from_dict(template) if template else None,
            zone_targets={
                k: int(v) for k, v in (data.get("zone_targets") or {}).items()
            },
            members=tuple(
                MemberStatus.from_dict(role, m) for m in status.get("members") or []
            ),
            resource_version=resource_version,
        )

    @property
    def ready_members(self) -> list[MemberStatus]:
        return [m for m in self.members if m.ready]


@dataclass(frozen=True)
class FormationGate:
    """Quorum gate and bootstrap hints for one reconcile; never persisted"""

    minimum_members: int
    first_formation: bool
    hints: dict[str, BootstrapHint] = field(default_factory=dict)
    peers: tuple[str, ...] = ()

    @property
    def preferred_bootstrapper(self) -> str | None:
        for member, hint in self.hints.items():
            if hint is BootstrapHint.PREFERRED_BOOTSTRAPPER:
                return member
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "minimum_members": self.minimum_members,
            "first_formation": self.first_formation,
            "hints": {m: h.value for m, h in self.hints.items()},
            "peers": list(self.peers),
        }


@dataclass(frozen=True)
class FormationSnapshot:
    """Readiness of a fleet at the moment a template change is classified"""

    ready_members: int
    total_members: int

    @property
    def stable(self) -> bool:
        """All members are currently healthy"""
        return self.ready_members >= self.total_members

    @classmethod
    def of(cls, fleet: "FleetState | None") -> "FormationSnapshot":
        if fleet is None:
            return cls(ready_members=0, total_members=0)
        return cls(
            ready_members=len(fleet.ready_members),
            total_members=max(fleet.replicas, len(fleet.members)),
        )


@dataclass
class Condition:
    """Structured diagnostic written into observed state"""

    type: str
    status: ConditionStatus
    reason: str
    message: str
    last_transition_time: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "status": self.status.value,
            "reason": self.reason,
            "message": self.message,
            "last_transition_time": _dt_to_str(self.last_transition_time),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Condition":
        return cls(
            type=data["type"],
            status=ConditionStatus(data["status"]),
            reason=data.get("reason", ""),
            message=data.get("message", ""),
            last_transition_time=_dt_from_str(data.get("last_transition_time")),
        )


@dataclass(frozen=True)
class MetricValue:
    current: float = 0.0
    previous: float = 0.0
    trend: Trend = Trend.UNKNOWN
    threshold: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "current": self.current,
            "previous": self.previous,
            "trend": self.trend.value,
            "threshold": self.threshold,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "MetricValue":
        if not data:
            return cls()
        return cls(
            current=float(data.get("current", 0.0)),
            previous=float(data.get("previous", 0.0)),
            trend=Trend(data.get("trend", Trend.UNKNOWN.value)),
            threshold=float(data.get("threshold", 0.0)),
        )


@dataclass
class RoleMetrics:
    total: int = 0
    healthy: int = 0
    cpu: MetricValue = field(default_factory=MetricValue)
    memory: MetricValue = field(default_factory=MetricValue)
    connections: MetricValue = field(default_factory=MetricValue)
    throughput: MetricValue = field(default_factory=MetricValue)

    def to_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "healthy": self.healthy,
            "cpu": self.cpu.to_dict(),
            "memory": self.memory.to_dict(),
            "connections": self.connections.to_dict(),
            "throughput": self.throughput.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "RoleMetrics":
        data = data or {}
        return cls(
            total=int(data.get("total", 0)),
            healthy=int(data.get("healthy", 0)),
            cpu=MetricValue.from_dict(data.get("cpu")),
            memory=MetricValue.from_dict(data.get("memory")),
            connections=MetricValue.from_dict(data.get("connections")),
            throughput=MetricValue.from_dict(data.get("throughput")),
        )


@dataclass
class QueryMetrics:
    average_latency_ms: float = 0.0
    p95_latency_ms: float = 0.0
    queries_per_second: float = 0.0
    slow_queries: int = 0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "QueryMetrics":
        return cls(**(data or {}))


@dataclass(frozen=True)
class ExternalMetric:
    """A scalar read from the external time-series source"""

    query: str
    server_url: str
    value: float
    fallback: bool = False


@dataclass
class MetricSnapshot:
    """Per-role metric aggregate produced fresh each autoscaling cycle"""

    primaries: RoleMetrics = field(default_factory=RoleMetrics)
    secondaries: RoleMetrics = field(default_factory=RoleMetrics)
    query: QueryMetrics = field(default_factory=QueryMetrics)
    external: dict[str, ExternalMetric] = field(default_factory=dict)
    fallbacks: set[str] = field(default_factory=set)
    collected_at: datetime | None = None

    def for_role(self, role: Role) -> RoleMetrics:
        return self.primaries if role is Role.PRIMARY else self.secondaries

    def to_dict(self) -> dict[str, Any]:
        return {
            "primaries": self.primaries.to_dict(),
            "secondaries": self.secondaries.to_dict(),
            "query": self.query.to_dict(),
            "external": {k: asdict(v) for k, v in self.external.items()},
            "fallbacks": sorted(self.fallbacks),
            "collected_at": _dt_to_str(self.collected_at),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "MetricSnapshot | None":
        if not data:
            return None
        return cls(
            primaries=RoleMetrics.from_dict(data.get("primaries")),
            secondaries=RoleMetrics.from_dict(data.get("secondaries")),
            query=QueryMetrics.from_dict(data.get("query")),
            external={
                k: ExternalMetric(**v) for k, v in (data.get("external") or {}).items()
            },
            fallbacks=set(data.get("fallbacks") or ()),
            collected_at=_dt_from_str(data.get("collected_at")),
        )


@dataclass
class ScalingDecision:
    """Outcome of one autoscaling evaluation for a member group"""

    action: ScaleAction
    target_replicas: int
    reason: str = ""
    confidence: float = 0.0
    group: Role | None = None
    current_replicas: int = 0
    applied: bool = False
    zone_targets: dict[str, int] = field(default_factory=dict)
    suppressed: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "action": self.action.value,
            "target_replicas": self.target_replicas,
            "reason": self.reason,
            "confidence": self.confidence,
            "group": self.group.value if self.group else None,
            "current_replicas": self.current_replicas,
            "applied": self.applied,
            "zone_targets": dict(self.zone_targets),
            "suppressed": self.suppressed,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ScalingDecision":
        group = data.get("group")
        return cls(
            action=ScaleAction(data["action"]),
            target_replicas=int(data["target_replicas"]),
            reason=data.get("reason", ""),
            confidence=float(data.get("confidence", 0.0)),
            group=Role(group) if group else None,
            current_replicas=int(data.get("current_replicas", 0)),
            applied=bool(data.get("applied", False)),
            zone_targets=dict(data.get("zone_targets") or {}),
            suppressed=bool(data.get("suppressed", False)),
        )


@dataclass(frozen=True)
class MemberHealth:
    name: str
    role: Role
    ready: bool
    quorate: bool = False
    visible_peers: int = 0
    has_data: bool = False
    zone: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["role"] = self.role.value
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "MemberHealth":
        return cls(**{**data, "role": Role(data["role"])})


@dataclass
class ClusterObservedState:
    """Observed state of a cluster; written wholesale by the reconciler only"""

    cluster: str
    phase: Phase
    members: list[MemberHealth] = field(default_factory=list)
    template_fingerprint: dict[str, str] = field(default_factory=dict)
    formation_gate: dict[str, Any] | None = None
    formation_started_at: datetime | None = None
    formed_once: bool = False
    desired_topology: Topology | None = None
    applied_topology: Topology | None = None
    last_scaling: dict[str, ScalingDecision] = field(default_factory=dict)
    metrics: MetricSnapshot | None = None
    conditions: list[Condition] = field(default_factory=list)
    message: str = ""
    observed_at: datetime | None = None
    version: int = CURRENT_STATUS_VERSION

    def condition(self, condition_type: str) -> Condition | None:
        for condition in self.conditions:
            if condition.type == condition_type:
                return condition
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": self.version,
            "cluster": self.cluster,
            "phase": self.phase.value,
            "members": [m.to_dict() for m in self.members],
            "template_fingerprint": dict(self.template_fingerprint),
            "formation_gate": self.formation_gate,
            "formation_started_at": _dt_to_str(self.formation_started_at),
            "formed_once": self.formed_once,
            "desired_topology": self.desired_topology.to_dict()
            if self.desired_topology
            else None,
            "applied_topology": self.applied_topology.to_dict()
            if self.applied_topology
            else None,
            "last_scaling": {g: d.to_dict() for g, d in self.last_scaling.items()},
            "metrics": self.metrics.to_dict() if self.metrics else None,
            "conditions": [c.to_dict() for c in self.conditions],
            "message": self.message,
            "observed_at": _dt_to_str(self.observed_at),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ClusterObservedState":
        return cls(
            cluster=data["cluster"],
            phase=Phase(data["phase"]),
            members=[MemberHealth.from_dict(m) for m in data.get("members") or []],
            template_fingerprint=dict(data.get("template_fingerprint") or {}),
            formation_gate=data.get("formation_gate"),
            formation_started_at=_dt_from_str(data.get("formation_started_at")),
            formed_once=bool(data.get("formed_once", False)),
            desired_topology=Topology.from_dict(data.get("desired_topology")),
            applied_topology=Topology.from_dict(data.get("applied_topology")),
            last_scaling={
                g: ScalingDecision.from_dict(d)
                for g, d in (data.get("last_scaling") or {}).items()
            },
            metrics=MetricSnapshot.from_dict(data.get("metrics")),
            conditions=[Condition.from_dict(c) for c in data.get("conditions") or []],
            message=data.get("message", ""),
            observed_at=_dt_from_str(data.get("observed_at")),
            version=int(data.get("version", CURRENT_STATUS_VERSION)),
        )


@dataclass
class Action:
    """A write the reconciler performed or, in dry-run mode, would perform"""

    kind: str
    name: str
    description: str
    reason: str = ""
    changes: dict[str, Any] = field(default_factory=dict)

    def __str__(self) -> str:
        return f"{self.kind}/{self.name}: {self.description}"
