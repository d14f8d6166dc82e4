"""
Per-cluster reconciliation for quorumctl

One reconcile reads the latest desired and observed state of a cluster and
converges toward it without assuming anything about the previous run:

1. Formation gate - sized from the member list and whether data exists
2. Render - desired member template per fleet, embedding the gate
3. Classify - decide what of the template change is safe to push now
4. Apply - write fleets through the conflict-safe applier
5. Evaluate - derive the phase from member readiness and visibility
6. Autoscale - collect metrics and resize, quorum protection first
7. Status - write observed state wholesale and record the audit trail

The cancellation token is checked between steps. Writes already committed are
never rolled back; the next reconcile re-evaluates from scratch.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from . import conditions as cond
from .applier import ApplyOutcome, ApplyResult, ConflictSafeApplier
from .cancellation import CancellationToken
from .classifier import Classification, TemplateClassifier
from .collector import MetricsCollector
from .constants import (
    CURRENT_STATUS_VERSION,
    KIND_CLUSTER,
    KIND_CLUSTER_STATUS,
    KIND_FLEET,
)
from .context import ControllerContext
from .fleet import (
    expected_members,
    fleet_name,
    host_zones,
    load_fleets,
    new_fleet_body,
    zone_distribution,
)
from .log import get_logger, reconcile_context
from .models import (
    Action,
    ClusterDesiredState,
    ClusterObservedState,
    Condition,
    ConditionStatus,
    FleetState,
    FormationSnapshot,
    MemberHealth,
    MemberRuntimeTemplate,
    MemberStatus,
    MetricSnapshot,
    Phase,
    Role,
    ScaleAction,
    ScalingDecision,
    Topology,
)
from .prometheus import PrometheusClient
from .quorum import FormationStatus, QuorumGuard
from .render import render_template
from .scaling import ScaleDecisionEngine, ScalingContext, build_scalers

logger = get_logger(__name__)

AUTOSCALING_PHASES = (Phase.READY, Phase.SCALING)


@dataclass
class ReconcileResult:
    cluster: str
    phase: Phase
    status: ClusterObservedState
    actions: list[Action] = field(default_factory=list)
    dry_run: bool = False


class Reconciler:
    """
    Reconciles one cluster at a time

    A Reconciler holds no per-cluster state, so one instance can serve many
    clusters concurrently from worker threads.
    """

    def __init__(self, ctx: ControllerContext):
        settings = ctx.settings
        self.ctx = ctx
        self.store = ctx.store
        self.guard = QuorumGuard()
        self.classifier = TemplateClassifier()
        self.applier = ConflictSafeApplier(
            ctx.store, settings.backoff, sleep=ctx.sleep, rng=ctx.rng
        )
        prometheus = PrometheusClient(
            http=ctx.http,
            default_url=settings.prometheus_url,
            fallbacks=settings.fallbacks,
            timeout=settings.prometheus_timeout,
            now=ctx.now,
        )
        self.collector = MetricsCollector(prometheus, settings.fallbacks, now=ctx.now)
        self.scalers = build_scalers(
            ScaleDecisionEngine(fallback_penalty=settings.fallback_confidence_penalty)
        )

    def reconcile(
        self,
        name: str,
        dry_run: bool = False,
        token: CancellationToken | None = None,
    ) -> ReconcileResult | None:
        """
        Reconcile one cluster

        Args:
            name: Cluster name
            dry_run: Compute every write but perform none of them
            token: Cancellation token of the surrounding reconcile

        Returns:
            ReconcileResult, or None if the cluster no longer exists

        Raises:
            TransientReconcileError: If a write could not be committed or the
                token was cancelled; the next reconcile retries
        """
        token = token or CancellationToken()
        with reconcile_context(name):
            return self._reconcile(name, dry_run, token)

    def _reconcile(
        self, name: str, dry_run: bool, token: CancellationToken
    ) -> ReconcileResult | None:
        now = self.ctx.now()
        obj = self.store.get(KIND_CLUSTER, name)
        if obj is None:
            logger.info("Cluster no longer exists, skipping")
            return None
        desired = ClusterDesiredState.from_dict(name, obj.body, obj.resource_version)
        previous = self._load_previous(name)
        fleets = load_fleets(self.store, name)
        actions: list[Action] = []

        # 1. Formation gate, computed before anything is rendered from it
        token.raise_if_cancelled("formation gate")
        topology = self._effective_topology(desired, previous, fleets)
        expected = expected_members(name, topology)
        members = [m for f in fleets.values() if f is not None for m in f.members]
        has_data = self.guard.has_existing_data(members, previous)
        gate = self.guard.compute_gate(expected, has_data)

        # 2-4. Render, classify and apply each fleet
        formation = self._formation_snapshot(fleets, topology)
        fingerprints: dict[str, str] = {}
        for role in Role:
            token.raise_if_cancelled(f"applying {role.value} fleet")
            template = render_template(desired, role, gate)
            applied = self._apply_fleet(
                name,
                role,
                template,
                topology.replicas_for(role),
                formation,
                dry_run,
                token,
                actions,
            )
            if applied is not None:
                fingerprints[role.value] = applied.fingerprint()

        # 5. Phase
        token.raise_if_cancelled("evaluating formation")
        resizing = self._resizing(fleets, topology, previous)
        timeout = (
            desired.formation_timeout_seconds or self.ctx.settings.formation_timeout
        )
        status = self.guard.evaluate(
            [member for member, _address in expected],
            members,
            gate,
            previous,
            resizing,
            now,
            timeout,
        )
        phase = status.phase

        conditions = list(previous.conditions) if previous else []
        last_scaling = dict(previous.last_scaling) if previous else {}
        metrics = previous.metrics if previous else None

        # 6. Autoscaling, only on a formed and healthy cluster
        if desired.autoscaling.enabled and phase in AUTOSCALING_PHASES:
            token.raise_if_cancelled("collecting metrics")
            metrics = self.collector.collect(
                desired, fleets, previous.metrics if previous else None, token
            )
            topology, decisions = self._autoscale(
                desired, fleets, topology, metrics, dry_run, token, actions
            )
            for role, decision in decisions.items():
                last_scaling[role.value] = decision
                if decision.applied:
                    phase = Phase.SCALING
            self._record_scaling_conditions(
                desired, decisions, metrics, conditions, now
            )
        else:
            why = (
                f"Autoscaling inactive in phase {phase.value}"
                if desired.autoscaling.enabled
                else "Autoscaling disabled"
            )
            for condition_type in (cond.QUORUM_PROTECTION, cond.METRICS_FALLBACK):
                cond.mark_inactive(
                    conditions,
                    condition_type,
                    cond.REASON_AUTOSCALING_INACTIVE,
                    why,
                    now,
                )

        # 7. Observed state
        self.guard.record_conditions(status, conditions, now)
        ready_status, ready_reason = cond.phase_to_ready_condition(phase)
        cond.set_condition(
            conditions, cond.READY, ready_status, ready_reason, status.message, now
        )

        observed = ClusterObservedState(
            cluster=name,
            phase=phase,
            members=self._member_health(members),
            template_fingerprint=fingerprints,
            formation_gate=gate.to_dict(),
            formation_started_at=status.formation_started_at,
            formed_once=status.formed,
            desired_topology=desired.topology,
            applied_topology=topology,
            last_scaling=last_scaling,
            metrics=metrics,
            conditions=conditions,
            message=status.message,
            observed_at=now,
            version=CURRENT_STATUS_VERSION,
        )
        token.raise_if_cancelled("writing observed state")
        phase_changed = previous is None or previous.phase is not phase
        self._write_status(observed, status, phase_changed, dry_run, token, actions)

        if not dry_run:
            self._audit(name, actions)

        if phase_changed:
            logger.info(
                "Cluster phase changed",
                extra={
                    "from": previous.phase.value if previous else None,
                    "to": phase.value,
                    "reason": status.message,
                },
            )
        return ReconcileResult(
            cluster=name,
            phase=phase,
            status=observed,
            actions=actions,
            dry_run=dry_run,
        )

    def _load_previous(self, name: str) -> ClusterObservedState | None:
        obj = self.store.get(KIND_CLUSTER_STATUS, name)
        if obj is None:
            return None
        if obj.body.get("version") != CURRENT_STATUS_VERSION:
            logger.warning(
                "Observed state version incompatible, starting fresh",
                extra={
                    "existing_version": obj.body.get("version"),
                    "expected_version": CURRENT_STATUS_VERSION,
                },
            )
            return None
        return ClusterObservedState.from_dict(obj.body)

    def _effective_topology(
        self,
        desired: ClusterDesiredState,
        previous: ClusterObservedState | None,
        fleets: dict[Role, FleetState | None],
    ) -> Topology:
        """
        Replica counts to converge to this cycle

        An autoscaled group keeps the size the autoscaler last gave it until the
        user changes the declared topology.
        """
        topology = desired.topology
        user_unchanged = (
            previous is not None and previous.desired_topology == desired.topology
        )
        for role in Role:
            fleet = fleets.get(role)
            if desired.autoscaling.manages(role) and user_unchanged and fleet:
                topology = topology.with_replicas(role, fleet.replicas)
        return topology

    def _formation_snapshot(
        self, fleets: dict[Role, FleetState | None], topology: Topology
    ) -> FormationSnapshot:
        ready = 0
        total = 0
        for fleet in fleets.values():
            snapshot = FormationSnapshot.of(fleet)
            ready += snapshot.ready_members
            total += snapshot.total_members
        return FormationSnapshot(
            ready_members=ready, total_members=max(total, topology.member_count)
        )

    def _resizing(
        self,
        fleets: dict[Role, FleetState | None],
        topology: Topology,
        previous: ClusterObservedState | None,
    ) -> bool:
        if (
            previous is not None
            and previous.applied_topology is not None
            and previous.applied_topology != topology
        ):
            return True
        for role in Role:
            fleet = fleets.get(role)
            present = len(fleet.members) if fleet else 0
            if present != topology.replicas_for(role):
                return True
        return False

    def _apply_fleet(
        self,
        cluster: str,
        role: Role,
        desired_template: MemberRuntimeTemplate,
        replicas: int,
        formation: FormationSnapshot,
        dry_run: bool,
        token: CancellationToken,
        actions: list[Action],
    ) -> MemberRuntimeTemplate | None:
        """Push replicas and whatever part of the template is safe to push now"""
        name = fleet_name(cluster, role)
        seen: dict[str, Any] = {}

        def mutate(body: dict[str, Any] | None) -> dict[str, Any] | None:
            body = body or new_fleet_body(cluster, role)
            current = body.get("template")
            current_template = (
                MemberRuntimeTemplate.from_dict(current) if current else None
            )
            classification = self.classifier.classify(
                current_template, desired_template, formation
            )
            seen["classification"] = classification
            seen["current"] = current_template
            seen["replicas_from"] = body.get("replicas", 0)
            if classification.apply:
                body["template"] = classification.template.to_dict()
            body["replicas"] = replicas
            return body

        result = self.applier.apply(KIND_FLEET, name, mutate, dry_run, token)
        classification: Classification = seen["classification"]
        current_template: MemberRuntimeTemplate | None = seen["current"]

        if classification.deferred:
            logger.info(
                "Template changes deferred",
                extra={
                    "fleet": name,
                    "deferred": list(classification.deferred),
                    "reason": classification.reason,
                },
            )

        if result.outcome is ApplyOutcome.UNCHANGED:
            return current_template

        changes: dict[str, Any] = {}
        if seen["replicas_from"] != replicas:
            changes["replicas"] = {"from": seen["replicas_from"], "to": replicas}
        if classification.apply:
            changes["template"] = {
                "critical": list(classification.critical),
                "deferred": list(classification.deferred),
                "fingerprint": classification.template.fingerprint(),
            }
        description = self._describe_fleet_change(result, changes)
        actions.append(
            Action(
                kind=KIND_FLEET,
                name=name,
                description=description,
                reason=classification.reason,
                changes=changes,
            )
        )
        if classification.apply:
            return classification.template
        return current_template

    def _describe_fleet_change(
        self, result: ApplyResult, changes: dict[str, Any]
    ) -> str:
        # A dry run carries the object as read, so None means it would be created
        creating = result.outcome is ApplyOutcome.CREATED or (
            result.outcome is ApplyOutcome.DRY_RUN and result.obj is None
        )
        if creating:
            verb = "create fleet"
        else:
            verb = "update fleet"
        parts = []
        if "replicas" in changes:
            parts.append(
                f"replicas {changes['replicas']['from']} -> {changes['replicas']['to']}"
            )
        if "template" in changes:
            parts.append(f"template {changes['template']['fingerprint']}")
        return f"{verb}: {', '.join(parts)}" if parts else verb

    def _autoscale(
        self,
        desired: ClusterDesiredState,
        fleets: dict[Role, FleetState | None],
        topology: Topology,
        snapshot: MetricSnapshot,
        dry_run: bool,
        token: CancellationToken,
        actions: list[Action],
    ) -> tuple[Topology, dict[Role, ScalingDecision]]:
        """Run each autoscaled group's scaler; primaries are always evaluated first"""
        policy = desired.autoscaling
        decisions: dict[Role, ScalingDecision] = {}
        for role in (Role.PRIMARY, Role.SECONDARY):
            if not policy.manages(role):
                continue
            group = policy.group(role)
            other = Role.SECONDARY if role is Role.PRIMARY else Role.PRIMARY
            zone_counts: dict[str, int] = {}
            if group.zone_aware is not None and group.zone_aware.enabled:
                zone_counts = zone_distribution(self.store, fleets.get(role))

            decision = self.scalers[role].scale(
                ScalingContext(
                    cluster=desired.name,
                    policy=group,
                    snapshot=snapshot,
                    current_replicas=topology.replicas_for(role),
                    other_replicas=topology.replicas_for(other),
                    zone_counts=zone_counts,
                )
            )
            decisions[role] = decision
            if decision.action is ScaleAction.NONE:
                continue

            token.raise_if_cancelled(f"scaling {role.value}")
            target = decision.target_replicas
            zone_targets = decision.zone_targets

            def mutate(body, target=target, zone_targets=zone_targets, role=role):
                body = body or new_fleet_body(desired.name, role)
                body["replicas"] = target
                if zone_targets:
                    body["zone_targets"] = dict(zone_targets)
                return body

            name = fleet_name(desired.name, role)
            result = self.applier.apply(KIND_FLEET, name, mutate, dry_run, token)
            decision.applied = result.changed
            if result.changed:
                topology = topology.with_replicas(role, target)
            actions.append(
                Action(
                    kind=KIND_FLEET,
                    name=name,
                    description=(
                        f"scale {decision.action.value} "
                        f"{decision.current_replicas} -> {target}"
                    ),
                    reason=decision.reason,
                    changes={
                        "replicas": {"from": decision.current_replicas, "to": target},
                        "zone_targets": dict(zone_targets),
                        "confidence": decision.confidence,
                    },
                )
            )
        return topology, decisions

    def _record_scaling_conditions(
        self,
        desired: ClusterDesiredState,
        decisions: dict[Role, ScalingDecision],
        snapshot: MetricSnapshot,
        conditions: list[Condition],
        now: datetime,
    ) -> None:
        primaries = desired.autoscaling.group(Role.PRIMARY)
        if (
            desired.autoscaling.manages(Role.PRIMARY)
            and primaries.quorum_protection is not None
            and primaries.quorum_protection.enabled
        ):
            decision = decisions.get(Role.PRIMARY)
            if decision is not None and decision.suppressed:
                cond.set_condition(
                    conditions,
                    cond.QUORUM_PROTECTION,
                    ConditionStatus.TRUE,
                    cond.REASON_INSUFFICIENT_HEALTHY_PRIMARIES,
                    decision.reason,
                    now,
                )
            else:
                cond.set_condition(
                    conditions,
                    cond.QUORUM_PROTECTION,
                    ConditionStatus.FALSE,
                    cond.REASON_QUORUM_HEALTHY,
                    f"{snapshot.primaries.healthy} healthy primaries",
                    now,
                )
        else:
            cond.mark_inactive(
                conditions,
                cond.QUORUM_PROTECTION,
                cond.REASON_PROTECTION_DISABLED,
                "Quorum protection not configured for primaries",
                now,
            )

        if snapshot.fallbacks:
            cond.set_condition(
                conditions,
                cond.METRICS_FALLBACK,
                ConditionStatus.TRUE,
                cond.REASON_FALLBACK_VALUES,
                "Fallback values used for: " + ", ".join(sorted(snapshot.fallbacks)),
                now,
            )
        else:
            cond.set_condition(
                conditions,
                cond.METRICS_FALLBACK,
                ConditionStatus.FALSE,
                cond.REASON_LIVE_VALUES,
                "All metrics measured",
                now,
            )

    def _member_health(self, members: list[MemberStatus]) -> list[MemberHealth]:
        zones = host_zones(self.store, {m.host for m in members if m.host})
        return [
            MemberHealth(
                name=m.name,
                role=m.role,
                ready=m.ready,
                quorate=m.quorate,
                visible_peers=len(m.visible_peers),
                has_data=m.has_data,
                zone=zones.get(m.host) if m.host else None,
            )
            for m in sorted(members, key=lambda m: (m.role.value, m.index))
        ]

    def _write_status(
        self,
        observed: ClusterObservedState,
        status: FormationStatus,
        phase_changed: bool,
        dry_run: bool,
        token: CancellationToken,
        actions: list[Action],
    ) -> None:
        """Overwrite observed state; only phase changes enter the audit trail"""
        body = observed.to_dict()
        result = self.applier.apply(
            KIND_CLUSTER_STATUS, observed.cluster, lambda _current: body, dry_run, token
        )
        if result.outcome is ApplyOutcome.UNCHANGED or not phase_changed:
            return
        actions.append(
            Action(
                kind=KIND_CLUSTER_STATUS,
                name=observed.cluster,
                description=f"phase {observed.phase.value}",
                reason=status.message,
                changes={"phase": observed.phase.value},
            )
        )

    def _audit(self, cluster: str, actions: list[Action]) -> None:
        """Record committed writes in the audit table"""
        for action in actions:
            try:
                self.store.log_action(
                    cluster=cluster,
                    kind=action.kind,
                    name=action.name,
                    description=action.description,
                    decision_ctx={"reason": action.reason, "changes": action.changes},
                    executed=True,
                )
            except Exception as e:
                # An audit failure must not undo or fail committed writes
                logger.error(
                    "Failed to log action to audit table",
                    extra={"action": str(action), "audit_error": str(e)},
                    exc_info=True,
                )
