"""
Bootstrap and quorum guard for quorumctl

Sizes the formation gate handed to members at startup, derives the formation
phase from member readiness and visibility, and detects split-brain. The guard
never repairs anything: a split-brain or a formation timeout is reported for an
operator, because forcing a bootstrap could itself split the cluster.
"""

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from . import conditions as cond
from .constants import RESTART_MINIMUM_MEMBERS, SPLIT_BRAIN_VIEW_SIMILARITY
from .log import get_logger
from .models import (
    BootstrapHint,
    ClusterObservedState,
    Condition,
    ConditionStatus,
    FormationGate,
    MemberStatus,
    Phase,
)

logger = get_logger(__name__)


@dataclass(frozen=True)
class MemberView:
    """What one ready member reports it can see of the cluster"""

    member: str
    visible: frozenset[str]
    quorate: bool

    @property
    def membership(self) -> frozenset[str]:
        return self.visible | {self.member}


@dataclass
class SplitBrainAnalysis:
    is_split_brain: bool = False
    groups: list[list[str]] = field(default_factory=list)
    quorate_groups: list[list[str]] = field(default_factory=list)
    message: str = ""


@dataclass
class FormationStatus:
    """The guard's verdict for one reconcile"""

    phase: Phase
    message: str
    formed: bool
    formation_started_at: datetime | None
    expected_members: int
    ready_members: int
    mutually_visible: int
    split_brain: SplitBrainAnalysis = field(default_factory=SplitBrainAnalysis)
    timed_out: bool = False
    visibility: dict[str, list[str]] = field(default_factory=dict)


class QuorumGuard:
    """
    Formation state machine and split-brain guard

    Phases move Forming -> AwaitingQuorum -> Ready on first formation and
    Ready -> Scaling -> Ready on resize. Any phase can move to Degraded on
    split-brain or formation timeout, and out of it again once the condition
    clears; no phase is terminal.
    """

    def __init__(self, similarity: float = SPLIT_BRAIN_VIEW_SIMILARITY):
        self.similarity = similarity

    def has_existing_data(
        self,
        members: Iterable[MemberStatus],
        previous: ClusterObservedState | None,
    ) -> bool:
        """A cluster that formed before, or has data on any member, is restarting"""
        if previous is not None and previous.formed_once:
            return True
        return any(m.has_data for m in members)

    def compute_gate(
        self, members: list[tuple[str, str]], has_existing_data: bool
    ) -> FormationGate:
        """
        Compute the formation gate for an ordered member list

        Args:
            members: (name, stable address) pairs, preferred bootstrapper first
            has_existing_data: Whether this is a restart rather than a first
                formation

        Returns:
            FormationGate requiring every member on first formation, and a
            relaxed minimum on restart so members can rejoin one at a time
        """
        count = len(members)
        first_formation = not has_existing_data
        if count == 0:
            return FormationGate(minimum_members=0, first_formation=first_formation)

        hints = {
            name: (
                BootstrapHint.PREFERRED_BOOTSTRAPPER
                if index == 0
                else BootstrapHint.JOINER
            )
            for index, (name, _address) in enumerate(members)
        }
        if first_formation:
            minimum = count
        else:
            minimum = min(RESTART_MINIMUM_MEMBERS, count)

        gate = FormationGate(
            minimum_members=minimum,
            first_formation=first_formation,
            hints=hints,
            peers=tuple(address for _name, address in members),
        )
        logger.debug(
            "Formation gate computed",
            extra={
                "members": count,
                "minimum_members": minimum,
                "first_formation": first_formation,
                "preferred_bootstrapper": gate.preferred_bootstrapper,
            },
        )
        return gate

    def detect_split_brain(
        self, views: list[MemberView], expected_members: int
    ) -> SplitBrainAnalysis:
        """
        Group member views by what they can see and look for disjoint quorums

        Views join a group when their memberships overlap by at least the
        configured similarity (intersection over union). Split-brain means at
        least two groups claim quorum and share no member.
        """
        analysis = SplitBrainAnalysis()
        if expected_members <= 1 or len(views) < 2:
            return analysis

        groups: list[list[MemberView]] = []
        for view in views:
            for group in groups:
                if self._similar(view, group[0]):
                    group.append(view)
                    break
            else:
                groups.append([view])

        analysis.groups = [sorted(v.member for v in group) for group in groups]
        quorate = [group for group in groups if any(v.quorate for v in group)]
        analysis.quorate_groups = [sorted(v.member for v in group) for group in quorate]

        memberships = [
            frozenset().union(*(v.membership for v in group)) for group in quorate
        ]
        for i in range(len(memberships)):
            for j in range(i + 1, len(memberships)):
                if memberships[i].isdisjoint(memberships[j]):
                    analysis.is_split_brain = True

        if analysis.is_split_brain:
            described = " | ".join(
                "[" + ", ".join(group) + "]" for group in analysis.quorate_groups
            )
            analysis.message = (
                f"Split-brain detected: {len(quorate)} quorate groups with "
                f"disjoint membership: {described}. Operator action required; "
                f"groups are never merged automatically."
            )
            logger.warning(
                "Split-brain detected",
                extra={
                    "groups": analysis.groups,
                    "quorate_groups": analysis.quorate_groups,
                },
            )
        return analysis

    def _similar(self, a: MemberView, b: MemberView) -> bool:
        union = a.membership | b.membership
        if not union:
            return True
        return len(a.membership & b.membership) / len(union) >= self.similarity

    def evaluate(
        self,
        expected: list[str],
        members: list[MemberStatus],
        gate: FormationGate,
        previous: ClusterObservedState | None,
        resizing: bool,
        now: datetime,
        timeout_seconds: float,
    ) -> FormationStatus:
        """
        Derive the formation phase for this reconcile

        Args:
            expected: Names of the members the cluster should have
            members: Member status as reported by the substrate
            gate: The gate computed earlier in this reconcile
            previous: Observed state written by the previous reconcile, if any
            resizing: Whether a resize is in flight
            now: Current time
            timeout_seconds: Bound on how long formation may take
        """
        by_name = {m.name: m for m in members}
        ready = [by_name[n] for n in expected if n in by_name and by_name[n].ready]
        ready_names = {m.name for m in ready}
        formed_before = self.has_existing_data(members, previous)

        views = [
            MemberView(m.name, frozenset(m.visible_peers), m.quorate) for m in ready
        ]
        split = self.detect_split_brain(views, len(expected))
        quorate = any(m.quorate for m in ready)
        mutually_visible = self._largest_mutual_visibility(ready, ready_names)
        visibility = {
            name: sorted(by_name[name].visible_peers) if name in by_name else []
            for name in expected
        }

        formed = formed_before
        if split.is_split_brain:
            phase = Phase.DEGRADED
            message = split.message
        elif formed_before:
            if quorate:
                phase = Phase.SCALING if resizing else Phase.READY
                message = f"{len(ready)}/{len(expected)} members ready"
            else:
                phase = Phase.AWAITING_QUORUM
                message = (
                    f"No ready member reports quorum ({len(ready)}/{len(expected)} "
                    f"ready)"
                )
        elif len(ready) < len(expected):
            phase = Phase.FORMING
            message = f"Waiting for members: {len(ready)}/{len(expected)} ready"
        elif mutually_visible < gate.minimum_members:
            phase = Phase.AWAITING_QUORUM
            message = (
                f"Waiting for mutual visibility: {mutually_visible}/"
                f"{gate.minimum_members} members see each other"
            )
        elif not quorate:
            phase = Phase.AWAITING_QUORUM
            message = "All members visible, waiting for the engine to declare quorum"
        else:
            phase = Phase.SCALING if resizing else Phase.READY
            message = f"Cluster formed with {len(ready)} members"
            formed = True

        started_at = None
        timed_out = False
        if phase in (Phase.FORMING, Phase.AWAITING_QUORUM) or (
            phase is Phase.DEGRADED and not formed
        ):
            started_at = now
            if previous is not None and previous.formation_started_at is not None:
                started_at = previous.formation_started_at
            if phase is not Phase.DEGRADED and now - started_at > timedelta(
                seconds=timeout_seconds
            ):
                timed_out = True
                phase = Phase.DEGRADED
                waiting = [n for n in expected if n not in ready_names]
                message = (
                    f"Formation did not complete within {int(timeout_seconds)}s; "
                    f"not ready: {waiting or 'none'}; visibility: {visibility}. "
                    f"No forced bootstrap is attempted."
                )
                logger.warning(
                    "Formation timed out",
                    extra={
                        "expected_members": len(expected),
                        "ready_members": len(ready),
                        "visibility": visibility,
                    },
                )

        return FormationStatus(
            phase=phase,
            message=message,
            formed=formed,
            formation_started_at=started_at,
            expected_members=len(expected),
            ready_members=len(ready),
            mutually_visible=mutually_visible,
            split_brain=split,
            timed_out=timed_out,
            visibility=visibility,
        )

    def _largest_mutual_visibility(
        self, ready: list[MemberStatus], ready_names: set[str]
    ) -> int:
        """Largest number of ready members that a single member sees both ways"""
        peers = {m.name: set(m.visible_peers) for m in ready}
        best = 0
        for member in ready:
            mutual = {
                p
                for p in peers[member.name]
                if p in ready_names and p != member.name and member.name in peers[p]
            }
            best = max(best, len(mutual) + 1)
        return best

    def record_conditions(
        self, status: FormationStatus, conditions: list[Condition], now: datetime
    ) -> None:
        """Write the formation verdict into observed-state conditions"""
        if status.formed:
            cond.set_condition(
                conditions,
                cond.FORMATION_COMPLETE,
                ConditionStatus.TRUE,
                cond.REASON_FORMED,
                "Cluster has formed",
                now,
            )
        else:
            cond.set_condition(
                conditions,
                cond.FORMATION_COMPLETE,
                ConditionStatus.FALSE,
                cond.REASON_NOT_FORMED,
                status.message,
                now,
            )

        if status.split_brain.is_split_brain:
            cond.set_condition(
                conditions,
                cond.SPLIT_BRAIN,
                ConditionStatus.TRUE,
                cond.REASON_DISJOINT_MEMBERSHIP,
                status.split_brain.message,
                now,
            )
        else:
            cond.set_condition(
                conditions,
                cond.SPLIT_BRAIN,
                ConditionStatus.FALSE,
                cond.REASON_SINGLE_MEMBERSHIP,
                "No disjoint quorate groups",
                now,
            )

        if status.timed_out:
            cond.set_condition(
                conditions,
                cond.FORMATION_TIMEOUT,
                ConditionStatus.TRUE,
                cond.REASON_TIMED_OUT,
                status.message,
                now,
            )
        else:
            cond.set_condition(
                conditions,
                cond.FORMATION_TIMEOUT,
                ConditionStatus.FALSE,
                cond.REASON_WITHIN_WINDOW,
                "Formation within its window" if not status.formed else "Formed",
                now,
            )

        if status.ready_members >= status.expected_members:
            cond.set_condition(
                conditions,
                cond.MEMBERS_HEALTHY,
                ConditionStatus.TRUE,
                cond.REASON_ALL_MEMBERS_READY,
                f"{status.ready_members}/{status.expected_members} members ready",
                now,
            )
        else:
            cond.set_condition(
                conditions,
                cond.MEMBERS_HEALTHY,
                ConditionStatus.FALSE,
                cond.REASON_MEMBERS_NOT_READY,
                f"{status.ready_members}/{status.expected_members} members ready",
                now,
            )
