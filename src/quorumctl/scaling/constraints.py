"""
Safety constraints applied to computed scaling targets
"""

from collections.abc import Iterable

from ..models import QuorumProtection


def ensure_odd_replicas(target: int, min_replicas: int, max_replicas: int) -> int:
    """
    Nudge an even target to an adjacent odd value within [min, max]

    Prefers target + 1, then target - 1. Returns target unchanged when it is
    already odd or neither neighbour fits the bounds.
    """
    if target % 2 == 1:
        return target
    if min_replicas <= target + 1 <= max_replicas:
        return target + 1
    if min_replicas <= target - 1 <= max_replicas:
        return target - 1
    return target


def clamp(target: int, min_replicas: int, max_replicas: int) -> int:
    return max(min_replicas, min(target, max_replicas))


def validate_topology(primaries: int, secondaries: int) -> str | None:
    """
    Check the minimum cluster shape

    A cluster needs either one primary and at least one secondary, or several
    primaries. Returns a reason when the topology is invalid, None otherwise.
    """
    if primaries < 1:
        return f"Invalid topology: at least 1 primary required, target {primaries}"
    if secondaries < 0:
        return f"Invalid topology: negative secondaries, target {secondaries}"
    if primaries == 1 and secondaries == 0:
        return (
            "Invalid topology: 1 primary requires at least 1 secondary "
            "(or use multiple primaries)"
        )
    return None


def check_quorum_protection(
    healthy_primaries: int, protection: QuorumProtection | None
) -> str | None:
    """Reason primary scaling must be suppressed, or None if it may proceed"""
    if protection is None or not protection.enabled:
        return None
    if healthy_primaries < protection.min_healthy_primaries:
        deficit = protection.min_healthy_primaries - healthy_primaries
        return (
            f"Quorum protection: {healthy_primaries} healthy primaries < "
            f"{protection.min_healthy_primaries} required (deficit {deficit}); "
            f"primary scaling suppressed"
        )
    return None


def calculate_zone_distribution(
    total: int, zones: Iterable[str], min_per_zone: int
) -> dict[str, int]:
    """
    Spread a replica total across zones

    Zones are taken in sorted order. With more zones than replicas the first
    `total` zones get one member each; otherwise each zone gets total // zones
    and the remainder goes to the first zones. Zones are then raised to
    min_per_zone, which can push the sum above total.
    """
    ordered = sorted(set(zones))
    if not ordered:
        return {}

    distribution: dict[str, int] = {}
    if len(ordered) > total:
        for i, zone in enumerate(ordered):
            distribution[zone] = 1 if i < total else 0
    else:
        base, remainder = divmod(total, len(ordered))
        for i, zone in enumerate(ordered):
            distribution[zone] = base + (1 if i < remainder else 0)

    for zone, count in distribution.items():
        if count < min_per_zone:
            distribution[zone] = min_per_zone
    return distribution
