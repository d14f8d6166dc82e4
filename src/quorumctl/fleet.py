"""
Fleet queries for quorumctl

Functions to read replicated-unit groups (fleets), their member identities and
the zone labels of the hosts they run on from the versioned store.
"""

from .constants import (
    DISCOVERY_PORT,
    KIND_FLEET,
    KIND_HOST,
    UNKNOWN_ZONE,
    ZONE_LABEL,
)
from .log import get_logger
from .models import FleetState, Role, Topology

logger = get_logger(__name__)


def fleet_name(cluster: str, role: Role) -> str:
    return f"{cluster}-{role.value}"


def member_name(cluster: str, role: Role, index: int) -> str:
    return f"{cluster}-{role.value}-{index}"


def member_address(cluster: str, role: Role, index: int) -> str:
    """Stable network identity of a member, independent of where it runs"""
    return f"{member_name(cluster, role, index)}.{cluster}-internal:{DISCOVERY_PORT}"


def expected_members(cluster: str, topology: Topology) -> list[tuple[str, str]]:
    """
    Member names and addresses for a topology

    Ordered primaries first, then secondaries, each by index, so the first entry
    is always the same member for a given cluster.
    """
    members = []
    for role in (Role.PRIMARY, Role.SECONDARY):
        for index in range(topology.replicas_for(role)):
            members.append(
                (
                    member_name(cluster, role, index),
                    member_address(cluster, role, index),
                )
            )
    return members


def new_fleet_body(cluster: str, role: Role) -> dict:
    return {
        "cluster": cluster,
        "role": role.value,
        "replicas": 0,
        "template": None,
        "zone_targets": {},
        "status": {"members": []},
    }


def load_fleets(store, cluster: str) -> dict[Role, FleetState | None]:
    """Read both fleets of a cluster; a fleet not created yet maps to None"""
    fleets: dict[Role, FleetState | None] = {}
    for role in (Role.PRIMARY, Role.SECONDARY):
        name = fleet_name(cluster, role)
        obj = store.get(KIND_FLEET, name)
        if obj is None:
            fleets[role] = None
            continue
        fleets[role] = FleetState.from_dict(name, obj.body, obj.resource_version)
        logger.trace(
            "Fleet loaded",
            extra={
                "fleet": name,
                "replicas": fleets[role].replicas,
                "members": len(fleets[role].members),
                "resource_version": obj.resource_version,
            },
        )
    return fleets


def host_zones(store, hosts: set[str]) -> dict[str, str]:
    """Zone label of each execution host; unlabelled hosts map to 'unknown'"""
    zones = {}
    for host in sorted(hosts):
        obj = store.get(KIND_HOST, host)
        labels = (obj.body.get("labels") or {}) if obj else {}
        zones[host] = labels.get(ZONE_LABEL) or UNKNOWN_ZONE
    return zones


def zone_distribution(store, fleet: FleetState | None) -> dict[str, int]:
    """Current member count per zone for a fleet"""
    if fleet is None:
        return {}
    placed = [m for m in fleet.members if m.host]
    zones = host_zones(store, {m.host for m in placed})
    distribution: dict[str, int] = {}
    for member in placed:
        zone = zones[member.host]
        distribution[zone] = distribution.get(zone, 0) + 1
    return distribution
