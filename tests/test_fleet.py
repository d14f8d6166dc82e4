"""
Tests for fleet queries: member identities, fleet loading and host zones.
"""

from quorumctl.constants import KIND_FLEET
from quorumctl.fleet import (
    expected_members,
    fleet_name,
    host_zones,
    load_fleets,
    new_fleet_body,
    zone_distribution,
)
from quorumctl.models import Role, Topology
from tests.fakes import add_host, member_dict, report_members


class TestExpectedMembers:
    """Test cases for expected_members."""

    def test_primaries_first_by_index(self):
        """Test that the order is stable and starts with primary 0."""
        members = expected_members("db", Topology(primaries=2, secondaries=2))

        assert [name for name, _address in members] == [
            "db-primary-0",
            "db-primary-1",
            "db-secondary-0",
            "db-secondary-1",
        ]

    def test_addresses_are_stable(self):
        """Test that addresses depend only on identity."""
        [(_name, address)] = expected_members("db", Topology(primaries=1))

        assert address == "db-primary-0.db-internal:5000"

    def test_empty_topology(self):
        """Test that a zero topology expects no members."""
        assert expected_members("db", Topology(primaries=0)) == []


class TestLoadFleets:
    """Test cases for load_fleets."""

    def test_missing_fleets_map_to_none(self, store):
        """Test that a cluster with no fleets yet loads as None per role."""
        assert load_fleets(store, "db") == {Role.PRIMARY: None, Role.SECONDARY: None}

    def test_members_are_parsed(self, store):
        """Test that substrate-reported member status is read."""
        names = ["db-primary-0", "db-primary-1"]
        report_members(
            store,
            "db",
            Role.PRIMARY,
            [member_dict(n, i, names) for i, n in enumerate(names)],
            replicas=2,
        )

        fleets = load_fleets(store, "db")

        primary = fleets[Role.PRIMARY]
        assert primary.replicas == 2
        assert [m.name for m in primary.ready_members] == names
        assert primary.members[0].visible_peers == ("db-primary-1",)
        assert primary.resource_version == 1
        assert fleets[Role.SECONDARY] is None


class TestZones:
    """Test cases for host zone lookup."""

    def test_unlabelled_and_unknown_hosts(self, store):
        """Test that hosts without a zone label map to 'unknown'."""
        add_host(store, "h1", "zone-a")
        add_host(store, "h2", None)

        assert host_zones(store, {"h1", "h2", "h3"}) == {
            "h1": "zone-a",
            "h2": "unknown",
            "h3": "unknown",
        }

    def test_zone_distribution(self, store):
        """Test that members are counted per zone of their host."""
        add_host(store, "h1", "zone-a")
        add_host(store, "h2", "zone-b")
        names = [f"db-secondary-{i}" for i in range(4)]
        hosts = ["h1", "h1", "h2", None]
        body = new_fleet_body("db", Role.SECONDARY)
        body["status"]["members"] = [
            member_dict(n, i, names, host=h)
            for i, (n, h) in enumerate(zip(names, hosts, strict=True))
        ]
        store.put(KIND_FLEET, fleet_name("db", Role.SECONDARY), body)

        fleet = load_fleets(store, "db")[Role.SECONDARY]

        assert zone_distribution(store, fleet) == {"zone-a": 2, "zone-b": 1}

    def test_no_fleet(self, store):
        """Test that a missing fleet has no distribution."""
        assert zone_distribution(store, None) == {}
