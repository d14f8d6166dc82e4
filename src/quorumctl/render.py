"""
Template rendering for quorumctl

Turns a cluster's desired state and the formation gate of the current reconcile
into the desired runtime template for one fleet. The gate must be computed
before rendering because its values are embedded in the engine configuration.
"""

from .constants import (
    CONFIG_DISCOVERY_SEEDS,
    CONFIG_MINIMUM_MEMBERS,
    CONFIG_PREFERRED_BOOTSTRAPPER,
    CONFIG_ROLE_CONSTRAINTS,
    ENGINE_CONTAINER,
)
from .models import (
    ClusterDesiredState,
    EnvVar,
    FormationGate,
    MemberRuntimeTemplate,
    Role,
    RoleConstraint,
)

CLUSTER_LABEL = "quorumctl/cluster"
ROLE_LABEL = "quorumctl/role"


def render_template(
    desired: ClusterDesiredState, role: Role, gate: FormationGate
) -> MemberRuntimeTemplate:
    """
    Render the desired member template of one fleet

    Each member compares the preferred bootstrapper name against its own name to
    learn its bootstrap hint, so a single template serves the whole fleet.
    """
    config = dict(desired.config)
    config[CONFIG_MINIMUM_MEMBERS] = str(gate.minimum_members)
    config[CONFIG_DISCOVERY_SEEDS] = ",".join(gate.peers)
    if gate.preferred_bootstrapper is not None:
        config[CONFIG_PREFERRED_BOOTSTRAPPER] = gate.preferred_bootstrapper

    # Role constraints are copied verbatim; nothing here reassigns them
    constraints = {
        member: constraint.value
        for member, constraint in sorted(desired.member_roles.items())
        if constraint is not RoleConstraint.UNCONSTRAINED
    }
    if constraints:
        config[CONFIG_ROLE_CONSTRAINTS] = ",".join(
            f"{member}={value}" for member, value in constraints.items()
        )

    env = (
        EnvVar(name="CLUSTER_NAME", value=desired.name),
        EnvVar(name="MEMBER_ROLE", value=role.value),
    ) + tuple(e for e in desired.env if e.name not in ("CLUSTER_NAME", "MEMBER_ROLE"))

    return MemberRuntimeTemplate(
        image=desired.image,
        resources=desired.resources,
        env=env,
        config=config,
        service_account=desired.service_account,
        containers=(ENGINE_CONTAINER,) + tuple(desired.sidecars),
        labels={CLUSTER_LABEL: desired.name, ROLE_LABEL: role.value},
    )
