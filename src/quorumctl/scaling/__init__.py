from ..models import Role
from .base import GroupScaler, ScalingContext
from .decision import ScaleDecisionEngine
from .primary import PrimaryScaler
from .secondary import SecondaryScaler

SCALER_REGISTRY: dict[Role, type[GroupScaler]] = {
    Role.PRIMARY: PrimaryScaler,
    Role.SECONDARY: SecondaryScaler,
}


def build_scalers(engine: ScaleDecisionEngine) -> dict[Role, GroupScaler]:
    """
    Instantiate one scaler per role

    Raises:
        ValueError: If a role has no registered scaler
    """
    missing = [role.value for role in Role if role not in SCALER_REGISTRY]
    if missing:
        raise ValueError(f"No scaler registered for roles: {missing}")
    return {role: SCALER_REGISTRY[role](engine) for role in Role}


__all__ = [
    "SCALER_REGISTRY",
    "GroupScaler",
    "PrimaryScaler",
    "ScaleDecisionEngine",
    "ScalingContext",
    "SecondaryScaler",
    "build_scalers",
]
