"""Flag to downstream target routing."""

from src.models.enums import ClassificationFlag
from src.routing.dispatch import TargetName

# Red never reaches dispatch
ROUTES: dict[ClassificationFlag, tuple[str, ...]] = {
    ClassificationFlag.GREEN: (
        TargetName.CRM_SYNC.value,
        TargetName.PROVISIONING.value,
    ),
    ClassificationFlag.YELLOW: (TargetName.CRM_SYNC.value,),
    ClassificationFlag.RED: (),
}


def targets_for(flag: ClassificationFlag) -> tuple[str, ...]:
    """Return the target names a flag dispatches to, in call order."""
    return ROUTES[flag]
