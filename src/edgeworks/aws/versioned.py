"""Record component versions as stack outputs so the next deploy can guard upgrades."""

from __future__ import annotations

from aws_cdk import CfnOutput, Stack
from constructs import Construct

from ..context import AppContext
from ..naming import logical_name
from ..versioning import check_version

OUTPUT_SUFFIX = "ComponentVersion"


def register_version(
    component: Construct,
    context: AppContext,
    new_version: int,
    *,
    message: str = "",
    force_upgrade: str | None = None,
    old_version: int | None = None,
) -> None:
    """Check ``new_version`` against the recorded one and emit the new record.

    ``old_version`` overrides the recorded version, which is how referenced
    resources pass in the major read from their version tag.
    """
    name = logical_name(component.node.id)
    recorded = old_version if old_version is not None else context.recorded_version(name)
    if check_version(name, new_version, recorded, message=message, force_upgrade=force_upgrade):
        CfnOutput(
            Stack.of(component),
            f"{name}{OUTPUT_SUFFIX}",
            value=str(new_version),
            description=f"Deployed version of the {component.node.id} component",
        )
