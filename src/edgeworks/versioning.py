"""Guard against deploying a breaking component version over an older one."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from .errors import ConfigurationError

logger = logging.getLogger(__name__)

VERSION_TAG = "edgeworks:ref:version"


@dataclass(frozen=True)
class ComponentVersion:
    major: int
    minor: int = 0

    def __str__(self) -> str:
        return f"{self.major}.{self.minor}"


def parse_component_version(value: str | int | float) -> ComponentVersion:
    """Read ``"2.0"``, ``2`` or ``2.0`` as a component version."""
    text = str(value).strip().lstrip("v")
    major, _, minor = text.partition(".")
    try:
        return ComponentVersion(int(major), int(minor or 0))
    except ValueError as exc:
        raise ConfigurationError(f"Invalid component version {value!r}") from exc


def check_version(
    component: str,
    new_version: int,
    old_version: int | None,
    *,
    message: str = "",
    force_upgrade: str | None = None,
) -> bool:
    """Raise if ``new_version`` cannot be deployed over ``old_version``.

    Returns ``True`` when the new version should be recorded for the next
    deploy, which is every version above 1.
    """
    if old_version is None:
        logger.debug("%s has no recorded version, deploying v%d", component, new_version)
        return new_version > 1

    if force_upgrade and force_upgrade != f"v{new_version}":
        raise ConfigurationError(
            f'The value of force_upgrade does not match the version of the "{component}" '
            f'component. Set force_upgrade to "v{new_version}" to upgrade.'
        )

    if old_version < new_version and not force_upgrade:
        details = f" {message}" if message else ""
        raise ConfigurationError(
            f'There is a new version of "{component}" that has breaking changes.{details} '
            f'To continue using the previous version, rename the component or pin it. '
            f'To upgrade, set force_upgrade to "v{new_version}".'
        )

    if old_version > new_version:
        raise ConfigurationError(
            f'It seems you are trying to use an older version of "{component}". '
            f"You need to recreate this component to rollback to v{new_version}."
        )

    if old_version < new_version:
        logger.info("Upgrading %s from v%d to v%d", component, old_version, new_version)
    return new_version > 1


def check_reference_version(
    component: str,
    expected: ComponentVersion,
    tag_value: str | None,
) -> ComponentVersion:
    """Validate the ``edgeworks:ref:version`` tag of a referenced resource.

    A minor mismatch means the stage that owns the resource must be redeployed
    first. Returns the parsed version so its major can go through
    ``check_version``.
    """
    found = parse_component_version(tag_value) if tag_value else None
    if found is None or found.minor != expected.minor:
        raise ConfigurationError(
            f'There have been some minor changes to the "{component}" component that is being '
            "referenced. Redeploy the stage where it was created, then redeploy this stage."
        )
    return found
