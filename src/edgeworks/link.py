"""Linking: components expose properties that other components and builds consume."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping, Protocol, runtime_checkable

from .errors import ConfigurationError

ENV_PREFIX = "EDGEWORKS_RESOURCE_"

_LINK_NAME_RE = re.compile(r"^[A-Za-z][A-Za-z0-9_]*$")


@dataclass(frozen=True)
class LinkDefinition:
    """``properties`` are serialized for the consumer; ``environment`` is set as-is."""

    properties: Mapping[str, Any]
    environment: Mapping[str, str] = field(default_factory=dict)


@runtime_checkable
class Linkable(Protocol):
    link_name: str

    def get_link(self) -> LinkDefinition:
        ...


def link_env_name(name: str) -> str:
    if not _LINK_NAME_RE.match(name):
        raise ConfigurationError(
            f"Link name {name!r} must start with a letter and contain only letters, digits and '_'"
        )
    return f"{ENV_PREFIX}{name}"


def build_link_environment(
    links: Iterable[Linkable],
    *,
    to_json: Any = None,
) -> dict[str, str]:
    """Environment variables for a function or build that links ``links``.

    ``to_json`` serializes values that may hold unresolved CDK tokens (pass
    ``Stack.of(scope).to_json_string``); plain ``json.dumps`` is used otherwise.
    """
    serialize = to_json or (lambda value: json.dumps(value, sort_keys=True))
    environment: dict[str, str] = {}
    for link in links:
        if not isinstance(link, Linkable):
            raise ConfigurationError(f"{link!r} cannot be linked")
        definition = link.get_link()
        name = link_env_name(link.link_name)
        if name in environment:
            raise ConfigurationError(f"Duplicate link name {link.link_name!r}")
        environment[name] = serialize(dict(definition.properties))
        environment.update(definition.environment)
    return environment


def app_link_environment(app_name: str, stage: str) -> dict[str, str]:
    return {f"{ENV_PREFIX}App": json.dumps({"name": app_name, "stage": stage}, sort_keys=True)}
