"""Argument normalization for the non-site components."""

from __future__ import annotations

import re
from dataclasses import dataclass, replace

from .errors import ConfigurationError
from .units import to_gbs


@dataclass(frozen=True)
class ClusterVpcArgs:
    """An existing VPC for a cluster's services.

    ``service_subnets`` is the deprecated name of ``container_subnets``.
    """

    id: str
    security_groups: tuple[str, ...]
    container_subnets: tuple[str, ...] | None = None
    service_subnets: tuple[str, ...] | None = None
    load_balancer_subnets: tuple[str, ...] = ()
    cloudmap_namespace_id: str | None = None
    cloudmap_namespace_name: str | None = None


def normalize_cluster_vpc(name: str, vpc: ClusterVpcArgs) -> ClusterVpcArgs:
    if vpc.container_subnets and vpc.service_subnets:
        raise ConfigurationError(
            f'You cannot provide both "vpc.container_subnets" and "vpc.service_subnets" in the "{name}" '
            'Cluster component. "service_subnets" is deprecated; use "container_subnets" instead.'
        )
    if not vpc.container_subnets and not vpc.service_subnets:
        raise ConfigurationError(f'Missing "vpc.container_subnets" for the "{name}" Cluster component.')
    if bool(vpc.cloudmap_namespace_id) != bool(vpc.cloudmap_namespace_name):
        raise ConfigurationError(
            f'You must provide both "vpc.cloudmap_namespace_id" and "vpc.cloudmap_namespace_name" for the '
            f'"{name}" Cluster component.'
        )
    return replace(
        vpc,
        container_subnets=tuple(vpc.container_subnets or vpc.service_subnets or ()),
        service_subnets=None,
    )


MIN_OPENSEARCH_STORAGE_GB = 10
_INSTANCE_RE = re.compile(r"^[a-z0-9]+\.[a-z0-9]+$")
_ENGINE_RE = re.compile(r"^(?P<engine>OpenSearch|Elasticsearch)_(?P<release>\d+\.\d+)$")


@dataclass(frozen=True)
class OpenSearchSettings:
    version: str = "OpenSearch_2.17"
    instance: str = "t3.small"
    storage: str | int = "10 GB"
    username: str = "admin"

    @property
    def instance_type(self) -> str:
        return self.instance if self.instance.endswith(".search") else f"{self.instance}.search"

    @property
    def storage_gb(self) -> int:
        return to_gbs(self.storage)

    @property
    def engine(self) -> tuple[str, str]:
        """(``"OpenSearch"`` or ``"Elasticsearch"``, release) from ``version``."""
        match = _ENGINE_RE.match(self.version)
        if match is None:
            raise ConfigurationError(
                f"Invalid engine version {self.version!r}. Use \"OpenSearch_<major>.<minor>\" "
                "or \"Elasticsearch_<major>.<minor>\"."
            )
        return match.group("engine"), match.group("release")


def normalize_opensearch(name: str, settings: OpenSearchSettings) -> OpenSearchSettings:
    if not _ENGINE_RE.match(settings.version):
        raise ConfigurationError(
            f'Invalid engine version "{settings.version}" for the "{name}" OpenSearch component. '
            'Use "OpenSearch_<major>.<minor>" or "Elasticsearch_<major>.<minor>".'
        )
    if not _INSTANCE_RE.match(settings.instance.removesuffix(".search")):
        raise ConfigurationError(f'Invalid instance type "{settings.instance}" for the "{name}" OpenSearch component.')
    if settings.storage_gb < MIN_OPENSEARCH_STORAGE_GB:
        raise ConfigurationError(
            f'Storage for the "{name}" OpenSearch component must be at least {MIN_OPENSEARCH_STORAGE_GB} GB.'
        )
    if not settings.username:
        raise ConfigurationError(f'The "{name}" OpenSearch component needs a master username.')
    return settings


def truncate_comment(comment: str) -> str:
    """CloudFront comments are limited to 128 characters."""
    return comment if len(comment) <= 128 else comment[:125] + "..."


def redirect_comment(target_domain: str, source_domains: tuple[str, ...] | list[str]) -> str:
    return truncate_comment(f"Redirect to {target_domain} from {', '.join(source_domains)}")
