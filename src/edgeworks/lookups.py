"""Synth-time reads of resources owned by other stages."""

from __future__ import annotations

import logging

import boto3

from .errors import ConfigurationError
from .versioning import VERSION_TAG

logger = logging.getLogger(__name__)


def cluster_version_tag(cluster_arn: str, *, ecs_client=None, region: str | None = None) -> str | None:
    """Value of the version tag on an existing ECS cluster, or ``None`` if untagged."""
    client = ecs_client or boto3.client("ecs", region_name=region)
    response = client.describe_clusters(clusters=[cluster_arn], include=["TAGS"])
    clusters = response.get("clusters") or []
    if not clusters:
        raise ConfigurationError(f"Cluster {cluster_arn} was not found")
    for tag in clusters[0].get("tags") or []:
        if tag.get("key") == VERSION_TAG:
            return tag.get("value")
    logger.debug("Cluster %s has no %s tag", cluster_arn, VERSION_TAG)
    return None
