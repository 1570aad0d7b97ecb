#!/usr/bin/env python3
"""CDK app entrypoint for an edgeworks deployment."""

from __future__ import annotations

import os
from pathlib import Path

import aws_cdk as cdk

from edgeworks.aws import HttpsRedirectProps
from edgeworks.component_args import ClusterVpcArgs
from edgeworks.context import AppContext
from edgeworks.naming import logical_name
from stacks.platform_stack import PlatformStack
from stacks.site_stack import SiteStack


def _csv(value: str | None) -> list[str]:
    return [item.strip() for item in (value or "").split(",") if item and item.strip()]


def _flag(value) -> bool:
    return str(value or "").strip().lower() in {"1", "true", "yes", "on"}


app = cdk.App()
project_root = Path(__file__).resolve().parents[1]
context = AppContext.from_construct(app.node, root=project_root)

env = cdk.Environment(
    account=os.getenv("CDK_DEFAULT_ACCOUNT"),
    region=os.getenv("CDK_DEFAULT_REGION"),
)

framework = app.node.try_get_context("framework") or "nextjs"
site_path = app.node.try_get_context("sitePath") or str(project_root / "web")
regions = _csv(app.node.try_get_context("regions")) or None
domain = app.node.try_get_context("domain") or ""
hosted_zone = app.node.try_get_context("hostedZone") or ""
use_router = _flag(app.node.try_get_context("useRouter"))

stack_prefix = f"{logical_name(context.app_name)}{logical_name(context.stage)}"

SiteStack(
    app,
    f"{stack_prefix}SiteStack",
    env=env,
    context=context,
    framework=framework,
    site_path=site_path,
    regions=regions,
    domain=domain or None,
    hosted_zone=hosted_zone or None,
    use_router=use_router,
    # Extra regions are deployed as sibling stacks that reference this one.
    cross_region_references=bool(regions and len(regions) > 1),
)

vpc_id = app.node.try_get_context("clusterVpcId") or ""
auth_issuer_path = app.node.try_get_context("authIssuerPath") or ""
create_search = _flag(app.node.try_get_context("createSearch"))
redirect_target = app.node.try_get_context("redirectTarget") or ""
redirect_sources = _csv(app.node.try_get_context("redirectSources"))
if vpc_id or auth_issuer_path or create_search or redirect_target:
    cluster_vpc = None
    if vpc_id:
        cluster_vpc = ClusterVpcArgs(
            id=vpc_id,
            security_groups=tuple(_csv(app.node.try_get_context("clusterSecurityGroups"))),
            container_subnets=tuple(_csv(app.node.try_get_context("clusterContainerSubnets"))) or None,
            load_balancer_subnets=tuple(_csv(app.node.try_get_context("clusterLoadBalancerSubnets"))),
        )
    PlatformStack(
        app,
        f"{stack_prefix}PlatformStack",
        env=env,
        context=context,
        cluster_vpc=cluster_vpc,
        auth_issuer_path=auth_issuer_path or None,
        create_search=create_search,
        redirect=(
            HttpsRedirectProps(
                target_domain=redirect_target,
                source_domains=redirect_sources,
                cert=app.node.try_get_context("redirectCert") or None,
                hosted_zone=hosted_zone or None,
            )
            if redirect_target
            else None
        ),
        force_upgrade={
            name: value
            for name, value in (
                ("Cluster", app.node.try_get_context("clusterForceUpgrade")),
                ("Auth", app.node.try_get_context("authForceUpgrade")),
            )
            if value
        },
    )

app.synth()
