"""ECS cluster for Fargate services, shareable across stages."""

from __future__ import annotations

from dataclasses import dataclass

from aws_cdk import CfnOutput, CfnTag, Fn, Token
from aws_cdk import aws_ecs as ecs
from constructs import Construct

from ..component_args import ClusterVpcArgs, normalize_cluster_vpc
from ..context import AppContext
from ..link import LinkDefinition
from ..transform import TransformHook, apply_transform
from ..versioning import VERSION_TAG, ComponentVersion, check_reference_version
from .versioned import register_version

CLUSTER_VERSION = ComponentVersion(2, 0)

UPGRADE_MESSAGE = "\n".join(
    [
        "",
        "What changed:",
        "  - In the old version, load balancers were deployed in public subnets, and services were "
        "deployed in private subnets. The VPC was required to have NAT gateways.",
        "  - In the latest version, both the load balancer and the services are deployed in public "
        "subnets. The VPC is not required to have NAT gateways.",
    ]
)


@dataclass(frozen=True)
class ClusterProps:
    vpc: ClusterVpcArgs
    force_upgrade: str | None = None
    transform_cluster: TransformHook | None = None


@dataclass(frozen=True)
class _ClusterRef:
    cluster_arn: str
    version_tag: str | None


class Cluster(Construct):
    """Creates an ECS cluster, or wraps an existing one through ``Cluster.get``."""

    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        *,
        context: AppContext,
        props: ClusterProps,
        _ref: _ClusterRef | None = None,
    ) -> None:
        super().__init__(scope, construct_id)
        self.context = context
        self.link_name = construct_id
        self.vpc = normalize_cluster_vpc(construct_id, props.vpc)

        if _ref is not None:
            found = check_reference_version(construct_id, CLUSTER_VERSION, _ref.version_tag)
            register_version(
                self,
                context,
                CLUSTER_VERSION.major,
                message=UPGRADE_MESSAGE,
                force_upgrade=props.force_upgrade,
                old_version=found.major,
            )
            self.cluster_arn = _ref.cluster_arn
            if Token.is_unresolved(_ref.cluster_arn):
                self.cluster_name = Fn.select(1, Fn.split("/", _ref.cluster_arn))
            else:
                self.cluster_name = _ref.cluster_arn.rsplit("/", 1)[-1]
            self.cluster = None
            return

        register_version(
            self,
            context,
            CLUSTER_VERSION.major,
            message=UPGRADE_MESSAGE,
            force_upgrade=props.force_upgrade,
        )
        self.cluster = ecs.CfnCluster(
            self,
            "Cluster",
            **apply_transform(
                props.transform_cluster,
                {
                    "capacity_providers": ["FARGATE", "FARGATE_SPOT"],
                    "tags": [CfnTag(key=VERSION_TAG, value=str(CLUSTER_VERSION))],
                },
            ),
        )
        self.cluster_arn = self.cluster.attr_arn
        self.cluster_name = self.cluster.ref

        CfnOutput(self, "ClusterArn", value=self.cluster_arn)
        CfnOutput(self, "ClusterName", value=self.cluster_name)

    @classmethod
    def get(
        cls,
        scope: Construct,
        construct_id: str,
        *,
        context: AppContext,
        cluster_arn: str,
        vpc: ClusterVpcArgs,
        version_tag: str | None,
        force_upgrade: str | None = None,
    ) -> "Cluster":
        """Reference a cluster created by another stage.

        ``version_tag`` is the cluster's ``edgeworks:ref:version`` tag; read it
        with ``edgeworks.lookups.cluster_version_tag``.
        """
        return cls(
            scope,
            construct_id,
            context=context,
            props=ClusterProps(vpc=vpc, force_upgrade=force_upgrade),
            _ref=_ClusterRef(cluster_arn=cluster_arn, version_tag=version_tag),
        )

    def get_link(self) -> LinkDefinition:
        return LinkDefinition(properties={"arn": self.cluster_arn, "name": self.cluster_name})
