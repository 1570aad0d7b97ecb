"""OpenAuth issuer backed by a DynamoDB storage table."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Mapping

from aws_cdk import CfnOutput, Duration, Fn, RemovalPolicy, Stack
from aws_cdk import aws_dynamodb as dynamodb
from aws_cdk import aws_lambda as lambda_
from constructs import Construct

from ..context import AppContext
from ..errors import ConfigurationError
from ..link import LinkDefinition, app_link_environment
from ..transform import TransformHook, apply_transform
from ..units import to_mbs, to_seconds
from .cdn import DomainOptions
from .router import Router, RouterProps
from .versioned import register_version

AUTH_VERSION = 2

UPGRADE_MESSAGE = "\n".join(
    [
        "",
        "What changed:",
        "  - The latest version is now powered by OpenAuth - https://openauth.js.org",
    ]
)


@dataclass(frozen=True)
class AuthIssuer:
    """Prebuilt issuer bundle; ``handler`` is relative to ``bundle``."""

    bundle: str
    handler: str = "index.handler"
    runtime: str = "nodejs20.x"
    memory: str = "1024 MB"
    timeout: str = "20 seconds"
    environment: Mapping[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class AuthProps:
    issuer: AuthIssuer | None = None
    domain: DomainOptions | None = None
    force_upgrade: str | None = None
    transform_issuer: TransformHook | None = None
    transform_table: TransformHook | None = None


class Auth(Construct):
    def __init__(self, scope: Construct, construct_id: str, *, context: AppContext, props: AuthProps) -> None:
        super().__init__(scope, construct_id)
        if props.issuer is None:
            raise ConfigurationError(f'The "{construct_id}" Auth component needs an issuer.')
        self.context = context
        self.link_name = construct_id

        register_version(
            self,
            context,
            AUTH_VERSION,
            message=UPGRADE_MESSAGE,
            force_upgrade=props.force_upgrade,
        )

        self.table = dynamodb.Table(
            self,
            "Storage",
            **apply_transform(
                props.transform_table,
                {
                    "partition_key": dynamodb.Attribute(name="pk", type=dynamodb.AttributeType.STRING),
                    "sort_key": dynamodb.Attribute(name="sk", type=dynamodb.AttributeType.STRING),
                    "time_to_live_attribute": "expiry",
                    "billing_mode": dynamodb.BillingMode.PAY_PER_REQUEST,
                    "removal_policy": RemovalPolicy.DESTROY,
                },
            ),
        )

        issuer = props.issuer
        storage = Stack.of(self).to_json_string({"type": "dynamo", "options": {"table": self.table.table_name}})
        self.issuer = lambda_.Function(
            self,
            "Issuer",
            **apply_transform(
                props.transform_issuer,
                {
                    "description": f"{construct_id} issuer",
                    "runtime": lambda_.Runtime(issuer.runtime, lambda_.RuntimeFamily.NODEJS),
                    "handler": issuer.handler,
                    "code": lambda_.Code.from_asset(issuer.bundle),
                    "memory_size": to_mbs(issuer.memory),
                    "timeout": Duration.seconds(to_seconds(issuer.timeout)),
                    "environment": {
                        **issuer.environment,
                        **app_link_environment(context.app_name, context.stage),
                        "OPENAUTH_STORAGE": storage,
                    },
                },
            ),
        )
        self.table.grant_read_write_data(self.issuer)
        function_url = self.issuer.add_function_url(auth_type=lambda_.FunctionUrlAuthType.NONE)
        self.issuer_url = "https://" + Fn.select(2, Fn.split("/", function_url.url))

        self.router = None
        if props.domain is not None:
            self.router = Router(self, "Router", context=context, props=RouterProps(domain=props.domain))
            self.router.route("/", self.issuer_url)
            self.url = self.router.url
        else:
            self.url = self.issuer_url

        CfnOutput(self, "Url", value=self.url, description=f"URL of the {construct_id} issuer")

    def get_link(self) -> LinkDefinition:
        return LinkDefinition(properties={"url": self.url}, environment={"OPENAUTH_ISSUER": self.url})
