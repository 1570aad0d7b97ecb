"""Single-node OpenSearch domain with a fine-grained access master user."""

from __future__ import annotations

import json
from dataclasses import dataclass, field

from aws_cdk import CfnOutput, RemovalPolicy, SecretValue, Tags
from aws_cdk import aws_ec2 as ec2
from aws_cdk import aws_iam as iam
from aws_cdk import aws_opensearchservice as opensearch
from aws_cdk import aws_secretsmanager as secretsmanager
from constructs import Construct

from ..component_args import OpenSearchSettings, normalize_opensearch
from ..context import AppContext
from ..link import LinkDefinition
from ..transform import TransformHook, apply_transform

USERNAME_TAG = "edgeworks:ref:username"
PASSWORD_TAG = "edgeworks:ref:password"


def engine_version(settings: OpenSearchSettings) -> opensearch.EngineVersion:
    engine, release = settings.engine
    if engine == "Elasticsearch":
        return opensearch.EngineVersion.elasticsearch(release)
    return opensearch.EngineVersion.open_search(release)


@dataclass(frozen=True)
class OpenSearchProps:
    settings: OpenSearchSettings = field(default_factory=OpenSearchSettings)
    # Generated and stored in Secrets Manager when unset.
    password: str | None = None
    transform_domain: TransformHook | None = None


class OpenSearch(Construct):
    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        *,
        context: AppContext,
        props: OpenSearchProps | None = None,
    ) -> None:
        super().__init__(scope, construct_id)
        props = props or OpenSearchProps()
        settings = normalize_opensearch(construct_id, props.settings)
        self.context = context
        self.link_name = construct_id
        self.username = settings.username

        if props.password:
            self.secret = secretsmanager.Secret(
                self,
                "Secret",
                secret_object_value={
                    "username": SecretValue.unsafe_plain_text(settings.username),
                    "password": SecretValue.unsafe_plain_text(props.password),
                },
                removal_policy=RemovalPolicy.DESTROY,
            )
        else:
            self.secret = secretsmanager.Secret(
                self,
                "Secret",
                generate_secret_string=secretsmanager.SecretStringGenerator(
                    secret_string_template=json.dumps({"username": settings.username}),
                    generate_string_key="password",
                    password_length=32,
                    require_each_included_type=True,
                    exclude_characters="\"'@/\\",
                ),
                removal_policy=RemovalPolicy.DESTROY,
            )
        password = self.secret.secret_value_from_json("password")
        self.password = password.unsafe_unwrap()

        self.domain = opensearch.Domain(
            self,
            "Domain",
            **apply_transform(
                props.transform_domain,
                {
                    "version": engine_version(settings),
                    "capacity": opensearch.CapacityConfig(
                        data_nodes=1,
                        data_node_instance_type=settings.instance_type,
                        multi_az_with_standby_enabled=False,
                    ),
                    "zone_awareness": opensearch.ZoneAwarenessConfig(enabled=False),
                    "ebs": opensearch.EbsOptions(
                        enabled=True,
                        volume_size=settings.storage_gb,
                        volume_type=ec2.EbsDeviceVolumeType.GP3,
                    ),
                    "fine_grained_access_control": opensearch.AdvancedSecurityOptions(
                        master_user_name=settings.username,
                        master_user_password=password,
                    ),
                    "node_to_node_encryption": True,
                    "encryption_at_rest": opensearch.EncryptionAtRestOptions(enabled=True),
                    "enforce_https": True,
                    "tls_security_policy": opensearch.TLSSecurityPolicy.TLS_1_2,
                    "access_policies": [
                        iam.PolicyStatement(
                            principals=[iam.AnyPrincipal()],
                            actions=["es:*"],
                            resources=["*"],
                        )
                    ],
                    "removal_policy": RemovalPolicy.DESTROY,
                },
            ),
        )
        Tags.of(self.domain).add(USERNAME_TAG, settings.username)
        Tags.of(self.domain).add(PASSWORD_TAG, self.secret.secret_arn)

        self.url = f"https://{self.domain.domain_endpoint}"
        CfnOutput(self, "Url", value=self.url)
        CfnOutput(self, "SecretArn", value=self.secret.secret_arn)

    def get_link(self) -> LinkDefinition:
        return LinkDefinition(
            properties={"username": self.username, "password": self.password, "url": self.url}
        )
