"""Next.js site deployed from an OpenNext build."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path

from aws_cdk import ArnFormat, Aws, Duration, RemovalPolicy, Stack
from aws_cdk import aws_dynamodb as dynamodb
from aws_cdk import aws_iam as iam
from aws_cdk import aws_lambda as lambda_
from aws_cdk import aws_lambda_event_sources as event_sources
from aws_cdk import aws_sqs as sqs
from aws_cdk import custom_resources

from ..frameworks import nextjs
from ..plan import Plan
from ..transform import TransformHook, apply_transform
from .ssr_site import SsrSite, SsrSiteProps


@dataclass(frozen=True)
class NextjsProps(SsrSiteProps):
    open_next_version: str | None = None
    image_optimization: nextjs.ImageOptimization = field(default_factory=nextjs.ImageOptimization)
    transform_revalidation_subscriber: TransformHook | None = None
    transform_revalidation_seeder: TransformHook | None = None


class Nextjs(SsrSite):
    """Revalidation queue, tag cache table and table seeder are created when the build asks for them."""

    props: NextjsProps
    revalidation_queue: sqs.Queue | None = None
    revalidation_function: lambda_.Function | None = None
    revalidation_table: dynamodb.Table | None = None

    def __init__(self, scope, construct_id: str, *, context, props: NextjsProps | None = None) -> None:
        super().__init__(scope, construct_id, context=context, props=props or NextjsProps())

    def default_build_command(self, site_path: Path) -> str | None:
        return nextjs.default_build_command(site_path, self.props.open_next_version)

    def build_plan(self, site_path: Path) -> Plan:
        build = nextjs.load_build_output(site_path, name=self.node.id)
        stack = Stack.of(self)
        resources = {
            "bucket_name": self.bucket_name,
            "bucket_arn": self.bucket_arn,
            "bucket_region": stack.region,
        }

        if build.has_revalidation_queue:
            self._create_revalidation_queue(site_path, build.revalidation_function)
            queue_name = self._queue_name()
            if queue_name:
                resources["queue_arn"] = stack.format_arn(
                    service="sqs", resource=queue_name, arn_format=ArnFormat.NO_RESOURCE_NAME
                )
                resources["queue_url"] = f"https://sqs.{stack.region}.{Aws.URL_SUFFIX}/{stack.account}/{queue_name}"
            else:
                resources["queue_arn"] = self.revalidation_queue.queue_arn
                resources["queue_url"] = self.revalidation_queue.queue_url
            resources["queue_region"] = stack.region

        if build.has_revalidation_table:
            self._create_revalidation_table()
            table_name = self.physical_name("revalidation", 255)
            if table_name:
                resources["table_name"] = table_name
                resources["table_arn"] = stack.format_arn(
                    service="dynamodb", resource="table", resource_name=table_name
                )
            else:
                resources["table_name"] = self.revalidation_table.table_name
                resources["table_arn"] = self.revalidation_table.table_arn

        if build.has_revalidation_seeder:
            self._create_revalidation_seeder(site_path, build)

        return nextjs.build_plan(
            build,
            site_path,
            name=self.node.id,
            resources=nextjs.CacheResources(**resources),
            image_optimization=self.props.image_optimization,
        )

    def _queue_name(self) -> str | None:
        name = self.physical_name("revalidation", 75)
        return f"{name}.fifo" if name else None

    def _create_revalidation_queue(self, site_path: Path, function: nextjs.OpenNextFunction) -> None:
        self.revalidation_queue = sqs.Queue(
            self,
            "RevalidationEvents",
            queue_name=self._queue_name(),
            fifo=True,
            receive_message_wait_time=Duration.seconds(20),
            removal_policy=RemovalPolicy.DESTROY,
        )
        self.revalidation_function = lambda_.Function(
            self,
            "RevalidationSubscriber",
            **apply_transform(
                self.props.transform_revalidation_subscriber,
                {
                    "description": f"{self.node.id} ISR revalidator",
                    "runtime": lambda_.Runtime.NODEJS_20_X,
                    "handler": function.handler,
                    "code": lambda_.Code.from_asset(str(site_path / function.bundle)),
                    "timeout": Duration.seconds(30),
                },
            ),
        )
        self.revalidation_function.add_event_source(
            event_sources.SqsEventSource(self.revalidation_queue, batch_size=5)
        )

    def _create_revalidation_table(self) -> None:
        self.revalidation_table = dynamodb.Table(
            self,
            "RevalidationTable",
            table_name=self.physical_name("revalidation", 255),
            partition_key=dynamodb.Attribute(name="tag", type=dynamodb.AttributeType.STRING),
            sort_key=dynamodb.Attribute(name="path", type=dynamodb.AttributeType.STRING),
            billing_mode=dynamodb.BillingMode.PAY_PER_REQUEST,
            point_in_time_recovery=True,
            removal_policy=RemovalPolicy.DESTROY,
        )
        self.revalidation_table.add_global_secondary_index(
            index_name="revalidate",
            partition_key=dynamodb.Attribute(name="path", type=dynamodb.AttributeType.STRING),
            sort_key=dynamodb.Attribute(name="revalidatedAt", type=dynamodb.AttributeType.NUMBER),
            projection_type=dynamodb.ProjectionType.ALL,
        )

    def _create_revalidation_seeder(self, site_path: Path, build: nextjs.OpenNextBuild) -> None:
        function = build.initialization_function
        seeder = lambda_.Function(
            self,
            "RevalidationSeeder",
            **apply_transform(
                self.props.transform_revalidation_seeder,
                {
                    "description": f"{self.node.id} ISR revalidation data seeder",
                    "runtime": lambda_.Runtime.NODEJS_20_X,
                    "handler": function.handler,
                    "code": lambda_.Code.from_asset(str(site_path / function.bundle)),
                    "timeout": Duration.seconds(900),
                    "memory_size": nextjs.seeder_memory(build.prerendered_route_count),
                    "environment": {"CACHE_DYNAMO_TABLE": self.revalidation_table.table_name},
                },
            ),
        )
        self.revalidation_table.grant(
            seeder, "dynamodb:BatchWriteItem", "dynamodb:PutItem", "dynamodb:DescribeTable"
        )

        # Runs once per build; the invocation is asynchronous because seeding
        # can outlast the custom resource timeout.
        seed = custom_resources.AwsCustomResource(
            self,
            "RevalidationSeed",
            on_update=custom_resources.AwsSdkCall(
                service="Lambda",
                action="invoke",
                parameters={
                    "FunctionName": seeder.function_name,
                    "InvocationType": "Event",
                    "Payload": json.dumps({"RequestType": "Create"}),
                },
                physical_resource_id=custom_resources.PhysicalResourceId.of(build.build_id),
            ),
            policy=custom_resources.AwsCustomResourcePolicy.from_statements(
                [iam.PolicyStatement(actions=["lambda:InvokeFunction"], resources=[seeder.function_arn])]
            ),
            install_latest_aws_sdk=False,
        )
        seed.node.add_dependency(seeder)
