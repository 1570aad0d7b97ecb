"""Shared provisioning for server-rendered sites.

Framework components subclass ``SsrSite`` and implement ``build_plan``; this
module turns the validated plan into a bucket, per-region servers, an optional
image optimizer, asset uploads, KeyValueStore routing records and either a
distribution of its own or an attachment to a ``Router``.
"""

from __future__ import annotations

import hashlib
import logging
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal, Mapping, Sequence

from aws_cdk import App, Aws, CfnOutput, Duration, Environment, Fn, RemovalPolicy, Stack, Token
from aws_cdk import aws_cloudfront as cloudfront
from aws_cdk import aws_cloudfront_origins as origins
from aws_cdk import aws_iam as iam
from aws_cdk import aws_lambda as lambda_
from aws_cdk import aws_s3 as s3
from aws_cdk import aws_s3_deployment as s3_deployment
from aws_cdk import custom_resources
from constructs import Construct

from ..assets import AssetOptions, InvalidationSettings, invalidation_build_id, invalidation_paths, plan_uploads, stage_upload_group
from ..build import build_skipped, resolve_build_command, run_build
from ..context import AppContext
from ..edge_functions import site_request_function, viewer_response_function
from ..errors import ConfigurationError
from ..kv import ProtectionMode, ServerOrigin, index_assets, site_metadata
from ..link import Linkable, LinkDefinition, app_link_environment, build_link_environment
from ..naming import kv_namespace, logical_name, prefix_name
from ..plan import Permission, Plan, ServerSpec, validate_plan
from ..regions import normalize_regions
from ..routing import router_url
from ..transform import TransformHook, apply_transform
from ..units import to_mbs, to_seconds
from .cdn import DomainOptions, EdgeOptions, alias_records, resolve_certificate, site_cache_policy
from .kv_store import KvNamespaceEntries, staging_dir
from .router import RouterAttachment

logger = logging.getLogger(__name__)

DEFAULT_RUNTIME = "nodejs20.x"
DEFAULT_MEMORY = "1024 MB"
DEFAULT_TIMEOUT = "20 seconds"
DEFAULT_ARCHITECTURE = "x86_64"
CLOUDFRONT_RESPONSE_TIMEOUT = 60


@dataclass(frozen=True)
class ServerOptions:
    """Overrides for the server function; unset values fall back to the build, then defaults."""

    runtime: str | None = None
    memory: str | None = None
    timeout: str | None = None
    architecture: Literal["x86_64", "arm64"] | None = None
    allow_long_timeout: bool = False


@dataclass(frozen=True)
class SsrSiteTransforms:
    assets: TransformHook | None = None
    server: TransformHook | None = None
    image_optimizer: TransformHook | None = None
    request_function: TransformHook | None = None
    distribution: TransformHook | None = None


@dataclass(frozen=True)
class SsrSiteProps:
    path: str = "."
    build_command: str | None = None
    environment: Mapping[str, str] = field(default_factory=dict)
    link: Sequence[Linkable] = ()
    regions: Sequence[str] | None = None
    server: ServerOptions = field(default_factory=ServerOptions)
    permissions: Sequence[Permission] = ()
    domain: DomainOptions | None = None
    router: RouterAttachment | None = None
    edge: EdgeOptions | None = None
    protection: ProtectionMode = "none"
    assets: AssetOptions = field(default_factory=AssetOptions)
    invalidation: InvalidationSettings | Literal[False] = field(default_factory=InvalidationSettings)
    transform: SsrSiteTransforms = field(default_factory=SsrSiteTransforms)


def _validate_props(name: str, props: SsrSiteProps) -> None:
    if props.router is not None and props.domain is not None:
        raise ConfigurationError(
            f'Cannot set both "domain" and "router" for "{name}". Configure the domain on the Router instead.'
        )
    if props.router is not None and props.edge is not None:
        raise ConfigurationError(
            f'Cannot set both "edge" and "router" for "{name}". Configure edge functions on the Router instead.'
        )
    if props.protection not in ("none", "oac"):
        raise ConfigurationError(f'Unsupported protection {props.protection!r} for "{name}". Use "none" or "oac".')
    timeout = props.server.timeout
    if timeout and to_seconds(timeout) > CLOUDFRONT_RESPONSE_TIMEOUT and not props.server.allow_long_timeout:
        raise ConfigurationError(
            f'Server timeout for "{name}" is longer than the CloudFront response timeout of '
            f"{CLOUDFRONT_RESPONSE_TIMEOUT} seconds. Request a quota increase from AWS Support and set "
            '"allow_long_timeout" to use it.'
        )


class SsrSite(Construct):
    """Base component for a framework's server-rendered site.

    Subclasses must override ``build_plan(site_path)`` to read the framework's
    build output and return a ``Plan``; it is called once from ``__init__``
    after the build runs. ``default_build_command(site_path)`` may be
    overridden to supply a command when none is configured.
    """

    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        *,
        context: AppContext,
        props: SsrSiteProps | None = None,
    ) -> None:
        super().__init__(scope, construct_id)
        props = props or SsrSiteProps()
        _validate_props(construct_id, props)
        self.context = context
        self.props = props
        self.link_name = construct_id
        self.site_path = (context.root / props.path).resolve()

        stack = Stack.of(self)
        if props.regions is None and Token.is_unresolved(stack.region):
            self.regions: tuple[str, ...] = (stack.region,)
        else:
            self.regions = normalize_regions(props.regions, default=stack.region)
        self.multi_region = len(self.regions) > 1 or self.regions[0] != stack.region
        if self.multi_region and (Token.is_unresolved(stack.region) or Token.is_unresolved(stack.account)):
            raise ConfigurationError(
                f'"{construct_id}" deploys servers to other regions; give its stack an explicit account and region.'
            )

        self._build()

        self.bucket = s3.Bucket(
            self,
            "Assets",
            **apply_transform(
                props.transform.assets,
                {
                    "bucket_name": self.physical_name("assets", 63, lowercase=True),
                    "encryption": s3.BucketEncryption.S3_MANAGED,
                    "block_public_access": s3.BlockPublicAccess.BLOCK_ALL,
                    "enforce_ssl": True,
                    "auto_delete_objects": True,
                    "removal_policy": RemovalPolicy.DESTROY,
                },
            ),
        )

        route = props.router
        self.plan: Plan = validate_plan(
            self.build_plan(self.site_path),
            path_prefix=route.path_prefix if route else None,
        )

        self.read_timeout = to_seconds(self._server_option("timeout", self.plan.server) or DEFAULT_TIMEOUT)
        self.servers: list[lambda_.Function] = []
        server_origins: list[ServerOrigin] = []
        if self.plan.server is not None:
            self._stage_copy_files(self.plan.server)
            for region in self.regions:
                function, host = self._create_server(region, self.plan.server)
                self.servers.append(function)
                server_origins.append(ServerOrigin(region=region, host=host))

        self.image_optimizer: lambda_.Function | None = None
        image_host = None
        if self.plan.image_optimizer is not None:
            self.image_optimizer, image_host = self._create_image_optimizer(self.plan.image_optimizer.function)

        deployments = self._upload_assets(route.path_prefix if route else None)

        self.namespace = kv_namespace(context.app_name, context.stage, construct_id)
        asset_index = index_assets(self.plan, self.site_path)
        metadata = site_metadata(
            self.plan,
            bucket_domain=self.bucket.bucket_regional_domain_name,
            routes=asset_index.routes,
            servers=server_origins,
            image_host=image_host,
            read_timeout=self.read_timeout,
            protection=props.protection,
        )

        if route is None:
            self.kv_store = cloudfront.KeyValueStore(self, "KeyValueStore")
        else:
            self.kv_store = route.router.kv_store
        self.kv_entries = KvNamespaceEntries(
            self,
            "KvEntries",
            store=self.kv_store,
            namespace=self.namespace,
            files=asset_index.files,
            inline={"metadata": Stack.of(self).to_json_string(metadata)},
        )
        for deployment in deployments:
            self.kv_entries.node.add_dependency(deployment)

        if route is None:
            self.distribution = self._create_distribution(props)
            self.distribution_id = self.distribution.distribution_id
            self.url = router_url(
                f"https://{self.distribution.distribution_domain_name}",
                domain=props.domain.name if props.domain else None,
                path_prefix=None,
            )
        else:
            route.router.write_entries(self.kv_entries)
            route.router.grant_bucket_read(self.bucket)
            route_resource = route.router.add_route_entry(
                self,
                "RouteEntry",
                route_type="site",
                namespace=self.namespace,
                domain=route.domain,
                path=route.path,
            )
            route_resource.node.add_dependency(self.kv_entries)
            self.distribution = None
            self.distribution_id = route.router.distribution.distribution_id
            self.url = router_url(
                route.router.url,
                domain=route.domain if route.domain and "*" not in route.domain else None,
                path_prefix=route.path_prefix,
            )

        if props.protection == "oac":
            for function in [*self.servers, *([self.image_optimizer] if self.image_optimizer else [])]:
                self._allow_cloudfront_invoke(function)

        self._create_invalidation(props.invalidation, deployments)

        CfnOutput(self, "Url", value=self.url, description=f"URL of the {construct_id} site")
        CfnOutput(self, "BucketName", value=self.bucket.bucket_name)

    # Subclass hooks

    def build_plan(self, site_path: Path) -> Plan:
        raise NotImplementedError(f"{type(self).__name__} must override build_plan")

    def default_build_command(self, site_path: Path) -> str | None:
        return None

    # Helpers available to subclasses

    def physical_name(self, suffix: str, max_length: int, *, lowercase: bool = False) -> str | None:
        """Explicit name for resources referenced from other regions; ``None`` lets CDK name them."""
        if not self.multi_region:
            return None
        stack = Stack.of(self)
        digest = hashlib.md5(f"{stack.account}/{stack.region}/{self.node.path}".encode("utf-8")).hexdigest()[:8]
        name = prefix_name(
            max_length - len(suffix) - len(digest) - 2,
            self.node.id,
            app_name=self.context.app_name,
            stage=self.context.stage,
        )
        value = f"{name}-{suffix}-{digest}"
        return value.lower() if lowercase else value

    @property
    def bucket_arn(self) -> str:
        name = self.physical_name("assets", 63, lowercase=True)
        return f"arn:{Aws.PARTITION}:s3:::{name}" if name else self.bucket.bucket_arn

    @property
    def bucket_name(self) -> str:
        return self.physical_name("assets", 63, lowercase=True) or self.bucket.bucket_name

    def get_link(self) -> LinkDefinition:
        return LinkDefinition(properties={"url": self.url})

    # Internals

    def _build(self) -> None:
        if build_skipped():
            logger.info("Build of %s skipped", self.node.id)
            return
        command = resolve_build_command(
            self.site_path,
            root=self.context.root,
            command=self.props.build_command or self.default_build_command(self.site_path),
        )
        environment = {
            **self.props.environment,
            **build_link_environment(self.props.link),
            **app_link_environment(self.context.app_name, self.context.stage),
        }
        run_build(command, self.site_path, environment=environment)

    def _server_option(self, name: str, spec: ServerSpec | None) -> str | None:
        value = getattr(self.props.server, name)
        if value:
            return value
        return getattr(spec, name) if spec is not None else None

    def _stage_copy_files(self, spec: ServerSpec) -> None:
        for copy in spec.copy_files:
            destination = spec.bundle / copy.destination
            destination.parent.mkdir(parents=True, exist_ok=True)
            shutil.copy2(copy.source, destination)

    def _scope_for_region(self, region: str) -> Construct:
        stack = Stack.of(self)
        if region == stack.region:
            return self
        app = self.node.root
        regional_id = f"{stack.stack_name}-{region}"
        existing = app.node.try_find_child(regional_id) if isinstance(app, App) else None
        if isinstance(existing, Stack):
            return existing
        return Stack(
            app,
            regional_id,
            env=Environment(account=stack.account, region=region),
            cross_region_references=True,
        )

    def _function_kwargs(self, spec: ServerSpec, *, description: str, memory_default: str, architecture_default: str) -> dict:
        memory = self._server_option("memory", spec) or memory_default
        architecture = self._server_option("architecture", spec) or architecture_default
        runtime = self._server_option("runtime", spec) or DEFAULT_RUNTIME
        environment = {
            **self.props.environment,
            **build_link_environment(self.props.link, to_json=Stack.of(self).to_json_string),
            **app_link_environment(self.context.app_name, self.context.stage),
            **spec.environment,
        }
        return {
            "description": spec.description or description,
            "runtime": lambda_.Runtime(runtime, lambda_.RuntimeFamily.NODEJS),
            "handler": spec.handler,
            "code": lambda_.Code.from_asset(str(spec.bundle)),
            "architecture": lambda_.Architecture.ARM_64 if architecture == "arm64" else lambda_.Architecture.X86_64,
            "memory_size": to_mbs(memory),
            "timeout": Duration.seconds(self.read_timeout),
            "environment": environment,
        }

    def _add_url(self, function: lambda_.Function, *, streaming: bool) -> str:
        url = function.add_function_url(
            auth_type=(
                lambda_.FunctionUrlAuthType.AWS_IAM
                if self.props.protection == "oac"
                else lambda_.FunctionUrlAuthType.NONE
            ),
            invoke_mode=lambda_.InvokeMode.RESPONSE_STREAM if streaming else lambda_.InvokeMode.BUFFERED,
        )
        return Fn.select(2, Fn.split("/", url.url))

    def _create_server(self, region: str, spec: ServerSpec) -> tuple[lambda_.Function, str]:
        scope = self._scope_for_region(region)
        construct_id = "Server" if scope is self else f"{logical_name(self.node.path)}Server"
        kwargs = self._function_kwargs(
            spec,
            description=f"{self.node.id} server",
            memory_default=DEFAULT_MEMORY,
            architecture_default=DEFAULT_ARCHITECTURE,
        )
        function = lambda_.Function(scope, construct_id, **apply_transform(self.props.transform.server, kwargs))

        statements = [
            Permission(actions=("cloudfront:CreateInvalidation",), resources=("*",)),
            *self.props.permissions,
            *spec.permissions,
        ]
        for permission in statements:
            function.add_to_role_policy(
                iam.PolicyStatement(actions=list(permission.actions), resources=list(permission.resources))
            )
        logger.info("%s: server in %s", self.node.id, region)
        return function, self._add_url(function, streaming=spec.streaming)

    def _create_image_optimizer(self, spec: ServerSpec) -> tuple[lambda_.Function, str]:
        kwargs = self._function_kwargs(
            spec,
            description=f"{self.node.id} image optimizer",
            memory_default=spec.memory or "1536 MB",
            architecture_default=spec.architecture or "arm64",
        )
        # Server overrides do not apply to the image optimizer.
        kwargs["memory_size"] = to_mbs(spec.memory or "1536 MB")
        kwargs["architecture"] = (
            lambda_.Architecture.X86_64 if spec.architecture == "x86_64" else lambda_.Architecture.ARM_64
        )
        kwargs["runtime"] = lambda_.Runtime(spec.runtime or DEFAULT_RUNTIME, lambda_.RuntimeFamily.NODEJS)
        kwargs["timeout"] = Duration.seconds(25)
        function = lambda_.Function(
            self,
            "ImageOptimizer",
            **apply_transform(self.props.transform.image_optimizer, kwargs),
        )
        self.bucket.grant_read(function)
        return function, self._add_url(function, streaming=False)

    def _allow_cloudfront_invoke(self, function: lambda_.Function) -> None:
        function.add_permission(
            "AllowCloudFrontInvoke",
            principal=iam.ServicePrincipal("cloudfront.amazonaws.com"),
            action="lambda:InvokeFunctionUrl",
            function_url_auth_type=lambda_.FunctionUrlAuthType.AWS_IAM,
            source_account=Stack.of(function).account,
        )

    def _upload_assets(self, path_prefix: str | None) -> list[s3_deployment.BucketDeployment]:
        groups = plan_uploads(self.plan, self.site_path, path_prefix=path_prefix, options=self.props.assets)
        staging_root = staging_dir(self, "assets", logical_name(self.node.path))
        deployments = []
        for index, group in enumerate(groups):
            metadata_kwargs = {}
            if group.cache_control:
                metadata_kwargs["cache_control"] = [s3_deployment.CacheControl.from_string(group.cache_control)]
            if group.content_type:
                metadata_kwargs["content_type"] = group.content_type
            deployments.append(
                s3_deployment.BucketDeployment(
                    self,
                    f"AssetFiles{index}",
                    destination_bucket=self.bucket,
                    destination_key_prefix=group.key_prefix or None,
                    sources=[s3_deployment.Source.asset(str(stage_upload_group(group, staging_root)))],
                    prune=False,
                    memory_limit=1024,
                    **metadata_kwargs,
                )
            )
        return deployments

    def _create_distribution(self, props: SsrSiteProps) -> cloudfront.Distribution:
        edge = props.edge or EdgeOptions()
        request_function = cloudfront.Function(
            self,
            "RequestFunction",
            **apply_transform(
                props.transform.request_function,
                {
                    "runtime": cloudfront.FunctionRuntime.JS_2_0,
                    "key_value_store": self.kv_store,
                    "code": cloudfront.FunctionCode.from_inline(
                        site_request_function(self.namespace, user_injection=edge.viewer_request or "")
                    ),
                },
            ),
        )
        function_associations = [
            cloudfront.FunctionAssociation(
                event_type=cloudfront.FunctionEventType.VIEWER_REQUEST,
                function=request_function,
            )
        ]
        if edge.viewer_response:
            function_associations.append(
                cloudfront.FunctionAssociation(
                    event_type=cloudfront.FunctionEventType.VIEWER_RESPONSE,
                    function=cloudfront.Function(
                        self,
                        "ResponseFunction",
                        runtime=cloudfront.FunctionRuntime.JS_2_0,
                        code=cloudfront.FunctionCode.from_inline(viewer_response_function(edge.viewer_response)),
                    ),
                )
            )

        kwargs = {
            "comment": f"{self.context.app_name} {self.context.stage} {self.node.id} site",
            "http_version": cloudfront.HttpVersion.HTTP2_AND_3,
            "default_behavior": cloudfront.BehaviorOptions(
                origin=origins.S3BucketOrigin.with_origin_access_control(self.bucket),
                viewer_protocol_policy=cloudfront.ViewerProtocolPolicy.REDIRECT_TO_HTTPS,
                allowed_methods=cloudfront.AllowedMethods.ALLOW_ALL,
                cached_methods=cloudfront.CachedMethods.CACHE_GET_HEAD_OPTIONS,
                compress=True,
                cache_policy=site_cache_policy(self, "CachePolicy"),
                origin_request_policy=cloudfront.OriginRequestPolicy.ALL_VIEWER_EXCEPT_HOST_HEADER,
                function_associations=function_associations,
            ),
        }
        if props.domain is not None:
            kwargs["domain_names"] = props.domain.names
            kwargs["certificate"] = resolve_certificate(self, props.domain)

        distribution = cloudfront.Distribution(
            self,
            "Distribution",
            **apply_transform(props.transform.distribution, kwargs),
        )
        distribution.node.add_dependency(self.kv_entries)
        if props.domain is not None:
            alias_records(self, distribution, props.domain)
        return distribution

    def _create_invalidation(
        self,
        settings: InvalidationSettings | Literal[False],
        deployments: Sequence[s3_deployment.BucketDeployment],
    ) -> None:
        if settings is False:
            return
        paths = invalidation_paths(self.plan, settings)
        if not paths:
            return
        build_id = invalidation_build_id(self.plan, self.site_path, settings)
        call = custom_resources.AwsSdkCall(
            service="CloudFront",
            action="createInvalidation",
            parameters={
                "DistributionId": self.distribution_id,
                "InvalidationBatch": {
                    "CallerReference": build_id,
                    "Paths": {"Quantity": len(paths), "Items": paths},
                },
            },
            physical_resource_id=custom_resources.PhysicalResourceId.of(build_id),
        )
        invalidation = custom_resources.AwsCustomResource(
            self,
            "Invalidation",
            on_update=call,
            policy=custom_resources.AwsCustomResourcePolicy.from_statements(
                [iam.PolicyStatement(actions=["cloudfront:CreateInvalidation"], resources=["*"])]
            ),
            install_latest_aws_sdk=False,
        )
        invalidation.node.add_dependency(self.kv_entries)
        for deployment in deployments:
            invalidation.node.add_dependency(deployment)
        logger.info("%s: invalidating %s for build %s", self.node.id, paths, build_id)
