"""Shared CloudFront distribution that routes by host and path to URLs, buckets and sites."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from aws_cdk import CfnOutput, Stack
from aws_cdk import aws_cloudfront as cloudfront
from aws_cdk import aws_cloudfront_origins as origins
from aws_cdk import aws_iam as iam
from aws_cdk import aws_s3 as s3
from constructs import Construct, IConstruct

from ..context import AppContext
from ..edge_functions import router_request_function, viewer_response_function
from ..link import LinkDefinition
from ..naming import kv_namespace
from ..routing import (
    RouteType,
    UrlRouteOptions,
    normalize_path_prefix,
    parse_pattern,
    route_entry,
    router_url,
    url_route_metadata,
)
from ..transform import TransformHook, apply_transform
from .cdn import DomainOptions, EdgeOptions, alias_records, resolve_certificate, site_cache_policy
from .kv_store import KvNamespaceEntries, KvRouteEntry

logger = logging.getLogger(__name__)

PLACEHOLDER_ORIGIN = "placeholder.edgeworks.invalid"


@dataclass(frozen=True)
class RouterTransforms:
    distribution: TransformHook | None = None
    request_function: TransformHook | None = None


@dataclass(frozen=True)
class RouterProps:
    domain: DomainOptions | None = None
    edge: EdgeOptions = field(default_factory=EdgeOptions)
    block_cloudfront_url: bool = False
    transform: RouterTransforms = field(default_factory=RouterTransforms)


@dataclass(frozen=True)
class RouterAttachment:
    """Serve a site through ``router`` under ``domain`` (may start with ``*.``) and ``path``."""

    router: "Router"
    domain: str | None = None
    path: str | None = None

    @property
    def path_prefix(self) -> str:
        return normalize_path_prefix(self.path) or "/"


class Router(Construct):
    """One distribution whose viewer-request function looks routes up in a KeyValueStore."""

    link_name: str

    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        *,
        context: AppContext,
        props: RouterProps | None = None,
    ) -> None:
        super().__init__(scope, construct_id)
        props = props or RouterProps()
        self.context = context
        self.link_name = construct_id
        self.domain = props.domain
        self.namespace = kv_namespace(context.app_name, context.stage, construct_id)
        self._last_write: IConstruct | None = None

        self.kv_store = cloudfront.KeyValueStore(self, "KeyValueStore")

        request_function = cloudfront.Function(
            self,
            "RequestFunction",
            **apply_transform(
                props.transform.request_function,
                {
                    "runtime": cloudfront.FunctionRuntime.JS_2_0,
                    "key_value_store": self.kv_store,
                    "code": cloudfront.FunctionCode.from_inline(
                        router_request_function(
                            self.namespace,
                            user_injection=props.edge.viewer_request or "",
                            block_cloudfront_url=props.block_cloudfront_url,
                        )
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
        if props.edge.viewer_response:
            response_function = cloudfront.Function(
                self,
                "ResponseFunction",
                runtime=cloudfront.FunctionRuntime.JS_2_0,
                code=cloudfront.FunctionCode.from_inline(viewer_response_function(props.edge.viewer_response)),
            )
            function_associations.append(
                cloudfront.FunctionAssociation(
                    event_type=cloudfront.FunctionEventType.VIEWER_RESPONSE,
                    function=response_function,
                )
            )

        distribution_kwargs = {
            "comment": f"{context.app_name} {context.stage} {construct_id} router",
            "http_version": cloudfront.HttpVersion.HTTP2_AND_3,
            "default_behavior": cloudfront.BehaviorOptions(
                origin=origins.HttpOrigin(PLACEHOLDER_ORIGIN),
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
            distribution_kwargs["domain_names"] = props.domain.names
            distribution_kwargs["certificate"] = resolve_certificate(self, props.domain)

        self.distribution = cloudfront.Distribution(
            self,
            "Distribution",
            **apply_transform(props.transform.distribution, distribution_kwargs),
        )
        if props.domain is not None:
            alias_records(self, self.distribution, props.domain)

        self.distribution_arn = Stack.of(self).format_arn(
            service="cloudfront",
            region="",
            resource="distribution",
            resource_name=self.distribution.distribution_id,
        )
        self.url = router_url(
            f"https://{self.distribution.distribution_domain_name}",
            domain=props.domain.name if props.domain else None,
            path_prefix=None,
        )

        CfnOutput(self, "Url", value=self.url, description=f"URL of the {construct_id} router")
        CfnOutput(self, "DistributionId", value=self.distribution.distribution_id)

    def _serialize(self, resource: IConstruct) -> None:
        """KV writes use optimistic locking, so writes in one stack run one at a time."""
        if self._last_write is not None and Stack.of(self._last_write) is Stack.of(resource):
            resource.node.add_dependency(self._last_write)
        self._last_write = resource

    def _route_namespace(self, pattern: str) -> str:
        return kv_namespace(self.context.app_name, self.context.stage, f"{self.node.id}{pattern}")

    def add_route_entry(self, scope: Construct, construct_id: str, *, route_type: RouteType, namespace: str, domain: str | None, path: str | None) -> KvRouteEntry:
        """Register ``namespace`` under the host and path; used by sites attaching themselves."""
        pattern = parse_pattern(f"{domain or ''}{normalize_path_prefix(path) or '/'}")
        entry = KvRouteEntry(
            scope,
            construct_id,
            store=self.kv_store,
            router_namespace=self.namespace,
            namespace=namespace,
            entry=route_entry(route_type, namespace, pattern),
        )
        self._serialize(entry)
        return entry

    def write_entries(self, entries: KvNamespaceEntries) -> None:
        self._serialize(entries)

    def route(self, pattern: str, url: str, options: UrlRouteOptions | None = None) -> None:
        """Send requests matching ``pattern`` (``"api.example.com/v1"`` or ``"/docs"``) to ``url``."""
        namespace = self._route_namespace(pattern)
        metadata = url_route_metadata(url, options)
        self._add_route(pattern, "url", namespace, metadata)

    def route_bucket(self, pattern: str, bucket: s3.IBucket, *, rewrite: UrlRouteOptions | None = None) -> None:
        """Serve a bucket's objects under ``pattern`` through origin access control."""
        namespace = self._route_namespace(pattern)
        metadata: dict = {"domain": bucket.bucket_regional_domain_name, "origin": {}}
        if rewrite is not None and rewrite.rewrite_regex is not None:
            metadata["rewrite"] = {"regex": rewrite.rewrite_regex, "to": rewrite.rewrite_to}
        self.grant_bucket_read(bucket)
        self._add_route(pattern, "bucket", namespace, metadata)

    def grant_bucket_read(self, bucket: s3.IBucket) -> None:
        bucket.add_to_resource_policy(
            iam.PolicyStatement(
                actions=["s3:GetObject"],
                resources=[bucket.arn_for_objects("*")],
                principals=[iam.ServicePrincipal("cloudfront.amazonaws.com")],
                conditions={"StringEquals": {"AWS:SourceArn": self.distribution_arn}},
            )
        )

    def _add_route(self, pattern: str, route_type: RouteType, namespace: str, metadata: dict) -> None:
        route_id = f"Route{namespace}"
        entries = KvNamespaceEntries(
            self,
            f"{route_id}Metadata",
            store=self.kv_store,
            namespace=namespace,
            files={},
            inline={"metadata": Stack.of(self).to_json_string(metadata)},
        )
        self.write_entries(entries)
        parsed = parse_pattern(pattern)
        entry = KvRouteEntry(
            self,
            route_id,
            store=self.kv_store,
            router_namespace=self.namespace,
            namespace=namespace,
            entry=route_entry(route_type, namespace, parsed),
        )
        self._serialize(entry)
        logger.info("Router %s: %s route %s -> %s", self.node.id, route_type, pattern, namespace)

    def get_link(self) -> LinkDefinition:
        return LinkDefinition(properties={"url": self.url})
