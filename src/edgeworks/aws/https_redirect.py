"""Redirect every request for a set of domains to another domain over HTTPS."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

from aws_cdk import CfnOutput, RemovalPolicy
from aws_cdk import aws_cloudfront as cloudfront
from aws_cdk import aws_cloudfront_origins as origins
from aws_cdk import aws_s3 as s3
from constructs import Construct

from ..component_args import redirect_comment
from ..edge_functions import redirect_request_function
from ..errors import ConfigurationError
from .cdn import DomainOptions, alias_records, resolve_certificate


@dataclass(frozen=True)
class HttpsRedirectProps:
    target_domain: str
    source_domains: Sequence[str]
    cert: str | None = None
    hosted_zone: str | None = None


class HttpsRedirect(Construct):
    def __init__(self, scope: Construct, construct_id: str, *, props: HttpsRedirectProps) -> None:
        super().__init__(scope, construct_id)
        if not props.source_domains:
            raise ConfigurationError(f'"{construct_id}" needs at least one source domain.')
        if not props.cert and not props.hosted_zone:
            raise ConfigurationError(
                f'Provide a validated certificate via "cert" for "{construct_id}" when no hosted zone is set.'
            )
        domain = DomainOptions(
            name=props.source_domains[0],
            aliases=tuple(props.source_domains[1:]),
            cert=props.cert,
            hosted_zone=props.hosted_zone,
        )

        self.bucket = s3.Bucket(
            self,
            "Bucket",
            website_redirect=s3.RedirectTarget(
                host_name=props.target_domain,
                protocol=s3.RedirectProtocol.HTTPS,
            ),
            encryption=s3.BucketEncryption.S3_MANAGED,
            block_public_access=s3.BlockPublicAccess.BLOCK_ALL,
            removal_policy=RemovalPolicy.DESTROY,
            auto_delete_objects=True,
        )

        request_function = cloudfront.Function(
            self,
            "RequestFunction",
            code=cloudfront.FunctionCode.from_inline(redirect_request_function()),
            runtime=cloudfront.FunctionRuntime.JS_2_0,
        )
        self.distribution = cloudfront.Distribution(
            self,
            "Distribution",
            comment=redirect_comment(props.target_domain, list(props.source_domains)),
            domain_names=domain.names,
            certificate=resolve_certificate(self, domain),
            price_class=cloudfront.PriceClass.PRICE_CLASS_ALL,
            default_behavior=cloudfront.BehaviorOptions(
                origin=origins.S3StaticWebsiteOrigin(self.bucket),
                viewer_protocol_policy=cloudfront.ViewerProtocolPolicy.REDIRECT_TO_HTTPS,
                allowed_methods=cloudfront.AllowedMethods.ALLOW_GET_HEAD_OPTIONS,
                cached_methods=cloudfront.CachedMethods.CACHE_GET_HEAD,
                cache_policy=cloudfront.CachePolicy.CACHING_OPTIMIZED,
                function_associations=[
                    cloudfront.FunctionAssociation(
                        function=request_function,
                        event_type=cloudfront.FunctionEventType.VIEWER_REQUEST,
                    )
                ],
            ),
        )
        alias_records(self, self.distribution, domain)

        CfnOutput(self, "DistributionId", value=self.distribution.distribution_id)
        CfnOutput(self, "DistributionDomain", value=self.distribution.distribution_domain_name)
