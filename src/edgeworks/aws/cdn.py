"""CloudFront pieces shared by sites, the router and redirects."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

from aws_cdk import Duration, Stack, Token
from aws_cdk import aws_certificatemanager as acm
from aws_cdk import aws_cloudfront as cloudfront
from aws_cdk import aws_route53 as route53
from aws_cdk import aws_route53_targets as route53_targets
from constructs import Construct

from ..errors import ConfigurationError

CACHE_KEY_HEADER = "x-open-next-cache-key"


@dataclass(frozen=True)
class DomainOptions:
    """Custom domain served by a distribution.

    ``cert`` is an ACM certificate ARN in us-east-1. Without it, a
    DNS-validated certificate is created in ``hosted_zone``, which requires the
    stack to be deployed to us-east-1.
    """

    name: str
    aliases: tuple[str, ...] = ()
    cert: str | None = None
    hosted_zone: str | None = None

    @property
    def names(self) -> list[str]:
        return [self.name, *self.aliases]


@dataclass(frozen=True)
class EdgeOptions:
    """JavaScript run at the start of the generated viewer functions."""

    viewer_request: str | None = None
    viewer_response: str | None = None


def site_cache_policy(scope: Construct, construct_id: str) -> cloudfront.CachePolicy:
    """Servers decide what is cacheable; the edge function computes the cache key header."""
    return cloudfront.CachePolicy(
        scope,
        construct_id,
        comment="Server response cache policy",
        default_ttl=Duration.seconds(0),
        max_ttl=Duration.days(365),
        min_ttl=Duration.seconds(0),
        enable_accept_encoding_brotli=True,
        enable_accept_encoding_gzip=True,
        cookie_behavior=cloudfront.CacheCookieBehavior.none(),
        header_behavior=cloudfront.CacheHeaderBehavior.allow_list(CACHE_KEY_HEADER),
        query_string_behavior=cloudfront.CacheQueryStringBehavior.all(),
    )


def _hosted_zone(scope: Construct, domain: DomainOptions) -> route53.IHostedZone:
    if not domain.hosted_zone:
        raise ConfigurationError(f'Set "hosted_zone" or "cert" for the domain "{domain.name}".')
    return route53.HostedZone.from_lookup(scope, "HostedZone", domain_name=domain.hosted_zone)


def resolve_certificate(scope: Construct, domain: DomainOptions) -> acm.ICertificate:
    if domain.cert:
        return acm.Certificate.from_certificate_arn(scope, "Certificate", domain.cert)
    region = Stack.of(scope).region
    if Token.is_unresolved(region) or region != "us-east-1":
        raise ConfigurationError(
            f'CloudFront certificates must live in us-east-1. Pass "cert" for the domain '
            f'"{domain.name}" or deploy this stack to us-east-1.'
        )
    return acm.Certificate(
        scope,
        "Certificate",
        domain_name=domain.name,
        subject_alternative_names=list(domain.aliases) or None,
        validation=acm.CertificateValidation.from_dns(_hosted_zone(scope, domain)),
    )


def alias_records(
    scope: Construct,
    distribution: cloudfront.IDistribution,
    domain: DomainOptions,
    names: Sequence[str] | None = None,
) -> list[route53.ARecord]:
    """A/AAAA alias records for each name when the zone is managed here."""
    if not domain.hosted_zone:
        return []
    zone = scope.node.try_find_child("HostedZone") or _hosted_zone(scope, domain)
    target = route53.RecordTarget.from_alias(route53_targets.CloudFrontTarget(distribution))
    records = []
    for index, name in enumerate(names or domain.names):
        records.append(route53.ARecord(scope, f"AliasRecord{index}", zone=zone, record_name=name, target=target))
        route53.AaaaRecord(scope, f"AliasRecordIpv6{index}", zone=zone, record_name=name, target=target)
    return records

