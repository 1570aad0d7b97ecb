"""Synthesis tests for the CDK constructs; skipped when node is not installed."""

from __future__ import annotations

import json
import os
import shutil
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

from edgeworks.build import SKIP_BUILD_ENV
from edgeworks.context import AppContext
from edgeworks.errors import ConfigurationError

NODE_AVAILABLE = shutil.which("node") is not None

if NODE_AVAILABLE:
    import aws_cdk as cdk
    from aws_cdk.assertions import Match, Template

    from edgeworks.aws import (
        Astro,
        Auth,
        AuthIssuer,
        AuthProps,
        Cluster,
        ClusterProps,
        DomainOptions,
        HttpsRedirect,
        HttpsRedirectProps,
        Nextjs,
        NextjsProps,
        OpenSearch,
        OpenSearchProps,
        Router,
        RouterAttachment,
        SsrSite,
        SsrSiteProps,
    )
    from edgeworks.component_args import ClusterVpcArgs, OpenSearchSettings


def _write(path: Path, content: str = "x") -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")


def _write_astro_build(root: Path, *, output_mode: str = "server") -> None:
    meta = {
        "pluginVersion": "3.1.2",
        "outputMode": output_mode,
        "responseMode": "buffer",
        "base": "/",
        "clientBuildOutputDir": "dist/client",
        "clientBuildVersionedSubDir": "_astro",
    }
    _write(root / "dist" / "sst.buildMeta.json", json.dumps(meta))
    _write(root / "dist" / "client" / "index.html", "<html></html>")
    _write(root / "dist" / "client" / "_astro" / "app.abc123.js")
    _write(root / "dist" / "server" / "entry.mjs", "export const handler = () => {};")


def _write_open_next_build(root: Path, *, incremental_cache: bool = True) -> None:
    manifest = {
        "edgeFunctions": {},
        "origins": {
            "default": {"handler": "index.handler", "bundle": ".open-next/server-functions/default", "streaming": True},
            "imageOptimizer": {"handler": "index.handler", "bundle": ".open-next/image-optimization-function"},
        },
        "additionalProps": {
            "revalidationFunction": {"handler": "index.handler", "bundle": ".open-next/revalidation-function"},
            "initializationFunction": {"handler": "index.handler", "bundle": ".open-next/initialization-function"},
        },
    }
    if not incremental_cache:
        manifest["additionalProps"]["disableIncrementalCache"] = True
    _write(root / ".open-next" / "open-next.output.json", json.dumps(manifest))
    for bundle in ("server-functions/default", "image-optimization-function", "revalidation-function", "dynamodb-provider"):
        _write(root / ".open-next" / bundle / "index.mjs", "export const handler = () => {};")
    _write(root / ".open-next" / "assets" / "favicon.ico")
    _write(root / ".open-next" / "assets" / "_next" / "static" / "main.js")
    if incremental_cache:
        _write(root / ".open-next" / "cache" / "abc123" / "index.cache")
    _write(root / ".next" / "BUILD_ID", "abc123")
    _write(root / ".next" / "routes-manifest.json", json.dumps({"basePath": ""}))
    _write(root / ".next" / "prerender-manifest.json", json.dumps({"routes": {"/": {}}}))


@unittest.skipUnless(NODE_AVAILABLE, "CDK synthesis needs a node binary")
class _ConstructTestCase(unittest.TestCase):
    def setUp(self) -> None:
        temp_dir = tempfile.TemporaryDirectory()
        self.addCleanup(temp_dir.cleanup)
        self.root = Path(temp_dir.name)
        patcher = patch.dict(os.environ, {SKIP_BUILD_ENV: "1"})
        patcher.start()
        self.addCleanup(patcher.stop)
        self.app = cdk.App(
            outdir=str(self.root / "cdk.out"),
            context={"aws:cdk:bundling-stacks": []},
        )

    def context(self, **versions: int) -> AppContext:
        return AppContext(app_name="shop", stage="dev", root=self.root, component_versions=versions)

    def stack(self, construct_id: str = "Stack", **kwargs) -> "cdk.Stack":
        return cdk.Stack(self.app, construct_id, **kwargs)


class SiteTests(_ConstructTestCase):
    def test_astro_site_with_own_distribution(self) -> None:
        _write_astro_build(self.root / "web")
        stack = self.stack()
        site = Astro(stack, "Web", context=self.context(), props=SsrSiteProps(path="web"))

        template = Template.from_stack(stack)
        template.resource_count_is("AWS::CloudFront::Distribution", 1)
        template.resource_count_is("AWS::CloudFront::KeyValueStore", 1)
        template.resource_count_is("Custom::EdgeworksKvEntries", 1)
        template.has_resource_properties(
            "AWS::Lambda::Url",
            {"AuthType": "NONE", "InvokeMode": "BUFFERED"},
        )
        template.has_resource_properties(
            "AWS::CloudFront::Function",
            {"FunctionConfig": Match.object_like({"Runtime": "cloudfront-js-2.0"})},
        )
        self.assertEqual(len(site.servers), 1)
        self.assertEqual(site.regions, (stack.region,))

    def test_static_astro_site_has_no_server(self) -> None:
        _write_astro_build(self.root / "web", output_mode="static")
        stack = self.stack()
        Astro(stack, "Web", context=self.context(), props=SsrSiteProps(path="web"))

        template = Template.from_stack(stack)
        template.resource_count_is("AWS::Lambda::Url", 0)
        template.resource_count_is("Custom::EdgeworksKvEntries", 1)

    def test_nextjs_site_creates_revalidation_resources(self) -> None:
        _write_open_next_build(self.root / "web")
        stack = self.stack()
        site = Nextjs(stack, "Web", context=self.context(), props=NextjsProps(path="web"))

        self.assertIsNotNone(site.revalidation_queue)
        self.assertIsNotNone(site.revalidation_table)
        template = Template.from_stack(stack)
        template.has_resource_properties("AWS::SQS::Queue", {"FifoQueue": True, "ReceiveMessageWaitTimeSeconds": 20})
        template.has_resource_properties(
            "AWS::DynamoDB::Table",
            {"GlobalSecondaryIndexes": [Match.object_like({"IndexName": "revalidate"})]},
        )
        template.has_resource_properties("AWS::Lambda::Url", {"InvokeMode": "RESPONSE_STREAM"})
        template.has_resource_properties("AWS::Lambda::EventSourceMapping", {"BatchSize": 5})

    def test_nextjs_site_without_incremental_cache(self) -> None:
        _write_open_next_build(self.root / "web", incremental_cache=False)
        stack = self.stack()
        site = Nextjs(stack, "Web", context=self.context(), props=NextjsProps(path="web"))

        self.assertIsNone(site.revalidation_queue)
        template = Template.from_stack(stack)
        template.resource_count_is("AWS::SQS::Queue", 0)
        template.resource_count_is("Custom::EdgeworksKvEntries", 1)
        template.resource_count_is("Custom::CDKBucketDeployment", 2)

    def test_base_site_needs_a_framework_plan(self) -> None:
        with self.assertRaisesRegex(NotImplementedError, "SsrSite must override build_plan"):
            SsrSite(self.stack(), "Web", context=self.context(), props=SsrSiteProps(path="web"))

    def test_router_and_domain_are_exclusive(self) -> None:
        _write_astro_build(self.root / "web")
        stack = self.stack()
        router = Router(stack, "Router", context=self.context())
        with self.assertRaisesRegex(ConfigurationError, "domain"):
            Astro(
                stack,
                "Web",
                context=self.context(),
                props=SsrSiteProps(
                    path="web",
                    router=RouterAttachment(router),
                    domain=DomainOptions(name="example.com", cert="arn:aws:acm:us-east-1:123456789012:certificate/x"),
                ),
            )

    def test_multi_region_servers_use_sibling_stacks(self) -> None:
        _write_astro_build(self.root / "web")
        stack = self.stack(
            "Main",
            env=cdk.Environment(account="123456789012", region="us-east-1"),
            cross_region_references=True,
        )
        site = Astro(
            stack,
            "Web",
            context=self.context(),
            props=SsrSiteProps(path="web", regions=["us-east-1", "eu-west-1"]),
        )

        self.assertEqual(len(site.servers), 2)
        sibling = self.app.node.try_find_child("Main-eu-west-1")
        self.assertIsInstance(sibling, cdk.Stack)
        Template.from_stack(sibling).resource_properties_count_is(
            "AWS::Lambda::Function",
            {"Handler": "entry.handler"},
            1,
        )
        self.assertTrue(site.bucket_name.startswith("shop-dev-web-assets-"))

    def test_multi_region_needs_concrete_environment(self) -> None:
        _write_astro_build(self.root / "web")
        with self.assertRaisesRegex(ConfigurationError, "explicit account and region"):
            Astro(
                self.stack(),
                "Web",
                context=self.context(),
                props=SsrSiteProps(path="web", regions=["us-east-1", "eu-west-1"]),
            )


class RouterTests(_ConstructTestCase):
    def test_url_routes_and_attached_sites(self) -> None:
        _write_astro_build(self.root / "web")
        stack = self.stack()
        router = Router(stack, "Router", context=self.context())
        router.route("/api", "https://api.example.com")
        site = Astro(
            stack,
            "Web",
            context=self.context(),
            props=SsrSiteProps(path="web", router=RouterAttachment(router)),
        )

        self.assertIsNone(site.distribution)
        template = Template.from_stack(stack)
        template.resource_count_is("AWS::CloudFront::Distribution", 1)
        template.resource_count_is("Custom::EdgeworksKvRoute", 2)
        template.resource_count_is("Custom::EdgeworksKvEntries", 2)
        template.has_resource_properties(
            "Custom::EdgeworksKvRoute",
            {"RouteEntry": Match.string_like_regexp("^url,[0-9a-f]{4},,/api$")},
        )
        template.has_resource_properties(
            "AWS::CloudFront::Distribution",
            {
                "DistributionConfig": Match.object_like(
                    {"Origins": [Match.object_like({"DomainName": "placeholder.edgeworks.invalid"})]}
                )
            },
        )


class VersionedComponentTests(_ConstructTestCase):
    def issuer(self) -> "AuthIssuer":
        _write(self.root / "issuer" / "index.mjs", "export const handler = () => {};")
        return AuthIssuer(bundle=str(self.root / "issuer"))

    def test_auth_records_version_and_storage(self) -> None:
        stack = self.stack()
        auth = Auth(stack, "Auth", context=self.context(), props=AuthProps(issuer=self.issuer()))

        template = Template.from_stack(stack)
        template.has_output("AuthComponentVersion", {"Value": "2"})
        template.has_resource_properties(
            "AWS::DynamoDB::Table",
            {"TimeToLiveSpecification": {"AttributeName": "expiry", "Enabled": True}},
        )
        template.has_resource_properties(
            "AWS::Lambda::Function",
            {"Environment": {"Variables": Match.object_like({"OPENAUTH_STORAGE": Match.any_value()})}},
        )
        self.assertEqual(auth.get_link().environment, {"OPENAUTH_ISSUER": auth.url})

    def test_auth_upgrade_needs_force(self) -> None:
        with self.assertRaisesRegex(ConfigurationError, "OpenAuth"):
            Auth(self.stack(), "Auth", context=self.context(Auth=1), props=AuthProps(issuer=self.issuer()))

        Auth(
            self.stack("Forced"),
            "Auth",
            context=self.context(Auth=1),
            props=AuthProps(issuer=self.issuer(), force_upgrade="v2"),
        )

    def test_cluster(self) -> None:
        stack = self.stack()
        vpc = ClusterVpcArgs(id="vpc-1", security_groups=("sg-1",), container_subnets=("subnet-a",))
        Cluster(stack, "Cluster", context=self.context(), props=ClusterProps(vpc=vpc))

        template = Template.from_stack(stack)
        template.has_resource_properties(
            "AWS::ECS::Cluster",
            {
                "CapacityProviders": ["FARGATE", "FARGATE_SPOT"],
                "Tags": [{"Key": "edgeworks:ref:version", "Value": "2.0"}],
            },
        )
        template.has_output("ClusterComponentVersion", {"Value": "2"})

    def test_cluster_reference_checks_minor_version(self) -> None:
        vpc = ClusterVpcArgs(id="vpc-1", security_groups=(), container_subnets=("subnet-a",))
        arn = "arn:aws:ecs:us-east-1:123456789012:cluster/shop-dev-Cluster"
        cluster = Cluster.get(self.stack(), "Cluster", context=self.context(), cluster_arn=arn, vpc=vpc, version_tag="2.0")
        self.assertEqual(cluster.cluster_name, "shop-dev-Cluster")

        with self.assertRaisesRegex(ConfigurationError, "minor changes"):
            Cluster.get(self.stack("Other"), "Cluster", context=self.context(), cluster_arn=arn, vpc=vpc, version_tag="2.1")


class SupportingComponentTests(_ConstructTestCase):
    def test_opensearch_domain(self) -> None:
        stack = self.stack()
        search = OpenSearch(stack, "Search", context=self.context())

        template = Template.from_stack(stack)
        template.has_resource_properties(
            "AWS::OpenSearchService::Domain",
            {
                "EngineVersion": "OpenSearch_2.17",
                "ClusterConfig": Match.object_like({"InstanceType": "t3.small.search", "InstanceCount": 1}),
                "EBSOptions": Match.object_like({"VolumeSize": 10, "VolumeType": "gp3"}),
                "NodeToNodeEncryptionOptions": {"Enabled": True},
            },
        )
        template.has_resource_properties(
            "AWS::SecretsManager::Secret",
            {"GenerateSecretString": Match.object_like({"GenerateStringKey": "password", "PasswordLength": 32})},
        )
        self.assertEqual(set(search.get_link().properties), {"username", "password", "url"})

    def test_opensearch_elasticsearch_engine(self) -> None:
        stack = self.stack()
        OpenSearch(
            stack,
            "Search",
            context=self.context(),
            props=OpenSearchProps(settings=OpenSearchSettings(version="Elasticsearch_7.10")),
        )

        Template.from_stack(stack).has_resource_properties(
            "AWS::OpenSearchService::Domain",
            {"EngineVersion": "Elasticsearch_7.10"},
        )

    def test_opensearch_rejects_unknown_engine(self) -> None:
        with self.assertRaisesRegex(ConfigurationError, "Invalid engine version"):
            OpenSearch(
                self.stack(),
                "Search",
                context=self.context(),
                props=OpenSearchProps(settings=OpenSearchSettings(version="2.17")),
            )

    def test_https_redirect(self) -> None:
        stack = self.stack()
        HttpsRedirect(
            stack,
            "Redirect",
            props=HttpsRedirectProps(
                target_domain="example.com",
                source_domains=["www.example.com"],
                cert="arn:aws:acm:us-east-1:123456789012:certificate/abc",
            ),
        )

        template = Template.from_stack(stack)
        template.has_resource_properties(
            "AWS::S3::Bucket",
            {"WebsiteConfiguration": {"RedirectAllRequestsTo": {"HostName": "example.com", "Protocol": "https"}}},
        )
        template.has_resource_properties(
            "AWS::CloudFront::Distribution",
            {
                "DistributionConfig": Match.object_like(
                    {"Aliases": ["www.example.com"], "Comment": "Redirect to example.com from www.example.com"}
                )
            },
        )

    def test_https_redirect_needs_certificate_or_zone(self) -> None:
        with self.assertRaisesRegex(ConfigurationError, "cert"):
            HttpsRedirect(
                self.stack(),
                "Redirect",
                props=HttpsRedirectProps(target_domain="example.com", source_domains=["www.example.com"]),
            )


if __name__ == "__main__":
    unittest.main()
