"""Custom resources that write site and route records into a KeyValueStore."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Mapping

from aws_cdk import BundlingOptions, CustomResource, Duration, Stack, Stage
from aws_cdk import aws_cloudfront as cloudfront
from aws_cdk import aws_iam as iam
from aws_cdk import aws_lambda as lambda_
from aws_cdk import aws_s3_assets as s3_assets
from aws_cdk import custom_resources
from constructs import Construct

from ..handlers import stage_handler_bundle

_PROVIDER_ID = "EdgeworksKvStoreProvider"


def staging_dir(scope: Construct, *parts: str) -> Path:
    """Directory under the cloud assembly outdir for files generated at synth time."""
    path = Path(Stage.of(scope).outdir) / ".edgeworks" / Path(*parts)
    path.mkdir(parents=True, exist_ok=True)
    return path


class KvStoreProvider(Construct):
    """One handler function and provider per stack, shared by every KV resource."""

    def __init__(self, scope: Construct, construct_id: str) -> None:
        super().__init__(scope, construct_id)

        self.handler = lambda_.Function(
            self,
            "Handler",
            runtime=lambda_.Runtime.PYTHON_3_12,
            handler="edgeworks.handlers.kv_store.on_event",
            code=lambda_.Code.from_asset(
                str(stage_handler_bundle(staging_dir(self, "kv-handler"))),
                # KeyValueStore requests are SigV4A signed, which needs awscrt.
                bundling=BundlingOptions(
                    image=lambda_.Runtime.PYTHON_3_12.bundling_image,
                    command=[
                        "bash",
                        "-c",
                        "pip install --no-cache-dir 'boto3[crt]' -t /asset-output && cp -r /asset-input/. /asset-output/",
                    ],
                ),
            ),
            timeout=Duration.minutes(5),
            memory_size=512,
            description="Writes routing records to CloudFront KeyValueStores",
        )
        self.provider = custom_resources.Provider(self, "Provider", on_event_handler=self.handler)
        self._granted: set[str] = set()

    @classmethod
    def of(cls, scope: Construct) -> "KvStoreProvider":
        stack = Stack.of(scope)
        existing = stack.node.try_find_child(_PROVIDER_ID)
        if isinstance(existing, cls):
            return existing
        return cls(stack, _PROVIDER_ID)

    def grant_store(self, store: cloudfront.IKeyValueStore) -> None:
        key = store.node.path
        if key in self._granted:
            return
        self._granted.add(key)
        self.handler.add_to_role_policy(
            iam.PolicyStatement(
                actions=[
                    "cloudfront-keyvaluestore:DescribeKeyValueStore",
                    "cloudfront-keyvaluestore:GetKey",
                    "cloudfront-keyvaluestore:ListKeys",
                    "cloudfront-keyvaluestore:UpdateKeys",
                ],
                resources=[store.key_value_store_arn],
            )
        )


class KvNamespaceEntries(Construct):
    """Keeps every ``<namespace>:<key>`` record of one site in sync.

    ``files`` are static and shipped as a JSON asset; ``inline`` values may
    contain unresolved tokens and are passed as resource properties.
    """

    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        *,
        store: cloudfront.IKeyValueStore,
        namespace: str,
        files: Mapping[str, str],
        inline: Mapping[str, str],
    ) -> None:
        super().__init__(scope, construct_id)
        provider = KvStoreProvider.of(self)
        provider.grant_store(store)

        properties = {
            "Kind": "entries",
            "KvStoreArn": store.key_value_store_arn,
            "Namespace": namespace,
            "Entries": dict(inline),
            "Purge": "true",
        }
        if files:
            entries_file = staging_dir(self, "kv-entries") / f"{namespace}.json"
            entries_file.write_text(json.dumps(dict(files), sort_keys=True), encoding="utf-8")
            entries_asset = s3_assets.Asset(self, "Files", path=str(entries_file))
            entries_asset.grant_read(provider.handler)
            properties["EntriesBucket"] = entries_asset.s3_bucket_name
            properties["EntriesKey"] = entries_asset.s3_object_key

        self.resource = CustomResource(
            self,
            "Resource",
            service_token=provider.provider.service_token,
            resource_type="Custom::EdgeworksKvEntries",
            properties=properties,
        )


class KvRouteEntry(Construct):
    """One ``type,namespace,host,path`` entry in a router's route list."""

    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        *,
        store: cloudfront.IKeyValueStore,
        router_namespace: str,
        namespace: str,
        entry: str,
    ) -> None:
        super().__init__(scope, construct_id)
        provider = KvStoreProvider.of(self)
        provider.grant_store(store)

        self.resource = CustomResource(
            self,
            "Resource",
            service_token=provider.provider.service_token,
            resource_type="Custom::EdgeworksKvRoute",
            properties={
                "Kind": "route",
                "KvStoreArn": store.key_value_store_arn,
                "RouterNamespace": router_namespace,
                "Namespace": namespace,
                "RouteEntry": entry,
            },
        )
