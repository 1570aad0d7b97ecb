"""Next.js builds produced by OpenNext."""

from __future__ import annotations

import json
import logging
import math
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping

from ..errors import BuildOutputError
from ..plan import AssetCopy, ImageOptimizerSpec, IsrCacheCopy, Permission, Plan, ServerSpec
from ..semver import is_a_lt_b, is_a_lte_b
from . import read_json

logger = logging.getLogger(__name__)

DEFAULT_OPEN_NEXT_VERSION = "3.9.14"
DEFAULT_OPEN_NEXT_VERSION_NEXT14 = "3.6.6"
SEEDER_BUNDLE = ".open-next/dynamodb-provider"

REVALIDATION_QUEUE_ACTIONS = ("sqs:SendMessage", "sqs:GetQueueAttributes", "sqs:GetQueueUrl")
REVALIDATION_TABLE_ACTIONS = (
    "dynamodb:BatchGetItem",
    "dynamodb:GetRecords",
    "dynamodb:GetShardIterator",
    "dynamodb:Query",
    "dynamodb:GetItem",
    "dynamodb:Scan",
    "dynamodb:ConditionCheckItem",
    "dynamodb:BatchWriteItem",
    "dynamodb:PutItem",
    "dynamodb:UpdateItem",
    "dynamodb:DeleteItem",
    "dynamodb:DescribeTable",
)


@dataclass(frozen=True)
class OpenNextFunction:
    handler: str
    bundle: str
    streaming: bool = False


@dataclass(frozen=True)
class OpenNextBuild:
    build_id: str
    base: str | None
    server: OpenNextFunction
    image_optimizer: OpenNextFunction
    prerendered_route_count: int = 0
    revalidation_function: OpenNextFunction | None = None
    initialization_function: OpenNextFunction | None = None
    disable_incremental_cache: bool = False
    disable_tag_cache: bool = False

    @property
    def has_revalidation_queue(self) -> bool:
        return not self.disable_incremental_cache and self.revalidation_function is not None

    @property
    def has_revalidation_table(self) -> bool:
        return not self.disable_tag_cache

    @property
    def has_revalidation_seeder(self) -> bool:
        return self.has_revalidation_table and self.initialization_function is not None


@dataclass(frozen=True)
class ImageOptimization:
    memory: str = "1536 MB"
    static_etag: bool = False


@dataclass(frozen=True)
class CacheResources:
    """Names and ARNs (usually CDK tokens) of the resources the server caches to."""

    bucket_name: str
    bucket_arn: str
    bucket_region: str
    queue_url: str | None = None
    queue_arn: str | None = None
    queue_region: str | None = None
    table_name: str | None = None
    table_arn: str | None = None


def detect_open_next_version(site_path: Path) -> str:
    package_json = site_path / "package.json"
    try:
        package = json.loads(package_json.read_text(encoding="utf-8"))
        dependencies = package.get("dependencies") or {}
        dev_dependencies = package.get("devDependencies") or {}
        next_version = dependencies.get("next") or dev_dependencies.get("next")
        if next_version and is_a_lt_b(next_version, "15.0.0"):
            return DEFAULT_OPEN_NEXT_VERSION_NEXT14
    except (OSError, ValueError, AttributeError):
        logger.warning(
            "Failed to detect the Next.js version in %s; using OpenNext v%s",
            package_json,
            DEFAULT_OPEN_NEXT_VERSION,
        )
    return DEFAULT_OPEN_NEXT_VERSION


def default_build_command(site_path: Path, open_next_version: str | None = None) -> str:
    """OpenNext was published as ``open-next`` up to 3.1.3 and ``@opennextjs/aws`` after."""
    version = open_next_version or detect_open_next_version(site_path)
    package_name = "open-next" if is_a_lte_b(version, "3.1.3") else "@opennextjs/aws"
    return f"npx --yes {package_name}@{version} build"


def _function(value: Any, key: str) -> OpenNextFunction:
    if not isinstance(value, Mapping) or not value.get("handler") or not value.get("bundle"):
        raise BuildOutputError(
            f'"{key}" is missing from open-next.output.json. Rebuild with a supported OpenNext version.'
        )
    return OpenNextFunction(
        handler=str(value["handler"]),
        bundle=str(value["bundle"]),
        streaming=bool(value.get("streaming", False)),
    )


def load_build_output(output_path: Path, *, name: str) -> OpenNextBuild:
    rebuild = "Ensure your Next.js app was built successfully with OpenNext."
    manifest = read_json(
        output_path / ".open-next" / "open-next.output.json",
        what="OpenNext output",
        hint=rebuild,
    )
    if manifest.get("edgeFunctions"):
        raise BuildOutputError(
            "Lambda@Edge functions are not supported. Update your OpenNext configuration to use "
            'the standard Lambda runtime and deploy to multiple regions with the "regions" option.'
        )

    build_id_path = output_path / ".next" / "BUILD_ID"
    if not build_id_path.is_file():
        raise BuildOutputError(f'Build ID not found in ".next/BUILD_ID" for site "{name}". {rebuild}')
    build_id = build_id_path.read_text(encoding="utf-8").strip()

    routes_manifest = read_json(
        output_path / ".next" / "routes-manifest.json",
        what="Routes manifest",
        hint="Check your Next.js configuration.",
    )
    if not isinstance(routes_manifest, Mapping) or "basePath" not in routes_manifest:
        raise BuildOutputError(
            f'Base path configuration not found in ".next/routes-manifest.json" for site "{name}". '
            "Check your Next.js configuration."
        )
    base = routes_manifest["basePath"] or None

    route_count = 0
    prerender_path = output_path / ".next" / "prerender-manifest.json"
    try:
        prerender = json.loads(prerender_path.read_text(encoding="utf-8"))
        route_count = len(prerender.get("routes") or {})
    except (OSError, ValueError, AttributeError) as exc:
        logger.debug("Failed to load %s: %s", prerender_path, exc)

    origins = manifest.get("origins") or {}
    additional = manifest.get("additionalProps") or {}
    revalidation = additional.get("revalidationFunction")
    initialization = additional.get("initializationFunction")

    return OpenNextBuild(
        build_id=build_id,
        base=base,
        server=_function(origins.get("default"), "origins.default"),
        image_optimizer=_function(origins.get("imageOptimizer"), "origins.imageOptimizer"),
        prerendered_route_count=route_count,
        revalidation_function=(
            _function(revalidation, "additionalProps.revalidationFunction") if revalidation else None
        ),
        # The manifest points the initializer at a directory OpenNext does not
        # emit; the DynamoDB provider bundle holds the seeding handler.
        initialization_function=(
            OpenNextFunction(handler="index.handler", bundle=SEEDER_BUNDLE) if initialization else None
        ),
        disable_incremental_cache=bool(additional.get("disableIncrementalCache", False)),
        disable_tag_cache=bool(additional.get("disableTagCache", False)),
    )


def seeder_memory(prerendered_route_count: int) -> int:
    """128 MB per 4,000 prerendered routes, between 128 MB and 10 GB."""
    return min(10240, max(128, math.ceil(prerendered_route_count / 4000) * 128))


def build_plan(
    build: OpenNextBuild,
    output_path: Path,
    *,
    name: str,
    resources: CacheResources,
    image_optimization: ImageOptimization | None = None,
) -> Plan:
    image_optimization = image_optimization or ImageOptimization()

    environment = {
        "CACHE_BUCKET_NAME": resources.bucket_name,
        "CACHE_BUCKET_KEY_PREFIX": "_cache",
        "CACHE_BUCKET_REGION": resources.bucket_region,
    }
    permissions = [
        Permission(
            actions=("s3:GetObject", "s3:PutObject", "s3:DeleteObject"),
            resources=(f"{resources.bucket_arn}/*",),
        ),
        Permission(actions=("s3:ListBucket",), resources=(resources.bucket_arn,)),
    ]
    if resources.queue_url and resources.queue_arn:
        environment["REVALIDATION_QUEUE_URL"] = resources.queue_url
        environment["REVALIDATION_QUEUE_REGION"] = resources.queue_region or resources.bucket_region
        permissions.append(Permission(actions=REVALIDATION_QUEUE_ACTIONS, resources=(resources.queue_arn,)))
    if resources.table_name and resources.table_arn:
        environment["CACHE_DYNAMO_TABLE"] = resources.table_name
        permissions.append(
            Permission(
                actions=REVALIDATION_TABLE_ACTIONS,
                resources=(resources.table_arn, f"{resources.table_arn}/*"),
            )
        )

    image_environment = {"BUCKET_NAME": resources.bucket_name, "BUCKET_KEY_PREFIX": "_assets"}
    if image_optimization.static_etag:
        image_environment["OPENNEXT_STATIC_ETAG"] = "true"

    return Plan(
        base=build.base,
        build_id=build.build_id,
        server=ServerSpec(
            description=f"{name} server",
            bundle=output_path / build.server.bundle,
            handler=build.server.handler,
            streaming=build.server.streaming,
            runtime="nodejs20.x",
            environment=environment,
            permissions=tuple(permissions),
        ),
        image_optimizer=ImageOptimizerSpec(
            prefix="/_next/image",
            function=ServerSpec(
                description=f"{name} image optimizer",
                bundle=output_path / build.image_optimizer.bundle,
                handler=build.image_optimizer.handler,
                runtime="nodejs20.x",
                architecture="arm64",
                memory=image_optimization.memory,
                environment=image_environment,
            ),
        ),
        assets=(
            AssetCopy(
                source=".open-next/assets",
                destination="_assets",
                cached=True,
                versioned_subdir="_next",
                deep_route="_next",
            ),
        ),
        isr_cache=IsrCacheCopy(source=".open-next/cache", destination="_cache"),
    )
