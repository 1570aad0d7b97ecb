"""Custom resource handler that writes routing records to a CloudFront KeyValueStore.

Two kinds of resources are handled:

``entries``
    Every key of one namespace. File entries are read from an S3 object,
    since sites can have thousands of files; keys of the namespace that are
    no longer wanted are deleted.
``route``
    One entry of a router's ``<routerNs>:routes`` list.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Iterable, Mapping

from edgeworks.routing import merge_route_entries, parse_routes_value, remove_route_entry

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)

MAX_KEYS_PER_UPDATE = 50


def _kvs_client() -> Any:
    import boto3

    return boto3.client("cloudfront-keyvaluestore", region_name="us-east-1")


def _s3_client() -> Any:
    import boto3

    return boto3.client("s3")


class KeyValueStoreWriter:
    """Writes through ``UpdateKeys`` keeping track of the store's ETag."""

    def __init__(self, client: Any, kvs_arn: str) -> None:
        self._client = client
        self._arn = kvs_arn
        self._etag: str | None = None

    def _current_etag(self) -> str:
        if self._etag is None:
            self._etag = self._client.describe_key_value_store(KvsARN=self._arn)["ETag"]
        return self._etag

    def get(self, key: str) -> str | None:
        try:
            return self._client.get_key(KvsARN=self._arn, Key=key)["Value"]
        except self._client.exceptions.ResourceNotFoundException:
            return None

    def keys_with_prefix(self, prefix: str) -> list[str]:
        keys: list[str] = []
        kwargs: dict[str, Any] = {"KvsARN": self._arn}
        while True:
            page = self._client.list_keys(**kwargs)
            keys.extend(item["Key"] for item in page.get("Items", []) if item["Key"].startswith(prefix))
            token = page.get("NextToken")
            if not token:
                return keys
            kwargs["NextToken"] = token

    def update(self, puts: Mapping[str, str], deletes: Iterable[str] = ()) -> None:
        operations = [("put", key, value) for key, value in sorted(puts.items())]
        operations.extend(("delete", key, None) for key in sorted(set(deletes) - set(puts)))
        for start in range(0, len(operations), MAX_KEYS_PER_UPDATE):
            batch = operations[start : start + MAX_KEYS_PER_UPDATE]
            response = self._client.update_keys(
                KvsARN=self._arn,
                IfMatch=self._current_etag(),
                Puts=[{"Key": key, "Value": value} for kind, key, value in batch if kind == "put"],
                Deletes=[{"Key": key} for kind, key, _ in batch if kind == "delete"],
            )
            self._etag = response["ETag"]


def _load_entries(properties: Mapping[str, Any], s3_client: Any) -> dict[str, str]:
    """File entries come from S3, inline ``Entries`` (such as metadata) are added on top."""
    entries: dict[str, str] = {}
    if properties.get("EntriesBucket"):
        body = s3_client.get_object(Bucket=properties["EntriesBucket"], Key=properties["EntriesKey"])["Body"]
        payload = json.loads(body.read())
        if not isinstance(payload, dict):
            raise ValueError("KV entries object must be a JSON object")
        entries.update((str(key), str(value)) for key, value in payload.items())
    entries.update(properties.get("Entries") or {})
    return entries


def sync_namespace(
    writer: KeyValueStoreWriter,
    namespace: str,
    entries: Mapping[str, str],
    *,
    purge: bool = True,
) -> None:
    """Make the namespace hold exactly ``entries`` (keys given without the namespace)."""
    prefix = f"{namespace}:"
    puts = {f"{prefix}{key}": value for key, value in entries.items()}
    stale = [key for key in writer.keys_with_prefix(prefix) if key not in puts] if purge else []
    logger.info("Namespace %s: writing %d key(s), deleting %d", namespace, len(puts), len(stale))
    writer.update(puts, stale)


def clear_namespace(writer: KeyValueStoreWriter, namespace: str) -> None:
    keys = writer.keys_with_prefix(f"{namespace}:")
    logger.info("Namespace %s: deleting %d key(s)", namespace, len(keys))
    writer.update({}, keys)


def update_route(writer: KeyValueStoreWriter, router_namespace: str, entry: str | None, namespace: str) -> None:
    """Add or replace (``entry`` set) or remove (``entry`` is ``None``) a route."""
    key = f"{router_namespace}:routes"
    existing = parse_routes_value(writer.get(key))
    routes = merge_route_entries(existing, entry) if entry else remove_route_entry(existing, namespace)
    writer.update({key: json.dumps(routes)})


def on_event(event: Mapping[str, Any], context: Any = None, *, kvs_client: Any = None, s3_client: Any = None) -> dict[str, Any]:
    request_type = event["RequestType"]
    properties = event["ResourceProperties"]
    kind = properties["Kind"]
    kvs_arn = properties["KvStoreArn"]
    namespace = properties["Namespace"]
    physical_id = f"{kvs_arn}/{kind}/{namespace}"
    writer = KeyValueStoreWriter(kvs_client or _kvs_client(), kvs_arn)

    try:
        if kind == "entries":
            if request_type == "Delete":
                clear_namespace(writer, namespace)
            else:
                entries = _load_entries(properties, s3_client or _s3_client())
                sync_namespace(writer, namespace, entries, purge=str(properties.get("Purge", "true")) == "true")
        elif kind == "route":
            router_namespace = properties["RouterNamespace"]
            entry = None if request_type == "Delete" else properties["RouteEntry"]
            update_route(writer, router_namespace, entry, namespace)
        else:
            raise ValueError(f"Unknown KV resource kind {kind!r}")
    except Exception:
        logger.exception("KV %s %s failed for namespace %s", kind, request_type, namespace)
        raise

    return {"PhysicalResourceId": physical_id}
