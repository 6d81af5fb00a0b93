"""
DynamoDB-backed versioned store.

Conditional patches use an UpdateExpression guarded by
``attribute_exists(version) AND version = :expected``. DynamoDB rejects a
failed guard with ConditionalCheckFailedException, which is translated into
VersionConflictError here so nothing above this module looks at AWS error
codes. boto3 is blocking, so every call runs in a worker thread.
"""
import asyncio
import logging
from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence

import boto3
from boto3.dynamodb.conditions import Attr, Key
from botocore.exceptions import ClientError

from config.settings import settings

from ..errors import EntityAlreadyExists, VersionConflictError
from .base import INITIAL_VERSION, VERSION_ATTRIBUTE, VersionedStore

logger = logging.getLogger("store.dynamodb")

CONDITIONAL_CHECK_FAILED = "ConditionalCheckFailedException"


def create_dynamodb_resource():
    """
    Create a DynamoDB resource for the current environment.

    When DYNAMODB_ENDPOINT_URL is set, connects to DynamoDB Local instead of AWS.
    """
    if settings.dynamodb_endpoint_url:
        return boto3.resource(
            "dynamodb",
            endpoint_url=settings.dynamodb_endpoint_url,
            region_name=settings.aws_region,
            aws_access_key_id="fakeMyKeyId",
            aws_secret_access_key="fakeSecretAccessKey",
        )
    return boto3.resource("dynamodb", region_name=settings.aws_region)


def _to_dynamo(value: Any) -> Any:
    """Convert Python values into types boto3 accepts (floats become Decimal)."""
    if isinstance(value, float):
        return Decimal(str(value))
    if isinstance(value, dict):
        return {k: _to_dynamo(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_to_dynamo(v) for v in value]
    return value


def _from_dynamo(value: Any) -> Any:
    """Convert boto3 Decimals back into int/float."""
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    if isinstance(value, dict):
        return {k: _from_dynamo(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_from_dynamo(v) for v in value]
    return value


def _is_conditional_check_failed(error: ClientError) -> bool:
    return error.response.get("Error", {}).get("Code") == CONDITIONAL_CHECK_FAILED


class DynamoVersionedStore(VersionedStore):
    """
    Versioned store over one DynamoDB table.

    Args:
        table_name: DynamoDB table name
        entity_name: Name used in errors and logs (e.g. "user")
        key_fields: Attributes forming the table's primary key
        indexes: Map of attribute name -> GSI name for find_by lookups;
                 attributes without an index fall back to a filtered scan
        resource: Optional boto3 DynamoDB resource
    """

    def __init__(
        self,
        table_name: str,
        entity_name: str,
        key_fields: Sequence[str] = ("id",),
        indexes: Optional[Dict[str, str]] = None,
        resource: Any = None,
    ):
        super().__init__(entity_name, key_fields)
        self._resource = resource or create_dynamodb_resource()
        self._table = self._resource.Table(table_name)
        self._indexes = dict(indexes or {})

    # ========================================================================
    # Internal helpers (run in worker threads)
    # ========================================================================

    def _get_sync(self, key: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        response = self._table.get_item(Key=key, ConsistentRead=True)
        item = response.get("Item")
        return _from_dynamo(item) if item is not None else None

    def _patch_sync(
        self,
        key: Dict[str, Any],
        changes: Dict[str, Any],
        expected_version: int,
    ) -> Dict[str, Any]:
        names = {"#version": VERSION_ATTRIBUTE}
        values: Dict[str, Any] = {":expected": expected_version}
        assignments = []

        for i, (attribute, value) in enumerate(changes.items()):
            # Key attributes cannot be updated in DynamoDB
            if attribute in self.key_fields:
                continue
            if attribute == VERSION_ATTRIBUTE:
                placeholder = "#version"
            else:
                placeholder = f"#a{i}"
                names[placeholder] = attribute
            values[f":v{i}"] = _to_dynamo(value)
            assignments.append(f"{placeholder} = :v{i}")

        if not assignments:
            raise ValueError(f"No attributes to update on {self.entity_name} {key}")

        try:
            response = self._table.update_item(
                Key=key,
                UpdateExpression="SET " + ", ".join(assignments),
                ConditionExpression="attribute_exists(#version) AND #version = :expected",
                ExpressionAttributeNames=names,
                ExpressionAttributeValues=values,
                ReturnValues="ALL_NEW",
            )
        except ClientError as exc:
            if _is_conditional_check_failed(exc):
                raise VersionConflictError(self.entity_name, key, expected_version) from exc
            raise

        return _from_dynamo(response["Attributes"])

    def _create_sync(self, item: Dict[str, Any]) -> Dict[str, Any]:
        key = self.key_of(item)
        record = dict(item)
        record.setdefault(VERSION_ATTRIBUTE, INITIAL_VERSION)

        try:
            self._table.put_item(
                Item=_to_dynamo(record),
                ConditionExpression="attribute_not_exists(#k)",
                ExpressionAttributeNames={"#k": self.key_fields[0]},
            )
        except ClientError as exc:
            if _is_conditional_check_failed(exc):
                raise EntityAlreadyExists(self.entity_name, key) from exc
            raise
        return record

    def _delete_sync(self, key: Dict[str, Any]) -> None:
        self._table.delete_item(Key=key)

    def _find_by_sync(self, attribute: str, value: Any) -> List[Dict[str, Any]]:
        index_name = self._indexes.get(attribute)
        if index_name:
            kwargs = {
                "IndexName": index_name,
                "KeyConditionExpression": Key(attribute).eq(_to_dynamo(value)),
            }
            operation = self._table.query
        else:
            kwargs = {"FilterExpression": Attr(attribute).eq(_to_dynamo(value))}
            operation = self._table.scan

        items: List[Dict[str, Any]] = []
        while True:
            response = operation(**kwargs)
            items.extend(_from_dynamo(item) for item in response.get("Items", []))
            last_key = response.get("LastEvaluatedKey")
            if not last_key:
                return items
            kwargs["ExclusiveStartKey"] = last_key

    # ========================================================================
    # VersionedStore interface
    # ========================================================================

    async def get(self, key: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        return await asyncio.to_thread(self._get_sync, key)

    async def conditional_patch(
        self,
        key: Dict[str, Any],
        changes: Dict[str, Any],
        expected_version: int,
    ) -> Dict[str, Any]:
        record = await asyncio.to_thread(self._patch_sync, key, changes, expected_version)
        logger.debug(
            f"Patched {self.entity_name} {key} "
            f"(version {expected_version} -> {record.get(VERSION_ATTRIBUTE)})"
        )
        return record

    async def create(self, item: Dict[str, Any]) -> Dict[str, Any]:
        return await asyncio.to_thread(self._create_sync, item)

    async def delete(self, key: Dict[str, Any]) -> None:
        await asyncio.to_thread(self._delete_sync, key)

    async def find_by(self, attribute: str, value: Any) -> List[Dict[str, Any]]:
        return await asyncio.to_thread(self._find_by_sync, attribute, value)
