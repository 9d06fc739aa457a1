"""DynamoDB-backed store for every inventory table.

One table per entity, partition key `id`. Numbers go in as Decimal and come
back out as int/float. Joined display fields (product name, vendor name, ...)
are resolved here so resources never deal with foreign keys.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from decimal import Decimal
from functools import reduce
from typing import Any, Callable, Optional

import boto3
from boto3.dynamodb.conditions import Attr
from boto3.dynamodb.types import TypeSerializer
from botocore.exceptions import ClientError

from smartshelf.models.inventory import utc_now_iso

logger = logging.getLogger(__name__)

TABLES = (
    "products",
    "transactions",
    "purchase_orders",
    "purchase_order_items",
    "stock_requests",
    "alerts",
    "audit_logs",
    "vendors",
    "categories",
    "profiles",
)

# Tables carrying an updated_at column
UPDATABLE_TABLES = {"products", "purchase_orders", "stock_requests", "vendors", "profiles"}
# purchase_order_items has no timestamps at all
UNTIMESTAMPED_TABLES = {"purchase_order_items"}


@dataclass(frozen=True)
class Relation:
    column: str
    table: str
    fields: dict


RELATIONS: dict[str, list[Relation]] = {
    "products": [
        Relation("category_id", "categories", {"name": "category_name"}),
        Relation("vendor_id", "vendors", {"name": "vendor_name"}),
    ],
    "transactions": [
        Relation("product_id", "products", {"name": "product_name", "sku": "product_sku"}),
    ],
    "stock_requests": [
        Relation("product_id", "products", {"name": "product_name", "sku": "product_sku"}),
        Relation("vendor_id", "vendors", {"name": "vendor_name"}),
    ],
    "purchase_orders": [
        Relation("vendor_id", "vendors", {"name": "vendor_name", "email": "vendor_email"}),
    ],
    "purchase_order_items": [
        Relation("product_id", "products", {"name": "product_name", "sku": "product_sku"}),
    ],
}

# parent table -> (child table, foreign key on child, key the children land under)
CHILDREN: dict[str, tuple[str, str, str]] = {
    "purchase_orders": ("purchase_order_items", "purchase_order_id", "items"),
}


class StoreError(Exception):
    """A DynamoDB call failed."""


class ConditionFailedError(StoreError):
    """A conditional write was refused: row missing or changed since it was read."""


def to_dynamo(value: Any) -> Any:
    if isinstance(value, bool):
        return value
    if isinstance(value, float):
        return Decimal(str(value))
    if isinstance(value, dict):
        return {k: to_dynamo(v) for k, v in value.items()}
    if isinstance(value, list):
        return [to_dynamo(v) for v in value]
    return value


def from_dynamo(value: Any) -> Any:
    if isinstance(value, Decimal):
        return int(value) if value == int(value) else float(value)
    if isinstance(value, dict):
        return {k: from_dynamo(v) for k, v in value.items()}
    if isinstance(value, list):
        return [from_dynamo(v) for v in value]
    return value


def _sort_key(column: str) -> Callable[[dict], tuple]:
    def key(row: dict) -> tuple:
        value = row.get(column)
        return (value is None, value if value is not None else "")
    return key


def _error_code(error: ClientError) -> str:
    return error.response.get("Error", {}).get("Code", "")


class BackingStore:
    def __init__(
        self,
        dynamodb_resource: Optional[Any] = None,
        region_name: str = "us-west-2",
        table_prefix: str = "",
    ):
        self.region_name = region_name
        self.table_prefix = table_prefix
        self.dynamodb = dynamodb_resource or boto3.resource("dynamodb", region_name=region_name)
        self._serializer = TypeSerializer()

    @classmethod
    def from_settings(cls, settings: Any, dynamodb_resource: Optional[Any] = None) -> BackingStore:
        return cls(
            dynamodb_resource=dynamodb_resource,
            region_name=settings.region,
            table_prefix=settings.table_prefix,
        )

    def table_name(self, table: str) -> str:
        if table not in TABLES:
            raise ValueError(f"Unknown table: {table}")
        return f"{self.table_prefix}{table}"

    def _table(self, table: str) -> Any:
        return self.dynamodb.Table(self.table_name(table))

    # --- Reads ---

    def select(
        self,
        table: str,
        filters: Optional[dict] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> list[dict]:
        """Scans a table with equality filters (list values mean "one of")."""
        kwargs: dict[str, Any] = {}
        conditions = []
        for column, value in (filters or {}).items():
            if isinstance(value, (list, tuple, set)):
                conditions.append(Attr(column).is_in([to_dynamo(v) for v in value]))
            else:
                conditions.append(Attr(column).eq(to_dynamo(value)))
        if conditions:
            kwargs["FilterExpression"] = reduce(lambda a, b: a & b, conditions)

        dynamo_table = self._table(table)
        rows: list[dict] = []
        try:
            while True:
                response = dynamo_table.scan(**kwargs)
                rows.extend(response.get("Items", []))
                last_key = response.get("LastEvaluatedKey")
                if not last_key:
                    break
                kwargs["ExclusiveStartKey"] = last_key
        except ClientError as e:
            raise StoreError(f"select on {table} failed: {e}") from e

        rows = [from_dynamo(row) for row in rows]
        if order_by:
            rows.sort(key=_sort_key(order_by), reverse=descending)
        if limit is not None:
            rows = rows[:limit]
        return rows

    def get(self, table: str, row_id: str) -> Optional[dict]:
        try:
            response = self._table(table).get_item(Key={"id": row_id})
        except ClientError as e:
            raise StoreError(f"get on {table}/{row_id} failed: {e}") from e
        item = response.get("Item")
        return from_dynamo(item) if item else None

    def count(self, table: str, filters: Optional[dict] = None) -> int:
        kwargs: dict[str, Any] = {"Select": "COUNT"}
        if filters:
            kwargs["FilterExpression"] = reduce(
                lambda a, b: a & b, [Attr(k).eq(to_dynamo(v)) for k, v in filters.items()]
            )
        dynamo_table = self._table(table)
        total = 0
        try:
            while True:
                response = dynamo_table.scan(**kwargs)
                total += response.get("Count", 0)
                last_key = response.get("LastEvaluatedKey")
                if not last_key:
                    return total
                kwargs["ExclusiveStartKey"] = last_key
        except ClientError as e:
            raise StoreError(f"count on {table} failed: {e}") from e

    def get_with_relations(self, table: str, row_id: str) -> Optional[dict]:
        row = self.get(table, row_id)
        if row is None:
            return None
        return self.attach_relations(table, [row])[0]

    def select_with_relations(self, table: str, **kwargs: Any) -> list[dict]:
        return self.attach_relations(table, self.select(table, **kwargs))

    def attach_relations(self, table: str, rows: list[dict]) -> list[dict]:
        """Adds joined display fields (and child rows) to already-fetched rows."""
        cache: dict[tuple[str, str], Optional[dict]] = {}
        for relation in RELATIONS.get(table, []):
            for row in rows:
                target_id = row.get(relation.column)
                target = None
                if target_id:
                    cache_key = (relation.table, target_id)
                    if cache_key not in cache:
                        cache[cache_key] = self.get(relation.table, target_id)
                    target = cache[cache_key]
                for source_field, output_field in relation.fields.items():
                    row[output_field] = target.get(source_field) if target else None

        if table in CHILDREN and rows:
            child_table, foreign_key, output_field = CHILDREN[table]
            parent_ids = {row["id"] for row in rows}
            if len(parent_ids) == 1:
                children = self.select(child_table, filters={foreign_key: rows[0]["id"]})
            else:
                children = [
                    child for child in self.select(child_table)
                    if child.get(foreign_key) in parent_ids
                ]
            children = self.attach_relations(child_table, children)
            for row in rows:
                row[output_field] = [c for c in children if c.get(foreign_key) == row["id"]]
        return rows

    # --- Writes ---

    def _new_row(self, table: str, values: dict) -> dict:
        row = dict(values)
        row.setdefault("id", str(uuid.uuid4()))
        if table not in UNTIMESTAMPED_TABLES:
            now = utc_now_iso()
            row.setdefault("created_at", now)
            if table in UPDATABLE_TABLES:
                row.setdefault("updated_at", now)
        return row

    def insert(self, table: str, values: dict) -> dict:
        row = self._new_row(table, values)
        try:
            self._table(table).put_item(
                Item=to_dynamo(row),
                ConditionExpression="attribute_not_exists(id)",
            )
        except ClientError as e:
            raise StoreError(f"insert into {table} failed: {e}") from e
        logger.debug("Inserted %s/%s", table, row["id"])
        return row

    def insert_many(self, table: str, rows: list[dict]) -> list[dict]:
        new_rows = [self._new_row(table, values) for values in rows]
        try:
            with self._table(table).batch_writer() as batch:
                for row in new_rows:
                    batch.put_item(Item=to_dynamo(row))
        except ClientError as e:
            raise StoreError(f"batch insert into {table} failed: {e}") from e
        logger.debug("Inserted %d rows into %s", len(new_rows), table)
        return new_rows

    def update(
        self, table: str, row_id: str, values: dict, expected: Optional[dict] = None
    ) -> dict:
        """Updates a row that must exist and, if given, still hold the `expected` values."""
        values = {k: v for k, v in values.items() if k != "id"}
        if table in UPDATABLE_TABLES:
            values.setdefault("updated_at", utc_now_iso())
        if not values:
            raise ValueError("Nothing to update")

        names: dict[str, str] = {}
        attr_values: dict[str, Any] = {}
        assignments = []
        for i, (column, value) in enumerate(values.items()):
            names[f"#f{i}"] = column
            attr_values[f":v{i}"] = to_dynamo(value)
            assignments.append(f"#f{i} = :v{i}")

        conditions = ["attribute_exists(id)"]
        for i, (column, value) in enumerate((expected or {}).items()):
            names[f"#e{i}"] = column
            attr_values[f":e{i}"] = to_dynamo(value)
            conditions.append(f"#e{i} = :e{i}")

        try:
            response = self._table(table).update_item(
                Key={"id": row_id},
                UpdateExpression="SET " + ", ".join(assignments),
                ConditionExpression=" AND ".join(conditions),
                ExpressionAttributeNames=names,
                ExpressionAttributeValues=attr_values,
                ReturnValues="ALL_NEW",
            )
        except ClientError as e:
            if _error_code(e) == "ConditionalCheckFailedException":
                raise ConditionFailedError(
                    f"{table}/{row_id} is missing or was changed by someone else"
                ) from e
            raise StoreError(f"update of {table}/{row_id} failed: {e}") from e
        return from_dynamo(response.get("Attributes", {}))

    def delete(self, table: str, row_id: str) -> None:
        try:
            self._table(table).delete_item(Key={"id": row_id})
        except ClientError as e:
            raise StoreError(f"delete of {table}/{row_id} failed: {e}") from e
        logger.debug("Deleted %s/%s", table, row_id)

    def record_stock_movement(self, transaction_row: dict, product_id: str, delta: int) -> dict:
        """Writes a transaction and moves the product's stock in one TransactWriteItems call.

        The stock update is conditional on the result staying at or above zero, so
        a stale client-side stock check can never drive stock negative.
        """
        row = self._new_row("transactions", transaction_row)
        item = {k: self._serializer.serialize(v) for k, v in to_dynamo(row).items()}
        try:
            self.dynamodb.meta.client.transact_write_items(
                TransactItems=[
                    {
                        "Put": {
                            "TableName": self.table_name("transactions"),
                            "Item": item,
                            "ConditionExpression": "attribute_not_exists(id)",
                        }
                    },
                    {
                        "Update": {
                            "TableName": self.table_name("products"),
                            "Key": {"id": {"S": product_id}},
                            "UpdateExpression": "SET current_stock = current_stock + :delta, updated_at = :now",
                            "ConditionExpression": "attribute_exists(id) AND current_stock >= :floor",
                            "ExpressionAttributeValues": {
                                ":delta": {"N": str(delta)},
                                ":floor": {"N": str(max(0, -delta))},
                                ":now": {"S": utc_now_iso()},
                            },
                        }
                    },
                ]
            )
        except ClientError as e:
            if _error_code(e) == "TransactionCanceledException":
                reasons = e.response.get("CancellationReasons", [])
                if any(r.get("Code") == "ConditionalCheckFailed" for r in reasons):
                    raise ConditionFailedError(
                        f"Stock movement of {delta} on {product_id} would make stock negative"
                    ) from e
            raise StoreError(f"stock movement on {product_id} failed: {e}") from e
        logger.debug("Recorded stock movement %+d on %s (%s)", delta, product_id, row["id"])
        return row
