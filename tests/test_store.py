"""DynamoDB store tests with a mocked boto3 resource."""

from decimal import Decimal
from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError

from smartshelf.config import Settings
from smartshelf.store import (
    BackingStore,
    ConditionFailedError,
    StoreError,
    from_dynamo,
    to_dynamo,
)


def _client_error(code, operation="UpdateItem", **extra):
    return ClientError({"Error": {"Code": code, "Message": code}, **extra}, operation)


def _store(tables=None, prefix="dev_"):
    """BackingStore over a mock resource; `tables` maps table name to its mock Table."""
    tables = tables or {}
    resource = MagicMock()
    resource.Table.side_effect = lambda name: tables.setdefault(name, MagicMock())
    return BackingStore(dynamodb_resource=resource, table_prefix=prefix), resource, tables


class TestConversion:
    """Decimal in, int/float out."""

    def test_to_dynamo(self):
        assert to_dynamo({"price": 1.5, "tags": [2.25], "ok": True}) == {
            "price": Decimal("1.5"), "tags": [Decimal("2.25")], "ok": True,
        }

    def test_from_dynamo(self):
        assert from_dynamo({"stock": Decimal("4"), "price": Decimal("9.99")}) == {"stock": 4, "price": 9.99}


class TestReads:
    """Scans, gets and counts."""

    def test_select_paginates_and_sorts(self):
        store, _, tables = _store()
        table = MagicMock()
        tables["dev_products"] = table
        table.scan.side_effect = [
            {"Items": [{"id": "a", "name": "B"}], "LastEvaluatedKey": {"id": "a"}},
            {"Items": [{"id": "b", "name": "A"}]},
        ]
        rows = store.select("products", filters={"vendor_id": "v1"}, order_by="name")
        assert [r["id"] for r in rows] == ["b", "a"]
        assert table.scan.call_count == 2
        assert table.scan.call_args.kwargs["ExclusiveStartKey"] == {"id": "a"}
        assert "FilterExpression" in table.scan.call_args.kwargs

    def test_select_limit_and_descending(self):
        store, _, tables = _store()
        tables["dev_alerts"] = MagicMock()
        tables["dev_alerts"].scan.return_value = {"Items": [
            {"id": "1", "created_at": "2026-01-01"}, {"id": "2", "created_at": "2026-01-03"},
            {"id": "3", "created_at": "2026-01-02"},
        ]}
        rows = store.select("alerts", order_by="created_at", descending=True, limit=2)
        assert [r["id"] for r in rows] == ["2", "3"]

    def test_unknown_table(self):
        store, _, _ = _store()
        with pytest.raises(ValueError):
            store.select("warehouses")

    def test_scan_failure(self):
        store, _, tables = _store()
        tables["dev_products"] = MagicMock()
        tables["dev_products"].scan.side_effect = _client_error("ProvisionedThroughputExceededException", "Scan")
        with pytest.raises(StoreError):
            store.select("products")

    def test_get_missing(self):
        store, _, tables = _store()
        tables["dev_products"] = MagicMock()
        tables["dev_products"].get_item.return_value = {}
        assert store.get("products", "x") is None

    def test_count(self):
        store, _, tables = _store()
        tables["dev_purchase_orders"] = MagicMock()
        tables["dev_purchase_orders"].scan.side_effect = [
            {"Count": 3, "LastEvaluatedKey": {"id": "x"}}, {"Count": 2},
        ]
        assert store.count("purchase_orders", filters={"status": "pending"}) == 5
        assert tables["dev_purchase_orders"].scan.call_args.kwargs["Select"] == "COUNT"

    def test_relations_and_children(self):
        store, _, tables = _store()
        rows = {
            "dev_vendors": {"v1": {"id": "v1", "name": "Acme", "email": "a@b.c"}},
            "dev_products": {"p1": {"id": "p1", "name": "Cable", "sku": "S1"}},
        }
        for name, items in rows.items():
            tables[name] = MagicMock()
            tables[name].get_item.side_effect = lambda Key, items=items: (
                {"Item": items[Key["id"]]} if Key["id"] in items else {}
            )
        tables["dev_purchase_order_items"] = MagicMock()
        tables["dev_purchase_order_items"].scan.return_value = {"Items": [
            {"id": "i1", "purchase_order_id": "po1", "product_id": "p1", "quantity": Decimal("2")},
        ]}

        [order] = store.attach_relations("purchase_orders", [{"id": "po1", "vendor_id": "v1"}])
        assert order["vendor_name"] == "Acme"
        assert order["vendor_email"] == "a@b.c"
        assert order["items"][0]["product_name"] == "Cable"
        assert order["items"][0]["quantity"] == 2


class TestWrites:
    """Inserts and conditional updates."""

    def test_insert_adds_id_and_timestamps(self):
        store, _, tables = _store()
        row = store.insert("products", {"sku": "S1", "price": 2.5})
        assert row["id"]
        assert row["created_at"] == row["updated_at"]
        kwargs = tables["dev_products"].put_item.call_args.kwargs
        assert kwargs["Item"]["price"] == Decimal("2.5")
        assert kwargs["ConditionExpression"] == "attribute_not_exists(id)"

    def test_item_rows_have_no_timestamps(self):
        store, _, _ = _store()
        [row] = store.insert_many("purchase_order_items", [{"product_id": "p1", "quantity": 1}])
        assert "created_at" not in row

    def test_alert_has_no_updated_at(self):
        store, _, _ = _store()
        row = store.insert("alerts", {"title": "x"})
        assert "updated_at" not in row

    def test_update_with_expected(self):
        store, _, tables = _store()
        tables["dev_purchase_orders"] = MagicMock()
        tables["dev_purchase_orders"].update_item.return_value = {"Attributes": {"id": "po1", "status": "approved"}}
        row = store.update("purchase_orders", "po1", {"status": "approved"}, expected={"status": "pending"})

        assert row["status"] == "approved"
        kwargs = tables["dev_purchase_orders"].update_item.call_args.kwargs
        assert kwargs["ConditionExpression"] == "attribute_exists(id) AND #e0 = :e0"
        assert kwargs["ExpressionAttributeValues"][":e0"] == "pending"
        assert "updated_at" in kwargs["ExpressionAttributeNames"].values()

    def test_update_condition_failed(self):
        store, _, tables = _store()
        tables["dev_stock_requests"] = MagicMock()
        tables["dev_stock_requests"].update_item.side_effect = _client_error("ConditionalCheckFailedException")
        with pytest.raises(ConditionFailedError):
            store.update("stock_requests", "r1", {"status": "approved"}, expected={"status": "pending"})

    def test_empty_update(self):
        store, _, _ = _store()
        with pytest.raises(ValueError):
            store.update("alerts", "a1", {"id": "a1"})


class TestStockMovement:
    """Transaction row and stock change in one transactional write."""

    def test_transact_write(self):
        store, resource, _ = _store()
        row = store.record_stock_movement({"type": "stock_out", "product_id": "p1", "quantity": 3}, "p1", -3)

        items = resource.meta.client.transact_write_items.call_args.kwargs["TransactItems"]
        put, update = items[0]["Put"], items[1]["Update"]
        assert put["TableName"] == "dev_transactions"
        assert put["Item"]["id"] == {"S": row["id"]}
        assert update["TableName"] == "dev_products"
        assert update["ExpressionAttributeValues"][":delta"] == {"N": "-3"}
        assert update["ExpressionAttributeValues"][":floor"] == {"N": "3"}
        assert "current_stock >= :floor" in update["ConditionExpression"]

    def test_stock_in_floor_is_zero(self):
        store, resource, _ = _store()
        store.record_stock_movement({"type": "stock_in", "product_id": "p1", "quantity": 5}, "p1", 5)
        update = resource.meta.client.transact_write_items.call_args.kwargs["TransactItems"][1]["Update"]
        assert update["ExpressionAttributeValues"][":floor"] == {"N": "0"}

    def test_would_go_negative(self):
        store, resource, _ = _store()
        resource.meta.client.transact_write_items.side_effect = _client_error(
            "TransactionCanceledException", "TransactWriteItems",
            CancellationReasons=[{"Code": "None"}, {"Code": "ConditionalCheckFailed"}],
        )
        with pytest.raises(ConditionFailedError):
            store.record_stock_movement({"type": "stock_out", "product_id": "p1", "quantity": 8}, "p1", -8)

    def test_other_failure(self):
        store, resource, _ = _store()
        resource.meta.client.transact_write_items.side_effect = _client_error(
            "InternalServerError", "TransactWriteItems"
        )
        with pytest.raises(StoreError) as exc:
            store.record_stock_movement({"type": "stock_in", "product_id": "p1", "quantity": 1}, "p1", 1)
        assert not isinstance(exc.value, ConditionFailedError)


def test_from_settings():
    store = BackingStore.from_settings(Settings(region="eu-west-1", table_prefix="qa_"),
                                       dynamodb_resource=MagicMock())
    assert store.table_name("vendors") == "qa_vendors"
    assert store.region_name == "eu-west-1"
