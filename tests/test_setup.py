"""Seed data and AWS setup tests."""

import json
from collections import defaultdict
from datetime import datetime, timezone
from decimal import Decimal
from unittest.mock import MagicMock

from botocore.exceptions import ClientError

from data_layer.generators.generators import generate_all
from data_layer.infrastructure.dynamodb_setup import (
    convert_floats,
    create_tables,
    load_data_to_table,
    table_definition,
)
from smartshelf.store import TABLES

NOW = datetime(2026, 3, 16, 12, 0, tzinfo=timezone.utc)


class TestGenerators:
    """Generated seed data is consistent."""

    def test_stock_matches_history(self):
        data = generate_all(now=NOW)
        movement = defaultdict(int)
        for txn in data["transactions"]:
            sign = 1 if txn["type"] == "stock_in" else -1
            movement[txn["product_id"]] += sign * txn["quantity"]

        assert len(data["products"]) == 40
        for product in data["products"]:
            assert product["current_stock"] >= 0
            assert product["current_stock"] == movement[product["id"]]

    def test_scenarios_present(self):
        products = generate_all(now=NOW)["products"]
        assert any(p["current_stock"] == 0 for p in products)
        assert any(0 < p["current_stock"] <= p["reorder_level"] for p in products)

    def test_skus_unique(self):
        products = generate_all(now=NOW)["products"]
        assert len({p["sku"] for p in products}) == len(products)

    def test_profiles_use_given_user_ids(self):
        data = generate_all(user_ids={"admin": "sub-admin"}, now=NOW)
        admin = next(p for p in data["profiles"] if p["role"] == "admin")
        vendor = next(p for p in data["profiles"] if p["role"] == "vendor")
        assert admin["user_id"] == "sub-admin"
        assert vendor["vendor_id"] == data["vendors"][0]["id"]

    def test_open_work_total(self):
        data = generate_all(now=NOW)
        [order] = data["purchase_orders"]
        assert len(data["purchase_order_items"]) == 2
        expected = sum(i["quantity"] * i["unit_price"] for i in data["purchase_order_items"])
        assert order["total_amount"] == round(expected, 2)
        assert data["stock_requests"][0]["status"] == "pending"

    def test_writes_json(self, tmp_path):
        generate_all(str(tmp_path), now=NOW)
        vendors = json.loads((tmp_path / "vendors.json").read_text(encoding="utf-8"))
        assert vendors[1]["name"] == "O'Brien, Inc."


class TestDynamoSetup:
    """Table creation and loading."""

    def test_definition_has_stream(self):
        definition = table_definition("alerts", "dev_")
        assert definition["TableName"] == "dev_alerts"
        assert definition["StreamSpecification"]["StreamViewType"] == "NEW_AND_OLD_IMAGES"

    def test_creates_missing_tables(self):
        client = MagicMock()
        missing = ClientError({"Error": {"Code": "ResourceNotFoundException"}}, "DescribeTable")
        client.describe_table.side_effect = lambda TableName: (
            {"Table": {}} if TableName == "products" else (_ for _ in ()).throw(missing)
        )
        created = create_tables(client=client)
        assert "products" not in created
        assert len(created) == len(TABLES) - 1
        assert client.create_table.call_count == len(TABLES) - 1

    def test_convert_floats_drops_none(self):
        assert convert_floats([{"price": 1.5, "phone": None}]) == [{"price": Decimal("1.5")}]

    def test_load_data(self):
        resource = MagicMock()
        rows = [{"id": str(i), "price": 1.0} for i in range(1200)]
        assert load_data_to_table("products", rows, resource=resource, chunk_size=500) == 1200
        assert resource.Table.call_count == 3
