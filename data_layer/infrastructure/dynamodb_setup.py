"""DynamoDB table creation and seed loading.

10 tables, all keyed by `id`, all with a NEW_AND_OLD_IMAGES stream so the
dashboard can follow every change.
"""
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from decimal import Decimal

import boto3
from botocore.config import Config
from botocore.exceptions import ClientError

from smartshelf.store import TABLES

REGION = "us-west-2"
BOTO_CONFIG = Config(retries={"max_attempts": 3})

STREAM_SPECIFICATION = {"StreamEnabled": True, "StreamViewType": "NEW_AND_OLD_IMAGES"}


def table_definition(table: str, prefix: str = "") -> dict:
    return {
        "TableName": f"{prefix}{table}",
        "KeySchema": [{"AttributeName": "id", "KeyType": "HASH"}],
        "AttributeDefinitions": [{"AttributeName": "id", "AttributeType": "S"}],
        "BillingMode": "PAY_PER_REQUEST",
        "StreamSpecification": STREAM_SPECIFICATION,
    }


TABLE_DEFINITIONS = [table_definition(table) for table in TABLES]


def create_tables(region: str = REGION, prefix: str = "", client=None) -> list:
    """Creates every missing table and waits for it to become active; returns the created names."""
    dynamodb = client or boto3.client("dynamodb", region_name=region, config=BOTO_CONFIG)
    created = []
    for table in TABLES:
        table_def = table_definition(table, prefix)
        table_name = table_def["TableName"]
        try:
            dynamodb.describe_table(TableName=table_name)
            print(f"  ⏭️  {table_name} already exists, skipping")
        except ClientError as e:
            if e.response["Error"]["Code"] != "ResourceNotFoundException":
                raise
            print(f"  🔨 Creating {table_name}...")
            dynamodb.create_table(**table_def)
            dynamodb.get_waiter("table_exists").wait(TableName=table_name)
            created.append(table_name)
            print(f"  ✓  {table_name} created")
    return created


def convert_floats(obj):
    if isinstance(obj, float):
        return Decimal(str(obj))
    if isinstance(obj, dict):
        return {k: convert_floats(v) for k, v in obj.items() if v is not None}
    if isinstance(obj, list):
        return [convert_floats(i) for i in obj]
    return obj


def load_data_to_table(table_name: str, data: list, region: str = REGION, threads: int = 4,
                       chunk_size: int = 500, resource=None) -> int:
    """Writes rows to a table in parallel batch writes; returns the number written."""
    data = convert_floats(data)
    total = len(data)
    counter = {"done": 0}
    lock = threading.Lock()

    def upload_chunk(chunk):
        dynamodb = resource or boto3.resource("dynamodb", region_name=region, config=BOTO_CONFIG)
        table = dynamodb.Table(table_name)
        with table.batch_writer() as batch:
            for item in chunk:
                batch.put_item(Item=item)
        with lock:
            counter["done"] += len(chunk)

    chunks = [data[i:i + chunk_size] for i in range(0, total, chunk_size)]
    with ThreadPoolExecutor(max_workers=threads) as executor:
        futures = [executor.submit(upload_chunk, chunk) for chunk in chunks]
        for future in as_completed(futures):
            future.result()

    print(f"  ✓  {table_name}: {counter['done']} rows loaded")
    return counter["done"]


def table_has_data(table_name: str, region: str = REGION, client=None) -> bool:
    dynamodb = client or boto3.client("dynamodb", region_name=region, config=BOTO_CONFIG)
    resp = dynamodb.scan(TableName=table_name, Limit=1, Select="COUNT")
    return resp.get("Count", 0) > 0


def load_seed_data(seed: dict, region: str = REGION, prefix: str = "", force: bool = False) -> None:
    """Loads generated rows per table, skipping tables that already hold data unless forced."""
    print("\n📤 Loading seed data into DynamoDB...\n")
    for table in TABLES:
        rows = seed.get(table)
        if not rows:
            continue
        table_name = f"{prefix}{table}"
        if not force and table_has_data(table_name, region):
            print(f"  ⏭️  {table_name} already has data, skipping")
            continue
        load_data_to_table(table_name, rows, region)
    print("\n✅ Seed data loaded")


def delete_tables(region: str = REGION, prefix: str = "", client=None) -> None:
    """Deletes every table (use with care)."""
    dynamodb = client or boto3.client("dynamodb", region_name=region, config=BOTO_CONFIG)
    for table in TABLES:
        table_name = f"{prefix}{table}"
        try:
            dynamodb.delete_table(TableName=table_name)
            print(f"  🗑️  {table_name} deleted")
        except ClientError:
            print(f"  ⏭️  {table_name} not found, skipping")
