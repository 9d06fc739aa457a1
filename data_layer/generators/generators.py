"""Seed data generation.

5 categories, 4 vendors, 40 products, one profile per role and 60 days of
stock movements. Stock levels are replayed from the movements so they always
match the transaction history.

Scenarios included on purpose:
- out-of-stock products (stock 0)
- products at or below their reorder level
- fast movers that run out within a week at the current usage
- a pending purchase order and a pending stock request for the first vendor
"""
import json
import os
import random
import uuid
from datetime import datetime, timedelta, timezone
from typing import Dict, List

# --- CONSTANTS ---

CATEGORIES = ["Electronics", "Office Supplies", "Packaging", "Cleaning", "Tools"]

VENDORS = [
    {"name": "Acme Components", "email": "orders@acme.example.com", "phone": "+15550100001",
     "address": "12 Industrial Way, Pune", "performance": 94.5},
    {"name": "O'Brien, Inc.", "email": "sales@obrien.example.com", "phone": "+15550100002",
     "address": "88 Harbour Road, Chennai", "performance": 88.0},
    {"name": "Northwind Supply", "email": "hello@northwind.example.com", "phone": None,
     "address": "4 Market Street, Delhi", "performance": 76.25},
    {"name": "BluePeak Traders", "email": "po@bluepeak.example.com", "phone": "+15550100004",
     "address": "301 Ring Road, Bengaluru", "performance": 91.0},
]

PRODUCT_NAMES: Dict[str, List[str]] = {
    "Electronics": ["USB-C Cable 1m", "Wireless Mouse", "HDMI Adapter", "Power Bank 10000mAh",
                    "Bluetooth Keyboard", "LED Desk Lamp", "Webcam HD", "Surge Protector"],
    "Office Supplies": ["A4 Paper Ream", "Ballpoint Pens (Box)", "Stapler", "Sticky Notes Pack",
                        "Whiteboard Markers", "File Folders", "Desk Organizer", "Paper Clips (Box)"],
    "Packaging": ["Corrugated Box S", "Corrugated Box L", "Bubble Wrap Roll", "Packing Tape",
                  "Stretch Film", "Void Fill Paper", "Shipping Labels", "Poly Mailers"],
    "Cleaning": ["Floor Cleaner 5L", "Microfiber Cloths", "Hand Sanitizer 1L", "Trash Bags (Roll)",
                 "Glass Cleaner", "Disinfectant Wipes", "Mop Refill", "Nitrile Gloves (Box)"],
    "Tools": ["Box Cutter", "Tape Measure", "Screwdriver Set", "Utility Knife Blades",
              "Cordless Drill", "Safety Goggles", "Work Gloves", "Label Printer"],
}

PRICE_RANGES: Dict[str, tuple] = {
    "Electronics": (199, 2999),
    "Office Supplies": (25, 499),
    "Packaging": (15, 899),
    "Cleaning": (49, 699),
    "Tools": (99, 4999),
}

HISTORY_DAYS = 60


def _iso(value: datetime) -> str:
    return value.isoformat()


def _id() -> str:
    return str(uuid.uuid4())


# --- GENERATORS ---

def generate_categories(now: datetime) -> List[dict]:
    return [{"id": _id(), "name": name, "created_at": _iso(now - timedelta(days=120))} for name in CATEGORIES]


def generate_vendors(now: datetime) -> List[dict]:
    created = _iso(now - timedelta(days=180))
    return [{"id": _id(), **vendor, "created_at": created, "updated_at": created} for vendor in VENDORS]


def generate_products(categories: List[dict], vendors: List[dict], now: datetime) -> List[dict]:
    """8 products per category, spread across the vendors; stock is filled in later."""
    products = []
    sku_counter = 1
    for category in categories:
        price_min, price_max = PRICE_RANGES[category["name"]]
        for name in PRODUCT_NAMES[category["name"]]:
            vendor = vendors[(sku_counter - 1) % len(vendors)]
            created = _iso(now - timedelta(days=HISTORY_DAYS + 5))
            products.append({
                "id": _id(),
                "sku": f"SKU-{sku_counter:04d}",
                "name": name,
                "description": f"{name} ({category['name']})",
                "price": round(random.uniform(price_min, price_max), 2),
                "current_stock": 0,
                "reorder_level": random.choice([5, 10, 15, 20, 25]),
                "category_id": category["id"],
                "vendor_id": vendor["id"],
                "created_at": created,
                "updated_at": created,
            })
            sku_counter += 1
    return products


def generate_profiles(vendors: List[dict], user_ids: Dict[str, str], now: datetime) -> List[dict]:
    """One profile per role. `user_ids` maps role to the Cognito sub of that user."""
    created = _iso(now - timedelta(days=90))
    people = [
        ("admin", "Asha Admin", "admin@smartshelf.example.com", None),
        ("warehouse_manager", "Manoj Manager", "manager@smartshelf.example.com", None),
        ("vendor", "Vera Vendor", vendors[0]["email"], vendors[0]["id"]),
    ]
    return [
        {
            "id": _id(),
            "user_id": user_ids.get(role) or _id(),
            "email": email,
            "full_name": name,
            "role": role,
            "vendor_id": vendor_id,
            "created_at": created,
            "updated_at": created,
        }
        for role, name, email, vendor_id in people
    ]


def generate_transactions(products: List[dict], handler: dict, now: datetime) -> List[dict]:
    """Replays daily stock movements per product and sets each product's final stock.

    Scenario products: every 7th product ends out of stock, every 5th ends low.
    """
    transactions = []
    start = now - timedelta(days=HISTORY_DAYS)
    for index, product in enumerate(products):
        stock = random.randint(40, 200)
        transactions.append(_transaction(product, "stock_in", stock, handler, start, "Opening stock"))
        daily_usage = random.randint(0, 6)
        if index % 4 == 0:
            daily_usage += 4  # fast mover
        for day in range(1, HISTORY_DAYS):
            when = start + timedelta(days=day, hours=random.randint(8, 18))
            if stock < product["reorder_level"] and random.random() < 0.5:
                quantity = product["reorder_level"] * 3
                stock += quantity
                transactions.append(_transaction(product, "stock_in", quantity, handler, when, "Restock"))
            usage = min(stock, max(0, daily_usage + random.randint(-2, 2)))
            if usage:
                stock -= usage
                transactions.append(_transaction(product, "stock_out", usage, handler, when))

        when = now - timedelta(hours=2)
        if index % 7 == 0 and stock > 0:
            transactions.append(_transaction(product, "stock_out", stock, handler, when, "Clearance"))
            stock = 0
        elif index % 5 == 0 and stock > product["reorder_level"]:
            quantity = stock - max(1, product["reorder_level"] // 2)
            transactions.append(_transaction(product, "stock_out", quantity, handler, when, "Bulk order"))
            stock -= quantity
        product["current_stock"] = stock
    return transactions


def _transaction(product: dict, txn_type: str, quantity: int, handler: dict,
                 when: datetime, notes: str = None) -> dict:
    return {
        "id": _id(),
        "type": txn_type,
        "product_id": product["id"],
        "quantity": quantity,
        "handler_id": handler["user_id"],
        "handler_name": handler["full_name"],
        "reference": f"REF-{random.randint(10000, 99999)}" if txn_type == "stock_in" else None,
        "notes": notes,
        "created_at": _iso(when),
    }


def generate_open_work(products: List[dict], vendors: List[dict], manager: dict, now: datetime) -> Dict[str, List[dict]]:
    """A pending purchase order and a pending stock request addressed to the first vendor."""
    vendor = vendors[0]
    vendor_products = [p for p in products if p["vendor_id"] == vendor["id"]][:2]
    created = _iso(now - timedelta(days=1))
    order_id = _id()
    items = [
        {"id": _id(), "purchase_order_id": order_id, "product_id": p["id"],
         "quantity": 25, "unit_price": p["price"]}
        for p in vendor_products
    ]
    order = {
        "id": order_id,
        "vendor_id": vendor["id"],
        "status": "pending",
        "total_amount": round(sum(i["quantity"] * i["unit_price"] for i in items), 2),
        "created_by": manager["user_id"],
        "created_at": created,
        "updated_at": created,
    }
    request = {
        "id": _id(),
        "vendor_id": vendor["id"],
        "product_id": vendor_products[0]["id"] if vendor_products else None,
        "quantity": 40,
        "status": "pending",
        "requested_by": manager["user_id"],
        "requested_by_name": manager["full_name"],
        "requested_by_role": manager["role"],
        "notes": "Needed before month end",
        "created_at": created,
        "updated_at": created,
    }
    return {"purchase_orders": [order], "purchase_order_items": items, "stock_requests": [request]}


def save_json(data: List[dict], filepath: str):
    os.makedirs(os.path.dirname(filepath), exist_ok=True)
    with open(filepath, "w", encoding="utf-8") as f:
        json.dump(data, f, ensure_ascii=False, indent=2)
    print(f"  ✓ {filepath} ({len(data)} rows)")


def generate_all(output_dir: str = None, seed: int = 42, user_ids: Dict[str, str] = None,
                 now: datetime = None) -> Dict[str, List[dict]]:
    """Generates every seed table; writes one JSON file per table when output_dir is given."""
    random.seed(seed)
    now = now or datetime.now(timezone.utc)

    categories = generate_categories(now)
    vendors = generate_vendors(now)
    products = generate_products(categories, vendors, now)
    profiles = generate_profiles(vendors, user_ids or {}, now)
    manager = next(p for p in profiles if p["role"] == "warehouse_manager")
    transactions = generate_transactions(products, manager, now)
    seed_data = {
        "categories": categories,
        "vendors": vendors,
        "products": products,
        "profiles": profiles,
        "transactions": transactions,
        **generate_open_work(products, vendors, manager, now),
    }

    if output_dir:
        print("🏭 Writing seed data...\n")
        for table, rows in seed_data.items():
            save_json(rows, f"{output_dir}/{table}.json")

    out = sum(1 for p in products if p["current_stock"] == 0)
    low = sum(1 for p in products if 0 < p["current_stock"] <= p["reorder_level"])
    print(f"\n✅ {len(products)} products ({out} out of stock, {low} low), "
          f"{len(transactions):,} transactions")
    return seed_data


if __name__ == "__main__":
    generate_all("data_layer/data")
