"""Report exports: CSV, Excel-compatible TSV and PDF, plus the CSV import parser."""

from __future__ import annotations

import csv
import io
import logging
import re
from datetime import datetime
from pathlib import Path
from typing import Any, Iterable, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError
from reportlab.lib.pagesizes import A4
from reportlab.lib.units import mm
from reportlab.pdfgen import canvas

from smartshelf.config import Settings
from smartshelf.forecasting import ProductForecast
from smartshelf.models.inventory import Product, Transaction, Vendor, format_amount, parse_timestamp

logger = logging.getLogger(__name__)

EXCEL_BOM = "\ufeff"
S3_PREFIX = "reports/"

# PDF layout, in millimetres from the top-left corner
PDF_MARGIN = 20
PDF_TITLE_Y = 30
PDF_ROW_HEIGHT = 7
PDF_PAGE_BREAK_Y = 270
PDF_FOOTER_Y = 290
PDF_CELL_CHARS = 20

INVENTORY_COLUMNS = ["SKU", "Name", "Category", "Vendor", "Price", "Current Stock", "Reorder Level", "Status"]
TRANSACTION_COLUMNS = ["ID", "Type", "Product", "SKU", "Quantity", "Handler", "Reference", "Date"]
VENDOR_COLUMNS = ["Name", "Email", "Phone", "Address", "Products Count", "Performance %", "Member Since"]
FORECAST_COLUMNS = [
    "SKU", "Product", "Current Stock", "Avg Daily Usage",
    "Days Until Stockout", "Confidence %", "Recommended Action",
]

# (file stem, PDF title, PDF columns as (header, key))
REPORTS: dict[str, tuple[str, str, list[tuple[str, str]]]] = {
    "inventory": ("inventory_report", "Inventory Report", [
        ("SKU", "SKU"), ("Name", "Name"), ("Category", "Category"),
        ("Stock", "Current Stock"), ("Status", "Status"),
    ]),
    "transactions": ("transactions_report", "Transactions Report", [
        ("Type", "Type"), ("Product", "Product"), ("SKU", "SKU"),
        ("Qty", "Quantity"), ("Handler", "Handler"),
    ]),
    "vendors": ("vendor_report", "Vendor Performance Report", [
        ("Vendor", "Name"), ("Email", "Email"),
        ("Products", "Products Count"), ("Performance", "Performance %"),
    ]),
    "forecast": ("demand_forecast_report", "Demand Forecast Report", [
        ("SKU", "SKU"), ("Product", "Product"), ("Stock", "Current Stock"),
        ("Daily Usage", "Avg Daily Usage"), ("Action", "Recommended Action"),
    ]),
}

FORMATS = {"csv": "csv", "excel": "xls", "pdf": "pdf"}


def _cell(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


def _headers(rows: list[dict], headers: Optional[list[str]]) -> list[str]:
    return list(headers) if headers else list(rows[0].keys())


# --- CSV / Excel ---

def to_csv(rows: list[dict], headers: Optional[list[str]] = None) -> str:
    """Comma-separated text; values with commas, quotes or newlines are quoted, quotes doubled."""
    if not rows:
        return ""
    keys = _headers(rows, headers)
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n", quoting=csv.QUOTE_MINIMAL)
    writer.writerow(keys)
    for row in rows:
        writer.writerow([_cell(row.get(key)) for key in keys])
    return buffer.getvalue().rstrip("\n")


def _is_blank(line: list[str]) -> bool:
    return not line or (len(line) == 1 and not line[0].strip())


def parse_csv(content: str) -> list[dict[str, str]]:
    """Parses CSV text into dicts keyed by the stripped header names.

    Values come back exactly as written, so `parse_csv(to_csv(rows)) == rows`.
    Blank lines are skipped and missing trailing values become "". Raises
    ValueError for input the csv module cannot read.
    """
    content = content.lstrip(EXCEL_BOM)
    try:
        reader = csv.reader(io.StringIO(content))
        lines = [line for line in reader if not _is_blank(line)]
    except csv.Error as e:
        raise ValueError(f"Invalid CSV: {e}") from e
    if len(lines) < 2:
        return []
    headers = [h.strip() for h in lines[0]]
    return [
        {header: (values[i] if i < len(values) else "") for i, header in enumerate(headers)}
        for values in lines[1:]
    ]


def to_excel(rows: list[dict], headers: Optional[list[str]] = None) -> str:
    """Tab-separated text with a UTF-8 BOM so spreadsheet apps pick the right encoding."""
    if not rows:
        return ""
    keys = _headers(rows, headers)
    lines = ["\t".join(keys)]
    for row in rows:
        lines.append("\t".join(_cell(row.get(key)).replace("\t", " ") for key in keys))
    return EXCEL_BOM + "\n".join(lines)


# --- PDF ---

def _paginate(rows: list[dict]) -> list[list[dict]]:
    pages: list[list[dict]] = [[]]
    # First page starts below the title, date and header rows
    y = PDF_TITLE_Y + 15 + 15 + 8
    for row in rows:
        if y > PDF_PAGE_BREAK_Y:
            pages.append([])
            y = PDF_TITLE_Y
        pages[-1].append(row)
        y += PDF_ROW_HEIGHT
    return pages


def to_pdf(
    title: str,
    rows: list[dict],
    columns: list[tuple[str, str]],
    generated_at: Optional[datetime] = None,
) -> bytes:
    """Renders rows as a simple A4 table report and returns the PDF bytes."""
    generated_at = generated_at or datetime.now()
    buffer = io.BytesIO()
    page_width, page_height = A4
    pdf = canvas.Canvas(buffer, pagesize=A4)
    pdf.setTitle(title)

    def y_pos(top_mm: float) -> float:
        return page_height - top_mm * mm

    margin = PDF_MARGIN * mm
    col_width = (page_width - margin * 2) / max(len(columns), 1)
    pages = _paginate(rows)

    for page_number, page_rows in enumerate(pages, start=1):
        y = PDF_TITLE_Y
        if page_number == 1:
            pdf.setFont("Helvetica-Bold", 18)
            pdf.drawCentredString(page_width / 2, y_pos(y), title)
            y += 15
            pdf.setFont("Helvetica", 10)
            pdf.drawCentredString(
                page_width / 2, y_pos(y), f"Generated: {generated_at.strftime('%Y-%m-%d %H:%M:%S')}"
            )
            y += 15
            pdf.setFont("Helvetica-Bold", 10)
            for i, (header, _key) in enumerate(columns):
                pdf.drawString(margin + i * col_width, y_pos(y), header)
            y += 8
            pdf.setStrokeGray(0.78)
            pdf.line(margin, y_pos(y - 3), page_width - margin, y_pos(y - 3))

        pdf.setFont("Helvetica", 9)
        for index, row in enumerate(page_rows):
            for i, (_header, key) in enumerate(columns):
                value = row.get(key)
                text = ("-" if value is None else _cell(value))[:PDF_CELL_CHARS]
                pdf.drawString(margin + i * col_width, y_pos(y), text)
            y += PDF_ROW_HEIGHT
            if index % 10 == 9:
                pdf.setStrokeGray(0.9)
                pdf.line(margin, y_pos(y), page_width - margin, y_pos(y))

        pdf.setFont("Helvetica", 8)
        pdf.drawCentredString(page_width / 2, y_pos(PDF_FOOTER_Y), f"Page {page_number} of {len(pages)}")
        pdf.drawString(margin, y_pos(PDF_FOOTER_Y), "SmartShelfX Inventory Management")
        pdf.showPage()

    pdf.save()
    return buffer.getvalue()


def pdf_filename(title: str) -> str:
    return re.sub(r"\s+", "_", title) + ".pdf"


# --- Row builders ---

def _date(value: Any) -> str:
    parsed = parse_timestamp(value)
    return parsed.strftime("%Y-%m-%d") if parsed else "-"


def _datetime(value: Any) -> str:
    parsed = parse_timestamp(value)
    return parsed.strftime("%Y-%m-%d %H:%M:%S") if parsed else "-"


def inventory_rows(products: Iterable[Product]) -> list[dict]:
    return [
        {
            "SKU": p.sku,
            "Name": p.name,
            "Category": p.category_name or "-",
            "Vendor": p.vendor_name or "-",
            "Price": format_amount(p.price),
            "Current Stock": p.current_stock,
            "Reorder Level": p.reorder_level,
            "Status": p.stock_status,
        }
        for p in products
    ]


def transaction_rows(transactions: Iterable[Transaction]) -> list[dict]:
    return [
        {
            "ID": t.id,
            "Type": t.type.label,
            "Product": t.product_name or "-",
            "SKU": t.product_sku or "-",
            "Quantity": t.quantity,
            "Handler": t.handler_name or "-",
            "Reference": t.reference or "-",
            "Date": _datetime(t.created_at),
        }
        for t in transactions
    ]


def vendor_rows(vendors: Iterable[Vendor], products: Iterable[Product] = ()) -> list[dict]:
    counts: dict[str, int] = {}
    for product in products:
        if product.vendor_id:
            counts[product.vendor_id] = counts.get(product.vendor_id, 0) + 1
    return [
        {
            "Name": v.name,
            "Email": v.email,
            "Phone": v.phone or "",
            "Address": v.address or "",
            "Products Count": counts.get(v.id, 0),
            "Performance %": v.performance if v.performance is not None else "",
            "Member Since": _date(v.created_at),
        }
        for v in vendors
    ]


def forecast_rows(forecasts: Iterable[ProductForecast]) -> list[dict]:
    return [
        {
            "SKU": f.sku,
            "Product": f.name,
            "Current Stock": f.current_stock,
            "Avg Daily Usage": f.avg_daily_usage_display,
            "Days Until Stockout": f.days_until_stockout_display,
            "Confidence %": f.confidence,
            "Recommended Action": f.recommended_action.label,
        }
        for f in forecasts
    ]


_COLUMNS = {
    "inventory": INVENTORY_COLUMNS,
    "transactions": TRANSACTION_COLUMNS,
    "vendors": VENDOR_COLUMNS,
    "forecast": FORECAST_COLUMNS,
}


def export_report(kind: str, rows: list[dict], fmt: str) -> tuple[str, bytes]:
    """Renders prepared rows of one report kind; returns (filename, content)."""
    if kind not in REPORTS:
        raise ValueError(f"Unknown report: {kind}")
    if fmt not in FORMATS:
        raise ValueError(f"Unknown export format: {fmt}")
    if not rows:
        raise ValueError("Nothing to export")

    stem, title, pdf_columns = REPORTS[kind]
    if fmt == "csv":
        return f"{stem}.csv", to_csv(rows, _COLUMNS[kind]).encode("utf-8")
    if fmt == "excel":
        return f"{stem}.xls", to_excel(rows, _COLUMNS[kind]).encode("utf-8")
    return pdf_filename(title), to_pdf(title, rows, pdf_columns)


# --- Storage ---

def save_report(
    filename: str,
    content: bytes,
    settings: Settings,
    s3_client: Any = None,
) -> dict:
    """Writes the report under reports_dir and, when a bucket is set, uploads it to S3.

    A failed upload is logged; the local file is kept either way.
    """
    directory = Path(settings.reports_dir)
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / filename
    path.write_bytes(content)
    logger.info("Report written to %s (%d bytes)", path, len(content))

    result = {"path": str(path), "s3_uri": None}
    if not settings.reports_bucket:
        return result

    key = f"{S3_PREFIX}{filename}"
    s3 = s3_client or boto3.client("s3", region_name=settings.region)
    try:
        s3.put_object(Bucket=settings.reports_bucket, Key=key, Body=content)
    except (ClientError, BotoCoreError) as e:
        logger.warning("Report upload to s3://%s/%s failed: %s", settings.reports_bucket, key, e)
        return result
    result["s3_uri"] = f"s3://{settings.reports_bucket}/{key}"
    logger.info("Report uploaded to %s", result["s3_uri"])
    return result
