from datetime import date
from typing import BinaryIO, Iterable, List, Optional

from openpyxl import Workbook

from models.sales import SaleRecord

SHEET_TITLE = "Fuel Sales"
HEADER = ["Date", "Rate per Liter", "Dispenser Open", "Dispenser Close", "Units Sold", "Total Sale"]


def export_rows(records: Iterable[SaleRecord]) -> List[list]:
    """Header plus one row per record, oldest date first."""
    # sorted() is stable, so records sharing a date keep their list order
    ordered = sorted(records, key=lambda r: r.date)
    rows = [list(HEADER)]
    for r in ordered:
        rows.append([r.date, r.rate_per_liter, r.dispenser_open, r.dispenser_close, r.units_sold, r.total_sale])
    return rows


def export_filename(today: Optional[str] = None) -> str:
    return f"fuel-sales-{today or date.today().isoformat()}.xlsx"


def build_workbook(records: Iterable[SaleRecord]) -> Workbook:
    wb = Workbook()
    ws = wb.active
    ws.title = SHEET_TITLE
    for row in export_rows(records):
        ws.append(row)
    return wb


def write_workbook(records: Iterable[SaleRecord], stream: BinaryIO) -> None:
    build_workbook(records).save(stream)
