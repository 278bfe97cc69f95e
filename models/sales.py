import math
from dataclasses import dataclass
from datetime import date
from typing import Dict, List, NamedTuple, Optional

CLOSE_NOT_ABOVE_OPEN = "Dispenser Close must be greater than Dispenser Open"


class ValidationError(ValueError):
    """Operator input that must not reach the store."""


class SaleFigures(NamedTuple):
    units_sold: float
    total_sale: float


@dataclass
class SaleRecord:
    date: str
    rate_per_liter: float
    dispenser_open: float
    dispenser_close: float
    units_sold: float
    total_sale: float
    id: Optional[int] = None
    created_at: Optional[str] = None

    @classmethod
    def from_row(cls, row: Dict) -> "SaleRecord":
        return cls(
            date=str(row["date"]),
            rate_per_liter=float(row["rate_per_liter"]),
            dispenser_open=float(row["dispenser_open"]),
            dispenser_close=float(row["dispenser_close"]),
            units_sold=float(row["units_sold"]),
            total_sale=float(row["total_sale"]),
            id=int(row["id"]) if row.get("id") is not None else None,
            created_at=row.get("created_at"),
        )

    def to_row(self) -> Dict:
        """Columns written on insert; id and created_at belong to the store."""
        return {
            "date": self.date,
            "rate_per_liter": self.rate_per_liter,
            "dispenser_open": self.dispenser_open,
            "dispenser_close": self.dispenser_close,
            "units_sold": self.units_sold,
            "total_sale": self.total_sale,
        }

    def to_dict(self) -> Dict:
        d = self.to_row()
        d["id"] = self.id
        d["created_at"] = self.created_at
        return d


def parse_reading(value, label: str = "Reading") -> Optional[float]:
    """Form text to float; blank means unset and comes back as None."""
    if value is None:
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    else:
        text = str(value).strip()
        if text == "":
            return None
        try:
            number = float(text.replace(",", ""))
        except ValueError:
            raise ValidationError(f"{label} must be a number")
    # float() also accepts "nan" and "inf"
    if not math.isfinite(number):
        raise ValidationError(f"{label} must be a number")
    return number


def parse_date(value) -> str:
    try:
        return date.fromisoformat(str(value).strip()).isoformat()
    except ValueError:
        raise ValidationError("Date must be in YYYY-MM-DD format")


def compute_sale(dispenser_open: Optional[float], dispenser_close: Optional[float], rate: float) -> SaleFigures:
    """
    Derive liters sold and revenue from a pair of meter readings.

    ``None`` stands for a blank reading. It compares as 0, and forces
    ``units_sold`` to 0 so a half-filled form never yields a negative figure.
    Raises ValidationError when close does not exceed open or the rate is not
    positive.
    """
    open_val = 0.0 if dispenser_open is None else float(dispenser_open)
    close_val = 0.0 if dispenser_close is None else float(dispenser_close)
    if not (math.isfinite(open_val) and math.isfinite(close_val)):
        raise ValidationError("Dispenser readings must be numbers")
    if not close_val > open_val:
        raise ValidationError(CLOSE_NOT_ABOVE_OPEN)
    if open_val < 0:
        raise ValidationError("Dispenser Open cannot be negative")
    if rate is None or not math.isfinite(float(rate)) or not float(rate) > 0:
        raise ValidationError("Rate per Liter must be greater than zero")
    if dispenser_open is None or dispenser_close is None:
        units = 0.0
    else:
        units = close_val - open_val
    return SaleFigures(units_sold=units, total_sale=units * float(rate))


def new_sale(date_iso: str, rate: float, dispenser_open: Optional[float], dispenser_close: Optional[float]) -> SaleRecord:
    figures = compute_sale(dispenser_open, dispenser_close, rate)
    return SaleRecord(
        date=date_iso,
        rate_per_liter=float(rate),
        dispenser_open=0.0 if dispenser_open is None else float(dispenser_open),
        dispenser_close=0.0 if dispenser_close is None else float(dispenser_close),
        units_sold=figures.units_sold,
        total_sale=figures.total_sale,
    )


def edited_fields(rate: float, dispenser_open: float, dispenser_close: float) -> Dict[str, float]:
    """The column set an edit writes back; units and total are always recomputed."""
    figures = compute_sale(dispenser_open, dispenser_close, rate)
    return {
        "rate_per_liter": float(rate),
        "dispenser_open": float(dispenser_open),
        "dispenser_close": float(dispenser_close),
        "units_sold": figures.units_sold,
        "total_sale": figures.total_sale,
    }


def summarize(records: List[SaleRecord]) -> Dict[str, float]:
    total = sum(r.total_sale for r in records)
    liters = sum(r.units_sold for r in records)
    count = len(records)
    return {
        "count": count,
        "total_sales": total,
        "total_liters": liters,
        "average_sale": total / count if count else 0.0,
    }


def format_liters(value: float) -> str:
    return f"{value:.2f}"


def format_currency(value: float) -> str:
    if float(value).is_integer():
        return f"{int(value):,}"
    return f"{value:,.2f}"
