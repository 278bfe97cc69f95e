"""
Dashboard state and the transitions the operator can trigger.

The web layer keeps one ``DashboardState`` and swaps it for whatever each
transition returns. Transitions never mutate the state they are given, so a
flow can be replayed step by step in tests without a browser.

Modes:
    create (always available): ``state.form`` feeds ``submit``.
    edit: ``state.edit`` is an ``EditSession`` for exactly one record, or None.
"""
import logging
from dataclasses import dataclass, field, replace
from typing import List, Optional, Tuple

from models.carry_forward import resolve_opening_reading
from models.sales import (
    SaleRecord,
    ValidationError,
    edited_fields,
    new_sale,
    parse_date,
    parse_reading,
)
from utils.file_manager import today_iso
from utils.sale_store import SaleStore, StoreError

LOG = logging.getLogger(__name__)

DEFAULT_RATE = 9500.0

FETCH_FAILED = "Failed to fetch sales data"
ADD_FAILED = "Failed to add sale record"
UPDATE_FAILED = "Failed to update sale record"


@dataclass(frozen=True)
class SaleForm:
    date: str
    rate_per_liter: float = DEFAULT_RATE
    dispenser_open: str = ""
    dispenser_close: str = ""


@dataclass(frozen=True)
class EditSession:
    record_id: int
    rate_per_liter: float
    dispenser_open: float
    dispenser_close: float


@dataclass(frozen=True)
class DashboardState:
    form: SaleForm
    sales: List[SaleRecord] = field(default_factory=list)
    loading: bool = True
    error: Optional[str] = None
    edit: Optional[EditSession] = None
    default_rate: float = DEFAULT_RATE
    date_request_seq: int = 0

    @property
    def editing_id(self) -> Optional[int]:
        return self.edit.record_id if self.edit else None


def blank_form(default_rate: float = DEFAULT_RATE, today: Optional[str] = None) -> SaleForm:
    return SaleForm(date=today or today_iso(), rate_per_liter=default_rate)


def initial_state(default_rate: float = DEFAULT_RATE, today: Optional[str] = None) -> DashboardState:
    return DashboardState(form=blank_form(default_rate, today), default_rate=default_rate)


# -------- Fetch --------
def _refresh(store: SaleStore, state: DashboardState) -> Tuple[DashboardState, bool]:
    try:
        sales = store.select_all()
    except StoreError:
        LOG.exception("Error fetching sales")
        return replace(state, loading=False, error=FETCH_FAILED), False
    return replace(state, sales=sales, loading=False), True


def fetch_sales(store: SaleStore, state: DashboardState) -> DashboardState:
    return _refresh(store, state)[0]


def initialize_opening_reading(store: SaleStore, state: DashboardState) -> DashboardState:
    """Fill the opening reading for the form's current date from the day before."""
    state, seq = begin_date_change(state, state.form.date)
    return apply_opening_reading(state, seq, resolve_opening_reading(store, state.form.date))


def load(store: SaleStore, state: DashboardState) -> DashboardState:
    return initialize_opening_reading(store, fetch_sales(store, state))


# -------- Date change / carry-forward --------
def begin_date_change(state: DashboardState, new_date: str) -> Tuple[DashboardState, int]:
    """Record the newly selected date and hand out a ticket for its lookup."""
    seq = state.date_request_seq + 1
    form = replace(state.form, date=new_date)
    return replace(state, form=form, date_request_seq=seq), seq


def apply_opening_reading(state: DashboardState, seq: int, opening: float) -> DashboardState:
    if seq != state.date_request_seq:
        LOG.info("Discarding stale opening reading (request %s, latest %s)", seq, state.date_request_seq)
        return state
    form = replace(state.form, dispenser_open=_reading_text(opening))
    return replace(state, form=form)


def change_date(store: SaleStore, state: DashboardState, new_date: str) -> DashboardState:
    state, seq = begin_date_change(state, new_date)
    return apply_opening_reading(state, seq, resolve_opening_reading(store, new_date))


def update_form(state: DashboardState, **values) -> DashboardState:
    """Edit rate or readings in the create form without touching the date."""
    if "date" in values:
        raise TypeError("use change_date to change the form date")
    return replace(state, form=replace(state.form, **values))


def _reading_text(value: float) -> str:
    value = float(value)
    return str(int(value)) if value.is_integer() else str(value)


# -------- Create --------
def submit(store: SaleStore, state: DashboardState) -> DashboardState:
    form = state.form
    try:
        record = new_sale(
            parse_date(form.date),
            parse_reading(form.rate_per_liter, "Rate per Liter"),
            parse_reading(form.dispenser_open, "Dispenser Open"),
            parse_reading(form.dispenser_close, "Dispenser Close"),
        )
    except ValidationError as e:
        return replace(state, error=str(e))

    try:
        store.insert([record])
    except StoreError:
        LOG.exception("Error adding sale for %s", record.date)
        return replace(state, error=ADD_FAILED)
    LOG.info("Recorded sale for %s: %.2f L, total %.2f", record.date, record.units_sold, record.total_sale)

    state, fetched = _refresh(store, state)
    form = blank_form(state.default_rate)
    if not fetched:
        return replace(state, form=form)
    return replace(state, form=form, error=None)


# -------- Edit --------
def _find(state: DashboardState, record_id: int) -> Optional[SaleRecord]:
    for rec in state.sales:
        if rec.id == record_id:
            return rec
    return None


def start_edit(state: DashboardState, record_id: int) -> DashboardState:
    if state.edit is not None and state.edit.record_id != record_id:
        return replace(state, error=f"Finish editing record {state.edit.record_id} before editing another")
    rec = _find(state, record_id)
    if rec is None:
        return replace(state, error=f"No sale record with id {record_id}")
    session = EditSession(
        record_id=record_id,
        rate_per_liter=rec.rate_per_liter,
        dispenser_open=rec.dispenser_open,
        dispenser_close=rec.dispenser_close,
    )
    return replace(state, edit=session)


def update_edit(state: DashboardState, **values) -> DashboardState:
    if state.edit is None:
        return replace(state, error="No sale record is being edited")
    values = {k: float(v) for k, v in values.items()}
    return replace(state, edit=replace(state.edit, **values))


def save_edit(store: SaleStore, state: DashboardState, record_id: int) -> DashboardState:
    session = state.edit
    if session is None or session.record_id != record_id:
        return replace(state, error=f"Sale record {record_id} is not being edited")
    try:
        fields = edited_fields(session.rate_per_liter, session.dispenser_open, session.dispenser_close)
    except ValidationError as e:
        return replace(state, error=str(e))

    try:
        store.update_by_id(record_id, fields)
    except StoreError:
        LOG.exception("Error updating sale %s", record_id)
        return replace(state, error=UPDATE_FAILED)
    LOG.info("Updated sale %s", record_id)

    state, fetched = _refresh(store, state)
    if not fetched:
        return replace(state, edit=None)
    return replace(state, edit=None, error=None)


def cancel_edit(state: DashboardState) -> DashboardState:
    return replace(state, edit=None)
