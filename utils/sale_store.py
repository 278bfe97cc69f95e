"""
Table store for fuel sale records.

Two backends share the ``SaleStore`` contract:

- ``JsonSaleStore`` keeps the ``fuel_sales`` table in ``data/fuel_sales.json``
  through the file manager. It is the default and what the tests run against.
- ``SupabaseSaleStore`` talks to a hosted Supabase project (table
  ``fuel_sales``) using the credentials in ``SUPABASE_URL`` and
  ``SUPABASE_ANON_KEY``.

Every backend failure surfaces as ``StoreError``.
"""
import logging
import os
import threading
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional

from supabase import create_client

from models.sales import SaleRecord
from utils.file_manager import SALES_FILE, read_config, read_json, write_json

LOG = logging.getLogger(__name__)

# Serialises read-modify-write on the JSON table; read_json/write_json hold
# _FILE_LOCK only for a single file operation.
_WRITE_LOCK = threading.Lock()

EDITABLE_FIELDS = ("rate_per_liter", "dispenser_open", "dispenser_close", "units_sold", "total_sale")


class StoreError(RuntimeError):
    """Raised when the table store cannot complete a read or write."""


class SaleStore(ABC):
    table = "fuel_sales"

    @abstractmethod
    def insert(self, records: Iterable[SaleRecord]) -> List[SaleRecord]:
        ...

    @abstractmethod
    def select_all(self) -> List[SaleRecord]:
        """All records, newest date first."""
        ...

    @abstractmethod
    def select_by_date(self, date_iso: str) -> List[SaleRecord]:
        """At most one record for ``date_iso``, the most recently created."""
        ...

    @abstractmethod
    def update_by_id(self, record_id: int, fields: Dict[str, float]) -> SaleRecord:
        ...


def _check_fields(fields: Dict[str, float]) -> Dict[str, float]:
    unknown = set(fields) - set(EDITABLE_FIELDS)
    if unknown:
        raise StoreError(f"Fields not updatable: {', '.join(sorted(unknown))}")
    return {k: float(v) for k, v in fields.items()}


class JsonSaleStore(SaleStore):
    def __init__(self, filename: str = SALES_FILE):
        self.filename = filename

    def _rows(self) -> List[Dict]:
        try:
            return read_json(self.filename)
        except (OSError, ValueError) as exc:
            raise StoreError(f"Could not read {self.filename}: {exc}") from exc

    def _save_rows(self, rows: List[Dict]):
        try:
            write_json(self.filename, rows)
        except (OSError, TypeError) as exc:
            raise StoreError(f"Could not write {self.filename}: {exc}") from exc

    def insert(self, records):
        with _WRITE_LOCK:
            rows = self._rows()
            next_id = max((int(r["id"]) for r in rows), default=0) + 1
            created = []
            for rec in records:
                row = rec.to_row()
                row["id"] = next_id
                row["created_at"] = datetime.now(timezone.utc).isoformat()
                rows.append(row)
                created.append(SaleRecord.from_row(row))
                next_id += 1
            self._save_rows(rows)
        return created

    def select_all(self):
        rows = sorted(self._rows(), key=lambda r: r["date"], reverse=True)
        return [SaleRecord.from_row(r) for r in rows]

    def select_by_date(self, date_iso):
        rows = [r for r in self._rows() if r.get("date") == date_iso]
        # ISO timestamps sort lexicographically; id breaks exact ties
        rows.sort(key=lambda r: (r.get("created_at") or "", int(r["id"])), reverse=True)
        return [SaleRecord.from_row(r) for r in rows[:1]]

    def update_by_id(self, record_id, fields):
        changes = _check_fields(fields)
        with _WRITE_LOCK:
            rows = self._rows()
            for row in rows:
                if int(row["id"]) == int(record_id):
                    row.update(changes)
                    self._save_rows(rows)
                    return SaleRecord.from_row(row)
        raise StoreError(f"No sale record with id {record_id}")


class SupabaseSaleStore(SaleStore):
    def __init__(self, client, table: str = "fuel_sales"):
        self.client = client
        self.table = table

    @classmethod
    def from_env(cls, table: str = "fuel_sales") -> "SupabaseSaleStore":
        url = os.environ.get("SUPABASE_URL")
        key = os.environ.get("SUPABASE_ANON_KEY")
        if not url or not key:
            raise StoreError("SUPABASE_URL and SUPABASE_ANON_KEY must be set for the supabase backend")
        try:
            return cls(create_client(url, key), table=table)
        except Exception as exc:
            raise StoreError(f"Could not create Supabase client: {exc}") from exc

    def _execute(self, query, action: str):
        try:
            return query.execute()
        except Exception as exc:
            raise StoreError(f"Supabase {action} on {self.table} failed: {exc}") from exc

    def insert(self, records):
        payload = [rec.to_row() for rec in records]
        res = self._execute(self.client.table(self.table).insert(payload), "insert")
        return [SaleRecord.from_row(r) for r in (res.data or [])]

    def select_all(self):
        query = self.client.table(self.table).select("*").order("date", desc=True)
        res = self._execute(query, "select")
        return [SaleRecord.from_row(r) for r in (res.data or [])]

    def select_by_date(self, date_iso):
        query = (
            self.client.table(self.table)
            .select("*")
            .eq("date", date_iso)
            .order("created_at", desc=True)
            .limit(1)
        )
        res = self._execute(query, "select")
        return [SaleRecord.from_row(r) for r in (res.data or [])]

    def update_by_id(self, record_id, fields):
        changes = _check_fields(fields)
        query = self.client.table(self.table).update(changes).eq("id", record_id)
        res = self._execute(query, "update")
        if not res.data:
            raise StoreError(f"No sale record with id {record_id}")
        return SaleRecord.from_row(res.data[0])


def get_store(cfg: Optional[Dict] = None) -> SaleStore:
    """Build the store named by config, ``FUEL_STORE_BACKEND`` taking precedence."""
    cfg = cfg if cfg is not None else read_config()
    store_cfg = cfg.get("store", {})
    backend = os.environ.get("FUEL_STORE_BACKEND") or store_cfg.get("backend", "json")
    table = store_cfg.get("table", "fuel_sales")
    if backend == "supabase":
        LOG.info("Using Supabase store (table %s)", table)
        return SupabaseSaleStore.from_env(table=table)
    if backend == "json":
        return JsonSaleStore()
    raise StoreError(f"Unknown store backend: {backend}")
