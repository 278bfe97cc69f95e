import json
import os
import tempfile
import threading
from datetime import date, datetime, timedelta

_DATA_DIR = os.path.join(os.path.dirname(os.path.dirname(__file__)), "data")
_FILE_LOCK = threading.Lock()

SALES_FILE = "fuel_sales.json"
CONFIG_FILE = "config.json"

DEFAULTS = {
    SALES_FILE: [],
    CONFIG_FILE: {
        "default_rate_per_liter": 9500,
        "store": {
            "backend": "json",  # "json" or "supabase"
            "table": "fuel_sales",
        },
        "dashboard": {
            "title": "Fuel Center Dashboard",
            "subtitle": "PETROL SALE PUMP ONE",
        },
    },
}

def data_path(filename: str) -> str:
    os.makedirs(_DATA_DIR, exist_ok=True)
    return os.path.join(_DATA_DIR, filename)

def _atomic_write(path: str, data_obj):
    tmp_fd, tmp_path = tempfile.mkstemp(prefix=".tmp_", dir=_DATA_DIR)
    try:
        with os.fdopen(tmp_fd, "w", encoding="utf-8") as f:
            json.dump(data_obj, f, indent=2)
        os.replace(tmp_path, path)
    finally:
        if os.path.exists(tmp_path):
            os.remove(tmp_path)

def ensure_defaults():
    os.makedirs(_DATA_DIR, exist_ok=True)
    for fname, default in DEFAULTS.items():
        path = data_path(fname)
        if not os.path.exists(path):
            with _FILE_LOCK:
                _atomic_write(path, default)

def read_json(filename: str):
    path = data_path(filename)
    with _FILE_LOCK:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)

def write_json(filename: str, obj):
    path = data_path(filename)
    with _FILE_LOCK:
        _atomic_write(path, obj)

def read_config() -> dict:
    return read_json(CONFIG_FILE)

def default_rate_from_config() -> float:
    cfg = read_config()
    return float(cfg.get("default_rate_per_liter", DEFAULTS[CONFIG_FILE]["default_rate_per_liter"]))

def today_iso() -> str:
    return date.today().isoformat()

def previous_day(date_iso: str) -> str:
    d = datetime.fromisoformat(date_iso).date()
    return (d - timedelta(days=1)).isoformat()
