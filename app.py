import io
import logging
from dataclasses import replace

from flask import Flask, jsonify, redirect, render_template, request, send_file, url_for

from models import dashboard
from models.carry_forward import resolve_opening_reading
from models.export import export_filename, write_workbook
from models.sales import (
    ValidationError,
    edited_fields,
    format_currency,
    format_liters,
    new_sale,
    parse_date,
    parse_reading,
    summarize,
)
from utils.file_manager import CONFIG_FILE, default_rate_from_config, ensure_defaults, read_config, write_json
from utils.sale_store import StoreError, get_store

LOG = logging.getLogger(__name__)
logging.basicConfig(level=logging.INFO)

ensure_defaults()
app = Flask(__name__)
app.jinja_env.filters["liters"] = format_liters
app.jinja_env.filters["currency"] = format_currency

_store = None
_state = None

def _get_store():
    global _store
    if _store is None:
        _store = get_store()
    return _store

def _get_state():
    global _state
    if _state is None:
        _state = dashboard.load(_get_store(), dashboard.initial_state(default_rate_from_config()))
    return _state

def _set_state(state):
    global _state
    _state = state

def _reset():
    """Drop the cached store and dashboard so the next request rebuilds them from config."""
    global _store, _state
    _store = None
    _state = None

@app.errorhandler(StoreError)
def store_unavailable(e):
    LOG.error("Store unavailable: %s", e)
    return jsonify({"ok": False, "error": str(e)}), 502

@app.errorhandler(ValidationError)
def invalid_input(e):
    return jsonify({"ok": False, "error": str(e)}), 400

@app.get("/status")
def status():
    cfg = read_config()
    state = _get_state()
    return jsonify({
        "store": cfg.get("store"),
        "default_rate_per_liter": cfg.get("default_rate_per_liter"),
        "records": len(state.sales),
        "editing_id": state.editing_id,
        "error": state.error,
    })

# -------- Dashboard page --------
@app.get("/")
def index():
    cfg = read_config()
    state = _get_state()
    return render_template(
        "index.html",
        state=state,
        summary=summarize(state.sales),
        title=cfg.get("dashboard", {}).get("title", "Fuel Center Dashboard"),
        subtitle=cfg.get("dashboard", {}).get("subtitle", ""),
    )

@app.post("/date")
def change_date():
    f = request.form
    state = _get_state()
    # keep what the operator typed; the opening reading is refilled below
    typed = {k: f[k] for k in ("rate_per_liter", "dispenser_close") if k in f}
    if typed:
        state = dashboard.update_form(state, **typed)
    _set_state(dashboard.change_date(_get_store(), state, f.get("date", "")))
    return redirect(url_for("index"))

@app.post("/sales")
def create_sale():
    f = request.form
    state = dashboard.update_form(
        _get_state(),
        rate_per_liter=f.get("rate_per_liter", ""),
        dispenser_open=f.get("dispenser_open", ""),
        dispenser_close=f.get("dispenser_close", ""),
    )
    if f.get("date") and f["date"] != state.form.date:
        state, _ = dashboard.begin_date_change(state, f["date"])
    _set_state(dashboard.submit(_get_store(), state))
    return redirect(url_for("index"))

@app.post("/sales/<int:record_id>/edit")
def edit_sale(record_id):
    _set_state(dashboard.start_edit(_get_state(), record_id))
    return redirect(url_for("index"))

@app.post("/sales/<int:record_id>/save")
def save_sale(record_id):
    state = _get_state()
    f = request.form
    try:
        values = {
            "rate_per_liter": parse_reading(f.get("rate_per_liter"), "Rate per Liter"),
            "dispenser_open": parse_reading(f.get("dispenser_open"), "Dispenser Open"),
            "dispenser_close": parse_reading(f.get("dispenser_close"), "Dispenser Close"),
        }
    except ValidationError as e:
        _set_state(replace(state, error=str(e)))
        return redirect(url_for("index"))
    # blank edit inputs keep the snapshot value
    state = dashboard.update_edit(state, **{k: v for k, v in values.items() if v is not None})
    _set_state(dashboard.save_edit(_get_store(), state, record_id))
    return redirect(url_for("index"))

@app.post("/sales/<int:record_id>/cancel")
def cancel_sale_edit(record_id):
    _set_state(dashboard.cancel_edit(_get_state()))
    return redirect(url_for("index"))

@app.get("/export")
def export():
    buf = io.BytesIO()
    write_workbook(_get_state().sales, buf)
    buf.seek(0)
    return send_file(
        buf,
        mimetype="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        as_attachment=True,
        download_name=export_filename(),
    )

# -------- JSON API --------
@app.get("/api/sales")
def api_sales():
    sales = _get_store().select_all()
    return jsonify({"ok": True, "sales": [s.to_dict() for s in sales]})

@app.post("/api/sales")
def api_create_sale():
    data = request.get_json(force=True, silent=True) or {}
    rate = data.get("rate_per_liter", default_rate_from_config())
    record = new_sale(
        parse_date(data.get("date", "")),
        parse_reading(rate, "Rate per Liter"),
        parse_reading(data.get("dispenser_open"), "Dispenser Open"),
        parse_reading(data.get("dispenser_close"), "Dispenser Close"),
    )
    created = _get_store().insert([record])
    _refresh_dashboard()
    return jsonify({"ok": True, "sale": created[0].to_dict() if created else record.to_dict()}), 201

@app.put("/api/sales/<int:record_id>")
def api_update_sale(record_id):
    data = request.get_json(force=True, silent=True) or {}
    missing = [k for k in ("rate_per_liter", "dispenser_open", "dispenser_close") if data.get(k) is None]
    if missing:
        return jsonify({"ok": False, "error": f"Provide {', '.join(missing)}."}), 400
    fields = edited_fields(
        parse_reading(data["rate_per_liter"], "Rate per Liter"),
        parse_reading(data["dispenser_open"], "Dispenser Open"),
        parse_reading(data["dispenser_close"], "Dispenser Close"),
    )
    updated = _get_store().update_by_id(record_id, fields)
    _refresh_dashboard()
    return jsonify({"ok": True, "sale": updated.to_dict()})

@app.get("/api/opening-reading")
def api_opening_reading():
    day = parse_date(request.args.get("date", ""))
    return jsonify({"ok": True, "date": day, "dispenser_open": resolve_opening_reading(_get_store(), day)})

@app.get("/api/summary")
def api_summary():
    return jsonify({"ok": True, "summary": summarize(_get_store().select_all())})

def _refresh_dashboard():
    if _state is not None:
        _set_state(dashboard.fetch_sales(_get_store(), _state))

# -------- Admin --------
@app.post("/config")
def config_update():
    data = request.get_json(force=True, silent=True) or {}
    cfg = read_config()
    # Allow partial updates to top-level keys
    allowed = {"default_rate_per_liter", "store", "dashboard"}
    changed = {}
    for k, v in data.items():
        if k in allowed:
            cfg[k] = v
            changed[k] = v
    write_json(CONFIG_FILE, cfg)
    # Rebuild store/state if the backend or preset rate changed
    if changed:
        _reset()
    return jsonify({"ok": True, "changed": changed, "config": cfg})

if __name__ == "__main__":
    # Running directly: start Flask dev server
    app.run(host="0.0.0.0", port=5000, debug=True)
