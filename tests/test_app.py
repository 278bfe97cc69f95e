import io

import pytest
from openpyxl import load_workbook

import utils.file_manager as fm
from models import dashboard
from utils.sale_store import JsonSaleStore


@pytest.fixture
def client(tmp_path, monkeypatch):
    monkeypatch.setattr(fm, "_DATA_DIR", tmp_path / "data")
    monkeypatch.setattr(dashboard, "today_iso", lambda: "2024-01-10")
    monkeypatch.delenv("FUEL_STORE_BACKEND", raising=False)
    fm.ensure_defaults()
    import app as app_module

    monkeypatch.setattr(app_module, "_store", JsonSaleStore())
    monkeypatch.setattr(app_module, "_state", None)
    app_module.app.config["TESTING"] = True
    with app_module.app.test_client() as c:
        yield c


def add(client, **body):
    return client.post("/api/sales", json=body)


def test_dashboard_renders_empty(client):
    res = client.get("/")
    assert res.status_code == 200
    assert b"No sales records found" in res.data
    assert b"Fuel Center Dashboard" in res.data


def test_api_create_and_list(client):
    res = add(client, date="2024-01-02", rate_per_liter=9500, dispenser_open=100, dispenser_close=150)
    assert res.status_code == 201
    sale = res.get_json()["sale"]
    assert sale["units_sold"] == 50 and sale["total_sale"] == 475000
    assert sale["id"] == 1

    listed = client.get("/api/sales").get_json()["sales"]
    assert [s["date"] for s in listed] == ["2024-01-02"]


def test_api_rejects_close_not_above_open(client):
    res = add(client, date="2024-01-02", dispenser_open=200, dispenser_close=100)
    assert res.status_code == 400
    assert res.get_json()["ok"] is False
    assert client.get("/api/sales").get_json()["sales"] == []


def test_api_opening_reading(client):
    add(client, date="2024-01-02", dispenser_open=100, dispenser_close=150)
    res = client.get("/api/opening-reading?date=2024-01-03").get_json()
    assert res["dispenser_open"] == 150
    res = client.get("/api/opening-reading?date=2024-01-05").get_json()
    assert res["dispenser_open"] == 0
    assert client.get("/api/opening-reading?date=bad").status_code == 400


def test_api_update_recomputes(client):
    add(client, date="2024-01-02", dispenser_open=100, dispenser_close=150)
    res = client.put("/api/sales/1", json={"rate_per_liter": 9000, "dispenser_open": 100, "dispenser_close": 160})
    sale = res.get_json()["sale"]
    assert sale["units_sold"] == 60 and sale["total_sale"] == 540000
    assert sale["date"] == "2024-01-02"
    assert client.put("/api/sales/1", json={"rate_per_liter": 9000}).status_code == 400
    assert client.put("/api/sales/9", json={"rate_per_liter": 1, "dispenser_open": 0, "dispenser_close": 1}).status_code == 502


def test_api_summary(client):
    add(client, date="2024-01-01", rate_per_liter=10, dispenser_open=0, dispenser_close=5)
    add(client, date="2024-01-02", rate_per_liter=10, dispenser_open=5, dispenser_close=20)
    summary = client.get("/api/summary").get_json()["summary"]
    assert summary == {"count": 2, "total_sales": 200, "total_liters": 20, "average_sale": 100}


def test_form_flow_with_carry_forward_and_edit(client):
    client.post("/date", data={"date": "2024-01-02"})
    res = client.post("/sales", data={"date": "2024-01-02", "rate_per_liter": "9500",
                                      "dispenser_open": "100", "dispenser_close": "150"})
    assert res.status_code == 302

    client.post("/date", data={"date": "2024-01-03"})
    page = client.get("/").data
    assert b'value="150"' in page
    assert b"475,000" in page

    client.post("/sales/1/edit")
    client.post("/sales/1/save", data={"rate_per_liter": "9000", "dispenser_open": "100", "dispenser_close": "150"})
    listed = client.get("/api/sales").get_json()["sales"]
    assert listed[0]["total_sale"] == 450000


def test_form_validation_error_is_shown(client):
    client.post("/sales", data={"date": "2024-01-10", "rate_per_liter": "9500",
                                "dispenser_open": "200", "dispenser_close": "100"})
    page = client.get("/").data
    assert b"Dispenser Close must be greater than Dispenser Open" in page
    assert client.get("/status").get_json()["records"] == 0


def test_export_download(client):
    add(client, date="2024-01-03", dispenser_open=150, dispenser_close=170)
    add(client, date="2024-01-02", dispenser_open=100, dispenser_close=150)
    res = client.get("/export")
    assert res.status_code == 200
    assert "fuel-sales-" in res.headers["Content-Disposition"]
    ws = load_workbook(io.BytesIO(res.data)).active
    dates = [row[0] for row in ws.iter_rows(min_row=2, values_only=True)]
    assert dates == ["2024-01-02", "2024-01-03"]


def test_config_update_changes_default_rate(client):
    res = client.post("/config", json={"default_rate_per_liter": 9800, "unknown": 1})
    assert res.get_json()["changed"] == {"default_rate_per_liter": 9800}
    assert fm.default_rate_from_config() == 9800


def test_date_change_keeps_typed_rate_and_close(client):
    add(client, date="2024-01-02", dispenser_open=100, dispenser_close=150)
    client.post("/date", data={"date": "2024-01-03", "rate_per_liter": "9700",
                               "dispenser_open": "", "dispenser_close": "180"})
    page = client.get("/").data
    assert b'name="rate_per_liter" type="number" value="9700"' in page
    assert b'placeholder="Enter dispenser close reading" value="180"' in page
    assert b'placeholder="Auto-filled from yesterday\'s closing" value="150"' in page
