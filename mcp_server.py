"""
Local MCP server for the fuel sales dashboard.

This exposes the dashboard's record keeping to an LLM or another controller
through FastMCP tools. Tools share the configured sale store with the Flask
app, so records written here show up on the dashboard after its next fetch.

Every tool answers with an MCP content array holding one JSON text item.
"""
import json
import logging
from typing import Any, Dict

from fastmcp import FastMCP

from models.carry_forward import resolve_opening_reading
from models.sales import ValidationError, edited_fields, new_sale, parse_date, parse_reading, summarize
from utils.file_manager import default_rate_from_config, ensure_defaults, read_config
from utils.sale_store import StoreError, get_store

LOG = logging.getLogger(__name__)
logging.basicConfig(level=logging.INFO)

server_instructions = """
This MCP server records and reports daily fuel pump sales. Each record holds a
date, a rate per liter and the dispenser open/close meter readings; liters sold
and total sale are derived. Opening readings default to the previous day's
closing reading.
"""

def _content(payload: Dict[str, Any]) -> Dict[str, Any]:
    return {"content": [{"type": "text", "text": json.dumps(payload)}]}

def _parse_arg(arg: str) -> Dict[str, Any]:
    data = json.loads(arg) if arg else {}
    if not isinstance(data, dict):
        raise ValidationError("Argument must be a JSON object")
    return data

def create_server(store=None) -> FastMCP:
    ensure_defaults()
    if store is None:
        store = get_store()
    mcp = FastMCP(name="Fuel Sales Local MCP", instructions=server_instructions)

    @mcp.tool()
    async def status() -> Dict[str, Any]:
        """
        Return the store configuration and how many records it holds.

        Returns:
            MCP content array with JSON:
            {"store": {...}, "default_rate_per_liter": N, "records": N}
            or {"error": "..."} when the store cannot be read.
        """
        cfg = read_config()
        try:
            count = len(store.select_all())
        except StoreError as e:
            return _content({"error": str(e)})
        return _content({
            "store": cfg.get("store"),
            "default_rate_per_liter": cfg.get("default_rate_per_liter"),
            "records": count,
        })

    @mcp.tool()
    async def sales_history() -> Dict[str, Any]:
        """
        Return every sale record, newest date first.

        Edge cases:
            - Large histories produce big payloads; there is no paging.
        """
        try:
            sales = store.select_all()
        except StoreError as e:
            return _content({"error": str(e)})
        return _content({"sales": [s.to_dict() for s in sales]})

    @mcp.tool()
    async def opening_reading(date: str) -> Dict[str, Any]:
        """
        Return the opening reading a new entry for `date` would start from.

        This is the previous calendar day's closing reading, or 0 when that day
        has no record or the lookup fails.
        """
        try:
            day = parse_date(date)
        except ValidationError as e:
            return _content({"error": str(e)})
        return _content({"date": day, "dispenser_open": resolve_opening_reading(store, day)})

    @mcp.tool()
    async def add_sale(arg: str) -> Dict[str, Any]:
        """
        Record a sale.

        The `arg` parameter is a JSON object:
            {"date": "2024-01-03", "dispenser_close": 210.5,
             "dispenser_open": 150, "rate_per_liter": 9500}

        `rate_per_liter` defaults to the configured preset and
        `dispenser_open` to the carried-forward reading for the date.

        Returns:
            MCP content array with {"sale": {...}} or {"error": "..."}.
        """
        try:
            data = _parse_arg(arg)
            day = parse_date(data.get("date", ""))
            opening = data.get("dispenser_open")
            if opening is None:
                opening = resolve_opening_reading(store, day)
            record = new_sale(
                day,
                parse_reading(data.get("rate_per_liter", default_rate_from_config()), "Rate per Liter"),
                parse_reading(opening, "Dispenser Open"),
                parse_reading(data.get("dispenser_close"), "Dispenser Close"),
            )
            created = store.insert([record])
        except json.JSONDecodeError:
            return _content({"error": "Invalid JSON argument"})
        except (ValidationError, StoreError) as e:
            return _content({"error": str(e)})
        return _content({"sale": created[0].to_dict() if created else record.to_dict()})

    @mcp.tool()
    async def edit_sale(arg: str) -> Dict[str, Any]:
        """
        Change the rate and readings of an existing record.

        The `arg` parameter is a JSON object with `id`, `rate_per_liter`,
        `dispenser_open` and `dispenser_close`. Units sold and total sale are
        recomputed; the date never changes.
        """
        try:
            data = _parse_arg(arg)
            missing = [k for k in ("id", "rate_per_liter", "dispenser_open", "dispenser_close") if data.get(k) is None]
            if missing:
                raise ValidationError(f"Provide {', '.join(missing)}")
            fields = edited_fields(
                parse_reading(data["rate_per_liter"], "Rate per Liter"),
                parse_reading(data["dispenser_open"], "Dispenser Open"),
                parse_reading(data["dispenser_close"], "Dispenser Close"),
            )
            updated = store.update_by_id(int(data["id"]), fields)
        except json.JSONDecodeError:
            return _content({"error": "Invalid JSON argument"})
        except (ValueError, StoreError) as e:
            return _content({"error": str(e)})
        return _content({"sale": updated.to_dict()})

    @mcp.tool()
    async def sales_summary() -> Dict[str, Any]:
        """
        Return the dashboard tiles: total sales, total liters and average sale.
        """
        try:
            summary = summarize(store.select_all())
        except StoreError as e:
            return _content({"error": str(e)})
        return _content({"summary": summary})

    return mcp


def main():
    server = create_server()
    LOG.info("Starting local MCP server on 0.0.0.0:8000 (HTTP)")
    server.run(transport="http", host="0.0.0.0", port=8000, path="/mcp")


if __name__ == "__main__":
    main()
