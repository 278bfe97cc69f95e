import logging

from utils.file_manager import previous_day
from utils.sale_store import SaleStore, StoreError

LOG = logging.getLogger(__name__)


def resolve_opening_reading(store: SaleStore, target_date: str) -> float:
    """Closing reading of the day before ``target_date``, or 0 when there is none.

    A failed lookup is logged and resolves to 0 so a missing prior day never
    blocks today's entry.
    """
    try:
        prior = previous_day(target_date)
    except (TypeError, ValueError):
        LOG.warning("Cannot carry forward into invalid date %r", target_date)
        return 0.0
    try:
        rows = store.select_by_date(prior)
    except StoreError:
        LOG.warning("Error fetching closing reading for %s", prior, exc_info=True)
        return 0.0
    if not rows:
        return 0.0
    return rows[0].dispenser_close
