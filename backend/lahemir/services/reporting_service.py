# Overview: Sales reporting; per-day sales listing and active totals.

from __future__ import annotations

from datetime import date

from ..models import SALE_STATUS_ACTIVE
from ..money import ZERO, to_json_number
from .sales_service import SaleLedger
from lahemir.time_utils import parse_iso_datetime


def daily_report(ledger: SaleLedger, day: date) -> dict:
    """
    Sales dated on ``day`` (UTC), most recent first.

    Only active sales count toward ``totalActiveAmount``; returned sales are
    listed but contribute nothing.
    """
    sales = [s for s in ledger.list() if parse_iso_datetime(s.sale_date).date() == day]
    active = [s for s in sales if s.status == SALE_STATUS_ACTIVE]
    total = sum((s.total_amount for s in active), ZERO)

    return {
        "date": day.isoformat(),
        "sales": [s.to_dict() for s in sales],
        "count": len(sales),
        "activeCount": len(active),
        "returnedCount": len(sales) - len(active),
        "totalActiveAmount": to_json_number(total),
    }
