"""CSV inventory/sales reports over the joined collections.

Output format: UTF-8 byte-order mark, ``;`` separator, every cell double-quoted
with embedded quotes doubled, one header row, ``\\n`` line endings.
"""

from __future__ import annotations

import csv
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Iterable, List, Optional, Sequence, Set

import pandas as pd

from backend.app.core.errors import InvalidArgument
from backend.app.services.collections import fetch_source_collections
from backend.app.services.entities import (
    STATUS_IN_STOCK,
    EnrichedSale,
    SourceCollections,
    ensure_utc,
    index_by,
    join_sales,
)

REPORT_BOM = "\ufeff"
SEPARATOR = ";"
FACTORY_LABEL = "Factory"
EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

DETAILED_COLUMNS = [
    "VIN",
    "Model",
    "Color",
    "Year",
    "Current Status",
    "Dealership",
    "Sale Date",
    "Sale Price",
    "Salesperson",
    "Customer First Name",
    "Customer Last Name",
    "Customer Email",
    "Customer Phone",
    "Customer Address",
]

SUMMARY_COLUMNS = ["Dealership", "Model", "Current Stock", "Sales in Period"]


@dataclass
class ReportOptions:
    dealership_ids: Sequence[str] = field(default_factory=list)
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    detailed: bool = False


@dataclass(frozen=True)
class ReportPeriod:
    start: datetime
    end: datetime

    def contains(self, moment: datetime) -> bool:
        return self.start <= moment <= self.end


def _parse_date(value: Optional[str], field_name: str) -> Optional[datetime]:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError as exc:
        raise InvalidArgument(f"{field_name} must be an ISO date (YYYY-MM-DD)") from exc
    return ensure_utc(parsed)


def resolve_period(start_date: Optional[str], end_date: Optional[str], now: Optional[datetime] = None) -> ReportPeriod:
    """Missing start -> epoch, missing end -> now; the end day is inclusive to the millisecond."""
    start = _parse_date(start_date, "start_date") or EPOCH
    end = _parse_date(end_date, "end_date") or ensure_utc(now or datetime.now(timezone.utc))
    end = end.replace(hour=23, minute=59, second=59, microsecond=999000)
    return ReportPeriod(start=start, end=end)


def format_number(value: Any) -> str:
    if value is None:
        return ""
    number = float(value)
    if number.is_integer():
        return str(int(number))
    return repr(number)


def render_csv(columns: Sequence[str], rows: Iterable[Sequence[str]]) -> str:
    frame = pd.DataFrame(list(rows), columns=list(columns), dtype=str)
    body = frame.to_csv(
        sep=SEPARATOR,
        index=False,
        quoting=csv.QUOTE_ALL,
        doublequote=True,
        lineterminator="\n",
    )
    return REPORT_BOM + body


def _sales_in_scope(sales: Iterable[EnrichedSale], selected: Set[str], period: ReportPeriod) -> List[EnrichedSale]:
    return [
        sale
        for sale in sales
        if (not selected or sale.dealership.id in selected) and period.contains(sale.timestamp)
    ]


def _detailed_rows(source: SourceCollections, enriched: List[EnrichedSale], selected: Set[str], period: ReportPeriod) -> List[List[str]]:
    dealerships_by_id = index_by(source.dealerships, lambda d: d.id)
    sale_by_vin = index_by(enriched, lambda s: s.vehicle.vin)
    in_period = {sale.id for sale in _sales_in_scope(enriched, selected, period)}

    rows: List[List[str]] = []
    for vehicle in source.vehicles:
        if selected and not (vehicle.dealership_id and vehicle.dealership_id in selected):
            continue
        if vehicle.dealership_id:
            dealership = dealerships_by_id.get(vehicle.dealership_id)
            dealership_name = dealership.name if dealership else ""
        else:
            dealership_name = FACTORY_LABEL

        sale = sale_by_vin.get(vehicle.vin)
        sold_in_period = sale is not None and sale.id in in_period
        # Customer columns come from the vehicle's sale even outside the period.
        rows.append(
            [
                vehicle.vin,
                vehicle.model,
                vehicle.color,
                str(vehicle.year),
                vehicle.status,
                dealership_name,
                sale.timestamp.date().isoformat() if sold_in_period else "",
                format_number(sale.sale_price) if sold_in_period else "",
                sale.salesperson.name if sold_in_period else "",
                sale.customer_first_name if sale else "",
                sale.customer_last_name if sale else "",
                sale.customer_email if sale else "",
                sale.customer_phone if sale else "",
                sale.customer_address if sale else "",
            ]
        )
    return rows


def _summary_rows(source: SourceCollections, enriched: List[EnrichedSale], selected: Set[str], period: ReportPeriod) -> List[List[str]]:
    period_sales = _sales_in_scope(enriched, selected, period)
    dealerships = [d for d in source.dealerships if d.id in selected] if selected else list(source.dealerships)

    rows: List[List[str]] = []
    for dealership in dealerships:
        assigned = [v for v in source.vehicles if v.dealership_id == dealership.id]
        models_here = list(dict.fromkeys(v.model for v in assigned))
        for model in models_here:
            stock = sum(1 for v in assigned if v.model == model and v.status == STATUS_IN_STOCK)
            sold = sum(1 for s in period_sales if s.dealership.id == dealership.id and s.vehicle.model == model)
            if stock > 0 or sold > 0:
                rows.append([dealership.name, model, str(stock), str(sold)])
    return rows


def build_report(source: SourceCollections, options: ReportOptions, now: Optional[datetime] = None) -> str:
    """Render the detailed (per vehicle) or summary (per dealership/model) CSV."""
    period = resolve_period(options.start_date, options.end_date, now=now)
    selected = set(options.dealership_ids or [])
    enriched = join_sales(source.sales, source.vehicles, source.users, source.dealerships)

    if options.detailed:
        return render_csv(DETAILED_COLUMNS, _detailed_rows(source, enriched, selected, period))
    return render_csv(SUMMARY_COLUMNS, _summary_rows(source, enriched, selected, period))


async def generate_report(options: ReportOptions, now: Optional[datetime] = None) -> str:
    # Validate dates before touching the database.
    resolve_period(options.start_date, options.end_date, now=now)
    source = await fetch_source_collections()
    return build_report(source, options, now=now)
