"""Weekly demand forecast per (model, province).

Forecast = ceil(units sold in the trailing three calendar months / 3). Each run
overwrites the documents for the keys it computes; keys without recent sales keep
their previous forecast.
"""

from __future__ import annotations

import asyncio
import logging
import math
import re
import unicodedata
from collections import Counter
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional, Tuple

import pandas as pd
from sqlalchemy import select

from backend.app.core.settings import settings
from backend.app.db import models
from backend.app.db.session import session_scope
from backend.app.services.collections import read_collection
from backend.app.services.entities import SaleRecord, ensure_utc, index_by

logger = logging.getLogger(__name__)

WINDOW_MONTHS = 3


def slugify(value: str) -> str:
    normalized = unicodedata.normalize("NFKD", str(value).strip())
    ascii_text = normalized.encode("ascii", "ignore").decode("ascii").lower()
    ascii_text = re.sub(r"[^\w\s-]", "", ascii_text)
    return re.sub(r"\s+", "_", ascii_text.strip())


def forecast_id(model: str, province: str) -> str:
    return f"{slugify(model)}-{slugify(province)}"


def window_start(now: datetime) -> datetime:
    """Same wall-clock moment three calendar months earlier (clamped to month end)."""
    start = pd.Timestamp(now) - pd.DateOffset(months=WINDOW_MONTHS)
    return ensure_utc(start.to_pydatetime())


def forecast_units(total_sales: int) -> int:
    return math.ceil(total_sales / WINDOW_MONTHS)


def run_demand_forecast(now: Optional[datetime] = None) -> Dict[str, Any]:
    """Recompute forecasts from the trailing window. A window without sales writes nothing."""
    now = ensure_utc(now or datetime.now(timezone.utc))
    since = window_start(now)

    with session_scope() as session:
        rows = session.execute(
            select(models.Sale).where(models.Sale.timestamp >= since).order_by(models.Sale.id)
        ).scalars().all()
        recent_sales = [SaleRecord.from_model(row) for row in rows]

        if not recent_sales:
            logger.info("No sales since %s; skipping demand forecast", since.date().isoformat())
            return {"status": "skipped", "window_start": since.isoformat(), "forecasts": 0}

        vehicles_by_vin = index_by(read_collection(session, "vehicles"), lambda v: v.vin)
        dealerships_by_id = index_by(read_collection(session, "dealerships"), lambda d: d.id)

        # Salesperson is irrelevant here, so only vehicle and dealership must resolve.
        counts: Counter[Tuple[str, str]] = Counter()
        for sale in recent_sales:
            vehicle = vehicles_by_vin.get(sale.vehicle_id)
            dealership = dealerships_by_id.get(sale.dealership_id)
            if vehicle is None or dealership is None:
                continue
            counts[(vehicle.model, dealership.province)] += 1

        for (model, province), total in counts.items():
            key = forecast_id(model, province)
            forecast = session.get(models.DemandForecast, key)
            if forecast is None:
                forecast = models.DemandForecast(id=key)
                session.add(forecast)
            forecast.model = model
            forecast.province = province
            forecast.forecasted_sales = forecast_units(total)
            forecast.last_calculated = now

    logger.info("Demand forecast updated for %d model/province combinations", len(counts))
    return {"status": "updated", "window_start": since.isoformat(), "forecasts": len(counts)}


def next_weekly_run(now: datetime, weekday: Optional[int] = None, hour: Optional[int] = None) -> datetime:
    """Next slot strictly after ``now`` on ``weekday`` (0=Monday) at ``hour``:00 UTC."""
    weekday = settings.forecast_weekday if weekday is None else weekday
    hour = settings.forecast_hour_utc if hour is None else hour
    now = ensure_utc(now)
    candidate = now.replace(hour=hour, minute=0, second=0, microsecond=0)
    candidate += timedelta(days=(weekday - now.weekday()) % 7)
    if candidate <= now:
        candidate += timedelta(days=7)
    return candidate


async def forecast_scheduler() -> None:
    """Run the forecast job forever at the configured weekly slot."""
    while True:
        now = datetime.now(timezone.utc)
        due = next_weekly_run(now)
        await asyncio.sleep((due - now).total_seconds())
        try:
            await asyncio.to_thread(run_demand_forecast)
        except Exception:
            logger.exception("Weekly demand forecast failed")
