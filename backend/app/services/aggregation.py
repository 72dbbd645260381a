"""Aggregation engine: financial KPIs, regional rollup and ranked performer lists.

Everything here is a pure function of a :class:`SourceCollections` read, so running
it twice over unchanged data yields identical numbers.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Sequence, Union

from backend.app.services.entities import (
    GOAL_PROFIT,
    GOAL_SALES_COUNT,
    ROLE_SALESPERSON,
    DealershipRecord,
    EnrichedSale,
    GoalRecord,
    SourceCollections,
    UserRecord,
    index_by,
    join_sales,
)

TOP_SALESPEOPLE = 10
TOP_DEALERSHIPS = 5

KIND_SALESPERSON = "salesperson"
KIND_DEALERSHIP = "dealership"


@dataclass(frozen=True)
class FinancialKpis:
    total_revenue: float
    total_profit: float
    total_commissions: float
    average_margin: float

    def to_dict(self) -> Dict[str, float]:
        return {
            "total_revenue": self.total_revenue,
            "total_profit": self.total_profit,
            "total_commissions": self.total_commissions,
            "average_margin": self.average_margin,
        }


@dataclass(frozen=True)
class RegionalSales:
    province: str
    sales_count: int

    def to_dict(self) -> Dict[str, Any]:
        return {"province": self.province, "sales_count": self.sales_count}


@dataclass(frozen=True)
class GoalProgress:
    target: float
    achieved: float

    @property
    def percent(self) -> Optional[float]:
        if self.target <= 0:
            return None
        return self.achieved / self.target * 100

    @property
    def met(self) -> bool:
        percent = self.percent
        return percent is not None and percent >= 100


@dataclass(frozen=True)
class SalespersonPerformer:
    id: str
    name: str
    profit: float
    sales_count: int
    dealership_id: Optional[str]
    dealership_name: str
    profit_goal: Optional[float] = None
    sales_count_goal: Optional[float] = None
    kind: str = KIND_SALESPERSON

    @property
    def label(self) -> str:
        return self.dealership_name


@dataclass(frozen=True)
class DealershipPerformer:
    id: str
    name: str
    profit: float
    sales_count: int
    city: str
    province: str
    profit_goal: Optional[float] = None
    sales_count_goal: Optional[float] = None
    kind: str = KIND_DEALERSHIP

    @property
    def label(self) -> str:
        return self.city


Performer = Union[SalespersonPerformer, DealershipPerformer]


def current_month(now: Optional[datetime] = None) -> str:
    now = now or datetime.now(timezone.utc)
    return now.strftime("%Y-%m")


def compute_financial_kpis(sales: Sequence[EnrichedSale]) -> FinancialKpis:
    total_revenue = sum(sale.revenue for sale in sales)
    total_profit = sum(sale.profit for sale in sales)
    total_commissions = sum(sale.commission for sale in sales)
    average_margin = (total_profit / total_revenue) * 100 if total_revenue > 0 else 0.0
    return FinancialKpis(
        total_revenue=float(total_revenue),
        total_profit=float(total_profit),
        total_commissions=float(total_commissions),
        average_margin=float(average_margin),
    )


def compute_regional_sales(sales: Iterable[EnrichedSale], dealerships: Iterable[DealershipRecord]) -> List[RegionalSales]:
    """One row per distinct dealership province, in first-seen order, zero-filled."""
    counts: Dict[str, int] = {}
    for sale in sales:
        province = sale.dealership.province
        counts[province] = counts.get(province, 0) + 1

    provinces: List[str] = []
    for dealership in dealerships:
        if dealership.province not in provinces:
            provinces.append(dealership.province)
    return [RegionalSales(province=p, sales_count=counts.get(p, 0)) for p in provinces]


def _goal_index(goals: Iterable[GoalRecord], month: str) -> Dict[tuple, float]:
    index: Dict[tuple, float] = {}
    for goal in goals:
        if goal.month == month:
            index.setdefault((goal.entity_id, goal.type), goal.target)
    return index


def _monthly_totals(sales: Iterable[EnrichedSale], month: str, key) -> Dict[str, tuple]:
    totals: Dict[str, tuple] = {}
    for sale in sales:
        if sale.month != month:
            continue
        entity_id = key(sale)
        profit, count = totals.get(entity_id, (0.0, 0))
        totals[entity_id] = (profit + sale.profit, count + 1)
    return totals


def _rank(performers: List[Performer], limit: int) -> List[Performer]:
    # sorted() is stable: ties keep the collection's key order
    return sorted(performers, key=lambda p: p.profit, reverse=True)[:limit]


def rank_salespeople(
    sales: Sequence[EnrichedSale],
    users: Iterable[UserRecord],
    dealerships: Iterable[DealershipRecord],
    goals: Iterable[GoalRecord],
    month: str,
    limit: int = TOP_SALESPEOPLE,
) -> List[SalespersonPerformer]:
    dealerships_by_id = index_by(dealerships, lambda d: d.id)
    goal_targets = _goal_index(goals, month)
    totals = _monthly_totals(sales, month, lambda s: s.salesperson.id)

    performers: List[Performer] = []
    for user in users:
        if user.role != ROLE_SALESPERSON:
            continue
        profit, count = totals.get(user.id, (0.0, 0))
        dealership = dealerships_by_id.get(user.dealership_id) if user.dealership_id else None
        performers.append(
            SalespersonPerformer(
                id=user.id,
                name=user.name,
                profit=float(profit),
                sales_count=count,
                dealership_id=user.dealership_id,
                dealership_name=dealership.name if dealership else "",
                profit_goal=goal_targets.get((user.id, GOAL_PROFIT)),
                sales_count_goal=goal_targets.get((user.id, GOAL_SALES_COUNT)),
            )
        )
    return _rank(performers, limit)  # type: ignore[return-value]


def rank_dealerships(
    sales: Sequence[EnrichedSale],
    dealerships: Iterable[DealershipRecord],
    goals: Iterable[GoalRecord],
    month: str,
    limit: int = TOP_DEALERSHIPS,
) -> List[DealershipPerformer]:
    goal_targets = _goal_index(goals, month)
    totals = _monthly_totals(sales, month, lambda s: s.dealership.id)

    performers: List[Performer] = []
    for dealership in dealerships:
        profit, count = totals.get(dealership.id, (0.0, 0))
        performers.append(
            DealershipPerformer(
                id=dealership.id,
                name=dealership.name,
                profit=float(profit),
                sales_count=count,
                city=dealership.city,
                province=dealership.province,
                profit_goal=goal_targets.get((dealership.id, GOAL_PROFIT)),
                sales_count_goal=goal_targets.get((dealership.id, GOAL_SALES_COUNT)),
            )
        )
    return _rank(performers, limit)  # type: ignore[return-value]


def _progress_dict(achieved: float, target: Optional[float]) -> Optional[Dict[str, Any]]:
    if target is None:
        return None
    progress = GoalProgress(target=target, achieved=achieved)
    return {"target": target, "percent": progress.percent, "met": progress.met}


def render_performer(performer: Performer) -> Dict[str, Any]:
    """Collapse a typed performer into the common ranked-list element."""
    item: Dict[str, Any] = {
        "kind": performer.kind,
        "id": performer.id,
        "name": performer.name,
        "profit": performer.profit,
        "sales_count": performer.sales_count,
        "label": performer.label,
        "profit_goal": performer.profit_goal,
        "sales_count_goal": performer.sales_count_goal,
        "profit_goal_progress": _progress_dict(performer.profit, performer.profit_goal),
        "sales_count_goal_progress": _progress_dict(performer.sales_count, performer.sales_count_goal),
    }
    if isinstance(performer, SalespersonPerformer):
        item["dealership_id"] = performer.dealership_id
    else:
        item["province"] = performer.province
    return item


def build_dashboard_metrics(source: SourceCollections, now: Optional[datetime] = None) -> Dict[str, Any]:
    """Run the whole pipeline over one read and return the snapshot payload."""
    now = now or datetime.now(timezone.utc)
    month = current_month(now)
    enriched = join_sales(source.sales, source.vehicles, source.users, source.dealerships)

    kpis = compute_financial_kpis(enriched)
    regional = compute_regional_sales(enriched, source.dealerships)
    top_salespeople = rank_salespeople(enriched, source.users, source.dealerships, source.goals, month)
    top_dealerships = rank_dealerships(enriched, source.dealerships, source.goals, month)

    return {
        "enriched_sales": [sale.to_dict() for sale in enriched],
        "regional_sales": [row.to_dict() for row in regional],
        "financial_kpis": kpis.to_dict(),
        "top_salespeople": [render_performer(p) for p in top_salespeople],
        "top_dealerships": [render_performer(p) for p in top_dealerships],
        "vehicles": [vehicle.to_dict() for vehicle in source.vehicles],
        "dealerships": [dealership.to_dict() for dealership in source.dealerships],
        "users": [user.to_dict() for user in source.users],
        "goals": [goal.to_dict() for goal in source.goals],
        "current_month": month,
        "last_updated": now.isoformat(),
    }
