from datetime import datetime, timezone

import pytest

from backend.app.services import aggregation
from backend.app.services.entities import (
    DealershipRecord,
    GoalRecord,
    SaleRecord,
    SourceCollections,
    UserRecord,
    VehicleRecord,
    join_sales,
)

NOW = datetime(2024, 6, 20, 12, 0, tzinfo=timezone.utc)
JUNE = datetime(2024, 6, 10, 10, 0, tzinfo=timezone.utc)
MAY = datetime(2024, 5, 10, 10, 0, tzinfo=timezone.utc)


def _dealerships():
    return [
        DealershipRecord(id="d-1", name="Auto del Sol", city="Buenos Aires", province="Buenos Aires"),
        DealershipRecord(id="d-2", name="Norte Rodados", city="Salta", province="Salta"),
        DealershipRecord(id="d-3", name="Cuyo Cars", city="Mendoza", province="Mendoza"),
        DealershipRecord(id="d-4", name="Sur Autos", city="La Plata", province="Buenos Aires"),
    ]


def _users():
    return [
        UserRecord(id="admin", username="admin", name="Admin", role="DealershipAdmin", dealership_id="d-1"),
        UserRecord(id="u-1", username="ana", name="Ana", role="Salesperson", dealership_id="d-1", commission_rate=0.1),
        UserRecord(id="u-2", username="beto", name="Beto", role="Salesperson", dealership_id="d-2", commission_rate=0.1),
    ]


def _vehicle(vin, dealership_id="d-1"):
    return VehicleRecord(vin=vin, model="Ranger", color="Rojo", year=2024, cost_price=25000.0, status="Sold", dealership_id=dealership_id)


def _sale(sale_id, vin, salesperson_id="u-1", dealership_id="d-1", profit=6500.0, commission=650.0, timestamp=JUNE):
    return SaleRecord(
        id=sale_id,
        vehicle_id=vin,
        salesperson_id=salesperson_id,
        dealership_id=dealership_id,
        sale_price=30000.0,
        financing_income=1000.0,
        insurance_income=500.0,
        profit=profit,
        commission=commission,
        timestamp=timestamp,
    )


def _scenario_source():
    return SourceCollections(
        sales=[_sale(f"s-{i}", f"VIN{i}") for i in range(3)],
        vehicles=[_vehicle(f"VIN{i}") for i in range(3)],
        users=_users(),
        dealerships=_dealerships(),
        goals=[],
    )


def test_financial_kpis_for_three_identical_sales():
    source = _scenario_source()
    enriched = join_sales(source.sales, source.vehicles, source.users, source.dealerships)

    kpis = aggregation.compute_financial_kpis(enriched)

    assert kpis.total_revenue == pytest.approx(94500)
    assert kpis.total_profit == pytest.approx(19500)
    assert kpis.total_commissions == pytest.approx(1950)
    assert kpis.average_margin == pytest.approx(20.63, abs=0.01)


def test_average_margin_is_zero_without_revenue():
    kpis = aggregation.compute_financial_kpis([])

    assert kpis.total_revenue == 0
    assert kpis.average_margin == 0.0


def test_regional_sales_lists_every_province_once_with_zero_fill():
    source = _scenario_source()
    source.sales.append(_sale("s-north", "VIN9", salesperson_id="u-2", dealership_id="d-2"))
    source.vehicles.append(_vehicle("VIN9", dealership_id="d-2"))
    enriched = join_sales(source.sales, source.vehicles, source.users, source.dealerships)

    rows = aggregation.compute_regional_sales(enriched, source.dealerships)

    assert [(row.province, row.sales_count) for row in rows] == [
        ("Buenos Aires", 3),
        ("Salta", 1),
        ("Mendoza", 0),
    ]


def test_rank_salespeople_uses_current_month_only_and_skips_other_roles():
    source = _scenario_source()
    source.sales.append(_sale("s-may", "VIN8", salesperson_id="u-2", dealership_id="d-2", profit=90000.0, timestamp=MAY))
    source.vehicles.append(_vehicle("VIN8", dealership_id="d-2"))
    enriched = join_sales(source.sales, source.vehicles, source.users, source.dealerships)

    ranked = aggregation.rank_salespeople(enriched, source.users, source.dealerships, [], "2024-06")

    assert [(p.id, p.profit, p.sales_count) for p in ranked] == [("u-1", 19500.0, 3), ("u-2", 0.0, 0)]
    assert ranked[0].label == "Auto del Sol"
    assert ranked[1].label == "Norte Rodados"


def test_rank_dealerships_truncates_and_breaks_ties_by_key_order():
    source = _scenario_source()
    enriched = join_sales(source.sales, source.vehicles, source.users, source.dealerships)

    ranked = aggregation.rank_dealerships(enriched, source.dealerships, [], "2024-06", limit=3)

    assert [p.id for p in ranked] == ["d-1", "d-2", "d-3"]
    assert ranked[0].label == "Buenos Aires"
    assert ranked[0].province == "Buenos Aires"


def test_profit_goal_exceeded_is_rendered_as_met():
    sales = [_sale("s-1", "VIN1", profit=12000.0)]
    source = SourceCollections(
        sales=sales,
        vehicles=[_vehicle("VIN1")],
        users=_users(),
        dealerships=_dealerships(),
        goals=[
            GoalRecord(id="2024-06-u-1-profit", entity_id="u-1", type="profit", target=10000.0, month="2024-06"),
            GoalRecord(id="2024-05-u-1-salesCount", entity_id="u-1", type="salesCount", target=4.0, month="2024-05"),
        ],
    )

    payload = aggregation.build_dashboard_metrics(source, now=NOW)
    top = payload["top_salespeople"][0]

    assert top["id"] == "u-1"
    assert top["kind"] == "salesperson"
    assert top["profit_goal"] == 10000.0
    assert top["profit_goal_progress"] == {"target": 10000.0, "percent": pytest.approx(120.0), "met": True}
    assert top["sales_count_goal"] is None
    assert top["sales_count_goal_progress"] is None


def test_goal_progress_without_positive_target_has_no_percentage():
    progress = aggregation.GoalProgress(target=0, achieved=5)

    assert progress.percent is None
    assert progress.met is False


def test_dashboard_metrics_are_identical_across_recomputes():
    source = _scenario_source()

    first = aggregation.build_dashboard_metrics(source, now=NOW)
    second = aggregation.build_dashboard_metrics(source, now=NOW)

    assert first == second
    assert first["current_month"] == "2024-06"
    assert first["last_updated"] == NOW.isoformat()
    assert len(first["enriched_sales"]) == 3
    assert len(first["top_dealerships"]) == 4


def test_dashboard_metrics_ignore_sales_with_missing_vehicle():
    source = _scenario_source()
    source.sales.append(_sale("s-orphan", "NOPE", profit=1_000_000.0))

    payload = aggregation.build_dashboard_metrics(source, now=NOW)

    assert [sale["id"] for sale in payload["enriched_sales"]] == ["s-0", "s-1", "s-2"]
    assert payload["financial_kpis"]["total_profit"] == pytest.approx(19500)
    assert payload["top_salespeople"][0]["profit"] == pytest.approx(19500)
