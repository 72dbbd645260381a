from datetime import datetime, timezone

import pytest

from backend.app.core.settings import settings
from backend.app.db import models
from backend.app.db.session import SessionLocal, session_scope
from backend.app.services import aggregation, metrics_store
from backend.app.services.directory import delete_dealership, delete_user, set_goal
from backend.app.services.sales import CustomerDetails, record_sale

FIRST_RUN = datetime(2024, 6, 20, 12, 0, tzinfo=timezone.utc)
SECOND_RUN = datetime(2024, 6, 21, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def subscribed(monkeypatch):
    monkeypatch.setattr(settings, "metrics_auto_refresh", True)
    metrics_store.subscribe_to_source_changes()
    yield
    metrics_store.unsubscribe_from_source_changes()


def _stored_snapshot():
    with session_scope() as session:
        return metrics_store.read_snapshot(session)


def test_refresh_writes_and_replaces_singleton_snapshot(network, make_vehicle):
    make_vehicle("VINSNAP1", dealership_id="d-north", cost_price=25000)
    record_sale("sp-north", "VINSNAP1", CustomerDetails(first_name="Ana"), 30000, 1000, 500, timestamp=FIRST_RUN)

    assert metrics_store.refresh_metrics_snapshot(now=FIRST_RUN) is True
    first = _stored_snapshot()
    assert first["financial_kpis"]["total_profit"] == pytest.approx(6500)
    assert first["last_updated"] == FIRST_RUN.isoformat()

    assert metrics_store.refresh_metrics_snapshot(now=SECOND_RUN) is True
    with session_scope() as session:
        rows = session.query(models.MetricsSnapshot).all()
        assert [row.id for row in rows] == [metrics_store.SNAPSHOT_ID]
    assert _stored_snapshot()["last_updated"] == SECOND_RUN.isoformat()


def test_failed_refresh_keeps_previous_snapshot(network, monkeypatch):
    assert metrics_store.refresh_metrics_snapshot(now=FIRST_RUN) is True

    def _boom(*args, **kwargs):
        raise RuntimeError("aggregation exploded")

    monkeypatch.setattr(aggregation, "build_dashboard_metrics", _boom)

    assert metrics_store.refresh_metrics_snapshot(now=SECOND_RUN) is False
    assert _stored_snapshot()["last_updated"] == FIRST_RUN.isoformat()


def test_read_snapshot_is_none_before_first_refresh():
    assert _stored_snapshot() is None


def test_write_to_watched_collection_rebuilds_snapshot(network, subscribed):
    set_goal("sp-north", "2024-06", "profit", 10000)

    snapshot = _stored_snapshot()
    assert snapshot is not None
    assert [goal["id"] for goal in snapshot["goals"]] == ["2024-06-sp-north-profit"]


def test_unwatched_and_rolled_back_writes_do_not_refresh(network, subscribed, monkeypatch):
    calls = []
    monkeypatch.setattr(metrics_store, "refresh_metrics_snapshot", lambda now=None: calls.append(now) or True)

    with session_scope() as session:
        session.add(
            models.DemandForecast(
                id="ranger-salta", model="Ranger", province="Salta", forecasted_sales=2, last_calculated=FIRST_RUN
            )
        )
    assert calls == []

    session = SessionLocal()
    try:
        session.add(models.Goal(id="2024-06-d-sol-profit", entity_id="d-sol", type="profit", target=1, month="2024-06"))
        session.flush()
        session.rollback()
    finally:
        session.close()
    assert calls == []

    set_goal("d-sol", "2024-06", "salesCount", 3)
    assert len(calls) == 1


def test_on_collections_changed_ignores_unrelated_collections(monkeypatch):
    calls = []
    monkeypatch.setattr(metrics_store, "refresh_metrics_snapshot", lambda now=None: calls.append(now) or True)

    assert metrics_store.on_collections_changed(["transfer_requests"]) is False
    assert metrics_store.on_collections_changed(["sales", "transfer_requests"]) is True
    assert len(calls) == 1


def test_subscribe_is_idempotent(monkeypatch):
    monkeypatch.setattr(settings, "metrics_auto_refresh", True)
    calls = []
    monkeypatch.setattr(metrics_store, "refresh_metrics_snapshot", lambda now=None: calls.append(now) or True)
    metrics_store.subscribe_to_source_changes()
    metrics_store.subscribe_to_source_changes()
    try:
        set_goal("d-north", "2024-06", "profit", 5)
    finally:
        metrics_store.unsubscribe_from_source_changes()
    assert len(calls) == 1


@pytest.mark.asyncio
async def test_async_recompute_matches_session_recompute(network, make_vehicle):
    make_vehicle("VINASYNC1", dealership_id="d-sol")

    fresh = await metrics_store.compute_snapshot_payload_async(now=FIRST_RUN)
    with session_scope() as session:
        expected = metrics_store.compute_snapshot_payload(session, now=FIRST_RUN)

    assert fresh == expected
    assert [v["vin"] for v in fresh["vehicles"]] == ["VINASYNC1"]


def test_deleting_referenced_documents_drops_their_sales_from_snapshot(network, make_vehicle, subscribed):
    make_vehicle("VINDEL01", dealership_id="d-north", cost_price=25000)
    make_vehicle("VINDEL02", dealership_id="d-sol", cost_price=25000)
    record_sale("sp-north", "VINDEL01", CustomerDetails(), 30000, 1000, 500)
    record_sale("sp-sol", "VINDEL02", CustomerDetails(), 28000)
    assert _stored_snapshot()["financial_kpis"]["total_profit"] == pytest.approx(9500)

    delete_user("factory-1", "sp-north")

    snapshot = _stored_snapshot()
    assert [sale["vehicle"]["vin"] for sale in snapshot["enriched_sales"]] == ["VINDEL02"]
    assert snapshot["financial_kpis"]["total_profit"] == pytest.approx(3000)

    delete_dealership("factory-1", "d-sol")

    snapshot = _stored_snapshot()
    assert snapshot["enriched_sales"] == []
    assert snapshot["financial_kpis"]["total_revenue"] == 0
    assert [d["id"] for d in snapshot["dealerships"]] == ["d-north"]
