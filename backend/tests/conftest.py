from __future__ import annotations

import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path

# Must run before backend.app.core.settings is imported anywhere.
_DB_FILE = Path(tempfile.mkdtemp(prefix="dealer-network-tests-")) / "dashboard.db"
os.environ["DATABASE_URL"] = os.getenv("TEST_DATABASE_URL", f"sqlite:///{_DB_FILE}")
os.environ["METRICS_AUTO_REFRESH"] = "false"
os.environ["FORECAST_SCHEDULER_ENABLED"] = "false"

import pytest  # noqa: E402

from backend.app.db import models  # noqa: E402
from backend.app.db.models import Base  # noqa: E402
from backend.app.db.session import ENGINE, create_schema, session_scope  # noqa: E402
from backend.app.services.directory import create_dealership, create_user  # noqa: E402
from backend.app.services.entities import (  # noqa: E402
    ROLE_DEALERSHIP_ADMIN,
    ROLE_FACTORY,
    ROLE_SALESPERSON,
    STATUS_AT_FACTORY,
    STATUS_IN_STOCK,
    STATUS_IN_TRANSIT,
)
from backend.app.services.inventory import append_history  # noqa: E402

create_schema()


def _truncate_tables() -> None:
    with ENGINE.begin() as conn:
        for table in reversed(Base.metadata.sorted_tables):
            conn.execute(table.delete())


@pytest.fixture(autouse=True)
def clean_database():
    _truncate_tables()
    yield


@pytest.fixture
def network():
    """Two dealerships, an admin and a salesperson at each, and a factory user."""
    create_dealership("Norte Rodados", "Salta", "Salta", coords={"x": 10, "y": 20}, dealership_id="d-north")
    create_dealership("Auto del Sol", "Buenos Aires", "Buenos Aires", coords={"x": 30, "y": 40}, dealership_id="d-sol")
    create_user("factory", "Factory Logistics", ROLE_FACTORY, user_id="factory-1")
    create_user("admin_north", "Nora Admin", ROLE_DEALERSHIP_ADMIN, dealership_id="d-north", user_id="admin-north")
    create_user("admin_sol", "Sol Admin", ROLE_DEALERSHIP_ADMIN, dealership_id="d-sol", user_id="admin-sol")
    create_user("sp_north", "Nico Ventas", ROLE_SALESPERSON, dealership_id="d-north", commission_rate=0.1, user_id="sp-north")
    create_user("sp_sol", "Sofia Ventas", ROLE_SALESPERSON, dealership_id="d-sol", commission_rate=0.1, user_id="sp-sol")
    return {
        "dealerships": ["d-north", "d-sol"],
        "factory": "factory-1",
        "admins": {"d-north": "admin-north", "d-sol": "admin-sol"},
        "salespeople": {"d-north": "sp-north", "d-sol": "sp-sol"},
    }


@pytest.fixture
def make_vehicle():
    """Insert a vehicle directly; assigned vehicles go through transit into stock."""

    def _make(vin, model="Ranger", dealership_id=None, cost_price=25000, color="Rojo Furia", status=STATUS_IN_STOCK):
        built_at = datetime(2024, 1, 2, 9, 0, tzinfo=timezone.utc)
        with session_scope() as session:
            vehicle = models.Vehicle(
                vin=vin,
                model=model,
                color=color,
                year=2024,
                cost_price=cost_price,
                dealership_id=dealership_id,
                history=[],
            )
            append_history(vehicle, STATUS_AT_FACTORY, built_at)
            if dealership_id is not None:
                append_history(vehicle, STATUS_IN_TRANSIT, built_at.replace(day=3))
                if status != STATUS_IN_TRANSIT:
                    append_history(vehicle, status, built_at.replace(day=9))
            session.add(vehicle)
        return vin

    return _make
