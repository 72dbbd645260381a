from __future__ import annotations

import asyncio
from typing import Any, Callable, Dict, List, Tuple

from sqlalchemy import select
from sqlalchemy.orm import Session

from backend.app.db import models
from backend.app.db.session import session_scope
from backend.app.services.entities import (
    DealershipRecord,
    GoalRecord,
    SaleRecord,
    SourceCollections,
    UserRecord,
    VehicleRecord,
)

# collection name -> (ORM model, key column, record factory)
COLLECTIONS: Dict[str, Tuple[Any, Any, Callable[[Any], Any]]] = {
    "sales": (models.Sale, models.Sale.id, SaleRecord.from_model),
    "vehicles": (models.Vehicle, models.Vehicle.vin, VehicleRecord.from_model),
    "users": (models.User, models.User.id, UserRecord.from_model),
    "dealerships": (models.Dealership, models.Dealership.id, DealershipRecord.from_model),
    "goals": (models.Goal, models.Goal.id, GoalRecord.from_model),
}


def read_collection(session: Session, name: str) -> List[Any]:
    """Return every document of a collection as records, ordered by key."""
    model, key, factory = COLLECTIONS[name]
    rows = session.execute(select(model).order_by(key)).scalars().all()
    return [factory(row) for row in rows]


def load_source_collections(session: Session) -> SourceCollections:
    return SourceCollections(**{name: read_collection(session, name) for name in COLLECTIONS})


def _read_in_own_session(name: str) -> List[Any]:
    with session_scope() as session:
        return read_collection(session, name)


async def fetch_source_collections() -> SourceCollections:
    """Read the five collections concurrently, each on its own connection."""
    names = list(COLLECTIONS)
    results = await asyncio.gather(*(asyncio.to_thread(_read_in_own_session, name) for name in names))
    return SourceCollections(**dict(zip(names, results)))
