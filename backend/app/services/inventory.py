from __future__ import annotations

import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from backend.app.core.errors import FailedPrecondition, InvalidArgument, NotFound, PermissionDenied
from backend.app.db import models
from backend.app.db.session import session_scope
from backend.app.services.entities import (
    ROLE_DEALERSHIP_ADMIN,
    ROLE_FACTORY,
    ROLE_SALESPERSON,
    STATUS_ARRIVED,
    STATUS_AT_FACTORY,
    STATUS_IN_STOCK,
    STATUS_IN_TRANSIT,
    STATUS_TRANSFERRING,
    VehicleRecord,
    parse_timestamp,
)

logger = logging.getLogger(__name__)

# Statuses a dealership can check into stock: shipped from the factory or another dealership.
ACCEPTABLE_STATUSES = frozenset({STATUS_IN_TRANSIT, STATUS_ARRIVED, STATUS_TRANSFERRING})


def append_history(vehicle: models.Vehicle, status: str, at: Optional[datetime] = None) -> None:
    """Set the vehicle status and append the matching history entry.

    Entries never go back in time: a timestamp earlier than the last entry is
    clamped to it, so the log stays ordered and ends with the current status.
    """
    at = at or datetime.now(timezone.utc)
    history = list(vehicle.history or [])
    if history:
        last = parse_timestamp(history[-1]["date"])
        if last is not None and at < last:
            at = last
    history.append({"status": status, "date": at.isoformat()})
    vehicle.history = history  # new list so the JSON column is flagged dirty
    vehicle.status = status


def vehicle_to_dict(vehicle: models.Vehicle) -> Dict[str, Any]:
    return VehicleRecord.from_model(vehicle).to_dict()


def _require_user(session: Session, caller_id: str) -> models.User:
    caller = session.get(models.User, caller_id)
    if caller is None:
        raise PermissionDenied("Unknown caller.")
    return caller


def create_vehicle(vin: str, model: str, color: str, year: int, cost_price: Any) -> Dict[str, Any]:
    """Register a new vehicle at the factory."""
    vin = (vin or "").strip().upper()
    if not vin or not model:
        raise InvalidArgument("VIN and model are required.")

    with session_scope() as session:
        exists = session.execute(
            select(models.Vehicle.vin).where(func.upper(models.Vehicle.vin) == vin)
        ).first()
        if exists:
            raise InvalidArgument(f"VIN {vin} already exists.")

        vehicle = models.Vehicle(
            vin=vin,
            model=model,
            color=color,
            year=int(year),
            cost_price=Decimal(str(cost_price)),
            dealership_id=None,
            history=[],
        )
        append_history(vehicle, STATUS_AT_FACTORY)
        session.add(vehicle)
        session.flush()
        return vehicle_to_dict(vehicle)


def bulk_assign_vehicles(caller_id: str, vins: List[str], dealership_id: str) -> Dict[str, Any]:
    """Ship factory vehicles to a dealership (In-Transit).

    Only vehicles still at the factory are assignable; unknown VINs and vehicles
    that already left the factory are reported as skipped.
    """
    if not vins or not dealership_id:
        raise InvalidArgument("VINs and dealership are required.")

    with session_scope() as session:
        caller = _require_user(session, caller_id)
        if caller.role != ROLE_FACTORY:
            raise PermissionDenied("Only factory users can assign vehicles.")
        if session.get(models.Dealership, dealership_id) is None:
            raise NotFound(f"Dealership {dealership_id} not found.")

        now = datetime.now(timezone.utc)
        assigned: List[str] = []
        skipped: List[str] = []
        for vin in vins:
            vehicle = session.get(models.Vehicle, vin)
            if vehicle is None or vehicle.status != STATUS_AT_FACTORY or vehicle.dealership_id is not None:
                skipped.append(vin)
                continue
            vehicle.dealership_id = dealership_id
            append_history(vehicle, STATUS_IN_TRANSIT, now)
            assigned.append(vin)

    logger.info("Assigned %d vehicles to %s (%d skipped)", len(assigned), dealership_id, len(skipped))
    return {"assigned": assigned, "skipped": skipped}


def accept_vehicle_delivery(caller_id: str, vin: str) -> Dict[str, Any]:
    """Check a delivered vehicle into the caller's dealership stock."""
    with session_scope() as session:
        caller = _require_user(session, caller_id)
        vehicle = session.get(models.Vehicle, vin)
        if vehicle is None:
            raise NotFound(f"Vehicle {vin} not found.")
        if caller.role not in {ROLE_DEALERSHIP_ADMIN, ROLE_SALESPERSON} or caller.dealership_id != vehicle.dealership_id:
            raise PermissionDenied("The vehicle is not assigned to your dealership.")
        if vehicle.status not in ACCEPTABLE_STATUSES:
            raise FailedPrecondition(f"A vehicle in status {vehicle.status} cannot be accepted into stock.")
        append_history(vehicle, STATUS_IN_STOCK)
        session.flush()
        return vehicle_to_dict(vehicle)
