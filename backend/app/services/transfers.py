"""Inter-dealership vehicle transfers.

LIFECYCLE:
1. pending: requested by an admin of the receiving dealership
2. approved: source admin accepted; vehicle moves to Transferring at the destination
3. rejected: source admin declined with a reason; vehicle untouched
"completed" is reserved for the receiving-side confirmation and never set here.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from backend.app.core.errors import FailedPrecondition, InvalidArgument, NotFound, PermissionDenied
from backend.app.db import models
from backend.app.db.session import session_scope
from backend.app.services.entities import ROLE_DEALERSHIP_ADMIN, STATUS_TRANSFERRING, ensure_utc
from backend.app.services.inventory import append_history

logger = logging.getLogger(__name__)

TRANSFER_PENDING = "pending"
TRANSFER_APPROVED = "approved"
TRANSFER_REJECTED = "rejected"
TRANSFER_COMPLETED = "completed"
DECISION_STATUSES = {TRANSFER_APPROVED, TRANSFER_REJECTED}

ARRIVAL_OFFSET = timedelta(days=7)
ORIGIN_LOCATION = "Origin distribution center"


def serialize_transfer(transfer: models.TransferRequest) -> Dict[str, Any]:
    def _iso(value: Optional[datetime]) -> Optional[str]:
        value = ensure_utc(value)
        return value.isoformat() if value else None

    return {
        "id": transfer.id,
        "vehicle_id": transfer.vehicle_id,
        "from_dealership_id": transfer.from_dealership_id,
        "to_dealership_id": transfer.to_dealership_id,
        "requesting_user_id": transfer.requesting_user_id,
        "status": transfer.status,
        "created_at": _iso(transfer.created_at),
        "updated_at": _iso(transfer.updated_at),
        "approved_by_user_id": transfer.approved_by_user_id,
        "rejection_reason": transfer.rejection_reason,
    }


def _lock_for_update(query):
    # SQLite ignores FOR UPDATE; the conditional UPDATE below is the real guard.
    return query.with_for_update()


def create_transfer_request(caller_id: str, vin: str) -> Dict[str, Any]:
    """Request a vehicle from another dealership into the caller's dealership."""
    if not vin:
        raise InvalidArgument("Missing required parameters.")

    with session_scope() as session:
        caller = session.get(models.User, caller_id)
        if caller is None or caller.role != ROLE_DEALERSHIP_ADMIN or not caller.dealership_id:
            raise PermissionDenied("Only dealership admins can request transfers.")

        vehicle = session.get(models.Vehicle, vin)
        if vehicle is None:
            raise NotFound(f"Vehicle {vin} not found.")
        if vehicle.dealership_id is None:
            raise FailedPrecondition("Vehicles at the factory cannot be transferred.")
        if vehicle.dealership_id == caller.dealership_id:
            raise FailedPrecondition("The vehicle already belongs to your dealership.")

        now = datetime.now(timezone.utc)
        transfer = models.TransferRequest(
            id=uuid.uuid4().hex,
            vehicle_id=vehicle.vin,
            from_dealership_id=vehicle.dealership_id,
            to_dealership_id=caller.dealership_id,
            requesting_user_id=caller.id,
            status=TRANSFER_PENDING,
            created_at=now,
            updated_at=now,
        )
        session.add(transfer)
        session.flush()
        logger.info("Transfer %s requested for %s by %s", transfer.id, vin, caller.id)
        return serialize_transfer(transfer)


def _validate_decision(transfer_id: Optional[str], status: Optional[str], rejection_reason: Optional[str]) -> None:
    if not transfer_id or not status or (status == TRANSFER_REJECTED and not rejection_reason):
        raise InvalidArgument("Missing required parameters.")
    if status not in DECISION_STATUSES:
        raise InvalidArgument(f"Unsupported transfer status '{status}'.")


def _apply_decision(
    session: Session,
    caller_id: str,
    transfer_id: str,
    status: str,
    rejection_reason: Optional[str],
    now: datetime,
) -> None:
    stmt = _lock_for_update(select(models.TransferRequest).where(models.TransferRequest.id == transfer_id))
    transfer = session.execute(stmt).scalar_one_or_none()
    if transfer is None:
        raise NotFound("Transfer request not found.")

    caller = session.get(models.User, caller_id)
    if caller is None or caller.role != ROLE_DEALERSHIP_ADMIN or caller.dealership_id != transfer.from_dealership_id:
        raise PermissionDenied("You are not authorized to perform this action.")

    if transfer.status != TRANSFER_PENDING:
        raise FailedPrecondition("This request has already been processed.")

    values: Dict[str, Any] = {"status": status, "updated_at": now}
    if status == TRANSFER_APPROVED:
        values["approved_by_user_id"] = caller_id
    else:
        values["rejection_reason"] = rejection_reason

    swapped = session.execute(
        update(models.TransferRequest)
        .where(
            models.TransferRequest.id == transfer_id,
            models.TransferRequest.status == TRANSFER_PENDING,
        )
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if swapped.rowcount != 1:
        raise FailedPrecondition("This request has already been processed.")

    if status == TRANSFER_APPROVED:
        vehicle = session.get(models.Vehicle, transfer.vehicle_id)
        if vehicle is None:
            raise NotFound(f"Vehicle {transfer.vehicle_id} not found.")
        vehicle.dealership_id = transfer.to_dealership_id
        vehicle.estimated_arrival_date = now + ARRIVAL_OFFSET
        vehicle.current_location = ORIGIN_LOCATION
        append_history(vehicle, STATUS_TRANSFERRING, now)


def update_transfer_status(
    caller_id: str,
    transfer_id: Optional[str],
    status: Optional[str],
    rejection_reason: Optional[str] = None,
) -> Dict[str, Any]:
    """Approve or reject a pending transfer atomically.

    Raises:
        InvalidArgument: missing fields, unknown status, or a rejection without reason.
        NotFound: the transfer does not exist.
        PermissionDenied: caller is not an admin of the source dealership.
        FailedPrecondition: the transfer is no longer pending.
    """
    _validate_decision(transfer_id, status, rejection_reason)
    now = datetime.now(timezone.utc)
    with session_scope() as session:
        _apply_decision(session, caller_id, transfer_id, status, rejection_reason, now)
    logger.info("Transfer %s %s by %s", transfer_id, status, caller_id)
    return {"success": True, "new_status": status}
