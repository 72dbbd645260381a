from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Optional

from backend.app.core.errors import FailedPrecondition, InvalidArgument, NotFound, PermissionDenied
from backend.app.db import models
from backend.app.db.session import session_scope
from backend.app.services.entities import ROLE_SALESPERSON, STATUS_SOLD, SaleRecord, ensure_utc
from backend.app.services.inventory import append_history

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")


@dataclass
class CustomerDetails:
    first_name: str = ""
    last_name: str = ""
    email: str = ""
    phone: str = ""
    address: str = ""


def _as_money(value: Any, field: str) -> Decimal:
    if value is None:
        return Decimal("0")
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError) as exc:
        raise InvalidArgument(f"{field} must be a number") from exc


def derive_profit_and_commission(
    sale_price: Decimal,
    financing_income: Decimal,
    insurance_income: Decimal,
    cost_price: Decimal,
    commission_rate: Optional[Decimal],
) -> tuple[Decimal, Decimal]:
    """profit = revenue - vehicle cost; commission = profit * salesperson rate (0 when unset)."""
    profit = (sale_price + financing_income + insurance_income) - cost_price
    commission = profit * (commission_rate or Decimal("0"))
    return profit.quantize(CENT), commission.quantize(CENT)


def record_sale(
    caller_id: str,
    vin: str,
    customer: CustomerDetails,
    sale_price: Any,
    financing_income: Any = 0,
    insurance_income: Any = 0,
    timestamp: Optional[datetime] = None,
) -> Dict[str, Any]:
    """Store a sale made by the calling salesperson and mark the vehicle Sold.

    Profit and commission are computed here, once, from the vehicle cost and the
    salesperson's current commission rate. `timestamp` defaults to now; only
    seeding and back-fill code pass one.
    """
    price = _as_money(sale_price, "sale_price")
    financing = _as_money(financing_income, "financing_income")
    insurance = _as_money(insurance_income, "insurance_income")
    if price <= 0:
        raise InvalidArgument("sale_price must be positive")

    with session_scope() as session:
        salesperson = session.get(models.User, caller_id)
        if salesperson is None or salesperson.role != ROLE_SALESPERSON:
            raise PermissionDenied("Only salespeople can record sales.")

        vehicle = session.get(models.Vehicle, vin)
        if vehicle is None:
            raise NotFound(f"Vehicle {vin} not found.")
        if vehicle.dealership_id is None or vehicle.dealership_id != salesperson.dealership_id:
            raise PermissionDenied("The vehicle is not assigned to your dealership.")
        if vehicle.status == STATUS_SOLD:
            raise FailedPrecondition(f"Vehicle {vin} has already been sold.")

        rate = Decimal(str(salesperson.commission_rate)) if salesperson.commission_rate is not None else None
        profit, commission = derive_profit_and_commission(
            price, financing, insurance, Decimal(str(vehicle.cost_price)), rate
        )
        sold_at = ensure_utc(timestamp) if timestamp else datetime.now(timezone.utc)

        sale = models.Sale(
            id=uuid.uuid4().hex,
            vehicle_id=vehicle.vin,
            salesperson_id=salesperson.id,
            dealership_id=vehicle.dealership_id,
            customer_first_name=customer.first_name,
            customer_last_name=customer.last_name,
            customer_email=customer.email,
            customer_phone=customer.phone,
            customer_address=customer.address,
            sale_price=price,
            financing_income=financing,
            insurance_income=insurance,
            profit=profit,
            commission=commission,
            timestamp=sold_at,
        )
        session.add(sale)
        append_history(vehicle, STATUS_SOLD, sold_at)
        session.flush()
        result = SaleRecord.from_model(sale).to_dict()

    logger.info("Sale %s recorded for %s (profit %s)", result["id"], vin, profit)
    return result
