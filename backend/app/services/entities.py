"""Plain records for the source collections and the join that enriches sales.

Records are detached from the ORM so the aggregation, reporting and forecast code
works on immutable in-memory data read in one pass.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple, TypeVar

from backend.app.db import models

STATUS_AT_FACTORY = "At-Factory"
STATUS_IN_TRANSIT = "In-Transit"
STATUS_ARRIVED = "Arrived"
STATUS_IN_STOCK = "In-Stock"
STATUS_SOLD = "Sold"
STATUS_TRANSFERRING = "Transferring"
VEHICLE_STATUSES = (
    STATUS_AT_FACTORY,
    STATUS_IN_TRANSIT,
    STATUS_ARRIVED,
    STATUS_IN_STOCK,
    STATUS_SOLD,
    STATUS_TRANSFERRING,
)

ROLE_FACTORY = "Factory"
ROLE_DEALERSHIP_ADMIN = "DealershipAdmin"
ROLE_SALESPERSON = "Salesperson"
ROLES = (ROLE_FACTORY, ROLE_DEALERSHIP_ADMIN, ROLE_SALESPERSON)

GOAL_PROFIT = "profit"
GOAL_SALES_COUNT = "salesCount"
GOAL_TYPES = (GOAL_PROFIT, GOAL_SALES_COUNT)

T = TypeVar("T")


def ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def parse_timestamp(value: Any) -> Optional[datetime]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return ensure_utc(value)
    return ensure_utc(datetime.fromisoformat(str(value)))


def as_float(value: Any) -> float:
    if value is None:
        return 0.0
    if isinstance(value, Decimal):
        return float(value)
    return float(value)


def _isoformat(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


@dataclass(frozen=True)
class HistoryEntry:
    status: str
    date: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {"status": self.status, "date": self.date.isoformat()}


@dataclass(frozen=True)
class DealershipRecord:
    id: str
    name: str
    city: str
    province: str
    coords: Optional[Dict[str, float]] = None

    @classmethod
    def from_model(cls, row: models.Dealership) -> "DealershipRecord":
        return cls(id=row.id, name=row.name, city=row.city, province=row.province, coords=row.coords)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "city": self.city,
            "province": self.province,
            "coords": self.coords,
        }


@dataclass(frozen=True)
class UserRecord:
    id: str
    username: str
    name: str
    role: str
    dealership_id: Optional[str] = None
    commission_rate: Optional[float] = None

    @classmethod
    def from_model(cls, row: models.User) -> "UserRecord":
        return cls(
            id=row.id,
            username=row.username,
            name=row.name,
            role=row.role,
            dealership_id=row.dealership_id,
            commission_rate=float(row.commission_rate) if row.commission_rate is not None else None,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "username": self.username,
            "name": self.name,
            "role": self.role,
            "dealership_id": self.dealership_id,
            "commission_rate": self.commission_rate,
        }


@dataclass(frozen=True)
class VehicleRecord:
    vin: str
    model: str
    color: str
    year: int
    cost_price: float
    status: str
    dealership_id: Optional[str] = None
    history: Tuple[HistoryEntry, ...] = ()
    estimated_arrival_date: Optional[datetime] = None
    current_location: Optional[str] = None

    @classmethod
    def from_model(cls, row: models.Vehicle) -> "VehicleRecord":
        history = tuple(
            HistoryEntry(status=entry["status"], date=parse_timestamp(entry["date"]))
            for entry in (row.history or [])
        )
        return cls(
            vin=row.vin,
            model=row.model,
            color=row.color,
            year=row.year,
            cost_price=as_float(row.cost_price),
            status=row.status,
            dealership_id=row.dealership_id,
            history=history,
            estimated_arrival_date=ensure_utc(row.estimated_arrival_date),
            current_location=row.current_location,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "vin": self.vin,
            "model": self.model,
            "color": self.color,
            "year": self.year,
            "cost_price": self.cost_price,
            "status": self.status,
            "dealership_id": self.dealership_id,
            "history": [entry.to_dict() for entry in self.history],
            "estimated_arrival_date": _isoformat(self.estimated_arrival_date),
            "current_location": self.current_location,
        }


@dataclass(frozen=True)
class SaleRecord:
    id: str
    vehicle_id: str
    salesperson_id: str
    dealership_id: str
    sale_price: float
    financing_income: float
    insurance_income: float
    profit: float
    commission: float
    timestamp: datetime
    customer_first_name: str = ""
    customer_last_name: str = ""
    customer_email: str = ""
    customer_phone: str = ""
    customer_address: str = ""

    @classmethod
    def from_model(cls, row: models.Sale) -> "SaleRecord":
        return cls(
            id=row.id,
            vehicle_id=row.vehicle_id,
            salesperson_id=row.salesperson_id,
            dealership_id=row.dealership_id,
            sale_price=as_float(row.sale_price),
            financing_income=as_float(row.financing_income),
            insurance_income=as_float(row.insurance_income),
            profit=as_float(row.profit),
            commission=as_float(row.commission),
            timestamp=ensure_utc(row.timestamp),
            customer_first_name=row.customer_first_name or "",
            customer_last_name=row.customer_last_name or "",
            customer_email=row.customer_email or "",
            customer_phone=row.customer_phone or "",
            customer_address=row.customer_address or "",
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "vehicle_id": self.vehicle_id,
            "salesperson_id": self.salesperson_id,
            "dealership_id": self.dealership_id,
            "customer_first_name": self.customer_first_name,
            "customer_last_name": self.customer_last_name,
            "customer_email": self.customer_email,
            "customer_phone": self.customer_phone,
            "customer_address": self.customer_address,
            "sale_price": self.sale_price,
            "financing_income": self.financing_income,
            "insurance_income": self.insurance_income,
            "profit": self.profit,
            "commission": self.commission,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass(frozen=True)
class GoalRecord:
    id: str
    entity_id: str
    type: str
    target: float
    month: str

    @classmethod
    def from_model(cls, row: models.Goal) -> "GoalRecord":
        return cls(id=row.id, entity_id=row.entity_id, type=row.type, target=as_float(row.target), month=row.month)

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "entity_id": self.entity_id, "type": self.type, "target": self.target, "month": self.month}


@dataclass(frozen=True)
class EnrichedSale:
    """A sale whose vehicle, salesperson and dealership references are resolved."""

    id: str
    vehicle: VehicleRecord
    salesperson: UserRecord
    dealership: DealershipRecord
    sale_price: float
    financing_income: float
    insurance_income: float
    profit: float
    commission: float
    timestamp: datetime
    customer_first_name: str = ""
    customer_last_name: str = ""
    customer_email: str = ""
    customer_phone: str = ""
    customer_address: str = ""

    @property
    def revenue(self) -> float:
        return self.sale_price + self.financing_income + self.insurance_income

    @property
    def month(self) -> str:
        return self.timestamp.strftime("%Y-%m")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "vehicle": self.vehicle.to_dict(),
            "salesperson": self.salesperson.to_dict(),
            "dealership": self.dealership.to_dict(),
            "customer_first_name": self.customer_first_name,
            "customer_last_name": self.customer_last_name,
            "customer_email": self.customer_email,
            "customer_phone": self.customer_phone,
            "customer_address": self.customer_address,
            "sale_price": self.sale_price,
            "financing_income": self.financing_income,
            "insurance_income": self.insurance_income,
            "profit": self.profit,
            "commission": self.commission,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass
class SourceCollections:
    """One consistent read of the five collections the dashboard is computed from."""

    sales: List[SaleRecord] = field(default_factory=list)
    vehicles: List[VehicleRecord] = field(default_factory=list)
    users: List[UserRecord] = field(default_factory=list)
    dealerships: List[DealershipRecord] = field(default_factory=list)
    goals: List[GoalRecord] = field(default_factory=list)


def index_by(items: Iterable[T], key: Callable[[T], Any]) -> Dict[Any, T]:
    """Map key -> first item carrying it."""
    index: Dict[Any, T] = {}
    for item in items:
        index.setdefault(key(item), item)
    return index


def try_join(
    sale: SaleRecord,
    vehicles_by_vin: Dict[str, VehicleRecord],
    users_by_id: Dict[str, UserRecord],
    dealerships_by_id: Dict[str, DealershipRecord],
) -> Optional[EnrichedSale]:
    """Resolve a sale's three references; None when any of them is missing."""
    vehicle = vehicles_by_vin.get(sale.vehicle_id)
    salesperson = users_by_id.get(sale.salesperson_id)
    dealership = dealerships_by_id.get(sale.dealership_id)
    if vehicle is None or salesperson is None or dealership is None:
        return None
    return EnrichedSale(
        id=sale.id,
        vehicle=vehicle,
        salesperson=salesperson,
        dealership=dealership,
        sale_price=sale.sale_price,
        financing_income=sale.financing_income,
        insurance_income=sale.insurance_income,
        profit=sale.profit,
        commission=sale.commission,
        timestamp=sale.timestamp,
        customer_first_name=sale.customer_first_name,
        customer_last_name=sale.customer_last_name,
        customer_email=sale.customer_email,
        customer_phone=sale.customer_phone,
        customer_address=sale.customer_address,
    )


def join_sales(
    sales: Iterable[SaleRecord],
    vehicles: Iterable[VehicleRecord],
    users: Iterable[UserRecord],
    dealerships: Iterable[DealershipRecord],
) -> List[EnrichedSale]:
    """Enrich every sale; sales with an unresolvable reference are dropped silently."""
    vehicles_by_vin = index_by(vehicles, lambda v: v.vin)
    users_by_id = index_by(users, lambda u: u.id)
    dealerships_by_id = index_by(dealerships, lambda d: d.id)

    enriched: List[EnrichedSale] = []
    for sale in sales:
        joined = try_join(sale, vehicles_by_vin, users_by_id, dealerships_by_id)
        if joined is not None:
            enriched.append(joined)
    return enriched
