from sqlalchemy import (
    Column, Integer, String, Numeric, Text, DateTime, JSON, Index, text
)
from sqlalchemy.orm import declarative_base
from sqlalchemy.dialects.postgresql import JSONB

Base = declarative_base()

# Nested document fields; JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests).
JSONDocument = JSON().with_variant(JSONB(), "postgresql")

# References between collections are plain ids, not foreign keys: a sale may outlive the
# vehicle, user or dealership it points at and the join layer drops it from every view.

class Dealership(Base):
    __tablename__ = "dealerships"
    id = Column(String(64), primary_key=True)
    name = Column(Text, nullable=False)
    city = Column(Text, nullable=False)
    province = Column(Text, nullable=False)
    coords = Column(JSONDocument)  # {"x": .., "y": ..} layout position, display only

class User(Base):
    __tablename__ = "users"
    id = Column(String(64), primary_key=True)
    username = Column(Text, nullable=False, unique=True)
    name = Column(Text, nullable=False)
    role = Column(Text, nullable=False)  # Factory|DealershipAdmin|Salesperson
    dealership_id = Column(String(64))
    commission_rate = Column(Numeric(5, 4))

class Vehicle(Base):
    __tablename__ = "vehicles"
    vin = Column(String(17), primary_key=True)
    model = Column(Text, nullable=False)
    color = Column(Text, nullable=False)
    year = Column(Integer, nullable=False)
    cost_price = Column(Numeric(12, 2), nullable=False)
    status = Column(Text, nullable=False)  # At-Factory|In-Transit|Arrived|In-Stock|Sold|Transferring
    dealership_id = Column(String(64))  # null while at the factory
    history = Column(JSONDocument, nullable=False)  # [{"status": .., "date": iso8601}], append-only
    estimated_arrival_date = Column(DateTime(timezone=True))
    current_location = Column(Text)
    __table_args__ = (Index("ix_vehicles_dealership_status", "dealership_id", "status"),)

class Sale(Base):
    __tablename__ = "sales"
    id = Column(String(64), primary_key=True)
    vehicle_id = Column(String(17), nullable=False)
    salesperson_id = Column(String(64), nullable=False)
    dealership_id = Column(String(64), nullable=False)
    customer_first_name = Column(Text, nullable=False, server_default="")
    customer_last_name = Column(Text, nullable=False, server_default="")
    customer_email = Column(Text, nullable=False, server_default="")
    customer_phone = Column(Text, nullable=False, server_default="")
    customer_address = Column(Text, nullable=False, server_default="")
    sale_price = Column(Numeric(12, 2), nullable=False)
    financing_income = Column(Numeric(12, 2), nullable=False, server_default=text("0"))
    insurance_income = Column(Numeric(12, 2), nullable=False, server_default=text("0"))
    profit = Column(Numeric(12, 2), nullable=False)  # stored at creation, never recomputed
    commission = Column(Numeric(12, 2), nullable=False)  # stored at creation, never recomputed
    timestamp = Column(DateTime(timezone=True), nullable=False)
    __table_args__ = (Index("ix_sales_timestamp", "timestamp"),)

class Goal(Base):
    __tablename__ = "goals"
    id = Column(String(160), primary_key=True)  # {month}-{entity_id}-{type}
    entity_id = Column(String(64), nullable=False)
    type = Column(Text, nullable=False)  # salesCount|profit
    target = Column(Numeric(14, 2), nullable=False)
    month = Column(String(7), nullable=False)  # YYYY-MM

class TransferRequest(Base):
    __tablename__ = "transfer_requests"
    id = Column(String(64), primary_key=True)
    vehicle_id = Column(String(17), nullable=False)
    from_dealership_id = Column(String(64), nullable=False)
    to_dealership_id = Column(String(64), nullable=False)
    requesting_user_id = Column(String(64), nullable=False)
    status = Column(Text, nullable=False)  # pending|approved|rejected|completed
    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False)
    approved_by_user_id = Column(String(64))
    rejection_reason = Column(Text)

class DemandForecast(Base):
    __tablename__ = "demand_forecasts"
    id = Column(Text, primary_key=True)  # slug of {model}-{province}
    model = Column(Text, nullable=False)
    province = Column(Text, nullable=False)
    forecasted_sales = Column(Integer, nullable=False)
    last_calculated = Column(DateTime(timezone=True), nullable=False)

class MetricsSnapshot(Base):
    __tablename__ = "metrics_snapshots"
    id = Column(String(32), primary_key=True)  # singleton "dashboard"
    payload = Column(JSONDocument, nullable=False)
    last_updated = Column(DateTime(timezone=True), nullable=False)
