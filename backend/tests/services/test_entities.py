from datetime import datetime, timezone

from backend.app.services.entities import (
    DealershipRecord,
    SaleRecord,
    UserRecord,
    VehicleRecord,
    index_by,
    join_sales,
    parse_timestamp,
    try_join,
)

SOLD_AT = datetime(2024, 6, 15, 14, 30, tzinfo=timezone.utc)


def _dealership(dealership_id="d-1", province="Salta"):
    return DealershipRecord(id=dealership_id, name=f"Dealer {dealership_id}", city="Salta", province=province)


def _user(user_id="u-1", dealership_id="d-1"):
    return UserRecord(id=user_id, username=user_id, name=f"User {user_id}", role="Salesperson", dealership_id=dealership_id, commission_rate=0.1)


def _vehicle(vin="VIN1"):
    return VehicleRecord(vin=vin, model="Ranger", color="Rojo Furia", year=2024, cost_price=25000.0, status="Sold", dealership_id="d-1")


def _sale(sale_id, vin="VIN1", salesperson_id="u-1", dealership_id="d-1"):
    return SaleRecord(
        id=sale_id,
        vehicle_id=vin,
        salesperson_id=salesperson_id,
        dealership_id=dealership_id,
        sale_price=30000.0,
        financing_income=1000.0,
        insurance_income=500.0,
        profit=6500.0,
        commission=650.0,
        timestamp=SOLD_AT,
        customer_first_name="Ana",
    )


def test_try_join_resolves_all_references():
    enriched = try_join(
        _sale("s-1"),
        {"VIN1": _vehicle()},
        {"u-1": _user()},
        {"d-1": _dealership()},
    )

    assert enriched is not None
    assert enriched.vehicle.model == "Ranger"
    assert enriched.salesperson.name == "User u-1"
    assert enriched.dealership.province == "Salta"
    assert enriched.revenue == 31500.0
    assert enriched.month == "2024-06"
    assert enriched.customer_first_name == "Ana"


def test_try_join_returns_none_for_any_missing_reference():
    vehicles = {"VIN1": _vehicle()}
    users = {"u-1": _user()}
    dealerships = {"d-1": _dealership()}

    assert try_join(_sale("s-1", vin="MISSING"), vehicles, users, dealerships) is None
    assert try_join(_sale("s-2", salesperson_id="ghost"), vehicles, users, dealerships) is None
    assert try_join(_sale("s-3", dealership_id="closed"), vehicles, users, dealerships) is None


def test_join_sales_drops_unresolvable_sales_and_keeps_order():
    sales = [_sale("s-1"), _sale("s-2", vin="GONE"), _sale("s-3")]

    enriched = join_sales(sales, [_vehicle()], [_user()], [_dealership()])

    assert [sale.id for sale in enriched] == ["s-1", "s-3"]


def test_index_by_keeps_first_document_per_key():
    first = _dealership("d-1", province="Salta")
    duplicate = _dealership("d-1", province="Mendoza")

    index = index_by([first, duplicate], lambda d: d.id)

    assert index["d-1"].province == "Salta"


def test_parse_timestamp_normalises_naive_values_to_utc():
    parsed = parse_timestamp("2024-06-15T14:30:00")

    assert parsed == SOLD_AT
    assert parsed.tzinfo is not None
    assert parse_timestamp(None) is None
