from typing import List

from fastapi import APIRouter, Depends
from fastapi.concurrency import run_in_threadpool
from pydantic import BaseModel

from backend.app.api.deps import get_current_user
from backend.app.core.errors import DashboardError, PermissionDenied, to_http_exception
from backend.app.services.entities import ROLE_FACTORY, UserRecord
from backend.app.services.inventory import accept_vehicle_delivery, bulk_assign_vehicles, create_vehicle

router = APIRouter()


class VehicleIn(BaseModel):
    vin: str
    model: str
    color: str
    year: int
    cost_price: float


class AssignIn(BaseModel):
    vins: List[str]
    dealership_id: str


@router.post("")
async def register_vehicle(body: VehicleIn, user: UserRecord = Depends(get_current_user)):
    try:
        if user.role != ROLE_FACTORY:
            raise PermissionDenied("Only factory users can register vehicles.")
        return await run_in_threadpool(create_vehicle, body.vin, body.model, body.color, body.year, body.cost_price)
    except DashboardError as exc:
        raise to_http_exception(exc) from exc


@router.post("/assign")
async def assign_vehicles(body: AssignIn, user: UserRecord = Depends(get_current_user)):
    try:
        return await run_in_threadpool(bulk_assign_vehicles, user.id, body.vins, body.dealership_id)
    except DashboardError as exc:
        raise to_http_exception(exc) from exc


@router.post("/{vin}/accept")
async def accept_delivery(vin: str, user: UserRecord = Depends(get_current_user)):
    try:
        return await run_in_threadpool(accept_vehicle_delivery, user.id, vin)
    except DashboardError as exc:
        raise to_http_exception(exc) from exc
