from typing import Optional

from fastapi import APIRouter, Depends
from fastapi.concurrency import run_in_threadpool
from pydantic import BaseModel

from backend.app.api.deps import get_current_user
from backend.app.core.errors import DashboardError, to_http_exception
from backend.app.services.entities import UserRecord
from backend.app.services.transfers import create_transfer_request, update_transfer_status

router = APIRouter()


class TransferRequestIn(BaseModel):
    vin: str


class TransferStatusIn(BaseModel):
    transfer_id: Optional[str] = None
    status: Optional[str] = None
    rejection_reason: Optional[str] = None


@router.post("")
async def request_transfer(body: TransferRequestIn, user: UserRecord = Depends(get_current_user)):
    try:
        return await run_in_threadpool(create_transfer_request, user.id, body.vin)
    except DashboardError as exc:
        raise to_http_exception(exc) from exc


@router.post("/status")
async def set_transfer_status(body: TransferStatusIn, user: UserRecord = Depends(get_current_user)):
    try:
        return await run_in_threadpool(
            update_transfer_status, user.id, body.transfer_id, body.status, body.rejection_reason
        )
    except DashboardError as exc:
        raise to_http_exception(exc) from exc
