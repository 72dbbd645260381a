from fastapi import APIRouter, Depends
from fastapi.concurrency import run_in_threadpool

from backend.app.api.deps import get_current_user
from backend.app.core.errors import DashboardError, to_http_exception
from backend.app.services.directory import delete_dealership, delete_user
from backend.app.services.entities import UserRecord

router = APIRouter()


@router.delete("/users/{user_id}")
async def remove_user(user_id: str, user: UserRecord = Depends(get_current_user)):
    try:
        return await run_in_threadpool(delete_user, user.id, user_id)
    except DashboardError as exc:
        raise to_http_exception(exc) from exc


@router.delete("/dealerships/{dealership_id}")
async def remove_dealership(dealership_id: str, user: UserRecord = Depends(get_current_user)):
    try:
        return await run_in_threadpool(delete_dealership, user.id, dealership_id)
    except DashboardError as exc:
        raise to_http_exception(exc) from exc
