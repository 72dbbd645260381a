from fastapi import APIRouter, Depends
from fastapi.concurrency import run_in_threadpool
from pydantic import BaseModel

from backend.app.api.deps import get_current_user
from backend.app.core.errors import DashboardError, PermissionDenied, to_http_exception
from backend.app.services.directory import set_goal
from backend.app.services.entities import ROLE_SALESPERSON, UserRecord

router = APIRouter()


class GoalIn(BaseModel):
    entity_id: str
    month: str
    type: str
    target: float


@router.put("")
async def upsert_goal(body: GoalIn, user: UserRecord = Depends(get_current_user)):
    try:
        if user.role == ROLE_SALESPERSON:
            raise PermissionDenied("Salespeople cannot set goals.")
        return await run_in_threadpool(set_goal, body.entity_id, body.month, body.type, body.target)
    except DashboardError as exc:
        raise to_http_exception(exc) from exc
