from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from backend.app.api.deps import get_current_user
from backend.app.core.errors import NotFound, to_http_exception
from backend.app.db.session import get_session
from backend.app.services.entities import UserRecord
from backend.app.services.metrics_store import compute_snapshot_payload_async, read_snapshot

router = APIRouter()


@router.get("/dashboard")
async def dashboard_metrics(user: UserRecord = Depends(get_current_user)):
    return await compute_snapshot_payload_async()


@router.get("/snapshot")
async def stored_snapshot(user: UserRecord = Depends(get_current_user), db: Session = Depends(get_session)):
    payload = read_snapshot(db)
    if payload is None:
        raise to_http_exception(NotFound("No metrics snapshot yet."))
    return payload
