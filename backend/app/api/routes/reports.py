from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from backend.app.api.deps import get_current_user
from backend.app.core.errors import DashboardError, to_http_exception
from backend.app.services.entities import UserRecord
from backend.app.services.reporting import ReportOptions, generate_report

router = APIRouter()


class ReportRequest(BaseModel):
    dealership_ids: List[str] = Field(default_factory=list)
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    detailed: bool = False


@router.post("")
async def create_report(body: ReportRequest, user: UserRecord = Depends(get_current_user)):
    options = ReportOptions(
        dealership_ids=body.dealership_ids,
        start_date=body.start_date,
        end_date=body.end_date,
        detailed=body.detailed,
    )
    try:
        csv_string = await generate_report(options)
    except DashboardError as exc:
        raise to_http_exception(exc) from exc
    return {"csv_string": csv_string}
