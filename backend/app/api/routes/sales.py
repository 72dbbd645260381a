from fastapi import APIRouter, Depends
from fastapi.concurrency import run_in_threadpool
from pydantic import BaseModel, Field

from backend.app.api.deps import get_current_user
from backend.app.core.errors import DashboardError, to_http_exception
from backend.app.services.entities import UserRecord
from backend.app.services.sales import CustomerDetails, record_sale

router = APIRouter()


class CustomerIn(BaseModel):
    first_name: str = ""
    last_name: str = ""
    email: str = ""
    phone: str = ""
    address: str = ""


class SaleIn(BaseModel):
    vin: str
    sale_price: float
    financing_income: float = 0
    insurance_income: float = 0
    customer: CustomerIn = Field(default_factory=CustomerIn)


@router.post("")
async def create_sale(body: SaleIn, user: UserRecord = Depends(get_current_user)):
    # The sale time is always the server clock.
    customer = CustomerDetails(**body.customer.model_dump())
    try:
        return await run_in_threadpool(
            record_sale,
            user.id,
            body.vin,
            customer,
            body.sale_price,
            body.financing_income,
            body.insurance_income,
        )
    except DashboardError as exc:
        raise to_http_exception(exc) from exc
