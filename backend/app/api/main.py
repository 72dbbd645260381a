import asyncio
import contextlib
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from backend.app.core.logging_config import configure_logging
from backend.app.core.settings import settings
from backend.app.services.forecast import forecast_scheduler
from backend.app.services.metrics_store import subscribe_to_source_changes

from .routes import directory, goals, metrics, reports, sales, transfers, vehicles

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    subscribe_to_source_changes()
    scheduler = None
    if settings.forecast_scheduler_enabled:
        logger.info("Weekly demand forecast scheduler enabled")
        scheduler = asyncio.create_task(forecast_scheduler())
    yield
    if scheduler is not None:
        scheduler.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await scheduler


app = FastAPI(title="Dealer Network Dashboard API", version="0.1.0", lifespan=lifespan)

app.include_router(metrics.router, prefix="/metrics", tags=["metrics"])
app.include_router(reports.router, prefix="/reports", tags=["reports"])
app.include_router(transfers.router, prefix="/transfers", tags=["transfers"])
app.include_router(sales.router, prefix="/sales", tags=["sales"])
app.include_router(vehicles.router, prefix="/vehicles", tags=["vehicles"])
app.include_router(goals.router, prefix="/goals", tags=["goals"])
app.include_router(directory.router, tags=["directory"])
