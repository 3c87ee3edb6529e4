from contextlib import asynccontextmanager
import asyncio
import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from shifttrack.core.logging import configure_logging
from shifttrack.services.gps_scheduler import start_gps_scheduler_tasks
from shifttrack.models import location_log, notification, schedule, time_entry, user  # noqa: F401
from shifttrack.routers.admin_time_tracking import router as admin_time_tracking_router
from shifttrack.routers.auth import router as auth_router
from shifttrack.routers.time_tracking import router as time_tracking_router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()

    tasks = start_gps_scheduler_tasks()
    try:
        yield
    finally:
        for task in tasks:
            task.cancel()
        for task in tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
            except Exception:
                logger.exception("GPS scheduler task failed during shutdown", extra={"task": task.get_name()})


app = FastAPI(
    title="ShiftTrack",
    lifespan=lifespan,
)


@app.middleware("http")
async def catch_unhandled_exceptions(request: Request, call_next):
    try:
        return await call_next(request)
    except Exception:
        logger.exception("Unhandled exception")
        return JSONResponse(status_code=500, content={"detail": "Internal Server Error"})


app.include_router(auth_router)
app.include_router(admin_time_tracking_router)
app.include_router(time_tracking_router)


@app.get("/")
def root():
    return {"status": "ShiftTrack running"}


@app.get("/health")
def health():
    return {
        "status": "ok",
        "version": "1.0.0",
    }
