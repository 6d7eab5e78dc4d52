import asyncio
import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
from icebath.db.init_db import create_database
from icebath.db.base import Base
from icebath.db.session import engine, SessionLocal
from icebath.core.clock import get_clock
from icebath.core.config import settings
from icebath.core.exceptions import BookingEngineError
from icebath.schemas.common import ErrorResponse
from icebath.api.v1.router import api_router

logging.basicConfig(level=settings.LOG_LEVEL)
logger = logging.getLogger(__name__)


def run_maintenance() -> None:
    """Weekly membership resets, membership expiry and (if enabled) stale pending bookings."""
    from icebath.services.cancellation import expire_pending_bookings
    from icebath.utils.memberships import expire_old_memberships, reset_weekly_sessions

    clock = get_clock()
    db = SessionLocal()
    try:
        today = clock.today()
        expired = expire_old_memberships(db, today)
        if expired:
            logger.info("Expired %d membership(s).", expired)
        reset = reset_weekly_sessions(db, today)
        if reset:
            logger.info("Reset weekly sessions on %d membership(s).", reset)
        if settings.PENDING_BOOKING_TTL_MINUTES:
            released = expire_pending_bookings(db, clock.now(), settings.PENDING_BOOKING_TTL_MINUTES)
            if released:
                logger.info("Released %d unpaid pending booking(s).", released)
    finally:
        db.close()


async def _maintenance_loop() -> None:
    """Background task: run maintenance every MAINTENANCE_INTERVAL_SECONDS."""
    while True:
        try:
            await asyncio.to_thread(run_maintenance)
        except Exception:
            logger.exception("Error during booking maintenance.")
        await asyncio.sleep(settings.MAINTENANCE_INTERVAL_SECONDS)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup: Ensure DB exists and create tables
    create_database()
    Base.metadata.create_all(bind=engine)

    maintenance_task = asyncio.create_task(_maintenance_loop())
    yield

    # Shutdown: cancel background task
    maintenance_task.cancel()
    try:
        await maintenance_task
    except asyncio.CancelledError:
        pass


from fastapi.middleware.cors import CORSMiddleware

app = FastAPI(title=settings.PROJECT_NAME, lifespan=lifespan)

# Set all CORS enabled origins
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(BookingEngineError)
async def booking_engine_error_handler(request: Request, exc: BookingEngineError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    body = ErrorResponse(error=exc.code, message=exc.message, details=exc.details or None)
    return JSONResponse(status_code=exc.status_code, content=body.model_dump(exclude_none=True))


app.include_router(api_router, prefix=settings.API_V1_STR)

@app.get("/")
def read_root():
    return {"Hello": "Ice Bath Studio"}
