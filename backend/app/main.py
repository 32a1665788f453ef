# backend/app/main.py

import asyncio
import logging
from contextlib import asynccontextmanager, suppress

from fastapi import Depends, FastAPI

from .config import settings
from .deps import get_orchestrator, get_store
from .routers import cancellation, internal, slots, waitlist
from .services.errors import StoreUnavailable
from .services.scheduler import waitlist_tick_loop
from .services.store import PersistenceStore

logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    tick_task = None
    if settings.waitlist_tick_enabled:
        tick_task = asyncio.create_task(
            waitlist_tick_loop(get_orchestrator(), settings.waitlist_tick_interval)
        )
    try:
        yield
    finally:
        if tick_task is not None:
            tick_task.cancel()
            with suppress(asyncio.CancelledError):
                await tick_task


app = FastAPI(title="Booking Scheduling Engine", lifespan=lifespan)

app.include_router(slots.router)
app.include_router(cancellation.router)
app.include_router(waitlist.router)
app.include_router(internal.router)


@app.get("/health")
def health(store: PersistenceStore = Depends(get_store)):
    try:
        store.get("HEALTH", "PING")
    except StoreUnavailable:
        logger.warning("Health check: store unavailable")
        return {"store": False}
    return {"store": True}
