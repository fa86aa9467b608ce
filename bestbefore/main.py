"""bestbefore - expiry tracking with an offline-tolerant sync queue."""

import logging
import sys
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Annotated

from fastapi import Depends, FastAPI, Header, HTTPException, Request
from fastapi.responses import JSONResponse

from bestbefore.core.config import constants, settings
from bestbefore.core.kv_store import KeyValueStore, RedisKeyValueStore, create_kv_store
from bestbefore.core.logging import configure_logfire, instrument_fastapi
from bestbefore.core.remote_store import RemoteStore
from bestbefore.core.scheduler import scheduler, start_scheduler, stop_scheduler
from bestbefore.domain.user import AuthUser, Session
from bestbefore.interface.notification_delivery import NotificationDelivery, ScheduledPushDelivery
from bestbefore.services.category_reminder_service import CategoryReminderService
from bestbefore.services.product_service import ProductService
from bestbefore.services.reminder_scheduler import ReminderLedger, ReminderScheduler
from bestbefore.services.sync_queue import MutationQueue


logger = logging.getLogger(__name__)


def build_product_service(
    *,
    storage: KeyValueStore,
    remote: RemoteStore,
    delivery: NotificationDelivery,
    session: Session,
) -> ProductService:
    """Wire the queue, category overrides and reminders for one session."""
    categories = CategoryReminderService(remote=remote, session=session)
    return ProductService(
        queue=MutationQueue(storage=storage, remote=remote, session=session),
        remote=remote,
        reminders=ReminderScheduler(delivery=delivery, categories=categories, ledger=ReminderLedger(storage)),
        categories=categories,
        session=session,
    )


async def check_storage_connectivity(storage: KeyValueStore) -> None:
    """Verify the Redis backend answers; SQLite needs no check."""
    if not isinstance(storage, RedisKeyValueStore):
        logger.info("startup_validation", extra={"service": "storage", "backend": "sqlite", "status": "ok"})
        return

    if await storage.ping():
        logger.info("startup_validation", extra={"service": "storage", "backend": "redis", "status": "ok"})
    else:
        logger.warning("startup_validation", extra={"service": "storage", "backend": "redis", "status": "unavailable"})


async def validate_startup_configuration(storage: KeyValueStore) -> None:
    """Validate required credentials and local storage, exiting with a clear message on failure."""
    logger.info("startup_validation_begin")

    try:
        settings.require_credential("supabase_anon_key", "Supabase")
        logger.info("startup_validation", extra={"stage": "credentials", "status": "ok"})

        await check_storage_connectivity(storage)

        logger.info("startup_validation_complete", extra={"status": "ok"})

    except ValueError as e:
        logger.error("startup_validation_failed", extra={"error": str(e)})
        print(f"\n❌ Startup validation failed: {e}\n", file=sys.stderr)  # noqa: T201
        sys.exit(1)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan context manager."""
    # Startup
    # Configure logging first so validation logs are captured
    configure_logfire()

    storage = create_kv_store(settings)
    await validate_startup_configuration(storage)

    remote = RemoteStore.from_settings(settings)
    app.state.storage = storage
    app.state.remote = remote
    app.state.delivery = ScheduledPushDelivery(scheduler=scheduler, push_token=settings.expo_push_token)

    replay = None
    if settings.sync_user_id:
        device_session = Session(AuthUser(id=settings.sync_user_id))
        replay = MutationQueue(storage=storage, remote=remote, session=device_session).replay
    start_scheduler(replay)
    yield
    # Shutdown
    stop_scheduler()
    await remote.aclose()
    await storage.close()


app = FastAPI(
    title="bestbefore",
    description="Expiry tracking with offline-tolerant sync and reminders",
    version="0.1.0",
    lifespan=lifespan,
)

# Instrument FastAPI with Logfire
instrument_fastapi(app)


async def get_product_service(
    request: Request,
    x_user_id: Annotated[str | None, Header()] = None,
) -> ProductService:
    """Build a ProductService for the user named in the X-User-Id header."""
    if not x_user_id:
        raise HTTPException(status_code=constants.HTTP_UNAUTHORIZED, detail="X-User-Id header required")
    state = request.app.state
    return build_product_service(
        storage=state.storage,
        remote=state.remote,
        delivery=state.delivery,
        session=Session(AuthUser(id=x_user_id)),
    )


@app.get("/health")
async def health_check() -> JSONResponse:
    """Health check endpoint."""
    return JSONResponse(content={"status": "healthy"}, status_code=constants.HTTP_OK)


@app.get("/sync/status")
async def sync_status(service: Annotated[ProductService, Depends(get_product_service)]) -> JSONResponse:
    """Pending and dead-lettered mutations for the caller."""
    status = await service.sync_status()
    return JSONResponse(content=status.model_dump(mode="json"), status_code=constants.HTTP_OK)


@app.post("/sync/replay")
async def sync_replay(service: Annotated[ProductService, Depends(get_product_service)]) -> JSONResponse:
    """Replay the caller's queue now; 503 while entries are still waiting on the remote store."""
    result = await service.replay()
    return JSONResponse(
        content=result.model_dump(mode="json"),
        status_code=constants.HTTP_OK if result.completed else constants.HTTP_SERVICE_UNAVAILABLE,
    )
