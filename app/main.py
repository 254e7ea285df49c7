from contextlib import asynccontextmanager
from typing import AsyncGenerator

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.core.cache import close_cache, init_cache
from app.core.config import settings
from app.core.db import init_db
from app.core.logging import setup_logging
from app.core.middleware import StructlogMiddleware
from app.modules.alerts import router as alerts_router
from app.modules.alerts.service import alert_scheduler, shutdown_alerting
from app.modules.heart_rate import router as heart_rate_router
from app.modules.medications import router as medications_router
from app.modules.notifications import router as notifications_router
from app.modules.whoop import router as whoop_router

setup_logging()
log = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    # Startup
    mongo_client = await init_db()
    # Redis is optional; cooldowns stay in-process when init_cache() returns None.
    cache_client = await init_cache()
    app.state.mongo_client = mongo_client
    app.state.cache_client = cache_client

    if settings.ALERT_SCHEDULER_ENABLED:
        alert_scheduler.start()
    else:
        log.info("alert scheduler disabled")

    yield

    # Shutdown
    await shutdown_alerting()
    mongo_client.close()
    await close_cache()


app = FastAPI(
    title=settings.PROJECT_NAME,
    description="""
    ## HealthPuck Backend API

    This API provides:
    * **Alerts**: Caregiver-defined threshold alerts on heart rate, Whoop metrics and medication adherence
    * **Heart rate**: Reading ingestion and a live WebSocket stream
    * **Medications**: Dose check-ins that feed missed-dose alerts
    * **Notifications**: Device push tokens and per-priority preferences
    * **Whoop**: Connection and API quota status

    ### Authentication
    Endpoints require a Bearer token issued by the identity service.
    """,
    version="0.1.0",
    openapi_url=f"{settings.API_V1_STR}/openapi.json",
    lifespan=lifespan,
)

# Set all CORS enabled origins
if settings.BACKEND_CORS_ORIGINS:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[str(origin) for origin in settings.BACKEND_CORS_ORIGINS],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

app.add_middleware(StructlogMiddleware)

app.include_router(
    alerts_router.router, prefix=f"{settings.API_V1_STR}/alerts", tags=["alerts"]
)
app.include_router(
    heart_rate_router.router,
    prefix=f"{settings.API_V1_STR}/heart-rate",
    tags=["heart-rate"],
)
app.include_router(
    medications_router.router,
    prefix=f"{settings.API_V1_STR}/medications/check-ins",
    tags=["medications"],
)
app.include_router(
    notifications_router.router,
    prefix=f"{settings.API_V1_STR}/notifications",
    tags=["notifications"],
)
app.include_router(
    whoop_router.router,
    prefix=f"{settings.API_V1_STR}/integrations/whoop",
    tags=["whoop"],
)


@app.get("/health")
def health_check() -> dict[str, str]:
    return {"status": "ok"}
