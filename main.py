# main.py
import asyncio
import logging
import os
from contextlib import asynccontextmanager

if os.getenv("DEBUGPY", "0") == "1":
    import debugpy
    debugpy.listen(("0.0.0.0", 5678))

from config.logging_config import configure_logging

configure_logging()

from fastapi import FastAPI, Response
from fastapi.middleware.cors import CORSMiddleware
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from slowapi.middleware import SlowAPIMiddleware
from sqlalchemy.exc import SQLAlchemyError

from config.settings import get_settings
from database import Base, SessionLocal, engine
from middleware.error_handlers import setup_error_handlers
from middleware.rate_limit import limiter
from middleware.request_logging import RequestLoggingMiddleware
from routers.analytics_routes import router as analytics_router
from routers.auth_routes import router as auth_router
from routers.contact_routes import router as contact_router
from routers.portfolio_routes import router as portfolio_router
from routers.stock_routes import router as stock_router
from routers.watchlist_routes import router as watchlist_router
from services.maintenance import cleanup_loop

import models  # this triggers models/__init__.py which imports all tables

logger = logging.getLogger(__name__)

settings = get_settings()

try:
    Base.metadata.create_all(bind=engine)
except SQLAlchemyError:
    logger.exception("schema_create_failed")


@asynccontextmanager
async def lifespan(app: FastAPI):
    cleanup_task = asyncio.create_task(
        cleanup_loop(SessionLocal, settings.maintenance_interval_minutes * 60)
    )
    logger.info("app_started name=%s version=%s", settings.app_name, settings.app_version)
    yield
    cleanup_task.cancel()
    await asyncio.gather(cleanup_task, return_exceptions=True)


app = FastAPI(title=settings.app_name, version=settings.app_version, lifespan=lifespan)

app.state.limiter = limiter
setup_error_handlers(app)

app.add_middleware(SlowAPIMiddleware)
app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    # browsers reject credentials with a wildcard origin
    allow_credentials="*" not in settings.cors_origins,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)

# Include routers
app.include_router(auth_router, prefix="/api/auth")
app.include_router(portfolio_router, prefix="/api/portfolio")
app.include_router(watchlist_router, prefix="/api/watchlist")
app.include_router(analytics_router, prefix="/api/analytics")
app.include_router(stock_router, prefix="/api/stocks")
app.include_router(contact_router, prefix="/api/contact")


@app.get("/health")
@limiter.exempt
def health():
    return {"status": "ok"}


@app.get("/metrics", include_in_schema=False)
@limiter.exempt
def metrics():
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
