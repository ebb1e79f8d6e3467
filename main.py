# main.py
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from config.logging_config import configure_logging
from config.settings import get_settings
from database import Base, SessionLocal, engine
import models  # this triggers models/__init__.py which imports all tables
from middleware.rate_limit import limiter
from middleware.request_logging import RequestLoggingMiddleware
from routers.analysis_routes import router as analysis_router
from services.ai.providers.registry import build_provider_registry
from services.analysis.analysis_service import AnalysisService
from services.analysis.rate_limiter import AnalysisRateLimiter
from services.analysis.store import AnalysisStore

DRAIN_TIMEOUT_S = float(os.getenv("ANALYSIS_DRAIN_TIMEOUT_S", "30"))


def build_analysis_service(session_factory=SessionLocal, settings=None) -> AnalysisService:
    settings = settings or get_settings()
    store = AnalysisStore(session_factory)
    return AnalysisService(
        store=store,
        registry=build_provider_registry(settings),
        rate_limiter=AnalysisRateLimiter(store, daily_limit=settings.daily_limit),
        settings=settings,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    settings = get_settings()
    settings.warn_if_misconfigured()

    # db startup
    Base.metadata.create_all(bind=engine)

    app.state.analysis_service = build_analysis_service(settings=settings)
    yield
    await app.state.analysis_service.drain(timeout=DRAIN_TIMEOUT_S)


app = FastAPI(lifespan=lifespan)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

origins = [
    o.strip()
    for o in os.getenv("CORS_ORIGINS", "http://localhost:3000").split(",")
    if o.strip()
]

app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["*"],
    expose_headers=["X-Request-ID"],
)

# Include routers
app.include_router(analysis_router, prefix="/api/v1/analyses", tags=["analyses"])
