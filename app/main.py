"""
CampusCore — College ERP Backend
FastAPI entry point.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.core.config import settings
from app.core.errors import ERPError, erp_error_handler
from app.core.middleware import RateLimitMiddleware, SecurityHeadersMiddleware
from app.core.rate_limit import RateLimiter
from app.routers import attendance, fees, marks, payments, timetable

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("campuscore")


@asynccontextmanager
async def lifespan(app: FastAPI):
    app.state.rate_limiter = RateLimiter.from_uri(
        settings.RATE_LIMIT_REQUESTS,
        settings.RATE_LIMIT_WINDOW_SECONDS,
        settings.RATE_LIMIT_STORAGE_URI,
    )
    logger.info(
        "Rate limiter ready: %s requests / %ss per client+route",
        settings.RATE_LIMIT_REQUESTS, settings.RATE_LIMIT_WINDOW_SECONDS,
    )
    yield
    app.state.rate_limiter = None


app = FastAPI(
    title=settings.APP_NAME,
    description="College ERP: timetabling, grading, fees and payments",
    version="1.0.0",
    lifespan=lifespan,
)

# CORS
origins = [o.strip() for o in settings.CORS_ORIGINS.split(",") if o.strip()]
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_middleware(RateLimitMiddleware)
app.add_middleware(SecurityHeadersMiddleware)

app.add_exception_handler(ERPError, erp_error_handler)

# Include routers
app.include_router(timetable.router)
app.include_router(marks.router)
app.include_router(attendance.router)
app.include_router(fees.router)
app.include_router(payments.router)


@app.get("/")
async def root():
    return {
        "name": settings.APP_NAME,
        "version": "1.0.0",
        "status": "running",
        "auth_mode": settings.AUTH_MODE,
    }


@app.get("/api/health")
async def health():
    return {"status": "healthy", "auth_mode": settings.AUTH_MODE}
