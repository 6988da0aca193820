"""FastAPI application entrypoint. Registers middleware, error handlers and the time-clock router."""

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from timeclock.config import settings
from timeclock.database import Base, engine
from timeclock.exceptions import TimeClockError
import timeclock.models  # noqa: F401 - registers tables on Base.metadata
from timeclock.routers import time_clock

logging.basicConfig(level=settings.LOG_LEVEL)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Daycare Time Clock",
    description="Biometric time-clock webhook and device sync service",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(time_clock.router)


@app.exception_handler(TimeClockError)
async def time_clock_error_handler(request: Request, exc: TimeClockError):
    logger.error("[time-clock] %s %s -> %s %s", request.method, request.url.path, exc.status_code, exc.to_payload())
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload())


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(request: Request, exc: RequestValidationError):
    logger.error("[time-clock] invalid request on %s %s: %s", request.method, request.url.path, exc.errors())
    return JSONResponse(status_code=400, content={"error": "Invalid payload", "details": str(exc.errors())})


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("[time-clock] unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"error": "Internal server error", "details": str(exc)})


@app.on_event("startup")
def ensure_schema():
    Base.metadata.create_all(bind=engine)


@app.get("/api/health")
def health_check():
    return {"status": "ok", "service": "Daycare Time Clock"}
