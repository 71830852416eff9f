"""
FieldTrack: field placement and timesheet approval backend.
FastAPI entry point.
"""

import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from fieldtrack.core.config import settings
from fieldtrack.core.errors import FieldTrackError
from fieldtrack.routers import auth, notifications, placements, sites, supervisors, timesheets
from fieldtrack.utils.response import error_response

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title=settings.APP_NAME,
    description="Field placement lifecycle and timesheet approval workflow",
    version="1.0.0",
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in settings.CORS_ORIGINS.split(",") if o.strip()],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(FieldTrackError)
async def workflow_error_handler(request: Request, exc: FieldTrackError):
    logger.info("%s %s -> %s: %s", request.method, request.url.path, exc.code, exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content=error_response(exc.message, data={"code": exc.code}),
    )


# Include routers
app.include_router(auth.router)
app.include_router(placements.router)
app.include_router(timesheets.router)
app.include_router(supervisors.router)
app.include_router(sites.router)
app.include_router(sites.agency_router)
app.include_router(notifications.router)


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
    return {"status": "healthy", "auth_mode": settings.AUTH_MODE, "store": settings.STORE_BACKEND}
