"""FastAPI application entry point."""
from __future__ import annotations
import logging

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from supplylist.api import courses, items
from supplylist.api.envelope import error
from supplylist.core.config import CONTENT_STORE_BACKEND, LOG_LEVEL
from supplylist.domain.common.errors import ConflictError, InfrastructureError, NotFoundError
from supplylist.persistence.db import init_db

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger("supplylist")

# ------------------------------------------------------------------
# App creation
# ------------------------------------------------------------------
app = FastAPI(
    title="Supply List API",
    description="Versioned course supply lists: import, edit, classify and link to the catalog",
    version="1.0.0",
)

# CORS: allow everything for local dev (restrict for production)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ------------------------------------------------------------------
# Startup: initialise DB schema
# ------------------------------------------------------------------
@app.on_event("startup")
def on_startup():
    if CONTENT_STORE_BACKEND == "sqlite":
        init_db()


# ------------------------------------------------------------------
# Error envelope
# ------------------------------------------------------------------
@app.exception_handler(ConflictError)
def handle_conflict(request: Request, exc: ConflictError):
    logger.warning("Conflict on %s %s: %s", request.method, request.url.path, exc)
    return error(str(exc), status.HTTP_409_CONFLICT)


@app.exception_handler(NotFoundError)
def handle_not_found(request: Request, exc: NotFoundError):
    return error(str(exc), status.HTTP_404_NOT_FOUND)


@app.exception_handler(InfrastructureError)
def handle_infrastructure(request: Request, exc: InfrastructureError):
    logger.error("%s failure on %s %s: %s", exc.service or "dependency", request.method, request.url.path, exc)
    return error(str(exc), status.HTTP_503_SERVICE_UNAVAILABLE, retryable=exc.retryable)


@app.exception_handler(RequestValidationError)
def handle_request_validation(request: Request, exc: RequestValidationError):
    return error("Invalid request body.", status.HTTP_422_UNPROCESSABLE_ENTITY, details=jsonable_encoder(exc.errors()))


# ------------------------------------------------------------------
# Routers
# ------------------------------------------------------------------
app.include_router(courses.router)
app.include_router(items.router)
