from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from stockledger.core.errors import InventoryError
from stockledger.core.observability import (
    http_exception_handler,
    inventory_error_handler,
    log_event,
    logger,
    request_logging_middleware,
    setup_observability,
    unhandled_exception_handler,
    validation_exception_handler,
)
from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from stockledger.core.config import settings
from stockledger.db.session import engine
from stockledger.routers import approvals, deliveries, issues, locations, ncrs, periods, reconciliations, transfers

app = FastAPI(
    title=settings.app_name,
    version="0.1.0",
    description=(
        "Inventory ledger and period-close API for multi-location stores.\n\n"
        "Swagger quick test flow:\n"
        "1. Obtain a bearer token carrying `sub` and `role` claims.\n"
        "2. Click **Authorize** and paste the token.\n"
        "3. Post deliveries, issues and transfers, then reconcile and close the period."
    ),
    swagger_ui_parameters={
        "persistAuthorization": True,
        "displayRequestDuration": True,
        "defaultModelsExpandDepth": 1,
    },
    openapi_tags=[
        {"name": "health", "description": "Service status and quick links."},
        {"name": "locations", "description": "On-hand stock and weighted average cost per location."},
        {"name": "deliveries", "description": "Supplier deliveries, posting and price variance detection."},
        {"name": "issues", "description": "Stock issues to cost centres at current WAC."},
        {"name": "transfers", "description": "Inter-location transfers with approval."},
        {"name": "ncrs", "description": "Non-conformance records and credit tracking."},
        {"name": "periods", "description": "Accounting periods, locked prices and close workflow."},
        {"name": "reconciliations", "description": "Stock reconciliation, variance and consumption."},
        {"name": "approvals", "description": "Approval decisions for transfers and period close."},
    ],
)

setup_observability()
app.middleware("http")(request_logging_middleware)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(InventoryError, inventory_error_handler)
app.add_exception_handler(Exception, unhandled_exception_handler)

cors_origins = settings.cors_origins or ["http://localhost:3000"]
allow_all_origins = "*" in cors_origins
env_value = settings.env.lower().strip()
allow_origin_regex = settings.cors_origin_regex

if (
    not allow_origin_regex
    and env_value in {"dev", "development", "staging", "stage"}
):
    allow_origin_regex = r"^https?://(localhost|127\.0\.0\.1)(:\d+)?$"

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if allow_all_origins else cors_origins,
    allow_origin_regex=allow_origin_regex,
    allow_credentials=not allow_all_origins,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(locations.router)
app.include_router(deliveries.router)
app.include_router(issues.router)
app.include_router(transfers.router)
app.include_router(ncrs.router)
app.include_router(periods.router)
app.include_router(reconciliations.router)
app.include_router(approvals.router)


@app.get("/", tags=["health"])
def root():
    return {
        "app": settings.app_name,
        "docs": "/docs",
        "redoc": "/redoc",
        "health": "/health",
        "ready": "/ready",
    }


@app.get("/health", tags=["health"])
def health():
    return {"ok": True}


@app.get("/ready", tags=["health"])
def ready():
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        log_event(logger, "readiness.database_unavailable", error=str(exc))
        return {"ok": False}
    return {"ok": True}
