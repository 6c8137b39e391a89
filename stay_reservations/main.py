# stay_reservations/main.py

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from stay_reservations.config import ALLOWED_ORIGINS, EXPIRATION_SWEEP_INTERVAL_SECONDS
from stay_reservations.logging_config import setup_logging
from stay_reservations.middleware import RequestIDMiddleware
from stay_reservations.routes.admin import router as admin_router
from stay_reservations.routes.health import router as health_router
from stay_reservations.routes.metrics import router as metrics_router
from stay_reservations.routes.payments import router as payments_router
from stay_reservations.routes.reservations import router as reservations_router

# Initialize structured logging
setup_logging()
logger = structlog.get_logger(__name__)

app = FastAPI(
    title="Stay Reservations API",
    description="Booking, payment reconciliation and expiration of short-stay reservations",
    version="1.0.0",
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS if "*" not in ALLOWED_ORIGINS else ["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(RequestIDMiddleware)

# Register routers
app.include_router(health_router, tags=["Health"])
app.include_router(metrics_router, tags=["Metrics"])
app.include_router(reservations_router, tags=["Reservations"])
app.include_router(payments_router, tags=["Payments"])
app.include_router(admin_router, prefix="/admin", tags=["Admin"])


@app.on_event("startup")
def startup_event() -> None:
    """Rebuild expiration timers from the store and start the recurring sweep."""
    from stay_reservations.dependencies import get_reservation_service

    logger.info("application_starting")

    recovered = get_reservation_service().start(EXPIRATION_SWEEP_INTERVAL_SECONDS)

    logger.info("application_started", recovered_reservations=recovered)


@app.on_event("shutdown")
def shutdown_event() -> None:
    from stay_reservations.dependencies import get_reservation_service

    get_reservation_service().shutdown()
    logger.info("application_stopped")
