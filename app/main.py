"""
Main FastAPI application entry point
"""
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from starlette.exceptions import HTTPException as StarletteHTTPException
import uvicorn

from app.core.config import settings
from app.core.exceptions import DomainException, HTTP_422_UNPROCESSABLE
from app.core.logging_config import logger
from app.db.session import SessionLocal
from app.routes import bank_details, bookings, calendar, coupons, payments
from app.routes.admin import bank_details as admin_bank_details
from app.routes.admin import products as admin_products
from app.routes.admin import webhooks as admin_webhooks
from app.services.booking_service import BookingService
from app.services.razorpay_service import RazorpayGateway
from app.utils.notifications import Notifier, SESNotifier
from app.utils.tasks import ExpirySweeper


def build_notifier() -> Notifier:
    """SES email when AWS credentials are configured, log-only otherwise"""
    if settings.AWS_ACCESS_KEY_ID and settings.AWS_SECRET_ACCESS_KEY:
        return SESNotifier()
    logger.warning("AWS SES credentials not configured. Notifications will only be logged.")
    return Notifier()


@asynccontextmanager
async def lifespan(app: FastAPI):
    app.state.gateway = RazorpayGateway()
    app.state.notifier = build_notifier()

    sweeper = None
    if settings.EXPIRY_SWEEP_ENABLED:
        sweeper = ExpirySweeper(
            SessionLocal,
            BookingService(app.state.notifier),
            settings.EXPIRY_SWEEP_INTERVAL_SECONDS
        )
        sweeper.start()

    logger.info(f"{settings.APP_NAME} {settings.APP_VERSION} started ({settings.ENVIRONMENT})")
    try:
        yield
    finally:
        if sweeper is not None:
            sweeper.stop()
        logger.info(f"{settings.APP_NAME} shutting down")


# Initialize FastAPI app
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Vendor marketplace bookings with Razorpay payments",
    debug=settings.DEBUG,
    lifespan=lifespan
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if settings.DEBUG else [],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Exception handlers
@app.exception_handler(DomainException)
async def domain_exception_handler(request: Request, exc: DomainException):
    """Handle business rule violations raised by services"""
    if exc.status_code >= 500:
        logger.error(f"{type(exc).__name__} on {request.url.path}: {exc.message}")
    else:
        logger.warning(f"{type(exc).__name__} on {request.url.path}: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content=jsonable_encoder(exc.to_dict())
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """Handle HTTP exceptions"""
    logger.error(f"HTTP exception: {exc.status_code} - {exc.detail}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail, "status_code": exc.status_code}
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Handle validation errors"""
    logger.error(f"Validation error: {exc.errors()}")
    return JSONResponse(
        status_code=HTTP_422_UNPROCESSABLE,
        content={"error": "Validation error", "details": jsonable_encoder(exc.errors())}
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Handle general exceptions"""
    logger.error(f"Unhandled exception: {str(exc)}", exc_info=True)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": "Internal server error"}
    )


# Include routers
app.include_router(bookings.router)
app.include_router(payments.router)
app.include_router(calendar.router)
app.include_router(coupons.router)
app.include_router(bank_details.router)

# Include admin routers
app.include_router(admin_bank_details.router)
app.include_router(admin_webhooks.router)
app.include_router(admin_products.router)


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT
    }


if __name__ == "__main__":
    uvicorn.run("app.main:app", host="0.0.0.0", port=8000, reload=settings.DEBUG)
