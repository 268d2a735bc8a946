import logging
import logging.config
from datetime import datetime, timezone
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse

from app.core.config import PaymentConfig, Settings, settings as default_settings
from app.core.errors import AppError
from app.core.firebase import get_firestore_client, init_firebase
from app.services.razorpay import RazorpayClient
from app.services.reminder_store import (
    FirestoreReminderStore,
    ReminderStore,
    UnconfiguredReminderStore,
)
from app.utils.firebase import firestore_run

# ------------------------------------------------------------
# 1. LOGGING
# ------------------------------------------------------------
LOG_LEVEL = "INFO" if default_settings.ENVIRONMENT == "production" else "DEBUG"

logging_config = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "default": {
            "format": "%(asctime)s | %(levelname)s | %(name)s | %(message)s",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "default",
        },
    },
    "loggers": {
        "uvicorn": {"handlers": ["console"], "level": LOG_LEVEL},
        "uvicorn.error": {"handlers": ["console"], "level": LOG_LEVEL},
        "uvicorn.access": {"handlers": ["console"], "level": LOG_LEVEL},
        "remindpay": {"handlers": ["console"], "level": LOG_LEVEL, "propagate": False},
    },
}

logging.config.dictConfig(logging_config)
logger = logging.getLogger("remindpay")


def create_app(
    settings: Optional[Settings] = None,
    *,
    store: Optional[ReminderStore] = None,
    gateway: Optional[RazorpayClient] = None,
    firebase_app=None,
    init_services: bool = True,
) -> FastAPI:
    """
    Build the API. Client handles are constructed once here and kept on
    app.state; tests pass their own store/gateway and skip Firebase.
    """
    settings = settings or default_settings

    # ------------------------------------------------------------
    # 2. FASTAPI APP
    # ------------------------------------------------------------
    app = FastAPI(
        title=f"{settings.PROJECT_NAME} API",
        description="Reminders with Razorpay payments.",
        version="1.0.0",
        docs_url="/docs" if settings.DEBUG else None,
        redoc_url="/redoc" if settings.DEBUG else None,
    )

    # ------------------------------------------------------------
    # 3. SERVICE HANDLES
    # ------------------------------------------------------------
    payment_config = PaymentConfig.from_settings(settings)
    db = None
    if init_services and firebase_app is None:
        firebase_app = init_firebase(settings)
        db = get_firestore_client(firebase_app)

    if store is None:
        store = FirestoreReminderStore(db) if db is not None else UnconfiguredReminderStore()

    app.state.settings = settings
    app.state.payment_config = payment_config
    app.state.gateway = gateway or RazorpayClient(payment_config)
    app.state.store = store
    app.state.firebase_app = firebase_app
    app.state.db = db

    if not payment_config.is_configured:
        logger.error("❌ Missing Razorpay credentials (RAZORPAY_KEY_ID / RAZORPAY_KEY_SECRET)")

    # ------------------------------------------------------------
    # 4. CORS
    # ------------------------------------------------------------
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.ALLOWED_ORIGIN],
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
    )

    # ------------------------------------------------------------
    # 5. ROUTERS (API ROUTES)
    # ------------------------------------------------------------
    from app.routers import payment_router, reminder_router, user_router

    app.include_router(payment_router.router, prefix="/api", tags=["Payments"])
    app.include_router(user_router.router, prefix="/api", tags=["Users"])
    app.include_router(reminder_router.router, prefix="/api", tags=["Reminders"])

    # ------------------------------------------------------------
    # 6. SYSTEM ROUTES
    # ------------------------------------------------------------
    @app.get("/", include_in_schema=False)
    async def root():
        return PlainTextResponse("Backend is running 🚀")

    @app.get("/health", tags=["System"])
    async def health_check(request: Request):
        client = request.app.state.db
        if client is None:
            return JSONResponse(status_code=503, content={"status": "unhealthy", "db": "not configured"})
        try:
            doc = client.collection("system").document("healthcheck")
            await firestore_run(doc.set, {"ping": datetime.now(timezone.utc)}, merge=True)
            return {"status": "healthy", "db": "connected"}
        except Exception as e:
            logger.error(f"Health check failed: {e}")
            return JSONResponse(status_code=503, content={"status": "unhealthy", "db": "unreachable"})

    # ------------------------------------------------------------
    # 7. EXCEPTION HANDLERS
    # ------------------------------------------------------------
    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError):
        if exc.status_code >= 500:
            logger.error(f"{exc.__class__.__name__} on {request.method} {request.url.path}: {exc!r} (cause: {exc.__cause__!r})")
        else:
            logger.info(f"{exc.__class__.__name__} on {request.method} {request.url.path}: {exc.message}")
        return JSONResponse(status_code=exc.status_code, content={"success": False, "message": exc.message})

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled exception: {exc}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={
                "success": False,
                "message": "Something went wrong. We're on it.",
                "request_id": request.headers.get("X-Request-ID"),
            },
        )

    # ------------------------------------------------------------
    # 8. REQUEST LOGGING MIDDLEWARE
    # ------------------------------------------------------------
    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        client_host = request.client.host if request.client else "-"
        logger.info(f"➡️ {client_host} {request.method} {request.url.path}")
        response = await call_next(request)
        logger.info(f"⬅️ {request.method} {request.url.path} → {response.status_code}")
        return response

    # ------------------------------------------------------------
    # 9. STARTUP EVENTS
    # ------------------------------------------------------------
    @app.on_event("startup")
    async def startup_event():
        logger.info(f"🚀 {settings.PROJECT_NAME} API started | Env: {settings.ENVIRONMENT} | Debug: {settings.DEBUG}")
        logger.info(f"💳 Payments configured: {payment_config.is_configured} | Webhook secret: {bool(payment_config.webhook_secret)}")
        logger.info(f"🔥 Firebase configured: {app.state.firebase_app is not None}")

    return app


app = create_app()
