# restaurant_verification/main.py
import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlmodel import Session

from restaurant_verification.core.config import settings
from restaurant_verification.core.errors import InternalError, VerificationError
from restaurant_verification.db.session import get_session, init_db, store_errors
from restaurant_verification.routers import admin_router, trust_router, verification_router

logger = logging.getLogger(__name__)


def configure_logging() -> None:
    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"Starting restaurant verification service (ENVIRONMENT={settings.ENVIRONMENT})")
    if settings.ENVIRONMENT in ("development", "test"):
        # Production schema is managed by Alembic
        init_db()
    if not settings.telephony_configured:
        logger.error("CRITICAL: Twilio credentials not configured; phone challenges cannot be delivered")
    if not settings.captcha_configured:
        logger.warning("TURNSTILE_SECRET_KEY not set; CAPTCHA is not enforced")
    yield
    logger.info("Restaurant verification service stopped")


async def verification_error_handler(request: Request, exc: VerificationError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload(), headers=exc.headers)


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    # Only field locations are reported; submitted values may contain a code
    fields = [".".join(str(part) for part in err.get("loc", ()) if part != "body") for err in exc.errors()]
    return JSONResponse(
        status_code=400,
        content={
            "success": False,
            "kind": "InvalidRequest",
            "message": "Invalid request.",
            "fields": [f for f in fields if f],
        },
    )


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(f"Unhandled error on {request.method} {request.url.path}: {type(exc).__name__}", exc_info=exc)
    error = InternalError()
    return JSONResponse(status_code=error.status_code, content=error.to_payload())


def create_app() -> FastAPI:
    configure_logging()
    app = FastAPI(
        title="Restaurant Ownership Verification",
        description="Phone ownership challenges and trust scoring for restaurant registration",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.add_exception_handler(VerificationError, verification_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

    app.include_router(verification_router.router)
    app.include_router(trust_router.router)
    app.include_router(admin_router.router)

    @app.get("/health", tags=["Health"])
    def health(session: Session = Depends(get_session)):
        with store_errors(session):
            session.execute(text("SELECT 1"))
        return {"status": "ok", "database": "ok", "telephony_configured": settings.telephony_configured}

    return app


app = create_app()
