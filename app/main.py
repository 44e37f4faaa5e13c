from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import logging
from dotenv import load_dotenv

from app.core.config import Settings, get_settings
from app.routers import subscriptions
from app.services.billing_service import BillingService
from app.services.stripe_service import StripeService
from app.services.supabase_service import SupabaseService

logger = logging.getLogger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    stripe_service: Optional[StripeService] = None,
    store: Optional[SupabaseService] = None
) -> FastAPI:
    """Build the API with its Stripe and Supabase clients created once"""
    load_dotenv()

    # Configure logging
    logging.basicConfig(
        level=logging.INFO,
        format='%(levelname)s - %(message)s',
        handlers=[logging.StreamHandler()]
    )

    settings = settings or get_settings()
    if stripe_service is None:
        if not settings.stripe_secret_key:
            logger.warning("❌ STRIPE_SECRET_KEY not provided")
        stripe_service = StripeService(
            api_key=settings.stripe_secret_key,
            webhook_secret=settings.stripe_webhook_secret,
            api_version=settings.stripe_api_version
        )
    if store is None:
        store = SupabaseService.from_credentials(
            settings.supabase_url,
            settings.supabase_key,
            table=settings.subscriptions_table
        )

    app = FastAPI(
        title="Subscription Relay API",
        description="Mirrors Stripe subscription state into Supabase",
        version="1.0.0",
        redirect_slashes=False
    )
    app.state.settings = settings
    app.state.billing_service = BillingService(stripe_service, store)

    # CORS configuration
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if settings.environment == "development" else [settings.frontend_url],
        allow_credentials=False if settings.environment == "development" else True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
    )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        message = errors[0].get("msg", "Invalid request body") if errors else "Invalid request body"
        logger.warning(f"[request] ❌ Invalid body for {request.url.path}: {message}")
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"error": message}
        )

    # Health check endpoint
    @app.get("/health")
    async def health_check():
        return JSONResponse(content={
            "status": "healthy",
            "service": "Subscription Relay API",
            "version": "1.0.0"
        })

    # The webhook route reads the raw body itself, no JSON parsing happens before it
    app.include_router(subscriptions.router, prefix="/api/stripe", tags=["Stripe"])

    return app
