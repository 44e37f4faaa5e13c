from pydantic_settings import BaseSettings
import os


class Settings(BaseSettings):
    # Environment configuration
    environment: str = os.getenv("ENVIRONMENT", "development")

    # Frontend URL (for CORS outside development)
    frontend_url: str = os.getenv("FRONTEND_URL", "http://localhost:5173")

    # Stripe configuration
    stripe_secret_key: str = os.getenv("STRIPE_SECRET_KEY", "")
    stripe_webhook_secret: str = os.getenv("STRIPE_WEBHOOK_SECRET", "")
    # Pinned so latest_invoice.payment_intent stays expandable
    stripe_api_version: str = os.getenv("STRIPE_API_VERSION", "2023-10-16")

    # Supabase configuration (subscription document store)
    supabase_url: str = os.getenv("SUPABASE_URL", "")
    supabase_key: str = os.getenv("SUPABASE_KEY", "")
    subscriptions_table: str = os.getenv("SUBSCRIPTIONS_TABLE", "subscriptions")

    # Server binding
    host: str = os.getenv("HOST", "0.0.0.0")
    port: int = int(os.getenv("PORT", 5000))

    class Config:
        env_file = ".env"


def get_settings() -> Settings:
    """Build settings from the environment and .env file"""
    return Settings()
