"""
Startup script for the subscription relay
Reads HOST/PORT from environment and starts uvicorn server
"""
import logging
import uvicorn
from app.core.config import get_settings
from app.main import create_app

logger = logging.getLogger(__name__)

if __name__ == "__main__":
    settings = get_settings()
    app = create_app(settings)

    logger.info(f"🚀 Starting subscription relay on {settings.host}:{settings.port}")

    uvicorn.run(
        app,
        host=settings.host,
        port=settings.port,
        log_level="info"
    )
