"""Main application entry point."""

import logging
import os

import uvicorn
from dotenv import load_dotenv
from fastapi import FastAPI

from src.api.billing import router as billing_router
from src.services.config import get_settings
from src.services.logging import setup_server_logging

# Load environment variables
load_dotenv()

logger = logging.getLogger(__name__)

settings = get_settings()

app = FastAPI(
    title=settings.api_title,
    description="Recurring billing and service reconciliation for fleet operations",
    version=settings.api_version,
)

app.include_router(billing_router)


@app.get("/health")
def health() -> dict:
    """Liveness check."""
    return {"status": "ok"}


def main() -> None:
    """Run the API server with file + stdout logging."""
    setup_server_logging(settings.log_file, settings.log_level)
    host = os.getenv("HOST", "0.0.0.0")
    port = int(os.getenv("PORT", "8000"))
    logger.info("Starting billing API on %s:%d", host, port)
    uvicorn.run(app, host=host, port=port)


if __name__ == "__main__":
    main()
