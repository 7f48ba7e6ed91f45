"""
Main FastAPI application bootstrap.
Configures logging and middleware and includes routers.
"""
import logging
from typing import Dict, Any

from fastapi import FastAPI

from cloudsave.core.config import config
from cloudsave.api.analyze import router as analyze_router
from cloudsave.middleware.request_size_limiter import RequestSizeLimiterMiddleware
from cloudsave.pricing.aws_pricing import PRICING_VERSION


logger = logging.getLogger(__name__)

# Validate configuration on startup
try:
    config.validate()
except ValueError as error:
    # Fail fast with a clear, non-secret-bearing message
    raise RuntimeError(f"Configuration error: {error}") from error

logging.basicConfig(level=config.LOG_LEVEL)
logging.getLogger("cloudsave").setLevel(config.LOG_LEVEL)

logger.info(
    "CloudSave starting: max_file_size=%d bytes, max_files_in_zip=%d, pricing=%s (%s)",
    config.MAX_FILE_SIZE_BYTES,
    config.MAX_FILES_IN_ZIP,
    PRICING_VERSION,
    config.PRICING_REGION,
)


app = FastAPI(
    title=config.SERVICE_NAME,
    description="Cost anti-pattern analysis for AWS infrastructure-as-code",
    version=config.SERVICE_VERSION,
)

# Add request size limiting middleware
app.add_middleware(RequestSizeLimiterMiddleware)

# Include routers
app.include_router(analyze_router)


@app.get("/")
async def root() -> Dict[str, Any]:
    """
    Root endpoint describing the service.

    Returns:
        Service name, version and the pricing table version in use
    """
    return {
        "name": config.SERVICE_NAME,
        "version": config.SERVICE_VERSION,
        "pricing_version": PRICING_VERSION,
        "region": config.PRICING_REGION,
    }
