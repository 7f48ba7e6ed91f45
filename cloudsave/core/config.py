"""
Configuration module for loading environment variables.
All limits and runtime settings are read once at import time.
"""
import logging
import os


class Config:
    """Application configuration loaded from environment variables."""

    # Upload limits
    MAX_FILE_SIZE_BYTES: int = int(
        os.getenv("CLOUDSAVE_MAX_FILE_SIZE_BYTES", str(10 * 1024 * 1024))
    )  # 10 MB
    MAX_FILES_IN_ZIP: int = int(os.getenv("CLOUDSAVE_MAX_FILES_IN_ZIP", "50"))

    # Logging
    LOG_LEVEL: str = os.getenv("CLOUDSAVE_LOG_LEVEL", "INFO").upper()

    # Pricing Configuration
    PRICING_REGION: str = os.getenv("CLOUDSAVE_PRICING_REGION", "us-east-1")

    # Service metadata
    SERVICE_NAME: str = "CloudSave"
    SERVICE_VERSION: str = "1.0.0"

    @classmethod
    def validate(cls) -> None:
        """
        Validates that configuration values are usable.

        Raises:
            ValueError: If any configuration value is missing or invalid.
        """
        if cls.MAX_FILE_SIZE_BYTES <= 0:
            raise ValueError("CLOUDSAVE_MAX_FILE_SIZE_BYTES must be positive")
        if cls.MAX_FILES_IN_ZIP <= 0:
            raise ValueError("CLOUDSAVE_MAX_FILES_IN_ZIP must be positive")

        if not isinstance(logging.getLevelName(cls.LOG_LEVEL), int):
            raise ValueError(
                f"CLOUDSAVE_LOG_LEVEL must be a logging level name (got: {cls.LOG_LEVEL})"
            )

        if not cls.PRICING_REGION:
            raise ValueError("CLOUDSAVE_PRICING_REGION is required")


config = Config()
