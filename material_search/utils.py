"""
Utility functions for the raw materials search service.

This module provides:
- Environment variable loading with typed defaults
- Logging configuration with structured JSON output
- Timing utilities for performance measurement
- Input sanitization for log output
"""

import os
import re
import sys
from datetime import datetime, timezone
from typing import Dict, Any, Optional
from dotenv import load_dotenv
from loguru import logger


class ConfigurationError(Exception):
    """Raised when required configuration is missing or invalid."""
    pass


# Optional environment variables with defaults
OPTIONAL_VARS: Dict[str, Any] = {
    "MONGODB_URI": None,
    "MONGODB_DATABASE": "rnd_ai",
    "MONGODB_IN_STOCK_COLLECTION": "raw_materials_real_stock",
    "MONGODB_ALL_FDA_COLLECTION": "raw_materials_console",
    "PINECONE_API_KEY": None,
    "PINECONE_INDEX_NAME": "raw-materials-stock",
    "PINECONE_CLOUD": "aws",
    "PINECONE_REGION": "us-east-1",
    "EMBEDDING_PROVIDER": "gemini",
    "GEMINI_API_KEY": None,
    "GEMINI_EMBEDDING_MODEL": "models/gemini-embedding-001",
    "GEMINI_EMBEDDING_DIMENSIONS": 768,
    "OPENAI_API_KEY": None,
    "OPENAI_EMBEDDING_MODEL": "text-embedding-3-small",
    "EMBEDDING_BATCH_SIZE": 100,
    "RETRIEVAL_TOP_K": 5,
    "SIMILARITY_THRESHOLD": 0.5,
    "STOCK_PRIORITY_EPSILON": 0.05,
    "SEARCH_TIMEOUT_SECONDS": 10.0,
    "VECTOR_SEARCH_TIMEOUT": 8.0,
    "SEMANTIC_OVERFETCH_FACTOR": 3,
    "LOG_LEVEL": "INFO",
}

INT_VARS = {
    "GEMINI_EMBEDDING_DIMENSIONS",
    "EMBEDDING_BATCH_SIZE",
    "RETRIEVAL_TOP_K",
    "SEMANTIC_OVERFETCH_FACTOR",
}

FLOAT_VARS = {
    "SIMILARITY_THRESHOLD",
    "STOCK_PRIORITY_EPSILON",
    "SEARCH_TIMEOUT_SECONDS",
    "VECTOR_SEARCH_TIMEOUT",
}


def setup_logging(level: str = "INFO") -> None:
    """
    Configure structured JSON logging with Loguru.
    """
    logger.remove()
    logger.add(
        sys.stdout,
        format="{time:YYYY-MM-DD HH:mm:ss} | {level} | {name}:{function}:{line} | {message}",
        level=level,
        serialize=True
    )

    logger.info("Logging configuration complete", level=level)


def load_and_validate_env() -> Dict[str, Any]:
    """
    Load and validate environment variables.

    Every variable is optional, but at least one backing store (MongoDB or
    Pinecone) must be configured for search to be possible.

    Returns:
        Dict[str, Any]: Configuration dictionary with validated values

    Raises:
        ConfigurationError: If no backing store is configured
    """
    load_dotenv()

    config: Dict[str, Any] = {}

    for var, default in OPTIONAL_VARS.items():
        value = os.getenv(var)
        if value is None or value == "":
            config[var] = default
            continue

        if var in INT_VARS:
            try:
                config[var] = int(value)
            except ValueError:
                logger.warning("Invalid integer value, using default", variable=var, default=default)
                config[var] = default
        elif var in FLOAT_VARS:
            try:
                config[var] = float(value)
            except ValueError:
                logger.warning("Invalid float value, using default", variable=var, default=default)
                config[var] = default
        else:
            config[var] = value

    if not config["MONGODB_URI"] and not config["PINECONE_API_KEY"]:
        raise ConfigurationError(
            "Neither MONGODB_URI nor PINECONE_API_KEY is set; no backing store available"
        )

    if config["EMBEDDING_PROVIDER"] not in ("gemini", "openai"):
        raise ConfigurationError(
            f"EMBEDDING_PROVIDER must be 'gemini' or 'openai', got {config['EMBEDDING_PROVIDER']!r}"
        )

    logger.info(
        "Environment configuration loaded and validated",
        mongodb_configured=bool(config["MONGODB_URI"]),
        pinecone_configured=bool(config["PINECONE_API_KEY"]),
        embedding_provider=config["EMBEDDING_PROVIDER"]
    )
    return config


def sanitize_for_logging(text: str, max_length: int = 200) -> str:
    """
    Sanitize user input for safe logging by masking secrets and truncating.

    Args:
        text: Input text to sanitize
        max_length: Maximum length of sanitized text

    Returns:
        str: Sanitized text safe for logging
    """
    if not text:
        return ""

    sensitive_patterns = [
        r'sk-[a-zA-Z0-9_-]+',
        r'AIza[0-9A-Za-z_-]{20,}',
        r'Bearer\s+[a-zA-Z0-9._-]+',
        r'mongodb(?:\+srv)?://\S+',
    ]

    sanitized = text
    for pattern in sensitive_patterns:
        sanitized = re.sub(pattern, '[REDACTED]', sanitized, flags=re.IGNORECASE)

    if len(sanitized) > max_length:
        sanitized = sanitized[:max_length] + "..."

    return sanitized


class Timer:
    """Context manager for timing operations."""

    def __init__(self, operation_name: str = "operation"):
        self.operation_name = operation_name
        self.start_time = None
        self.end_time = None

    def __enter__(self):
        self.start_time = get_utc_datetime()
        logger.debug("Starting operation", operation=self.operation_name)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.end_time = get_utc_datetime()
        duration_ms = (self.end_time - self.start_time).total_seconds() * 1000

        if exc_type is None:
            logger.info("Completed operation", operation=self.operation_name, duration_ms=duration_ms)
        else:
            logger.error(
                "Failed operation",
                operation=self.operation_name,
                duration_ms=duration_ms,
                error=str(exc_val)
            )

    @property
    def duration_ms(self) -> float:
        """Get duration in milliseconds."""
        if self.start_time and self.end_time:
            return (self.end_time - self.start_time).total_seconds() * 1000
        return 0.0


def get_utc_datetime() -> datetime:
    """Get current datetime object in UTC timezone."""
    return datetime.now(timezone.utc)


def get_current_timestamp() -> str:
    """
    Get current timestamp in ISO format with UTC timezone.

    Returns:
        str: Current timestamp in ISO format with timezone
    """
    return get_utc_datetime().isoformat()


# Global configuration instance (read-only once loaded)
_config: Optional[Dict[str, Any]] = None


def get_config() -> Dict[str, Any]:
    """
    Get the global configuration, loading it if not already loaded.

    Returns:
        Dict[str, Any]: Configuration dictionary
    """
    global _config
    if _config is None:
        _config = load_and_validate_env()
    return _config


def reset_config() -> None:
    """Drop the cached configuration so the next get_config() reloads it."""
    global _config
    _config = None


def initialize_app() -> Dict[str, Any]:
    """
    Initialize logging and configuration. Call this at app startup.
    """
    config = get_config()
    setup_logging(config.get("LOG_LEVEL", "INFO"))

    logger.info(
        "Application initialization complete",
        embedding_provider=config["EMBEDDING_PROVIDER"],
        retrieval_settings={
            "top_k": config["RETRIEVAL_TOP_K"],
            "threshold": config["SIMILARITY_THRESHOLD"],
            "stock_priority_epsilon": config["STOCK_PRIORITY_EPSILON"]
        }
    )
    return config
