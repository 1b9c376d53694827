"""
Environment variable validation.

Checks that the settings the indexing and answer services depend on are
present and well-formed before the application starts serving traffic.
"""

import sys
from typing import List, Optional, Tuple

from chatgenius.core.config import settings
from chatgenius.core.logging import get_logger

logger = get_logger(__name__)


def validate_secret(key_name: str, key_value: Optional[str], min_length: int = 16) -> List[str]:
    """
    Validate that a shared secret meets basic requirements.

    Args:
        key_name: Name of the setting (for error messages)
        key_value: The value to validate
        min_length: Minimum required length

    Returns:
        List of validation errors (empty if valid)
    """
    errors = []

    if not key_value:
        errors.append(f"{key_name} is not set")
        return errors

    if len(key_value) < min_length:
        errors.append(f"{key_name} is too short (must be at least {min_length} characters)")

    lowered = key_value.lower()
    if "change" in lowered or "your-" in lowered or "example" in lowered:
        errors.append(f"{key_name} appears to be a placeholder value - update with a real secret")

    return errors


def validate_database_url() -> List[str]:
    errors = []

    if not settings.DATABASE_URL:
        errors.append("DATABASE_URL is not set")
        return errors

    if not settings.DATABASE_URL.startswith("postgresql+asyncpg://"):
        errors.append(
            "DATABASE_URL must use asyncpg driver (format: postgresql+asyncpg://...)"
        )

    return errors


def validate_ai_dependencies() -> List[str]:
    """
    Validate the providers used by indexing and answer synthesis.

    Missing blob storage only disables document indexing, so it is a warning.
    """
    errors = []

    if not settings.ANTHROPIC_API_KEY:
        errors.append("ANTHROPIC_API_KEY is not set - answer synthesis will not work")
    elif "your-" in settings.ANTHROPIC_API_KEY.lower():
        errors.append("ANTHROPIC_API_KEY appears to be a placeholder - update with real API key")

    if settings.EMBEDDING_DIMENSION <= 0:
        errors.append("EMBEDDING_DIMENSION must be positive")

    if settings.DOCUMENT_CHUNK_OVERLAP >= settings.DOCUMENT_CHUNK_SIZE:
        errors.append("DOCUMENT_CHUNK_OVERLAP must be smaller than DOCUMENT_CHUNK_SIZE")

    if not settings.storage_configured:
        logger.warning(
            "environment_validation_warning",
            message="SUPABASE_URL / SUPABASE_SERVICE_ROLE_KEY not set - document indexing will fail",
        )

    return errors


def validate_environment() -> Tuple[bool, List[str]]:
    """
    Validate all environment variables.

    Returns:
        (is_valid, list_of_errors)
    """
    all_errors: List[str] = []

    logger.info("validating_environment", app_env=settings.APP_ENV, app_name=settings.APP_NAME)

    all_errors.extend(validate_secret("WEBHOOK_SECRET", settings.WEBHOOK_SECRET))
    all_errors.extend(validate_database_url())
    all_errors.extend(validate_ai_dependencies())

    if settings.is_production and settings.DEBUG:
        all_errors.append("DEBUG must be false in production")

    if all_errors:
        logger.error(
            "environment_validation_failed",
            errors=all_errors,
            error_count=len(all_errors),
        )
        return False, all_errors

    logger.info(
        "environment_validation_successful",
        app_env=settings.APP_ENV,
        features_enabled={
            "document_indexing": settings.storage_configured,
            "answer_synthesis": bool(settings.ANTHROPIC_API_KEY),
        },
    )
    return True, []


def validate_or_exit() -> None:
    """Validate environment and exit if validation fails (production only)."""
    is_valid, errors = validate_environment()

    if not is_valid and settings.is_production:
        logger.critical("startup_aborted_invalid_environment", errors=errors)
        sys.exit(1)
