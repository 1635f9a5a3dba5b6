"""
Environment Configuration Utility

Provides environment detection.

ENVIRONMENT values:
- production: durable MongoDB store only
- development: in-memory store allowed
- test: in-memory store allowed for automated testing
"""
import os
import logging

# Valid environment values
VALID_ENVIRONMENTS = {"production", "development", "test"}


def get_environment() -> str:
    """Current environment (defaults to development for unknown values)."""
    environment = os.environ.get("ENVIRONMENT", "development").lower()
    if environment not in VALID_ENVIRONMENTS:
        logging.warning(f"Invalid ENVIRONMENT '{environment}', defaulting to 'development'")
        return "development"
    return environment


def is_production() -> bool:
    """Check if running in production environment."""
    return get_environment() == "production"
