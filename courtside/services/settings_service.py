"""
Settings service for runtime configuration from environment variables.

Values come from the process environment (a local .env file is loaded first).
"""

import os
import logging
from typing import Optional

from dotenv import load_dotenv

# Load environment variables
load_dotenv()

logger = logging.getLogger(__name__)

DEFAULT_STATE_KEY = "default"
DEFAULT_OPERATIONS_RATE_LIMIT = "120/minute"


def get_bool_env(key: str, default: bool = True) -> bool:
    """
    Parse a boolean environment variable from a string value.

    Args:
        key: Environment variable name
        default: Default value if the variable is not set

    Returns:
        bool: Parsed boolean value
    """
    value = os.getenv(key)
    if value is None:
        return default
    return value.lower() in ("true", "1", "yes")


def get_int_env(key: str, default: Optional[int] = None) -> Optional[int]:
    """
    Parse an integer environment variable.

    Args:
        key: Environment variable name
        default: Value used when the variable is unset or not an integer

    Returns:
        Parsed integer, or default
    """
    value = os.getenv(key)
    if value is None or value.strip() == "":
        return default
    try:
        return int(value)
    except ValueError:
        logger.warning(f"Invalid integer value for {key}: {value}")
        return default


def get_state_key() -> str:
    """Key the rotation snapshot is stored under."""
    return os.getenv("ROTATION_STATE_KEY", DEFAULT_STATE_KEY) or DEFAULT_STATE_KEY


def get_rotation_seed() -> Optional[int]:
    """Seed for match assembly randomness; None means unseeded."""
    return get_int_env("ROTATION_SEED")


def get_operations_rate_limit() -> str:
    """slowapi limit string for the operations endpoint."""
    return os.getenv("OPERATIONS_RATE_LIMIT", DEFAULT_OPERATIONS_RATE_LIMIT)


def is_test_env() -> bool:
    return os.getenv("ENV", "").lower() == "test"
