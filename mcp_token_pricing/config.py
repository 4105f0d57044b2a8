import os
import logging
from typing import Optional
from dotenv import load_dotenv

from mcp_token_pricing.errors import ConfigurationError
from mcp_token_pricing.math_lib import PRECISION

"""
Configuration Management for the Token Pricing Engine

This module loads the tunable defaults of the pricing engine and the settings of the MCP
server from environment variables, with validation so a bad value fails at import time
instead of producing a wrong price later.

Configuration Sources (in order of precedence):
1. Environment variables (a .env file is loaded first)
2. Default values defined in this module

Environment Variables:
    SALE_CONFIG_DIR: Directory of sale JSON files (relative to the package, or absolute)
    DEFAULT_RESERVE_RATIO_BPS: Bonding curve reserve ratio when none is configured (1-10000)
    DEFAULT_SIGMOID_MIDPOINT: Sigmoid midpoint as a 1e18 fixed-point progress ratio
    DEFAULT_TIME_MULTIPLIER: Time-weighted multiplier as a 1e18 fixed-point value
    DEFAULT_VOLUME_WEIGHT: Volume-weighted weight as a 1e18 fixed-point value
    MAX_AVERAGE_PRICE_STEPS: Upper bound on integration steps accepted by the server
    LOG_LEVEL: Log level for the MCP server
"""

# Set up logger
logger = logging.getLogger(__name__)

# Load environment variables
load_dotenv()

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def _get_env_str(key: str, default: str, required: bool = False) -> str:
    """Get environment variable as string with validation."""
    value = os.getenv(key, default)
    if required and not value:
        raise ConfigurationError(f"Required environment variable {key} is not set")
    return value


def _get_env_int(key: str, default: int, min_val: Optional[int] = None, max_val: Optional[int] = None) -> int:
    """Get environment variable as integer with validation."""
    try:
        value = int(os.getenv(key, str(default)))
    except ValueError:
        raise ConfigurationError(f"Environment variable {key} must be a valid integer")
    if min_val is not None and value < min_val:
        raise ConfigurationError(f"Environment variable {key} must be >= {min_val}")
    if max_val is not None and value > max_val:
        raise ConfigurationError(f"Environment variable {key} must be <= {max_val}")
    return value


def _get_env_choice(key: str, default: str, choices: tuple) -> str:
    """Get environment variable restricted to a set of upper-case choices."""
    value = _get_env_str(key, default).upper()
    if value not in choices:
        raise ConfigurationError(f"Environment variable {key} must be one of {', '.join(choices)}")
    return value


try:
    # --- Sale Configuration ---
    SALE_CONFIG_DIR = _get_env_str("SALE_CONFIG_DIR", "sale_configs", required=True)

    # --- Pricing Model Defaults ---
    DEFAULT_RESERVE_RATIO_BPS = _get_env_int("DEFAULT_RESERVE_RATIO_BPS", 5000, min_val=1, max_val=10000)
    DEFAULT_SIGMOID_MIDPOINT = _get_env_int("DEFAULT_SIGMOID_MIDPOINT", PRECISION // 2, min_val=0, max_val=PRECISION)
    DEFAULT_TIME_MULTIPLIER = _get_env_int("DEFAULT_TIME_MULTIPLIER", PRECISION, min_val=0)
    DEFAULT_VOLUME_WEIGHT = _get_env_int("DEFAULT_VOLUME_WEIGHT", PRECISION // 10, min_val=0)

    # --- Server Limits ---
    MAX_AVERAGE_PRICE_STEPS = _get_env_int("MAX_AVERAGE_PRICE_STEPS", 1000, min_val=1, max_val=100000)

    # --- Logging ---
    LOG_LEVEL = _get_env_choice("LOG_LEVEL", "INFO", LOG_LEVELS)

    logger.info("Configuration loaded successfully")

except ConfigurationError as e:
    logger.error(f"Configuration error: {e}")
    raise
