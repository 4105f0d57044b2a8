import time
from decimal import Decimal

from mcp_token_pricing.math_lib import TOKEN_DECIMALS


def format_fixed_point(value: int, decimals: int = TOKEN_DECIMALS, places: int = 6) -> str:
    """Formats a fixed-point integer for display, e.g. 5500000000000000000 -> '5.500000'."""
    return f"{Decimal(value).scaleb(-decimals):.{places}f}"


def current_timestamp() -> int:
    """Current Unix time in whole seconds."""
    return int(time.time())
