"""
Token Pricing Server - MCP Server Implementation

This module exposes the token pricing engine as MCP tools. Sale configurations are
managed by the sale manager; every price returned here is computed by the pricing engine
from the sale's current tokens-sold counter.

Key Features:
- Multi-sale support with individual JSON configurations
- Eight continuous pricing models, tiered pricing and bonding curves
- Price impact, average price and payment-to-token conversion helpers
- Input validation and sanitized error messages
- Structured logging of every failed operation

All amounts are integers in 1e18 fixed point unless a parameter says otherwise.
"""

import json
import time
from typing import Optional

from pydantic import Field, ValidationError

from mcp.server.fastmcp import Context, FastMCP
from mcp.server.fastmcp.utilities.logging import configure_logging, get_logger

from mcp_token_pricing import config
from mcp_token_pricing import math_lib
from mcp_token_pricing import pricing
from mcp_token_pricing import sale_manager
from mcp_token_pricing.errors import PricingError, SaleNotFoundError
from mcp_token_pricing.schemas import BondingCurveConfig, SaleConfigModel
from mcp_token_pricing.utils import current_timestamp, format_fixed_point

logger = get_logger(__name__)

# Constants
MAX_SALE_ID_LENGTH = 100
MAX_CONFIG_JSON_LENGTH = 10000
MAX_AMOUNT = math_lib.UINT256_MAX

# --- Server Setup ---
mcp = FastMCP(name="Token Pricing Server")


def validate_sale_id(sale_id: str) -> None:
    """Raises ValueError for an empty or oversized sale id."""
    if not sale_id or not isinstance(sale_id, str):
        raise ValueError("Sale ID must be a non-empty string")
    if len(sale_id) > MAX_SALE_ID_LENGTH:
        raise ValueError("Sale ID is too long")


def validate_amount(name: str, amount: int) -> None:
    """Raises ValueError unless amount is an unsigned 256-bit integer."""
    if not isinstance(amount, int) or amount < 0:
        raise ValueError(f"{name} must be a non-negative integer")
    if amount > MAX_AMOUNT:
        raise ValueError(f"{name} is too large")


def log_operation_error(operation: str, sale_id: str, error: Exception) -> None:
    """Log operation error with structured information."""
    logger.error(f"{operation} failed for sale '{sale_id}': {type(error).__name__}: {error}")


# --- MCP Tools ---

@mcp.tool()
async def get_sale_info(context: Context, sale_id: str = Field(..., description="The sale ID.")) -> str:
    """Get the configuration of a specific sale."""
    try:
        validate_sale_id(sale_id)
        sale = sale_manager.get_sale(sale_id)
        if not sale:
            logger.warning(f"Sale not found: {sale_id}")
            return f"Sale with id {sale_id} not found."
        return sale.model_dump_json(indent=2)
    except ValueError as e:
        logger.error(f"Invalid sale ID provided: {e}")
        return f"Invalid sale ID: {e}"


@mcp.tool()
async def create_sale(context: Context, config_json: str = Field(..., description="The sale configuration as a JSON string.")) -> str:
    """Creates or updates a sale from a JSON configuration string."""
    try:
        if not config_json or not isinstance(config_json, str):
            raise ValueError("Configuration JSON must be a non-empty string")
        if len(config_json) > MAX_CONFIG_JSON_LENGTH:
            raise ValueError("Configuration JSON is too large (max 10KB)")

        sale_config = SaleConfigModel.model_validate(json.loads(config_json))
        validate_sale_id(sale_config.sale.sale_id)
        if not pricing.validate_price_config(sale_config.sale.pricing):
            raise ValueError("Price configuration is invalid for the selected pricing model")

        if sale_manager.add_or_update_sale(sale_config):
            logger.info(f"Sale '{sale_config.sale.sale_id}' created/updated successfully")
            return f"Sale '{sale_config.sale.sale_id}' created/updated successfully."
        return f"Error saving sale configuration for '{sale_config.sale.sale_id}'."

    except json.JSONDecodeError as e:
        logger.error(f"Error decoding JSON for create_sale request: {e}")
        return "Error: Invalid JSON format provided. Please check your JSON syntax."
    except ValidationError as e:
        logger.error(f"Invalid sale configuration provided to create_sale: {e}")
        return f"Error: Invalid sale configuration - {e}"
    except ValueError as e:
        logger.error(f"Validation error in create_sale: {e}")
        return f"Error: {e}"


@mcp.tool()
async def get_current_price(
    context: Context,
    sale_id: str = Field(..., description="The sale ID."),
    current_time: Optional[int] = Field(None, description="Unix timestamp to price at (defaults to now)."),
) -> str:
    """Gets the current price, the price a tenth of the supply later, and the change between them."""
    try:
        validate_sale_id(sale_id)
        now = current_time if current_time is not None else current_timestamp()
        info = sale_manager.quote_price(sale_id, now)
        logger.debug(f"Quoted {format_fixed_point(info.current_price)} for sale '{sale_id}'")
        return info.model_dump_json(indent=2)
    except SaleNotFoundError as e:
        return str(e)
    except PricingError as e:
        log_operation_error("Price quote", sale_id, e)
        return f"Error calculating price: {type(e).__name__}"
    except ValueError as e:
        log_operation_error("Price quote", sale_id, e)
        return f"Error: {e}"


@mcp.tool()
async def get_tiered_price(context: Context, sale_id: str = Field(..., description="The sale ID.")) -> str:
    """Gets the price and index of the active tier of a sale's tier schedule."""
    try:
        validate_sale_id(sale_id)
        price, tier_index = sale_manager.quote_tiered_price(sale_id)
        return json.dumps({"price": price, "tier_index": tier_index})
    except SaleNotFoundError as e:
        return str(e)
    except PricingError as e:
        log_operation_error("Tiered price quote", sale_id, e)
        return f"Error calculating tiered price: {type(e).__name__}"
    except ValueError as e:
        log_operation_error("Tiered price quote", sale_id, e)
        return f"Error: {e}"


@mcp.tool()
async def get_bonding_curve_price(
    context: Context,
    curve_json: str = Field(..., description="The bonding curve configuration as a JSON string."),
    purchase_amount: int = Field(..., description="Tokens about to be purchased."),
) -> str:
    """Gets the bonding curve spot price after a purchase."""
    try:
        validate_amount("Purchase amount", purchase_amount)
        curve = BondingCurveConfig.model_validate_json(curve_json)
        price = pricing.calculate_bonding_curve_price(curve, purchase_amount)
        return json.dumps({"price": price})
    except ValidationError as e:
        logger.error(f"Invalid bonding curve configuration: {e}")
        return f"Error: Invalid bonding curve configuration - {e}"
    except PricingError as e:
        logger.error(f"Bonding curve price failed: {e}")
        return f"Error calculating bonding curve price: {type(e).__name__}"
    except ValueError as e:
        return f"Error: {e}"


@mcp.tool()
async def get_price_impact(
    context: Context,
    current_price: int = Field(..., description="Current unit price."),
    purchase_amount: int = Field(..., description="Size of the purchase."),
    total_liquidity: int = Field(..., description="Liquidity available to absorb the purchase."),
    impact_factor: int = Field(..., description="Impact factor in basis points."),
) -> str:
    """Estimates the price after a purchase and the impact on the price."""
    try:
        for name, value in (("Current price", current_price), ("Purchase amount", purchase_amount),
                            ("Total liquidity", total_liquidity), ("Impact factor", impact_factor)):
            validate_amount(name, value)
        new_price, impact = pricing.calculate_price_impact(current_price, purchase_amount, total_liquidity, impact_factor)
        return json.dumps({"new_price": new_price, "impact": impact})
    except PricingError as e:
        logger.error(f"Price impact failed: {e}")
        return f"Error calculating price impact: {type(e).__name__}"
    except ValueError as e:
        return f"Error: {e}"


@mcp.tool()
async def get_average_price(
    context: Context,
    sale_id: str = Field(..., description="The sale ID."),
    start_amount: int = Field(..., description="Tokens sold at the start of the range."),
    end_amount: int = Field(..., description="Tokens sold at the end of the range."),
    steps: int = Field(..., description="Number of integration steps."),
    current_time: Optional[int] = Field(None, description="Unix timestamp to price at (defaults to now)."),
) -> str:
    """Gets the average price over a range of tokens sold."""
    try:
        validate_sale_id(sale_id)
        validate_amount("Start amount", start_amount)
        validate_amount("End amount", end_amount)
        if not isinstance(steps, int) or not 0 < steps <= config.MAX_AVERAGE_PRICE_STEPS:
            raise ValueError(f"Steps must be between 1 and {config.MAX_AVERAGE_PRICE_STEPS}")
        sale = sale_manager.get_sale(sale_id)
        if not sale:
            return f"Sale with id {sale_id} not found."
        now = current_time if current_time is not None else current_timestamp()
        average_price = pricing.calculate_average_price(sale.sale.pricing, start_amount, end_amount, steps, now)
        return json.dumps({"average_price": average_price})
    except PricingError as e:
        log_operation_error("Average price", sale_id, e)
        return f"Error calculating average price: {type(e).__name__}"
    except ValueError as e:
        log_operation_error("Average price", sale_id, e)
        return f"Error: {e}"


@mcp.tool()
async def get_tokens_for_payment(
    context: Context,
    sale_id: str = Field(..., description="The sale ID."),
    payment_amount: int = Field(..., description="Payment in the payment token's base units."),
    payment_token_price: int = Field(..., description="USD price of one payment token (1e18 fixed point)."),
    payment_decimals: int = Field(..., description="Decimals of the payment token."),
    current_time: Optional[int] = Field(None, description="Unix timestamp to price at (defaults to now)."),
) -> str:
    """Converts a payment into the number of sale tokens it buys at the current price."""
    try:
        validate_sale_id(sale_id)
        validate_amount("Payment amount", payment_amount)
        validate_amount("Payment token price", payment_token_price)
        if not isinstance(payment_decimals, int) or not 0 <= payment_decimals <= 36:
            raise ValueError("Payment decimals must be between 0 and 36")
        now = current_time if current_time is not None else current_timestamp()
        token_price = sale_manager.quote_price(sale_id, now).current_price
        tokens = math_lib.calculate_tokens_to_receive(payment_amount, payment_token_price, token_price, payment_decimals)
        return json.dumps({"token_price": token_price, "tokens": tokens})
    except SaleNotFoundError as e:
        return str(e)
    except PricingError as e:
        log_operation_error("Payment conversion", sale_id, e)
        return f"Error converting payment: {type(e).__name__}"
    except ValueError as e:
        log_operation_error("Payment conversion", sale_id, e)
        return f"Error: {e}"


@mcp.tool()
async def record_purchase(
    context: Context,
    sale_id: str = Field(..., description="The sale ID."),
    amount: int = Field(..., description="Tokens purchased (1e18 fixed point)."),
    current_time: Optional[int] = Field(None, description="Unix timestamp of the purchase (defaults to now)."),
) -> str:
    """Advances a sale's tokens-sold counter after a settled purchase and returns the new price."""
    try:
        validate_sale_id(sale_id)
        validate_amount("Amount", amount)
        if amount == 0:
            raise ValueError("Amount must be positive")
        now = current_time if current_time is not None else current_timestamp()
        price = sale_manager.record_purchase(sale_id, amount, now)
        sale = sale_manager.get_sale(sale_id)
        symbol = sale.token.symbol
        return (f"Recorded purchase of {format_fixed_point(amount)} {symbol}. "
                f"Total sold: {format_fixed_point(sale_manager.get_tokens_sold(sale_id))} {symbol}. "
                f"New price: {format_fixed_point(price)}")
    except SaleNotFoundError as e:
        return str(e)
    except PricingError as e:
        log_operation_error("Purchase", sale_id, e)
        return f"Purchase not recorded: {type(e).__name__}"
    except ValueError as e:
        log_operation_error("Purchase", sale_id, e)
        return f"Error: {e}"


def main() -> None:
    """Runs the MCP server over stdio."""
    configure_logging(config.LOG_LEVEL)
    startup_start = time.time()
    logger.info("Starting Token Pricing MCP Server...")

    # The sale manager loads data on import
    sale_count = len(sale_manager.sale_data)
    logger.info(f"Server startup completed in {time.time() - startup_start:.3f}s, loaded {sale_count} sale(s).")

    try:
        mcp.run(transport="stdio")
    except KeyboardInterrupt:
        logger.info("Server shutdown requested by user")


# --- Main Execution ---
if __name__ == "__main__":
    main()
