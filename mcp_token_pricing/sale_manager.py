import json
import threading
import time
from pathlib import Path
from typing import Dict, Optional, Tuple, Union

from pydantic import ValidationError

from mcp_token_pricing import pricing
from mcp_token_pricing import config
from mcp_token_pricing.errors import SaleNotFoundError
from mcp_token_pricing.math_lib import safe_add
from mcp_token_pricing.schemas import PriceInfo, SaleConfigModel
from mcp.server.fastmcp.utilities.logging import get_logger

logger = get_logger(__name__)

# Determine the absolute path to the directory containing this file
MODULE_DIR = Path(__file__).parent.resolve()

# In-memory storage for loaded sale configurations and caller-owned sale state
sale_data: Dict[str, SaleConfigModel] = {}
tokens_sold: Dict[str, int] = {}  # Cumulative tokens sold per sale

# Serializes read-price / commit-purchase cycles on tokens_sold
_state_lock = threading.Lock()

# Simple file-based caching to avoid repeated I/O operations
_sale_cache_timestamp: float = 0
_sale_cache_dir: Optional[Path] = None
_SALE_CACHE_DURATION = 300  # Cache for 5 minutes


def _resolve_config_dir(config_dir: Optional[Union[str, Path]]) -> Path:
    # Absolute paths are kept as-is by the join
    return MODULE_DIR / (config_dir if config_dir is not None else config.SALE_CONFIG_DIR)


def load_sales_from_config_files(config_dir: Optional[Union[str, Path]] = None) -> Dict[str, SaleConfigModel]:
    """
    Loads sale configurations from JSON files in the specified directory.

    Relative directories are resolved against this module's location. Results are cached
    per directory and reloaded when the cache expires or a file changes.

    Args:
        config_dir: Directory containing <sale_id>.json files, SALE_CONFIG_DIR when omitted.

    Returns:
        A dictionary mapping sale_id to the validated SaleConfigModel instance.
    """
    global _sale_cache_timestamp, _sale_cache_dir

    config_path = _resolve_config_dir(config_dir)

    current_time = time.time()
    cache_is_fresh = (
        sale_data
        and _sale_cache_dir == config_path
        and current_time - _sale_cache_timestamp < _SALE_CACHE_DURATION
    )
    if cache_is_fresh and config_path.is_dir():
        modified = any(path.stat().st_mtime > _sale_cache_timestamp for path in config_path.glob("*.json"))
        if not modified:
            logger.debug("Using cached sale data")
            return sale_data.copy()

    loaded_sales: Dict[str, SaleConfigModel] = {}

    if not config_path.is_dir():
        logger.warning(f"Sale configuration directory not found: {config_path}. No sales loaded.")
        return loaded_sales

    logger.info(f"Loading sale configurations from: {config_path}")

    for file_path in sorted(config_path.glob("*.json")):
        try:
            with open(file_path, "r") as f:
                sale_config = SaleConfigModel.model_validate(json.load(f))
        except json.JSONDecodeError:
            logger.error(f"Error decoding JSON from file: {file_path}")
            continue
        except ValidationError as e:
            logger.error(f"Invalid sale configuration in file {file_path}: {e}")
            continue

        sale_id = sale_config.sale.sale_id
        if sale_id != file_path.stem:
            logger.warning(f"Sale ID mismatch in {file_path}: expected '{file_path.stem}', found '{sale_id}'. Skipping.")
            continue
        if not pricing.validate_price_config(sale_config.sale.pricing):
            logger.warning(f"Sale '{sale_id}' has an invalid price config. Skipping.")
            continue

        loaded_sales[sale_id] = sale_config
        # Resume from the stored supply the first time a sale is seen
        if sale_id not in tokens_sold:
            tokens_sold[sale_id] = sale_config.sale.pricing.current_supply
        logger.info(f"Successfully loaded sale config: {sale_id}")

    logger.info(f"Finished loading sales. Total loaded: {len(loaded_sales)}")

    _sale_cache_timestamp = current_time
    _sale_cache_dir = config_path
    return loaded_sales


def get_sale(sale_id: str) -> Optional[SaleConfigModel]:
    """Retrieves a sale configuration by its ID."""
    return sale_data.get(sale_id)


def _require_sale(sale_id: str) -> SaleConfigModel:
    sale = get_sale(sale_id)
    if sale is None:
        raise SaleNotFoundError(f"Sale with id {sale_id} not found.")
    return sale


def get_tokens_sold(sale_id: str) -> int:
    """Retrieves the cumulative tokens sold for a specific sale."""
    return tokens_sold.get(sale_id, 0)


def quote_price(sale_id: str, current_time: Optional[int] = None) -> PriceInfo:
    """Price information for a sale at its current tokens-sold counter."""
    sale = _require_sale(sale_id)
    return pricing.get_price_info(sale.sale.pricing, get_tokens_sold(sale_id), current_time)


def quote_tiered_price(sale_id: str) -> Tuple[int, int]:
    """(price, tier_index) for a sale's tier schedule at its current counter."""
    sale = _require_sale(sale_id)
    return pricing.calculate_tiered_price(sale.sale.tiers, get_tokens_sold(sale_id))


def record_purchase(sale_id: str, amount: int, current_time: Optional[int] = None) -> int:
    """
    Advances a sale's tokens-sold counter and returns the price for the new total.

    The price is computed before the counter moves; any pricing error leaves the
    counter untouched.
    """
    sale = _require_sale(sale_id)
    with _state_lock:
        new_total = safe_add(get_tokens_sold(sale_id), amount)
        price = pricing.calculate_price(sale.sale.pricing, new_total, current_time)
        tokens_sold[sale_id] = new_total
    logger.info(f"Recorded purchase of {amount} for sale '{sale_id}': total sold {new_total}, next price {price}")
    return price


def clear_sale_cache():
    """Clears the sale cache to force reload on next access."""
    global _sale_cache_timestamp
    _sale_cache_timestamp = 0
    logger.debug("Sale cache cleared")


def add_or_update_sale(sale_config: SaleConfigModel, config_dir: Optional[Union[str, Path]] = None) -> bool:
    """Adds a new sale or updates an existing one in memory and saves its config file."""
    sale_id = sale_config.sale.sale_id
    sale_data[sale_id] = sale_config
    if sale_id not in tokens_sold:
        tokens_sold[sale_id] = sale_config.sale.pricing.current_supply

    config_path = _resolve_config_dir(config_dir)
    file_path = config_path / f"{sale_id}.json"
    try:
        config_path.mkdir(parents=True, exist_ok=True)
        with open(file_path, "w") as f:
            json.dump(sale_config.model_dump(mode="json"), f, indent=4)
    except OSError as e:
        logger.error(f"Error saving sale configuration to {file_path}: {e}")
        return False

    logger.info(f"Successfully saved sale configuration to {file_path}")
    clear_sale_cache()
    return True


# --- Initial Load ---
# Load sales when the module is imported
sale_data = load_sales_from_config_files()
