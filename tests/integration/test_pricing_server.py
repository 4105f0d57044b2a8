import json
from unittest.mock import MagicMock

import pytest

from mcp_token_pricing import config
from mcp_token_pricing import sale_manager
from mcp_token_pricing import server
from mcp_token_pricing.errors import PriceExceedsLimitError, SaleNotFoundError
from mcp_token_pricing.math_lib import PRECISION
from mcp_token_pricing.schemas import SaleConfigModel

ONE = PRECISION
START_TIME = 1_700_000_000
END_TIME = START_TIME + 1000

MAIN_SALE_CONFIG = {
    "token": {"name": "Main Sale Token", "symbol": "MST", "decimals": 18},
    "sale": {
        "sale_id": "main_sale",
        "pricing": {
            "initial_price": ONE,
            "final_price": 10 * ONE,
            "total_supply": 100 * ONE,
            "current_supply": 50 * ONE,
            "start_time": START_TIME,
            "end_time": END_TIME,
            "model": "linear",
            "parameters": [],
        },
        "tiers": [
            {"threshold": 40 * ONE, "price": ONE, "tier_type": "fixed"},
            {"threshold": 80 * ONE, "price": 2 * ONE, "tier_type": "fixed"},
        ],
    },
    "resources": [],
}

AUCTION_SALE_CONFIG = {
    "token": {"name": "Auction Token", "symbol": "AUC", "decimals": 18},
    "sale": {
        "sale_id": "auction_sale",
        "pricing": {
            "initial_price": 10 * ONE,
            "final_price": ONE // 2,
            "total_supply": 1000 * ONE,
            "start_time": START_TIME,
            "end_time": END_TIME,
            "model": "dutch_auction",
        },
    },
}


@pytest.fixture(autouse=True)
def sale_configs(tmp_path, monkeypatch):
    """Writes sale configs to a temporary directory and loads them."""
    monkeypatch.setattr(config, "SALE_CONFIG_DIR", str(tmp_path))
    for sale_config in (MAIN_SALE_CONFIG, AUCTION_SALE_CONFIG):
        with open(tmp_path / f"{sale_config['sale']['sale_id']}.json", "w") as f:
            json.dump(sale_config, f, indent=2)
    # An invalid file is skipped rather than failing the load
    (tmp_path / "broken_sale.json").write_text("{not json")

    sale_manager.tokens_sold.clear()
    sale_manager.clear_sale_cache()
    sale_manager.sale_data = sale_manager.load_sales_from_config_files()
    assert set(sale_manager.sale_data) == {"main_sale", "auction_sale"}
    return tmp_path


@pytest.fixture
def mock_context():
    return MagicMock()


# =============================================================================
# SALE MANAGER
# =============================================================================

def test_tokens_sold_resume_from_stored_supply():
    assert sale_manager.get_tokens_sold("main_sale") == 50 * ONE
    assert sale_manager.get_tokens_sold("auction_sale") == 0


def test_record_purchase_advances_counter():
    price = sale_manager.record_purchase("main_sale", 10 * ONE)
    assert sale_manager.get_tokens_sold("main_sale") == 60 * ONE
    assert price == 6_400_000_000_000_000_000


def test_failed_pricing_leaves_counter_untouched():
    # The auction floor is below the allowed band once the window closes
    with pytest.raises(PriceExceedsLimitError):
        sale_manager.record_purchase("auction_sale", ONE, END_TIME)
    assert sale_manager.get_tokens_sold("auction_sale") == 0


def test_unknown_sale():
    with pytest.raises(SaleNotFoundError):
        sale_manager.quote_price("missing_sale")


def test_add_or_update_sale_persists(sale_configs):
    new_config = json.loads(json.dumps(MAIN_SALE_CONFIG))
    new_config["sale"]["sale_id"] = "new_sale"
    assert sale_manager.add_or_update_sale(SaleConfigModel.model_validate(new_config))
    assert (sale_configs / "new_sale.json").exists()
    assert "new_sale" in sale_manager.load_sales_from_config_files()


# =============================================================================
# SERVER TOOLS
# =============================================================================

@pytest.mark.asyncio
async def test_get_sale_info(mock_context):
    result_json = await server.get_sale_info(context=mock_context, sale_id="main_sale")
    expected_info = sale_manager.sale_data["main_sale"].model_dump(mode="json")
    assert json.loads(result_json) == expected_info


@pytest.mark.asyncio
async def test_get_sale_info_not_found(mock_context):
    result = await server.get_sale_info(context=mock_context, sale_id="missing_sale")
    assert result == "Sale with id missing_sale not found."


@pytest.mark.asyncio
async def test_get_current_price(mock_context):
    result = json.loads(await server.get_current_price(context=mock_context, sale_id="main_sale", current_time=None))
    assert result["current_price"] == 5_500_000_000_000_000_000
    assert result["next_tier_price"] == 6_400_000_000_000_000_000
    assert result["change_percentage"] == 1636


@pytest.mark.asyncio
async def test_get_current_price_dutch_auction(mock_context):
    result = json.loads(await server.get_current_price(
        context=mock_context, sale_id="auction_sale", current_time=START_TIME + 100))
    assert result["current_price"] == 9_050_000_000_000_000_000


@pytest.mark.asyncio
async def test_get_current_price_out_of_bounds(mock_context):
    result = await server.get_current_price(context=mock_context, sale_id="auction_sale", current_time=END_TIME)
    assert result == "Error calculating price: PriceExceedsLimitError"


@pytest.mark.asyncio
async def test_get_tiered_price(mock_context):
    result = json.loads(await server.get_tiered_price(context=mock_context, sale_id="main_sale"))
    assert result == {"price": 2 * ONE, "tier_index": 1}


@pytest.mark.asyncio
async def test_get_bonding_curve_price(mock_context):
    curve_json = json.dumps({
        "reserve_ratio": 5000,
        "initial_reserve": 1000 * ONE,
        "current_reserve": 1000 * ONE,
        "total_supply": 10_000 * ONE,
        "current_supply": 0,
    })
    result = json.loads(await server.get_bonding_curve_price(
        context=mock_context, curve_json=curve_json, purchase_amount=1000 * ONE))
    assert result == {"price": 2 * ONE}

    empty_reserve = json.dumps({"reserve_ratio": 5000, "current_reserve": 0})
    result = await server.get_bonding_curve_price(context=mock_context, curve_json=empty_reserve, purchase_amount=0)
    assert result == "Error calculating bonding curve price: InvalidParametersError"


@pytest.mark.asyncio
async def test_get_price_impact(mock_context):
    result = json.loads(await server.get_price_impact(
        context=mock_context, current_price=ONE, purchase_amount=1000, total_liquidity=10_000, impact_factor=5000))
    assert result == {"new_price": 1_050_000_000_000_000_000, "impact": 50_000_000_000_000_000}

    result = await server.get_price_impact(
        context=mock_context, current_price=ONE, purchase_amount=1000, total_liquidity=0, impact_factor=5000)
    assert result == "Error calculating price impact: InsufficientLiquidityError"


@pytest.mark.asyncio
async def test_get_average_price(mock_context):
    result = json.loads(await server.get_average_price(
        context=mock_context, sale_id="main_sale", start_amount=0, end_amount=100 * ONE, steps=10, current_time=None))
    assert result == {"average_price": 5_500_000_000_000_000_000}


@pytest.mark.asyncio
async def test_get_average_price_rejects_too_many_steps(mock_context):
    result = await server.get_average_price(
        context=mock_context, sale_id="main_sale", start_amount=0, end_amount=100 * ONE,
        steps=config.MAX_AVERAGE_PRICE_STEPS + 1, current_time=None)
    assert result.startswith("Error: Steps must be between 1 and")


@pytest.mark.asyncio
async def test_get_tokens_for_payment(mock_context):
    # 55 USDC (6 decimals) at $1 buys 10 tokens at $5.50
    result = json.loads(await server.get_tokens_for_payment(
        context=mock_context, sale_id="main_sale", payment_amount=55_000_000,
        payment_token_price=ONE, payment_decimals=6, current_time=None))
    assert result == {"token_price": 5_500_000_000_000_000_000, "tokens": 10 * ONE}


@pytest.mark.asyncio
async def test_record_purchase(mock_context):
    result = await server.record_purchase(context=mock_context, sale_id="main_sale", amount=10 * ONE, current_time=None)
    assert result == "Recorded purchase of 10.000000 MST. Total sold: 60.000000 MST. New price: 6.400000"
    assert sale_manager.get_tokens_sold("main_sale") == 60 * ONE


@pytest.mark.asyncio
async def test_record_purchase_rejects_invalid_amount(mock_context):
    result = await server.record_purchase(context=mock_context, sale_id="main_sale", amount=-5, current_time=None)
    assert result == "Error: Amount must be a non-negative integer"
    assert sale_manager.get_tokens_sold("main_sale") == 50 * ONE


@pytest.mark.asyncio
async def test_create_sale(mock_context, sale_configs):
    new_config = json.loads(json.dumps(AUCTION_SALE_CONFIG))
    new_config["sale"]["sale_id"] = "second_auction"
    new_config["sale"]["pricing"]["final_price"] = 2 * ONE
    result = await server.create_sale(context=mock_context, config_json=json.dumps(new_config))
    assert result == "Sale 'second_auction' created/updated successfully."
    assert (sale_configs / "second_auction.json").exists()
    assert sale_manager.get_sale("second_auction") is not None


@pytest.mark.asyncio
async def test_create_sale_rejects_invalid_pricing(mock_context):
    bad_config = json.loads(json.dumps(AUCTION_SALE_CONFIG))
    bad_config["sale"]["sale_id"] = "bad_auction"
    bad_config["sale"]["pricing"]["final_price"] = 20 * ONE
    result = await server.create_sale(context=mock_context, config_json=json.dumps(bad_config))
    assert result == "Error: Price configuration is invalid for the selected pricing model"
    assert sale_manager.get_sale("bad_auction") is None


@pytest.mark.asyncio
async def test_create_sale_rejects_bad_json(mock_context):
    result = await server.create_sale(context=mock_context, config_json="{oops")
    assert result == "Error: Invalid JSON format provided. Please check your JSON syntax."
