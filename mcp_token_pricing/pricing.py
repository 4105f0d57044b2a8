"""
Token Pricing Engine

This module computes the current unit price of a token sale from a PriceConfig and the
cumulative number of tokens sold (plus the current time for time-based models). Every
function is a pure function of its arguments: the sale manager owns the tokens-sold
counter and the cached price, and no state lives here.

Pricing Models Supported:
- Linear: straight-line interpolation from initial to final price over the supply
- Exponential: second-order approximation of initial * e^(r * progress)
- Logarithmic: initial to final price along ln(1 + progress)
- Sigmoid: S-shaped rational curve around a midpoint
- Dutch Auction: price decays linearly over the sale window
- Bonding Curve: reserve-ratio curve (Bancor-style)
- Time Weighted: linear price raised as the sale window elapses
- Volume Weighted: linear price raised with the sold share of the supply

Also provided:
- Tiered pricing over an ordered list of PriceTier thresholds
- Price impact (slippage) estimation
- Average price over a range of sold amounts by midpoint integration
- Structural validation of price configs and a display aggregate (PriceInfo)

Price Bounds:
    Every price returned by calculate_price lies in [initial_price / 10, initial_price * 1000].
    A price outside the band raises PriceExceedsLimitError; it is never clamped.
"""
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from mcp_token_pricing import config
from mcp_token_pricing.errors import (
    InsufficientLiquidityError,
    InvalidParametersError,
    InvalidPricingModelError,
    InvalidTierConfigError,
    PriceExceedsLimitError,
)
from mcp_token_pricing.math_lib import (
    BASIS_POINTS,
    PRECISION,
    calculate_basis_points,
    calculate_exponential_price,
    calculate_logarithmic_price,
    interpolate,
    mul_div,
    natural_log,
    safe_add,
    safe_mul,
    safe_sub,
    sigmoid_fraction,
)
from mcp_token_pricing.schemas import (
    BondingCurveConfig,
    PriceConfig,
    PriceInfo,
    PriceTier,
    PricingModel,
    TierType,
)
from mcp.server.fastmcp.utilities.logging import get_logger

logger = get_logger(__name__)

PRICE_FLOOR_DIVISOR = 10
PRICE_CEILING_MULTIPLIER = 1000
NEXT_PRICE_STEP_DIVISOR = 10

PriceCalculator = Callable[[PriceConfig, int, Optional[int]], int]


def progress_ratio(tokens_sold: int, total_supply: int) -> int:
    """tokens_sold / total_supply in fixed point."""
    return mul_div(tokens_sold, PRECISION, total_supply)


def _require_time(price_config: PriceConfig, current_time: Optional[int]) -> int:
    if current_time is None:
        raise InvalidParametersError(f"Pricing model '{price_config.model.value}' requires the current time.")
    if current_time < 0:
        raise InvalidParametersError(f"Current time cannot be negative: {current_time}")
    return current_time


# --- Model Calculators ---

def _linear_price(price_config: PriceConfig, tokens_sold: int, current_time: Optional[int]) -> int:
    return interpolate(price_config.initial_price, price_config.final_price, tokens_sold, price_config.total_supply)


def _exponential_price(price_config: PriceConfig, tokens_sold: int, current_time: Optional[int]) -> int:
    if not price_config.parameters:
        raise InvalidParametersError("Exponential pricing requires a growth rate parameter.")
    progress = progress_ratio(tokens_sold, price_config.total_supply)
    return calculate_exponential_price(price_config.initial_price, progress, price_config.parameters[0])


def _logarithmic_price(price_config: PriceConfig, tokens_sold: int, current_time: Optional[int]) -> int:
    if tokens_sold == 0:
        return price_config.initial_price
    progress = progress_ratio(tokens_sold, price_config.total_supply)
    return calculate_logarithmic_price(price_config.initial_price, price_config.final_price, progress)


def _sigmoid_price(price_config: PriceConfig, tokens_sold: int, current_time: Optional[int]) -> int:
    params = price_config.parameters
    if not params:
        raise InvalidParametersError("Sigmoid pricing requires a steepness parameter.")
    steepness = params[0]
    midpoint = params[1] if len(params) > 1 else config.DEFAULT_SIGMOID_MIDPOINT
    progress = progress_ratio(tokens_sold, price_config.total_supply)
    # Signed: negative below the midpoint
    z = steepness * (progress - midpoint)
    z = z // PRECISION if z >= 0 else -((-z) // PRECISION)
    return interpolate(price_config.initial_price, price_config.final_price, sigmoid_fraction(z), PRECISION)


def _dutch_auction_price(price_config: PriceConfig, tokens_sold: int, current_time: Optional[int]) -> int:
    now = _require_time(price_config, current_time)
    start, end = price_config.start_time, price_config.end_time
    if end <= start:
        raise InvalidParametersError("Dutch auction requires end_time after start_time.")
    if price_config.final_price >= price_config.initial_price:
        raise InvalidParametersError("Dutch auction requires final_price below initial_price.")
    if now <= start:
        return price_config.initial_price
    if now >= end:
        return price_config.final_price
    return interpolate(price_config.initial_price, price_config.final_price, now - start, end - start)


def _bonding_curve_price(price_config: PriceConfig, tokens_sold: int, current_time: Optional[int]) -> int:
    """
    Prices along a reserve-ratio curve seeded from the config.

    The curve starts with a virtual supply of total_supply backed by a reserve sized so the
    spot price is initial_price, and each sold token adds initial_price to the reserve.
    """
    ratio = price_config.parameters[0] if price_config.parameters else config.DEFAULT_RESERVE_RATIO_BPS
    if ratio == 0 or ratio > BASIS_POINTS:
        raise InvalidParametersError(f"Reserve ratio must be between 1 and {BASIS_POINTS} basis points, got {ratio}.")
    base_value = mul_div(price_config.initial_price, price_config.total_supply, PRECISION)
    initial_reserve = mul_div(base_value, ratio, BASIS_POINTS)
    curve = BondingCurveConfig(
        reserve_ratio=ratio,
        initial_reserve=initial_reserve,
        current_reserve=safe_add(initial_reserve, mul_div(tokens_sold, price_config.initial_price, PRECISION)),
        total_supply=price_config.total_supply,
        current_supply=price_config.total_supply,
    )
    return calculate_bonding_curve_price(curve, tokens_sold)


def _time_weighted_price(price_config: PriceConfig, tokens_sold: int, current_time: Optional[int]) -> int:
    now = _require_time(price_config, current_time)
    start, end = price_config.start_time, price_config.end_time
    if end == 0 or end <= start:
        raise InvalidParametersError("Time-weighted pricing requires a sale window.")
    base_price = _linear_price(price_config, tokens_sold, current_time)
    elapsed = min(max(now - start, 0), end - start)
    time_weight = mul_div(elapsed, PRECISION, end - start)
    multiplier = price_config.parameters[0] if price_config.parameters else config.DEFAULT_TIME_MULTIPLIER
    adjustment = mul_div(mul_div(base_price, time_weight, PRECISION), multiplier, PRECISION)
    return safe_add(base_price, adjustment)


def _volume_weighted_price(price_config: PriceConfig, tokens_sold: int, current_time: Optional[int]) -> int:
    base_price = _linear_price(price_config, tokens_sold, current_time)
    weight = price_config.parameters[0] if price_config.parameters else config.DEFAULT_VOLUME_WEIGHT
    volume_ratio = progress_ratio(tokens_sold, price_config.total_supply)
    factor = safe_add(PRECISION, mul_div(volume_ratio, weight, PRECISION))
    return mul_div(base_price, factor, PRECISION)


_MODEL_CALCULATORS: Dict[PricingModel, PriceCalculator] = {
    PricingModel.linear: _linear_price,
    PricingModel.exponential: _exponential_price,
    PricingModel.logarithmic: _logarithmic_price,
    PricingModel.sigmoid: _sigmoid_price,
    PricingModel.dutch_auction: _dutch_auction_price,
    PricingModel.bonding_curve: _bonding_curve_price,
    PricingModel.time_weighted: _time_weighted_price,
    PricingModel.volume_weighted: _volume_weighted_price,
}

_unhandled_models = set(PricingModel) - set(_MODEL_CALCULATORS)
if _unhandled_models:
    raise RuntimeError(f"No price calculator registered for: {sorted(m.value for m in _unhandled_models)}")


def _check_price_bounds(price: int, initial_price: int) -> None:
    floor = initial_price // PRICE_FLOOR_DIVISOR
    ceiling = safe_mul(initial_price, PRICE_CEILING_MULTIPLIER)
    if price < floor or price > ceiling:
        logger.warning(f"Price {price} outside bounds [{floor}, {ceiling}] for initial price {initial_price}")
        raise PriceExceedsLimitError(f"Price {price} outside allowed range [{floor}, {ceiling}].")


# --- Public API ---

def calculate_price(price_config: PriceConfig, tokens_sold: int, current_time: Optional[int] = None) -> int:
    """
    Calculates the unit price for the given cumulative amount sold.

    Args:
        price_config: Curve configuration owned by the caller.
        tokens_sold: Cumulative tokens sold (1e18 fixed point).
        current_time: Unix timestamp; required by dutch_auction and time_weighted.

    Returns:
        The unit price in 1e18 fixed point.

    Raises:
        InvalidPricingModelError: If the model is not one of PricingModel.
        InvalidParametersError: If the config lacks what the model needs.
        PriceExceedsLimitError: If the price leaves the 0.1x to 1000x band.
    """
    calculator = _MODEL_CALCULATORS.get(price_config.model)
    if calculator is None:
        raise InvalidPricingModelError(f"Invalid pricing model '{price_config.model}'.")
    if price_config.initial_price == 0 or price_config.total_supply == 0:
        raise InvalidParametersError("initial_price and total_supply must be positive.")

    price = calculator(price_config, tokens_sold, current_time)
    _check_price_bounds(price, price_config.initial_price)
    logger.debug(f"Price for model '{price_config.model.value}' at {tokens_sold} sold: {price}")
    return price


def calculate_bonding_curve_price(curve: BondingCurveConfig, purchase_amount: int) -> int:
    """
    Spot price of a reserve-ratio curve after purchase_amount more tokens.

    price = reserve / ((supply + purchase) * reserve_ratio). An empty supply is priced as
    one whole token so the first purchase has a finite price.
    """
    if curve.reserve_ratio == 0 or curve.current_reserve == 0:
        raise InvalidParametersError("Bonding curve requires a positive reserve ratio and reserve.")
    supply = safe_add(curve.current_supply, purchase_amount)
    if supply == 0:
        supply = PRECISION
    reserve_per_token = mul_div(curve.current_reserve, PRECISION, supply)
    return mul_div(reserve_per_token, BASIS_POINTS, curve.reserve_ratio)


def _tier_price(tier: PriceTier, tier_index: int) -> int:
    if tier.tier_type == TierType.fixed:
        return tier.price
    if tier.tier_type == TierType.percentage_increase:
        return safe_add(tier.price, calculate_basis_points(tier.price, tier.price_increase))
    if tier.tier_type == TierType.exponential_increase:
        # Compounded one tier at a time
        price = tier.price
        for _ in range(tier_index):
            price = mul_div(price, BASIS_POINTS + tier.price_increase, BASIS_POINTS)
        return price
    if tier.tier_type == TierType.logarithmic_increase:
        bump = calculate_basis_points(tier.price, tier.price_increase)
        log_factor = natural_log((tier_index + 1) * PRECISION)
        return safe_add(tier.price, mul_div(bump, log_factor, PRECISION))
    raise InvalidTierConfigError(f"Invalid tier type '{tier.tier_type}'.")


def calculate_tiered_price(tiers: Sequence[PriceTier], tokens_sold: int) -> Tuple[int, int]:
    """
    Resolves the active tier for tokens_sold and its price.

    The first active tier whose threshold covers tokens_sold wins; when none does, the
    last tier is used.

    Returns:
        (price, tier_index)
    """
    if not tiers:
        raise InvalidTierConfigError("Tier list cannot be empty.")

    tier_index = len(tiers) - 1
    for index, tier in enumerate(tiers):
        if tier.is_active and tier.threshold >= tokens_sold:
            tier_index = index
            break

    price = _tier_price(tiers[tier_index], tier_index)
    logger.debug(f"Tier {tier_index} selected for {tokens_sold} sold: {price}")
    return price, tier_index


def calculate_price_impact(current_price: int, purchase_amount: int, total_liquidity: int,
                           impact_factor: int) -> Tuple[int, int]:
    """
    Estimates slippage of a purchase against available liquidity.

    Args:
        impact_factor: Share of the purchase/liquidity ratio passed into the price (basis points).

    Returns:
        (new_price, impact)
    """
    if total_liquidity == 0:
        raise InsufficientLiquidityError("Total liquidity cannot be zero.")
    liquidity_share = mul_div(purchase_amount, BASIS_POINTS, total_liquidity)
    impact = calculate_basis_points(calculate_basis_points(current_price, liquidity_share), impact_factor)
    return safe_add(current_price, impact), impact


def calculate_average_price(price_config: PriceConfig, start_amount: int, end_amount: int, steps: int,
                            current_time: Optional[int] = None) -> int:
    """Average of calculate_price over [start_amount, end_amount] by the midpoint rule."""
    if steps == 0 or end_amount <= start_amount:
        raise InvalidParametersError("Average price needs steps > 0 and end_amount > start_amount.")
    step_size = (end_amount - start_amount) // steps
    if step_size == 0:
        raise InvalidParametersError(f"Range {start_amount}..{end_amount} is too small for {steps} steps.")

    total = 0
    for step in range(steps):
        midpoint = start_amount + step * step_size + step_size // 2
        total = safe_add(total, calculate_price(price_config, midpoint, current_time))
    return total // steps


def validate_price_config(price_config: PriceConfig) -> bool:
    """Structural validation only; reports problems instead of raising."""
    problems: List[str] = []
    if price_config.initial_price == 0:
        problems.append("initial_price must be positive")
    if price_config.total_supply == 0:
        problems.append("total_supply must be positive")
    if price_config.end_time != 0 and price_config.end_time <= price_config.start_time:
        problems.append("end_time must be after start_time")

    model = price_config.model
    if model in (PricingModel.exponential, PricingModel.sigmoid) and not price_config.parameters:
        problems.append(f"{model.value} requires at least one parameter")
    if model == PricingModel.dutch_auction:
        if price_config.final_price >= price_config.initial_price:
            problems.append("dutch_auction requires final_price below initial_price")
        if price_config.end_time == 0:
            problems.append("dutch_auction requires end_time")
    if model == PricingModel.time_weighted and price_config.end_time == 0:
        problems.append("time_weighted requires end_time")
    if model == PricingModel.bonding_curve and price_config.parameters:
        if not 0 < price_config.parameters[0] <= BASIS_POINTS:
            problems.append("bonding_curve reserve ratio must be 1-10000 basis points")

    if problems:
        logger.debug(f"Invalid price config: {'; '.join(problems)}")
        return False
    return True


def get_price_info(price_config: PriceConfig, tokens_sold: int, current_time: Optional[int] = None) -> PriceInfo:
    """Current price alongside the price one tenth of the supply further on."""
    current_price = calculate_price(price_config, tokens_sold, current_time)
    next_amount = min(tokens_sold + price_config.total_supply // NEXT_PRICE_STEP_DIVISOR, price_config.total_supply)
    next_price = calculate_price(price_config, next_amount, current_time)

    price_change = safe_sub(next_price, current_price) if next_price > current_price else 0
    change_percentage = mul_div(price_change, BASIS_POINTS, current_price) if current_price else 0
    return PriceInfo(
        current_price=current_price,
        next_tier_price=next_price,
        price_change=price_change,
        change_percentage=change_percentage,
    )
