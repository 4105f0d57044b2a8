"""
Fixed-Point Math Core

Safe unsigned arithmetic over 1e18 fixed-point integers, used by every pricing curve.

Python integers never wrap, so the checks below reproduce the behaviour of a 256-bit
unsigned machine word: results that would not fit raise MathOverflowError, unsigned
subtraction below zero raises NegativeResultError and division by zero raises
DivisionByZeroError. All functions are pure and never touch shared state.

Representations:
- Fixed point: PRECISION (10**18) is 1.0
- Basis points: BASIS_POINTS (10_000) is 100%
- Percentages: PERCENTAGE_BASE (100) is 100%

Approximations:
- natural_log reduces its argument by powers of two into [1, 2), anchors on 1 or 2,
  whichever is nearer, and sums ten terms of the ln(1 + d) series. The absolute error
  stays below 5e-5 (real units).
- calculate_exponential_price uses the second-order expansion 1 + rx + (rx)^2 / 2.
- sigmoid_fraction is a rational approximation, not 1 / (1 + e^-z).
"""
from typing import List, Sequence

from mcp_token_pricing.errors import (
    DivisionByZeroError,
    InvalidInputError,
    MathOverflowError,
    NegativeResultError,
)

PRECISION = 10**18
BASIS_POINTS = 10_000
PERCENTAGE_BASE = 100
TOKEN_DECIMALS = 18
UINT256_MAX = 2**256 - 1

LN2 = 693_147_180_559_945_309  # ln(2) in fixed point
LN_SERIES_TERMS = 10


def _require_uint(value: int, name: str) -> None:
    if not isinstance(value, int) or value < 0:
        raise InvalidInputError(f"{name} must be a non-negative integer, got {value!r}")


def _div_toward_zero(a: int, b: int) -> int:
    """Signed integer division truncating toward zero."""
    quotient = abs(a) // b
    return quotient if a >= 0 else -quotient


# --- Safe Arithmetic ---

def safe_add(a: int, b: int) -> int:
    _require_uint(a, "a")
    _require_uint(b, "b")
    c = a + b
    if c > UINT256_MAX:
        raise MathOverflowError(f"Addition overflow: {a} + {b}")
    return c


def safe_sub(a: int, b: int) -> int:
    _require_uint(a, "a")
    _require_uint(b, "b")
    if b > a:
        raise NegativeResultError(f"Subtraction would be negative: {a} - {b}")
    return a - b


def safe_mul(a: int, b: int) -> int:
    """Multiply, detecting overflow by dividing the wrapped product back."""
    _require_uint(a, "a")
    _require_uint(b, "b")
    if a == 0:
        return 0
    c = (a * b) & UINT256_MAX
    if c // a != b:
        raise MathOverflowError(f"Multiplication overflow: {a} * {b}")
    return c


def safe_div(a: int, b: int) -> int:
    _require_uint(a, "a")
    _require_uint(b, "b")
    if b == 0:
        raise DivisionByZeroError(f"Division by zero: {a} / 0")
    return a // b


def safe_mod(a: int, b: int) -> int:
    _require_uint(a, "a")
    _require_uint(b, "b")
    if b == 0:
        raise DivisionByZeroError(f"Modulo by zero: {a} % 0")
    return a % b


def mul_div(a: int, b: int, d: int) -> int:
    """Computes a * b / d, rounding down, with overflow and zero checks."""
    return safe_div(safe_mul(a, b), d)


# --- Percentages ---

def calculate_percentage(amount: int, percentage: int) -> int:
    if amount == 0 or percentage == 0:
        return 0
    return mul_div(amount, percentage, PERCENTAGE_BASE)


def calculate_basis_points(amount: int, basis_points: int) -> int:
    return mul_div(amount, basis_points, BASIS_POINTS)


# --- Roots, Powers, Logarithms ---

def integer_sqrt(x: int) -> int:
    """Floor square root via Newton's method."""
    _require_uint(x, "x")
    if x == 0:
        return 0
    result = x
    k = (x + 1) // 2
    while k < result:
        result = k
        k = (x // k + k) // 2
    return result


def fast_pow(base: int, exponent: int) -> int:
    """Integer exponentiation by squaring. fast_pow(x, 0) == 1."""
    _require_uint(base, "base")
    _require_uint(exponent, "exponent")
    result = 1
    while exponent > 0:
        if exponent & 1:
            result = safe_mul(result, base)
        exponent >>= 1
        if exponent:
            base = safe_mul(base, base)
    return result


def natural_log(x: int) -> int:
    """
    Approximates ln(x) for a fixed-point x.

    Args:
        x: A positive 1e18 fixed-point value.

    Returns:
        ln(x) in 1e18 fixed point. The result is signed: values below 1.0 have a
        negative logarithm.

    Raises:
        InvalidInputError: If x is not a positive integer.
    """
    if not isinstance(x, int) or x <= 0:
        raise InvalidInputError(f"Logarithm undefined for {x!r}")
    if x == PRECISION:
        return 0

    # Range-reduce into [1, 2): x = y * 2^shift
    shift = 0
    y = x
    while y >= 2 * PRECISION:
        y //= 2
        shift += 1
    while y < PRECISION:
        y *= 2
        shift -= 1

    # Anchor on 2 for y >= 1.5 so |delta| <= 0.5 on either side
    if 2 * y >= 3 * PRECISION:
        anchor_log = LN2
        delta = _div_toward_zero(y - 2 * PRECISION, 2)
    else:
        anchor_log = 0
        delta = y - PRECISION

    series = 0
    term = delta
    for n in range(1, LN_SERIES_TERMS + 1):
        if n % 2:
            series += _div_toward_zero(term, n)
        else:
            series -= _div_toward_zero(term, n)
        term = _div_toward_zero(term * delta, PRECISION)

    return shift * LN2 + anchor_log + series


def sigmoid_fraction(z: int) -> int:
    """
    Rational sigmoid of a signed fixed-point z, in [0, PRECISION].

    z >= 0 uses 1 - 1 / (2(1 + z)); z < 0 uses 1 / (2(1 - z)). Both give 0.5 at z == 0.
    """
    if z >= 0:
        return PRECISION - (PRECISION * PRECISION) // (2 * (PRECISION + z))
    return (PRECISION * PRECISION) // (2 * (PRECISION - z))


# --- Curve Building Blocks ---

def interpolate(start: int, end: int, numerator: int, denominator: int) -> int:
    """Moves from start toward end by numerator / denominator of the distance."""
    if end >= start:
        return safe_add(start, mul_div(end - start, numerator, denominator))
    return safe_sub(start, mul_div(start - end, numerator, denominator))


def calculate_dynamic_price(base_price: int, tokens_sold: int, total_supply: int, increase_rate_bps: int) -> int:
    """
    Base price raised pro rata by increase_rate_bps over the whole supply.

    Standalone helper for callers quoting a simple supply-driven price; none of the
    pricing models in pricing.py use it.
    """
    full_increase = calculate_basis_points(base_price, increase_rate_bps)
    return safe_add(base_price, mul_div(full_increase, tokens_sold, total_supply))


def calculate_exponential_price(base_price: int, progress: int, rate: int) -> int:
    """Second-order approximation of base_price * e^(rate * progress)."""
    rx = mul_div(rate, progress, PRECISION)
    factor = safe_add(safe_add(PRECISION, rx), mul_div(rx, rx, 2 * PRECISION))
    return mul_div(base_price, factor, PRECISION)


def calculate_logarithmic_price(initial_price: int, final_price: int, progress: int) -> int:
    """Moves from initial to final price along ln(1 + progress) / ln(2)."""
    if progress == 0:
        return initial_price
    fraction = mul_div(natural_log(safe_add(PRECISION, progress)), PRECISION, LN2)
    return interpolate(initial_price, final_price, fraction, PRECISION)


# --- Decimal Conversion ---

def normalize_decimals(amount: int, from_decimals: int, to_decimals: int) -> int:
    _require_uint(from_decimals, "from_decimals")
    _require_uint(to_decimals, "to_decimals")
    if from_decimals == to_decimals:
        return amount
    if from_decimals > to_decimals:
        return safe_div(amount, 10 ** (from_decimals - to_decimals))
    return safe_mul(amount, 10 ** (to_decimals - from_decimals))


def calculate_tokens_to_receive(payment_amount: int, payment_token_price: int, token_price: int,
                                payment_decimals: int) -> int:
    """
    Converts a payment into sale tokens.

    Args:
        payment_amount: Payment in the payment token's base units.
        payment_token_price: USD price of one payment token (1e18 fixed point).
        token_price: USD price of one sale token (1e18 fixed point).
        payment_decimals: Decimals of the payment token.

    Returns:
        Sale tokens in 18-decimal base units.
    """
    if token_price == 0:
        raise DivisionByZeroError("Token price cannot be zero")
    normalized = normalize_decimals(payment_amount, payment_decimals, TOKEN_DECIMALS)
    usd_value = mul_div(normalized, payment_token_price, PRECISION)
    return mul_div(usd_value, PRECISION, token_price)


def calculate_payment_amount(token_amount: int, payment_token_price: int, token_price: int,
                             payment_decimals: int) -> int:
    """Payment (in payment decimals) needed to buy token_amount sale tokens."""
    if payment_token_price == 0:
        raise DivisionByZeroError("Payment token price cannot be zero")
    usd_value = mul_div(token_amount, token_price, PRECISION)
    payment = mul_div(usd_value, PRECISION, payment_token_price)
    return normalize_decimals(payment, TOKEN_DECIMALS, payment_decimals)


# --- Array Reductions ---

def _require_values(values: Sequence[int]) -> None:
    if not values:
        raise InvalidInputError("Input array cannot be empty")


def array_min(values: Sequence[int]) -> int:
    _require_values(values)
    return min(values)


def array_max(values: Sequence[int]) -> int:
    _require_values(values)
    return max(values)


def average(values: Sequence[int]) -> int:
    _require_values(values)
    total = 0
    for value in values:
        total = safe_add(total, value)
    return total // len(values)


def median(values: Sequence[int]) -> int:
    _require_values(values)
    ordered: List[int] = sorted(values)
    middle = len(ordered) // 2
    if len(ordered) % 2:
        return ordered[middle]
    return safe_add(ordered[middle - 1], ordered[middle]) // 2


def weighted_average(values: Sequence[int], weights: Sequence[int]) -> int:
    if len(values) != len(weights):
        raise InvalidInputError(f"Length mismatch: {len(values)} values, {len(weights)} weights")
    _require_values(values)
    weighted_sum = 0
    total_weight = 0
    for value, weight in zip(values, weights):
        weighted_sum = safe_add(weighted_sum, safe_mul(value, weight))
        total_weight = safe_add(total_weight, weight)
    if total_weight == 0:
        raise DivisionByZeroError("Total weight cannot be zero")
    return weighted_sum // total_weight
