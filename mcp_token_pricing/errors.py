"""
Custom Exception Classes for the Token Pricing Engine

This module defines the exception classes raised by the fixed-point math core and the
pricing model engine. Every pricing failure derives from PricingError so a sale manager
can treat any of them as fatal to the current price query, or catch a single kind when
it wants to recover (for example by falling back to a cached last-known price).

Exception Categories:
- Arithmetic Errors: overflow, negative unsigned results, division by zero
- Input Errors: malformed arguments and missing curve parameters
- Pricing Errors: unknown models, out-of-band prices, tier and liquidity problems
- Configuration Errors: invalid environment configuration
- Sale Errors: unknown sale identifiers in the sale manager

Usage:
    Functions fail fast on the first violated pre- or postcondition. No function in the
    engine catches these; the sale manager and the MCP server decide what to do with them.
"""


class PricingError(Exception):
    """Base class for every error raised while computing a price."""


class MathOverflowError(PricingError, ArithmeticError):
    """Raised when a result does not fit in an unsigned 256-bit integer."""


class NegativeResultError(PricingError, ArithmeticError):
    """Raised when an unsigned subtraction would go below zero."""


class DivisionByZeroError(PricingError, ZeroDivisionError):
    """Raised when dividing or taking a modulus by zero."""


class InvalidInputError(PricingError, ValueError):
    """Raised for malformed arguments, e.g. the logarithm of a non-positive value."""


class InvalidParametersError(PricingError, ValueError):
    """Raised when curve parameters are missing, zero or inconsistent."""


class InvalidPricingModelError(PricingError, ValueError):
    """Raised when a price config names a model the engine does not know."""


class PriceExceedsLimitError(PricingError, ValueError):
    """Raised when a computed price falls outside the 0.1x to 1000x band around the initial price."""


class InsufficientLiquidityError(PricingError, ValueError):
    """Raised when a price impact is requested against zero liquidity."""


class InvalidTierConfigError(PricingError, ValueError):
    """Raised when tiered pricing is requested with no tiers."""


class ConfigurationError(Exception):
    """Raised when there are configuration-related errors."""


class SaleNotFoundError(ValueError):
    """Raised when a sale id is not known to the sale manager."""
