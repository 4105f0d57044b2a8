"""
Pydantic Data Models and Validation Schemas

This module defines the data models consumed by the pricing engine and the sale manager.
All prices, supplies and ratios are unsigned integers in 1e18 fixed point ("1.0" is
10**18) unless a field says basis points ("1.0" is 10_000).

Key Components:
- PricingModel Enum: the eight continuous pricing curves
- TierType Enum: how a tier derives its price from its base price
- PriceConfig: curve configuration owned by the sale manager
- PriceTier: one step of a tiered price schedule
- BondingCurveConfig: constant-reserve-ratio curve state
- PriceInfo: display aggregate returned by get_price_info
- SaleConfigModel: a complete sale as stored in a JSON config file

Validation Scope:
- Schemas only enforce field types and non-negativity. Structural invariants of a
  PriceConfig (positive initial price, a valid time window, model parameter counts)
  are checked by pricing.validate_price_config, which reports instead of raising, so an
  invalid config can still be constructed, stored and inspected.
"""
from pydantic import BaseModel, Field
from typing import List, Optional
from enum import Enum


class PricingModel(str, Enum):
    linear = "linear"
    exponential = "exponential"
    logarithmic = "logarithmic"
    sigmoid = "sigmoid"
    dutch_auction = "dutch_auction"
    bonding_curve = "bonding_curve"
    time_weighted = "time_weighted"
    volume_weighted = "volume_weighted"


class TierType(str, Enum):
    fixed = "fixed"
    percentage_increase = "percentage_increase"
    exponential_increase = "exponential_increase"
    logarithmic_increase = "logarithmic_increase"


class PriceConfig(BaseModel):
    initial_price: int = Field(..., ge=0, description="Price at zero tokens sold (1e18 fixed point).")
    final_price: int = Field(0, ge=0, description="Target price at full supply or at the end of the window.")
    total_supply: int = Field(..., ge=0, description="Tokens available for sale (1e18 fixed point).")
    current_supply: int = Field(0, ge=0, description="Tokens sold when the config was last stored.")
    start_time: int = Field(0, ge=0, description="Sale start (Unix timestamp).")
    end_time: int = Field(0, ge=0, description="Sale end (Unix timestamp), 0 for open-ended sales.")
    model: PricingModel = PricingModel.linear
    parameters: List[int] = Field(default_factory=list, description="Model-specific tuning values.")


class PriceTier(BaseModel):
    threshold: int = Field(..., ge=0, description="Cumulative tokens sold covered by this tier.")
    price: int = Field(..., ge=0)
    price_increase: int = Field(0, ge=0, description="Increase applied by non-fixed tier types (basis points).")
    tier_type: TierType = TierType.fixed
    is_active: bool = True


class BondingCurveConfig(BaseModel):
    reserve_ratio: int = Field(..., ge=0, le=10_000, description="Reserve ratio in basis points.")
    initial_reserve: int = Field(0, ge=0)
    current_reserve: int = Field(..., ge=0)
    total_supply: int = Field(0, ge=0)
    current_supply: int = Field(0, ge=0)


class PriceInfo(BaseModel):
    current_price: int
    next_tier_price: int
    price_change: int
    change_percentage: int = Field(..., description="Change relative to the current price, in basis points.")


class TokenConfig(BaseModel):
    name: str
    symbol: str
    decimals: int = Field(18, ge=0, le=18)


class SaleConfig(BaseModel):
    sale_id: str
    pricing: PriceConfig
    tiers: List[PriceTier] = []
    bonding_curve: Optional[BondingCurveConfig] = None


class SaleConfigModel(BaseModel):
    token: TokenConfig
    sale: SaleConfig
    resources: Optional[list] = []
