from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, Literal

class RawHolding(BaseModel):
    source: str
    symbol: str
    quantity: float
    price_usd: Optional[float] = None
    wallet_id: Optional[str] = None
    asset_key: Optional[str] = None

class PerpPosition(BaseModel):
    coin: str
    size: float
    wallet_id: Optional[str] = None
    address: Optional[str] = None
    entry_price: Optional[float] = None
    position_value: Optional[float] = None
    unrealized_pnl: Optional[float] = None

class CalculateRequest(BaseModel):
    holdings: list[RawHolding] = Field(default_factory=list)
    perp_positions: list[PerpPosition] = Field(default_factory=list)
    prices: dict[str, Optional[float]] = Field(default_factory=dict)

class ManualAssetIn(BaseModel):
    """Wire shape of a manual asset. ``value_aud`` is the amount in ``currency``."""
    model_config = ConfigDict(populate_by_name=True)
    type: str
    name: str
    native_amount: float = Field(default=0.0, alias="value_aud")
    currency: Literal['AUD', 'USD', 'ETH'] = 'AUD'
    quantity: Optional[float] = None
    notes: Optional[str] = None
    investment_date: Optional[str] = None
    investment_amount: Optional[float] = None
    investment_valuation: Optional[float] = None
    tradfi_system: bool = False
    exposure_type: Optional[str] = None

class SettingsUpdate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)
    fx_usd_aud: Optional[float] = Field(default=None, alias="fxUsdAud")
    eth_price_usd: Optional[float] = Field(default=None, alias="ethPriceUsd")
    monthly_burn_aud: Optional[float] = Field(default=None, alias="monthlyBurnAud")
    monthly_income_aud: Optional[float] = Field(default=None, alias="monthlyIncomeAud")
    haircut_immediate: Optional[float] = Field(default=None, alias="haircutImmediate")
    haircut_fast: Optional[float] = Field(default=None, alias="haircutFast")
    haircut_slow: Optional[float] = Field(default=None, alias="haircutSlow")
    stablecoins: Optional[list[str]] = None
    major_tokens: Optional[list[str]] = Field(default=None, alias="majorTokens")
    sol_min_value_aud: Optional[float] = Field(default=None, alias="solMinValueAud")

class BriefRequest(BaseModel):
    type: Literal['weekly', 'deep-dive'] = 'weekly'

class ImportedSnapshot(BaseModel):
    model_config = ConfigDict(populate_by_name=True)
    date: str
    total_aud: float = Field(alias="totalAud")
    fx_usd_aud: Optional[float] = Field(default=None, alias="fxUsdAud")
    id: Optional[str] = None

class ImportRequest(BaseModel):
    snapshots: list[ImportedSnapshot]
