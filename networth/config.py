import json
import sqlite3
from pathlib import Path

import structlog
from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load .env from repo root for local development and scripts.
ENV_PATH = Path(__file__).resolve().parents[1] / ".env"
load_dotenv(dotenv_path=ENV_PATH)

log = structlog.get_logger()


class Settings(BaseSettings):
    model_config = SettingsConfigDict(case_sensitive=True)
    db_path: str = Field(default="./data/networth.db", alias="DB_PATH")
    cache_db_path: str = Field(default="./data/cache.sqlite3", alias="CACHE_DB_PATH")
    price_cache_ttl_seconds: int = Field(default=300, alias="PRICE_CACHE_TTL_SECONDS")
    snapshot_min_interval_hours: float = Field(default=48.0, alias="SNAPSHOT_MIN_INTERVAL_HOURS")
    briefs_list_limit: int = Field(default=50, alias="BRIEFS_LIST_LIMIT")
    eth_fallback_price_usd: float = Field(default=3000.0, alias="ETH_FALLBACK_PRICE_USD")

settings = Settings()


class PortfolioSettings(BaseModel):
    """User-tunable portfolio settings.

    Accepts snake_case names and the camelCase keys stored by older
    dashboard builds (``fxUsdAud``, ``monthlyBurnAud``...).
    """
    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)

    fx_usd_aud: float = Field(default=1.50, gt=0, allow_inf_nan=False, alias="fxUsdAud")
    eth_price_usd: float | None = Field(default=None, gt=0, allow_inf_nan=False, alias="ethPriceUsd")
    monthly_burn_aud: float = Field(default=5000.0, ge=0, allow_inf_nan=False, alias="monthlyBurnAud")
    monthly_income_aud: float = Field(default=0.0, ge=0, allow_inf_nan=False, alias="monthlyIncomeAud")
    haircut_immediate: float = Field(default=0.0, ge=0, le=1, alias="haircutImmediate")
    haircut_fast: float = Field(default=0.10, ge=0, le=1, alias="haircutFast")
    haircut_slow: float = Field(default=0.40, ge=0, le=1, alias="haircutSlow")
    stablecoins: list[str] = Field(default_factory=lambda: ["USDC", "USDT", "DAI"])
    major_tokens: list[str] = Field(default_factory=lambda: ["ETH", "SOL", "BTC", "WBTC", "WETH"], alias="majorTokens")
    sol_min_value_aud: float = Field(default=20.0, ge=0, alias="solMinValueAud")

    def haircuts(self) -> dict:
        return {
            "IMMEDIATE": self.haircut_immediate,
            "FAST": self.haircut_fast,
            "SLOW": self.haircut_slow,
        }


DEFAULT_PORTFOLIO_SETTINGS = PortfolioSettings()


def resolve_settings(overrides: dict | None = None) -> PortfolioSettings:
    """Merge a partial override mapping over the defaults. None values are ignored."""
    if not overrides:
        return DEFAULT_PORTFOLIO_SETTINGS
    cleaned = {key: value for key, value in overrides.items() if value is not None}
    return PortfolioSettings.model_validate(cleaned)


def _field_name(key: str) -> str | None:
    """Map a stored or posted key (snake_case or camelCase) to its field name."""
    for name, field in PortfolioSettings.model_fields.items():
        if key == name or key == field.alias:
            return name
    return None


def load_portfolio_settings(conn: sqlite3.Connection) -> PortfolioSettings:
    rows = conn.execute("SELECT key, value FROM settings").fetchall()
    overrides = {}
    for key, raw in rows:
        name = _field_name(key)
        if name is None:
            continue
        # A row stored under the field name beats a legacy camelCase twin.
        if name in overrides and key != name:
            continue
        try:
            value = json.loads(raw)
        except (TypeError, json.JSONDecodeError):
            log.warning("settings_invalid_json", key=key)
            continue
        try:
            PortfolioSettings.model_validate({name: value})
        except ValidationError as e:
            log.warning("settings_invalid_value", key=key, err=str(e))
            continue
        overrides[name] = value
    return resolve_settings(overrides)


def save_portfolio_settings(conn: sqlite3.Connection, values: dict) -> PortfolioSettings:
    """Upsert known keys under their field names and drop camelCase twins."""
    normalized = {}
    for key, value in values.items():
        name = _field_name(key)
        if name is not None:
            normalized[name] = value
    # Raises ValidationError before anything is written.
    resolve_settings(normalized)
    cur = conn.cursor()
    for name, value in normalized.items():
        alias = PortfolioSettings.model_fields[name].alias
        if alias:
            cur.execute("DELETE FROM settings WHERE key=?", (alias,))
        cur.execute(
            """
            INSERT INTO settings(key, value) VALUES(?, ?)
            ON CONFLICT(key) DO UPDATE SET value=excluded.value
            """,
            (name, json.dumps(value)),
        )
    conn.commit()
    return load_portfolio_settings(conn)
