"""Liquidity tier and exposure classification.

Each rule path is an ordered table of ``(name, predicate, result)`` entries;
the first matching predicate wins. Every function here is total: unknown
symbols and sources fall through to the table default.
"""
from __future__ import annotations

from ..config import DEFAULT_PORTFOLIO_SETTINGS

IMMEDIATE = "IMMEDIATE"
FAST = "FAST"
SLOW = "SLOW"
LIQUIDITY_TIERS = (IMMEDIATE, FAST, SLOW)

SOURCES = (
    "EVM", "SOL", "HYPE", "BANK", "CASH", "COLLECTIBLE", "REAL_ESTATE", "EQUITIES", "NFT",
    "MISC", "AIRDROP", "PRIVATE_INVESTMENT", "CAR", "GIFTCARD", "SUPERANNUATION", "CRYPTO",
    "STABLECOIN",
)
CHAIN_SOURCES = ("EVM", "SOL", "HYPE")

EXPOSURE_TYPES = (
    "BTC", "ETH", "JLP", "STABLECOIN", "CRYPTO", "EQUITY", "CASH", "COLLECTIBLE",
    "REAL_ESTATE", "NFT", "CAR", "OTHERS",
)
DEFAULT_EXPOSURE = "CRYPTO"

BTC_SYMBOLS = {"BTC", "WBTC"}
ETH_SYMBOLS = {"ETH", "WETH"}
KNOWN_STABLECOINS = {"USDC", "USDT", "DAI", "FRAX", "BUSD", "TUSD", "USDP", "GUSD"}
MAJOR_CRYPTO = {"SOL", "BNB", "MATIC", "AVAX", "HYPE"}


def _text(val) -> str:
    return "" if val is None else str(val)


# Market holdings: keyed off the raw symbol, case-sensitive against settings lists.
LIQUIDITY_RULES = [
    ("stablecoin", lambda symbol, settings: symbol in settings.stablecoins, IMMEDIATE),
    ("major_token", lambda symbol, settings: symbol in settings.major_tokens, FAST),
]

# Manual assets: keyed off the asset type.
MANUAL_LIQUIDITY_RULES = [
    ("cash_like", lambda asset_type: asset_type in {"BANK", "CASH", "STABLECOIN", "GIFTCARD"}, IMMEDIATE),
    ("crypto", lambda asset_type: asset_type == "CRYPTO", FAST),
    ("locked_or_physical", lambda asset_type: asset_type in {
        "SUPERANNUATION", "CAR", "COLLECTIBLE", "NFT", "REAL_ESTATE", "MISC",
    }, SLOW),
]


def _stablecoin_symbol(symbol: str, source: str, settings) -> bool:
    configured = {s.upper() for s in getattr(settings, "stablecoins", None) or []}
    return symbol in KNOWN_STABLECOINS or symbol in configured


def _source_is(*sources):
    wanted = set(sources)
    return lambda symbol, source, settings: source in wanted


# Symbol checks first, specific before generic, then source-driven rules.
# "stablecoin" matches KNOWN_STABLECOINS plus the configured settings.stablecoins.
EXPOSURE_RULES = [
    ("btc", lambda symbol, source, settings: symbol in BTC_SYMBOLS, "BTC"),
    ("eth", lambda symbol, source, settings: symbol in ETH_SYMBOLS, "ETH"),
    ("jlp", lambda symbol, source, settings: symbol == "JLP", "JLP"),
    ("stablecoin", _stablecoin_symbol, "STABLECOIN"),
    ("cash", _source_is("BANK", "CASH", "GIFTCARD"), "CASH"),
    ("real_estate", _source_is("REAL_ESTATE"), "REAL_ESTATE"),
    ("nft", _source_is("NFT"), "NFT"),
    ("car", _source_is("CAR"), "CAR"),
    ("collectible", _source_is("COLLECTIBLE"), "COLLECTIBLE"),
    ("equity", _source_is("EQUITIES", "SUPERANNUATION"), "EQUITY"),
    ("misc", _source_is("MISC"), "OTHERS"),
    ("major_crypto", lambda symbol, source, settings: symbol in MAJOR_CRYPTO, "CRYPTO"),
    ("stablecoin_source", _source_is("STABLECOIN"), "STABLECOIN"),
    ("chain", _source_is("EVM", "SOL", "HYPE", "CRYPTO"), "CRYPTO"),
]


def classify_liquidity(symbol, settings) -> str:
    symbol = _text(symbol)
    settings = settings or DEFAULT_PORTFOLIO_SETTINGS
    for _name, predicate, tier in LIQUIDITY_RULES:
        if predicate(symbol, settings):
            return tier
    return SLOW


def classify_manual_liquidity(asset_type) -> str:
    asset_type = _text(asset_type).upper()
    for _name, predicate, tier in MANUAL_LIQUIDITY_RULES:
        if predicate(asset_type):
            return tier
    return SLOW


def classify_hype_liquidity(symbol) -> str:
    # Hyperliquid spot balances are exchange-held, so anything but USDC is FAST.
    return IMMEDIATE if _text(symbol).upper() == "USDC" else FAST


def exposure_rule(symbol, source, settings=None) -> str | None:
    """Name of the first exposure rule that matches, or None for the default."""
    symbol = _text(symbol).upper()
    source = _text(source).upper()
    for name, predicate, _exposure in EXPOSURE_RULES:
        if predicate(symbol, source, settings):
            return name
    return None


def classify_exposure(symbol, source, settings=None) -> str:
    symbol = _text(symbol).upper()
    source = _text(source).upper()
    for _name, predicate, exposure in EXPOSURE_RULES:
        if predicate(symbol, source, settings):
            return exposure
    return DEFAULT_EXPOSURE
