"""Configuration loader: reads config.yaml, interpolates env vars, validates."""
from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

logger = logging.getLogger(__name__)

PORG_PROGRAM_ID = "Porg111111111111111111111111111111111111111"
WORMHOLE_TOKEN_BRIDGE_ID = "wormDTUJ6AWPNvk59vGQbDvGJmqbDTdgWgAqcLBCgUb"
TOKEN_PROGRAM_ID = "TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA"
MAX_FEE_BPS = 500

# Wormhole chain ids of the supported bridge destinations.
DEFAULT_BRIDGE_CHAINS: dict[str, int] = {
    "solana": 1,
    "ethereum": 2,
    "bsc": 4,
    "polygon": 5,
    "avalanche": 6,
    "arbitrum": 23,
    "optimism": 24,
}

CHAIN_NAMES: dict[str, str] = {
    "solana": "Solana",
    "ethereum": "Ethereum",
    "bsc": "Binance Smart Chain",
    "polygon": "Polygon",
    "avalanche": "Avalanche",
    "arbitrum": "Arbitrum",
    "optimism": "Optimism",
}

# ---------------------------------------------------------------------------
# Frozen config dataclasses
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ChainConfig:
    rpc_endpoints: tuple[str, ...] = ("https://api.mainnet-beta.solana.com",)
    rpc_timeout: int = 30
    commitment: str = "confirmed"


@dataclass(frozen=True)
class CacheConfig:
    """Freshness windows in seconds; ``None`` means no expiry."""

    metadata_ttl: int | None = None
    price_ttl: int | None = 300
    portfolio_ttl: int | None = 300
    origin_timeout: float = 10.0
    price_history_limit: int = 10
    portfolio_retention_hours: int = 24


@dataclass(frozen=True)
class PriceFeedConfig:
    url: str = "https://price-api.example.com/v1/price"
    timeout: int = 10
    fallback_price: float = 1.0


@dataclass(frozen=True)
class RegistryConfig:
    url: str = "https://token-list-api.solana.com/v1/tokens"
    timeout: int = 10


@dataclass(frozen=True)
class QuoteConfig:
    url: str = "https://quote-api.jup.ag/v6"
    timeout: int = 15
    default_slippage_bps: int = 50
    max_accounts: int = 64
    only_direct_routes: bool = False


@dataclass(frozen=True)
class ProtocolConfig:
    program_id: str = PORG_PROGRAM_ID
    state_account: str = ""
    fee_account: str = ""
    fee_bps: int = 100
    default_min_dust_value: float = 1.0
    token_program_id: str = TOKEN_PROGRAM_ID


@dataclass(frozen=True)
class BridgeConfig:
    program_id: str = WORMHOLE_TOKEN_BRIDGE_ID
    source_chain: str = "solana"
    api_url: str = "https://wormhole-v2-mainnet-api.certus.one"
    timeout: int = 15
    chains: dict[str, int] = field(default_factory=lambda: dict(DEFAULT_BRIDGE_CHAINS))


@dataclass(frozen=True)
class StoreConfig:
    path: str = "porg.sqlite3"


@dataclass(frozen=True)
class AppConfig:
    chain: ChainConfig = field(default_factory=ChainConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    price_feed: PriceFeedConfig = field(default_factory=PriceFeedConfig)
    registry: RegistryConfig = field(default_factory=RegistryConfig)
    quotes: QuoteConfig = field(default_factory=QuoteConfig)
    protocol: ProtocolConfig = field(default_factory=ProtocolConfig)
    bridge: BridgeConfig = field(default_factory=BridgeConfig)
    store: StoreConfig = field(default_factory=StoreConfig)


# ---------------------------------------------------------------------------
# Env interpolation
# ---------------------------------------------------------------------------

_ENV_VAR_RE = re.compile(r"\$\{([^}]+)}")


def _interpolate_env(value: Any) -> Any:
    """Recursively replace ${VAR} references with environment variable values."""
    if isinstance(value, str):
        return _ENV_VAR_RE.sub(lambda m: os.environ.get(m.group(1), ""), value)
    if isinstance(value, dict):
        return {k: _interpolate_env(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_interpolate_env(item) for item in value]
    return value


# ---------------------------------------------------------------------------
# YAML → dataclass builders
# ---------------------------------------------------------------------------


def _optional_int(value: Any) -> int | None:
    if value is None or value == "":
        return None
    return int(value)


def _build_chain(raw: dict[str, Any]) -> ChainConfig:
    endpoints = raw.get("rpc_endpoints")
    return ChainConfig(
        rpc_endpoints=(
            tuple(e for e in endpoints if e)
            if endpoints is not None
            else ChainConfig.rpc_endpoints
        ),
        rpc_timeout=int(raw.get("rpc_timeout", 30)),
        commitment=raw.get("commitment", "confirmed"),
    )


def _build_cache(raw: dict[str, Any]) -> CacheConfig:
    return CacheConfig(
        metadata_ttl=_optional_int(raw.get("metadata_ttl")),
        price_ttl=_optional_int(raw.get("price_ttl", 300)),
        portfolio_ttl=_optional_int(raw.get("portfolio_ttl", 300)),
        origin_timeout=float(raw.get("origin_timeout", 10.0)),
        price_history_limit=int(raw.get("price_history_limit", 10)),
        portfolio_retention_hours=int(raw.get("portfolio_retention_hours", 24)),
    )


def _build_price_feed(raw: dict[str, Any]) -> PriceFeedConfig:
    return PriceFeedConfig(
        url=raw.get("url", PriceFeedConfig.url),
        timeout=int(raw.get("timeout", 10)),
        fallback_price=float(raw.get("fallback_price", 1.0)),
    )


def _build_registry(raw: dict[str, Any]) -> RegistryConfig:
    return RegistryConfig(
        url=raw.get("url", RegistryConfig.url),
        timeout=int(raw.get("timeout", 10)),
    )


def _build_quotes(raw: dict[str, Any]) -> QuoteConfig:
    return QuoteConfig(
        url=raw.get("url", QuoteConfig.url),
        timeout=int(raw.get("timeout", 15)),
        default_slippage_bps=int(raw.get("default_slippage_bps", 50)),
        max_accounts=int(raw.get("max_accounts", 64)),
        only_direct_routes=bool(raw.get("only_direct_routes", False)),
    )


def _build_protocol(raw: dict[str, Any]) -> ProtocolConfig:
    return ProtocolConfig(
        program_id=raw.get("program_id", PORG_PROGRAM_ID),
        state_account=raw.get("state_account", ""),
        fee_account=raw.get("fee_account", ""),
        fee_bps=int(raw.get("fee_bps", 100)),
        default_min_dust_value=float(raw.get("default_min_dust_value", 1.0)),
        token_program_id=raw.get("token_program_id", TOKEN_PROGRAM_ID),
    )


def _build_bridge(raw: dict[str, Any]) -> BridgeConfig:
    chains = raw.get("chains")
    return BridgeConfig(
        program_id=raw.get("program_id", WORMHOLE_TOKEN_BRIDGE_ID),
        source_chain=raw.get("source_chain", "solana"),
        api_url=raw.get("api_url", BridgeConfig.api_url),
        timeout=int(raw.get("timeout", 15)),
        chains=(
            {str(k): int(v) for k, v in chains.items()}
            if chains is not None
            else dict(DEFAULT_BRIDGE_CHAINS)
        ),
    )


def _build_store(raw: dict[str, Any]) -> StoreConfig:
    return StoreConfig(path=raw.get("path", StoreConfig.path))


def build_config(raw: dict[str, Any]) -> AppConfig:
    """Build and validate an AppConfig from an already-parsed mapping."""
    raw = _interpolate_env(raw or {})

    cfg = AppConfig(
        chain=_build_chain(raw.get("chain") or {}),
        cache=_build_cache(raw.get("cache") or {}),
        price_feed=_build_price_feed(raw.get("price_feed") or {}),
        registry=_build_registry(raw.get("registry") or {}),
        quotes=_build_quotes(raw.get("quotes") or {}),
        protocol=_build_protocol(raw.get("protocol") or {}),
        bridge=_build_bridge(raw.get("bridge") or {}),
        store=_build_store(raw.get("store") or {}),
    )

    _validate(cfg)
    return cfg


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(config_path: str | Path | None = None) -> AppConfig:
    """Load and validate application configuration from YAML + .env.

    Args:
        config_path: Path to config.yaml. Defaults to ``config.yaml`` in the
            project root (one level up from this package).
    """
    load_dotenv()

    if config_path is None:
        config_path = Path(__file__).resolve().parent.parent / "config.yaml"
    config_path = Path(config_path)

    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path) as f:
        raw = yaml.safe_load(f)

    cfg = build_config(raw or {})
    logger.info("Configuration loaded from %s", config_path)
    return cfg


def _validate(cfg: AppConfig) -> None:
    """Raise on invalid configuration."""
    if not cfg.chain.rpc_endpoints:
        raise ValueError("At least one RPC endpoint must be configured")

    if not cfg.protocol.program_id:
        raise ValueError("Protocol program_id must not be empty")

    if not 0 <= cfg.protocol.fee_bps <= MAX_FEE_BPS:
        raise ValueError(
            f"Protocol fee_bps must be between 0 and {MAX_FEE_BPS}, "
            f"got {cfg.protocol.fee_bps}"
        )

    for name in ("metadata_ttl", "price_ttl", "portfolio_ttl"):
        ttl = getattr(cfg.cache, name)
        if ttl is not None and ttl < 0:
            raise ValueError(f"Cache {name} must not be negative")

    if cfg.cache.price_history_limit < 1:
        raise ValueError("Cache price_history_limit must be at least 1")
