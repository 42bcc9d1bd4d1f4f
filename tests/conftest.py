"""Shared test fixtures and sample data."""
from __future__ import annotations

import textwrap
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest
from solders.pubkey import Pubkey
from solders.signature import Signature

from porg.config import (
    AppConfig,
    CacheConfig,
    ChainConfig,
    ProtocolConfig,
    StoreConfig,
)
from porg.models import Portfolio, Provenance, SwapQuote, TokenHolding
from porg.store import SqliteStore


def make_address(seed: int) -> str:
    """Deterministic 32-byte base58 address."""
    return str(Pubkey.from_bytes(bytes([seed]) * 32))


def make_signature(seed: int) -> str:
    """Deterministic 64-byte base58 signature."""
    return str(Signature.from_bytes(bytes([seed]) * 64))


SOL_MINT = "So11111111111111111111111111111111111111112"
USDC_MINT = "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v"
DUST_MINT = make_address(3)
WALLET = make_address(7)
STATE_ACCOUNT = make_address(11)
FEE_ACCOUNT = make_address(12)
TARGET_ACCOUNT = make_address(13)

T0 = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    """Manually advanced UTC clock."""

    def __init__(self, start: datetime = T0) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


# ---------------------------------------------------------------------------
# Infrastructure fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def store() -> SqliteStore:
    s = SqliteStore(":memory:")
    yield s
    s.close()


# ---------------------------------------------------------------------------
# Config fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def sample_chain_config() -> ChainConfig:
    return ChainConfig(
        rpc_endpoints=("https://rpc1.example.com", "https://rpc2.example.com"),
        rpc_timeout=10,
    )


@pytest.fixture()
def sample_protocol_config() -> ProtocolConfig:
    return ProtocolConfig(
        state_account=STATE_ACCOUNT,
        fee_account=FEE_ACCOUNT,
        fee_bps=100,
    )


@pytest.fixture()
def sample_app_config(
    sample_chain_config: ChainConfig,
    sample_protocol_config: ProtocolConfig,
) -> AppConfig:
    return AppConfig(
        chain=sample_chain_config,
        cache=CacheConfig(origin_timeout=5.0),
        protocol=sample_protocol_config,
        store=StoreConfig(path=":memory:"),
    )


# ---------------------------------------------------------------------------
# Model fixtures
# ---------------------------------------------------------------------------


def make_holding(
    mint: str,
    symbol: str,
    decimals: int,
    raw_balance: int,
    price: float,
    price_provenance: Provenance = Provenance.FRESH,
) -> TokenHolding:
    balance = raw_balance / 10**decimals
    return TokenHolding(
        mint=mint,
        symbol=symbol,
        name=symbol,
        decimals=decimals,
        raw_balance=raw_balance,
        balance=balance,
        price=price,
        value=balance * price,
        price_provenance=price_provenance,
    )


@pytest.fixture()
def sample_portfolio() -> Portfolio:
    """0.05 SOL at $100, 2 USDC at $1, 10 DUST at $0.03."""
    sol = make_holding(SOL_MINT, "SOL", 9, 50_000_000, 100.0)
    usdc = make_holding(USDC_MINT, "USDC", 6, 2_000_000, 1.0)
    dust = make_holding(DUST_MINT, "DUST", 6, 10_000_000, 0.03)
    return Portfolio(wallet=WALLET, total_value=7.3, holdings=(sol, usdc, dust), valued_at=T0)


def make_quote(
    input_mint: str,
    out_amount: int,
    fee_amount: int = 0,
    min_output: int | None = None,
    output_mint: str = USDC_MINT,
    output_decimals: int | None = 6,
) -> SwapQuote:
    return SwapQuote(
        input_mint=input_mint,
        output_mint=output_mint,
        in_amount=1,
        out_amount=out_amount,
        min_output_threshold=min_output if min_output is not None else out_amount,
        fee_amount=fee_amount,
        output_decimals=output_decimals,
    )


# ---------------------------------------------------------------------------
# Config YAML fixture
# ---------------------------------------------------------------------------

SAMPLE_YAML = textwrap.dedent("""\
    chain:
      rpc_endpoints: ["https://rpc.example.com", "https://rpc2.example.com"]
      rpc_timeout: 10
    cache:
      metadata_ttl:
      price_ttl: 120
      portfolio_ttl: 60
    price_feed:
      url: "https://prices.example.com/v1/price"
      fallback_price: 1.0
    quotes:
      url: "https://quotes.example.com/v6"
      default_slippage_bps: 75
    protocol:
      state_account: "state-account"
      fee_account: "fee-account"
      fee_bps: 100
    bridge:
      api_url: "https://bridge.example.com"
      timeout: 7
      chains: {solana: 1, ethereum: 2}
    store:
      path: ":memory:"
""")


@pytest.fixture()
def sample_yaml_path(tmp_path: Path) -> Path:
    cfg_file = tmp_path / "config.yaml"
    cfg_file.write_text(SAMPLE_YAML)
    return cfg_file
