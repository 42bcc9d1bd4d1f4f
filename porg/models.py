"""Data models: all frozen (immutable)."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Generic, TypeVar

T = TypeVar("T")


class Provenance(str, Enum):
    """Where a resolved value came from."""

    FRESH = "fresh"
    CACHED = "cached"
    STALE = "stale"
    DEFAULT = "default"


@dataclass(frozen=True)
class Resolved(Generic[T]):
    """A resolved value tagged with its provenance."""

    value: T
    provenance: Provenance

    @property
    def is_default(self) -> bool:
        return self.provenance is Provenance.DEFAULT


@dataclass(frozen=True)
class HoldingBalance:
    """Raw token balance as reported by the chain."""

    mint: str
    raw_balance: int
    decimals: int
    account: str = ""


@dataclass(frozen=True)
class MetadataEntry:
    """Display metadata for a token mint."""

    mint: str
    symbol: str
    name: str
    decimals: int
    icon: str | None = None


@dataclass(frozen=True)
class PriceEntry:
    """One price observation."""

    mint: str
    price: float
    observed_at: datetime


@dataclass(frozen=True)
class TokenHolding:
    """Single valued holding within a portfolio."""

    mint: str
    symbol: str
    name: str
    decimals: int
    raw_balance: int
    balance: float
    price: float
    value: float
    percentage: float = 0.0
    icon: str | None = None
    price_provenance: Provenance = Provenance.FRESH
    metadata_provenance: Provenance = Provenance.FRESH

    @property
    def degraded(self) -> bool:
        return (
            self.price_provenance is Provenance.DEFAULT
            or self.metadata_provenance is Provenance.DEFAULT
        )


@dataclass(frozen=True)
class Portfolio:
    """Valued wallet snapshot, holdings sorted by value (highest first)."""

    wallet: str
    total_value: float
    holdings: tuple[TokenHolding, ...] = ()
    valued_at: datetime | None = None

    @property
    def degraded(self) -> bool:
        return any(h.degraded for h in self.holdings)

    def find(self, mint: str) -> TokenHolding | None:
        for holding in self.holdings:
            if holding.mint == mint:
                return holding
        return None


@dataclass(frozen=True)
class SwapQuote:
    """Exchange-rate offer for converting one raw token amount into another."""

    input_mint: str
    output_mint: str
    in_amount: int
    out_amount: int
    min_output_threshold: int
    fee_amount: int = 0
    output_decimals: int | None = None
    slippage_bps: int = 50
    price_impact_pct: float = 0.0
    route: tuple[str, ...] = ()

    def _scale(self, amount: int, fallback_decimals: int) -> float:
        decimals = (
            self.output_decimals if self.output_decimals is not None else fallback_decimals
        )
        return amount / (10**decimals)

    def output_units(self, fallback_decimals: int) -> float:
        """Quoted output in human units.

        ``fallback_decimals`` applies when the provider omitted the output
        token's decimals.
        """
        return self._scale(self.out_amount, fallback_decimals)

    def fee_units(self, fallback_decimals: int) -> float:
        return self._scale(self.fee_amount, fallback_decimals)

    def min_output_units(self, fallback_decimals: int) -> float:
        return self._scale(self.min_output_threshold, fallback_decimals)


@dataclass(frozen=True)
class BridgeOptions:
    target_chain: str
    recipient_address: str


@dataclass(frozen=True)
class LiquidateOptions:
    """Caller-supplied liquidation parameters."""

    target_mint: str
    include_dust: bool = False
    min_dust_value: float = 1.0
    slippage_bps: int = 50
    bridge: BridgeOptions | None = None


@dataclass(frozen=True)
class TokenLeg:
    mint: str
    amount: float
    symbol: str = ""


@dataclass(frozen=True)
class BridgeLeg:
    source_chain: str
    target_chain: str
    recipient_address: str


@dataclass(frozen=True)
class SupportedChain:
    id: str
    name: str
    chain_id: int


@dataclass(frozen=True)
class BridgeFees:
    """Estimated cost of bridging; amounts in SOL except ``usd_equivalent``."""

    source_chain: str
    target_chain: str
    base_fee: float
    gas_estimate: float
    total_fee: float
    usd_equivalent: float


@dataclass(frozen=True)
class LiquidationPlan:
    """Batched conversion of the selected holdings into one target token.

    ``inputs`` and ``quotes`` are index-aligned; amounts are in human units
    except ``min_output_raw``.
    """

    wallet: str
    target_mint: str
    inputs: tuple[TokenHolding, ...]
    quotes: tuple[SwapQuote, ...]
    gross_output: float
    swap_fees: float
    protocol_fee: float
    net_output: float
    min_output: float
    min_output_raw: int
    fee_bps: int
    include_dust: bool = False
    min_dust_value: float = 1.0
    bridge: BridgeLeg | None = None
    bridge_fees: BridgeFees | None = None


@dataclass(frozen=True)
class AccountMeta:
    pubkey: str
    is_signer: bool = False
    is_writable: bool = False


@dataclass(frozen=True)
class LiquidationInstruction:
    """Ordered inputs of the on-chain batch_liquidate call."""

    program_id: str
    accounts: tuple[AccountMeta, ...]
    target_mint: str
    include_dust: bool
    min_token_value_cents: int
    min_output_amount: int
    routes: tuple[SwapQuote, ...]
    bridge: BridgeLeg | None = None


@dataclass(frozen=True)
class SimulationResult:
    """Dry-run preview of a liquidation."""

    wallet: str
    target_mint: str
    inputs: tuple[TokenHolding, ...]
    total_input_value: float
    gross_output: float
    swap_fees: float
    protocol_fee: float
    net_output: float
    quotes: tuple[SwapQuote, ...] = ()
    bridge: BridgeLeg | None = None
    bridge_fees: BridgeFees | None = None


class TransactionType(str, Enum):
    LIQUIDATE = "liquidate"
    BRIDGE = "bridge"
    LIQUIDATE_AND_BRIDGE = "liquidate_and_bridge"
    UNKNOWN = "unknown"


class TransactionStatus(str, Enum):
    CONFIRMED = "confirmed"
    FAILED = "failed"


@dataclass(frozen=True)
class TransactionRecord:
    """Classified on-chain transaction, keyed by signature."""

    signature: str
    wallet: str
    type: TransactionType
    timestamp: datetime
    status: TransactionStatus
    fee: float
    input_tokens: tuple[TokenLeg, ...] = ()
    output_token: TokenLeg | None = None
    bridge: BridgeLeg | None = None


@dataclass(frozen=True)
class TransactionHistory:
    records: tuple[TransactionRecord, ...]
    has_more: bool
