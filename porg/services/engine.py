"""Engine facade: builds collaborators from config and exposes core operations."""
from __future__ import annotations

import asyncio
import logging
from typing import Any

from ..bridges import WormholeBridgeClient
from ..cache import Clock, LayeredCache, utc_now
from ..chains.solana import SolanaClient
from ..config import CHAIN_NAMES, AppConfig
from ..interfaces.bridge import BridgeQuoteProvider
from ..interfaces.chain import ChainClient
from ..interfaces.price_feed import PriceFeed
from ..interfaces.quote_provider import QuoteProvider
from ..interfaces.registry import TokenRegistry
from ..interfaces.store import Store
from ..models import (
    BridgeFees,
    LiquidateOptions,
    LiquidationInstruction,
    LiquidationPlan,
    MetadataEntry,
    Portfolio,
    SimulationResult,
    SupportedChain,
    TokenHolding,
    TransactionHistory,
    TransactionRecord,
)
from ..oracles import HttpPriceFeed
from ..quotes import JupiterQuoteClient
from ..registry import HttpTokenRegistry
from ..resolvers import MetadataResolver, PriceResolver
from ..store import (
    MetadataCacheBackend,
    PortfolioCacheBackend,
    PriceCacheBackend,
    SqliteStore,
)
from .liquidation import LiquidationPipeline, LiquidationPlanner
from .portfolio import PortfolioValuator
from .simulation import SimulationEngine
from .transactions import TransactionClassifier, TransactionService

logger = logging.getLogger(__name__)


class Engine:
    """Valuation, planning, simulation and classification for one configuration.

    Collaborators default to the HTTP/RPC clients and SQLite store named by
    ``config``; any of them can be injected instead.
    """

    def __init__(
        self,
        config: AppConfig,
        *,
        chain: ChainClient | None = None,
        registry: TokenRegistry | None = None,
        price_feed: PriceFeed | None = None,
        quotes: QuoteProvider | None = None,
        bridge_quotes: BridgeQuoteProvider | None = None,
        store: Store | None = None,
        clock: Clock = utc_now,
    ) -> None:
        self._config = config
        self._clock = clock
        cache_cfg = config.cache

        self.chain: ChainClient = chain or SolanaClient(
            config.chain, token_program_id=config.protocol.token_program_id
        )
        self.store: Store = store or SqliteStore(config.store.path)
        registry = registry or HttpTokenRegistry(config.registry)
        price_feed = price_feed or HttpPriceFeed(config.price_feed)
        quotes = quotes or JupiterQuoteClient(config.quotes)
        bridge_quotes = bridge_quotes or WormholeBridgeClient(config.bridge)

        # Build caches
        self.metadata_cache: LayeredCache[MetadataEntry] = LayeredCache(
            "metadata",
            ttl=cache_cfg.metadata_ttl,
            backend=MetadataCacheBackend(self.store),
            clock=clock,
            origin_timeout=cache_cfg.origin_timeout,
        )
        self.price_cache: LayeredCache[float] = LayeredCache(
            "price",
            ttl=cache_cfg.price_ttl,
            backend=PriceCacheBackend(self.store),
            clock=clock,
            origin_timeout=cache_cfg.origin_timeout,
        )
        self.portfolio_cache: LayeredCache[Portfolio] = LayeredCache(
            "portfolio",
            ttl=cache_cfg.portfolio_ttl,
            backend=PortfolioCacheBackend(self.store),
            clock=clock,
            stale_fallback=False,
            origin_timeout=None,
        )

        # Build services
        self.metadata = MetadataResolver(registry, self.metadata_cache)
        self.prices = PriceResolver(
            price_feed, self.price_cache, fallback_price=config.price_feed.fallback_price
        )
        self.valuator = PortfolioValuator(
            self.chain, self.metadata, self.prices, self.portfolio_cache, clock=clock
        )
        pipeline = LiquidationPipeline(
            self.valuator,
            quotes,
            self.metadata,
            fee_bps=config.protocol.fee_bps,
            quote_timeout=config.quotes.timeout,
            bridge_chains=config.bridge.chains,
            source_chain=config.bridge.source_chain,
            chain=self.chain,
            bridge_quotes=bridge_quotes,
            bridge_timeout=config.bridge.timeout,
        )
        self.pipeline = pipeline
        self.planner = LiquidationPlanner(pipeline, self.chain, config.protocol)
        self.simulator = SimulationEngine(pipeline)
        self.classifier = TransactionClassifier(
            self.store,
            program_id=config.protocol.program_id,
            bridge_program_id=config.bridge.program_id,
            bridge_chains=config.bridge.chains,
            source_chain=config.bridge.source_chain,
            clock=clock,
        )
        self.transactions = TransactionService(self.chain, self.classifier, self.store)

    def options(self, target_mint: str, **overrides: Any) -> LiquidateOptions:
        """LiquidateOptions with configured defaults for unset fields."""
        values = {
            "include_dust": False,
            "min_dust_value": self._config.protocol.default_min_dust_value,
            "slippage_bps": self._config.quotes.default_slippage_bps,
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        return LiquidateOptions(target_mint=target_mint, **values)

    # ------------------------------------------------------------------
    # Core operations
    # ------------------------------------------------------------------

    async def valuate(self, wallet_address: str) -> Portfolio:
        return await self.valuator.valuate(wallet_address)

    async def dust_holdings(
        self, wallet_address: str, min_value: float | None = None
    ) -> list[TokenHolding]:
        if min_value is None:
            min_value = self._config.protocol.default_min_dust_value
        return await self.valuator.dust_holdings(wallet_address, min_value)

    async def holding_details(self, wallet_address: str, mint: str) -> TokenHolding:
        return await self.valuator.holding_details(wallet_address, mint)

    async def plan(self, wallet_address: str, options: LiquidateOptions) -> LiquidationPlan:
        return await self.planner.plan(wallet_address, options)

    async def build_instruction(self, plan: LiquidationPlan) -> LiquidationInstruction:
        return await self.planner.build_instruction(plan)

    async def simulate(self, wallet_address: str, options: LiquidateOptions) -> SimulationResult:
        return await self.simulator.simulate(wallet_address, options)

    def supported_chains(self) -> list[SupportedChain]:
        """Chains in the configured bridge table, by Wormhole chain id."""
        chains = [
            SupportedChain(id=name, name=CHAIN_NAMES.get(name, name.title()), chain_id=chain_id)
            for name, chain_id in self._config.bridge.chains.items()
        ]
        return sorted(chains, key=lambda c: c.chain_id)

    async def bridge_fees(self, target_chain: str, token_mint: str | None = None) -> BridgeFees:
        return await self.pipeline.bridge_fees(target_chain, token_mint)

    def classify(self, transaction: dict[str, Any], signature: str | None = None) -> TransactionRecord:
        return self.classifier.classify(transaction, signature)

    async def transaction_details(self, signature: str) -> TransactionRecord:
        return await self.transactions.details(signature)

    async def transaction_history(
        self, wallet_address: str, limit: int = 10, before: str | None = None
    ) -> TransactionHistory:
        return await self.transactions.history(wallet_address, limit, before)

    # ------------------------------------------------------------------
    # Retention
    # ------------------------------------------------------------------

    def sweep(self) -> tuple[int, int]:
        """Apply store retention: old portfolio snapshots and surplus price history."""
        return self.store.sweep(
            self._clock(),
            self._config.cache.portfolio_retention_hours,
            self._config.cache.price_history_limit,
        )

    async def run_sweeper(self, interval_minutes: int) -> None:
        """Run the retention sweep every ``interval_minutes``."""
        logger.info("Starting cache sweeper (every %d minutes)", interval_minutes)

        while True:
            try:
                self.sweep()
                await asyncio.sleep(interval_minutes * 60)
            except Exception as e:
                logger.error("Error in sweep loop: %s", e)
                await asyncio.sleep(60)
