"""Wallet valuation: holdings x metadata x price, cached per wallet."""
from __future__ import annotations

import asyncio
import logging
import warnings
from dataclasses import replace

from ..cache import Clock, LayeredCache, utc_now
from ..exceptions import NotFoundError, PartialDegradation
from ..interfaces.chain import ChainClient
from ..models import HoldingBalance, Portfolio, TokenHolding
from ..resolvers import MetadataResolver, PriceResolver
from ..validation import require_address

logger = logging.getLogger(__name__)


class PortfolioValuator:
    """Value a wallet's token holdings."""

    def __init__(
        self,
        chain: ChainClient,
        metadata: MetadataResolver,
        prices: PriceResolver,
        cache: LayeredCache[Portfolio],
        clock: Clock = utc_now,
    ) -> None:
        self._chain = chain
        self._metadata = metadata
        self._prices = prices
        self._cache = cache
        self._clock = clock

    async def valuate(self, wallet_address: str) -> Portfolio:
        """Return the wallet's portfolio, served from cache while fresh.

        A valuation that fell back to default prices or metadata is never
        cached, so the next call retries the feeds.

        Raises:
            ValidationError: malformed wallet address.
            UpstreamUnavailable: holdings could not be enumerated.
        """
        require_address(wallet_address)
        resolved = await self._cache.resolve(
            wallet_address,
            lambda: self._build(wallet_address),
            cacheable=lambda portfolio: not portfolio.degraded,
        )
        portfolio = resolved.value
        if portfolio.degraded:
            degraded = ", ".join(h.mint for h in portfolio.holdings if h.degraded)
            logger.warning("Valuation of %s used default values for: %s", wallet_address, degraded)
            warnings.warn(
                f"Valuation of {wallet_address} used default values for: {degraded}",
                PartialDegradation,
                stacklevel=2,
            )
        return portfolio

    async def _value_holding(self, balance: HoldingBalance) -> TokenHolding:
        meta, price = await asyncio.gather(
            self._metadata.resolve(balance.mint),
            self._prices.resolve(balance.mint),
        )
        amount = balance.raw_balance / (10**balance.decimals)
        return TokenHolding(
            mint=balance.mint,
            symbol=meta.value.symbol,
            name=meta.value.name,
            decimals=balance.decimals,
            raw_balance=balance.raw_balance,
            balance=amount,
            price=price.value,
            value=price.value * amount,
            icon=meta.value.icon,
            price_provenance=price.provenance,
            metadata_provenance=meta.provenance,
        )

    async def _build(self, wallet_address: str) -> Portfolio:
        balances = await self._chain.list_holdings(wallet_address)
        held = [b for b in balances if b.raw_balance > 0]

        valued = await asyncio.gather(*(self._value_holding(b) for b in held))

        total_value = sum(h.value for h in valued)
        holdings = [
            replace(h, percentage=(h.value / total_value * 100) if total_value > 0 else 0.0)
            for h in valued
        ]
        holdings.sort(key=lambda h: h.value, reverse=True)

        portfolio = Portfolio(
            wallet=wallet_address,
            total_value=total_value,
            holdings=tuple(holdings),
            valued_at=self._clock(),
        )

        logger.info(
            "Valued %s: %d holdings, total $%.2f",
            wallet_address, len(holdings), total_value,
        )
        return portfolio

    async def dust_holdings(
        self, wallet_address: str, min_value: float = 1.0
    ) -> list[TokenHolding]:
        """Holdings valued below ``min_value``."""
        portfolio = await self.valuate(wallet_address)
        return [h for h in portfolio.holdings if h.value < min_value]

    async def holding_details(self, wallet_address: str, mint: str) -> TokenHolding:
        """Value a single holding, bypassing the portfolio cache.

        Raises:
            NotFoundError: the wallet holds none of ``mint``.
        """
        require_address(wallet_address)
        require_address(mint, what="mint")

        balances = await self._chain.list_holdings(wallet_address)
        for balance in balances:
            if balance.mint == mint and balance.raw_balance > 0:
                return await self._value_holding(balance)
        raise NotFoundError(f"Wallet {wallet_address} does not hold {mint}")
