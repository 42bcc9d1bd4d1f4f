"""Liquidation planning: selection, per-token quotes, batch aggregation, fees."""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

from ..config import DEFAULT_BRIDGE_CHAINS, ProtocolConfig
from ..exceptions import NotFoundError, UpstreamUnavailable, ValidationError
from ..interfaces.bridge import BridgeQuoteProvider
from ..interfaces.chain import ChainClient
from ..interfaces.quote_provider import QuoteProvider
from ..models import (
    AccountMeta,
    BridgeFees,
    BridgeLeg,
    LiquidateOptions,
    LiquidationInstruction,
    LiquidationPlan,
    Portfolio,
    SwapQuote,
    TokenHolding,
)
from ..resolvers import MetadataResolver
from ..validation import require_address
from .portfolio import PortfolioValuator

logger = logging.getLogger(__name__)

BPS_DENOMINATOR = 10_000


def select_holdings(
    portfolio: Portfolio,
    target_mint: str,
    include_dust: bool,
    min_dust_value: float,
) -> list[TokenHolding]:
    """Holdings to convert, in portfolio order.

    The target token is never selected; holdings valued below
    ``min_dust_value`` are skipped unless ``include_dust``.
    """
    selected: list[TokenHolding] = []
    for holding in portfolio.holdings:
        if holding.mint == target_mint:
            continue
        if not include_dust and holding.value < min_dust_value:
            continue
        selected.append(holding)
    return selected


def protocol_fee(gross_output: float, fee_bps: int) -> float:
    return gross_output * fee_bps / BPS_DENOMINATOR


@dataclass(frozen=True)
class QuotedBatch:
    """Selected holdings with their index-aligned quotes and totals."""

    portfolio: Portfolio
    inputs: tuple[TokenHolding, ...]
    quotes: tuple[SwapQuote, ...]
    gross_output: float
    swap_fees: float
    protocol_fee: float
    net_output: float
    min_output: float
    min_output_raw: int
    bridge: BridgeLeg | None = None
    bridge_fees: BridgeFees | None = None

    @property
    def total_input_value(self) -> float:
        return sum(h.value for h in self.inputs)


class LiquidationPipeline:
    """Selection, quoting and fee arithmetic shared by planning and simulation."""

    def __init__(
        self,
        valuator: PortfolioValuator,
        quotes: QuoteProvider,
        metadata: MetadataResolver,
        fee_bps: int = 100,
        quote_timeout: float | None = 15.0,
        bridge_chains: dict[str, int] | None = None,
        source_chain: str = "solana",
        *,
        chain: ChainClient | None = None,
        bridge_quotes: BridgeQuoteProvider | None = None,
        bridge_timeout: float | None = 15.0,
    ) -> None:
        self._valuator = valuator
        self._quotes = quotes
        self._metadata = metadata
        self.fee_bps = fee_bps
        self._quote_timeout = quote_timeout
        self._bridge_chains = dict(bridge_chains or DEFAULT_BRIDGE_CHAINS)
        self._source_chain = source_chain
        self._chain = chain
        self._bridge_quotes = bridge_quotes
        self._bridge_timeout = bridge_timeout

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def validate(self, wallet_address: str, options: LiquidateOptions) -> None:
        require_address(wallet_address)
        require_address(options.target_mint, what="target mint")
        if not 0 <= options.slippage_bps <= BPS_DENOMINATOR:
            raise ValidationError(f"slippage_bps out of range: {options.slippage_bps}")
        if options.min_dust_value < 0:
            raise ValidationError("min_dust_value must not be negative")
        if options.bridge is not None:
            self.bridge_leg(options)

    def _target_chain(self, target_chain: str) -> str:
        chain = target_chain.lower()
        if chain not in self._bridge_chains or chain == self._source_chain:
            raise ValidationError(f"Unsupported bridge target chain: {target_chain}")
        return chain

    def bridge_leg(self, options: LiquidateOptions) -> BridgeLeg | None:
        bridge = options.bridge
        if bridge is None:
            return None
        chain = self._target_chain(bridge.target_chain)
        if not bridge.recipient_address:
            raise ValidationError("Bridge recipient address is required")
        return BridgeLeg(
            source_chain=self._source_chain,
            target_chain=chain,
            recipient_address=bridge.recipient_address,
        )

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    async def select(
        self, wallet_address: str, options: LiquidateOptions
    ) -> tuple[Portfolio, list[TokenHolding]]:
        """Validate, valuate and select; empty selection raises NotFoundError."""
        self.validate(wallet_address, options)
        portfolio = await self._valuator.valuate(wallet_address)
        selection = select_holdings(
            portfolio, options.target_mint, options.include_dust, options.min_dust_value
        )
        if not selection:
            raise NotFoundError(f"No tokens to liquidate for {wallet_address}")
        return portfolio, selection

    async def _quote_one(self, holding: TokenHolding, options: LiquidateOptions) -> SwapQuote:
        request = self._quotes.quote(
            holding.mint, options.target_mint, holding.raw_balance, options.slippage_bps
        )
        if self._quote_timeout is None:
            return await request
        try:
            return await asyncio.wait_for(request, self._quote_timeout)
        except asyncio.TimeoutError as e:
            raise UpstreamUnavailable(
                f"Quote for {holding.mint} timed out", source="quotes"
            ) from e

    async def _target_decimals(self, portfolio: Portfolio, target_mint: str) -> int:
        """Wallet holding, then registry metadata, then the mint account itself.

        The registry's placeholder decimals are never used for amounts.
        """
        held = portfolio.find(target_mint)
        if held is not None:
            return held.decimals
        meta = await self._metadata.resolve(target_mint)
        if not meta.is_default:
            return meta.value.decimals

        if self._chain is None:
            raise UpstreamUnavailable(
                f"Decimals of {target_mint} unknown: registry unavailable", source="quotes"
            )
        try:
            return await self._chain.get_token_decimals(target_mint)
        except Exception as e:
            logger.error("Could not read decimals of %s from chain: %s", target_mint, e)
            raise UpstreamUnavailable(
                f"Decimals of {target_mint} unavailable: {e}", source="quotes"
            ) from e

    async def bridge_fees(
        self, target_chain: str, token_mint: str | None = None
    ) -> BridgeFees:
        """Fee estimate for bridging to ``target_chain``, under the bridge timeout.

        Raises:
            ValidationError: unsupported target chain.
            UpstreamUnavailable: no provider, or the provider failed or timed out.
        """
        chain = self._target_chain(target_chain)
        if self._bridge_quotes is None:
            raise UpstreamUnavailable("No bridge quote provider configured", source="bridge")

        request = self._bridge_quotes.bridge_fees(self._source_chain, chain, token_mint)
        try:
            if self._bridge_timeout is None:
                return await request
            return await asyncio.wait_for(request, self._bridge_timeout)
        except asyncio.TimeoutError as e:
            raise UpstreamUnavailable(
                f"Bridge fees to {chain} timed out", source="bridge"
            ) from e

    async def quote_batch(self, wallet_address: str, options: LiquidateOptions) -> QuotedBatch:
        """Select holdings and quote each concurrently; any failed quote fails the batch."""
        portfolio, selection = await self.select(wallet_address, options)

        results = await asyncio.gather(
            *(self._quote_one(h, options) for h in selection), return_exceptions=True
        )

        quotes: list[SwapQuote] = []
        failures: list[str] = []
        for holding, result in zip(selection, results):
            if isinstance(result, asyncio.CancelledError):
                raise result
            if isinstance(result, BaseException):
                logger.error("Quote failed for %s: %s", holding.mint, result)
                failures.append(holding.mint)
            else:
                quotes.append(result)

        if failures:
            raise UpstreamUnavailable(
                f"Quotes unavailable for {len(failures)} of {len(selection)} tokens: "
                + ", ".join(failures),
                source="quotes",
            )

        fallback_decimals = 0
        if any(q.output_decimals is None for q in quotes):
            fallback_decimals = await self._target_decimals(portfolio, options.target_mint)

        gross = sum(q.output_units(fallback_decimals) for q in quotes)
        swap_fees = sum(q.fee_units(fallback_decimals) for q in quotes)
        min_output = sum(q.min_output_units(fallback_decimals) for q in quotes)
        fee = protocol_fee(gross, self.fee_bps)

        leg = self.bridge_leg(options)
        bridge_fees = None
        if leg is not None and self._bridge_quotes is not None:
            bridge_fees = await self.bridge_fees(leg.target_chain, options.target_mint)

        return QuotedBatch(
            portfolio=portfolio,
            inputs=tuple(selection),
            quotes=tuple(quotes),
            gross_output=gross,
            swap_fees=swap_fees,
            protocol_fee=fee,
            net_output=gross - fee,
            min_output=min_output,
            min_output_raw=sum(q.min_output_threshold for q in quotes),
            bridge=leg,
            bridge_fees=bridge_fees,
        )


class LiquidationPlanner:
    """Build batch liquidation plans and their on-chain instruction inputs."""

    def __init__(
        self,
        pipeline: LiquidationPipeline,
        chain: ChainClient,
        protocol: ProtocolConfig,
    ) -> None:
        self._pipeline = pipeline
        self._chain = chain
        self._protocol = protocol

    async def plan(self, wallet_address: str, options: LiquidateOptions) -> LiquidationPlan:
        """Plan converting the wallet's selected holdings into ``options.target_mint``.

        Raises:
            ValidationError: malformed identifiers or options.
            NotFoundError: nothing qualifies for liquidation.
            UpstreamUnavailable: holdings or any quote could not be fetched.
        """
        batch = await self._pipeline.quote_batch(wallet_address, options)

        plan = LiquidationPlan(
            wallet=wallet_address,
            target_mint=options.target_mint,
            inputs=batch.inputs,
            quotes=batch.quotes,
            gross_output=batch.gross_output,
            swap_fees=batch.swap_fees,
            protocol_fee=batch.protocol_fee,
            net_output=batch.net_output,
            min_output=batch.min_output,
            min_output_raw=batch.min_output_raw,
            fee_bps=self._pipeline.fee_bps,
            include_dust=options.include_dust,
            min_dust_value=options.min_dust_value,
            bridge=batch.bridge,
            bridge_fees=batch.bridge_fees,
        )

        logger.info(
            "Planned liquidation for %s: %d tokens -> %s, gross %.6f, fee %.6f, net %.6f",
            wallet_address, len(plan.inputs), plan.target_mint,
            plan.gross_output, plan.protocol_fee, plan.net_output,
        )
        return plan

    async def build_instruction(self, plan: LiquidationPlan) -> LiquidationInstruction:
        """Resolve the receiving accounts and assemble the ordered call inputs."""
        if not self._protocol.fee_account:
            raise ValidationError("No protocol fee account configured")
        if not self._protocol.state_account:
            raise ValidationError("No protocol state account configured")

        target_account = await self._chain.find_account(plan.wallet, plan.target_mint)

        accounts = (
            AccountMeta(self._protocol.state_account),
            AccountMeta(plan.wallet, is_signer=True, is_writable=True),
            AccountMeta(target_account, is_writable=True),
            AccountMeta(self._protocol.fee_account, is_writable=True),
            AccountMeta(self._protocol.token_program_id),
        )

        return LiquidationInstruction(
            program_id=self._protocol.program_id,
            accounts=accounts,
            target_mint=plan.target_mint,
            include_dust=plan.include_dust,
            min_token_value_cents=round(plan.min_dust_value * 100),
            min_output_amount=plan.min_output_raw,
            routes=plan.quotes,
            bridge=plan.bridge,
        )
