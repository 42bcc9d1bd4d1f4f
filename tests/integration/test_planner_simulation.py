"""Integration tests for liquidation planning and simulation over one shared pipeline."""
from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from porg.cache import LayeredCache
from porg.config import PORG_PROGRAM_ID, TOKEN_PROGRAM_ID, ProtocolConfig
from porg.exceptions import NotFoundError, UpstreamUnavailable, ValidationError
from porg.models import (
    BridgeFees,
    BridgeOptions,
    HoldingBalance,
    LiquidateOptions,
    MetadataEntry,
)
from porg.resolvers import MetadataResolver, PriceResolver
from porg.services import (
    LiquidationPipeline,
    LiquidationPlanner,
    PortfolioValuator,
    SimulationEngine,
)

from conftest import (
    DUST_MINT,
    FEE_ACCOUNT,
    SOL_MINT,
    STATE_ACCOUNT,
    TARGET_ACCOUNT,
    USDC_MINT,
    WALLET,
    FakeClock,
    make_quote,
)

METADATA = {
    SOL_MINT: MetadataEntry(SOL_MINT, "SOL", "Wrapped SOL", 9),
    USDC_MINT: MetadataEntry(USDC_MINT, "USDC", "USD Coin", 6),
    DUST_MINT: MetadataEntry(DUST_MINT, "DUST", "Dust Token", 6),
}
PRICES = {SOL_MINT: 100.0, USDC_MINT: 1.0, DUST_MINT: 0.03}
QUOTES = {
    SOL_MINT: make_quote(SOL_MINT, 4_950_000, fee_amount=5_000, min_output=4_925_250),
    DUST_MINT: make_quote(DUST_MINT, 290_000, fee_amount=1_000, min_output=288_550),
}
FEES = BridgeFees("solana", "arbitrum", 0.001, 0.0005, 0.0015, 0.15)


@pytest.fixture()
def chain() -> AsyncMock:
    mock = AsyncMock()
    mock.list_holdings.return_value = [
        HoldingBalance(SOL_MINT, 50_000_000, 9),
        HoldingBalance(USDC_MINT, 2_000_000, 6),
        HoldingBalance(DUST_MINT, 10_000_000, 6),
    ]
    mock.find_account.return_value = TARGET_ACCOUNT
    return mock


@pytest.fixture()
def quotes() -> AsyncMock:
    mock = AsyncMock()

    async def quote(input_mint, output_mint, raw_amount, slippage_bps):
        return QUOTES[input_mint]

    mock.quote.side_effect = quote
    return mock


@pytest.fixture()
def bridge_quotes() -> AsyncMock:
    mock = AsyncMock()
    mock.bridge_fees.return_value = FEES
    return mock


@pytest.fixture()
def pipeline(
    chain: AsyncMock, quotes: AsyncMock, bridge_quotes: AsyncMock, clock: FakeClock
) -> LiquidationPipeline:
    registry = AsyncMock()
    registry.lookup_metadata.side_effect = lambda mint: METADATA[mint]
    feed = AsyncMock()
    feed.lookup_price.side_effect = lambda mint: PRICES[mint]

    metadata = MetadataResolver(registry, LayeredCache("metadata", None, clock=clock))
    prices = PriceResolver(feed, LayeredCache("price", 300, clock=clock))
    valuator = PortfolioValuator(
        chain, metadata, prices,
        LayeredCache("portfolio", 300, clock=clock, stale_fallback=False),
        clock=clock,
    )
    return LiquidationPipeline(
        valuator, quotes, metadata, fee_bps=100, bridge_quotes=bridge_quotes
    )


@pytest.fixture()
def planner(
    pipeline: LiquidationPipeline, chain: AsyncMock, sample_protocol_config: ProtocolConfig
) -> LiquidationPlanner:
    return LiquidationPlanner(pipeline, chain, sample_protocol_config)


class TestPlan:
    @pytest.mark.asyncio
    async def test_excludes_dust_and_target(self, planner: LiquidationPlanner) -> None:
        plan = await planner.plan(WALLET, LiquidateOptions(target_mint=USDC_MINT))

        assert [h.symbol for h in plan.inputs] == ["SOL"]
        assert plan.gross_output == pytest.approx(4.95)
        assert plan.protocol_fee == pytest.approx(0.0495)
        assert plan.net_output == pytest.approx(4.9005)
        assert plan.min_output_raw == 4_925_250
        assert plan.fee_bps == 100

    @pytest.mark.asyncio
    async def test_include_dust(self, planner: LiquidationPlanner, quotes: AsyncMock) -> None:
        plan = await planner.plan(
            WALLET, LiquidateOptions(target_mint=USDC_MINT, include_dust=True, slippage_bps=75)
        )

        assert [h.symbol for h in plan.inputs] == ["SOL", "DUST"]
        assert [q.input_mint for q in plan.quotes] == [SOL_MINT, DUST_MINT]
        assert plan.gross_output == pytest.approx(5.24)
        assert plan.swap_fees == pytest.approx(0.006)
        assert plan.min_output_raw == 4_925_250 + 288_550
        quotes.quote.assert_any_await(DUST_MINT, USDC_MINT, 10_000_000, 75)

    @pytest.mark.asyncio
    async def test_partial_quote_failure_fails_plan(
        self, planner: LiquidationPlanner, quotes: AsyncMock
    ) -> None:
        async def quote(input_mint, output_mint, raw_amount, slippage_bps):
            if input_mint == DUST_MINT:
                raise UpstreamUnavailable("no route", source="quotes")
            return QUOTES[input_mint]

        quotes.quote.side_effect = quote

        with pytest.raises(UpstreamUnavailable, match="1 of 2"):
            await planner.plan(WALLET, LiquidateOptions(target_mint=USDC_MINT, include_dust=True))

    @pytest.mark.asyncio
    async def test_nothing_to_liquidate(self, planner: LiquidationPlanner, chain: AsyncMock) -> None:
        chain.list_holdings.return_value = [HoldingBalance(USDC_MINT, 2_000_000, 6)]

        with pytest.raises(NotFoundError):
            await planner.plan(WALLET, LiquidateOptions(target_mint=USDC_MINT))

    @pytest.mark.asyncio
    async def test_bridge_leg_attached(self, planner: LiquidationPlanner) -> None:
        plan = await planner.plan(
            WALLET,
            LiquidateOptions(
                target_mint=USDC_MINT, bridge=BridgeOptions("arbitrum", "0xRecipient")
            ),
        )
        assert plan.bridge is not None
        assert plan.bridge.target_chain == "arbitrum"

    @pytest.mark.asyncio
    async def test_invalid_options_rejected_before_chain_call(
        self, planner: LiquidationPlanner, chain: AsyncMock
    ) -> None:
        with pytest.raises(ValidationError):
            await planner.plan(WALLET, LiquidateOptions(target_mint=USDC_MINT, slippage_bps=-1))
        chain.list_holdings.assert_not_called()


class TestBuildInstruction:
    @pytest.mark.asyncio
    async def test_account_order_and_arguments(
        self, planner: LiquidationPlanner, chain: AsyncMock
    ) -> None:
        plan = await planner.plan(
            WALLET, LiquidateOptions(target_mint=USDC_MINT, min_dust_value=0.5)
        )
        instruction = await planner.build_instruction(plan)

        assert instruction.program_id == PORG_PROGRAM_ID
        assert [a.pubkey for a in instruction.accounts] == [
            STATE_ACCOUNT, WALLET, TARGET_ACCOUNT, FEE_ACCOUNT, TOKEN_PROGRAM_ID,
        ]
        user = instruction.accounts[1]
        assert user.is_signer and user.is_writable
        assert not instruction.accounts[0].is_signer
        assert instruction.min_token_value_cents == 50
        assert instruction.min_output_amount == plan.min_output_raw
        assert instruction.routes == plan.quotes
        chain.find_account.assert_awaited_once_with(WALLET, USDC_MINT)

    @pytest.mark.asyncio
    async def test_missing_fee_account(
        self, pipeline: LiquidationPipeline, chain: AsyncMock
    ) -> None:
        planner = LiquidationPlanner(pipeline, chain, ProtocolConfig(state_account=STATE_ACCOUNT))
        plan = await planner.plan(WALLET, LiquidateOptions(target_mint=USDC_MINT))

        with pytest.raises(ValidationError, match="fee account"):
            await planner.build_instruction(plan)


class TestSimulation:
    @pytest.mark.asyncio
    async def test_matches_plan(
        self, planner: LiquidationPlanner, pipeline: LiquidationPipeline
    ) -> None:
        options = LiquidateOptions(target_mint=USDC_MINT, include_dust=True)
        plan = await planner.plan(WALLET, options)
        result = await SimulationEngine(pipeline).simulate(WALLET, options)

        assert result.inputs == plan.inputs
        assert result.gross_output == pytest.approx(plan.gross_output)
        assert result.protocol_fee == pytest.approx(plan.protocol_fee)
        assert result.net_output == pytest.approx(plan.net_output)
        assert result.total_input_value == pytest.approx(5.3)

    @pytest.mark.asyncio
    async def test_bridge_fees_carried(
        self, planner: LiquidationPlanner, pipeline: LiquidationPipeline, bridge_quotes: AsyncMock
    ) -> None:
        options = LiquidateOptions(
            target_mint=USDC_MINT, bridge=BridgeOptions("arbitrum", "0xRecipient")
        )
        plan = await planner.plan(WALLET, options)
        result = await SimulationEngine(pipeline).simulate(WALLET, options)

        assert result.bridge == plan.bridge
        assert result.bridge_fees == plan.bridge_fees == FEES
        assert result.net_output == pytest.approx(plan.net_output)
        assert bridge_quotes.bridge_fees.await_count == 2

    @pytest.mark.asyncio
    async def test_empty_selection(self, pipeline: LiquidationPipeline, chain: AsyncMock) -> None:
        chain.list_holdings.return_value = []
        with pytest.raises(NotFoundError):
            await SimulationEngine(pipeline).simulate(
                WALLET, LiquidateOptions(target_mint=USDC_MINT)
            )
