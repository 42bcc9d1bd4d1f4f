"""Integration tests for the Engine facade: wiring with mocked collaborators."""
from __future__ import annotations

import asyncio
from dataclasses import replace
from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from porg.config import AppConfig, BridgeConfig
from porg.models import (
    BridgeFees,
    BridgeOptions,
    HoldingBalance,
    MetadataEntry,
    Portfolio,
    PriceEntry,
    TransactionType,
)
from porg.services import Engine
from porg.store import SqliteStore

from conftest import (
    DUST_MINT,
    FEE_ACCOUNT,
    SOL_MINT,
    T0,
    TARGET_ACCOUNT,
    USDC_MINT,
    WALLET,
    FakeClock,
    make_quote,
    make_signature,
)


@pytest.fixture()
def engine(sample_app_config: AppConfig, store: SqliteStore, clock: FakeClock) -> Engine:
    chain = AsyncMock()
    chain.list_holdings.return_value = [
        HoldingBalance(SOL_MINT, 50_000_000, 9),
        HoldingBalance(USDC_MINT, 2_000_000, 6),
        HoldingBalance(DUST_MINT, 10_000_000, 6),
    ]
    chain.find_account.return_value = TARGET_ACCOUNT

    registry = AsyncMock()
    registry.lookup_metadata.side_effect = lambda mint: MetadataEntry(mint, mint[:4], mint[:4], 6)

    feed = AsyncMock()
    feed.lookup_price.side_effect = lambda mint: {SOL_MINT: 100.0, USDC_MINT: 1.0}.get(mint, 0.03)

    quotes = AsyncMock()
    quotes.quote.side_effect = lambda i, o, amount, slippage: make_quote(i, 1_000_000, output_mint=o)

    bridge_quotes = AsyncMock()
    bridge_quotes.bridge_fees.side_effect = lambda source, target, mint=None: BridgeFees(
        source, target, 0.001, 0.0005, 0.0015, 0.15
    )

    return Engine(
        sample_app_config,
        chain=chain,
        registry=registry,
        price_feed=feed,
        quotes=quotes,
        bridge_quotes=bridge_quotes,
        store=store,
        clock=clock,
    )


class TestEngine:
    @pytest.mark.asyncio
    async def test_valuate_uses_persistent_caches(self, engine: Engine, store: SqliteStore) -> None:
        portfolio = await engine.valuate(WALLET)

        assert portfolio.total_value == pytest.approx(7.3)
        assert store.latest_price(SOL_MINT).price == 100.0
        assert store.get_metadata(USDC_MINT) is not None
        assert store.latest_portfolio(WALLET) is not None

    @pytest.mark.asyncio
    async def test_dust_holdings_default_threshold(self, engine: Engine) -> None:
        dust = await engine.dust_holdings(WALLET)
        assert [h.mint for h in dust] == [DUST_MINT]

    def test_options_apply_configured_defaults(self, engine: Engine) -> None:
        options = engine.options(USDC_MINT, include_dust=None, slippage_bps=None)
        assert options.include_dust is False
        assert options.min_dust_value == 1.0
        assert options.slippage_bps == 50

        options = engine.options(USDC_MINT, include_dust=True, min_dust_value=0.1)
        assert options.include_dust is True
        assert options.min_dust_value == 0.1

    @pytest.mark.asyncio
    async def test_plan_and_instruction(self, engine: Engine) -> None:
        options = engine.options(
            USDC_MINT, include_dust=True, bridge=BridgeOptions("ethereum", "0xRecipient")
        )
        plan = await engine.plan(WALLET, options)
        instruction = await engine.build_instruction(plan)

        assert [h.mint for h in plan.inputs] == [SOL_MINT, DUST_MINT]
        assert plan.gross_output == pytest.approx(2.0)
        assert plan.net_output == pytest.approx(1.98)
        assert instruction.accounts[3].pubkey == FEE_ACCOUNT
        assert instruction.bridge.target_chain == "ethereum"
        assert plan.bridge_fees.total_fee == pytest.approx(0.0015)
        assert plan.net_output == pytest.approx(1.98)

    @pytest.mark.asyncio
    async def test_simulate_matches_plan(self, engine: Engine) -> None:
        options = engine.options(USDC_MINT)
        plan = await engine.plan(WALLET, options)
        result = await engine.simulate(WALLET, options)

        assert result.net_output == pytest.approx(plan.net_output)
        assert result.total_input_value == pytest.approx(5.0)

    def test_classify_stores_record(self, engine: Engine, store: SqliteStore) -> None:
        sig = make_signature(50)
        tx = {
            "blockTime": None,
            "meta": {"err": None, "fee": 5000},
            "transaction": {
                "signatures": [sig],
                "message": {"accountKeys": [WALLET], "instructions": []},
            },
        }
        record = engine.classify(tx)

        assert record.type is TransactionType.UNKNOWN
        assert record.wallet == WALLET
        assert store.get_transaction(sig) == record

    def test_sweep_uses_retention_config(self, engine: Engine, store: SqliteStore) -> None:
        store.insert_portfolio(Portfolio(WALLET, 1.0), T0 - timedelta(hours=30))
        for i in range(12):
            store.insert_price(PriceEntry(SOL_MINT, 1.0, T0 - timedelta(minutes=i)))

        assert engine.sweep() == (1, 2)


class TestBridgeQueries:
    def test_supported_chains_sorted_by_chain_id(self, engine: Engine) -> None:
        chains = engine.supported_chains()

        assert [c.chain_id for c in chains] == sorted(c.chain_id for c in chains)
        assert chains[0].id == "solana"
        assert chains[0].name == "Solana"
        assert {c.id: c.name for c in chains}["bsc"] == "Binance Smart Chain"

    def test_supported_chains_follow_config(
        self, sample_app_config: AppConfig, store: SqliteStore
    ) -> None:
        config = replace(sample_app_config, bridge=BridgeConfig(chains={"fantom": 10, "ethereum": 2}))
        engine = Engine(config, chain=AsyncMock(), bridge_quotes=AsyncMock(), store=store)

        assert [(c.id, c.name, c.chain_id) for c in engine.supported_chains()] == [
            ("ethereum", "Ethereum", 2),
            ("fantom", "Fantom", 10),
        ]

    @pytest.mark.asyncio
    async def test_bridge_fees_from_source_chain(self, engine: Engine) -> None:
        fees = await engine.bridge_fees("ethereum", USDC_MINT)

        assert fees.source_chain == "solana"
        assert fees.target_chain == "ethereum"
        assert fees.total_fee == pytest.approx(0.0015)


class TestRunSweeper:
    @pytest.mark.asyncio
    async def test_sweeps_then_sleeps(self, engine: Engine) -> None:
        engine.sweep = MagicMock(return_value=(0, 0))
        with patch(
            "porg.services.engine.asyncio.sleep",
            AsyncMock(side_effect=asyncio.CancelledError),
        ) as sleep:
            with pytest.raises(asyncio.CancelledError):
                await engine.run_sweeper(15)

        engine.sweep.assert_called_once()
        sleep.assert_awaited_once_with(15 * 60)

    @pytest.mark.asyncio
    async def test_sweep_error_is_logged_and_retried(self, engine: Engine) -> None:
        engine.sweep = MagicMock(side_effect=[RuntimeError("locked"), (0, 0)])
        sleep = AsyncMock(side_effect=[None, asyncio.CancelledError])
        with patch("porg.services.engine.asyncio.sleep", sleep):
            with pytest.raises(asyncio.CancelledError):
                await engine.run_sweeper(5)

        assert engine.sweep.call_count == 2
        assert sleep.await_args_list[0].args == (60,)


class TestDefaultWiring:
    def test_builds_http_collaborators(self, sample_app_config: AppConfig) -> None:
        engine = Engine(sample_app_config)
        assert engine.chain.endpoints == list(sample_app_config.chain.rpc_endpoints)
        assert engine.metadata_cache.name == "metadata"
        assert len(engine.portfolio_cache) == 0
