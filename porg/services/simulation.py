"""Dry-run liquidation previews."""
from __future__ import annotations

import logging

from ..models import LiquidateOptions, SimulationResult
from .liquidation import LiquidationPipeline

logger = logging.getLogger(__name__)


class SimulationEngine:
    """Preview a liquidation through the planner's own pipeline."""

    def __init__(self, pipeline: LiquidationPipeline) -> None:
        self._pipeline = pipeline

    async def simulate(self, wallet_address: str, options: LiquidateOptions) -> SimulationResult:
        batch = await self._pipeline.quote_batch(wallet_address, options)

        result = SimulationResult(
            wallet=wallet_address,
            target_mint=options.target_mint,
            inputs=batch.inputs,
            total_input_value=batch.total_input_value,
            gross_output=batch.gross_output,
            swap_fees=batch.swap_fees,
            protocol_fee=batch.protocol_fee,
            net_output=batch.net_output,
            quotes=batch.quotes,
            bridge=batch.bridge,
            bridge_fees=batch.bridge_fees,
        )
        logger.info(
            "Simulated liquidation for %s: input $%.2f -> net %.6f",
            wallet_address, result.total_input_value, result.net_output,
        )
        return result
