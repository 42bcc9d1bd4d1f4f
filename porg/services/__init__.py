"""Service modules"""
from .engine import Engine
from .liquidation import LiquidationPipeline, LiquidationPlanner, protocol_fee, select_holdings
from .portfolio import PortfolioValuator
from .simulation import SimulationEngine
from .transactions import TransactionClassifier, TransactionService

__all__ = [
    "Engine",
    "LiquidationPipeline",
    "LiquidationPlanner",
    "PortfolioValuator",
    "SimulationEngine",
    "TransactionClassifier",
    "TransactionService",
    "protocol_fee",
    "select_holdings",
]
