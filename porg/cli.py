"""Command-line interface for the PORG liquidation engine."""
from __future__ import annotations

import argparse
import asyncio
import dataclasses
import json
import logging
import sys
from datetime import datetime
from enum import Enum
from typing import Any

from .config import load_config
from .exceptions import PorgError
from .logging_setup import configure_logging
from .models import BridgeOptions
from .services import Engine

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse CLI parser."""
    parser = argparse.ArgumentParser(
        prog="porg",
        description="Solana wallet valuation and dust liquidation planner",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to config.yaml (default: config.yaml in project root)",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: INFO)",
    )

    sub = parser.add_subparsers(dest="command")

    valuate_parser = sub.add_parser("valuate", help="Value every token held by a wallet")
    valuate_parser.add_argument("wallet")

    dust_parser = sub.add_parser("dust", help="List holdings valued below a threshold")
    dust_parser.add_argument("wallet")
    dust_parser.add_argument(
        "--min-value",
        type=float,
        default=None,
        help="Dust threshold in USD (overrides config)",
    )

    for name, text in (
        ("plan", "Plan a batch liquidation into a target token"),
        ("simulate", "Preview a batch liquidation without building it"),
    ):
        p = sub.add_parser(name, help=text)
        p.add_argument("wallet")
        p.add_argument("target", help="Target token mint")
        p.add_argument("--include-dust", action="store_true")
        p.add_argument("--min-dust-value", type=float, default=None)
        p.add_argument("--slippage-bps", type=int, default=None)
        p.add_argument("--bridge-chain", default=None, help="Bridge output to this chain")
        p.add_argument("--recipient", default=None, help="Recipient on the bridge chain")
        if name == "plan":
            p.add_argument(
                "--instruction",
                action="store_true",
                help="Also resolve accounts and print the on-chain call inputs",
            )

    classify_parser = sub.add_parser("classify", help="Fetch and classify a transaction")
    classify_parser.add_argument("signature")

    history_parser = sub.add_parser("history", help="Protocol transactions for a wallet")
    history_parser.add_argument("wallet")
    history_parser.add_argument("--limit", type=int, default=10)
    history_parser.add_argument("--before", default=None, help="Page before this signature")

    sub.add_parser("chains", help="List chains the bridge can deliver to")

    fees_parser = sub.add_parser("bridge-fees", help="Estimate bridge fees to a chain")
    fees_parser.add_argument("target_chain")
    fees_parser.add_argument("--token-mint", default=None, help="Token being bridged")

    sweep_parser = sub.add_parser("sweep", help="Apply cache retention")
    sweep_parser.add_argument(
        "interval",
        nargs="?",
        type=int,
        default=None,
        help="Repeat every N minutes (default: run once)",
    )

    return parser


def to_jsonable(value: Any) -> Any:
    """Convert dataclasses, enums and datetimes into JSON-friendly values."""
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return {f.name: to_jsonable(getattr(value, f.name)) for f in dataclasses.fields(value)}
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, dict):
        return {k: to_jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_jsonable(v) for v in value]
    return value


def _print(value: Any) -> None:
    print(json.dumps(to_jsonable(value), indent=2))


def _liquidate_options(engine: Engine, args: argparse.Namespace):
    bridge = None
    if args.bridge_chain or args.recipient:
        bridge = BridgeOptions(
            target_chain=args.bridge_chain or "",
            recipient_address=args.recipient or "",
        )
    return engine.options(
        args.target,
        include_dust=args.include_dust,
        min_dust_value=args.min_dust_value,
        slippage_bps=args.slippage_bps,
        bridge=bridge,
    )


async def _run(args: argparse.Namespace) -> None:
    """Execute the selected command."""
    configure_logging(args.log_level)
    config = load_config(args.config)
    engine = Engine(config)

    if args.command == "valuate":
        _print(await engine.valuate(args.wallet))
    elif args.command == "dust":
        _print(await engine.dust_holdings(args.wallet, args.min_value))
    elif args.command == "plan":
        plan = await engine.plan(args.wallet, _liquidate_options(engine, args))
        if args.instruction:
            _print({"plan": plan, "instruction": await engine.build_instruction(plan)})
        else:
            _print(plan)
    elif args.command == "simulate":
        _print(await engine.simulate(args.wallet, _liquidate_options(engine, args)))
    elif args.command == "classify":
        _print(await engine.transaction_details(args.signature))
    elif args.command == "history":
        _print(await engine.transaction_history(args.wallet, args.limit, args.before))
    elif args.command == "chains":
        _print(engine.supported_chains())
    elif args.command == "bridge-fees":
        _print(await engine.bridge_fees(args.target_chain, args.token_mint))
    elif args.command == "sweep":
        if args.interval:
            await engine.run_sweeper(args.interval)
        else:
            portfolios, prices = engine.sweep()
            _print({"portfolios_deleted": portfolios, "prices_deleted": prices})
    else:
        build_parser().print_help()
        sys.exit(1)


def main() -> None:
    """Entry point."""
    parser = build_parser()
    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    try:
        asyncio.run(_run(args))
    except PorgError as e:
        logger.error("%s", e)
        sys.exit(1)
