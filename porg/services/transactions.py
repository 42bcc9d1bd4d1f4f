"""Transaction classification and history."""
from __future__ import annotations

import asyncio
import logging
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any

from ..cache import Clock, utc_now
from ..config import DEFAULT_BRIDGE_CHAINS, PORG_PROGRAM_ID, WORMHOLE_TOKEN_BRIDGE_ID
from ..exceptions import NotFoundError, ValidationError
from ..interfaces.chain import ChainClient
from ..interfaces.store import Store
from ..models import (
    BridgeLeg,
    TokenLeg,
    TransactionHistory,
    TransactionRecord,
    TransactionStatus,
    TransactionType,
)
from ..validation import require_address, require_signature

logger = logging.getLogger(__name__)

LAMPORTS_PER_SOL = 1_000_000_000


# ---------------------------------------------------------------------------
# Parsed-transaction helpers
# ---------------------------------------------------------------------------


def _account_key(key: Any) -> str:
    if isinstance(key, dict):
        return key.get("pubkey", "")
    return str(key)


def _instructions(transaction: dict[str, Any]) -> list[dict[str, Any]]:
    """Outer instructions followed by every inner instruction."""
    outer = transaction.get("transaction", {}).get("message", {}).get("instructions", [])
    inner_groups = (transaction.get("meta") or {}).get("innerInstructions") or []
    inner = [ix for group in inner_groups for ix in group.get("instructions", [])]
    return list(outer) + inner


def _program_id(instruction: dict[str, Any]) -> str:
    return str(instruction.get("programId", ""))


def _owner_balances(
    entries: list[dict[str, Any]], owner: str
) -> dict[str, tuple[int, int]]:
    """mint -> (raw amount, decimals) for token accounts owned by ``owner``."""
    balances: dict[str, tuple[int, int]] = {}
    for entry in entries or []:
        if entry.get("owner") != owner:
            continue
        amount = entry.get("uiTokenAmount", {})
        raw = int(amount.get("amount", 0))
        decimals = int(amount.get("decimals", 0))
        prev = balances.get(entry["mint"], (0, decimals))
        balances[entry["mint"]] = (prev[0] + raw, decimals)
    return balances


def token_legs(
    meta: dict[str, Any], owner: str
) -> tuple[tuple[TokenLeg, ...], TokenLeg | None]:
    """Input legs (balances that fell) and the output leg (largest rise)."""
    pre = _owner_balances(meta.get("preTokenBalances", []), owner)
    post = _owner_balances(meta.get("postTokenBalances", []), owner)

    mints = list(pre) + [m for m in post if m not in pre]
    inputs: list[TokenLeg] = []
    output: TokenLeg | None = None
    best_rise = 0

    for mint in mints:
        before, pre_decimals = pre.get(mint, (0, None))
        after, post_decimals = post.get(mint, (0, None))
        decimals = pre_decimals if pre_decimals is not None else post_decimals
        delta = after - before
        if delta < 0:
            inputs.append(TokenLeg(mint=mint, amount=-delta / (10**decimals)))
        elif delta > best_rise:
            best_rise = delta
            output = TokenLeg(mint=mint, amount=delta / (10**decimals))

    return tuple(inputs), output


# ---------------------------------------------------------------------------
# Classifier
# ---------------------------------------------------------------------------


class TransactionClassifier:
    """Classify finalized transactions and upsert them keyed by signature."""

    def __init__(
        self,
        store: Store,
        program_id: str = PORG_PROGRAM_ID,
        bridge_program_id: str = WORMHOLE_TOKEN_BRIDGE_ID,
        bridge_chains: dict[str, int] | None = None,
        source_chain: str = "solana",
        clock: Clock = utc_now,
    ) -> None:
        self._store = store
        self._program_id = program_id
        self._bridge_program_id = bridge_program_id
        self._chain_names = {
            cid: name for name, cid in (bridge_chains or DEFAULT_BRIDGE_CHAINS).items()
        }
        self._source_chain = source_chain
        self._clock = clock

    def _with_symbol(self, leg: TokenLeg) -> TokenLeg:
        """Fill the leg's symbol from stored token metadata, when known."""
        found = self._store.get_metadata(leg.mint)
        if found is None:
            return leg
        return replace(leg, symbol=found[0].symbol)

    def _bridge_leg(self, instruction: dict[str, Any]) -> BridgeLeg:
        parsed = instruction.get("parsed")
        info = parsed.get("info", {}) if isinstance(parsed, dict) else {}

        target = info.get("targetChain", "unknown")
        if isinstance(target, int) or (isinstance(target, str) and target.isdigit()):
            target = self._chain_names.get(int(target), str(target))

        return BridgeLeg(
            source_chain=self._source_chain,
            target_chain=str(target),
            recipient_address=str(info.get("recipient", info.get("recipientAddress", ""))),
        )

    def classify(
        self, transaction: dict[str, Any], signature: str | None = None
    ) -> TransactionRecord:
        """Build and upsert the record for one parsed transaction."""
        message = transaction.get("transaction", {}).get("message", {})
        if signature is None:
            signatures = transaction.get("transaction", {}).get("signatures") or []
            if not signatures:
                raise ValidationError("Transaction carries no signature")
            signature = signatures[0]

        account_keys = message.get("accountKeys") or []
        wallet = _account_key(account_keys[0]) if account_keys else ""
        meta = transaction.get("meta") or {}

        block_time = transaction.get("blockTime")
        timestamp = (
            datetime.fromtimestamp(block_time, timezone.utc)
            if block_time is not None
            else self._clock()
        )
        status = TransactionStatus.FAILED if meta.get("err") else TransactionStatus.CONFIRMED
        fee = int(meta.get("fee", 0)) / LAMPORTS_PER_SOL

        instructions = _instructions(transaction)
        programs = {_program_id(ix) for ix in instructions}

        if self._program_id not in programs:
            record = TransactionRecord(
                signature=signature,
                wallet=wallet,
                type=TransactionType.UNKNOWN,
                timestamp=timestamp,
                status=status,
                fee=fee,
            )
        else:
            bridge_ix = next(
                (ix for ix in instructions if _program_id(ix) == self._bridge_program_id),
                None,
            )
            inputs, output = token_legs(meta, wallet)
            inputs = tuple(self._with_symbol(leg) for leg in inputs)
            output = self._with_symbol(output) if output is not None else None
            record = TransactionRecord(
                signature=signature,
                wallet=wallet,
                type=(
                    TransactionType.LIQUIDATE_AND_BRIDGE
                    if bridge_ix is not None
                    else TransactionType.LIQUIDATE
                ),
                timestamp=timestamp,
                status=status,
                fee=fee,
                input_tokens=inputs,
                output_token=output,
                bridge=self._bridge_leg(bridge_ix) if bridge_ix is not None else None,
            )

        self._store.upsert_transaction(record)
        logger.debug("Classified %s as %s", signature, record.type.value)
        return record


# ---------------------------------------------------------------------------
# History
# ---------------------------------------------------------------------------


class TransactionService:
    """Store-first transaction lookup backed by the chain."""

    def __init__(
        self, chain: ChainClient, classifier: TransactionClassifier, store: Store
    ) -> None:
        self._chain = chain
        self._classifier = classifier
        self._store = store

    async def details(self, signature: str) -> TransactionRecord:
        require_signature(signature)

        stored = self._store.get_transaction(signature)
        if stored is not None:
            return stored

        transaction = await self._chain.get_transaction(signature)
        if not transaction:
            raise NotFoundError(f"Transaction {signature} not found")
        return self._classifier.classify(transaction, signature)

    async def _classify_signature(self, signature: str) -> TransactionRecord | None:
        stored = self._store.get_transaction(signature)
        if stored is not None:
            return stored
        transaction = await self._chain.get_transaction(signature)
        if not transaction:
            return None
        return self._classifier.classify(transaction, signature)

    async def history(
        self, wallet_address: str, limit: int = 10, before: str | None = None
    ) -> TransactionHistory:
        """Protocol transactions for a wallet, newest first."""
        require_address(wallet_address)
        if before is not None:
            require_signature(before)

        stored = self._store.list_transactions(
            wallet_address, limit, before, exclude_unknown=True
        )
        if len(stored) >= limit:
            return TransactionHistory(records=tuple(stored), has_more=True)

        signatures = await self._chain.get_signatures(wallet_address, limit, before)
        records = await asyncio.gather(*(self._classify_signature(s) for s in signatures))

        protocol_records = tuple(
            r for r in records if r is not None and r.type is not TransactionType.UNKNOWN
        )
        return TransactionHistory(
            records=protocol_records, has_more=len(signatures) == limit
        )
