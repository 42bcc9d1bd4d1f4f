"""Solana JSON-RPC client with endpoint fallback."""
import logging
import ssl
from typing import Any

import aiohttp
import certifi

from ...config import TOKEN_PROGRAM_ID, ChainConfig
from ...exceptions import NotFoundError, UpstreamUnavailable
from ...models import HoldingBalance

logger = logging.getLogger(__name__)


class SolanaClient:
    """Solana RPC client with automatic endpoint fallback."""

    def __init__(self, config: ChainConfig, token_program_id: str = TOKEN_PROGRAM_ID) -> None:
        self.endpoints = list(config.rpc_endpoints)
        self.timeout = config.rpc_timeout
        self.commitment = config.commitment
        self.token_program_id = token_program_id
        self.current_rpc_index = 0

    async def rpc_call(self, method: str, params: list[Any]) -> Any:
        """Make RPC call with fallback to alternative endpoints."""
        payload = {"jsonrpc": "2.0", "id": 1, "method": method, "params": params}

        ssl_context = ssl.create_default_context(cafile=certifi.where())

        last_error: Exception | None = None
        for attempt in range(len(self.endpoints)):
            rpc_index = (self.current_rpc_index + attempt) % len(self.endpoints)
            rpc_url = self.endpoints[rpc_index]

            try:
                connector = aiohttp.TCPConnector(ssl=ssl_context)
                async with aiohttp.ClientSession(connector=connector) as session:
                    async with session.post(
                        rpc_url,
                        json=payload,
                        timeout=aiohttp.ClientTimeout(total=self.timeout),
                    ) as response:
                        result = await response.json()
                        if "error" in result:
                            raise RuntimeError(f"RPC Error: {result['error']}")

                        if rpc_index != self.current_rpc_index:
                            logger.info("Switched to RPC endpoint: %s", rpc_url)
                            self.current_rpc_index = rpc_index

                        return result.get("result")
            except Exception as e:
                last_error = e
                logger.warning("RPC endpoint %s failed: %s", rpc_url, e)
                if attempt < len(self.endpoints) - 1:
                    logger.info("Trying next endpoint...")
                continue

        raise UpstreamUnavailable(
            f"All RPC endpoints failed for {method}. Last error: {last_error}",
            source="chain",
        )

    async def _token_accounts(self, owner: str, account_filter: dict[str, str]) -> list[dict[str, Any]]:
        result = await self.rpc_call(
            "getTokenAccountsByOwner",
            [
                owner,
                account_filter,
                {"encoding": "jsonParsed", "commitment": self.commitment},
            ],
        )
        return (result or {}).get("value", [])

    async def list_holdings(self, wallet_address: str) -> list[HoldingBalance]:
        """Enumerate SPL token balances held by the wallet."""
        accounts = await self._token_accounts(
            wallet_address, {"programId": self.token_program_id}
        )

        holdings: list[HoldingBalance] = []
        for item in accounts:
            info = (
                item.get("account", {})
                .get("data", {})
                .get("parsed", {})
                .get("info", {})
            )
            token_amount = info.get("tokenAmount", {})
            mint = info.get("mint")
            if not mint:
                continue
            holdings.append(
                HoldingBalance(
                    mint=mint,
                    raw_balance=int(token_amount.get("amount", 0)),
                    decimals=int(token_amount.get("decimals", 0)),
                    account=item.get("pubkey", ""),
                )
            )

        logger.debug("Found %d token accounts for %s", len(holdings), wallet_address)
        return holdings

    async def find_account(self, owner: str, mint: str) -> str:
        """Return the owner's token account for ``mint``."""
        accounts = await self._token_accounts(owner, {"mint": mint})
        if not accounts:
            raise NotFoundError(f"No token account for mint {mint} owned by {owner}")
        return accounts[0]["pubkey"]

    async def get_latest_reference_handle(self) -> str:
        """Latest blockhash, used when assembling a transaction."""
        result = await self.rpc_call(
            "getLatestBlockhash", [{"commitment": self.commitment}]
        )
        return result["value"]["blockhash"]

    async def get_transaction(self, signature: str) -> dict[str, Any] | None:
        """Fetch a finalized transaction in jsonParsed encoding."""
        return await self.rpc_call(
            "getTransaction",
            [
                signature,
                {
                    "encoding": "jsonParsed",
                    "maxSupportedTransactionVersion": 0,
                    "commitment": self.commitment,
                },
            ],
        )

    async def get_signatures(
        self, address: str, limit: int = 10, before: str | None = None
    ) -> list[str]:
        """Signatures involving ``address``, newest first."""
        options: dict[str, Any] = {"limit": limit}
        if before:
            options["before"] = before
        result = await self.rpc_call("getSignaturesForAddress", [address, options])
        return [entry["signature"] for entry in result or [] if entry.get("signature")]

    async def get_token_decimals(self, mint: str) -> int:
        """Decimals recorded in the mint account."""
        result = await self.rpc_call("getTokenSupply", [mint, {"commitment": self.commitment}])
        try:
            return int(result["value"]["decimals"])
        except (KeyError, TypeError, ValueError) as e:
            raise UpstreamUnavailable(
                f"Malformed token supply for {mint}", source="chain"
            ) from e
