"""Chain client protocol: blockchain RPC abstraction."""
from typing import Any, Protocol

from ..models import HoldingBalance


class ChainClient(Protocol):
    """Abstract interface for blockchain RPC interactions."""

    async def list_holdings(self, wallet_address: str) -> list[HoldingBalance]: ...

    async def find_account(self, owner: str, mint: str) -> str: ...

    async def get_latest_reference_handle(self) -> str: ...

    async def get_token_decimals(self, mint: str) -> int: ...

    async def get_transaction(self, signature: str) -> dict[str, Any] | None: ...

    async def get_signatures(
        self, address: str, limit: int = 10, before: str | None = None
    ) -> list[str]: ...
