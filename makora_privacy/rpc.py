"""
Makora Privacy - Solana RPC Transport

Minimal async JSON-RPC client for the calls the stealth scanner needs.

Usage:
    async with SolanaRpcClient("https://api.devnet.solana.com") as rpc:
        balance = await rpc.get_balance(address)
"""

from __future__ import annotations

import itertools
import logging
from typing import Any

import base58
import httpx

from .exceptions import ConfigurationError, RpcError, RpcUnavailableError
from .utils import validate_rpc_url

logger = logging.getLogger("makora_privacy")

DEFAULT_COMMITMENT = "confirmed"


class SolanaRpcClient:
    """
    Async Solana JSON-RPC client.

    Usage:
        client = SolanaRpcClient(url)
        await client.connect()
        try:
            slot = await client.get_slot()
        finally:
            await client.close()
    """

    def __init__(
        self,
        url: str,
        *,
        timeout: float = 30.0,
        commitment: str = DEFAULT_COMMITMENT,
    ) -> None:
        self.url = validate_rpc_url(url)
        self.commitment = commitment
        self._timeout = timeout
        self._http_client: httpx.AsyncClient | None = None
        self._ids = itertools.count(1)

    async def __aenter__(self) -> SolanaRpcClient:
        await self.connect()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        await self.close()

    async def connect(self) -> None:
        """Open the underlying HTTP client."""
        if self._http_client is not None:
            return

        timeout = httpx.Timeout(timeout=self._timeout, connect=5.0, pool=5.0)
        self._http_client = httpx.AsyncClient(timeout=timeout)

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None

    # =========================================================================
    # RPC METHODS
    # =========================================================================

    async def get_slot(self) -> int:
        """Get the current slot."""
        return int(await self._rpc_request("getSlot", [{"commitment": self.commitment}]))

    async def get_balance(self, address: bytes | str) -> int:
        """Get an account balance in lamports."""
        result = await self._rpc_request(
            "getBalance", [_to_base58(address), {"commitment": self.commitment}]
        )
        return int(result["value"])

    async def get_signatures_for_address(
        self,
        address: bytes | str,
        *,
        limit: int = 100,
        before: str | None = None,
        until: str | None = None,
    ) -> list[dict[str, Any]]:
        """
        List transaction signatures touching ``address``, newest first.

        Each entry carries ``signature``, ``slot``, ``blockTime`` and ``err``.
        """
        config: dict[str, Any] = {"limit": limit, "commitment": self.commitment}
        if before:
            config["before"] = before
        if until:
            config["until"] = until
        result = await self._rpc_request(
            "getSignaturesForAddress", [_to_base58(address), config]
        )
        return list(result or [])

    async def get_transaction(self, signature: str) -> dict[str, Any] | None:
        """Fetch a parsed transaction, or None if it is unknown."""
        result = await self._rpc_request(
            "getTransaction",
            [
                signature,
                {
                    "encoding": "jsonParsed",
                    "commitment": self.commitment,
                    "maxSupportedTransactionVersion": 0,
                },
            ],
        )
        return result or None

    # =========================================================================
    # INTERNAL METHODS
    # =========================================================================

    async def _rpc_request(self, method: str, params: list[Any]) -> Any:
        """Send one JSON-RPC request and return its ``result``."""
        if self._http_client is None:
            raise ConfigurationError("RPC client not connected. Call connect() first.")

        payload = {"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": params}

        try:
            response = await self._http_client.post(self.url, json=payload)
            response.raise_for_status()
            body = response.json()
        except httpx.HTTPError as e:
            raise RpcUnavailableError(self.url) from e

        if "error" in body:
            error = body["error"] or {}
            raise RpcError(
                code=int(error.get("code", -1)),
                message=error.get("message", f"RPC error calling {method}"),
                details={"method": method},
            )

        logger.debug(f"RPC {method} ok")
        return body.get("result")


def _to_base58(address: bytes | str) -> str:
    if isinstance(address, str):
        return address
    return base58.b58encode(address).decode("ascii")
