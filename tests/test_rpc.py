"""Tests for the Solana RPC transport."""

from unittest.mock import AsyncMock, MagicMock, patch

import base58
import httpx
import pytest

from makora_privacy import ConfigurationError, RpcError, RpcUnavailableError, SolanaRpcClient

RPC_URL = "https://api.devnet.solana.com"


def make_response(body):
    """Create a mock JSON-RPC HTTP response."""
    response = MagicMock(spec=httpx.Response)
    response.status_code = 200
    response.json.return_value = body
    response.raise_for_status.return_value = None
    return response


class TestSolanaRpcClient:
    """Tests for SolanaRpcClient."""

    def test_url_normalized(self):
        """Test trailing slashes are stripped."""
        assert SolanaRpcClient(RPC_URL + "/").url == RPC_URL

    def test_invalid_url(self):
        """Test non-HTTP URLs are rejected."""
        with pytest.raises(ValueError):
            SolanaRpcClient("ws://localhost:8900")

    @pytest.mark.asyncio
    async def test_not_connected(self):
        """Test requests before connect() fail."""
        client = SolanaRpcClient(RPC_URL)

        with pytest.raises(ConfigurationError):
            await client.get_slot()

    @pytest.mark.asyncio
    async def test_context_manager(self):
        """Test async context manager lifecycle."""
        async with SolanaRpcClient(RPC_URL) as client:
            assert client._http_client is not None

        assert client._http_client is None

    @pytest.mark.asyncio
    async def test_get_balance(self):
        """Test balance lookups encode the address and unwrap the value."""
        address = bytes(range(32))
        client = SolanaRpcClient(RPC_URL)

        with patch.object(client, "_rpc_request", new_callable=AsyncMock) as mock:
            mock.return_value = {"context": {"slot": 1}, "value": 2_039_280}

            balance = await client.get_balance(address)

        assert balance == 2_039_280
        method, params = mock.await_args.args
        assert method == "getBalance"
        assert params[0] == base58.b58encode(address).decode()

    @pytest.mark.asyncio
    async def test_get_signatures_paging(self):
        """Test before/until are forwarded only when set."""
        client = SolanaRpcClient(RPC_URL)

        with patch.object(client, "_rpc_request", new_callable=AsyncMock) as mock:
            mock.return_value = [{"signature": "abc", "slot": 1, "err": None}]

            result = await client.get_signatures_for_address("Program111", limit=5, before="xyz")

        assert result[0]["signature"] == "abc"
        config = mock.await_args.args[1][1]
        assert config["limit"] == 5
        assert config["before"] == "xyz"
        assert "until" not in config

    @pytest.mark.asyncio
    async def test_get_transaction_missing(self):
        """Test unknown transactions come back as None."""
        client = SolanaRpcClient(RPC_URL)

        with patch.object(client, "_rpc_request", new_callable=AsyncMock) as mock:
            mock.return_value = None

            assert await client.get_transaction("sig") is None

    @pytest.mark.asyncio
    async def test_rpc_error_object(self):
        """Test JSON-RPC errors raise RpcError with the code."""
        async with SolanaRpcClient(RPC_URL) as client:
            client._http_client.post = AsyncMock(
                return_value=make_response(
                    {"jsonrpc": "2.0", "id": 1, "error": {"code": -32602, "message": "bad"}}
                )
            )

            with pytest.raises(RpcError) as exc_info:
                await client.get_slot()

        assert exc_info.value.code == -32602

    @pytest.mark.asyncio
    async def test_transport_failure(self):
        """Test HTTP failures raise RpcUnavailableError."""
        async with SolanaRpcClient(RPC_URL) as client:
            client._http_client.post = AsyncMock(side_effect=httpx.ConnectError("refused"))

            with pytest.raises(RpcUnavailableError) as exc_info:
                await client.get_slot()

        assert isinstance(exc_info.value.__cause__, httpx.ConnectError)

    @pytest.mark.asyncio
    async def test_result_returned(self):
        """Test successful responses return the result field."""
        async with SolanaRpcClient(RPC_URL) as client:
            client._http_client.post = AsyncMock(
                return_value=make_response({"jsonrpc": "2.0", "id": 1, "result": 12345})
            )

            assert await client.get_slot() == 12345
