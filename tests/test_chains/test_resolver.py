"""
Tests for the Block Resolver.

Round-robin endpoint rotation and eth_blockNumber response handling.
"""

from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from sandbox_deployer.chains import RPC_ENDPOINTS
from sandbox_deployer.chains.jsonrpc import build_payload
from sandbox_deployer.chains.resolver import (
    BlockResolver,
    configure_block_resolver,
    get_block_resolver,
    resolve_latest_block,
)
from sandbox_deployer.exceptions import UnsupportedChainError, UpstreamError


@pytest.fixture
def endpoints():
    return {
        1: ["https://a.example", "https://b.example", "https://c.example"],
        137: ["https://polygon.example"],
    }


@pytest.fixture
def resolver(endpoints, mock_http_client):
    return BlockResolver(endpoints=endpoints, client=mock_http_client)


# ==================== Endpoint Table ====================


class TestEndpointTable:
    """Tests for the built-in upstream table."""

    def test_common_chains_present(self):
        """Mainnet, Polygon and Arbitrum have at least one endpoint."""
        for chain_id in (1, 137, 42161):
            assert RPC_ENDPOINTS[chain_id]

    def test_urls_are_https(self):
        """Every configured upstream uses https."""
        for urls in RPC_ENDPOINTS.values():
            assert all(url.startswith("https://") for url in urls)


# ==================== Round Robin ====================


class TestRoundRobin:
    """Tests for endpoint rotation."""

    def test_cycles_through_endpoints(self, resolver):
        """Consecutive calls visit every endpoint and wrap around."""
        picked = [resolver.next_endpoint(1) for _ in range(4)]

        assert picked == [
            "https://a.example",
            "https://b.example",
            "https://c.example",
            "https://a.example",
        ]

    def test_single_endpoint_always_returned(self, resolver):
        """A chain with one endpoint keeps returning it."""
        assert {resolver.next_endpoint(137) for _ in range(3)} == {"https://polygon.example"}

    def test_cursors_are_per_chain(self, resolver):
        """Rotating one chain does not move another chain's cursor."""
        resolver.next_endpoint(1)
        resolver.next_endpoint(137)

        assert resolver.next_endpoint(1) == "https://b.example"

    def test_unsupported_chain(self, resolver):
        """Unknown chains raise UnsupportedChainError."""
        with pytest.raises(UnsupportedChainError) as exc_info:
            resolver.next_endpoint(999999)

        assert exc_info.value.chain_id == 999999
        assert not resolver.supports(999999)
        assert resolver.supports(1)

    def test_empty_endpoint_list_is_unsupported(self):
        """A chain mapped to an empty list counts as unsupported."""
        resolver = BlockResolver(endpoints={5: []})

        assert not resolver.supports(5)


# ==================== Latest Block ====================


class TestResolveLatestBlock:
    """Tests for eth_blockNumber resolution."""

    @pytest.mark.asyncio
    async def test_hex_result(self, resolver, mock_http_client, make_response):
        """A hex quantity is parsed into an integer."""
        mock_http_client.post.return_value = make_response(
            json_data={"jsonrpc": "2.0", "id": 1, "result": "0x1312d00"}
        )

        block = await resolver.resolve_latest_block(137)

        assert block == 20000000
        call = mock_http_client.post.call_args
        assert call.args[0] == "https://polygon.example"
        assert call.kwargs["json"]["method"] == "eth_blockNumber"

    @pytest.mark.asyncio
    async def test_cursor_advances_on_failure(self, resolver, mock_http_client):
        """A failed call still moves the cursor to the next endpoint."""
        mock_http_client.post.side_effect = httpx.ConnectError("refused")

        with pytest.raises(UpstreamError):
            await resolver.resolve_latest_block(1)

        assert resolver.next_endpoint(1) == "https://b.example"

    @pytest.mark.asyncio
    async def test_http_error_status(self, resolver, mock_http_client, make_response):
        """Non-2xx responses raise UpstreamError."""
        mock_http_client.post.return_value = make_response(status_code=503, json_data={})

        with pytest.raises(UpstreamError, match="status 503"):
            await resolver.resolve_latest_block(1)

    @pytest.mark.asyncio
    async def test_non_json_body(self, resolver, mock_http_client, make_response):
        """Unparseable bodies raise UpstreamError."""
        mock_http_client.post.return_value = make_response(json_error=ValueError("bad json"))

        with pytest.raises(UpstreamError, match="Non-JSON"):
            await resolver.resolve_latest_block(1)

    @pytest.mark.asyncio
    async def test_jsonrpc_error(self, resolver, mock_http_client, make_response):
        """A JSON-RPC error object raises UpstreamError."""
        mock_http_client.post.return_value = make_response(
            json_data={"jsonrpc": "2.0", "id": 1, "error": {"code": -32000, "message": "limit"}}
        )

        with pytest.raises(UpstreamError, match="JSON-RPC error"):
            await resolver.resolve_latest_block(1)

    @pytest.mark.asyncio
    async def test_missing_result(self, resolver, mock_http_client, make_response):
        """A response without a result raises UpstreamError."""
        mock_http_client.post.return_value = make_response(json_data={"jsonrpc": "2.0", "id": 1})

        with pytest.raises(UpstreamError, match="Invalid block number"):
            await resolver.resolve_latest_block(1)

    @pytest.mark.asyncio
    async def test_unsupported_chain_makes_no_request(self, resolver, mock_http_client):
        """No HTTP call is made for a chain without endpoints."""
        with pytest.raises(UnsupportedChainError):
            await resolver.resolve_latest_block(424242)

        mock_http_client.post.assert_not_called()

    @pytest.mark.asyncio
    async def test_owns_client_when_not_injected(self, endpoints, make_response):
        """Without an injected client a short-lived one is opened."""
        resolver = BlockResolver(endpoints=endpoints)

        with patch("httpx.AsyncClient") as mock_client_class:
            session = MagicMock()
            session.post = AsyncMock(return_value=make_response(json_data={"result": "0x10"}))
            mock_client_class.return_value.__aenter__ = AsyncMock(return_value=session)
            mock_client_class.return_value.__aexit__ = AsyncMock(return_value=None)

            block = await resolver.resolve_latest_block(1)

        assert block == 16
        mock_client_class.return_value.__aexit__.assert_awaited_once()


# ==================== Global Resolver ====================


class TestGlobalResolver:
    """Tests for the process-wide resolver."""

    def test_singleton(self):
        """get_block_resolver returns the same instance."""
        assert get_block_resolver() is get_block_resolver()

    @pytest.mark.asyncio
    async def test_configured_resolver_is_used(self):
        """resolve_latest_block delegates to the configured instance."""
        custom = MagicMock()
        custom.resolve_latest_block = AsyncMock(return_value=123)
        configure_block_resolver(custom)

        assert await resolve_latest_block(1) == 123
        custom.resolve_latest_block.assert_awaited_once_with(1)


class TestPayload:
    """Tests for JSON-RPC payload construction."""

    def test_defaults(self):
        """Params default to an empty list."""
        assert build_payload("eth_chainId") == {
            "jsonrpc": "2.0",
            "id": 1,
            "method": "eth_chainId",
            "params": [],
        }
