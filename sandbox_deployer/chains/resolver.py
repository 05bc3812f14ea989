"""
Block Resolver

Resolves the latest block number of a chain through public upstream RPC
endpoints. Each call picks the next endpoint of the chain round-robin; no
health tracking and no retries are done here, callers decide whether a
failed lookup is worth repeating.
"""

import httpx
import structlog

from sandbox_deployer.chains.endpoints import RPC_ENDPOINTS
from sandbox_deployer.chains.jsonrpc import post_rpc
from sandbox_deployer.exceptions import UnsupportedChainError, UpstreamError
from sandbox_deployer.models import parse_quantity
from sandbox_deployer.transport import client_session

logger = structlog.get_logger(__name__)


class BlockResolver:
    """
    Round-robin latest-block lookup over a fixed endpoint table.

    The cursor of a chain advances on every call, whether or not the
    call succeeds.
    """

    def __init__(
        self,
        endpoints: dict[int, list[str]] | None = None,
        timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """
        Initialize the resolver.

        Args:
            endpoints: chain id -> upstream URLs (defaults to RPC_ENDPOINTS)
            timeout: HTTP timeout in seconds
            client: Optional shared httpx client
        """
        source = RPC_ENDPOINTS if endpoints is None else endpoints
        self._endpoints = {chain_id: list(urls) for chain_id, urls in source.items() if urls}
        self._cursors = dict.fromkeys(self._endpoints, 0)
        self._timeout = timeout
        self._client = client

    def supports(self, chain_id: int) -> bool:
        """Check whether upstream endpoints are configured for a chain."""
        return chain_id in self._endpoints

    def next_endpoint(self, chain_id: int) -> str:
        """
        Return the endpoint under the cursor and advance the cursor.

        Raises:
            UnsupportedChainError: If the chain has no configured endpoints
        """
        urls = self._endpoints.get(chain_id)
        if not urls:
            raise UnsupportedChainError(chain_id)
        index = self._cursors[chain_id]
        self._cursors[chain_id] = (index + 1) % len(urls)
        return urls[index]

    async def resolve_latest_block(self, chain_id: int) -> int:
        """
        Fetch the latest block number of a chain with eth_blockNumber.

        Args:
            chain_id: EVM chain id

        Returns:
            Latest block number as an integer

        Raises:
            UnsupportedChainError: If the chain has no configured endpoints
            UpstreamError: If the call fails or the response is unusable
        """
        url = self.next_endpoint(chain_id)

        try:
            async with client_session(self._client, self._timeout) as client:
                response = await post_rpc(client, url, "eth_blockNumber")
        except httpx.HTTPError as e:
            logger.error("latest_block_request_failed", chain_id=chain_id, upstream=url, error=str(e))
            raise UpstreamError(f"eth_blockNumber request to {url} failed: {e}") from e

        if not response.is_success:
            logger.error(
                "latest_block_http_error",
                chain_id=chain_id,
                upstream=url,
                status_code=response.status_code,
            )
            raise UpstreamError(f"HTTP error from {url}: status {response.status_code}")

        try:
            body = response.json()
        except ValueError as e:
            raise UpstreamError(f"Non-JSON response from {url}") from e

        if not isinstance(body, dict):
            raise UpstreamError(f"Unexpected JSON-RPC response from {url}")
        if body.get("error"):
            raise UpstreamError(f"JSON-RPC error from {url}: {body['error']}")

        try:
            block_number = parse_quantity(body.get("result"))
        except ValueError as e:
            raise UpstreamError(f"Invalid block number from {url}: {body.get('result')!r}") from e

        logger.info(
            "latest_block_resolved",
            chain_id=chain_id,
            block_number=block_number,
            upstream=url,
        )
        return block_number


# Process-wide resolver so cursors persist across calls
_resolver: BlockResolver | None = None


def get_block_resolver() -> BlockResolver:
    """Get the global block resolver instance."""
    global _resolver
    if _resolver is None:
        _resolver = BlockResolver()
    return _resolver


def configure_block_resolver(resolver: BlockResolver | None) -> None:
    """
    Set a custom resolver instance.

    Useful for testing or when the endpoint table comes from elsewhere.
    """
    global _resolver
    _resolver = resolver


async def resolve_latest_block(chain_id: int) -> int:
    """Resolve the latest block of a chain with the global resolver."""
    return await get_block_resolver().resolve_latest_block(chain_id)
