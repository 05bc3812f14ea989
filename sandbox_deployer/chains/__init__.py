"""
Chain Lookups

Upstream RPC table and round-robin latest-block resolution.
"""

from sandbox_deployer.chains.endpoints import RPC_ENDPOINTS
from sandbox_deployer.chains.resolver import (
    BlockResolver,
    configure_block_resolver,
    get_block_resolver,
    resolve_latest_block,
)

__all__ = [
    "RPC_ENDPOINTS",
    "BlockResolver",
    "configure_block_resolver",
    "get_block_resolver",
    "resolve_latest_block",
]
