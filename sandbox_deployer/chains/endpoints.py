"""
Upstream RPC Endpoints

Public JSON-RPC endpoints used to look up the latest block of a chain
before forking it. Several URLs per chain are rotated round-robin.
"""

# chain id -> ordered upstream URLs
RPC_ENDPOINTS: dict[int, list[str]] = {
    1: ["https://rpc.ankr.com/eth"],
    10: ["https://rpc.ankr.com/optimism"],
    56: ["https://rpc.ankr.com/bsc"],
    97: ["https://rpc.ankr.com/bsc_testnet_chapel"],
    100: ["https://rpc.ankr.com/gnosis"],
    137: ["https://rpc.ankr.com/polygon"],
    165: ["https://testnet.omni.network"],
    1101: ["https://zkevm-rpc.com"],
    2222: ["https://evm.kava.io"],
    42161: ["https://rpc.ankr.com/arbitrum"],
    43114: ["https://rpc.ankr.com/avalanche"],
    59141: ["https://rpc.sepolia.linea.build"],
    59144: ["https://rpc.linea.build"],
    80002: ["https://rpc.ankr.com/polygon_amoy"],
    421614: ["https://rpc.ankr.com/arbitrum_sepolia"],
    11155111: ["https://rpc.ankr.com/eth_sepolia"],
}
