#!/usr/bin/env python3
"""
Dynamic Multicall Demo
======================
Batches WETH balanceOf and totalSupply into a single aggregate3 eth_call

Endpoints, block and log level come from the environment (see
dyncall/config/settings.py).

Usage:
    python main.py [holder_address]
"""
import asyncio
import sys

from rich.markup import escape

from dyncall.core.abi.types import FunctionDescriptor
from dyncall.core.builder import DynamicMulticallBuilder
from dyncall.core.network.multicall import CallItem
from dyncall.core.network.transport import Web3Transport
from dyncall.errors import MulticallError
from dyncall.ui.terminal import print_outcomes
from dyncall.utils.logger import setup_logging, get_logger

logger = get_logger(__name__)

WETH = "0xC02aaA39b223FE8D0A0e5C4F27eAD9083C756Cc2"
DEFAULT_HOLDER = "0xd8dA6BF26964aF9D7eEd9e03E53415D37aA96045"

ERC20_ABI = [
    {
        "inputs": [],
        "name": "totalSupply",
        "outputs": [{"internalType": "uint256", "name": "", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function"
    },
    {
        "inputs": [{"internalType": "address", "name": "owner", "type": "address"}],
        "name": "balanceOf",
        "outputs": [{"internalType": "uint256", "name": "", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function"
    },
]


async def main(holder: str) -> int:
    """Main entry point"""
    setup_logging()

    functions = {
        entry["name"]: FunctionDescriptor.from_abi(entry, verify_selector=True)
        for entry in ERC20_ABI
    }

    transport = Web3Transport()
    builder = (
        DynamicMulticallBuilder(transport)
        .add_call(CallItem(WETH, functions["balanceOf"], [holder]))
        .add_call(CallItem(WETH, functions["totalSupply"]))
    )
    calls = builder.calls

    try:
        outcomes = await builder.execute()
    except MulticallError as e:
        logger.error(f"[red]Batch failed: {escape(str(e))}[/red]")
        return 1
    finally:
        await transport.close()

    print_outcomes(calls, outcomes)
    return 0


if __name__ == "__main__":
    try:
        sys.exit(asyncio.run(main(sys.argv[1] if len(sys.argv) > 1 else DEFAULT_HOLDER)))
    except KeyboardInterrupt:
        pass
