"""
Global settings for dynamic multicall
Values can be overridden through environment variables or a .env file
"""
import os
from typing import Final

from dotenv import load_dotenv

# Load .env file
load_dotenv()


def _get_float_env(key: str, default: float) -> float:
    try:
        return float(os.getenv(key, default))
    except ValueError:
        return default


def _get_list_env(key: str, default: list[str]) -> list[str]:
    raw_value = os.getenv(key)
    if not raw_value:
        return default
    return [item.strip() for item in raw_value.split(",") if item.strip()]


# Multicall3 is deployed at the same address on all supported chains
MULTICALL3_ADDRESS: Final[str] = "0xcA11bde05977b3631167028862bE2a173976CA11"

# Aggregation contract used by the builder
MULTICALL_ADDRESS: Final[str] = os.getenv("MULTICALL_ADDRESS", MULTICALL3_ADDRESS)

# RPC endpoints tried in order of health, first is preferred
RPC_ENDPOINTS: Final[list[str]] = _get_list_env(
    "RPC_ENDPOINTS",
    [
        "https://eth.llamarpc.com",
        "https://ethereum.publicnode.com",
        "https://1rpc.io/eth",
    ],
)

# Request timeout in seconds for the aggregate call
REQUEST_TIMEOUT: Final[float] = _get_float_env("REQUEST_TIMEOUT", 20.0)

# Block the aggregate call is simulated against
DEFAULT_BLOCK: Final[str] = os.getenv("DEFAULT_BLOCK", "latest")

# Logging level
LOG_LEVEL: Final[str] = os.getenv("LOG_LEVEL", "INFO").upper()
