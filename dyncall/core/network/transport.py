"""
Transport for the aggregate call
Read-only eth_call simulation with automatic RPC endpoint failover
"""
import asyncio
import time
from dataclasses import dataclass
from typing import Any, Protocol

import aiohttp
from web3 import AsyncWeb3, AsyncHTTPProvider
from web3.exceptions import ContractLogicError

from dyncall.config.settings import DEFAULT_BLOCK, REQUEST_TIMEOUT, RPC_ENDPOINTS
from dyncall.core.abi.types import to_checksum
from dyncall.errors import TransportFailure
from dyncall.utils.logger import get_logger

logger = get_logger(__name__)

BlockId = int | str

INPUT_KINDS = ("data", "input", "both")

# Shared session for all providers created by this module
_GLOBAL_SESSION: aiohttp.ClientSession | None = None


async def get_global_session() -> aiohttp.ClientSession:
    """Get or create a shared session with DNS caching"""
    global _GLOBAL_SESSION
    if _GLOBAL_SESSION is None or _GLOBAL_SESSION.closed:
        connector = aiohttp.TCPConnector(
            use_dns_cache=True,
            ttl_dns_cache=600,
            limit=100,
            limit_per_host=20,
            enable_cleanup_closed=True,
        )
        _GLOBAL_SESSION = aiohttp.ClientSession(
            connector=connector,
            timeout=aiohttp.ClientTimeout(total=30, connect=10)
        )
    return _GLOBAL_SESSION


class Transport(Protocol):
    """Executes one encoded call against a contract and returns the raw response"""

    async def call(
        self,
        to: str,
        data: bytes,
        *,
        value: int = 0,
        block: BlockId | None = None,
        state_override: dict | None = None,
        input_kind: str = "data",
    ) -> bytes:
        ...


@dataclass
class EndpointHealth:
    """Track health of an RPC endpoint"""
    url: str
    failures: int = 0
    last_failure: float = 0
    last_success: float = 0
    avg_latency_ms: float = 0

    def record_success(self, latency_ms: float):
        self.last_success = time.time()
        self.failures = 0
        # Exponential moving average
        if self.avg_latency_ms == 0:
            self.avg_latency_ms = latency_ms
        else:
            self.avg_latency_ms = 0.8 * self.avg_latency_ms + 0.2 * latency_ms

    def record_failure(self):
        self.failures += 1
        self.last_failure = time.time()

    def is_healthy(self) -> bool:
        # Unhealthy after 3+ failures in the last 60 seconds
        if self.failures >= 3 and time.time() - self.last_failure < 60:
            return False
        return True


def build_call_transaction(
    to: str,
    data: bytes,
    value: int = 0,
    input_kind: str = "data",
) -> dict[str, Any]:
    """Transaction dict for eth_call, placing the payload per input_kind"""
    if input_kind not in INPUT_KINDS:
        raise ValueError(f"input_kind must be one of {INPUT_KINDS}, got {input_kind!r}")

    payload = "0x" + bytes(data).hex()
    tx: dict[str, Any] = {"to": to_checksum(to)}
    if input_kind in ("data", "both"):
        tx["data"] = payload
    if input_kind in ("input", "both"):
        tx["input"] = payload
    if value:
        tx["value"] = value
    return tx


def _revert_data(error: ContractLogicError) -> bytes | None:
    data = getattr(error, "data", None)
    if isinstance(data, (bytes, bytearray)):
        return bytes(data)
    if isinstance(data, str) and data.startswith("0x"):
        try:
            return bytes.fromhex(data[2:])
        except ValueError:
            return None
    return None


class Web3Transport:
    """
    eth_call transport over one or more RPC endpoints

    Endpoints are tried fastest-healthy first. A revert reported by a node is
    final and is not retried elsewhere; connection errors and timeouts fail
    over to the next endpoint.
    """

    def __init__(
        self,
        endpoints: list[str] | None = None,
        timeout: float = REQUEST_TIMEOUT,
        default_block: BlockId = DEFAULT_BLOCK,
        web3_instances: dict[str, AsyncWeb3] | None = None,
    ):
        if endpoints is None:
            endpoints = list(web3_instances) if web3_instances else RPC_ENDPOINTS
        self.endpoints = list(endpoints)
        for url in web3_instances or {}:
            if url not in self.endpoints:
                self.endpoints.append(url)
        if not self.endpoints:
            raise ValueError("at least one RPC endpoint is required")

        self.timeout = timeout
        self.default_block = default_block
        self._web3_instances: dict[str, AsyncWeb3] = dict(web3_instances or {})
        self._endpoint_health: dict[str, EndpointHealth] = {
            url: EndpointHealth(url=url) for url in self.endpoints
        }

    async def _get_web3(self, url: str) -> AsyncWeb3:
        """Get or create a Web3 instance for a specific endpoint"""
        if url not in self._web3_instances:
            session = await get_global_session()
            provider = AsyncHTTPProvider(url, request_kwargs={"timeout": self.timeout})
            await provider.cache_async_session(session)
            self._web3_instances[url] = AsyncWeb3(provider)
        return self._web3_instances[url]

    def _ordered_endpoints(self) -> list[str]:
        """Healthy endpoints by latency, then unhealthy ones as a last resort"""
        healthy = []
        unhealthy = []
        for url in self.endpoints:
            health = self._endpoint_health[url]
            if health.is_healthy():
                healthy.append((url, health.avg_latency_ms or float("inf")))
            else:
                unhealthy.append(url)

        # Stable sort keeps configured order among untested endpoints
        healthy.sort(key=lambda x: x[1])
        return [url for url, _ in healthy] + unhealthy

    def health(self, url: str) -> EndpointHealth:
        return self._endpoint_health[url]

    async def call(
        self,
        to: str,
        data: bytes,
        *,
        value: int = 0,
        block: BlockId | None = None,
        state_override: dict | None = None,
        input_kind: str = "data",
    ) -> bytes:
        """Simulate the call with eth_call and return the raw return data"""
        tx = build_call_transaction(to, data, value, input_kind)
        block_identifier = self.default_block if block is None else block
        last_error: Exception | None = None

        for url in self._ordered_endpoints():
            web3 = await self._get_web3(url)
            health = self._endpoint_health[url]

            start_time = time.time()
            try:
                result = await asyncio.wait_for(
                    web3.eth.call(tx, block_identifier, state_override),
                    timeout=self.timeout
                )
            except ContractLogicError as e:
                # The node answered; the call itself reverted
                health.record_success((time.time() - start_time) * 1000)
                raise TransportFailure(
                    f"aggregate call reverted: {e}",
                    reverted=True,
                    revert_data=_revert_data(e),
                ) from e
            except asyncio.TimeoutError as e:
                health.record_failure()
                logger.warning(f"RPC endpoint {url} timed out after {self.timeout}s")
                last_error = e
                continue
            except Exception as e:
                health.record_failure()
                logger.warning(f"RPC endpoint {url} failed: {e}")
                last_error = e
                continue

            health.record_success((time.time() - start_time) * 1000)
            return bytes(result)

        raise TransportFailure(f"All RPC endpoints failed: {last_error!r}") from last_error

    async def close(self):
        """Disconnect providers and close the shared session"""
        global _GLOBAL_SESSION
        for w3 in self._web3_instances.values():
            provider = getattr(w3, "provider", None)
            if provider is not None and hasattr(provider, "disconnect"):
                await provider.disconnect()
        self._web3_instances.clear()

        if _GLOBAL_SESSION and not _GLOBAL_SESSION.closed:
            await _GLOBAL_SESSION.close()
            _GLOBAL_SESSION = None
