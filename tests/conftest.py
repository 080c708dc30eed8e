"""
Shared fixtures: a transport stub that behaves like the Multicall3 contract
"""
from typing import Callable

import pytest

from dyncall.core.abi.decoder import decode
from dyncall.core.abi.encoder import encode_values
from dyncall.core.abi.types import FunctionDescriptor, Array, Bool, Bytes, Tuple
from dyncall.core.network.multicall import AGGREGATE3, AGGREGATE3_VALUE, RawCallResult
from dyncall.errors import TransportFailure

TOKEN_A = "0x1111111111111111111111111111111111111111"
TOKEN_B = "0x2222222222222222222222222222222222222222"
TOKEN_C = "0x3333333333333333333333333333333333333333"
HOLDER = "0xd8dA6BF26964aF9D7eEd9e03E53415D37aA96045"

Handler = Callable[[bytes], RawCallResult]


class StubMulticallTransport:
    """
    Answers aggregate3 requests from scripted per-call handlers

    Handlers are keyed by (target, selector) and receive the inner call data.
    Like the real contract, a failing call with allowFailure=false reverts the
    whole aggregate call.
    """

    def __init__(self):
        self.handlers: dict[tuple[str, bytes], Handler] = {}
        self.requests: list[dict] = []
        self.raw_response: bytes | None = None
        self.error: Exception | None = None

    def on(self, target: str, function: FunctionDescriptor, handler: Handler) -> "StubMulticallTransport":
        self.handlers[(target.lower(), function.selector)] = handler
        return self

    def returns(self, target: str, function: FunctionDescriptor, data: bytes) -> "StubMulticallTransport":
        return self.on(target, function, lambda _: RawCallResult(True, data))

    def reverts(self, target: str, function: FunctionDescriptor, data: bytes = b"") -> "StubMulticallTransport":
        return self.on(target, function, lambda _: RawCallResult(False, data))

    async def call(self, to, data, *, value=0, block=None, state_override=None, input_kind="data"):
        self.requests.append({
            "to": to,
            "data": data,
            "value": value,
            "block": block,
            "state_override": state_override,
            "input_kind": input_kind,
        })
        if self.error is not None:
            raise self.error
        if self.raw_response is not None:
            return self.raw_response

        selector, payload = data[:4], data[4:]
        if selector == AGGREGATE3.selector:
            function = AGGREGATE3
        elif selector == AGGREGATE3_VALUE.selector:
            function = AGGREGATE3_VALUE
        else:
            raise TransportFailure(f"unknown selector 0x{selector.hex()}", reverted=True)

        (calls,) = decode(function.inputs, payload)
        results = []
        for call in calls.items:
            target, allow_failure, call_data = (
                call.items[0].value, call.items[1].value, call.items[-1].value
            )
            handler = self.handlers.get((target.lower(), call_data[:4]))
            result = handler(call_data) if handler else RawCallResult(False, b"")
            if not result.success and not allow_failure:
                raise TransportFailure("Multicall3: call failed", reverted=True)
            results.append(Tuple((Bool(result.success), Bytes(result.return_data))))

        return encode_values(function.outputs, [Array(results)])


@pytest.fixture
def transport() -> StubMulticallTransport:
    return StubMulticallTransport()


@pytest.fixture
def balance_of() -> FunctionDescriptor:
    return FunctionDescriptor("balanceOf", ["address"], ["uint256"])


@pytest.fixture
def total_supply() -> FunctionDescriptor:
    return FunctionDescriptor("totalSupply", [], ["uint256"])


@pytest.fixture
def symbol() -> FunctionDescriptor:
    return FunctionDescriptor("symbol", [], ["string"])
