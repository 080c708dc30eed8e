"""
Multicall3 Batch Aggregator
Packs runtime-typed calls into one aggregate3 request and splits the response.
Contract Address (All Chains): 0xcA11bde05977b3631167028862bE2a173976CA11
"""
from dataclasses import dataclass, replace
from typing import NamedTuple, Sequence

from dyncall.core.abi.decoder import decode
from dyncall.core.abi.encoder import encode_function_call
from dyncall.core.abi.types import (
    FunctionDescriptor, DynamicValue, Address, Bool, UInt, Bytes, Array, Tuple,
    coerce, find_function, to_checksum,
)
from dyncall.errors import (
    BatchLengthMismatch, CallEncodingError, CallFailed, DecodeError, EncodeError, InvalidValue,
)

MULTICALL3_ABI = [
    {
        "inputs": [
            {
                "components": [
                    {"internalType": "address", "name": "target", "type": "address"},
                    {"internalType": "bool", "name": "allowFailure", "type": "bool"},
                    {"internalType": "bytes", "name": "callData", "type": "bytes"}
                ],
                "internalType": "struct Multicall3.Call3[]",
                "name": "calls",
                "type": "tuple[]"
            }
        ],
        "name": "aggregate3",
        "outputs": [
            {
                "components": [
                    {"internalType": "bool", "name": "success", "type": "bool"},
                    {"internalType": "bytes", "name": "returnData", "type": "bytes"}
                ],
                "internalType": "struct Multicall3.Result[]",
                "name": "returnData",
                "type": "tuple[]"
            }
        ],
        "stateMutability": "payable",
        "type": "function"
    },
    {
        "inputs": [
            {
                "components": [
                    {"internalType": "address", "name": "target", "type": "address"},
                    {"internalType": "bool", "name": "allowFailure", "type": "bool"},
                    {"internalType": "uint256", "name": "value", "type": "uint256"},
                    {"internalType": "bytes", "name": "callData", "type": "bytes"}
                ],
                "internalType": "struct Multicall3.Call3Value[]",
                "name": "calls",
                "type": "tuple[]"
            }
        ],
        "name": "aggregate3Value",
        "outputs": [
            {
                "components": [
                    {"internalType": "bool", "name": "success", "type": "bool"},
                    {"internalType": "bytes", "name": "returnData", "type": "bytes"}
                ],
                "internalType": "struct Multicall3.Result[]",
                "name": "returnData",
                "type": "tuple[]"
            }
        ],
        "stateMutability": "payable",
        "type": "function"
    }
]

AGGREGATE3: FunctionDescriptor = find_function(MULTICALL3_ABI, "aggregate3")
AGGREGATE3_VALUE: FunctionDescriptor = find_function(MULTICALL3_ABI, "aggregate3Value")


@dataclass(frozen=True)
class CallItem:
    """
    A single inner call of a batch

    Params that are plain Python data are coerced against the function's
    declared inputs; DynamicValue params are kept as given.
    """
    target: str
    function: FunctionDescriptor
    params: tuple[DynamicValue, ...] = ()
    allow_failure: bool = True
    value: int = 0

    def __post_init__(self):
        object.__setattr__(self, "target", to_checksum(self.target))
        if isinstance(self.value, bool) or not isinstance(self.value, int) or self.value < 0:
            raise InvalidValue(f"call value must be a non-negative integer, got {self.value!r}")
        params = tuple(self.params)
        if len(params) == len(self.function.inputs):
            params = tuple(
                coerce(typ, param, f"args[{i}]")
                for i, (typ, param) in enumerate(zip(self.function.inputs, params))
            )
        object.__setattr__(self, "params", params)

    def with_allow_failure(self, allow_failure: bool) -> "CallItem":
        return replace(self, allow_failure=allow_failure)

    def with_value(self, value: int) -> "CallItem":
        return replace(self, value=value)

    def encode(self) -> bytes:
        """Inner call data for this item"""
        return encode_function_call(self.function, self.params)


class RawCallResult(NamedTuple):
    success: bool
    return_data: bytes


@dataclass(frozen=True)
class CallSuccess:
    index: int
    values: list[DynamicValue]

    success = True

    def unwrap(self) -> list[DynamicValue]:
        return self.values

    def as_python(self) -> list:
        return [v.as_python() for v in self.values]


@dataclass(frozen=True)
class CallFailure:
    """
    A call that reverted, or whose return data could not be decoded

    `reason` is set when the revert data carried a recognized reason, or
    describes the decode error; `error` holds that decode error.
    """
    index: int
    return_data: bytes
    reason: str | None = None
    error: DecodeError | None = None

    success = False

    def unwrap(self):
        raise CallFailed(self.index, self.reason)


CallOutcome = CallSuccess | CallFailure


def _uses_value(calls: Sequence[CallItem]) -> bool:
    return any(call.value for call in calls)


def aggregate_function(calls: Sequence[CallItem]) -> FunctionDescriptor:
    """aggregate3, or aggregate3Value when any call sends value"""
    return AGGREGATE3_VALUE if _uses_value(calls) else AGGREGATE3


def request_value(calls: Sequence[CallItem]) -> int:
    """Total value the outer call must carry"""
    return sum(call.value for call in calls)


def build_request(calls: Sequence[CallItem]) -> bytes:
    """Encode the outer aggregate call for the given inner calls"""
    with_value = _uses_value(calls)

    call_structs = []
    for i, call in enumerate(calls):
        try:
            call_data = call.encode()
        except EncodeError as e:
            raise CallEncodingError(i, call.function.signature, e) from e

        if with_value:
            call_structs.append(Tuple((
                Address(call.target), Bool(call.allow_failure), UInt(call.value), Bytes(call_data)
            )))
        else:
            call_structs.append(Tuple((
                Address(call.target), Bool(call.allow_failure), Bytes(call_data)
            )))

    function = AGGREGATE3_VALUE if with_value else AGGREGATE3
    return encode_function_call(function, [Array(call_structs)])


def split_response(calls: Sequence[CallItem], raw_response: bytes) -> list[RawCallResult]:
    """Decode the aggregate response into one (success, return_data) pair per call"""
    (results,) = decode(aggregate_function(calls).outputs, raw_response)

    if len(results.items) != len(calls):
        raise BatchLengthMismatch(len(calls), len(results.items))

    return [
        RawCallResult(success=success.value, return_data=return_data.value)
        for success, return_data in (result.items for result in results.items)
    ]
