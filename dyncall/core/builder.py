"""
Dynamic Multicall Builder
Accumulates runtime-typed calls and executes them in a single aggregate3 round trip
"""
from typing import Iterable

from rich.markup import escape

from dyncall.config.settings import MULTICALL_ADDRESS
from dyncall.core.abi.decoder import decode_function_output
from dyncall.core.abi.revert import decode_revert_reason
from dyncall.core.abi.types import to_checksum
from dyncall.core.network.multicall import (
    CallItem, CallOutcome, CallSuccess, CallFailure,
    build_request, request_value, split_response,
)
from dyncall.core.network.transport import BlockId, Transport, INPUT_KINDS
from dyncall.errors import DecodeError
from dyncall.utils.logger import get_logger

logger = get_logger(__name__)


class DynamicMulticallBuilder:
    """
    Builder for one batch of calls

    Single writer: calls are appended in place and each add returns the
    builder. A successful execute() consumes the accumulated calls; block,
    state override, input kind and address settings are kept.
    """

    def __init__(self, transport: Transport, address: str = MULTICALL_ADDRESS):
        self.transport = transport
        self.address = to_checksum(address)
        self.block: BlockId | None = None
        self.state_override: dict | None = None
        self.input_kind = "data"
        self._calls: list[CallItem] = []

    def add_call(self, call: CallItem) -> "DynamicMulticallBuilder":
        """Append a call to the batch"""
        if not isinstance(call, CallItem):
            raise TypeError(f"expected CallItem, got {type(call).__name__}")
        self._calls.append(call)
        return self

    def add_calls(self, calls: Iterable[CallItem]) -> "DynamicMulticallBuilder":
        for call in calls:
            self.add_call(call)
        return self

    def clear(self) -> "DynamicMulticallBuilder":
        """Drop accumulated calls, keeping every other setting"""
        self._calls = []
        return self

    @property
    def calls(self) -> tuple[CallItem, ...]:
        return tuple(self._calls)

    def __len__(self) -> int:
        return len(self._calls)

    def is_empty(self) -> bool:
        return not self._calls

    def with_block(self, block: BlockId | None) -> "DynamicMulticallBuilder":
        self.block = block
        return self

    def with_state_override(self, state_override: dict | None) -> "DynamicMulticallBuilder":
        self.state_override = state_override
        return self

    def with_input_kind(self, input_kind: str) -> "DynamicMulticallBuilder":
        if input_kind not in INPUT_KINDS:
            raise ValueError(f"input_kind must be one of {INPUT_KINDS}, got {input_kind!r}")
        self.input_kind = input_kind
        return self

    def with_address(self, address: str) -> "DynamicMulticallBuilder":
        self.address = to_checksum(address)
        return self

    async def execute(self) -> list[CallOutcome]:
        """
        Run every accumulated call in one aggregate call

        Returns one outcome per call, in the order the calls were added.
        Encoding errors and TransportFailure abort the whole batch; decode
        errors only turn the affected call into a CallFailure.
        """
        calls = tuple(self._calls)
        if not calls:
            return []

        # Encoding errors surface here, before any network cost
        request = build_request(calls)

        logger.debug(f"Executing batch of {len(calls)} calls via {self.address}")
        response = await self.transport.call(
            self.address,
            request,
            value=request_value(calls),
            block=self.block,
            state_override=self.state_override,
            input_kind=self.input_kind,
        )

        results = split_response(calls, response)
        outcomes = [
            self._to_outcome(i, call, result.success, result.return_data)
            for i, (call, result) in enumerate(zip(calls, results))
        ]

        # Batch executed, start fresh for the next one
        self._calls = []
        return outcomes

    async def aggregate3(self) -> list[CallOutcome]:
        return await self.execute()

    def _to_outcome(self, index: int, call: CallItem, success: bool, return_data: bytes) -> CallOutcome:
        if not success:
            reason = decode_revert_reason(return_data)
            logger.debug(
                f"Call #{index} {call.function.name} on {call.target} reverted: {escape(reason or 'no reason')}"
            )
            return CallFailure(index=index, return_data=return_data, reason=reason)

        try:
            values = decode_function_output(call.function, return_data)
        except DecodeError as e:
            logger.warning(f"Call #{index} {call.function.signature} returned undecodable data: {escape(str(e))}")
            return CallFailure(
                index=index,
                return_data=return_data,
                reason=f"decode error: {e}",
                error=e,
            )

        return CallSuccess(index=index, values=values)
