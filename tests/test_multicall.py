import pytest
from eth_abi import decode as abi_decode, encode as abi_encode

from dyncall.core.abi.types import FunctionDescriptor, Address, UInt
from dyncall.core.network.multicall import (
    AGGREGATE3, AGGREGATE3_VALUE, CallItem, CallFailure, CallSuccess, RawCallResult,
    aggregate_function, build_request, request_value, split_response,
)
from dyncall.errors import BatchLengthMismatch, CallEncodingError, CallFailed, DecodeError, InvalidValue, TypeMismatch

from conftest import HOLDER, TOKEN_A, TOKEN_B


def test_call_item_coerces_python_params(balance_of):
    call = CallItem(TOKEN_A.lower(), balance_of, [HOLDER.lower()])
    assert call.target == "0x1111111111111111111111111111111111111111"
    assert call.params == (Address(HOLDER),)
    assert call.allow_failure is True
    assert call.value == 0


def test_call_item_copies(balance_of):
    call = CallItem(TOKEN_A, balance_of, [HOLDER])
    strict = call.with_allow_failure(False).with_value(5)
    assert strict.allow_failure is False and strict.value == 5
    assert call.allow_failure is True and call.value == 0


def test_call_item_rejects_bad_target(balance_of):
    with pytest.raises(InvalidValue):
        CallItem("0xnotanaddress", balance_of, [HOLDER])


@pytest.mark.parametrize("value", [-1, True, 1.5, "10"])
def test_call_item_rejects_bad_value(total_supply, value):
    with pytest.raises(InvalidValue):
        CallItem(TOKEN_A, total_supply, value=value)

    with pytest.raises(InvalidValue):
        CallItem(TOKEN_A, total_supply).with_value(value)


def test_build_request_encodes_aggregate3(balance_of, total_supply):
    calls = [
        CallItem(TOKEN_A, balance_of, [HOLDER]),
        CallItem(TOKEN_B, total_supply, allow_failure=False),
    ]
    request = build_request(calls)

    assert request[:4] == AGGREGATE3.selector == bytes.fromhex("82ad56cb")
    (decoded,) = abi_decode(["(address,bool,bytes)[]"], request[4:])
    assert decoded == (
        (TOKEN_A, True, calls[0].encode()),
        (TOKEN_B, False, bytes.fromhex("18160ddd")),
    )
    assert calls[0].encode() == bytes.fromhex("70a08231") + bytes(12) + bytes.fromhex(HOLDER[2:])


def test_build_request_switches_to_aggregate3_value(balance_of, total_supply):
    calls = [
        CallItem(TOKEN_A, balance_of, [HOLDER]),
        CallItem(TOKEN_B, total_supply, value=10**18),
    ]
    request = build_request(calls)

    assert aggregate_function(calls) is AGGREGATE3_VALUE
    assert request[:4] == AGGREGATE3_VALUE.selector == bytes.fromhex("174dea71")
    (decoded,) = abi_decode(["(address,bool,uint256,bytes)[]"], request[4:])
    assert [item[2] for item in decoded] == [0, 10**18]
    assert request_value(calls) == 10**18


def test_build_request_reports_failing_call_index(balance_of, total_supply):
    calls = [
        CallItem(TOKEN_A, total_supply),
        CallItem(TOKEN_B, balance_of, [UInt(1)]),
    ]
    with pytest.raises(CallEncodingError) as exc:
        build_request(calls)
    assert exc.value.index == 1
    assert exc.value.signature == "balanceOf(address)"
    assert isinstance(exc.value.error, TypeMismatch)


def test_build_request_with_wrong_arity(balance_of):
    with pytest.raises(CallEncodingError):
        build_request([CallItem(TOKEN_A, balance_of, [])])


def test_split_response_preserves_order(balance_of, total_supply):
    calls = [CallItem(TOKEN_A, balance_of, [HOLDER]), CallItem(TOKEN_B, total_supply)]
    raw = abi_encode(["(bool,bytes)[]"], [[(True, b"\x01"), (False, b"\x02\x03")]])

    assert split_response(calls, raw) == [
        RawCallResult(True, b"\x01"),
        RawCallResult(False, b"\x02\x03"),
    ]


def test_split_response_length_mismatch(total_supply):
    calls = [CallItem(TOKEN_A, total_supply)] * 3
    raw = abi_encode(["(bool,bytes)[]"], [[(True, b"")] * 2])

    with pytest.raises(BatchLengthMismatch) as exc:
        split_response(calls, raw)
    assert (exc.value.expected, exc.value.received) == (3, 2)


def test_split_response_rejects_malformed_outer_payload(total_supply):
    with pytest.raises(DecodeError):
        split_response([CallItem(TOKEN_A, total_supply)], b"\x00" * 10)


def test_outcome_unwrap():
    assert CallSuccess(0, [UInt(1)]).unwrap() == [UInt(1)]
    assert CallSuccess(0, [UInt(1)]).as_python() == [1]

    failure = CallFailure(2, b"", reason="nope")
    assert failure.success is False
    with pytest.raises(CallFailed) as exc:
        failure.unwrap()
    assert exc.value.index == 2 and "nope" in str(exc.value)


def test_function_descriptor_shared_between_calls(balance_of):
    other = FunctionDescriptor("balanceOf", ["address"], ["uint256"])
    assert other == balance_of
