import pytest
from eth_abi import encode as abi_encode

from dyncall.core.abi.encoder import encode, encode_function_call, encode_value, encode_values
from dyncall.core.abi.types import (
    parse_type, coerce, FunctionDescriptor,
    BoolType, UIntType, IntType, BytesType, FixedBytesType, FixedArrayType,
    Address, Array, Bool, Bytes, FixedArray, FixedBytes, Int, String, Tuple, UInt,
)
from dyncall.errors import InvalidValue, TypeMismatch

HOLDER = "0xd8dA6BF26964aF9D7eEd9e03E53415D37aA96045"


def _word(n: int) -> bytes:
    return n.to_bytes(32, "big")


def test_static_inputs_have_no_tail():
    fn = FunctionDescriptor("add", ["uint256", "uint256"], ["uint256"])
    data = encode_function_call(fn, [UInt(1), UInt(2)])
    assert len(data) == 4 + 32 * 2
    assert data == fn.selector + _word(1) + _word(2)


def test_dynamic_input_uses_offset_and_length_prefix():
    payload = b"hello dynamic world, longer than one word!"
    data = encode(b"\x12\x34\x56\x78", [UIntType(), BytesType()], [UInt(7), Bytes(payload)])
    body = data[4:]

    assert body[:32] == _word(7)
    # Offset is relative to the start of the head region
    offset = int.from_bytes(body[32:64], "big")
    assert offset == 64
    assert int.from_bytes(body[offset:offset + 32], "big") == len(payload)
    assert body[offset + 32:offset + 32 + len(payload)] == payload
    # Right padded to a word boundary
    assert len(body) == 64 + 32 + 64
    assert body[offset + 32 + len(payload):] == b"\x00" * (64 - len(payload))


def test_balance_of_call_data():
    fn = FunctionDescriptor("balanceOf", ["address"], ["uint256"])
    data = encode_function_call(fn, [Address(HOLDER)])
    assert data.hex() == "70a08231" + "00" * 12 + HOLDER[2:].lower()


def test_scalar_word_layouts():
    assert encode_value(parse_type("bool"), Bool(True)) == _word(1)
    assert encode_value(parse_type("int8"), Int(-1, 8)) == b"\xff" * 32
    assert encode_value(parse_type("bytes2"), FixedBytes(b"\xab\xcd")) == b"\xab\xcd" + b"\x00" * 30
    assert encode_value(parse_type("address"), Address(HOLDER))[:12] == b"\x00" * 12


@pytest.mark.parametrize(
    "types, values",
    [
        (["uint256", "address", "bool"], [2**256 - 1, HOLDER, True]),
        (["int256", "int8"], [-(2**255), -128]),
        (["bytes", "string"], [b"", "ünïcode"]),
        (["bytes32", "bytes"], [b"\x01" * 32, b"\x02" * 70]),
        (["uint256[]", "string[]"], [[1, 2, 3], ["a", "", "abc" * 20]]),
        (["address[2]", "uint8[3][]"], [[HOLDER, HOLDER], [[1, 2, 3], [4, 5, 6]]]),
        (["(address,bool,bytes)[]"], [[(HOLDER, True, b"\x70\xa0"), (HOLDER, False, b"")]]),
        (["((uint256,string)[],bytes)", "uint16"], [([(1, "x"), (2, "yy")], b"\xff"), 9]),
        (["string[2]", "(bool,uint256[])"], [["p", "q"], (True, [])]),
    ],
)
def test_matches_reference_encoder(types, values):
    abi_types = [parse_type(t) for t in types]
    dynamic_values = [coerce(t, v) for t, v in zip(abi_types, values)]
    assert encode_values(abi_types, dynamic_values) == abi_encode(types, values)


def test_arity_mismatch():
    with pytest.raises(TypeMismatch):
        encode_values([UIntType()], [])


@pytest.mark.parametrize(
    "typ, value",
    [
        ("uint256", Int(1)),
        ("uint256", UInt(1, 128)),
        ("int256", UInt(1)),
        ("bool", UInt(1)),
        ("address", String(HOLDER)),
        ("bytes", FixedBytes(b"\x01")),
        ("bytes4", Bytes(b"\x01\x02\x03\x04")),
        ("string", Bytes(b"x")),
        ("uint256[]", FixedArray((UInt(1),))),
        ("uint256[1]", Array((UInt(1),))),
        ("(uint256,bool)", Array((UInt(1), Bool(True)))),
        ("(uint256,bool)", Tuple((UInt(1),))),
        ("uint256", 5),
    ],
)
def test_shape_mismatches_raise_type_mismatch(typ, value):
    with pytest.raises(TypeMismatch):
        encode_value(parse_type(typ), value)


def test_nested_mismatch_reports_path():
    typ = parse_type("(uint256,bool[])[]")
    value = Array((Tuple((UInt(1), Array((Bool(True), UInt(0))))),))
    with pytest.raises(TypeMismatch) as exc:
        encode_values([typ], [value])
    assert "args[0][0][1][1]" in str(exc.value)


@pytest.mark.parametrize(
    "typ, value",
    [
        (UIntType(8), UInt(256, 8)),
        (UIntType(256), UInt(-1)),
        (UIntType(256), UInt(2**256)),
        (IntType(8), Int(128, 8)),
        (IntType(8), Int(-129, 8)),
        (FixedBytesType(4), FixedBytes(b"\x01\x02\x03")),
        (FixedArrayType(UIntType(), 2), FixedArray((UInt(1),))),
        (UIntType(256), UInt(1.5)),
        (BoolType(), Bool("no")),
        (BoolType(), Bool(1)),
    ],
)
def test_out_of_range_values_raise_invalid_value(typ, value):
    with pytest.raises(InvalidValue):
        encode_value(typ, value)


def test_encoding_is_deterministic():
    types = [parse_type("(string,uint256[])[]")]
    values = [coerce(types[0], [("a", [1]), ("b", [2, 3])])]
    assert encode_values(types, values) == encode_values(types, values)
