"""
ABI Encoder
Standard head/tail layout for runtime-typed values
"""
from typing import Sequence

from dyncall.core.abi.types import (
    WORD_SIZE, AbiType, FunctionDescriptor,
    BoolType, UIntType, IntType, AddressType, FixedBytesType, BytesType, StringType,
    ArrayType, FixedArrayType, TupleType,
    DynamicValue, Bool, UInt, Int, Address, FixedBytes, Bytes, String,
    Array, FixedArray, Tuple,
)
from dyncall.errors import InvalidType, InvalidValue, TypeMismatch


def _check_int(value):
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidValue(f"expected an integer, got {type(value).__name__}")


def encode_uint(value: int, bits: int = 256) -> bytes:
    """Unsigned big-endian word"""
    _check_int(value)
    if value < 0 or value >= 1 << bits:
        raise InvalidValue(f"{value} does not fit in uint{bits}")
    return value.to_bytes(WORD_SIZE, "big")


def encode_int(value: int, bits: int = 256) -> bytes:
    """Two's complement big-endian word"""
    _check_int(value)
    bound = 1 << (bits - 1)
    if not -bound <= value < bound:
        raise InvalidValue(f"{value} does not fit in int{bits}")
    return value.to_bytes(WORD_SIZE, "big", signed=True)


def _pad_right(data: bytes) -> bytes:
    remainder = len(data) % WORD_SIZE
    if remainder:
        data += b"\x00" * (WORD_SIZE - remainder)
    return data


def _encode_length_prefixed(data: bytes) -> bytes:
    return encode_uint(len(data)) + _pad_right(data)


def _mismatch(path: str, typ: AbiType, value: DynamicValue) -> TypeMismatch:
    return TypeMismatch(f"{path}: {type(value).__name__} value does not match type {typ}")


def _encode_sequence(types: Sequence[AbiType], values: Sequence[DynamicValue], path: str) -> bytes:
    """Head/tail encode an ordered sequence; offsets are relative to the head start"""
    encoded = [encode_value(t, v, f"{path}[{i}]") for i, (t, v) in enumerate(zip(types, values))]

    head_length = sum(t.head_size for t in types)
    heads = []
    tails = []
    offset = head_length
    for typ, chunk in zip(types, encoded):
        if typ.is_dynamic:
            heads.append(encode_uint(offset))
            tails.append(chunk)
            offset += len(chunk)
        else:
            heads.append(chunk)

    return b"".join(heads) + b"".join(tails)


def encode_value(typ: AbiType, value: DynamicValue, path: str = "value") -> bytes:
    """
    Self-contained encoding of a single value

    For static types this is the value's head representation; for dynamic
    types it is what goes into the tail region.
    """
    if not isinstance(value, DynamicValue):
        raise TypeMismatch(f"{path}: expected a DynamicValue, got {type(value).__name__}")

    if isinstance(typ, BoolType):
        if not isinstance(value, Bool):
            raise _mismatch(path, typ, value)
        if not isinstance(value.value, bool):
            raise InvalidValue(f"{path}: bool value must be bool, got {type(value.value).__name__}")
        return encode_uint(1 if value.value else 0)

    if isinstance(typ, UIntType):
        if not isinstance(value, UInt) or value.bits != typ.bits:
            raise _mismatch(path, typ, value)
        return encode_uint(value.value, typ.bits)

    if isinstance(typ, IntType):
        if not isinstance(value, Int) or value.bits != typ.bits:
            raise _mismatch(path, typ, value)
        return encode_int(value.value, typ.bits)

    if isinstance(typ, AddressType):
        if not isinstance(value, Address):
            raise _mismatch(path, typ, value)
        return value.to_bytes().rjust(WORD_SIZE, b"\x00")

    if isinstance(typ, FixedBytesType):
        if not isinstance(value, FixedBytes):
            raise _mismatch(path, typ, value)
        if value.size != typ.size:
            raise InvalidValue(f"{path}: {typ} needs {typ.size} bytes, got {value.size}")
        return value.value.ljust(WORD_SIZE, b"\x00")

    if isinstance(typ, BytesType):
        if not isinstance(value, Bytes):
            raise _mismatch(path, typ, value)
        return _encode_length_prefixed(value.value)

    if isinstance(typ, StringType):
        if not isinstance(value, String):
            raise _mismatch(path, typ, value)
        if not isinstance(value.value, str):
            raise InvalidValue(f"{path}: string value must be str, got {type(value.value).__name__}")
        return _encode_length_prefixed(value.value.encode("utf-8"))

    if isinstance(typ, ArrayType):
        if not isinstance(value, Array):
            raise _mismatch(path, typ, value)
        count = len(value.items)
        return encode_uint(count) + _encode_sequence([typ.element] * count, value.items, path)

    if isinstance(typ, FixedArrayType):
        if not isinstance(value, FixedArray):
            raise _mismatch(path, typ, value)
        if len(value.items) != typ.length:
            raise InvalidValue(f"{path}: {typ} needs {typ.length} items, got {len(value.items)}")
        return _encode_sequence([typ.element] * typ.length, value.items, path)

    if isinstance(typ, TupleType):
        if not isinstance(value, Tuple):
            raise _mismatch(path, typ, value)
        if len(value.items) != len(typ.fields):
            raise TypeMismatch(f"{path}: {typ} has {len(typ.fields)} fields, got {len(value.items)}")
        return _encode_sequence(typ.fields, value.items, path)

    raise InvalidType(f"{path}: unsupported ABI type {typ!r}")


def encode_values(types: Sequence[AbiType], values: Sequence[DynamicValue]) -> bytes:
    """Encode a top-level argument list without a selector"""
    if len(types) != len(values):
        raise TypeMismatch(f"expected {len(types)} values, got {len(values)}")
    return _encode_sequence(list(types), list(values), "args")


def encode(selector: bytes, inputs: Sequence[AbiType], values: Sequence[DynamicValue]) -> bytes:
    """Call data: selector followed by the head/tail encoded arguments"""
    return bytes(selector) + encode_values(inputs, values)


def encode_function_call(function: FunctionDescriptor, values: Sequence[DynamicValue]) -> bytes:
    return encode(function.selector, function.inputs, values)
