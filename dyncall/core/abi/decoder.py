"""
ABI Decoder
Inverse of the encoder, driven purely by the expected output types
"""
from typing import Sequence

from dyncall.core.abi.types import (
    WORD_SIZE, AbiType, FunctionDescriptor,
    BoolType, UIntType, IntType, AddressType, FixedBytesType, BytesType, StringType,
    ArrayType, FixedArrayType, TupleType,
    DynamicValue, Bool, UInt, Int, Address, FixedBytes, Bytes, String,
    Array, FixedArray, Tuple,
)
from dyncall.errors import InvalidData, InvalidType, TruncatedData

_ADDRESS_PADDING = b"\x00" * 12


def _read_word(data: bytes, pos: int, what: str) -> bytes:
    if pos + WORD_SIZE > len(data):
        raise TruncatedData(
            f"{what}: need {WORD_SIZE} bytes at position {pos}, data is {len(data)} bytes"
        )
    return data[pos:pos + WORD_SIZE]


def _read_uint(data: bytes, pos: int, what: str) -> int:
    return int.from_bytes(_read_word(data, pos, what), "big")


def _decode_sequence(types: Sequence[AbiType], data: bytes, base: int, path: str) -> list[DynamicValue]:
    """Decode a head/tail region starting at `base`; offsets are relative to it"""
    values = []
    head_pos = base
    for i, typ in enumerate(types):
        item_path = f"{path}[{i}]"
        if typ.is_dynamic:
            offset = _read_uint(data, head_pos, f"{item_path} offset")
            start = base + offset
            if start >= len(data):
                raise TruncatedData(
                    f"{item_path}: offset {offset} points past the end of {len(data)} bytes"
                )
            values.append(decode_value(typ, data, start, item_path))
            head_pos += WORD_SIZE
        else:
            values.append(decode_value(typ, data, head_pos, item_path))
            head_pos += typ.head_size
    return values


def _read_length_prefixed(data: bytes, pos: int, path: str) -> bytes:
    length = _read_uint(data, pos, f"{path} length prefix")
    start = pos + WORD_SIZE
    if length > len(data) - start:
        raise InvalidData(
            f"{path}: length prefix {length} runs past the end of {len(data)} bytes"
        )
    return data[start:start + length]


def decode_value(typ: AbiType, data: bytes, pos: int, path: str = "value") -> DynamicValue:
    """
    Decode one value

    `pos` is the head slot for static types and the start of the tail
    encoding for dynamic ones.
    """
    if isinstance(typ, BoolType):
        word = _read_uint(data, pos, path)
        if word not in (0, 1):
            raise InvalidData(f"{path}: bool word holds {word}")
        return Bool(word == 1)

    if isinstance(typ, UIntType):
        word = _read_uint(data, pos, path)
        if word >> typ.bits:
            raise InvalidData(f"{path}: {word} does not fit in {typ}")
        return UInt(word, typ.bits)

    if isinstance(typ, IntType):
        word = int.from_bytes(_read_word(data, pos, path), "big", signed=True)
        bound = 1 << (typ.bits - 1)
        if not -bound <= word < bound:
            raise InvalidData(f"{path}: {word} does not fit in {typ}")
        return Int(word, typ.bits)

    if isinstance(typ, AddressType):
        word = _read_word(data, pos, path)
        if word[:12] != _ADDRESS_PADDING:
            raise InvalidData(f"{path}: address word has non-zero high bytes")
        return Address(word[12:])

    if isinstance(typ, FixedBytesType):
        word = _read_word(data, pos, path)
        return FixedBytes(word[:typ.size])

    if isinstance(typ, BytesType):
        return Bytes(_read_length_prefixed(data, pos, path))

    if isinstance(typ, StringType):
        raw = _read_length_prefixed(data, pos, path)
        try:
            return String(raw.decode("utf-8"))
        except UnicodeDecodeError as e:
            raise InvalidData(f"{path}: string is not valid UTF-8 ({e.reason})") from e

    if isinstance(typ, ArrayType):
        count = _read_uint(data, pos, f"{path} length prefix")
        start = pos + WORD_SIZE
        # Each element needs at least its head slot, and at least one byte
        if count * max(typ.element.head_size, 1) > len(data) - start:
            raise InvalidData(
                f"{path}: length prefix {count} runs past the end of {len(data)} bytes"
            )
        return Array(_decode_sequence([typ.element] * count, data, start, path))

    if isinstance(typ, FixedArrayType):
        return FixedArray(_decode_sequence([typ.element] * typ.length, data, pos, path))

    if isinstance(typ, TupleType):
        return Tuple(_decode_sequence(typ.fields, data, pos, path))

    raise InvalidType(f"{path}: unsupported ABI type {typ!r}")


def decode(outputs: Sequence[AbiType], data: bytes) -> list[DynamicValue]:
    """Decode return data against the ordered output types"""
    return _decode_sequence(list(outputs), bytes(data), 0, "outputs")


def decode_function_output(function: FunctionDescriptor, data: bytes) -> list[DynamicValue]:
    return decode(function.outputs, data)
