"""
ABI type descriptors, dynamic values and function descriptors
Functions are only known at run time, so both types and values are tagged variants
"""
import re
from dataclasses import dataclass, field
from typing import Any

from web3 import Web3

from dyncall.errors import AbiError, InvalidType, InvalidValue, SelectorMismatch, TypeMismatch

WORD_SIZE = 32
SELECTOR_SIZE = 4
ADDRESS_SIZE = 20

_INT_RE = re.compile(r"^(u?)int(\d*)$")
_FIXED_BYTES_RE = re.compile(r"^bytes(\d+)$")


# =============================================================================
# Type descriptors
# =============================================================================

class AbiType:
    """Base class for ABI type descriptors"""

    @property
    def is_dynamic(self) -> bool:
        return False

    @property
    def head_size(self) -> int:
        """Bytes this type occupies in the head region of a sequence"""
        return WORD_SIZE

    @property
    def canonical(self) -> str:
        raise NotImplementedError

    def __str__(self) -> str:
        return self.canonical


def _check_bits(bits: int):
    if isinstance(bits, bool) or not isinstance(bits, int) or bits % 8 or not 8 <= bits <= 256:
        raise InvalidType(f"integer width must be a multiple of 8 in [8, 256], got {bits!r}")


@dataclass(frozen=True)
class BoolType(AbiType):

    @property
    def canonical(self) -> str:
        return "bool"


@dataclass(frozen=True)
class UIntType(AbiType):
    bits: int = 256

    def __post_init__(self):
        _check_bits(self.bits)

    @property
    def canonical(self) -> str:
        return f"uint{self.bits}"


@dataclass(frozen=True)
class IntType(AbiType):
    bits: int = 256

    def __post_init__(self):
        _check_bits(self.bits)

    @property
    def canonical(self) -> str:
        return f"int{self.bits}"


@dataclass(frozen=True)
class AddressType(AbiType):

    @property
    def canonical(self) -> str:
        return "address"


@dataclass(frozen=True)
class FixedBytesType(AbiType):
    size: int

    def __post_init__(self):
        if isinstance(self.size, bool) or not isinstance(self.size, int) or not 1 <= self.size <= 32:
            raise InvalidType(f"fixed bytes size must be in [1, 32], got {self.size!r}")

    @property
    def canonical(self) -> str:
        return f"bytes{self.size}"


@dataclass(frozen=True)
class BytesType(AbiType):

    @property
    def is_dynamic(self) -> bool:
        return True

    @property
    def canonical(self) -> str:
        return "bytes"


@dataclass(frozen=True)
class StringType(AbiType):

    @property
    def is_dynamic(self) -> bool:
        return True

    @property
    def canonical(self) -> str:
        return "string"


@dataclass(frozen=True)
class ArrayType(AbiType):
    """Variable-length array, always dynamic"""
    element: AbiType

    def __post_init__(self):
        if not isinstance(self.element, AbiType):
            raise InvalidType(f"array element must be an ABI type, got {self.element!r}")

    @property
    def is_dynamic(self) -> bool:
        return True

    @property
    def canonical(self) -> str:
        return f"{self.element.canonical}[]"


@dataclass(frozen=True)
class FixedArrayType(AbiType):
    """Fixed-length array, dynamic only if its element is"""
    element: AbiType
    length: int

    def __post_init__(self):
        if not isinstance(self.element, AbiType):
            raise InvalidType(f"array element must be an ABI type, got {self.element!r}")
        if isinstance(self.length, bool) or not isinstance(self.length, int) or self.length < 1:
            raise InvalidType(f"fixed array length must be a positive integer, got {self.length!r}")

    @property
    def is_dynamic(self) -> bool:
        return self.element.is_dynamic

    @property
    def head_size(self) -> int:
        if self.is_dynamic:
            return WORD_SIZE
        return self.element.head_size * self.length

    @property
    def canonical(self) -> str:
        return f"{self.element.canonical}[{self.length}]"


@dataclass(frozen=True)
class TupleType(AbiType):
    fields: tuple[AbiType, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "fields", tuple(self.fields))
        for f in self.fields:
            if not isinstance(f, AbiType):
                raise InvalidType(f"tuple field must be an ABI type, got {f!r}")

    @property
    def is_dynamic(self) -> bool:
        return any(f.is_dynamic for f in self.fields)

    @property
    def head_size(self) -> int:
        if self.is_dynamic:
            return WORD_SIZE
        return sum(f.head_size for f in self.fields)

    @property
    def canonical(self) -> str:
        return "(" + ",".join(f.canonical for f in self.fields) + ")"


def _split_top_level(body: str) -> list[str]:
    """Split a tuple body on commas that are not nested in parentheses"""
    parts = []
    depth = 0
    start = 0
    for i, ch in enumerate(body):
        if ch == "(":
            depth += 1
        elif ch == ")":
            depth -= 1
            if depth < 0:
                raise InvalidType(f"unbalanced parentheses in {body!r}")
        elif ch == "," and depth == 0:
            parts.append(body[start:i])
            start = i + 1
    if depth != 0:
        raise InvalidType(f"unbalanced parentheses in {body!r}")
    parts.append(body[start:])
    return parts


def parse_type(text: str) -> AbiType:
    """
    Parse a canonical or JSON-ABI type string into a type descriptor

    Accepts aliases (uint, int), nested tuples and array suffixes,
    e.g. "(address,bool,bytes)[]" or "uint256[3][]".
    """
    if not isinstance(text, str):
        raise InvalidType(f"type must be a string, got {text!r}")
    text = text.strip()
    if not text:
        raise InvalidType("empty type string")

    # Array suffix binds last
    if text.endswith("]"):
        open_idx = text.rfind("[")
        if open_idx <= 0:
            raise InvalidType(f"malformed array type {text!r}")
        inner = parse_type(text[:open_idx])
        dim = text[open_idx + 1:-1]
        if dim == "":
            return ArrayType(inner)
        if not dim.isdigit():
            raise InvalidType(f"malformed array length in {text!r}")
        return FixedArrayType(inner, int(dim))

    if text.startswith("("):
        if not text.endswith(")"):
            raise InvalidType(f"malformed tuple type {text!r}")
        body = text[1:-1]
        if not body.strip():
            return TupleType(())
        return TupleType(tuple(parse_type(part) for part in _split_top_level(body)))

    if text == "bool":
        return BoolType()
    if text == "address":
        return AddressType()
    if text == "bytes":
        return BytesType()
    if text == "string":
        return StringType()

    match = _INT_RE.match(text)
    if match:
        bits = int(match.group(2)) if match.group(2) else 256
        return UIntType(bits) if match.group(1) else IntType(bits)

    match = _FIXED_BYTES_RE.match(text)
    if match:
        return FixedBytesType(int(match.group(1)))

    raise InvalidType(f"unsupported ABI type {text!r}")


def _as_type(value: AbiType | str) -> AbiType:
    if isinstance(value, AbiType):
        return value
    return parse_type(value)


# =============================================================================
# Dynamic values
# =============================================================================

def _raw_bytes(value: Any) -> bytes:
    if not isinstance(value, (bytes, bytearray, memoryview)):
        raise InvalidValue(f"expected bytes, got {type(value).__name__}")
    return bytes(value)


class DynamicValue:
    """Base class for concrete values of an ABI type"""

    def as_python(self) -> Any:
        """Convert to plain Python data"""
        raise NotImplementedError


@dataclass(frozen=True)
class Bool(DynamicValue):
    value: bool

    def as_python(self) -> bool:
        return self.value


@dataclass(frozen=True)
class UInt(DynamicValue):
    value: int
    bits: int = 256

    def as_python(self) -> int:
        return self.value


@dataclass(frozen=True)
class Int(DynamicValue):
    value: int
    bits: int = 256

    def as_python(self) -> int:
        return self.value


@dataclass(frozen=True)
class Address(DynamicValue):
    """20-byte account address, held as an EIP-55 checksummed string"""
    value: str

    def __post_init__(self):
        object.__setattr__(self, "value", to_checksum(self.value))

    def to_bytes(self) -> bytes:
        return bytes.fromhex(self.value[2:])

    def as_python(self) -> str:
        return self.value


@dataclass(frozen=True)
class FixedBytes(DynamicValue):
    value: bytes

    def __post_init__(self):
        object.__setattr__(self, "value", _raw_bytes(self.value))

    @property
    def size(self) -> int:
        return len(self.value)

    def as_python(self) -> bytes:
        return self.value


@dataclass(frozen=True)
class Bytes(DynamicValue):
    value: bytes

    def __post_init__(self):
        object.__setattr__(self, "value", _raw_bytes(self.value))

    def as_python(self) -> bytes:
        return self.value


@dataclass(frozen=True)
class String(DynamicValue):
    value: str

    def as_python(self) -> str:
        return self.value


@dataclass(frozen=True)
class Array(DynamicValue):
    items: tuple[DynamicValue, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "items", tuple(self.items))

    def as_python(self) -> list:
        return [item.as_python() for item in self.items]


@dataclass(frozen=True)
class FixedArray(DynamicValue):
    items: tuple[DynamicValue, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "items", tuple(self.items))

    def as_python(self) -> list:
        return [item.as_python() for item in self.items]


@dataclass(frozen=True)
class Tuple(DynamicValue):
    items: tuple[DynamicValue, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "items", tuple(self.items))

    def as_python(self) -> tuple:
        return tuple(item.as_python() for item in self.items)


def to_checksum(address: str | bytes) -> str:
    """Normalize a hex string or 20 raw bytes to a checksummed address"""
    if isinstance(address, (bytes, bytearray)):
        if len(address) != ADDRESS_SIZE:
            raise InvalidValue(f"address must be {ADDRESS_SIZE} bytes, got {len(address)}")
        return Web3.to_checksum_address("0x" + bytes(address).hex())
    if not isinstance(address, str) or not Web3.is_address(address):
        raise InvalidValue(f"invalid address {address!r}")
    return Web3.to_checksum_address(address)


def _to_bytes(obj: Any, path: str) -> bytes:
    if isinstance(obj, (bytes, bytearray, memoryview)):
        return bytes(obj)
    if isinstance(obj, str) and obj.startswith("0x"):
        try:
            return bytes.fromhex(obj[2:])
        except ValueError:
            raise InvalidValue(f"{path}: invalid hex string {obj!r}")
    raise TypeMismatch(f"{path}: expected bytes, got {type(obj).__name__}")


def coerce(typ: AbiType | str, obj: Any, path: str = "value") -> DynamicValue:
    """
    Build a DynamicValue for `typ` from plain Python data

    Values that already are DynamicValue instances are returned unchanged;
    the encoder checks them against the type.
    """
    typ = _as_type(typ)
    if isinstance(obj, DynamicValue):
        return obj

    if isinstance(typ, BoolType):
        if not isinstance(obj, bool):
            raise TypeMismatch(f"{path}: expected bool, got {type(obj).__name__}")
        return Bool(obj)

    if isinstance(typ, (UIntType, IntType)):
        if isinstance(obj, bool) or not isinstance(obj, int):
            raise TypeMismatch(f"{path}: expected int for {typ}, got {type(obj).__name__}")
        cls = UInt if isinstance(typ, UIntType) else Int
        return cls(obj, typ.bits)

    if isinstance(typ, AddressType):
        if not isinstance(obj, (str, bytes, bytearray)):
            raise TypeMismatch(f"{path}: expected address, got {type(obj).__name__}")
        return Address(obj)

    if isinstance(typ, FixedBytesType):
        return FixedBytes(_to_bytes(obj, path))

    if isinstance(typ, BytesType):
        return Bytes(_to_bytes(obj, path))

    if isinstance(typ, StringType):
        if not isinstance(obj, str):
            raise TypeMismatch(f"{path}: expected str, got {type(obj).__name__}")
        return String(obj)

    if isinstance(typ, (ArrayType, FixedArrayType, TupleType)):
        if not isinstance(obj, (list, tuple)):
            raise TypeMismatch(f"{path}: expected a sequence for {typ}, got {type(obj).__name__}")
        if isinstance(typ, TupleType):
            if len(obj) != len(typ.fields):
                raise TypeMismatch(f"{path}: expected {len(typ.fields)} tuple fields, got {len(obj)}")
            return Tuple(
                coerce(f, item, f"{path}.field[{i}]") for i, (f, item) in enumerate(zip(typ.fields, obj))
            )
        items = tuple(coerce(typ.element, item, f"{path}[{i}]") for i, item in enumerate(obj))
        return Array(items) if isinstance(typ, ArrayType) else FixedArray(items)

    raise InvalidType(f"unsupported ABI type {typ!r}")


# =============================================================================
# Function descriptors
# =============================================================================

def derive_selector(signature: str) -> bytes:
    """First 4 bytes of keccak256 of the canonical signature"""
    return bytes(Web3.keccak(text=signature)[:SELECTOR_SIZE])


def _abi_param_type(param: dict) -> str:
    """Render a JSON-ABI parameter (with tuple components) as a type string"""
    abi_type = param["type"]
    if not abi_type.startswith("tuple"):
        return abi_type
    suffix = abi_type[len("tuple"):]
    components = param.get("components") or []
    inner = ",".join(_abi_param_type(c) for c in components)
    return f"({inner}){suffix}"


@dataclass(frozen=True)
class FunctionDescriptor:
    """
    A contract function known at run time

    Inputs and outputs accept type descriptors or type strings. When no
    selector is given it is derived from the canonical signature; a supplied
    selector is trusted unless verify_selector is set.
    """
    name: str
    inputs: tuple[AbiType, ...] = ()
    outputs: tuple[AbiType, ...] = ()
    selector: bytes | None = None
    verify_selector: bool = field(default=False, repr=False, compare=False)

    def __post_init__(self):
        object.__setattr__(self, "inputs", tuple(_as_type(t) for t in self.inputs))
        object.__setattr__(self, "outputs", tuple(_as_type(t) for t in self.outputs))

        if self.selector is None:
            object.__setattr__(self, "selector", derive_selector(self.signature))
        else:
            selector = self.selector
            if isinstance(selector, str):
                try:
                    selector = bytes.fromhex(selector[2:] if selector.startswith("0x") else selector)
                except ValueError:
                    raise AbiError(f"selector must be a hex string, got {selector!r}") from None
            selector = bytes(selector)
            if len(selector) != SELECTOR_SIZE:
                raise AbiError(f"selector must be {SELECTOR_SIZE} bytes, got {len(selector)}")
            object.__setattr__(self, "selector", selector)

        if self.verify_selector:
            self.verify()

    @property
    def signature(self) -> str:
        return f"{self.name}(" + ",".join(t.canonical for t in self.inputs) + ")"

    def verify(self):
        """Raise SelectorMismatch if the selector is not derived from the signature"""
        derived = derive_selector(self.signature)
        if derived != self.selector:
            raise SelectorMismatch(self.signature, self.selector, derived)

    @classmethod
    def from_abi(cls, entry: dict, verify_selector: bool = False) -> "FunctionDescriptor":
        """Build a descriptor from an already-parsed JSON-ABI function entry"""
        if entry.get("type", "function") != "function":
            raise AbiError(f"ABI entry {entry.get('name')!r} is not a function")
        return cls(
            name=entry["name"],
            inputs=tuple(parse_type(_abi_param_type(p)) for p in entry.get("inputs", [])),
            outputs=tuple(parse_type(_abi_param_type(p)) for p in entry.get("outputs", [])),
            verify_selector=verify_selector,
        )

    def __str__(self) -> str:
        outputs = ",".join(t.canonical for t in self.outputs)
        return f"{self.signature}->({outputs})"


def find_function(abi: list[dict], name: str) -> FunctionDescriptor:
    """Return the first function called `name` in a parsed JSON ABI"""
    for entry in abi:
        if entry.get("type", "function") == "function" and entry.get("name") == name:
            return FunctionDescriptor.from_abi(entry)
    raise AbiError(f"function {name!r} not found in ABI")
