"""
Revert payload decoding
Recognizes Error(string) and Panic(uint256) return data from failed calls
"""
from dyncall.core.abi.decoder import decode
from dyncall.core.abi.types import SELECTOR_SIZE, StringType, UIntType
from dyncall.errors import DecodeError

# Standard Solidity revert selectors
ERROR_SELECTOR = bytes.fromhex("08c379a0")  # Error(string)
PANIC_SELECTOR = bytes.fromhex("4e487b71")  # Panic(uint256)

PANIC_CODES: dict[int, str] = {
    0x00: "generic compiler inserted panic",
    0x01: "assertion failed",
    0x11: "arithmetic underflow or overflow",
    0x12: "division or modulo by zero",
    0x21: "invalid enum value",
    0x22: "invalid storage byte array encoding",
    0x31: "pop on empty array",
    0x32: "array index out of bounds",
    0x41: "out of memory",
    0x51: "call to uninitialized internal function",
}


def describe_panic(code: int) -> str:
    """Human readable panic description, e.g. 'panic 0x11: arithmetic underflow or overflow'"""
    description = PANIC_CODES.get(code, "unknown panic code")
    return f"panic 0x{code:02x}: {description}"


def decode_revert_reason(data: bytes) -> str | None:
    """
    Decode the reason carried by revert data

    Returns None for empty data, custom errors or malformed payloads.
    """
    data = bytes(data)
    if len(data) < SELECTOR_SIZE:
        return None

    selector, payload = data[:SELECTOR_SIZE], data[SELECTOR_SIZE:]
    try:
        if selector == ERROR_SELECTOR:
            (message,) = decode([StringType()], payload)
            return message.value
        if selector == PANIC_SELECTOR:
            (code,) = decode([UIntType(256)], payload)
            return describe_panic(code.value)
    except DecodeError:
        return None
    return None
