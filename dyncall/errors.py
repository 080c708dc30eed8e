"""
Error types for the dynamic multicall library
"""


class MulticallError(Exception):
    """Base class for every error raised by dyncall"""


class AbiError(MulticallError):
    """Problem with an ABI type, value or payload"""


class InvalidType(AbiError):
    """Type descriptor is malformed or unsupported"""


class SelectorMismatch(AbiError):
    """Supplied selector does not match the one derived from the signature"""

    def __init__(self, signature: str, supplied: bytes, derived: bytes):
        super().__init__(
            f"selector 0x{supplied.hex()} does not match {signature} (expected 0x{derived.hex()})"
        )
        self.signature = signature
        self.supplied = supplied
        self.derived = derived


class EncodeError(AbiError):
    """Encoder input contract violated"""


class TypeMismatch(EncodeError):
    """Value shape disagrees with its declared type"""


class InvalidValue(EncodeError):
    """Value has the right shape but cannot be represented by its type"""


class CallEncodingError(EncodeError):
    """Encoding one call of a batch failed"""

    def __init__(self, index: int, signature: str, error: EncodeError):
        super().__init__(f"call #{index} ({signature}): {error}")
        self.index = index
        self.signature = signature
        self.error = error


class DecodeError(AbiError):
    """Bytes could not be decoded against the expected types"""


class TruncatedData(DecodeError):
    """Data ended before a required read"""


class InvalidData(DecodeError):
    """Data is long enough but not a valid encoding"""


class BatchLengthMismatch(MulticallError):
    """Aggregate response does not hold one result per submitted call"""

    def __init__(self, expected: int, received: int):
        super().__init__(f"expected {expected} results from aggregate call, got {received}")
        self.expected = expected
        self.received = received


class TransportFailure(MulticallError):
    """The aggregate call as a whole failed; the batch is unexecuted"""

    def __init__(self, message: str, *, reverted: bool = False, revert_data: bytes | None = None):
        super().__init__(message)
        self.reverted = reverted
        self.revert_data = revert_data


class CallFailed(MulticallError):
    """Raised when unwrapping a failed call outcome"""

    def __init__(self, index: int, reason: str | None):
        super().__init__(f"call #{index} failed: {reason or 'no reason given'}")
        self.index = index
        self.reason = reason
