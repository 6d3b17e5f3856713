"""
Strict encoding of call arguments.

Encoding is delegated to ``eth_abi`` (the standard head/tail layout);
what this module adds is the guarantee that whatever is sent to a contract
decodes back into the same data the caller supplied.
"""

from collections.abc import Sequence
from typing import Any

from eth_abi import decode, encode, is_encodable

from ._abi_types import ABIDecodingError, String, Type, decode_args, encode_args
from ._selector import selector

REVERT_SIGNATURE = "Error(string)"
"""The signature of the standard revert-with-reason error."""

REVERT_SELECTOR = selector(REVERT_SIGNATURE)
"""``0x08c379a0``, the prefix of the revert data produced by ``require()`` and ``revert()``."""


class EncodingError(Exception):
    """
    Raised when an argument cannot be encoded without losing information
    (an overflow, an unsafe type coercion, or an encoder bug).
    """

    name: None | str
    """The name of the offending parameter."""

    type: Type
    """The declared type of the parameter."""

    value: Any
    """The value that was rejected."""

    def __init__(self, name: None | str, type_: Type, value: Any, reason: str):
        super().__init__(
            f"Cannot safely encode argument: {name or '<anonymous>'} ({value!r}) "
            f"of type {type_.canonical_form}. ({reason})"
        )
        self.name = name
        self.type = type_
        self.value = value


def strict_encode(
    names: Sequence[None | str], types: Sequence[Type], values: Sequence[Any]
) -> bytes:
    """
    Encodes ``values`` according to ``types`` and verifies that the encoding
    decodes back into data equal to the original values.

    Raises :py:class:`EncodingError` naming the first parameter that failed.
    """
    if len(values) != len(types):
        raise TypeError(f"Expected {len(types)} arguments, got {len(values)}")

    normalized = []
    for name, tp, value in zip(names, types, values, strict=True):
        try:
            normalized_value = tp.normalize(value)
        except (TypeError, ValueError) as exc:
            raise EncodingError(name, tp, value, str(exc)) from exc
        if not is_encodable(tp.canonical_form, normalized_value):
            raise EncodingError(name, tp, value, "Rejected by the ABI encoder")
        normalized.append(normalized_value)

    canonical_forms = [tp.canonical_form for tp in types]
    encoded = encode(canonical_forms, normalized)

    roundtrip = decode(canonical_forms, encoded)
    for name, tp, value, decoded in zip(names, types, values, roundtrip, strict=True):
        if not tp.data_equal(value, tp.denormalize(decoded)):
            raise EncodingError(
                name, tp, value, "Possible type overflow or other encoding error"
            )

    return encoded


def decode_as_array(types: Sequence[Type], data: bytes) -> tuple[Any, ...]:
    """Decodes the payload into a tuple of values, one per type."""
    return decode_args(types, data)


class UndecodableRevert(ABIDecodingError):
    """Raised when a revert payload is not exactly one ABI-encoded string."""


def decode_revert_reason(payload: bytes) -> str:
    """
    Decodes the payload of an ``Error(string)`` revert (the data after the selector).

    Raises :py:class:`UndecodableRevert` unless the payload is exactly
    the encoding of a single string.
    """
    try:
        values = decode_as_array([String()], payload)
    except ABIDecodingError as exc:
        raise UndecodableRevert(str(exc)) from exc
    if len(values) != 1:
        raise UndecodableRevert(f"Expected a single string in the revert data, got {values!r}")
    (reason,) = values
    # Anything trailing the string means the payload held something else
    if encode_args((String(), reason)) != payload:
        raise UndecodableRevert("The revert data is not a canonically encoded single string")
    return reason  # type: ignore[no-any-return]
