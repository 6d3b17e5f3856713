import re
from decimal import Decimal

import pytest
from ethereum_rpc import Address

from abibind import REVERT_SELECTOR, EncodingError, UndecodableRevert, abi, strict_encode
from abibind._abi_types import decode_args, encode_args
from abibind._codec import decode_as_array, decode_revert_reason


def test_round_trip() -> None:
    types = [
        abi.uint(256),
        abi.int(8),
        abi.bool,
        abi.address,
        abi.bytes(4),
        abi.bytes(),
        abi.string,
        abi.uint(8)[...],
        abi.struct(a=abi.uint(8), b=abi.string)[2],
    ]
    address = Address(b"\x01" * 20)
    values = [
        2**256 - 1,
        -128,
        True,
        address,
        b"1234",
        b"dynamic bytes",
        "string",
        [1, 2, 3],
        [dict(a=1, b="x"), dict(a=2, b="y")],
    ]
    encoded = strict_encode([None] * len(types), types, values)
    assert decode_as_array(types, encoded) == (
        2**256 - 1,
        -128,
        True,
        address,
        b"1234",
        b"dynamic bytes",
        "string",
        [1, 2, 3],
        [dict(a=1, b="x"), dict(a=2, b="y")],
    )


def test_matches_plain_encoding() -> None:
    # The strict check does not change the layout
    types = [abi.address, abi.uint(256)]
    values = ["0x" + "ab" * 20, 10]
    assert strict_encode(["to", "amount"], types, values) == encode_args(
        *zip(types, values, strict=True)
    )


def test_dynamic_layout() -> None:
    encoded = strict_encode(["a", "b"], [abi.uint(8), abi.string], [1, "abc"])
    # head: the value and the offset of the string; tail: the length and the padded content
    assert encoded == (
        (1).to_bytes(32, "big")
        + (64).to_bytes(32, "big")
        + (3).to_bytes(32, "big")
        + b"abc".ljust(32, b"\x00")
    )


def test_overflow() -> None:
    with pytest.raises(
        EncodingError,
        match=re.escape("Cannot safely encode argument: amount (256) of type uint8."),
    ) as excinfo:
        strict_encode(["amount"], [abi.uint(8)], [256])
    assert excinfo.value.name == "amount"
    assert excinfo.value.type == abi.uint(8)
    assert excinfo.value.value == 256

    with pytest.raises(EncodingError, match="of type int8"):
        strict_encode(["x"], [abi.int(8)], [-129])

    # Overflow inside a nested value is reported for the whole argument
    with pytest.raises(EncodingError, match=r"Cannot safely encode argument: xs \(\[1, 300\]\)"):
        strict_encode(["xs"], [abi.uint(8)[...]], [[1, 300]])


def test_unsafe_coercions() -> None:
    with pytest.raises(EncodingError, match="Possible type overflow or other encoding error"):
        strict_encode(["x"], [abi.uint(8)], [1.5])
    with pytest.raises(EncodingError, match="Possible type overflow or other encoding error"):
        strict_encode(["x"], [abi.uint(8)], [Decimal("2.5")])

    for value in [float("nan"), float("inf"), Decimal("NaN")]:
        with pytest.raises(EncodingError, match="must correspond to a finite number"):
            strict_encode(["x"], [abi.uint(256)], [value])

    with pytest.raises(EncodingError, match="got bool"):
        strict_encode(["x"], [abi.uint(256)], [True])

    # A lone surrogate has no UTF-8 encoding
    with pytest.raises(EncodingError, match="cannot be encoded as UTF-8"):
        strict_encode(["s"], [abi.string], ["\ud800"])
    with pytest.raises(EncodingError, match="Cannot safely encode argument: names"):
        strict_encode(["names"], [abi.string[...]], [["ok", "\udfff"]])


def test_lossless_coercions() -> None:
    encoded = strict_encode(["a", "b", "c"], [abi.uint(8)] * 3, [2.0, Decimal(3), "0x04"])
    assert decode_args([abi.uint(8)] * 3, encoded) == (2, 3, 4)

    # Address case does not matter
    encoded = strict_encode(["to"], [abi.address], ["0x" + "AB" * 20])
    assert decode_args([abi.address], encoded) == (Address(b"\xab" * 20),)


def test_anonymous_parameter() -> None:
    with pytest.raises(
        EncodingError,
        match=re.escape("Cannot safely encode argument: <anonymous> ('x') of type uint8."),
    ):
        strict_encode([None], [abi.uint(8)], ["x"])


def test_wrong_number_of_arguments() -> None:
    with pytest.raises(TypeError, match="Expected 2 arguments, got 1"):
        strict_encode(["a", "b"], [abi.uint(8), abi.uint(8)], [1])


def test_revert_selector() -> None:
    assert REVERT_SELECTOR == bytes.fromhex("08c379a0")


def test_decode_revert_reason() -> None:
    payload = encode_args((abi.string, "insufficient balance"))
    assert decode_revert_reason(payload) == "insufficient balance"


def test_decode_malformed_revert_reason() -> None:
    # Zero fields
    with pytest.raises(UndecodableRevert):
        decode_revert_reason(b"")

    # Two fields
    with pytest.raises(UndecodableRevert):
        decode_revert_reason(encode_args((abi.string, "a"), (abi.string, "b")))

    # Not a string
    with pytest.raises(UndecodableRevert):
        decode_revert_reason(encode_args((abi.uint(256), 12345)))
