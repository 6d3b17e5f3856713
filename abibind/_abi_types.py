import math
import re
from abc import ABC, abstractmethod
from collections.abc import Iterable, Mapping, Sequence
from decimal import Decimal
from functools import cached_property
from typing import Any

from eth_abi import decode, encode
from eth_abi.exceptions import DecodingError
from ethereum_rpc import Address

ABI_JSON = None | bool | int | float | str | Sequence["ABI_JSON"] | Mapping[str, "ABI_JSON"]
"""Values serializable to JSON."""


class ABIDecodingError(Exception):
    """Raised on an error when decoding a value in an Eth ABI encoded bytestring."""


class UnknownTypeError(ValueError):
    """Raised when an ABI type tag cannot be resolved into a known type."""


class Type(ABC):
    """The base type for Solidity types."""

    @property
    @abstractmethod
    def canonical_form(self) -> str:
        """Returns the type as a string in the canonical form (for ``eth_abi`` consumption)."""
        ...

    @property
    def is_dynamic(self) -> bool:
        """
        Whether the values of this type are variable-length,
        that is, placed in the tail section of the encoding with an offset in the head.
        """
        return False

    @abstractmethod
    def normalize(self, val: Any) -> Any:
        """
        Checks and possibly normalizes the value making it ready to be passed
        to ``eth_abi`` for encoding.
        Raises ``TypeError`` or ``ValueError`` if the value cannot be represented by this type.
        """
        ...

    @abstractmethod
    def denormalize(self, val: Any) -> Any:
        """
        Checks the result of ``eth_abi`` decoding
        and wraps it in a specific type, if applicable.
        """
        ...

    def data_equal(self, original: Any, decoded: Any) -> bool:
        """
        Returns ``True`` if ``decoded`` (a denormalized value)
        represents the same data as the user-supplied ``original``.
        """
        return bool(original == decoded)

    def encode(self, val: Any) -> bytes:
        """Encodes the given value in the contract ABI format."""
        return encode_args((self, val))

    def decode(self, data: bytes) -> Any:
        """Decodes the given bytestring in the contract ABI format."""
        return decode_args([self], data)[0]

    def decode_from_topic(self, val: bytes) -> Any:
        """
        Decodes an encoded topic.
        Returns ``None`` if the decoding is impossible
        (that is, the original value was hashed).
        """
        # Value types are stored in topics as is, reference types are hashed.
        if self.is_dynamic:
            return None
        return self.decode(val)

    def __str__(self) -> str:
        return self.canonical_form

    def __repr__(self) -> str:
        return f"<{self.canonical_form}>"

    def __getitem__(self, array_size: int | Any) -> "Array":
        # In Py3.10 they added EllipsisType which would work better here.
        # For now, relying on the documentation.
        if isinstance(array_size, int):
            return Array(self, array_size)
        if array_size == ...:
            return Array(self, None)
        raise TypeError(f"Invalid array size specifier type: {type(array_size).__name__}")


def _to_integer(type_name: str, val: Any) -> int:
    # `bool` is a subclass of `int`, but we would rather be more strict
    # and prevent possible bugs.
    if isinstance(val, bool):
        raise TypeError(f"`{type_name}` must correspond to an integer, got bool")
    if isinstance(val, int):
        return val
    if isinstance(val, float | Decimal):
        finite = val.is_finite() if isinstance(val, Decimal) else math.isfinite(val)
        if not finite:
            raise ValueError(f"`{type_name}` must correspond to a finite number, got {val}")
        return int(val)
    if isinstance(val, str):
        try:
            return int(val, 0)
        except ValueError as exc:
            raise ValueError(
                f"`{type_name}` must correspond to an integer, got a non-numeric string {val!r}"
            ) from exc
    raise TypeError(f"`{type_name}` must correspond to an integer, got {type(val).__name__}")


def _numeric_value(val: Any) -> int | float | Decimal:
    """Returns the arithmetic value of a user-supplied number, without any rounding."""
    if isinstance(val, str):
        return int(val, 0)
    return val  # type: ignore[no-any-return]


class UInt(Type):
    """Corresponds to the Solidity ``uint<bits>`` type."""

    def __init__(self, bits: int):
        if bits <= 0 or bits > 256 or bits % 8 != 0:  # noqa: PLR2004
            raise ValueError(f"Incorrect `uint` bit size: {bits}")
        self.bits = bits

    @property
    def canonical_form(self) -> str:
        return f"uint{self.bits}"

    def _check_range(self, val: int) -> None:
        if val < 0:
            raise ValueError(
                f"`{self.canonical_form}` must correspond to a non-negative integer, got {val}"
            )
        if val >> self.bits != 0:
            raise ValueError(
                f"`{self.canonical_form}` must correspond to an unsigned integer "
                f"under {self.bits} bits, got {val}"
            )

    def normalize(self, val: Any) -> int:
        int_val = _to_integer(self.canonical_form, val)
        self._check_range(int_val)
        return int_val

    def denormalize(self, val: Any) -> int:
        if not isinstance(val, int):
            raise TypeError(f"Expected an integer, got {type(val).__name__}")
        self._check_range(val)
        return val

    def data_equal(self, original: Any, decoded: Any) -> bool:
        return bool(_numeric_value(original) == decoded)

    def __eq__(self, other: object) -> bool:
        return isinstance(other, UInt) and self.bits == other.bits

    def __hash__(self) -> int:
        return hash((UInt, self.bits))


class Int(Type):
    """Corresponds to the Solidity ``int<bits>`` type."""

    def __init__(self, bits: int):
        if bits <= 0 or bits > 256 or bits % 8 != 0:  # noqa: PLR2004
            raise ValueError(f"Incorrect `int` bit size: {bits}")
        self.bits = bits

    @property
    def canonical_form(self) -> str:
        return f"int{self.bits}"

    def _check_range(self, val: int) -> None:
        if (val + (1 << (self.bits - 1))) >> self.bits != 0:
            raise ValueError(
                f"`{self.canonical_form}` must correspond to a signed integer "
                f"under {self.bits} bits, got {val}"
            )

    def normalize(self, val: Any) -> int:
        int_val = _to_integer(self.canonical_form, val)
        self._check_range(int_val)
        return int_val

    def denormalize(self, val: Any) -> int:
        if not isinstance(val, int):
            raise TypeError(f"Expected an integer, got {type(val).__name__}")
        self._check_range(val)
        return val

    def data_equal(self, original: Any, decoded: Any) -> bool:
        return bool(_numeric_value(original) == decoded)

    def __eq__(self, other: object) -> bool:
        return isinstance(other, Int) and self.bits == other.bits

    def __hash__(self) -> int:
        return hash((Int, self.bits))


class Bytes(Type):
    """Corresponds to the Solidity ``bytes<size>`` type, or ``bytes`` if ``size`` is ``None``."""

    def __init__(self, size: None | int = None):
        if size is not None and (size <= 0 or size > 32):  # noqa: PLR2004
            raise ValueError(f"Incorrect `bytes` size: {size}")
        self.size = size

    @property
    def canonical_form(self) -> str:
        return f"bytes{self.size if self.size else ''}"

    @property
    def is_dynamic(self) -> bool:
        return self.size is None

    def _check_val(self, val: Any) -> bytes:
        if not isinstance(val, bytes | bytearray):
            raise TypeError(
                f"`{self.canonical_form}` must correspond to a bytestring, "
                f"got {type(val).__name__}"
            )
        if self.size is not None and len(val) != self.size:
            raise ValueError(f"Expected {self.size} bytes, got {len(val)}")
        return bytes(val)

    def normalize(self, val: Any) -> bytes:
        return self._check_val(val)

    def denormalize(self, val: Any) -> bytes:
        return self._check_val(val)

    def data_equal(self, original: Any, decoded: Any) -> bool:
        return isinstance(original, bytes | bytearray) and bytes(original) == decoded

    def __eq__(self, other: object) -> bool:
        return isinstance(other, Bytes) and self.size == other.size

    def __hash__(self) -> int:
        return hash((Bytes, self.size))


_ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")


def _address_hex(val: Any) -> str:
    """Returns the lowercase hex form of an address given as ``Address`` or a string."""
    if isinstance(val, Address):
        return "0x" + bytes(val).hex()
    if isinstance(val, str):
        if not _ADDRESS_RE.match(val):
            raise ValueError(f"`address` must be a 0x-prefixed 20-byte hex string, got {val!r}")
        return val.lower()
    raise TypeError(
        f"`address` must correspond to an `Address` or a hex string, got {type(val).__name__}"
    )


class AddressType(Type):
    """
    Corresponds to the Solidity ``address`` type.
    Not to be confused with ``ethereum_rpc.Address`` which represents an address value.
    """

    @property
    def canonical_form(self) -> str:
        return "address"

    def normalize(self, val: Any) -> bytes:
        return bytes.fromhex(_address_hex(val)[2:])

    def denormalize(self, val: Any) -> Address:
        return Address.from_hex(val)

    def data_equal(self, original: Any, decoded: Any) -> bool:
        try:
            return _address_hex(original) == _address_hex(decoded)
        except (TypeError, ValueError):
            return False

    def __eq__(self, other: object) -> bool:
        return isinstance(other, AddressType)

    def __hash__(self) -> int:
        return hash(AddressType)


class String(Type):
    """Corresponds to the Solidity ``string`` type."""

    @property
    def canonical_form(self) -> str:
        return "string"

    @property
    def is_dynamic(self) -> bool:
        return True

    def _check_val(self, val: Any) -> str:
        if not isinstance(val, str):
            raise TypeError(
                f"`string` must correspond to a `str`-type value, got {type(val).__name__}"
            )
        return val

    def normalize(self, val: Any) -> str:
        val = self._check_val(val)
        try:
            val.encode("utf-8")
        except UnicodeEncodeError as exc:
            raise ValueError(f"`string` value cannot be encoded as UTF-8: {exc.reason}") from exc
        return val

    def denormalize(self, val: Any) -> str:
        return self._check_val(val)

    def data_equal(self, original: Any, decoded: Any) -> bool:
        return isinstance(original, str) and original == decoded

    def __eq__(self, other: object) -> bool:
        return isinstance(other, String)

    def __hash__(self) -> int:
        return hash(String)


class Bool(Type):
    """Corresponds to the Solidity ``bool`` type."""

    @property
    def canonical_form(self) -> str:
        return "bool"

    def _check_val(self, val: Any) -> bool:
        if not isinstance(val, bool):
            raise TypeError(
                f"`bool` must correspond to a `bool`-type value, got {type(val).__name__}"
            )
        return val

    def normalize(self, val: Any) -> bool:
        return self._check_val(val)

    def denormalize(self, val: Any) -> bool:
        return self._check_val(val)

    def data_equal(self, original: Any, decoded: Any) -> bool:
        return isinstance(original, bool) and original is decoded

    def __eq__(self, other: object) -> bool:
        return isinstance(other, Bool)

    def __hash__(self) -> int:
        return hash(Bool)


class Array(Type):
    """Corresponds to the Solidity array (``[<size>]``) type."""

    def __init__(self, element_type: Type, size: None | int = None):
        if size is not None and size <= 0:
            raise ValueError(f"Incorrect array size: {size}")
        self.element_type = element_type
        self.size = size

    @cached_property
    def canonical_form(self) -> str:
        return (
            self.element_type.canonical_form + "[" + (str(self.size) if self.size else "") + "]"
        )

    @property
    def is_dynamic(self) -> bool:
        return self.size is None or self.element_type.is_dynamic

    def _check_val(self, val: Any) -> Sequence[Any]:
        # Strings and bytestrings are iterable, but are certainly a mistake here
        if not isinstance(val, Sequence) or isinstance(val, str | bytes | bytearray):
            raise TypeError(f"Expected a sequence, got {type(val).__name__}")
        if self.size is not None and len(val) != self.size:
            raise ValueError(f"Expected {self.size} elements, got {len(val)}")
        return val

    def normalize(self, val: Any) -> list[Any]:
        return [self.element_type.normalize(item) for item in self._check_val(val)]

    def denormalize(self, val: Any) -> list[Any]:
        return [self.element_type.denormalize(item) for item in self._check_val(val)]

    def data_equal(self, original: Any, decoded: Any) -> bool:
        if not isinstance(original, Sequence) or len(original) != len(decoded):
            return False
        return all(
            self.element_type.data_equal(orig_item, dec_item)
            for orig_item, dec_item in zip(original, decoded, strict=True)
        )

    def decode_from_topic(self, val: bytes) -> Any:
        # Arrays are reference types and are hashed when indexed.
        return None

    def __eq__(self, other: object) -> bool:
        return (
            isinstance(other, Array)
            and self.element_type == other.element_type
            and self.size == other.size
        )

    def __hash__(self) -> int:
        return hash((Array, self.element_type, self.size))


class Struct(Type):
    """Corresponds to the Solidity struct type."""

    def __init__(self, fields: Mapping[str, Type]):
        self.fields = dict(fields)

    @cached_property
    def canonical_form(self) -> str:
        return "(" + ",".join(field.canonical_form for field in self.fields.values()) + ")"

    @property
    def is_dynamic(self) -> bool:
        return any(field.is_dynamic for field in self.fields.values())

    def _values(self, val: Any) -> list[Any]:
        """Returns the struct field values in the declaration order."""
        if isinstance(val, Mapping):
            if val.keys() != self.fields.keys():
                raise ValueError(
                    f"Expected fields {list(self.fields.keys())}, got {list(val.keys())}"
                )
            return [val[name] for name in self.fields]
        if not isinstance(val, Sequence) or isinstance(val, str | bytes | bytearray):
            raise TypeError(f"Expected a mapping or a sequence, got {type(val).__name__}")
        if len(val) != len(self.fields):
            raise ValueError(f"Expected {len(self.fields)} elements, got {len(val)}")
        return list(val)

    def normalize(self, val: Any) -> list[Any]:
        values = self._values(val)
        return [tp.normalize(item) for item, tp in zip(values, self.fields.values(), strict=True)]

    def denormalize(self, val: Any) -> dict[str, Any]:
        return {
            name: tp.denormalize(item)
            for item, (name, tp) in zip(self._values(val), self.fields.items(), strict=True)
        }

    def data_equal(self, original: Any, decoded: Any) -> bool:
        try:
            original_values = self._values(original)
        except (TypeError, ValueError):
            return False
        return all(
            tp.data_equal(orig_item, decoded[name])
            for orig_item, (name, tp) in zip(original_values, self.fields.items(), strict=True)
        )

    def decode_from_topic(self, val: bytes) -> Any:
        # Structs are reference types and are hashed when indexed.
        return None

    def __str__(self) -> str:
        # Overriding the `Type`'s implementation because we want to show the field names too
        return "(" + ", ".join(str(tp) + " " + str(name) for name, tp in self.fields.items()) + ")"

    def __eq__(self, other: object) -> bool:
        return (
            isinstance(other, Struct)
            and self.fields == other.fields
            # structs with the same fields but in different order are not equal
            and list(self.fields) == list(other.fields)
        )

    def __hash__(self) -> int:
        return hash((Struct, tuple(self.fields.items())))


_UINT_RE = re.compile(r"^uint(\d+)$")
_INT_RE = re.compile(r"^int(\d+)$")
_BYTES_RE = re.compile(r"^bytes(\d+)?$")

_NO_PARAMS = {
    "address": AddressType(),
    "string": String(),
    "bool": Bool(),
}


def type_from_abi_string(abi_string: str) -> Type:
    """Returns the elementary type corresponding to the ABI type string."""
    # Solidity allows the implicit-size aliases in the source,
    # but compilers should always emit the explicit form in the ABI.
    abi_string = {"uint": "uint256", "int": "int256"}.get(abi_string, abi_string)
    try:
        if match := _UINT_RE.match(abi_string):
            return UInt(int(match.group(1)))
        if match := _INT_RE.match(abi_string):
            return Int(int(match.group(1)))
        if match := _BYTES_RE.match(abi_string):
            size = match.group(1)
            return Bytes(int(size) if size else None)
    except ValueError as exc:
        raise UnknownTypeError(f"Unknown type: {abi_string} ({exc})") from exc
    if abi_string in _NO_PARAMS:
        return _NO_PARAMS[abi_string]
    raise UnknownTypeError(f"Unknown type: {abi_string}")


def dispatch_type(abi_entry: Mapping[str, ABI_JSON]) -> Type:
    """Returns the type corresponding to a JSON ABI parameter entry (possibly a nested one)."""
    type_str = abi_entry["type"]
    if not isinstance(type_str, str):
        raise UnknownTypeError(f"Type must be a string, got {type_str!r}")

    match = re.match(r"^([\w\d\[\]]*?)(\[(\d+)?\])?$", type_str)
    if not match:
        raise UnknownTypeError(f"Incorrect type format: {type_str}")

    element_type_name = match.group(1)
    is_array = match.group(2)
    array_size = match.group(3)

    if is_array:
        element_entry = dict(abi_entry)
        element_entry["type"] = element_type_name
        element_type = dispatch_type(element_entry)
        try:
            return Array(element_type, int(array_size) if array_size is not None else None)
        except ValueError as exc:
            raise UnknownTypeError(f"Incorrect type format: {type_str} ({exc})") from exc

    if element_type_name == "tuple":
        components = abi_entry.get("components")
        if not isinstance(components, Sequence):
            raise UnknownTypeError("A `tuple` type must have a list of `components`")
        fields = dispatch_types(components)  # type: ignore[arg-type]
        if None in fields:
            raise UnknownTypeError("All `tuple` components must be named")
        return Struct(fields)  # type: ignore[arg-type]

    return type_from_abi_string(element_type_name)


def dispatch_types(
    abi_entries: Sequence[Mapping[str, ABI_JSON]],
) -> dict[str | None, Type]:
    """
    Returns an ordered mapping of parameter names to types.
    Empty names (allowed in ABI) are mapped to ``None``.
    """
    # Since we are returning a dictionary, need to be sure we don't silently merge entries
    names = [entry.get("name") or None for entry in abi_entries]
    if len(names) > 1 and len(names) != len(set(names)):
        raise ValueError("All ABI entries must have distinct names")
    return {  # type: ignore[misc]
        name: dispatch_type(entry) for name, entry in zip(names, abi_entries, strict=True)
    }


def dispatch_parameter_types(
    abi_entries: Sequence[Mapping[str, ABI_JSON]],
) -> list[tuple[str | None, Type]]:
    """
    Returns a list of pairs of parameter names and types.
    Unlike :py:func:`dispatch_types`, allows several anonymous parameters.
    """
    return [
        (entry.get("name") or None, dispatch_type(entry))  # type: ignore[misc]
        for entry in abi_entries
    ]


def encode_args(*types_and_args: tuple[Type, Any]) -> bytes:
    """Normalizes and encodes the given values according to the types."""
    types = [tp for tp, _arg in types_and_args]
    args = [tp.normalize(arg) for tp, arg in types_and_args]
    return encode([tp.canonical_form for tp in types], args)


def decode_args(types: Iterable[Type], data: bytes) -> tuple[Any, ...]:
    """Decodes the bytestring into a tuple of denormalized values according to the types."""
    types = list(types)
    canonical_forms = [tp.canonical_form for tp in types]
    try:
        values = decode(canonical_forms, data)
    except (DecodingError, UnicodeDecodeError) as exc:
        # wrap possible `eth_abi` errors
        signature = "(" + ",".join(canonical_forms) + ")"
        message = (
            f"Could not decode the return value "
            f"with the expected signature {signature}: {exc}"
        )
        raise ABIDecodingError(message) from exc
    return tuple(tp.denormalize(value) for tp, value in zip(types, values, strict=True))
