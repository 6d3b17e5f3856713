# The aliases shadow builtins on purpose.
# ruff: noqa: A001

"""
Short aliases for the Solidity types, e.g. ``abi.uint(256)``, ``abi.address``,
``abi.struct(a=abi.bool)``. Arrays are built with ``abi.array(...)``
or by indexing a type: ``abi.string[...]`` is ``string[]``, ``abi.bool[2]`` is ``bool[2]``.
"""

from ._abi_types import AddressType, Array, Bool, Bytes, Int, String, Struct, Type, UInt

__all__ = ["address", "array", "bool", "bytes", "int", "string", "struct", "uint"]

_PyInt = int


def uint(bits: _PyInt) -> UInt:
    """Returns the ``uint<bits>`` type."""
    return UInt(bits)


def int(bits: _PyInt) -> Int:
    """Returns the ``int<bits>`` type."""
    return Int(bits)


def bytes(size: None | _PyInt = None) -> Bytes:
    """Returns the ``bytes<size>`` type, or ``bytes`` if ``size`` is ``None``."""
    return Bytes(size)


def array(element_type: Type, size: None | _PyInt = None) -> Array:
    """Returns the fixed-size array type, or a dynamic one if ``size`` is ``None``."""
    return Array(element_type, size)


def struct(**kwargs: Type) -> Struct:
    """Returns the structure type with given fields (encoded as a tuple)."""
    return Struct(kwargs)


address = AddressType()

string = String()

bool = Bool()
