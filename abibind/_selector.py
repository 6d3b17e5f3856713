"""Canonical signatures and the hashes derived from them."""

from collections.abc import Iterable

from ethereum_rpc import keccak

from ._abi_types import Type

SELECTOR_LENGTH = 4
"""The number of bytes in a function or error selector."""


def function_signature(name: str, types: Iterable[Type]) -> str:
    """
    Returns the signature in the canonical form, ``name(type1,type2,...)``.
    Parameter names and whitespace are omitted, structs are expanded recursively.
    """
    return name + "(" + ",".join(tp.canonical_form for tp in types) + ")"


def selector(signature: str) -> bytes:
    """Returns the 4-byte selector of a canonical function or error signature."""
    return keccak(signature.encode())[:SELECTOR_LENGTH]


def event_topic(signature: str) -> bytes:
    """Returns the 32-byte topic of a canonical event signature."""
    return keccak(signature.encode())
