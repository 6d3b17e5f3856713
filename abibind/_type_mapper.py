"""Mapping of ABI types onto the type annotations of the generated code."""

from enum import Enum

from ._abi_types import AddressType, Array, Bool, Bytes, Int, String, Struct, Type, UInt
from ._contract_abi import Fields

# Integers this wide or narrower fit into a JS `number` without a loss of precision
_JS_SAFE_INTEGER_BITS = 48


class OutputLanguage(Enum):
    """The language of the generated bindings."""

    PYTHON = "Python"
    TYPESCRIPT = "TypeScript"

    @property
    def file_extension(self) -> str:
        return ".py" if self == OutputLanguage.PYTHON else ".ts"


class Backend(Enum):
    """
    The client library the generated TypeScript bindings are written against.
    Only affects how integers are represented.
    """

    WEB3 = "web3"
    ETHERS = "ethers"


class TypeMapper:
    """Produces type annotations in the target language for ABI types."""

    def __init__(self, language: OutputLanguage, backend: Backend = Backend.WEB3):
        self.language = language
        self.backend = backend

    def map_type(self, tp: Type, *, output: bool = False) -> str:
        """
        Returns the annotation for a value of the given type.
        ``output`` selects the representation of a decoded value
        (which can be narrower than the set of accepted inputs).
        """
        if self.language == OutputLanguage.PYTHON:
            return self._map_python(tp, output=output)
        return self._map_typescript(tp)

    def map_fields(self, fields: Fields, *, output: bool = False) -> list[str]:
        """Returns the annotations for each of the fields, in order."""
        return [self.map_type(tp, output=output) for tp in fields.types]

    def return_type(self, fields: Fields) -> str:
        """Returns the annotation for the result of a method with the given outputs."""
        types = self.map_fields(fields, output=True)
        if self.language == OutputLanguage.PYTHON:
            if not types:
                return "None"
            if len(types) == 1:
                return types[0]
            if all(name is None for name in fields.names):
                return "tuple[" + ", ".join(types) + "]"
            return "FieldValues"

        if not types:
            return "void"
        if len(types) == 1:
            return types[0]
        return "[" + ", ".join(types) + "]"

    def _map_python(self, tp: Type, *, output: bool) -> str:
        if isinstance(tp, UInt | Int):
            return "int"
        if isinstance(tp, Bool):
            return "bool"
        if isinstance(tp, Bytes):
            return "bytes"
        if isinstance(tp, String):
            return "str"
        if isinstance(tp, AddressType):
            return "Address" if output else "Address | str"
        if isinstance(tp, Array):
            return f"list[{self._map_python(tp.element_type, output=output)}]"
        if isinstance(tp, Struct):
            return "dict[str, Any]"
        raise TypeError(f"Cannot map type {tp.canonical_form}")

    def _map_typescript(self, tp: Type) -> str:
        if isinstance(tp, UInt | Int):
            if self.backend == Backend.ETHERS and tp.bits <= _JS_SAFE_INTEGER_BITS:
                return "number"
            return "BigNumber"
        if isinstance(tp, Bool):
            return "boolean"
        if isinstance(tp, Bytes | String | AddressType):
            return "string"
        if isinstance(tp, Array):
            return self._map_typescript(tp.element_type) + "[]"
        if isinstance(tp, Struct):
            fields = "; ".join(
                f"{name}: {self._map_typescript(field_tp)}" for name, field_tp in tp.fields.items()
            )
            return "{" + fields + "}"
        raise TypeError(f"Cannot map type {tp.canonical_form}")
