from collections.abc import Iterable, Iterator, Mapping, Sequence
from enum import Enum
from functools import cached_property
from itertools import chain
from keyword import iskeyword
from typing import Any, Generic, TypeVar, cast

from ethereum_rpc import LogEntry

from . import abi
from ._abi_types import ABI_JSON, Array, Struct, Type, decode_args, dispatch_parameter_types
from ._codec import strict_encode
from ._selector import SELECTOR_LENGTH, event_topic, function_signature, selector

# Anonymous events can have at most 4 indexed fields
ANONYMOUS_EVENT_INDEXED_FIELDS = 4

# Non-anonymous events can have at most 3 indexed fields
EVENT_INDEXED_FIELDS = 3


class ABIDefinitionError(Exception):
    """Raised when a JSON ABI cannot be turned into a consistent contract ABI."""


class FieldValues:
    """
    A container for field values of an event, error, or a method return.

    Since Solidity allows fields at arbitrary positions to be anonymous,
    a dictionary cannot handle all the possibilities.
    """

    def __init__(self, values: Sequence[tuple[str | None, Any]]):
        names = [name for name, _value in values if name is not None]
        if len(names) != len(set(names)):
            raise ValueError("The values cannot have repeating names")

        self._values_seq = values
        self._values_dict = {name: value for name, value in values if name is not None}
        self._representable_as_dict = len(names) == len(self._values_seq)

    @property
    def as_dict(self) -> dict[str, Any]:
        """
        Returns the equivalent dictionary representation.

        Raises ``ValueError`` if there are anonymous fields present.
        """
        if not self._representable_as_dict:
            raise ValueError(
                "This structure has some anonymous fields "
                "and therefore is not representable as a `dict`"
            )
        return self._values_dict

    @cached_property
    def as_tuple(self) -> tuple[Any, ...]:
        """
        Returns the equivalent tuple representation
        (a tuple of the values with the field names omitted).
        """
        return tuple(item for _name, item in self._values_seq)

    def __getitem__(self, key: str | int) -> Any:
        """Returns the value with the given name or at the given position."""
        if isinstance(key, int):
            return self.as_tuple[key]
        return self._values_dict[key]

    def __getattr__(self, name: str) -> Any:
        """Returns the value with the given name."""
        try:
            return self._values_dict[name]
        except KeyError as exc:
            raise AttributeError(name) from exc

    def __len__(self) -> int:
        return len(self._values_seq)

    def __eq__(self, other: object) -> bool:
        return isinstance(other, FieldValues) and self._values_seq == other._values_seq

    def __repr__(self) -> str:
        return f"FieldValues({self._values_seq!r})"


def _safe_names(names: Sequence[str | None], reserved: Iterable[str] = ()) -> list[str]:
    """
    Returns a list of unique valid Python identifiers for the given names.
    Keywords and reserved names are postfixed with a ``_``,
    anonymous names are replaced with ``_<position>``.
    """
    reserved = set(reserved)
    # Keep as many original names as possible
    existing_names = {
        name for name in names if name is not None and not iskeyword(name) and name not in reserved
    }

    safe_names = []
    disambiguation_counter = 1
    for arg_num, name in enumerate(names):
        if name is None:
            base_name = "_" + str(arg_num + 1)
        elif iskeyword(name) or name in reserved:
            base_name = name + "_"
        else:
            safe_names.append(name)
            continue

        # Since we renamed an existing name, there can potentially be
        # an existing one equal to it.
        safe_name = base_name
        while safe_name in existing_names or safe_name in reserved:
            safe_name = base_name + "_" + str(disambiguation_counter)
            disambiguation_counter += 1

        existing_names.add(safe_name)
        safe_names.append(safe_name)

    return safe_names


class Fields:
    """
    Describes a sequence of optionally named typed values.
    These can be method parameters, method outputs, error fields,
    or event fields.
    """

    names: tuple[str | None, ...]
    """Field names."""

    types: tuple[Type, ...]
    """Field types."""

    def __init__(
        self, fields: Mapping[str, Type] | Sequence[Type] | Sequence[tuple[str | None, Type]]
    ):
        names: tuple[str | None, ...]
        if isinstance(fields, Mapping):
            names = tuple(fields)
            types = tuple(fields.values())
        elif all(isinstance(elem, Type) for elem in fields):
            fields = cast("Sequence[Type]", fields)
            names = tuple(None for tp in fields)
            types = tuple(fields)
        else:
            fields = cast("Sequence[tuple[str | None, Type]]", fields)
            names = tuple(name for name, _tp in fields)
            types = tuple(tp for _name, tp in fields)

        self.names = names
        self.types = types

    def safe_names(self, reserved: Iterable[str] = ()) -> list[str]:
        """
        Returns unique Python identifiers for the fields.

        .. note::

            In Solidity, it is possible to have named and anonymous method parameters
            or event/error fields in arbitrary order.
            This cannot be mapped to Python function signatures directly,
            and some parameter names may be Python keywords.

            So the keyword and reserved names will be postfixed with a `_`,
            and anonymous fields will be given auto-generated names `_<position>`.
        """
        return _safe_names(self.names, reserved)

    @cached_property
    def canonical_form(self) -> str:
        """Returns the field types serialized in the canonical form as a string."""
        return "(" + ",".join(tp.canonical_form for tp in self.types) + ")"

    def encode(self, values: Sequence[Any]) -> bytes:
        """
        Strictly encodes the given positional values into bytes according to field types.
        Raises :py:class:`EncodingError` if any of the values cannot be encoded losslessly.
        """
        return strict_encode(self.names, self.types, values)

    def decode(self, value_bytes: bytes) -> FieldValues:
        """
        Decodes the packed bytestring into a list of pairs
        of the original parameter/field name and the value.
        """
        return FieldValues(list(zip(self.names, decode_args(self.types, value_bytes), strict=True)))

    def to_json(self) -> list[ABI_JSON]:
        """Returns this object's JSON ABI."""
        return [_param_to_json(name, tp) for name, tp in zip(self.names, self.types, strict=True)]

    def __len__(self) -> int:
        return len(self.types)

    def __str__(self) -> str:
        fields = ", ".join(
            tp.canonical_form + ((" " + name) if name is not None else "")
            for name, tp in zip(self.names, self.types, strict=True)
        )
        return f"({fields})"


def _param_to_json(name: str | None, tp: Type) -> dict[str, ABI_JSON]:
    """Serializes a parameter, expanding structs into ``tuple`` with components."""
    element = tp
    suffix = ""
    while isinstance(element, Array):
        suffix = "[" + (str(element.size) if element.size else "") + "]" + suffix
        element = element.element_type

    if isinstance(element, Struct):
        return {
            "name": name if name is not None else "",
            "type": "tuple" + suffix,
            "components": [
                _param_to_json(field_name, field_tp)
                for field_name, field_tp in element.fields.items()
            ],
        }
    return {"name": name if name is not None else "", "type": tp.canonical_form}


class EventFields(Fields):
    """Fields of an event structure."""

    indexed: tuple[bool, ...]
    """A sequence indicating whether the field at the given position is indexed."""

    def __init__(
        self,
        fields: Mapping[str, Type] | Sequence[Type] | Sequence[tuple[str | None, Type]],
        indexed: Sequence[bool],
    ):
        super().__init__(fields)

        indexed_seq = tuple(indexed)
        if len(indexed_seq) != len(self.names):
            raise ValueError("The length of `indexed` must match the number of fields")
        self.indexed = indexed_seq

    def decode_log_entry(self, topics: Sequence[bytes], data: bytes) -> FieldValues:
        """Decodes the event fields from the given log entry data."""
        indexed_types = [
            tp for tp, indexed in zip(self.types, self.indexed, strict=True) if indexed
        ]
        if len(topics) != len(indexed_types):
            raise ValueError(
                f"The number of topics in the log entry ({len(topics)}) does not match "
                f"the number of indexed fields in the event ({len(indexed_types)})"
            )

        decoded_topics = iter(
            tp.decode_from_topic(topic) for tp, topic in zip(indexed_types, topics, strict=True)
        )
        nonindexed_types = [
            tp for tp, indexed in zip(self.types, self.indexed, strict=True) if not indexed
        ]
        decoded_data = iter(decode_args(nonindexed_types, data))

        # Assemble preserving the field order
        return FieldValues(
            [
                (name, next(decoded_topics) if indexed else next(decoded_data))
                for name, indexed in zip(self.names, self.indexed, strict=True)
            ]
        )

    def to_json(self) -> list[ABI_JSON]:
        """Returns this object's JSON ABI."""
        args: list[ABI_JSON] = []
        for name, tp, indexed in zip(self.names, self.types, self.indexed, strict=True):
            param = _param_to_json(name, tp)
            param["indexed"] = indexed
            args.append(param)
        return args

    def __str__(self) -> str:
        params = []
        for name, tp, indexed in zip(self.names, self.types, self.indexed, strict=True):
            indexed_str = " indexed" if indexed else ""
            name_str = (" " + name) if name is not None else ""
            params.append(f"{tp.canonical_form}{indexed_str}{name_str}")
        return "(" + ", ".join(params) + ")"


class Mutability(Enum):
    """Possible states of a contract's method mutability."""

    PURE = "pure"
    """Solidity's ``pure`` (does not read or write the contract state)."""
    VIEW = "view"
    """Solidity's ``view`` (may read the contract state)."""
    NONPAYABLE = "nonpayable"
    """Solidity's ``nonpayable`` (may write the contract state)."""
    PAYABLE = "payable"
    """
    Solidity's ``payable`` (may write the contract state
    and accept associated funds with transactions).
    """

    @classmethod
    def from_json(cls, entry: Mapping[str, ABI_JSON]) -> "Mutability":
        """
        Extracts the mutability from a JSON ABI entry,
        falling back to the legacy ``constant``/``payable`` flags.
        """
        if "stateMutability" in entry:
            value = entry["stateMutability"]
            try:
                return cls(value)
            except ValueError as exc:
                raise ValueError(f"Unknown mutability identifier: {value}") from exc

        # Pre-0.4.16 compilers only emitted the boolean flags
        if entry.get("payable"):
            return cls.PAYABLE
        if entry.get("constant"):
            return cls.VIEW
        return cls.NONPAYABLE

    @property
    def payable(self) -> bool:
        return self == Mutability.PAYABLE

    @property
    def mutating(self) -> bool:
        return self in {Mutability.PAYABLE, Mutability.NONPAYABLE}


class Constructor:
    """
    Contract constructor.

    .. note::

       If the name of a parameter given to the constructor matches a Python keyword,
       ``_`` will be appended to it.
    """

    inputs: Fields
    """Input signature."""

    payable: bool
    """Whether this method is marked as payable."""

    @classmethod
    def from_json(cls, method_entry: Mapping[str, Any]) -> "Constructor":
        """Creates this object from a JSON ABI method entry."""
        if method_entry["type"] != "constructor":
            raise ValueError(
                "Constructor object must be created from a JSON entry with type='constructor'"
            )
        if method_entry.get("outputs"):
            raise ValueError("Constructor's JSON entry cannot have non-empty `outputs`")
        mutability = Mutability.from_json(method_entry)
        if not mutability.mutating:
            raise ValueError(
                "Constructor's JSON entry state mutability must be `nonpayable` or `payable`"
            )
        inputs = dispatch_parameter_types(method_entry.get("inputs", []))
        return cls(inputs, payable=mutability.payable)

    def __init__(
        self,
        inputs: Mapping[str, Type] | Sequence[tuple[str | None, Type]],
        *,
        payable: bool = False,
    ):
        self.inputs = Fields(inputs)
        self.payable = payable

    @property
    def mutability(self) -> Mutability:
        return Mutability.PAYABLE if self.payable else Mutability.NONPAYABLE

    def deployment_data(self, bytecode: bytes, args: Sequence[Any] = ()) -> bytes:
        """
        Returns the data of a transaction deploying the contract with the given bytecode:
        the bytecode followed by the strictly encoded constructor arguments.
        """
        return bytecode + self.inputs.encode(args)

    def to_json(self) -> ABI_JSON:
        """Returns this object's JSON ABI."""
        return {
            "type": "constructor",
            "stateMutability": self.mutability.value,
            "inputs": self.inputs.to_json(),
        }

    def __str__(self) -> str:
        return f"constructor{self.inputs} {self.mutability.value}"


class Method:
    """
    A contract method.

    .. note::

       If the name of a parameter (input or output) given to the constructor
       matches a Python keyword, ``_`` will be appended to it.
    """

    name: str
    """The name of this method."""

    inputs: Fields
    """The input signature of this method."""

    outputs: Fields
    """The output signature of this method."""

    mutability: Mutability
    """The declared state mutability."""

    payable: bool
    """Whether this method is marked as payable."""

    mutating: bool
    """Whether this method may mutate the contract state."""

    @classmethod
    def from_json(cls, method_entry: Mapping[str, Any]) -> "Method":
        """Creates this object from a JSON ABI method entry."""
        if method_entry["type"] != "function":
            raise ValueError("Method object must be created from a JSON entry with type='function'")

        name = method_entry["name"]
        inputs = dispatch_parameter_types(method_entry.get("inputs", []))
        mutability = Mutability.from_json(method_entry)
        outputs = dispatch_parameter_types(method_entry.get("outputs", []))
        return cls(name=name, inputs=inputs, outputs=outputs, mutability=mutability)

    def __init__(
        self,
        name: str,
        mutability: Mutability,
        inputs: Mapping[str, Type] | Sequence[Type] | Sequence[tuple[str | None, Type]],
        outputs: None
        | Mapping[str, Type]
        | Sequence[Type]
        | Sequence[tuple[str | None, Type]]
        | Type = None,
    ):
        self.name = name
        self.inputs = Fields(inputs)
        self.mutability = mutability
        self.payable = mutability.payable
        self.mutating = mutability.mutating

        if outputs is None:
            outputs = []
        if isinstance(outputs, Type):
            outputs = [(None, outputs)]

        self.outputs = Fields(outputs)

    @cached_property
    def signature(self) -> str:
        """The canonical signature of the method, ``name(type1,type2,...)``."""
        return function_signature(self.name, self.inputs.types)

    @cached_property
    def selector(self) -> bytes:
        """Method's selector."""
        return selector(self.signature)

    def decode_output(self, output_bytes: bytes) -> Any:
        """
        Decodes the output from ABI-packed bytes.

        If there is no output, returns ``None``.
        If there is only a single output, its value is returned.
        If all the fields in the output are unnamed, it is returned as a tuple of values.
        Otherwise it is returned as a :py:class:`FieldValues` object.
        """
        if len(self.outputs) == 0:
            return None

        results = self.outputs.decode(output_bytes)

        if len(self.outputs) == 1:
            return results.as_tuple[0]
        if all(name is None for name in self.outputs.names):
            return results.as_tuple

        return results

    def with_method(self, method: "Method") -> "MultiMethod":
        """Returns a multimethod resulting from joining this method with `method`."""
        return MultiMethod(self, method)

    def to_json(self) -> ABI_JSON:
        """Returns this object's JSON ABI."""
        return {
            "type": "function",
            "name": self.name,
            "stateMutability": self.mutability.value,
            "inputs": self.inputs.to_json(),
            "outputs": self.outputs.to_json(),
        }

    def __str__(self) -> str:
        returns = "" if not self.outputs.names else f" returns {self.outputs}"
        return f"function {self.name}{self.inputs} {self.mutability.value}{returns}"


class MultiMethod:
    """
    An overloaded contract method, containing several :py:class:`Method` objects with the same name
    but different input signatures.
    """

    def __init__(self, *methods: Method):
        if len(methods) == 0:
            raise ValueError("`methods` cannot be empty")

        first_method = methods[0]
        self._methods = {first_method.inputs.canonical_form: first_method}
        self._name = first_method.name

        for method in methods[1:]:
            self._add_method(method)

    def __getitem__(self, args: str) -> Method:
        """
        Returns the :py:class:`Method` with the given canonical form of an input signature
        (corresponding to :py:attr:`Fields.canonical_form`).
        """
        return self._methods[args]

    @property
    def name(self) -> str:
        """The name of this method."""
        return self._name

    @property
    def methods(self) -> dict[str, Method]:
        """All the overloaded methods, indexed by the canonical form of their input signatures."""
        return self._methods

    def _add_method(self, method: Method) -> None:
        if method.name != self.name:
            raise ValueError("All overloaded methods must have the same name")
        if method.inputs.canonical_form in self._methods:
            raise ABIDefinitionError(f"Duplicate method signature: {method.signature}")
        self._methods[method.inputs.canonical_form] = method

    def with_method(self, method: Method) -> "MultiMethod":
        """Returns a new ``MultiMethod`` with the given method included."""
        new_mm = MultiMethod(*self._methods.values())
        new_mm._add_method(method)
        return new_mm

    def to_json(self) -> list[ABI_JSON]:
        """Returns this object's JSON ABI."""
        return [method.to_json() for method in self._methods.values()]

    def __str__(self) -> str:
        return "; ".join(str(method) for method in self._methods.values())


class Event:
    """
    A contract event.

    .. note::

       If the name of a field given to the constructor matches a Python keyword,
       ``_`` will be appended to it.
    """

    name: str
    """The name of this event."""

    fields: EventFields
    """The event fields."""

    anonymous: bool
    """Whether the event is anonymous."""

    @classmethod
    def from_json(cls, event_entry: Mapping[str, Any]) -> "Event":
        """Creates this object from a JSON ABI method entry."""
        if event_entry["type"] != "event":
            raise ValueError("Event object must be created from a JSON entry with type='event'")

        name = event_entry["name"]
        fields = dispatch_parameter_types(event_entry["inputs"])
        indexed = [bool(input_.get("indexed", False)) for input_ in event_entry["inputs"]]

        return cls(
            name=name, fields=fields, indexed=indexed, anonymous=event_entry.get("anonymous", False)
        )

    def __init__(
        self,
        name: str,
        fields: Mapping[str, Type] | Sequence[tuple[str | None, Type]],
        indexed: Sequence[bool],
        *,
        anonymous: bool = False,
    ):
        self.name = name
        self.fields = EventFields(fields, indexed)
        self.anonymous = anonymous

        indexed_num = sum(self.fields.indexed)

        if anonymous and indexed_num > ANONYMOUS_EVENT_INDEXED_FIELDS:
            raise ValueError(
                f"Anonymous events can have at most {ANONYMOUS_EVENT_INDEXED_FIELDS} indexed fields"
            )
        if not anonymous and indexed_num > EVENT_INDEXED_FIELDS:
            raise ValueError(
                f"Non-anonymous events can have at most {EVENT_INDEXED_FIELDS} indexed fields"
            )

    @cached_property
    def signature(self) -> str:
        """The canonical signature of the event, ``Name(type1,type2,...)``."""
        return function_signature(self.name, self.fields.types)

    @cached_property
    def topic(self) -> bytes:
        """The topic representing this event's signature."""
        return event_topic(self.signature)

    def decode_log_entry(self, log_entry: LogEntry) -> FieldValues:
        """
        Decodes the event fields from the given log entry.
        Fields that cannot be decoded (indexed reference types,
        which are hashed before saving them to the log) are set to ``None``.
        """
        topics = [bytes(topic) for topic in log_entry.topics]
        if not self.anonymous:
            if not topics or topics[0] != self.topic:
                raise ValueError("This log entry belongs to a different event")
            topics = topics[1:]

        return self.fields.decode_log_entry(topics, log_entry.data)

    def to_json(self) -> ABI_JSON:
        """Returns this object's JSON ABI."""
        return {
            "type": "event",
            "name": self.name,
            "inputs": self.fields.to_json(),
            "anonymous": self.anonymous,
        }

    def __str__(self) -> str:
        return f"event {self.name}{self.fields}" + (" anonymous" if self.anonymous else "")


class Error:
    """A custom contract error."""

    name: str
    """The name of the error structure."""

    fields: Fields
    """The fields of the structure."""

    @classmethod
    def from_json(cls, error_entry: Mapping[str, Any]) -> "Error":
        """Creates this object from a JSON ABI method entry."""
        if error_entry["type"] != "error":
            raise ValueError("Error object must be created from a JSON entry with type='error'")

        name = error_entry["name"]
        fields = dispatch_parameter_types(error_entry.get("inputs", []))

        return cls(name=name, fields=fields)

    def __init__(
        self,
        name: str,
        fields: Mapping[str, Type] | Sequence[Type] | Sequence[tuple[str | None, Type]],
    ):
        self.name = name
        self.fields = Fields(fields)

    @cached_property
    def signature(self) -> str:
        """The canonical signature of the error, ``Name(type1,type2,...)``."""
        return function_signature(self.name, self.fields.types)

    @cached_property
    def selector(self) -> bytes:
        """Error's selector."""
        return selector(self.signature)

    def decode_fields(self, data_bytes: bytes) -> FieldValues:
        """Decodes the error fields from the given packed data."""
        return self.fields.decode(data_bytes)

    def to_json(self) -> ABI_JSON:
        """Returns this object's JSON ABI."""
        return {
            "type": "error",
            "name": self.name,
            "inputs": self.fields.to_json(),
        }

    def __str__(self) -> str:
        return f"error {self.name}{self.fields}"


class Fallback:
    """A fallback method."""

    payable: bool
    """Whether this method is marked as payable."""

    @classmethod
    def from_json(cls, method_entry: Mapping[str, Any]) -> "Fallback":
        """Creates this object from a JSON ABI method entry."""
        if method_entry["type"] != "fallback":
            raise ValueError(
                "Fallback object must be created from a JSON entry with type='fallback'"
            )
        mutability = Mutability.from_json(method_entry)
        if not mutability.mutating:
            raise ValueError(
                "Fallback method's JSON entry state mutability must be `nonpayable` or `payable`"
            )
        return cls(payable=mutability.payable)

    def __init__(self, *, payable: bool = False):
        self.payable = payable

    def to_json(self) -> ABI_JSON:
        """Returns this object's JSON ABI."""
        return {
            "type": "fallback",
            "stateMutability": "payable" if self.payable else "nonpayable",
        }

    def __str__(self) -> str:
        return "fallback() " + ("payable" if self.payable else "nonpayable")


class Receive:
    """A receive method."""

    payable: bool
    """Whether this method is marked as payable."""

    @classmethod
    def from_json(cls, method_entry: Mapping[str, Any]) -> "Receive":
        """Creates this object from a JSON ABI method entry."""
        if method_entry["type"] != "receive":
            raise ValueError("Receive object must be created from a JSON entry with type='receive'")
        if method_entry.get("stateMutability", "payable") != "payable":
            raise ValueError("Receive method's JSON entry state mutability must be `payable`")
        return cls()

    def __init__(self) -> None:
        self.payable = True

    def to_json(self) -> ABI_JSON:
        """Returns this object's JSON ABI."""
        return {"type": "receive", "stateMutability": "payable"}

    def __str__(self) -> str:
        return "receive() payable"


AbiEntry = Constructor | Method | Event | Error | Fallback | Receive
"""Any of the entries a contract ABI consists of."""


_ENTRY_TYPES: dict[str, type[AbiEntry]] = {
    "constructor": Constructor,
    "function": Method,
    "event": Event,
    "error": Error,
    "fallback": Fallback,
    "receive": Receive,
}


def _describe_entry(entry: Mapping[str, Any]) -> str:
    name = entry.get("name")
    type_ = entry.get("type", "<untyped>")
    return f"`{type_} {name}`" if name else f"`{type_}`"


def parse_entry(entry: Mapping[str, Any]) -> AbiEntry:
    """
    Creates an ABI entry object from its JSON representation.
    Raises :py:class:`ABIDefinitionError` naming the entry if it cannot be parsed
    (in particular, if it contains types that cannot be resolved).
    """
    entry_type = entry.get("type")
    if entry_type not in _ENTRY_TYPES:
        raise ABIDefinitionError(f"Unknown ABI entry type: {entry_type}")
    try:
        return _ENTRY_TYPES[entry_type].from_json(entry)
    except (KeyError, TypeError, ValueError) as exc:
        raise ABIDefinitionError(f"Invalid ABI entry {_describe_entry(entry)}: {exc}") from exc


# This is force-documented as :py:class in ``api.rst``
# because Sphinx cannot resolve typevars correctly.
# See https://github.com/sphinx-doc/sphinx/issues/9705
MethodType = TypeVar("MethodType")


class Methods(Generic[MethodType]):
    """
    Bases: ``Generic`` [``MethodType``].

    A holder for named methods which can be accessed as attributes,
    or iterated over.
    """

    def __init__(self, methods_dict: Mapping[str, MethodType]):
        self._methods_dict = methods_dict

    def __getattr__(self, method_name: str) -> MethodType:
        """Returns the method by name."""
        try:
            return self._methods_dict[method_name]
        except KeyError as exc:
            raise AttributeError(method_name) from exc

    def __contains__(self, method_name: str) -> bool:
        return method_name in self._methods_dict

    def __iter__(self) -> Iterator[MethodType]:
        """Returns the iterator over all methods."""
        return iter(self._methods_dict.values())


PANIC_ERROR = Error("Panic", dict(code=abi.uint(256)))


class UnknownError(LookupError):
    """Raised when the error data does not match any error known to the ABI."""


class ContractABI:
    """
    A wrapper for contract ABI.

    Contract methods are grouped by type and are accessible via the attributes below.
    """

    constructor: Constructor
    """
    Contract's constructor.
    If the JSON ABI does not declare one, a nonpayable constructor without inputs is assumed
    (this is what the compiler generates in this case).
    """

    fallback: None | Fallback
    """Contract's fallback method."""

    receive: None | Receive
    """Contract's receive method."""

    method: Methods[Method | MultiMethod]
    """Contract's regular methods, grouped by name."""

    methods: tuple[Method, ...]
    """Contract's regular methods in the declaration order."""

    events: tuple[Event, ...]
    """Contract's events in the declaration order."""

    errors: tuple[Error, ...]
    """Contract's custom errors in the declaration order."""

    @classmethod
    def from_json(cls, json_abi: ABI_JSON) -> "ContractABI":
        """
        Creates this object from a JSON ABI (e.g. generated by a Solidity compiler).

        Raises :py:class:`ABIDefinitionError` if any of the entries cannot be parsed,
        or if the entries are inconsistent (e.g. two methods with the same signature).
        """
        if not isinstance(json_abi, Sequence) or isinstance(json_abi, str):
            raise ABIDefinitionError("JSON ABI must be a list of entries")

        constructor = None
        fallback = None
        receive = None
        methods = []
        events = []
        errors = []

        for entry in json_abi:
            if not isinstance(entry, Mapping):
                raise ABIDefinitionError(f"JSON ABI entries must be objects, got {entry!r}")

            item = parse_entry(entry)
            if isinstance(item, Constructor):
                if constructor:
                    raise ABIDefinitionError(
                        "JSON ABI contains more than one constructor declarations"
                    )
                constructor = item
            elif isinstance(item, Method):
                methods.append(item)
            elif isinstance(item, Event):
                events.append(item)
            elif isinstance(item, Error):
                errors.append(item)
            elif isinstance(item, Fallback):
                if fallback:
                    raise ABIDefinitionError(
                        "JSON ABI contains more than one fallback declarations"
                    )
                fallback = item
            elif isinstance(item, Receive):
                if receive:
                    raise ABIDefinitionError(
                        "JSON ABI contains more than one receive method declarations"
                    )
                receive = item

        return cls(
            constructor=constructor,
            fallback=fallback,
            receive=receive,
            methods=methods,
            events=events,
            errors=errors,
        )

    def __init__(
        self,
        constructor: None | Constructor = None,
        fallback: None | Fallback = None,
        receive: None | Receive = None,
        methods: None | Iterable[Method | MultiMethod] = None,
        events: None | Iterable[Event] = None,
        errors: None | Iterable[Error] = None,
    ):
        if constructor is None:
            constructor = Constructor(inputs=[])

        self.fallback = fallback
        self.receive = receive
        self.constructor = constructor

        flat_methods: list[Method] = []
        for item in methods or []:
            if isinstance(item, MultiMethod):
                flat_methods.extend(item.methods.values())
            else:
                flat_methods.append(item)
        self.methods = tuple(flat_methods)
        self.events = tuple(events or [])
        self.errors = tuple(errors or [])

        self.method_by_signature = _unique_by_signature("method", self.methods)
        self.event_by_signature = _unique_by_signature("event", self.events)
        self.error_by_signature = _unique_by_signature("error", self.errors)

        grouped: dict[str, Method | MultiMethod] = {}
        for method in self.methods:
            if method.name in grouped:
                grouped[method.name] = grouped[method.name].with_method(method)
            else:
                grouped[method.name] = method
        self.method = Methods(grouped)

        self._error_by_selector = {
            error.selector: error for error in chain(self.errors, [PANIC_ERROR])
        }
        self._event_by_topic = {event.topic: event for event in self.events if not event.anonymous}

    def resolve_error(self, error_data: bytes) -> tuple[Error, FieldValues]:
        """
        Given the packed error data, attempts to find the error in the ABI
        (the built-in ``Panic(uint256)`` takes priority) and decode the data into its fields.
        """
        if len(error_data) < SELECTOR_LENGTH:
            raise ValueError("Error data too short to contain a selector")

        selector_, data = error_data[:SELECTOR_LENGTH], error_data[SELECTOR_LENGTH:]

        if selector_ in self._error_by_selector:
            error = self._error_by_selector[selector_]
            decoded = error.decode_fields(data)
            return error, decoded

        raise UnknownError(f"Could not find an error with selector {selector_.hex()} in the ABI")

    def resolve_event(self, log_entry: LogEntry) -> tuple[Event, FieldValues]:
        """
        Finds the non-anonymous event the log entry belongs to by its first topic,
        and decodes the fields.
        """
        if not log_entry.topics or bytes(log_entry.topics[0]) not in self._event_by_topic:
            raise ValueError("Could not find an event matching the log entry in the ABI")
        event = self._event_by_topic[bytes(log_entry.topics[0])]
        return event, event.decode_log_entry(log_entry)

    def to_json(self) -> list[ABI_JSON]:
        """Returns the serialized list of contract items (methods, errors, events)."""
        return [item.to_json() for item in self._all_items()]

    def _all_items(self) -> list[AbiEntry]:
        return list(
            chain(
                [self.constructor],
                [self.fallback] if self.fallback else [],
                [self.receive] if self.receive else [],
                self.methods,
                self.events,
                self.errors,
            )
        )

    def __str__(self) -> str:
        indent = "    "
        method_list = [indent + str(item) for item in self._all_items()]
        return "{\n" + "\n".join(method_list) + "\n}"


_Signed = TypeVar("_Signed", Method, Event, Error)


def _unique_by_signature(kind: str, items: Iterable[_Signed]) -> dict[str, _Signed]:
    """Builds a signature-keyed lookup table, rejecting exact duplicates."""
    table: dict[str, _Signed] = {}
    for item in items:
        if item.signature in table:
            raise ABIDefinitionError(f"Duplicate {kind} signature: {item.signature}")
        table[item.signature] = item
    return table
