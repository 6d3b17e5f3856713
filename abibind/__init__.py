"""Typed contract bindings generated from JSON ABI, and the runtime they call into."""

from . import abi
from ._abi_types import ABIDecodingError, UnknownTypeError
from ._codec import REVERT_SELECTOR, EncodingError, UndecodableRevert, strict_encode
from ._contract import (
    ContractError,
    ContractInstance,
    ContractPanic,
    ContractPanicReason,
    RevertError,
    SignatureNotFound,
    apply_defaults,
)
from ._contract_abi import (
    ABIDefinitionError,
    Constructor,
    ContractABI,
    Error,
    Event,
    Fallback,
    FieldValues,
    Method,
    MultiMethod,
    Mutability,
    Receive,
    parse_entry,
)
from ._generator import (
    ContractDescriptor,
    GenerationConfig,
    GenerationError,
    build_descriptor,
    generate_bindings,
    load_artifact,
)
from ._http_session import HTTPError, HTTPSession
from ._node import BadResponseFormat, CodeRunner, ExecutionReverted, Node, RPCNode, TxData
from ._provider import InvalidResponse, ProviderError, ProviderSession, RPCFailure, Unreachable
from ._selector import event_topic, function_signature, selector
from ._templates import TemplateError, TemplateSet, render
from ._type_mapper import Backend, OutputLanguage, TypeMapper

__all__ = [
    "REVERT_SELECTOR",
    "ABIDecodingError",
    "ABIDefinitionError",
    "Backend",
    "BadResponseFormat",
    "CodeRunner",
    "Constructor",
    "ContractABI",
    "ContractDescriptor",
    "ContractError",
    "ContractInstance",
    "ContractPanic",
    "ContractPanicReason",
    "EncodingError",
    "Error",
    "Event",
    "ExecutionReverted",
    "Fallback",
    "FieldValues",
    "GenerationConfig",
    "GenerationError",
    "HTTPError",
    "HTTPSession",
    "InvalidResponse",
    "Method",
    "MultiMethod",
    "Mutability",
    "Node",
    "OutputLanguage",
    "ProviderError",
    "ProviderSession",
    "RPCFailure",
    "RPCNode",
    "Receive",
    "RevertError",
    "SignatureNotFound",
    "TemplateError",
    "TemplateSet",
    "TxData",
    "TypeMapper",
    "UndecodableRevert",
    "UnknownTypeError",
    "Unreachable",
    "abi",
    "apply_defaults",
    "build_descriptor",
    "event_topic",
    "function_signature",
    "generate_bindings",
    "load_artifact",
    "parse_entry",
    "render",
    "selector",
    "strict_encode",
]
