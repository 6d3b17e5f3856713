"""Generation of contract bindings from JSON ABI artifacts."""

import json
import logging
import re
from collections import Counter
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from functools import partial
from keyword import iskeyword
from pathlib import Path
from typing import Any

import anyio

from ._contract import ContractInstance
from ._contract_abi import ABIDefinitionError, ContractABI, EventFields, Fields
from ._templates import TemplateError, TemplateSet, render
from ._type_mapper import Backend, OutputLanguage, TypeMapper

logger = logging.getLogger(__name__)

DEFAULT_NETWORK_ID = 50

# Names used by the generated methods themselves
_RESERVED_PARAMETER_NAMES = frozenset(["self", "cls", "tx", "args", "call", "bytecode"])

# Attributes of the generated class that a method binding must not shadow
_RESERVED_PYTHON_MEMBERS = frozenset(
    [name for name in dir(ContractInstance) if not name.startswith("__")]
    + list(ContractInstance.__annotations__)
    + ["ABI", "CONTRACT_NAME", "EVENT_TOPICS", "ERROR_SELECTORS", "deployment_data"]
)


class GenerationError(Exception):
    """Raised when the bindings cannot be generated; no files are written in this case."""


@dataclass(frozen=True)
class GenerationConfig:
    """Parameters of a generation run."""

    language: OutputLanguage = OutputLanguage.PYTHON
    """The language of the generated bindings."""

    backend: Backend = Backend.WEB3
    """The client library flavor (only affects TypeScript integer types)."""

    network_id: int = DEFAULT_NETWORK_ID
    """The network to take the ABI from, for artifacts keeping one per network."""


@dataclass(frozen=True)
class ParamDescriptor:
    name: None | str
    binding_name: str
    type: str
    canonical_type: str
    dynamic: bool
    indexed: bool
    last: bool


@dataclass(frozen=True)
class ConstructorDescriptor:
    inputs: tuple[ParamDescriptor, ...]
    state_mutability: str
    payable: bool


@dataclass(frozen=True)
class MethodDescriptor:
    name: str
    binding_name: str
    signature: str
    selector: str
    inputs: tuple[ParamDescriptor, ...]
    outputs: tuple[ParamDescriptor, ...]
    return_type: str
    state_mutability: str
    payable: bool
    mutating: bool
    overloaded: bool


@dataclass(frozen=True)
class EventDescriptor:
    name: str
    signature: str
    topic: str
    fields: tuple[ParamDescriptor, ...]
    anonymous: bool


@dataclass(frozen=True)
class ErrorDescriptor:
    name: str
    signature: str
    selector: str
    fields: tuple[ParamDescriptor, ...]


@dataclass(frozen=True)
class ContractDescriptor:
    """Everything the templates need to render the bindings of one contract."""

    name: str
    class_name: str
    constructor: ConstructorDescriptor
    methods: tuple[MethodDescriptor, ...]
    events: tuple[EventDescriptor, ...]
    errors: tuple[ErrorDescriptor, ...]
    has_fallback: bool
    has_receive: bool
    abi_json: str


def snake_case(name: str) -> str:
    """Converts a camel-case identifier to the snake case (``balanceOf`` -> ``balance_of``)."""
    name = re.sub(r"(?<=[a-z0-9])(?=[A-Z])|(?<=[A-Z])(?=[A-Z][a-z])", "_", name)
    return name.lower()


def pascal_case(name: str) -> str:
    """Converts an arbitrary name (e.g. a file stem) into a class name."""
    parts = [part for part in re.split(r"[^0-9A-Za-z]+", name) if part]
    result = "".join(part[0].upper() + part[1:] for part in parts)
    if not result or result[0].isdigit():
        result = "_" + result
    return result


def output_file_name(contract_name: str, language: OutputLanguage) -> str:
    """Returns the name of the file the bindings for the contract are written to."""
    base = snake_case(pascal_case(contract_name)).lstrip("_")
    if language == OutputLanguage.TYPESCRIPT:
        base = base.replace("_", "-")
    return base + language.file_extension


def load_artifact(
    path: Path, network_id: int = DEFAULT_NETWORK_ID
) -> tuple[str, list[Mapping[str, Any]]]:
    """
    Reads a contract artifact and returns the contract name and its JSON ABI.

    Accepts a bare ABI list, or an object with the ABI under ``abi``,
    ``compilerOutput.abi``, or ``networks.<network_id>.abi``.
    The contract name is taken from ``contractName``, or from the file name.
    """
    try:
        content = json.loads(Path(path).read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        raise GenerationError(f"Failed to read {path}: {exc}") from exc

    name = Path(path).name.split(".")[0]
    json_abi: Any = None
    if isinstance(content, list):
        json_abi = content
    elif isinstance(content, dict):
        name = content.get("contractName", name)
        if not isinstance(name, str) or not name:
            raise GenerationError(f"{path} has an invalid `contractName`: {name!r}")
        if "abi" in content:
            json_abi = content["abi"]
        elif isinstance(content.get("compilerOutput"), dict):
            json_abi = content["compilerOutput"].get("abi")
        elif isinstance(content.get("networks"), dict):
            network = content["networks"].get(str(network_id))
            if isinstance(network, dict):
                json_abi = network.get("abi")

    if not isinstance(json_abi, list):
        raise GenerationError(f"{path} does not contain a contract ABI")
    return name, json_abi


def _binding_name(name: str, language: OutputLanguage, overload: None | int = None) -> str:
    python = language == OutputLanguage.PYTHON
    if python:
        name = snake_case(name)
    if overload is not None:
        name += ("_" if python else "") + str(overload)
    if python and (iskeyword(name) or name in _RESERVED_PYTHON_MEMBERS):
        name += "_"
    return name


class _DescriptorBuilder:
    def __init__(self, config: GenerationConfig):
        self._language = config.language
        self._mapper = TypeMapper(config.language, config.backend)

    def params(self, fields: Fields, *, output: bool = False) -> tuple[ParamDescriptor, ...]:
        binding_names = fields.safe_names(_RESERVED_PARAMETER_NAMES)
        types = self._mapper.map_fields(fields, output=output)
        indexed = fields.indexed if isinstance(fields, EventFields) else (False,) * len(fields)
        return tuple(
            ParamDescriptor(
                name=name,
                binding_name=binding_name,
                type=type_,
                canonical_type=tp.canonical_form,
                dynamic=tp.is_dynamic,
                indexed=is_indexed,
                last=position == len(fields) - 1,
            )
            for position, (name, binding_name, type_, tp, is_indexed) in enumerate(
                zip(fields.names, binding_names, types, fields.types, indexed, strict=True)
            )
        )

    def methods(self, abi: ContractABI) -> tuple[MethodDescriptor, ...]:
        overloads = Counter(method.name for method in abi.methods)
        positions: Counter[str] = Counter()

        descriptors = []
        for method in abi.methods:
            overloaded = overloads[method.name] > 1
            if overloaded:
                positions[method.name] += 1
            binding_name = _binding_name(
                method.name, self._language, positions[method.name] if overloaded else None
            )

            descriptors.append(
                MethodDescriptor(
                    name=method.name,
                    binding_name=binding_name,
                    signature=method.signature,
                    selector=method.selector.hex(),
                    inputs=self.params(method.inputs),
                    outputs=self.params(method.outputs, output=True),
                    return_type=self._mapper.return_type(method.outputs),
                    state_mutability=method.mutability.value,
                    payable=method.payable,
                    mutating=method.mutating,
                    overloaded=overloaded,
                )
            )

        self._check_members(descriptors)
        return tuple(descriptors)

    def _check_members(self, methods: Iterable[MethodDescriptor]) -> None:
        members = []
        for method in methods:
            members.append(method.binding_name)
            if self._language == OutputLanguage.PYTHON and method.mutating:
                members.append("send_" + method.binding_name)
                members.append("estimate_gas_" + method.binding_name)
        duplicates = sorted(name for name, count in Counter(members).items() if count > 1)
        if duplicates:
            raise ABIDefinitionError(
                "Methods produce colliding binding names: " + ", ".join(duplicates)
            )


def build_descriptor(
    contract_name: str, json_abi: Sequence[Mapping[str, Any]], config: GenerationConfig
) -> ContractDescriptor:
    """
    Builds the descriptor of the contract bindings.

    Raises :py:class:`ABIDefinitionError` if the ABI contains unknown types,
    colliding signatures, or methods whose binding names would collide.
    """
    abi = ContractABI.from_json(json_abi)  # type: ignore[arg-type]
    builder = _DescriptorBuilder(config)

    constructor = ConstructorDescriptor(
        inputs=builder.params(abi.constructor.inputs),
        state_mutability=abi.constructor.mutability.value,
        payable=abi.constructor.payable,
    )
    events = tuple(
        EventDescriptor(
            name=event.name,
            signature=event.signature,
            topic=event.topic.hex(),
            fields=builder.params(event.fields, output=True),
            anonymous=event.anonymous,
        )
        for event in abi.events
    )
    errors = tuple(
        ErrorDescriptor(
            name=error.name,
            signature=error.signature,
            selector=error.selector.hex(),
            fields=builder.params(error.fields, output=True),
        )
        for error in abi.errors
    )

    return ContractDescriptor(
        name=contract_name,
        class_name=pascal_case(contract_name) + "Contract",
        constructor=constructor,
        methods=builder.methods(abi),
        events=events,
        errors=errors,
        has_fallback=abi.fallback is not None,
        has_receive=abi.receive is not None,
        abi_json=json.dumps(json_abi),
    )


def _generate_one(
    path: Path, templates: TemplateSet, config: GenerationConfig
) -> tuple[str, str]:
    """Returns the output file name and the rendered bindings for the artifact."""
    contract_name, json_abi = load_artifact(path, config.network_id)
    try:
        descriptor = build_descriptor(contract_name, json_abi, config)
        text = render(templates, descriptor)
    except (ABIDefinitionError, TemplateError) as exc:
        raise GenerationError(f"{path}: {exc}") from exc
    logger.debug("Rendered the bindings for %s from %s", contract_name, path)
    return output_file_name(contract_name, config.language), text


async def generate_bindings(
    artifact_paths: Iterable[Path],
    output_dir: Path,
    templates: TemplateSet,
    config: GenerationConfig,
) -> list[Path]:
    """
    Generates the bindings for every artifact and writes them into ``output_dir``.

    Contracts are processed in parallel worker threads.
    The files are only written if every contract was processed successfully,
    otherwise a :py:class:`GenerationError` listing all the failures is raised.
    Returns the paths of the written files.
    """
    rendered: dict[Path, tuple[str, str]] = {}
    failures: list[str] = []

    async def worker(path: Path) -> None:
        try:
            rendered[path] = await anyio.to_thread.run_sync(
                partial(_generate_one, path, templates, config)
            )
        except GenerationError as exc:
            failures.append(str(exc))

    async with anyio.create_task_group() as task_group:
        for path in artifact_paths:
            task_group.start_soon(worker, Path(path))

    if failures:
        raise GenerationError("\n".join(sorted(failures)))

    sources: dict[str, Path] = {}
    for path, (file_name, _text) in sorted(rendered.items()):
        if file_name in sources:
            raise GenerationError(
                f"{sources[file_name]} and {path} would both be written to {file_name}"
            )
        sources[file_name] = path

    output_dir = Path(output_dir)
    try:
        output_dir.mkdir(parents=True, exist_ok=True)
        written = []
        for file_name, text in sorted(rendered.values()):
            file_path = output_dir / file_name
            file_path.write_text(text, encoding="utf-8")
            logger.info("Created %s", file_path)
            written.append(file_path)
    except OSError as exc:
        raise GenerationError(f"Failed to write the bindings: {exc}") from exc

    return written
