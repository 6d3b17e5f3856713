"""The runtime layer the generated contract bindings call into."""

import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import fields
from enum import Enum
from typing import Any

from ethereum_rpc import Address, LogEntry, TxHash

from ._abi_types import ABIDecodingError
from ._codec import REVERT_SELECTOR, UndecodableRevert, decode_revert_reason
from ._contract_abi import (
    PANIC_ERROR,
    ContractABI,
    Error,
    Event,
    FieldValues,
    Method,
    UnknownError,
)
from ._node import CodeRunner, ExecutionReverted, Node, TxData
from ._selector import SELECTOR_LENGTH

logger = logging.getLogger(__name__)

# Regular outputs consist of whole 32-byte slots, errors are prefixed with a selector
_SLOT_SIZE = 32


class SignatureNotFound(LookupError):
    """
    Raised when a method signature is not present in the contract ABI
    (usually meaning that the binding was generated from a different ABI).
    """


class RevertError(Exception):
    """Raised when a contract call was reverted."""

    message: str
    """The revert reason."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ContractPanicReason(Enum):
    """Reasons leading to a contract call panicking."""

    UNKNOWN = -1
    """Unknown panic code."""

    COMPILER = 0
    """Used for generic compiler inserted panics."""

    ASSERTION = 0x01
    """If you call assert with an argument that evaluates to ``false``."""

    OVERFLOW = 0x11
    """
    If an arithmetic operation results in underflow or overflow
    outside of an ``unchecked { ... }`` block.
    """

    DIVISION_BY_ZERO = 0x12
    """If you divide or modulo by zero (e.g. ``5 / 0`` or ``23 % 0``)."""

    INVALID_ENUM_VALUE = 0x21
    """If you convert a value that is too big or negative into an ``enum`` type."""

    INVALID_ENCODING = 0x22
    """If you access a storage byte array that is incorrectly encoded."""

    EMPTY_ARRAY = 0x31
    """If you call ``.pop()`` on an empty array."""

    OUT_OF_BOUNDS = 0x32
    """
    If you access an array, ``bytesN`` or an array slice at an out-of-bounds or negative index
    (i.e. ``x[i]`` where ``i >= x.length`` or ``i < 0``).
    """

    OUT_OF_MEMORY = 0x41
    """If you allocate too much memory or create an array that is too large."""

    ZERO_DEREFERENCE = 0x51
    """If you call a zero-initialized variable of internal function type."""

    @classmethod
    def from_int(cls, val: int) -> "ContractPanicReason":
        try:
            return cls(val)
        except ValueError:
            return cls.UNKNOWN


class ContractPanic(RevertError):
    """A panic raised in a contract call."""

    Reason = ContractPanicReason

    reason: ContractPanicReason
    """Parsed panic reason."""

    @classmethod
    def from_code(cls, code: int) -> "ContractPanic":
        return cls(ContractPanicReason.from_int(code))

    def __init__(self, reason: ContractPanicReason):
        super().__init__(f"Contract panicked: {reason}")
        self.reason = reason


class ContractError(RevertError):
    """A raised Solidity error (from ``revert SomeError(...)``)."""

    error: Error
    """The recognized ABI Error object."""

    data: FieldValues
    """The unpacked error data, corresponding to the ABI."""

    def __init__(self, error: Error, data: FieldValues):
        super().__init__(f"Contract raised {error.name}: {data}")
        self.error = error
        self.data = data


GasEstimator = Callable[[TxData], Awaitable[int]]


async def apply_defaults(
    tx: TxData, defaults: TxData, estimate_gas: None | GasEstimator = None
) -> TxData:
    """
    Resolves the transaction fields: a value set in ``tx`` takes priority
    over the one in ``defaults``, fields unset in both stay unset.
    If the gas is still unresolved and ``estimate_gas`` is given,
    it is called with the partially resolved transaction.
    """
    resolved = TxData(
        **{
            field.name: getattr(tx, field.name)
            if getattr(tx, field.name) is not None
            else getattr(defaults, field.name)
            for field in fields(TxData)
        }
    )
    if resolved.gas is None and estimate_gas is not None:
        resolved = resolved.with_fields(gas=await estimate_gas(resolved))
    return resolved


class ContractInstance:
    """
    A deployed contract.

    This is the base class of the generated bindings;
    all the calls are identified by the canonical method signature
    and positional arguments.
    """

    contract_name: str
    """The name of the contract."""

    abi: ContractABI
    """The contract's ABI."""

    address: Address
    """The contract's address."""

    node: Node
    """The node executing the calls."""

    tx_defaults: TxData
    """Transaction fields used when they are not given explicitly."""

    def __init__(
        self,
        contract_name: str,
        abi: ContractABI,
        address: Address | str,
        node: Node,
        tx_defaults: None | TxData = None,
    ):
        self.contract_name = contract_name
        self.abi = abi
        self.address = address if isinstance(address, Address) else Address.from_hex(address)
        self.node = node
        self.tx_defaults = tx_defaults or TxData()
        self._encoders = abi.method_by_signature
        self._deployed_bytecode: None | bytes = None

    def lookup_method(self, signature: str) -> Method:
        """Returns the method with the given canonical signature."""
        try:
            return self._encoders[signature]
        except KeyError as exc:
            raise SignatureNotFound(
                f"Failed to lookup method with function signature {signature} "
                f"in the ABI of {self.contract_name}"
            ) from exc

    def strict_encode_arguments(self, signature: str, args: Sequence[Any]) -> bytes:
        """
        Returns the call payload: the method selector followed by the strictly encoded arguments.
        Raises :py:class:`EncodingError` if any of the arguments cannot be encoded losslessly.
        """
        method = self.lookup_method(signature)
        return method.selector + method.inputs.encode(args)

    async def _lookup_deployed_bytecode(self) -> bytes:
        # Concurrent first calls may fetch it more than once, which is harmless
        if self._deployed_bytecode is None:
            self._deployed_bytecode = await self.node.get_code(self.address)
        return self._deployed_bytecode

    async def _execute(self, payload: bytes, tx: TxData) -> bytes:
        if isinstance(self.node, CodeRunner):
            code = await self._lookup_deployed_bytecode()
            return await self.node.run_code(code, payload, tx.with_fields(to=self.address))
        return await self.node.execute(self.address, payload, tx)

    def _raise_on_revert(self, raw: bytes) -> None:
        """Raises the appropriate :py:class:`RevertError` if ``raw`` is revert data."""
        selector = raw[:SELECTOR_LENGTH]
        if selector == REVERT_SELECTOR:
            try:
                reason = decode_revert_reason(raw[SELECTOR_LENGTH:])
            except UndecodableRevert as exc:
                raise RevertError(f"Cannot safely decode revert reason: {exc}") from exc
            raise RevertError(reason)

        if len(raw) % _SLOT_SIZE != SELECTOR_LENGTH:
            return

        try:
            error, decoded = self.abi.resolve_error(raw)
        except (UnknownError, ABIDecodingError):
            return

        if error is PANIC_ERROR:
            raise ContractPanic.from_code(decoded["code"])
        raise ContractError(error, decoded)

    def _revert_error(self, exc: ExecutionReverted) -> RevertError:
        """Returns the error describing the revert data reported by the node."""
        try:
            self._raise_on_revert(exc.data)
        except RevertError as error:
            return error
        return RevertError(f"Execution reverted: 0x{exc.data.hex()}")

    async def _estimate_gas(self, tx: TxData) -> int:
        try:
            return await self.node.estimate_gas(tx)
        except ExecutionReverted as exc:
            raise self._revert_error(exc) from exc

    async def call(self, signature: str, args: Sequence[Any] = (), tx: None | TxData = None) -> Any:
        """
        Executes the method without creating a transaction and returns the decoded output
        (see :py:meth:`Method.decode_output` for the format).
        The gas is never estimated for calls.
        """
        method = self.lookup_method(signature)
        payload = self.strict_encode_arguments(signature, args)
        resolved = await apply_defaults(tx or TxData(), self.tx_defaults)
        logger.debug("Calling %s.%s", self.contract_name, signature)
        try:
            raw = await self._execute(payload, resolved)
        except ExecutionReverted as exc:
            raise self._revert_error(exc) from exc
        self._raise_on_revert(raw)
        return method.decode_output(raw)

    async def estimate_gas(
        self, signature: str, args: Sequence[Any] = (), tx: None | TxData = None
    ) -> int:
        """Estimates the gas needed to send a transaction calling the method."""
        payload = self.strict_encode_arguments(signature, args)
        resolved = await apply_defaults(tx or TxData(), self.tx_defaults)
        logger.debug("Estimating gas for %s.%s", self.contract_name, signature)
        return await self._estimate_gas(resolved.with_fields(to=self.address, data=payload))

    async def send_transaction(
        self, signature: str, args: Sequence[Any] = (), tx: None | TxData = None
    ) -> TxHash:
        """
        Sends a transaction calling the method and returns its hash.
        The gas is estimated if it is given neither explicitly nor in the defaults.
        """
        method = self.lookup_method(signature)
        if not method.mutating:
            raise ValueError(f"{signature} is non-mutating, use `call()` to invoke it")

        payload = self.strict_encode_arguments(signature, args)
        tx = (tx or TxData()).with_fields(to=self.address, data=payload)
        value = tx.value if tx.value is not None else self.tx_defaults.value
        if value is not None and value.as_wei() != 0 and not method.payable:
            raise ValueError(f"Attempting to transfer funds to a non-payable method {signature}")

        resolved = await apply_defaults(tx, self.tx_defaults, estimate_gas=self._estimate_gas)

        logger.debug("Sending a transaction to %s.%s", self.contract_name, signature)
        try:
            return await self.node.send_transaction(resolved)
        except ExecutionReverted as exc:
            raise self._revert_error(exc) from exc

    def decode_log(self, log_entry: LogEntry) -> tuple[Event, FieldValues]:
        """Finds the event the log entry was emitted by and decodes its fields."""
        if log_entry.address != self.address:
            raise ValueError("Log entry originates from a different contract")
        return self.abi.resolve_event(log_entry)
