"""
The execution backend the contract bindings talk to.

The rest of the package only needs a node to execute a payload at an address
and return raw bytes; :py:class:`RPCNode` does that over Ethereum JSON RPC.
"""

import logging
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Iterator
from contextlib import asynccontextmanager, contextmanager
from dataclasses import dataclass, replace
from typing import Any, TypeVar

from compages import StructuringError
from ethereum_rpc import (
    Address,
    Amount,
    Block,
    BlockLabel,
    TxHash,
    structure,
    unstructure,
)

import httpx

from ._http_session import HTTPSession
from ._provider import RPC_JSON, ProviderSession, RPCFailure

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TxData:
    """
    Transaction fields.

    Used both for the per-call overrides and for the defaults configured on a contract instance.
    A field set to ``None`` is not sent to the node at all.
    """

    from_: None | Address = None
    to: None | Address = None
    data: None | bytes = None
    gas: None | int = None
    gas_price: None | Amount = None
    value: None | Amount = None
    nonce: None | int = None

    def with_fields(self, **kwargs: Any) -> "TxData":
        """Returns a copy with the given fields replaced."""
        return replace(self, **kwargs)

    def to_json(self) -> dict[str, RPC_JSON]:
        """Returns the transaction in the JSON RPC format, omitting unset fields."""
        fields = {
            "from": self.from_,
            "to": self.to,
            "gas": self.gas,
            "gasPrice": self.gas_price,
            "value": self.value,
            "nonce": self.nonce,
            "data": self.data,
        }
        return {key: unstructure(value) for key, value in fields.items() if value is not None}


class BadResponseFormat(Exception):
    """Raised if the RPC provider returned an unexpectedly formatted response."""


class ExecutionReverted(Exception):
    """
    Raised by a node when a transaction (or its gas estimation) was reverted
    and the node returned the revert data.
    """

    data: bytes
    """The raw revert data."""

    def __init__(self, data: bytes):
        super().__init__(f"Execution reverted with data 0x{data.hex()}")
        self.data = data


class Node(ABC):
    """
    An opaque execution backend.

    The methods may raise node-specific transport errors which are propagated to the caller as is.
    """

    @abstractmethod
    async def execute(self, address: Address, payload: bytes, tx: TxData) -> bytes:
        """
        Executes the payload at the given address without creating a transaction
        and returns the raw output.
        If the execution was reverted, the raw revert data is returned;
        a revert without any data raises :py:class:`ExecutionReverted`.
        """
        ...

    @abstractmethod
    async def get_code(self, address: Address) -> bytes:
        """Returns the deployed bytecode at the given address."""
        ...

    @abstractmethod
    async def estimate_gas(self, tx: TxData) -> int:
        """
        Estimates the gas needed for the transaction.
        Raises :py:class:`ExecutionReverted` if the transaction would revert.
        """
        ...

    @abstractmethod
    async def send_transaction(self, tx: TxData) -> TxHash:
        """
        Submits the transaction (signed by the node on behalf of ``tx.from_``)
        and returns its hash.
        Raises :py:class:`ExecutionReverted` if the transaction is rejected as reverting.
        """
        ...


class CodeRunner(Node):
    """
    An in-process execution backend, running the deployed bytecode directly
    instead of executing a call at an address.
    """

    @abstractmethod
    async def run_code(self, code: bytes, payload: bytes, tx: TxData) -> bytes:
        """
        Runs the given bytecode with the payload as the call data and returns the raw output
        (or the raw revert data).
        """
        ...


@contextmanager
def convert_errors(method_name: str) -> Iterator[None]:
    try:
        yield
    except StructuringError as exc:
        raise BadResponseFormat(f"{method_name}: {exc}") from exc


RetType = TypeVar("RetType")


class RPCNode(Node):
    """
    A node accessed via Ethereum JSON RPC.

    Calls and estimations are performed against ``block``.
    Execution reverts reported by the session are turned into the raw revert data
    (for :py:meth:`execute`) or :py:class:`ExecutionReverted` (for the rest),
    any other :py:class:`ProviderError` is propagated.
    Unparseable results raise :py:class:`BadResponseFormat`.
    """

    def __init__(self, provider_session: ProviderSession, block: Block = BlockLabel.LATEST):
        self._provider_session = provider_session
        self._block = block

    @classmethod
    @asynccontextmanager
    async def connect(
        cls,
        url: str,
        block: Block = BlockLabel.LATEST,
        transport: None | httpx.AsyncBaseTransport = None,
    ) -> AsyncIterator["RPCNode"]:
        """Opens an HTTP session with the node at ``url`` for the duration of the context."""
        async with HTTPSession(url, transport=transport) as session:
            yield cls(session, block)

    async def _rpc_call(
        self, method_name: str, ret_type: type[RetType], *args: RPC_JSON
    ) -> RetType:
        logger.debug("Calling `%s`", method_name)
        with convert_errors(method_name):
            result = await self._provider_session.rpc(method_name, *args)
            return structure(ret_type, result)

    async def execute(self, address: Address, payload: bytes, tx: TxData) -> bytes:
        params = tx.with_fields(to=address, data=payload).to_json()
        try:
            return await self._rpc_call("eth_call", bytes, params, unstructure(self._block))
        except RPCFailure as exc:
            if exc.revert_data is None:
                raise
            if not exc.revert_data:
                raise ExecutionReverted(exc.revert_data) from exc
            return exc.revert_data

    async def get_code(self, address: Address) -> bytes:
        return await self._rpc_call(
            "eth_getCode", bytes, unstructure(address), unstructure(self._block)
        )

    async def estimate_gas(self, tx: TxData) -> int:
        try:
            return await self._rpc_call(
                "eth_estimateGas", int, tx.to_json(), unstructure(self._block)
            )
        except RPCFailure as exc:
            if exc.revert_data is None:
                raise
            raise ExecutionReverted(exc.revert_data) from exc

    async def send_transaction(self, tx: TxData) -> TxHash:
        try:
            return await self._rpc_call("eth_sendTransaction", TxHash, tx.to_json())
        except RPCFailure as exc:
            if exc.revert_data is None:
                raise
            raise ExecutionReverted(exc.revert_data) from exc
