"""
The JSON RPC transport :py:class:`RPCNode` sends its requests through.

A session only moves JSON in and out; it knows nothing about transactions or contracts.
Failures are reported as :py:class:`ProviderError` subclasses.
"""

from abc import ABC, abstractmethod
from collections.abc import Mapping, Sequence

from ethereum_rpc import RPCError, RPCErrorCode

RPC_JSON = None | bool | int | float | str | Sequence["RPC_JSON"] | Mapping[str, "RPC_JSON"]
"""RPC requests and responses serializable to JSON."""

# Some nodes report a revert without data this way instead of using the execution error code
_BARE_REVERT_MESSAGE = "execution reverted"


class ProviderError(Exception):
    """The base class of the errors raised by a provider session."""


class Unreachable(ProviderError):
    """Raised when the node cannot be connected to."""


class InvalidResponse(ProviderError):
    """Raised when the node's response is not a well-formed JSON RPC response."""


class RPCFailure(ProviderError):
    """Raised when the node answers with a JSON RPC error object."""

    error: RPCError
    """The error object returned by the node."""

    def __init__(self, error: RPCError):
        super().__init__(str(error))
        self.error = error

    @property
    def revert_data(self) -> None | bytes:
        """
        The raw revert data if the error reports a reverted execution, ``None`` otherwise.
        A revert reported without data gives an empty bytestring.
        """
        code = self.error.parsed_code
        if code == RPCErrorCode.EXECUTION_ERROR:
            return self.error.data or b""
        if code == RPCErrorCode.SERVER_ERROR and self.error.message == _BARE_REVERT_MESSAGE:
            return b""
        return None


class ProviderSession(ABC):
    """
    A connection to a node accepting JSON RPC requests.

    :py:meth:`rpc` may raise :py:class:`ProviderError`.
    """

    @abstractmethod
    async def rpc(self, method: str, *args: RPC_JSON) -> RPC_JSON:
        """Calls the given RPC method with the already json-ified arguments."""
        ...
