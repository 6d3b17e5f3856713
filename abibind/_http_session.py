"""JSON RPC over HTTP(S), based on ``httpx``."""

import logging
from collections.abc import Mapping
from http import HTTPStatus
from itertools import count
from json import JSONDecodeError
from types import TracebackType
from typing import cast

import httpx
from compages import StructuringError
from ethereum_rpc import RPCError, structure

from ._provider import RPC_JSON, InvalidResponse, ProviderSession, RPCFailure, Unreachable

logger = logging.getLogger(__name__)


class HTTPError(InvalidResponse):
    """
    Raised when the node responds with a status code other than 200
    and without a JSON RPC error object.
    """

    status: int
    """The HTTP status code."""

    body: str
    """The response body."""

    def __init__(self, status: int, body: str):
        try:
            description = HTTPStatus(status).phrase
        except ValueError:
            # `httpx` passes non-standard codes through
            description = "Unknown status"
        super().__init__(f"HTTP status {status} ({description}): {body}")
        self.status = status
        self.body = body


def _unpack_response(response: httpx.Response) -> RPC_JSON:
    """Returns the ``result`` of a JSON RPC response, or raises the error it describes."""
    try:
        response_json = response.json()
    except (JSONDecodeError, UnicodeDecodeError) as exc:
        raise InvalidResponse(
            f"Expected a JSON response, got HTTP status {response.status_code}: {response.text}"
        ) from exc

    if not isinstance(response_json, Mapping):
        raise InvalidResponse(f"RPC response must be a dictionary, got: {response_json}")
    response_json = cast("Mapping[str, RPC_JSON]", response_json)

    # Eth-side errors (e.g. reverted executions) come with the status 200,
    # so the error object takes priority over the status.
    if "error" in response_json:
        try:
            error = structure(RPCError, response_json["error"])
        except StructuringError as exc:
            raise InvalidResponse(f"Failed to parse an error response: {response_json}") from exc
        raise RPCFailure(error)

    if response.status_code != HTTPStatus.OK:
        raise HTTPError(response.status_code, response.text)

    if "result" not in response_json:
        raise InvalidResponse(f"`result` is not present in the response: {response_json}")
    return response_json["result"]


class HTTPSession(ProviderSession):
    """
    A JSON RPC session with a node at ``url``.

    Holds an ``httpx.AsyncClient`` open for its lifetime, so it must be used as
    an async context manager. ``transport`` is passed to the client
    (e.g. to route the requests through a mock transport).
    """

    def __init__(
        self, url: str, transport: None | httpx.AsyncBaseTransport = None, timeout: float = 10
    ):
        self._url = url
        self._client = httpx.AsyncClient(transport=transport, timeout=timeout)
        self._request_ids = count(1)

    async def __aenter__(self) -> "HTTPSession":
        await self._client.__aenter__()
        return self

    async def __aexit__(
        self,
        exc_type: None | type[BaseException],
        exc_value: None | BaseException,
        traceback: None | TracebackType,
    ) -> None:
        await self._client.__aexit__(exc_type, exc_value, traceback)

    async def rpc(self, method: str, *args: RPC_JSON) -> RPC_JSON:
        request_id = next(self._request_ids)
        request = {"jsonrpc": "2.0", "method": method, "params": args, "id": request_id}
        logger.debug("RPC request to %s: %s", self._url, method)
        try:
            response = await self._client.post(self._url, json=request)
        except httpx.TransportError as exc:
            raise Unreachable(f"Failed to reach {self._url}: {exc}") from exc
        return _unpack_response(response)
