import json
from collections.abc import Callable

import httpx
import pytest
from ethereum_rpc import RPCError, RPCErrorCode, unstructure

from abibind import HTTPError, HTTPSession, InvalidResponse, RPCFailure, Unreachable

URL = "http://node.test"


def make_session(handler: Callable[[httpx.Request], httpx.Response]) -> HTTPSession:
    return HTTPSession(URL, transport=httpx.MockTransport(handler))


def rpc_response(**fields: object) -> httpx.Response:
    return httpx.Response(200, json={"jsonrpc": "2.0", "id": 1, **fields})


async def test_happy_path() -> None:
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(json.loads(request.content))
        return rpc_response(result="0x1")

    async with make_session(handler) as session:
        assert await session.rpc("eth_chainId") == "0x1"
        assert await session.rpc("eth_getCode", "0x" + "00" * 20, "latest") == "0x1"

    assert requests[0] == {"jsonrpc": "2.0", "method": "eth_chainId", "params": [], "id": 1}
    assert requests[1]["params"] == ["0x" + "00" * 20, "latest"]
    # Each request in a session gets its own id
    assert requests[1]["id"] == 2


async def test_rpc_error() -> None:
    data = b"\x08\xc3\x79\xa0"
    error = RPCError.with_code(RPCErrorCode.EXECUTION_ERROR, "execution reverted", data)

    def handler(request: httpx.Request) -> httpx.Response:
        # Eth-side errors come with the status 200
        return rpc_response(error=unstructure(error))

    async with make_session(handler) as session:
        with pytest.raises(RPCFailure, match="execution reverted") as excinfo:
            await session.rpc("eth_call")

    assert excinfo.value.error == error
    assert excinfo.value.revert_data == data


def test_revert_data() -> None:
    def failure(code: RPCErrorCode, message: str, data: None | bytes = None) -> RPCFailure:
        return RPCFailure(RPCError.with_code(code, message, data))

    assert failure(RPCErrorCode.EXECUTION_ERROR, "reverted", b"\x01").revert_data == b"\x01"
    assert failure(RPCErrorCode.EXECUTION_ERROR, "reverted").revert_data == b""
    assert failure(RPCErrorCode.SERVER_ERROR, "execution reverted").revert_data == b""
    assert failure(RPCErrorCode.SERVER_ERROR, "nonce too low").revert_data is None
    assert failure(RPCErrorCode.METHOD_NOT_FOUND, "execution reverted").revert_data is None


async def test_error_with_status() -> None:
    error = RPCError.with_code(RPCErrorCode.INVALID_REQUEST, "invalid json request")

    def handler(request: httpx.Request) -> httpx.Response:
        # The error object takes priority over the status
        return httpx.Response(400, json={"jsonrpc": "2.0", "id": 1, "error": unstructure(error)})

    async with make_session(handler) as session:
        with pytest.raises(RPCFailure, match="invalid json request"):
            await session.rpc("eth_call")


async def test_malformed_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return rpc_response(error="oops")

    async with make_session(handler) as session:
        with pytest.raises(InvalidResponse, match="Failed to parse an error response"):
            await session.rpc("eth_call")


async def test_non_json_response() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500, content=b"foo")

    async with make_session(handler) as session:
        message = "Expected a JSON response, got HTTP status 500: foo"
        with pytest.raises(InvalidResponse, match=message):
            await session.rpc("eth_chainId")


async def test_non_dict_response() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=[1, 2])

    async with make_session(handler) as session:
        with pytest.raises(InvalidResponse, match="RPC response must be a dictionary"):
            await session.rpc("eth_chainId")


async def test_missing_result() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return rpc_response()

    async with make_session(handler) as session:
        with pytest.raises(InvalidResponse, match="`result` is not present in the response"):
            await session.rpc("eth_chainId")


async def test_http_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(404, json={"detail": "not here"})

    async with make_session(handler) as session:
        with pytest.raises(HTTPError, match=r"HTTP status 404 \(Not Found\)") as excinfo:
            await session.rpc("eth_chainId")

    assert excinfo.value.status == 404
    assert "not here" in excinfo.value.body
    # A non-200 response is still a response the session cannot use
    assert isinstance(excinfo.value, InvalidResponse)


async def test_unreachable() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("Connection refused", request=request)

    async with make_session(handler) as session:
        message = "Failed to reach http://node.test: Connection refused"
        with pytest.raises(Unreachable, match=message):
            await session.rpc("eth_chainId")


async def test_timeout() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("Timed out", request=request)

    async with make_session(handler) as session:
        with pytest.raises(Unreachable, match="Timed out"):
            await session.rpc("eth_chainId")
