import re

import pytest
from ethereum_rpc import Address, Amount, keccak
from fakes import CONTRACT_ADDRESS, SENT_TX_HASH, FakeCodeRunner, FakeNode, make_log_entry

from abibind import (
    REVERT_SELECTOR,
    ContractABI,
    ContractError,
    ContractInstance,
    ContractPanic,
    ContractPanicReason,
    EncodingError,
    ExecutionReverted,
    FieldValues,
    RevertError,
    SignatureNotFound,
    TxData,
    abi,
    apply_defaults,
    selector,
)
from abibind._abi_types import encode_args

RECEIVER = Address(b"\x01" * 20)

TRANSFER = "transfer(address,uint256)"


def transfer_payload(to: Address, amount: int) -> bytes:
    return selector(TRANSFER) + encode_args((abi.address, to), (abi.uint(256), amount))


async def test_call(token: ContractInstance, node: FakeNode) -> None:
    node.output = encode_args((abi.bool, True))
    result = await token.call(TRANSFER, [RECEIVER, 10])
    assert result is True

    address, payload, tx = node.executed[0]
    assert address == CONTRACT_ADDRESS
    assert payload == transfer_payload(RECEIVER, 10)
    assert tx == TxData()

    # Calls never estimate the gas
    assert node.estimated == []


async def test_call_named_outputs(token: ContractInstance, node: FakeNode) -> None:
    node.output = encode_args((abi.uint(8), 1), (abi.uint(8), 200))
    result = await token.call("limits()")
    assert isinstance(result, FieldValues)
    assert result.low == 1
    assert result.high == 200


async def test_call_with_hex_address(token_abi: ContractABI, node: FakeNode) -> None:
    token = ContractInstance("Token", token_abi, "0x" + "cc" * 20, node)
    assert token.address == CONTRACT_ADDRESS

    node.output = encode_args((abi.uint(256), 123))
    assert await token.call("balanceOf(address)", ["0x" + "01" * 20]) == 123
    assert node.executed[0][1] == selector("balanceOf(address)") + encode_args(
        (abi.address, RECEIVER)
    )


async def test_signature_not_found(token: ContractInstance, node: FakeNode) -> None:
    message = re.escape(
        "Failed to lookup method with function signature transfer(address,uint128) "
        "in the ABI of Token"
    )
    with pytest.raises(SignatureNotFound, match=message):
        await token.call("transfer(address,uint128)", [RECEIVER, 10])

    # Nothing reaches the node
    assert node.executed == []


async def test_unsafe_arguments(token: ContractInstance, node: FakeNode) -> None:
    with pytest.raises(EncodingError, match="Cannot safely encode argument: amount"):
        await token.call(TRANSFER, [RECEIVER, 2**256])
    with pytest.raises(EncodingError, match="Cannot safely encode argument: to"):
        await token.send_transaction(TRANSFER, ["0x1234", 1])

    assert node.executed == []
    assert node.sent == []


async def test_revert_reason(token: ContractInstance, node: FakeNode) -> None:
    node.output = REVERT_SELECTOR + encode_args((abi.string, "insufficient balance"))
    with pytest.raises(RevertError, match="insufficient balance") as excinfo:
        await token.call(TRANSFER, [RECEIVER, 10])
    assert excinfo.value.message == "insufficient balance"
    assert type(excinfo.value) is RevertError


async def test_malformed_revert_reason(token: ContractInstance, node: FakeNode) -> None:
    # No fields at all
    node.output = REVERT_SELECTOR
    with pytest.raises(RevertError, match="Cannot safely decode revert reason"):
        await token.call(TRANSFER, [RECEIVER, 10])

    # Two fields instead of one
    node.output = REVERT_SELECTOR + encode_args((abi.string, "a"), (abi.string, "b"))
    with pytest.raises(RevertError, match="Cannot safely decode revert reason"):
        await token.call(TRANSFER, [RECEIVER, 10])


async def test_revert_without_data(token: ContractInstance, node: FakeNode) -> None:
    def revert(tx: TxData) -> None:
        raise ExecutionReverted(b"")

    node.execute_hook = revert
    with pytest.raises(RevertError, match="Execution reverted: 0x$"):
        await token.call(TRANSFER, [RECEIVER, 10])


async def test_panic(token: ContractInstance, node: FakeNode) -> None:
    node.output = selector("Panic(uint256)") + encode_args((abi.uint(256), 0x11))
    with pytest.raises(ContractPanic) as excinfo:
        await token.call(TRANSFER, [RECEIVER, 10])
    assert excinfo.value.reason == ContractPanicReason.OVERFLOW
    assert excinfo.value.reason == ContractPanic.Reason.OVERFLOW

    node.output = selector("Panic(uint256)") + encode_args((abi.uint(256), 0x99))
    with pytest.raises(ContractPanic) as excinfo:
        await token.call(TRANSFER, [RECEIVER, 10])
    assert excinfo.value.reason == ContractPanicReason.UNKNOWN


async def test_custom_error(token: ContractInstance, node: FakeNode) -> None:
    node.output = selector("InsufficientBalance(uint256,uint256)") + encode_args(
        (abi.uint(256), 1), (abi.uint(256), 10)
    )
    with pytest.raises(ContractError) as excinfo:
        await token.call(TRANSFER, [RECEIVER, 10])
    assert excinfo.value.error.name == "InsufficientBalance"
    assert excinfo.value.data.as_dict == dict(available=1, required=10)


async def test_bytecode_is_fetched_once(
    token_abi: ContractABI, code_runner: FakeCodeRunner
) -> None:
    token = ContractInstance("Token", token_abi, CONTRACT_ADDRESS, code_runner)
    code_runner.output = encode_args((abi.uint(256), 5))

    assert await token.call("balanceOf(address)", [RECEIVER]) == 5
    assert await token.call("balanceOf(address)", [RECEIVER]) == 5

    assert code_runner.code_requests == 1
    assert code_runner.executed == []

    code, payload, tx = code_runner.runs[0]
    assert code == code_runner.code
    assert payload == selector("balanceOf(address)") + encode_args((abi.address, RECEIVER))
    assert tx.to == CONTRACT_ADDRESS


async def test_send_transaction(token: ContractInstance, node: FakeNode) -> None:
    tx_hash = await token.send_transaction(TRANSFER, [RECEIVER, 10])
    assert tx_hash == SENT_TX_HASH

    # The gas is estimated on the transaction that is going to be sent
    assert node.estimated == [
        TxData(to=CONTRACT_ADDRESS, data=transfer_payload(RECEIVER, 10))
    ]
    assert node.sent == [
        TxData(to=CONTRACT_ADDRESS, data=transfer_payload(RECEIVER, 10), gas=node.gas_estimate)
    ]


async def test_explicit_gas(token_abi: ContractABI, node: FakeNode) -> None:
    token = ContractInstance(
        "Token", token_abi, CONTRACT_ADDRESS, node, tx_defaults=TxData(gas=30000)
    )

    # Explicit gas takes priority over the default
    await token.send_transaction(TRANSFER, [RECEIVER, 10], TxData(gas=50000))
    assert node.sent[-1].gas == 50000

    # The default takes priority over the estimation
    await token.send_transaction(TRANSFER, [RECEIVER, 10])
    assert node.sent[-1].gas == 30000

    assert node.estimated == []


async def test_defaults_are_applied(token_abi: ContractABI, node: FakeNode) -> None:
    sender = Address(b"\x02" * 20)
    token = ContractInstance(
        "Token",
        token_abi,
        CONTRACT_ADDRESS,
        node,
        tx_defaults=TxData(from_=sender, gas_price=Amount.gwei(1)),
    )
    await token.send_transaction(TRANSFER, [RECEIVER, 10], TxData(nonce=3))
    sent = node.sent[0]
    assert sent.from_ == sender
    assert sent.gas_price == Amount.gwei(1)
    assert sent.nonce == 3

    await token.call(TRANSFER, [RECEIVER, 10], TxData(from_=RECEIVER))
    assert node.executed[0][2].from_ == RECEIVER


async def test_send_to_non_mutating(token: ContractInstance, node: FakeNode) -> None:
    with pytest.raises(ValueError, match=re.escape("balanceOf(address) is non-mutating")):
        await token.send_transaction("balanceOf(address)", [RECEIVER])
    assert node.sent == []


async def test_send_funds(token: ContractInstance, node: FakeNode) -> None:
    await token.send_transaction("deposit()", tx=TxData(value=Amount.ether(1)))
    assert node.sent[0].value == Amount.ether(1)

    with pytest.raises(ValueError, match="Attempting to transfer funds to a non-payable method"):
        await token.send_transaction(TRANSFER, [RECEIVER, 10], TxData(value=Amount.ether(1)))
    assert len(node.sent) == 1

    # Payability is checked before the gas is estimated
    assert len(node.estimated) == 1


async def test_send_default_funds(token_abi: ContractABI, node: FakeNode) -> None:
    token = ContractInstance(
        "Token", token_abi, CONTRACT_ADDRESS, node, tx_defaults=TxData(value=Amount.ether(1))
    )
    with pytest.raises(ValueError, match="Attempting to transfer funds to a non-payable method"):
        await token.send_transaction(TRANSFER, [RECEIVER, 10])
    assert node.estimated == []
    assert node.sent == []

    # An explicit zero overrides the default
    await token.send_transaction(TRANSFER, [RECEIVER, 10], TxData(value=Amount.wei(0)))
    assert node.sent[0].value == Amount.wei(0)


async def test_estimate_gas(token: ContractInstance, node: FakeNode) -> None:
    node.gas_estimate = 12345
    assert await token.estimate_gas(TRANSFER, [RECEIVER, 10]) == 12345
    assert node.estimated[0].to == CONTRACT_ADDRESS
    assert node.estimated[0].data == transfer_payload(RECEIVER, 10)


async def test_reverted_estimation(token: ContractInstance, node: FakeNode) -> None:
    def revert(tx: TxData) -> None:
        raise ExecutionReverted(REVERT_SELECTOR + encode_args((abi.string, "paused")))

    node.estimate_hook = revert
    with pytest.raises(RevertError, match="paused"):
        await token.send_transaction(TRANSFER, [RECEIVER, 10])
    assert node.sent == []

    # Unrecognized revert data is reported as is
    def revert_unknown(tx: TxData) -> None:
        raise ExecutionReverted(b"\x01\x02")

    node.estimate_hook = revert_unknown
    with pytest.raises(RevertError, match="Execution reverted: 0x0102"):
        await token.estimate_gas(TRANSFER, [RECEIVER, 10])


async def test_reverted_transaction(token: ContractInstance, node: FakeNode) -> None:
    def revert(tx: TxData) -> None:
        raise ExecutionReverted(
            selector("InsufficientBalance(uint256,uint256)")
            + encode_args((abi.uint(256), 0), (abi.uint(256), 10))
        )

    node.send_hook = revert
    with pytest.raises(ContractError) as excinfo:
        await token.send_transaction(TRANSFER, [RECEIVER, 10])
    assert excinfo.value.data.required == 10


async def test_apply_defaults() -> None:
    defaults = TxData(gas=1000, nonce=1)

    resolved = await apply_defaults(TxData(gas=2000), defaults)
    assert resolved == TxData(gas=2000, nonce=1)

    # Unset in both stays unset
    resolved = await apply_defaults(TxData(), TxData())
    assert resolved == TxData()

    estimated_on = []

    async def estimate(tx: TxData) -> int:
        estimated_on.append(tx)
        return 777

    resolved = await apply_defaults(TxData(nonce=5), TxData(), estimate_gas=estimate)
    assert resolved == TxData(nonce=5, gas=777)
    assert estimated_on == [TxData(nonce=5)]

    # The estimator is not called if the gas is known
    resolved = await apply_defaults(TxData(), defaults, estimate_gas=estimate)
    assert resolved.gas == 1000
    assert len(estimated_on) == 1


def test_decode_log(token: ContractInstance) -> None:
    sender = Address(b"\x02" * 20)
    topic = keccak(b"Transfer(address,address,uint256)")
    log_entry = make_log_entry(
        CONTRACT_ADDRESS,
        [topic, abi.address.encode(sender), abi.address.encode(RECEIVER)],
        encode_args((abi.uint(256), 100)),
    )
    event, fields = token.decode_log(log_entry)
    assert event.name == "Transfer"
    assert fields.as_tuple == (sender, RECEIVER, 100)

    foreign = make_log_entry(Address(b"\xba" * 20), [topic], b"")
    with pytest.raises(ValueError, match="Log entry originates from a different contract"):
        token.decode_log(foreign)
