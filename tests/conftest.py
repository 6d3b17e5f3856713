import pytest
from fakes import CONTRACT_ADDRESS, TOKEN_ABI, FakeCodeRunner, FakeNode

from abibind import ContractABI, ContractInstance


@pytest.fixture
def token_abi() -> ContractABI:
    return ContractABI.from_json(TOKEN_ABI)


@pytest.fixture
def node() -> FakeNode:
    return FakeNode()


@pytest.fixture
def code_runner() -> FakeCodeRunner:
    return FakeCodeRunner()


@pytest.fixture
def token(token_abi: ContractABI, node: FakeNode) -> ContractInstance:
    return ContractInstance("Token", token_abi, CONTRACT_ADDRESS, node)
