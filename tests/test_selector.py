from ethereum_rpc import keccak

from abibind import abi, event_topic, function_signature, selector
from abibind._abi_types import dispatch_parameter_types


def test_known_selectors() -> None:
    assert selector("transfer(address,uint256)") == bytes.fromhex("a9059cbb")
    assert selector("Error(string)") == bytes.fromhex("08c379a0")
    assert selector("Panic(uint256)") == bytes.fromhex("4e487b71")


def test_event_topic() -> None:
    topic = event_topic("Transfer(address,address,uint256)")
    assert topic == bytes.fromhex(
        "ddf252ad1be2c89b69c2b068fc378daa952ba7f163c4a11628f55a4df523b3ef"
    )
    assert selector("Transfer(address,address,uint256)") == topic[:4]


def test_function_signature() -> None:
    assert function_signature("transfer", [abi.address, abi.uint(256)]) == (
        "transfer(address,uint256)"
    )
    assert function_signature("noArgs", []) == "noArgs()"
    assert function_signature(
        "nested", [abi.struct(a=abi.uint(8), b=abi.struct(c=abi.bool)[...]), abi.bytes(4)[2]]
    ) == ("nested((uint8,(bool)[]),bytes4[2])")


def test_struct_field_names_do_not_matter() -> None:
    def parse(names: tuple[str, str]) -> str:
        params = dispatch_parameter_types(
            [
                dict(
                    name="order",
                    type="tuple",
                    components=[
                        dict(name=names[0], type="address"),
                        dict(name=names[1], type="uint256"),
                    ],
                )
            ]
        )
        return function_signature("fill", [tp for _name, tp in params])

    signature = parse(("maker", "amount"))
    renamed = parse(("taker", "value"))
    assert signature == renamed == "fill((address,uint256))"
    assert selector(signature) == selector(renamed)


def test_determinism() -> None:
    signature = function_signature("transfer", [abi.address, abi.uint(256)])
    assert selector(signature) == selector(signature) == keccak(signature.encode())[:4]
