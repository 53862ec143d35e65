import pytest

from mcp_token_factory.config import CHAIN_ID_BSC, CHAIN_ID_ETHEREUM, parse_trusted_emitters
from mcp_token_factory.errors import ConfigurationError

ADDRESS_A = "00" * 12 + "aa" * 20
ADDRESS_B = "11" * 32


def test_parse_trusted_emitters():
    emitters = parse_trusted_emitters(f"2:{ADDRESS_A}, 4:0x{ADDRESS_B}")
    assert emitters == [
        (CHAIN_ID_ETHEREUM, bytes.fromhex(ADDRESS_A)),
        (CHAIN_ID_BSC, bytes.fromhex(ADDRESS_B)),
    ]


def test_parse_trusted_emitters_empty():
    assert parse_trusted_emitters("") == []
    assert parse_trusted_emitters(" , ") == []


@pytest.mark.parametrize("value", [
    ADDRESS_A,                 # missing chain id
    f"eth:{ADDRESS_A}",        # chain id is not a number
    f"70000:{ADDRESS_A}",      # chain id is not a u16
    "2:zz",                    # not hex
    f"2:{'aa' * 20}",          # 20 bytes instead of 32
])
def test_parse_trusted_emitters_rejects_malformed_entries(value):
    with pytest.raises(ConfigurationError):
        parse_trusted_emitters(value)
