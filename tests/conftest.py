import pytest
from solders.keypair import Keypair
from solders.pubkey import Pubkey

from mcp_token_factory import rate_limiter
from mcp_token_factory.bridge import InMemoryBridgeTransport
from mcp_token_factory.collaborators import InMemoryFactSink, StaticEmitterRegistry, StoreAuthorityVerifier
from mcp_token_factory.factory import TokenFactory
from mcp_token_factory.token_manager import JsonTokenStore

PROGRAM_ID = Pubkey.from_string("Fg6PaFpoGXkYsidMpWTK6W2BeZ7FEfcYkg476zPFsLnS")
ETHEREUM = 2
BSC = 4
TRUSTED_ADDRESS = bytes(12) + bytes.fromhex("aa" * 20)  # left-padded EVM emitter


@pytest.fixture
def authority() -> str:
    return str(Keypair.from_seed(bytes([7] * 32)).pubkey())


@pytest.fixture
def stranger() -> str:
    return str(Keypair.from_seed(bytes([8] * 32)).pubkey())


@pytest.fixture
def emitter_id() -> str:
    return str(Keypair.from_seed(bytes([9] * 32)).pubkey())


@pytest.fixture
def store(tmp_path, authority):
    return JsonTokenStore(tmp_path / "token_store", authority=authority)


@pytest.fixture
def sink():
    return InMemoryFactSink()


@pytest.fixture
def transport():
    return InMemoryBridgeTransport()


@pytest.fixture
def emitters():
    return StaticEmitterRegistry([(ETHEREUM, TRUSTED_ADDRESS)])


@pytest.fixture
def token_factory(store, sink, transport, emitters):
    return TokenFactory(
        store=store,
        verifier=StoreAuthorityVerifier(store),
        emitters=emitters,
        sink=sink,
        transport=transport,
        program_id=PROGRAM_ID,
        max_message_size=1024,
    )


@pytest.fixture
def token(token_factory, authority):
    """A freshly created token with a linear curve (base 100, slope 1)."""
    record = token_factory.create_token(authority, "Crossify Token", "CRX", 9, "https://example.com/crx.json", 1_000_000)
    token_factory.configure_bonding_curve(authority, record.token_id, 0, 100, 1, 0)
    return record


@pytest.fixture(autouse=True)
def reset_rate_limits():
    rate_limiter.rate_limit_cache.clear()
    yield
    rate_limiter.rate_limit_cache.clear()
