"""
Collaborator interfaces consumed by the token factory.

The factory only knows these seams; storage, identity, emitter trust, fact publication and the
bridge are plugged in by whoever builds the TokenFactory.
"""
from typing import Protocol

from mcp_token_factory.codec import RawMessage
from mcp_token_factory.facts import DomainFact
from mcp_token_factory.schemas import FactoryState, TokenRecord


class TokenStore(Protocol):
    def get(self, token_id: int) -> TokenRecord:
        """Return the record for token_id, raising TokenNotFoundError if absent."""
        ...

    def put(self, record: TokenRecord) -> None: ...

    def factory_state(self) -> FactoryState: ...

    def compare_and_increment(self, expected: int) -> int:
        """Advance token_count from `expected` to `expected + 1`, raising StaleFactoryStateError otherwise."""
        ...


class AuthorityVerifier(Protocol):
    def verify(self, caller: str, token_id: int) -> bool: ...


class TrustedEmitterRegistry(Protocol):
    def is_trusted(self, source_chain: int, source_address: bytes) -> bool: ...


class FactSink(Protocol):
    def publish(self, fact: DomainFact) -> None: ...


class BridgeTransport(Protocol):
    def send(self, target_chain: int, message: RawMessage) -> None:
        """Hand a message to the bridge, raising TransportError on failure."""
        ...
