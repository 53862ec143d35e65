"""Default collaborator implementations: authority checks, emitter trust and fact sinks."""
from typing import Iterable, List, Set, Tuple

from mcp_token_factory.errors import TokenNotFoundError
from mcp_token_factory.facts import DomainFact
from mcp_token_factory.interfaces import TokenStore
from mcp.server.fastmcp.utilities.logging import get_logger

logger = get_logger(__name__)


class StoreAuthorityVerifier:
    """Accepts a caller when it is the authority recorded for the token."""

    def __init__(self, store: TokenStore):
        self.store = store

    def verify(self, caller: str, token_id: int) -> bool:
        try:
            record = self.store.get(token_id)
        except TokenNotFoundError:
            return False
        return record.authority == caller


class StaticEmitterRegistry:
    """Fixed set of (chain id, 32-byte address) pairs allowed to deliver inbound messages."""

    def __init__(self, emitters: Iterable[Tuple[int, bytes]] = ()):
        self._emitters: Set[Tuple[int, bytes]] = {(chain, bytes(address)) for chain, address in emitters}

    def register(self, source_chain: int, source_address: bytes) -> None:
        self._emitters.add((source_chain, bytes(source_address)))
        logger.info(f"Registered trusted emitter {bytes(source_address).hex()} on chain {source_chain}")

    def is_trusted(self, source_chain: int, source_address: bytes) -> bool:
        return (source_chain, bytes(source_address)) in self._emitters


class LoggingFactSink:
    def publish(self, fact: DomainFact) -> None:
        logger.info(f"{type(fact).__name__}: {fact.model_dump_json()}")


class InMemoryFactSink:
    """Collects published facts in order; used by tests and local tooling."""

    def __init__(self):
        self.facts: List[DomainFact] = []

    def publish(self, fact: DomainFact) -> None:
        self.facts.append(fact)
