"""
Token Factory Service

Orchestrates the token factory operations on top of the pure core (pricing, codec, dispatcher)
and the injected collaborators (token store, authority verifier, emitter registry, fact sink,
bridge transport).

Operations:
- create_token: allocate the next token id, derive mint and token account, persist the record
- enable_cross_chain: set the emitter and grow the set of supported chains
- configure_bonding_curve: validate and overwrite the token's curve
- calculate_price: price a trade on the stored curve
- send_cross_chain_message: validate authority, enablement and target chain, then hand the
  encoded payload to the bridge
- receive_message: check the emitter, dispatch the inbound bytes, publish the remote fact

Every successful operation publishes exactly one fact to the sink. Failures raise before any
fact is published or any transport call is made.
"""
import time
from typing import Iterable, Optional

from solders.pubkey import Pubkey
from spl.token.instructions import get_associated_token_address

from mcp_token_factory import codec, dispatcher, pricing, rate_limiter
from mcp_token_factory.errors import (
    CrossChainNotEnabledError,
    InvalidAuthorityError,
    InvalidMessagePayloadError,
    InvalidReserveRatioError,
    RateLimitExceededError,
    UnsupportedChainError,
    UntrustedEmitterError,
)
from mcp_token_factory.facts import (
    BondingCurveConfigured,
    CrossChainEnabled,
    CrossChainMessageSent,
    PriceCalculated,
    RemoteFact,
    TokenCreated,
)
from mcp_token_factory.interfaces import (
    AuthorityVerifier,
    BridgeTransport,
    FactSink,
    TokenStore,
    TrustedEmitterRegistry,
)
from mcp_token_factory.schemas import (
    MAX_RESERVE_RATIO,
    CrossChainConfig,
    CurveConfig,
    FactPayload,
    PriceUpdateFact,
    TokenCreationFact,
    TokenRecord,
)
from mcp.server.fastmcp.utilities.logging import get_logger

logger = get_logger(__name__)

MAX_NAME_LENGTH = 32
MAX_SYMBOL_LENGTH = 10
MAX_DECIMALS = 18
MINT_SEED = b"mint"


def derive_mint_address(program_id: Pubkey, token_id: int) -> Pubkey:
    """Program-derived mint address for a token id."""
    address, _bump = Pubkey.find_program_address([MINT_SEED, token_id.to_bytes(8, "little")], program_id)
    return address


class TokenFactory:
    def __init__(
        self,
        store: TokenStore,
        verifier: AuthorityVerifier,
        emitters: TrustedEmitterRegistry,
        sink: FactSink,
        transport: BridgeTransport,
        program_id: Pubkey,
        max_message_size: Optional[int] = None,
        rate_limit_per_minute: Optional[int] = None,
    ):
        self.store = store
        self.verifier = verifier
        self.emitters = emitters
        self.sink = sink
        self.transport = transport
        self.program_id = program_id
        self.max_message_size = max_message_size
        self.rate_limit_per_minute = rate_limit_per_minute

    # --- Token lifecycle ---

    def create_token(
        self,
        authority: str,
        name: str,
        symbol: str,
        decimals: int,
        metadata_uri: str,
        initial_supply: int,
        mint: Optional[str] = None,
    ) -> TokenRecord:
        """
        Creates a token record under the next factory token id.

        The id is reserved with the store's compare-and-increment before the record is written,
        so two concurrent creations can never share an id.

        Raises:
            ValueError: If name, symbol or decimals are out of range, or a key is malformed.
            StaleFactoryStateError: If another creation advanced the counter first.
        """
        if not name or len(name) > MAX_NAME_LENGTH:
            raise ValueError(f"Token name must be 1-{MAX_NAME_LENGTH} characters")
        if not symbol or len(symbol) > MAX_SYMBOL_LENGTH:
            raise ValueError(f"Token symbol must be 1-{MAX_SYMBOL_LENGTH} characters")
        if not 0 <= decimals <= MAX_DECIMALS:
            raise ValueError(f"Token decimals must be between 0 and {MAX_DECIMALS}")

        authority_key = Pubkey.from_string(authority)
        token_id = self.store.factory_state().token_count
        mint_key = Pubkey.from_string(mint) if mint else derive_mint_address(self.program_id, token_id)

        record = TokenRecord(
            token_id=token_id,
            mint=str(mint_key),
            name=name,
            symbol=symbol,
            decimals=decimals,
            metadata_uri=metadata_uri,
            authority=str(authority_key),
            initial_supply=initial_supply,
            token_account=str(get_associated_token_address(authority_key, mint_key)),
        )

        self.store.compare_and_increment(token_id)
        self.store.put(record)
        logger.info(f"Created token {token_id} ({symbol}) with mint {record.mint} for authority {authority}")

        self.sink.publish(TokenCreated(
            token_id=record.token_id,
            mint=record.mint,
            name=record.name,
            symbol=record.symbol,
            decimals=record.decimals,
            initial_supply=record.initial_supply,
        ))
        return record

    def _authorized_record(self, caller: str, token_id: int) -> TokenRecord:
        record = self.store.get(token_id)
        if not self.verifier.verify(caller, token_id):
            logger.warning(f"Caller {caller} is not the authority of token {token_id}")
            raise InvalidAuthorityError(f"Invalid authority for token {token_id}")
        return record

    def enable_cross_chain(self, caller: str, token_id: int, emitter_id: str, chain_ids: Iterable[int]) -> TokenRecord:
        """Enables cross-chain messaging; chain ids are added to any already supported."""
        record = self._authorized_record(caller, token_id)

        supported = set(record.cross_chain.supported_chains) if record.cross_chain else set()
        supported.update(chain_ids)
        record = record.model_copy(update={
            "cross_chain": CrossChainConfig(emitter_id=emitter_id, supported_chains=supported),
            "cross_chain_enabled": True,
        })
        self.store.put(record)
        logger.info(f"Cross-chain enabled for token {token_id}: chains {sorted(supported)}")

        self.sink.publish(CrossChainEnabled(
            token_id=record.token_id,
            mint=record.mint,
            emitter_id=record.cross_chain.emitter_id,
            supported_chains=sorted(supported),
        ))
        return record

    def configure_bonding_curve(
        self,
        caller: str,
        token_id: int,
        curve_kind: int,
        base_price: int,
        slope: int,
        reserve_ratio: int,
    ) -> CurveConfig:
        """
        Overwrites the token's bonding curve and enables it.

        Raises:
            InvalidAuthorityError: If the caller is not the token authority.
            InvalidCurveKindError: If curve_kind is not 0, 1 or 2.
            InvalidReserveRatioError: If reserve_ratio exceeds 1000.
        """
        record = self._authorized_record(caller, token_id)
        pricing.resolve_curve_kind(curve_kind)
        if reserve_ratio > MAX_RESERVE_RATIO:
            raise InvalidReserveRatioError(f"Reserve ratio {reserve_ratio} exceeds {MAX_RESERVE_RATIO}")

        record = record.model_copy(update={"bonding_curve": CurveConfig(
            enabled=True,
            curve_kind=curve_kind,
            base_price=base_price,
            slope=slope,
            reserve_ratio=reserve_ratio,
        )})
        self.store.put(record)
        logger.info(f"Bonding curve configured for token {token_id}: {record.bonding_curve.model_dump()}")

        self.sink.publish(BondingCurveConfigured(
            token_id=record.token_id,
            mint=record.mint,
            curve_kind=curve_kind,
            base_price=base_price,
            slope=slope,
            reserve_ratio=reserve_ratio,
        ))
        return record.bonding_curve

    def calculate_price(self, token_id: int, supply: int, amount: int) -> int:
        record = self.store.get(token_id)
        price = pricing.compute_price(record.bonding_curve, supply, amount)
        self.sink.publish(PriceCalculated(
            token_id=record.token_id,
            mint=record.mint,
            supply=supply,
            amount=amount,
            price=price,
        ))
        return price

    def quote_remote_price(self, fact: TokenCreationFact, supply: int, amount: int) -> int:
        """Prices a trade on the curve embedded in a token creation payload from another chain."""
        return pricing.compute_price(pricing.curve_from_creation_fact(fact), supply, amount)

    # --- Outbound messages ---

    def send_cross_chain_message(self, caller: str, token_id: int, target_chain: int, payload: FactPayload) -> codec.RawMessage:
        """
        Encodes a payload and hands it to the bridge transport.

        Authority, cross-chain enablement and target chain membership are all checked before
        the transport is called.

        Raises:
            InvalidAuthorityError, CrossChainNotEnabledError, UnsupportedChainError,
            TransportError
        """
        record = self._authorized_record(caller, token_id)
        if not record.cross_chain_enabled or record.cross_chain is None:
            raise CrossChainNotEnabledError(f"Cross-chain is not enabled for token {token_id}")
        if target_chain not in record.cross_chain.supported_chains:
            raise UnsupportedChainError(f"Chain {target_chain} is not supported by token {token_id}")

        message = codec.encode(payload)
        self.transport.send(target_chain, message)
        logger.info(f"Sent {type(payload).__name__} for token {token_id} to chain {target_chain}")

        self.sink.publish(CrossChainMessageSent(
            token_id=record.token_id,
            mint=record.mint,
            target_chain=target_chain,
            payload=message.to_bytes(),
        ))
        return message

    def announce_token(self, caller: str, token_id: int, target_chain: int) -> codec.RawMessage:
        """Sends a token creation payload built from the stored record and curve."""
        record = self._authorized_record(caller, token_id)
        curve = record.bonding_curve
        payload = TokenCreationFact(
            token_id=record.token_id,
            name=record.name,
            symbol=record.symbol,
            decimals=record.decimals,
            metadata_uri=record.metadata_uri,
            initial_supply=record.initial_supply,
            curve_kind=curve.curve_kind,
            base_price=curve.base_price,
            slope=curve.slope,
            reserve_ratio=curve.reserve_ratio,
        )
        return self.send_cross_chain_message(caller, token_id, target_chain, payload)

    def publish_price_update(self, caller: str, token_id: int, target_chain: int, supply: int) -> codec.RawMessage:
        """Sends the current unit price at `supply` to another chain."""
        record = self._authorized_record(caller, token_id)
        payload = PriceUpdateFact(
            token_id=record.token_id,
            current_price=pricing.compute_price(record.bonding_curve, supply, 1),
            current_supply=supply,
            timestamp=int(time.time()),
        )
        return self.send_cross_chain_message(caller, token_id, target_chain, payload)

    # --- Inbound messages ---

    def receive_message(self, source_chain: int, source_address: bytes, raw_bytes: bytes) -> RemoteFact:
        """
        Accepts an inbound message from the bridge and publishes the resulting remote fact.

        Raises:
            UntrustedEmitterError: If the emitter is not registered.
            RateLimitExceededError: If the emitter exceeded its per-minute allowance.
            InvalidMessagePayloadError, UnknownMessageTypeError: From the dispatcher.
        """
        if not self.emitters.is_trusted(source_chain, source_address):
            logger.warning(f"Rejected message from untrusted emitter {bytes(source_address).hex()} on chain {source_chain}")
            raise UntrustedEmitterError(f"Emitter on chain {source_chain} is not trusted")

        if self.rate_limit_per_minute is not None:
            key = rate_limiter.emitter_key(source_chain, source_address)
            if not rate_limiter.check_rate_limit(key, self.rate_limit_per_minute):
                raise RateLimitExceededError(f"Rate limit exceeded for emitter {key}")

        if self.max_message_size is not None and len(raw_bytes) > self.max_message_size:
            raise InvalidMessagePayloadError(
                f"Message of {len(raw_bytes)} bytes exceeds the {self.max_message_size}-byte limit"
            )

        fact = dispatcher.dispatch(source_chain, source_address, raw_bytes)
        self.sink.publish(fact)
        return fact
