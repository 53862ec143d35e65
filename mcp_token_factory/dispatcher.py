"""
Inbound cross-chain message dispatcher.

Splits a raw byte buffer into tag and body, decodes the body as the variant the tag names and
returns the matching remote fact annotated with the source chain. Each call is independent:
nothing is carried between invocations and nothing is emitted on failure.

Authenticity of `source_chain` / `source_address` is not checked here; the caller consults the
trusted-emitter registry before dispatching.
"""
from typing import Callable, Dict

from mcp_token_factory import codec
from mcp_token_factory.codec import MessageType
from mcp_token_factory.errors import InvalidMessagePayloadError, UnknownMessageTypeError
from mcp_token_factory.facts import (
    LiquidityUpdatedFromRemote,
    PriceUpdatedFromRemote,
    RemoteFact,
    TokenCreatedFromRemote,
)
from mcp_token_factory.schemas import FactPayload
from mcp.server.fastmcp.utilities.logging import get_logger

logger = get_logger(__name__)


def _token_created(source_chain: int, payload: FactPayload) -> TokenCreatedFromRemote:
    return TokenCreatedFromRemote(**payload.model_dump(), source_chain=source_chain)


def _price_updated(source_chain: int, payload: FactPayload) -> PriceUpdatedFromRemote:
    return PriceUpdatedFromRemote(**payload.model_dump(), source_chain=source_chain)


def _liquidity_updated(source_chain: int, payload: FactPayload) -> LiquidityUpdatedFromRemote:
    return LiquidityUpdatedFromRemote(**payload.model_dump(), source_chain=source_chain)


HANDLERS: Dict[MessageType, Callable[[int, FactPayload], RemoteFact]] = {
    MessageType.token_creation: _token_created,
    MessageType.price_update: _price_updated,
    MessageType.liquidity_update: _liquidity_updated,
}


def dispatch(source_chain: int, source_address: bytes, raw_bytes: bytes) -> RemoteFact:
    """
    Decodes an inbound message and produces the remote fact for its variant.

    Args:
        source_chain: Chain id the message originated from.
        source_address: Emitter address on the source chain (already verified by the caller).
        raw_bytes: The tagged message bytes.

    Returns:
        TokenCreatedFromRemote, PriceUpdatedFromRemote or LiquidityUpdatedFromRemote.

    Raises:
        InvalidMessagePayloadError: If the buffer is empty or the body does not decode.
        UnknownMessageTypeError: If the tag is not 1, 2 or 3.
    """
    if not raw_bytes:
        raise InvalidMessagePayloadError("Message is empty")

    tag, body = raw_bytes[0], bytes(raw_bytes[1:])
    try:
        message_type = MessageType(tag)
    except ValueError:
        logger.warning(f"Rejected message with unknown type {tag} from chain {source_chain}")
        raise UnknownMessageTypeError(f"Unknown message type {tag}")

    payload = codec.decode_body(message_type, body)
    fact = HANDLERS[message_type](source_chain, payload)
    logger.info(f"Dispatched {message_type.name} for token {payload.token_id} "
                f"from chain {source_chain} ({bytes(source_address).hex()[:16]}...)")
    return fact
