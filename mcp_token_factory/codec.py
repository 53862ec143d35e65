"""
Cross-Chain Message Codec

Encodes the three cross-chain payload variants to a tagged byte sequence and back.

Wire Format:
    [tag: 1 byte][body: variable]

    tag 1 = token creation, tag 2 = price update, tag 3 = liquidity update.
    The body is the Borsh encoding of the payload fields in declaration order: little-endian
    fixed-width integers, strings as a u32 byte count followed by UTF-8 bytes. A body must be
    consumed exactly; truncated bodies and trailing bytes are both rejected.

The tag is an encoding detail: callers hand in and get back FactPayload models.
"""
import io
from enum import IntEnum
from typing import Dict, Tuple, Type

from borsh_construct import CStruct, I64, String, U8, U16, U64
from construct import Construct, ConstructError
from pydantic import BaseModel

from mcp_token_factory.errors import InvalidMessagePayloadError, UnknownMessageTypeError
from mcp_token_factory.schemas import (
    U8 as U8Field,
    FactPayload,
    LiquidityUpdateFact,
    PriceUpdateFact,
    TokenCreationFact,
)
from mcp.server.fastmcp.utilities.logging import get_logger

logger = get_logger(__name__)


class MessageType(IntEnum):
    token_creation = 1
    price_update = 2
    liquidity_update = 3


TOKEN_CREATION_LAYOUT = CStruct(
    "token_id" / U64,
    "name" / String,
    "symbol" / String,
    "decimals" / U8,
    "metadata_uri" / String,
    "initial_supply" / U64,
    "curve_kind" / U8,
    "base_price" / U64,
    "slope" / U64,
    "reserve_ratio" / U16,
)

PRICE_UPDATE_LAYOUT = CStruct(
    "token_id" / U64,
    "current_price" / U64,
    "current_supply" / U64,
    "timestamp" / I64,
)

LIQUIDITY_UPDATE_LAYOUT = CStruct(
    "token_id" / U64,
    "liquidity_added" / U64,
    "liquidity_removed" / U64,
    "current_liquidity" / U64,
    "timestamp" / I64,
)

_VARIANTS: Dict[MessageType, Tuple[Type[BaseModel], Construct]] = {
    MessageType.token_creation: (TokenCreationFact, TOKEN_CREATION_LAYOUT),
    MessageType.price_update: (PriceUpdateFact, PRICE_UPDATE_LAYOUT),
    MessageType.liquidity_update: (LiquidityUpdateFact, LIQUIDITY_UPDATE_LAYOUT),
}

_TAGS: Dict[Type[BaseModel], MessageType] = {model: tag for tag, (model, _) in _VARIANTS.items()}


class RawMessage(BaseModel):
    """Wire-level envelope: a one-byte tag and the encoded body."""
    tag: U8Field
    body: bytes = b""

    def to_bytes(self) -> bytes:
        return bytes([self.tag]) + self.body

    @classmethod
    def from_bytes(cls, data: bytes) -> "RawMessage":
        if not data:
            raise InvalidMessagePayloadError("Message is empty")
        return cls(tag=data[0], body=bytes(data[1:]))


def message_type_for(tag: int) -> MessageType:
    try:
        return MessageType(tag)
    except ValueError:
        raise UnknownMessageTypeError(f"Unknown message type {tag}")


def encode_body(payload: FactPayload) -> bytes:
    """Encodes a payload's fields without the tag byte."""
    tag = _TAGS.get(type(payload))
    if tag is None:
        raise TypeError(f"Cannot encode {type(payload).__name__} as a cross-chain payload")
    _, layout = _VARIANTS[tag]
    return layout.build(payload.model_dump())


def decode_body(message_type: MessageType, body: bytes) -> FactPayload:
    """
    Decodes a body as the payload variant for `message_type`.

    Raises:
        InvalidMessagePayloadError: If the body is truncated, holds invalid UTF-8, or has
            bytes left over after the last field.
    """
    model, layout = _VARIANTS[message_type]
    try:
        stream = io.BytesIO(body)
        parsed = layout.parse_stream(stream)
        consumed = stream.tell()
    except (ConstructError, UnicodeDecodeError) as e:
        logger.warning(f"Malformed {message_type.name} body ({len(body)} bytes): {e}")
        raise InvalidMessagePayloadError(f"Invalid {message_type.name} payload: {e}")

    if consumed != len(body):
        logger.warning(f"{message_type.name} body has {len(body) - consumed} trailing bytes")
        raise InvalidMessagePayloadError(
            f"Invalid {message_type.name} payload: {len(body) - consumed} unexpected trailing bytes"
        )
    return model.model_validate({name: parsed[name] for name in model.model_fields})


def encode(payload: FactPayload) -> RawMessage:
    """Encodes a payload variant into a tagged RawMessage."""
    tag = _TAGS.get(type(payload))
    if tag is None:
        raise TypeError(f"Cannot encode {type(payload).__name__} as a cross-chain payload")
    return RawMessage(tag=tag.value, body=encode_body(payload))


def decode(raw: RawMessage) -> FactPayload:
    """Decodes a RawMessage into its payload variant."""
    return decode_body(message_type_for(raw.tag), raw.body)


def serialize(payload: FactPayload) -> bytes:
    """Encodes a payload variant straight to its wire bytes."""
    return encode(payload).to_bytes()
