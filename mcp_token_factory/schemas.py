"""
Pydantic Data Models and Validation Schemas

This module defines the data models for the token factory using Pydantic: the bonding curve
and cross-chain configuration of a token, the persisted token and factory records, and the
three cross-chain payload variants carried by the message protocol.

Key Components:
- CurveKind Enum: the supported bonding curve families and their wire tags
- CurveConfig: per-token pricing parameters
- CrossChainConfig: per-token emitter and supported chains
- TokenRecord / FactoryState: records held by the token record store
- TokenCreationFact / PriceUpdateFact / LiquidityUpdateFact: cross-chain payload variants

Integer Widths:
- Fixed-width integers are validated at the model boundary (u8, u16, u64, i64) so every
  valid model instance fits the binary wire format.
- Public keys are stored as base58 strings and validated with solders.
"""
from enum import IntEnum
from typing import Annotated, Optional, Set, Union

from pydantic import BaseModel, Field, field_validator
from solders.pubkey import Pubkey

U8_MAX = 2**8 - 1
U16_MAX = 2**16 - 1
U64_MAX = 2**64 - 1
I64_MIN = -(2**63)
I64_MAX = 2**63 - 1

MAX_RESERVE_RATIO = 1000  # parts per thousand, i.e. 100.0%

U8 = Annotated[int, Field(ge=0, le=U8_MAX)]
U16 = Annotated[int, Field(ge=0, le=U16_MAX)]
U64 = Annotated[int, Field(ge=0, le=U64_MAX)]
I64 = Annotated[int, Field(ge=I64_MIN, le=I64_MAX)]


def _validate_pubkey(value: str) -> str:
    try:
        Pubkey.from_string(value)
    except Exception as e:
        raise ValueError(f"invalid public key {value!r}: {e}")
    return value


class CurveKind(IntEnum):
    linear = 0
    exponential = 1
    bancor_approx = 2


class CurveConfig(BaseModel):
    enabled: bool = False
    # Kept as a raw tag so an unresolvable family surfaces when pricing.
    curve_kind: U8 = CurveKind.linear.value
    base_price: U64 = 0
    slope: U64 = 0
    reserve_ratio: Annotated[int, Field(ge=0, le=MAX_RESERVE_RATIO)] = 0


class CrossChainConfig(BaseModel):
    emitter_id: str = Field(description="Base58 encoded 32-byte emitter identifier")
    supported_chains: Set[U16] = Field(default_factory=set)

    @field_validator("emitter_id")
    @classmethod
    def check_emitter_id(cls, value: str) -> str:
        return _validate_pubkey(value)


class TokenRecord(BaseModel):
    token_id: U64
    mint: str
    name: str
    symbol: str
    decimals: U8
    metadata_uri: str
    authority: str
    initial_supply: U64
    token_account: str
    cross_chain_enabled: bool = False
    cross_chain: Optional[CrossChainConfig] = None
    bonding_curve: CurveConfig = Field(default_factory=CurveConfig)

    @field_validator("mint", "authority", "token_account")
    @classmethod
    def check_keys(cls, value: str) -> str:
        return _validate_pubkey(value)


class FactoryState(BaseModel):
    authority: str
    token_count: U64 = 0  # next token id

    @field_validator("authority")
    @classmethod
    def check_authority(cls, value: str) -> str:
        return _validate_pubkey(value)


# --- Cross-chain payload variants ---

class TokenCreationFact(BaseModel):
    token_id: U64
    name: str
    symbol: str
    decimals: U8
    metadata_uri: str
    initial_supply: U64
    curve_kind: U8
    base_price: U64
    slope: U64
    reserve_ratio: U16


class PriceUpdateFact(BaseModel):
    token_id: U64
    current_price: U64
    current_supply: U64
    timestamp: I64


class LiquidityUpdateFact(BaseModel):
    token_id: U64
    liquidity_added: U64
    liquidity_removed: U64
    current_liquidity: U64
    timestamp: I64


FactPayload = Union[TokenCreationFact, PriceUpdateFact, LiquidityUpdateFact]
