"""
Domain facts published by the token factory.

Each successful operation produces exactly one fact, handed to the configured FactSink.
Facts received from another chain extend the decoded payload with the source chain id.
"""
from typing import List, Union

from pydantic import BaseModel, ConfigDict

from mcp_token_factory.schemas import (
    U8,
    U16,
    U64,
    LiquidityUpdateFact,
    PriceUpdateFact,
    TokenCreationFact,
)


# --- Local facts ---

class TokenCreated(BaseModel):
    token_id: U64
    mint: str
    name: str
    symbol: str
    decimals: U8
    initial_supply: U64


class CrossChainEnabled(BaseModel):
    token_id: U64
    mint: str
    emitter_id: str
    supported_chains: List[U16]


class BondingCurveConfigured(BaseModel):
    token_id: U64
    mint: str
    curve_kind: U8
    base_price: U64
    slope: U64
    reserve_ratio: U16


class PriceCalculated(BaseModel):
    token_id: U64
    mint: str
    supply: U64
    amount: U64
    price: U64


class CrossChainMessageSent(BaseModel):
    model_config = ConfigDict(ser_json_bytes="base64")

    token_id: U64
    mint: str
    target_chain: U16
    payload: bytes


# --- Facts received from a remote chain ---

class TokenCreatedFromRemote(TokenCreationFact):
    source_chain: U16


class PriceUpdatedFromRemote(PriceUpdateFact):
    source_chain: U16


class LiquidityUpdatedFromRemote(LiquidityUpdateFact):
    source_chain: U16


RemoteFact = Union[TokenCreatedFromRemote, PriceUpdatedFromRemote, LiquidityUpdatedFromRemote]

DomainFact = Union[
    TokenCreated,
    CrossChainEnabled,
    BondingCurveConfigured,
    PriceCalculated,
    CrossChainMessageSent,
    TokenCreatedFromRemote,
    PriceUpdatedFromRemote,
    LiquidityUpdatedFromRemote,
]
