"""
Token Factory Server - MCP Server Implementation

This module exposes the token factory as MCP tools: creating tokens, configuring their bonding
curves, quoting prices, enabling cross-chain messaging, sending lifecycle payloads to other
chains and accepting inbound payloads delivered by a bridge relayer.

Key Features:
- Deterministic integer bonding-curve pricing (linear, exponential, Bancor approximation)
- Tagged binary cross-chain messages for token creation, price and liquidity updates
- Trusted-emitter and per-emitter rate-limit checks on inbound messages
- Error messages that tell configuration, protocol and authorization failures apart

Security Features:
- Authority checks on every mutation and every outbound message
- Inbound messages accepted only from emitters listed in TRUSTED_EMITTERS
- Error messages never expose internal details
"""

import time
from typing import List

from pydantic import Field

from mcp.server.fastmcp import Context, FastMCP
from mcp.server.fastmcp.utilities.logging import get_logger

from mcp_token_factory import config
from mcp_token_factory.bridge import HttpBridgeTransport
from mcp_token_factory.collaborators import LoggingFactSink, StaticEmitterRegistry, StoreAuthorityVerifier
from mcp_token_factory.errors import (
    BondingCurveNotEnabledError,
    CrossChainNotEnabledError,
    InvalidAuthorityError,
    InvalidCurveKindError,
    InvalidMessagePayloadError,
    InvalidReserveRatioError,
    RateLimitExceededError,
    TokenFactoryError,
    TokenNotFoundError,
    TransportError,
    UnknownMessageTypeError,
    UnsupportedChainError,
    UntrustedEmitterError,
)
from mcp_token_factory.factory import TokenFactory
from mcp_token_factory.schemas import LiquidityUpdateFact, U64_MAX
from mcp_token_factory.token_manager import JsonTokenStore

logger = get_logger(__name__)

MAX_HEX_PAYLOAD_LENGTH = 2 * config.MAX_MESSAGE_SIZE


def build_factory() -> TokenFactory:
    """Wires the factory to the JSON store, configured emitters and the HTTP bridge relayer."""
    store = JsonTokenStore(config.TOKEN_STORE_DIR, authority=str(config.FACTORY_AUTHORITY.pubkey()))
    return TokenFactory(
        store=store,
        verifier=StoreAuthorityVerifier(store),
        emitters=StaticEmitterRegistry(config.TRUSTED_EMITTERS),
        sink=LoggingFactSink(),
        transport=HttpBridgeTransport(
            config.BRIDGE_RELAYER_URL,
            emitter=config.FACTORY_AUTHORITY,
            source_chain=config.LOCAL_CHAIN_ID,
            timeout=config.BRIDGE_TIMEOUT_SECONDS,
        ),
        program_id=config.FACTORY_PROGRAM_ID,
        max_message_size=config.MAX_MESSAGE_SIZE,
        rate_limit_per_minute=config.RATE_LIMIT_PER_MINUTE,
    )


# --- Server Setup ---
mcp = FastMCP(name="Token Factory Server")
factory = build_factory()


def describe_error(error: TokenFactoryError) -> str:
    """Turns a factory error into a message that names its category."""
    if isinstance(error, (InvalidCurveKindError, InvalidReserveRatioError)):
        return f"Configuration error: {error}"
    if isinstance(error, (InvalidMessagePayloadError, UnknownMessageTypeError)):
        return f"Protocol error: {error}"
    if isinstance(error, (InvalidAuthorityError, UntrustedEmitterError)):
        return f"Authorization error: {error}"
    if isinstance(error, (BondingCurveNotEnabledError, CrossChainNotEnabledError, UnsupportedChainError)):
        return f"State error: {error}"
    if isinstance(error, RateLimitExceededError):
        return str(error)
    if isinstance(error, TokenNotFoundError):
        return f"Not found: {error}"
    if isinstance(error, TransportError):
        return f"Bridge error: {error}"
    return f"Error: {error}"


def log_operation_error(operation: str, token_id, error: Exception, duration: float) -> None:
    """Log operation error with structured information."""
    logger.error(f"{operation} failed for token '{token_id}': {type(error).__name__}: {error}, "
                 f"duration: {duration:.3f}s")


def validate_u64(name: str, value: int) -> None:
    if not isinstance(value, int) or value < 0 or value > U64_MAX:
        raise ValueError(f"{name} must be an integer between 0 and {U64_MAX}")


# --- MCP Tools ---

@mcp.tool()
async def create_token(
    context: Context,
    authority: str = Field(..., description="Base58 public key of the token authority."),
    name: str = Field(..., description="Token name (max 32 characters)."),
    symbol: str = Field(..., description="Token symbol (max 10 characters)."),
    decimals: int = Field(..., description="Token decimals (0-18)."),
    metadata_uri: str = Field(..., description="URI of the token metadata."),
    initial_supply: int = Field(..., description="Initial supply in base units."),
) -> str:
    """Creates a new token record under the next factory token id."""
    start_time = time.time()
    try:
        validate_u64("initial_supply", initial_supply)
        record = factory.create_token(authority, name, symbol, decimals, metadata_uri, initial_supply)
        return f"Token {record.token_id} ({record.symbol}) created with mint {record.mint}."
    except TokenFactoryError as e:
        log_operation_error("Token creation", "new", e, time.time() - start_time)
        return describe_error(e)
    except ValueError as e:
        log_operation_error("Token creation", "new", e, time.time() - start_time)
        return f"Error: Invalid input parameters - {e}"
    except Exception as e:
        logger.exception(f"Unexpected error creating token: {e}")
        return "An unexpected server error occurred while creating the token."


@mcp.tool()
async def get_token_info(context: Context, token_id: int = Field(..., description="The token id.")) -> str:
    """Get the stored record of a token, including its curve and cross-chain settings."""
    try:
        validate_u64("token_id", token_id)
        return factory.store.get(token_id).model_dump_json(indent=2)
    except TokenNotFoundError as e:
        logger.warning(f"Token not found: {token_id}")
        return describe_error(e)
    except ValueError as e:
        return f"Error: Invalid input parameters - {e}"
    except Exception as e:
        logger.exception(f"Unexpected error getting token info for {token_id}: {e}")
        return "An unexpected error occurred while retrieving token information."


@mcp.tool()
async def configure_bonding_curve(
    context: Context,
    caller: str = Field(..., description="Base58 public key of the caller."),
    token_id: int = Field(..., description="The token id."),
    curve_kind: int = Field(..., description="0 = linear, 1 = exponential, 2 = Bancor approximation."),
    base_price: int = Field(..., description="Base unit price."),
    slope: int = Field(0, description="Slope for linear and exponential curves."),
    reserve_ratio: int = Field(0, description="Reserve ratio in parts per thousand (0-1000)."),
) -> str:
    """Configures and enables the bonding curve of a token."""
    start_time = time.time()
    try:
        validate_u64("base_price", base_price)
        validate_u64("slope", slope)
        if not 0 <= reserve_ratio <= 0xFFFF:
            raise ValueError("reserve_ratio must be an unsigned 16-bit integer")
        curve = factory.configure_bonding_curve(caller, token_id, curve_kind, base_price, slope, reserve_ratio)
        return f"Bonding curve for token {token_id} configured: {curve.model_dump_json()}"
    except TokenFactoryError as e:
        log_operation_error("Curve configuration", token_id, e, time.time() - start_time)
        return describe_error(e)
    except ValueError as e:
        log_operation_error("Curve configuration", token_id, e, time.time() - start_time)
        return f"Error: Invalid input parameters - {e}"
    except Exception as e:
        logger.exception(f"Unexpected error configuring curve for token {token_id}: {e}")
        return "An unexpected server error occurred while configuring the bonding curve."


@mcp.tool()
async def calculate_price(
    context: Context,
    token_id: int = Field(..., description="The token id."),
    supply: int = Field(..., description="Current supply in base units."),
    amount: int = Field(..., description="Trade amount in base units."),
) -> str:
    """Calculates the price of a trade on the token's bonding curve."""
    try:
        price = factory.calculate_price(token_id, supply, amount)
        return f"Price for {amount} units of token {token_id} at supply {supply}: {price}"
    except TokenFactoryError as e:
        logger.warning(f"Price calculation rejected for token {token_id}: {e}")
        return describe_error(e)
    except ValueError as e:
        return f"Error: Invalid input parameters - {e}"
    except Exception as e:
        logger.exception(f"Unexpected error calculating price for token {token_id}: {e}")
        return "An unexpected server error occurred while calculating the price."


@mcp.tool()
async def enable_cross_chain(
    context: Context,
    caller: str = Field(..., description="Base58 public key of the caller."),
    token_id: int = Field(..., description="The token id."),
    emitter_id: str = Field(..., description="Base58 32-byte emitter identifier."),
    chain_ids: List[int] = Field(..., description="Wormhole chain ids to add to the supported set."),
) -> str:
    """Enables cross-chain messaging for a token and adds supported chains."""
    start_time = time.time()
    try:
        record = factory.enable_cross_chain(caller, token_id, emitter_id, chain_ids)
        return (f"Cross-chain enabled for token {token_id}. "
                f"Supported chains: {sorted(record.cross_chain.supported_chains)}")
    except TokenFactoryError as e:
        log_operation_error("Cross-chain enablement", token_id, e, time.time() - start_time)
        return describe_error(e)
    except ValueError as e:
        log_operation_error("Cross-chain enablement", token_id, e, time.time() - start_time)
        return f"Error: Invalid input parameters - {e}"
    except Exception as e:
        logger.exception(f"Unexpected error enabling cross-chain for token {token_id}: {e}")
        return "An unexpected server error occurred while enabling cross-chain."


@mcp.tool()
async def announce_token(
    context: Context,
    caller: str = Field(..., description="Base58 public key of the caller."),
    token_id: int = Field(..., description="The token id."),
    target_chain: int = Field(..., description="Wormhole chain id of the target chain."),
) -> str:
    """Sends the token's creation payload, including its curve, to another chain."""
    start_time = time.time()
    try:
        message = factory.announce_token(caller, token_id, target_chain)
        return f"Token {token_id} announced to chain {target_chain} ({len(message.to_bytes())} bytes)."
    except TokenFactoryError as e:
        log_operation_error("Token announcement", token_id, e, time.time() - start_time)
        return describe_error(e)
    except ValueError as e:
        return f"Error: Invalid input parameters - {e}"
    except Exception as e:
        logger.exception(f"Unexpected error announcing token {token_id}: {e}")
        return "An unexpected server error occurred while sending the message."


@mcp.tool()
async def publish_price_update(
    context: Context,
    caller: str = Field(..., description="Base58 public key of the caller."),
    token_id: int = Field(..., description="The token id."),
    target_chain: int = Field(..., description="Wormhole chain id of the target chain."),
    supply: int = Field(..., description="Current supply in base units."),
) -> str:
    """Sends the token's current unit price to another chain."""
    start_time = time.time()
    try:
        factory.publish_price_update(caller, token_id, target_chain, supply)
        return f"Price update for token {token_id} sent to chain {target_chain}."
    except TokenFactoryError as e:
        log_operation_error("Price update", token_id, e, time.time() - start_time)
        return describe_error(e)
    except ValueError as e:
        return f"Error: Invalid input parameters - {e}"
    except Exception as e:
        logger.exception(f"Unexpected error sending price update for token {token_id}: {e}")
        return "An unexpected server error occurred while sending the message."


@mcp.tool()
async def publish_liquidity_update(
    context: Context,
    caller: str = Field(..., description="Base58 public key of the caller."),
    token_id: int = Field(..., description="The token id."),
    target_chain: int = Field(..., description="Wormhole chain id of the target chain."),
    liquidity_added: int = Field(0, description="Liquidity added in this update."),
    liquidity_removed: int = Field(0, description="Liquidity removed in this update."),
    current_liquidity: int = Field(..., description="Liquidity after the update."),
) -> str:
    """Sends a liquidity update for the token to another chain."""
    start_time = time.time()
    try:
        payload = LiquidityUpdateFact(
            token_id=token_id,
            liquidity_added=liquidity_added,
            liquidity_removed=liquidity_removed,
            current_liquidity=current_liquidity,
            timestamp=int(time.time()),
        )
        factory.send_cross_chain_message(caller, token_id, target_chain, payload)
        return f"Liquidity update for token {token_id} sent to chain {target_chain}."
    except TokenFactoryError as e:
        log_operation_error("Liquidity update", token_id, e, time.time() - start_time)
        return describe_error(e)
    except ValueError as e:
        return f"Error: Invalid input parameters - {e}"
    except Exception as e:
        logger.exception(f"Unexpected error sending liquidity update for token {token_id}: {e}")
        return "An unexpected server error occurred while sending the message."


@mcp.tool()
async def receive_cross_chain_message(
    context: Context,
    source_chain: int = Field(..., description="Wormhole chain id the message came from."),
    source_address: str = Field(..., description="Hex encoded 32-byte emitter address."),
    payload_hex: str = Field(..., description="Hex encoded message bytes (tag followed by body)."),
) -> str:
    """Accepts a cross-chain message delivered by the bridge and returns the resulting fact."""
    start_time = time.time()
    try:
        if len(payload_hex) > MAX_HEX_PAYLOAD_LENGTH:
            raise ValueError("Payload is too large")
        address = bytes.fromhex(source_address.removeprefix("0x"))
        raw_bytes = bytes.fromhex(payload_hex.removeprefix("0x"))
        fact = factory.receive_message(source_chain, address, raw_bytes)
        return f"{type(fact).__name__}: {fact.model_dump_json()}"
    except TokenFactoryError as e:
        log_operation_error("Inbound message", "-", e, time.time() - start_time)
        return describe_error(e)
    except ValueError as e:
        return f"Error: Invalid input parameters - {e}"
    except Exception as e:
        logger.exception(f"Unexpected error processing inbound message from chain {source_chain}: {e}")
        return "An unexpected server error occurred while processing the message."


@mcp.tool()
async def factory_authority(context: Context) -> str:
    """Returns the factory authority public key used as the outbound emitter."""
    return str(config.FACTORY_AUTHORITY.pubkey())


# --- Main Execution ---
if __name__ == "__main__":
    logger.info("Starting Token Factory MCP Server...")
    token_count = factory.store.factory_state().token_count
    logger.info(f"Factory authority {config.FACTORY_AUTHORITY.pubkey()}, {token_count} token(s) issued.")

    try:
        mcp.run(transport="stdio")
    except KeyboardInterrupt:
        logger.info("Server shutdown requested by user")
    except Exception as e:
        logger.exception(f"Server error: {e}")
    finally:
        logger.info("Token Factory MCP Server stopped.")
