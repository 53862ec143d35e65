import os
import logging
from typing import List, Optional, Tuple
from solders.keypair import Keypair
from solders.pubkey import Pubkey
from dotenv import load_dotenv

# Import custom errors
from mcp_token_factory.errors import ConfigurationError

"""
Configuration Management for the Token Factory

This module handles all configuration loading and validation for the token factory service.
It loads settings from environment variables (and a local .env file) with sensible defaults
and validates them so the service fails fast on a bad deployment.

Configuration Sources (in order of precedence):
1. Environment variables
2. Default values defined in this module

Security Considerations:
- The factory authority seed should be securely managed in production
- Only emitters listed in TRUSTED_EMITTERS can deliver inbound messages
- The relayer endpoint should be trusted and monitored

Environment Variables:
    TOKEN_STORE_DIR: Directory holding token records and the factory state
    FACTORY_PROGRAM_ID: Program id used to derive token mint addresses
    FACTORY_AUTHORITY_SEED: Comma-separated seed bytes for the factory authority keypair
    LOCAL_CHAIN_ID: Wormhole chain id of the chain this factory runs on
    TRUSTED_EMITTERS: Comma-separated chain:hex_address pairs allowed to send inbound messages
    BRIDGE_RELAYER_URL: Endpoint of the bridge relayer used for outbound messages
    BRIDGE_TIMEOUT_SECONDS: Timeout for relayer requests
    MAX_MESSAGE_SIZE: Largest inbound message accepted, in bytes
    RATE_LIMIT_PER_MINUTE: Inbound messages allowed per emitter per minute
    RELAYER_PORT: Port for the relayer HTTP API
"""

# Set up logger
logger = logging.getLogger(__name__)

# Load environment variables
load_dotenv()

# --- Wormhole chain ids ---
CHAIN_ID_SOLANA = 1
CHAIN_ID_ETHEREUM = 2
CHAIN_ID_BSC = 4
CHAIN_ID_BASE = 30

EMITTER_ADDRESS_LENGTH = 32


def _get_env_str(key: str, default: str, required: bool = False) -> str:
    """Get environment variable as string with validation."""
    value = os.getenv(key, default)
    if required and not value:
        raise ConfigurationError(f"Required environment variable {key} is not set")
    return value


def _get_env_int(key: str, default: int, min_val: Optional[int] = None, max_val: Optional[int] = None) -> int:
    """Get environment variable as integer with validation."""
    try:
        value = int(os.getenv(key, str(default)))
        if min_val is not None and value < min_val:
            raise ConfigurationError(f"Environment variable {key} must be >= {min_val}")
        if max_val is not None and value > max_val:
            raise ConfigurationError(f"Environment variable {key} must be <= {max_val}")
        return value
    except ValueError:
        raise ConfigurationError(f"Environment variable {key} must be a valid integer")


def _get_env_float(key: str, default: float, min_val: Optional[float] = None, max_val: Optional[float] = None) -> float:
    """Get environment variable as float with validation."""
    try:
        value = float(os.getenv(key, str(default)))
        if min_val is not None and value < min_val:
            raise ConfigurationError(f"Environment variable {key} must be >= {min_val}")
        if max_val is not None and value > max_val:
            raise ConfigurationError(f"Environment variable {key} must be <= {max_val}")
        return value
    except ValueError:
        raise ConfigurationError(f"Environment variable {key} must be a valid float")


def _get_env_pubkey(key: str, default: str) -> Pubkey:
    """Get environment variable as Pubkey with validation."""
    try:
        value = os.getenv(key, default)
        return Pubkey.from_string(value)
    except Exception as e:
        raise ConfigurationError(f"Environment variable {key} must be a valid public key: {e}")


def parse_trusted_emitters(value: str) -> List[Tuple[int, bytes]]:
    """
    Parses `chain:hex_address` pairs, e.g. "2:0000...abcd,4:0000...1234".

    Raises:
        ConfigurationError: If a pair is malformed, the chain id is not a u16, or the address
            is not 32 bytes of hex.
    """
    emitters: List[Tuple[int, bytes]] = []
    for entry in (part.strip() for part in value.split(",")):
        if not entry:
            continue
        try:
            chain_str, address_hex = entry.split(":", 1)
            chain_id = int(chain_str)
            address = bytes.fromhex(address_hex.removeprefix("0x"))
        except ValueError as e:
            raise ConfigurationError(f"Invalid TRUSTED_EMITTERS entry '{entry}': {e}")
        if not 0 <= chain_id <= 0xFFFF:
            raise ConfigurationError(f"Invalid TRUSTED_EMITTERS chain id {chain_id}")
        if len(address) != EMITTER_ADDRESS_LENGTH:
            raise ConfigurationError(
                f"TRUSTED_EMITTERS address for chain {chain_id} must be {EMITTER_ADDRESS_LENGTH} bytes, got {len(address)}"
            )
        emitters.append((chain_id, address))
    return emitters


def _load_factory_authority() -> Keypair:
    """Load the factory authority keypair from environment with validation."""
    seed_str = os.getenv("FACTORY_AUTHORITY_SEED", ",".join(["1"] * 32))

    try:
        # Parse comma-separated integers
        seed_parts = [x.strip() for x in seed_str.split(",")]
        if len(seed_parts) != 32:
            raise ValueError(f"FACTORY_AUTHORITY_SEED must contain exactly 32 comma-separated integers, got {len(seed_parts)}")

        seed_bytes = bytes([int(x) for x in seed_parts])
        wallet = Keypair.from_seed(seed_bytes)
        logger.info(f"Successfully loaded factory authority: {wallet.pubkey()}")
        return wallet

    except (ValueError, TypeError) as e:
        logger.warning(f"Error loading FACTORY_AUTHORITY_SEED: {e}. Using a default insecure seed for development.")
        return Keypair.from_seed(bytes([1] * 32))


try:
    # --- Storage ---
    TOKEN_STORE_DIR = _get_env_str("TOKEN_STORE_DIR", "token_store", required=True)

    # --- Program / Authority ---
    FACTORY_PROGRAM_ID = _get_env_pubkey("FACTORY_PROGRAM_ID", "Fg6PaFpoGXkYsidMpWTK6W2BeZ7FEfcYkg476zPFsLnS")
    FACTORY_AUTHORITY = _load_factory_authority()

    # --- Cross-chain ---
    LOCAL_CHAIN_ID = _get_env_int("LOCAL_CHAIN_ID", CHAIN_ID_SOLANA, min_val=0, max_val=0xFFFF)
    TRUSTED_EMITTERS = parse_trusted_emitters(_get_env_str("TRUSTED_EMITTERS", ""))
    MAX_MESSAGE_SIZE = _get_env_int("MAX_MESSAGE_SIZE", 10000, min_val=1)

    # --- Bridge relayer ---
    BRIDGE_RELAYER_URL = _get_env_str("BRIDGE_RELAYER_URL", "http://localhost:7071/v1/messages")
    BRIDGE_TIMEOUT_SECONDS = _get_env_float("BRIDGE_TIMEOUT_SECONDS", 10.0, min_val=0.1, max_val=120.0)

    # --- Rate Limiting ---
    RATE_LIMIT_PER_MINUTE = _get_env_int("RATE_LIMIT_PER_MINUTE", 60, min_val=1, max_val=10000)

    # --- Relayer API ---
    RELAYER_PORT = _get_env_int("RELAYER_PORT", 5000, min_val=1024, max_val=65535)

    logger.info("Configuration loaded successfully")

except ConfigurationError as e:
    logger.error(f"Configuration error: {e}")
    raise
except Exception as e:
    logger.error(f"Unexpected error loading configuration: {e}")
    raise ConfigurationError(f"Failed to load configuration: {e}")
