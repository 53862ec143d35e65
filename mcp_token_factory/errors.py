"""
Custom Exception Classes for the Token Factory

This module defines the exception taxonomy shared by the pricing engine, the cross-chain
message codec and dispatcher, and the factory service that wires them to their collaborators.
Every failure is raised immediately as one of these types; nothing in the core retries or
suppresses an error.

Exception Categories:
- Protocol Errors: malformed payloads and unknown message tags
- Configuration Errors: invalid curve kinds and reserve ratios, bad environment settings
- State Errors: price queries before the curve is enabled, cross-chain use before it is enabled
- Authorization Errors: caller mismatches and untrusted emitters
- Transport Errors: failures reported by the bridge transport

Usage:
    The MCP server and the relayer HTTP API catch these by type and translate them into
    user-facing messages or status codes.
"""


class TokenFactoryError(Exception):
    """Base class for every error raised by the token factory."""


# --- Protocol Errors ---

class InvalidMessagePayloadError(TokenFactoryError):
    """Raised when a cross-chain message is empty, truncated or carries trailing bytes."""


class UnknownMessageTypeError(TokenFactoryError):
    """Raised when a cross-chain message tag is outside {1, 2, 3}."""


# --- Configuration Errors ---

class InvalidCurveKindError(TokenFactoryError):
    """Raised when a curve family tag is outside {0, 1, 2}."""


class InvalidReserveRatioError(TokenFactoryError):
    """Raised when a reserve ratio exceeds 1000 parts per thousand."""


class ConfigurationError(TokenFactoryError):
    """Raised when there are configuration-related errors."""


# --- State Errors ---

class BondingCurveNotEnabledError(TokenFactoryError):
    """Raised when a price is requested before the bonding curve was configured."""


class CrossChainNotEnabledError(TokenFactoryError):
    """Raised when a cross-chain message is sent for a token without cross-chain enabled."""


class UnsupportedChainError(TokenFactoryError):
    """Raised when the target chain is not in the token's supported chains."""


class TokenNotFoundError(TokenFactoryError):
    """Raised when the token record store has no record for a token id."""


class StaleFactoryStateError(TokenFactoryError):
    """Raised when the factory token counter moved between read and increment."""


# --- Authorization Errors ---

class InvalidAuthorityError(TokenFactoryError):
    """Raised when the caller is not the authority of the token."""


class UntrustedEmitterError(TokenFactoryError):
    """Raised when an inbound message comes from an emitter that is not registered."""


class RateLimitExceededError(TokenFactoryError):
    """Raised when an emitter exceeds its inbound message rate limit."""


# --- Transport Errors ---

class TransportError(TokenFactoryError):
    """Raised when the bridge transport fails to hand a message to the relayer."""
