"""
Inbound Message Rate Limiting

This module limits how many cross-chain messages a single emitter can deliver within a
one-minute window, so a compromised or misbehaving emitter cannot flood the fact sink.

Rate Limiting Algorithm:
- Fixed 60-second window per emitter key (`<chain>:<hex address>`)
- Tracks request count and first request timestamp per emitter
- Resets the counter once the window expires

Housekeeping:
- Entries are kept in an OrderedDict in least-recently-used order
- Expired entries are swept once the cache grows past MAX_TRACKED_EMITTERS
"""
import time
from typing import Tuple
from collections import OrderedDict

from mcp_token_factory.config import RATE_LIMIT_PER_MINUTE
from mcp.server.fastmcp.utilities.logging import get_logger

logger = get_logger(__name__)

WINDOW_SECONDS = 60
MAX_TRACKED_EMITTERS = 1000

# In-memory cache for rate limiting: {emitter_key: (count, first_request_timestamp_in_window)}
rate_limit_cache: "OrderedDict[str, Tuple[int, int]]" = OrderedDict()


def emitter_key(source_chain: int, source_address: bytes) -> str:
    return f"{source_chain}:{bytes(source_address).hex()}"


def check_rate_limit(key: str, limit: int = RATE_LIMIT_PER_MINUTE) -> bool:
    """
    Checks whether the given emitter may deliver another message.

    Args:
        key: The emitter key, see emitter_key().
        limit: Messages allowed per window.

    Returns:
        True if the message is allowed, False if the limit is exceeded.
    """
    now = int(time.time())

    if len(rate_limit_cache) > MAX_TRACKED_EMITTERS:
        cleanup_old_entries(now - WINDOW_SECONDS)

    if key in rate_limit_cache:
        count, timestamp = rate_limit_cache[key]
        if now - timestamp >= WINDOW_SECONDS:
            rate_limit_cache[key] = (1, now)
            rate_limit_cache.move_to_end(key)
            logger.debug(f"Rate limit window reset for emitter: {key}")
            return True
        if count >= limit:
            logger.warning(f"Rate limit exceeded for emitter: {key}. Count: {count}, Limit: {limit}")
            return False
        rate_limit_cache[key] = (count + 1, timestamp)
        rate_limit_cache.move_to_end(key)
        logger.debug(f"Rate limit check passed for emitter: {key}. Count: {count + 1}")
        return True

    rate_limit_cache[key] = (1, now)
    rate_limit_cache.move_to_end(key)
    logger.debug(f"Rate limit initiated for emitter: {key}")
    return True


def cleanup_old_entries(cutoff_time: int):
    """
    Removes rate limit entries whose window started before the cutoff time.

    Args:
        cutoff_time: Unix timestamp, entries before this time will be removed.
    """
    to_remove = [key for key, (_, timestamp) in rate_limit_cache.items() if timestamp < cutoff_time]
    for key in to_remove:
        del rate_limit_cache[key]

    if to_remove:
        logger.debug(f"Cleaned up {len(to_remove)} old rate limit entries")
