"""
Token Pricing Engine with Bonding Curves

This module implements the deterministic integer pricing used by the token factory. A price is
a pure function of a token's CurveConfig, the current supply and the trade amount; nothing is
read from or written to the token record store here.

Bonding Curve Families:
- Linear: unit price grows by `slope` per unit of supply
- Exponential: first-order approximation of compound growth, scaled by 1/10000 and 1/100
- BancorApprox: base price scaled by (supply / 1000) raised to an integer ratio factor

Arithmetic:
- All values are unsigned 64-bit integers
- Every addition, multiplication and power saturates at U64_MAX instead of wrapping or raising
- Divisions are integer (floor) divisions

Known Quirk:
    The BancorApprox ratio factor is `(1000 - reserve_ratio) // 1000`, which is 0 for every
    reserve ratio in (0, 1000] and 1 only for a reserve ratio of 0. The reserve ratio therefore
    only matters at 0; every other value prices at `base_price * amount`.
    Kept as-is.
"""
from mcp_token_factory.errors import (
    BondingCurveNotEnabledError,
    InvalidCurveKindError,
    InvalidReserveRatioError,
)
from mcp_token_factory.schemas import (
    MAX_RESERVE_RATIO,
    U64_MAX,
    CurveConfig,
    CurveKind,
    TokenCreationFact,
)
from mcp.server.fastmcp.utilities.logging import get_logger

logger = get_logger(__name__)

EXPONENT_SCALE = 10000
EXPONENT_PERCENT = 100
BANCOR_SUPPLY_UNIT = 1000


# --- Saturating u64 arithmetic ---

def saturating_add(a: int, b: int) -> int:
    return min(a + b, U64_MAX)


def saturating_sub(a: int, b: int) -> int:
    return max(a - b, 0)


def saturating_mul(a: int, b: int) -> int:
    return min(a * b, U64_MAX)


def saturating_pow(base: int, exponent: int) -> int:
    """Raises base to exponent, clamping at U64_MAX as soon as the result would exceed it."""
    result = 1
    for _ in range(exponent):
        result = saturating_mul(result, base)
        if result == U64_MAX:
            break
    return result


# --- Curve families ---

def calculate_linear_price(supply: int, amount: int, base_price: int, slope: int) -> int:
    # P = base_price + slope * supply
    unit_price = saturating_add(base_price, saturating_mul(slope, supply))
    return saturating_mul(unit_price, amount)


def calculate_exponential_price(supply: int, amount: int, base_price: int, slope: int) -> int:
    # P = base_price * (1 + slope)^supply, first-order approximation
    exponent = saturating_mul(slope, supply) // EXPONENT_SCALE
    unit_price = saturating_add(base_price, saturating_mul(base_price, exponent) // EXPONENT_PERCENT)
    return saturating_mul(unit_price, amount)


def calculate_bancor_price(supply: int, amount: int, base_price: int, reserve_ratio: int) -> int:
    ratio_factor = saturating_sub(MAX_RESERVE_RATIO, reserve_ratio) // MAX_RESERVE_RATIO
    supply_factor = supply // BANCOR_SUPPLY_UNIT if supply > BANCOR_SUPPLY_UNIT else 1
    unit_price = saturating_mul(base_price, saturating_pow(supply_factor, ratio_factor))
    return saturating_mul(unit_price, amount)


def resolve_curve_kind(tag: int) -> CurveKind:
    """Maps a curve family tag to its CurveKind, raising InvalidCurveKindError for unknown tags."""
    try:
        return CurveKind(tag)
    except ValueError:
        raise InvalidCurveKindError(f"Invalid curve kind {tag}; expected one of {[k.value for k in CurveKind]}")


def _check_u64(name: str, value: int) -> None:
    if not isinstance(value, int) or value < 0 or value > U64_MAX:
        raise ValueError(f"{name} must be an unsigned 64-bit integer, got {value!r}")


def compute_price(curve: CurveConfig, supply: int, amount: int) -> int:
    """
    Computes the total price of `amount` tokens at the current `supply` on the given curve.

    Args:
        curve: The token's bonding curve configuration.
        supply: Current token supply (base units).
        amount: Number of tokens being traded (base units).

    Returns:
        The total price as an unsigned 64-bit integer, saturated at U64_MAX.

    Raises:
        BondingCurveNotEnabledError: If the curve has not been enabled, whatever its other fields.
        InvalidCurveKindError: If the curve kind does not resolve to a known family.
        ValueError: If supply or amount is not an unsigned 64-bit integer.
    """
    if not curve.enabled:
        raise BondingCurveNotEnabledError("Bonding curve is not enabled for this token")

    kind = resolve_curve_kind(curve.curve_kind)
    _check_u64("supply", supply)
    _check_u64("amount", amount)

    if kind == CurveKind.linear:
        price = calculate_linear_price(supply, amount, curve.base_price, curve.slope)
    elif kind == CurveKind.exponential:
        price = calculate_exponential_price(supply, amount, curve.base_price, curve.slope)
    else:
        price = calculate_bancor_price(supply, amount, curve.base_price, curve.reserve_ratio)

    logger.debug(f"Price for {amount} units at supply {supply} on {kind.name} curve "
                 f"(base={curve.base_price}, slope={curve.slope}, reserve_ratio={curve.reserve_ratio}): {price}")
    return price


def curve_from_creation_fact(fact: TokenCreationFact) -> CurveConfig:
    """Builds an enabled CurveConfig from the curve parameters embedded in a token creation payload."""
    resolve_curve_kind(fact.curve_kind)
    if fact.reserve_ratio > MAX_RESERVE_RATIO:
        raise InvalidReserveRatioError(
            f"Reserve ratio {fact.reserve_ratio} exceeds {MAX_RESERVE_RATIO} for token {fact.token_id}"
        )
    return CurveConfig(
        enabled=True,
        curve_kind=fact.curve_kind,
        base_price=fact.base_price,
        slope=fact.slope,
        reserve_ratio=fact.reserve_ratio,
    )
