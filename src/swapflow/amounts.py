"""Integer amount arithmetic and display-boundary conversions.

The swap core only ever stores and computes base-unit integers. ``Decimal`` is
used solely to parse and format human-readable amounts for the presentation
layer, never inside the swap flow itself.
"""

from decimal import Decimal, InvalidOperation, localcontext
from typing import Union

from swapflow.errors import ValidationError
from swapflow.models import BPS_DENOMINATOR

MAX_UINT256 = 2**256 - 1


def validate_slippage_bps(slippage_bps: int) -> int:
    """Reject slippage outside [0, 10000] basis points."""
    if isinstance(slippage_bps, bool) or not isinstance(slippage_bps, int):
        raise ValidationError(f"Slippage must be an integer number of basis points, got {slippage_bps!r}")
    if not 0 <= slippage_bps <= BPS_DENOMINATOR:
        raise ValidationError(f"Slippage must be between 0 and {BPS_DENOMINATOR} bps, got {slippage_bps}")
    return slippage_bps


def validate_amount(amount: int) -> int:
    """Reject non-integer, non-positive or out-of-range base-unit amounts."""
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise ValidationError(f"Amount must be an integer in base units, got {amount!r}")
    if amount <= 0:
        raise ValidationError(f"Amount must be greater than zero, got {amount}")
    if amount > MAX_UINT256:
        raise ValidationError("Amount exceeds uint256")
    return amount


def min_acceptable_output(output_amount: int, slippage_bps: int) -> int:
    """Lowest output the exchange may deliver before it must revert.

    output * (10000 - slippage) // 10000, always <= output.
    """
    validate_slippage_bps(slippage_bps)
    if output_amount < 0:
        raise ValidationError(f"Output amount cannot be negative, got {output_amount}")
    return output_amount * (BPS_DENOMINATOR - slippage_bps) // BPS_DENOMINATOR


def to_base_units(display_amount: Union[str, int, Decimal], decimals: int) -> int:
    """Convert a human-readable amount to base units.

    Args:
        display_amount: e.g. "100.5" (floats are refused, pass a string)
        decimals: Token decimal places

    Raises:
        ValidationError: If the amount is malformed or has more precision than
            the token supports
    """
    if isinstance(display_amount, float):
        raise ValidationError("Pass display amounts as str or Decimal, not float")
    try:
        value = Decimal(str(display_amount).strip())
    except InvalidOperation:
        raise ValidationError(f"Invalid amount: {display_amount!r}")

    if not value.is_finite():
        raise ValidationError(f"Invalid amount: {display_amount!r}")

    with localcontext() as ctx:
        ctx.prec = 100
        scaled = value.scaleb(decimals)
    if scaled != scaled.to_integral_value():
        raise ValidationError(
            f"Amount {display_amount} has more than {decimals} decimal places"
        )
    return int(scaled)


def from_base_units(amount: int, decimals: int) -> Decimal:
    """Convert base units back to a Decimal display value."""
    return Decimal(amount).scaleb(-decimals)


def format_amount(amount: int, decimals: int, precision: int = 6) -> str:
    """Format base units for display, trimming trailing zeros."""
    with localcontext() as ctx:
        ctx.prec = 100
        value = from_base_units(amount, decimals)
        quantized = value.quantize(Decimal(1).scaleb(-precision)) if precision < decimals else value
    text = f"{quantized:f}"
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text or "0"
