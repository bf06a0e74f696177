"""Money and percentage helpers shared by the billing engine and CLI.

All amounts are handled as Decimal and rounded to cents with
ROUND_HALF_UP, the way invoice totals are presented to clients.
"""

from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable

CENTS = Decimal("0.01")
ZERO = Decimal("0")
HUNDRED = Decimal("100")


def quantize_money(amount: Decimal) -> Decimal:
    """Round an amount to cents.

    Args:
        amount: Unrounded amount

    Returns:
        Amount rounded half-up to two decimal places

    Example:
        >>> quantize_money(Decimal("12.345"))
        Decimal('12.35')
    """
    return amount.quantize(CENTS, rounding=ROUND_HALF_UP)


def sum_money(amounts: Iterable[Decimal]) -> Decimal:
    """Sum amounts, returning a cent-quantized Decimal (0.00 when empty)."""
    return quantize_money(sum(amounts, ZERO))


def percentage_of(budget: Decimal, percentage: Decimal) -> Decimal:
    """Amount corresponding to ``percentage`` of ``budget``, rounded to cents.

    Example:
        >>> percentage_of(Decimal("10000"), Decimal("50"))
        Decimal('5000.00')
    """
    return quantize_money(budget * percentage / HUNDRED)


def format_currency(amount: Decimal) -> str:
    """Format an amount as US dollars with thousands separators.

    Example:
        >>> format_currency(Decimal("1234.5"))
        '$1,234.50'
        >>> format_currency(Decimal("-200"))
        '-$200.00'
    """
    rounded = quantize_money(amount)
    sign = "-" if rounded < 0 else ""
    return f"{sign}${abs(rounded):,.2f}"


def format_currency_compact(amount: Decimal) -> str:
    """Format an amount, dropping the cents when it is a whole number.

    Example:
        >>> format_currency_compact(Decimal("1500.00"))
        '$1,500'
    """
    rounded = quantize_money(amount)
    if rounded == rounded.to_integral_value():
        sign = "-" if rounded < 0 else ""
        return f"{sign}${abs(rounded):,.0f}"
    return format_currency(rounded)


def format_percentage(percentage: Decimal) -> str:
    """Format a percentage without trailing zeros.

    Example:
        >>> format_percentage(Decimal("12.50"))
        '12.5%'
    """
    normalized = percentage.normalize()
    if normalized == normalized.to_integral_value():
        normalized = normalized.quantize(Decimal("1"))
    return f"{normalized}%"
