"""Money helpers using Decimal for dollar input and integer cents for storage."""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

MONEY_PRECISION = Decimal("0.01")
CENTS_PER_UNIT = 100
BASIS_POINTS = 10_000


def quantize_money(value: Decimal) -> Decimal:
    """Return value rounded to two decimal places with HALF_UP strategy."""

    return value.quantize(MONEY_PRECISION, rounding=ROUND_HALF_UP)


def parse_money(value: str) -> Decimal:
    """Parse and normalize input money string into Decimal.

    Raises:
        ValueError: When the string is not a finite decimal number.
    """

    try:
        amount = Decimal(value.strip())
    except InvalidOperation as exc:
        raise ValueError(f"Invalid money amount: {value!r}") from exc
    if not amount.is_finite():
        raise ValueError(f"Invalid money amount: {value!r}")
    return quantize_money(amount)


def to_cents(value: Decimal) -> int:
    """Convert a dollar amount into integer cents."""

    return int(quantize_money(value) * CENTS_PER_UNIT)


def from_cents(cents: int) -> Decimal:
    """Convert integer cents into a two-place Decimal amount."""

    return quantize_money(Decimal(cents) / CENTS_PER_UNIT)


def platform_fee_cents(amount_cents: int, fee_bps: int) -> int:
    """Return the platform fee for an amount, rounding half cents up."""

    fee = Decimal(amount_cents) * Decimal(fee_bps) / BASIS_POINTS
    return int(fee.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def format_money(value: Decimal) -> str:
    """Render money as string with exactly two decimal places."""

    return f"{quantize_money(value):.2f}"


def format_cents(cents: int) -> str:
    """Render integer cents as a dollar string like ``$12.50``."""

    return f"${format_money(from_cents(cents))}"
