"""Platform fee calculator -- pure Decimal arithmetic.

Formula (every step rounded half-up to the cent):
    rental_subtotal     = rental_cost + delivery_fee
    platform_fee        = rental_subtotal * rate
    owner_payout_amount = rental_subtotal - platform_fee
    total_charged       = rental_subtotal + platform_fee + bond_amount

Booking creation, analytics and payout reconciliation all call
calculate_fees(), so the three can never diverge.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Context, Decimal, getcontext, localcontext

PLATFORM_FEE_RATE = Decimal("0.015")
PLATFORM_FEE_DESCRIPTION = "Platform service fee"

_CENT = Decimal("0.01")
_ZERO = Decimal("0")

_CURRENCY_SYMBOLS = {"NZD": "$", "AUD": "A$"}

Money = Decimal | int | str | float


@dataclass(frozen=True)
class FeeBreakdown:
    """Deterministic monetary breakdown for one booking.

    ``rental_cost`` and ``delivery_fee`` are the inputs as given; every
    derived amount is in cents.
    """

    rental_cost: Decimal
    delivery_fee: Decimal
    bond_amount: Decimal
    rental_subtotal: Decimal
    platform_fee_rate: Decimal
    platform_fee: Decimal
    owner_payout_amount: Decimal
    total_charged: Decimal
    platform_fee_percent: str


def round_money(value: Decimal) -> Decimal:
    """Round to 2 decimal places, half-up on the cent boundary.

    Exact for any magnitude: the quantize context widens past the
    default 28 digits when the value needs it.
    """
    prec = max(getcontext().prec, value.adjusted() + 4)
    return value.quantize(_CENT, rounding=ROUND_HALF_UP, context=Context(prec=prec))


def to_amount(value: Money, field_name: str = "amount") -> Decimal:
    """Convert an input amount to a non-negative Decimal, unrounded.

    Floats go through str() so 0.1 becomes Decimal("0.1"), not its
    binary expansion.

    Raises:
        ValueError: If the amount is negative or not finite.
    """
    if isinstance(value, Decimal):
        amount = value
    elif isinstance(value, float):
        amount = Decimal(str(value))
    else:
        amount = Decimal(value)
    if not amount.is_finite():
        raise ValueError(f"{field_name} must be finite, got {value}")
    if amount < _ZERO:
        raise ValueError(f"{field_name} must be non-negative, got {value}")
    return amount


def to_money(value: Money, field_name: str = "amount") -> Decimal:
    """Like to_amount(), rounded to cents."""
    return round_money(to_amount(value, field_name))


def _working_precision(amounts: tuple[Decimal, ...], rate: Decimal) -> int:
    # Enough digits for the sum and the rate product to stay exact
    widest = max(amount.adjusted() for amount in amounts)
    finest = min(min(int(amount.as_tuple().exponent) for amount in amounts), -2)
    needed = widest - finest + len(rate.as_tuple().digits) + 4
    return max(getcontext().prec, needed)


def platform_fee_display(rate: Decimal = PLATFORM_FEE_RATE) -> str:
    """``Decimal("0.015")`` -> ``"1.5%"``."""
    percent = (rate * 100).normalize()
    return f"{percent:f}%"


def platform_fee_legal_text(rate: Decimal = PLATFORM_FEE_RATE) -> str:
    return (
        f"Lendit applies a {platform_fee_display(rate)} service fee to all rentals, "
        "deducted from owner payouts."
    )


def calculate_fees(
    rental_cost: Money,
    delivery_fee: Money = 0,
    bond_amount: Money = 0,
    *,
    rate: Decimal = PLATFORM_FEE_RATE,
) -> FeeBreakdown:
    """Calculate all fees for a booking.

    The subtotal is rounded from the raw cost and delivery fee. The bond
    is normalised to cents first, so
    ``total_charged == rental_subtotal + platform_fee + bond_amount`` and
    ``owner_payout_amount == rental_subtotal - platform_fee`` hold exactly.

    Raises:
        ValueError: If any amount is negative or not finite.
    """
    cost = to_amount(rental_cost, "rental_cost")
    delivery = to_amount(delivery_fee, "delivery_fee")
    bond = to_money(bond_amount, "bond_amount")

    with localcontext() as ctx:
        ctx.prec = _working_precision((cost, delivery, bond), rate)
        rental_subtotal = round_money(cost + delivery)
        platform_fee = round_money(rental_subtotal * rate)
        owner_payout_amount = round_money(rental_subtotal - platform_fee)
        total_charged = round_money(rental_subtotal + platform_fee + bond)

    return FeeBreakdown(
        rental_cost=cost,
        delivery_fee=delivery,
        bond_amount=bond,
        rental_subtotal=rental_subtotal,
        platform_fee_rate=rate,
        platform_fee=platform_fee,
        owner_payout_amount=owner_payout_amount,
        total_charged=total_charged,
        platform_fee_percent=platform_fee_display(rate),
    )


def format_fee(amount: Decimal, currency: str = "NZD") -> str:
    """Format an amount for display, e.g. ``$1,234.50`` or ``A$80.00``."""
    symbol = _CURRENCY_SYMBOLS.get(currency, f"{currency} ")
    return f"{symbol}{round_money(amount):,.2f}"


def fee_breakdown_lines(
    breakdown: FeeBreakdown,
    currency: str = "NZD",
    description: str = PLATFORM_FEE_DESCRIPTION,
) -> list[str]:
    """Human-readable breakdown. Delivery and bond lines only when nonzero."""
    lines = [f"Rental cost: {format_fee(breakdown.rental_cost, currency)}"]
    if breakdown.delivery_fee > _ZERO:
        lines.append(f"Delivery fee: {format_fee(breakdown.delivery_fee, currency)}")
    lines.append(f"Subtotal: {format_fee(breakdown.rental_subtotal, currency)}")
    lines.append(
        f"{description} ({breakdown.platform_fee_percent}): "
        f"{format_fee(breakdown.platform_fee, currency)}"
    )
    if breakdown.bond_amount > _ZERO:
        lines.append(
            f"Security bond (authorised): {format_fee(breakdown.bond_amount, currency)}"
        )
    lines.append(f"Total: {format_fee(breakdown.total_charged, currency)}")
    return lines
