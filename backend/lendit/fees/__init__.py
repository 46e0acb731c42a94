"""Platform fee calculation package."""

from lendit.fees.calculator import (
    PLATFORM_FEE_DESCRIPTION,
    PLATFORM_FEE_RATE,
    FeeBreakdown,
    calculate_fees,
    fee_breakdown_lines,
    format_fee,
    platform_fee_display,
    platform_fee_legal_text,
    round_money,
    to_amount,
    to_money,
)

__all__ = [
    "PLATFORM_FEE_DESCRIPTION",
    "PLATFORM_FEE_RATE",
    "FeeBreakdown",
    "calculate_fees",
    "fee_breakdown_lines",
    "format_fee",
    "platform_fee_display",
    "platform_fee_legal_text",
    "round_money",
    "to_amount",
    "to_money",
]
