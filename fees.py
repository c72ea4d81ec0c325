"""
fees.py
Early payout fee schedule and contribution calculators.

The early payout fee is a lookup table keyed by committee duration and payout
slot. Durations without an entry (and slots past the table) carry no fee.
"""

from __future__ import annotations

from models import FeeDetails, PayoutBreakdown

# duration -> {slot: fee fraction}
EARLY_PAYOUT_FEES: dict[int, dict[int, float]] = {
    5: {1: 0.10, 2: 0.10},
    10: {1: 0.10, 2: 0.10, 3: 0.075, 4: 0.075},
}

SHORT_COMMITTEE_FEE_RATE = 0.01  # duration <= 5
LONG_COMMITTEE_FEE_RATE = 0.02


def compute_fee_percentage(duration: int, slot: int) -> float:
    return EARLY_PAYOUT_FEES.get(duration, {}).get(slot, 0.0)


def get_fee_details(duration: int, slot: int) -> FeeDetails | None:
    percentage = compute_fee_percentage(duration, slot)
    if percentage > 0:
        return FeeDetails(
            percentage=percentage,
            reason=f"Early payout fee for slot {slot} in a {duration}-month committee.",
        )
    return None


def compute_committee_origination_fee(total_amount: float, duration: int) -> float:
    rate = SHORT_COMMITTEE_FEE_RATE if duration <= 5 else LONG_COMMITTEE_FEE_RATE
    return total_amount * rate


def calculate_monthly_contribution(total_amount: float, duration: int, slot: int) -> float:
    """
    Estimate of what a member pays per month: their share of the pool plus the
    early payout fee for their slot plus the origination fee.
    """
    base = total_amount / duration
    early_fee = total_amount * compute_fee_percentage(duration, slot)
    return base + early_fee + compute_committee_origination_fee(total_amount, duration)


def get_total_payable_amount(total_amount: float, duration: int, slot: int) -> float:
    return calculate_monthly_contribution(total_amount, duration, slot) * duration


def split_payout(original_amount: float, duration: int, slot: int) -> PayoutBreakdown:
    """
    Apply the early payout fee to a payout amount.
    net = original - fee, fee = original * percentage.
    """
    percentage = compute_fee_percentage(duration, slot)
    fee_amount = original_amount * percentage
    return PayoutBreakdown(
        original_amount=original_amount,
        fee_percentage=percentage,
        fee_amount=fee_amount,
        net_amount=original_amount - fee_amount,
        fee_details=get_fee_details(duration, slot),
    )


def slot_fee_table(duration: int) -> dict[int, float]:
    return {slot: compute_fee_percentage(duration, slot) for slot in range(1, duration + 1)}


def format_currency(amount: float) -> str:
    return f"{amount:,.0f}"
