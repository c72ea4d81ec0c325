"""
slots.py
Payout slot occupancy, conflict detection and slot suggestions.

Every function recomputes from the committee and the payouts it is given.
A committee needs only `duration`; `payout_slots` is read when present, for
the full-committee fallback. A payout needs `user_id` and `slot_number`,
which may be None.
Nothing here raises: problems are reported in the returned values.
"""

from __future__ import annotations

from fees import get_fee_details
from models import (
    FeeDetails,
    PreferredSlotResult,
    SlotCheck,
    SlotSummary,
    SlotValidationResult,
)


def validate_slots(committee, payouts) -> SlotValidationResult:
    result = SlotValidationResult()

    holders: dict[int, list[str]] = {}
    for payout in payouts:
        if payout.slot_number is None:
            continue
        users = holders.setdefault(payout.slot_number, [])
        if payout.user_id not in users:
            users.append(payout.user_id)

    result.occupied_slots = sorted(holders)

    for slot_number, users in holders.items():
        if len(users) > 1:
            result.is_valid = False
            result.conflicts.append(
                f"Slot {slot_number} is assigned to multiple users: {', '.join(str(u) for u in users)}"
            )

    result.available_slots = [
        s for s in range(1, committee.duration + 1) if s not in holders
    ]
    return result


def is_slot_available(committee, payouts, slot: int, requesting_user_id=None) -> SlotCheck:
    if slot < 1 or slot > committee.duration:
        return SlotCheck(False, f"Slot must be between 1 and {committee.duration}")

    existing = next((p for p in payouts if p.slot_number == slot), None)
    if existing is not None:
        # a member may keep the slot they already hold
        if requesting_user_id is not None and existing.user_id == requesting_user_id:
            return SlotCheck(True)
        return SlotCheck(False, f"Slot {slot} is already assigned to another user")

    return SlotCheck(True)


def get_next_available_slot(committee, payouts) -> int:
    validation = validate_slots(committee, payouts)
    if validation.available_slots:
        return validation.available_slots[0]
    # Fully allocated: one past the assignment count, which is out of range.
    return len(getattr(committee, "payout_slots", None) or ()) + 1


def validate_preferred_slot(committee, payouts, preferred_slot: int, user_id) -> PreferredSlotResult:
    check = is_slot_available(committee, payouts, preferred_slot, user_id)
    if check.available:
        return PreferredSlotResult(valid=True)

    return PreferredSlotResult(
        valid=False,
        reason=check.reason,
        suggested_slot=get_next_available_slot(committee, payouts),
    )


def get_slot_summary(committee, payouts) -> SlotSummary:
    validation = validate_slots(committee, payouts)
    occupied = len(validation.occupied_slots)
    return SlotSummary(
        total_slots=committee.duration,
        occupied_slots=occupied,
        available_slots=len(validation.available_slots),
        percentage_occupied=occupied / committee.duration * 100,
    )


def slot_options(committee, payouts) -> list[tuple[int, FeeDetails | None]]:
    """Free slots with the fee each would carry, for slot pickers."""
    validation = validate_slots(committee, payouts)
    return [(s, get_fee_details(committee.duration, s)) for s in validation.available_slots]
