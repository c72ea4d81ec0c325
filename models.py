"""
models.py
Lightweight domain helpers (statuses, dataclasses).
"""

from __future__ import annotations
from dataclasses import dataclass, field

# Committee capacity bounds
MIN_MEMBERS = 5
MAX_MEMBERS = 100

# Durations offered in the committee form (months)
COMMITTEE_DURATIONS = [5, 10]

COMMITTEE_STATUSES = ("pending", "active", "completed")
REQUEST_STATUSES = ("pending", "approved", "rejected")
PAYMENT_STATUSES = ("pending", "approved", "rejected")
PAYOUT_STATUSES = ("pending", "completed")

NOTIFICATION_TYPES = (
    "payment_due",
    "payment_approved",
    "payment_rejected",
    "payout_scheduled",
    "payout_received",
    "committee_joined",
    "verification_submitted",
    "profile_completed",
)

# Verification document types and their labels
DOCUMENT_TYPES = {
    "cnic_front": "CNIC front",
    "cnic_back": "CNIC back",
    "bank_statement": "Bank statement",
    "salary_slip": "Salary slip",
    "utility_bill": "Utility bill",
}
# Needed to submit for verification
REQUIRED_DOCUMENTS = ("cnic_front", "cnic_back", "bank_statement")
# Needed, together with the guarantors, for a complete profile
PROFILE_DOCUMENTS = ("cnic_front", "cnic_back", "bank_statement", "utility_bill")

GUARANTOR_FIELDS = ("full_name", "phone_number", "cnic_number", "relationship")
MIN_GUARANTORS = 2


@dataclass(frozen=True)
class PayoutSlotAssignment:
    user_id: str
    slot_number: int
    is_confirmed: bool = False


@dataclass(frozen=True)
class CommitteeTerms:
    """Only the committee fields the slot logic reads."""
    duration: int
    payout_slots: tuple[PayoutSlotAssignment, ...] = ()


@dataclass(frozen=True)
class SlotHolder:
    user_id: str
    slot_number: int | None


@dataclass(frozen=True)
class FeeDetails:
    percentage: float
    reason: str


@dataclass(frozen=True)
class PayoutBreakdown:
    original_amount: float
    fee_percentage: float
    fee_amount: float
    net_amount: float
    fee_details: FeeDetails | None


@dataclass
class SlotValidationResult:
    is_valid: bool = True
    conflicts: list[str] = field(default_factory=list)
    available_slots: list[int] = field(default_factory=list)
    occupied_slots: list[int] = field(default_factory=list)


@dataclass(frozen=True)
class SlotCheck:
    available: bool
    reason: str | None = None


@dataclass(frozen=True)
class PreferredSlotResult:
    valid: bool
    reason: str | None = None
    suggested_slot: int | None = None


@dataclass(frozen=True)
class SlotSummary:
    total_slots: int
    occupied_slots: int
    available_slots: int
    percentage_occupied: float
