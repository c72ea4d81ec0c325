from types import SimpleNamespace

import fees
import slots
from models import CommitteeTerms, PayoutSlotAssignment, SlotHolder


def holders(*pairs):
    return [SlotHolder(user_id=u, slot_number=s) for u, s in pairs]


def test_empty_committee_has_all_slots_free():
    result = slots.validate_slots(CommitteeTerms(duration=7), [])
    assert result.is_valid
    assert result.conflicts == []
    assert result.occupied_slots == []
    assert result.available_slots == [1, 2, 3, 4, 5, 6, 7]


def test_occupied_and_available_slots():
    committee = CommitteeTerms(duration=10)
    result = slots.validate_slots(committee, holders(("A", 1), ("B", 3)))
    assert result.is_valid
    assert result.occupied_slots == [1, 3]
    assert result.available_slots == [2, 4, 5, 6, 7, 8, 9, 10]
    assert fees.compute_fee_percentage(committee.duration, 2) == 0.10
    assert fees.compute_fee_percentage(committee.duration, 5) == 0


def test_payouts_without_slot_are_ignored():
    result = slots.validate_slots(CommitteeTerms(duration=3), holders(("A", None), ("B", 2)))
    assert result.occupied_slots == [2]
    assert result.available_slots == [1, 3]


def test_shared_slot_is_a_conflict():
    result = slots.validate_slots(CommitteeTerms(duration=5), holders(("A", 1), ("B", 1)))
    assert not result.is_valid
    assert result.conflicts == ["Slot 1 is assigned to multiple users: A, B"]
    assert result.occupied_slots == [1]
    assert result.available_slots == [2, 3, 4, 5]


def test_same_user_twice_on_a_slot_is_not_a_conflict():
    result = slots.validate_slots(CommitteeTerms(duration=5), holders(("A", 2), ("A", 2)))
    assert result.is_valid
    assert result.conflicts == []


def test_several_conflicts_are_reported():
    result = slots.validate_slots(
        CommitteeTerms(duration=5), holders(("A", 2), ("B", 2), ("C", 2), ("D", 4), ("E", 4))
    )
    assert not result.is_valid
    assert len(result.conflicts) == 2
    assert "Slot 2" in result.conflicts[0] and "A, B, C" in result.conflicts[0]
    assert "Slot 4" in result.conflicts[1] and "D, E" in result.conflicts[1]


def test_slot_out_of_range():
    committee = CommitteeTerms(duration=5)
    for slot in (0, -1, 6):
        check = slots.is_slot_available(committee, [], slot)
        assert not check.available
        assert check.reason == "Slot must be between 1 and 5"


def test_own_slot_is_available_to_its_holder():
    committee = CommitteeTerms(duration=5)
    payouts = holders(("A", 2))
    assert slots.is_slot_available(committee, payouts, 2, "A").available
    taken = slots.is_slot_available(committee, payouts, 2, "B")
    assert not taken.available
    assert taken.reason == "Slot 2 is already assigned to another user"
    assert not slots.is_slot_available(committee, payouts, 2).available
    assert slots.is_slot_available(committee, payouts, 3, "B").available


def test_next_available_slot_is_the_smallest_free_one():
    committee = CommitteeTerms(duration=5)
    assert slots.get_next_available_slot(committee, []) == 1
    assert slots.get_next_available_slot(committee, holders(("A", 1), ("B", 2), ("C", 4))) == 3


def test_next_available_slot_when_full_is_out_of_range():
    assignments = tuple(PayoutSlotAssignment(u, s) for u, s in (("A", 1), ("B", 2), ("C", 3)))
    committee = CommitteeTerms(duration=3, payout_slots=assignments)
    payouts = holders(("A", 1), ("B", 2), ("C", 3))
    assert slots.get_next_available_slot(committee, payouts) == 4
    assert slots.get_next_available_slot(CommitteeTerms(duration=3), payouts) == 1


def test_preferred_slot_valid():
    result = slots.validate_preferred_slot(CommitteeTerms(duration=5), holders(("A", 1)), 2, "B")
    assert result.valid
    assert result.reason is None
    assert result.suggested_slot is None


def test_preferred_slot_taken_gets_a_suggestion():
    result = slots.validate_preferred_slot(CommitteeTerms(duration=5), holders(("A", 1), ("C", 2)), 1, "B")
    assert not result.valid
    assert result.reason == "Slot 1 is already assigned to another user"
    assert result.suggested_slot == 3


def test_preferred_slot_out_of_range_gets_a_suggestion():
    result = slots.validate_preferred_slot(CommitteeTerms(duration=5), [], 9, "B")
    assert not result.valid
    assert result.suggested_slot == 1


def test_slot_summary():
    summary = slots.get_slot_summary(CommitteeTerms(duration=10), holders(("A", 1), ("B", 3)))
    assert summary.total_slots == 10
    assert summary.occupied_slots == 2
    assert summary.available_slots == 8
    assert summary.percentage_occupied == 20.0


def test_slot_options_carry_fees():
    options = slots.slot_options(CommitteeTerms(duration=5), holders(("A", 1)))
    assert [s for s, _ in options] == [2, 3, 4, 5]
    assert options[0][1].percentage == 0.10
    assert options[1][1] is None


def test_works_with_any_object_with_the_right_attributes():
    class Committee:
        duration = 4
        payout_slots = None

    class Payout:
        def __init__(self, user_id, slot_number):
            self.user_id = user_id
            self.slot_number = slot_number

    payouts = [Payout(1, 1), Payout(2, 2), Payout(3, 3), Payout(4, 4)]
    assert slots.validate_slots(Committee(), payouts).available_slots == []
    assert slots.get_next_available_slot(Committee(), payouts) == 1


def test_full_committee_with_duration_only():
    committee = SimpleNamespace(duration=2)
    taken = holders(("A", 1), ("B", 2))
    assert slots.get_next_available_slot(committee, taken) == 1
    result = slots.validate_preferred_slot(committee, taken, 1, "C")
    assert not result.valid
    assert result.reason == "Slot 1 is already assigned to another user"
    assert result.suggested_slot == 1
