import pytest

import fees


@pytest.mark.parametrize(
    "duration, slot, expected",
    [
        (5, 1, 0.10),
        (5, 2, 0.10),
        (5, 3, 0.0),
        (5, 5, 0.0),
        (10, 1, 0.10),
        (10, 2, 0.10),
        (10, 3, 0.075),
        (10, 4, 0.075),
        (10, 5, 0.0),
        (10, 10, 0.0),
    ],
)
def test_fee_table(duration, slot, expected):
    assert fees.compute_fee_percentage(duration, slot) == expected


def test_unknown_duration_or_slot_has_no_fee():
    assert fees.compute_fee_percentage(7, 1) == 0
    assert fees.compute_fee_percentage(12, 2) == 0
    assert fees.compute_fee_percentage(5, 0) == 0
    assert fees.compute_fee_percentage(10, -3) == 0
    assert fees.compute_fee_percentage(10, 99) == 0


def test_fee_always_below_one():
    for duration in range(0, 25):
        for slot in range(-2, 30):
            assert 0 <= fees.compute_fee_percentage(duration, slot) < 1


def test_fee_details_none_without_fee():
    for duration in (1, 5, 7, 10, 12):
        for slot in range(1, duration + 2):
            details = fees.get_fee_details(duration, slot)
            pct = fees.compute_fee_percentage(duration, slot)
            if pct == 0:
                assert details is None
            else:
                assert details.percentage == pct


def test_fee_details_reason_mentions_slot_and_duration():
    details = fees.get_fee_details(10, 3)
    assert details.percentage == 0.075
    assert details.reason == "Early payout fee for slot 3 in a 10-month committee."


def test_origination_fee():
    assert fees.compute_committee_origination_fee(100000, 5) == pytest.approx(1000)
    assert fees.compute_committee_origination_fee(100000, 3) == pytest.approx(1000)
    assert fees.compute_committee_origination_fee(100000, 10) == pytest.approx(2000)
    assert fees.compute_committee_origination_fee(100000, 6) == pytest.approx(2000)


def test_monthly_contribution_and_total_payable():
    # 50000/5 + 50000*0.10 + 50000*0.01
    assert fees.calculate_monthly_contribution(50000, 5, 1) == pytest.approx(15500)
    # no early fee at slot 5
    assert fees.calculate_monthly_contribution(50000, 5, 5) == pytest.approx(10500)
    assert fees.get_total_payable_amount(50000, 5, 5) == pytest.approx(52500)


def test_split_payout_applies_fee():
    b = fees.split_payout(50000, 10, 3)
    assert b.fee_percentage == 0.075
    assert b.fee_amount == pytest.approx(3750)
    assert b.net_amount == pytest.approx(46250)
    assert b.net_amount == pytest.approx(b.original_amount - b.fee_amount)
    assert b.fee_details is not None


def test_split_payout_without_fee():
    b = fees.split_payout(50000, 7, 1)
    assert b.fee_amount == 0
    assert b.net_amount == 50000
    assert b.fee_details is None


def test_slot_fee_table():
    assert fees.slot_fee_table(5) == {1: 0.10, 2: 0.10, 3: 0.0, 4: 0.0, 5: 0.0}
    assert len(fees.slot_fee_table(10)) == 10


def test_format_currency():
    assert fees.format_currency(1234567) == "1,234,567"
    assert fees.format_currency(999.6) == "1,000"
