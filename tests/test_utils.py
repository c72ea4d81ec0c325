from datetime import date

import pytest

import services
import utils


@pytest.mark.parametrize(
    "start, months, expected",
    [
        (date(2025, 1, 31), 1, date(2025, 2, 28)),
        (date(2024, 1, 31), 1, date(2024, 2, 29)),
        (date(2025, 11, 15), 3, date(2026, 2, 15)),
        (date(2025, 12, 1), 1, date(2026, 1, 1)),
        (date(2025, 5, 10), 0, date(2025, 5, 10)),
    ],
)
def test_add_months(start, months, expected):
    assert utils.add_months(start, months) == expected


def test_payout_schedule_date():
    assert utils.payout_schedule_date("2025-01-31", 1) == "2025-01-31"
    assert utils.payout_schedule_date("2025-01-31", 2) == "2025-02-28"
    assert utils.committee_end_date("2025-01-01", 10) == "2025-11-01"


def test_validate_committee_inputs():
    assert utils.validate_committee_inputs("Office pool", "10000", 10, 10, "2025-01-01") == []
    errors = utils.validate_committee_inputs("Office pool", "abc", 101, 10, "2025-01-01", "closed")
    assert "Monthly amount must be numeric." in errors
    assert "Member count must be between 5 and 100." in errors
    assert any(e.startswith("Status must be one of") for e in errors)


def test_validate_signup_inputs():
    assert utils.validate_signup_inputs("ali_k", "Ali Khan", "secret1", "secret1") == []
    errors = utils.validate_signup_inputs("a", "", "123", "456")
    assert len(errors) == 4


class FakeUpload:
    def __init__(self, name: str, data: bytes):
        self.name = name
        self._data = data

    def getbuffer(self):
        return memoryview(self._data)


def test_save_upload_writes_under_upload_dir(database, tmp_path):
    path = utils.save_upload(FakeUpload("../../bank receipt.png", b"PNGDATA"), "payments")
    saved = tmp_path / "uploads" / "payments"
    assert path.startswith(str(saved))
    assert path.endswith("_bank_receipt.png")
    with open(path, "rb") as fh:
        assert fh.read() == b"PNGDATA"


def test_reports_empty(database):
    assert list(utils.payouts_summary_by_month().columns) == ["month", "payouts", "gross", "fees", "net"]
    assert utils.fee_income_by_committee().empty
    assert utils.collections_by_committee().empty


def test_reports_with_payouts(committee10, admin_id, make_member):
    for slot in (1, 3, 5):
        uid = make_member(f"M{slot}")
        req = services.create_join_request(uid, committee10, slot)
        services.approve_join_request(req, admin_id)

    income = utils.fee_income_by_committee()
    assert income.loc[0, "payouts"] == 3
    # 10% of 50000 + 7.5% of 50000
    assert income.loc[0, "fee_income"] == pytest.approx(8750)

    monthly = utils.payouts_summary_by_month()
    assert set(monthly["month"]) == {"2025-01", "2025-03", "2025-05"}
    assert monthly["fees"].sum() == pytest.approx(8750)

    csv = utils.rows_to_csv_bytes(services.list_payouts()).decode("utf-8")
    assert csv.splitlines()[0].startswith("id,committee_id,user_id,slot_number")
    assert len(csv.splitlines()) == 4
