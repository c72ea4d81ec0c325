import pytest

import db
import services
from services import (
    NotFoundError,
    SlotUnavailableError,
    ValidationError,
    VerificationRequiredError,
)


def notifications_of(user_id, type_):
    return [n for n in services.user_notifications(user_id) if n["type"] == type_]


def join(user_id, committee_id, slot, admin_id):
    request_id = services.create_join_request(user_id, committee_id, slot)
    return services.approve_join_request(request_id, admin_id)


def test_create_committee_validates(admin_id):
    with pytest.raises(ValidationError) as exc:
        services.create_committee("", 0, 3, 0, "not-a-date", admin_id)
    assert len(exc.value.errors) == 5


def test_available_committees_excludes_full_and_joined(committee5, admin_id, make_member):
    users = [make_member(f"M{i}") for i in range(5)]
    assert [c["id"] for c in services.available_committees()] == [committee5]
    join(users[0], committee5, 1, admin_id)
    assert services.available_committees(users[0]) == []
    assert [c["id"] for c in services.available_committees(users[1])] == [committee5]
    for i, uid in enumerate(users[1:], start=2):
        join(uid, committee5, i, admin_id)
    assert services.available_committees() == []


def test_unverified_member_cannot_request(committee10, make_member):
    user_id = make_member("Nadia", verified=False)
    with pytest.raises(VerificationRequiredError):
        services.create_join_request(user_id, committee10, 1)


def test_duplicate_pending_request_rejected(committee10, make_member):
    user_id = make_member()
    services.create_join_request(user_id, committee10, 2)
    with pytest.raises(ValidationError):
        services.create_join_request(user_id, committee10, 3)


def test_request_with_taken_slot_suggests_next(committee10, admin_id, make_member):
    a, b = make_member("A"), make_member("B")
    join(a, committee10, 1, admin_id)
    with pytest.raises(SlotUnavailableError) as exc:
        services.create_join_request(b, committee10, 1)
    assert exc.value.suggested_slot == 2
    assert "already assigned" in exc.value.reason


def test_approve_creates_member_and_payout(committee10, admin_id, make_member):
    user_id = make_member("Amna")
    request_id = services.create_join_request(user_id, committee10, 3)
    payout_id = services.approve_join_request(request_id, admin_id)

    assert services.is_member(committee10, user_id)
    payout = db.fetch_one("SELECT * FROM payouts WHERE id = ?", (payout_id,))
    assert payout["slot_number"] == 3
    assert payout["status"] == "pending"
    assert payout["original_amount"] == pytest.approx(50000)
    assert payout["fee_percentage"] == pytest.approx(0.075)
    assert payout["fee_amount"] == pytest.approx(3750)
    assert payout["amount"] == pytest.approx(payout["original_amount"] - payout["fee_amount"])
    assert payout["scheduled_date"] == "2025-03-01"
    assert payout["fee_reason"] == "Early payout fee for slot 3 in a 10-month committee."

    request = db.fetch_one("SELECT * FROM join_requests WHERE id = ?", (request_id,))
    assert request["status"] == "approved"
    assert request["reviewed_by"] == admin_id
    assert notifications_of(user_id, "committee_joined")
    assert notifications_of(user_id, "payout_scheduled")


def test_approve_without_preference_takes_next_free_slot(committee10, admin_id, make_member):
    a, b = make_member("A"), make_member("B")
    join(a, committee10, 1, admin_id)
    request_id = services.create_join_request(b, committee10)
    payout_id = services.approve_join_request(request_id, admin_id)
    assert db.fetch_one("SELECT slot_number FROM payouts WHERE id = ?", (payout_id,))["slot_number"] == 2


def test_approve_with_slot_taken_since_request(committee10, admin_id, make_member):
    a, b = make_member("A"), make_member("B")
    req_a = services.create_join_request(a, committee10, 1)
    req_b = services.create_join_request(b, committee10, 1)
    services.approve_join_request(req_a, admin_id)

    with pytest.raises(SlotUnavailableError) as exc:
        services.approve_join_request(req_b, admin_id)
    assert exc.value.suggested_slot == 2
    assert not services.is_member(committee10, b)

    services.approve_join_request(req_b, admin_id, slot=exc.value.suggested_slot)
    assert services.validate_committee_slots(committee10).occupied_slots == [1, 2]


def test_reserving_a_taken_slot_fails_atomically(committee10, admin_id, make_member):
    a, b = make_member("A"), make_member("B")
    join(a, committee10, 4, admin_id)
    record = {
        "committee_id": committee10,
        "user_id": b,
        "slot_number": 4,
        "original_amount": 1000.0,
        "fee_amount": 0.0,
        "amount": 1000.0,
        "status": "pending",
        "created_at": db.now_iso(),
    }
    with pytest.raises(db.SlotTakenError):
        db.reserve_payout(record)
    assert len(services.committee_payouts(committee10)) == 1


def test_second_payout_for_same_member_is_refused(committee10, admin_id, make_member):
    a = make_member("A")
    join(a, committee10, 1, admin_id)
    with pytest.raises(ValidationError):
        services.create_payout(committee10, a, 1000, admin_id, slot=5)


def test_reject_join_request(committee10, admin_id, make_member):
    user_id = make_member()
    request_id = services.create_join_request(user_id, committee10, 1)
    services.reject_join_request(request_id, admin_id, "Committee reserved")
    assert db.fetch_one("SELECT status FROM join_requests WHERE id = ?", (request_id,))["status"] == "rejected"
    msg = notifications_of(user_id, "committee_joined")[0]["message"]
    assert msg == "Your committee request was rejected: Committee reserved"
    with pytest.raises(ValidationError):
        services.approve_join_request(request_id, admin_id)


def test_missing_join_request(database, admin_id):
    with pytest.raises(NotFoundError):
        services.approve_join_request(999, admin_id)


def test_committee_terms_are_derived_from_payouts(committee5, admin_id, make_member):
    users = [make_member(f"M{i}") for i in range(5)]
    for slot, uid in enumerate(users, start=1):
        join(uid, committee5, slot, admin_id)
    terms = services.committee_terms(committee5)
    assert terms.duration == 5
    assert [a.slot_number for a in terms.payout_slots] == [1, 2, 3, 4, 5]
    summary = services.committee_slot_summary(committee5)
    assert summary.percentage_occupied == 100.0
    with pytest.raises(SlotUnavailableError) as exc:
        services.quote_payout(committee5)
    assert exc.value.suggested_slot is None


def test_quote_payout_is_a_dry_run(committee5):
    slot, breakdown = services.quote_payout(committee5)
    assert slot == 1
    assert breakdown.original_amount == pytest.approx(50000)
    assert breakdown.fee_amount == pytest.approx(5000)
    assert breakdown.net_amount == pytest.approx(45000)
    assert services.committee_payouts(committee5) == []


def test_manual_payout_and_completion(committee10, admin_id, make_member):
    user_id = make_member("Bilal")
    db.execute(
        "INSERT INTO committee_members(committee_id, user_id, joined_at) VALUES(?,?,?)",
        (committee10, user_id, db.now_iso()),
    )
    payout_id = services.create_payout(committee10, user_id, 40000, admin_id, slot=2)
    payout = db.fetch_one("SELECT * FROM payouts WHERE id = ?", (payout_id,))
    assert payout["fee_amount"] == pytest.approx(4000)
    assert payout["amount"] == pytest.approx(36000)
    assert "Early payout fee" in notifications_of(user_id, "payout_scheduled")[0]["message"]

    services.complete_payout(payout_id)
    payout = db.fetch_one("SELECT * FROM payouts WHERE id = ?", (payout_id,))
    assert payout["status"] == "completed"
    assert payout["completed_date"]
    assert notifications_of(user_id, "payout_received")
    with pytest.raises(ValidationError):
        services.complete_payout(payout_id)


def test_payout_requires_membership(committee10, admin_id, make_member):
    with pytest.raises(ValidationError):
        services.create_payout(committee10, make_member(), 1000, admin_id)


def test_payment_review(committee10, admin_id, make_member):
    user_id = make_member()
    join(user_id, committee10, 6, admin_id)
    p1 = services.submit_payment(user_id, committee10, 5000)
    p2 = services.submit_payment(user_id, committee10, 5000, remarks="second")

    assert [p["id"] for p in services.list_payments("pending")] == [p2, p1]

    services.approve_payment(p1, admin_id)
    with pytest.raises(ValidationError):
        services.reject_payment(p2, admin_id, "  ")
    services.reject_payment(p2, admin_id, "Receipt unreadable")

    statuses = {p["id"]: p["status"] for p in services.user_payments(user_id)}
    assert statuses == {p1: "approved", p2: "rejected"}
    assert notifications_of(user_id, "payment_approved")
    assert "Receipt unreadable" in notifications_of(user_id, "payment_rejected")[0]["message"]
    with pytest.raises(ValidationError):
        services.approve_payment(p2, admin_id)
    assert services.user_stats(user_id)["paid"] == pytest.approx(5000)


def test_payment_requires_membership_and_amount(committee10, make_member):
    user_id = make_member()
    with pytest.raises(ValidationError):
        services.submit_payment(user_id, committee10, 5000)
    with pytest.raises(ValidationError):
        services.submit_payment(user_id, committee10, "-5")


ID_DOCS = {
    "cnic_front": "uploads/documents/front.png",
    "cnic_back": "uploads/documents/back.png",
    "bank_statement": "uploads/documents/statement.pdf",
}

GUARANTORS = [
    {"full_name": "Imran Ali", "phone_number": "03001112222", "cnic_number": "35202-1111111-1", "relationship": "Brother"},
    {"full_name": "Hina Khan", "phone_number": "03003334444", "cnic_number": "35202-2222222-2", "relationship": "Colleague",
     "cnic_front_url": "uploads/guarantors/hina_front.png"},
]


def test_verification_flow(database, admin_id, make_member):
    user_id = make_member("Sara", verified=False)
    with pytest.raises(ValidationError) as exc:
        services.submit_verification(user_id, {"cnic_front": "uploads/documents/front.png"})
    assert "Please upload: CNIC back, Bank statement." in exc.value.errors

    services.submit_verification(user_id, ID_DOCS, cnic="35202-7654321-1", phone="03009999999")
    assert services.user_documents(user_id) == ID_DOCS
    assert not services.is_user_verified(user_id)
    assert notifications_of(admin_id, "verification_submitted")
    assert services.admin_stats()["pending_verifications"] == 1

    services.verify_user(user_id, admin_id, approved=True)
    assert services.is_user_verified(user_id)
    assert services.admin_stats()["pending_verifications"] == 0


def test_unknown_document_type_is_rejected(make_member):
    with pytest.raises(ValidationError):
        services.upload_documents(make_member(), {"passport": "uploads/documents/p.png"})


def test_guarantors_need_every_field(make_member):
    user_id = make_member(verified=False)
    incomplete = [dict(GUARANTORS[0]), dict(GUARANTORS[1], relationship=" ")]
    with pytest.raises(ValidationError) as exc:
        services.submit_guarantors(user_id, incomplete)
    assert exc.value.errors == ["Guarantor 2: relationship required."]
    with pytest.raises(ValidationError):
        services.submit_guarantors(user_id, GUARANTORS[:1])
    assert services.user_guarantors(user_id) == []


def test_complete_profile_notifies_admins_once(admin_id, make_member):
    user_id = make_member("Sara", verified=False)
    services.update_profile(user_id, cnic="35202-7654321-1", phone="03009999999")
    services.submit_verification(user_id, ID_DOCS)
    services.submit_guarantors(user_id, GUARANTORS)

    # the utility bill is still missing
    assert not services.is_profile_complete(user_id)
    assert notifications_of(admin_id, "profile_completed") == []

    services.upload_documents(user_id, {"utility_bill": "uploads/documents/bill.png"})
    assert services.is_profile_complete(user_id)
    alerts = notifications_of(admin_id, "profile_completed")
    assert len(alerts) == 1
    assert alerts[0]["message"].startswith("Sara has completed their profile")

    services.submit_guarantors(user_id, GUARANTORS)
    assert len(notifications_of(admin_id, "profile_completed")) == 1
    saved = services.user_guarantors(user_id)
    assert [g["full_name"] for g in saved] == ["Imran Ali", "Hina Khan"]
    assert saved[1]["cnic_front_url"] == "uploads/guarantors/hina_front.png"
    assert services.get_user(user_id)["guarantors_submitted"] == 1


def test_payment_reminders_go_to_members_behind(committee10, admin_id, make_member):
    paid, behind, pending = make_member("Paid"), make_member("Behind"), make_member("Pending")
    for slot, uid in enumerate((paid, behind, pending), start=1):
        join(uid, committee10, slot, admin_id)
    services.approve_payment(services.submit_payment(paid, committee10, 5000), admin_id)
    services.submit_payment(pending, committee10, 5000)
    services.submit_payment(behind, committee10, 2000)

    dues = services.members_with_dues(committee10)
    assert [(r["id"], r["outstanding"]) for r in dues] == [(behind, 3000)]

    assert services.send_payment_reminders(committee10) == 1
    reminder = notifications_of(behind, "payment_due")[0]
    assert "round 1" in reminder["message"]
    assert notifications_of(paid, "payment_due") == []

    services.update_committee(committee10, current_round=2)
    assert {r["id"] for r in services.members_with_dues(committee10)} == {paid, behind, pending}


def test_payment_reminders_need_active_committee(committee10, admin_id):
    services.update_committee(committee10, status="completed")
    with pytest.raises(ValidationError):
        services.send_payment_reminders(committee10)


def test_update_committee_rejects_duration_below_assigned_slot(committee10, admin_id, make_member):
    join(make_member(), committee10, 8, admin_id)
    with pytest.raises(ValidationError):
        services.update_committee(committee10, duration=5)
    services.update_committee(committee10, status="completed", current_round=3)
    committee = services.get_committee(committee10)
    assert committee["status"] == "completed"
    assert committee["current_round"] == 3


def test_delete_committee_cascades(committee10, admin_id, make_member):
    user_id = make_member()
    join(user_id, committee10, 1, admin_id)
    services.delete_committee(committee10)
    assert services.user_payouts(user_id) == []
    assert services.user_committees(user_id) == []
    with pytest.raises(NotFoundError):
        services.get_committee(committee10)


def test_notifications_read_state(committee10, admin_id, make_member):
    user_id = make_member()
    join(user_id, committee10, 1, admin_id)
    assert services.unread_count(user_id) == 2
    first = services.user_notifications(user_id)[0]
    services.mark_notification_read(first["id"])
    assert services.unread_count(user_id) == 1
    services.mark_all_read(user_id)
    assert services.unread_count(user_id) == 0


def test_insert_sample_data(admin_id):
    services.insert_sample_data(admin_id, "x")
    assert services.admin_stats()["total_committees"] == 2
    assert len(services.list_join_requests("pending")) == 1
    assert len(services.list_payouts()) == 3
    for c in services.list_committees():
        assert services.validate_committee_slots(c["id"]).is_valid


def test_notify_rejects_unknown_type(make_member):
    with pytest.raises(ValidationError):
        services.notify(make_member(), "Hello", "Message", "party_invite")


def test_delete_join_request(committee10, admin_id, make_member):
    user_id = make_member()
    request_id = services.create_join_request(user_id, committee10, 2)
    services.reject_join_request(request_id, admin_id)
    services.delete_join_request(request_id)
    assert services.user_join_requests(user_id) == []
    with pytest.raises(NotFoundError):
        services.delete_join_request(request_id)
