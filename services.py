"""
services.py
Committee workflows: committees, join requests, payments, payouts,
notifications and member verification.

Every operation raises a ServiceError subclass when it cannot go ahead;
app.py turns those into st.error messages.
"""

from __future__ import annotations

import logging
import sqlite3
from datetime import date

import db
import fees
import slots
import utils
from config import settings
from models import (
    DOCUMENT_TYPES,
    GUARANTOR_FIELDS,
    MIN_GUARANTORS,
    NOTIFICATION_TYPES,
    PROFILE_DOCUMENTS,
    REQUIRED_DOCUMENTS,
    CommitteeTerms,
    PayoutBreakdown,
    PayoutSlotAssignment,
    SlotHolder,
    SlotSummary,
    SlotValidationResult,
)

logger = logging.getLogger(__name__)


class ServiceError(Exception):
    pass


class NotFoundError(ServiceError):
    pass


class ValidationError(ServiceError):
    def __init__(self, errors: list[str] | str):
        if isinstance(errors, str):
            errors = [errors]
        super().__init__(" ".join(errors))
        self.errors = errors


class VerificationRequiredError(ServiceError):
    pass


class SlotUnavailableError(ServiceError):
    def __init__(self, reason: str, suggested_slot: int | None = None):
        super().__init__(reason)
        self.reason = reason
        self.suggested_slot = suggested_slot


def _money(amount: float) -> str:
    return f"{settings.currency} {fees.format_currency(amount)}"


# ---------- Notifications ----------

def notify(user_id: int, title: str, message: str, type_: str, conn: sqlite3.Connection | None = None) -> int:
    if type_ not in NOTIFICATION_TYPES:
        raise ValidationError(f"Unknown notification type: {type_}")
    return db.execute(
        "INSERT INTO notifications(user_id, title, message, type, read, created_at) VALUES(?,?,?,?,0,?)",
        (user_id, title, message, type_, db.now_iso()),
        conn=conn,
    )


def user_notifications(user_id: int) -> list[sqlite3.Row]:
    return db.fetch_all(
        "SELECT * FROM notifications WHERE user_id = ? ORDER BY created_at DESC, id DESC",
        (user_id,),
    )


def unread_count(user_id: int) -> int:
    return db.fetch_one(
        "SELECT COUNT(*) AS c FROM notifications WHERE user_id = ? AND read = 0", (user_id,)
    )["c"]


def mark_notification_read(notification_id: int) -> None:
    db.execute("UPDATE notifications SET read = 1 WHERE id = ?", (notification_id,))


def mark_all_read(user_id: int) -> None:
    db.execute("UPDATE notifications SET read = 1 WHERE user_id = ?", (user_id,))


# ---------- Users & verification ----------

PROFILE_FIELDS = (
    "full_name", "email", "phone", "cnic", "address", "city",
    "bank_name", "account_number", "account_holder",
)


def get_user(user_id: int) -> sqlite3.Row:
    user = db.fetch_one("SELECT * FROM users WHERE id = ?", (user_id,))
    if not user:
        raise NotFoundError(f"User {user_id} not found.")
    return user


def list_users(role: str | None = None, search: str = "") -> list[sqlite3.Row]:
    sql = "SELECT * FROM users WHERE 1=1"
    params = []
    if role:
        sql += " AND role = ?"
        params.append(role)
    if search.strip():
        sql += " AND (full_name LIKE ? OR username LIKE ? OR phone LIKE ?)"
        like = f"%{search.strip()}%"
        params.extend([like, like, like])
    sql += " ORDER BY created_at DESC, id DESC"
    return db.fetch_all(sql, tuple(params))


def update_profile(user_id: int, **fields) -> None:
    unknown = set(fields) - set(PROFILE_FIELDS)
    if unknown:
        raise ValidationError(f"Unknown profile fields: {', '.join(sorted(unknown))}")
    if not fields:
        return
    get_user(user_id)
    cols = ", ".join(f"{k} = ?" for k in fields)
    values = [(v.strip() or None) if isinstance(v, str) else v for v in fields.values()]
    db.execute(
        f"UPDATE users SET {cols}, updated_at = ? WHERE id = ?",
        (*values, db.now_iso(), user_id),
    )


def _notify_admins(title: str, message: str, type_: str) -> None:
    for admin in list_users(role="admin"):
        notify(admin["id"], title, message, type_)


def user_documents(user_id: int) -> dict[str, str]:
    rows = db.fetch_all("SELECT doc_type, url FROM user_documents WHERE user_id = ?", (user_id,))
    return {r["doc_type"]: r["url"] for r in rows}


def user_guarantors(user_id: int) -> list[sqlite3.Row]:
    return db.fetch_all("SELECT * FROM guarantors WHERE user_id = ? ORDER BY id", (user_id,))


def is_profile_complete(user_id: int) -> bool:
    """Submitted documents and guarantors, with every document a reviewer needs."""
    user = get_user(user_id)
    if not (user["documents_submitted"] and user["guarantors_submitted"]):
        return False
    docs = user_documents(user_id)
    if any(d not in docs for d in PROFILE_DOCUMENTS):
        return False
    return len(user_guarantors(user_id)) >= MIN_GUARANTORS


def _check_documents(documents: dict) -> dict[str, str]:
    documents = {k: v for k, v in (documents or {}).items() if v}
    unknown = set(documents) - set(DOCUMENT_TYPES)
    if unknown:
        raise ValidationError(f"Unknown document types: {', '.join(sorted(unknown))}")
    return documents


def _save_documents(user_id: int, documents: dict[str, str], conn: sqlite3.Connection) -> None:
    now = db.now_iso()
    for doc_type, url in documents.items():
        db.execute(
            """
            INSERT INTO user_documents(user_id, doc_type, url, uploaded_at) VALUES(?,?,?,?)
            ON CONFLICT(user_id, doc_type) DO UPDATE SET url=excluded.url, uploaded_at=excluded.uploaded_at
            """,
            (user_id, doc_type, url, now),
            conn=conn,
        )


def _announce_if_completed(user_id: int, was_complete: bool) -> None:
    if was_complete or not is_profile_complete(user_id):
        return
    user = get_user(user_id)
    _notify_admins(
        "Profile Completion Alert",
        f"{user['full_name']} has completed their profile with all required documents "
        "and guarantor details. Ready for verification.",
        "profile_completed",
    )
    logger.info("User %s completed their verification profile", user_id)


def upload_documents(user_id: int, documents: dict[str, str]) -> None:
    """Store documents without (re)submitting; e.g. a utility bill added later."""
    documents = _check_documents(documents)
    get_user(user_id)
    if not documents:
        return
    was_complete = is_profile_complete(user_id)
    with db.get_conn() as conn:
        _save_documents(user_id, documents, conn)
    _announce_if_completed(user_id, was_complete)


def submit_verification(user_id: int, documents: dict[str, str] | None = None, **profile) -> None:
    """Member sends profile details and identity documents for review."""
    documents = _check_documents(documents)
    user = get_user(user_id)
    was_complete = is_profile_complete(user_id)
    if profile:
        update_profile(user_id, **profile)
        user = get_user(user_id)
    errors = []
    if not (user["cnic"] or "").strip():
        errors.append("National ID (CNIC) is required for verification.")
    if not (user["phone"] or "").strip():
        errors.append("Phone is required for verification.")
    have = set(user_documents(user_id)) | set(documents)
    missing = [DOCUMENT_TYPES[d] for d in REQUIRED_DOCUMENTS if d not in have]
    if missing:
        errors.append(f"Please upload: {', '.join(missing)}.")
    if errors:
        raise ValidationError(errors)

    now = db.now_iso()
    with db.get_conn() as conn:
        _save_documents(user_id, documents, conn)
        db.execute(
            """
            UPDATE users SET documents_submitted = 1, admin_reviewed = 0, is_verified = 0,
                submitted_at = ?, updated_at = ?
            WHERE id = ?
            """,
            (now, now, user_id),
            conn=conn,
        )
    _notify_admins(
        "New Verification Submission",
        f"{user['full_name']} has submitted documents for verification.",
        "verification_submitted",
    )
    logger.info("User %s submitted verification documents", user_id)
    _announce_if_completed(user_id, was_complete)


def submit_guarantors(user_id: int, guarantors: list[dict]) -> None:
    """Replace the member's guarantor list. Each needs name, phone, CNIC and relationship."""
    get_user(user_id)
    errors = []
    if len(guarantors) < MIN_GUARANTORS:
        errors.append(f"At least {MIN_GUARANTORS} guarantors are required.")
    cleaned = []
    for i, g in enumerate(guarantors, start=1):
        row = {f: (g.get(f) or "").strip() for f in GUARANTOR_FIELDS}
        missing = [f.replace("_", " ") for f in GUARANTOR_FIELDS if not row[f]]
        if missing:
            errors.append(f"Guarantor {i}: {', '.join(missing)} required.")
        row["cnic_front_url"] = g.get("cnic_front_url") or None
        row["cnic_back_url"] = g.get("cnic_back_url") or None
        cleaned.append(row)
    if errors:
        raise ValidationError(errors)

    was_complete = is_profile_complete(user_id)
    now = db.now_iso()
    with db.get_conn() as conn:
        db.execute("DELETE FROM guarantors WHERE user_id = ?", (user_id,), conn=conn)
        for row in cleaned:
            db.execute(
                """
                INSERT INTO guarantors(user_id, full_name, phone_number, cnic_number, relationship,
                                       cnic_front_url, cnic_back_url, created_at)
                VALUES(?,?,?,?,?,?,?,?)
                """,
                (user_id, row["full_name"], row["phone_number"], row["cnic_number"], row["relationship"],
                 row["cnic_front_url"], row["cnic_back_url"], now),
                conn=conn,
            )
        db.execute(
            "UPDATE users SET guarantors_submitted = 1, submitted_at = ?, updated_at = ? WHERE id = ?",
            (now, now, user_id),
            conn=conn,
        )
    logger.info("User %s submitted %d guarantors", user_id, len(cleaned))
    _announce_if_completed(user_id, was_complete)


def verify_user(user_id: int, reviewer_id: int, approved: bool, remarks: str | None = None) -> None:
    user = get_user(user_id)
    if not user["documents_submitted"] and approved:
        raise ValidationError("User has not submitted verification documents.")
    db.execute(
        """
        UPDATE users SET is_verified = ?, admin_reviewed = 1, reviewed_by = ?, reviewed_at = ?,
            verification_remarks = ?, updated_at = ?
        WHERE id = ?
        """,
        (1 if approved else 0, reviewer_id, db.now_iso(), remarks or None, db.now_iso(), user_id),
    )
    if approved:
        notify(user_id, "Profile Verified", "Your profile has been verified. You can now join committees.", "profile_completed")
    else:
        msg = f"Your verification was not approved: {remarks}" if remarks else "Your verification was not approved."
        notify(user_id, "Verification Rejected", msg, "profile_completed")
    logger.info("User %s verification %s by %s", user_id, "approved" if approved else "rejected", reviewer_id)


def is_user_verified(user_id: int) -> bool:
    user = db.fetch_one(
        "SELECT is_verified, admin_reviewed, documents_submitted FROM users WHERE id = ?", (user_id,)
    )
    if not user:
        return False
    return bool(user["is_verified"] and user["admin_reviewed"] and user["documents_submitted"])


# ---------- Committees ----------

COMMITTEE_FIELDS = ("name", "amount", "member_count", "duration", "start_date", "status", "current_round")


def create_committee(name: str, amount, member_count, duration, start_date: str, admin_id: int, status: str = "active") -> int:
    errors = utils.validate_committee_inputs(name, amount, member_count, duration, start_date, status)
    if errors:
        raise ValidationError(errors)
    now = db.now_iso()
    committee_id = db.execute(
        """
        INSERT INTO committees(name, amount, member_count, duration, start_date, status, admin_id,
                               current_round, created_at, updated_at)
        VALUES(?,?,?,?,?,?,?,1,?,?)
        """,
        (name.strip(), float(amount), int(member_count), int(duration), start_date, status, admin_id, now, now),
    )
    logger.info("Committee %s '%s' created (%s months, %s members)", committee_id, name, duration, member_count)
    return committee_id


def update_committee(committee_id: int, **updates) -> None:
    unknown = set(updates) - set(COMMITTEE_FIELDS)
    if unknown:
        raise ValidationError(f"Unknown committee fields: {', '.join(sorted(unknown))}")
    current = dict(get_committee(committee_id))
    merged = {**current, **updates}
    errors = utils.validate_committee_inputs(
        merged["name"], merged["amount"], merged["member_count"], merged["duration"],
        merged["start_date"], merged["status"],
    )
    if errors:
        raise ValidationError(errors)
    if int(merged["duration"]) != current["duration"]:
        taken = [p.slot_number for p in committee_payouts(committee_id)]
        if taken and max(taken) > int(merged["duration"]):
            raise ValidationError("Duration cannot be shorter than an already assigned payout slot.")
    if not updates:
        return
    cols = ", ".join(f"{k} = ?" for k in updates)
    db.execute(
        f"UPDATE committees SET {cols}, updated_at = ? WHERE id = ?",
        (*updates.values(), db.now_iso(), committee_id),
    )


def delete_committee(committee_id: int) -> None:
    get_committee(committee_id)
    db.execute("DELETE FROM committees WHERE id = ?", (committee_id,))
    logger.info("Committee %s deleted", committee_id)


def get_committee(committee_id: int) -> sqlite3.Row:
    row = db.fetch_one("SELECT * FROM committees WHERE id = ?", (committee_id,))
    if not row:
        raise NotFoundError(f"Committee {committee_id} not found.")
    return row


_COMMITTEE_WITH_COUNT = """
    SELECT c.*, (SELECT COUNT(*) FROM committee_members m WHERE m.committee_id = c.id) AS actual_members
    FROM committees c
"""


def list_committees(status: str | None = None) -> list[sqlite3.Row]:
    if status:
        return db.fetch_all(_COMMITTEE_WITH_COUNT + " WHERE c.status = ? ORDER BY c.created_at DESC, c.id DESC", (status,))
    return db.fetch_all(_COMMITTEE_WITH_COUNT + " ORDER BY c.created_at DESC, c.id DESC")


def available_committees(user_id: int | None = None) -> list[sqlite3.Row]:
    """Active committees that still have room, newest first."""
    rows = [r for r in list_committees(status="active") if r["actual_members"] < r["member_count"]]
    if user_id is not None:
        mine = {r["id"] for r in user_committees(user_id)}
        rows = [r for r in rows if r["id"] not in mine]
    logger.debug("available committees: %d", len(rows))
    return rows


def user_committees(user_id: int) -> list[sqlite3.Row]:
    return db.fetch_all(
        _COMMITTEE_WITH_COUNT
        + " JOIN committee_members cm ON cm.committee_id = c.id WHERE cm.user_id = ? ORDER BY c.start_date ASC",
        (user_id,),
    )


def committee_members(committee_id: int) -> list[sqlite3.Row]:
    return db.fetch_all(
        """
        SELECT u.id, u.username, u.full_name, u.phone, cm.joined_at, p.slot_number, p.status AS payout_status
        FROM committee_members cm
        JOIN users u ON u.id = cm.user_id
        LEFT JOIN payouts p ON p.committee_id = cm.committee_id AND p.user_id = cm.user_id
        WHERE cm.committee_id = ?
        ORDER BY p.slot_number IS NULL, p.slot_number ASC, u.full_name ASC
        """,
        (committee_id,),
    )


def is_member(committee_id: int, user_id: int) -> bool:
    return db.fetch_one(
        "SELECT 1 FROM committee_members WHERE committee_id = ? AND user_id = ?", (committee_id, user_id)
    ) is not None


def committee_payouts(committee_id: int) -> list[SlotHolder]:
    rows = db.fetch_all(
        "SELECT user_id, slot_number FROM payouts WHERE committee_id = ? ORDER BY id ASC", (committee_id,)
    )
    return [SlotHolder(user_id=r["user_id"], slot_number=r["slot_number"]) for r in rows]


def committee_terms(committee_id: int) -> CommitteeTerms:
    """Duration plus slot assignments, derived from the committee's payouts."""
    committee = get_committee(committee_id)
    rows = db.fetch_all(
        "SELECT user_id, slot_number, status FROM payouts WHERE committee_id = ? ORDER BY slot_number ASC",
        (committee_id,),
    )
    assignments = tuple(
        PayoutSlotAssignment(r["user_id"], r["slot_number"], r["status"] == "completed") for r in rows
    )
    return CommitteeTerms(duration=committee["duration"], payout_slots=assignments)


def validate_committee_slots(committee_id: int) -> SlotValidationResult:
    return slots.validate_slots(committee_terms(committee_id), committee_payouts(committee_id))


def committee_slot_summary(committee_id: int) -> SlotSummary:
    return slots.get_slot_summary(committee_terms(committee_id), committee_payouts(committee_id))


def committee_slot_options(committee_id: int):
    return slots.slot_options(committee_terms(committee_id), committee_payouts(committee_id))


def pool_amount(committee) -> float:
    """Gross payout of one round: the monthly amount over the committee's duration."""
    return float(committee["amount"]) * int(committee["duration"])


def _check_slot(committee_id: int, slot: int, user_id: int) -> None:
    terms = committee_terms(committee_id)
    result = slots.validate_preferred_slot(terms, committee_payouts(committee_id), slot, user_id)
    if result.valid:
        return
    suggested = result.suggested_slot
    if suggested is not None and suggested > terms.duration:
        raise SlotUnavailableError(f"All {terms.duration} payout slots are already assigned.", None)
    raise SlotUnavailableError(result.reason or f"Slot {slot} is not available.", suggested)


def _next_slot(committee_id: int) -> int:
    terms = committee_terms(committee_id)
    slot = slots.get_next_available_slot(terms, committee_payouts(committee_id))
    if slot > terms.duration:
        raise SlotUnavailableError(f"All {terms.duration} payout slots are already assigned.", None)
    return slot


# ---------- Join requests ----------

def create_join_request(user_id: int, committee_id: int, preferred_slot: int | None = None) -> int:
    if not is_user_verified(user_id):
        raise VerificationRequiredError(
            "User must be verified by admin before joining committees. "
            "Please complete your profile verification first."
        )
    committee = get_committee(committee_id)
    if committee["status"] != "active":
        raise ValidationError("This committee is not accepting members.")
    if is_member(committee_id, user_id):
        raise ValidationError("You are already a member of this committee.")
    pending = db.fetch_one(
        "SELECT id FROM join_requests WHERE user_id = ? AND committee_id = ? AND status = 'pending'",
        (user_id, committee_id),
    )
    if pending:
        raise ValidationError("You already have a pending request for this committee.")
    members = db.fetch_one(
        "SELECT COUNT(*) AS c FROM committee_members WHERE committee_id = ?", (committee_id,)
    )["c"]
    if members >= committee["member_count"]:
        raise ValidationError("This committee is full.")
    if preferred_slot is not None:
        _check_slot(committee_id, preferred_slot, user_id)

    request_id = db.execute(
        """
        INSERT INTO join_requests(user_id, committee_id, preferred_payout_slot, status, requested_at)
        VALUES(?,?,?,'pending',?)
        """,
        (user_id, committee_id, preferred_slot, db.now_iso()),
    )
    logger.info("Join request %s: user %s -> committee %s (slot %s)", request_id, user_id, committee_id, preferred_slot)
    return request_id


_JOIN_REQUEST_SELECT = """
    SELECT r.*, u.full_name, u.username, c.name AS committee_name, c.duration
    FROM join_requests r
    JOIN users u ON u.id = r.user_id
    JOIN committees c ON c.id = r.committee_id
"""


def list_join_requests(status: str | None = None) -> list[sqlite3.Row]:
    if status:
        return db.fetch_all(_JOIN_REQUEST_SELECT + " WHERE r.status = ? ORDER BY r.requested_at DESC, r.id DESC", (status,))
    return db.fetch_all(_JOIN_REQUEST_SELECT + " ORDER BY r.requested_at DESC, r.id DESC")


def user_join_requests(user_id: int) -> list[sqlite3.Row]:
    return db.fetch_all(
        _JOIN_REQUEST_SELECT + " WHERE r.user_id = ? ORDER BY r.requested_at DESC, r.id DESC", (user_id,)
    )


def _get_join_request(request_id: int) -> sqlite3.Row:
    row = db.fetch_one("SELECT * FROM join_requests WHERE id = ?", (request_id,))
    if not row:
        raise NotFoundError("Join request not found")
    return row


def approve_join_request(request_id: int, reviewer_id: int, slot: int | None = None) -> int:
    """
    Add the member and schedule their payout. The slot is the one given, else
    the requested one, else the next free slot. Returns the payout id.
    """
    req = _get_join_request(request_id)
    if req["status"] != "pending":
        raise ValidationError(f"Join request is already {req['status']}.")
    committee = get_committee(req["committee_id"])
    members = db.fetch_one(
        "SELECT COUNT(*) AS c FROM committee_members WHERE committee_id = ?", (committee["id"],)
    )["c"]
    if members >= committee["member_count"]:
        raise ValidationError("This committee is full.")
    if is_member(committee["id"], req["user_id"]):
        raise ValidationError("User is already a member of this committee.")

    slot = slot if slot is not None else req["preferred_payout_slot"]
    if slot is None:
        slot = _next_slot(committee["id"])
    else:
        _check_slot(committee["id"], slot, req["user_id"])

    breakdown = fees.split_payout(pool_amount(committee), committee["duration"], slot)
    now = db.now_iso()
    try:
        with db.get_conn() as conn:
            db.execute(
                "INSERT INTO committee_members(committee_id, user_id, joined_at) VALUES(?,?,?)",
                (committee["id"], req["user_id"], now),
                conn=conn,
            )
            payout_id = db.reserve_payout(
                _payout_record(committee, req["user_id"], slot, breakdown, reviewer_id), conn=conn
            )
            db.execute(
                "UPDATE join_requests SET status='approved', reviewed_at=?, reviewed_by=? WHERE id=?",
                (now, reviewer_id, request_id),
                conn=conn,
            )
            notify(
                req["user_id"],
                "Committee Request Approved",
                f"Your request to join {committee['name']} has been approved! Your payout slot is #{slot}.",
                "committee_joined",
                conn=conn,
            )
            notify(req["user_id"], "Payout Scheduled", _scheduled_message(slot, breakdown), "payout_scheduled", conn=conn)
    except db.SlotTakenError as exc:
        raise SlotUnavailableError(
            f"Slot {exc.slot_number} was just assigned to another user", _suggest(committee["id"])
        ) from exc
    except db.DuplicatePayoutError as exc:
        raise ValidationError(str(exc)) from exc

    logger.info("Join request %s approved by %s: slot %s, payout %s", request_id, reviewer_id, slot, payout_id)
    return payout_id


def reject_join_request(request_id: int, reviewer_id: int, remarks: str | None = None) -> None:
    req = _get_join_request(request_id)
    if req["status"] != "pending":
        raise ValidationError(f"Join request is already {req['status']}.")
    db.execute(
        "UPDATE join_requests SET status='rejected', reviewed_at=?, reviewed_by=?, remarks=? WHERE id=?",
        (db.now_iso(), reviewer_id, remarks or "", request_id),
    )
    notify(
        req["user_id"],
        "Committee Request Rejected",
        f"Your committee request was rejected: {remarks}" if remarks else "Your committee request was rejected.",
        "committee_joined",
    )


def delete_join_request(request_id: int) -> None:
    _get_join_request(request_id)
    db.execute("DELETE FROM join_requests WHERE id = ?", (request_id,))


# ---------- Payments ----------

def submit_payment(user_id: int, committee_id: int, amount, receipt_url: str | None = None, remarks: str | None = None) -> int:
    errors = utils.validate_payment_inputs(amount)
    if errors:
        raise ValidationError(errors)
    get_committee(committee_id)
    if not is_member(committee_id, user_id):
        raise ValidationError("You are not a member of this committee.")
    payment_id = db.execute(
        """
        INSERT INTO payments(user_id, committee_id, amount, status, receipt_url, remarks, submitted_at)
        VALUES(?,?,?,'pending',?,?,?)
        """,
        (user_id, committee_id, float(amount), receipt_url, remarks or None, db.now_iso()),
    )
    logger.info("Payment %s submitted by user %s for committee %s", payment_id, user_id, committee_id)
    return payment_id


_PAYMENT_SELECT = """
    SELECT p.*, u.full_name, c.name AS committee_name, r.full_name AS reviewer_name
    FROM payments p
    JOIN users u ON u.id = p.user_id
    JOIN committees c ON c.id = p.committee_id
    LEFT JOIN users r ON r.id = p.reviewed_by
"""


def list_payments(status: str | None = None) -> list[sqlite3.Row]:
    if status:
        return db.fetch_all(_PAYMENT_SELECT + " WHERE p.status = ? ORDER BY p.submitted_at DESC, p.id DESC", (status,))
    return db.fetch_all(_PAYMENT_SELECT + " ORDER BY p.submitted_at DESC, p.id DESC")


def user_payments(user_id: int) -> list[sqlite3.Row]:
    return db.fetch_all(_PAYMENT_SELECT + " WHERE p.user_id = ? ORDER BY p.submitted_at DESC, p.id DESC", (user_id,))


def _get_payment(payment_id: int) -> sqlite3.Row:
    row = db.fetch_one("SELECT * FROM payments WHERE id = ?", (payment_id,))
    if not row:
        raise NotFoundError(f"Payment {payment_id} not found.")
    return row


def _review_payment(payment_id: int, reviewer_id: int, status: str, remarks: str | None) -> sqlite3.Row:
    payment = _get_payment(payment_id)
    if payment["status"] != "pending":
        raise ValidationError(f"Payment is already {payment['status']}.")
    db.execute(
        "UPDATE payments SET status=?, reviewed_at=?, reviewed_by=?, remarks=? WHERE id=?",
        (status, db.now_iso(), reviewer_id, remarks or "", payment_id),
    )
    logger.info("Payment %s %s by %s", payment_id, status, reviewer_id)
    return payment


def approve_payment(payment_id: int, reviewer_id: int, remarks: str | None = None) -> None:
    payment = _review_payment(payment_id, reviewer_id, "approved", remarks)
    notify(
        payment["user_id"],
        "Payment Approved",
        f"Your payment of {_money(payment['amount'])} has been approved.",
        "payment_approved",
    )


def reject_payment(payment_id: int, reviewer_id: int, remarks: str) -> None:
    if not (remarks or "").strip():
        raise ValidationError("A reason is required to reject a payment.")
    payment = _review_payment(payment_id, reviewer_id, "rejected", remarks)
    notify(
        payment["user_id"],
        "Payment Rejected",
        f"Your payment of {_money(payment['amount'])} was rejected: {remarks}",
        "payment_rejected",
    )


def delete_payment(payment_id: int) -> None:
    _get_payment(payment_id)
    db.execute("DELETE FROM payments WHERE id = ?", (payment_id,))


def members_with_dues(committee_id: int) -> list[sqlite3.Row]:
    """Members whose approved and pending payments fall short of amount x current round."""
    committee = get_committee(committee_id)
    due = committee["amount"] * committee["current_round"]
    return db.fetch_all(
        """
        SELECT u.id, u.full_name, u.phone,
               COALESCE(SUM(CASE WHEN p.status IN ('approved','pending') THEN p.amount END), 0) AS paid,
               ? - COALESCE(SUM(CASE WHEN p.status IN ('approved','pending') THEN p.amount END), 0) AS outstanding
        FROM committee_members cm
        JOIN users u ON u.id = cm.user_id
        LEFT JOIN payments p ON p.committee_id = cm.committee_id AND p.user_id = cm.user_id
        WHERE cm.committee_id = ?
        GROUP BY u.id
        HAVING outstanding > 0
        ORDER BY u.full_name ASC
        """,
        (due, committee_id),
    )


def send_payment_reminders(committee_id: int) -> int:
    committee = get_committee(committee_id)
    if committee["status"] != "active":
        raise ValidationError("Reminders can only be sent for active committees.")
    rows = members_with_dues(committee_id)
    with db.get_conn() as conn:
        for r in rows:
            notify(
                r["id"],
                "Payment Due",
                f"Your contribution for {committee['name']} (round {committee['current_round']}) is due. "
                f"Outstanding: {_money(r['outstanding'])}.",
                "payment_due",
                conn=conn,
            )
    logger.info("Sent %d payment reminders for committee %s", len(rows), committee_id)
    return len(rows)


# ---------- Payouts ----------

def _payout_record(committee, user_id: int, slot: int, breakdown: PayoutBreakdown, initiated_by: int,
                   receipt_url: str | None = None) -> dict:
    details = breakdown.fee_details
    return {
        "committee_id": committee["id"],
        "user_id": user_id,
        "slot_number": slot,
        "original_amount": breakdown.original_amount,
        "fee_amount": breakdown.fee_amount,
        "amount": breakdown.net_amount,
        "fee_percentage": breakdown.fee_percentage,
        "fee_reason": details.reason if details else None,
        "status": "pending",
        "scheduled_date": utils.payout_schedule_date(committee["start_date"], slot),
        "initiated_by": initiated_by,
        "round": slot,
        "receipt_url": receipt_url,
        "created_at": db.now_iso(),
    }


def _scheduled_message(slot: int, breakdown: PayoutBreakdown) -> str:
    if breakdown.fee_amount > 0:
        return (
            f"A payout of {_money(breakdown.net_amount)} has been scheduled for slot #{slot}. "
            f"Original amount: {_money(breakdown.original_amount)}, "
            f"Early payout fee: {_money(breakdown.fee_amount)}."
        )
    return f"A payout of {_money(breakdown.net_amount)} has been scheduled for slot #{slot}."


def _suggest(committee_id: int) -> int | None:
    try:
        return _next_slot(committee_id)
    except SlotUnavailableError:
        return None


def quote_payout(committee_id: int, original_amount: float | None = None, slot: int | None = None,
                 user_id: int | None = None) -> tuple[int, PayoutBreakdown]:
    """Dry run: pick (or check) the slot and compute the fee without writing anything."""
    committee = get_committee(committee_id)
    if original_amount is None:
        original_amount = pool_amount(committee)
    if slot is None:
        slot = _next_slot(committee_id)
    else:
        _check_slot(committee_id, slot, user_id)
    return slot, fees.split_payout(float(original_amount), committee["duration"], slot)


def create_payout(committee_id: int, user_id: int, original_amount, initiated_by: int,
                  slot: int | None = None, receipt_url: str | None = None) -> int:
    errors = utils.validate_payment_inputs(original_amount)
    if errors:
        raise ValidationError(errors)
    committee = get_committee(committee_id)
    if not is_member(committee_id, user_id):
        raise ValidationError("User is not a member of this committee.")

    slot, breakdown = quote_payout(committee_id, float(original_amount), slot, user_id)
    try:
        with db.get_conn() as conn:
            payout_id = db.reserve_payout(
                _payout_record(committee, user_id, slot, breakdown, initiated_by, receipt_url), conn=conn
            )
            notify(user_id, "Payout Scheduled", _scheduled_message(slot, breakdown), "payout_scheduled", conn=conn)
    except db.SlotTakenError as exc:
        raise SlotUnavailableError(
            f"Slot {exc.slot_number} was just assigned to another user", _suggest(committee_id)
        ) from exc
    except db.DuplicatePayoutError as exc:
        raise ValidationError(str(exc)) from exc

    logger.info(
        "Payout %s created: committee %s, user %s, slot %s, fee %.2f",
        payout_id, committee_id, user_id, slot, breakdown.fee_amount,
    )
    return payout_id


_PAYOUT_SELECT = """
    SELECT p.*, u.full_name, c.name AS committee_name, c.duration
    FROM payouts p
    JOIN users u ON u.id = p.user_id
    JOIN committees c ON c.id = p.committee_id
"""


def list_payouts(status: str | None = None) -> list[sqlite3.Row]:
    if status:
        return db.fetch_all(_PAYOUT_SELECT + " WHERE p.status = ? ORDER BY p.created_at DESC, p.id DESC", (status,))
    return db.fetch_all(_PAYOUT_SELECT + " ORDER BY p.created_at DESC, p.id DESC")


def user_payouts(user_id: int) -> list[sqlite3.Row]:
    return db.fetch_all(_PAYOUT_SELECT + " WHERE p.user_id = ? ORDER BY p.scheduled_date ASC, p.id ASC", (user_id,))


def _get_payout(payout_id: int) -> sqlite3.Row:
    row = db.fetch_one("SELECT * FROM payouts WHERE id = ?", (payout_id,))
    if not row:
        raise NotFoundError(f"Payout {payout_id} not found.")
    return row


def complete_payout(payout_id: int, receipt_url: str | None = None) -> None:
    payout = _get_payout(payout_id)
    if payout["status"] == "completed":
        raise ValidationError("Payout is already completed.")
    db.execute(
        "UPDATE payouts SET status='completed', completed_date=?, receipt_url=COALESCE(?, receipt_url) WHERE id=?",
        (db.now_iso(), receipt_url, payout_id),
    )
    if payout["fee_amount"] > 0:
        message = (
            f"You have received {_money(payout['amount'])} for payout slot #{payout['slot_number']}. "
            f"Original amount: {_money(payout['original_amount'])}, "
            f"Early payout fee: {_money(payout['fee_amount'])}."
        )
    else:
        message = f"You have received {_money(payout['amount'])} for payout slot #{payout['slot_number']}."
    notify(payout["user_id"], "Payout Received", message, "payout_received")
    logger.info("Payout %s completed", payout_id)


def delete_payout(payout_id: int) -> None:
    _get_payout(payout_id)
    db.execute("DELETE FROM payouts WHERE id = ?", (payout_id,))


# ---------- Dashboards ----------

def admin_stats() -> dict:
    return {
        "total_committees": db.fetch_one("SELECT COUNT(*) AS c FROM committees")["c"],
        "active_committees": db.fetch_one("SELECT COUNT(*) AS c FROM committees WHERE status='active'")["c"],
        "members": db.fetch_one("SELECT COUNT(*) AS c FROM users WHERE role='user'")["c"],
        "pending_requests": db.fetch_one("SELECT COUNT(*) AS c FROM join_requests WHERE status='pending'")["c"],
        "pending_payments": db.fetch_one("SELECT COUNT(*) AS c FROM payments WHERE status='pending'")["c"],
        "pending_verifications": db.fetch_one(
            "SELECT COUNT(*) AS c FROM users WHERE documents_submitted=1 AND admin_reviewed=0"
        )["c"],
        "total_payouts": db.fetch_one("SELECT COALESCE(SUM(amount),0) AS s FROM payouts")["s"],
        "fee_income": db.fetch_one("SELECT COALESCE(SUM(fee_amount),0) AS s FROM payouts")["s"],
    }


def user_stats(user_id: int) -> dict:
    return {
        "committees": len(user_committees(user_id)),
        "paid": db.fetch_one(
            "SELECT COALESCE(SUM(amount),0) AS s FROM payments WHERE user_id=? AND status='approved'", (user_id,)
        )["s"],
        "pending_payments": db.fetch_one(
            "SELECT COUNT(*) AS c FROM payments WHERE user_id=? AND status='pending'", (user_id,)
        )["c"],
        "received": db.fetch_one(
            "SELECT COALESCE(SUM(amount),0) AS s FROM payouts WHERE user_id=? AND status='completed'", (user_id,)
        )["s"],
        "unread": unread_count(user_id),
    }


def insert_sample_data(admin_id: int, password_hash: str) -> None:
    """
    Insert two committees, three verified members, join requests and a few
    payments (adds new rows each run).
    """
    today = date.today()
    start = today.replace(day=1).isoformat()
    c5 = create_committee("Sample 5-month committee", 10000, 5, 5, start, admin_id)
    c10 = create_committee("Sample 10-month committee", 5000, 10, 10, start, admin_id)

    stamp = today.strftime("%Y%m%d")
    names = [("Ahmed Hassan", "03000000001"), ("Mona Ali", "03000000002"), ("Omar Samy", "03000000003")]
    user_ids = []
    for i, (full_name, phone) in enumerate(names, start=1):
        n = db.fetch_one("SELECT COUNT(*) AS c FROM users")["c"]
        now = db.now_iso()
        uid = db.execute(
            """
            INSERT INTO users(username, password_hash, full_name, phone, cnic, role, documents_submitted,
                              is_verified, admin_reviewed, reviewed_by, reviewed_at, created_at, updated_at)
            VALUES(?,?,?,?,?,'user',1,1,1,?,?,?,?)
            """,
            (f"member{stamp}_{n}_{i}", password_hash, full_name, phone, f"35202-000000{i}-1", admin_id, now, now, now),
        )
        user_ids.append(uid)

    for slot, uid in enumerate(user_ids, start=1):
        req = create_join_request(uid, c10, preferred_slot=slot * 2 - 1)
        approve_join_request(req, admin_id)
    create_join_request(user_ids[0], c5, preferred_slot=1)

    for uid in user_ids:
        pid = submit_payment(uid, c10, 5000, remarks="Sample payment")
        approve_payment(pid, admin_id, "Sample")
    submit_payment(user_ids[1], c10, 5000, remarks="Awaiting review")
