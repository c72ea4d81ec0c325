"""
app.py
Streamlit Committee Manager (admin + members).
Run: streamlit run app.py
"""

from __future__ import annotations

import logging
from pathlib import Path
from datetime import date

import streamlit as st

import db
import auth
import fees
import services
import slots
import utils
from config import settings, setup_logging
from models import (
    COMMITTEE_DURATIONS,
    COMMITTEE_STATUSES,
    DOCUMENT_TYPES,
    MAX_MEMBERS,
    MIN_GUARANTORS,
    MIN_MEMBERS,
    PAYMENT_STATUSES,
    PAYOUT_STATUSES,
    REQUEST_STATUSES,
    REQUIRED_DOCUMENTS,
)
from services import ServiceError, SlotUnavailableError

st.set_page_config(page_title="Committee Manager", layout="wide")

logger = logging.getLogger(__name__)


def init_once():
    # Initialize logging, DB + default admin if needed
    if st.session_state.get("_initialized"):
        return
    setup_logging(settings)
    default_hash = auth.hash_password(settings.default_admin_password)
    db.init_db(default_hash)
    st.session_state._initialized = True


def require_login():
    for key, default in (("logged_in", False), ("username", None), ("user_id", None), ("role", None)):
        if key not in st.session_state:
            st.session_state[key] = default


def logout():
    st.session_state.logged_in = False
    st.session_state.username = None
    st.session_state.user_id = None
    st.session_state.role = None
    st.session_state.page = None
    st.success("Logged out.")


def money(amount) -> str:
    return f"{settings.currency} {fees.format_currency(float(amount or 0))}"


def show_error(exc: ServiceError):
    if isinstance(exc, SlotUnavailableError) and exc.suggested_slot:
        st.error(f"{exc.reason}. Suggested slot: {exc.suggested_slot}.")
    else:
        st.error(str(exc))


def fee_label(duration: int, slot: int) -> str:
    details = fees.get_fee_details(duration, slot)
    if details:
        return f"Slot {slot} ({details.percentage * 100:g}% fee)"
    return f"Slot {slot} (no fee)"


def show_receipt(url: str | None):
    if url and Path(url).exists() and Path(url).suffix.lower() in (".png", ".jpg", ".jpeg"):
        st.image(url, width=320)
    elif url:
        st.caption(f"Receipt: {url}")


def login_screen():
    st.title("🔐 Committee Manager")

    col1, col2 = st.columns([1, 1])
    with col1:
        st.subheader("Login")
        username = st.text_input("Username", key="login_username")
        password = st.text_input("Password", type="password", key="login_password")
        if st.button("Login", type="primary"):
            user = auth.login(username.strip(), password)
            if user:
                st.session_state.logged_in = True
                st.session_state.username = user["username"]
                st.session_state.user_id = user["id"]
                st.session_state.role = user["role"]
                st.rerun()
            else:
                st.error("Invalid username or password.")

        st.info(
            "First run creates a default admin:\n\n"
            "- username: **admin**\n"
            "- password: **admin123** (or COMMITTEE_DEFAULT_ADMIN_PASSWORD)\n\n"
            "You will be forced to change it on first login."
        )

    with col2:
        st.subheader("Create member account")
        new_username = st.text_input("Username", key="signup_username")
        full_name = st.text_input("Full name", key="signup_full_name")
        email = st.text_input("Email (optional)", key="signup_email")
        phone = st.text_input("Phone (optional)", key="signup_phone")
        p1 = st.text_input("Password", type="password", key="signup_p1")
        p2 = st.text_input("Confirm password", type="password", key="signup_p2")
        if st.button("Sign up"):
            errors = utils.validate_signup_inputs(new_username, full_name, p1, p2)
            if errors:
                for e in errors:
                    st.error(e)
                return
            try:
                auth.signup(new_username, p1, full_name, email.strip(), phone.strip())
            except auth.AuthError as exc:
                st.error(str(exc))
                return
            st.success("Account created. You can log in now.")


def force_change_password_screen():
    st.title("⚠️ Change Password (Required)")

    st.warning("You must change the default password before using the app.")
    new1 = st.text_input("New password", type="password")
    new2 = st.text_input("Confirm new password", type="password")

    if st.button("Update password", type="primary"):
        if len(new1) < 6:
            st.error("Password must be at least 6 characters.")
            return
        if new1 != new2:
            st.error("Passwords do not match.")
            return
        auth.change_password(st.session_state.username, new1)
        st.success("Password updated. You can continue.")
        st.rerun()


def change_password_form():
    st.subheader("Change password")
    p1 = st.text_input("New password", type="password", key="settings_p1")
    p2 = st.text_input("Confirm new password", type="password", key="settings_p2")
    if st.button("Update password", type="primary"):
        if len(p1) < 6:
            st.error("Password must be at least 6 characters.")
        elif p1 != p2:
            st.error("Passwords do not match.")
        else:
            auth.change_password(st.session_state.username, p1)
            st.success("Password updated.")


def slot_progress(committee_id: int):
    summary = services.committee_slot_summary(committee_id)
    st.progress(
        min(summary.percentage_occupied / 100, 1.0),
        text=f"{summary.occupied_slots}/{summary.total_slots} payout slots assigned",
    )
    validation = services.validate_committee_slots(committee_id)
    for conflict in validation.conflicts:
        st.warning(conflict)


# ---------- Admin pages ----------

def admin_dashboard_page():
    st.header("📊 Dashboard")

    stats = services.admin_stats()
    c1, c2, c3, c4 = st.columns(4)
    c1.metric("Committees", int(stats["total_committees"]), f"{stats['active_committees']} active")
    c2.metric("Members", int(stats["members"]))
    c3.metric("Total payouts", money(stats["total_payouts"]))
    c4.metric("Early payout fees", money(stats["fee_income"]))

    c5, c6, c7 = st.columns(3)
    c5.metric("Pending join requests", int(stats["pending_requests"]))
    c6.metric("Pending payments", int(stats["pending_payments"]))
    c7.metric("Pending verifications", int(stats["pending_verifications"]))

    st.divider()

    st.subheader("Active committees")
    committees = services.list_committees(status="active")
    if not committees:
        st.caption("No active committees.")
    for c in committees:
        st.write(f"**{c['name']}** · {c['duration']} months · {c['actual_members']}/{c['member_count']} members")
        slot_progress(c["id"])


def committee_form():
    st.subheader("➕ Create Committee")

    col1, col2, col3 = st.columns(3)
    with col1:
        name = st.text_input("Name")
        amount = st.text_input("Monthly amount", value="10000")
    with col2:
        member_count = st.number_input("Member capacity", min_value=MIN_MEMBERS, max_value=MAX_MEMBERS, value=10)
        duration = st.selectbox("Duration (months)", COMMITTEE_DURATIONS, index=len(COMMITTEE_DURATIONS) - 1)
    with col3:
        start_date = st.date_input("Start date", value=date.today()).isoformat()
        status = st.selectbox("Status", COMMITTEE_STATUSES, index=1)

    table = {f"Slot {s}": f"{p * 100:g}%" for s, p in fees.slot_fee_table(duration).items() if p > 0}
    if table:
        st.caption("Early payout fees: " + ", ".join(f"{k}: {v}" for k, v in table.items()))
    else:
        st.caption("No early payout fees for this duration.")

    errors = utils.validate_committee_inputs(name, amount, member_count, duration, start_date, status)
    if st.button("Create committee", type="primary", disabled=bool(errors)):
        try:
            services.create_committee(
                name, amount, member_count, duration, start_date, st.session_state.user_id, status
            )
        except ServiceError as exc:
            show_error(exc)
            return
        st.success("Committee created.")
        st.rerun()


def committees_page():
    st.header("🏦 Committees")

    rows = services.list_committees()
    df = utils.rows_to_df(rows, ["id", "name", "amount", "member_count", "actual_members", "duration", "start_date", "status"])
    if not df.empty:
        df = df[["id", "name", "amount", "member_count", "actual_members", "duration", "start_date", "status", "current_round"]]
    st.dataframe(df, use_container_width=True, hide_index=True)

    st.divider()

    if rows:
        options = {f"{r['name']} - ID {r['id']}": r["id"] for r in rows}
        chosen = st.selectbox("Committee", ["(none)"] + list(options.keys()))
        if chosen != "(none)":
            committee_id = options[chosen]
            c = services.get_committee(committee_id)
            st.write(
                f"Monthly: **{money(c['amount'])}** | Payout pool: **{money(services.pool_amount(c))}** | "
                f"End: **{utils.committee_end_date(c['start_date'], c['duration'])}**"
            )
            slot_progress(committee_id)

            members = services.committee_members(committee_id)
            if members:
                st.dataframe(utils.rows_to_df(members), use_container_width=True, hide_index=True)
            else:
                st.caption("No members yet.")

            dues = services.members_with_dues(committee_id)
            if dues:
                st.write(f"**Dues for round {c['current_round']}**")
                st.dataframe(utils.rows_to_df(dues), use_container_width=True, hide_index=True)
                if st.button("Send payment reminders", disabled=c["status"] != "active"):
                    sent = services.send_payment_reminders(committee_id)
                    st.success(f"Sent {sent} reminder(s).")
            elif members:
                st.caption("All members are paid up for the current round.")

            col1, col2, col3 = st.columns(3)
            with col1:
                new_status = st.selectbox("Status", COMMITTEE_STATUSES, index=COMMITTEE_STATUSES.index(c["status"]))
            with col2:
                new_round = st.number_input("Current round", min_value=1, max_value=int(c["duration"]), value=int(c["current_round"]))
            with col3:
                if st.button("Save changes"):
                    try:
                        services.update_committee(committee_id, status=new_status, current_round=int(new_round))
                    except ServiceError as exc:
                        show_error(exc)
                    else:
                        st.success("Committee updated.")
                        st.rerun()
                delete_confirm = st.checkbox("Confirm delete", value=False, key="del_committee_confirm")
                if st.button("Delete", type="secondary", disabled=not delete_confirm):
                    services.delete_committee(committee_id)
                    st.success("Committee deleted.")
                    st.rerun()

    st.divider()
    committee_form()


def join_requests_page():
    st.header("📝 Join Requests")

    status_filter = st.selectbox("Status", list(REQUEST_STATUSES) + ["All"])
    rows = services.list_join_requests(None if status_filter == "All" else status_filter)
    if not rows:
        st.caption("No join requests.")
        return
    cols = ["id", "full_name", "committee_name", "preferred_payout_slot", "status", "requested_at", "remarks"]
    st.dataframe(utils.rows_to_df(rows)[cols], use_container_width=True, hide_index=True)

    pending = [r for r in rows if r["status"] == "pending"]
    reviewed = [r for r in rows if r["status"] != "pending"]
    if reviewed:
        with st.expander("Delete reviewed request"):
            choice = {f"#{r['id']} {r['full_name']} → {r['committee_name']} ({r['status']})": r["id"] for r in reviewed}
            picked = st.selectbox("Request", list(choice.keys()), key="del_request_pick")
            delete_confirm = st.checkbox("Confirm delete", value=False, key="del_request_confirm")
            if st.button("Delete", type="secondary", disabled=not delete_confirm, key="del_request_btn"):
                services.delete_join_request(choice[picked])
                st.success("Request deleted.")
                st.rerun()
    if not pending:
        return

    st.divider()
    options = {f"#{r['id']} {r['full_name']} → {r['committee_name']}": r for r in pending}
    req = options[st.selectbox("Review request", list(options.keys()))]

    terms = services.committee_terms(req["committee_id"])
    holders = services.committee_payouts(req["committee_id"])
    preferred = req["preferred_payout_slot"]
    suggested = None
    if preferred is not None:
        check = slots.validate_preferred_slot(terms, holders, preferred, req["user_id"])
        if check.valid:
            st.success(f"Preferred slot {preferred} is available.")
        else:
            st.warning(f"{check.reason}.")
            suggested = check.suggested_slot
    free = [s for s, _ in slots.slot_options(terms, holders)]
    if not free:
        st.error("All payout slots of this committee are assigned.")
        return
    default = preferred if preferred in free else (suggested if suggested in free else free[0])
    slot = st.selectbox(
        "Payout slot", free, index=free.index(default), format_func=lambda s: fee_label(terms.duration, s)
    )

    committee = services.get_committee(req["committee_id"])
    breakdown = fees.split_payout(services.pool_amount(committee), terms.duration, slot)
    st.caption(
        f"Payout: {money(breakdown.original_amount)} − fee {money(breakdown.fee_amount)} = {money(breakdown.net_amount)}"
    )

    remarks = st.text_input("Remarks (required to reject)")
    c1, c2 = st.columns(2)
    with c1:
        if st.button("Approve", type="primary"):
            try:
                services.approve_join_request(req["id"], st.session_state.user_id, slot=slot)
            except ServiceError as exc:
                show_error(exc)
            else:
                st.success("Request approved and payout scheduled.")
                st.rerun()
    with c2:
        if st.button("Reject"):
            try:
                services.reject_join_request(req["id"], st.session_state.user_id, remarks.strip() or None)
            except ServiceError as exc:
                show_error(exc)
            else:
                st.success("Request rejected.")
                st.rerun()


def admin_payments_page():
    st.header("💳 Payments")

    status_filter = st.selectbox("Status", list(PAYMENT_STATUSES) + ["All"])
    rows = services.list_payments(None if status_filter == "All" else status_filter)
    if not rows:
        st.caption("No payments.")
        return
    cols = ["id", "full_name", "committee_name", "amount", "status", "submitted_at", "reviewer_name", "remarks"]
    st.dataframe(utils.rows_to_df(rows)[cols], use_container_width=True, hide_index=True)

    st.divider()
    options = {f"#{r['id']} {r['full_name']} - {money(r['amount'])} ({r['status']})": r for r in rows}
    payment = options[st.selectbox("Payment", list(options.keys()))]
    show_receipt(payment["receipt_url"])

    remarks = st.text_input("Remarks")
    c1, c2, c3 = st.columns(3)
    with c1:
        if st.button("Approve", type="primary", disabled=payment["status"] != "pending"):
            try:
                services.approve_payment(payment["id"], st.session_state.user_id, remarks.strip() or None)
            except ServiceError as exc:
                show_error(exc)
            else:
                st.success("Payment approved.")
                st.rerun()
    with c2:
        if st.button("Reject", disabled=payment["status"] != "pending"):
            try:
                services.reject_payment(payment["id"], st.session_state.user_id, remarks)
            except ServiceError as exc:
                show_error(exc)
            else:
                st.success("Payment rejected.")
                st.rerun()
    with c3:
        delete_confirm = st.checkbox("Confirm delete", value=False, key="del_payment_confirm")
        if st.button("Delete", type="secondary", disabled=not delete_confirm):
            services.delete_payment(payment["id"])
            st.success("Payment deleted.")
            st.rerun()


def admin_payouts_page():
    st.header("💸 Payouts")

    st.subheader("Schedule payout")
    committees = services.list_committees()
    if not committees:
        st.info("No committees yet.")
    else:
        options = {f"{c['name']} - ID {c['id']}": c for c in committees}
        committee = options[st.selectbox("Committee", list(options.keys()))]
        have_payout = {h.user_id for h in services.committee_payouts(committee["id"])}
        members = [m for m in services.committee_members(committee["id"]) if m["id"] not in have_payout]
        free = [s for s, _ in services.committee_slot_options(committee["id"])]
        if not members:
            st.caption("Every member of this committee already has a payout.")
        elif not free:
            st.caption("All payout slots of this committee are assigned.")
        else:
            member_opts = {f"{m['full_name']} ({m['username']})": m["id"] for m in members}
            c1, c2, c3 = st.columns(3)
            with c1:
                user_id = member_opts[st.selectbox("Member", list(member_opts.keys()))]
            with c2:
                amount = st.text_input("Amount", value=f"{services.pool_amount(committee):.0f}")
            with c3:
                slot = st.selectbox("Slot", free, format_func=lambda s: fee_label(committee["duration"], s))
            receipt = st.file_uploader("Bank receipt (optional)", type=["png", "jpg", "jpeg", "pdf"], key="payout_receipt")

            errors = utils.validate_payment_inputs(amount)
            if errors:
                for e in errors:
                    st.error(e)
            else:
                try:
                    _, breakdown = services.quote_payout(committee["id"], float(amount), slot, user_id)
                except ServiceError as exc:
                    show_error(exc)
                else:
                    st.info(
                        f"Original: **{money(breakdown.original_amount)}** | "
                        f"Early payout fee: **{money(breakdown.fee_amount)}** | "
                        f"Net: **{money(breakdown.net_amount)}**"
                        + (f"\n\n{breakdown.fee_details.reason}" if breakdown.fee_details else "")
                    )

            if st.button("Create payout", type="primary", disabled=bool(errors)):
                receipt_url = utils.save_upload(receipt, "payouts") if receipt else None
                try:
                    services.create_payout(committee["id"], user_id, amount, st.session_state.user_id, slot, receipt_url)
                except ServiceError as exc:
                    show_error(exc)
                else:
                    st.success("Payout has been scheduled successfully.")
                    st.rerun()

    st.divider()

    st.subheader("All payouts")
    status_filter = st.selectbox("Status", list(PAYOUT_STATUSES) + ["All"])
    rows = services.list_payouts(None if status_filter == "All" else status_filter)
    if not rows:
        st.caption("No payouts.")
        return
    cols = ["id", "full_name", "committee_name", "slot_number", "original_amount", "fee_amount", "amount",
            "status", "scheduled_date", "completed_date"]
    st.dataframe(utils.rows_to_df(rows)[cols], use_container_width=True, hide_index=True)

    options = {f"#{r['id']} {r['full_name']} - slot {r['slot_number']} ({r['status']})": r for r in rows}
    payout = options[st.selectbox("Payout", list(options.keys()))]
    show_receipt(payout["receipt_url"])
    c1, c2 = st.columns(2)
    with c1:
        receipt = st.file_uploader("Transfer receipt", type=["png", "jpg", "jpeg", "pdf"], key="complete_receipt")
        if st.button("Mark completed", type="primary", disabled=payout["status"] == "completed"):
            receipt_url = utils.save_upload(receipt, "payouts") if receipt else None
            try:
                services.complete_payout(payout["id"], receipt_url)
            except ServiceError as exc:
                show_error(exc)
            else:
                st.success("Payout completed.")
                st.rerun()
    with c2:
        delete_confirm = st.checkbox("Confirm delete", value=False, key="del_payout_confirm")
        if st.button("Delete", type="secondary", disabled=not delete_confirm):
            services.delete_payout(payout["id"])
            st.success("Payout deleted.")
            st.rerun()


def users_page():
    st.header("👥 Users")

    with st.sidebar:
        st.subheader("Search & Filters")
        search = st.text_input("Search (name/username/phone)")
        only_pending = st.checkbox("Awaiting verification only", value=False)

    rows = services.list_users(role="user", search=search)
    if only_pending:
        rows = [r for r in rows if r["documents_submitted"] and not r["admin_reviewed"]]
    cols = ["id", "username", "full_name", "phone", "cnic", "city", "documents_submitted", "guarantors_submitted", "is_verified", "admin_reviewed"]
    df = utils.rows_to_df(rows, cols)
    st.dataframe(df[cols], use_container_width=True, hide_index=True)

    if not rows:
        return
    st.divider()

    options = {f"{r['full_name']} ({r['username']}) - ID {r['id']}": r for r in rows}
    user = options[st.selectbox("User", list(options.keys()))]
    st.write(
        f"Bank: **{user['bank_name'] or '-'}** | Account: **{user['account_number'] or '-'}** | "
        f"Holder: **{user['account_holder'] or '-'}** | Address: **{user['address'] or '-'}**"
    )
    docs = services.user_documents(user["id"])
    if docs:
        doc_cols = st.columns(len(docs))
        for col, (doc_type, url) in zip(doc_cols, docs.items()):
            with col:
                st.caption(DOCUMENT_TYPES[doc_type])
                show_receipt(url)
    else:
        st.caption("No documents uploaded.")
    guarantors = services.user_guarantors(user["id"])
    if guarantors:
        st.write("**Guarantors**")
        g_cols = ["full_name", "phone_number", "cnic_number", "relationship"]
        st.dataframe(
            utils.rows_to_df(guarantors, g_cols)[g_cols],
            use_container_width=True,
            hide_index=True,
        )
        for g in guarantors:
            show_receipt(g["cnic_front_url"])
            show_receipt(g["cnic_back_url"])
    st.caption("Profile complete" if services.is_profile_complete(user["id"]) else "Profile incomplete")

    remarks = st.text_input("Verification remarks")
    c1, c2 = st.columns(2)
    with c1:
        if st.button("Verify", type="primary", disabled=not user["documents_submitted"]):
            try:
                services.verify_user(user["id"], st.session_state.user_id, True, remarks.strip() or None)
            except ServiceError as exc:
                show_error(exc)
            else:
                st.success("User verified.")
                st.rerun()
    with c2:
        if st.button("Reject verification"):
            services.verify_user(user["id"], st.session_state.user_id, False, remarks.strip() or None)
            st.success("Verification rejected.")
            st.rerun()


def reports_page():
    st.header("🧾 Reports")

    exports = {
        "committees": services.list_committees(),
        "payments": services.list_payments(),
        "payouts": services.list_payouts(),
        "join_requests": services.list_join_requests(),
    }
    for name, rows in exports.items():
        st.subheader(f"Export {name.replace('_', ' ')} to CSV")
        if rows:
            st.download_button(
                f"Download {name}.csv",
                data=utils.rows_to_csv_bytes(rows),
                file_name=f"{name}.csv",
                mime="text/csv",
            )
        else:
            st.caption(f"No {name.replace('_', ' ')} to export.")

    st.divider()

    st.subheader("Payouts by month")
    st.dataframe(utils.payouts_summary_by_month(), use_container_width=True, hide_index=True)

    st.subheader("Early payout fee income by committee")
    st.dataframe(utils.fee_income_by_committee(), use_container_width=True, hide_index=True)

    st.subheader("Collections by committee")
    st.dataframe(utils.collections_by_committee(), use_container_width=True, hide_index=True)


def admin_settings_page():
    st.header("⚙️ Settings")

    change_password_form()

    st.divider()

    st.subheader("Sample data")
    st.caption("Insert 2 committees, 3 verified members, join requests and payments (adds new rows each run).")
    if st.button("Insert sample data"):
        try:
            services.insert_sample_data(st.session_state.user_id, auth.hash_password("member123"))
        except ServiceError as exc:
            show_error(exc)
        else:
            st.success("Sample data inserted. Sample members log in with password member123.")
            st.rerun()


# ---------- Member pages ----------

def user_dashboard_page():
    st.header("📊 My Dashboard")

    user_id = st.session_state.user_id
    if not services.is_user_verified(user_id):
        st.warning("Your profile is not verified yet. Complete verification in Settings to join committees.")

    stats = services.user_stats(user_id)
    c1, c2, c3, c4 = st.columns(4)
    c1.metric("My committees", int(stats["committees"]))
    c2.metric("Paid (approved)", money(stats["paid"]))
    c3.metric("Payments awaiting review", int(stats["pending_payments"]))
    c4.metric("Payouts received", money(stats["received"]))

    st.divider()

    st.subheader("My committees")
    payouts = {p["committee_id"]: p for p in services.user_payouts(user_id)}
    committees = services.user_committees(user_id)
    if not committees:
        st.caption("You have not joined any committee yet.")
    for c in committees:
        p = payouts.get(c["id"])
        slot_text = f"slot #{p['slot_number']} on {p['scheduled_date']} ({p['status']})" if p else "no payout scheduled"
        st.write(f"**{c['name']}** · {money(c['amount'])}/month · {c['duration']} months · {slot_text}")


def available_committees_page():
    st.header("🔎 Available Committees")

    user_id = st.session_state.user_id
    rows = services.available_committees(user_id)
    if not rows:
        st.info("No committees with open places right now.")
        return
    cols = ["id", "name", "amount", "duration", "member_count", "actual_members", "start_date"]
    st.dataframe(utils.rows_to_df(rows)[cols], use_container_width=True, hide_index=True)

    st.divider()
    options = {f"{r['name']} - ID {r['id']}": r for r in rows}
    committee = options[st.selectbox("Committee", list(options.keys()))]
    slot_progress(committee["id"])

    free = services.committee_slot_options(committee["id"])
    if not free:
        st.caption("All payout slots are taken.")
        return
    st.caption("Select your preferred payout slot for this committee. Early slots may have fees.")
    slot = st.selectbox(
        "Preferred payout slot", [s for s, _ in free], format_func=lambda s: fee_label(committee["duration"], s)
    )

    pool = services.pool_amount(committee)
    breakdown = fees.split_payout(pool, committee["duration"], slot)
    st.info(
        f"Payout amount: **{money(breakdown.original_amount)}** | Fee: **{money(breakdown.fee_amount)}** | "
        f"You receive: **{money(breakdown.net_amount)}**\n\n"
        f"Estimated monthly contribution incl. fees: "
        f"**{money(fees.calculate_monthly_contribution(pool, committee['duration'], slot))}** "
        f"(origination fee {money(fees.compute_committee_origination_fee(pool, committee['duration']))})"
    )

    if st.button("Request to join", type="primary"):
        try:
            services.create_join_request(user_id, committee["id"], slot)
        except ServiceError as exc:
            show_error(exc)
        else:
            st.success("Your request to join the committee has been submitted with your preferred payout slot.")

    st.divider()
    st.subheader("My requests")
    mine = services.user_join_requests(user_id)
    if mine:
        st.dataframe(
            utils.rows_to_df(mine)[["committee_name", "preferred_payout_slot", "status", "requested_at", "remarks"]],
            use_container_width=True, hide_index=True,
        )
    else:
        st.caption("No requests yet.")


def my_payments_page():
    st.header("💳 My Payments")

    user_id = st.session_state.user_id
    committees = services.user_committees(user_id)
    if not committees:
        st.info("Join a committee first.")
    else:
        options = {c["name"]: c for c in committees}
        committee = options[st.selectbox("Committee", list(options.keys()))]
        c1, c2 = st.columns(2)
        with c1:
            amount = st.text_input("Amount", value=f"{committee['amount']:.0f}")
        with c2:
            remarks = st.text_input("Notes", value="")
        receipt = st.file_uploader("Receipt", type=["png", "jpg", "jpeg", "pdf"])

        if st.button("Submit payment", type="primary"):
            errors = utils.validate_payment_inputs(amount)
            if errors:
                for e in errors:
                    st.error(e)
            else:
                receipt_url = utils.save_upload(receipt, "payments") if receipt else None
                try:
                    services.submit_payment(user_id, committee["id"], amount, receipt_url, remarks.strip() or None)
                except ServiceError as exc:
                    show_error(exc)
                else:
                    st.success("Payment submitted for review.")
                    st.rerun()

    st.divider()

    st.subheader("Payment history")
    rows = services.user_payments(user_id)
    if rows:
        cols = ["id", "committee_name", "amount", "status", "submitted_at", "reviewed_at", "remarks"]
        st.dataframe(utils.rows_to_df(rows)[cols], use_container_width=True, hide_index=True)
    else:
        st.caption("No payments yet.")


def my_payouts_page():
    st.header("💸 My Payouts")

    rows = services.user_payouts(st.session_state.user_id)
    if not rows:
        st.caption("No payouts scheduled yet.")
        return
    for p in rows:
        line = (
            f"**{p['committee_name']}** · Slot {p['slot_number']} · {p['duration']} months · "
            f"{money(p['amount'])} · {p['status']} · {p['completed_date'] or p['scheduled_date']}"
        )
        if p["fee_amount"] > 0:
            line += f" (Fee: -{money(p['fee_amount'])} of {money(p['original_amount'])})"
        st.write(line)
        if p["fee_reason"]:
            st.caption(p["fee_reason"])


def notifications_page():
    st.header("🔔 Notifications")

    user_id = st.session_state.user_id
    rows = services.user_notifications(user_id)
    if not rows:
        st.caption("No notifications.")
        return
    if st.button("Mark all as read"):
        services.mark_all_read(user_id)
        st.rerun()
    for n in rows:
        c1, c2 = st.columns([5, 1])
        with c1:
            marker = "" if n["read"] else "🆕 "
            st.write(f"{marker}**{n['title']}** · {n['created_at']}")
            st.caption(n["message"])
        with c2:
            if not n["read"] and st.button("Read", key=f"read_{n['id']}"):
                services.mark_notification_read(n["id"])
                st.rerun()


def user_settings_page():
    st.header("⚙️ Settings")

    user = services.get_user(st.session_state.user_id)
    st.subheader("Profile & verification")
    if user["is_verified"]:
        st.success("Your profile is verified.")
    elif services.is_profile_complete(user["id"]) and not user["admin_reviewed"]:
        st.info("Your profile is complete and awaiting admin review.")
    elif user["documents_submitted"] and not user["admin_reviewed"]:
        st.info("Your documents are awaiting admin review. Add your guarantors to complete the profile.")
    elif user["admin_reviewed"]:
        st.warning(f"Verification not approved. {user['verification_remarks'] or ''}")

    col1, col2 = st.columns(2)
    with col1:
        full_name = st.text_input("Full name", value=user["full_name"] or "")
        email = st.text_input("Email", value=user["email"] or "")
        phone = st.text_input("Phone", value=user["phone"] or "")
        cnic = st.text_input("National ID (CNIC)", value=user["cnic"] or "")
        address = st.text_input("Address", value=user["address"] or "")
        city = st.text_input("City", value=user["city"] or "")
    with col2:
        bank_name = st.text_input("Bank name", value=user["bank_name"] or "")
        account_number = st.text_input("Account number", value=user["account_number"] or "")
        account_holder = st.text_input("Account holder", value=user["account_holder"] or "")

    profile = dict(
        full_name=full_name, email=email, phone=phone, cnic=cnic, address=address, city=city,
        bank_name=bank_name, account_number=account_number, account_holder=account_holder,
    )
    if st.button("Save profile"):
        services.update_profile(user["id"], **profile)
        st.success("Profile saved.")

    st.subheader("Documents")
    existing = services.user_documents(user["id"])
    uploads = {}
    doc_cols = st.columns(len(DOCUMENT_TYPES))
    for col, (doc_type, label) in zip(doc_cols, DOCUMENT_TYPES.items()):
        with col:
            required = " *" if doc_type in REQUIRED_DOCUMENTS else ""
            uploads[doc_type] = st.file_uploader(f"{label}{required}", type=["png", "jpg", "jpeg", "pdf"], key=f"doc_{doc_type}")
            if doc_type in existing:
                st.caption("✅ Uploaded")

    c1, c2 = st.columns(2)
    with c1:
        if st.button("Upload documents"):
            documents = {k: utils.save_upload(f, "documents") for k, f in uploads.items() if f}
            try:
                services.upload_documents(user["id"], documents)
            except ServiceError as exc:
                show_error(exc)
            else:
                st.success("Documents saved.")
                st.rerun()
    with c2:
        if st.button("Submit for verification", type="primary", disabled=bool(user["is_verified"])):
            documents = {k: utils.save_upload(f, "documents") for k, f in uploads.items() if f}
            try:
                services.submit_verification(user["id"], documents, **profile)
            except ServiceError as exc:
                show_error(exc)
            else:
                st.success("Submitted for verification. Admins have been notified.")
                st.rerun()

    st.subheader("Guarantors")
    saved = [dict(g) for g in services.user_guarantors(user["id"])]
    count = max(MIN_GUARANTORS, len(saved))
    guarantors = []
    for i in range(count):
        g = saved[i] if i < len(saved) else {}
        with st.expander(f"Guarantor {i + 1}", expanded=not saved):
            gc1, gc2 = st.columns(2)
            with gc1:
                name = st.text_input("Full name", value=g.get("full_name", ""), key=f"g{i}_name")
                g_phone = st.text_input("Phone number", value=g.get("phone_number", ""), key=f"g{i}_phone")
                front = st.file_uploader("CNIC front", type=["png", "jpg", "jpeg"], key=f"g{i}_front")
            with gc2:
                g_cnic = st.text_input("CNIC number", value=g.get("cnic_number", ""), key=f"g{i}_cnic")
                relationship = st.text_input("Relationship", value=g.get("relationship", ""), key=f"g{i}_rel")
                back = st.file_uploader("CNIC back", type=["png", "jpg", "jpeg"], key=f"g{i}_back")
        guarantors.append(
            {
                "full_name": name,
                "phone_number": g_phone,
                "cnic_number": g_cnic,
                "relationship": relationship,
                "cnic_front_url": front,
                "cnic_back_url": back,
                "saved_front": g.get("cnic_front_url"),
                "saved_back": g.get("cnic_back_url"),
            }
        )

    if st.button("Save guarantors", disabled=bool(user["is_verified"])):
        for g in guarantors:
            front, back = g.pop("cnic_front_url"), g.pop("cnic_back_url")
            g["cnic_front_url"] = utils.save_upload(front, "guarantors") if front else g["saved_front"]
            g["cnic_back_url"] = utils.save_upload(back, "guarantors") if back else g["saved_back"]
        try:
            services.submit_guarantors(user["id"], guarantors)
        except ServiceError as exc:
            show_error(exc)
        else:
            if services.is_profile_complete(user["id"]):
                st.success("Your profile is now complete and ready for admin verification.")
            else:
                st.success("Guarantor details saved.")
            st.rerun()

    st.divider()
    change_password_form()


ADMIN_PAGES = {
    "Dashboard": admin_dashboard_page,
    "Committees": committees_page,
    "Join Requests": join_requests_page,
    "Payments": admin_payments_page,
    "Payouts": admin_payouts_page,
    "Users": users_page,
    "Reports": reports_page,
    "Settings": admin_settings_page,
}

USER_PAGES = {
    "Dashboard": user_dashboard_page,
    "Available Committees": available_committees_page,
    "My Payments": my_payments_page,
    "My Payouts": my_payouts_page,
    "Notifications": notifications_page,
    "Settings": user_settings_page,
}


def main_app():
    st.sidebar.title("🤝 Committee Manager")
    st.sidebar.caption(f"Logged in as: {st.session_state.username} ({st.session_state.role})")

    pages = ADMIN_PAGES if st.session_state.role == "admin" else USER_PAGES
    names = list(pages.keys())
    if st.session_state.role != "admin":
        unread = services.unread_count(st.session_state.user_id)
        if unread:
            st.sidebar.caption(f"🔔 {unread} unread notification(s)")
    if st.session_state.get("page") not in names:
        st.session_state.page = names[0]
    st.session_state.page = st.sidebar.radio("Navigate", names, index=names.index(st.session_state.page))

    if st.sidebar.button("Logout"):
        logout()
        st.rerun()

    pages[st.session_state.page]()


# --------- App entry ---------

def run():
    init_once()
    require_login()

    if not st.session_state.logged_in:
        login_screen()
        return

    # Force password change on first login after DB creation
    if st.session_state.role == "admin" and db.is_force_password_change():
        force_change_password_screen()
        return

    main_app()


if __name__ == "__main__":
    run()
