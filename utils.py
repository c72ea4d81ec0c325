"""
utils.py
Validation, dates, uploads, exports, reports.
"""

from __future__ import annotations

import re
from datetime import date, datetime, timedelta
from pathlib import Path

import pandas as pd

import db
from config import settings
from models import COMMITTEE_STATUSES, MAX_MEMBERS, MIN_MEMBERS


def today_iso() -> str:
    return date.today().isoformat()


def parse_iso(d: str) -> date:
    return date.fromisoformat(d)


def add_months(start: date, months: int) -> date:
    """
    Add months while keeping day in valid range (e.g., Jan 31 + 1 month => Feb 28/29).
    """
    y = start.year + (start.month - 1 + months) // 12
    m = (start.month - 1 + months) % 12 + 1
    # last day of target month
    if m == 12:
        next_month = date(y + 1, 1, 1)
    else:
        next_month = date(y, m + 1, 1)
    last_day = next_month - timedelta(days=1)
    day = min(start.day, last_day.day)
    return date(y, m, day)


def payout_schedule_date(start_date_iso: str, slot_number: int) -> str:
    """Slot 1 is paid in the starting month, slot n in month n."""
    return add_months(parse_iso(start_date_iso), slot_number - 1).isoformat()


def committee_end_date(start_date_iso: str, duration: int) -> str:
    return add_months(parse_iso(start_date_iso), duration).isoformat()


def validate_committee_inputs(name: str, amount, member_count, duration, start_date: str, status: str = "active") -> list[str]:
    errors: list[str] = []
    if not name.strip():
        errors.append("Committee name is required.")
    try:
        if float(amount) <= 0:
            errors.append("Monthly amount must be greater than 0.")
    except (TypeError, ValueError):
        errors.append("Monthly amount must be numeric.")
    try:
        mc = int(member_count)
        if mc < MIN_MEMBERS or mc > MAX_MEMBERS:
            errors.append(f"Member count must be between {MIN_MEMBERS} and {MAX_MEMBERS}.")
    except (TypeError, ValueError):
        errors.append("Member count must be a whole number.")
    try:
        if int(duration) < 1:
            errors.append("Duration must be at least 1 month.")
    except (TypeError, ValueError):
        errors.append("Duration must be a whole number.")
    try:
        parse_iso(start_date)
    except (TypeError, ValueError):
        errors.append("Start date must be a valid ISO date (YYYY-MM-DD).")
    if status not in COMMITTEE_STATUSES:
        errors.append(f"Status must be one of: {', '.join(COMMITTEE_STATUSES)}.")
    return errors


def validate_payment_inputs(amount) -> list[str]:
    errors: list[str] = []
    try:
        if float(amount) <= 0:
            errors.append("Amount must be > 0.")
    except (TypeError, ValueError):
        errors.append("Amount must be numeric.")
    return errors


def validate_signup_inputs(username: str, full_name: str, password: str, confirm: str) -> list[str]:
    errors: list[str] = []
    if not re.fullmatch(r"[A-Za-z0-9_.-]{3,32}", username.strip()):
        errors.append("Username must be 3-32 characters (letters, digits, _ . -).")
    if not full_name.strip():
        errors.append("Full name is required.")
    if len(password) < 6:
        errors.append("Password must be at least 6 characters.")
    if password != confirm:
        errors.append("Passwords do not match.")
    return errors


def _safe_filename(name: str) -> str:
    name = Path(name).name
    return re.sub(r"[^A-Za-z0-9_.-]", "_", name) or "upload"


def save_upload(uploaded_file, subdir: str) -> str:
    """
    Store an uploaded file (anything with .name and .getbuffer(), e.g. a
    Streamlit UploadedFile) under the upload dir and return its path.
    """
    target_dir = Path(settings.upload_dir) / subdir
    target_dir.mkdir(parents=True, exist_ok=True)
    stamp = datetime.now().strftime("%Y%m%d%H%M%S%f")
    path = target_dir / f"{stamp}_{_safe_filename(uploaded_file.name)}"
    path.write_bytes(bytes(uploaded_file.getbuffer()))
    return str(path)


def rows_to_csv_bytes(rows) -> bytes:
    df = pd.DataFrame([dict(r) for r in rows])
    return df.to_csv(index=False).encode("utf-8")


def rows_to_df(rows, columns: list[str] | None = None) -> pd.DataFrame:
    if rows:
        return pd.DataFrame([dict(r) for r in rows])
    return pd.DataFrame(columns=columns or [])


def payouts_summary_by_month() -> pd.DataFrame:
    rows = db.fetch_all(
        """
        SELECT substr(COALESCE(completed_date, scheduled_date, created_at), 1, 7) AS month,
               COUNT(*) AS payouts,
               SUM(original_amount) AS gross,
               SUM(fee_amount) AS fees,
               SUM(amount) AS net
        FROM payouts
        GROUP BY month
        ORDER BY month DESC
        """
    )
    df = pd.DataFrame([dict(r) for r in rows])
    if df.empty:
        return pd.DataFrame(columns=["month", "payouts", "gross", "fees", "net"])
    return df


def fee_income_by_committee() -> pd.DataFrame:
    rows = db.fetch_all(
        """
        SELECT c.id AS committee_id, c.name, c.duration,
               COUNT(p.id) AS payouts,
               COALESCE(SUM(p.fee_amount), 0) AS fee_income
        FROM committees c
        LEFT JOIN payouts p ON p.committee_id = c.id
        GROUP BY c.id
        ORDER BY fee_income DESC, c.name ASC
        """
    )
    df = pd.DataFrame([dict(r) for r in rows])
    if df.empty:
        return pd.DataFrame(columns=["committee_id", "name", "duration", "payouts", "fee_income"])
    return df


def collections_by_committee() -> pd.DataFrame:
    rows = db.fetch_all(
        """
        SELECT c.name,
               SUM(CASE WHEN p.status='approved' THEN p.amount ELSE 0 END) AS approved,
               SUM(CASE WHEN p.status='pending' THEN p.amount ELSE 0 END) AS pending
        FROM payments p
        JOIN committees c ON c.id = p.committee_id
        GROUP BY c.id
        ORDER BY c.name ASC
        """
    )
    df = pd.DataFrame([dict(r) for r in rows])
    if df.empty:
        return pd.DataFrame(columns=["name", "approved", "pending"])
    return df
