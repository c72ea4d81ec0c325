"""
db.py
SQLite helpers + initialization (creates DB/tables, inserts default admin, etc.)
"""

from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from datetime import datetime

from config import settings

logger = logging.getLogger(__name__)

DB_FILE = Path(settings.db_path)


class SlotTakenError(Exception):
    """Another payout already holds this (committee, slot) pair."""

    def __init__(self, committee_id: int, slot_number: int):
        super().__init__(f"Slot {slot_number} of committee {committee_id} is already reserved")
        self.committee_id = committee_id
        self.slot_number = slot_number


class DuplicatePayoutError(Exception):
    """The member already has a payout in this committee."""


def now_iso() -> str:
    return datetime.now().isoformat(timespec="seconds")


@contextmanager
def get_conn():
    conn = sqlite3.connect(DB_FILE, check_same_thread=False)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys=ON")
    try:
        yield conn
        conn.commit()
    finally:
        conn.close()


def execute(sql: str, params: tuple = (), conn: sqlite3.Connection | None = None) -> int:
    if conn is not None:
        return conn.execute(sql, params).lastrowid
    with get_conn() as c:
        cur = c.execute(sql, params)
        return cur.lastrowid


def fetch_one(sql: str, params: tuple = ()):
    with get_conn() as conn:
        cur = conn.execute(sql, params)
        return cur.fetchone()


def fetch_all(sql: str, params: tuple = ()) -> list[sqlite3.Row]:
    with get_conn() as conn:
        cur = conn.execute(sql, params)
        rows = cur.fetchall()
    logger.debug("fetch_all -> %d rows: %s %s", len(rows), " ".join(sql.split()), params)
    return rows


def _create_tables() -> None:
    with get_conn() as conn:
        conn.executescript(
            """
            CREATE TABLE IF NOT EXISTS users (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                username TEXT NOT NULL UNIQUE,
                password_hash TEXT NOT NULL,
                full_name TEXT NOT NULL,
                email TEXT,
                phone TEXT,
                cnic TEXT,
                address TEXT,
                city TEXT,
                role TEXT NOT NULL CHECK(role IN ('admin','user')),
                bank_name TEXT,
                account_number TEXT,
                account_holder TEXT,
                documents_submitted INTEGER NOT NULL DEFAULT 0,
                guarantors_submitted INTEGER NOT NULL DEFAULT 0,
                submitted_at TEXT,
                is_verified INTEGER NOT NULL DEFAULT 0,
                admin_reviewed INTEGER NOT NULL DEFAULT 0,
                reviewed_by INTEGER,
                reviewed_at TEXT,
                verification_remarks TEXT,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            );

            -- One row per uploaded verification document, replaced on re-upload
            CREATE TABLE IF NOT EXISTS user_documents (
                user_id INTEGER NOT NULL,
                doc_type TEXT NOT NULL CHECK(doc_type IN ('cnic_front','cnic_back','bank_statement','salary_slip','utility_bill')),
                url TEXT NOT NULL,
                uploaded_at TEXT NOT NULL,
                PRIMARY KEY(user_id, doc_type),
                FOREIGN KEY(user_id) REFERENCES users(id) ON DELETE CASCADE
            );

            CREATE TABLE IF NOT EXISTS guarantors (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id INTEGER NOT NULL,
                full_name TEXT NOT NULL,
                phone_number TEXT NOT NULL,
                cnic_number TEXT NOT NULL,
                relationship TEXT NOT NULL,
                cnic_front_url TEXT,
                cnic_back_url TEXT,
                created_at TEXT NOT NULL,
                FOREIGN KEY(user_id) REFERENCES users(id) ON DELETE CASCADE
            );

            CREATE TABLE IF NOT EXISTS committees (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT NOT NULL,
                amount REAL NOT NULL CHECK(amount > 0),
                member_count INTEGER NOT NULL CHECK(member_count BETWEEN 5 AND 100),
                duration INTEGER NOT NULL CHECK(duration >= 1),
                start_date TEXT NOT NULL,
                status TEXT NOT NULL CHECK(status IN ('pending','active','completed')),
                admin_id INTEGER,
                current_round INTEGER NOT NULL DEFAULT 1,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS committee_members (
                committee_id INTEGER NOT NULL,
                user_id INTEGER NOT NULL,
                joined_at TEXT NOT NULL,
                PRIMARY KEY(committee_id, user_id),
                FOREIGN KEY(committee_id) REFERENCES committees(id) ON DELETE CASCADE,
                FOREIGN KEY(user_id) REFERENCES users(id) ON DELETE CASCADE
            );

            CREATE TABLE IF NOT EXISTS join_requests (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id INTEGER NOT NULL,
                committee_id INTEGER NOT NULL,
                preferred_payout_slot INTEGER,
                status TEXT NOT NULL CHECK(status IN ('pending','approved','rejected')),
                requested_at TEXT NOT NULL,
                reviewed_at TEXT,
                reviewed_by INTEGER,
                remarks TEXT,
                FOREIGN KEY(user_id) REFERENCES users(id) ON DELETE CASCADE,
                FOREIGN KEY(committee_id) REFERENCES committees(id) ON DELETE CASCADE
            );

            CREATE TABLE IF NOT EXISTS payments (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id INTEGER NOT NULL,
                committee_id INTEGER NOT NULL,
                amount REAL NOT NULL CHECK(amount > 0),
                status TEXT NOT NULL CHECK(status IN ('pending','approved','rejected')),
                receipt_url TEXT,
                remarks TEXT,
                submitted_at TEXT NOT NULL,
                reviewed_at TEXT,
                reviewed_by INTEGER,
                FOREIGN KEY(user_id) REFERENCES users(id) ON DELETE CASCADE,
                FOREIGN KEY(committee_id) REFERENCES committees(id) ON DELETE CASCADE
            );

            CREATE TABLE IF NOT EXISTS payouts (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                committee_id INTEGER NOT NULL,
                user_id INTEGER NOT NULL,
                slot_number INTEGER NOT NULL CHECK(slot_number >= 1),
                original_amount REAL NOT NULL CHECK(original_amount > 0),
                fee_amount REAL NOT NULL DEFAULT 0,
                amount REAL NOT NULL,
                fee_percentage REAL NOT NULL DEFAULT 0,
                fee_reason TEXT,
                status TEXT NOT NULL CHECK(status IN ('pending','completed')),
                scheduled_date TEXT,
                completed_date TEXT,
                initiated_by INTEGER,
                round INTEGER,
                receipt_url TEXT,
                created_at TEXT NOT NULL,
                UNIQUE(committee_id, slot_number),
                UNIQUE(committee_id, user_id),
                FOREIGN KEY(committee_id) REFERENCES committees(id) ON DELETE CASCADE,
                FOREIGN KEY(user_id) REFERENCES users(id) ON DELETE CASCADE
            );

            CREATE TABLE IF NOT EXISTS notifications (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id INTEGER NOT NULL,
                title TEXT NOT NULL,
                message TEXT NOT NULL,
                type TEXT NOT NULL,
                read INTEGER NOT NULL DEFAULT 0,
                created_at TEXT NOT NULL,
                FOREIGN KEY(user_id) REFERENCES users(id) ON DELETE CASCADE
            );

            -- Small settings table (used to force password change on first login)
            CREATE TABLE IF NOT EXISTS app_settings (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL
            );
            """
        )


def _get_setting(key: str, default: str | None = None) -> str | None:
    row = fetch_one("SELECT value FROM app_settings WHERE key = ?", (key,))
    if row:
        return str(row["value"])
    return default


def _set_setting(key: str, value: str) -> None:
    execute(
        """
        INSERT INTO app_settings(key, value) VALUES(?, ?)
        ON CONFLICT(key) DO UPDATE SET value=excluded.value
        """,
        (key, value),
    )


def init_db(default_admin_hash: str) -> None:
    """
    Initialize the database.
    - Create tables
    - Insert default admin (admin / configured password) if no admin exists
    - Force password change on first login
    """
    DB_FILE.parent.mkdir(parents=True, exist_ok=True)
    _create_tables()

    admin = fetch_one("SELECT id FROM users WHERE role = 'admin' LIMIT 1")
    if not admin:
        now = now_iso()
        execute(
            """
            INSERT INTO users(username, password_hash, full_name, role, is_verified, admin_reviewed,
                              documents_submitted, created_at, updated_at)
            VALUES(?,?,?,?,1,1,1,?,?)
            """,
            ("admin", default_admin_hash, "Administrator", "admin", now, now),
        )
        _set_setting("force_password_change", "1")
        logger.info("Created default admin user in %s", DB_FILE)
    else:
        # ensure setting exists
        if _get_setting("force_password_change") is None:
            _set_setting("force_password_change", "0")


def is_force_password_change() -> bool:
    val = fetch_one("SELECT value FROM app_settings WHERE key = ?", ("force_password_change",))
    return bool(val and str(val["value"]) == "1")


def clear_force_password_change() -> None:
    _set_setting("force_password_change", "0")


def reserve_payout(payout: dict, conn: sqlite3.Connection | None = None) -> int:
    """
    Insert a payout row. The (committee_id, slot_number) unique constraint makes
    the insert the atomic check-and-reserve step: a taken slot raises SlotTakenError.
    """
    cols = ", ".join(payout)
    marks = ", ".join("?" for _ in payout)
    sql = f"INSERT INTO payouts({cols}) VALUES({marks})"
    try:
        return execute(sql, tuple(payout.values()), conn=conn)
    except sqlite3.IntegrityError as exc:
        msg = str(exc)
        if "UNIQUE" in msg and "payouts.slot_number" in msg:
            logger.warning(
                "Slot %s of committee %s taken by a concurrent reservation",
                payout.get("slot_number"), payout.get("committee_id"),
            )
            raise SlotTakenError(payout["committee_id"], payout["slot_number"]) from exc
        if "UNIQUE" in msg and "payouts.user_id" in msg:
            raise DuplicatePayoutError(
                f"User {payout.get('user_id')} already has a payout in committee {payout.get('committee_id')}"
            ) from exc
        raise
