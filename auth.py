"""
auth.py
Authentication utilities (bcrypt hashing, verify, login, signup, change password).
"""

from __future__ import annotations

import logging

import bcrypt
import db

logger = logging.getLogger(__name__)


class AuthError(Exception):
    pass


def _to_bcrypt_secret(password: str) -> bytes:
    """
    bcrypt only uses the first 72 BYTES of the password.
    We truncate to 72 bytes to avoid ValueError and to make behavior explicit.
    """
    pw = password.encode("utf-8")
    if len(pw) > 72:
        pw = pw[:72]
    return pw


def hash_password(password: str, rounds: int = 12) -> str:
    """
    Returns a bcrypt hash as a UTF-8 string (stored in SQLite).
    """
    secret = _to_bcrypt_secret(password)
    salt = bcrypt.gensalt(rounds=rounds)
    hashed = bcrypt.hashpw(secret, salt)
    return hashed.decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    secret = _to_bcrypt_secret(password)
    stored = password_hash.encode("utf-8")
    return bcrypt.checkpw(secret, stored)


def get_user_by_username(username: str):
    return db.fetch_one("SELECT * FROM users WHERE username = ?", (username,))


def get_user_by_id(user_id: int):
    return db.fetch_one("SELECT * FROM users WHERE id = ?", (user_id,))


def login(username: str, password: str):
    """Return the user row on success, None otherwise."""
    user = get_user_by_username(username)
    if not user:
        return None
    if not verify_password(password, user["password_hash"]):
        logger.info("Failed login for %s", username)
        return None
    return user


def signup(username: str, password: str, full_name: str, email: str | None = None, phone: str | None = None) -> int:
    """Create a member account (role 'user'). Returns the new user id."""
    username = username.strip()
    if get_user_by_username(username):
        raise AuthError(f"Username '{username}' is already taken.")
    now = db.now_iso()
    user_id = db.execute(
        """
        INSERT INTO users(username, password_hash, full_name, email, phone, role, created_at, updated_at)
        VALUES(?,?,?,?,?,'user',?,?)
        """,
        (username, hash_password(password), full_name.strip(), email or None, phone or None, now, now),
    )
    logger.info("New member account %s (id %s)", username, user_id)
    return user_id


def change_password(username: str, new_password: str) -> None:
    new_hash = hash_password(new_password)
    db.execute(
        "UPDATE users SET password_hash = ?, updated_at = ? WHERE username = ?",
        (new_hash, db.now_iso(), username),
    )
    user = get_user_by_username(username)
    if user and user["role"] == "admin":
        db.clear_force_password_change()
