from __future__ import annotations

from datetime import date

import pytest

import auth
import db
import services
from config import settings


@pytest.fixture
def database(tmp_path, monkeypatch):
    """Fresh SQLite file with the schema and the default admin."""
    monkeypatch.setattr(db, "DB_FILE", tmp_path / "committee.db")
    monkeypatch.setattr(settings, "upload_dir", str(tmp_path / "uploads"))
    db.init_db(auth.hash_password("admin123", rounds=4))
    return tmp_path / "committee.db"


@pytest.fixture
def admin_id(database) -> int:
    return auth.get_user_by_username("admin")["id"]


@pytest.fixture
def make_member(database):
    """Create a member account; verified unless told otherwise."""
    counter = {"n": 0}

    def _make(full_name: str = "Member", verified: bool = True) -> int:
        counter["n"] += 1
        user_id = auth.signup(f"member{counter['n']}", "secret1", full_name)
        if verified:
            db.execute(
                """
                UPDATE users SET cnic='35202-1234567-1', phone='03001234567', documents_submitted=1,
                    is_verified=1, admin_reviewed=1
                WHERE id=?
                """,
                (user_id,),
            )
        return user_id

    return _make


@pytest.fixture
def committee10(admin_id) -> int:
    return services.create_committee("Ten month", 5000, 10, 10, date(2025, 1, 1).isoformat(), admin_id)


@pytest.fixture
def committee5(admin_id) -> int:
    return services.create_committee("Five month", 10000, 5, 5, date(2025, 1, 31).isoformat(), admin_id)
