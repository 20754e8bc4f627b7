"""Shared fixtures: a scripted model and a throwaway database."""
import time
from collections import defaultdict

import pytest

import auth
import llm
from persistence import bridge

from fakes import FakeModel


@pytest.fixture()
def fake_model(monkeypatch):
    fake = FakeModel()
    monkeypatch.setattr(llm, "generate", fake)
    return fake


@pytest.fixture()
def db(tmp_path, monkeypatch):
    monkeypatch.setattr(auth, "DB_PATH", tmp_path / "vaani-test.db")
    auth.init_db()
    return auth.DB_PATH


@pytest.fixture(autouse=True)
def clean_state(monkeypatch):
    monkeypatch.setattr(auth, "_rate_buckets", defaultdict(list))
    bridge.reset()
    yield
    bridge.reset()


@pytest.fixture()
def make_user(db):
    def _make(username="asha"):
        conn = auth.get_db()
        cursor = conn.execute(
            "INSERT INTO users (username, password_hash, created_at) VALUES (?, ?, ?)",
            (username, auth.hash_password("secret-pw"), time.time()),
        )
        user_id = cursor.lastrowid
        conn.commit()
        conn.close()
        token = auth.create_session(user_id)
        return {"id": user_id, "uid": str(user_id), "token": token,
                "headers": {"Authorization": f"Bearer {token}"}}
    return _make
