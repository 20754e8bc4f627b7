"""User authentication, session management, capabilities and rate limiting."""
import os
import time
import bcrypt
import secrets
import sqlite3
from typing import List, Optional
from pathlib import Path
from collections import defaultdict

from fastapi import Header, HTTPException, Request

from models import Capabilities

# --- Config ---
APP_PASSWORD = os.environ.get("VAANI_PASSWORD", "vaani2026")
ADMIN_CODE = os.environ.get("VAANI_ADMIN_CODE", "")
SESSION_TTL = 30 * 24 * 3600  # 30 days

# --- Rate Limiting ---
RATE_LIMIT_REQUESTS = 30
RATE_LIMIT_WINDOW = 60
_rate_buckets: dict = defaultdict(list)
_rate_check_counter = 0


def get_rate_limit_key(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


def rate_limit_check(ip: str) -> bool:
    now = time.time()
    cutoff = now - RATE_LIMIT_WINDOW
    _rate_buckets[ip] = [t for t in _rate_buckets[ip] if t > cutoff]
    if len(_rate_buckets[ip]) >= RATE_LIMIT_REQUESTS:
        return False
    _rate_buckets[ip].append(now)
    return True


def rate_limit_cleanup():
    global _rate_check_counter
    _rate_check_counter += 1
    if _rate_check_counter % 100 == 0:
        now = time.time()
        cutoff = now - RATE_LIMIT_WINDOW
        stale = [ip for ip, ts in _rate_buckets.items() if not ts or ts[-1] < cutoff]
        for ip in stale:
            del _rate_buckets[ip]


def enforce_rate_limit(request: Request):
    rate_limit_cleanup()
    if not rate_limit_check(get_rate_limit_key(request)):
        raise HTTPException(429, "Too many requests. Please wait a minute.")


# --- SQLite DB ---
DB_PATH = Path(os.environ.get("VAANI_DB_PATH", str(Path(__file__).parent / "vaani.db")))


def get_db() -> sqlite3.Connection:
    conn = sqlite3.connect(str(DB_PATH))
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode=WAL")
    return conn


def init_db():
    conn = get_db()
    conn.executescript("""
        CREATE TABLE IF NOT EXISTS users (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            username TEXT UNIQUE NOT NULL,
            password_hash TEXT NOT NULL,
            created_at REAL NOT NULL
        );
        CREATE TABLE IF NOT EXISTS sessions (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            user_id INTEGER NOT NULL,
            token TEXT UNIQUE NOT NULL,
            created_at REAL NOT NULL,
            expires_at REAL NOT NULL,
            FOREIGN KEY (user_id) REFERENCES users(id)
        );
        CREATE TABLE IF NOT EXISTS documents (
            collection TEXT NOT NULL,
            doc_id TEXT NOT NULL,
            data_json TEXT NOT NULL,
            created_at REAL NOT NULL,
            updated_at REAL NOT NULL,
            PRIMARY KEY (collection, doc_id)
        );
    """)
    conn.close()


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode(), bcrypt.gensalt()).decode()


def verify_password(password: str, stored: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode(), stored.encode())
    except ValueError:
        return False


def create_session(user_id: int) -> str:
    token = secrets.token_hex(32)
    now = time.time()
    conn = get_db()
    conn.execute("INSERT INTO sessions (user_id, token, created_at, expires_at) VALUES (?, ?, ?, ?)",
                 (user_id, token, now, now + SESSION_TTL))
    conn.commit()
    conn.close()
    return token


def get_user_from_token(token: str) -> Optional[dict]:
    if not token:
        return None
    conn = get_db()
    row = conn.execute(
        "SELECT s.id AS session_id, s.user_id, u.username FROM sessions s JOIN users u ON s.user_id = u.id "
        "WHERE s.token = ? AND s.expires_at > ?",
        (token, time.time())
    ).fetchone()
    conn.close()
    if row:
        return {"id": row["user_id"], "uid": str(row["user_id"]), "username": row["username"],
                "session_id": str(row["session_id"])}
    return None


def cleanup_expired_sessions() -> List[str]:
    """Delete expired sessions from the database. Returns the ids of deleted sessions."""
    now = time.time()
    conn = get_db()
    rows = conn.execute("SELECT id FROM sessions WHERE expires_at <= ?", (now,)).fetchall()
    conn.execute("DELETE FROM sessions WHERE expires_at <= ?", (now,))
    conn.commit()
    conn.close()
    return [str(row["id"]) for row in rows]


def extract_bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    if authorization.startswith("Bearer "):
        return authorization[7:]
    return None


async def require_password(x_app_password: Optional[str] = Header(default=None)):
    """FastAPI dependency that validates the X-App-Password header."""
    if x_app_password != APP_PASSWORD:
        raise HTTPException(401, "Unauthorized")


async def optional_user(authorization: Optional[str] = Header(default=None)) -> Optional[dict]:
    return get_user_from_token(extract_bearer_token(authorization))


async def require_user(authorization: Optional[str] = Header(default=None)) -> dict:
    user = get_user_from_token(extract_bearer_token(authorization))
    if not user:
        raise HTTPException(401, "Not logged in")
    return user


def capabilities_from_profile(profile: Optional[dict]) -> Capabilities:
    profile = profile or {}
    return Capabilities(
        isAdmin=bool(profile.get("isAdmin", False)),
        isSubscribed=bool(profile.get("isSubscribed", False)),
    )


def check_admin_code(code: str) -> bool:
    if not ADMIN_CODE:
        return False
    return secrets.compare_digest(code.encode(), ADMIN_CODE.encode())
