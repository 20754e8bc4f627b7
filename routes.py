"""API route handlers for Vaani."""
import re as _re
import time
from typing import Optional

from log import get_logger

logger = get_logger("vaani.routes")

from fastapi import APIRouter, Depends, HTTPException, Header, Request

import llm
from contracts import describe_shape
from errors import VaaniError, http_status, public_message
from flows import FLOWS
from models import SUPPORTED_LANGUAGES, SCRIPTURE_LIBRARY, AuthRequest, PasswordChangeRequest
from persistence import bridge
from speech import language_tag
from auth import (
    enforce_rate_limit, get_db, hash_password, verify_password,
    create_session, get_user_from_token, extract_bearer_token,
    require_password, require_user,
)

from translate_routes import router as translate_router
from chat_routes import router as chat_router
from memo_routes import router as memo_router
from history_routes import router as history_router
from profile_routes import router as profile_router

router = APIRouter()
router.include_router(translate_router)
router.include_router(chat_router)
router.include_router(memo_router)
router.include_router(history_router)
router.include_router(profile_router)


# --- Flows ---

@router.get("/api/flows", tags=["Flows"], summary="List flows and their contracts")
async def list_flows():
    return {
        name: {
            "input": describe_shape(flow.contract.input),
            "output": describe_shape(flow.contract.output),
        }
        for name, flow in FLOWS.items()
    }


@router.post("/api/flows/{flow_name}", tags=["Flows"], summary="Run a single flow")
async def run_flow(flow_name: str, request: Request, _pw=Depends(require_password)):
    enforce_rate_limit(request)
    flow = FLOWS.get(flow_name)
    if flow is None:
        raise HTTPException(404, "Flow not found")
    try:
        data = await request.json()
    except ValueError:
        raise HTTPException(400, "Request body must be JSON")

    try:
        output = await flow.run(data)
    except VaaniError as e:
        raise HTTPException(http_status(e), public_message(e))
    return output.model_dump()


# --- Reference ---

@router.get("/api/languages", tags=["Reference"], summary="List supported languages")
async def get_languages():
    return {
        code: {"name": name, "locale": language_tag(code)}
        for code, name in SUPPORTED_LANGUAGES.items()
    }


@router.get("/api/scriptures", tags=["Reference"], summary="Browse the scripture library")
async def list_scriptures():
    return SCRIPTURE_LIBRARY


@router.get("/api/health", tags=["System"], summary="Health check")
async def health_check():
    model_ok = await llm.check_model_connectivity()
    return {
        "status": "ok" if model_ok else "degraded",
        "model": {"reachable": model_ok, "url": llm.MODEL_URL, "model": llm.MODEL, "tts_model": llm.TTS_MODEL},
        "persistence": {"worker": bridge.running},
    }


# --- Auth Routes ---

@router.post("/api/auth/register", tags=["Auth"], summary="Register a new user")
async def auth_register(req: AuthRequest):
    username = req.username.strip()
    password = req.password
    if not username or len(username) < 2 or len(username) > 30:
        raise HTTPException(400, "Username must be 2-30 characters")
    if not _re.match(r'^[a-zA-Z0-9_-]+$', username):
        raise HTTPException(400, "Username can only contain letters, numbers, hyphens, underscores")
    if not password or len(password) < 6:
        raise HTTPException(400, "Password must be at least 6 characters")

    conn = get_db()
    existing = conn.execute("SELECT id FROM users WHERE username = ?", (username,)).fetchone()
    if existing:
        conn.close()
        raise HTTPException(409, "Username already taken")

    pw_hash = hash_password(password)
    cursor = conn.execute("INSERT INTO users (username, password_hash, created_at) VALUES (?, ?, ?)",
                          (username, pw_hash, time.time()))
    user_id = cursor.lastrowid
    conn.commit()
    conn.close()

    logger.info("User registered", extra={"component": "auth"})
    token = create_session(user_id)
    return {"token": token, "username": username}


@router.post("/api/auth/login", tags=["Auth"], summary="Log in and get a session token")
async def auth_login(req: AuthRequest):
    username = req.username.strip()
    conn = get_db()
    row = conn.execute("SELECT id, password_hash FROM users WHERE username = ?", (username,)).fetchone()
    conn.close()
    if not row or not verify_password(req.password, row["password_hash"]):
        raise HTTPException(401, "Invalid username or password")

    token = create_session(row["id"])
    return {"token": token, "username": username}


@router.post("/api/auth/logout", tags=["Auth"], summary="Log out and invalidate token")
async def auth_logout(authorization: Optional[str] = Header(default=None)):
    token = extract_bearer_token(authorization)
    if token:
        user = get_user_from_token(token)
        if user:
            bridge.forget(user["session_id"])
        conn = get_db()
        conn.execute("DELETE FROM sessions WHERE token = ?", (token,))
        conn.commit()
        conn.close()
    return {"ok": True}


@router.get("/api/auth/me", tags=["Auth"], summary="Get current user info")
async def auth_me(authorization: Optional[str] = Header(default=None)):
    user = get_user_from_token(extract_bearer_token(authorization))
    if not user:
        raise HTTPException(401, "Not logged in")
    return {"username": user["username"], "uid": user["uid"]}


@router.post("/api/auth/password", tags=["Auth"], summary="Change the account password")
async def auth_change_password(req: PasswordChangeRequest, user=Depends(require_user)):
    if len(req.newPassword) < 6:
        raise HTTPException(400, "Password must be at least 6 characters")
    conn = get_db()
    row = conn.execute("SELECT password_hash FROM users WHERE id = ?", (user["id"],)).fetchone()
    if not row or not verify_password(req.currentPassword, row["password_hash"]):
        conn.close()
        raise HTTPException(401, "Current password is incorrect")
    conn.execute("UPDATE users SET password_hash = ? WHERE id = ?", (hash_password(req.newPassword), user["id"]))
    conn.commit()
    conn.close()
    return {"ok": True}


@router.delete("/api/auth/account", tags=["Auth"], summary="Delete the account and its documents")
async def auth_delete_account(user=Depends(require_user)):
    uid = user["uid"]
    conn = get_db()
    sessions = conn.execute("SELECT id FROM sessions WHERE user_id = ?", (user["id"],)).fetchall()
    conn.execute("DELETE FROM documents WHERE collection LIKE ? OR (collection = 'users' AND doc_id = ?)",
                 (f"users/{uid}/%", uid))
    conn.execute("DELETE FROM sessions WHERE user_id = ?", (user["id"],))
    conn.execute("DELETE FROM users WHERE id = ?", (user["id"],))
    conn.commit()
    conn.close()
    for row in sessions:
        bridge.forget(str(row["id"]))
    logger.info("Account deleted", extra={"component": "auth"})
    return {"ok": True}
