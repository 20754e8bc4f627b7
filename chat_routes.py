"""Conversation routes: chatbot, scripture tutor and live call."""
from fastapi import APIRouter, Depends, HTTPException, Request

import actions
import store
from errors import PersistenceError, http_status, public_message
from models import (
    LIVE_CALL_LOCKED,
    ChatState, ChatRequest, ScriptureChatRequest, LiveCallRequest,
    find_scripture_chapter,
)
from auth import capabilities_from_profile, enforce_rate_limit, require_password, require_user

router = APIRouter()

# Longest history a client may send back
MAX_HISTORY = 50


def _check_history(history: list):
    if len(history) > MAX_HISTORY:
        raise HTTPException(400, f"History too long (max {MAX_HISTORY} turns)")


@router.post("/api/chat", tags=["Chat"], summary="Talk to the practice chatbot")
async def chat(request: Request, req: ChatRequest, _pw=Depends(require_password)):
    enforce_rate_limit(request)
    _check_history(req.history)
    state = await actions.handle_chat(ChatState(history=req.history), req.query)
    return state.model_dump()


@router.post("/api/scripture-chat", tags=["Spiritual"], summary="Ask the scripture tutor")
async def scripture_chat(request: Request, req: ScriptureChatRequest, _pw=Depends(require_password)):
    enforce_rate_limit(request)
    _check_history(req.history)

    context = req.scriptureContext
    if not context:
        chapter = find_scripture_chapter(req.religion or "", req.scriptureId or "", req.chapterId or "")
        if chapter is None:
            raise HTTPException(404, "Scripture chapter not found")
        context = chapter["content"]

    state = await actions.handle_scripture_chat(ChatState(history=req.history), req.query, context)
    return state.model_dump()


@router.post("/api/live-call", tags=["Chat"], summary="Translate one utterance of a live call")
async def live_call(
    request: Request,
    req: LiveCallRequest,
    _pw=Depends(require_password),
    user=Depends(require_user),
):
    enforce_rate_limit(request)
    _check_history(req.state.history)
    try:
        profile = store.get("users", user["uid"])
    except PersistenceError as e:
        raise HTTPException(http_status(e), public_message(e))

    state = await actions.live_call_turn(req.state, req.utterance, req.callerLanguage,
                                         capabilities_from_profile(profile))
    if state.error == LIVE_CALL_LOCKED:
        raise HTTPException(403, "Live call translation is a Pro feature")
    return state.model_dump()
