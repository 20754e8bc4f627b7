"""Voice memo routes."""
from fastapi import APIRouter, Depends, HTTPException, Request

import actions
import store
from errors import PersistenceError, http_status, public_message
from models import MemoCreateRequest, PlayAudioRequest
from history_routes import stream_collection
from auth import enforce_rate_limit, require_password, require_user

router = APIRouter()


def memos_collection(uid: str) -> str:
    return f"users/{uid}/voice-memos"


@router.post("/api/memos", tags=["Memos"], summary="Translate a recorded transcript and save it")
async def create_memo(request: Request, req: MemoCreateRequest, _pw=Depends(require_password),
                      user=Depends(require_user)):
    enforce_rate_limit(request)
    state = await actions.save_voice_memo(user["uid"], req.transcript, req.sourceLang, req.targetLang, req.title)
    return state.model_dump()


@router.get("/api/memos", tags=["Memos"], summary="List voice memos")
async def list_memos(user=Depends(require_user)):
    try:
        return store.query(memos_collection(user["uid"]), order_by="createdAt", descending=True)
    except PersistenceError as e:
        raise HTTPException(http_status(e), public_message(e))


@router.get("/api/memos/stream", tags=["Memos"], summary="Stream voice memos via SSE")
async def stream_memos(request: Request, user=Depends(require_user)):
    return stream_collection(request, memos_collection(user["uid"]), "createdAt")


@router.delete("/api/memos/{memo_id}", tags=["Memos"], summary="Delete a voice memo")
async def delete_memo(memo_id: str, user=Depends(require_user)):
    try:
        deleted = store.delete(memos_collection(user["uid"]), memo_id)
    except PersistenceError as e:
        raise HTTPException(http_status(e), public_message(e))
    if not deleted:
        raise HTTPException(404, "Memo not found")
    return {"ok": True}


@router.post("/api/memos/play", tags=["Memos"], summary="Synthesize speech for a memo")
async def play_memo(request: Request, req: PlayAudioRequest, _pw=Depends(require_password),
                    user=Depends(require_user)):
    enforce_rate_limit(request)
    text = req.textToPlay
    if not text and req.memoId:
        try:
            memo = store.get(memos_collection(user["uid"]), req.memoId)
        except PersistenceError as e:
            raise HTTPException(http_status(e), public_message(e))
        if memo is None:
            raise HTTPException(404, "Memo not found")
        text = memo.get("translatedText")
    return (await actions.play_memo_audio(text, req.memoId)).model_dump()
