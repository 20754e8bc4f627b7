"""Translation history, feedback and notification routes."""
import json
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import StreamingResponse

from log import get_logger

logger = get_logger("vaani.history")

import store
from errors import PersistenceError, http_status, public_message
from models import FeedbackRequest
from persistence import bridge, translations_collection
from auth import require_user

router = APIRouter()

HISTORY_LIMIT = 100


def stream_collection(request: Request, collection: str, order_by: str, limit: Optional[int] = None):
    """SSE stream of collection snapshots, newest first."""
    async def _generate():
        snapshots = store.subscribe(collection, order_by=order_by, descending=True, limit=limit)
        try:
            async for docs in snapshots:
                yield f"data: {json.dumps({'type': 'snapshot', 'data': docs}, ensure_ascii=False)}\n\n"
                if await request.is_disconnected():
                    break
        except PersistenceError as e:
            logger.error("Snapshot stream failed", extra={"collection": collection, "detail": str(e)})
            yield f"data: {json.dumps({'type': 'error', 'message': public_message(e)})}\n\n"
        finally:
            await snapshots.aclose()

    return StreamingResponse(_generate(), media_type="text/event-stream",
                             headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"})


@router.get("/api/history", tags=["History"], summary="List saved translations")
async def list_history(user=Depends(require_user), limit: int = Query(HISTORY_LIMIT, ge=1, le=HISTORY_LIMIT)):
    try:
        return store.query(translations_collection(user["uid"]), order_by="timestamp", descending=True,
                           limit=limit)
    except PersistenceError as e:
        raise HTTPException(http_status(e), public_message(e))


@router.get("/api/history/stream", tags=["History"], summary="Stream saved translations via SSE")
async def stream_history(request: Request, user=Depends(require_user)):
    return stream_collection(request, translations_collection(user["uid"]), "timestamp", HISTORY_LIMIT)


@router.delete("/api/history/{record_id}", tags=["History"], summary="Delete a saved translation")
async def delete_history(record_id: str, user=Depends(require_user)):
    try:
        deleted = store.delete(translations_collection(user["uid"]), record_id)
    except PersistenceError as e:
        raise HTTPException(http_status(e), public_message(e))
    if not deleted:
        raise HTTPException(404, "Translation not found")
    return {"ok": True}


@router.post("/api/feedback", tags=["History"], summary="Submit a corrected translation")
async def submit_feedback(req: FeedbackRequest, user=Depends(require_user)):
    if not req.userCorrectedText.strip():
        raise HTTPException(400, "Corrected text cannot be empty")
    if len(req.userCorrectedText) > 5000:
        raise HTTPException(400, "Feedback too long")
    await bridge.record_feedback(user["session_id"], user["uid"], req)
    return {"ok": True}


@router.get("/api/notifications", tags=["History"], summary="Pop pending background notifications")
async def notifications(user=Depends(require_user)):
    return {"notifications": bridge.pop_notifications(user["session_id"])}
