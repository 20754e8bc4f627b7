"""Translation, emotion, insight, faux-pas, image and religious-text routes."""
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request

from log import get_logger

logger = get_logger("vaani.translate")

import actions
from models import (
    TRANSLATION_ERROR,
    TranslationRequest, InsightRequest, EmotionRequest, FauxPasRequest,
    ImageTextRequest, ReligiousTextRequest,
)
from persistence import bridge
from auth import enforce_rate_limit, optional_user, require_password

router = APIRouter()

MAX_INPUT_LEN = 5000


def _check_length(*values: Optional[str]):
    for value in values:
        if value and len(value) > MAX_INPUT_LEN:
            raise HTTPException(400, f"Input too long (max {MAX_INPUT_LEN} characters)")


@router.post("/api/translate", tags=["Translate"], summary="Translate text and synthesize speech")
async def translate(
    request: Request,
    req: TranslationRequest,
    _pw=Depends(require_password),
    user: Optional[dict] = Depends(optional_user),
):
    enforce_rate_limit(request)
    _check_length(req.text, req.culturalContext)

    state = await actions.handle_translation(req)
    saved = False
    if user and state.translatedText != TRANSLATION_ERROR:
        saved = await bridge.record_translation(user["session_id"], user["uid"], state)
    logger.info("Translation served", extra={"endpoint": "/api/translate", "detail": "saved" if saved else None})
    return state.model_dump()


@router.post("/api/insight", tags=["Translate"], summary="Summarize cultural insights of a conversation")
async def insight(request: Request, req: InsightRequest, _pw=Depends(require_password)):
    enforce_rate_limit(request)
    _check_length(req.conversationText)
    return (await actions.handle_insight(req.conversationText)).model_dump()


@router.post("/api/emotion", tags=["Translate"], summary="Emotion-preserving translation")
async def emotion(request: Request, req: EmotionRequest, _pw=Depends(require_password)):
    enforce_rate_limit(request)
    _check_length(req.text)
    return (await actions.handle_emotion(req.text, req.targetLanguage)).model_dump()


@router.post("/api/faux-pas", tags=["Translate"], summary="Check text for a cultural faux-pas")
async def faux_pas(req: FauxPasRequest, _pw=Depends(require_password)):
    _check_length(req.text)
    warning = await actions.check_cultural_faux_pas(req.text)
    return {"warning": warning.model_dump() if warning else None}


@router.post("/api/image-text", tags=["Translate"], summary="Extract text from a photo")
async def image_text(request: Request, req: ImageTextRequest, _pw=Depends(require_password)):
    enforce_rate_limit(request)
    return (await actions.extract_text_from_image(req.imageDataUri)).model_dump()


@router.post("/api/religious-text", tags=["Spiritual"], summary="Translate and explain a religious passage")
async def religious_text(request: Request, req: ReligiousTextRequest, _pw=Depends(require_password)):
    enforce_rate_limit(request)
    _check_length(req.text)
    return (await actions.analyze_religious_text(req)).model_dump()
