"""Profile and capability routes."""
from fastapi import APIRouter, Depends, HTTPException

from log import get_logger

logger = get_logger("vaani.profile")

import store
from errors import PersistenceError, http_status, public_message
from models import ProfileUpdate, AdminUnlockRequest
from auth import capabilities_from_profile, check_admin_code, require_user

router = APIRouter()


def _profile_response(profile: dict) -> dict:
    caps = capabilities_from_profile(profile)
    return {"profile": profile, "capabilities": {**caps.model_dump(), "liveCall": caps.live_call}}


@router.get("/api/profile", tags=["Profile"], summary="Get the caller's profile")
async def get_profile(user=Depends(require_user)):
    try:
        profile = store.get("users", user["uid"])
    except PersistenceError as e:
        raise HTTPException(http_status(e), public_message(e))
    return _profile_response(profile or {"id": user["uid"]})


@router.put("/api/profile", tags=["Profile"], summary="Create or update the caller's profile")
async def update_profile(req: ProfileUpdate, user=Depends(require_user)):
    try:
        profile = store.merge("users", user["uid"], req.model_dump(mode="json", exclude_unset=True))
    except PersistenceError as e:
        raise HTTPException(http_status(e), public_message(e))
    return _profile_response(profile)


@router.post("/api/profile/admin-unlock", tags=["Profile"], summary="Unlock founder features")
async def admin_unlock(req: AdminUnlockRequest, user=Depends(require_user)):
    if not check_admin_code(req.code):
        logger.warning("Admin unlock rejected", extra={"component": "profile"})
        raise HTTPException(403, "Incorrect secret code")
    try:
        profile = store.merge("users", user["uid"], {"isAdmin": True})
    except PersistenceError as e:
        raise HTTPException(http_status(e), public_message(e))
    logger.info("Admin features unlocked", extra={"component": "profile"})
    return _profile_response(profile)
