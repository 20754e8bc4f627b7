"""LLM interaction (Gemini REST API), request building, audio encoding, and post-processing."""
import os
import io
import json
import re as _re
import time
import wave
import base64
import binascii
from dataclasses import dataclass
from typing import Optional

from log import get_logger

logger = get_logger("vaani.llm")

import httpx

from errors import TransportError
from models import Segment, split_data_uri
from prompts import PromptPayload

# --- Config ---
GEMINI_API_KEY = (
    os.environ.get("VAANI_GEMINI_API_KEY")
    or os.environ.get("GEMINI_API_KEY")
    or os.environ.get("GOOGLE_API_KEY", "")
)
MODEL_URL = os.environ.get("VAANI_MODEL_URL", "https://generativelanguage.googleapis.com/v1beta")
MODEL = os.environ.get("VAANI_MODEL", "gemini-2.5-flash")
TTS_MODEL = os.environ.get("VAANI_TTS_MODEL", "gemini-2.5-flash-preview-tts")
TTS_VOICE = os.environ.get("VAANI_TTS_VOICE", "Algenib")
MODEL_TIMEOUT = float(os.environ.get("VAANI_MODEL_TIMEOUT", "60"))

# Cultural and religious discussion trips the default filters constantly,
# so every category is set to the non-blocking level.
HARM_CATEGORIES = (
    "HARM_CATEGORY_HARASSMENT",
    "HARM_CATEGORY_HATE_SPEECH",
    "HARM_CATEGORY_SEXUALLY_EXPLICIT",
    "HARM_CATEGORY_DANGEROUS_CONTENT",
)
SAFETY_SETTINGS = [{"category": c, "threshold": "BLOCK_NONE"} for c in HARM_CATEGORIES]

# The speech model returns raw little-endian PCM
PCM_SAMPLE_RATE = 24000
PCM_CHANNELS = 1
PCM_SAMPLE_WIDTH = 2


@dataclass
class ModelResponse:
    text: str = ""
    audio: Optional[bytes] = None
    audio_mime: Optional[str] = None
    finish_reason: Optional[str] = None


# --- Request / response mapping ---

def _part(segment: Segment) -> dict:
    if segment.media is not None:
        inline = split_data_uri(segment.media.url)
        if inline:
            mime, data = inline
            return {"inlineData": {"mimeType": mime, "data": data}}
        return {"fileData": {"fileUri": segment.media.url,
                             "mimeType": segment.media.contentType or "application/octet-stream"}}
    return {"text": segment.text}


def build_request(payload: PromptPayload) -> dict:
    body = {
        "contents": [
            {"role": m.role, "parts": [_part(s) for s in m.content]}
            for m in payload.turns
        ],
        "safetySettings": SAFETY_SETTINGS,
    }
    system = payload.system
    if system is not None:
        body["systemInstruction"] = {"parts": [_part(s) for s in system.content]}

    generation = {}
    if payload.output_schema:
        generation["responseMimeType"] = "application/json"
        generation["responseSchema"] = payload.output_schema
    if payload.modality == "AUDIO":
        generation["responseModalities"] = ["AUDIO"]
        generation["speechConfig"] = {
            "voiceConfig": {"prebuiltVoiceConfig": {"voiceName": payload.voice or TTS_VOICE}},
        }
    if generation:
        body["generationConfig"] = generation
    return body


def parse_response(data: dict) -> ModelResponse:
    """Map a generateContent envelope to a ModelResponse. Raises ValueError on a malformed envelope."""
    if not isinstance(data, dict):
        raise ValueError("response is not an object")
    candidates = data.get("candidates") or []
    if not isinstance(candidates, list):
        raise ValueError("candidates is not a list")
    if not candidates:
        feedback = data.get("promptFeedback") or {}
        if not isinstance(feedback, dict):
            raise ValueError("promptFeedback is not an object")
        return ModelResponse(finish_reason=feedback.get("blockReason"))

    candidate = candidates[0]
    if not isinstance(candidate, dict):
        raise ValueError("candidate is not an object")
    content = candidate.get("content") or {}
    if not isinstance(content, dict):
        raise ValueError("content is not an object")
    parts = content.get("parts") or []
    if not isinstance(parts, list):
        raise ValueError("parts is not a list")

    result = ModelResponse(finish_reason=candidate.get("finishReason"))
    texts = []
    for part in parts:
        if not isinstance(part, dict):
            continue
        if "text" in part:
            if not isinstance(part["text"], str):
                raise ValueError("part text is not a string")
            texts.append(part["text"])
        inline = part.get("inlineData")
        if inline and inline.get("data") and result.audio is None:
            result.audio = base64.b64decode(inline["data"])
            result.audio_mime = inline.get("mimeType")
    result.text = "".join(texts)
    return result


async def generate(payload: PromptPayload) -> ModelResponse:
    """Send one prompt to the model. Raises TransportError on any network-level failure."""
    model = payload.model or MODEL
    url = f"{MODEL_URL}/models/{model}:generateContent"
    start = time.time()
    try:
        async with httpx.AsyncClient(timeout=MODEL_TIMEOUT) as client:
            resp = await client.post(
                url,
                json=build_request(payload),
                headers={"x-goog-api-key": GEMINI_API_KEY},
            )
    except httpx.HTTPError as e:
        logger.warning("Model request failed", extra={"component": "model", "detail": str(e)})
        raise TransportError(f"model request failed: {e}") from e

    duration_ms = round((time.time() - start) * 1000)
    if resp.status_code != 200:
        logger.warning("Model returned an error status", extra={
            "component": "model", "status_code": resp.status_code, "duration_ms": duration_ms,
        })
        raise TransportError(f"model returned HTTP {resp.status_code}", status_code=resp.status_code)

    try:
        result = parse_response(resp.json())
    except (ValueError, TypeError, KeyError, binascii.Error, AttributeError) as e:
        raise TransportError("model returned a malformed response") from e

    logger.debug("Model call finished", extra={"component": "model", "detail": model, "duration_ms": duration_ms})
    return result


async def check_model_connectivity() -> bool:
    try:
        async with httpx.AsyncClient(timeout=10) as client:
            resp = await client.get(f"{MODEL_URL}/models/{MODEL}",
                                    headers={"x-goog-api-key": GEMINI_API_KEY})
            return resp.status_code == 200
    except httpx.HTTPError:
        logger.warning("Model API not reachable", extra={"component": "model"})
        return False


# --- Helpers ---

def parse_json_object(text: str) -> Optional[dict]:
    try:
        parsed = json.loads(text)
    except json.JSONDecodeError:
        match = _re.search(r'\{.*\}', text, _re.DOTALL)
        if not match:
            return None
        try:
            parsed = json.loads(match.group())
        except json.JSONDecodeError:
            return None
    return parsed if isinstance(parsed, dict) else None


def _pcm_rate(mime: Optional[str]) -> int:
    match = _re.search(r"rate=(\d+)", mime or "")
    return int(match.group(1)) if match else PCM_SAMPLE_RATE


def pcm_to_wav(pcm: bytes, sample_rate: int = PCM_SAMPLE_RATE,
               channels: int = PCM_CHANNELS, sample_width: int = PCM_SAMPLE_WIDTH) -> bytes:
    buf = io.BytesIO()
    with wave.open(buf, "wb") as wav:
        wav.setnchannels(channels)
        wav.setsampwidth(sample_width)
        wav.setframerate(sample_rate)
        wav.writeframes(pcm)
    return buf.getvalue()


def audio_data_uri(audio: bytes, mime: Optional[str] = None) -> str:
    """Encode model audio as a playable WAV data URI."""
    if mime and "wav" in mime:
        wav_bytes = audio
    else:
        wav_bytes = pcm_to_wav(audio, sample_rate=_pcm_rate(mime))
    return "data:audio/wav;base64," + base64.b64encode(wav_bytes).decode("ascii")
