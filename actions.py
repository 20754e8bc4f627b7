"""Orchestration actions: user-facing operations built from one or more flows.

Every action returns a state object. Flow failures turn into "Error: ..."
sentinels or an `error` field; nothing raised by a flow escapes this module.
"""
import time
from typing import Optional

from log import get_logger

logger = get_logger("vaani.actions")

import flows
import store
from errors import PersistenceError
from flows import FlowInvocation
from models import (
    TRANSLATION_ERROR, INSIGHT_ERROR, EMOTION_MISSING_INPUT, EMOTION_ERROR,
    CHAT_ERROR, RELIGIOUS_TEXT_ERROR, LIVE_CALL_LOCKED, LIVE_CALL_ERROR,
    IMAGE_MISSING, IMAGE_ERROR, AUDIO_MISSING_TEXT, AUDIO_ERROR,
    MEMO_EMPTY, MEMO_ERROR,
    FORMALITY_SLIDER, PIVOT_LANGUAGE,
    Message, Capabilities, VoiceMemo,
    TranslationRequest, ReligiousTextRequest,
    TranslationState, InsightState, EmotionState, ChatState,
    ReligiousAnalysisState, ImageTextState, FauxPasWarning, PlayAudioState,
    LiveCallState, LiveCallTurn, MemoSaveState,
)
from speech import language_tag

LIVE_CALL_CONTEXT = "A spoken business call about a project timeline with a colleague in London."


def _log_failure(action: str, inv: FlowInvocation):
    logger.warning("Action step failed", exc_info=inv.error, extra={
        "action": action, "flow": inv.flow, "detail": str(inv.error),
    })


def _text_result(inv: FlowInvocation, field: str) -> Optional[str]:
    """The flow's output field when the flow succeeded with non-empty text, else None."""
    if not inv.ok:
        return None
    value = getattr(inv.output, field)
    return value or None


# --- Translation ---

async def handle_translation(request: TranslationRequest) -> TranslationState:
    formality = FORMALITY_SLIDER.get(request.formality or "")
    inv = await flows.translation_flow.invoke({
        "text": request.text,
        "sourceLanguage": request.sourceLanguage,
        "targetLanguage": request.targetLanguage,
        "culturalContext": request.culturalContext,
        "formality": formality,
    })
    if not inv.ok:
        _log_failure("translate", inv)
        return TranslationState(translatedText=TRANSLATION_ERROR, culturalInsights="", audioData="")

    translated = _text_result(inv, "translatedText")
    audio_data = ""
    # Nothing to speak when the translation came back empty
    if translated is not None:
        speech = await flows.text_to_speech_flow.invoke({"text": translated})
        if speech.ok:
            audio_data = speech.output.audioData
        else:
            _log_failure("translate", speech)

    return TranslationState(
        translatedText=inv.output.translatedText,
        culturalInsights=inv.output.culturalInsights,
        audioData=audio_data,
        sourceText=request.text,
        sourceLang=request.sourceLanguage,
        targetLang=request.targetLanguage,
        culturalContext=request.culturalContext,
        formality=formality,
    )


async def handle_insight(conversation_text: str) -> InsightState:
    inv = await flows.insight_flow.invoke({"conversationText": conversation_text})
    if not inv.ok:
        _log_failure("insight", inv)
        return InsightState(culturalSummary=INSIGHT_ERROR)
    return InsightState(culturalSummary=inv.output.culturalSummary)


async def handle_emotion(text: Optional[str], target_language: Optional[str]) -> EmotionState:
    if not text or not target_language:
        return EmotionState(translatedText=EMOTION_MISSING_INPUT)
    inv = await flows.emotion_flow.invoke({"text": text, "targetLanguage": target_language})
    if not inv.ok:
        _log_failure("emotion", inv)
        return EmotionState(translatedText=EMOTION_ERROR)
    return EmotionState(translatedText=inv.output.translatedText, detectedEmotion=inv.output.detectedEmotion)


# --- Conversations ---

async def _converse(action: str, flow: flows.Flow, state: ChatState, query: str, **extra) -> ChatState:
    if not query or not query.strip():
        return state

    prior = list(state.history)
    history = prior + [Message.user(query)]
    inv = await flow.invoke({"query": query, "history": prior, **extra})
    if not inv.ok:
        _log_failure(action, inv)
        return ChatState(history=history, error=CHAT_ERROR)
    return ChatState(history=history + [Message.model(inv.output.response)])


async def handle_chat(state: ChatState, query: str) -> ChatState:
    return await _converse("chat", flows.chatbot_flow, state, query)


async def handle_scripture_chat(state: ChatState, query: str, scripture_context: Optional[str]) -> ChatState:
    return await _converse("scripture-chat", flows.scripture_tutor_flow, state, query,
                           scriptureContext=scripture_context)


async def analyze_religious_text(request: ReligiousTextRequest) -> ReligiousAnalysisState:
    inv = await flows.religious_text_flow.invoke(request.model_dump())
    if not inv.ok:
        _log_failure("religious-text", inv)
        return ReligiousAnalysisState(translation=RELIGIOUS_TEXT_ERROR)
    return ReligiousAnalysisState(translation=inv.output.translation, explanation=inv.output.explanation)


# --- Media ---

async def extract_text_from_image(image_data_uri: Optional[str]) -> ImageTextState:
    if not image_data_uri:
        return ImageTextState(text="", error=IMAGE_MISSING)
    inv = await flows.image_to_text_flow.invoke({"imageDataUri": image_data_uri})
    if not inv.ok:
        _log_failure("image-text", inv)
        return ImageTextState(text="", error=IMAGE_ERROR)
    return ImageTextState(text=inv.output.text)


async def check_cultural_faux_pas(text: Optional[str]) -> Optional[FauxPasWarning]:
    """Passive check while the user types. Every failure is silent."""
    if not text:
        return None
    inv = await flows.faux_pas_flow.invoke({"text": text})
    if not inv.ok:
        logger.debug("Faux-pas check failed", extra={"flow": inv.flow, "detail": str(inv.error)})
        return None
    if inv.output.isFauxPas:
        return FauxPasWarning(message=inv.output.message, suggestion=inv.output.suggestion)
    return None


async def play_memo_audio(text: Optional[str], memo_id: Optional[str] = None) -> PlayAudioState:
    if not text:
        return PlayAudioState(error=AUDIO_MISSING_TEXT, memoId=memo_id)
    inv = await flows.text_to_speech_flow.invoke({"text": text})
    if not inv.ok:
        _log_failure("play-audio", inv)
        return PlayAudioState(error=AUDIO_ERROR, memoId=memo_id)
    return PlayAudioState(audioData=inv.output.audioData, memoId=memo_id)


# --- Live call ---

def _abort_call(state: LiveCallState, turn: LiveCallTurn, inv: FlowInvocation) -> LiveCallState:
    _log_failure("live-call", inv)
    turn.error = LIVE_CALL_ERROR
    state.error = LIVE_CALL_ERROR
    return state


async def live_call_turn(state: LiveCallState, utterance: str, caller_language: str,
                         capabilities: Capabilities) -> LiveCallState:
    """Run one caller utterance through the call pipeline.

    Stages: caller speech to the pivot language, bot reply in the pivot
    language, reply back to the caller's language with cultural notes,
    speech for the translated reply. A failed stage stops the pipeline and
    keeps whatever the earlier stages produced.
    """
    state = state.model_copy(deep=True)
    if not capabilities.live_call:
        state.error = LIVE_CALL_LOCKED
        return state
    if not utterance or not utterance.strip():
        return state

    state.error = None
    turn = LiveCallTurn(callerText=utterance, callerLocale=language_tag(caller_language))
    state.turns.append(turn)

    inv = await flows.translation_flow.invoke({
        "text": utterance, "sourceLanguage": caller_language, "targetLanguage": PIVOT_LANGUAGE,
    })
    turn.pivotText = _text_result(inv, "translatedText")
    if turn.pivotText is None:
        return _abort_call(state, turn, inv)

    prior = list(state.history)
    state.history.append(Message.user(turn.pivotText))
    inv = await flows.chatbot_flow.invoke({"query": turn.pivotText, "history": prior})
    if not inv.ok:
        return _abort_call(state, turn, inv)
    turn.replyText = inv.output.response
    state.history.append(Message.model(turn.replyText))

    inv = await flows.translation_flow.invoke({
        "text": turn.replyText,
        "sourceLanguage": PIVOT_LANGUAGE,
        "targetLanguage": caller_language,
        "culturalContext": LIVE_CALL_CONTEXT,
    })
    turn.translatedReply = _text_result(inv, "translatedText")
    if turn.translatedReply is None:
        return _abort_call(state, turn, inv)
    turn.culturalInsights = inv.output.culturalInsights

    inv = await flows.text_to_speech_flow.invoke({"text": turn.translatedReply})
    if not inv.ok:
        return _abort_call(state, turn, inv)
    turn.audioData = inv.output.audioData
    return state


# --- Voice memos ---

async def save_voice_memo(uid: str, transcript: str, source_lang: str, target_lang: str,
                          title: Optional[str] = None) -> MemoSaveState:
    if not transcript or not transcript.strip():
        return MemoSaveState(error=MEMO_EMPTY)

    inv = await flows.translation_flow.invoke({
        "text": transcript, "sourceLanguage": source_lang, "targetLanguage": target_lang,
    })
    translated = _text_result(inv, "translatedText")
    if translated is None:
        if inv.error is not None:
            _log_failure("voice-memo", inv)
        return MemoSaveState(error=MEMO_ERROR)

    memo = VoiceMemo(
        originalText=transcript,
        translatedText=translated,
        sourceLang=source_lang,
        targetLang=target_lang,
        title=title or None,
        createdAt=time.time(),
    )
    try:
        memo.id = store.create(f"users/{uid}/voice-memos", memo.model_dump(exclude={"id"}))
    except PersistenceError as e:
        logger.error("Voice memo write failed", exc_info=e, extra={"action": "voice-memo"})
        return MemoSaveState(error=MEMO_ERROR)
    return MemoSaveState(memo=memo)
