"""Tests for orchestration actions: always a state object, never an exception."""
import asyncio

import pytest

import actions
import store
from errors import ModelContractViolation, PersistenceError, TransportError
from models import (
    TRANSLATION_ERROR, INSIGHT_ERROR, EMOTION_MISSING_INPUT, CHAT_ERROR,
    LIVE_CALL_LOCKED, LIVE_CALL_ERROR, IMAGE_MISSING, IMAGE_ERROR, AUDIO_MISSING_TEXT,
    MEMO_EMPTY, MEMO_ERROR, RELIGIOUS_TEXT_ERROR,
    Capabilities, ChatState, LiveCallState, Message, ReligiousTextRequest, TranslationRequest,
)

from fakes import json_reply, text_reply, audio_reply

PRO = Capabilities(isSubscribed=True)


def run(coro):
    return asyncio.run(coro)


# --- Translation ---

def test_translate_then_speak(fake_model):
    fake_model.queue(json_reply({"translatedText": "Hola", "culturalInsights": ""}), audio_reply())
    state = run(actions.handle_translation(
        TranslationRequest(text="Hello", sourceLanguage="english", targetLanguage="spanish")))

    assert state.translatedText == "Hola"
    assert state.culturalInsights == ""
    assert state.audioData.startswith("data:audio/wav;base64,")
    assert state.sourceText == "Hello"
    assert state.sourceLang == "english"
    assert state.targetLang == "spanish"

    assert len(fake_model.calls) == 2
    speech = fake_model.calls[1]
    assert speech.modality == "AUDIO"
    assert speech.messages[0].text == "Hola"


def test_translate_transport_failure_returns_sentinel(fake_model):
    fake_model.queue(TransportError("connection reset"))
    state = run(actions.handle_translation(
        TranslationRequest(text="Hello", sourceLanguage="english", targetLanguage="spanish")))
    assert state.translatedText == TRANSLATION_ERROR
    assert state.culturalInsights == ""
    assert state.audioData == ""
    assert len(fake_model.calls) == 1


def test_empty_translation_skips_speech(fake_model):
    fake_model.queue(json_reply({"translatedText": ""}))
    state = run(actions.handle_translation(
        TranslationRequest(text="...", sourceLanguage="english", targetLanguage="french")))
    assert state.translatedText == ""
    assert state.audioData == ""
    assert len(fake_model.calls) == 1


def test_malformed_translation_skips_speech(fake_model):
    fake_model.queue(text_reply("no json here"))
    state = run(actions.handle_translation(
        TranslationRequest(text="Hello", sourceLanguage="english", targetLanguage="french")))
    assert state.translatedText == TRANSLATION_ERROR
    assert len(fake_model.calls) == 1


def test_speech_failure_keeps_translation(fake_model):
    fake_model.queue(json_reply({"translatedText": "Bonjour", "culturalInsights": "Formal greeting."}),
                     TransportError("503"))
    state = run(actions.handle_translation(
        TranslationRequest(text="Hello", sourceLanguage="english", targetLanguage="french", formality="3")))
    assert state.translatedText == "Bonjour"
    assert state.culturalInsights == "Formal greeting."
    assert state.audioData == ""
    assert state.formality == "Formal"


@pytest.mark.parametrize("slider,expected", [("1", "Casual"), ("2", None), ("3", "Formal"), (None, None)])
def test_formality_slider_mapping(fake_model, slider, expected):
    fake_model.queue(json_reply({"translatedText": ""}))
    state = run(actions.handle_translation(TranslationRequest(
        text="Hi", sourceLanguage="english", targetLanguage="german", formality=slider)))
    assert state.formality == expected
    assert f"Requested tone: {expected or ''}\n" in fake_model.calls[0].messages[-1].text


# --- Single-flow actions ---

def test_insight_failure(fake_model):
    fake_model.queue(ModelContractViolation("bad shape"))
    assert run(actions.handle_insight("A: hi")).culturalSummary == INSIGHT_ERROR


def test_emotion_missing_input_skips_model(fake_model):
    assert run(actions.handle_emotion("", "spanish")).translatedText == EMOTION_MISSING_INPUT
    assert run(actions.handle_emotion("I'm thrilled!", None)).translatedText == EMOTION_MISSING_INPUT
    assert fake_model.calls == []


def test_emotion_success(fake_model):
    fake_model.queue(json_reply({"translatedText": "¡Estoy encantado!", "detectedEmotion": "Joy"}))
    state = run(actions.handle_emotion("I'm thrilled!", "spanish"))
    assert state.translatedText == "¡Estoy encantado!"
    assert state.detectedEmotion == "Joy"


def test_religious_text_failure(fake_model):
    fake_model.queue(TransportError("timeout"))
    req = ReligiousTextRequest(text="Om", sourceLanguage="sanskrit", targetLanguage="english",
                               religiousContext="Hinduism")
    state = run(actions.analyze_religious_text(req))
    assert state.translation == RELIGIOUS_TEXT_ERROR
    assert state.explanation == ""


def test_image_text(fake_model):
    assert run(actions.extract_text_from_image("")).error == IMAGE_MISSING
    fake_model.queue(TransportError("timeout"))
    state = run(actions.extract_text_from_image("data:image/png;base64,iVBORw0KGgo="))
    assert state.text == ""
    assert state.error == IMAGE_ERROR


def test_faux_pas_check(fake_model):
    assert run(actions.check_cultural_faux_pas("hi")) is None
    assert fake_model.calls == []

    fake_model.queue(json_reply({"isFauxPas": True, "message": "Comments on weight are sensitive.",
                                 "suggestion": "You look great!"}))
    warning = run(actions.check_cultural_faux_pas("You look fat today"))
    assert warning.suggestion == "You look great!"

    fake_model.queue(json_reply({"isFauxPas": False}))
    assert run(actions.check_cultural_faux_pas("I am fat and happy")) is None

    fake_model.queue(TransportError("timeout"))
    assert run(actions.check_cultural_faux_pas("Anything at all here")) is None


def test_play_memo_audio(fake_model):
    state = run(actions.play_memo_audio("", "m1"))
    assert state.error == AUDIO_MISSING_TEXT
    assert state.memoId == "m1"

    fake_model.queue(audio_reply())
    state = run(actions.play_memo_audio("Hola", "m1"))
    assert state.audioData.startswith("data:audio/wav")
    assert state.error is None


# --- Conversations ---

def test_chat_history_grows_in_order(fake_model):
    fake_model.queue(text_reply("Hello! How are you doing?"), text_reply("Splendid, let's touch base."))
    state = run(actions.handle_chat(ChatState(), "Hi Ana"))
    assert [m.role for m in state.history] == ["user", "model"]

    state = run(actions.handle_chat(state, "Good, and the timeline?"))
    assert [m.role for m in state.history] == ["user", "model", "user", "model"]
    assert [m.text for m in state.history] == [
        "Hi Ana", "Hello! How are you doing?", "Good, and the timeline?", "Splendid, let's touch base.",
    ]
    assert state.error is None
    # second call saw the first exchange plus the new turn
    assert [m.role for m in fake_model.calls[1].messages] == ["system", "user", "model", "user"]


def test_chat_failure_keeps_user_turn(fake_model):
    fake_model.queue(TransportError("timeout"))
    prior = ChatState(history=[Message.user("Hi"), Message.model("Hello!")])
    state = run(actions.handle_chat(prior, "Still there?"))
    assert [m.role for m in state.history] == ["user", "model", "user"]
    assert state.history[-1].text == "Still there?"
    assert state.error == CHAT_ERROR
    assert len(prior.history) == 2


def test_blank_query_leaves_state(fake_model):
    prior = ChatState(history=[Message.user("Hi")])
    assert run(actions.handle_chat(prior, "   ")) is prior
    assert fake_model.calls == []


def test_scripture_chat_stores_bare_question(fake_model):
    fake_model.queue(text_reply("Arjuna is overcome with grief."))
    state = run(actions.handle_scripture_chat(ChatState(), "Why is Arjuna sad?", "Seeing Arjuna full of compassion"))
    assert state.history[0].text == "Why is Arjuna sad?"
    assert "Seeing Arjuna" in fake_model.calls[0].messages[-1].text


def test_scripture_chat_without_context_fails_softly(fake_model):
    state = run(actions.handle_scripture_chat(ChatState(), "Why?", None))
    assert state.error == CHAT_ERROR
    assert fake_model.calls == []


# --- Live call ---

def test_live_call_requires_capability(fake_model):
    state = run(actions.live_call_turn(LiveCallState(), "Hola, ¿cómo estás?", "spanish", Capabilities()))
    assert state.error == LIVE_CALL_LOCKED
    assert state.turns == []
    assert fake_model.calls == []


def test_live_call_full_pipeline(fake_model):
    fake_model.queue(
        json_reply({"translatedText": "Hello, how are you?"}),
        text_reply("I'm well, thanks! Shall we touch base on the timeline?"),
        json_reply({"translatedText": "¡Estoy bien, gracias!", "culturalInsights": "'Touch base' is an idiom."}),
        audio_reply(),
    )
    state = run(actions.live_call_turn(LiveCallState(), "Hola, ¿cómo estás?", "spanish",
                                       Capabilities(isAdmin=True)))
    assert state.error is None
    turn = state.turns[0]
    assert turn.callerLocale == "es-ES"
    assert turn.pivotText == "Hello, how are you?"
    assert turn.replyText.startswith("I'm well")
    assert turn.translatedReply == "¡Estoy bien, gracias!"
    assert turn.culturalInsights == "'Touch base' is an idiom."
    assert turn.audioData.startswith("data:audio/wav")
    assert [m.role for m in state.history] == ["user", "model"]

    first, chat, back, speech = fake_model.calls
    assert "Target Language: english" in first.messages[-1].text
    assert chat.messages[-1].text == "Hello, how are you?"
    assert "Target Language: spanish" in back.messages[-1].text
    assert speech.messages[0].text == "¡Estoy bien, gracias!"


def test_live_call_keeps_completed_stages(fake_model):
    fake_model.queue(json_reply({"translatedText": "Hello"}), TransportError("timeout"))
    state = run(actions.live_call_turn(LiveCallState(), "Hola", "spanish", PRO))
    turn = state.turns[0]
    assert turn.pivotText == "Hello"
    assert turn.replyText is None
    assert turn.error == LIVE_CALL_ERROR
    assert state.error == LIVE_CALL_ERROR
    assert [m.role for m in state.history] == ["user"]
    assert len(fake_model.calls) == 2


def test_live_call_does_not_mutate_input_state(fake_model):
    fake_model.queue(TransportError("timeout"))
    prior = LiveCallState()
    state = run(actions.live_call_turn(prior, "Hola", "spanish", PRO))
    assert prior.turns == []
    assert len(state.turns) == 1


# --- Voice memos ---

def test_save_voice_memo(fake_model, db):
    fake_model.queue(json_reply({"translatedText": "Buenos días"}))
    state = run(actions.save_voice_memo("7", "Good morning", "english", "spanish", "Greeting"))
    assert state.error is None
    assert state.memo.id
    saved = store.get("users/7/voice-memos", state.memo.id)
    assert saved["translatedText"] == "Buenos días"
    assert saved["title"] == "Greeting"


def test_save_voice_memo_failures(fake_model, db, monkeypatch):
    assert run(actions.save_voice_memo("7", "  ", "english", "spanish")).error == MEMO_EMPTY

    fake_model.queue(json_reply({"translatedText": ""}))
    assert run(actions.save_voice_memo("7", "Good morning", "english", "spanish")).error == MEMO_ERROR

    def broken_create(collection, record):
        raise PersistenceError("disk full")

    monkeypatch.setattr(store, "create", broken_create)
    fake_model.queue(json_reply({"translatedText": "Buenos días"}))
    assert run(actions.save_voice_memo("7", "Good morning", "english", "spanish")).error == MEMO_ERROR
    assert store.query("users/7/voice-memos") == []
