"""Tests for the document store and the background persistence bridge."""
import asyncio

import pytest

import persistence
import store
from errors import PersistenceError
from models import FeedbackRequest, TranslationState, TRANSLATION_ERROR
from persistence import PersistenceBridge, fingerprint, translations_collection


def run(coro):
    return asyncio.run(coro)


def _translation(text="Hola", audio="data:audio/wav;base64,AAAA"):
    return TranslationState(translatedText=text, culturalInsights="", audioData=audio,
                            sourceText="Hello", sourceLang="english", targetLang="spanish")


# --- Store ---

def test_create_get_delete(db):
    doc_id = store.create("users/1/voice-memos", {"originalText": "hi", "createdAt": 1.0})
    doc = store.get("users/1/voice-memos", doc_id)
    assert doc == {"originalText": "hi", "createdAt": 1.0, "id": doc_id}

    assert store.delete("users/1/voice-memos", doc_id) is True
    assert store.get("users/1/voice-memos", doc_id) is None
    assert store.delete("users/1/voice-memos", doc_id) is False


def test_collections_are_partitioned(db):
    store.create("users/1/translations", {"sourceText": "a", "timestamp": 1})
    assert store.query("users/2/translations") == []
    assert len(store.query("users/1/translations")) == 1


def test_query_orders_by_field(db):
    for ts in (2.0, 3.0, 1.0):
        store.create("feedback", {"timestamp": ts})
    newest_first = store.query("feedback", order_by="timestamp", descending=True)
    assert [d["timestamp"] for d in newest_first] == [3.0, 2.0, 1.0]
    assert len(store.query("feedback", order_by="timestamp", limit=2)) == 2


def test_merge_upserts(db):
    store.merge("users", "1", {"name": "Asha", "nationality": "Indian"})
    merged = store.merge("users", "1", {"isAdmin": True})
    assert merged == {"name": "Asha", "nationality": "Indian", "isAdmin": True, "id": "1"}
    assert store.get("users", "1")["isAdmin"] is True


@pytest.mark.parametrize("path", ["users/1", "", "users//translations"])
def test_rejects_document_paths(db, path):
    with pytest.raises(PersistenceError):
        store.create(path, {})


def test_sqlite_failure_becomes_persistence_error(tmp_path, monkeypatch):
    import auth
    # a directory cannot be opened as a database
    monkeypatch.setattr(auth, "DB_PATH", tmp_path)
    with pytest.raises(PersistenceError):
        store.query("feedback")


def test_subscribe_yields_fresh_snapshots(db):
    async def scenario():
        snapshots = store.subscribe("users/1/translations", order_by="timestamp", descending=True)
        first = await snapshots.__anext__()
        store.create("users/1/translations", {"sourceText": "one", "timestamp": 1})
        second = await snapshots.__anext__()
        store.create("users/1/translations", {"sourceText": "two", "timestamp": 2})
        third = await snapshots.__anext__()
        await snapshots.aclose()
        return first, second, third

    first, second, third = run(scenario())
    assert first == []
    assert [d["sourceText"] for d in second] == ["one"]
    assert [d["sourceText"] for d in third] == ["two", "one"]
    assert "users/1/translations" not in store._listeners


# --- Bridge ---

def test_fingerprint_depends_on_audio_presence():
    assert fingerprint("a", "b", True) != fingerprint("a", "b", False)
    assert fingerprint("a", "b", True) == fingerprint("a", "b", True)


def test_duplicate_translation_written_once(db):
    bridge = PersistenceBridge()

    async def scenario():
        bridge.start()
        first = await bridge.record_translation("s1", "1", _translation())
        second = await bridge.record_translation("s1", "1", _translation())
        await bridge.stop()
        return first, second

    assert run(scenario()) == (True, False)
    assert len(store.query(translations_collection("1"))) == 1


def test_changed_result_is_written_again(db):
    bridge = PersistenceBridge()
    run(bridge.record_translation("s1", "1", _translation()))
    run(bridge.record_translation("s1", "1", _translation(audio="")))
    run(bridge.record_translation("s2", "1", _translation(audio="")))
    assert len(store.query(translations_collection("1"))) == 3


def test_error_sentinels_are_not_written(db):
    bridge = PersistenceBridge()
    assert run(bridge.record_translation("s1", "1", _translation(text=TRANSLATION_ERROR))) is False
    assert run(bridge.record_translation("s1", "1", _translation(text=""))) is False
    assert store.query(translations_collection("1")) == []


def test_failed_write_notifies_and_allows_retry(db, monkeypatch):
    bridge = PersistenceBridge()
    real_create = store.create

    def broken_create(collection, record):
        raise PersistenceError("database is locked")

    monkeypatch.setattr(store, "create", broken_create)
    assert run(bridge.record_translation("s1", "1", _translation())) is True
    notes = bridge.pop_notifications("s1")
    assert len(notes) == 1
    assert notes[0]["level"] == "error"
    assert bridge.pop_notifications("s1") == []

    monkeypatch.setattr(store, "create", real_create)
    assert run(bridge.record_translation("s1", "1", _translation())) is True
    assert len(store.query(translations_collection("1"))) == 1


def test_feedback_goes_to_global_collection(db):
    bridge = PersistenceBridge()
    req = FeedbackRequest(originalTranslationId="t1", sourceText="Hello",
                          originalTranslatedText="Holla", userCorrectedText="Hola")
    run(bridge.record_feedback("s1", "1", req))
    [doc] = store.query("feedback")
    assert doc["userId"] == "1"
    assert doc["userCorrectedText"] == "Hola"
    assert doc["originalTranslationId"] == "t1"


def test_worker_survives_failures(db, monkeypatch):
    bridge = PersistenceBridge()
    calls = []
    real_create = store.create

    def flaky_create(collection, record):
        calls.append(collection)
        if len(calls) == 1:
            raise PersistenceError("disk I/O error")
        return real_create(collection, record)

    monkeypatch.setattr(store, "create", flaky_create)

    async def scenario():
        bridge.start()
        await bridge.record_translation("s1", "1", _translation())
        await bridge.record_translation("s2", "1", _translation())
        await bridge.drain()
        running = bridge.running
        await bridge.stop()
        return running

    assert run(scenario()) is True
    assert len(calls) == 2
    assert len(store.query(translations_collection("1"))) == 1
    assert len(bridge.pop_notifications("s1")) == 1


def test_forget_drops_session_state(db):
    bridge = PersistenceBridge()
    assert run(bridge.record_translation("s1", "1", _translation())) is True
    bridge._notify("s1", "error", "Could not save your translation.")
    bridge.forget("s1")
    assert "s1" not in bridge._fingerprints
    assert bridge.pop_notifications("s1") == []
    # A forgotten session may save the same result again
    assert run(bridge.record_translation("s1", "1", _translation())) is True


def test_tracked_sessions_are_bounded(db, monkeypatch):
    monkeypatch.setattr(persistence, "MAX_TRACKED_SESSIONS", 2)
    bridge = PersistenceBridge()
    for session in ("s1", "s2", "s3"):
        run(bridge.record_translation(session, "1", _translation()))
        bridge._notify(session, "error", "failed")
    assert list(bridge._fingerprints) == ["s2", "s3"]
    assert list(bridge._notifications) == ["s2", "s3"]
