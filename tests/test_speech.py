"""Tests for the speech-to-text boundary."""
from speech import SpeechSession, language_tag


def test_language_tag_table():
    assert language_tag("hindi") == "hi-IN"
    assert language_tag("Spanish") == "es-ES"
    assert language_tag("japanese") == "ja-JP"


def test_unmapped_language_falls_back():
    assert language_tag("klingon") == "en-US"
    assert language_tag(None) == "en-US"


def test_session_lifecycle():
    session = SpeechSession()
    assert session.start_listening("french") == "fr-FR"
    assert session.is_listening

    session.ingest([("Bonjour ", True), ("tout le", False)])
    assert session.transcript == "Bonjour tout le"
    session.ingest([("Bonjour ", True), ("tout le monde", True)])
    assert session.stop_listening() == "Bonjour tout le monde"
    assert not session.is_listening


def test_final_parts_precede_interim_parts():
    session = SpeechSession()
    session.start_listening("english")
    assert session.ingest([("maybe ", False), ("hello ", True), ("there", True)]) == "hello theremaybe "


def test_restart_clears_transcript_and_error():
    session = SpeechSession()
    session.start_listening("english")
    session.ingest([("first run", True)])
    session.fail("no-speech")
    assert session.error == "no-speech"
    assert not session.is_listening

    session.start_listening("german")
    assert session.transcript == ""
    assert session.error is None
    assert session.locale == "de-DE"
    session.end()
    assert not session.is_listening
