"""Speech-to-text boundary: language -> locale table and recognition session state.

Recognition itself runs in the browser. The server only needs the locale
to hand the recognizer and the bookkeeping of one continuous run.
"""
from typing import Iterable, Optional, Tuple

DEFAULT_LOCALE = "en-US"

LANGUAGE_LOCALES = {
    "english": "en-US",
    "spanish": "es-ES",
    "french": "fr-FR",
    "german": "de-DE",
    "japanese": "ja-JP",
    "hindi": "hi-IN",
    "italian": "it-IT",
    "portuguese": "pt-BR",
    "chinese": "zh-CN",
    "korean": "ko-KR",
    "arabic": "ar-SA",
    "russian": "ru-RU",
}


def language_tag(language: Optional[str]) -> str:
    return LANGUAGE_LOCALES.get((language or "").strip().lower(), DEFAULT_LOCALE)


class SpeechSession:
    """State of one continuous recognition run."""

    def __init__(self):
        self.locale = DEFAULT_LOCALE
        self.is_listening = False
        self.transcript = ""
        self.error: Optional[str] = None

    def start_listening(self, language: Optional[str] = None) -> str:
        """Begin a run. Returns the locale the recognizer should use."""
        self.transcript = ""
        self.error = None
        self.locale = language_tag(language)
        self.is_listening = True
        return self.locale

    def ingest(self, results: Iterable[Tuple[str, bool]]) -> str:
        """Take the recognizer's full result list of (transcript, is_final) pairs.

        Final parts come first, interim parts after, each in arrival order.
        """
        final, interim = [], []
        for text, is_final in results:
            (final if is_final else interim).append(text)
        self.transcript = "".join(final) + "".join(interim)
        return self.transcript

    def fail(self, error: str):
        self.error = error
        self.is_listening = False

    def end(self):
        self.is_listening = False

    def stop_listening(self) -> str:
        self.is_listening = False
        return self.transcript
