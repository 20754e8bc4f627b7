"""Pydantic schemas, constants, and static data for Vaani.

Flow contracts use strict primitive types so that a wrong type is a
contract failure instead of a silent coercion. Request bodies and action
state objects are ordinary (lax) models.
"""
import re as _re
from datetime import date
from typing import Annotated, Optional, List, Literal

from pydantic import AfterValidator, BaseModel, Field, StrictBool, StrictStr, field_validator

# --- Constants ---
ERROR_PREFIX = "Error: "

TRANSLATION_ERROR = "Error: Could not translate text."
INSIGHT_ERROR = "Error: Could not analyze conversation."
EMOTION_MISSING_INPUT = "Error: Missing text or target language."
EMOTION_ERROR = "Error: Could not perform emotion-aware translation."
CHAT_ERROR = "Error: I had a problem responding. Please try again."
RELIGIOUS_TEXT_ERROR = "Error: Could not analyze the passage."
LIVE_CALL_LOCKED = "Error: Live call translation is a Pro feature."
LIVE_CALL_ERROR = "Error: Could not translate the call. Please try again."
IMAGE_MISSING = "No image provided."
IMAGE_ERROR = (
    "Failed to extract text from the image. The image might be unclear or "
    "contain no text. Please try again."
)
AUDIO_MISSING_TEXT = "No text provided."
AUDIO_ERROR = "Could not generate audio."
MEMO_EMPTY = "You must record something to save a memo."
MEMO_ERROR = "Could not save your voice memo. Please try again."

SUPPORTED_LANGUAGES = {
    "english": "English",
    "spanish": "Spanish",
    "french": "French",
    "german": "German",
    "japanese": "Japanese",
    "hindi": "Hindi",
}

# Live calls bridge the caller and the bot through this language
PIVOT_LANGUAGE = "english"

# Formality slider positions sent by the translate form
FORMALITY_SLIDER = {"1": "Casual", "3": "Formal"}


# --- Prompt messages ---

class Media(BaseModel):
    url: StrictStr
    contentType: Optional[StrictStr] = None


class Segment(BaseModel):
    """One content segment of a message: text, or an inline media reference."""
    text: StrictStr = ""
    media: Optional[Media] = None


class Message(BaseModel):
    """A conversation turn. The role tag closes the set of turn kinds."""
    role: Literal["system", "user", "model"]
    content: List[Segment]

    @classmethod
    def system(cls, text: str) -> "Message":
        return cls(role="system", content=[Segment(text=text)])

    @classmethod
    def user(cls, text: str) -> "Message":
        return cls(role="user", content=[Segment(text=text)])

    @classmethod
    def model(cls, text: str) -> "Message":
        return cls(role="model", content=[Segment(text=text)])

    @property
    def text(self) -> str:
        return "".join(s.text for s in self.content)


# Stored chat history uses the same message type; system turns are never stored.
ChatHistoryItem = Message


def _reject_system_turns(history):
    if history:
        for item in history:
            if item.role == "system":
                raise ValueError("history may only contain user and model turns")
    return history


ContractHistory = Annotated[Optional[List[ChatHistoryItem]], AfterValidator(_reject_system_turns)]


# --- Flow contracts ---

class TranslationInput(BaseModel):
    text: StrictStr = Field(description="The text to translate.")
    sourceLanguage: StrictStr = Field(description="The language of the text to translate.")
    targetLanguage: StrictStr = Field(description="The language to translate the text into.")
    culturalContext: Optional[StrictStr] = Field(
        default=None, description="The cultural context of the conversation.")
    formality: Optional[Literal["Casual", "Formal"]] = Field(
        default=None, description="The desired formality of the translation.")


class TranslationOutput(BaseModel):
    translatedText: StrictStr = Field(
        description="The translated text, taking into account cultural context.")
    culturalInsights: Optional[StrictStr] = Field(
        default=None, description="Cultural insights related to the translation.")


class TextToSpeechInput(BaseModel):
    text: StrictStr = Field(description="The text to speak aloud.")


class TextToSpeechOutput(BaseModel):
    audioData: StrictStr = Field(description="WAV audio as a base64 data URI.")


class InsightInput(BaseModel):
    conversationText: StrictStr = Field(description="The complete text of the conversation to analyze.")


class InsightOutput(BaseModel):
    culturalSummary: StrictStr = Field(
        description="A summary of the cultural insights gleaned from the conversation.")


class EmotionInput(BaseModel):
    text: StrictStr = Field(description="The text to be translated.")
    targetLanguage: StrictStr = Field(description="The target language for the translation.")


class EmotionOutput(BaseModel):
    translatedText: StrictStr = Field(description="The translated text with preserved emotion and tone.")
    detectedEmotion: StrictStr = Field(
        description="The primary emotion detected in the source text "
                    "(e.g., Joy, Anger, Sadness, Surprise, Neutral).")


class ChatInput(BaseModel):
    query: StrictStr = Field(description="The user's question or message to the chatbot.")
    history: ContractHistory = Field(default=None, description="The conversation history.")


class ChatOutput(BaseModel):
    response: StrictStr = Field(description="The chatbot's response.")


class ScriptureTutorInput(BaseModel):
    query: StrictStr = Field(description="The user's question about the text.")
    history: ContractHistory = Field(default=None, description="The conversation history.")
    scriptureContext: StrictStr = Field(description="The full text of the scripture the user is reading.")


class ScriptureTutorOutput(BaseModel):
    response: StrictStr = Field(description="The tutor's response.")


class ReligiousTextInput(BaseModel):
    text: StrictStr = Field(description="The passage from the religious text to analyze.")
    sourceLanguage: StrictStr = Field(description="The original language of the text.")
    targetLanguage: StrictStr = Field(description="The language for the translation and explanation.")
    religiousContext: StrictStr = Field(
        description="The specific religion or text (e.g., Hinduism, Bhagavad Gita, Christianity, Bible).")


class ReligiousTextOutput(BaseModel):
    translation: StrictStr = Field(description="A faithful translation of the passage.")
    explanation: StrictStr = Field(
        description="A scholarly but accessible commentary covering literal meaning, "
                    "philosophical meaning, historical context and key terms.")


_DATA_URI = _re.compile(r"^data:(?P<mime>[\w.+-]+/[\w.+-]+);base64,(?P<data>[A-Za-z0-9+/=\s]+)$")


class ImageToTextInput(BaseModel):
    imageDataUri: StrictStr = Field(
        description="A photo containing text, as a data URI that must include a MIME type "
                    "and use Base64 encoding. Expected format: 'data:<mimetype>;base64,<encoded_data>'.")

    @field_validator("imageDataUri")
    @classmethod
    def must_be_data_uri(cls, v):
        if not _DATA_URI.match(v):
            raise ValueError("imageDataUri must be a base64 data URI")
        return v


class ImageToTextOutput(BaseModel):
    text: StrictStr = Field(description="The text extracted from the image.")


class FauxPasInput(BaseModel):
    text: StrictStr = Field(description="The text to analyze for cultural faux-pas.")


class FauxPasOutput(BaseModel):
    isFauxPas: StrictBool = Field(description="Whether a potential faux-pas was detected.")
    message: Optional[StrictStr] = Field(default=None, description="The warning message to show the user.")
    suggestion: Optional[StrictStr] = Field(default=None, description="A suggested alternative phrasing.")


def split_data_uri(uri: str):
    """Return (mime_type, base64_data) for a data URI, or None."""
    match = _DATA_URI.match(uri or "")
    if not match:
        return None
    return match.group("mime"), _re.sub(r"\s+", "", match.group("data"))


# --- Persisted records ---

class TranslationRecord(BaseModel):
    sourceText: str
    translatedText: str
    sourceLang: str
    targetLang: str
    culturalContext: Optional[str] = None
    culturalInsights: Optional[str] = None
    timestamp: float


class FeedbackRecord(BaseModel):
    userId: str
    originalTranslationId: Optional[str] = None
    sourceText: str
    originalTranslatedText: str
    userCorrectedText: str
    timestamp: float


class VoiceMemo(BaseModel):
    id: Optional[str] = None
    originalText: str
    translatedText: str
    sourceLang: str
    targetLang: str
    title: Optional[str] = None
    createdAt: float


class Capabilities(BaseModel):
    isAdmin: bool = False
    isSubscribed: bool = False

    @property
    def live_call(self) -> bool:
        return self.isAdmin or self.isSubscribed


# --- Action state ---

class TranslationState(BaseModel):
    translatedText: str
    culturalInsights: Optional[str] = None
    audioData: Optional[str] = None
    sourceText: Optional[str] = None
    sourceLang: Optional[str] = None
    targetLang: Optional[str] = None
    culturalContext: Optional[str] = None
    formality: Optional[Literal["Casual", "Formal"]] = None


class InsightState(BaseModel):
    culturalSummary: str


class EmotionState(BaseModel):
    translatedText: str
    detectedEmotion: Optional[str] = None


class ChatState(BaseModel):
    history: List[ChatHistoryItem] = Field(default_factory=list)
    error: Optional[str] = None


class ReligiousAnalysisState(BaseModel):
    translation: str
    explanation: str = ""


class ImageTextState(BaseModel):
    text: str
    error: Optional[str] = None


class FauxPasWarning(BaseModel):
    message: Optional[str] = None
    suggestion: Optional[str] = None


class PlayAudioState(BaseModel):
    audioData: Optional[str] = None
    error: Optional[str] = None
    memoId: Optional[str] = None


class LiveCallTurn(BaseModel):
    callerText: str
    callerLocale: str = "en-US"
    pivotText: Optional[str] = None
    replyText: Optional[str] = None
    translatedReply: Optional[str] = None
    culturalInsights: Optional[str] = None
    audioData: Optional[str] = None
    error: Optional[str] = None


class LiveCallState(BaseModel):
    turns: List[LiveCallTurn] = Field(default_factory=list)
    # Pivot-language conversation with the bot
    history: List[ChatHistoryItem] = Field(default_factory=list)
    error: Optional[str] = None


class MemoSaveState(BaseModel):
    memo: Optional[VoiceMemo] = None
    error: Optional[str] = None


# --- Request bodies ---

class TranslationRequest(BaseModel):
    text: str
    sourceLanguage: str
    targetLanguage: str
    culturalContext: Optional[str] = None
    formality: Optional[str] = None  # slider position "1".."3"


class InsightRequest(BaseModel):
    conversationText: str


class EmotionRequest(BaseModel):
    text: Optional[str] = None
    targetLanguage: Optional[str] = None


class ChatRequest(BaseModel):
    query: str
    history: List[ChatHistoryItem] = Field(default_factory=list)


class ScriptureChatRequest(BaseModel):
    query: str
    history: List[ChatHistoryItem] = Field(default_factory=list)
    scriptureContext: Optional[str] = None
    religion: Optional[str] = None
    scriptureId: Optional[str] = None
    chapterId: Optional[str] = None


class ReligiousTextRequest(BaseModel):
    text: str
    sourceLanguage: str
    targetLanguage: str
    religiousContext: str


class ImageTextRequest(BaseModel):
    imageDataUri: Optional[str] = None


class FauxPasRequest(BaseModel):
    text: str


class LiveCallRequest(BaseModel):
    utterance: str
    callerLanguage: str
    state: LiveCallState = Field(default_factory=LiveCallState)


class MemoCreateRequest(BaseModel):
    transcript: str
    sourceLang: str = "english"
    targetLang: str = "spanish"
    title: Optional[str] = None


class PlayAudioRequest(BaseModel):
    textToPlay: Optional[str] = None
    memoId: Optional[str] = None


class FeedbackRequest(BaseModel):
    originalTranslationId: Optional[str] = None
    sourceText: str
    originalTranslatedText: str
    userCorrectedText: str


class ProfileUpdate(BaseModel):
    name: str = Field(min_length=2)
    gender: Optional[str] = None
    dob: Optional[date] = None
    nationality: Optional[str] = None
    spokenLanguages: Optional[str] = None
    culturalPreferences: Optional[str] = None


class AdminUnlockRequest(BaseModel):
    code: str


class AuthRequest(BaseModel):
    username: str
    password: str


class PasswordChangeRequest(BaseModel):
    currentPassword: str
    newPassword: str


# --- Static Data ---

SCRIPTURE_LIBRARY = {
    "hinduism": {
        "name": "Hinduism",
        "scriptures": [
            {
                "id": "bhagavad-gita",
                "title": "Bhagavad Gita",
                "chapters": [
                    {
                        "id": "ch1",
                        "title": "Chapter 1: Observing the Armies",
                        "content": (
                            "Dhritarashtra said: O Sanjaya, after my sons and the sons of Pandu assembled "
                            "in the place of pilgrimage at Kurukshetra, desiring to fight, what did they do?"
                        ),
                    },
                    {
                        "id": "ch2",
                        "title": "Chapter 2: The Yoga of Knowledge",
                        "content": (
                            "Sanjaya said: Seeing Arjuna full of compassion, his mind depressed, his eyes "
                            "full of tears, Madhusudana, Krishna, spoke the following words."
                        ),
                    },
                ],
            },
        ],
    },
    "christianity": {
        "name": "Christianity",
        "scriptures": [
            {
                "id": "gospel-of-john",
                "title": "Gospel of John",
                "chapters": [
                    {
                        "id": "ch1",
                        "title": "Chapter 1: The Word Became Flesh",
                        "content": (
                            "In the beginning was the Word, and the Word was with God, and the Word was God. "
                            "He was with God in the beginning."
                        ),
                    },
                ],
            },
        ],
    },
    "islam": {
        "name": "Islam",
        "scriptures": [
            {
                "id": "quran",
                "title": "The Holy Quran",
                "chapters": [
                    {
                        "id": "surah-al-fatiha",
                        "title": "Surah Al-Fatiha (The Opening)",
                        "content": (
                            "In the name of Allah, the Entirely Merciful, the Especially Merciful. "
                            "[All] praise is [due] to Allah, Lord of the worlds."
                        ),
                    },
                ],
            },
        ],
    },
    "buddhism": {
        "name": "Buddhism",
        "scriptures": [
            {
                "id": "dhammapada",
                "title": "The Dhammapada",
                "chapters": [
                    {
                        "id": "ch1",
                        "title": "Chapter 1: The Twin Verses",
                        "content": (
                            "Mind precedes all mental states. Mind is their chief; they are all mind-wrought."
                        ),
                    },
                ],
            },
        ],
    },
}


def find_scripture_chapter(religion: str, scripture_id: str, chapter_id: str) -> Optional[dict]:
    entry = SCRIPTURE_LIBRARY.get(religion)
    if not entry:
        return None
    for scripture in entry["scriptures"]:
        if scripture["id"] != scripture_id:
            continue
        for chapter in scripture["chapters"]:
            if chapter["id"] == chapter_id:
                return chapter
    return None
