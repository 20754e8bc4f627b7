"""Flow executor and the registry of model-backed flows.

A flow is one validated round trip to the model: validate input against its
contract, compose the prompt, call the model, shape and validate the output.
`Flow.invoke` never raises for expected failures; it records them on the
returned FlowInvocation. `Flow.run` re-raises them for callers that want
exceptions.
"""
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from pydantic import BaseModel

from log import get_logger

logger = get_logger("vaani.flows")

import llm
from contracts import Contract, validate, response_schema
from errors import ContractError, ModelContractViolation, VaaniError
from models import (
    Message, Segment, Media,
    TranslationInput, TranslationOutput,
    TextToSpeechInput, TextToSpeechOutput,
    InsightInput, InsightOutput,
    EmotionInput, EmotionOutput,
    ChatInput, ChatOutput,
    ScriptureTutorInput, ScriptureTutorOutput,
    ReligiousTextInput, ReligiousTextOutput,
    ImageToTextInput, ImageToTextOutput,
    FauxPasInput, FauxPasOutput,
)
from prompts import PromptPayload, compose, compose_chat, render

# Shorter input never reaches the faux-pas model
FAUX_PAS_MIN_LENGTH = 10


@dataclass
class FlowInvocation:
    flow: str
    input: Optional[BaseModel] = None
    prompt: Optional[PromptPayload] = None
    raw_response: Optional[llm.ModelResponse] = None
    output: Optional[BaseModel] = None
    error: Optional[VaaniError] = None
    short_circuited: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None and self.output is not None


# --- Output shaping ---

def structured_output(flow: "Flow", response: llm.ModelResponse) -> Dict[str, Any]:
    data = llm.parse_json_object(response.text or "")
    if data is None:
        raise ModelContractViolation("model response is not a JSON object", flow=flow.name, raw=response.text)
    return data


def text_output(field: str, allow_empty: bool = False):
    def _shape(flow: "Flow", response: llm.ModelResponse) -> Dict[str, Any]:
        if not allow_empty and not (response.text or "").strip():
            raise ModelContractViolation(
                f"model returned an empty response ({response.finish_reason or 'no reason'})",
                flow=flow.name,
            )
        return {field: response.text or ""}
    return _shape


def audio_output(flow: "Flow", response: llm.ModelResponse) -> Dict[str, Any]:
    if not response.audio:
        raise ModelContractViolation("model returned no audio", flow=flow.name)
    return {"audioData": llm.audio_data_uri(response.audio, response.audio_mime)}


class Flow:
    def __init__(
        self,
        contract: Contract,
        compose: Callable[[BaseModel], PromptPayload],
        shape: Callable[["Flow", llm.ModelResponse], Dict[str, Any]] = structured_output,
        gate: Optional[Callable[[BaseModel], Optional[dict]]] = None,
        model: Optional[str] = None,
        modality: str = "TEXT",
    ):
        self.contract = contract
        self.compose = compose
        self.shape = shape
        self.gate = gate
        self.model = model
        self.modality = modality

    @property
    def name(self) -> str:
        return self.contract.name

    def _validate_output(self, shaped: Dict[str, Any]) -> BaseModel:
        try:
            return validate(shaped, self.contract.output)
        except ContractError as e:
            raise ModelContractViolation(f"output {e}", flow=self.name) from e

    async def _execute(self, inv: FlowInvocation, data: Any):
        inv.input = validate(data, self.contract.input)

        if self.gate is not None:
            default = self.gate(inv.input)
            if default is not None:
                inv.output = self._validate_output(default)
                inv.short_circuited = True
                return

        inv.prompt = self.compose(inv.input)
        inv.prompt.model = self.model
        inv.prompt.modality = self.modality
        if self.shape is structured_output:
            inv.prompt.output_schema = response_schema(self.contract.output)

        inv.raw_response = await llm.generate(inv.prompt)
        inv.output = self._validate_output(self.shape(self, inv.raw_response))

    async def invoke(self, data: Any) -> FlowInvocation:
        inv = FlowInvocation(flow=self.name)
        start = time.time()
        try:
            await self._execute(inv, data)
        except VaaniError as e:
            inv.error = e
            inv.output = None

        extra = {
            "flow": self.name,
            "duration_ms": round((time.time() - start) * 1000),
        }
        if inv.error is not None:
            extra["detail"] = str(inv.error)
            logger.warning("Flow failed: %s", type(inv.error).__name__, extra=extra)
        else:
            logger.info("Flow finished", extra=extra)
        return inv

    async def run(self, data: Any) -> BaseModel:
        inv = await self.invoke(data)
        if inv.error is not None:
            raise inv.error
        return inv.output


# --- Prompts ---

TRANSLATION_PROMPT = """You are an expert translator specializing in real-time translation. Your goal is to provide accurate and culturally appropriate translations.

You will translate the given text from the source language to the target language.
If a tone is requested below, adjust your translation to match that level of formality.
If cultural context is given below, take it into account.
Put anything a listener from the target culture should know about the phrasing into culturalInsights.

Requested tone: {{formality}}
Cultural context: {{culturalContext}}

Source Language: {{sourceLanguage}}
Target Language: {{targetLanguage}}
Text to Translate: {{text}}"""

INSIGHT_PROMPT = """You are an AI assistant designed to provide cultural insights from conversations.
Analyze the following conversation text and provide a summary of the cultural nuances,
idioms, or understandings that are present. Focus on providing explanations and context
that would help someone unfamiliar with the culture to understand the conversation better.

Conversation Text: {{conversationText}}"""

EMOTION_PROMPT = """You are an AI expert in detecting and preserving emotions in text translations.

1. Analyze the Input Text: Determine the primary underlying emotion and tone (e.g., Joy, Sadness, Anger, Surprise, Neutral).
2. Translate: Translate the text into the target language, ensuring the translation conveys the exact same emotion and tone as the original.
3. Output: Provide the translated text and the name of the emotion you detected.

Input Text: {{text}}
Target Language: {{targetLanguage}}"""

CHATBOT_SYSTEM_PROMPT = (
    "You are Ana, a friendly and professional business executive from London, UK. "
    "You only speak and understand English. You should act completely natural, as if you are "
    "having a normal business conversation. When it feels natural, use a common English idiom in "
    "your reply (e.g., \"let's touch base,\" \"it's not rocket science,\" \"break a leg\"). "
    "Keep your responses concise (1-2 sentences) and conversational. The user on the other end is "
    "speaking a different language, and your device is translating for you. You are discussing a "
    "project timeline. Be polite and encouraging. Start the conversation by asking how the user is doing."
)

SCRIPTURE_TUTOR_SYSTEM_PROMPT = (
    "You are a world-class expert in theology, comparative religion, and linguistics. "
    "You are assisting a user who is reading a religious text. Your task is to answer their "
    "questions about the text provided. Be helpful, scholarly, and accessible. Use markdown for formatting."
)

# Only sent to the model; the stored history keeps the bare question
SCRIPTURE_QUERY_TEMPLATE = (
    "Here is the text I am reading:\n\n---\n{{scriptureContext}}\n---\n\n"
    "Here is my question about it: {{query}}"
)

RELIGIOUS_TEXT_PROMPT = """You are a world-class expert in theology, comparative religion, and linguistics. Your task is to analyze a passage from a religious text.

Context:
- Religion/Text: {{religiousContext}}
- Source Language: {{sourceLanguage}}
- Target Language for explanation: {{targetLanguage}}
- Passage to analyze:
{{text}}

Your task is to:
1. Provide a faithful and accurate translation of the passage into the target language.
2. Provide a detailed, scholarly, yet accessible explanation of the passage. This explanation should cover:
   - The literal meaning of the words and phrases.
   - The deeper philosophical and spiritual meaning.
   - The historical and cultural context in which it was written.
   - Explanations of any key terms, characters, or concepts mentioned.
   - How this passage relates to the broader themes of the text.

Use markdown in the explanation to improve readability."""

OCR_INSTRUCTION = (
    "You are an expert at optical character recognition (OCR). Extract all text from the following "
    "image. Only return the text content, without any additional comments or explanations."
)

FAUX_PAS_PROMPT = """You are an AI expert in cross-cultural communication. Your task is to analyze user input in real-time and proactively warn them if their text might be a cultural faux-pas or be perceived as offensive in some cultures.

Analyze the following text: "{{text}}"

- If the text is likely to be misinterpreted or cause offense in common cultural contexts (e.g., commenting on weight, being overly direct, using potentially misunderstood slang), set 'isFauxPas' to true.
- Provide a brief, non-judgmental 'message' explaining the potential issue (e.g., "This phrase can be sensitive in many cultures.").
- Offer a safer 'suggestion' (e.g., "Consider using 'You look great!'").
- If the text is harmless and unlikely to cause offense, set 'isFauxPas' to false and leave 'message' and 'suggestion' empty.
- Be very sensitive and only flag clear cases. For example, "I am fat" is a self-description and not a faux-pas. "You look fat" is a potential faux-pas. Only return a faux-pas if you are highly confident."""


# --- Composers and gates ---

def _compose_chat(inp: ChatInput) -> PromptPayload:
    return compose_chat(CHATBOT_SYSTEM_PROMPT, inp.history, inp.query)


def _compose_scripture(inp: ScriptureTutorInput) -> PromptPayload:
    user_text = render(SCRIPTURE_QUERY_TEMPLATE, {"scriptureContext": inp.scriptureContext, "query": inp.query})
    return compose_chat(SCRIPTURE_TUTOR_SYSTEM_PROMPT, inp.history, user_text)


def _compose_image(inp: ImageToTextInput) -> PromptPayload:
    return PromptPayload(messages=[
        Message(role="user", content=[
            Segment(text=OCR_INSTRUCTION),
            Segment(media=Media(url=inp.imageDataUri)),
        ]),
    ])


def _compose_speech(inp: TextToSpeechInput) -> PromptPayload:
    return PromptPayload(messages=[Message.user(inp.text)])


def _faux_pas_gate(inp: FauxPasInput) -> Optional[dict]:
    if len(inp.text.strip()) < FAUX_PAS_MIN_LENGTH:
        return {"isFauxPas": False}
    return None


# --- Flows ---

translation_flow = Flow(
    Contract("realTimeTranslationWithContextFlow", TranslationInput, TranslationOutput),
    compose=lambda inp: compose(TRANSLATION_PROMPT, inp),
)

text_to_speech_flow = Flow(
    Contract("textToSpeechFlow", TextToSpeechInput, TextToSpeechOutput),
    compose=_compose_speech,
    shape=audio_output,
    model=llm.TTS_MODEL,
    modality="AUDIO",
)

insight_flow = Flow(
    Contract("summarizeCulturalInsightsFlow", InsightInput, InsightOutput),
    compose=lambda inp: compose(INSIGHT_PROMPT, inp),
)

emotion_flow = Flow(
    Contract("detectAndPreserveEmotionFlow", EmotionInput, EmotionOutput),
    compose=lambda inp: compose(EMOTION_PROMPT, inp),
)

chatbot_flow = Flow(
    Contract("chatBotFlow", ChatInput, ChatOutput),
    compose=_compose_chat,
    shape=text_output("response"),
)

scripture_tutor_flow = Flow(
    Contract("scriptureTutorFlow", ScriptureTutorInput, ScriptureTutorOutput),
    compose=_compose_scripture,
    shape=text_output("response"),
)

religious_text_flow = Flow(
    Contract("religiousTextAnalysisFlow", ReligiousTextInput, ReligiousTextOutput),
    compose=lambda inp: compose(RELIGIOUS_TEXT_PROMPT, inp),
)

image_to_text_flow = Flow(
    Contract("imageToTextFlow", ImageToTextInput, ImageToTextOutput),
    compose=_compose_image,
    shape=text_output("text", allow_empty=True),
)

faux_pas_flow = Flow(
    Contract("culturalFauxPasAlertFlow", FauxPasInput, FauxPasOutput),
    compose=lambda inp: compose(FAUX_PAS_PROMPT, inp),
    gate=_faux_pas_gate,
)

FLOWS: Dict[str, Flow] = {
    f.name: f for f in (
        translation_flow,
        text_to_speech_flow,
        insight_flow,
        emotion_flow,
        chatbot_flow,
        scripture_tutor_flow,
        religious_text_flow,
        image_to_text_flow,
        faux_pas_flow,
    )
}


def get_flow(name: str) -> Optional[Flow]:
    return FLOWS.get(name)
