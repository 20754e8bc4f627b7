"""Prompt composition: validated flow input -> instruction payload for the model."""
import re as _re
from dataclasses import dataclass
from typing import List, Optional, Sequence

from pydantic import BaseModel

from models import Message

_PLACEHOLDER = _re.compile(r"\{\{\s*(\w+)\s*\}\}")


@dataclass
class PromptPayload:
    messages: List[Message]
    # Structured-output schema; None means free text
    output_schema: Optional[dict] = None
    model: Optional[str] = None
    modality: str = "TEXT"
    voice: Optional[str] = None

    @property
    def system(self) -> Optional[Message]:
        for m in self.messages:
            if m.role == "system":
                return m
        return None

    @property
    def turns(self) -> List[Message]:
        return [m for m in self.messages if m.role != "system"]


def render(template: str, values: dict) -> str:
    """Replace {{name}} placeholders. Missing or None values render as ''."""
    def _sub(match):
        val = values.get(match.group(1))
        if val is None:
            return ""
        return val if isinstance(val, str) else str(val)
    return _PLACEHOLDER.sub(_sub, template)


def compose(template: str, validated_input: BaseModel, system: Optional[str] = None,
            output_schema: Optional[dict] = None) -> PromptPayload:
    messages = []
    if system:
        messages.append(Message.system(system))
    messages.append(Message.user(render(template, validated_input.model_dump())))
    return PromptPayload(messages=messages, output_schema=output_schema)


def compose_chat(system: str, history: Optional[Sequence[Message]], user_text: str) -> PromptPayload:
    """System turn first, then prior turns in order, then the new user turn."""
    messages = [Message.system(system)]
    messages.extend(history or [])
    messages.append(Message.user(user_text))
    return PromptPayload(messages=messages)
