"""Tests for the contract schema layer."""
import pytest

from contracts import validate, describe_shape, response_schema
from errors import ContractError
from models import (
    Message, TranslationInput, ChatInput, FauxPasOutput, ImageToTextInput,
    split_data_uri,
)


def test_validate_accepts_conforming_input():
    value = validate({"text": "Hello", "sourceLanguage": "english", "targetLanguage": "spanish"}, TranslationInput)
    assert isinstance(value, TranslationInput)
    assert value.culturalContext is None
    assert value.formality is None


def test_validate_names_missing_field():
    with pytest.raises(ContractError) as exc:
        validate({"text": "Hello", "sourceLanguage": "english"}, TranslationInput)
    assert exc.value.field == "targetLanguage"


def test_validate_rejects_wrong_primitive_type():
    with pytest.raises(ContractError) as exc:
        validate({"text": 42, "sourceLanguage": "english", "targetLanguage": "spanish"}, TranslationInput)
    assert exc.value.field == "text"


def test_validate_rejects_out_of_set_enum():
    with pytest.raises(ContractError) as exc:
        validate({"text": "Hi", "sourceLanguage": "english", "targetLanguage": "hindi", "formality": "Neutral"},
                 TranslationInput)
    assert exc.value.field == "formality"


def test_validate_reports_nested_path():
    with pytest.raises(ContractError) as exc:
        validate({"query": "hi", "history": [{"role": "narrator", "content": [{"text": "x"}]}]}, ChatInput)
    assert exc.value.field == "history.0.role"


def test_history_may_not_carry_system_turns():
    with pytest.raises(ContractError) as exc:
        validate({"query": "hi", "history": [Message.system("be nice")]}, ChatInput)
    assert exc.value.field == "history"


def test_validate_rejects_non_object():
    with pytest.raises(ContractError) as exc:
        validate(["not", "an", "object"], TranslationInput)
    assert exc.value.field == "<root>"


def test_strict_bool_in_output():
    with pytest.raises(ContractError):
        validate({"isFauxPas": "yes"}, FauxPasOutput)


def test_image_input_requires_data_uri():
    with pytest.raises(ContractError) as exc:
        validate({"imageDataUri": "https://example.com/photo.png"}, ImageToTextInput)
    assert exc.value.field == "imageDataUri"
    assert validate({"imageDataUri": "data:image/png;base64,iVBORw0KGgo="}, ImageToTextInput)


def test_split_data_uri():
    assert split_data_uri("data:image/jpeg;base64,/9j/4AAQ") == ("image/jpeg", "/9j/4AAQ")
    assert split_data_uri("not a uri") is None


def test_describe_shape():
    shape = describe_shape(TranslationInput)
    assert shape["text"]["type"] == "string"
    assert shape["text"]["required"] is True
    assert shape["formality"]["type"] == "enum(Casual|Formal)"
    assert shape["formality"]["required"] is False
    assert "cultural context" in shape["culturalContext"]["description"]

    chat = describe_shape(ChatInput)
    assert chat["history"]["type"] == "array"
    assert chat["history"]["required"] is False


def test_response_schema():
    schema = response_schema(FauxPasOutput)
    assert schema["type"] == "OBJECT"
    assert schema["required"] == ["isFauxPas"]
    assert schema["properties"]["isFauxPas"]["type"] == "BOOLEAN"
    assert schema["properties"]["message"]["type"] == "STRING"
    assert schema["properties"]["message"]["nullable"] is True
