"""Contract schema layer: validated input/output shapes for every flow.

A contract pairs two pydantic models. `validate` fails closed and names the
offending field path; `describe_shape` and `response_schema` render the
same models for humans and for the model's structured-output mode.
"""
from dataclasses import dataclass
from typing import Any, Dict, Literal, Type, Union, get_args, get_origin, Annotated

from pydantic import BaseModel, ValidationError

from errors import ContractError

_TYPE_NAMES = {str: "string", bool: "boolean", int: "integer", float: "number"}


@dataclass(frozen=True)
class Contract:
    name: str
    input: Type[BaseModel]
    output: Type[BaseModel]


def _error_path(loc) -> str:
    return ".".join(str(part) for part in loc) or "<root>"


def validate(value: Any, shape: Type[BaseModel]) -> BaseModel:
    """Validate `value` against `shape`, raising ContractError on any mismatch."""
    if isinstance(value, shape):
        return value
    if isinstance(value, BaseModel):
        value = value.model_dump()
    if not isinstance(value, dict):
        raise ContractError(f"expected an object, got {type(value).__name__}", field="<root>")
    try:
        return shape.model_validate(value)
    except ValidationError as e:
        first = e.errors()[0]
        path = _error_path(first.get("loc", ()))
        raise ContractError(f"{path}: {first.get('msg', 'invalid value')}", field=path) from e


def _unwrap(tp):
    """Strip Annotated/Optional wrappers. Returns (type, nullable)."""
    nullable = False
    while True:
        origin = get_origin(tp)
        if origin is Annotated:
            tp = get_args(tp)[0]
        elif origin is Union:
            args = [a for a in get_args(tp) if a is not type(None)]
            nullable = nullable or len(args) < len(get_args(tp))
            if len(args) != 1:
                return tp, nullable
            tp = args[0]
        else:
            return tp, nullable


def _type_name(tp) -> str:
    tp, _ = _unwrap(tp)
    origin = get_origin(tp)
    if origin is Literal:
        return "enum(" + "|".join(str(a) for a in get_args(tp)) + ")"
    if origin in (list, tuple):
        return "array"
    if isinstance(tp, type) and issubclass(tp, BaseModel):
        return "object"
    return _TYPE_NAMES.get(tp, "string")


def describe_shape(shape: Type[BaseModel]) -> Dict[str, dict]:
    """Field name -> {type, required, description}."""
    return {
        name: {
            "type": _type_name(info.annotation),
            "required": info.is_required(),
            "description": info.description or "",
        }
        for name, info in shape.model_fields.items()
    }


def _schema_for(tp) -> dict:
    tp, nullable = _unwrap(tp)
    origin = get_origin(tp)
    if origin is Literal:
        schema = {"type": "STRING", "enum": [str(a) for a in get_args(tp)]}
    elif origin in (list, tuple):
        args = get_args(tp)
        schema = {"type": "ARRAY", "items": _schema_for(args[0]) if args else {"type": "STRING"}}
    elif isinstance(tp, type) and issubclass(tp, BaseModel):
        schema = response_schema(tp)
    else:
        schema = {"type": _TYPE_NAMES.get(tp, "string").upper()}
    if nullable:
        schema["nullable"] = True
    return schema


def response_schema(shape: Type[BaseModel]) -> dict:
    """Render a contract model in the OpenAPI subset the model API accepts."""
    properties = {}
    required = []
    for name, info in shape.model_fields.items():
        prop = _schema_for(info.annotation)
        if info.description:
            prop["description"] = info.description
        properties[name] = prop
        if info.is_required():
            required.append(name)
    schema = {"type": "OBJECT", "properties": properties}
    if required:
        schema["required"] = required
    return schema
