# Parameter schema translation & argument validation
from typing import Dict, Any, List, Optional
from enum import Enum

from jsonschema import Draft7Validator
from pydantic import BaseModel
import structlog

logger = structlog.get_logger(__name__)


class ParameterType(str, Enum):
    """Argument types understood by local tool schemas"""
    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    ARRAY = "array"
    OBJECT = "object"
    ANY = "any"


class ParameterSpec(BaseModel):
    """Schema of a single tool argument"""
    type: ParameterType = ParameterType.ANY
    required: bool = False
    description: Optional[str] = None


_JSON_TYPE_MAP = {
    "string": ParameterType.STRING,
    "number": ParameterType.NUMBER,
    "integer": ParameterType.NUMBER,
    "boolean": ParameterType.BOOLEAN,
    "array": ParameterType.ARRAY,
    "object": ParameterType.OBJECT,
}


def translate_json_schema(json_schema: Optional[Dict[str, Any]]) -> Dict[str, ParameterSpec]:
    """Translate a remote JSON Schema object into local parameter specs"""

    if not json_schema or not isinstance(json_schema.get("properties"), dict):
        return {}

    required = set(json_schema.get("required") or [])
    params: Dict[str, ParameterSpec] = {}

    for name, prop in json_schema["properties"].items():
        prop = prop if isinstance(prop, dict) else {}
        json_type = prop.get("type")
        params[name] = ParameterSpec(
            type=_JSON_TYPE_MAP.get(json_type, ParameterType.ANY) if isinstance(json_type, str) else ParameterType.ANY,
            required=name in required,
            description=prop.get("description")
        )

    return params


def to_json_schema(params: Dict[str, ParameterSpec], allow_additional: bool = True) -> Dict[str, Any]:
    """Render parameter specs as a JSON Schema object, keeping the original argument names"""

    properties: Dict[str, Any] = {}
    for name, spec in params.items():
        prop: Dict[str, Any] = {}
        if spec.type != ParameterType.ANY:
            prop["type"] = spec.type.value
        if spec.type == ParameterType.ARRAY:
            prop["items"] = {}
        if spec.description:
            prop["description"] = spec.description
        properties[name] = prop

    schema: Dict[str, Any] = {
        "type": "object",
        "properties": properties,
        "required": [name for name, spec in params.items() if spec.required],
    }
    if not allow_additional:
        schema["additionalProperties"] = False
    return schema


def validate_arguments(
    params: Dict[str, ParameterSpec],
    arguments: Dict[str, Any],
    allow_additional: bool = False
) -> List[str]:
    """Return a list of problems with ``arguments``; empty means valid"""

    # Explicit nulls count as omitted
    present = {name: value for name, value in arguments.items() if value is not None}

    validator = Draft7Validator(to_json_schema(params, allow_additional=allow_additional))
    errors = sorted(validator.iter_errors(present), key=lambda error: [str(part) for part in error.path])

    problems = []
    for error in errors:
        location = "/".join(str(part) for part in error.path)
        problems.append(f"{location}: {error.message}" if location else error.message)
    return problems
