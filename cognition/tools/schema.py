"""JSON schema generation for callable functions."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel


def build_function_parameters(input_model: type[BaseModel]) -> dict[str, Any]:
    """Describe a function whose single ``input`` argument is *input_model*.

    Shared definitions (enums, nested models) are hoisted to the top level so
    that ``#/$defs/...`` references resolve from the parameters object.
    """

    input_schema = input_model.model_json_schema()
    definitions = input_schema.pop("$defs", None)
    parameters: dict[str, Any] = {
        "type": "object",
        "properties": {"input": input_schema},
        "required": ["input"],
    }
    if definitions:
        parameters["$defs"] = definitions
    return parameters
