"""Registry of functions the model may call."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ValidationError

from cognition.models import ToolCall
from cognition.tools.base import Function


class FunctionRegistry:
    """Explicit catalog of callable functions."""

    def __init__(self) -> None:
        self._functions: dict[str, Function] = {}
        self._specs: dict[str, dict[str, Any]] = {}

    def __len__(self) -> int:
        return len(self._functions)

    def register(self, function: Function) -> None:
        self._functions[function.name] = function
        self._specs[function.name] = {
            "type": "function",
            "function": {
                "name": function.name,
                "description": function.description,
                "parameters": function.parameters_schema,
            },
        }

    def list_tool_specs(self) -> list[dict[str, Any]]:
        return list(self._specs.values())

    def parse_call(self, tool_call: ToolCall) -> BaseModel:
        """Validate a finished tool call against its function's input model.

        Raises:
            KeyError: the function is not registered.
            MalformedToolArguments: the arguments are not a JSON object.
            ValueError: the ``input`` argument does not match the model.
        """
        name = tool_call.function.name
        function = self._functions.get(name or "")
        if function is None:
            raise KeyError(f"Unknown function: {name}")

        arguments = tool_call.parse_arguments()
        if "input" not in arguments:
            raise ValueError(f"Function {name} called without an input argument")
        try:
            return function.input_model.model_validate(arguments["input"])
        except ValidationError as exc:
            raise ValueError(f"Invalid input for function {name}: {exc}") from exc
