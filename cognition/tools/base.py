"""Function contracts."""

from __future__ import annotations

from abc import ABC
from typing import Any

from pydantic import BaseModel

from cognition.tools.schema import build_function_parameters


class Function(ABC):
    """Base class for actions the model may propose to call."""

    name: str
    description: str
    input_model: type[BaseModel]

    @property
    def parameters_schema(self) -> dict[str, Any]:
        return build_function_parameters(self.input_model)
