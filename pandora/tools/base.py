"""Tool interfaces for the reasoning loop.

This module provides:
- BaseTool: Abstract base class for all tools
- ToolInvoker: The narrow contract the loop uses to execute a named tool
"""

from abc import ABC, abstractmethod
from typing import Any, Protocol, runtime_checkable

from pandora.context import ExecutionContext


class BaseTool(ABC):
    """Abstract base class for all tools"""

    @property
    @abstractmethod
    def name(self) -> str:
        """Name of the tool, used for identification"""
        pass

    @property
    def description(self) -> str | None:
        """Description of what the tool does"""
        return None

    @property
    def input_schema(self) -> dict[str, Any]:
        """JSON schema of the parameters accepted by the tool"""
        return {"type": "object", "properties": {}, "required": []}

    @property
    def required_params(self) -> list[str]:
        return list(self.input_schema.get("required", []))

    @abstractmethod
    async def call(self, ctx: ExecutionContext, **params) -> Any:
        """Execute the tool and return a JSON-serializable result. Raise on failure."""
        raise NotImplementedError("BaseTool subclasses must implement the call method")


@runtime_checkable
class ToolInvoker(Protocol):
    async def invoke(self, tool: str, params: dict[str, Any], ctx: ExecutionContext) -> Any:
        ...
