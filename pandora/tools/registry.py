import logging
from typing import Any

from pandora.context import ExecutionContext
from pandora.exceptions import ToolNotFoundError, ToolParameterError
from pandora.tracer import get_current_span, trace_tool
from .base import BaseTool

logger = logging.getLogger(__name__)


class ToolRegistry:
    """Tools addressable by name. Implements the ``ToolInvoker`` protocol."""

    def __init__(self, tools: list[BaseTool] | None = None):
        self._tools: dict[str, BaseTool] = {}
        for tool in tools or []:
            self.register(tool)

    def register(self, tool: BaseTool) -> None:
        self._tools[tool.name] = tool

    def get(self, name: str) -> BaseTool | None:
        return self._tools.get(name)

    def names(self) -> list[str]:
        return list(self._tools.keys())

    async def invoke(self, tool: str, params: dict[str, Any], ctx: ExecutionContext) -> Any:
        return await self._invoke(tool_name=tool, params=params, ctx=ctx)

    @trace_tool()
    async def _invoke(self, tool_name: str, params: dict[str, Any], ctx: ExecutionContext) -> Any:
        instance = self._tools.get(tool_name)
        if instance is None:
            raise ToolNotFoundError(tool_name, self.names())
        missing = [name for name in instance.required_params if params.get(name) in (None, "")]
        if missing:
            raise ToolParameterError(tool_name, missing)
        span = get_current_span()
        if span is not None:
            span.set_attribute("params", params)
        await ctx.debug(f"Calling tool {tool_name} with {params}")
        return await instance.call(ctx, **params)
