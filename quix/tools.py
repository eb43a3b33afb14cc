"""
Quix - Tool interface, function-backed tools, and the per-run registry.

Usage:
    ```python
    from quix import define_tool, SideEffect

    @define_tool(
        description="Look up a customer by email.",
        parameters={
            "type": "object",
            "properties": {"email": {"type": "string"}},
            "required": ["email"],
        },
        side_effect=SideEffect.READ,
    )
    async def find_customer(email: str) -> dict:
        return {"email": email}
    ```
"""

import asyncio
import inspect
from abc import ABC, abstractmethod
from typing import Any, Callable, Iterable, Optional

from pydantic import ValidationError

from .exceptions import ToolArgumentsError, ToolNotFoundError
from .models import SideEffect, ToolDescriptor
from .schema import ArgumentValidator, normalize_schema


class Tool(ABC):
    """Something the execution engine can describe to a model and invoke."""

    @abstractmethod
    def describe(self) -> ToolDescriptor:
        """Return the static descriptor of this tool."""

    @abstractmethod
    async def invoke(self, args: dict[str, Any]) -> Any:
        """Run the tool with validated keyword arguments."""

    @property
    def name(self) -> str:
        return self.describe().name


class FunctionTool(Tool):
    """A tool backed by a local (sync or async) handler.

    Arguments are validated against a model derived from the descriptor's
    parameter schema before the handler is called.
    """

    def __init__(self, descriptor: ToolDescriptor, handler: Callable[..., Any]) -> None:
        self._descriptor = ToolDescriptor(
            name=descriptor.name,
            description=descriptor.description,
            parameter_schema=normalize_schema(descriptor.parameter_schema),
            side_effect=descriptor.side_effect,
        )
        self._handler = handler
        self._validator = ArgumentValidator(self._descriptor.parameter_schema, descriptor.name)

    def describe(self) -> ToolDescriptor:
        return self._descriptor

    @property
    def handler(self) -> Callable[..., Any]:
        return self._handler

    def validate(self, args: dict[str, Any]) -> dict[str, Any]:
        try:
            return self._validator.validate(args)
        except ValidationError as e:
            raise ToolArgumentsError(
                f"Invalid arguments for {self._descriptor.name}: {e}",
                tool=self._descriptor.name,
                errors=e.errors(),
            ) from e

    async def invoke(self, args: dict[str, Any]) -> Any:
        kwargs = self.validate(args)
        if asyncio.iscoroutinefunction(self._handler):
            return await self._handler(**kwargs)
        # Blocking handlers run off the event loop so timeouts still apply.
        result = await asyncio.to_thread(self._handler, **kwargs)
        if inspect.isawaitable(result):
            return await result
        return result

    def __repr__(self) -> str:
        return f"FunctionTool(name={self._descriptor.name!r})"


def define_tool(
    name: Optional[str] = None,
    description: str = "",
    parameters: Optional[dict] = None,
    side_effect: SideEffect = SideEffect.READ,
) -> Callable[[Callable[..., Any]], FunctionTool]:
    """Decorator that turns a function into a :class:`FunctionTool`.

    The decorated function becomes the tool handler.  Its ``__name__`` is
    used as the tool name unless *name* is supplied explicitly.
    """

    def decorator(func: Callable[..., Any]) -> FunctionTool:
        tool_name = name or func.__name__
        descriptor = ToolDescriptor(
            name=tool_name,
            description=description or func.__doc__ or f"Tool: {tool_name}",
            parameter_schema=parameters or {"type": "object", "properties": {}},
            side_effect=side_effect,
        )
        return FunctionTool(descriptor, func)

    return decorator


tool = define_tool


class ToolRegistry:
    """Name → tool mapping for one orchestration run."""

    def __init__(self, tools: Iterable[Tool] = ()) -> None:
        self._tools: dict[str, Tool] = {}
        for t in tools:
            self.register(t)

    def register(self, t: Tool) -> None:
        name = t.describe().name
        if name in self._tools:
            raise ValueError(f"Duplicate tool name: '{name}'")
        self._tools[name] = t

    def get(self, name: str) -> Tool:
        try:
            return self._tools[name]
        except KeyError:
            raise ToolNotFoundError(name, available=self.names) from None

    @property
    def names(self) -> list[str]:
        return list(self._tools)

    def descriptors(self) -> list[ToolDescriptor]:
        return [t.describe() for t in self._tools.values()]

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    def __iter__(self):
        return iter(self._tools.values())
