"""Tool registry contract and a callable-backed registry implementation."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from functools import partial
import inspect
from inspect import Parameter, signature
import logging
from typing import Any, Protocol, runtime_checkable

from .assembler import ToolCall
from .exceptions import ToolExecutionError

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class ToolDescriptor:
    """Name, description and JSON-schema parameters advertised to a model."""

    name: str
    description: str = ""
    parameters: dict[str, Any] = field(
        default_factory=lambda: {"type": "object", "properties": {}, "required": []}
    )

    def to_json(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "parameters": self.parameters,
        }

    def as_function_tool(self) -> dict[str, Any]:
        """Render the tool in the chat-completion ``tools`` format."""
        return {"type": "function", "function": self.to_json()}


@dataclass(frozen=True)
class ToolExecutionResult:
    tool_name: str
    success: bool
    result: Any = None
    error: str = ""


@runtime_checkable
class ToolRegistryProtocol(Protocol):
    """What the session needs from a tool registry.

    Either method may be a plain function or a coroutine function.
    Raising from ``execute`` means the call failed.
    """

    def list_tools(self) -> Sequence[ToolDescriptor] | Awaitable[Sequence[ToolDescriptor]]:
        ...

    def execute(self, name: str, arguments: dict[str, Any]) -> Any:
        ...


async def resolve(value: Any) -> Any:
    """Await ``value`` when a sync-or-async collaborator returned an awaitable."""
    if inspect.isawaitable(value):
        return await value
    return value


def _json_type_for(annotation: Any) -> str:
    if annotation is Parameter.empty:
        return "string"
    ann_str = str(annotation).lower()
    if "bool" in ann_str:
        return "boolean"
    if "int" in ann_str:
        return "integer"
    if "float" in ann_str or "number" in ann_str:
        return "number"
    if "list" in ann_str or "sequence" in ann_str:
        return "array"
    if "dict" in ann_str or "mapping" in ann_str:
        return "object"
    return "string"


def describe_callable(fn: Callable[..., Any], name: str | None = None) -> ToolDescriptor:
    """Build a descriptor for ``fn`` by introspecting its signature."""
    tool_name = name or fn.__name__
    params: dict[str, Any] = {"type": "object", "properties": {}, "required": []}
    for param_name, param in signature(fn).parameters.items():
        if param_name in ("self", "cls"):
            continue
        if param.kind in (Parameter.VAR_POSITIONAL, Parameter.VAR_KEYWORD):
            continue
        params["properties"][param_name] = {
            "type": _json_type_for(param.annotation),
            "description": param_name,
        }
        if param.default is Parameter.empty:
            params["required"].append(param_name)
    description = inspect.getdoc(fn) or tool_name
    return ToolDescriptor(
        name=tool_name,
        description=description.strip().splitlines()[0],
        parameters=params,
    )


@dataclass
class _RegisteredTool:
    descriptor: ToolDescriptor
    handler: Callable[..., Any]
    offload: bool = False
    spread_arguments: bool = True


class ToolRegistry:
    """Registry of callable tools the model may request during a turn."""

    def __init__(self) -> None:
        self._tools: dict[str, _RegisteredTool] = {}

    def register(
        self,
        fn: Callable[..., Any],
        name: str | None = None,
        offload: bool = False,
    ) -> None:
        """Register a callable; its signature becomes the parameter schema.

        The function receives the model's arguments as keyword arguments.
        ``offload=True`` runs a blocking sync function in a worker thread.
        """
        descriptor = describe_callable(fn, name)
        self._tools[descriptor.name] = _RegisteredTool(descriptor, fn, offload)
        LOGGER.debug(
            "tools.registered",
            extra={"event": "tools.registered", "tool": descriptor.name},
        )

    def register_descriptor(
        self,
        descriptor: ToolDescriptor,
        handler: Callable[[dict[str, Any]], Any],
        offload: bool = False,
    ) -> None:
        """Register a schema-first tool whose handler takes the argument dict."""
        self._tools[descriptor.name] = _RegisteredTool(
            descriptor, handler, offload, spread_arguments=False
        )
        LOGGER.debug(
            "tools.descriptor.registered",
            extra={"event": "tools.descriptor.registered", "tool": descriptor.name},
        )

    def list_tool_names(self) -> list[str]:
        return sorted(self._tools)

    def list_tools(self) -> list[ToolDescriptor]:
        return [tool.descriptor for tool in self._tools.values()]

    @property
    def is_empty(self) -> bool:
        return not self._tools

    async def execute(self, name: str, arguments: dict[str, Any]) -> Any:
        """Execute a named tool and return its result.

        Raises ToolExecutionError if the tool is unknown or raises.
        """
        tool = self._tools.get(name)
        if tool is None:
            raise ToolExecutionError(f"Unknown tool requested by model: {name!r}")

        if tool.spread_arguments:
            call = partial(tool.handler, **arguments)
        else:
            call = partial(tool.handler, arguments)

        try:
            if tool.offload and not inspect.iscoroutinefunction(tool.handler):
                return await resolve(await asyncio.to_thread(call))
            return await resolve(call())
        except ToolExecutionError:
            raise
        except Exception as exc:  # noqa: BLE001 - tool functions can fail arbitrarily.
            raise ToolExecutionError(f"Tool {name!r} raised an error: {exc}") from exc


async def execute_tool_call(
    execute: Callable[[str, dict[str, Any]], Awaitable[Any]],
    call: ToolCall,
) -> ToolExecutionResult:
    """Run one tool call, turning any failure into an unsuccessful result."""
    try:
        value = await execute(call.name, call.arguments)
    except asyncio.CancelledError:
        raise
    except Exception as exc:  # noqa: BLE001 - one tool must not stop the rest.
        LOGGER.warning(
            "tools.call.failed",
            extra={"event": "tools.call.failed", "tool": call.name, "error": str(exc)},
        )
        return ToolExecutionResult(tool_name=call.name, success=False, error=str(exc))
    return ToolExecutionResult(tool_name=call.name, success=True, result=value)


async def execute_tool_calls(
    execute: Callable[[str, dict[str, Any]], Awaitable[Any]],
    calls: Sequence[ToolCall],
) -> list[ToolExecutionResult]:
    """Run ``calls`` one after another and report every outcome in call order."""
    return [await execute_tool_call(execute, call) for call in calls]
