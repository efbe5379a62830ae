"""
Expose the coroutines in zentao_mcp.tools as MCP tools.

A tool is any public coroutine defined in a tools module whose first
parameter is `client`. The shared ZenTaoClient is bound in at registration,
so MCP callers only see the remaining arguments. ZenTao failures surface to
the caller as a ToolError carrying the upstream status and body.
"""

from __future__ import annotations

import importlib
import inspect
import logging
import pkgutil
from types import ModuleType
from typing import Callable, Iterable, List, Optional, Set, get_type_hints

from mcp.server.fastmcp import FastMCP
from mcp.server.fastmcp.exceptions import ToolError

from .client import ZenTaoClient
from .errors import ZenTaoClientError
from .observability import log_event

log = logging.getLogger("zentao_mcp.registry")

TOOLS_PACKAGE = "zentao_mcp.tools"


def discover_tool_modules(package_name: str = TOOLS_PACKAGE) -> List[ModuleType]:
    """Import every module of the tools package; a broken module is logged and skipped."""
    package = importlib.import_module(package_name)
    modules: List[ModuleType] = []
    for info in pkgutil.iter_modules(package.__path__, package.__name__ + "."):
        try:
            modules.append(importlib.import_module(info.name))
        except Exception as exc:  # pragma: no cover - logged, not fatal
            log.error("Failed importing tool module %s: %s", info.name, exc)
    return modules


def iter_tool_functions(module: ModuleType) -> Iterable[Callable]:
    for name, func in inspect.getmembers(module, inspect.iscoroutinefunction):
        # bugs.py helpers re-exported into batch.py belong to bugs.py
        if name.startswith("_") or func.__module__ != module.__name__:
            continue
        params = list(inspect.signature(func).parameters)
        if params[:1] != ["client"]:
            log.debug("Skipping %s.%s: first parameter is not 'client'", module.__name__, name)
            continue
        yield func


def tool_description(func: Callable) -> str:
    """Full cleaned docstring, including its Returns block, or the tool name."""
    doc = inspect.getdoc(func)
    return doc if doc else func.__name__.replace("_", " ")


def bind_client(func: Callable, client: ZenTaoClient) -> Callable:
    """Return `func` with `client` bound and dropped from the visible signature."""
    sig = inspect.signature(func)
    hints = get_type_hints(func)
    params = [
        p.replace(annotation=hints.get(name, p.annotation))
        for name, p in sig.parameters.items()
        if name != "client"
    ]

    async def tool(*args, **kwargs):
        try:
            return await func(client, *args, **kwargs)
        except ZenTaoClientError as exc:
            log_event(
                "tool_error",
                logger=log,
                level=logging.WARNING,
                tool=func.__name__,
                error_type=type(exc).__name__,
            )
            raise ToolError(f"{type(exc).__name__}: {exc}") from exc

    tool.__name__ = tool.__qualname__ = func.__name__
    tool.__doc__ = func.__doc__
    tool.__module__ = func.__module__
    tool.__signature__ = sig.replace(  # type: ignore[attr-defined]
        parameters=params, return_annotation=hints.get("return", sig.return_annotation)
    )
    return tool


def register_discovered_tools(
    app: FastMCP,
    client: ZenTaoClient,
    modules: Optional[List[ModuleType]] = None,
) -> List[str]:
    """Register every discovered tool on `app`; returns their names in order."""
    modules = modules if modules is not None else discover_tool_modules()
    seen: Set[str] = set()
    registered: List[str] = []

    for module in modules:
        for func in iter_tool_functions(module):
            name = func.__name__
            if name in seen:
                raise ValueError(f"Duplicate tool name detected: {name}")
            app.add_tool(
                bind_client(func, client),
                name=name,
                description=tool_description(func),
            )
            seen.add(name)
            registered.append(name)
            log.info("Registered tool: %s (%s)", name, module.__name__)

    return registered


__all__ = [
    "bind_client",
    "discover_tool_modules",
    "iter_tool_functions",
    "register_discovered_tools",
    "tool_description",
]
