"""Decorators for tracing ledger tools and resources."""

import functools
from collections.abc import Callable
from datetime import datetime
from typing import Any

import logfire


def trace_tool(tool_name: str):
    """Decorator to trace a tool handler in a Logfire span."""

    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            with logfire.span(
                f"tool.execution.{tool_name}",
                tool_name=tool_name,
                tool_category=_categorize_tool(tool_name),
            ) as span:
                start_time = datetime.now()

                arguments = args[0] if args and isinstance(args[0], dict) else kwargs
                _add_attributes(span, "input", arguments)

                try:
                    result = await func(*args, **kwargs)
                except Exception as e:
                    span.set_attribute("tool.success", False)
                    span.set_attribute("tool.error", str(e))
                    raise

                span.set_attribute("tool.success", not result.get("isError", False))
                span.set_attribute(
                    "tool.duration_ms", (datetime.now() - start_time).total_seconds() * 1000
                )
                return result

        return wrapper

    return decorator


def trace_resource(resource_type: str):
    """Lightweight decorator for resource reads."""

    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            with logfire.span(
                f"resource.read.{resource_type}",
                resource_type=resource_type,
            ) as span:
                result = await func(*args, **kwargs)

                if isinstance(result, dict) and isinstance(result.get("items"), list):
                    span.set_attribute("result.item_count", len(result["items"]))

                return result

        return wrapper

    return decorator


def _categorize_tool(tool_name: str) -> str:
    if "loan" in tool_name:
        return "circulation"
    if "visit" in tool_name:
        return "visits"
    return "general"


def _add_attributes(span, prefix: str, data: dict[str, Any]):
    for key, value in data.items():
        if isinstance(value, str | int | float | bool):
            span.set_attribute(f"{prefix}.{key}", value)
