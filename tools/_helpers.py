"""Shared helpers for the tool modules."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable

from fastmcp.exceptions import ToolError
from fastmcp.server.middleware import Middleware, MiddlewareContext
from pydantic import ValidationError

logger = logging.getLogger(__name__)


def _normalize_ticker(ticker: str) -> str:
    return ticker.upper().strip()


def _upstream_error(action: str, ticker: str | None, exc: Exception) -> ToolError:
    """Build the isError payload for a failed tool call.

    e.g. ``Error getting fundamentals for AAPL: Finviz error 503: ...``
    """
    target = f" for {ticker}" if ticker else ""
    logger.warning("Error %s%s: %s", action, target, exc)
    return ToolError(f"Error {action}{target}: {exc}")


async def _gather_all(*aws: Awaitable[Any]) -> list[Any]:
    """Run awaitables concurrently; raise the first failure once all have settled."""
    results = await asyncio.gather(*aws, return_exceptions=True)
    for result in results:
        if isinstance(result, BaseException):
            raise result
    return results


class ArgumentErrorMiddleware(Middleware):
    """Turn argument validation failures into tool errors that name the ticker.

    e.g. ``Error calling analyze_insider_activity for AAPL: 1 validation error ...``
    """

    async def on_call_tool(self, context: MiddlewareContext, call_next):
        try:
            return await call_next(context)
        except ValidationError as e:
            arguments = context.message.arguments or {}
            raw = arguments.get("ticker")
            ticker = _normalize_ticker(str(raw)) if raw not in (None, "") else None
            raise _upstream_error(f"calling {context.message.name}", ticker, e) from e
