"""Options put/call ratio tool."""

from __future__ import annotations

from typing import TYPE_CHECKING

from barchart_client import BarchartError
from models import to_dict
from tools._helpers import _normalize_ticker, _upstream_error

if TYPE_CHECKING:
    from barchart_client import BarchartClient
    from fastmcp import FastMCP


def register(mcp: FastMCP, client: BarchartClient) -> None:
    @mcp.tool(
        annotations={
            "title": "Put/Call Ratio",
            "readOnlyHint": True,
            "destructiveHint": False,
            "idempotentHint": True,
            "openWorldHint": True,
        }
    )
    async def get_put_call_ratio(ticker: str) -> dict:
        """Put/call volume and open interest ratios by expiration, with a sentiment read.

        Volume ratio > 1.2 reads bearish, < 0.8 bullish. ``data_quality``
        reports how confidently the ratios were scraped; computed ratios and
        mismatches between page and computed values appear as warnings.

        Args:
            ticker: Stock ticker symbol (e.g. "AAPL")
        """
        ticker = _normalize_ticker(ticker)
        try:
            analysis = await client.get_put_call_ratio(ticker)
        except BarchartError as e:
            raise _upstream_error("getting put/call ratio", ticker, e) from e

        validation = analysis.validation_result
        if not validation.is_valid:
            return {
                "ticker": ticker,
                "error": "Failed to extract valid put/call ratio data",
                "details": validation.warnings,
                "put_call_analysis": to_dict(analysis),
                "summary": f"Data extraction failed for {ticker}. {'; '.join(validation.warnings)}",
            }

        summary = (
            f"Retrieved put/call ratio data for {ticker}. Overall volume ratio: "
            f"{analysis.overall_put_call_volume_ratio:.2f} ({analysis.analysis.sentiment} sentiment)"
        )
        if validation.warnings:
            summary += f" (Warnings: {'; '.join(validation.warnings)})"

        return {
            "ticker": ticker,
            "put_call_analysis": to_dict(analysis),
            "summary": summary,
            "interpretation": analysis.analysis.interpretation,
            "key_insights": analysis.analysis.key_insights,
            "data_quality": {
                "is_valid": validation.is_valid,
                "warnings": validation.warnings,
            },
        }
