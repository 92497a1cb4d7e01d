"""Finviz stock screening tools."""

from __future__ import annotations

from typing import TYPE_CHECKING

from finviz_client import FinvizError
from models import to_dict
from tools._helpers import _upstream_error

if TYPE_CHECKING:
    from fastmcp import FastMCP
    from finviz_client import FinvizClient


# Friendly pattern name -> Finviz ta_pattern_* code
TECHNICAL_PATTERNS = {
    "channel_down": "channeldown",
    "channel_up": "channelup",
    "triangle_ascending": "triangleascending",
    "triangle_descending": "triangledescending",
    "wedge_rising": "wedgeup",
    "wedge_falling": "wedgedown",
    "support": "horizontal",
    "resistance": "horizontal2",
    "trendline_support": "tlsupport",
    "trendline_resistance": "tlresistance",
    "head_shoulders": "headandshoulders",
    "head_shoulders_inv": "headandshouldersinv",
    "double_top": "doubletop",
    "double_bottom": "doublebottom",
    "multiple_top": "multipletop",
    "multiple_bottom": "multiplebottom",
}

MARKET_CAP_FILTERS = {
    "nano": "Nano (under $50M)",
    "micro": "Micro ($50M to $300M)",
    "small": "Small ($300M to $2B)",
    "mid": "Mid ($2B to $10B)",
    "large": "Large ($10B to $200B)",
    "mega": "Mega (over $200B)",
}

# Ready-made filter sets usable as ``preset``
COMMON_FILTERS = {
    "value_stocks": {"f": "fa_pe_low,fa_peg_low,fa_pb_low", "o": "pe"},
    "growth_stocks": {"f": "fa_epsqoq_pos,fa_eps5y_pos,fa_salesqoq_pos", "o": "epsqoq"},
    "dividend_stocks": {"f": "fa_div_pos,fa_divyield_o3", "o": "dividendyield"},
    "high_volume": {"f": "sh_avgvol_o500,sh_relvol_o2", "o": "volume"},
    "oversold": {"f": "ta_rsi_os30", "o": "rsi"},
    "overbought": {"f": "ta_rsi_ob70", "o": "rsi"},
    "near_52w_high": {"f": "ta_highlow50d_nh", "o": "52whigh"},
    "near_52w_low": {"f": "ta_highlow50d_nl", "o": "52wlow"},
}


def _merge_filters(preset: dict[str, str], filters: dict[str, str]) -> dict[str, str]:
    """Overlay user filters on a preset; the "f" lists are concatenated."""
    merged = dict(preset)
    for key, value in filters.items():
        if key == "f" and merged.get("f") and value:
            merged["f"] = f"{merged['f']},{value}"
        else:
            merged[key] = value
    return merged


def register(mcp: FastMCP, client: FinvizClient) -> None:
    @mcp.tool(
        annotations={
            "title": "Advanced Stock Screener",
            "readOnlyHint": True,
            "destructiveHint": False,
            "idempotentHint": True,
            "openWorldHint": True,
        }
    )
    async def screen_stocks_advanced_filters(
        filters: dict[str, str] | None = None,
        limit: int = 50,
        signal: str | None = None,
        preset: str | None = None,
    ) -> dict:
        """Screen stocks with raw Finviz screener parameters.

        Use "f" for comma-separated filters (fundamental, descriptive and
        ta_pattern_* technical patterns) and "o" for ordering, e.g.
        {"f": "cap_large,fa_pe_profitable,geo_usa,ta_pattern_channeldown", "o": "marketcap"}.
        Returns ticker, company, sector, industry, country, market cap, P/E,
        price, change and volume for each match.

        Args:
            filters: Finviz query parameters (default none)
            limit: Max results to return (default 50)
            signal: Optional Finviz signal, e.g. "ta_topgainers"
            preset: Optional named filter set (value_stocks, growth_stocks,
                dividend_stocks, high_volume, oversold, overbought,
                near_52w_high, near_52w_low) merged under ``filters``
        """
        filters = dict(filters or {})
        if preset is not None:
            if preset not in COMMON_FILTERS:
                return {
                    "error": f"Unknown preset '{preset}'. Options: {', '.join(sorted(COMMON_FILTERS))}"
                }
            filters = _merge_filters(COMMON_FILTERS[preset], filters)
        limit = max(1, limit)

        try:
            results = await client.advanced_filter(filters, signal=signal)
        except FinvizError as e:
            raise _upstream_error("in advanced filtering", None, e) from e

        limited = results[:limit]
        return {
            "query": {"filters": filters, "limit": limit, "signal": signal},
            "results": to_dict(limited),
            "total_found": len(limited),
            "applied_filters": len(filters),
            "summary": f"Applied advanced filters and found {len(limited)} matching stocks",
        }

    @mcp.tool(
        annotations={
            "title": "Technical Pattern Screener",
            "readOnlyHint": True,
            "destructiveHint": False,
            "idempotentHint": True,
            "openWorldHint": True,
        }
    )
    async def screen_stocks_by_pattern(
        pattern: str,
        market_cap: str = "large",
        geo: str = "usa",
        limit: int = 50,
    ) -> dict:
        """Find stocks currently forming a chart pattern.

        Args:
            pattern: Pattern name (channel_down, channel_up, triangle_ascending,
                triangle_descending, wedge_rising, wedge_falling, support,
                resistance, trendline_support, trendline_resistance,
                head_shoulders, head_shoulders_inv, double_top, double_bottom,
                multiple_top, multiple_bottom)
            market_cap: nano, micro, small, mid, large or mega (default large)
            geo: "usa" or "foreign" (default usa)
            limit: Max results to return (default 50)
        """
        pattern_key = pattern.lower().strip()
        code = TECHNICAL_PATTERNS.get(pattern_key)
        if code is None:
            return {
                "error": f"Unknown pattern '{pattern}'. Options: {', '.join(sorted(TECHNICAL_PATTERNS))}"
            }
        market_cap = market_cap.lower().strip()
        if market_cap not in MARKET_CAP_FILTERS:
            return {
                "error": f"Invalid market_cap '{market_cap}'. Options: {', '.join(MARKET_CAP_FILTERS)}"
            }
        geo = geo.lower().strip()
        if geo not in ("usa", "foreign"):
            return {"error": f"Invalid geo '{geo}'. Use 'usa' or 'foreign'."}

        try:
            results = await client.screen_stocks(code, market_cap, geo)
        except FinvizError as e:
            raise _upstream_error("screening stocks", None, e) from e

        limited = results[: max(1, limit)]
        return {
            "pattern": pattern_key,
            "market_cap": MARKET_CAP_FILTERS[market_cap],
            "geo": geo,
            "results": to_dict(limited),
            "total_found": len(limited),
        }
