"""Fundamental metrics, relative valuation, and financial health scoring."""

from __future__ import annotations

import asyncio
import math
from dataclasses import fields
from typing import TYPE_CHECKING

from finviz_client import FinvizError
from models import FundamentalMetrics
from parsing import parse_metric
from tools._helpers import _normalize_ticker, _upstream_error

if TYPE_CHECKING:
    from fastmcp import FastMCP
    from finviz_client import FinvizClient

DEFAULT_WEIGHTS = {
    "profitability": 0.3,
    "liquidity": 0.2,
    "leverage": 0.2,
    "efficiency": 0.15,
    "growth": 0.15,
}

DEFAULT_VALUATION_METRICS = ["pe", "forward_pe", "peg", "price_to_book"]

# Snapshot fields that can be compared across tickers.
VALUATION_FIELDS = frozenset(f.name for f in fields(FundamentalMetrics)) - {"ticker"}


def _clamp(value: float, low: float = 0, high: float = 100) -> float:
    return min(high, max(low, value))


# --- Component scores (0-100, 50 when the input is missing) ---


def _profitability_score(profit_margin: float | None, roe: float | None) -> float:
    score = 50.0
    if profit_margin is not None:
        score = _clamp(50 + profit_margin * 2)
    if roe is not None:
        roe_score = _clamp(50 + roe * 3)
        score = (score + roe_score) / 2
    return score


def _liquidity_score(current_ratio: float | None) -> float:
    if current_ratio is None:
        return 50
    if 1.5 <= current_ratio <= 3:
        return 90
    if 1 <= current_ratio < 1.5:
        return 70
    if current_ratio > 3:
        return 60
    return 20


def _leverage_score(debt_to_equity: float | None) -> float:
    if debt_to_equity is None:
        return 50
    if debt_to_equity <= 0.3:
        return 90
    if debt_to_equity <= 0.6:
        return 70
    if debt_to_equity <= 1.0:
        return 50
    return max(10, 50 - (debt_to_equity - 1) * 20)


def _efficiency_score(pe: float | None) -> float:
    if pe is None or pe <= 0:
        return 50
    if 10 <= pe <= 20:
        return 80
    if 5 <= pe < 10:
        return 70
    if 20 < pe <= 30:
        return 60
    if pe > 30:
        return max(20, 60 - (pe - 30))
    return 30


def _growth_score(eps_growth: float | None) -> float:
    if eps_growth is None:
        return 50
    return _clamp(50 + eps_growth)


def _rating(score: float) -> str:
    if score >= 80:
        return "Excellent"
    if score >= 70:
        return "Good"
    if score >= 60:
        return "Fair"
    if score >= 40:
        return "Below Average"
    return "Poor"


_INTERPRETATIONS = {
    "profitability": (
        "Strong profitability metrics", "Adequate profitability",
        "Below average profitability", "Poor profitability performance",
    ),
    "liquidity": (
        "Strong liquidity position", "Adequate liquidity",
        "Liquidity concerns", "Poor liquidity position",
    ),
    "leverage": (
        "Conservative debt levels", "Manageable debt levels",
        "Elevated debt levels", "High debt burden",
    ),
    "efficiency": (
        "Attractive valuation", "Fair valuation",
        "Expensive valuation", "Very expensive or concerning valuation",
    ),
    "growth": (
        "Strong growth prospects", "Moderate growth expected",
        "Limited growth prospects", "Declining or negative growth",
    ),
}


def _interpret(component: str, score: float) -> str:
    strong, adequate, weak, poor = _INTERPRETATIONS[component]
    if score >= 80:
        return strong
    if score >= 60:
        return adequate
    if score >= 40:
        return weak
    return poor


def calculate_health_score(metrics: FundamentalMetrics, weights: dict[str, float] | None = None) -> dict:
    """Weighted 0-100 financial health score from Finviz snapshot strings.

    Weights are applied as given; they are not normalised to sum to 1.
    """
    weights = {**DEFAULT_WEIGHTS, **(weights or {})}

    margin = parse_metric(metrics.profit_margin)
    roe = parse_metric(metrics.return_on_equity)
    current_ratio = parse_metric(metrics.current_ratio)
    debt_to_equity = parse_metric(metrics.debt_to_equity)
    pe = parse_metric(metrics.pe)
    eps_growth = parse_metric(metrics.eps_growth)

    scores = {
        "profitability": _profitability_score(margin, roe),
        "liquidity": _liquidity_score(current_ratio),
        "leverage": _leverage_score(debt_to_equity),
        "efficiency": _efficiency_score(pe),
        "growth": _growth_score(eps_growth),
    }
    total = sum(scores[name] * weights[name] for name in DEFAULT_WEIGHTS)
    # Halves round up: 54.5 -> 55.
    overall = math.floor(round(total, 6) + 0.5)

    details: dict[str, str | float] = {}
    if margin is not None:
        details["profit_margin"] = f"{margin}%"
    if roe is not None:
        details["return_on_equity"] = f"{roe}%"
    if current_ratio is not None:
        details["current_ratio"] = current_ratio
    if debt_to_equity is not None:
        details["debt_to_equity"] = debt_to_equity
    if pe is not None and pe > 0:
        details["price_to_earnings"] = pe
    if eps_growth is not None:
        details["eps_growth"] = f"{eps_growth}%"

    return {
        "overall_score": overall,
        "rating": _rating(overall),
        "component_scores": scores,
        "details": details,
        "interpretation": {name: _interpret(name, score) for name, score in scores.items()},
    }


def compare_valuations(valuations: dict[str, FundamentalMetrics], metrics: list[str]) -> dict:
    """Rank tickers per metric and flag values beyond two standard deviations."""
    if not valuations:
        return {}

    analysis: dict[str, dict] = {
        "metrics_comparison": {},
        "rankings": {},
        "outliers": {},
        "average_values": {},
    }
    for metric in metrics:
        if metric not in VALUATION_FIELDS:
            continue
        values: dict[str, float] = {}
        for ticker, fundamentals in valuations.items():
            value = parse_metric(getattr(fundamentals, metric))
            if value is not None:
                values[ticker] = value
        if not values:
            continue

        avg = sum(values.values()) / len(values)
        std_dev = math.sqrt(sum((v - avg) ** 2 for v in values.values()) / len(values))
        threshold = std_dev * 2

        analysis["metrics_comparison"][metric] = values
        analysis["rankings"][metric] = [t for t, _ in sorted(values.items(), key=lambda kv: kv[1])]
        analysis["average_values"][metric] = round(avg, 4)
        analysis["outliers"][metric] = [
            {"ticker": t, "value": v, "deviation": round(abs(v - avg), 4)}
            for t, v in values.items()
            if abs(v - avg) > threshold
        ]
    return analysis


def register(mcp: FastMCP, client: FinvizClient) -> None:
    @mcp.tool(
        annotations={
            "title": "Fundamental Metrics",
            "readOnlyHint": True,
            "destructiveHint": False,
            "idempotentHint": True,
            "openWorldHint": True,
        }
    )
    async def get_fundamental_stock_metrics(ticker: str, metrics: list[str] | None = None) -> dict:
        """Get fundamental metrics from the Finviz quote snapshot.

        Returns P/E, forward P/E, PEG, current ratio, insider ownership,
        short float, profit margin, market cap, EPS growth next year, sales
        growth past 5Y, debt/equity, P/B, ROE, RSI(14) and SMA200 as displayed.

        Args:
            ticker: Stock ticker symbol (e.g. "AAPL")
            metrics: Optional subset of field names (e.g. ["pe", "peg"]);
                returns all when omitted
        """
        ticker = _normalize_ticker(ticker)
        try:
            fundamentals = await client.get_fundamentals(ticker)
        except FinvizError as e:
            raise _upstream_error("getting fundamentals", ticker, e) from e

        found = fundamentals.present()
        if metrics:
            found = {"ticker": fundamentals.ticker, **{m: found[m] for m in metrics if m in found}}

        result = {
            "ticker": ticker,
            "fundamentals": found,
            "requested_metrics": metrics or "all",
            "summary": f"Retrieved fundamental metrics for {ticker}",
        }
        if len(fundamentals.present()) == 1:
            result["_warnings"] = ["snapshot table not found or empty"]
        return result

    @mcp.tool(
        annotations={
            "title": "Compare Valuations",
            "readOnlyHint": True,
            "destructiveHint": False,
            "idempotentHint": True,
            "openWorldHint": True,
        }
    )
    async def compare_stock_valuations(tickers: list[str], metrics: list[str] | None = None) -> dict:
        """Compare valuation metrics across several stocks side by side.

        Returns per-metric values, ascending rankings, averages, and outliers
        more than two standard deviations from the mean. Tickers that fail to
        load are listed under "errors" and do not abort the comparison.

        Args:
            tickers: Stock ticker symbols (e.g. ["AAPL", "MSFT"])
            metrics: Metric fields to compare (default pe, forward_pe, peg, price_to_book)
        """
        tickers = [_normalize_ticker(t) for t in tickers]
        metrics = metrics or list(DEFAULT_VALUATION_METRICS)

        results = await asyncio.gather(
            *(client.get_fundamentals(t) for t in tickers),
            return_exceptions=True,
        )

        valuations: dict[str, FundamentalMetrics] = {}
        errors = []
        for ticker, result in zip(tickers, results):
            if isinstance(result, FinvizError):
                errors.append(f"{ticker}: {result}")
            elif isinstance(result, BaseException):
                raise result
            else:
                valuations[ticker] = result

        response = {
            "tickers": tickers,
            "metrics": metrics,
            "valuations": {t: v.present() for t, v in valuations.items()},
            "comparative_analysis": compare_valuations(valuations, metrics),
            "summary": (
                f"Analyzed valuation metrics for {len(valuations)} out of "
                f"{len(tickers)} requested tickers"
            ),
        }
        if errors:
            response["errors"] = errors
        unknown = [m for m in metrics if m not in VALUATION_FIELDS]
        if unknown:
            response["_warnings"] = [f"Unknown metric(s) ignored: {', '.join(unknown)}"]
        return response

    @mcp.tool(
        annotations={
            "title": "Financial Health Score",
            "readOnlyHint": True,
            "destructiveHint": False,
            "idempotentHint": True,
            "openWorldHint": True,
        }
    )
    async def calculate_financial_health_score(
        ticker: str,
        weights: dict[str, float] | None = None,
    ) -> dict:
        """Score financial health 0-100 from profitability, liquidity, leverage, efficiency and growth.

        Component scores come from profit margin + ROE, current ratio,
        debt/equity, P/E and next-year EPS growth. Rating bands: Excellent
        (>=80), Good (>=70), Fair (>=60), Below Average (>=40), Poor.

        Args:
            ticker: Stock ticker symbol (e.g. "AAPL")
            weights: Optional overrides for profitability (0.3), liquidity (0.2),
                leverage (0.2), efficiency (0.15), growth (0.15). Not normalised.
        """
        ticker = _normalize_ticker(ticker)
        weights = weights or {}
        unknown = sorted(set(weights) - set(DEFAULT_WEIGHTS))
        if unknown:
            return {
                "error": f"Unknown weight(s): {', '.join(unknown)}. Options: {', '.join(DEFAULT_WEIGHTS)}"
            }
        effective = {**DEFAULT_WEIGHTS, **weights}

        try:
            fundamentals = await client.get_fundamentals(ticker)
        except FinvizError as e:
            raise _upstream_error("calculating health score", ticker, e) from e

        health = calculate_health_score(fundamentals, effective)
        result = {
            "ticker": ticker,
            "health_score": health,
            "weights": effective,
            "fundamentals": fundamentals.present(),
            "summary": f"Financial health score: {health['overall_score']}/100 ({health['rating']})",
        }
        weight_sum = sum(effective.values())
        if not math.isclose(weight_sum, 1.0, abs_tol=1e-6):
            result["_warnings"] = [f"weights sum to {round(weight_sum, 4)}, not 1; score is not normalised"]
        return result
