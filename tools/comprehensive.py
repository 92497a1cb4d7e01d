"""One-call stock analysis combining every available data source."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import asdict
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Awaitable

from models import FundamentalMetrics, to_dict
from parsing import parse_metric
from tools._helpers import _gather_all, _normalize_ticker
from tools.fundamentals import calculate_health_score
from tools.insider import calculate_insider_sentiment

if TYPE_CHECKING:
    from barchart_client import BarchartClient
    from fastmcp import FastMCP
    from finviz_client import FinvizClient
    from openai_client import OpenAIClient
    from reddit_client import RedditClient

logger = logging.getLogger(__name__)

SOCIAL_SUBREDDITS = ["stocks", "wallstreetbets", "investing"]


async def _section(name: str, coro: Awaitable[Any]) -> tuple[str, Any, str | None]:
    """Run one analysis section; a failure becomes an error string, never an exception."""
    try:
        return name, await coro, None
    except Exception as e:
        logger.warning("comprehensive section %s failed: %s", name, e)
        return name, None, f"{name}: {e}"


def summarize(analyses: dict) -> dict:
    """Sort section results into bullish, bearish and neutral factors."""
    bullish: list[str] = []
    bearish: list[str] = []
    neutral: list[str] = []

    fundamentals = analyses.get("fundamentals")
    if fundamentals:
        pe = parse_metric(fundamentals.get("pe"))
        if pe is not None and pe < 15:
            bullish.append("Low P/E ratio indicates potential value")
        if pe is not None and pe > 30:
            bearish.append("High P/E ratio may indicate overvaluation")
        de = parse_metric(fundamentals.get("debt_to_equity"))
        if de is not None and de < 0.3:
            bullish.append("Low debt-to-equity ratio shows financial stability")

    health = analyses.get("health_score")
    if health:
        score = health["overall_score"]
        if score >= 80:
            bullish.append(f"Excellent financial health score ({score}/100)")
        elif score >= 60:
            neutral.append(f"Adequate financial health score ({score}/100)")
        else:
            bearish.append(f"Poor financial health score ({score}/100)")

    insider = analyses.get("insider")
    if insider:
        sentiment = insider["sentiment"]["overall_sentiment"]
        if sentiment == "bullish":
            bullish.append("Insider sentiment is bullish - insiders are net buyers")
        elif sentiment == "bearish":
            bearish.append("Insider sentiment is bearish - insiders are net sellers")
        else:
            neutral.append("Insider sentiment is neutral")

    options = analyses.get("options")
    if options:
        ratio = options["overall_put_call_volume_ratio"]
        if ratio > 1.2:
            bearish.append(f"High put/call ratio ({ratio:.2f}) indicates bearish options sentiment")
        elif ratio < 0.8:
            bullish.append(f"Low put/call ratio ({ratio:.2f}) indicates bullish options sentiment")
        else:
            neutral.append(f"Put/call ratio ({ratio:.2f}) is in normal range")

    news = analyses.get("news")
    if news:
        sentiment = news["news_analysis"]["overall_sentiment"]
        if sentiment == "positive":
            bullish.append("Recent news sentiment is positive")
        elif sentiment == "negative":
            bearish.append("Recent news sentiment is negative")
        else:
            neutral.append("Recent news sentiment is neutral")

    social = analyses.get("social")
    if social and social.get("sentiment"):
        sentiment = social["sentiment"]["overall_sentiment"]
        if sentiment == "bullish":
            bullish.append("Reddit community sentiment is bullish")
        elif sentiment == "bearish":
            bearish.append("Reddit community sentiment is bearish")
        else:
            neutral.append("Reddit community sentiment is neutral")

    if len(bullish) > len(bearish) + 1:
        overall = "Bullish"
    elif len(bearish) > len(bullish) + 1:
        overall = "Bearish"
    else:
        overall = "Mixed/Neutral"

    return {
        "bullish_factors": bullish,
        "bearish_factors": bearish,
        "neutral_factors": neutral,
        "overall_sentiment": overall,
    }


def register(
    mcp: FastMCP,
    finviz: FinvizClient,
    barchart: BarchartClient,
    openai: OpenAIClient | None = None,
    reddit: RedditClient | None = None,
) -> None:
    async def _fundamentals(ticker: str) -> FundamentalMetrics:
        return await finviz.get_fundamentals(ticker)

    async def _insider(ticker: str) -> dict:
        activity = await finviz.get_insider_activity(ticker)
        return {
            "ticker": activity.ticker,
            "transactions": to_dict(activity.transactions),
            "total_transactions": activity.total_transactions,
            "sentiment": calculate_insider_sentiment(activity.transactions, 90, 10_000),
        }

    async def _options(ticker: str) -> dict:
        return to_dict(await barchart.get_put_call_ratio(ticker))

    async def _news(ticker: str) -> dict:
        news, context = await _gather_all(
            openai.get_latest_news(ticker, 7, 10, True),
            openai.get_market_context(ticker),
        )
        return {"news_analysis": to_dict(news), "market_context": to_dict(context)}

    async def _social(ticker: str) -> dict:
        search = await reddit.search_posts(ticker, SOCIAL_SUBREDDITS, "week", 25, "hot")
        if not search.posts:
            return {"posts": [], "sentiment": None}
        sentiment = await openai.analyze_social_sentiment([asdict(p) for p in search.posts[:20]])
        return {"posts": to_dict(search.posts), "sentiment": to_dict(sentiment)}

    @mcp.tool(
        annotations={
            "title": "Comprehensive Stock Analysis",
            "readOnlyHint": True,
            "destructiveHint": False,
            "idempotentHint": False,
            "openWorldHint": True,
        }
    )
    async def comprehensive_stock_analysis(ticker: str) -> dict:
        """Full picture for one stock in a single call.

        Runs fundamentals + financial health score, insider activity and
        sentiment, and put/call ratios concurrently; adds LLM news/market
        context when OpenAI is configured and Reddit sentiment when both
        Reddit and OpenAI are. A failed section is listed under "errors" and
        the rest are still returned. The summary sorts findings into bullish,
        bearish and neutral factors.

        Args:
            ticker: Stock ticker symbol (e.g. "AAPL")
        """
        ticker = _normalize_ticker(ticker)

        sections = [
            _section("fundamentals", _fundamentals(ticker)),
            _section("insider", _insider(ticker)),
            _section("options", _options(ticker)),
        ]
        if openai is not None:
            sections.append(_section("news", _news(ticker)))
            if reddit is not None:
                sections.append(_section("social", _social(ticker)))

        analyses: dict[str, Any] = {}
        errors: list[str] = []
        for name, data, error in await asyncio.gather(*sections):
            if error is not None:
                errors.append(error)
            else:
                analyses[name] = data

        if "fundamentals" in analyses:
            metrics = analyses["fundamentals"]
            analyses["fundamentals"] = metrics.present()
            analyses["health_score"] = calculate_health_score(metrics)

        return {
            "ticker": ticker,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "analyses": analyses,
            "errors": errors,
            "summary": summarize(analyses),
        }
