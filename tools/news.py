"""News and market context tools backed by an LLM."""

from __future__ import annotations

import re
from typing import TYPE_CHECKING

from models import to_dict
from openai_client import OpenAIError
from tools._helpers import _gather_all, _normalize_ticker, _upstream_error

if TYPE_CHECKING:
    from fastmcp import FastMCP
    from openai_client import NewsArticle, OpenAIClient


# Theme keywords for tagging articles
_THEME_KEYWORDS = {
    "earnings": ["earnings", "revenue", "profit", "loss", "eps", "quarterly", "annual"],
    "merger": ["merger", "acquisition", "buyout", "takeover", "deal"],
    "product": ["product", "launch", "release", "innovation", "patent"],
    "management": ["ceo", "cfo", "executive", "management", "leadership", "resignation"],
    "regulation": ["regulation", "regulatory", "fda", "sec", "compliance", "approval"],
    "partnership": ["partnership", "collaboration", "alliance", "joint venture"],
    "legal": ["lawsuit", "litigation", "settlement", "court", "legal"],
    "upgrade": ["upgrade", "downgrade", "rating", "analyst", "target price"],
}

_URGENT_KEYWORDS = [
    "breaking", "urgent", "alert", "emergency", "crisis", "bankruptcy",
    "scandal", "investigation", "halt", "suspended", "delisting",
]
_MODERATE_KEYWORDS = [
    "earnings", "acquisition", "merger", "partnership", "approval",
    "launch", "upgrade", "downgrade",
]

_HIGH_CREDIBILITY = [
    "reuters", "bloomberg", "wall street journal", "wsj", "financial times",
    "ft", "associated press", "ap", "cnbc", "marketwatch", "yahoo finance",
]
_MEDIUM_CREDIBILITY = [
    "cnn", "fox business", "seeking alpha", "motley fool", "investopedia",
    "barrons", "forbes", "business insider", "thestreet",
]


def _article_text(article: NewsArticle) -> str:
    return f"{article.headline} {article.summary or ''}".lower()


def extract_news_themes(articles: list[NewsArticle]) -> list[str]:
    """Theme tags present in any article, in first-seen order."""
    themes: list[str] = []
    for article in articles:
        text = _article_text(article)
        for theme, keywords in _THEME_KEYWORDS.items():
            if theme not in themes and any(kw in text for kw in keywords):
                themes.append(theme)
    return themes


def assess_news_urgency(articles: list[NewsArticle]) -> str:
    texts = [_article_text(a) for a in articles]
    if any(any(kw in t for kw in _URGENT_KEYWORDS) for t in texts):
        return "high"
    if sum(1 for t in texts if any(kw in t for kw in _MODERATE_KEYWORDS)) >= 2:
        return "medium"
    return "low"


def _matches_source(source: str, names: list[str]) -> bool:
    # Short names like "ap" and "ft" must match whole words.
    return any(re.search(rf"\b{re.escape(name)}\b", source) for name in names)


def categorize_news_sources(articles: list[NewsArticle]) -> dict[str, list[str]]:
    """Bucket distinct article sources by credibility."""
    buckets: dict[str, list[str]] = {
        "high_credibility": [],
        "medium_credibility": [],
        "low_credibility": [],
    }
    for article in articles:
        source = article.source.lower()
        if _matches_source(source, _HIGH_CREDIBILITY):
            bucket = buckets["high_credibility"]
        elif _matches_source(source, _MEDIUM_CREDIBILITY):
            bucket = buckets["medium_credibility"]
        else:
            bucket = buckets["low_credibility"]
        if article.source not in bucket:
            bucket.append(article.source)
    return buckets


def register(mcp: FastMCP, client: OpenAIClient) -> None:
    @mcp.tool(
        annotations={
            "title": "News & Market Context",
            "readOnlyHint": True,
            "destructiveHint": False,
            "idempotentHint": False,
            "openWorldHint": True,
        }
    )
    async def analyze_news_and_market_context(
        ticker: str,
        days_back: int = 7,
        max_articles: int = 10,
        include_sentiment: bool = True,
        sector: str | None = None,
        news_items: list[str] | None = None,
    ) -> dict:
        """Recent news, market impact and sector context for a stock, summarised by an LLM.

        Returns articles with per-article sentiment, overall news sentiment,
        themes, urgency and source credibility, an impact assessment (1-10),
        and sector/macro context. Impact is scored on ``news_items`` when
        given, otherwise on the retrieved headlines.

        Args:
            ticker: Stock ticker symbol (e.g. "AAPL")
            days_back: Days of news to consider (default 7)
            max_articles: Max articles to summarise (default 10)
            include_sentiment: Ask for per-article sentiment (default true)
            sector: Optional sector name for the market context
            news_items: Optional headlines to score for impact instead
        """
        ticker = _normalize_ticker(ticker)
        try:
            news, context = await _gather_all(
                client.get_latest_news(ticker, days_back, max_articles, include_sentiment),
                client.get_market_context(ticker, sector),
            )
            items = news_items or [f"{a.headline}: {a.summary}" for a in news.articles]
            impact = await client.analyze_news_impact(ticker, items) if items else None
        except OpenAIError as e:
            raise _upstream_error("analyzing news and market context", ticker, e) from e

        summary = (
            f"Comprehensive analysis for {ticker}: Found {len(news.articles)} news articles "
            f"({news.overall_sentiment} sentiment)"
        )
        if impact is not None:
            summary += f", impact score: {impact.impact_score}/10"

        return {
            "ticker": ticker,
            "analysis_params": {
                "days_back": days_back,
                "max_articles": max_articles,
                "include_sentiment": include_sentiment,
                "sector": sector or "Not specified",
            },
            "news_analysis": to_dict(news),
            "news_themes": extract_news_themes(news.articles),
            "urgency": assess_news_urgency(news.articles),
            "source_credibility": categorize_news_sources(news.articles),
            "market_context": to_dict(context),
            "impact_analysis": to_dict(impact),
            "summary": summary,
        }
