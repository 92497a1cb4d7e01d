"""Async OpenAI chat-completion client with typed, fallback-safe decoders."""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

import httpx

logger = logging.getLogger(__name__)

_JSON_OBJECT = re.compile(r"\{[\s\S]*\}")

NEWS_SYSTEM_PROMPT = (
    "You are a financial news analyst. Provide accurate, well-sourced news summaries with "
    "complete URLs. Focus on market-moving events and their potential impact on stock prices."
)
IMPACT_SYSTEM_PROMPT = (
    "You are a financial analyst specializing in news impact assessment. "
    "Provide structured analysis in JSON format."
)
CONTEXT_SYSTEM_PROMPT = (
    "You are a market analyst providing contextual analysis for stock research. "
    "Focus on current market conditions and sector dynamics."
)
SOCIAL_SYSTEM_PROMPT = (
    "You are a social media sentiment analyst for financial markets. "
    "Analyze retail investor sentiment accurately."
)

_THEME_KEYWORDS = (
    "earnings", "revenue", "profit", "loss", "acquisition", "merger", "partnership",
    "product", "launch", "regulation", "lawsuit", "upgrade", "downgrade",
)
_HIGH_IMPACT_KEYWORDS = ("earnings", "acquisition", "merger", "lawsuit", "regulation", "bankruptcy")


class OpenAIError(Exception):
    """Raised when the OpenAI API returns an error."""

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)


def extract_json_object(content: str) -> dict | None:
    """Parse the outermost {...} block of a model reply, or None."""
    match = _JSON_OBJECT.search(content or "")
    if not match:
        return None
    try:
        parsed = json.loads(match.group(0))
    except json.JSONDecodeError:
        logger.warning("Failed to parse JSON from model response")
        return None
    return parsed if isinstance(parsed, dict) else None


def _str(value: Any, default: str) -> str:
    return value if isinstance(value, str) and value else default


def _choice(value: Any, allowed: tuple[str, ...], default: str) -> str:
    if isinstance(value, str) and value.lower() in allowed:
        return value.lower()
    return default


def _str_list(value: Any, default: list[str]) -> list[str]:
    if isinstance(value, list):
        items = [v for v in value if isinstance(v, str)]
        if items:
            return items
    return list(default)


def _number(value: Any, default: float) -> float:
    if isinstance(value, bool):
        return default
    if isinstance(value, (int, float)):
        return value
    return default


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# --- Result types ---


@dataclass
class NewsArticle:
    headline: str
    summary: str
    source: str
    url: str
    published_at: str
    sentiment: str = "neutral"

    @classmethod
    def from_raw(cls, raw: dict) -> NewsArticle:
        return cls(
            headline=_str(raw.get("headline") or raw.get("title"), "No headline"),
            summary=_str(raw.get("summary") or raw.get("description"), "No summary available"),
            source=_str(raw.get("source"), "Unknown source"),
            url=_str(raw.get("url"), "#"),
            published_at=_str(raw.get("publishedAt") or raw.get("date"), _now_iso()),
            sentiment=_choice(raw.get("sentiment"), ("positive", "negative", "neutral"), "neutral"),
        )


@dataclass
class NewsAnalysis:
    ticker: str
    articles: list[NewsArticle]
    overall_sentiment: str
    key_themes: list[str]
    market_impact: str

    @classmethod
    def from_text(cls, content: str, ticker: str) -> NewsAnalysis:
        ticker = ticker.upper()
        parsed = extract_json_object(content)
        raw_articles = parsed.get("articles") if parsed else None
        if isinstance(raw_articles, list):
            articles = [NewsArticle.from_raw(a) for a in raw_articles if isinstance(a, dict)]
            return cls(
                ticker=ticker,
                articles=articles,
                overall_sentiment=overall_news_sentiment(articles),
                key_themes=key_news_themes(articles),
                market_impact=assess_market_impact(articles),
            )

        summary = content[:500] + ("..." if len(content) > 500 else "")
        return cls(
            ticker=ticker,
            articles=[NewsArticle(
                headline=f"Recent news summary for {ticker}",
                summary=summary,
                source="AI Analysis",
                url="#",
                published_at=_now_iso(),
            )],
            overall_sentiment="neutral",
            key_themes=["General market news"],
            market_impact="medium",
        )


@dataclass
class NewsImpact:
    overall_impact: str = "neutral"
    impact_score: float = 5
    key_insights: list[str] = field(default_factory=lambda: ["Analysis unavailable"])
    risk_factors: list[str] = field(default_factory=lambda: ["Standard market risks"])

    @classmethod
    def from_text(cls, content: str) -> NewsImpact:
        parsed = extract_json_object(content)
        fallback = cls()
        if parsed is None:
            return fallback
        return cls(
            overall_impact=_choice(
                parsed.get("overallImpact"), ("positive", "negative", "neutral"), fallback.overall_impact
            ),
            impact_score=_number(parsed.get("impactScore"), fallback.impact_score),
            key_insights=_str_list(parsed.get("keyInsights"), fallback.key_insights),
            risk_factors=_str_list(parsed.get("riskFactors"), fallback.risk_factors),
        )


@dataclass
class MarketContext:
    sector_trends: list[str] = field(default_factory=lambda: ["General market trends"])
    market_sentiment: str = "Mixed market conditions"
    competitor_analysis: list[str] = field(
        default_factory=lambda: ["Competitive landscape analysis unavailable"]
    )
    macro_factors: list[str] = field(default_factory=lambda: ["Standard macroeconomic factors"])

    @classmethod
    def from_text(cls, content: str) -> MarketContext:
        parsed = extract_json_object(content)
        fallback = cls()
        if parsed is None:
            return fallback
        return cls(
            sector_trends=_str_list(parsed.get("sectorTrends"), fallback.sector_trends),
            market_sentiment=_str(parsed.get("marketSentiment"), fallback.market_sentiment),
            competitor_analysis=_str_list(parsed.get("competitorAnalysis"), fallback.competitor_analysis),
            macro_factors=_str_list(parsed.get("macroFactors"), fallback.macro_factors),
        )


@dataclass
class SocialSentiment:
    overall_sentiment: str = "neutral"
    sentiment_score: float = 0
    key_themes: list[str] = field(default_factory=lambda: ["General discussion"])
    confidence_level: str = "low"

    @classmethod
    def from_text(cls, content: str) -> SocialSentiment:
        parsed = extract_json_object(content)
        fallback = cls()
        if parsed is None:
            return fallback
        return cls(
            overall_sentiment=_choice(
                parsed.get("overallSentiment"), ("bullish", "bearish", "neutral"), fallback.overall_sentiment
            ),
            sentiment_score=_number(parsed.get("sentimentScore"), fallback.sentiment_score),
            key_themes=_str_list(parsed.get("keyThemes"), fallback.key_themes),
            confidence_level=_choice(
                parsed.get("confidenceLevel"), ("high", "medium", "low"), fallback.confidence_level
            ),
        )


# --- Article heuristics ---


def overall_news_sentiment(articles: list[NewsArticle]) -> str:
    positive = sum(1 for a in articles if a.sentiment == "positive")
    negative = sum(1 for a in articles if a.sentiment == "negative")
    if positive > negative:
        return "positive"
    if negative > positive:
        return "negative"
    return "neutral"


def _article_text(articles: list[NewsArticle]) -> str:
    return " ".join(f"{a.headline} {a.summary}" for a in articles).lower()


def key_news_themes(articles: list[NewsArticle]) -> list[str]:
    text = _article_text(articles)
    themes = [kw.capitalize() for kw in _THEME_KEYWORDS if kw in text]
    return themes or ["General business news"]


def assess_market_impact(articles: list[NewsArticle]) -> str:
    text = _article_text(articles)
    if any(kw in text for kw in _HIGH_IMPACT_KEYWORDS) or len(articles) >= 5:
        return "high"
    if len(articles) >= 2:
        return "medium"
    return "low"


# --- Prompts ---


def build_news_prompt(ticker: str, days_back: int, max_articles: int, include_sentiment: bool) -> str:
    sentiment_item = "6. Sentiment impact (positive/negative/neutral)\n" if include_sentiment else ""
    sentiment_key = ", sentiment" if include_sentiment else ""
    return (
        f"Find and summarize the {max_articles} most recent and impactful news articles about "
        f"{ticker} from the last {days_back} days.\n\n"
        "For each article, provide:\n"
        "1. Headline/Title\n"
        "2. Brief summary (2-3 sentences)\n"
        "3. Source name\n"
        "4. Complete source URL\n"
        "5. Publication date\n"
        f"{sentiment_item}\n"
        "Focus on:\n"
        "- Earnings reports and financial results\n"
        "- Product launches or business developments\n"
        "- Regulatory changes or legal issues\n"
        "- Market analyst upgrades/downgrades\n"
        "- Management changes\n"
        "- Partnership or acquisition news\n\n"
        "Format as JSON with an array of articles, each containing: "
        f"headline, summary, source, url, publishedAt{sentiment_key}."
    )


class OpenAIClient:
    """Async HTTP client for the OpenAI chat completions endpoint."""

    BASE_URL = "https://api.openai.com"
    TIMEOUT = 60.0

    def __init__(self, api_key: str, model: str = "gpt-4o-mini"):
        self.api_key = api_key
        self.model = model
        self._client: httpx.AsyncClient | None = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.BASE_URL,
                timeout=self.TIMEOUT,
                headers={
                    "Authorization": f"Bearer {self.api_key}",
                    "Content-Type": "application/json",
                },
            )
        return self._client

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    async def chat(self, system: str, prompt: str, *, max_tokens: int, temperature: float) -> str:
        """Run one system/user completion and return the reply text.

        Raises:
            OpenAIError: On API or transport errors
        """
        try:
            resp = await self._get_client().post(
                "/v1/chat/completions",
                json={
                    "model": self.model,
                    "messages": [
                        {"role": "system", "content": system},
                        {"role": "user", "content": prompt},
                    ],
                    "max_tokens": max_tokens,
                    "temperature": temperature,
                },
            )
            resp.raise_for_status()
            data = resp.json()
        except httpx.HTTPStatusError as e:
            raise OpenAIError(
                f"OpenAI API error {e.response.status_code}: {e.response.text[:200]}",
                status_code=e.response.status_code,
            ) from e
        except httpx.RequestError as e:
            raise OpenAIError(f"Request failed: {e}") from e
        except ValueError as e:
            raise OpenAIError(f"Invalid response from OpenAI: {e}") from e

        try:
            return data["choices"][0]["message"]["content"] or ""
        except (KeyError, IndexError, TypeError):
            return ""

    async def get_latest_news(
        self,
        ticker: str,
        days_back: int = 7,
        max_articles: int = 10,
        include_sentiment: bool = True,
    ) -> NewsAnalysis:
        try:
            content = await self.chat(
                NEWS_SYSTEM_PROMPT,
                build_news_prompt(ticker, days_back, max_articles, include_sentiment),
                max_tokens=2000,
                temperature=0.3,
            )
        except OpenAIError as e:
            raise OpenAIError(f"Failed to get news analysis: {e}", status_code=e.status_code) from e
        return NewsAnalysis.from_text(content, ticker)

    async def analyze_news_impact(self, ticker: str, news_items: list[str]) -> NewsImpact:
        items = "\n".join(f"{i}. {item}" for i, item in enumerate(news_items, start=1))
        prompt = (
            f"Analyze the following news items for {ticker} and provide:\n"
            "1. Overall market impact (positive/negative/neutral)\n"
            "2. Impact score (1-10, where 10 is highest impact)\n"
            "3. Key insights for investors\n"
            "4. Risk factors to consider\n\n"
            f"News items:\n{items}\n\n"
            "Provide response in JSON format with keys: overallImpact, impactScore, keyInsights, riskFactors"
        )
        try:
            content = await self.chat(IMPACT_SYSTEM_PROMPT, prompt, max_tokens=1000, temperature=0.2)
        except OpenAIError as e:
            raise OpenAIError(f"Failed to analyze news impact: {e}", status_code=e.status_code) from e
        return NewsImpact.from_text(content)

    async def get_market_context(self, ticker: str, sector: str | None = None) -> MarketContext:
        sector_clause = f" in the {sector} sector" if sector else ""
        prompt = (
            f"Provide market context analysis for {ticker}{sector_clause}:\n\n"
            "Include:\n"
            "1. Current sector trends affecting the stock\n"
            "2. Overall market sentiment\n"
            "3. Key competitor movements\n"
            "4. Relevant macroeconomic factors\n\n"
            "Provide response in JSON format with keys: sectorTrends, marketSentiment, "
            "competitorAnalysis, macroFactors"
        )
        try:
            content = await self.chat(CONTEXT_SYSTEM_PROMPT, prompt, max_tokens=1200, temperature=0.3)
        except OpenAIError as e:
            raise OpenAIError(f"Failed to get market context: {e}", status_code=e.status_code) from e
        return MarketContext.from_text(content)

    async def analyze_social_sentiment(self, posts: list[dict]) -> SocialSentiment:
        """Score retail sentiment from up to 20 posts or comments."""
        posts_text = "\n\n".join(
            f"Title: {p.get('title', '')}\n"
            f"Content: {p.get('selftext') or p.get('body') or 'No content'}\n"
            f"Score: {p.get('score', 0)}"
            for p in posts[:20]
        )
        prompt = (
            "Analyze the sentiment of these social media posts about a stock:\n\n"
            f"{posts_text}\n\n"
            "Provide:\n"
            "1. Overall sentiment (bullish/bearish/neutral)\n"
            "2. Sentiment score (-10 to +10, where -10 is very bearish, +10 is very bullish)\n"
            "3. Key themes mentioned\n"
            "4. Confidence level in the analysis\n\n"
            "Respond in JSON format with keys: overallSentiment, sentimentScore, keyThemes, confidenceLevel"
        )
        try:
            content = await self.chat(SOCIAL_SYSTEM_PROMPT, prompt, max_tokens=800, temperature=0.2)
        except OpenAIError as e:
            raise OpenAIError(f"Failed to analyze social sentiment: {e}", status_code=e.status_code) from e
        return SocialSentiment.from_text(content)
