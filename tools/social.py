"""Reddit trending tickers and retail sentiment."""

from __future__ import annotations

from dataclasses import asdict
from typing import TYPE_CHECKING

from models import to_dict
from openai_client import OpenAIError
from reddit_client import DEFAULT_SUBREDDITS, RedditError
from tools._helpers import _normalize_ticker, _upstream_error

if TYPE_CHECKING:
    from fastmcp import FastMCP
    from openai_client import OpenAIClient
    from reddit_client import RedditClient

TIME_FILTERS = ("hour", "day", "week", "month", "year")
SORT_ORDERS = ("relevance", "hot", "top", "new")


def register_trending(mcp: FastMCP, reddit: RedditClient) -> None:
    @mcp.tool(
        annotations={
            "title": "Trending Stocks",
            "readOnlyHint": True,
            "destructiveHint": False,
            "idempotentHint": False,
            "openWorldHint": True,
        }
    )
    async def discover_trending_stocks(
        subreddits: list[str] | None = None,
        limit: int = 20,
    ) -> dict:
        """Tickers getting the most mentions on Reddit investing communities right now.

        Counts $TICKER and all-caps ticker-like words in the hot posts of each
        subreddit, minus common English words. A subreddit that fails to load
        is skipped.

        Args:
            subreddits: Subreddits to scan (default ["wallstreetbets", "stocks"])
            limit: Max tickers to return (default 20)
        """
        subreddits = subreddits or ["wallstreetbets", "stocks"]
        try:
            mentions = await reddit.get_trending_tickers(subreddits)
        except RedditError as e:
            raise _upstream_error("getting trending tickers", None, e) from e

        ranked = sorted(mentions.items(), key=lambda kv: kv[1], reverse=True)[: max(0, limit)]
        trending = [{"ticker": t, "mentions": n} for t, n in ranked]
        return {
            "subreddits": subreddits,
            "trending_tickers": trending,
            "total_unique_tickers": len(mentions),
            "summary": f"Found {len(trending)} trending tickers across {', '.join(subreddits)}",
        }


def register_sentiment(mcp: FastMCP, reddit: RedditClient, openai: OpenAIClient) -> None:
    @mcp.tool(
        annotations={
            "title": "Reddit Sentiment",
            "readOnlyHint": True,
            "destructiveHint": False,
            "idempotentHint": False,
            "openWorldHint": True,
        }
    )
    async def analyze_reddit_sentiment(
        ticker: str,
        subreddits: list[str] | None = None,
        time_filter: str = "week",
        limit: int = 25,
        sort: str = "hot",
        max_posts_for_sentiment: int = 50,
        include_comments: bool = False,
        post_id_for_comments: str | None = None,
        comment_limit: int = 100,
    ) -> dict:
        """Search Reddit for a ticker and score retail sentiment with an LLM.

        Returns matching posts (deduplicated, highest score first), optional
        comments from one post, and a sentiment read: overall
        bullish/bearish/neutral, a -10..+10 score, key themes and confidence.

        Args:
            ticker: Stock ticker symbol (e.g. "GME")
            subreddits: Subreddits to search (default stocks, wallstreetbets,
                investing, ValueInvesting)
            time_filter: hour, day, week, month or year (default week)
            limit: Max posts per subreddit (default 25)
            sort: relevance, hot, top or new (default hot)
            max_posts_for_sentiment: Posts passed to sentiment scoring (default 50;
                the model sees at most 20)
            include_comments: Also fetch comments from post_id_for_comments
            post_id_for_comments: Reddit post id (e.g. "1abc23")
            comment_limit: Max comments to fetch (default 100)
        """
        ticker = _normalize_ticker(ticker)
        if time_filter not in TIME_FILTERS:
            return {"error": f"Invalid time_filter '{time_filter}'. Options: {', '.join(TIME_FILTERS)}"}
        if sort not in SORT_ORDERS:
            return {"error": f"Invalid sort '{sort}'. Options: {', '.join(SORT_ORDERS)}"}
        subreddits = subreddits or list(DEFAULT_SUBREDDITS)

        try:
            search = await reddit.search_posts(ticker, subreddits, time_filter, limit, sort)
            comments = []
            if include_comments and post_id_for_comments:
                comments = await reddit.get_post_comments(post_id_for_comments, comment_limit)
        except RedditError as e:
            raise _upstream_error("searching Reddit", ticker, e) from e

        if not search.posts and not comments:
            return {
                "ticker": ticker,
                "error": "No Reddit posts found for sentiment analysis",
                "suggestion": "Try expanding the time filter or checking different subreddits",
            }

        sample = [asdict(p) for p in search.posts[: max(0, max_posts_for_sentiment)]]
        sample += [asdict(c) for c in comments]
        try:
            sentiment = await openai.analyze_social_sentiment(sample)
        except OpenAIError as e:
            raise _upstream_error("analyzing Reddit sentiment", ticker, e) from e

        result = {
            "ticker": ticker,
            "search_params": {
                "subreddits": subreddits,
                "time_filter": time_filter,
                "limit": limit,
                "sort": sort,
            },
            "posts": to_dict(search.posts),
            "total_found": search.total_found,
            "sentiment_analysis": to_dict(sentiment),
            "posts_analyzed": len(sample),
            "top_posts": [
                {"title": p.title, "score": p.score, "subreddit": p.subreddit, "url": p.url}
                for p in search.posts[:10]
            ],
            "summary": (
                f"Social sentiment: {sentiment.overall_sentiment} "
                f"(score: {sentiment.sentiment_score}) from {search.total_found} posts"
            ),
        }
        if include_comments:
            result["comments"] = to_dict(comments)
            result["total_comments"] = len(comments)
            if not post_id_for_comments:
                result["_warnings"] = ["include_comments set without post_id_for_comments; no comments fetched"]
        return result
