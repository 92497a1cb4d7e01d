"""Async Reddit API client: OAuth password grant, subreddit search, comments."""

from __future__ import annotations

import asyncio
import logging
import re
import time
from datetime import datetime, timezone
from typing import Any

import httpx

from models import RedditComment, RedditPost, RedditSearchResult

logger = logging.getLogger(__name__)

DEFAULT_SUBREDDITS = ["stocks", "wallstreetbets", "investing", "ValueInvesting"]

_TICKER_PATTERN = re.compile(r"\$([A-Z]{1,5})\b|\b([A-Z]{2,5})\b")

# Uppercase words that look like tickers but almost never are.
COMMON_WORDS = frozenset({
    "THE", "AND", "FOR", "ARE", "BUT", "NOT", "YOU", "ALL", "CAN", "HER", "WAS", "ONE",
    "OUR", "HAD", "SEE", "GET", "MAY", "SAY", "SHE", "USE", "HOW", "NOW", "MAN", "NEW",
    "WAY", "WHO", "BOY", "DID", "ITS", "LET", "PUT", "END", "WHY", "TRY", "GOD", "SIX",
    "DOG", "EAT", "AGO", "SIT", "FUN", "BAD", "YES", "YET", "ARM", "FAR", "OFF", "ILL",
    "EGG", "ADD", "LOT", "BIG", "BED", "RUN", "TOP", "CAR", "CUT", "AGE", "BAG", "OWN",
})


class RedditError(Exception):
    """Raised when the Reddit API returns an error."""

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)


def _iso_utc(epoch_seconds: float | None) -> str:
    if not epoch_seconds:
        return ""
    return datetime.fromtimestamp(epoch_seconds, tz=timezone.utc).isoformat()


def extract_tickers(text: str) -> list[str]:
    """Return ticker-like tokens ("$TSLA", "NVDA") minus common English words."""
    tickers = []
    for match in _TICKER_PATTERN.finditer(text):
        ticker = (match.group(1) or match.group(2)).upper()
        if 2 <= len(ticker) <= 5 and ticker not in COMMON_WORDS:
            tickers.append(ticker)
    return tickers


def flatten_comments(children: list[dict]) -> list[RedditComment]:
    """Depth-first walk of a Reddit comment tree into a flat list."""
    flattened = []
    for child in children:
        data = child.get("data") if isinstance(child, dict) else None
        if not data or not data.get("body"):
            continue
        flattened.append(RedditComment(
            author=data.get("author", ""),
            body=data["body"],
            score=data.get("score", 0),
            created_utc=_iso_utc(data.get("created_utc")),
        ))
        replies = data.get("replies")
        if isinstance(replies, dict):
            flattened.extend(flatten_comments(replies.get("data", {}).get("children", [])))
    return flattened


class RedditClient:
    """Async HTTP client for oauth.reddit.com.

    The bearer token is cached with its expiry and refreshed lazily.
    Concurrent callers may refresh it twice; the last write wins.
    """

    BASE_URL = "https://oauth.reddit.com"
    AUTH_URL = "https://www.reddit.com/api/v1/access_token"
    USER_AGENT = "TradingMCP/1.0"
    TIMEOUT = 10.0

    def __init__(self, client_id: str, client_secret: str, username: str, password: str):
        self.client_id = client_id
        self.client_secret = client_secret
        self.username = username
        self.password = password
        self._client: httpx.AsyncClient | None = None
        self._access_token: str | None = None
        self._token_expiry: float = 0.0

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.BASE_URL,
                timeout=self.TIMEOUT,
                headers={"User-Agent": self.USER_AGENT},
            )
        return self._client

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    async def _authenticate(self) -> None:
        try:
            resp = await self._get_client().post(
                self.AUTH_URL,
                data={
                    "grant_type": "password",
                    "username": self.username,
                    "password": self.password,
                },
                auth=(self.client_id, self.client_secret),
            )
            resp.raise_for_status()
            payload = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            raise RedditError(f"Failed to authenticate with Reddit API: {e}") from e

        token = payload.get("access_token") if isinstance(payload, dict) else None
        if not token:
            raise RedditError("Failed to authenticate with Reddit API: no access token returned")
        self._access_token = token
        self._token_expiry = time.monotonic() + float(payload.get("expires_in", 3600))
        logger.debug("Authenticated with Reddit API")

    async def _ensure_token(self) -> str:
        if self._access_token is None or time.monotonic() >= self._token_expiry:
            await self._authenticate()
        return self._access_token

    async def get(self, path: str, params: dict | None = None) -> Any:
        """Authenticated GET against the OAuth API.

        Raises:
            RedditError: On authentication, API or transport errors
        """
        token = await self._ensure_token()
        try:
            resp = await self._get_client().get(
                path,
                params=params,
                headers={"Authorization": f"Bearer {token}"},
            )
            resp.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise RedditError(
                f"Reddit API error {e.response.status_code}: {e.response.text[:200]}",
                status_code=e.response.status_code,
            ) from e
        except httpx.RequestError as e:
            raise RedditError(f"Request failed: {e}") from e
        return resp.json()

    async def _search_subreddit(
        self, query: str, subreddit: str, time_filter: str, limit: int, sort: str
    ) -> list[RedditPost]:
        data = await self.get(
            f"/r/{subreddit}/search",
            params={"q": query, "restrict_sr": "true", "sort": sort, "t": time_filter, "limit": limit},
        )
        posts = []
        for child in (data or {}).get("data", {}).get("children", []):
            post = child.get("data") or {}
            if not post.get("title"):
                continue
            posts.append(RedditPost(
                title=post["title"],
                author=post.get("author", ""),
                score=post.get("score", 0),
                num_comments=post.get("num_comments", 0),
                url=f"https://reddit.com{post.get('permalink', '')}",
                created_utc=_iso_utc(post.get("created_utc")),
                subreddit=post.get("subreddit", subreddit),
                selftext=post.get("selftext") or "",
            ))
        return posts

    async def search_posts(
        self,
        ticker: str,
        subreddits: list[str] | None = None,
        time_filter: str = "week",
        limit: int = 25,
        sort: str = "hot",
    ) -> RedditSearchResult:
        """Search each subreddit for the ticker, dedupe by URL, sort by score.

        A subreddit that fails is logged and skipped.
        """
        query = ticker.upper()
        subreddits = subreddits or DEFAULT_SUBREDDITS
        await self._ensure_token()

        results = await asyncio.gather(
            *(self._search_subreddit(query, sub, time_filter, limit, sort) for sub in subreddits),
            return_exceptions=True,
        )

        seen: set[str] = set()
        posts: list[RedditPost] = []
        for subreddit, result in zip(subreddits, results):
            if isinstance(result, BaseException):
                logger.warning("Failed to search r/%s: %s", subreddit, result)
                continue
            for post in result:
                if post.url in seen:
                    continue
                seen.add(post.url)
                posts.append(post)

        posts.sort(key=lambda p: p.score, reverse=True)
        return RedditSearchResult(posts=posts, search_query=query)

    async def get_post_comments(self, post_id: str, limit: int = 100) -> list[RedditComment]:
        try:
            data = await self.get(f"/comments/{post_id}", params={"limit": limit, "sort": "top"})
        except RedditError as e:
            raise RedditError(f"Failed to get comments: {e}", status_code=e.status_code) from e
        if not isinstance(data, list) or len(data) < 2:
            return []
        return flatten_comments(data[1].get("data", {}).get("children", []))

    async def get_trending_tickers(self, subreddits: list[str] | None = None) -> dict[str, int]:
        """Count ticker mentions across the hot pages of the given subreddits."""
        subreddits = subreddits or ["wallstreetbets", "stocks"]
        await self._ensure_token()

        results = await asyncio.gather(
            *(self.get(f"/r/{sub}/hot", params={"limit": 100}) for sub in subreddits),
            return_exceptions=True,
        )

        mentions: dict[str, int] = {}
        for subreddit, result in zip(subreddits, results):
            if isinstance(result, BaseException):
                logger.warning("Failed to get trending tickers from r/%s: %s", subreddit, result)
                continue
            for child in (result or {}).get("data", {}).get("children", []):
                post = child.get("data") or {}
                text = f"{post.get('title', '')} {post.get('selftext') or ''}"
                for ticker in extract_tickers(text):
                    mentions[ticker] = mentions.get(ticker, 0) + 1
        return mentions
