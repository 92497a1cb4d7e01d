"""Shared test fixtures."""

from __future__ import annotations

import json
from datetime import date, timedelta

import httpx
import pytest
import respx

from barchart_client import BarchartClient
from finviz_client import FinvizClient
from openai_client import OpenAIClient
from reddit_client import RedditClient

BASE_FINVIZ = "https://finviz.com"
BASE_BARCHART = "https://www.barchart.com"
BASE_REDDIT = "https://oauth.reddit.com"
REDDIT_AUTH_URL = "https://www.reddit.com/api/v1/access_token"
OPENAI_CHAT_URL = "https://api.openai.com/v1/chat/completions"


@pytest.fixture
def finviz_client():
    return FinvizClient()


@pytest.fixture
def barchart_client():
    return BarchartClient()


@pytest.fixture
def reddit_client():
    return RedditClient(
        client_id="test_id",
        client_secret="test_secret",
        username="test_user",
        password="test_pass",
    )


@pytest.fixture
def openai_client():
    return OpenAIClient(api_key="test_key")


@pytest.fixture
def mock_finviz():
    """Start respx mock for Finviz page fetches."""
    with respx.mock(base_url=BASE_FINVIZ, assert_all_called=False) as api:
        yield api


def days_ago(n: int, fmt: str = "%m/%d/%y") -> str:
    return (date.today() - timedelta(days=n)).strftime(fmt)


# --- Finviz pages ---

_SCREENER_HEADER = (
    "<tr><td>No.</td><td>Ticker</td><td>Company</td><td>Sector</td><td>Industry</td>"
    "<td>Country</td><td>Market Cap</td><td>P/E</td><td>Price</td><td>Change</td><td>Volume</td></tr>"
)


def _screener_row(*cells: str) -> str:
    return "<tr>" + "".join(f"<td>{c}</td>" for c in cells) + "</tr>"


FINVIZ_SCREENER_HTML = f"""
<html><body>
<table class="styled-table-new is-rounded">
{_SCREENER_HEADER}
{_screener_row("1", "AAPL", "Apple Inc.", "Technology", "Consumer Electronics", "USA",
               "2950.00B", "29.57", "189.84", "1.25%", "55,000,000")}
{_screener_row("2", "MSFT", "Microsoft Corporation", "Technology", "Software - Infrastructure",
               "USA", "3100.00B", "35.10", "415.20", "-0.40%", "21,000,000")}
{_screener_row("3", "-", "", "", "", "", "", "", "", "", "")}
{_screener_row("4", "SHORT", "Too few cells")}
</table>
</body></html>
"""

FINVIZ_EMPTY_HTML = "<html><body><p>No results</p></body></html>"


def _insider_row(*cells: str) -> str:
    return "<tr>" + "".join(f"<td>{c}</td>" for c in cells) + "</tr>"


def finviz_quote_html(
    snapshot: dict[str, str] | None = None,
    insider_rows: list[tuple[str, ...]] | None = None,
) -> str:
    """Quote page with a snapshot table and an insider table."""
    snapshot = AAPL_SNAPSHOT if snapshot is None else snapshot
    insider_rows = aapl_insider_rows() if insider_rows is None else insider_rows

    pairs = list(snapshot.items())
    snapshot_rows = "".join(
        "<tr>" + "".join(f"<td>{label}</td><td><b>{value}</b></td>" for label, value in pairs[i:i + 3]) + "</tr>"
        for i in range(0, len(pairs), 3)
    )
    insider_header = (
        "<tr><td>Insider Trading</td><td>Relationship</td><td>Date</td><td>Transaction</td>"
        "<td>Cost</td><td>#Shares</td><td>Value ($)</td><td>#Shares Total</td></tr>"
    )
    insider_body = "".join(_insider_row(*row) for row in insider_rows)
    return f"""
<html><body>
<table class="snapshot-table2 screener_snapshot-table-body">{snapshot_rows}</table>
<table class="body-table styled-table-new is-rounded is-nowrap insider-table">
{insider_header}
{insider_body}
</table>
</body></html>
"""


AAPL_SNAPSHOT = {
    "P/E": "15.00",
    "Forward P/E": "13.50",
    "PEG": "1.20",
    "Current Ratio": "2.00",
    "Insider Own": "0.50%",
    "Short Float": "1.20%",
    "Profit Margin": "10.00%",
    "Market Cap": "2950.00B",
    "EPS next Y": "5.00%",
    "Sales past 5Y": "8.50%",
    "Debt/Eq": "0.20",
    "P/B": "4.10",
    "ROE": "20.00%",
    "RSI (14)": "55.30",
    "SMA200": "3.20%",
    "Beta": "1.24",
}

MSFT_SNAPSHOT = {
    "P/E": "35.00",
    "Forward P/E": "30.00",
    "PEG": "2.40",
    "P/B": "12.00",
    "Debt/Eq": "0.50",
}

NVDA_SNAPSHOT = {
    "P/E": "65.00",
    "Forward P/E": "40.00",
    "PEG": "1.10",
    "P/B": "50.00",
    "Debt/Eq": "0.40",
}


def aapl_insider_rows() -> list[tuple[str, ...]]:
    """Dates relative to today so the 90-day window stays stable."""
    return [
        ("COOK TIMOTHY D", "CEO", days_ago(5), "Sale", "190.00", "10,000", "1,900,000", "3,280,000"),
        ("LEVINSON ARTHUR D", "Director", days_ago(10, "%b %d '%y"), "Buy", "180.00", "5,000",
         "900,000", "4,500,000"),
        ("SMALL HOLDER", "Officer", days_ago(15), "Sale", "180.00", "10", "1,800", "100"),
        ("OLD DIRECTOR", "Director", days_ago(200), "Buy", "150.00", "100,000", "15,000,000", "200,000"),
        ("-", "", "", "", "", "", "", ""),
        ("ADAMS KATHERINE L", "General Counsel", days_ago(20), "Option Exercise", "50.00", "2,000",
         "100,000"),
    ]


# --- Barchart pages ---


def _totals_block(totals: dict[str, str]) -> str:
    spans = "".join(f"<div><span>{label}: <strong>{value}</strong></span></div>" for label, value in totals.items())
    return f'<div class="bc-options-totals">{spans}</div>'


def _expiration_table(rows: list[tuple[str, ...]]) -> str:
    header = (
        "<tr><th>Expiration Date</th><th>Put Volume</th><th>Call Volume</th><th>Put/Call Vol Ratio</th>"
        "<th>Put OI</th><th>Call OI</th><th>Put/Call OI Ratio</th></tr>"
    )
    body = "".join("<tr>" + "".join(f"<td>{c}</td>" for c in row) + "</tr>" for row in rows)
    return f"<table>{header}{body}</table>"


def barchart_page(totals: dict[str, str] | None = None, rows: list[tuple[str, ...]] | None = None,
                  extra: str = "") -> str:
    parts = ['<html><body><span class="last-price">189.84</span>']
    if totals:
        parts.append(_totals_block(totals))
    if rows:
        parts.append(_expiration_table(rows))
    parts.append(extra)
    parts.append("</body></html>")
    return "".join(parts)


AAPL_TOTALS = {
    "Put Volume Total": "60,000",
    "Call Volume Total": "100,000",
    "Put/Call Volume Ratio": "0.60",
    "Put Open Interest Total": "300,000",
    "Call Open Interest Total": "400,000",
    "Put/Call Open Interest Ratio": "0.75",
}

AAPL_EXPIRATIONS = [
    ("10/18/26", "20,000", "40,000", "0.50", "100,000", "150,000", "0.67"),
    ("10/25/26", "25,000", "40,000", "0.63", "120,000", "150,000", "0.80"),
    ("11/01/26", "15,000", "20,000", "0.75", "80,000", "100,000", "0.80"),
]

BARCHART_AAPL_HTML = barchart_page(AAPL_TOTALS, AAPL_EXPIRATIONS)

BARCHART_TEXT_ONLY_HTML = barchart_page(extra=(
    "<p>Options overview. Put Volume Total: 150,000 Call Volume Total: 100,000 "
    "Put/Call Volume Ratio: 1.50</p>"
))

BARCHART_ROWS_ONLY_HTML = barchart_page(rows=[
    ("Oct 18, 2026", "30,000", "10,000", "", "50,000", "25,000", "0"),
    ("2026-10-25", "10,000", "10,000", "1.00", "20,000", "20,000", "1.00"),
])

BARCHART_EMPTY_HTML = "<html><body><p>Put/call data is not available.</p></body></html>"


# --- Reddit API ---

REDDIT_TOKEN = {"access_token": "test_token", "token_type": "bearer", "expires_in": 3600}


def reddit_listing(posts: list[dict]) -> dict:
    return {"kind": "Listing", "data": {"children": [{"kind": "t3", "data": p} for p in posts]}}


REDDIT_STOCKS_SEARCH = reddit_listing([
    {
        "title": "TSLA earnings beat, thoughts?",
        "author": "investor1",
        "score": 120,
        "num_comments": 45,
        "permalink": "/r/stocks/comments/abc123/tsla_earnings/",
        "created_utc": 1760000000,
        "subreddit": "stocks",
        "selftext": "Margins looked better than expected.",
    },
    {
        "title": "Cross-posted TSLA DD",
        "author": "dd_writer",
        "score": 40,
        "num_comments": 12,
        "permalink": "/r/wallstreetbets/comments/dup999/tsla_dd/",
        "created_utc": 1760001000,
        "subreddit": "wallstreetbets",
        "selftext": "",
    },
])

REDDIT_WSB_SEARCH = reddit_listing([
    {
        "title": "TSLA to the moon",
        "author": "ape42",
        "score": 900,
        "num_comments": 300,
        "permalink": "/r/wallstreetbets/comments/def456/tsla_moon/",
        "created_utc": 1760002000,
        "subreddit": "wallstreetbets",
        "selftext": "Calls printing",
    },
    {
        "title": "Cross-posted TSLA DD",
        "author": "dd_writer",
        "score": 40,
        "num_comments": 12,
        "permalink": "/r/wallstreetbets/comments/dup999/tsla_dd/",
        "created_utc": 1760001000,
        "subreddit": "wallstreetbets",
        "selftext": "",
    },
])

REDDIT_WSB_HOT = reddit_listing([
    {"title": "$GME and AMC are back", "selftext": "GME squeeze incoming", "score": 10},
    {"title": "NVDA earnings play", "selftext": "THE setup for NVDA calls", "score": 5},
    {"title": "Daily discussion", "selftext": None, "score": 1},
])

REDDIT_STOCKS_HOT = reddit_listing([
    {"title": "Is NVDA overvalued?", "selftext": "Comparing NVDA to AMD", "score": 7},
])

REDDIT_COMMENTS = [
    reddit_listing([{"title": "TSLA to the moon", "id": "def456"}]),
    {
        "kind": "Listing",
        "data": {
            "children": [
                {
                    "kind": "t1",
                    "data": {
                        "author": "commenter1",
                        "body": "Holding since 2019",
                        "score": 50,
                        "created_utc": 1760003000,
                        "replies": {
                            "kind": "Listing",
                            "data": {
                                "children": [
                                    {
                                        "kind": "t1",
                                        "data": {
                                            "author": "commenter2",
                                            "body": "Same here",
                                            "score": 10,
                                            "created_utc": 1760003500,
                                            "replies": "",
                                        },
                                    }
                                ]
                            },
                        },
                    },
                },
                {"kind": "more", "data": {"count": 12, "children": ["x1", "x2"]}},
            ]
        },
    },
]


# --- OpenAI API ---


def chat_completion(content: str) -> dict:
    return {
        "id": "chatcmpl-test",
        "object": "chat.completion",
        "choices": [{"index": 0, "message": {"role": "assistant", "content": content}, "finish_reason": "stop"}],
    }


NEWS_REPLY = json.dumps({
    "articles": [
        {
            "headline": "Apple beats earnings estimates",
            "summary": "Revenue rose 8% on strong iPhone sales.",
            "source": "Reuters",
            "url": "https://www.reuters.com/apple-earnings",
            "publishedAt": "2026-10-15T12:00:00Z",
            "sentiment": "positive",
        },
        {
            "headline": "Analyst upgrade lifts Apple shares",
            "summary": "Price target raised to $250.",
            "source": "Seeking Alpha",
            "url": "https://seekingalpha.com/apple-upgrade",
            "publishedAt": "2026-10-14T12:00:00Z",
            "sentiment": "positive",
        },
        {
            "headline": "Apple faces EU lawsuit",
            "summary": "Regulators open a new case over app store rules.",
            "source": "Some Blog",
            "url": "https://example.com/apple-eu",
            "publishedAt": "2026-10-13T12:00:00Z",
            "sentiment": "negative",
        },
    ]
})

IMPACT_REPLY = (
    "Here is the analysis:\n"
    + json.dumps({
        "overallImpact": "positive",
        "impactScore": 7,
        "keyInsights": ["Earnings momentum intact"],
        "riskFactors": ["Regulatory pressure in the EU"],
    })
)

CONTEXT_REPLY = json.dumps({
    "sectorTrends": ["AI hardware demand"],
    "marketSentiment": "Cautiously optimistic",
    "competitorAnalysis": ["Samsung gaining share"],
    "macroFactors": ["Rate cuts expected"],
})

SOCIAL_REPLY = json.dumps({
    "overallSentiment": "bullish",
    "sentimentScore": 6,
    "keyThemes": ["earnings", "calls"],
    "confidenceLevel": "medium",
})


def openai_router(request: httpx.Request) -> httpx.Response:
    """Answer each chat completion according to its system prompt."""
    body = json.loads(request.content)
    system = body["messages"][0]["content"]
    if "news impact" in system:
        content = IMPACT_REPLY
    elif "news analyst" in system:
        content = NEWS_REPLY
    elif "market analyst" in system:
        content = CONTEXT_REPLY
    else:
        content = SOCIAL_REPLY
    return httpx.Response(200, json=chat_completion(content))
