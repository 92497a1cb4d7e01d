"""Insider trading activity and sentiment."""

from __future__ import annotations

from datetime import date, timedelta
from typing import TYPE_CHECKING

from finviz_client import FinvizError
from models import InsiderTransaction, to_dict
from parsing import parse_transaction_date, parse_transaction_value
from tools._helpers import _normalize_ticker, _upstream_error

if TYPE_CHECKING:
    from fastmcp import FastMCP
    from finviz_client import FinvizClient

BUY_KEYWORDS = ("buy", "purchase", "acquire", "exercise", "conversion")
SELL_KEYWORDS = ("sell", "sale", "dispose", "gift")


def is_buy(transaction_type: str) -> bool:
    t = transaction_type.lower()
    return any(kw in t for kw in BUY_KEYWORDS)


def is_sell(transaction_type: str) -> bool:
    t = transaction_type.lower()
    return any(kw in t for kw in SELL_KEYWORDS)


def _insights(
    buy_count: int,
    sell_count: int,
    total_buy: float,
    total_sell: float,
    insider_types: dict[str, dict],
) -> list[str]:
    insights = []

    net = total_buy - total_sell
    if net > 100_000:
        insights.append(f"Net insider buying of ${net / 1_000_000:.1f}M indicates positive sentiment")
    elif net < -100_000:
        insights.append(
            f"Net insider selling of ${abs(net) / 1_000_000:.1f}M may indicate profit-taking or lack of confidence"
        )

    ceo = insider_types.get("ceo") or insider_types.get("chief executive officer")
    if ceo and ceo["net_value"] > 50_000:
        insights.append("CEO showing confidence with net buying activity")
    elif ceo and ceo["net_value"] < -50_000:
        insights.append("CEO has been net selling shares")

    board_net = sum(
        v["net_value"] for k, v in insider_types.items() if "director" in k or "board" in k
    )
    if board_net > 100_000:
        insights.append("Board members showing confidence with net buying")

    if buy_count > sell_count * 2:
        insights.append("Significantly more buy transactions than sell transactions")
    elif sell_count > buy_count * 2:
        insights.append("Significantly more sell transactions than buy transactions")

    return insights or ["Mixed insider activity with no clear directional bias"]


def calculate_insider_sentiment(
    transactions: list[InsiderTransaction],
    analysis_period: int = 90,
    min_value: float = 10_000,
    today: date | None = None,
) -> dict:
    """Classify insider sentiment from buy/sell value over a trailing window.

    Transactions older than ``analysis_period`` days or smaller than
    ``min_value`` (absolute) are ignored. buy_ratio >= 0.7 is bullish,
    <= 0.3 bearish. Types matching neither keyword set count toward the
    transaction total but not toward either value bucket.
    """
    cutoff = (today or date.today()) - timedelta(days=analysis_period)
    relevant = [
        t for t in transactions
        if parse_transaction_date(t.date) >= cutoff
        and abs(parse_transaction_value(t.value)) >= min_value
    ]

    if not relevant:
        return {
            "overall_sentiment": "neutral",
            "confidence_level": "low",
            "transaction_summary": {
                "total_transactions": 0,
                "buy_transactions": 0,
                "sell_transactions": 0,
                "total_buy_value": 0,
                "total_sell_value": 0,
            },
            "key_insights": ["No significant insider transactions found in the analysis period"],
            "insider_types": {},
        }

    buy_count = sell_count = 0
    total_buy = total_sell = 0.0
    insider_types: dict[str, dict] = {}

    for t in relevant:
        value = abs(parse_transaction_value(t.value))
        bucket = insider_types.setdefault(
            t.relationship.lower(), {"buys": 0, "sells": 0, "net_value": 0.0}
        )
        if is_buy(t.transaction_type):
            buy_count += 1
            total_buy += value
            bucket["buys"] += 1
            bucket["net_value"] += value
        elif is_sell(t.transaction_type):
            sell_count += 1
            total_sell += value
            bucket["sells"] += 1
            bucket["net_value"] -= value

    total_value = total_buy + total_sell
    buy_ratio = total_buy / total_value if total_value > 0 else 0.0

    if buy_ratio >= 0.7:
        sentiment = "bullish"
    elif buy_ratio <= 0.3:
        sentiment = "bearish"
    else:
        sentiment = "neutral"

    if len(relevant) >= 10 and total_value >= 1_000_000:
        confidence = "high"
    elif len(relevant) >= 5 and total_value >= 500_000:
        confidence = "medium"
    else:
        confidence = "low"

    significant = sorted(relevant, key=lambda t: abs(parse_transaction_value(t.value)), reverse=True)[:5]

    return {
        "overall_sentiment": sentiment,
        "confidence_level": confidence,
        "transaction_summary": {
            "total_transactions": len(relevant),
            "buy_transactions": buy_count,
            "sell_transactions": sell_count,
            "total_buy_value": total_buy,
            "total_sell_value": total_sell,
            "net_value": total_buy - total_sell,
            "buy_ratio": round(buy_ratio, 2),
        },
        "key_insights": _insights(buy_count, sell_count, total_buy, total_sell, insider_types),
        "insider_types": insider_types,
        "recent_significant_transactions": to_dict(significant),
    }


def register(mcp: FastMCP, client: FinvizClient) -> None:
    @mcp.tool(
        annotations={
            "title": "Insider Activity",
            "readOnlyHint": True,
            "destructiveHint": False,
            "idempotentHint": True,
            "openWorldHint": True,
        }
    )
    async def analyze_insider_activity(
        ticker: str,
        limit: int = 10,
        transaction_types: list[str] | None = None,
        analysis_period: int = 90,
        min_transaction_value: float = 10000,
    ) -> dict:
        """Recent insider transactions from Finviz with a buy/sell sentiment read.

        Sentiment uses every transaction on the page within ``analysis_period``
        days and at least ``min_transaction_value`` dollars: bullish when buys
        are >= 70% of value, bearish when <= 30%. Confidence is high with 10+
        transactions and $1M+, medium with 5+ and $500K+.

        Args:
            ticker: Stock ticker symbol (e.g. "AAPL")
            limit: Max transactions to list (default 10)
            transaction_types: Optional substrings to keep, e.g. ["Buy", "Sale"]
            analysis_period: Sentiment window in days (default 90)
            min_transaction_value: Minimum absolute dollar value (default 10000)
        """
        ticker = _normalize_ticker(ticker)
        try:
            activity = await client.get_insider_activity(ticker)
        except FinvizError as e:
            raise _upstream_error("getting insider activity", ticker, e) from e

        transactions = activity.transactions
        if transaction_types:
            wanted = [t.lower() for t in transaction_types]
            transactions = [
                t for t in transactions
                if any(w in t.transaction_type.lower() for w in wanted)
            ]
        listed = transactions[: max(0, limit)]

        sentiment = calculate_insider_sentiment(
            activity.transactions, analysis_period, min_transaction_value
        )
        return {
            "ticker": ticker,
            "transactions": to_dict(listed),
            "total_transactions": len(listed),
            "filtered_by": transaction_types or "all types",
            "analysis_period_days": analysis_period,
            "min_transaction_value": min_transaction_value,
            "sentiment_analysis": sentiment,
            "summary": (
                f"Found {len(listed)} insider transactions for {ticker}. Insider sentiment: "
                f"{sentiment['overall_sentiment']} ({sentiment['confidence_level']} confidence)"
            ),
        }
