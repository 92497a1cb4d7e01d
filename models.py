"""Request-scoped value objects produced by the upstream clients."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any


def to_dict(obj: Any) -> Any:
    """Serialize a dataclass (or list of them) into plain JSON-ready values."""
    if isinstance(obj, list):
        return [to_dict(item) for item in obj]
    if hasattr(obj, "__dataclass_fields__"):
        return asdict(obj)
    return obj


# --- Finviz ---


@dataclass
class ScreeningRow:
    ticker: str
    company: str
    sector: str
    industry: str
    country: str
    market_cap: str
    pe: str
    price: str
    change: str
    volume: str


@dataclass
class FundamentalMetrics:
    ticker: str
    pe: str | None = None
    forward_pe: str | None = None
    peg: str | None = None
    current_ratio: str | None = None
    insider_own: str | None = None
    short_float: str | None = None
    profit_margin: str | None = None
    market_cap: str | None = None
    eps_growth: str | None = None
    sales_growth: str | None = None
    debt_to_equity: str | None = None
    price_to_book: str | None = None
    return_on_equity: str | None = None
    rsi14: str | None = None
    sma200: str | None = None

    def present(self) -> dict[str, str]:
        """Only the metrics that were found on the page."""
        return {k: v for k, v in asdict(self).items() if v is not None}


@dataclass
class InsiderTransaction:
    insider: str
    relationship: str
    date: str
    transaction_type: str
    cost: str
    shares: str
    value: str
    shares_total: str = "N/A"


@dataclass
class InsiderActivity:
    ticker: str
    transactions: list[InsiderTransaction] = field(default_factory=list)

    @property
    def total_transactions(self) -> int:
        return len(self.transactions)


# --- Barchart ---


@dataclass
class PutCallRatioData:
    expiration_date: str
    put_volume: float = 0.0
    call_volume: float = 0.0
    put_call_volume_ratio: float = 0.0
    put_open_interest: float = 0.0
    call_open_interest: float = 0.0
    put_call_oi_ratio: float = 0.0
    total_volume: float = 0.0
    total_open_interest: float = 0.0


@dataclass
class SentimentAnalysis:
    sentiment: str
    interpretation: str
    key_insights: list[str] = field(default_factory=list)


@dataclass
class ValidationResult:
    is_valid: bool
    warnings: list[str] = field(default_factory=list)


@dataclass
class PutCallRatioAnalysis:
    ticker: str
    current_price: str | None
    overall_put_call_volume_ratio: float
    overall_put_call_oi_ratio: float
    total_put_volume: float
    total_call_volume: float
    total_put_oi: float
    total_call_oi: float
    ratios_by_date: list[PutCallRatioData]
    analysis: SentimentAnalysis
    validation_result: ValidationResult


# --- Reddit ---


@dataclass
class RedditPost:
    title: str
    author: str
    score: int
    num_comments: int
    url: str
    created_utc: str
    subreddit: str
    selftext: str = ""


@dataclass
class RedditSearchResult:
    posts: list[RedditPost]
    search_query: str

    @property
    def total_found(self) -> int:
        return len(self.posts)


@dataclass
class RedditComment:
    author: str
    body: str
    score: int
    created_utc: str
