"""Async Finviz scraper: screener, quote snapshot, and insider tables."""

from __future__ import annotations

import logging

import httpx
from bs4 import BeautifulSoup

from models import FundamentalMetrics, InsiderActivity, InsiderTransaction, ScreeningRow

logger = logging.getLogger(__name__)

BROWSER_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/91.0.4472.124 Safari/537.36"
    ),
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.5",
    "Connection": "keep-alive",
    "Upgrade-Insecure-Requests": "1",
}

# Snapshot label -> FundamentalMetrics field
SNAPSHOT_LABELS = {
    "P/E": "pe",
    "Forward P/E": "forward_pe",
    "PEG": "peg",
    "Current Ratio": "current_ratio",
    "Insider Own": "insider_own",
    "Short Float": "short_float",
    "Profit Margin": "profit_margin",
    "Market Cap": "market_cap",
    "EPS next Y": "eps_growth",
    "Sales past 5Y": "sales_growth",
    "Debt/Eq": "debt_to_equity",
    "P/B": "price_to_book",
    "ROE": "return_on_equity",
    "RSI (14)": "rsi14",
    "SMA200": "sma200",
}

SCREENER_FIELDS = (
    "ticker", "company", "sector", "industry", "country",
    "market_cap", "pe", "price", "change", "volume",
)


class FinvizError(Exception):
    """Raised when a Finviz page cannot be fetched."""

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)


def _cell_texts(row) -> list[str]:
    return [td.get_text(strip=True) for td in row.find_all("td")]


def parse_screener_results(html: str) -> list[ScreeningRow]:
    soup = BeautifulSoup(html, "html.parser")
    table = soup.find("table", class_="styled-table-new")
    if table is None:
        return []

    results = []
    for row in table.find_all("tr")[1:]:  # Skip header row
        cells = _cell_texts(row)
        if len(cells) < 11:
            continue
        row_data = ScreeningRow(**dict(zip(SCREENER_FIELDS, cells[1:11])))
        if row_data.ticker and row_data.ticker != "-":
            results.append(row_data)
    return results


def parse_fundamentals(html: str, ticker: str) -> FundamentalMetrics:
    soup = BeautifulSoup(html, "html.parser")
    metrics = FundamentalMetrics(ticker=ticker.upper())
    table = soup.find("table", class_="snapshot-table2")
    if table is None:
        return metrics

    for row in table.find_all("tr"):
        cells = _cell_texts(row)
        for i in range(0, len(cells) - 1, 2):
            field_name = SNAPSHOT_LABELS.get(cells[i])
            if field_name is not None:
                setattr(metrics, field_name, cells[i + 1])
    return metrics


def parse_insider_transactions(html: str) -> list[InsiderTransaction]:
    soup = BeautifulSoup(html, "html.parser")
    table = soup.find("table", class_="insider-table")
    if table is None:
        return []

    transactions = []
    for row in table.find_all("tr")[1:]:  # Skip header row
        cells = _cell_texts(row)
        if len(cells) < 7:
            continue
        shares_total = cells[7] if len(cells) > 7 and cells[7] else "N/A"
        tx = InsiderTransaction(
            insider=cells[0],
            relationship=cells[1],
            date=cells[2],
            transaction_type=cells[3],
            cost=cells[4],
            shares=cells[5],
            value=cells[6],
            shares_total=shares_total,
        )
        if tx.insider and tx.insider != "-":
            transactions.append(tx)
    return transactions


class FinvizClient:
    """Async HTTP client for finviz.com HTML pages.

    No caching and no retries: each call is one GET with a 10s timeout.
    """

    BASE_URL = "https://finviz.com"
    TIMEOUT = 10.0

    def __init__(self) -> None:
        self._client: httpx.AsyncClient | None = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.BASE_URL,
                timeout=self.TIMEOUT,
                headers=BROWSER_HEADERS,
                follow_redirects=True,
            )
        return self._client

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    async def get_html(self, path: str, params: dict | None = None) -> str:
        """Fetch a Finviz page and return its body.

        Raises:
            FinvizError: On HTTP or transport errors
        """
        logger.debug("Fetching %s%s params=%s", self.BASE_URL, path, params)
        try:
            resp = await self._get_client().get(path, params=params)
            resp.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise FinvizError(
                f"Finviz error {e.response.status_code}: {e.response.text[:200]}",
                status_code=e.response.status_code,
            ) from e
        except httpx.RequestError as e:
            raise FinvizError(f"Request failed: {e}") from e
        return resp.text

    async def screen_stocks(self, pattern: str, market_cap: str, geo: str = "usa") -> list[ScreeningRow]:
        """Screen by technical pattern (e.g. "channeldown") within a cap bucket."""
        params = {
            "v": "111",
            "f": f"cap_{market_cap},geo_{geo},ta_pattern_{pattern}",
            "ft": "4",
        }
        try:
            html = await self.get_html("/screener.ashx", params=params)
        except FinvizError as e:
            raise FinvizError(f"Failed to screen stocks: {e}", status_code=e.status_code) from e
        return parse_screener_results(html)

    async def advanced_filter(self, filters: dict[str, str], signal: str | None = None) -> list[ScreeningRow]:
        """Run the screener with raw Finviz query parameters ("f", "o", ...)."""
        params = {"v": "111", **filters}
        if signal:
            params["s"] = signal
        try:
            html = await self.get_html("/screener.ashx", params=params)
        except FinvizError as e:
            raise FinvizError(f"Failed to apply advanced filter: {e}", status_code=e.status_code) from e
        return parse_screener_results(html)

    async def get_fundamentals(self, ticker: str) -> FundamentalMetrics:
        ticker = ticker.upper()
        try:
            html = await self.get_html("/quote.ashx", params={"t": ticker})
        except FinvizError as e:
            raise FinvizError(
                f"Failed to get fundamentals for {ticker}: {e}", status_code=e.status_code
            ) from e
        return parse_fundamentals(html, ticker)

    async def get_insider_activity(self, ticker: str) -> InsiderActivity:
        ticker = ticker.upper()
        try:
            html = await self.get_html("/quote.ashx", params={"t": ticker})
        except FinvizError as e:
            raise FinvizError(
                f"Failed to get insider activity for {ticker}: {e}", status_code=e.status_code
            ) from e
        return InsiderActivity(ticker=ticker, transactions=parse_insider_transactions(html))
