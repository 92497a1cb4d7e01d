"""Async Barchart scraper for put/call ratio pages, plus sentiment heuristics."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass

import httpx
from bs4 import BeautifulSoup

from finviz_client import BROWSER_HEADERS
from models import PutCallRatioAnalysis, PutCallRatioData, SentimentAnalysis, ValidationResult
from parsing import parse_number

logger = logging.getLogger(__name__)

# Containers Barchart has used for the aggregate totals block.
SUMMARY_SELECTORS = (
    "div.bc-options-totals",
    "div.bc-put-call-ratio-totals",
    "div.options-totals",
    "div.put-call-totals",
)

TOTAL_LABELS = {
    "put volume total": "put_volume",
    "call volume total": "call_volume",
    "put/call volume ratio": "volume_ratio",
    "put open interest total": "put_oi",
    "call open interest total": "call_oi",
    "put/call open interest ratio": "oi_ratio",
}

_TEXT_PATTERNS = {
    field_name: re.compile(
        r"\s+".join(re.escape(word) for word in label.split()) + r"\s*:?\s*([\d,]+(?:\.\d+)?)",
        re.IGNORECASE,
    )
    for label, field_name in TOTAL_LABELS.items()
}

_DATE_CELL = re.compile(
    r"\d{1,2}/\d{1,2}/\d{2,4}"
    r"|\d{4}-\d{2}-\d{2}"
    r"|\b(?:Jan(?:uary)?|Feb(?:ruary)?|Mar(?:ch)?|Apr(?:il)?|May|June?|July?|Aug(?:ust)?"
    r"|Sep(?:t(?:ember)?)?|Oct(?:ober)?|Nov(?:ember)?|Dec(?:ember)?)\.?\s+\d{1,2}\b",
    re.IGNORECASE,
)

RATIO_TOLERANCE = 0.1
HIGH_VOLUME_RATIO = 10
HIGH_OI_RATIO = 5


class BarchartError(Exception):
    """Raised when a Barchart page cannot be fetched."""

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)


@dataclass
class _Totals:
    put_volume: float = 0.0
    call_volume: float = 0.0
    volume_ratio: float = 0.0
    put_oi: float = 0.0
    call_oi: float = 0.0
    oi_ratio: float = 0.0

    def has_volume(self) -> bool:
        return self.put_volume > 0 or self.call_volume > 0

    def has_oi(self) -> bool:
        return self.put_oi > 0 or self.call_oi > 0


def _ratio(put: float, call: float) -> float:
    return round(put / call, 4) if call > 0 else 0.0


def _normalize_label(text: str) -> str:
    return " ".join(text.lower().replace(":", " ").split())


# --- Extraction stages ---


def _extract_current_price(soup: BeautifulSoup) -> str | None:
    element = soup.select_one('.last-price, .price, [data-ng-bind*="price"]')
    if element is None:
        return None
    return element.get_text(strip=True) or None


def _extract_summary_totals(soup: BeautifulSoup) -> _Totals:
    """Read the six labelled totals from the bolded values of the summary block."""
    totals = _Totals()
    for selector in SUMMARY_SELECTORS:
        block = soup.select_one(selector)
        if block is None:
            continue
        for bold in block.find_all(["strong", "b"]):
            value_text = bold.get_text(strip=True)
            label_text = bold.parent.get_text(" ", strip=True).replace(value_text, "", 1)
            field_name = TOTAL_LABELS.get(_normalize_label(label_text))
            if field_name is not None:
                setattr(totals, field_name, parse_number(value_text))
        break
    return totals


def _extract_totals_from_text(page_text: str, totals: _Totals) -> _Totals:
    """Fill zero fields of ``totals`` from labelled numbers anywhere in the page."""
    for field_name, pattern in _TEXT_PATTERNS.items():
        if getattr(totals, field_name):
            continue
        match = pattern.search(page_text)
        if match:
            setattr(totals, field_name, parse_number(match.group(1)))
    return totals


def _extract_expiration_rows(soup: BeautifulSoup) -> list[PutCallRatioData]:
    rows = []
    for tr in soup.find_all("tr"):
        cells = [c.get_text(strip=True) for c in tr.find_all(["td", "th"])]
        if len(cells) < 7 or not _DATE_CELL.search(cells[0]):
            continue

        put_volume = parse_number(cells[1])
        call_volume = parse_number(cells[2])
        put_oi = parse_number(cells[4])
        call_oi = parse_number(cells[5])
        if not (put_volume or call_volume or put_oi or call_oi):
            continue

        rows.append(PutCallRatioData(
            expiration_date=cells[0],
            put_volume=put_volume,
            call_volume=call_volume,
            put_call_volume_ratio=parse_number(cells[3]) or _ratio(put_volume, call_volume),
            put_open_interest=put_oi,
            call_open_interest=call_oi,
            put_call_oi_ratio=parse_number(cells[6]) or _ratio(put_oi, call_oi),
            total_volume=put_volume + call_volume,
            total_open_interest=put_oi + call_oi,
        ))
    return rows


def _consolidate(extracted: _Totals, rows: list[PutCallRatioData]) -> _Totals:
    """Prefer page totals; fall back to summing the per-expiration rows."""
    final = _Totals(
        put_volume=extracted.put_volume,
        call_volume=extracted.call_volume,
        put_oi=extracted.put_oi,
        call_oi=extracted.call_oi,
    )
    if not final.has_volume():
        final.put_volume = sum(r.put_volume for r in rows)
        final.call_volume = sum(r.call_volume for r in rows)
    if not final.has_oi():
        final.put_oi = sum(r.put_open_interest for r in rows)
        final.call_oi = sum(r.call_open_interest for r in rows)

    final.volume_ratio = extracted.volume_ratio or _ratio(final.put_volume, final.call_volume)
    final.oi_ratio = extracted.oi_ratio or _ratio(final.put_oi, final.call_oi)
    return final


def _overall_row(totals: _Totals) -> PutCallRatioData:
    return PutCallRatioData(
        expiration_date="Overall",
        put_volume=totals.put_volume,
        call_volume=totals.call_volume,
        put_call_volume_ratio=totals.volume_ratio,
        put_open_interest=totals.put_oi,
        call_open_interest=totals.call_oi,
        put_call_oi_ratio=totals.oi_ratio,
        total_volume=totals.put_volume + totals.call_volume,
        total_open_interest=totals.put_oi + totals.call_oi,
    )


# --- Heuristics ---


def analyze_put_call_sentiment(
    volume_ratio: float,
    oi_ratio: float,
    ratios_by_date: list[PutCallRatioData],
) -> SentimentAnalysis:
    """Classify options sentiment from aggregate put/call ratios."""
    insights = []
    if volume_ratio > 1.2:
        sentiment = "bearish"
        interpretation = "High put/call volume ratio suggests bearish sentiment"
        insights.append(f"Put/call volume ratio of {volume_ratio:.2f} indicates heavy put buying")
    elif volume_ratio < 0.8:
        sentiment = "bullish"
        interpretation = "Low put/call volume ratio suggests bullish sentiment"
        insights.append(f"Put/call volume ratio of {volume_ratio:.2f} indicates heavy call buying")
    else:
        sentiment = "neutral"
        interpretation = "Put/call volume ratio is within normal range"
        insights.append(f"Put/call volume ratio of {volume_ratio:.2f} suggests neutral sentiment")

    if oi_ratio > 0:
        if oi_ratio > 1.5:
            insights.append(
                f"High put/call open interest ratio of {oi_ratio:.2f} suggests hedging activity"
            )
        elif oi_ratio < 0.5:
            insights.append(
                f"Low put/call open interest ratio of {oi_ratio:.2f} suggests bullish positioning"
            )

    # Rows are ordered nearest expiration first.
    if len(ratios_by_date) >= 3:
        r0, r1, r2 = (d.put_call_volume_ratio for d in ratios_by_date[:3])
        if r0 < r1 < r2:
            insights.append("Put/call ratios are increasing across the nearest expiration dates")
        elif r0 > r1 > r2:
            insights.append("Put/call ratios are decreasing across the nearest expiration dates")

    return SentimentAnalysis(sentiment=sentiment, interpretation=interpretation, key_insights=insights)


def validate_put_call_data(
    final: _Totals,
    extracted: _Totals,
    ratios_by_date: list[PutCallRatioData],
) -> ValidationResult:
    """Judge extraction confidence. Only a page with no totals at all is invalid."""
    if not final.has_volume() and not final.has_oi():
        return ValidationResult(
            is_valid=False,
            warnings=["No put/call volume or open interest totals could be extracted from the page"],
        )

    warnings = []
    if final.volume_ratio > HIGH_VOLUME_RATIO:
        warnings.append(f"Put/call volume ratio {final.volume_ratio:.2f} is unusually high")
    if final.oi_ratio > HIGH_OI_RATIO:
        warnings.append(f"Put/call open interest ratio {final.oi_ratio:.2f} is unusually high")

    if final.has_volume() and not extracted.volume_ratio:
        warnings.append("Put/call volume ratio not found on page; computed from totals")
    if final.has_oi() and not extracted.oi_ratio:
        warnings.append("Put/call open interest ratio not found on page; computed from totals")

    if extracted.volume_ratio and final.call_volume > 0:
        computed = final.put_volume / final.call_volume
        if abs(extracted.volume_ratio - computed) > RATIO_TOLERANCE:
            warnings.append(
                f"Extracted put/call volume ratio {extracted.volume_ratio:.2f} "
                f"differs from computed ratio {computed:.2f}"
            )
    if extracted.oi_ratio and final.call_oi > 0:
        computed = final.put_oi / final.call_oi
        if abs(extracted.oi_ratio - computed) > RATIO_TOLERANCE:
            warnings.append(
                f"Extracted put/call open interest ratio {extracted.oi_ratio:.2f} "
                f"differs from computed ratio {computed:.2f}"
            )

    for row in ratios_by_date:
        if row.call_volume > 0:
            computed = row.put_volume / row.call_volume
            if abs(row.put_call_volume_ratio - computed) > RATIO_TOLERANCE:
                warnings.append(
                    f"Volume ratio for {row.expiration_date} ({row.put_call_volume_ratio:.2f}) "
                    f"differs from put/call volumes ({computed:.2f})"
                )

    return ValidationResult(is_valid=True, warnings=warnings)


def parse_put_call_page(html: str, ticker: str) -> PutCallRatioAnalysis:
    """Turn a Barchart put/call ratios page into a PutCallRatioAnalysis.

    Totals come from the summary block, then a whole-page regex scan when the
    block is missing; per-expiration rows are read independently and summed
    when no totals were found.
    """
    soup = BeautifulSoup(html, "html.parser")

    extracted = _extract_summary_totals(soup)
    if not extracted.has_volume():
        extracted = _extract_totals_from_text(soup.get_text(" "), extracted)

    rows = _extract_expiration_rows(soup)
    final = _consolidate(extracted, rows)
    logger.debug(
        "Barchart %s: extracted=%s rows=%d final=%s", ticker, extracted, len(rows), final
    )

    if not rows and (final.has_volume() or final.has_oi()):
        rows = [_overall_row(final)]

    return PutCallRatioAnalysis(
        ticker=ticker.upper(),
        current_price=_extract_current_price(soup),
        overall_put_call_volume_ratio=final.volume_ratio,
        overall_put_call_oi_ratio=final.oi_ratio,
        total_put_volume=final.put_volume,
        total_call_volume=final.call_volume,
        total_put_oi=final.put_oi,
        total_call_oi=final.call_oi,
        ratios_by_date=rows,
        analysis=analyze_put_call_sentiment(final.volume_ratio, final.oi_ratio, rows),
        validation_result=validate_put_call_data(final, extracted, rows),
    )


class BarchartClient:
    """Async HTTP client for barchart.com put/call ratio pages."""

    BASE_URL = "https://www.barchart.com"
    TIMEOUT = 15.0

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

    async def get_put_call_ratio(self, ticker: str) -> PutCallRatioAnalysis:
        """Fetch and parse put/call ratios, nearest expiration first.

        Raises:
            BarchartError: On HTTP or transport errors
        """
        ticker = ticker.upper()
        path = f"/stocks/quotes/{ticker}/put-call-ratios"
        params = {"orderBy": "expirationDate", "orderDir": "asc"}
        logger.debug("Fetching %s%s", self.BASE_URL, path)
        try:
            resp = await self._get_client().get(path, params=params)
            resp.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise BarchartError(
                f"Failed to get put/call ratio for {ticker}: "
                f"Barchart error {e.response.status_code}: {e.response.text[:200]}",
                status_code=e.response.status_code,
            ) from e
        except httpx.RequestError as e:
            raise BarchartError(f"Failed to get put/call ratio for {ticker}: {e}") from e
        return parse_put_call_page(resp.text, ticker)
