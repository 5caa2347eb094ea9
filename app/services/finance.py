# app/services/finance.py
#
# Thin client over the public Yahoo Finance chart and search endpoints.
#
# Upstream failures are mapped to HTTP errors the API can pass through:
#   404  unknown symbol / no data
#   502  upstream answered with an error status or an unexpected body
#   503  upstream could not be reached

from datetime import date, datetime, timedelta
from typing import Any, Dict, List, Optional

import requests
from fastapi import HTTPException
import structlog

from app import config

logger = structlog.get_logger(__name__)

USER_AGENT = "Mozilla/5.0 (expense-tracker)"


def _fetch(path: str, params: Dict[str, Any], label: str) -> dict:
    url = f"{config.YAHOO_FINANCE_BASE_URL.rstrip('/')}{path}"
    try:
        response = requests.get(
            url,
            params=params,
            headers={"User-Agent": USER_AGENT},
            timeout=config.HTTP_TIMEOUT,
        )
    except requests.RequestException as exc:
        logger.error("yahoo_unreachable", label=label, error=str(exc))
        raise HTTPException(status_code=503, detail=f"Could not connect to finance data provider: {exc}")

    if response.status_code == 404:
        raise HTTPException(status_code=404, detail=f"Data not found for symbol '{label}' on Yahoo Finance.")

    if not response.ok:
        body = response.text[:500]
        if response.status_code == 400 and "Data doesn't exist" in body:
            raise HTTPException(
                status_code=404,
                detail=f"No historical data available for symbol '{label}' in the requested date range.",
            )
        logger.error("yahoo_error_status", label=label, status=response.status_code, body=body)
        raise HTTPException(
            status_code=502,
            detail=f"Failed to fetch data for {label}. Provider status: {response.status_code}.",
        )

    try:
        return response.json()
    except ValueError:
        logger.error("yahoo_bad_json", label=label)
        raise HTTPException(status_code=502, detail=f"Unexpected response from finance data provider for {label}.")


def _chart_result(data: dict) -> Optional[dict]:
    results = (data.get("chart") or {}).get("result") or []
    return results[0] if results else None


def search_symbols(q: str) -> List[dict]:
    if not q or not q.strip():
        raise HTTPException(status_code=400, detail="Search query cannot be empty.")

    data = _fetch("/v1/finance/search", {"q": q.strip(), "quotesCount": 10, "lang": "en-US"}, f"search: {q}")
    quotes = data.get("quotes")
    if not isinstance(quotes, list):
        logger.warning("yahoo_search_unexpected_format")
        return []

    return [
        {
            "symbol": quote["symbol"],
            "name": quote.get("longname") or quote.get("shortname") or "N/A",
            "exchange": quote.get("exchange") or "N/A",
            "type": quote.get("quoteType") or "N/A",
        }
        for quote in quotes
        if quote.get("symbol")
    ]


def get_quote(symbol: str) -> dict:
    if not symbol:
        raise HTTPException(status_code=400, detail="Symbol is required")

    data = _fetch(f"/v8/finance/chart/{symbol}", {"interval": "1m", "range": "1d"}, symbol)
    meta = (_chart_result(data) or {}).get("meta") or {}

    price = meta.get("regularMarketPrice")
    if not isinstance(price, (int, float)):
        raise HTTPException(
            status_code=404,
            detail=f"Current price data unavailable for '{symbol}'. Market might be closed or symbol invalid.",
        )

    previous = meta.get("previousClose") or meta.get("chartPreviousClose")
    change = change_percent = None
    if isinstance(previous, (int, float)) and previous != 0:
        change = round(price - previous, 2)
        change_percent = round((price - previous) / previous * 100, 2)

    market_time = meta.get("regularMarketTime")
    return {
        "symbol": symbol.upper(),
        "price": float(price),
        "change": change,
        "change_percent": change_percent,
        "exchange": meta.get("exchangeName") or "N/A",
        "currency": meta.get("currency") or "N/A",
        "company_name": meta.get("longName") or meta.get("shortName") or "N/A",
        "market_state": meta.get("marketState") or "N/A",
        "regular_market_time": datetime.fromtimestamp(market_time).isoformat() if market_time else None,
        "fifty_two_week_high": meta.get("fiftyTwoWeekHigh"),
        "fifty_two_week_low": meta.get("fiftyTwoWeekLow"),
    }


def close_prices(symbol: str, start: date, end: date) -> Dict[str, Optional[float]]:
    """
    Daily closes keyed by 'YYYY-MM-DD' for [start, end]. The end is capped
    at today; an inverted range gives an empty map.
    """
    today = date.today()
    end = min(end, today)
    if start > end:
        return {}

    period1 = int(datetime.combine(start, datetime.min.time()).timestamp())
    period2 = int(datetime.combine(end + timedelta(days=1), datetime.min.time()).timestamp())

    data = _fetch(
        f"/v8/finance/chart/{symbol}",
        {"period1": period1, "period2": period2, "interval": "1d", "events": "history"},
        symbol,
    )
    result = _chart_result(data) or {}
    timestamps = result.get("timestamp") or []
    quotes = (result.get("indicators") or {}).get("quote") or [{}]
    closes = quotes[0].get("close") or []

    prices: Dict[str, Optional[float]] = {}
    for ts, close in zip(timestamps, closes):
        day = datetime.fromtimestamp(ts).date()
        if start <= day <= end:
            prices[day.isoformat()] = close
    return prices


def get_history(symbol: str, start: date, end: date) -> dict:
    if start > end:
        raise HTTPException(status_code=400, detail="Start date must not be after end date.")
    prices = close_prices(symbol, start, end)
    return {
        "symbol": symbol.upper(),
        "prices": [{"date": day, "price": price} for day, price in sorted(prices.items())],
    }


def price_on(symbol: str, day: date) -> dict:
    """Close on `day`; looks back a few days to find the bar but only reports `day` itself."""
    prices = close_prices(symbol, day - timedelta(days=3), day + timedelta(days=1))
    key = day.isoformat()
    if key not in prices:
        raise HTTPException(
            status_code=404,
            detail=f"No historical data available for '{symbol}' on {key}. Market might have been closed.",
        )
    return {"symbol": symbol.upper(), "date": key, "price": prices[key]}
