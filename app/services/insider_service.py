import logging
import math
from datetime import datetime, timezone
from typing import Any, Iterable, List, Optional

from app.core.exceptions import InvalidPriceError, NoOpenPositionsError
from app.domain.constants import CallFilter
from app.domain.schemas import (
    DashboardStats,
    InsiderCallView,
    InsiderDashboard,
    LLMCall,
    ParsedLLMCall,
    PriceRefreshResult,
    PriceUpdate,
)
from app.services.price_fetcher import PriceFetcher

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 60 * 60 * 24
OLDEST = datetime.min.replace(tzinfo=timezone.utc)


def parse_call(call: LLMCall) -> ParsedLLMCall:
    """Decode the JSON-string columns of an `llm_calls` row."""
    return ParsedLLMCall.model_validate(call.model_dump())


def _parse_date(value: str) -> Optional[datetime]:
    try:
        parsed = datetime.fromisoformat(value)
    except (TypeError, ValueError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def calculate_pnl_pct(call: LLMCall) -> Optional[float]:
    if not call.current_price or not call.entry_price:
        return None
    return ((call.current_price - call.entry_price) / call.entry_price) * 100


def calculate_holding_days(call: LLMCall, today: datetime) -> int:
    entry = _parse_date(call.entry_date)
    if entry is None:
        return 0
    if today.tzinfo is None:
        today = today.replace(tzinfo=timezone.utc)
    diff = abs((today - entry).total_seconds())
    return math.ceil(diff / SECONDS_PER_DAY)


def earliest_insider_date(dates: Iterable[str]) -> Optional[datetime]:
    parsed = [d for d in (_parse_date(v) for v in dates) if d is not None]
    return min(parsed) if parsed else None


def filter_calls(calls: List[LLMCall], call_filter: CallFilter) -> List[LLMCall]:
    if call_filter == CallFilter.OPEN:
        return [c for c in calls if not c.is_closed]
    if call_filter == CallFilter.CLOSED:
        return [c for c in calls if c.is_closed]
    return list(calls)


def dashboard_stats(calls: List[LLMCall]) -> DashboardStats:
    pnls = [p for p in (calculate_pnl_pct(c) for c in calls) if p is not None]
    return DashboardStats(
        active_calls=sum(1 for c in calls if not c.is_closed),
        avg_pnl_pct=sum(pnls) / len(pnls) if pnls else 0.0,
        total_transaction_value=sum(c.total_transaction_value or 0 for c in calls),
        strong_buy_count=sum(1 for c in calls if c.is_strong_buy),
    )


def manual_price_update(call_id: int, price: Any, now: datetime) -> PriceUpdate:
    try:
        value = float(price)
    except (TypeError, ValueError):
        raise InvalidPriceError("Please enter a valid price")
    if not math.isfinite(value) or value <= 0:
        raise InvalidPriceError("Please enter a valid price")
    return PriceUpdate(id=call_id, current_price=value, last_price_update=now)


class InsiderService:
    def __init__(self, price_fetcher: PriceFetcher):
        self.price_fetcher = price_fetcher

    def build_dashboard(
        self,
        calls: List[LLMCall],
        call_filter: CallFilter = CallFilter.OPEN,
        today: Optional[datetime] = None,
    ) -> InsiderDashboard:
        today = today or datetime.now(timezone.utc)
        selected = filter_calls(calls, call_filter)

        views = []
        for call in selected:
            parsed = parse_call(call)
            views.append(InsiderCallView(
                **parsed.model_dump(),
                pnl_pct=calculate_pnl_pct(call),
                days_held=calculate_holding_days(call, today),
                earliest_insider_date=earliest_insider_date(parsed.transaction_dates),
            ))

        # Newest entries first; unparsable entry dates sink to the bottom
        views.sort(key=lambda v: _parse_date(v.entry_date) or OLDEST, reverse=True)

        return InsiderDashboard(calls=views, stats=dashboard_stats(selected))

    async def refresh_open_call_prices(
        self,
        calls: List[LLMCall],
        now: Optional[datetime] = None,
    ) -> PriceRefreshResult:
        """
        Fetch current prices for every open call.

        Each ticker is looked up once however many calls share it. Calls whose
        ticker could not be priced get no update.
        """
        open_calls = filter_calls(calls, CallFilter.OPEN)
        if not open_calls:
            raise NoOpenPositionsError("No open positions to update")

        tickers = list(dict.fromkeys(c.ticker for c in open_calls))
        prices = await self.price_fetcher.fetch_prices(tickers)

        timestamp = now or datetime.now(timezone.utc)
        updates = [
            PriceUpdate(id=c.id, current_price=prices[c.ticker], last_price_update=timestamp)
            for c in open_calls
            if prices.get(c.ticker)
        ]
        success_count = sum(1 for p in prices.values() if p is not None)
        logger.info(f"Updated {success_count} of {len(tickers)} stock prices ({len(updates)} calls)")

        return PriceRefreshResult(updates=updates, success_count=success_count, ticker_count=len(tickers))
