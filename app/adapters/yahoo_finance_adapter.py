import yfinance as yf
from typing import Optional
import asyncio
import pandas as pd
import logging
from app.ports.market_data_port import QuotePort
from app.core.exceptions import MarketDataError, RateLimitedError, classify_provider_error
from app.domain.constants import ProviderErrorKind

logger = logging.getLogger(__name__)

class YahooFinanceAdapter(QuotePort):
    name = "Yahoo Finance"

    async def get_current_price(self, ticker: str) -> Optional[float]:
        try:
            loop = asyncio.get_running_loop()
            return await loop.run_in_executor(None, self._fetch_sync_price, ticker)
        except Exception as e:
            # yfinance surfaces throttling as YFRateLimitError or a raw 429 message
            if classify_provider_error(e) == ProviderErrorKind.RATE_LIMITED:
                raise RateLimitedError(f"Yahoo Finance rate limited for {ticker}") from e
            raise MarketDataError(f"Yahoo Finance error for {ticker}: {e}") from e

    def _fetch_sync_price(self, ticker: str) -> Optional[float]:
        t_obj = yf.Ticker(ticker)
        price = t_obj.fast_info.last_price
        if price is None or pd.isna(price):
            return None
        return float(price)
