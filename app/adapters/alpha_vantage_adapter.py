import math
from typing import Any, Dict, Optional
import logging

import httpx

from app.ports.market_data_port import QuotePort
from app.core.config import settings
from app.core.exceptions import classify_provider_error
from app.domain.constants import ProviderErrorKind

logger = logging.getLogger(__name__)

class AlphaVantageAdapter(QuotePort):
    """
    Primary quote source. Free tier: 5 calls/min, 500/day.

    Every failure mode (HTTP error, throttling notice, missing quote) comes
    back as None so the caller can move on to the fallback provider.
    """
    name = "Alpha Vantage"

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key if api_key is not None else settings.ALPHA_VANTAGE_API_KEY
        self.base_url = base_url or settings.ALPHA_VANTAGE_URL
        self.timeout = timeout or settings.PROVIDER_TIMEOUT_SECONDS
        self._transport = transport
        if not self.api_key:
            logger.warning("ALPHA_VANTAGE_API_KEY not set. AlphaVantageAdapter will return no prices.")

    async def get_current_price(self, ticker: str) -> Optional[float]:
        if not self.api_key:
            return None

        params = {"function": "GLOBAL_QUOTE", "symbol": ticker, "apikey": self.api_key}
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.get(self.base_url, params=params)
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPStatusError as e:
            if classify_provider_error(e) == ProviderErrorKind.RATE_LIMITED:
                logger.warning(f"  Alpha Vantage rate limited for {ticker}")
            else:
                logger.warning(f"  Alpha Vantage HTTP {e.response.status_code} for {ticker}")
            return None
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"  Alpha Vantage fetch error for {ticker}: {e}")
            return None

        return self._parse_quote(ticker, data)

    def _parse_quote(self, ticker: str, data: Any) -> Optional[float]:
        if not isinstance(data, dict):
            return None

        # Alpha Vantage returns data in "Global Quote" object
        quote: Dict[str, Any] = data.get("Global Quote") or {}
        raw_price = quote.get("05. price")
        if raw_price:
            try:
                price = float(raw_price)
            except (TypeError, ValueError):
                return None
            return None if math.isnan(price) else price

        # "Note" and "Information" are how the free tier reports throttling
        notice = data.get("Error Message") or data.get("Note") or data.get("Information")
        if notice:
            logger.info(f"  Alpha Vantage error for {ticker}: {notice}")
        return None
