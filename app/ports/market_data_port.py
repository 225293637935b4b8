from abc import ABC, abstractmethod
from typing import Optional

class QuotePort(ABC):
    name: str = "quote provider"

    @abstractmethod
    async def get_current_price(self, ticker: str) -> Optional[float]:
        """
        Fetch the last traded price for a single ticker.

        Returns None when the provider has no usable price. Implementations
        may raise RateLimitedError or MarketDataError.
        """
        pass
