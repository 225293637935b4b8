import asyncio
import logging
import math
import time
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from app.core.exceptions import InvalidTickersError, classify_provider_error
from app.domain.constants import PriceSource, ProviderErrorKind
from app.domain.schemas import ProviderConfig
from app.ports.market_data_port import QuotePort

logger = logging.getLogger(__name__)

SleepFunc = Callable[[float], Awaitable[Any]]


def validate_tickers(tickers: Any) -> List[str]:
    """Ensure a price request is a non-empty list of ticker strings."""
    if not tickers or not isinstance(tickers, list):
        raise InvalidTickersError("Invalid tickers array")
    if not all(isinstance(t, str) for t in tickers):
        raise InvalidTickersError("Invalid tickers array")
    return tickers


def usable_price(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        price = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(price) or price <= 0:
        return None
    return price


class PriceFetcher:
    """
    Sequential multi-source price fetcher.

    Tickers are fetched one at a time, primary provider first (when a key is
    configured) and the fallback provider second. Pauses between requests
    follow the pacing policy of the active provider so neither quota is
    tripped. A ticker that no provider can price resolves to None; one bad
    ticker never aborts the batch.
    """

    def __init__(
        self,
        config: ProviderConfig,
        primary: Optional[QuotePort],
        fallback: QuotePort,
        sleep: SleepFunc = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config
        self.primary = primary
        self.fallback = fallback
        self._sleep = sleep
        self._clock = clock

    @property
    def use_primary(self) -> bool:
        return self.config.primary_configured and self.primary is not None

    async def fetch_prices(self, tickers: Any) -> Dict[str, Optional[float]]:
        tickers = validate_tickers(tickers)
        # Duplicates share one lookup; the result is keyed by ticker anyway
        queue = list(dict.fromkeys(tickers))
        total = len(queue)

        policy = self.config.pacing_policy() if self.use_primary else self.config.fallback_pacing
        data_source = PriceSource.PRIMARY.value if self.use_primary else PriceSource.FALLBACK.value
        logger.info(f"Processing {total} tickers using {data_source}")
        if not self.use_primary:
            logger.warning("No ALPHA_VANTAGE_API_KEY found. Using Yahoo Finance (may hit rate limits).")

        started = self._clock()
        prices: Dict[str, Optional[float]] = {}

        for number, ticker in enumerate(queue, start=1):
            if self._deadline_passed(started):
                remaining = queue[number - 1:]
                logger.warning(f"Price fetch deadline reached; skipping {len(remaining)} remaining tickers")
                for skipped in remaining:
                    prices[skipped] = None
                break

            logger.info(f"[{number}/{total}] Fetching {ticker}...")
            cooldown = False
            try:
                price, source = await self._fetch_one(ticker)
            except Exception as e:
                prices[ticker] = None
                if classify_provider_error(e) == ProviderErrorKind.RATE_LIMITED:
                    cooldown = True
                    logger.error(f"  ✗ {ticker}: Rate limit hit. Waiting longer...")
                else:
                    logger.error(f"  ✗ {ticker}: Error - {e}")
            else:
                prices[ticker] = price
                if price is not None:
                    logger.info(f"  ✓ {ticker}: ${price:.2f} ({source.value})")
                else:
                    logger.info(f"  ⚠ {ticker}: No price data available from any source")

            if cooldown:
                await self._pause(self.config.rate_limit_cooldown_ms)

            if number < total and not self._deadline_passed(started):
                if number % policy.batch_size == 0 and policy.batch_delay_ms > 0:
                    logger.info(f"  ⏸ Pausing {policy.batch_delay_ms}ms after batch of {policy.batch_size}...")
                    await self._pause(policy.batch_delay_ms)
                else:
                    await self._pause(policy.request_delay_ms)

        self._log_summary(prices, started)
        return prices

    async def _fetch_one(self, ticker: str) -> Tuple[Optional[float], PriceSource]:
        if not self.use_primary:
            price = await self.fallback.get_current_price(ticker)
            return usable_price(price), PriceSource.SOLE

        try:
            price = usable_price(await self.primary.get_current_price(ticker))
        except Exception as e:
            logger.warning(f"  {ticker}: {self.primary.name} error - {e}")
            price = None
        if price is not None:
            return price, PriceSource.PRIMARY

        logger.info(f"  ⚠ {ticker}: {self.primary.name} failed, trying {self.fallback.name}...")
        price = await self.fallback.get_current_price(ticker)
        return usable_price(price), PriceSource.FALLBACK

    async def _pause(self, delay_ms: int):
        if delay_ms > 0:
            await self._sleep(delay_ms / 1000)

    def _deadline_passed(self, started: float) -> bool:
        deadline = self.config.deadline_seconds
        return deadline is not None and (self._clock() - started) >= deadline

    def _log_summary(self, prices: Dict[str, Optional[float]], started: float):
        total = len(prices)
        success = sum(1 for p in prices.values() if p is not None)
        duration = self._clock() - started
        logger.info("=== Request Completed ===")
        logger.info(f"Total time: {duration:.1f}s")
        logger.info(f"Success: {success}/{total}")
        logger.info(f"Failures: {total - success}/{total}")
        if total:
            logger.info(f"Success rate: {success / total * 100:.1f}%")
