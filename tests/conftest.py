from typing import Dict, List, Optional, Union

import pytest

from app.domain.schemas import ProviderConfig
from app.ports.market_data_port import QuotePort
from app.services.price_fetcher import PriceFetcher


class FakeQuoteProvider(QuotePort):
    """Returns canned prices (or raises canned errors) and records every lookup."""

    def __init__(self, name: str, responses: Dict[str, Union[float, None, Exception]]):
        self.name = name
        self.responses = responses
        self.calls: List[str] = []

    async def get_current_price(self, ticker: str) -> Optional[float]:
        self.calls.append(ticker)
        result = self.responses.get(ticker)
        if isinstance(result, Exception):
            raise result
        return result


class RecordingSleep:
    """Stands in for asyncio.sleep; advances a fake clock instead of waiting."""

    def __init__(self):
        self.delays: List[float] = []
        self.now = 0.0

    async def __call__(self, seconds: float):
        self.delays.append(seconds)
        self.now += seconds

    def clock(self) -> float:
        return self.now


@pytest.fixture
def sleeper():
    return RecordingSleep()


@pytest.fixture
def primary_config():
    return ProviderConfig(primary_api_key="demo-key")


@pytest.fixture
def fallback_only_config():
    return ProviderConfig(primary_api_key=None)


@pytest.fixture
def make_fetcher(sleeper):
    def _make(config: ProviderConfig, primary=None, fallback=None) -> PriceFetcher:
        return PriceFetcher(
            config=config,
            primary=primary,
            fallback=fallback or FakeQuoteProvider("fallback", {}),
            sleep=sleeper,
            clock=sleeper.clock,
        )
    return _make
