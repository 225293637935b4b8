import math

import pytest

from conftest import FakeQuoteProvider
from app.core.exceptions import InvalidTickersError, MarketDataError, RateLimitedError
from app.domain.schemas import PacingPolicy, ProviderConfig
from app.services.price_fetcher import usable_price, validate_tickers


@pytest.mark.asyncio
async def test_primary_with_fallback_scenario(make_fetcher, primary_config, sleeper):
    primary = FakeQuoteProvider("primary", {"AAPL": 150.25, "MSFT": None})
    fallback = FakeQuoteProvider("fallback", {
        "MSFT": 310.50,
        "ZZZZINVALID": Exception("Too Many Requests"),
    })
    fetcher = make_fetcher(primary_config, primary, fallback)

    prices = await fetcher.fetch_prices(["AAPL", "MSFT", "ZZZZINVALID"])

    assert prices == {"AAPL": 150.25, "MSFT": 310.50, "ZZZZINVALID": None}
    assert primary.calls == ["AAPL", "MSFT", "ZZZZINVALID"]
    assert fallback.calls == ["MSFT", "ZZZZINVALID"]
    # two paced gaps, then the rate-limit cooldown after the last ticker
    assert sleeper.delays == [13.0, 13.0, 10.0]


@pytest.mark.asyncio
@pytest.mark.parametrize("bad_input", [[], None, "AAPL", {"AAPL": 1}, ["AAPL", 42]])
async def test_invalid_input_makes_no_provider_calls(make_fetcher, primary_config, sleeper, bad_input):
    primary = FakeQuoteProvider("primary", {"AAPL": 1.0})
    fallback = FakeQuoteProvider("fallback", {"AAPL": 1.0})
    fetcher = make_fetcher(primary_config, primary, fallback)

    with pytest.raises(InvalidTickersError):
        await fetcher.fetch_prices(bad_input)

    assert primary.calls == []
    assert fallback.calls == []
    assert sleeper.delays == []


@pytest.mark.asyncio
async def test_fallback_only_never_touches_primary(make_fetcher, fallback_only_config):
    primary = FakeQuoteProvider("primary", {"AAPL": 1.0, "MSFT": 2.0})
    fallback = FakeQuoteProvider("fallback", {"AAPL": 190.0, "MSFT": 410.0})
    fetcher = make_fetcher(fallback_only_config, primary, fallback)

    prices = await fetcher.fetch_prices(["AAPL", "MSFT"])

    assert prices == {"AAPL": 190.0, "MSFT": 410.0}
    assert primary.calls == []
    assert fallback.calls == ["AAPL", "MSFT"]


@pytest.mark.asyncio
async def test_primary_success_skips_fallback(make_fetcher, primary_config):
    primary = FakeQuoteProvider("primary", {"NVDA": 880.5})
    fallback = FakeQuoteProvider("fallback", {"NVDA": 1.0})
    fetcher = make_fetcher(primary_config, primary, fallback)

    assert await fetcher.fetch_prices(["NVDA"]) == {"NVDA": 880.5}
    assert fallback.calls == []


@pytest.mark.asyncio
async def test_primary_error_falls_back_once(make_fetcher, primary_config, sleeper):
    primary = FakeQuoteProvider("primary", {"TSLA": RateLimitedError()})
    fallback = FakeQuoteProvider("fallback", {"TSLA": 175.0})
    fetcher = make_fetcher(primary_config, primary, fallback)

    assert await fetcher.fetch_prices(["TSLA"]) == {"TSLA": 175.0}
    assert fallback.calls == ["TSLA"]
    # primary throttling is absorbed by the fallback, no cooldown
    assert sleeper.delays == []


@pytest.mark.asyncio
async def test_fallback_only_pacing_uses_batches(make_fetcher, fallback_only_config, sleeper):
    tickers = [f"T{i}" for i in range(12)]
    fallback = FakeQuoteProvider("fallback", {t: 10.0 for t in tickers})
    fetcher = make_fetcher(fallback_only_config, None, fallback)

    await fetcher.fetch_prices(tickers)

    assert sleeper.delays == [2.0] * 9 + [5.0] + [2.0]


@pytest.mark.asyncio
async def test_primary_pacing_has_no_batch_pause(make_fetcher, primary_config, sleeper):
    tickers = [f"T{i}" for i in range(7)]
    primary = FakeQuoteProvider("primary", {t: 10.0 for t in tickers})
    fetcher = make_fetcher(primary_config, primary)

    await fetcher.fetch_prices(tickers)

    assert sleeper.delays == [13.0] * 6


@pytest.mark.asyncio
async def test_rate_limit_on_sole_provider_adds_cooldown(make_fetcher, fallback_only_config, sleeper):
    fallback = FakeQuoteProvider("fallback", {"AAPL": RateLimitedError(), "MSFT": 400.0})
    fetcher = make_fetcher(fallback_only_config, None, fallback)

    prices = await fetcher.fetch_prices(["AAPL", "MSFT"])

    assert prices == {"AAPL": None, "MSFT": 400.0}
    assert sleeper.delays == [10.0, 2.0]
    assert sleeper.now >= 12.0


@pytest.mark.asyncio
async def test_other_errors_resolve_to_null_without_cooldown(make_fetcher, fallback_only_config, sleeper):
    fallback = FakeQuoteProvider("fallback", {
        "BAD": MarketDataError("boom"),
        "GOOD": 99.0,
    })
    fetcher = make_fetcher(fallback_only_config, None, fallback)

    prices = await fetcher.fetch_prices(["BAD", "GOOD"])

    assert prices == {"BAD": None, "GOOD": 99.0}
    assert sleeper.delays == [2.0]


@pytest.mark.asyncio
async def test_key_set_matches_input(make_fetcher, primary_config):
    tickers = ["AAPL", "aapl", "BRK.B", "AAPL", "NOPE"]
    primary = FakeQuoteProvider("primary", {"AAPL": 150.0, "BRK.B": 410.0})
    fallback = FakeQuoteProvider("fallback", {"aapl": MarketDataError("unknown symbol")})
    fetcher = make_fetcher(primary_config, primary, fallback)

    prices = await fetcher.fetch_prices(tickers)

    assert set(prices) == set(tickers)
    # duplicates are looked up once
    assert primary.calls == ["AAPL", "aapl", "BRK.B", "NOPE"]


@pytest.mark.asyncio
async def test_repeat_calls_are_idempotent(make_fetcher, primary_config):
    primary = FakeQuoteProvider("primary", {"AAPL": 150.0})
    fallback = FakeQuoteProvider("fallback", {"MSFT": 300.0})
    fetcher = make_fetcher(primary_config, primary, fallback)

    first = await fetcher.fetch_prices(["AAPL", "MSFT", "X"])
    second = await fetcher.fetch_prices(["AAPL", "MSFT", "X"])

    assert first == second == {"AAPL": 150.0, "MSFT": 300.0, "X": None}


@pytest.mark.asyncio
async def test_deadline_skips_remaining_tickers(make_fetcher, sleeper):
    config = ProviderConfig(primary_api_key="demo-key", deadline_seconds=20)
    primary = FakeQuoteProvider("primary", {t: 1.0 for t in "ABCD"})
    fetcher = make_fetcher(config, primary)

    prices = await fetcher.fetch_prices(list("ABCD"))

    assert prices == {"A": 1.0, "B": 1.0, "C": None, "D": None}
    assert primary.calls == ["A", "B"]


@pytest.mark.asyncio
async def test_configured_pacing_overrides_defaults(make_fetcher, sleeper):
    config = ProviderConfig(
        primary_api_key=None,
        fallback_pacing=PacingPolicy(request_delay_ms=100, batch_delay_ms=1000, batch_size=2),
        rate_limit_cooldown_ms=0,
    )
    fallback = FakeQuoteProvider("fallback", {"A": RateLimitedError(), "B": 2.0, "C": 3.0})
    fetcher = make_fetcher(config, None, fallback)

    await fetcher.fetch_prices(["A", "B", "C"])

    assert sleeper.delays == [0.1, 1.0]


@pytest.mark.asyncio
async def test_unusable_prices_become_null(make_fetcher, primary_config):
    primary = FakeQuoteProvider("primary", {"ZERO": 0.0, "NAN": math.nan})
    fallback = FakeQuoteProvider("fallback", {"ZERO": -1.0, "NAN": 12.0})
    fetcher = make_fetcher(primary_config, primary, fallback)

    assert await fetcher.fetch_prices(["ZERO", "NAN"]) == {"ZERO": None, "NAN": 12.0}


def test_usable_price():
    assert usable_price("12.5") == 12.5
    assert usable_price(None) is None
    assert usable_price(True) is None
    assert usable_price(math.inf) is None
    assert usable_price("n/a") is None


def test_validate_tickers_returns_list():
    assert validate_tickers(["AAPL"]) == ["AAPL"]


class SlowQuoteProvider(FakeQuoteProvider):
    """Each lookup takes `seconds` of fake wall-clock time."""

    def __init__(self, name, responses, sleeper, seconds):
        super().__init__(name, responses)
        self.sleeper = sleeper
        self.seconds = seconds

    async def get_current_price(self, ticker):
        self.sleeper.now += self.seconds
        return await super().get_current_price(ticker)


@pytest.mark.asyncio
async def test_no_pacing_pause_once_deadline_has_passed(make_fetcher, sleeper):
    config = ProviderConfig(primary_api_key="demo-key", deadline_seconds=20)
    primary = SlowQuoteProvider("primary", {"A": 1.0, "B": 2.0}, sleeper, seconds=25)
    fetcher = make_fetcher(config, primary)

    prices = await fetcher.fetch_prices(["A", "B"])

    assert prices == {"A": 1.0, "B": None}
    assert primary.calls == ["A"]
    assert sleeper.delays == []
