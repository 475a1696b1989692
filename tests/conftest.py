"""
Shared fixtures for Quote Proxy tests.
Fake providers record every call so tests can assert on upstream traffic.
"""
import asyncio
from typing import Dict, List, Optional

import pytest

from quote_proxy.api.schemas import DataProvider, InstrumentSpec, Quote
from quote_proxy.core.config import Settings
from quote_proxy.services.cache import PriceCache
from quote_proxy.services.price_aggregator import PriceAggregator


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeMetaApi:
    name = "metaapi"

    def __init__(self, quotes: Optional[Dict[str, Quote]] = None, specs: Optional[List[InstrumentSpec]] = None) -> None:
        self.quotes = dict(quotes or {})
        self.specs = specs
        self.calls: List[str] = []
        self.list_calls = 0
        self.gate: Optional[asyncio.Event] = None
        self.in_flight = 0
        self.max_in_flight = 0
        self.raise_for: set = set()

    def get_provider_name(self) -> DataProvider:
        return DataProvider.METAAPI

    async def fetch_one(self, provider_symbol: str) -> Optional[Quote]:
        self.calls.append(provider_symbol)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.gate is not None:
                await self.gate.wait()
            else:
                await asyncio.sleep(0)
            if provider_symbol in self.raise_for:
                raise RuntimeError(f"boom:{provider_symbol}")
            return self.quotes.get(provider_symbol)
        finally:
            self.in_flight -= 1

    async def list_symbols(self) -> Optional[List[InstrumentSpec]]:
        self.list_calls += 1
        return self.specs

    async def disconnect(self) -> None:
        pass


class FakeBinance:
    name = "binance"

    def __init__(self, tickers: Optional[Dict[str, Quote]] = None, fail_bulk: bool = False) -> None:
        self.tickers = dict(tickers or {})
        self.fail_bulk = fail_bulk
        self.calls: List[str] = []
        self.bulk_calls = 0

    def get_provider_name(self) -> DataProvider:
        return DataProvider.BINANCE

    async def fetch_one(self, provider_symbol: str) -> Optional[Quote]:
        self.calls.append(provider_symbol)
        return self.tickers.get(provider_symbol)

    async def fetch_all(self) -> Optional[Dict[str, Quote]]:
        self.bulk_calls += 1
        if self.fail_bulk:
            return None
        return dict(self.tickers)

    async def disconnect(self) -> None:
        pass


class RecordingSleep:
    def __init__(self) -> None:
        self.delays: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


@pytest.fixture
def test_settings():
    return Settings(
        meta_api_token="test-token",
        meta_api_account_id="acc-1",
        metaapi_base_url="https://metaapi.test",
        binance_base_url="https://binance.test",
        batch_cache_ttl=2.0,
        refresh_cache_ttl=30.0,
        metaapi_min_interval=1.0,
        metaapi_max_concurrency=3,
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def recording_sleep():
    return RecordingSleep()


@pytest.fixture
def price_cache():
    return PriceCache()


@pytest.fixture
def metaapi():
    return FakeMetaApi({
        "EURUSD": Quote(bid=1.0850, ask=1.0852),
        "GBPUSD": Quote(bid=1.2701, ask=1.2704),
        "XAUUSD": Quote(bid=2350.10, ask=2350.60),
    })


@pytest.fixture
def binance():
    return FakeBinance({
        "BTCUSDT": Quote(bid=60000.0, ask=60010.0),
        "ETHUSDT": Quote(bid=3000.0, ask=3000.5),
        "PEPEUSDT": Quote(bid=0.00001, ask=0.000011),
    })


@pytest.fixture
def failing_binance():
    return FakeBinance(fail_bulk=True)


@pytest.fixture
def aggregator(price_cache, metaapi, binance, test_settings, clock, recording_sleep):
    return PriceAggregator(
        cache=price_cache,
        metaapi=metaapi,
        binance=binance,
        config=test_settings,
        clock=clock,
        sleep=recording_sleep,
    )
