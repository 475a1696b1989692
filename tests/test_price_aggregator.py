import asyncio

import pytest

from quote_proxy.api.schemas import Quote
from quote_proxy.services.price_aggregator import PriceAggregator


class TestResolvePrice:
    @pytest.mark.asyncio
    async def test_unsupported_symbol_never_calls_providers(self, aggregator, metaapi, binance):
        assert await aggregator.resolve_price("FAKEXYZ") is None
        assert metaapi.calls == []
        assert binance.calls == []
        assert binance.bulk_calls == 0

    @pytest.mark.asyncio
    async def test_forex_symbol_uses_metaapi(self, aggregator, metaapi, binance):
        quote = await aggregator.resolve_price("EURUSD")
        assert quote == Quote(bid=1.0850, ask=1.0852)
        assert metaapi.calls == ["EURUSD"]
        assert binance.calls == []

    @pytest.mark.asyncio
    async def test_crypto_symbol_uses_binance_single_ticker(self, aggregator, metaapi, binance):
        quote = await aggregator.resolve_price("BTCUSD")
        assert quote == Quote(bid=60000.0, ask=60010.0)
        assert binance.calls == ["BTCUSDT"]
        assert binance.bulk_calls == 0
        assert metaapi.calls == []

    @pytest.mark.asyncio
    async def test_provider_failure_is_not_found(self, aggregator, metaapi):
        # USDJPY is routable but the fake has no quote for it
        assert await aggregator.resolve_price("USDJPY") is None
        assert metaapi.calls == ["USDJPY"]

    @pytest.mark.asyncio
    async def test_cache_is_bypassed(self, aggregator, price_cache, clock, metaapi):
        price_cache.put("EURUSD", Quote(bid=9.0, ask=9.1), clock())

        quote = await aggregator.resolve_price("EURUSD")

        assert quote.bid == 1.0850
        assert metaapi.calls == ["EURUSD"]
        assert price_cache.get("EURUSD").quote.bid == 9.0


class TestResolveBatch:
    @pytest.mark.asyncio
    async def test_empty_batch_makes_no_calls(self, aggregator, metaapi, binance):
        assert await aggregator.resolve_batch([]) == {}
        assert metaapi.calls == []
        assert binance.bulk_calls == 0

    @pytest.mark.asyncio
    async def test_unknown_symbol_is_left_out(self, aggregator):
        prices = await aggregator.resolve_batch(["EURUSD", "FAKEXYZ"])
        assert list(prices) == ["EURUSD"]

    @pytest.mark.asyncio
    async def test_fresh_cache_hit_skips_providers(self, aggregator, price_cache, clock, metaapi, binance):
        price_cache.put("BTCUSD", Quote(bid=60000.0, ask=60010.0), clock() - 1.0)

        prices = await aggregator.resolve_batch(["BTCUSD"])

        assert prices == {"BTCUSD": Quote(bid=60000.0, ask=60010.0)}
        assert binance.bulk_calls == 0
        assert binance.calls == []
        assert metaapi.calls == []

    @pytest.mark.asyncio
    async def test_entry_older_than_batch_ttl_is_refetched(self, aggregator, price_cache, clock, binance):
        price_cache.put("BTCUSD", Quote(bid=1.0, ask=1.0), clock() - 2.0)

        prices = await aggregator.resolve_batch(["BTCUSD"])

        assert prices["BTCUSD"] == Quote(bid=60000.0, ask=60010.0)
        assert binance.bulk_calls == 1
        entry = price_cache.get("BTCUSD")
        assert entry.quote.bid == 60000.0
        assert entry.observed_at == clock()

    @pytest.mark.asyncio
    async def test_crypto_misses_share_one_bulk_call(self, aggregator, binance, price_cache):
        prices = await aggregator.resolve_batch(["BTCUSD", "ETHUSD", "SOLUSD"])

        assert binance.bulk_calls == 1
        assert binance.calls == []
        # SOLUSDT is not in the bulk response, so SOLUSD is simply absent
        assert set(prices) == {"BTCUSD", "ETHUSD"}
        assert "ETHUSD" in price_cache
        assert "SOLUSD" not in price_cache

    @pytest.mark.asyncio
    async def test_bulk_tickers_outside_request_are_not_cached(self, aggregator, price_cache):
        await aggregator.resolve_batch(["BTCUSD"])
        assert price_cache.symbols() == ["BTCUSD"]

    @pytest.mark.asyncio
    async def test_forex_misses_fetched_per_symbol_and_cached(self, aggregator, metaapi, price_cache):
        prices = await aggregator.resolve_batch(["EURUSD", "GBPUSD", "XAUUSD"])

        assert sorted(metaapi.calls) == ["EURUSD", "GBPUSD", "XAUUSD"]
        assert set(prices) == {"EURUSD", "GBPUSD", "XAUUSD"}
        assert sorted(price_cache.symbols()) == ["EURUSD", "GBPUSD", "XAUUSD"]

    @pytest.mark.asyncio
    async def test_one_forex_failure_does_not_affect_siblings(self, aggregator, metaapi):
        metaapi.raise_for = {"GBPUSD"}

        prices = await aggregator.resolve_batch(["EURUSD", "GBPUSD", "XAUUSD", "USDJPY"])

        assert set(prices) == {"EURUSD", "XAUUSD"}
        assert sorted(metaapi.calls) == ["EURUSD", "GBPUSD", "USDJPY", "XAUUSD"]

    @pytest.mark.asyncio
    async def test_forex_fan_out_is_bounded(self, aggregator, metaapi, test_settings):
        symbols = ["EURUSD", "GBPUSD", "USDJPY", "USDCHF", "AUDUSD", "NZDUSD", "USDCAD", "XAUUSD"]
        metaapi.gate = asyncio.Event()

        task = asyncio.create_task(aggregator.resolve_batch(symbols))
        for _ in range(10):
            await asyncio.sleep(0)
        assert metaapi.in_flight == test_settings.metaapi_max_concurrency

        metaapi.gate.set()
        prices = await task

        assert metaapi.max_in_flight == test_settings.metaapi_max_concurrency
        assert len(metaapi.calls) == len(symbols)
        assert set(prices) == {"EURUSD", "GBPUSD", "XAUUSD"}

    @pytest.mark.asyncio
    async def test_mixed_batch_merges_all_sources(self, aggregator, price_cache, clock, metaapi, binance):
        price_cache.put("GBPUSD", Quote(bid=1.2, ask=1.3), clock() - 0.5)

        prices = await aggregator.resolve_batch(["GBPUSD", "EURUSD", "BTCUSD", "FAKEXYZ"])

        assert prices == {
            "GBPUSD": Quote(bid=1.2, ask=1.3),
            "EURUSD": Quote(bid=1.0850, ask=1.0852),
            "BTCUSD": Quote(bid=60000.0, ask=60010.0),
        }
        assert metaapi.calls == ["EURUSD"]
        assert binance.bulk_calls == 1

    @pytest.mark.asyncio
    async def test_duplicate_symbols_are_fetched_once(self, aggregator, metaapi):
        prices = await aggregator.resolve_batch(["EURUSD", "EURUSD"])
        assert metaapi.calls == ["EURUSD"]
        assert list(prices) == ["EURUSD"]

    @pytest.mark.asyncio
    async def test_bulk_failure_leaves_crypto_absent(
        self, price_cache, metaapi, failing_binance, test_settings, clock, recording_sleep
    ):
        aggregator = PriceAggregator(price_cache, metaapi, failing_binance, test_settings, clock, recording_sleep)

        prices = await aggregator.resolve_batch(["BTCUSD", "EURUSD"])

        assert list(prices) == ["EURUSD"]
        assert failing_binance.bulk_calls == 1

    @pytest.mark.asyncio
    async def test_failed_refetch_serves_entry_within_refresh_ttl(self, aggregator, price_cache, clock):
        # USDJPY has no live quote in the fake provider
        price_cache.put("USDJPY", Quote(bid=155.1, ask=155.2), clock() - 10.0)
        price_cache.put("USDCHF", Quote(bid=0.91, ask=0.92), clock() - 31.0)

        prices = await aggregator.resolve_batch(["USDJPY", "USDCHF"])

        assert prices == {"USDJPY": Quote(bid=155.1, ask=155.2)}
