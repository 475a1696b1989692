from concurrent.futures import ThreadPoolExecutor

import pytest
from pydantic import ValidationError

from quote_proxy.api.schemas import CacheEntry, Quote
from quote_proxy.services.cache import PriceCache


def test_put_then_get_returns_same_quote_and_timestamp():
    cache = PriceCache()
    quote = Quote(bid=1.1, ask=1.2)

    cache.put("EURUSD", quote, 1000.0)
    entry = cache.get("EURUSD")

    assert entry is not None
    assert entry.quote == quote
    assert entry.observed_at == 1000.0


def test_get_missing_symbol_returns_none():
    assert PriceCache().get("EURUSD") is None


def test_put_is_last_writer_wins_even_with_older_timestamp():
    cache = PriceCache()
    cache.put("EURUSD", Quote(bid=1.1, ask=1.2), 2000.0)
    cache.put("EURUSD", Quote(bid=1.3, ask=1.4), 1000.0)

    entry = cache.get("EURUSD")
    assert entry.quote.bid == 1.3
    assert entry.observed_at == 1000.0
    assert len(cache) == 1


def test_out_of_order_quote_is_stored_as_is():
    cache = PriceCache()
    cache.put("EURUSD", Quote(bid=1.5, ask=1.4), 1.0)
    assert cache.get("EURUSD").quote.ask == 1.4


def test_entries_are_immutable():
    cache = PriceCache()
    cache.put("EURUSD", Quote(bid=1.1, ask=1.2), 1.0)
    entry = cache.get("EURUSD")

    with pytest.raises(ValidationError):
        entry.quote.bid = 9.9
    assert cache.get("EURUSD").quote.bid == 1.1


class TestIsFresh:
    entry = CacheEntry(quote=Quote(bid=1.0, ask=1.0), observed_at=100.0)

    def test_fresh_before_ttl(self):
        assert PriceCache.is_fresh(self.entry, now=101.999, ttl=2.0)

    def test_stale_exactly_at_ttl(self):
        assert not PriceCache.is_fresh(self.entry, now=102.0, ttl=2.0)

    def test_monotonic_in_time(self):
        ttl = 2.0
        points = [100.0, 100.5, 101.0, 101.5, 101.99, 102.0, 103.0]
        results = [PriceCache.is_fresh(self.entry, now=t, ttl=ttl) for t in points]
        # once stale, never fresh again at a later time
        first_stale = results.index(False)
        assert all(results[:first_stale])
        assert not any(results[first_stale:])


def test_get_fresh_honours_ttl():
    cache = PriceCache()
    cache.put("BTCUSD", Quote(bid=60000.0, ask=60010.0), 100.0)

    assert cache.get_fresh("BTCUSD", now=101.0, ttl=2.0) == Quote(bid=60000.0, ask=60010.0)
    assert cache.get_fresh("BTCUSD", now=103.0, ttl=2.0) is None
    assert cache.get_fresh("BTCUSD", now=103.0, ttl=30.0) is not None
    assert cache.get_fresh("ETHUSD", now=100.0, ttl=30.0) is None


def test_symbols_and_contains():
    cache = PriceCache()
    cache.put("EURUSD", Quote(bid=1.0, ask=1.0), 1.0)
    cache.put("BTCUSD", Quote(bid=2.0, ask=2.0), 1.0)

    assert sorted(cache.symbols()) == ["BTCUSD", "EURUSD"]
    assert "EURUSD" in cache
    assert "XAUUSD" not in cache


def test_puts_from_worker_threads():
    cache = PriceCache()
    symbols = [f"SYM{i}" for i in range(50)]

    with ThreadPoolExecutor(max_workers=8) as pool:
        list(pool.map(lambda s: cache.put(s, Quote(bid=1.0, ask=1.1), 1000.0), symbols))

    assert len(cache) == 50
    assert sorted(cache.symbols()) == sorted(symbols)
