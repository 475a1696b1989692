"""
Price aggregator service for Quote Proxy.
Serves single and batch lookups from the cache and the providers, and runs the
rate-limited full refresh cycle.
"""

import asyncio
import time
from datetime import datetime
from typing import Awaitable, Callable, Dict, Iterable, List, Optional

from ..api.schemas import DataProvider, Quote
from ..core.config import Settings, settings as default_settings
from ..core.logging_config import create_logger
from ..providers.base import BaseQuoteProvider
from ..providers.binance_provider import BinanceProvider
from ..providers.metaapi_provider import MetaApiProvider
from . import symbol_router
from .cache import PriceCache

logger = create_logger(__name__)


class PriceAggregator:
    """Orchestrates cache lookups and provider calls for forex, metals and crypto quotes."""

    def __init__(
        self,
        cache: PriceCache,
        metaapi: MetaApiProvider,
        binance: BinanceProvider,
        config: Optional[Settings] = None,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
    ):
        self.cache = cache
        self.metaapi = metaapi
        self.binance = binance
        self.config = config or default_settings
        self._clock = clock
        self._sleep = sleep

        # Held for the whole refresh cycle; a second caller never waits on it
        self._refresh_lock = asyncio.Lock()
        self._metaapi_semaphore = asyncio.Semaphore(self.config.metaapi_max_concurrency)

        self._running_tasks: List[asyncio.Task] = []
        self._shutdown_event = asyncio.Event()
        self._last_refresh: Optional[datetime] = None

    def _provider_for(self, provider: DataProvider) -> Optional[BaseQuoteProvider]:
        if provider == DataProvider.METAAPI:
            return self.metaapi
        if provider == DataProvider.BINANCE:
            return self.binance
        return None

    # Single lookups

    async def resolve_price(self, symbol: str) -> Optional[Quote]:
        """
        Get a live quote for one symbol straight from its provider.

        The cache is neither read nor written. Returns None when the symbol is
        unsupported or the provider could not deliver a quote.
        """
        assignment = symbol_router.classify(symbol)
        provider = self._provider_for(assignment.provider)
        if provider is None:
            logger.debug("Unsupported symbol requested", extra={"symbol": symbol})
            return None

        quote = await provider.fetch_one(assignment.provider_symbol)
        if quote is None:
            logger.info("Price not available", extra={
                "symbol": symbol,
                "provider": assignment.provider.value
            })
        return quote

    # Batch lookups

    async def resolve_batch(self, symbols: Iterable[str]) -> Dict[str, Quote]:
        """
        Get quotes for many symbols, serving recent cache entries first.

        Entries younger than `batch_cache_ttl` are served without a provider
        call. When a refetch fails, an entry younger than `refresh_cache_ttl`
        is served instead. Symbols that are unsupported or have no usable
        quote are simply absent from the result.
        """
        requested = list(dict.fromkeys(symbols))
        if not requested:
            return {}

        now = self._clock()
        ttl = self.config.batch_cache_ttl

        prices: Dict[str, Quote] = {}
        missing: List[str] = []
        for symbol in requested:
            quote = self.cache.get_fresh(symbol, now, ttl)
            if quote is not None:
                prices[symbol] = quote
            else:
                missing.append(symbol)

        binance_missing: Dict[str, str] = {}
        metaapi_missing: List[str] = []
        unsupported: List[str] = []
        for symbol in missing:
            assignment = symbol_router.classify(symbol)
            if assignment.provider == DataProvider.BINANCE:
                binance_missing[symbol] = assignment.provider_symbol
            elif assignment.provider == DataProvider.METAAPI:
                metaapi_missing.append(assignment.provider_symbol)
            else:
                unsupported.append(symbol)

        if binance_missing:
            prices.update(await self._fetch_binance_batch(binance_missing))

        if metaapi_missing:
            prices.update(await self._fetch_metaapi_parallel(metaapi_missing))

        # Failed refetches fall back to entries still within the refresh TTL
        stale_served = []
        for symbol in missing:
            if symbol in prices or symbol in unsupported:
                continue
            quote = self.cache.get_fresh(symbol, now, self.config.refresh_cache_ttl)
            if quote is not None:
                prices[symbol] = quote
                stale_served.append(symbol)

        logger.info("Batch prices resolved", extra={
            "requested": len(requested),
            "cache_hits": len(requested) - len(missing),
            "binance_missing": len(binance_missing),
            "metaapi_missing": len(metaapi_missing),
            "unsupported": unsupported,
            "stale_served": stale_served,
            "resolved": len(prices)
        })

        return prices

    async def _fetch_binance_batch(self, wanted: Dict[str, str]) -> Dict[str, Quote]:
        """One bulk call for all wanted crypto symbols (symbol -> Binance symbol)."""
        tickers = await self.binance.fetch_all()
        if tickers is None:
            logger.error("Binance batch fetch failed", extra={"symbols": list(wanted)})
            return {}

        observed_at = self._clock()
        prices = {}
        for symbol, binance_symbol in wanted.items():
            quote = tickers.get(binance_symbol)
            if quote is None:
                continue
            prices[symbol] = quote
            self.cache.put(symbol, quote, observed_at)
        return prices

    async def _fetch_metaapi_parallel(self, symbols: List[str]) -> Dict[str, Quote]:
        """Fetch MetaAPI symbols concurrently, at most `metaapi_max_concurrency` in flight."""

        async def fetch(symbol: str) -> Optional[Quote]:
            async with self._metaapi_semaphore:
                quote = await self.metaapi.fetch_one(symbol)
            if quote is not None:
                self.cache.put(symbol, quote, self._clock())
            return quote

        results = await asyncio.gather(*(fetch(symbol) for symbol in symbols), return_exceptions=True)

        prices = {}
        for symbol, result in zip(symbols, results):
            if isinstance(result, BaseException):
                logger.error("Unexpected error fetching MetaAPI price", extra={
                    "symbol": symbol,
                    "error": repr(result)
                })
                continue
            if result is not None:
                prices[symbol] = result
        return prices

    # Full refresh cycle

    def is_refreshing(self) -> bool:
        return self._refresh_lock.locked()

    async def refresh_all(self) -> bool:
        """
        Refresh every known symbol into the cache.

        Crypto comes from one bulk call; MetaAPI symbols are fetched one by one
        with `metaapi_min_interval` seconds between calls. If a cycle is already
        running this returns False immediately without doing anything.

        Returns:
            True if this call ran a refresh cycle
        """
        # No await between the check and the acquire, so no other task can slip in
        if self._refresh_lock.locked():
            logger.debug("Refresh already in progress, skipping")
            return False

        async with self._refresh_lock:
            start = self._clock()
            refreshed_binance = await self._refresh_binance()
            refreshed_metaapi = await self._refresh_metaapi()

            self._last_refresh = datetime.utcnow()
            logger.info("Prices refreshed", extra={
                "binance_symbols": refreshed_binance,
                "metaapi_symbols": refreshed_metaapi,
                "cached_symbols": len(self.cache),
                "duration_seconds": round(self._clock() - start, 3)
            })
        return True

    async def _refresh_binance(self) -> int:
        try:
            tickers = await self.binance.fetch_all()
        except Exception as e:
            logger.error("Binance refresh error", extra={"error": repr(e)})
            return 0

        if tickers is None:
            return 0

        observed_at = self._clock()
        refreshed = 0
        for symbol in symbol_router.binance_symbols():
            quote = tickers.get(symbol_router.classify(symbol).provider_symbol)
            if quote is not None:
                self.cache.put(symbol, quote, observed_at)
                refreshed += 1
        return refreshed

    async def _refresh_metaapi(self) -> int:
        refreshed = 0
        symbols = symbol_router.metaapi_symbols()
        for index, symbol in enumerate(symbols):
            if index > 0:
                await self._sleep(self.config.metaapi_min_interval)
            try:
                quote = await self.metaapi.fetch_one(symbol)
            except Exception as e:
                logger.error("MetaAPI refresh error", extra={"symbol": symbol, "error": repr(e)})
                continue
            if quote is not None:
                self.cache.put(symbol, quote, self._clock())
                refreshed += 1
        return refreshed

    # Background refresh loop

    async def start_background_refresh(self) -> None:
        """Start the periodic refresh loop."""
        self._shutdown_event.clear()
        task = asyncio.create_task(self.run_refresh_loop())
        self._running_tasks.append(task)
        logger.info("Background refresh started", extra={
            "interval": self.config.price_refresh_interval
        })

    async def run_refresh_loop(self) -> None:
        """Run refresh_all every `price_refresh_interval` seconds until shutdown."""
        while not self._shutdown_event.is_set():
            try:
                await self.refresh_all()
            except Exception as e:
                logger.error("Error in price refresh loop", extra={"error": str(e)})

            try:
                await asyncio.wait_for(
                    self._shutdown_event.wait(),
                    timeout=self.config.price_refresh_interval
                )
                break  # Shutdown event was set
            except asyncio.TimeoutError:
                continue

    async def shutdown(self) -> None:
        """Stop background tasks and close provider connections."""
        logger.info("Shutting down price aggregator")

        self._shutdown_event.set()
        for task in self._running_tasks:
            if not task.done():
                task.cancel()
        if self._running_tasks:
            await asyncio.gather(*self._running_tasks, return_exceptions=True)
        self._running_tasks = []

        for provider in (self.metaapi, self.binance):
            try:
                await provider.disconnect()
            except Exception as e:
                logger.warning("Error disconnecting provider", extra={
                    "provider": provider.name,
                    "error": str(e)
                })

    def are_background_tasks_running(self) -> bool:
        return any(not task.done() for task in self._running_tasks)

    def get_last_refresh_time(self) -> Optional[datetime]:
        return self._last_refresh
