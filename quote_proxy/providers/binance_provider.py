"""
Binance data provider implementation.
Provides crypto bid/ask quotes from the public book ticker endpoint.
"""

from typing import Any, Dict, Optional

import httpx

from .base import BaseQuoteProvider, FetchError, SchemaError
from ..api.schemas import DataProvider, Quote
from ..core.config import Settings, settings as default_settings
from ..core.logging_config import create_logger

logger = create_logger(__name__)


class BinanceProvider(BaseQuoteProvider):
    """Binance provider for crypto quotes, with a single-call bulk path."""

    def __init__(self, config: Optional[Settings] = None, transport: Optional[httpx.AsyncBaseTransport] = None):
        config = config or default_settings
        super().__init__(
            name="binance",
            base_url=config.binance_base_url,
            config=config,
            transport=transport
        )

    def _get_auth_headers(self) -> Optional[Dict[str, str]]:
        """Binance public market data doesn't require authentication."""
        return None

    def get_provider_name(self) -> DataProvider:
        """Get provider enum value."""
        return DataProvider.BINANCE

    @property
    def book_ticker_url(self) -> str:
        return f"{self.base_url}/api/v3/ticker/bookTicker"

    def _ticker_to_quote(self, ticker: Any) -> Quote:
        if not isinstance(ticker, dict):
            raise SchemaError("Book ticker entry is not an object", self.name)

        symbol = ticker.get('symbol')
        if not symbol:
            raise SchemaError("Book ticker entry has no symbol", self.name)
        bid = self._parse_price(ticker.get('bidPrice'))
        ask = self._parse_price(ticker.get('askPrice'))
        if bid is None or ask is None:
            raise SchemaError(f"Missing bid/ask in book ticker for {symbol}", self.name, symbol)

        return Quote(bid=bid, ask=ask)

    async def fetch_one(self, provider_symbol: str) -> Optional[Quote]:
        """Get the book ticker for a single Binance symbol (e.g. BTCUSDT)."""
        try:
            ticker = await self._make_request(
                url=self.book_ticker_url,
                params={'symbol': provider_symbol},
                symbol=provider_symbol
            )
            return self._ticker_to_quote(ticker)
        except FetchError as e:
            if e.symbol is None:
                e.symbol = provider_symbol
            self._log_fetch_error(e, "book_ticker")
            return None

    async def fetch_all(self) -> Optional[Dict[str, Quote]]:
        """
        Get book tickers for every Binance symbol in one call.

        Returns:
            Mapping of Binance symbol to Quote, or None if the bulk call failed.
            Entries that cannot be parsed are left out.
        """
        try:
            tickers = await self._make_request(url=self.book_ticker_url)
        except FetchError as e:
            self._log_fetch_error(e, "book_ticker_bulk")
            return None

        if not isinstance(tickers, list):
            self._log_fetch_error(
                SchemaError("Bulk book ticker payload is not an array", self.name),
                "book_ticker_bulk"
            )
            return None

        quotes: Dict[str, Quote] = {}
        skipped = 0
        for ticker in tickers:
            try:
                quote = self._ticker_to_quote(ticker)
            except SchemaError:
                skipped += 1
                continue
            quotes[ticker['symbol']] = quote

        logger.debug("Retrieved bulk book tickers from Binance", extra={
            "provider": self.name,
            "received": len(tickers),
            "parsed": len(quotes),
            "skipped": skipped
        })

        return quotes
