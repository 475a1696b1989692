"""
MetaAPI data provider implementation.
Provides forex and metals bid/ask quotes from a MetaTrader account via MetaAPI.

MetaAPI allows at most one request per second; this provider issues exactly
the requests it is asked for and leaves pacing to the aggregator.
"""

from typing import Dict, List, Optional

import httpx
from pydantic import ValidationError

from .base import BaseQuoteProvider, FetchError, SchemaError
from ..api.schemas import DataProvider, InstrumentSpec, Quote
from ..core.config import Settings, settings as default_settings
from ..core.logging_config import create_logger

logger = create_logger(__name__)


class MetaApiProvider(BaseQuoteProvider):
    """MetaAPI provider for forex/metals quotes and the account symbol list."""

    def __init__(self, config: Optional[Settings] = None, transport: Optional[httpx.AsyncBaseTransport] = None):
        config = config or default_settings
        super().__init__(
            name="metaapi",
            base_url=config.get_metaapi_account_url(),
            config=config,
            transport=transport
        )

    def _get_auth_headers(self) -> Optional[Dict[str, str]]:
        """MetaAPI authenticates with an auth-token header."""
        if not self.config.meta_api_token:
            return None
        return {'auth-token': self.config.meta_api_token}

    def get_provider_name(self) -> DataProvider:
        """Get provider enum value."""
        return DataProvider.METAAPI

    async def fetch_one(self, provider_symbol: str) -> Optional[Quote]:
        """Get the current bid/ask for one symbol."""
        try:
            return await self._fetch_current_price(provider_symbol)
        except FetchError as e:
            self._log_fetch_error(e, "current_price")
            return None

    async def _fetch_current_price(self, symbol: str) -> Quote:
        data = await self._make_request(
            url=f"{self.base_url}/symbols/{symbol}/current-price",
            symbol=symbol
        )

        if not isinstance(data, dict):
            raise SchemaError(f"Unexpected current-price payload for {symbol}", self.name, symbol)

        # A zero or missing bid means the symbol has no live price
        bid = self._parse_price(data.get('bid'))
        if not bid:
            raise SchemaError(f"No bid price for {symbol}", self.name, symbol)

        ask = self._parse_price(data.get('ask'))
        return Quote(bid=bid, ask=ask or bid)

    async def list_symbols(self) -> Optional[List[InstrumentSpec]]:
        """
        Get the symbols available on the MetaAPI account.

        Returns:
            Decoded instrument specifications, or None if the list could not be fetched
        """
        try:
            payload = await self._make_request(url=f"{self.base_url}/symbols")
        except FetchError as e:
            self._log_fetch_error(e, "list_symbols")
            return None

        if not isinstance(payload, list):
            self._log_fetch_error(
                SchemaError("Symbol list is not an array", self.name),
                "list_symbols"
            )
            return None

        specs = []
        for item in payload:
            try:
                spec = InstrumentSpec.from_payload(item)
            except ValidationError as e:
                logger.warning("Failed to decode MetaAPI symbol", extra={
                    "provider": self.name,
                    "item": str(item),
                    "error": str(e)
                })
                continue
            if spec is not None:
                specs.append(spec)

        logger.info("Retrieved symbol list from MetaAPI", extra={
            "provider": self.name,
            "received": len(payload),
            "decoded": len(specs)
        })

        return specs
