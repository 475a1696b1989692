"""
Abstract base class for quote providers in Quote Proxy.
Defines the fetch error taxonomy and the HTTP plumbing shared by all providers.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional
import httpx

from ..api.schemas import DataProvider, Quote
from ..core.config import Settings, settings as default_settings
from ..core.logging_config import create_logger

logger = create_logger(__name__)


class FetchError(Exception):
    """Base exception for any failure to obtain a quote from a provider."""

    def __init__(self, message: str, provider: str, symbol: Optional[str] = None):
        self.message = message
        self.provider = provider
        self.symbol = symbol
        super().__init__(self.message)


class TransportError(FetchError):
    """Network, DNS or timeout failure."""
    pass


class UpstreamError(FetchError):
    """Provider answered with a non-success HTTP status."""

    def __init__(self, message: str, provider: str, symbol: Optional[str] = None, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message, provider, symbol)


class RateLimitError(UpstreamError):
    """Provider answered 429."""
    pass


class SchemaError(FetchError):
    """Provider response is not valid JSON or lacks a required field."""
    pass


class BaseQuoteProvider(ABC):
    """Abstract base class for bid/ask quote providers."""

    def __init__(
        self,
        name: str,
        base_url: str,
        config: Optional[Settings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.name = name
        self.base_url = base_url.rstrip('/')
        self.config = config or default_settings
        self.client: Optional[httpx.AsyncClient] = None
        self._transport = transport

    async def __aenter__(self):
        """Async context manager entry."""
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.disconnect()

    async def connect(self) -> None:
        """Initialize HTTP client connection."""
        if self.client is None:
            timeout = httpx.Timeout(self.config.request_timeout, connect=self.config.connect_timeout)
            limits = httpx.Limits(max_keepalive_connections=10, max_connections=20)

            self.client = httpx.AsyncClient(
                timeout=timeout,
                limits=limits,
                headers=self._get_default_headers(),
                follow_redirects=True,
                transport=self._transport
            )

            logger.debug("Connected to provider", extra={"provider": self.name})

    async def disconnect(self) -> None:
        """Close HTTP client connection."""
        if self.client:
            await self.client.aclose()
            self.client = None
            logger.debug("Disconnected from provider", extra={"provider": self.name})

    def _get_default_headers(self) -> Dict[str, str]:
        """Get default HTTP headers for requests."""
        headers = {
            'User-Agent': 'Quote-Proxy/1.0.0',
            'Accept': 'application/json',
            'Content-Type': 'application/json'
        }
        auth_headers = self._get_auth_headers()
        if auth_headers:
            headers.update(auth_headers)
        return headers

    async def _make_request(
        self,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        symbol: Optional[str] = None
    ) -> Any:
        """
        Make a single GET request and return the decoded JSON body.

        Exactly one attempt per call; pacing against rate limits is done by the caller.

        Raises:
            TransportError: network, DNS or timeout failure
            RateLimitError: HTTP 429
            UpstreamError: any other non-2xx status
            SchemaError: body is not valid JSON
        """
        if not self.client:
            await self.connect()

        logger.debug("Making request to provider", extra={
            "provider": self.name,
            "url": url,
            "symbol": symbol
        })

        try:
            response = await self.client.get(url, params=params)
        except httpx.TimeoutException as e:
            raise TransportError(f"Request timeout for {self.name}: {e!r}", self.name, symbol)
        except httpx.HTTPError as e:
            raise TransportError(f"HTTP transport error for {self.name}: {e!r}", self.name, symbol)

        if response.status_code == 429:
            raise RateLimitError(f"Rate limited by {self.name}", self.name, symbol, status_code=429)

        if not response.is_success:
            raise UpstreamError(
                f"{self.name} returned HTTP {response.status_code}",
                self.name,
                symbol,
                status_code=response.status_code
            )

        try:
            return response.json()
        except ValueError as e:
            raise SchemaError(f"Invalid JSON response from {self.name}: {str(e)}", self.name, symbol)

    def _log_fetch_error(self, error: FetchError, operation: str) -> None:
        """Log a collapsed fetch failure with its category."""
        logger.warning("Provider fetch failed", extra={
            "provider": self.name,
            "operation": operation,
            "symbol": error.symbol,
            "error_type": type(error).__name__,
            "status_code": getattr(error, "status_code", None),
            "error": error.message
        })

    @staticmethod
    def _parse_price(value: Any) -> Optional[float]:
        """Parse a provider price field, returning None if it is missing or not numeric."""
        if value is None:
            return None
        try:
            return float(value)
        except (TypeError, ValueError):
            return None

    @abstractmethod
    def _get_auth_headers(self) -> Optional[Dict[str, str]]:
        """Get authentication headers for this provider."""
        pass

    @abstractmethod
    def get_provider_name(self) -> DataProvider:
        """Get the provider enum value."""
        pass

    @abstractmethod
    async def fetch_one(self, provider_symbol: str) -> Optional[Quote]:
        """
        Get the current quote for one provider-specific symbol.

        Args:
            provider_symbol: Symbol in the provider's own naming

        Returns:
            Quote, or None if it could not be obtained. Never raises FetchError.
        """
        pass
