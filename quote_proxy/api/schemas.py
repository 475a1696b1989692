"""
Pydantic schemas for Quote Proxy Service.
Canonical quote, cache and instrument models plus the HTTP response envelopes.
"""

from enum import Enum
from typing import Any, Dict, List, Optional, Union
from pydantic import BaseModel, Field, validator


class DataProvider(str, Enum):
    """Upstream quote providers."""
    METAAPI = "metaapi"
    BINANCE = "binance"
    UNSUPPORTED = "unsupported"


class InstrumentCategory(str, Enum):
    """Instrument categories shown to clients."""
    FOREX = "Forex"
    METALS = "Metals"
    INDICES = "Indices"
    COMMODITIES = "Commodities"
    CRYPTO = "Crypto"


class Quote(BaseModel):
    """Bid/ask price pair for one instrument. ask >= bid is not enforced."""
    bid: float = Field(..., description="Bid price")
    ask: float = Field(..., description="Ask price")

    class Config:
        """Pydantic configuration."""
        frozen = True


class CacheEntry(BaseModel):
    """A cached quote and the time (epoch seconds) it was observed."""
    quote: Quote
    observed_at: float = Field(..., description="Observation timestamp (epoch seconds)")

    class Config:
        """Pydantic configuration."""
        frozen = True


class ProviderAssignment(BaseModel):
    """Which provider serves a symbol, and under which provider-specific symbol."""
    provider: DataProvider
    provider_symbol: str

    @property
    def is_supported(self) -> bool:
        return self.provider != DataProvider.UNSUPPORTED

    class Config:
        """Pydantic configuration."""
        frozen = True


class InstrumentSpec(BaseModel):
    """
    One entry of the forex provider's symbol list.

    The upstream list may hold bare symbol strings or specification objects;
    both are decoded into this model by `from_payload`.
    """
    symbol: str
    description: Optional[str] = None
    digits: Optional[int] = None
    contract_size: Optional[float] = Field(None, alias="contractSize")
    min_volume: Optional[float] = Field(None, alias="minVolume")
    max_volume: Optional[float] = Field(None, alias="maxVolume")
    volume_step: Optional[float] = Field(None, alias="volumeStep")

    @classmethod
    def from_payload(cls, item: Union[str, Dict[str, Any], None]) -> Optional["InstrumentSpec"]:
        """Decode a string or object entry. Returns None for unusable entries."""
        if isinstance(item, str):
            symbol = item.strip()
            return cls(symbol=symbol) if symbol else None
        if isinstance(item, dict) and item.get('symbol'):
            return cls(**item)
        return None

    class Config:
        """Pydantic configuration."""
        populate_by_name = True
        extra = "ignore"


class Instrument(BaseModel):
    """Instrument metadata served by the instruments endpoint."""
    symbol: str
    name: str
    category: InstrumentCategory
    digits: int = 5
    contractSize: float = 100000
    minVolume: float = 0.01
    maxVolume: float = 100
    volumeStep: float = 0.01

    class Config:
        """Pydantic configuration."""
        use_enum_values = True


class InstrumentListResponse(BaseModel):
    """Model for the instrument list response."""
    success: bool = True
    instruments: List[Instrument]


class PriceResponse(BaseModel):
    """Model for a single price response."""
    success: bool = True
    price: Quote


class BatchPriceRequest(BaseModel):
    """Model for batch price request body."""
    symbols: List[str] = Field(..., description="Symbols to quote")

    @validator('symbols', pre=True)
    def drop_non_string_symbols(cls, v: Any) -> Any:
        """Items that are not strings can never be priced; leave them out."""
        if isinstance(v, list):
            return [item for item in v if isinstance(item, str)]
        return v

    @validator('symbols')
    def validate_symbols(cls, v: List[str]) -> List[str]:
        """Normalize symbols and remove duplicates while preserving order."""
        seen = set()
        unique_symbols = []
        for symbol in v:
            normalized = symbol.strip().upper()
            if not normalized or normalized in seen:
                continue
            seen.add(normalized)
            unique_symbols.append(normalized)
        return unique_symbols


class BatchPriceResponse(BaseModel):
    """Model for batch price response."""
    success: bool = True
    prices: Dict[str, Quote] = Field(default_factory=dict)


class ErrorResponse(BaseModel):
    """Model for error responses."""
    success: bool = False
    message: str = Field(..., description="Error message")
