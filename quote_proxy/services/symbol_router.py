"""
Symbol routing for Quote Proxy.
Maps a canonical symbol to the provider that serves it.
"""

from typing import List

from ..api.schemas import DataProvider, ProviderAssignment
from ..core.config import provider_config


def classify(symbol: str) -> ProviderAssignment:
    """Decide which provider serves `symbol`. Unknown symbols are UNSUPPORTED."""
    if symbol in provider_config.METAAPI_SYMBOLS:
        return ProviderAssignment(provider=DataProvider.METAAPI, provider_symbol=symbol)

    binance_symbol = provider_config.BINANCE_SYMBOLS.get(symbol)
    if binance_symbol:
        return ProviderAssignment(provider=DataProvider.BINANCE, provider_symbol=binance_symbol)

    return ProviderAssignment(provider=DataProvider.UNSUPPORTED, provider_symbol=symbol)


def metaapi_symbols() -> List[str]:
    return list(provider_config.METAAPI_SYMBOLS)


def binance_symbols() -> List[str]:
    return list(provider_config.BINANCE_SYMBOLS)
