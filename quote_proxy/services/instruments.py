"""
Instrument catalog for Quote Proxy.
Combines the MetaAPI account symbols with the static crypto table.
"""

from typing import List

from ..api.schemas import Instrument, InstrumentCategory, InstrumentSpec
from ..core.config import provider_config
from ..core.logging_config import create_logger
from ..providers.metaapi_provider import MetaApiProvider

logger = create_logger(__name__)

CRYPTO_NAMES = {
    'BTCUSD': 'Bitcoin',
    'ETHUSD': 'Ethereum',
    'BNBUSD': 'BNB',
    'SOLUSD': 'Solana',
    'XRPUSD': 'XRP',
    'ADAUSD': 'Cardano',
    'DOGEUSD': 'Dogecoin',
    'DOTUSD': 'Polkadot',
    'MATICUSD': 'Polygon',
    'LTCUSD': 'Litecoin',
    'AVAXUSD': 'Avalanche',
    'LINKUSD': 'Chainlink'
}

METAL_MARKERS = ('XAU', 'XAG', 'XPT', 'XPD')
INDEX_MARKERS = ('US30', 'US500', 'NAS', 'UK100', 'GER', 'JPN', 'AUS200')
COMMODITY_MARKERS = ('OIL', 'BRENT', 'WTI', 'NATGAS')


def categorize_symbol(symbol: str) -> InstrumentCategory:
    """Guess the category of a symbol from its name."""
    if not symbol:
        return InstrumentCategory.FOREX
    s = symbol.upper()
    if any(marker in s for marker in METAL_MARKERS):
        return InstrumentCategory.METALS
    if any(marker in s for marker in INDEX_MARKERS):
        return InstrumentCategory.INDICES
    if any(marker in s for marker in COMMODITY_MARKERS):
        return InstrumentCategory.COMMODITIES
    if symbol in provider_config.BINANCE_SYMBOLS:
        return InstrumentCategory.CRYPTO
    return InstrumentCategory.FOREX


def get_crypto_name(symbol: str) -> str:
    return CRYPTO_NAMES.get(symbol, symbol)


def instrument_from_spec(spec: InstrumentSpec) -> Instrument:
    """Build an Instrument from a MetaAPI symbol, filling in defaults for missing fields."""
    return Instrument(
        symbol=spec.symbol,
        name=spec.description or spec.symbol,
        category=categorize_symbol(spec.symbol),
        digits=spec.digits or 5,
        contractSize=spec.contract_size or 100000,
        minVolume=spec.min_volume or 0.01,
        maxVolume=spec.max_volume or 100,
        volumeStep=spec.volume_step or 0.01
    )


def crypto_instruments() -> List[Instrument]:
    return [
        Instrument(
            symbol=symbol,
            name=get_crypto_name(symbol),
            category=InstrumentCategory.CRYPTO,
            digits=2,
            contractSize=1,
            minVolume=0.01,
            maxVolume=100,
            volumeStep=0.01
        )
        for symbol in provider_config.BINANCE_SYMBOLS
    ]


def get_default_instruments() -> List[Instrument]:
    """Static instrument list served when the MetaAPI symbol list is unavailable."""
    defaults = [
        ('EURUSD', 'EUR/USD', InstrumentCategory.FOREX, 5, 100000),
        ('GBPUSD', 'GBP/USD', InstrumentCategory.FOREX, 5, 100000),
        ('USDJPY', 'USD/JPY', InstrumentCategory.FOREX, 3, 100000),
        ('USDCHF', 'USD/CHF', InstrumentCategory.FOREX, 5, 100000),
        ('AUDUSD', 'AUD/USD', InstrumentCategory.FOREX, 5, 100000),
        ('NZDUSD', 'NZD/USD', InstrumentCategory.FOREX, 5, 100000),
        ('USDCAD', 'USD/CAD', InstrumentCategory.FOREX, 5, 100000),
        ('EURGBP', 'EUR/GBP', InstrumentCategory.FOREX, 5, 100000),
        ('EURJPY', 'EUR/JPY', InstrumentCategory.FOREX, 3, 100000),
        ('GBPJPY', 'GBP/JPY', InstrumentCategory.FOREX, 3, 100000),
        ('XAUUSD', 'Gold', InstrumentCategory.METALS, 2, 100000),
        ('XAGUSD', 'Silver', InstrumentCategory.METALS, 3, 100000),
        # Crypto rows match crypto_instruments()
        ('BTCUSD', 'Bitcoin', InstrumentCategory.CRYPTO, 2, 1),
        ('ETHUSD', 'Ethereum', InstrumentCategory.CRYPTO, 2, 1),
    ]
    return [
        Instrument(symbol=symbol, name=name, category=category, digits=digits, contractSize=contract_size)
        for symbol, name, category, digits, contract_size in defaults
    ]


async def get_instruments(metaapi: MetaApiProvider) -> List[Instrument]:
    """
    Get all tradable instruments.

    MetaAPI account symbols come first, then the crypto instruments; duplicates
    keep their first occurrence. Falls back to the default list if the MetaAPI
    symbol list cannot be fetched.
    """
    specs = await metaapi.list_symbols()
    if specs is None:
        logger.warning("Serving default instrument list", extra={
            "reason": "metaapi_symbols_unavailable"
        })
        return get_default_instruments()

    instruments = []
    seen = set()
    for instrument in [instrument_from_spec(spec) for spec in specs] + crypto_instruments():
        if instrument.symbol in seen:
            continue
        seen.add(instrument.symbol)
        instruments.append(instrument)

    logger.info("Built instrument list", extra={
        "metaapi_instruments": len(specs),
        "total": len(instruments)
    })

    return instruments
