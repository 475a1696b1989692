"""
FastAPI endpoints for Quote Proxy Service.
Instrument list, single price and batch price routes.
"""

from typing import Any

from fastapi import APIRouter, Body, Depends
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from ..api.schemas import (
    BatchPriceRequest, BatchPriceResponse, ErrorResponse, InstrumentListResponse, PriceResponse
)
from ..api.dependencies import get_aggregator, get_metaapi_provider
from ..core.logging_config import create_logger
from ..providers.metaapi_provider import MetaApiProvider
from ..services.instruments import get_default_instruments, get_instruments
from ..services.price_aggregator import PriceAggregator

logger = create_logger(__name__)

# Create API router
router = APIRouter()


def error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(message=message).dict()
    )


# Declared before /{symbol} so "instruments" is not taken for a symbol
@router.get("/instruments", response_model=InstrumentListResponse)
async def list_instruments(metaapi: MetaApiProvider = Depends(get_metaapi_provider)):
    """
    Get all available instruments.
    Falls back to a static default list if the provider symbol list is unavailable.
    """
    try:
        instruments = await get_instruments(metaapi)
    except Exception as e:
        logger.error("Error fetching instruments", extra={"error": str(e)})
        instruments = get_default_instruments()

    return InstrumentListResponse(instruments=instruments)


@router.post("/batch", response_model=BatchPriceResponse)
async def get_batch_prices(
    payload: Any = Body(None),
    aggregator: PriceAggregator = Depends(get_aggregator)
):
    """
    Get prices for multiple symbols.
    Symbols that cannot be priced are left out of the response.
    """
    if not isinstance(payload, dict) or not isinstance(payload.get('symbols'), list):
        return error_response(400, "symbols array required")

    try:
        request = BatchPriceRequest(**payload)
    except ValidationError:
        return error_response(400, "symbols array required")

    try:
        prices = await aggregator.resolve_batch(request.symbols)
        return BatchPriceResponse(prices=prices)

    except Exception as e:
        logger.error("Error fetching batch prices", extra={
            "symbols": request.symbols,
            "error": str(e)
        })
        return error_response(500, str(e))


@router.get("/{symbol}", response_model=PriceResponse)
async def get_price(symbol: str, aggregator: PriceAggregator = Depends(get_aggregator)):
    """Get the live price for a single symbol."""
    symbol = symbol.strip().upper()

    try:
        price = await aggregator.resolve_price(symbol)
    except Exception as e:
        logger.error("Error fetching price", extra={"symbol": symbol, "error": str(e)})
        return error_response(500, str(e))

    if price is None:
        return error_response(404, "Price not available")

    return PriceResponse(price=price)
