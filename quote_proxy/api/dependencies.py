"""
FastAPI dependencies for Quote Proxy.
Hand out the service instances created in the application lifespan.
"""

from fastapi import Request

from ..providers.metaapi_provider import MetaApiProvider
from ..services.cache import PriceCache
from ..services.price_aggregator import PriceAggregator


def get_aggregator(request: Request) -> PriceAggregator:
    return request.app.state.aggregator


def get_price_cache(request: Request) -> PriceCache:
    return request.app.state.price_cache


def get_metaapi_provider(request: Request) -> MetaApiProvider:
    return request.app.state.aggregator.metaapi
