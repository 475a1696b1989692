"""
Quote Proxy Service
A price-quoting proxy that aggregates forex, metals and crypto quotes from rate-limited providers.
"""

__version__ = "1.0.0"
__author__ = "Quote Proxy Team"
__description__ = "Bid/ask quote aggregation with caching and request coalescing"
