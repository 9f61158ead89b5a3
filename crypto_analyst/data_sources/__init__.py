"""Data source clients for market data and web search."""

from .market_data import MarketDataClient
from .web_search import WebSearchClient
