"""Retrieval layer: web search and geocoding."""

from .search_provider import BaseSearchProvider, TavilySearchProvider
from .geocoding import LocationDetector, LocationInfo, NominatimGeocoder

__all__ = [
    "BaseSearchProvider",
    "TavilySearchProvider",
    "LocationDetector",
    "LocationInfo",
    "NominatimGeocoder",
]
