"""Location detection and geocoding for search queries."""

import asyncio
import logging
import re
from pathlib import Path
from typing import Optional

import requests
import yaml
from pydantic import BaseModel

from errors import ProviderUnavailable
from llm.resilience import RetryPolicy, RateLimiter, call_with_retry
from memory.cache import QueryCache
from utils.text import extract_location_from_query, normalize_text

logger = logging.getLogger(__name__)

GEOCODE_CACHE_TTL = 24 * 60 * 60


class LocationInfo(BaseModel):
    """Location found in an utterance."""
    location: Optional[str] = None
    is_us: bool = False
    geocoded: bool = False
    display_name: Optional[str] = None
    country_code: Optional[str] = None


class NominatimGeocoder:
    """OpenStreetMap Nominatim geocoder with a 24 hour result cache."""

    API_URL = "https://nominatim.openstreetmap.org/search"

    def __init__(
        self,
        user_agent: str = "DomesticViolenceSupportAssistant/1.0",
        timeout: float = 5.0,
        cache: Optional[QueryCache] = None,
        policy: Optional[RetryPolicy] = None,
        rate_limiter: Optional[RateLimiter] = None
    ):
        """
        Initialize geocoder.

        Args:
            user_agent: User-Agent header required by Nominatim
            timeout: HTTP timeout in seconds
            cache: Result cache (defaults to a 24h namespaced cache)
            policy: Retry policy
            rate_limiter: Limiter (defaults to one request per second)
        """
        self.user_agent = user_agent
        self.timeout = timeout
        self.cache = cache if cache is not None else QueryCache(
            max_size=1000, default_ttl=GEOCODE_CACHE_TTL, namespace="geocode"
        )
        self.policy = policy or RetryPolicy(attempts=2, timeout_seconds=timeout + 1)
        self.rate_limiter = rate_limiter or RateLimiter(max_calls=1, period=1.0)

    def _geocode_sync(self, location: str) -> dict:
        params = {
            "q": location,
            "format": "json",
            "limit": 1,
            "addressdetails": 1,
        }
        try:
            response = requests.get(
                self.API_URL,
                params=params,
                headers={"User-Agent": self.user_agent, "Accept": "application/json"},
                timeout=self.timeout
            )
        except requests.exceptions.Timeout:
            raise ProviderUnavailable("nominatim", f"Request timeout after {self.timeout}s")
        except requests.exceptions.ConnectionError as e:
            raise ProviderUnavailable("nominatim", f"Connection error: {e}")

        if response.status_code != 200:
            raise ProviderUnavailable(
                "nominatim",
                f"API returned status {response.status_code}",
                retryable=response.status_code == 429 or response.status_code >= 500
            )

        try:
            data = response.json()
        except ValueError as e:
            raise ProviderUnavailable("nominatim", f"Invalid JSON response: {e}", retryable=False)

        if not data:
            return {}

        result = data[0]
        address = result.get("address") or {}
        return {
            "display_name": result.get("display_name"),
            "lat": result.get("lat"),
            "lon": result.get("lon"),
            "country_code": (address.get("country_code") or "").lower(),
            "state": address.get("state"),
            "city": address.get("city") or address.get("town") or address.get("village"),
        }

    async def geocode(self, location: str) -> Optional[dict]:
        """
        Geocode a place name.

        Returns:
            Dict with display_name, lat, lon, country_code, state and city,
            or None when the place is unknown

        Raises:
            ProviderUnavailable: If Nominatim cannot be reached
        """
        key = normalize_text(location)
        if not key:
            return None

        cached = self.cache.get(key)
        if cached is not None:
            return cached or None

        result = await call_with_retry(
            lambda: asyncio.to_thread(self._geocode_sync, location),
            provider="nominatim",
            policy=self.policy,
            rate_limiter=self.rate_limiter,
        )
        # Misses are cached too, as an empty dict
        self.cache.set(key, result)
        return result or None


class LocationDetector:
    """
    Finds the location in an utterance and decides whether it is in the US.

    Geocoding is preferred. When it is disabled or fails, a list of known US
    cities, states and state abbreviations decides.
    """

    def __init__(
        self,
        geocoder: Optional[NominatimGeocoder] = None,
        locations_path: Optional[str] = None
    ):
        if locations_path is None:
            base_path = Path(__file__).parent.parent
            locations_path = base_path / "data" / "us_locations.yaml"

        self.geocoder = geocoder
        known = self._load_locations(locations_path)
        self.us_places = sorted(
            {name.lower() for name in known.get("cities", []) + known.get("states", [])},
            key=len,
            reverse=True,
        )
        self.state_abbreviations = {abbr.upper() for abbr in known.get("state_abbreviations", [])}
        self._place_pattern = re.compile(
            r"\b(" + "|".join(re.escape(place) for place in self.us_places) + r")\b",
            re.IGNORECASE,
        ) if self.us_places else None

    def _load_locations(self, path) -> dict:
        """Load known US places from YAML."""
        with open(path, 'r') as f:
            return yaml.safe_load(f) or {}

    def extract(self, query: str) -> Optional[str]:
        """Extract a location phrase, falling back to known US place names."""
        location = extract_location_from_query(query)
        if location:
            return location
        if self._place_pattern:
            match = self._place_pattern.search(query or "")
            if match:
                return match.group(1).title()
        return None

    def is_us_fallback(self, location: str) -> bool:
        """Decide US-ness from known place names only."""
        if not location:
            return False
        abbr = re.search(r",\s*([A-Za-z]{2})\s*$", location)
        if abbr and abbr.group(1).upper() in self.state_abbreviations:
            return True
        if re.search(r"\b(?:usa|united states|u\.s\.?)\b", location, re.IGNORECASE):
            return True
        return bool(self._place_pattern and self._place_pattern.search(location))

    async def detect(self, query: str) -> LocationInfo:
        """
        Detect and classify the location in an utterance.

        Never raises: geocoder failures fall back to the known-place list.
        """
        location = self.extract(query)
        if not location:
            return LocationInfo()
        return await self.classify(location)

    async def classify(self, location: str) -> LocationInfo:
        """Decide whether an already extracted location is in the US."""
        if self.geocoder is not None:
            try:
                geo = await self.geocoder.geocode(location)
            except ProviderUnavailable as e:
                logger.warning(f"Geocoding failed for '{location}', using fallback: {e}")
                geo = None
            if geo:
                country = geo.get("country_code")
                return LocationInfo(
                    location=location,
                    is_us=country == "us",
                    geocoded=True,
                    display_name=geo.get("display_name"),
                    country_code=country,
                )

        return LocationInfo(location=location, is_us=self.is_us_fallback(location))
