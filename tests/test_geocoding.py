"""Tests for geocoding and location detection."""

import asyncio

import requests
from unittest.mock import Mock, patch

from llm.resilience import RetryPolicy, RateLimiter
from memory.cache import QueryCache
from retrieval.geocoding import LocationDetector, NominatimGeocoder


def _response(payload, status_code=200):
    response = Mock()
    response.status_code = status_code
    response.json.return_value = payload
    return response


AUSTIN = [{
    "display_name": "Austin, Travis County, Texas, United States",
    "lat": "30.27",
    "lon": "-97.74",
    "address": {"city": "Austin", "state": "Texas", "country_code": "us"},
}]

PARIS = [{
    "display_name": "Paris, Ile-de-France, France",
    "lat": "48.85",
    "lon": "2.35",
    "address": {"city": "Paris", "country_code": "fr"},
}]


def make_geocoder():
    return NominatimGeocoder(
        user_agent="SupportAssistantTests/1.0",
        policy=RetryPolicy(attempts=1, timeout_seconds=5),
        rate_limiter=RateLimiter(max_calls=100, period=1.0),
    )


class TestNominatimGeocoder:
    """Test Nominatim lookups with mocked HTTP."""

    def setup_method(self):
        """Set up test fixtures."""
        self.geocoder = make_geocoder()

    @patch('requests.get')
    def test_geocode_success(self, mock_get):
        """Test a successful lookup."""
        mock_get.return_value = _response(AUSTIN)

        result = asyncio.run(self.geocoder.geocode("Austin"))

        assert result["country_code"] == "us"
        assert result["state"] == "Texas"
        assert result["city"] == "Austin"
        _, kwargs = mock_get.call_args
        assert kwargs["params"]["q"] == "Austin"
        assert kwargs["params"]["format"] == "json"
        assert kwargs["headers"]["User-Agent"] == "SupportAssistantTests/1.0"

    @patch('requests.get')
    def test_results_cached(self, mock_get):
        """Test that repeated lookups hit the cache."""
        mock_get.return_value = _response(AUSTIN)

        asyncio.run(self.geocoder.geocode("Austin"))
        asyncio.run(self.geocoder.geocode("  austin "))

        assert mock_get.call_count == 1

    @patch('requests.get')
    def test_unknown_place_cached_as_miss(self, mock_get):
        """Test that unknown places return None and are not looked up twice."""
        mock_get.return_value = _response([])

        assert asyncio.run(self.geocoder.geocode("Nowhereville")) is None
        assert asyncio.run(self.geocoder.geocode("Nowhereville")) is None
        assert mock_get.call_count == 1

    @patch('requests.get')
    def test_injected_cache_used(self, mock_get):
        """Test that an empty injected cache is not replaced."""
        mock_get.return_value = _response(AUSTIN)
        cache = QueryCache(max_size=5, namespace="geocode")
        geocoder = NominatimGeocoder(
            cache=cache,
            policy=RetryPolicy(attempts=1, timeout_seconds=5),
            rate_limiter=RateLimiter(max_calls=100, period=1.0),
        )

        asyncio.run(geocoder.geocode("Austin"))

        assert geocoder.cache is cache
        assert len(cache) == 1

    def test_blank_location(self):
        """Test that blank input is not sent."""
        assert asyncio.run(self.geocoder.geocode("  ")) is None


class TestLocationDetector:
    """Test location extraction and US classification."""

    def setup_method(self):
        """Set up test fixtures."""
        self.detector = LocationDetector()

    def test_extract_with_preposition(self):
        """Test extraction after near/in/around/at."""
        assert self.detector.extract("I need a shelter near Austin") == "Austin"
        assert self.detector.extract("any shelters around San Antonio?") == "San Antonio"

    def test_extract_known_place_without_preposition(self):
        """Test the known-place fallback."""
        assert self.detector.extract("Houston shelters please") == "Houston"

    def test_extract_nothing(self):
        """Test utterances without a place."""
        assert self.detector.extract("I need help") is None
        assert self.detector.extract("I'm in danger") is None

    def test_is_us_fallback(self):
        """Test the US heuristic."""
        assert self.detector.is_us_fallback("Austin")
        assert self.detector.is_us_fallback("Springfield, IL")
        assert self.detector.is_us_fallback("Smalltown, USA")
        assert not self.detector.is_us_fallback("Toronto")
        assert not self.detector.is_us_fallback("")

    def test_current_location(self):
        """Test "near me" style phrases."""
        info = asyncio.run(self.detector.detect("find a shelter near me"))

        assert info.location is None
        assert info.is_us is False

    @patch('requests.get')
    def test_geocoded_non_us(self, mock_get):
        """Test that geocoding decides US-ness when available."""
        mock_get.return_value = _response(PARIS)
        detector = LocationDetector(geocoder=make_geocoder())

        info = asyncio.run(detector.detect("I need a shelter in Paris"))

        assert info.location == "Paris"
        assert info.geocoded is True
        assert info.is_us is False
        assert info.country_code == "fr"

    @patch('requests.get')
    def test_geocoder_failure_uses_fallback(self, mock_get):
        """Test that geocoder outages fall back to the known-place list."""
        mock_get.side_effect = requests.exceptions.ConnectionError("offline")
        detector = LocationDetector(geocoder=make_geocoder())

        info = asyncio.run(detector.detect("I need a shelter in Austin"))

        assert info.location == "Austin"
        assert info.geocoded is False
        assert info.is_us is True
