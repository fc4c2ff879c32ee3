"""Search hit and resource result schemas."""

from typing import Optional, Any
from pydantic import BaseModel, Field

from utils.text import extract_addresses, extract_phone_numbers, truncate

RESULT_CONTENT_LIMIT = 200


class SearchHit(BaseModel):
    """Raw hit returned by the search provider."""
    title: str = ""
    url: str = ""
    content: str = ""
    score: float = 0.0


class SearchResponse(BaseModel):
    """Raw search provider payload."""
    query: str = ""
    answer: Optional[str] = None
    results: list[SearchHit] = Field(default_factory=list)


class ResourceResult(BaseModel):
    """A search result kept in conversation context."""
    title: str
    url: str = ""
    content: str = Field("", max_length=RESULT_CONTENT_LIMIT)
    score: float = Field(0.0, ge=0.0, le=1.0, description="Relevance score")
    phone_numbers: list[str] = Field(default_factory=list)
    addresses: list[str] = Field(default_factory=list)

    @property
    def phone(self) -> Optional[str]:
        return self.phone_numbers[0] if self.phone_numbers else None

    @property
    def address(self) -> Optional[str]:
        return self.addresses[0] if self.addresses else None

    @classmethod
    def from_search_hit(cls, hit: Any) -> "ResourceResult":
        """
        Build a compact result from a raw hit.

        Contact details are extracted from the full content before it is
        truncated, so a phone number past the cut-off is not lost.

        Args:
            hit: SearchHit, ResourceResult or dict with title/url/content/score

        Returns:
            ResourceResult with content capped at 200 characters
        """
        if isinstance(hit, ResourceResult):
            return hit
        if isinstance(hit, SearchHit):
            data = hit.model_dump()
        else:
            data = dict(hit)

        content = str(data.get("content") or "")
        try:
            score = float(data.get("score") or 0.0)
        except (TypeError, ValueError):
            score = 0.0

        return cls(
            title=str(data.get("title") or "Unknown Resource"),
            url=str(data.get("url") or ""),
            content=truncate(content, RESULT_CONTENT_LIMIT),
            score=min(max(score, 0.0), 1.0),
            phone_numbers=data.get("phone_numbers") or extract_phone_numbers(content),
            addresses=data.get("addresses") or extract_addresses(content),
        )


def to_resource_results(search_results: Any, limit: int = 3) -> list[ResourceResult]:
    """
    Normalize whatever a caller passes as search results.

    Accepts a SearchResponse, a ``{"results": [...]}`` dict, or a list of
    hits. Results are ranked by score and capped at ``limit``.
    """
    if not search_results:
        return []
    if isinstance(search_results, SearchResponse):
        hits = search_results.results
    elif isinstance(search_results, dict):
        hits = search_results.get("results") or []
    else:
        hits = list(search_results)

    results = [ResourceResult.from_search_hit(hit) for hit in hits]
    results.sort(key=lambda r: r.score, reverse=True)
    return results[:limit]
