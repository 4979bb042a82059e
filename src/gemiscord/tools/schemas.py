"""
Pydantic schemas for structured tool responses.
"""

from typing import List, Optional

from pydantic import BaseModel, Field


class CharacterCountResponse(BaseModel):
    """Result of the count_characters tool."""

    length: int = Field(description="Number of characters in the message")
    within_limit: bool = Field(description="Fits into a single Discord message")
    requires_compression: bool = Field(
        description="Longer than a single Discord message"
    )
    estimated_chunks_if_split: int = Field(
        description="Messages needed if the text were split"
    )


class SearchResultItem(BaseModel):
    """Individual search result."""

    title: str = Field(default="", description="Result title")
    url: str = Field(default="", description="Result URL")
    description: str = Field(default="", description="Snippet or answer text")
    source: str = Field(
        default="web", description="Result section: infobox, web, news, or faq"
    )
    age: Optional[str] = Field(default=None, description="Publication age if known")
    extra_snippets: List[str] = Field(default_factory=list)


class SearchResponse(BaseModel):
    """Response of a web search."""

    query: str
    region: str
    results: List[SearchResultItem] = Field(default_factory=list)
    total_results: int = Field(default=0)
    search_time_ms: int = Field(default=0)
