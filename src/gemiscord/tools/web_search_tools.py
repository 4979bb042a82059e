"""
Web search using the Brave Search API.

This module contains the HTTP client for Brave's web search endpoint and the
formatter that turns results into text the model can quote from.
"""

import asyncio
import logging
import time
from typing import Any, Callable, Dict, List, Optional

import httpx

from ..config import ConfigManager
from ..exceptions import BackendErrorKind, SearchBackendError
from .schemas import SearchResponse, SearchResultItem

logger = logging.getLogger(__name__)

REGION_PARAMS: Dict[str, Dict[str, str]] = {
    "JP": {"country": "JP", "search_lang": "jp", "ui_lang": "ja-JP"},
    "US": {"country": "US", "search_lang": "en", "ui_lang": "en-US"},
    "global": {"search_lang": "en", "ui_lang": "en-US"},
}


def _parse_results(data: Dict[str, Any]) -> List[SearchResultItem]:
    """Flatten Brave's sections: infobox first, then web, news, and FAQ."""
    results: List[SearchResultItem] = []

    for item in (data.get("infobox") or {}).get("results", []):
        results.append(
            SearchResultItem(
                title=item.get("title", ""),
                url=item.get("url", ""),
                description=item.get("long_desc") or item.get("description", ""),
                source="infobox",
            )
        )

    for item in (data.get("web") or {}).get("results", []):
        results.append(
            SearchResultItem(
                title=item.get("title", ""),
                url=item.get("url", ""),
                description=item.get("description", ""),
                source="web",
                age=item.get("age"),
                extra_snippets=item.get("extra_snippets") or [],
            )
        )

    for item in (data.get("news") or {}).get("results", []):
        results.append(
            SearchResultItem(
                title=item.get("title", ""),
                url=item.get("url", ""),
                description=item.get("description", ""),
                source="news",
                age=item.get("age"),
            )
        )

    for item in (data.get("faq") or {}).get("results", []):
        results.append(
            SearchResultItem(
                title=item.get("question", ""),
                url=item.get("url", ""),
                description=item.get("answer", ""),
                source="faq",
            )
        )

    return results


def _error_from_response(response: httpx.Response) -> SearchBackendError:
    status = response.status_code
    body = response.text[:200]

    if status == 429 or "quota" in body.lower():
        kind = BackendErrorKind.QUOTA
    elif status in (401, 403):
        kind = BackendErrorKind.AUTHENTICATION
    else:
        kind = BackendErrorKind.GENERIC

    return SearchBackendError(
        f"Brave Search returned HTTP {status}: {body}", kind=kind, status=status
    )


def format_results_for_model(response: SearchResponse, web_limit: int = 4) -> str:
    """
    Render search results as compact text for the model.

    Direct answers (infobox, FAQ) come first, then the top news items, then
    web results. Fewer web results are included when direct answers exist.
    """
    if not response.results:
        return f'No results found for "{response.query}".'

    direct = [r for r in response.results if r.source in ("infobox", "faq")]
    news = [r for r in response.results if r.source == "news"][:2]
    web = [r for r in response.results if r.source == "web"]
    web = web[: 2 if direct else web_limit]

    lines = [f'Search results for "{response.query}":']
    if direct:
        lines.append("")
        lines.append("Direct answers:")
        for r in direct:
            lines.append(f"- {r.title}: {r.description}")
    if news:
        lines.append("")
        lines.append("News:")
        for r in news:
            age = f" ({r.age})" if r.age else ""
            lines.append(f"- {r.title}{age}: {r.description} <{r.url}>")
    if web:
        lines.append("")
        lines.append("Web:")
        for r in web:
            lines.append(f"- {r.title}: {r.description} <{r.url}>")

    return "\n".join(lines)


class BraveSearchClient:
    """Search backend for the search_web tool."""

    def __init__(
        self,
        config: ConfigManager,
        http_client: Optional[httpx.AsyncClient] = None,
        sleep: Callable[[float], Any] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config
        self._http_client = http_client
        self._owns_client = http_client is None
        self._sleep = sleep
        self._clock = clock
        # Guards the request slot only; the HTTP call runs outside it
        self._pace_lock = asyncio.Lock()
        self._last_request_at: Optional[float] = None

    def _client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient()
        return self._http_client

    async def _pace(self) -> None:
        """Wait out the minimum interval and claim the next request slot."""
        interval = self.config.settings.brave_search.min_interval_seconds
        async with self._pace_lock:
            if self._last_request_at is not None:
                wait = interval - (self._clock() - self._last_request_at)
                if wait > 0:
                    logger.debug(f"⏱️ Waiting {wait:.2f}s before next Brave request")
                    await self._sleep(wait)
            self._last_request_at = self._clock()

    async def search(
        self, query: str, region: Optional[str] = None, count: Optional[int] = None
    ) -> SearchResponse:
        """
        Search the web.

        Args:
            query: Search query string
            region: JP, US or global; defaults to the configured region
            count: Number of results, clamped to 1..max_count

        Returns:
            SearchResponse with flattened results

        Raises:
            SearchBackendError: On HTTP, network or payload errors
        """
        settings = self.config.settings.brave_search
        region = region if region in REGION_PARAMS else settings.default_region
        count = max(1, min(count or settings.default_count, settings.max_count))

        params: Dict[str, Any] = {
            "q": query,
            "count": count,
            "extra_snippets": "true",
            "text_decorations": "false",
            **REGION_PARAMS[region],
        }
        headers = {
            "Accept": "application/json",
            "X-Subscription-Token": settings.api_key.get_secret_value(),
        }

        logger.info(f"🔍 Searching web for: {query} (region={region}, count={count})")

        await self._pace()
        started = time.monotonic()
        try:
            response = await self._client().get(
                settings.endpoint,
                params=params,
                headers=headers,
                timeout=settings.timeout_seconds,
            )
        except httpx.TimeoutException as e:
            raise SearchBackendError(
                f"Brave Search timed out: {e}",
                kind=BackendErrorKind.NETWORK,
                status=408,
            ) from e
        except httpx.TransportError as e:
            raise SearchBackendError(
                f"Brave Search unreachable: {e}", kind=BackendErrorKind.NETWORK
            ) from e

        if response.status_code >= 400:
            error = _error_from_response(response)
            logger.error(f"❌ Web search failed: {error}")
            raise error

        try:
            data = response.json()
        except ValueError as e:
            raise SearchBackendError(
                "Brave Search returned a non-JSON body", status=response.status_code
            ) from e

        results = _parse_results(data)
        elapsed_ms = int((time.monotonic() - started) * 1000)
        logger.info(f"✅ Web search completed: {len(results)} results")

        return SearchResponse(
            query=query,
            region=region,
            results=results,
            total_results=len(results),
            search_time_ms=elapsed_ms,
        )

    async def aclose(self) -> None:
        if self._owns_client and self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None
