"""Debounced search-as-you-type suggestions."""

import asyncio
import inspect

import structlog

from .config import SUGGESTION_DEBOUNCE_MS, SUGGESTION_LIMIT

logger = structlog.get_logger(__name__)


class SuggestionFeed:
    """Feeds keystrokes to a search callable, at most once per pause in typing.

    Every call to `update` starts a new generation. A call waits for the
    debounce delay and gives up if a newer keystroke arrived meanwhile; a
    search that completes after a newer generation started is discarded, so
    `results` always belongs to the latest query no matter the order in which
    responses come back.

    Args:
        search: callable `(query, limit) -> list`, sync or async.
        debounce_ms: quiet period before searching.
        limit: max suggestions requested.
        on_results: optional callback receiving each accepted result list.
    """

    def __init__(self, search, debounce_ms: int = SUGGESTION_DEBOUNCE_MS, limit: int = SUGGESTION_LIMIT, on_results=None):
        self.search = search
        self.debounce = debounce_ms / 1000
        self.limit = limit
        self.on_results = on_results
        self.query = ""
        self.results: list = []
        self._generation = 0

    def _accept(self, results: list) -> list:
        self.results = results
        if self.on_results is not None:
            self.on_results(results)
        return results

    async def _run_search(self, query: str):
        if inspect.iscoroutinefunction(self.search):
            return await self.search(query, self.limit)
        return await asyncio.to_thread(self.search, query, self.limit)

    async def update(self, query: str | None) -> list | None:
        """Handle a new value of the search box.

        Returns:
            The accepted results, or None when this query was superseded.
        """
        self._generation += 1
        generation = self._generation
        self.query = (query or "").strip()

        if not self.query:
            return self._accept([])

        await asyncio.sleep(self.debounce)
        if generation != self._generation:
            return None

        try:
            results = await self._run_search(self.query)
        except Exception as exc:
            logger.warning("suggestion_search_failed", query=self.query, error=str(exc))
            results = []

        if generation != self._generation:
            logger.debug("suggestion_discarded", query=query, latest=self.query)
            return None
        return self._accept(list(results))
