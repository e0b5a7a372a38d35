"""Token pagination for provider list calls.

AWS list operations page with an opaque continuation token: the response
carries it at some path (``NextToken``, ``DistributionList.NextMarker``) and
the next request sends it back under a parameter (``NextToken``, ``Marker``).
The loop ends only when the response has no token; an empty page in the
middle of a listing is normal and does not end it.

Typical pattern:
    list_distributions()
    -> {"DistributionList": {"Items": [...], "NextMarker": "abc"}}
    list_distributions(Marker="abc")
    -> {"DistributionList": {"Items": [...]}}
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Generator, List, Optional

from cloudtables.lib.transforms import MISSING, get_path

logger = logging.getLogger(__name__)

__all__ = [
    "PageFetcher",
    "PaginationConfig",
    "TokenPaginationState",
]


@dataclass(frozen=True)
class PaginationConfig:
    """Where a list operation keeps its items and continuation token.

    Examples:
        # Single response, no continuation
        config = PaginationConfig(items_path="ForecastResultsByTime")

        # Token pagination
        config = PaginationConfig(
            request_token_param="Marker",
            response_token_path="DistributionList.NextMarker",
            items_path="DistributionList.Items",
        )

        # Items need per-page processing (price list entries are JSON strings)
        config = PaginationConfig(
            request_token_param="NextToken",
            response_token_path="NextToken",
            items_from_page=lambda page: [json.loads(p) for p in page["PriceList"]],
        )
    """

    request_token_param: Optional[str] = None
    response_token_path: Optional[str] = None
    items_path: str = ""
    items_from_page: Optional[Callable[[Dict[str, Any]], List[Any]]] = None

    @property
    def paginated(self) -> bool:
        return bool(self.request_token_param and self.response_token_path)

    def extract_items(self, page: Dict[str, Any]) -> List[Any]:
        if self.items_from_page is not None:
            return list(self.items_from_page(page))
        items = get_path(page, self.items_path)
        if items is MISSING or items is None:
            return []
        if isinstance(items, list):
            return items
        return [items]


class TokenPaginationState:
    """Tracks the continuation token across pages of one listing."""

    def __init__(self, config: PaginationConfig, base_params: Optional[Dict[str, Any]] = None) -> None:
        self.config = config
        self.base_params = dict(base_params or {})
        self.token: Optional[str] = None
        self.pages = 0
        self._done = False

    def should_fetch_more(self) -> bool:
        return not self._done

    def build_params(self) -> Dict[str, Any]:
        params = dict(self.base_params)
        if self.token and self.config.request_token_param:
            params[self.config.request_token_param] = self.token
        return params

    def on_response(self, page: Dict[str, Any]) -> bool:
        """Record a page and report whether another one follows."""
        self.pages += 1
        self.token = self._extract_token(page) if self.config.paginated else None
        self._done = not self.token
        return not self._done

    def describe(self) -> str:
        if self.token:
            return f"(token={self.token[:20]}...)" if len(self.token) > 20 else f"(token={self.token})"
        return "(first page)"

    def _extract_token(self, page: Any) -> Optional[str]:
        token = get_path(page, self.config.response_token_path or "")
        if token is MISSING or token is None or token == "":
            return None
        return str(token)


class PageFetcher:
    """Sequential, lazily-driven page loop over one provider list operation.

    ``call`` issues one request and returns the raw response page. Provider
    errors propagate unchanged; retrying is the transport's business.
    """

    def __init__(self, config: PaginationConfig, call: Callable[[Dict[str, Any]], Dict[str, Any]]) -> None:
        self.config = config
        self.call = call
        self.pages_fetched = 0

    def iter_pages(self, request_params: Optional[Dict[str, Any]] = None) -> Generator[Dict[str, Any], None, None]:
        state = TokenPaginationState(self.config, request_params)
        while state.should_fetch_more():
            logger.debug("Fetching page %d %s", state.pages + 1, state.describe())
            page = self.call(state.build_params())
            self.pages_fetched += 1
            state.on_response(page)
            yield page

    def iter_items(self, request_params: Optional[Dict[str, Any]] = None) -> Generator[Any, None, None]:
        """Yield every item of every page in order.

        Closing the generator stops before the next provider call.
        """
        for page in self.iter_pages(request_params):
            yield from self.config.extract_items(page)

    def stream(self, request_params: Optional[Dict[str, Any]], emit: Callable[[Any], bool]) -> int:
        """Push items to ``emit`` until it returns False or pages run out.

        Returns:
            Number of items emitted
        """
        emitted = 0
        items = self.iter_items(request_params)
        try:
            for item in items:
                emitted += 1
                if emit(item) is False:
                    logger.debug("Consumer stopped pagination after %d items", emitted)
                    break
        finally:
            items.close()
        return emitted
