"""Base resource class."""

from __future__ import annotations

from collections.abc import Iterator
from typing import TYPE_CHECKING, Any

from vcdcse.models.common import PaginatedResponse

if TYPE_CHECKING:
    from vcdcse._http import HttpClient

DEFAULT_PAGE_SIZE = 128


class SyncResource:
    """Base class for synchronous API resources."""

    def __init__(self, http: HttpClient) -> None:
        self._http = http

    def _paginate(
        self, path: str, params: dict[str, Any] | None = None, page_size: int = DEFAULT_PAGE_SIZE
    ) -> Iterator[dict[str, Any]]:
        """Yield the raw items of every page of an OpenAPI list endpoint."""
        page = 1
        while True:
            query = {**(params or {}), "page": page, "pageSize": page_size}
            data = PaginatedResponse[dict[str, Any]].model_validate(
                self._http.get(path, params=query) or {}
            )
            yield from data.values
            if page >= data.page_count:
                return
            page += 1
