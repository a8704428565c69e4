"""In-memory substring index over the full reference catalog."""

from __future__ import annotations

from dext.models import CatalogRef
from dext.services.catalog_base import CatalogClient, CatalogError
from logger import get_logger, info_domain

LOGGER = get_logger("search.index")

DEFAULT_RESULT_CAP = 50


class SearchIndex:
    """Hold every catalog reference for synchronous name/id lookups."""

    def __init__(self, *, full_index_limit: int = 2000) -> None:
        self._full_index_limit = full_index_limit
        self._refs: list[CatalogRef] = []
        self._loaded = False

    @property
    def is_loaded(self) -> bool:
        return self._loaded

    @property
    def refs(self) -> list[CatalogRef]:
        return list(self._refs)

    def replace(self, refs: list[CatalogRef]) -> None:
        self._refs = list(refs)
        self._loaded = True

    async def load(self, client: CatalogClient) -> bool:
        """Fetch the full catalog once; a failure leaves the index empty."""

        if self._loaded:
            return True
        try:
            refs = await client.list_pokemon_page(self._full_index_limit, 0)
        except CatalogError as exc:
            LOGGER.warning(
                "Search index load failed: %s", exc, extra={"stage": "SEARCH_INDEX_FAILED"}
            )
            return False
        self.replace(refs)
        info_domain(
            "search.index",
            f"Search index ready: {len(refs)} entries",
            stage="SEARCH_INDEX_LOADED",
            entries=len(refs),
        )
        return True

    def search(self, text: str, cap: int = DEFAULT_RESULT_CAP) -> list[CatalogRef]:
        query = (text or "").strip().lower()
        if not query or cap <= 0:
            return []
        matches: list[CatalogRef] = []
        for ref in self._refs:
            if query in ref.name.lower() or query in str(ref.id):
                matches.append(ref)
                if len(matches) >= cap:
                    break
        return matches


__all__ = ["DEFAULT_RESULT_CAP", "SearchIndex"]
