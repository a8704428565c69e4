"""Paging engine that expands catalog references into enriched records."""

from __future__ import annotations

import asyncio
import dataclasses
from dataclasses import dataclass
from typing import Callable, Iterable, Optional, Sequence

from dext.infrastructure.concurrency import FanOut
from dext.models import (
    CatalogRef,
    FilterConfig,
    FlatCursor,
    GroupedCursor,
    PagingCursor,
    PagingMode,
    PokemonRecord,
    sort_references,
)
from dext.services.catalog_base import CatalogClient, CatalogError
from dext.services.search_index import SearchIndex
from dext.services.snapshot_cache import SnapshotCache
from logger import bind_context, get_logger, info_domain, reset_context

LOGGER = get_logger("engine.aggregation")

Listener = Callable[["EngineState"], None]


@dataclass(slots=True)
class EngineSettings:
    """Tunables for paging, search and fan-out."""

    page_limit: int = 20
    full_index_limit: int = 2000
    species_id_ceiling: int = 1025
    search_result_cap: int = 50
    search_enrich_count: int = 20
    fanout_limit: Optional[int] = None


@dataclass(frozen=True, slots=True)
class EngineState:
    """Read-only view handed to the presentation layer."""

    records: tuple[PokemonRecord, ...]
    is_loading: bool
    error_message: Optional[str]
    can_load_more: bool
    mode: PagingMode
    filter_config: FilterConfig
    search_text: str
    search_results: tuple[PokemonRecord, ...]


@dataclass(slots=True)
class Enrichment:
    """Fields resolved for one reference; ``None`` means the lookup failed."""

    types: Optional[list[str]] = None
    main_color: Optional[str] = None
    species_id: Optional[int] = None

    def apply(self, record: PokemonRecord) -> None:
        if self.types is not None:
            record.types = list(self.types)
        if self.main_color is not None:
            record.main_color = self.main_color
        if self.species_id is not None:
            record.species_id = self.species_id


def merge_species_order(
    species_page: Sequence[CatalogRef], variants: Iterable[PokemonRecord]
) -> list[PokemonRecord]:
    """Re-emit variants in species page order, ascending by id within a species."""

    grouped: dict[Optional[int], list[PokemonRecord]] = {}
    for record in variants:
        grouped.setdefault(record.species_id, []).append(record)
    ordered: list[PokemonRecord] = []
    for species in species_page:
        members = grouped.pop(species.id, [])
        ordered.extend(sorted(members, key=lambda record: record.id))
    return ordered


class AggregationEngine:
    """Single owner of the paginated view, its cursor and the search results.

    All state lives on the event loop that drives the engine. Fan-out tasks
    only return values; the owning coroutine applies them, so completion order
    never reaches the visible list. Filter changes and new search queries bump
    a generation counter and late results of older generations are dropped.
    """

    def __init__(
        self,
        client: CatalogClient,
        cache: SnapshotCache,
        search_index: SearchIndex | None = None,
        settings: EngineSettings | None = None,
    ) -> None:
        self._client = client
        self._cache = cache
        self._settings = settings or EngineSettings()
        self._search_index = search_index or SearchIndex(
            full_index_limit=self._settings.full_index_limit
        )
        self._fanout = FanOut(self._settings.fanout_limit)

        self._filter = FilterConfig()
        self._cursor = PagingCursor.for_config(self._filter, self._settings.page_limit)
        self._records: list[PokemonRecord] = []
        self._error_message: Optional[str] = None
        self._generation = 0
        self._in_flight: Optional[int] = None
        self._full_index: Optional[list[CatalogRef]] = None

        self._search_text = ""
        self._search_results: list[PokemonRecord] = []
        self._search_generation = 0

        self._listeners: list[Listener] = []

    # observable state
    @property
    def records(self) -> list[PokemonRecord]:
        return list(self._records)

    @property
    def is_loading(self) -> bool:
        return self._in_flight is not None and self._in_flight == self._generation

    @property
    def error_message(self) -> Optional[str]:
        return self._error_message

    @property
    def can_load_more(self) -> bool:
        return self._cursor.can_load_more

    @property
    def cursor(self) -> PagingCursor:
        return self._cursor

    @property
    def mode(self) -> PagingMode:
        return self._cursor.mode

    @property
    def filter_config(self) -> FilterConfig:
        return self._filter

    @property
    def search_text(self) -> str:
        return self._search_text

    @property
    def search_results(self) -> list[PokemonRecord]:
        return list(self._search_results)

    @property
    def search_index(self) -> SearchIndex:
        return self._search_index

    def state(self) -> EngineState:
        return EngineState(
            records=tuple(self._records),
            is_loading=self.is_loading,
            error_message=self._error_message,
            can_load_more=self._cursor.can_load_more,
            mode=self._cursor.mode,
            filter_config=self._filter,
            search_text=self._search_text,
            search_results=tuple(self._search_results),
        )

    def add_listener(self, listener: Listener) -> Callable[[], None]:
        """Register a state-change callback; returns a function that removes it."""

        self._listeners.append(listener)

        def _remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _remove

    def clear_error(self) -> None:
        if self._error_message is not None:
            self._error_message = None
            self._notify()

    def has_reached_end(self, record: PokemonRecord) -> bool:
        return bool(self._records) and self._records[-1] == record

    # commands
    async def restore_snapshot(self) -> int:
        """Seed the grouped view from the persisted snapshot, if any."""

        if (
            not self._filter.is_default
            or self._records
            or self._cursor.offset
            or self._in_flight is not None
        ):
            return 0
        generation = self._generation
        records = await asyncio.to_thread(self._cache.load)
        if not records or generation != self._generation or self._records:
            return 0
        self._records = records
        species_count = len({record.species_id for record in records if record.species_id})
        limit = self._cursor.limit
        pages = -(-species_count // limit)
        self._cursor.position.offset = pages * limit
        info_domain(
            "engine.aggregation",
            f"Restored {len(records)} cached records",
            stage="SNAPSHOT_RESTORED",
            records=len(records),
            offset=self._cursor.offset,
        )
        self._notify()
        return len(records)

    async def load_search_index(self) -> bool:
        return await self._search_index.load(self._client)

    async def load_more(self) -> bool:
        """Load the next page of the active mode.

        Returns ``False`` without touching the network when a load of the
        current generation is already running or the listing is exhausted.
        """

        generation = self._generation
        if self._in_flight == generation:
            LOGGER.debug("load_more ignored: page load already in flight")
            return False
        if not self._cursor.can_load_more:
            LOGGER.debug("load_more ignored: no more pages")
            return False
        self._in_flight = generation
        self._error_message = None
        cursor = self._cursor
        tokens = bind_context(
            operation_id=f"page-{generation}-{cursor.offset}", mode=cursor.mode.value
        )
        self._notify()
        try:
            if isinstance(cursor.position, FlatCursor):
                await self._load_flat_page(generation, cursor, cursor.position)
            else:
                await self._load_grouped_page(generation, cursor, cursor.position)
        except CatalogError as exc:
            if generation == self._generation:
                self._error_message = f"Failed to load Pokemon: {exc}"
                LOGGER.warning(
                    "Page load failed at offset %s: %s",
                    cursor.offset,
                    exc,
                    extra={"stage": "PAGE_LOAD_FAILED"},
                )
            else:
                LOGGER.debug("Discarding failure of abandoned page load: %s", exc)
        finally:
            if self._in_flight == generation:
                self._in_flight = None
            reset_context(tokens)
            self._notify()
        return True

    async def apply_filters(self, config: FilterConfig) -> None:
        """Switch sort/filter settings, discard the visible list and load page one."""

        self._generation += 1
        self._filter = config
        self._cursor = PagingCursor.for_config(config, self._settings.page_limit)
        self._records = []
        self._error_message = None
        info_domain(
            "engine.aggregation",
            f"Filters applied: {self._cursor.mode.value} mode",
            stage="FILTERS_APPLIED",
            sort=config.sort_option.value,
            order=config.sort_order.value,
            types=sorted(config.type_filters),
        )
        self._notify()
        await self.load_more()

    async def set_search_text(self, text: str) -> None:
        """Publish skeleton matches immediately, then enrich the head of the list."""

        self._search_generation += 1
        generation = self._search_generation
        self._search_text = text
        if not (text or "").strip():
            self._search_results = []
            self._notify()
            return

        matches = self._search_index.search(text, self._settings.search_result_cap)
        results = [PokemonRecord.skeleton(ref) for ref in matches]
        self._search_results = results
        self._notify()

        head = results[: self._settings.search_enrich_count]
        if not head:
            return
        resolved = {record.id: record for record in self._records if record.is_enriched}
        tokens = bind_context(operation_id=f"search-{generation}")
        try:
            enriched = await self._fanout.gather(
                self._enrich_search_hit(record, resolved) for record in head
            )
        finally:
            reset_context(tokens)
        if generation != self._search_generation:
            LOGGER.debug("Dropping stale search results for %r", text)
            return
        self._search_results = enriched + results[len(head):]
        self._notify()

    # grouped mode
    async def _load_grouped_page(
        self, generation: int, cursor: PagingCursor, position: GroupedCursor
    ) -> None:
        offset = position.offset
        species_page = await self._client.list_species_page(cursor.limit, offset)
        if generation != self._generation:
            return
        if not species_page:
            cursor.can_load_more = False
            info_domain(
                "engine.aggregation",
                "Species listing exhausted",
                stage="LISTING_EXHAUSTED",
                offset=offset,
            )
            return

        batches = await self._fanout.gather(
            self._expand_species(species) for species in species_page
        )
        if generation != self._generation:
            LOGGER.debug("Dropping grouped page at offset %s from abandoned generation", offset)
            return
        ordered = merge_species_order(
            species_page, (record for batch in batches for record in batch)
        )
        self._records.extend(ordered)
        position.offset = offset + cursor.limit
        LOGGER.debug(
            "Grouped page loaded offset=%s species=%s records=%s",
            offset,
            len(species_page),
            len(ordered),
        )
        await asyncio.to_thread(self._cache.save, list(self._records))

    async def _expand_species(self, species: CatalogRef) -> list[PokemonRecord]:
        try:
            detail = await self._fanout.slot(self._client.get_species_detail(species.id))
        except CatalogError as exc:
            LOGGER.warning(
                "Dropping species %s (#%s): %s",
                species.name,
                species.id,
                exc,
                extra={"stage": "SPECIES_FAILED"},
            )
            return []
        records = [
            PokemonRecord(
                name=variant.pokemon.name,
                url=variant.pokemon.url,
                species_id=species.id,
                main_color=detail.color,
            )
            for variant in detail.variants
        ]
        types = await self._fanout.gather(self._fetch_types(record.id) for record in records)
        for record, names in zip(records, types):
            record.types = names
        return records

    # flat mode
    async def _load_flat_page(
        self, generation: int, cursor: PagingCursor, position: FlatCursor
    ) -> None:
        if position.references is None:
            base = await self._build_flat_references(self._filter)
            if generation != self._generation:
                return
            position.references = sort_references(base, self._filter)
            position.offset = 0
            info_domain(
                "engine.aggregation",
                f"Flat sequence ready: {len(position.references)} references",
                stage="FLAT_SEQUENCE_READY",
                references=len(position.references),
            )

        references = position.references
        start = position.offset
        chunk = references[start : start + cursor.limit]
        if not chunk:
            cursor.can_load_more = False
            return

        skeletons = [PokemonRecord.skeleton(ref) for ref in chunk]
        self._records.extend(skeletons)
        position.offset = start + len(chunk)
        if position.offset >= len(references):
            cursor.can_load_more = False
        self._notify()

        async def _indexed(index: int, ref: CatalogRef) -> tuple[int, Enrichment]:
            return index, await self._enrich_reference(ref)

        pending = [_indexed(index, ref) for index, ref in enumerate(chunk)]
        for next_done in asyncio.as_completed(pending):
            index, enrichment = await next_done
            if generation != self._generation:
                continue
            enrichment.apply(skeletons[index])
            self._notify()

    async def _build_flat_references(self, config: FilterConfig) -> list[CatalogRef]:
        if not config.type_filters:
            return await self._full_reference_index()
        type_names = sorted(config.type_filters)
        batches = await self._fanout.gather(
            self._fanout.slot(self._client.get_by_type(name)) for name in type_names
        )
        seen: set[int] = set()
        union: list[CatalogRef] = []
        for batch in batches:
            for ref in batch:
                if ref.id in seen:
                    continue
                seen.add(ref.id)
                union.append(ref)
        return union

    async def _full_reference_index(self) -> list[CatalogRef]:
        if self._full_index is not None:
            return list(self._full_index)
        if self._search_index.is_loaded:
            self._full_index = self._search_index.refs
            return list(self._full_index)
        refs = await self._client.list_pokemon_page(self._settings.full_index_limit, 0)
        self._full_index = list(refs)
        if not self._search_index.is_loaded:
            self._search_index.replace(refs)
        return list(refs)

    # enrichment
    async def _fetch_types(self, pokemon_id: int) -> Optional[list[str]]:
        try:
            return await self._fanout.slot(self._client.get_types(pokemon_id))
        except CatalogError as exc:
            LOGGER.debug("Type lookup failed for #%s: %s", pokemon_id, exc)
            return None

    async def _fetch_species_color(self, pokemon_id: int) -> Optional[str]:
        try:
            detail = await self._fanout.slot(self._client.get_species_detail(pokemon_id))
        except CatalogError as exc:
            LOGGER.debug("Species lookup failed for #%s: %s", pokemon_id, exc)
            return None
        return detail.color

    async def _enrich_reference(self, ref: CatalogRef) -> Enrichment:
        pokemon_id = ref.id
        if 0 < pokemon_id <= self._settings.species_id_ceiling:
            types, color = await asyncio.gather(
                self._fetch_types(pokemon_id), self._fetch_species_color(pokemon_id)
            )
        else:
            types, color = await self._fetch_types(pokemon_id), None
        return Enrichment(
            types=types,
            main_color=color,
            species_id=pokemon_id if color is not None else None,
        )

    async def _enrich_search_hit(
        self, record: PokemonRecord, resolved: dict[int, PokemonRecord]
    ) -> PokemonRecord:
        known = resolved.get(record.id)
        if known is not None:
            return dataclasses.replace(
                known, types=list(known.types) if known.types is not None else None
            )
        enriched = dataclasses.replace(record)
        enrichment = await self._enrich_reference(record)
        enrichment.apply(enriched)
        return enriched

    def _notify(self) -> None:
        if not self._listeners:
            return
        state = self.state()
        for listener in list(self._listeners):
            try:
                listener(state)
            except Exception:  # noqa: BLE001
                LOGGER.exception("State listener failed")


__all__ = [
    "AggregationEngine",
    "EngineSettings",
    "EngineState",
    "Enrichment",
    "merge_species_order",
]
