"""Domain models used by the catalog engine."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable, Mapping, Optional
from urllib.parse import urlsplit

SPRITE_URL_TEMPLATE = (
    "https://raw.githubusercontent.com/PokeAPI/sprites/master/sprites/pokemon/{id}.png"
)

KNOWN_TYPES: tuple[str, ...] = (
    "normal",
    "fire",
    "water",
    "electric",
    "grass",
    "ice",
    "fighting",
    "poison",
    "ground",
    "flying",
    "psychic",
    "bug",
    "rock",
    "ghost",
    "dragon",
    "steel",
    "fairy",
)


class MalformedReference(ValueError):
    """Raised when a reference url does not end with a numeric id."""


def parse_reference_id(url: str) -> int:
    """Return the trailing numeric path segment of ``url``."""

    try:
        path = urlsplit(url or "").path
    except ValueError:
        raise MalformedReference(f"Unparseable reference url: {url!r}") from None
    segments = [segment for segment in path.split("/") if segment]
    if not segments:
        raise MalformedReference(f"Reference url has no path segments: {url!r}")
    tail = segments[-1]
    if not (tail.isascii() and tail.isdigit()):
        raise MalformedReference(f"Reference url does not end with an id: {url!r}")
    return int(tail)


def derive_id(url: str) -> int:
    try:
        return parse_reference_id(url)
    except MalformedReference:
        return 0


@dataclass(slots=True)
class CatalogRef:
    """Bare ``{name, url}`` reference returned by list endpoints."""

    name: str
    url: str

    @property
    def id(self) -> int:
        return derive_id(self.url)


@dataclass(slots=True)
class PokemonRecord(CatalogRef):
    """Catalog reference with optional enrichment attached.

    ``types`` and ``main_color`` stay ``None`` until enrichment succeeds; an
    empty ``types`` list is a resolved value, not a missing one.
    """

    species_id: Optional[int] = None
    types: Optional[list[str]] = None
    main_color: Optional[str] = None

    @classmethod
    def skeleton(cls, ref: CatalogRef) -> "PokemonRecord":
        return cls(name=ref.name, url=ref.url)

    @property
    def is_enriched(self) -> bool:
        return self.types is not None or self.main_color is not None

    @property
    def display_name(self) -> str:
        return "-".join(part.capitalize() for part in self.name.split("-"))

    @property
    def sprite_url(self) -> str:
        return SPRITE_URL_TEMPLATE.format(id=self.id)

    def to_payload(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "url": self.url,
            "species_id": self.species_id,
            "types": list(self.types) if self.types is not None else None,
            "main_color": self.main_color,
        }

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "PokemonRecord":
        """Build a record from a snapshot entry, raising ``ValueError`` on bad shape."""

        if not isinstance(payload, Mapping):
            raise ValueError("Record payload must be an object")
        name = payload.get("name")
        url = payload.get("url")
        if not isinstance(name, str) or not isinstance(url, str):
            raise ValueError("Record payload requires string name and url")
        species_id = payload.get("species_id")
        if species_id is not None and not isinstance(species_id, int):
            raise ValueError("species_id must be an integer")
        types = payload.get("types")
        if types is not None:
            if not isinstance(types, list) or not all(isinstance(t, str) for t in types):
                raise ValueError("types must be a list of strings")
            types = list(types)
        main_color = payload.get("main_color")
        if main_color is not None and not isinstance(main_color, str):
            raise ValueError("main_color must be a string")
        return cls(
            name=name,
            url=url,
            species_id=species_id,
            types=types,
            main_color=main_color,
        )


@dataclass(slots=True)
class SpeciesVariant:
    """One variety listed by a species entry."""

    is_default: bool
    pokemon: CatalogRef


@dataclass(slots=True)
class SpeciesDetail:
    """Species color and its ordered list of variants."""

    color: str
    variants: list[SpeciesVariant] = field(default_factory=list)


class SortOption(Enum):
    BY_ID = "ID"
    BY_NAME = "Name"


class SortOrder(Enum):
    ASCENDING = "Ascending"
    DESCENDING = "Descending"


@dataclass(frozen=True, slots=True)
class FilterConfig:
    """User-selected sort and type filters."""

    sort_option: SortOption = SortOption.BY_ID
    sort_order: SortOrder = SortOrder.ASCENDING
    type_filters: frozenset[str] = frozenset()

    def __post_init__(self) -> None:
        normalized = frozenset(
            name.strip().lower() for name in self.type_filters if name and name.strip()
        )
        object.__setattr__(self, "type_filters", normalized)

    @property
    def is_default(self) -> bool:
        return (
            self.sort_option is SortOption.BY_ID
            and self.sort_order is SortOrder.ASCENDING
            and not self.type_filters
        )


def sort_references(refs: Iterable[CatalogRef], config: FilterConfig) -> list[CatalogRef]:
    """Sort ascending by the configured key, then reverse for descending order."""

    if config.sort_option is SortOption.BY_NAME:
        ordered = sorted(refs, key=lambda ref: (ref.name, ref.id, ref.url))
    else:
        ordered = sorted(refs, key=lambda ref: (ref.id, ref.name, ref.url))
    if config.sort_order is SortOrder.DESCENDING:
        ordered.reverse()
    return ordered


class PagingMode(Enum):
    GROUPED = "grouped"
    FLAT = "flat"


@dataclass(slots=True)
class GroupedCursor:
    """Position in the species listing."""

    offset: int = 0


@dataclass(slots=True)
class FlatCursor:
    """Position in the precomputed, sorted flat reference sequence.

    ``references`` is ``None`` until the base set has been built.
    """

    references: Optional[list[CatalogRef]] = None
    offset: int = 0


@dataclass(slots=True)
class PagingCursor:
    """Paging state shared by both strategies."""

    position: GroupedCursor | FlatCursor
    limit: int
    can_load_more: bool = True

    @property
    def mode(self) -> PagingMode:
        if isinstance(self.position, FlatCursor):
            return PagingMode.FLAT
        return PagingMode.GROUPED

    @property
    def offset(self) -> int:
        return self.position.offset

    @classmethod
    def for_config(cls, config: FilterConfig, limit: int) -> "PagingCursor":
        position: GroupedCursor | FlatCursor
        position = GroupedCursor() if config.is_default else FlatCursor()
        return cls(position=position, limit=limit)


__all__ = [
    "KNOWN_TYPES",
    "CatalogRef",
    "FilterConfig",
    "FlatCursor",
    "GroupedCursor",
    "MalformedReference",
    "PagingCursor",
    "PagingMode",
    "PokemonRecord",
    "SortOption",
    "SortOrder",
    "SpeciesDetail",
    "SpeciesVariant",
    "derive_id",
    "parse_reference_id",
    "sort_references",
]
