from __future__ import annotations

import pytest

from dext.models import (
    CatalogRef,
    FilterConfig,
    MalformedReference,
    PagingCursor,
    PagingMode,
    PokemonRecord,
    SortOption,
    SortOrder,
    derive_id,
    parse_reference_id,
    sort_references,
)


def _ref(name: str, pokemon_id: int) -> CatalogRef:
    return CatalogRef(name=name, url=f"https://pokeapi.co/api/v2/pokemon/{pokemon_id}/")


@pytest.mark.parametrize(
    ("url", "expected"),
    [
        ("https://pokeapi.co/api/v2/pokemon/1/", 1),
        ("https://pokeapi.co/api/v2/pokemon-species/25/", 25),
        ("https://pokeapi.co/api/v2/pokemon/10033", 10033),
    ],
)
def test_id_is_trailing_path_segment(url: str, expected: int) -> None:
    assert derive_id(url) == expected
    assert CatalogRef(name="x", url=url).id == expected


@pytest.mark.parametrize(
    "url",
    [
        "https://pokeapi.co/api/v2/pokemon/bulbasaur/",
        "https://pokeapi.co/",
        "",
        "not a url",
    ],
)
def test_malformed_reference_defaults_to_zero(url: str) -> None:
    assert derive_id(url) == 0
    with pytest.raises(MalformedReference):
        parse_reference_id(url)


def test_filter_config_default_detection_and_type_normalisation() -> None:
    assert FilterConfig().is_default
    assert not FilterConfig(sort_option=SortOption.BY_NAME).is_default
    assert not FilterConfig(sort_order=SortOrder.DESCENDING).is_default

    config = FilterConfig(type_filters=frozenset({" Fire", "WATER", ""}))
    assert config.type_filters == frozenset({"fire", "water"})
    assert not config.is_default


def test_sort_by_name_descending_reverses_whole_sequence() -> None:
    refs = [_ref("pidgey", 16), _ref("abra", 63), _ref("zubat", 41), _ref("eevee", 133)]
    config = FilterConfig(sort_option=SortOption.BY_NAME, sort_order=SortOrder.DESCENDING)

    ordered = sort_references(refs, config)

    assert [ref.name for ref in ordered] == ["zubat", "pidgey", "eevee", "abra"]


def test_sort_by_id_is_numeric_not_lexicographic() -> None:
    refs = [_ref("a", 100), _ref("b", 9), _ref("c", 25)]

    ordered = sort_references(refs, FilterConfig(sort_order=SortOrder.ASCENDING))

    assert [ref.id for ref in ordered] == [9, 25, 100]


@pytest.mark.parametrize("option", list(SortOption))
@pytest.mark.parametrize("order", list(SortOrder))
def test_sorting_is_idempotent(option: SortOption, order: SortOrder) -> None:
    refs = [_ref("mew", 151), _ref("ditto", 132), _ref("mew", 151), _ref("onix", 95)]
    config = FilterConfig(sort_option=option, sort_order=order)

    once = sort_references(refs, config)
    twice = sort_references(once, config)

    assert twice == once


def test_cursor_mode_follows_filter_config() -> None:
    grouped = PagingCursor.for_config(FilterConfig(), limit=20)
    flat = PagingCursor.for_config(FilterConfig(sort_option=SortOption.BY_NAME), limit=20)

    assert grouped.mode is PagingMode.GROUPED
    assert flat.mode is PagingMode.FLAT
    assert grouped.offset == flat.offset == 0
    assert grouped.can_load_more and flat.can_load_more


def test_record_presentation_helpers() -> None:
    record = PokemonRecord(name="mr-mime", url="https://pokeapi.co/api/v2/pokemon/122/")

    assert record.display_name == "Mr-Mime"
    assert record.sprite_url.endswith("/sprites/pokemon/122.png")
    assert not record.is_enriched

    record.types = []
    assert record.is_enriched


def test_record_payload_rejects_bad_shapes() -> None:
    good = PokemonRecord(
        name="pikachu",
        url="https://pokeapi.co/api/v2/pokemon/25/",
        species_id=25,
        types=["electric"],
        main_color="yellow",
    )
    assert PokemonRecord.from_payload(good.to_payload()) == good

    with pytest.raises(ValueError):
        PokemonRecord.from_payload({"name": "pikachu"})
    with pytest.raises(ValueError):
        PokemonRecord.from_payload({"name": "x", "url": "y", "types": "electric"})
    with pytest.raises(ValueError):
        PokemonRecord.from_payload(["not", "a", "mapping"])
