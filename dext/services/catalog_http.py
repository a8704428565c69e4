"""PokeAPI-backed catalog client."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import httpx

from dext.models import (
    CatalogRef,
    MalformedReference,
    SpeciesDetail,
    SpeciesVariant,
    parse_reference_id,
)
from dext.services.catalog_base import CatalogClient, DecodeError, TransportError
from logger import get_logger

LOGGER = get_logger("catalog.http")

DEFAULT_BASE_URL = "https://pokeapi.co/api/v2"


@dataclass(slots=True)
class PokeApiConfig:
    """Configuration for the PokeAPI client."""

    base_url: str = DEFAULT_BASE_URL
    timeout_seconds: float = 15.0
    user_agent: str = "Dext/1.0"


class PokeApiCatalog(CatalogClient):
    """Issue read-only requests against PokeAPI and decode typed responses."""

    def __init__(
        self,
        config: PokeApiConfig | None = None,
        *,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._config = config or PokeApiConfig()
        self._base_url = self._config.base_url.rstrip("/")
        if client is None:
            timeout = httpx.Timeout(
                self._config.timeout_seconds, connect=self._config.timeout_seconds
            )
            self._client = httpx.AsyncClient(
                timeout=timeout,
                follow_redirects=True,
                headers={
                    "User-Agent": self._config.user_agent,
                    "Accept": "application/json",
                },
            )
        else:
            self._client = client
        self._client_owner = client is None

    async def list_species_page(self, limit: int, offset: int) -> list[CatalogRef]:
        payload = await self._get_json(
            "pokemon-species", params={"limit": limit, "offset": offset}
        )
        return _decode_results(payload, "pokemon-species")

    async def list_pokemon_page(self, limit: int, offset: int) -> list[CatalogRef]:
        payload = await self._get_json("pokemon", params={"limit": limit, "offset": offset})
        return _decode_results(payload, "pokemon")

    async def get_species_detail(self, species_id: int) -> SpeciesDetail:
        payload = await self._get_json(f"pokemon-species/{species_id}/")
        path = f"pokemon-species/{species_id}"
        color = _require(_require_mapping(payload, path).get("color"), dict, f"{path}.color")
        color_name = _require(color.get("name"), str, f"{path}.color.name")
        varieties = _require(payload.get("varieties"), list, f"{path}.varieties")
        variants: list[SpeciesVariant] = []
        for index, entry in enumerate(varieties):
            entry_path = f"{path}.varieties[{index}]"
            entry = _require(entry, dict, entry_path)
            is_default = _require(entry.get("is_default", False), bool, f"{entry_path}.is_default")
            pokemon = _decode_ref(entry.get("pokemon"), f"{entry_path}.pokemon")
            variants.append(SpeciesVariant(is_default=is_default, pokemon=pokemon))
        return SpeciesDetail(color=color_name, variants=variants)

    async def get_types(self, pokemon_id: int) -> list[str]:
        payload = await self._get_json(f"pokemon/{pokemon_id}")
        path = f"pokemon/{pokemon_id}"
        slots = _require(_require_mapping(payload, path).get("types"), list, f"{path}.types")
        names: list[str] = []
        for index, slot in enumerate(slots):
            slot_path = f"{path}.types[{index}]"
            slot = _require(slot, dict, slot_path)
            type_info = _require(slot.get("type"), dict, f"{slot_path}.type")
            names.append(_require(type_info.get("name"), str, f"{slot_path}.type.name"))
        return names

    async def get_by_type(self, type_name: str) -> list[CatalogRef]:
        normalized = type_name.strip().lower()
        payload = await self._get_json(f"type/{normalized}")
        path = f"type/{normalized}"
        slots = _require(_require_mapping(payload, path).get("pokemon"), list, f"{path}.pokemon")
        refs: list[CatalogRef] = []
        for index, slot in enumerate(slots):
            slot_path = f"{path}.pokemon[{index}]"
            slot = _require(slot, dict, slot_path)
            refs.append(_decode_ref(slot.get("pokemon"), f"{slot_path}.pokemon"))
        return refs

    async def aclose(self) -> None:  # noqa: D401 - inherited docstring
        if self._client_owner:
            await self._client.aclose()

    async def _get_json(self, path: str, *, params: dict[str, Any] | None = None) -> Any:
        url = f"{self._base_url}/{path}"
        LOGGER.debug("Catalog request url=%s params=%s", url, params)
        try:
            response = await self._client.get(url, params=params)
        except httpx.TimeoutException as exc:
            raise TransportError(f"Timed out requesting {url}: {exc}") from exc
        except httpx.RequestError as exc:
            raise TransportError(f"Request to {url} failed: {exc}") from exc

        status = response.status_code
        if not 200 <= status < 300:
            raise TransportError(
                f"Unexpected status {status} requesting {url}", status_code=status
            )
        try:
            return response.json()
        except ValueError as exc:
            raise DecodeError(f"Response from {url} is not valid JSON") from exc


def _require(value: Any, expected: type, path: str) -> Any:
    if not isinstance(value, expected):
        raise DecodeError(
            f"Expected {expected.__name__} at {path}, got {type(value).__name__}"
        )
    return value


def _require_mapping(payload: Any, path: str) -> dict[str, Any]:
    return _require(payload, dict, path)


def _decode_ref(value: Any, path: str) -> CatalogRef:
    entry = _require(value, dict, path)
    name = _require(entry.get("name"), str, f"{path}.name")
    url = _require(entry.get("url"), str, f"{path}.url")
    ref = CatalogRef(name=name, url=url)
    try:
        parse_reference_id(url)
    except MalformedReference as exc:
        LOGGER.warning(
            "Malformed reference %s at %s, id defaults to 0: %s",
            name,
            path,
            exc,
            extra={"stage": "MALFORMED_REFERENCE"},
        )
    return ref


def _decode_results(payload: Any, path: str) -> list[CatalogRef]:
    results = _require(_require_mapping(payload, path).get("results"), list, f"{path}.results")
    return [_decode_ref(entry, f"{path}.results[{index}]") for index, entry in enumerate(results)]


__all__ = ["DEFAULT_BASE_URL", "PokeApiCatalog", "PokeApiConfig"]
