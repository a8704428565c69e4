"""Catalog client interface."""

from __future__ import annotations

import abc
from typing import Optional

from dext.models import CatalogRef, SpeciesDetail


class CatalogError(RuntimeError):
    """Raised when catalog data cannot be retrieved."""


class TransportError(CatalogError):
    """Connection failure, timeout or non-success HTTP status."""

    def __init__(self, message: str, *, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class DecodeError(CatalogError):
    """Response payload does not match the expected shape."""


class CatalogClient(abc.ABC):
    """Read-only operations against the remote catalog.

    Every call is a single attempt: failures surface immediately as
    :class:`TransportError` or :class:`DecodeError`.
    """

    @abc.abstractmethod
    async def list_species_page(self, limit: int, offset: int) -> list[CatalogRef]:
        """Return species references in server order."""

    @abc.abstractmethod
    async def list_pokemon_page(self, limit: int, offset: int) -> list[CatalogRef]:
        """Return direct pokemon references in server order."""

    @abc.abstractmethod
    async def get_species_detail(self, species_id: int) -> SpeciesDetail:
        """Return color and ordered variants of one species."""

    @abc.abstractmethod
    async def get_types(self, pokemon_id: int) -> list[str]:
        """Return type names of one pokemon in server order."""

    @abc.abstractmethod
    async def get_by_type(self, type_name: str) -> list[CatalogRef]:
        """Return every pokemon reference carrying ``type_name``."""

    async def aclose(self) -> None:
        """Optional hook for graceful shutdown."""

        return None
