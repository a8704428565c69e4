"""Application entry point."""

from __future__ import annotations

import asyncio
from typing import Iterable

from rich.console import Console
from rich.table import Table

from dext.config import Config, load_config
from dext.models import FilterConfig, PokemonRecord
from dext.services.aggregation import AggregationEngine, EngineState
from dext.services.catalog_http import PokeApiCatalog
from dext.services.search_index import SearchIndex
from dext.services.snapshot_cache import SnapshotCache
from logger import get_logger, info_domain, log_event, setup_logging

LOGGER = get_logger("dext.main")


def build_engine(config: Config, client: PokeApiCatalog) -> AggregationEngine:
    settings = config.engine_settings()
    return AggregationEngine(
        client,
        SnapshotCache(config.snapshot_path),
        SearchIndex(full_index_limit=settings.full_index_limit),
        settings,
    )


async def run_session(
    config: Config,
    *,
    pages: int = 1,
    filters: FilterConfig | None = None,
    search_text: str | None = None,
    use_snapshot: bool = True,
) -> EngineState:
    """Drive one engine session and return its final state."""

    client = PokeApiCatalog(config.api_config())
    engine = build_engine(config, client)
    index_task = asyncio.create_task(engine.load_search_index(), name="search-index")
    try:
        if filters is not None and not filters.is_default:
            await engine.apply_filters(filters)
            pages -= 1
        elif use_snapshot:
            restored = await engine.restore_snapshot()
            if restored:
                pages -= 1
        for _ in range(max(pages, 0)):
            if not engine.can_load_more:
                break
            await engine.load_more()
            if engine.error_message:
                LOGGER.warning("%s", engine.error_message, extra={"stage": "SESSION_PAGE_FAILED"})
                break
        await index_task
        if search_text:
            await engine.set_search_text(search_text)
        return engine.state()
    finally:
        if not index_task.done():
            index_task.cancel()
            try:
                await index_task
            except asyncio.CancelledError:
                pass
        await client.aclose()


def render_records(records: Iterable[PokemonRecord], *, title: str) -> None:
    table = Table(title=title)
    table.add_column("#", justify="right")
    table.add_column("Name")
    table.add_column("Types")
    table.add_column("Color")
    for record in records:
        types = ", ".join(record.types) if record.types is not None else "…"
        table.add_row(str(record.id), record.display_name, types, record.main_color or "…")
    Console().print(table)


async def main() -> None:
    config = load_config()
    setup_logging(config.log_level)
    info_domain("dext.start", "Dext started", stage="STARTED")
    state = await run_session(config)
    render_records(state.records, title="Pokédex")
    if state.error_message:
        LOGGER.error("%s", state.error_message)


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except Exception as exc:  # noqa: BLE001
        setup_logging()
        log_event(
            "CRITICAL",
            "dext.runtime",
            f"Unhandled exception: {exc}",
            stage="UNHANDLED_EXCEPTION",
            extra={"exception": repr(exc)},
        )
        raise
