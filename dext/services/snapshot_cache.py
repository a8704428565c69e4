"""Best-effort JSON snapshot of the grouped record list."""

from __future__ import annotations

import json
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable

from dext.models import PokemonRecord
from dext.utils.paths import ensure_dir
from logger import get_logger

LOGGER = get_logger("cache.snapshot")

SNAPSHOT_VERSION = 1


class SnapshotCache:
    """Persist the last known enriched record list as one overwritten file.

    Nothing here raises: a failed save is logged, and any problem while
    loading yields an empty list.
    """

    def __init__(self, path: Path) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def save(self, records: Iterable[PokemonRecord]) -> bool:
        items = [record.to_payload() for record in records]
        payload = {
            "version": SNAPSHOT_VERSION,
            "saved_at": datetime.now(timezone.utc).isoformat(),
            "records": items,
        }
        tmp_path = self._path.with_name(f"{self._path.name}.tmp")
        try:
            ensure_dir(self._path.parent)
            tmp_path.write_text(json.dumps(payload, ensure_ascii=False), encoding="utf-8")
            os.replace(tmp_path, self._path)
        except Exception as exc:  # noqa: BLE001
            LOGGER.warning(
                "Failed to save snapshot to %s: %s",
                self._path,
                exc,
                extra={"stage": "CACHE_SAVE_FAILED"},
            )
            try:
                tmp_path.unlink(missing_ok=True)
            except OSError:
                pass
            return False
        LOGGER.debug("Snapshot saved: %s records to %s", len(items), self._path)
        return True

    def load(self) -> list[PokemonRecord]:
        if not self._path.exists():
            LOGGER.debug("No snapshot at %s", self._path)
            return []
        try:
            with self._path.open("r", encoding="utf-8") as fp:
                payload = json.load(fp)
        except Exception as exc:  # noqa: BLE001
            LOGGER.warning("Failed to read snapshot from %s: %s", self._path, exc)
            return []
        if not isinstance(payload, dict) or payload.get("version") != SNAPSHOT_VERSION:
            LOGGER.warning("Ignoring snapshot %s with unexpected format", self._path)
            return []
        raw_records = payload.get("records")
        if not isinstance(raw_records, list):
            LOGGER.warning("Ignoring snapshot %s without a record list", self._path)
            return []
        try:
            records = [PokemonRecord.from_payload(entry) for entry in raw_records]
        except ValueError as exc:
            LOGGER.warning("Ignoring corrupt snapshot %s: %s", self._path, exc)
            return []
        LOGGER.debug("Snapshot loaded: %s records from %s", len(records), self._path)
        return records

    def clear(self) -> None:
        try:
            self._path.unlink(missing_ok=True)
        except OSError as exc:
            LOGGER.warning("Failed to remove snapshot %s: %s", self._path, exc)


__all__ = ["SNAPSHOT_VERSION", "SnapshotCache"]
