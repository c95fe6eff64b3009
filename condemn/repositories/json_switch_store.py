from __future__ import annotations

import json
import logging
from collections.abc import Iterable
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from condemn.domain.models import SwitchRecord
from condemn.logging_utils import log_event
from condemn.observability import events
from condemn.repositories.memory_switch_store import MemorySwitchStore
from condemn.repositories.switch_store import StoreError

SNAPSHOT_SCHEMA_VERSION = 1


class JsonSwitchStore(MemorySwitchStore):
    """Memory store that rewrites a JSON snapshot after every mutation."""

    def __init__(self, file_path: Path, logger: logging.Logger | None = None) -> None:
        super().__init__(logger=logger or logging.getLogger("condemn.store.json"))
        self.file_path = Path(file_path)
        self._load()

    def _load(self) -> None:
        self.file_path.parent.mkdir(parents=True, exist_ok=True)
        if not self.file_path.exists():
            return

        try:
            with self.file_path.open("r", encoding="utf-8") as file:
                raw = json.load(file)
        except json.JSONDecodeError as exc:
            backup_path = self._backup_corrupted_file()
            self.logger.error(
                log_event(
                    events.STORE_SNAPSHOT_INVALID_JSON,
                    file=str(self.file_path),
                    backup=str(backup_path) if backup_path is not None else None,
                    error=str(exc),
                )
            )
            self._persist()
            return
        except OSError as exc:
            self.logger.error(
                log_event(
                    events.STORE_SNAPSHOT_READ_FAILED,
                    file=str(self.file_path),
                    error=str(exc),
                )
            )
            return

        records = self._decode_snapshot(raw)
        self._load_records(records)
        self.logger.info(
            log_event(
                events.STORE_SNAPSHOT_LOADED,
                file=str(self.file_path),
                switches=len(records),
            )
        )

    def _decode_snapshot(self, raw: Any) -> list[SwitchRecord]:
        items = raw.get("switches") if isinstance(raw, dict) else None
        if not isinstance(items, list):
            return []

        records: list[SwitchRecord] = []
        for item in items:
            try:
                records.append(SwitchRecord.from_dict(item))
            except ValueError as exc:
                self.logger.warning(
                    log_event(
                        events.STORE_DECODE_FAILED,
                        file=str(self.file_path),
                        error=str(exc),
                    )
                )
        return records

    def _backup_corrupted_file(self) -> Path | None:
        timestamp = datetime.now(UTC).strftime("%Y%m%dT%H%M%SZ")
        backup_path = self.file_path.with_name(f"{self.file_path.name}.broken-{timestamp}")
        try:
            self.file_path.replace(backup_path)
            return backup_path
        except OSError as exc:
            self.logger.error(
                log_event(
                    events.STORE_SNAPSHOT_BACKUP_FAILED,
                    file=str(self.file_path),
                    error=str(exc),
                )
            )
            return None

    def _persist(self) -> None:
        temp_path = self.file_path.with_suffix(self.file_path.suffix + ".tmp")
        payload = {
            "version": SNAPSHOT_SCHEMA_VERSION,
            "switches": [record.to_dict() for record in self.all()],
        }
        try:
            self.file_path.parent.mkdir(parents=True, exist_ok=True)
            with temp_path.open("w", encoding="utf-8") as file:
                json.dump(payload, file, ensure_ascii=False, indent=2)
            temp_path.replace(self.file_path)
        except OSError as exc:
            raise StoreError(f"failed to write switch snapshot {self.file_path}: {exc}") from exc

    def _checkpoint(self) -> tuple[dict[str, SwitchRecord], list[tuple[float, str]]]:
        return dict(self._records), list(self._index)

    def _persist_or_rollback(
        self,
        checkpoint: tuple[dict[str, SwitchRecord], list[tuple[float, str]]],
    ) -> None:
        try:
            self._persist()
        except StoreError:
            self._records, self._index = checkpoint
            raise

    def upsert(self, record: SwitchRecord) -> None:
        with self._lock:
            checkpoint = self._checkpoint()
            super().upsert(record)
            self._persist_or_rollback(checkpoint)

    def claim(self, names: Iterable[str], *, cutoff: datetime) -> set[str]:
        with self._lock:
            checkpoint = self._checkpoint()
            claimed = super().claim(names, cutoff=cutoff)
            if claimed:
                self._persist_or_rollback(checkpoint)
            return claimed

    def take(self, name: str) -> SwitchRecord | None:
        with self._lock:
            checkpoint = self._checkpoint()
            record = super().take(name)
            if record is not None:
                self._persist_or_rollback(checkpoint)
            return record
