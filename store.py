"""
Record storage collaborators.

The dashboard only depends on the narrow RecordStore contract: bulk read,
chunked bulk write, delete by upload, product group metadata. Two local
implementations are provided (in-memory and JSON files on disk).
"""

import asyncio
import json
import logging
import os
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Iterator, Protocol, Sequence

from metrics import ProductGroup
from normalizer import SalesRecord, parse_sale_date

logger = logging.getLogger(__name__)

# Records per write round trip
BATCH_SIZE = 500


class RecordStoreError(Exception):
    pass


class BatchWriteError(RecordStoreError):
    """A chunk of an add_batch call failed. Earlier chunks stay committed."""

    def __init__(self, file_id: str | None, chunk_index: int, cause: Exception):
        self.file_id = file_id
        self.chunk_index = chunk_index
        self.cause = cause
        super().__init__(f"Batch write failed for '{file_id or 'unknown'}' at chunk {chunk_index}: {cause}")


class RecordStore(Protocol):
    async def get_all(self) -> list[SalesRecord]: ...

    async def add_batch(self, records: Sequence[SalesRecord], file_id: str | None = None) -> None: ...

    async def delete_by_file(self, file_id: str) -> int: ...

    async def list_files(self) -> list[dict[str, Any]]: ...

    async def clear(self) -> None: ...

    async def count(self) -> int: ...

    async def get_product_groups(self) -> list[ProductGroup]: ...


def chunked(items: Sequence[Any], size: int) -> Iterator[Sequence[Any]]:
    for start in range(0, len(items), size):
        yield items[start:start + size]


def _date_sort_key(record: SalesRecord) -> tuple[int, str]:
    parsed = parse_sale_date(record.date)
    return (0, parsed.isoformat()) if parsed else (1, record.date)


class InMemoryRecordStore:
    """Process-local store. Rows are kept as (file_id, record) pairs."""

    def __init__(
        self,
        records: Sequence[SalesRecord] | None = None,
        product_groups: Sequence[ProductGroup] | None = None,
        batch_size: int = BATCH_SIZE,
    ):
        self.batch_size = batch_size
        self._rows: list[tuple[str | None, SalesRecord]] = [(None, r) for r in records or []]
        self._product_groups = list(product_groups or [])

    async def _write_chunk(self, chunk: Sequence[SalesRecord], file_id: str | None) -> None:
        self._rows.extend((file_id, r) for r in chunk)

    async def _read_rows(self) -> list[tuple[str | None, SalesRecord]]:
        return list(self._rows)

    async def _replace_rows(self, rows: list[tuple[str | None, SalesRecord]]) -> None:
        self._rows = rows

    async def get_all(self) -> list[SalesRecord]:
        rows = await self._read_rows()
        return sorted((r for _, r in rows), key=_date_sort_key)

    async def add_batch(self, records: Sequence[SalesRecord], file_id: str | None = None) -> None:
        for idx, chunk in enumerate(chunked(list(records), self.batch_size)):
            try:
                await self._write_chunk(chunk, file_id)
            except Exception as e:
                logger.error("Chunk %d of '%s' failed (%d records)", idx, file_id, len(chunk))
                raise BatchWriteError(file_id, idx, e) from e
        logger.info("Stored %d records for '%s'", len(records), file_id)

    async def delete_by_file(self, file_id: str) -> int:
        rows = await self._read_rows()
        kept = [(fid, r) for fid, r in rows if fid != file_id]
        await self._replace_rows(kept)
        removed = len(rows) - len(kept)
        logger.info("Deleted %d records of '%s'", removed, file_id)
        return removed

    async def list_files(self) -> list[dict[str, Any]]:
        counts: dict[str, int] = {}
        for fid, _ in await self._read_rows():
            if fid is not None:
                counts[fid] = counts.get(fid, 0) + 1
        return [{"file_id": fid, "record_count": n} for fid, n in counts.items()]

    async def clear(self) -> None:
        await self._replace_rows([])

    async def count(self) -> int:
        return len(await self._read_rows())

    async def get_product_groups(self) -> list[ProductGroup]:
        return list(self._product_groups)


class JsonFileRecordStore(InMemoryRecordStore):
    """Records and product groups kept as JSON documents under data_dir."""

    def __init__(self, data_dir: str | Path, batch_size: int = BATCH_SIZE):
        super().__init__(batch_size=batch_size)
        self.data_dir = Path(data_dir)
        self.records_path = self.data_dir / "records.json"
        self.groups_path = self.data_dir / "product_groups.json"
        self._cache: list[tuple[str | None, SalesRecord]] | None = None

    def _load(self) -> list[tuple[str | None, SalesRecord]]:
        if not self.records_path.is_file():
            return []
        try:
            with open(self.records_path, "r", encoding="utf-8") as f:
                raw = json.load(f)
        except (json.JSONDecodeError, IOError) as e:
            raise RecordStoreError(f"Cannot read {self.records_path}: {e}") from e
        try:
            return [(item.pop("file_id", None), SalesRecord.from_dict(item)) for item in raw]
        except (KeyError, TypeError, AttributeError) as e:
            raise RecordStoreError(f"Malformed record in {self.records_path}: {e!r}") from e

    def _dump(self, rows: list[tuple[str | None, SalesRecord]]) -> None:
        os.makedirs(self.data_dir, exist_ok=True)
        payload = [{**r.to_dict(), "file_id": fid} if fid is not None else r.to_dict() for fid, r in rows]
        tmp = self.records_path.with_suffix(".tmp")
        with open(tmp, "w", encoding="utf-8") as f:
            json.dump(payload, f, ensure_ascii=False)
        os.replace(tmp, self.records_path)

    async def _read_rows(self) -> list[tuple[str | None, SalesRecord]]:
        # records.json is read once per instance, later writes go through the cache
        if self._cache is None:
            self._cache = await asyncio.to_thread(self._load)
        return list(self._cache)

    async def _replace_rows(self, rows: list[tuple[str | None, SalesRecord]]) -> None:
        await asyncio.to_thread(self._dump, rows)
        self._cache = list(rows)

    async def _write_chunk(self, chunk: Sequence[SalesRecord], file_id: str | None) -> None:
        rows = await self._read_rows()
        rows.extend((file_id, r) for r in chunk)
        await self._replace_rows(rows)

    async def get_product_groups(self) -> list[ProductGroup]:
        if not self.groups_path.is_file():
            return []
        try:
            with open(self.groups_path, "r", encoding="utf-8") as f:
                raw = json.load(f)
        except (json.JSONDecodeError, IOError) as e:
            raise RecordStoreError(f"Cannot read {self.groups_path}: {e}") from e
        return [ProductGroup.from_dict(g) for g in raw]


async def load_product_groups(store: RecordStore) -> list[ProductGroup]:
    """Group metadata is optional; failures degrade to an empty list."""
    try:
        return await store.get_product_groups()
    except (RecordStoreError, OSError, KeyError) as e:
        logger.warning("Product groups unavailable: %s", e)
        return []


# -----------------------------------------------------------------------------
# Startup migration: legacy store -> primary store, once
# -----------------------------------------------------------------------------


class MigrationStatus(str, Enum):
    UNINITIALIZED = "uninitialized"
    MIGRATED = "migrated"


@dataclass
class MigrationFlag:
    """Persisted migration status (small JSON marker file)."""
    path: Path

    def load(self) -> MigrationStatus:
        if not Path(self.path).is_file():
            return MigrationStatus.UNINITIALIZED
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                return MigrationStatus(json.load(f).get("status", MigrationStatus.UNINITIALIZED.value))
        except (json.JSONDecodeError, IOError, ValueError, AttributeError):
            return MigrationStatus.UNINITIALIZED

    def save(self, status: MigrationStatus) -> None:
        os.makedirs(Path(self.path).parent, exist_ok=True)
        with open(self.path, "w", encoding="utf-8") as f:
            json.dump({"status": status.value}, f)


@dataclass
class MigrationResult:
    status: MigrationStatus
    migrated: bool = False
    record_count: int = 0


async def run_startup_migration(
    legacy: RecordStore,
    primary: RecordStore,
    flag: MigrationFlag,
) -> MigrationResult:
    """
    Uninitialized -> Migrated. Copies legacy records to the primary store and
    clears the legacy store. A no-op once the flag says migrated; on failure
    the flag is left unset so the next start retries.
    """
    if flag.load() is MigrationStatus.MIGRATED:
        return MigrationResult(status=MigrationStatus.MIGRATED)

    try:
        legacy_records = await legacy.get_all()
        if legacy_records:
            await primary.add_batch(legacy_records, file_id="legacy")
            await legacy.clear()
    except (RecordStoreError, OSError, KeyError, TypeError, ValueError) as e:
        logger.error("Legacy migration failed: %s", e)
        return MigrationResult(status=MigrationStatus.UNINITIALIZED)

    flag.save(MigrationStatus.MIGRATED)
    if legacy_records:
        logger.info("Migrated %d legacy records", len(legacy_records))
    return MigrationResult(
        status=MigrationStatus.MIGRATED,
        migrated=bool(legacy_records),
        record_count=len(legacy_records),
    )
