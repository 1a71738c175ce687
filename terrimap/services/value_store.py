"""
value_store.py — Batched persistence of per-territory criterion values.

One row per (territory_code, criterion_id) in the `criterion_values`
collection. Writes are idempotent upserts: replaying the same records
leaves the collection unchanged and reports no inserts or updates.
replace() additionally deletes a criterion's rows for territories the new
record set no longer covers, so one run's values and ranks stand alone.

Batches
───────
Records are written in batches of `batch_size`, one unordered bulk_write
per batch, applied sequentially. A batch that raises is recorded as an
UpsertBatchFailure and the next batch still runs, so one bad batch never
loses the whole run. Within a batch, MongoDB reports new rows as
`upserted_count` and changed rows as `modified_count` (identical $set
payloads are not counted as modifications).

Reads
─────
query_by_territory_codes() splits large code lists into `$in` chunks of
`chunk_size` so one request never exceeds the backend's payload limits.
"""

import logging
from collections.abc import Iterable, Sequence

from pymongo import UpdateOne
from pymongo.errors import PyMongoError

from terrimap.core.errors import UpsertBatchFailure
from terrimap.models.criteria import CriterionValue, UpsertResult

logger = logging.getLogger(__name__)


class CriterionValueStore:
    def __init__(self, collection, batch_size: int = 500, chunk_size: int = 500):
        if batch_size < 1 or chunk_size < 1:
            raise ValueError("batch_size and chunk_size must be positive")
        self.collection = collection
        self.batch_size = batch_size
        self.chunk_size = chunk_size

    # ── Writes ────────────────────────────────────────────────────────────────

    async def upsert(self, records: Sequence[CriterionValue]) -> UpsertResult:
        """Upsert *records* keyed on (territory_code, criterion_id)."""
        result = UpsertResult()
        records = list(records)
        batch_count = (len(records) + self.batch_size - 1) // self.batch_size

        for index in range(batch_count):
            batch = records[index * self.batch_size:(index + 1) * self.batch_size]
            ops = [UpdateOne(r.key(), {"$set": r.to_doc()}, upsert=True) for r in batch]
            try:
                outcome = await self.collection.bulk_write(ops, ordered=False)
            except PyMongoError as exc:
                logger.warning(
                    "Upsert batch %d/%d failed (%d records): %s",
                    index + 1, batch_count, len(batch), exc,
                )
                result.failed += len(batch)
                result.failures.append(UpsertBatchFailure(batch=index + 1, message=str(exc), records=batch))
                continue

            result.written += len(batch)
            result.inserted += outcome.upserted_count
            result.updated += outcome.modified_count
            logger.debug("Upsert batch %d/%d ok (%d records)", index + 1, batch_count, len(batch))

        logger.info(
            "Upserted %d records: %d inserted, %d updated, %d failed",
            result.written, result.inserted, result.updated, result.failed,
        )
        return result

    async def replace(self, criterion_id: str, records: Sequence[CriterionValue]) -> UpsertResult:
        """
        Make *records* the complete set of *criterion_id*'s values.

        Upserts, then deletes the criterion's rows for territories absent
        from *records*. Nothing is deleted when a batch failed.
        """
        records = list(records)
        if any(r.criterion_id != criterion_id for r in records):
            raise ValueError(f"replace() got records of another criterion than {criterion_id}")

        result = await self.upsert(records)
        if result.failed:
            logger.warning(
                "Not removing stale %s rows: %d records failed to write", criterion_id, result.failed,
            )
            return result

        codes = [r.territory_code for r in records]
        outcome = await self.collection.delete_many(
            {"criterion_id": criterion_id, "territory_code": {"$nin": codes}}
        )
        result.removed = outcome.deleted_count
        if result.removed:
            logger.info("Removed %d stale %s rows", result.removed, criterion_id)
        return result

    # ── Reads ─────────────────────────────────────────────────────────────────

    async def query_by_territory_codes(
        self,
        criterion_id: str,
        codes: Iterable[str],
    ) -> dict[str, CriterionValue]:
        """Values of *criterion_id* for *codes*; codes with no stored value are absent."""
        codes = list(dict.fromkeys(codes))
        values: dict[str, CriterionValue] = {}
        for start in range(0, len(codes), self.chunk_size):
            chunk = codes[start:start + self.chunk_size]
            cursor = self.collection.find(
                {"criterion_id": criterion_id, "territory_code": {"$in": chunk}},
                {"_id": 0},
            )
            async for doc in cursor:
                value = CriterionValue.from_doc(doc)
                values[value.territory_code] = value
        return values

    async def values_for_territory(self, territory_code: str) -> dict[str, CriterionValue]:
        """Every stored criterion value of one territory, keyed by criterion id."""
        cursor = self.collection.find({"territory_code": territory_code}, {"_id": 0})
        return {doc["criterion_id"]: CriterionValue.from_doc(doc) async for doc in cursor}

    async def coverage(self, criterion_id: str) -> int:
        """Number of territories holding a value for *criterion_id*."""
        return await self.collection.count_documents({"criterion_id": criterion_id})
