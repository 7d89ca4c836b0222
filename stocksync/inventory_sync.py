"""Inventory sync — ERP → commerce store reconciliation run.

Updates ONLY products that already exist in the commerce store (ERP code
matches the store sku). Never creates products, never deactivates
products just because the ERP stopped returning them.

One run:
  1. Load every non-empty sku from the commerce store (eligible keys)
  2. Empty set → zero-count run, nothing else touched
  3. Fetch active ERP rows for those keys only
  4. Map each row (clamping, discount rule, slug, active flag)
  5. Apply in batches with per-item failure isolation
  6. Log and return the SyncRun summary

Failures in 1 or 3 are fatal: logged at error and re-raised, no summary.
Nothing is kept between runs, so the next run heals whatever this one missed.
"""

import asyncio
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone

from loguru import logger

from .batch_updater import BatchUpdater
from .catalog import CatalogStore
from .erp_source import ErpSourceReader
from .mapping import map_to_update
from .records import TargetUpdatePayload


@dataclass
class SyncRun:
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    finished_at: datetime | None = None
    total_candidates: int = 0
    updated_count: int = 0
    not_found_count: int = 0
    error_count: int = 0

    @property
    def duration_seconds(self) -> float | None:
        if self.finished_at is None:
            return None
        return round((self.finished_at - self.started_at).total_seconds(), 3)

    @property
    def is_consistent(self) -> bool:
        return self.total_candidates == self.updated_count + self.not_found_count + self.error_count

    def as_dict(self) -> dict:
        return {
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "duration_seconds": self.duration_seconds,
            "total_candidates": self.total_candidates,
            "updated_count": self.updated_count,
            "not_found_count": self.not_found_count,
            "error_count": self.error_count,
        }

    def summary(self) -> str:
        return (
            f"{self.total_candidates} processed: {self.updated_count} updated, "
            f"{self.not_found_count} not found in store, {self.error_count} errors"
        )


class InventorySync:
    """Run coordinator. All collaborators are injected; defaults use settings."""

    def __init__(
        self,
        catalog: CatalogStore | None = None,
        source: ErpSourceReader | None = None,
        updater: BatchUpdater | None = None,
        log=None,
    ):
        self.log = log or logger.bind(job="inventory_sync")
        self.catalog = catalog or CatalogStore(log=self.log)
        self.source = source or ErpSourceReader(log=self.log)
        self.updater = updater or BatchUpdater(self.catalog, log=self.log)

    async def execute(self, timeout: float | None = None) -> SyncRun:
        """Run one full sync. timeout is a wall-clock budget in seconds.

        Raises on key-load / source-fetch failure (or budget exhausted before
        the batch starts). Per-item failures only show up in the counts.
        """
        run = SyncRun()
        deadline = time.monotonic() + timeout if timeout else None
        loop = asyncio.get_running_loop()
        self.log.info("Inventory sync started")

        try:
            keys = await self._before_deadline(
                loop.run_in_executor(None, self.catalog.load_eligible_keys), deadline
            )
            if not keys:
                run.finished_at = datetime.now(timezone.utc)
                self.log.info("No products with sku in commerce store — nothing to sync")
                return run

            records = await self._before_deadline(
                loop.run_in_executor(None, self.source.fetch_active_records_for_keys, keys),
                deadline,
            )
        except Exception as e:
            self.log.error("Inventory sync aborted before updates: {}: {}", type(e).__name__, e)
            raise

        run.total_candidates = len(records)
        payloads: list[tuple[str, TargetUpdatePayload]] = []
        mapping_errors = 0
        for record in records:
            try:
                payloads.append((record.key, map_to_update(record)))
            except Exception as e:
                mapping_errors += 1
                self.log.error("Invalid ERP data for product {}: {}", record.key, e)

        counts = await self.updater.apply_updates(payloads, deadline=deadline)

        run.updated_count = counts.updated
        run.not_found_count = counts.not_found
        run.error_count = counts.errors + mapping_errors
        run.finished_at = datetime.now(timezone.utc)

        self.log.info(
            "Inventory sync finished in {:.1f}s — {}", run.duration_seconds, run.summary()
        )
        return run

    @staticmethod
    async def _before_deadline(fut, deadline: float | None):
        if deadline is None:
            return await fut
        return await asyncio.wait_for(fut, timeout=max(0.0, deadline - time.monotonic()))

    async def run_manual_sync(self, timeout: float | None = None) -> bool:
        """On-demand run. Never raises; True only if execute() completed."""
        self.log.info("=== Manual inventory sync started ===")
        try:
            await self.execute(timeout=timeout)
        except Exception as e:
            self.log.error("=== Manual inventory sync failed: {} ===", e)
            return False
        self.log.info("=== Manual inventory sync completed ===")
        return True
