"""Batch updater — applies mapped payloads to the commerce store.

Payloads are processed in chunks of up to batch_size skus. Inside a chunk, skus run
on a small thread pool gated by a semaphore so the number of in-flight
DB sessions never reaches the store's pool ceiling.

Every item is isolated: a failure is logged with its sku, counted, and
the batch moves on. Nothing raised by a single item escapes apply_updates.

Only transient DB errors (dropped connection, lock timeout, pool timeout)
are retried, with exponential backoff. Data errors are counted at once;
the next scheduled run re-derives everything anyway.
"""

import asyncio
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass

from loguru import logger
from sqlalchemy.exc import DBAPIError, OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError

from .records import ItemOutcome, TargetUpdatePayload


@dataclass
class UpdateCounts:
    total: int = 0
    updated: int = 0
    not_found: int = 0
    errors: int = 0

    def record(self, outcome: ItemOutcome) -> None:
        if outcome is ItemOutcome.UPDATED:
            self.updated += 1
        elif outcome is ItemOutcome.NOT_FOUND:
            self.not_found += 1
        else:
            self.errors += 1


def is_transient(exc: Exception) -> bool:
    """True for DB errors worth retrying within the same run."""
    if isinstance(exc, (OperationalError, PoolTimeoutError)):
        return True
    return isinstance(exc, DBAPIError) and bool(exc.connection_invalidated)


def _group_by_key(payloads: list[tuple[str, TargetUpdatePayload]]) -> list[list[tuple[str, TargetUpdatePayload]]]:
    """Group payloads by sku, keeping first-seen sku order and input order within a sku."""
    groups: dict[str, list[tuple[str, TargetUpdatePayload]]] = {}
    for key, payload in payloads:
        groups.setdefault(key, []).append((key, payload))
    return list(groups.values())


class BatchUpdater:
    def __init__(
        self,
        store,
        batch_size: int | None = None,
        concurrency: int | None = None,
        max_retries: int | None = None,
        retry_delay: float | None = None,
        log=None,
    ):
        from .config import settings

        self.store = store
        self.batch_size = batch_size or settings.sync_batch_size
        self.concurrency = concurrency or settings.sync_update_concurrency
        self.max_retries = settings.sync_max_retries if max_retries is None else max_retries
        self.retry_delay = settings.sync_retry_delay_seconds if retry_delay is None else retry_delay
        self.log = log or logger.bind(component="batch_updater")

    async def apply_updates(
        self,
        payloads: list[tuple[str, TargetUpdatePayload]],
        deadline: float | None = None,
    ) -> UpdateCounts:
        """Apply (sku, payload) pairs. deadline is a time.monotonic() value.

        Payloads sharing a sku (one per ERP branch row) run one after another
        in input order, so the last one always wins. Distinct skus run
        concurrently. Items not started by the deadline are counted as errors
        so the totals always add up.
        """
        counts = UpdateCounts(total=len(payloads))
        if not payloads:
            return counts

        groups = _group_by_key(payloads)
        sem = asyncio.Semaphore(self.concurrency)
        loop = asyncio.get_running_loop()

        with ThreadPoolExecutor(max_workers=self.concurrency, thread_name_prefix="stocksync-update") as pool:

            async def _one_key(group: list[tuple[str, TargetUpdatePayload]]) -> list[ItemOutcome]:
                outcomes = []
                async with sem:
                    for key, payload in group:
                        if deadline is not None and time.monotonic() >= deadline:
                            self.log.error("Skipped product {}: run budget exhausted", key)
                            outcomes.append(ItemOutcome.ERROR)
                            continue
                        outcomes.append(await self._apply_with_retry(loop, pool, key, payload, deadline))
                return outcomes

            done = 0
            for start in range(0, len(groups), self.batch_size):
                chunk = groups[start : start + self.batch_size]
                results = await asyncio.gather(*[_one_key(group) for group in chunk], return_exceptions=True)
                for group, outcomes in zip(chunk, results):
                    if isinstance(outcomes, BaseException):
                        self.log.error("Error processing product {}: {}", group[0][0], outcomes)
                        outcomes = [ItemOutcome.ERROR] * len(group)
                    for outcome in outcomes:
                        counts.record(outcome)
                    done += len(group)
                self.log.debug(
                    "Batch ending at item {} done ({} updated, {} not found, {} errors so far)",
                    done,
                    counts.updated,
                    counts.not_found,
                    counts.errors,
                )

        return counts

    async def _apply_with_retry(self, loop, pool, key, payload, deadline) -> ItemOutcome:
        attempt = 0
        while True:
            try:
                outcome = await loop.run_in_executor(pool, self.store.apply_payload, key, payload)
            except Exception as e:
                delay = self.retry_delay * (2**attempt)
                within_budget = deadline is None or time.monotonic() + delay < deadline
                if attempt < self.max_retries and is_transient(e) and within_budget:
                    attempt += 1
                    self.log.warning(
                        "Transient error on product {} (attempt {}/{}), retrying in {:.1f}s: {}",
                        key,
                        attempt,
                        self.max_retries,
                        delay,
                        e,
                    )
                    await asyncio.sleep(delay)
                    continue
                self.log.error("Error updating product {}: {}", key, e)
                return ItemOutcome.ERROR

            if outcome is ItemOutcome.NOT_FOUND:
                self.log.warning("Product {} not found in commerce store (not created)", key)
            else:
                self.log.debug("Product updated: {}", key)
            return outcome
