"""ERP source reader — read-only pull of stock and prices for known skus.

Design rules:
  - SELECT-only. One parameterized query shape, no writes ever.
  - Only keys the commerce store already knows are requested, so the
    transferred volume is bounded by the catalog, not the ERP inventory.
  - ERP-side inactive materials are excluded at the query.
  - Connection is acquired per call and released right after.
  - Any query/connection failure is fatal for the run (SourceUnavailableError).
"""

from typing import Iterable

from loguru import logger
from sqlalchemy import bindparam, text
from sqlalchemy.engine import Engine

from .exceptions import SourceUnavailableError
from .records import SourceRecord

_Q_ACTIVE_MATERIALS = """
SELECT
    m.MATID, m.CODIGO, m.DESCRIP, m.UNIDAD, m.GRUPMATID,
    b.EXISTENC, b.PRECIO1, b.PRECIO2, b.INACTIVO
FROM MATERIAL m
    LEFT JOIN MATERIALSUC b ON m.MATID = b.MATID
WHERE (b.INACTIVO = :active_marker OR b.INACTIVO IS NULL)
  AND m.CODIGO IN :keys
  {branch_filter}
ORDER BY m.CODIGO, b.SUCID
"""


def _chunks(keys: list[str], size: int) -> Iterable[list[str]]:
    for i in range(0, len(keys), size):
        yield keys[i : i + size]


class ErpSourceReader:
    """Reads MATERIAL/MATERIALSUC rows for a caller-supplied key set."""

    def __init__(
        self,
        engine: Engine | None = None,
        active_marker: str | None = None,
        branch_id: int | None = None,
        chunk_size: int | None = None,
        log=None,
    ):
        from .config import settings

        self._engine = engine
        self.active_marker = active_marker if active_marker is not None else settings.erp_active_marker
        self.branch_id = branch_id if branch_id is not None else settings.erp_branch_id
        self.chunk_size = chunk_size or settings.erp_key_chunk_size
        self.log = log or logger.bind(component="erp_source")

    @property
    def engine(self) -> Engine:
        if self._engine is None:
            from .database import get_source_engine

            self._engine = get_source_engine()
        return self._engine

    def _query(self):
        branch_filter = "AND b.SUCID = :branch_id" if self.branch_id is not None else ""
        return text(_Q_ACTIVE_MATERIALS.format(branch_filter=branch_filter)).bindparams(
            bindparam("keys", expanding=True)
        )

    def fetch_active_records_for_keys(self, keys: set[str]) -> list[SourceRecord]:
        """Return active ERP records whose code is in keys, ordered by key.

        Empty keys → [] without touching the database.
        """
        if not keys:
            self.log.debug("No keys requested — skipping ERP query")
            return []

        ordered = sorted(keys)
        stmt = self._query()
        records: list[SourceRecord] = []
        try:
            with self.engine.connect() as conn:
                for chunk in _chunks(ordered, self.chunk_size):
                    params = {"keys": chunk, "active_marker": self.active_marker}
                    if self.branch_id is not None:
                        params["branch_id"] = self.branch_id
                    rows = conn.execute(stmt, params).mappings().all()
                    records.extend(
                        SourceRecord.from_row(row, active_marker=self.active_marker) for row in rows
                    )
        except Exception as e:
            self.log.error("ERP source query failed: {}", e)
            raise SourceUnavailableError(f"ERP source query failed: {e}") from e

        # Chunks are each ordered; sort once more so the merged list is too
        records.sort(key=lambda r: r.key)
        self.log.info(
            "Fetched {} ERP row(s) for {} known sku(s)", len(records), len(ordered)
        )
        return records
