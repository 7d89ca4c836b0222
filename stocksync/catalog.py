"""Commerce store access for the sync — key set load and per-sku updates.

The engine never inserts or deletes products; it only updates rows whose
sku already exists. Each apply_payload() call is one session, one commit,
so a failing sku never rolls back any other.
"""

from loguru import logger
from sqlalchemy import func, select, update
from sqlalchemy.orm import Session, sessionmaker

from .exceptions import TargetUnavailableError
from .models import Product
from .records import ItemOutcome, TargetUpdatePayload


class CatalogStore:
    def __init__(self, session_factory: sessionmaker | None = None, log=None):
        self._session_factory = session_factory
        self.log = log or logger.bind(component="catalog")

    @property
    def session_factory(self) -> sessionmaker:
        if self._session_factory is None:
            from .database import get_session_factory

            self._session_factory = get_session_factory()
        return self._session_factory

    def load_eligible_keys(self) -> set[str]:
        """All non-empty skus in the store. Empty set means nothing to do."""
        stmt = (
            select(Product.sku)
            .where(Product.sku.isnot(None), Product.sku != "")
            .distinct()
        )
        try:
            with self.session_factory() as db:
                keys = set(db.execute(stmt).scalars().all())
        except Exception as e:
            self.log.error("Could not load skus from commerce store: {}", e)
            raise TargetUnavailableError(f"Could not load skus: {e}") from e
        self.log.info("Found {} product(s) with sku in commerce store", len(keys))
        return keys

    @staticmethod
    def sku_exists(db: Session, key: str) -> bool:
        count = db.execute(select(func.count()).select_from(Product).where(Product.sku == key)).scalar()
        return bool(count)

    @staticmethod
    def update_product(db: Session, key: str, payload: TargetUpdatePayload) -> None:
        db.execute(
            update(Product)
            .where(Product.sku == key)
            .values(**payload.as_values(), updated_at=func.now())
        )

    def apply_payload(self, key: str, payload: TargetUpdatePayload) -> ItemOutcome:
        """Update one sku atomically. Raises on DB errors; callers count them."""
        with self.session_factory() as db:
            if not self.sku_exists(db, key):
                return ItemOutcome.NOT_FOUND
            try:
                self.update_product(db, key, payload)
                db.commit()
            except Exception:
                db.rollback()
                raise
        return ItemOutcome.UPDATED
