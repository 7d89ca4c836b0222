"""
conftest.py — Shared test fixtures for stocksync

Provides two throwaway SQLite databases per test: a commerce store with
the products table, and an ERP source with MATERIAL / MATERIALSUC. Plus
factory fixtures to seed both and a Loguru sink for log assertions.

Business Rules:
- Tests never touch a real ERP or commerce database
- Each test function gets fresh database files (tmp_path)
- Most DB-backed sync tests run with concurrency=1; concurrent_inventory_sync
  switches the store file to WAL so several worker threads can write

Called by: all test files via pytest autodiscovery
Depends on: stocksync.models (Base, Product), stocksync.catalog, stocksync.erp_source
"""

import itertools

import pytest
from loguru import logger
from sqlalchemy import create_engine, text
from sqlalchemy.orm import sessionmaker

from stocksync.batch_updater import BatchUpdater
from stocksync.catalog import CatalogStore
from stocksync.erp_source import ErpSourceReader
from stocksync.inventory_sync import InventorySync
from stocksync.models import Base, Product

_ERP_DDL = (
    """
    CREATE TABLE MATERIAL (
        MATID INTEGER PRIMARY KEY,
        CODIGO VARCHAR(30) NOT NULL,
        DESCRIP VARCHAR(200),
        UNIDAD VARCHAR(10),
        GRUPMATID INTEGER
    )
    """,
    """
    CREATE TABLE MATERIALSUC (
        MATID INTEGER NOT NULL,
        SUCID INTEGER NOT NULL DEFAULT 1,
        EXISTENC NUMERIC(15, 2),
        PRECIO1 NUMERIC(15, 2),
        PRECIO2 NUMERIC(15, 2),
        INACTIVO CHAR(1)
    )
    """,
)


# ── Commerce store ───────────────────────────────────────────────────


@pytest.fixture()
def target_engine(tmp_path):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'commerce.db'}",
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def session_factory(target_engine):
    return sessionmaker(bind=target_engine, autoflush=False, expire_on_commit=False)


@pytest.fixture()
def db_session(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def add_product(db_session):
    """Factory: insert a product row directly (the sync itself never inserts)."""

    def _add(sku, **overrides):
        values = dict(
            sku=sku,
            name=f"Old {sku}",
            slug=f"old-{sku}".lower() if sku else "old",
            description="old description",
            price=1,
            discount_price=None,
            stock=1,
            active=True,
        )
        values.update(overrides)
        product = Product(**values)
        db_session.add(product)
        db_session.commit()
        return product

    return _add


@pytest.fixture()
def get_product(session_factory):
    """Read a product fresh from the database by sku."""

    def _get(sku):
        with session_factory() as db:
            return db.query(Product).filter(Product.sku == sku).one_or_none()

    return _get


@pytest.fixture()
def catalog(session_factory):
    return CatalogStore(session_factory=session_factory)


# ── ERP source ───────────────────────────────────────────────────────


@pytest.fixture()
def erp_engine(tmp_path):
    engine = create_engine(f"sqlite:///{tmp_path / 'erp.db'}", connect_args={"check_same_thread": False})
    with engine.begin() as conn:
        for ddl in _ERP_DDL:
            conn.execute(text(ddl))
    yield engine
    engine.dispose()


@pytest.fixture()
def add_material(erp_engine):
    """Factory: insert a MATERIAL row plus its per-branch stock/price row."""
    ids = itertools.count(1)

    def _add(code, descrip="Material", existenc=0, precio1=0, precio2=None, inactivo=None, sucid=1, unidad="UND", grupo=1):
        matid = next(ids)
        with erp_engine.begin() as conn:
            conn.execute(
                text("INSERT INTO MATERIAL (MATID, CODIGO, DESCRIP, UNIDAD, GRUPMATID) VALUES (:m, :c, :d, :u, :g)"),
                {"m": matid, "c": code, "d": descrip, "u": unidad, "g": grupo},
            )
            conn.execute(
                text(
                    "INSERT INTO MATERIALSUC (MATID, SUCID, EXISTENC, PRECIO1, PRECIO2, INACTIVO) "
                    "VALUES (:m, :s, :e, :p1, :p2, :i)"
                ),
                {"m": matid, "s": sucid, "e": existenc, "p1": precio1, "p2": precio2, "i": inactivo},
            )
        return matid

    return _add


@pytest.fixture()
def source(erp_engine):
    return ErpSourceReader(engine=erp_engine, active_marker="N", branch_id=None, chunk_size=500)


# ── Sync wiring ──────────────────────────────────────────────────────


@pytest.fixture()
def inventory_sync(catalog, source):
    updater = BatchUpdater(catalog, batch_size=100, concurrency=1, max_retries=0, retry_delay=0)
    return InventorySync(catalog=catalog, source=source, updater=updater)


@pytest.fixture()
def concurrent_inventory_sync(target_engine, catalog, source):
    """Same wiring, but updates run on four worker threads against a WAL store file."""
    with target_engine.connect() as conn:
        conn.exec_driver_sql("PRAGMA journal_mode=WAL")
    updater = BatchUpdater(catalog, batch_size=10, concurrency=4, max_retries=0, retry_delay=0)
    return InventorySync(catalog=catalog, source=source, updater=updater)


@pytest.fixture()
def log_messages():
    """Capture Loguru output as 'LEVEL|message' strings."""
    messages = []
    handler_id = logger.add(lambda m: messages.append(str(m).rstrip("\n")), format="{level}|{message}", level="DEBUG")
    yield messages
    logger.remove(handler_id)
