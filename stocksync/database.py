"""Database engines for both sides of the sync.

Target: the commerce store (read-write, pooled, products table).
Source: the ERP database (SELECT-only, small pool).

Engines are built lazily so importing the package never opens a
connection. Per-query timeouts are pushed down into the driver via
connect_args since SQLAlchemy has no portable statement timeout.
"""

from datetime import timezone

from loguru import logger
from sqlalchemy import DateTime, TypeDecorator, create_engine, event, text
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import sessionmaker

from .config import Settings, settings


class UTCDateTime(TypeDecorator):
    """DateTime type that ensures UTC timezone on load."""
    impl = DateTime
    cache_ok = True

    def process_result_value(self, value, dialect):
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value


def _connect_args(url: str, timeout: int, login_timeout: int) -> dict:
    """Driver-specific connect/statement timeouts for the given URL."""
    backend = make_url(url).get_backend_name()
    if backend == "postgresql":
        return {
            "connect_timeout": login_timeout,
            "options": f"-c statement_timeout={timeout * 1000}",
        }
    if backend == "mysql":
        return {"connect_timeout": login_timeout, "read_timeout": timeout, "write_timeout": timeout}
    if backend == "mssql":
        return {"login_timeout": login_timeout, "timeout": timeout}
    if backend == "sqlite":
        return {"check_same_thread": False, "timeout": timeout}
    return {}


def make_target_engine(cfg: Settings | None = None) -> Engine:
    """Pooled engine for the commerce store.

    max_overflow is 0 so target_pool_size is a hard ceiling; the batch
    updater's concurrency is validated to stay below it.
    """
    cfg = cfg or settings
    kwargs = {
        "pool_pre_ping": True,
        "connect_args": _connect_args(
            cfg.database_url, cfg.target_statement_timeout_seconds, cfg.target_connect_timeout_seconds
        ),
    }
    if make_url(cfg.database_url).get_backend_name() != "sqlite":
        kwargs.update(
            pool_size=cfg.target_pool_size,
            max_overflow=0,
            pool_timeout=cfg.target_pool_timeout_seconds,
            pool_recycle=3600,
        )
    engine = create_engine(cfg.database_url, **kwargs)

    if engine.dialect.name == "postgresql":

        @event.listens_for(engine, "connect")
        def _set_timezone(dbapi_conn, connection_record):
            cursor = dbapi_conn.cursor()
            cursor.execute("SET timezone = 'UTC'")
            cursor.close()

    return engine


def make_source_engine(cfg: Settings | None = None) -> Engine:
    """Small pooled engine for the ERP source. Only ever used for SELECTs."""
    cfg = cfg or settings
    kwargs = {
        "pool_pre_ping": True,
        "connect_args": _connect_args(
            cfg.erp_database_url, cfg.erp_query_timeout_seconds, cfg.erp_login_timeout_seconds
        ),
    }
    if make_url(cfg.erp_database_url).get_backend_name() != "sqlite":
        kwargs.update(pool_size=2, max_overflow=0, pool_recycle=3600)
    return create_engine(cfg.erp_database_url, **kwargs)


_target_engine: Engine | None = None
_source_engine: Engine | None = None

SessionLocal = sessionmaker(autocommit=False, autoflush=False)


def get_target_engine() -> Engine:
    global _target_engine
    if _target_engine is None:
        _target_engine = make_target_engine()
        SessionLocal.configure(bind=_target_engine)
    return _target_engine


def get_source_engine() -> Engine:
    global _source_engine
    if _source_engine is None:
        _source_engine = make_source_engine()
    return _source_engine


def get_session_factory() -> sessionmaker:
    get_target_engine()
    return SessionLocal


def dispose_engines() -> None:
    """Close pooled connections on both sides (process shutdown)."""
    global _target_engine, _source_engine
    for engine in (_target_engine, _source_engine):
        if engine is not None:
            engine.dispose()
    _target_engine = None
    _source_engine = None


def check_connections(target: Engine | None = None, source: Engine | None = None) -> dict[str, bool]:
    """Ping both databases. Returns {"target": bool, "source": bool}."""
    results = {}
    for name, engine in (
        ("target", target or get_target_engine()),
        ("source", source or get_source_engine()),
    ):
        try:
            with engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            results[name] = True
        except Exception as e:
            logger.error("{} database unreachable: {}", name, e)
            results[name] = False
    return results
