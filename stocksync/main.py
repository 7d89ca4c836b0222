"""HTTP surface — health, manual sync trigger and sync status.

Thin layer over SyncScheduler. The scheduler starts with the app and
stops with it. Admin endpoints require X-Admin-Token when ADMIN_TOKEN is set.
"""

import hmac
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Header, HTTPException, Request
from loguru import logger

from .config import settings
from .exceptions import SyncAlreadyRunningError
from .scheduler import SyncScheduler


def require_admin(x_admin_token: str = Header(default="")) -> None:
    if settings.admin_token and not hmac.compare_digest(x_admin_token, settings.admin_token):
        raise HTTPException(403, "Admin only")


def get_sync_scheduler(request: Request) -> SyncScheduler:
    return request.app.state.sync_scheduler


def create_app(sync_scheduler: SyncScheduler | None = None, start_scheduler: bool = True) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        from .database import dispose_engines
        from .logging_config import setup_logging

        if start_scheduler:
            setup_logging()
        if app.state.sync_scheduler is None:
            app.state.sync_scheduler = SyncScheduler()
        if start_scheduler:
            app.state.sync_scheduler.start()
        yield
        app.state.sync_scheduler.shutdown()
        dispose_engines()

    app = FastAPI(title="stocksync", version="1.0.0", lifespan=lifespan)
    app.state.sync_scheduler = sync_scheduler

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    @app.post("/api/admin/inventory-sync", dependencies=[Depends(require_admin)])
    async def trigger_inventory_sync(sched: SyncScheduler = Depends(get_sync_scheduler)):
        """Manually trigger an inventory sync run and wait for its summary."""
        try:
            run = await sched.run_once(trigger="manual")
        except SyncAlreadyRunningError:
            raise HTTPException(409, "Inventory sync already running")
        except Exception as e:
            logger.error("Manual inventory sync failed: {}", e)
            return {"ok": False, "run": None, "error": str(e)}
        return {"ok": True, "run": run.as_dict()}

    @app.get("/api/admin/inventory-sync/status", dependencies=[Depends(require_admin)])
    async def inventory_sync_status(sched: SyncScheduler = Depends(get_sync_scheduler)):
        return sched.status()

    return app


app = create_app()
