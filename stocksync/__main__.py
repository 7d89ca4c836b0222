"""Command line entry point.

Usage:
    python -m stocksync run              # one-shot sync, exit 0 on success
    python -m stocksync serve [--port N] # HTTP surface + scheduler
    python -m stocksync check            # ping ERP and commerce databases
"""

import argparse
import asyncio
import sys

from loguru import logger


def _cmd_run(args) -> int:
    from .config import settings
    from .database import dispose_engines
    from .inventory_sync import InventorySync

    try:
        ok = asyncio.run(InventorySync().run_manual_sync(timeout=settings.run_timeout_seconds))
    finally:
        dispose_engines()
    return 0 if ok else 1


def _cmd_serve(args) -> int:
    import uvicorn

    uvicorn.run("stocksync.main:app", host=args.host, port=args.port, log_config=None)
    return 0


def _cmd_check(args) -> int:
    from .database import check_connections, dispose_engines

    try:
        results = check_connections()
    finally:
        dispose_engines()
    for name, ok in results.items():
        logger.info("{} database: {}", name, "ok" if ok else "UNREACHABLE")
    return 0 if all(results.values()) else 1


def main(argv: list[str] | None = None) -> int:
    from .logging_config import setup_logging

    parser = argparse.ArgumentParser(prog="stocksync", description="ERP → commerce inventory sync")
    parser.add_argument("--log-level", choices=["error", "warn", "info", "debug"], help="Override SYNC_LOG_LEVEL")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("run", help="Run one sync now and exit").set_defaults(func=_cmd_run)

    serve = sub.add_parser("serve", help="Start the HTTP surface with the scheduler")
    serve.add_argument("--host", default="0.0.0.0")
    serve.add_argument("--port", type=int, default=8000)
    serve.set_defaults(func=_cmd_serve)

    sub.add_parser("check", help="Check both database connections").set_defaults(func=_cmd_check)

    args = parser.parse_args(argv)
    setup_logging(level=args.log_level)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
