"""
Command line entry point: run the API server or manage secrets in the OS keystore.

    docvault-server serve --port 8000
    docvault-server secret set JWT_SECRET
    docvault-server secret delete JWT_SECRET
"""

from __future__ import annotations

import argparse
import getpass
import logging
import os
from typing import List, Optional

import uvicorn

from .logging_config import configure_logging
from .security.keystore import delete_secret, save_secret

SECRET_NAMES = ("ENCRYPTION_SECRET", "JWT_SECRET", "ENCRYPTION_KEY")

logger = logging.getLogger(__name__)


def _build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="DocVault document vault server")
    sub = parser.add_subparsers(dest="command")

    serve = sub.add_parser("serve", help="Run the HTTP API (default)")
    serve.add_argument("--host", default="0.0.0.0")
    serve.add_argument("--port", type=int, default=8000)
    serve.add_argument("--db", dest="db_path", default=None, help="Overrides DOCVAULT_DB_PATH")
    serve.add_argument("--storage-root", default=None, help="Overrides DOCVAULT_STORAGE_ROOT")
    serve.add_argument("--log-level", default=None, help="Overrides LOG_LEVEL")

    secret = sub.add_parser("secret", help="Store or remove a secret in the OS keystore")
    secret.add_argument("action", choices=("set", "delete"))
    secret.add_argument("name", choices=SECRET_NAMES)
    return parser


def serve(host: str, port: int, log_level: str) -> None:
    from .api.app import create_app

    app = create_app()
    logger.info("Starting DocVault API on %s:%d", host, port)
    uvicorn.run(app, host=host, port=port, log_level=log_level)


def main(argv: Optional[List[str]] = None) -> int:
    parser = _build_arg_parser()
    args = parser.parse_args(argv)

    if args.command == "secret":
        configure_logging("info")
        if args.action == "set":
            value = getpass.getpass(f"{args.name}: ")
            if not value:
                parser.error("an empty secret was entered")
            try:
                save_secret(args.name, value)
            except RuntimeError as e:
                logger.error("%s", e)
                return 1
            logger.info("Stored %s in the OS keystore", args.name)
        else:
            delete_secret(args.name)
            logger.info("Removed %s from the OS keystore", args.name)
        return 0

    host = getattr(args, "host", "0.0.0.0")
    port = getattr(args, "port", 8000)
    if getattr(args, "db_path", None):
        os.environ["DOCVAULT_DB_PATH"] = args.db_path
    if getattr(args, "storage_root", None):
        os.environ["DOCVAULT_STORAGE_ROOT"] = args.storage_root
    log_level = (getattr(args, "log_level", None) or os.getenv("LOG_LEVEL") or "info").lower()
    configure_logging(log_level)
    serve(host, port, log_level)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
