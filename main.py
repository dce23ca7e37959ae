#!/usr/bin/env python3
"""
User service -- accounts, login sessions and permission bits.

Usage:
  python main.py                          # same as `serve`
  python main.py serve
  python main.py serve --log-level DEBUG
  python main.py create-user alice --password s3cret
  python main.py create-user root --password s3cret --admin

Environment variables (see core/config.py for the full list):
  DATABASE_URL      SQLAlchemy URL; empty keeps everything in memory
  PUBLIC_PORT       public listener port (default 8080)
  PRIVATE_PORT      internal listener port (default 8081)
  ADMIN_LOGIN       bootstrap admin login, created on startup if missing
  ADMIN_PASSWORD    bootstrap admin password
"""

import argparse
import asyncio
import getpass
import logging
import sys

import uvicorn

from api.main import build_service, configure_logging, create_private_app, create_public_app
from auth.errors import UserServiceError
from auth.models import User
from auth.permissions import ALL_PERMISSIONS
from auth.service import SessionService
from core.config import Settings, get_settings

logger = logging.getLogger("userservice.main")


async def _serve(service: SessionService, settings: Settings) -> None:
    """Run the public and private listeners side by side until interrupted.

    Each uvicorn.Server installs its own signal handlers; Ctrl+C sets
    should_exit on both and gather() returns once both have shut down.
    """
    servers = [
        uvicorn.Server(
            uvicorn.Config(
                create_public_app(service),
                host=settings.host,
                port=settings.public_port,
                log_level=settings.log_level.lower(),
            )
        ),
        uvicorn.Server(
            uvicorn.Config(
                create_private_app(service),
                host=settings.host,
                port=settings.private_port,
                log_level=settings.log_level.lower(),
            )
        ),
    ]
    logger.info("Public listener on %s:%d", settings.host, settings.public_port)
    logger.info("Private listener on %s:%d", settings.host, settings.private_port)
    try:
        await asyncio.gather(*(s.serve() for s in servers))
    finally:
        service.store.close()
        logger.info("User service shutdown complete")


def _create_user(service: SessionService, login: str, password: str | None, admin: bool) -> int:
    password = password or getpass.getpass(f"Password for {login}: ")
    if not password:
        print("  [!] Empty password.", file=sys.stderr)
        return 1
    permissions = ALL_PERMISSIONS if admin else 0
    try:
        user_id = service.new_user(User(login=login, password=password, permissions=permissions))
    except UserServiceError as exc:
        print(f"  [!] {exc.message}", file=sys.stderr)
        return 1
    finally:
        service.store.close()
    print(f"  Created user {login!r} with id {user_id}")
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="User service: accounts, sessions, permissions.")
    parser.add_argument("--log-level", default=None, help="Override LOG_LEVEL (DEBUG, INFO, WARNING...)")
    sub = parser.add_subparsers(dest="command")

    sub.add_parser("serve", help="Run the public and private listeners (default)")

    create = sub.add_parser("create-user", help="Create a user in the configured store")
    create.add_argument("login")
    create.add_argument("--password", default=None, help="Prompted for when omitted")
    create.add_argument("--admin", action="store_true", help="Grant every permission bit")

    args = parser.parse_args(argv)
    settings = get_settings()
    configure_logging(args.log_level or settings.log_level)

    service = build_service(settings)

    if args.command == "create-user":
        if not settings.database_url:
            print("  [!] DATABASE_URL is empty -- the user will vanish when this command exits.", file=sys.stderr)
        return _create_user(service, args.login, args.password, args.admin)

    asyncio.run(_serve(service, settings))
    return 0


if __name__ == "__main__":
    sys.exit(main())
