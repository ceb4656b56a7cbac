#!/usr/bin/env python3
"""
One-shot maintenance commands for session_auth storage.
"""

import argparse
import asyncio
from contextlib import AsyncExitStack
import logging
import os
import sys

from .config import BACKEND_CHOICES, load_settings
from .controller import SessionController
from .credentials import create_user_storage
from .errors import SessionAuthError
from .session_storage import create_session_storage, select_backend


def build_parser():
    parser = argparse.ArgumentParser(prog="python -m session_auth", description="Maintain session_auth storage")
    parser.add_argument("command", choices=["sweep", "init"], help="sweep: remove expired sessions; init: create tables")
    parser.add_argument("--database-url", help="SQLAlchemy async database URL (overrides DATABASE_URL)")
    parser.add_argument("--redis-url", help="Redis URL (overrides REDIS_URL)")
    parser.add_argument("--backend", choices=BACKEND_CHOICES, help="Storage backend (overrides SESSION_AUTH_BACKEND)")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    return parser


def main(argv=None):
    """Run a maintenance command and return its exit code."""
    args = build_parser().parse_args(argv)

    log_level = logging.DEBUG if args.debug else logging.INFO
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )
    logger = logging.getLogger("session_auth")

    env = dict(os.environ)
    if args.database_url:
        env["DATABASE_URL"] = args.database_url
    if args.redis_url:
        env["REDIS_URL"] = args.redis_url
    if args.backend:
        env["SESSION_AUTH_BACKEND"] = args.backend

    try:
        settings = load_settings(env)
        if args.command == "sweep":
            removed = asyncio.run(_sweep(settings))
            print(removed)
        else:
            asyncio.run(_init(settings))
            logger.info("Storage initialised")
    except (SessionAuthError, ValueError) as e:
        logger.error(f"{args.command} failed: {e}")
        return 1
    return 0


async def _sweep(settings):
    controller = SessionController(create_session_storage(settings), settings)
    try:
        await controller.initialize()
        return await controller.sweep()
    finally:
        await controller.close()


async def _init(settings):
    backend = select_backend(settings)
    async with AsyncExitStack() as stack:
        sessions = create_session_storage(settings, backend=backend)
        stack.push_async_callback(sessions.close)
        users = create_user_storage(settings, backend=backend)
        stack.push_async_callback(users.close)

        await sessions.initialize()
        await users.initialize()


if __name__ == "__main__":
    sys.exit(main())
