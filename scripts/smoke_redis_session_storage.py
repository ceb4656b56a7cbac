"""Quick smoke test for Redis-backed session storage.

Run with REDIS_URL set to a reachable Redis instance.
"""

from __future__ import annotations

import asyncio
from datetime import timedelta
import os
import sys
import uuid

from session_auth.config import AuthSettings
from session_auth.controller import SessionController
from session_auth.errors import NotFound
from session_auth.session_storage.redis_backend import RedisSessionStorage


class SmokeFailure(RuntimeError):
    pass


async def run_smoke(redis_url: str) -> None:
    storage = RedisSessionStorage(redis_url, key_prefix=f"smoke-{uuid.uuid4().hex[:8]}")
    controller = SessionController(storage, AuthSettings(default_valid_duration=timedelta(seconds=5)))
    await controller.initialize()

    print("[+] Connected to Redis")

    first = await controller.login("smoke-user")
    result = await controller.validate(first.token)
    if result.user != "smoke-user":
        raise SmokeFailure(f"Token resolved to {result.user!r} instead of smoke-user")
    print("[+] Session written and validated")

    second = await controller.login("smoke-user")
    await controller.logout(first.token)
    if await _resolves(controller, first.token):
        raise SmokeFailure("Logged out token still validates")
    if not await _resolves(controller, second.token):
        raise SmokeFailure("Logout removed the wrong session")
    print("[+] Logout removed only the targeted session")

    print("[+] Waiting for TTL to expire...")
    await asyncio.sleep(6)

    if await _resolves(controller, second.token):
        raise SmokeFailure("Session still present after TTL expiry")
    print("[+] Session expired as expected")

    await controller.login("smoke-user")
    await controller.login("smoke-user")
    removed = await controller.revoke_user("smoke-user")
    if removed != 2:
        raise SmokeFailure(f"Revocation removed {removed} sessions instead of 2")
    print("[+] Revocation removed every live session")

    await controller.close()
    print("[✓] Redis session storage smoke test passed")


async def _resolves(controller: SessionController, token: str) -> bool:
    try:
        await controller.validate(token)
    except NotFound:
        return False
    return True


def main() -> int:
    redis_url = os.environ.get("REDIS_URL")
    if not redis_url:
        print("ERROR: REDIS_URL environment variable not set", file=sys.stderr)
        return 2

    try:
        asyncio.run(run_smoke(redis_url))
    except SmokeFailure as exc:
        print(f"SMOKE FAILURE: {exc}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("Interrupted", file=sys.stderr)
        return 130
    return 0


if __name__ == "__main__":
    sys.exit(main())
