"""
IP ban list for repeated failed logins and 2FA attempts, kept in Redis.
"""

import os
from datetime import datetime, timedelta
import redis.asyncio as aioredis
from fastapi import Request
from typing import Callable, Awaitable
from common.clock import utcnow
from common.log_handler import log
from .utils import api_response, client_ip

redis_url = os.getenv("REDIS_URL", "redis://localhost:6379/0")
r = aioredis.from_url(redis_url, decode_responses=True)

MAX_FAILED_ATTEMPTS = int(os.getenv("MAX_FAILED_ATTEMPTS", 10))
BAN_DURATION = timedelta(hours=int(os.getenv("BAN_DURATION_HOURS", 48)))


async def is_ip_banned(ip: str):
    ban = await r.get(f"auth:banned_ip:{ip}")
    if ban:
        ban_until = datetime.fromisoformat(ban)
        now = utcnow()
        if now < ban_until:
            return True, (ban_until - now)
        await r.delete(f"auth:banned_ip:{ip}")
    return False, None


async def register_failed_ip(ip: str) -> bool:
    """
    Count a failed attempt for an IP and ban it once MAX_FAILED_ATTEMPTS is reached.

    Returns:
        True if this attempt got the IP banned
    """
    key = f"auth:failed_ip:{ip}"
    await r.rpush(key, utcnow().isoformat())
    await r.expire(key, int(BAN_DURATION.total_seconds()))
    attempts = await r.llen(key)
    log.debug(f"{ip} failed attempts: {attempts}")
    if attempts >= MAX_FAILED_ATTEMPTS:
        log.warning(f"Banned IP address {ip} after {attempts} failed attempts")
        ban_until = utcnow() + BAN_DURATION
        await r.set(f"auth:banned_ip:{ip}", ban_until.isoformat(),
                    ex=int(BAN_DURATION.total_seconds()))
        await r.delete(key)
        return True
    return False


def setup_ban_middleware(app):
    @app.middleware("http")
    async def ban_middleware(request: Request, call_next: Callable[[Request], Awaitable]):
        banned, retry = await is_ip_banned(client_ip(request))
        if banned:
            retry_seconds = int(retry.total_seconds())
            return api_response(message="Your IP is banned", data={"retry_after_seconds": retry_seconds}, success=False, status_code=403, headers={"Retry-After": str(retry_seconds)})
        return await call_next(request)


async def reset_ip_ban(ip: str):
    await r.delete(f"auth:banned_ip:{ip}")
    await r.delete(f"auth:failed_ip:{ip}")
