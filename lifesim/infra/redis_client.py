from __future__ import annotations

import os

import redis


def get_redis_url() -> str:
    return os.environ.get("REDIS_URL", "redis://localhost:6379/0")


def create_redis() -> redis.Redis:
    # Runs and prefetch entries are JSON strings; keep replies as str.
    return redis.Redis.from_url(get_redis_url(), decode_responses=True)
