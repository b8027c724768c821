from __future__ import annotations

import uuid
from collections.abc import Iterator
from contextlib import contextmanager

from lifesim.errors import RunBusyError
from lifesim.kv import KeyValueStore


def _lock_key(run_id: str) -> str:
    return f"lifesim:lock:run:{run_id}"


@contextmanager
def run_lock(*, store: KeyValueStore, run_id: str, ttl_s: float = 60.0) -> Iterator[str]:
    """Per-run lock: one in-flight mutation per run.

    A second caller is rejected with RunBusyError instead of waiting. The TTL has
    to outlive a full generator round trip including retries. Release only deletes
    the key if it still holds our token, so an expired-and-retaken lock is left alone.
    """

    key = _lock_key(run_id)
    token = uuid.uuid4().hex
    if not store.set_if_absent(key, token, ttl_s=ttl_s):
        raise RunBusyError("Run is busy")
    try:
        yield token
    finally:
        if store.get(key) == token:
            store.delete(key)


def ensure_lock_held(*, store: KeyValueStore, run_id: str, token: str) -> None:
    """Raise RunBusyError unless `token` still owns the run's lock.

    Called right before a commit: a turn that outlived its lock TTL must not
    overwrite whatever the next holder saved.
    """

    if store.get(_lock_key(run_id)) != token:
        raise RunBusyError("Run lock expired before commit")
