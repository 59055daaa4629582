"""
Single-flight claims backed by Redis.

A claim says "one worker is on this record right now". It never waits:
a second worker arriving for the same key is refused at once and skips
the work. Used to keep duplicate task deliveries from assembling the same
download archive twice.

Usage:

    from core.locks import SingleFlightLock

    with SingleFlightLock(f"download-job:{job_id}", ttl=900) as claim:
        for entry in entries:
            write(entry)
            claim.refresh()

Note:
    A claim only narrows the race. The state change it guards must still
    be a conditional database write, since a claim that outlives its TTL
    can be taken by another worker.
"""

from __future__ import annotations

import uuid as uuid_module
from typing import TYPE_CHECKING

from django_redis import get_redis_connection

from core.exceptions import LockAcquisitionError

if TYPE_CHECKING:
    from typing import Any

    from redis import Redis


KEY_PREFIX = "single-flight:"


class SingleFlightLock:
    """
    Non-blocking per-key claim with a TTL.

    The holder is identified by a random token, so only the worker that
    took the claim can refresh or drop it. A holder that dies simply lets
    the TTL lapse.

    Args:
        key: Work identifier (stored under ``single-flight:<key>``)
        ttl: Seconds the claim lives without a refresh
    """

    # Compare-and-delete; a lapsed claim retaken by another worker is left alone
    RELEASE_SCRIPT = """
    if redis.call("get", KEYS[1]) == ARGV[1] then
        return redis.call("del", KEYS[1])
    else
        return 0
    end
    """

    # Compare-and-expire
    REFRESH_SCRIPT = """
    if redis.call("get", KEYS[1]) == ARGV[1] then
        return redis.call("expire", KEYS[1], ARGV[2])
    else
        return 0
    end
    """

    def __init__(self, key: str, ttl: int) -> None:
        self.key = f"{KEY_PREFIX}{key}"
        self.ttl = ttl
        self._token: str | None = None
        self._redis: Redis | None = None

    def _get_redis(self) -> Redis:
        if self._redis is None:
            self._redis = get_redis_connection("default")
        return self._redis

    def acquire(self) -> None:
        """
        Take the claim.

        Raises:
            LockAcquisitionError: Another worker holds it
        """
        token = uuid_module.uuid4().hex
        if not self._get_redis().set(self.key, token, nx=True, ex=self.ttl):
            raise LockAcquisitionError(
                f"'{self.key}' is already claimed",
                details={"key": self.key},
            )
        self._token = token

    def refresh(self) -> bool:
        """
        Restart the TTL while work is still progressing.

        Returns False when the claim has lapsed or was never taken.
        """
        if self._token is None:
            return False
        return bool(
            self._get_redis().eval(
                self.REFRESH_SCRIPT, 1, self.key, self._token, self.ttl
            )
        )

    def release(self) -> bool:
        """Drop the claim. Safe to call when not held."""
        if self._token is None:
            return False
        released = self._get_redis().eval(self.RELEASE_SCRIPT, 1, self.key, self._token)
        self._token = None
        return bool(released)

    @property
    def is_held(self) -> bool:
        return self._token is not None

    def __enter__(self) -> SingleFlightLock:
        self.acquire()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> bool:
        self.release()
        return False


__all__ = ["SingleFlightLock"]
