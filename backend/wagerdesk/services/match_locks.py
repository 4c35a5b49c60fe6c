"""
backend/wagerdesk/services/match_locks.py

Purpose:
    Process-local keyed asyncio locks. `match_locks` linearises every
    read-modify-write of one match's rows; `checkout_locks` makes checkout
    provisioning single-flight per match. Two different keys never block each
    other, and entries are dropped as soon as nobody holds or awaits them.

    These locks serialise a single coordinating process only. Lock order when
    both are needed: checkout_locks -> match_locks.

Dependencies:
    - asyncio
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator


class KeyedLocks:
    def __init__(self, name: str) -> None:
        self._name = name
        self._locks: dict[str, asyncio.Lock] = {}
        self._refs: dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        self._refs[key] = self._refs.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._refs[key] -= 1
            if self._refs[key] == 0:
                del self._refs[key]
                del self._locks[key]

    def __repr__(self) -> str:
        return f"KeyedLocks(name={self._name!r}, active={len(self._locks)})"


match_locks = KeyedLocks("match")
checkout_locks = KeyedLocks("checkout")
