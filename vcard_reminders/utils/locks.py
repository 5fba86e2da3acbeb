from __future__ import annotations

import threading


class CardLocks:
    """One lock per card id, created on first use."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[int, threading.Lock] = {}

    def for_card(self, card_id: int) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(card_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[card_id] = lock
            return lock
