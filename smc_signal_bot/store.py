from __future__ import annotations

import abc
import threading
from typing import Dict, Iterable, List, Optional

from .models import (
    STATUS_ACTIVE,
    STATUS_EXPIRED,
    STATUS_INVALIDATED,
    STATUS_TRIGGERED,
    Signal,
    transition,
)

HOUR_MS = 3_600_000


def find_active_signal(signals: Iterable[Signal], symbol: str, direction: str) -> Optional[Signal]:
    """The ACTIVE signal for (symbol, direction), if one exists."""
    for s in signals:
        if s.symbol == symbol and s.direction == direction and s.status == STATUS_ACTIVE:
            return s
    return None


class SignalStore(abc.ABC):
    """Persistence contract for signals. At most one ACTIVE signal per (symbol, direction)."""

    @abc.abstractmethod
    def create_if_absent(self, sig: Signal) -> bool:
        raise NotImplementedError

    @abc.abstractmethod
    def get(self, signal_id: str) -> Optional[Signal]:
        raise NotImplementedError

    @abc.abstractmethod
    def find_active(self, symbol: str, direction: str) -> Optional[Signal]:
        raise NotImplementedError

    @abc.abstractmethod
    def update_status(self, signal_id: str, status: str, now_ms: int, reason: Optional[str] = None) -> Signal:
        raise NotImplementedError

    @abc.abstractmethod
    def expire_due(self, now_ms: int) -> List[Signal]:
        raise NotImplementedError

    @abc.abstractmethod
    def purge_older_than(self, now_ms: int, max_age_hours: float) -> int:
        raise NotImplementedError

    @abc.abstractmethod
    def all(self) -> List[Signal]:
        raise NotImplementedError

    def mark_triggered(self, signal_id: str, now_ms: int, reason: Optional[str] = None) -> Signal:
        return self.update_status(signal_id, STATUS_TRIGGERED, now_ms, reason)

    def mark_invalidated(self, signal_id: str, now_ms: int, reason: Optional[str] = None) -> Signal:
        return self.update_status(signal_id, STATUS_INVALIDATED, now_ms, reason)

    def active(self) -> List[Signal]:
        return [s for s in self.all() if s.status == STATUS_ACTIVE]

    def statistics(self) -> Dict[str, object]:
        sigs = self.all()
        by_status: Dict[str, int] = {}
        by_direction: Dict[str, int] = {}
        by_rating: Dict[str, int] = {}
        for s in sigs:
            by_status[s.status] = by_status.get(s.status, 0) + 1
            by_direction[s.direction] = by_direction.get(s.direction, 0) + 1
            by_rating[s.rating] = by_rating.get(s.rating, 0) + 1
        return {
            "total": len(sigs),
            "by_status": by_status,
            "by_direction": by_direction,
            "by_rating": by_rating,
        }


class InMemorySignalStore(SignalStore):
    """Thread-safe in-process store; the lock makes check-and-insert atomic."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._signals: Dict[str, Signal] = {}

    def create_if_absent(self, sig: Signal) -> bool:
        with self._lock:
            if find_active_signal(self._signals.values(), sig.symbol, sig.direction) is not None:
                return False
            if sig.id in self._signals:
                return False
            self._signals[sig.id] = sig
            return True

    def get(self, signal_id: str) -> Optional[Signal]:
        with self._lock:
            return self._signals.get(signal_id)

    def find_active(self, symbol: str, direction: str) -> Optional[Signal]:
        with self._lock:
            return find_active_signal(self._signals.values(), symbol, direction)

    def update_status(self, signal_id: str, status: str, now_ms: int, reason: Optional[str] = None) -> Signal:
        with self._lock:
            cur = self._signals.get(signal_id)
            if cur is None:
                raise KeyError(f"unknown signal id={signal_id}")
            nxt = transition(cur, status, now_ms, reason)
            self._signals[signal_id] = nxt
            return nxt

    def expire_due(self, now_ms: int) -> List[Signal]:
        expired: List[Signal] = []
        with self._lock:
            for sid, s in list(self._signals.items()):
                if s.status == STATUS_ACTIVE and now_ms >= s.expires_at_ms:
                    nxt = transition(s, STATUS_EXPIRED, now_ms, "TTL")
                    self._signals[sid] = nxt
                    expired.append(nxt)
        return expired

    def purge_older_than(self, now_ms: int, max_age_hours: float) -> int:
        """Drop non-active signals created more than ``max_age_hours`` ago."""
        cutoff = now_ms - max_age_hours * HOUR_MS
        with self._lock:
            stale = [sid for sid, s in self._signals.items() if s.status != STATUS_ACTIVE and s.created_at_ms < cutoff]
            for sid in stale:
                del self._signals[sid]
        return len(stale)

    def all(self) -> List[Signal]:
        with self._lock:
            return sorted(self._signals.values(), key=lambda s: s.created_at_ms)
