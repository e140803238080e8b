from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from threading import Lock
from typing import Dict


@dataclass
class LoyaltySnapshot:
    transitions: Dict[str, int]
    ledger_entries: Dict[str, int]
    ledger_points: Dict[str, int]
    sync_acks: Dict[str, int]

    def as_dict(self) -> Dict[str, object]:
        return {
            "transitions": dict(self.transitions),
            "ledgerEntries": dict(self.ledger_entries),
            "ledgerPoints": dict(self.ledger_points),
            "syncAcks": dict(self.sync_acks),
        }


class LoyaltyObservabilityStore:
    """Count approval transitions, ledger writes and journey sync acks."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._transitions: Dict[str, int] = defaultdict(int)
        self._ledger_entries: Dict[str, int] = defaultdict(int)
        self._ledger_points: Dict[str, int] = defaultdict(int)
        self._sync_acks: Dict[str, int] = defaultdict(int)

    def record_transition(self, record: str, from_status: str, to_status: str) -> None:
        with self._lock:
            self._transitions[f"{record}:{from_status}->{to_status}"] += 1

    def record_ledger_entry(self, source_type: str, points: int) -> None:
        with self._lock:
            self._ledger_entries[source_type] += 1
            self._ledger_points[source_type] += points

    def record_sync_ack(self, status: str, channel: str) -> None:
        with self._lock:
            self._sync_acks[status] += 1
            self._sync_acks[f"channel:{channel}"] += 1

    def snapshot(self) -> LoyaltySnapshot:
        with self._lock:
            return LoyaltySnapshot(
                transitions=dict(self._transitions),
                ledger_entries=dict(self._ledger_entries),
                ledger_points=dict(self._ledger_points),
                sync_acks=dict(self._sync_acks),
            )

    def reset(self) -> None:
        with self._lock:
            self._transitions.clear()
            self._ledger_entries.clear()
            self._ledger_points.clear()
            self._sync_acks.clear()


_STORE = LoyaltyObservabilityStore()


def get_loyalty_store() -> LoyaltyObservabilityStore:
    return _STORE


__all__ = ["get_loyalty_store", "LoyaltyObservabilityStore", "LoyaltySnapshot"]
