from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from threading import Lock


@dataclass(frozen=True)
class PassResult:
    outcome: str  # invalid|discover_failed|publish_failed|reload_failed|reloaded
    started_at: str
    duration_ms: float
    trigger_id: str | None = None
    backends: int = 0
    detail: str = ""


class RuntimeState:
    """In-memory view of recent reconciliation activity, shared with the API."""

    def __init__(self) -> None:
        self.lock = Lock()
        self.last_pass: PassResult | None = None
        self.outcomes: Counter[str] = Counter()
        self.consumer_running = False

    def record(self, result: PassResult) -> None:
        with self.lock:
            self.last_pass = result
            self.outcomes[result.outcome] += 1

    def set_consumer_running(self, running: bool) -> None:
        with self.lock:
            self.consumer_running = running

    def snapshot(self) -> tuple[PassResult | None, dict[str, int], bool]:
        with self.lock:
            return self.last_pass, dict(self.outcomes), self.consumer_running
