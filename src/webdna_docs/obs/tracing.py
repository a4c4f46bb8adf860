"""Request latency accounting for the protocol engine."""

from __future__ import annotations

import time
from collections import deque
from dataclasses import dataclass
from datetime import datetime, timezone


@dataclass(slots=True)
class RequestRecord:
    request_id: str
    kind: str
    tool: str | None
    outcome: str
    latency_ms: float
    timestamp_utc: str


class RequestStats:
    """Bounded in-memory history of settled protocol requests."""

    OUTCOMES = ("ok", "error", "timeout", "terminated", "unavailable")

    def __init__(self, max_records: int = 1000) -> None:
        self._records: deque[RequestRecord] = deque(maxlen=max_records)
        self._totals: dict[str, int] = {outcome: 0 for outcome in self.OUTCOMES}

    def record(
        self,
        *,
        request_id: str,
        kind: str,
        tool: str | None,
        outcome: str,
        latency_ms: float,
    ) -> RequestRecord:
        record = RequestRecord(
            request_id=request_id,
            kind=kind,
            tool=tool,
            outcome=outcome,
            latency_ms=latency_ms,
            timestamp_utc=datetime.now(timezone.utc).isoformat(),
        )
        self._records.append(record)
        self._totals[outcome] = self._totals.get(outcome, 0) + 1
        return record

    def list_recent(self, limit: int = 20) -> list[RequestRecord]:
        return list(self._records)[-limit:]

    def summary(self) -> dict[str, float | int]:
        """Aggregate latency over the retained window and outcome totals."""
        records = list(self._records)
        summary: dict[str, float | int] = {
            "total_requests": sum(self._totals.values()),
            **{f"{outcome}_count": count for outcome, count in self._totals.items()},
        }
        if not records:
            summary.update(avg_latency_ms=0.0, p95_latency_ms=0.0)
            return summary

        latencies = sorted(record.latency_ms for record in records)
        p95_index = max(0, int((len(latencies) * 0.95) - 1))
        summary.update(
            avg_latency_ms=sum(latencies) / len(latencies),
            p95_latency_ms=latencies[p95_index],
        )
        return summary


class Timer:
    """Simple context timer."""

    def __init__(self) -> None:
        self._start = 0.0
        self.elapsed_ms = 0.0

    def __enter__(self) -> "Timer":
        self._start = time.perf_counter()
        return self

    def __exit__(self, exc_type: object, exc: object, tb: object) -> None:
        self.elapsed_ms = (time.perf_counter() - self._start) * 1000.0
