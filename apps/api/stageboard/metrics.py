from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from threading import Lock
from time import monotonic


@dataclass
class CallSample:
  ts: datetime
  operation: str
  ok: bool
  latency_ms: float


class CallMetrics:
  """Rolling 24h window of request outcomes, keyed by operation name.

  The store service records one sample per HTTP request ("api"); the board client
  records one per store call ("createTask", "getBoard", ...).
  """

  def __init__(self) -> None:
    self._started_monotonic = monotonic()
    self._samples: deque[CallSample] = deque()
    self._lock = Lock()

  def uptime_seconds(self) -> int:
    return max(0, int(monotonic() - self._started_monotonic))

  def observe(self, operation: str, *, ok: bool, latency_ms: float) -> None:
    now = datetime.now(timezone.utc)
    with self._lock:
      self._samples.append(CallSample(ts=now, operation=operation, ok=ok, latency_ms=latency_ms))
      self._prune_locked(now)

  def _prune_locked(self, now: datetime) -> None:
    cutoff = now - timedelta(hours=24)
    while self._samples and self._samples[0].ts < cutoff:
      self._samples.popleft()

  def reset(self) -> None:
    with self._lock:
      self._samples.clear()

  def snapshot(self) -> dict:
    now = datetime.now(timezone.utc)
    with self._lock:
      self._prune_locked(now)
      samples = list(self._samples)

    by_op: dict[str, dict] = {}
    for s in samples:
      row = by_op.setdefault(s.operation, {"count": 0, "failures": 0, "latencies": []})
      row["count"] += 1
      if not s.ok:
        row["failures"] += 1
      row["latencies"].append(s.latency_ms)

    operations = {}
    for op, row in sorted(by_op.items()):
      lat = sorted(row["latencies"])
      idx = max(0, int(len(lat) * 0.95) - 1)
      operations[op] = {
        "count": row["count"],
        "failures": row["failures"],
        "p95LatencyMs": round(lat[idx], 2),
      }

    total = len(samples)
    failures = sum(1 for s in samples if not s.ok)
    return {
      "uptimeSeconds": self.uptime_seconds(),
      "count24h": total,
      "failures24h": failures,
      "failureRate24h": round((failures / total) * 100, 2) if total else 0.0,
      "operations": operations,
    }


api_metrics = CallMetrics()
store_call_metrics = CallMetrics()
