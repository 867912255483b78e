from __future__ import annotations

import math
import time
from collections import defaultdict, deque
from dataclasses import dataclass
from typing import Deque


@dataclass(frozen=True)
class UpstreamCallSample:
    ts: float
    endpoint: str
    latency_ms: float
    success: bool


@dataclass(frozen=True)
class PassSample:
    ts: float
    domain: str
    outcome: str
    duration_ms: float


@dataclass(frozen=True)
class RequestSample:
    ts: float
    path: str
    status_code: int
    latency_ms: float


_upstream_samples: Deque[UpstreamCallSample] = deque(maxlen=5000)
_pass_samples: Deque[PassSample] = deque(maxlen=1000)
_request_samples: Deque[RequestSample] = deque(maxlen=5000)
_counters: dict[str, int] = defaultdict(int)


def record_request(*, path: str, status_code: int, latency_ms: float) -> None:
    _request_samples.append(
        RequestSample(ts=time.time(), path=path, status_code=status_code, latency_ms=latency_ms)
    )


def request_summary(window_s: int) -> dict[str, float | int]:
    # Request volume, 5xx count and p95 latency over the window.
    cutoff = time.time() - window_s
    samples = [sample for sample in _request_samples if sample.ts >= cutoff]
    latencies = sorted(sample.latency_ms for sample in samples)
    p95 = latencies[max(0, math.ceil(0.95 * len(latencies)) - 1)] if latencies else 0.0
    return {
        "count": len(samples),
        "errors": sum(1 for sample in samples if sample.status_code >= 500),
        "p95": p95,
    }


def record_upstream_call(*, endpoint: str, latency_ms: float, success: bool) -> None:
    _upstream_samples.append(
        UpstreamCallSample(ts=time.time(), endpoint=endpoint, latency_ms=latency_ms, success=success)
    )


def record_pass(*, domain: str, outcome: str, duration_ms: float) -> None:
    # One sample per pipeline pass; outcome is completed/aborted/skipped/failed.
    _pass_samples.append(PassSample(ts=time.time(), domain=domain, outcome=outcome, duration_ms=duration_ms))
    increment_counter(f"sync_pass_{outcome}_total.{domain}")


def increment_counter(name: str, value: int = 1) -> None:
    _counters[name] += value


def counters_snapshot() -> dict[str, int]:
    return dict(_counters)


def upstream_latency_by_endpoint(window_s: int) -> dict[str, dict[str, float | int]]:
    # p95/max latency and failure count per upstream endpoint in the window.
    cutoff = time.time() - window_s
    grouped: dict[str, list[UpstreamCallSample]] = defaultdict(list)
    for sample in _upstream_samples:
        if sample.ts >= cutoff:
            grouped[sample.endpoint].append(sample)
    result: dict[str, dict[str, float | int]] = {}
    for endpoint, samples in grouped.items():
        latencies = sorted(sample.latency_ms for sample in samples)
        p95_idx = max(0, math.ceil(0.95 * len(latencies)) - 1)
        result[endpoint] = {
            "p95": latencies[p95_idx],
            "max": latencies[-1],
            "failures": sum(1 for sample in samples if not sample.success),
        }
    return result


def last_pass_by_domain() -> dict[str, dict[str, float | str]]:
    result: dict[str, dict[str, float | str]] = {}
    for sample in _pass_samples:
        result[sample.domain] = {
            "ts": sample.ts,
            "outcome": sample.outcome,
            "duration_ms": sample.duration_ms,
        }
    return result


def reset() -> None:
    # Tests only.
    _upstream_samples.clear()
    _pass_samples.clear()
    _request_samples.clear()
    _counters.clear()
