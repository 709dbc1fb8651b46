from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from threading import Lock

from fastapi import Request

logger = logging.getLogger("talent_core")


@dataclass
class MetricsSnapshot:
    requests_total: int
    requests_5xx: int
    total_latency_ms: float


class MetricsRegistry:
    def __init__(self) -> None:
        self._lock = Lock()
        self._requests_total = 0
        self._requests_5xx = 0
        self._total_latency_ms = 0.0
        self._by_route_status: dict[tuple[str, int], int] = {}
        self._unlock_outcomes: dict[str, int] = {}
        self._transitions: dict[str, int] = {}
        self._side_effect_failures: dict[str, int] = {}

    def record(self, *, route: str, status_code: int, latency_ms: float) -> None:
        with self._lock:
            self._requests_total += 1
            if status_code >= 500:
                self._requests_5xx += 1
            self._total_latency_ms += latency_ms
            key = (route, status_code)
            self._by_route_status[key] = self._by_route_status.get(key, 0) + 1

    def record_unlock(self, outcome: str) -> None:
        with self._lock:
            self._unlock_outcomes[outcome] = self._unlock_outcomes.get(outcome, 0) + 1

    def record_transition(self, trigger_source: str) -> None:
        with self._lock:
            self._transitions[trigger_source] = self._transitions.get(trigger_source, 0) + 1

    def record_side_effect_failure(self, kind: str) -> None:
        with self._lock:
            self._side_effect_failures[kind] = self._side_effect_failures.get(kind, 0) + 1

    def side_effect_failures(self, kind: str) -> int:
        with self._lock:
            return self._side_effect_failures.get(kind, 0)

    def snapshot(self) -> MetricsSnapshot:
        with self._lock:
            return MetricsSnapshot(
                requests_total=self._requests_total,
                requests_5xx=self._requests_5xx,
                total_latency_ms=self._total_latency_ms,
            )

    def to_prometheus(self) -> str:
        snap = self.snapshot()
        avg_latency = (
            snap.total_latency_ms / snap.requests_total if snap.requests_total else 0.0
        )
        lines = [
            "# HELP talent_core_requests_total Total HTTP requests",
            "# TYPE talent_core_requests_total counter",
            f"talent_core_requests_total {snap.requests_total}",
            "# HELP talent_core_requests_5xx_total Total 5xx HTTP requests",
            "# TYPE talent_core_requests_5xx_total counter",
            f"talent_core_requests_5xx_total {snap.requests_5xx}",
            "# HELP talent_core_request_avg_latency_ms Average request latency ms",
            "# TYPE talent_core_request_avg_latency_ms gauge",
            f"talent_core_request_avg_latency_ms {avg_latency:.2f}",
            "# HELP talent_core_unlocks_total Unlock attempts by outcome",
            "# TYPE talent_core_unlocks_total counter",
            "# HELP talent_core_status_transitions_total Status transitions by trigger source",
            "# TYPE talent_core_status_transitions_total counter",
            "# HELP talent_core_side_effect_failures_total Failed best-effort side effects",
            "# TYPE talent_core_side_effect_failures_total counter",
        ]
        with self._lock:
            for (route, status_code), count in sorted(self._by_route_status.items()):
                lines.append(
                    'talent_core_route_requests_total'
                    f'{{route="{route}",status="{status_code}"}} {count}'
                )
            for outcome, count in sorted(self._unlock_outcomes.items()):
                lines.append(f'talent_core_unlocks_total{{outcome="{outcome}"}} {count}')
            for source, count in sorted(self._transitions.items()):
                lines.append(
                    f'talent_core_status_transitions_total{{trigger_source="{source}"}} {count}'
                )
            for kind, count in sorted(self._side_effect_failures.items()):
                lines.append(
                    f'talent_core_side_effect_failures_total{{kind="{kind}"}} {count}'
                )
        return "\n".join(lines) + "\n"


def configure_logging() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )


async def observe_request(
    request: Request,
    call_next,
    *,
    metrics: MetricsRegistry,
):
    start = time.perf_counter()
    path = request.url.path
    try:
        response = await call_next(request)
        latency_ms = (time.perf_counter() - start) * 1000.0
        metrics.record(route=path, status_code=response.status_code, latency_ms=latency_ms)
        logger.info(
            "request_complete method=%s path=%s status=%s latency_ms=%.2f",
            request.method,
            path,
            response.status_code,
            latency_ms,
        )
        return response
    except Exception:
        latency_ms = (time.perf_counter() - start) * 1000.0
        metrics.record(route=path, status_code=500, latency_ms=latency_ms)
        logger.exception(
            "request_failed method=%s path=%s latency_ms=%.2f",
            request.method,
            path,
            latency_ms,
        )
        raise
