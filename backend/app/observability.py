from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from threading import Lock

from fastapi import Request

logger = logging.getLogger("homecare_hrm")


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
        self._mail_by_status: dict[str, int] = {}
        self._ai_calls: dict[tuple[str, str], int] = {}

    def record(self, *, route: str, status_code: int, latency_ms: float) -> None:
        with self._lock:
            self._requests_total += 1
            if status_code >= 500:
                self._requests_5xx += 1
            self._total_latency_ms += latency_ms
            key = (route, status_code)
            self._by_route_status[key] = self._by_route_status.get(key, 0) + 1

    def record_mail_delivery(self, status: str) -> None:
        with self._lock:
            self._mail_by_status[status] = self._mail_by_status.get(status, 0) + 1

    def record_ai_call(self, *, kind: str, outcome: str) -> None:
        with self._lock:
            key = (kind, outcome)
            self._ai_calls[key] = self._ai_calls.get(key, 0) + 1

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
            "# HELP homecare_hrm_requests_total Total HTTP requests",
            "# TYPE homecare_hrm_requests_total counter",
            f"homecare_hrm_requests_total {snap.requests_total}",
            "# HELP homecare_hrm_requests_5xx_total Total 5xx HTTP requests",
            "# TYPE homecare_hrm_requests_5xx_total counter",
            f"homecare_hrm_requests_5xx_total {snap.requests_5xx}",
            "# HELP homecare_hrm_request_avg_latency_ms Average request latency ms",
            "# TYPE homecare_hrm_request_avg_latency_ms gauge",
            f"homecare_hrm_request_avg_latency_ms {avg_latency:.2f}",
        ]
        with self._lock:
            for (route, status_code), count in sorted(self._by_route_status.items()):
                lines.append(
                    "homecare_hrm_route_requests_total"
                    f'{{route="{route}",status="{status_code}"}} {count}'
                )
            if self._mail_by_status:
                lines.append("# TYPE homecare_hrm_mail_deliveries_total counter")
            for mail_status, count in sorted(self._mail_by_status.items()):
                lines.append(
                    f'homecare_hrm_mail_deliveries_total{{status="{mail_status}"}} {count}'
                )
            if self._ai_calls:
                lines.append("# TYPE homecare_hrm_ai_calls_total counter")
            for (kind, outcome), count in sorted(self._ai_calls.items()):
                lines.append(
                    f'homecare_hrm_ai_calls_total{{kind="{kind}",outcome="{outcome}"}} {count}'
                )
        return "\n".join(lines) + "\n"


def configure_logging() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )


def _route_label(request: Request) -> str:
    # Path templates keep ids like /candidates/cgp_ab12 out of the label set.
    route = request.scope.get("route")
    template = getattr(route, "path", None)
    return template or request.url.path


async def observe_request(
    request: Request,
    call_next,
    *,
    metrics: MetricsRegistry,
):
    start = time.perf_counter()
    try:
        response = await call_next(request)
        latency_ms = (time.perf_counter() - start) * 1000.0
        route = _route_label(request)
        metrics.record(route=route, status_code=response.status_code, latency_ms=latency_ms)
        logger.info(
            "request_complete method=%s path=%s status=%s latency_ms=%.2f",
            request.method,
            request.url.path,
            response.status_code,
            latency_ms,
        )
        return response
    except Exception:
        latency_ms = (time.perf_counter() - start) * 1000.0
        metrics.record(route=_route_label(request), status_code=500, latency_ms=latency_ms)
        logger.exception(
            "request_failed method=%s path=%s latency_ms=%.2f",
            request.method,
            request.url.path,
            latency_ms,
        )
        raise
