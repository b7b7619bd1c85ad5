import logging
import time
from collections import deque
from typing import Deque, Tuple

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger("pulsecity.api")

WINDOW_SECONDS = 3600


class RequestMetrics:
    """Sliding one-hour window of handled requests."""

    def __init__(self, window: float = WINDOW_SECONDS):
        self.window = window
        self._requests: Deque[Tuple[float, str, str, int]] = deque()

    def record(self, method: str, path: str, status_code: int):
        self._requests.append((time.perf_counter(), method, path, status_code))
        self._cleanup()

    def _cleanup(self):
        cutoff_time = time.perf_counter() - self.window
        while self._requests and self._requests[0][0] < cutoff_time:
            self._requests.popleft()

    def requests_last_hour(self) -> int:
        self._cleanup()
        return len(self._requests)

    def errors_last_hour(self) -> int:
        self._cleanup()
        return sum(1 for _, _, _, status_code in self._requests if status_code >= 500)

    def snapshot(self) -> dict:
        return {
            "requests_last_hour": self.requests_last_hour(),
            "server_errors_last_hour": self.errors_last_hour(),
        }


metrics = RequestMetrics()


class MetricsMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        start_time = time.perf_counter()

        try:
            response = await call_next(request)
        except Exception:
            # Unhandled errors become a 500 in the outer error handler; count them here.
            metrics.record(request.method, request.url.path, 500)
            logger.error(
                f"{request.method} {request.url.path} | Status: 500 | "
                f"Duration: {time.perf_counter() - start_time:.4f}s"
            )
            raise

        process_time = time.perf_counter() - start_time
        metrics.record(request.method, request.url.path, response.status_code)

        logger.info(
            f"{request.method} {request.url.path} | "
            f"Status: {response.status_code} | "
            f"Duration: {process_time:.4f}s | "
            f"Requests last hour: {metrics.requests_last_hour()}"
        )

        return response
