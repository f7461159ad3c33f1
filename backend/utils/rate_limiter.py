from fastapi import Request, HTTPException, status
import logging
import time
from collections import defaultdict
from typing import Dict, List

logger = logging.getLogger(__name__)


class RateLimiter:
    """
    Sliding-window request limiter, used as a FastAPI route dependency.

    Each limiter instance keeps its own per-IP window, so endpoints that
    share an instance also share a budget.
    """

    def __init__(self, requests_limit: int, time_window: int, name: str = "default"):
        self.requests_limit = requests_limit
        self.time_window = time_window  # in seconds
        self.name = name
        self.ip_requests: Dict[str, List[float]] = defaultdict(list)
        self.cleanup_interval = 600  # Cleanup every 10 minutes
        self.last_cleanup = time.time()

    def _get_client_ip(self, request: Request) -> str:
        """
        Get the real client IP, respecting X-Forwarded-For if behind a proxy.
        Prioritize X-Forwarded-For > request.client.host
        """
        forwarded_for = request.headers.get("X-Forwarded-For")
        if forwarded_for:
            # X-Forwarded-For: <client>, <proxy1>, <proxy2>
            return forwarded_for.split(",")[0].strip()

        if request.client and request.client.host:
            return request.client.host
        return "127.0.0.1"

    async def __call__(self, request: Request):
        client_ip = self._get_client_ip(request)
        current_time = time.time()

        if current_time - self.last_cleanup > self.cleanup_interval:
            self._cleanup(current_time)
            self.last_cleanup = current_time

        # Drop requests that fell out of the window
        request_times = [t for t in self.ip_requests[client_ip] if current_time - t < self.time_window]
        self.ip_requests[client_ip] = request_times

        if len(request_times) >= self.requests_limit:
            logger.warning(
                f"Rate limit '{self.name}' exceeded for {client_ip} on {request.url.path} "
                f"({self.requests_limit} per {self.time_window}s)"
            )
            raise HTTPException(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                detail="Too many requests. Please try again later.",
                headers={"Retry-After": str(self.time_window)},
            )

        request_times.append(current_time)
        return True

    def _cleanup(self, current_time: float):
        """Remove IP entries that haven't made requests recently"""
        idle = [
            ip for ip, timestamps in self.ip_requests.items()
            if not timestamps or current_time - timestamps[-1] > self.time_window
        ]
        for ip in idle:
            del self.ip_requests[ip]


# In-memory and per-process; a multi-instance deployment needs a shared store.

# 5 requests per minute for OCR extraction (each call is a paid Vision request)
ocr_rate_limiter = RateLimiter(requests_limit=5, time_window=60, name="ocr")

# 30 requests per minute for payment orders and callbacks (gateway retries included)
payment_rate_limiter = RateLimiter(requests_limit=30, time_window=60, name="payments")
