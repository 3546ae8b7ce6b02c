import time
from typing import Dict, List

from fastapi import HTTPException, status


class SlidingWindowLimiter:
    """
    Simple sliding window rate limiter (process-level).
    key = seller_id / ip / route
    """

    def __init__(self, max_requests: int, window_seconds: int):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._hits: Dict[str, List[float]] = {}

    def hit(self, key: str):
        now = time.monotonic()
        window_start = now - self.window_seconds

        # keep only valid timestamps
        timestamps = [t for t in self._hits.get(key, []) if t > window_start]

        if len(timestamps) >= self.max_requests:
            raise HTTPException(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                detail={"error": "RATE_LIMITED", "message": "Too many requests. Please slow down."},
            )

        timestamps.append(now)
        self._hits[key] = timestamps

    def reset(self):
        self._hits.clear()
