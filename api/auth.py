"""
Authentication and rate limiting for the status API.
"""

import time
from typing import Dict, List

import structlog
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

logger = structlog.get_logger(__name__)

# Security scheme
security = HTTPBearer()


class RateLimiter:
    """Sliding window request counter per API key, kept in memory."""

    def __init__(self, rate_limit: int = 100, window_seconds: int = 3600):
        self.rate_limit = rate_limit
        self.window_seconds = window_seconds
        self._requests: Dict[str, List[float]] = {}

    def _prune(self, api_key: str, now: float) -> List[float]:
        requests = [
            req_time for req_time in self._requests.get(api_key, [])
            if now - req_time < self.window_seconds
        ]
        self._requests[api_key] = requests
        return requests

    def check_rate_limit(self, api_key: str) -> bool:
        """
        Record a request and report whether it is within the limit.

        Args:
            api_key: API key to check

        Returns:
            True if within limit, False if exceeded
        """
        now = time.time()
        requests = self._prune(api_key, now)
        if len(requests) >= self.rate_limit:
            return False
        requests.append(now)
        return True

    def get_rate_limit_info(self, api_key: str) -> Dict:
        now = time.time()
        requests = self._prune(api_key, now)
        reset_time = (requests[0] if requests else now) + self.window_seconds
        return {
            "requests_used": len(requests),
            "requests_remaining": max(0, self.rate_limit - len(requests)),
            "rate_limit": self.rate_limit,
            "reset_time": reset_time
        }

    def reset(self) -> None:
        self._requests.clear()


def _build_rate_limiter() -> RateLimiter:
    from api.config import config
    return RateLimiter(rate_limit=config.default_rate_limit, window_seconds=config.rate_limit_window)


rate_limiter = _build_rate_limiter()


async def verify_api_key(credentials: HTTPAuthorizationCredentials = Depends(security)) -> str:
    """
    Verify API key from request using environment variables.

    Args:
        credentials: HTTP authorization credentials

    Returns:
        API key if valid

    Raises:
        HTTPException: If API key is invalid or rate limit exceeded
    """
    api_key = credentials.credentials

    from api.config import config

    if api_key not in config.get_api_keys():
        logger.warning("Invalid API key attempted", api_key=api_key[:10] + "...")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid API key",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if not rate_limiter.check_rate_limit(api_key):
        logger.warning("Rate limit exceeded", api_key=api_key[:10] + "...")
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="Rate limit exceeded",
            headers=get_rate_limit_headers(api_key),
        )

    return api_key


def get_rate_limit_headers(api_key: str) -> Dict[str, str]:
    """
    Get rate limit headers for response.

    Args:
        api_key: API key

    Returns:
        Dictionary with rate limit headers
    """
    rate_info = rate_limiter.get_rate_limit_info(api_key)
    return {
        "X-RateLimit-Limit": str(rate_info['rate_limit']),
        "X-RateLimit-Remaining": str(rate_info['requests_remaining']),
        "X-RateLimit-Reset": str(int(rate_info['reset_time']))
    }
