"""
Rate Limit Module - Black Box Interface

Purpose: Cap requests per client address
Interface: SlidingWindowRateLimiter.check()/is_allowed()/get_remaining()
Hidden: Timestamp windows per client
"""

from .limiter import RateLimitExceededError, SlidingWindowRateLimiter

__all__ = ["RateLimitExceededError", "SlidingWindowRateLimiter"]
