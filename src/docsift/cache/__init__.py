"""Response memoization."""

from .response import CacheKey, ResponseCache

__all__ = ["CacheKey", "ResponseCache"]
