"""
Cache Services

Operations layer implementing the taggable cache contract.
"""

from .tagged_backend import TaggedExpiringCacheBackend

__all__ = ["TaggedExpiringCacheBackend"]
