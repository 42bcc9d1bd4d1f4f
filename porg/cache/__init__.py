"""Layered caching."""
from .layered import Clock, LayeredCache, utc_now

__all__ = ["Clock", "LayeredCache", "utc_now"]
