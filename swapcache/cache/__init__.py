"""
Preload cache package: cache holder, preloader and refresh scheduler.
"""

from swapcache.cache.preload_cache import CacheStore, PreloadCache
from swapcache.cache.preloader import PreloadReport, Preloader
from swapcache.cache.refresh_scheduler import RefreshScheduler

__all__ = ["CacheStore", "PreloadCache", "PreloadReport", "Preloader", "RefreshScheduler"]
