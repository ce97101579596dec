"""Persistent per-target change detection."""

from .keys import fingerprint_file, target_key
from .store import DEFAULT_CACHE_DIR, ChangeCache

__all__ = ["DEFAULT_CACHE_DIR", "ChangeCache", "fingerprint_file", "target_key"]
