"""Duplicate detection package."""

from ledger.dedup.detector import DuplicatePolicy, find_duplicate, is_duplicate

__all__ = ["DuplicatePolicy", "find_duplicate", "is_duplicate"]
