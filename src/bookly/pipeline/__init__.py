"""Bookly extraction pipeline: quota, cache, retry, fallback and orchestration."""

from bookly.pipeline.cache import ExtractionCache, create_hash
from bookly.pipeline.fallback import fallback_extract
from bookly.pipeline.quota import QuotaTracker
from bookly.pipeline.retry import RetryConfig, RetryOutcome, extract_with_retry
from bookly.pipeline.smart_extract import SmartExtractor
from bookly.pipeline.storage import FileStore, KeyValueStore, MemoryStore

__all__ = [
    "ExtractionCache",
    "FileStore",
    "KeyValueStore",
    "MemoryStore",
    "QuotaTracker",
    "RetryConfig",
    "RetryOutcome",
    "SmartExtractor",
    "create_hash",
    "extract_with_retry",
    "fallback_extract",
]
