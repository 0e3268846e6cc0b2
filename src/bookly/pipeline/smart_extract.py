"""
Degrade-gracefully extraction pipeline.

Priority order: quota check -> cache -> remote model (with retry) -> regex
fallback -> manual entry. Each step short-circuits; steps run strictly in
sequence, never concurrently.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Protocol

from bookly.models import (
    ExtractionOptions,
    ExtractionResult,
    ExtractionSource,
    InputFragment,
    InventoryItem,
    SmartExtractionResult,
)
from bookly.pipeline.cache import ExtractionCache
from bookly.pipeline.fallback import fallback_extract
from bookly.pipeline.quota import QuotaTracker
from bookly.pipeline.retry import RetryConfig, extract_with_retry

logger = logging.getLogger(__name__)

QUOTA_FALLBACK_MESSAGE = "API quota exhausted, using basic parsing"
QUOTA_EXHAUSTED_MESSAGE = "API quota exhausted"
FALLBACK_MESSAGE = "Using basic parsing mode"
MANUAL_ENTRY_MESSAGE = "Could not extract data. Please enter manually."


class Extractor(Protocol):
    """Anything that can turn input fragments into one ExtractionResult."""

    async def extract(
        self, inputs: list[InputFragment], inventory: list[InventoryItem]
    ) -> ExtractionResult: ...


def first_text(inputs: list[InputFragment]) -> str:
    """Return the first non-empty text fragment, or an empty string."""
    return next((fragment.text for fragment in inputs if fragment.text), "")


class SmartExtractor:
    """
    Orchestrates quota, cache, remote extraction and fallback.

    The quota tracker and cache are shared by every call made through the
    same instance; the quota tracker should be the one the extractor charges.
    """

    def __init__(
        self,
        extractor: Extractor | None,
        quota: QuotaTracker,
        cache: ExtractionCache | None = None,
        fallback: Callable[[str], ExtractionResult] = fallback_extract,
        retry_sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        """
        Initialize the pipeline.

        Args:
            extractor: Remote extractor; None means the model is unavailable
            quota: Daily token budget tracker
            cache: Extraction cache; None disables caching
            fallback: Offline extractor used when the model cannot answer
            retry_sleep: Awaitable sleep used between retries
        """
        self.extractor = extractor
        self.quota = quota
        self.cache = cache
        self.fallback = fallback
        self.retry_sleep = retry_sleep

    async def _call_remote(
        self,
        inputs: list[InputFragment],
        inventory: list[InventoryItem],
        options: ExtractionOptions,
    ) -> tuple[ExtractionResult | None, str | None]:
        if self.extractor is None:
            return None, "Remote extraction is not configured"

        extractor = self.extractor
        if options.use_retry:
            outcome = await extract_with_retry(
                lambda: extractor.extract(inputs, inventory),
                RetryConfig(max_retries=options.max_retries),
                sleep=self.retry_sleep,
            )
            error = str(outcome.last_error) if outcome.last_error else None
            return outcome.result, error

        try:
            return await extractor.extract(inputs, inventory), None
        except Exception as e:
            logger.error("API extraction failed: %s", e)
            return None, str(e) or "API error"

    async def smart_extract(
        self,
        inputs: list[InputFragment],
        inventory: list[InventoryItem],
        options: ExtractionOptions | None = None,
    ) -> SmartExtractionResult:
        """
        Extract a structured record, degrading through cache and fallback.

        Args:
            inputs: Ordered text and/or image fragments
            inventory: Known products for the model to match against
            options: Pipeline toggles (defaults: everything enabled, 2 retries)

        Returns:
            SmartExtractionResult tagged with the stage that produced it
        """
        options = options or ExtractionOptions()
        text = first_text(inputs)

        if self.quota.is_exhausted():
            logger.warning("API quota exhausted, using fallback mode")
            if options.use_fallback:
                return SmartExtractionResult(
                    result=self.fallback(text),
                    source=ExtractionSource.FALLBACK,
                    error=QUOTA_FALLBACK_MESSAGE,
                )
            return SmartExtractionResult(
                result=None,
                source=ExtractionSource.NONE,
                error=QUOTA_EXHAUSTED_MESSAGE,
            )

        use_cache = options.use_cache and self.cache is not None
        if use_cache and text:
            cached = self.cache.get(text)
            if cached is not None:
                return SmartExtractionResult(result=cached, source=ExtractionSource.CACHE)

        result, api_error = await self._call_remote(inputs, inventory, options)
        if result is not None:
            if use_cache and text:
                self.cache.set(text, result)
            return SmartExtractionResult(result=result, source=ExtractionSource.API)

        if api_error:
            logger.info("Remote extraction unavailable: %s", api_error)

        if options.use_fallback:
            return SmartExtractionResult(
                result=self.fallback(text),
                source=ExtractionSource.FALLBACK,
                error=FALLBACK_MESSAGE,
            )

        return SmartExtractionResult(
            result=None,
            source=ExtractionSource.NONE,
            error=MANUAL_ENTRY_MESSAGE,
        )
