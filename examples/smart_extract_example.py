"""Example usage of the smart extraction pipeline.

Runs a few typical WhatsApp-style messages through SmartExtractor and shows
where each result came from. Without ANTHROPIC_API_KEY every message is
handled by the offline regex parser.
"""

import asyncio
import os

from dotenv import load_dotenv

from bookly.integrations import AnthropicExtractor
from bookly.models import InputFragment, InventoryItem
from bookly.pipeline import ExtractionCache, MemoryStore, QuotaTracker, SmartExtractor

load_dotenv()

MESSAGES = [
    "Customer Ada ordered 2 x Ankara Dress, total 30,000, delivery 1,500",
    "I paid 5000 for delivery to GIG",
    "Add new product Leather Bag price 22,000 stock 3",
    "Do you have the leather bag in brown?",
]


async def main():
    """Extract each sample message and print the outcome."""
    quota = QuotaTracker()
    api_key = os.getenv("ANTHROPIC_API_KEY")
    extractor = AnthropicExtractor(api_key=api_key, quota=quota) if api_key else None
    pipeline = SmartExtractor(extractor=extractor, quota=quota, cache=ExtractionCache(MemoryStore()))

    inventory = [
        InventoryItem(name="Ankara Dress", price=15000, stock=4),
        InventoryItem(name="Leather Bag", price=22000, stock=0),
    ]

    for message in MESSAGES:
        outcome = await pipeline.smart_extract([InputFragment(text=message)], inventory)
        print(f"\n> {message}")
        print(f"  Source: {outcome.source}")
        if outcome.error:
            print(f"  Note: {outcome.error}")
        if outcome.result is not None:
            print(f"  Intent: {outcome.result.intent} ({outcome.result.confidence})")
            print(f"  {outcome.result.to_wire()}")

    print(f"\n{quota.format_stats()}")


if __name__ == "__main__":
    asyncio.run(main())
