import os

from anthropic import Anthropic
from anthropic.types import MessageParam
from dotenv import load_dotenv

from bookly.integrations import AnthropicExtractor
from bookly.models import InputFragment, InventoryItem
from bookly.pipeline import QuotaTracker

load_dotenv()


def count_tokens():
    target_model = "claude-haiku-4-5"
    api_key = os.environ.get("ANTHROPIC_API_KEY", "your-api-key")

    client = Anthropic(api_key=api_key)
    # Only used to render the packaged prompt templates.
    extractor = AnthropicExtractor(api_key=api_key, quota=QuotaTracker(), model=target_model)

    inventory = [
        InventoryItem(name=f"Sample Product {i}", price=1000 * i, stock=i) for i in range(1, 21)
    ]
    empty_prompt = extractor._render_system_prompt([])
    stocked_prompt = extractor._render_system_prompt(inventory)
    content = extractor._build_content([InputFragment(text="Customer Ada ordered 2 x bags")])

    print(f"Counting tokens for model: {target_model}")

    try:
        messages: list[MessageParam] = [{"role": "user", "content": content}]
        empty_tokens = client.messages.count_tokens(
            model=target_model, system=empty_prompt, messages=messages
        ).input_tokens
        stocked_tokens = client.messages.count_tokens(
            model=target_model, system=stocked_prompt, messages=messages
        ).input_tokens

        print("\n--- Results ---")
        print(f"System prompt, no inventory: {empty_tokens}")
        print(f"System prompt, {len(inventory)} inventory items: {stocked_tokens}")
        print(f"  Approx. tokens per inventory item: {(stocked_tokens - empty_tokens) / len(inventory):.1f}")

    except Exception as e:
        print(f"Error counting tokens: {e}")
        print("\nNote: Make sure ANTHROPIC_API_KEY is set in your environment.")


if __name__ == "__main__":
    count_tokens()
