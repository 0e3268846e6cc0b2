"""Anthropic API integration for business-input extraction using structured outputs."""

import json
import logging
import re
from pathlib import Path

from anthropic import AsyncAnthropic
from anthropic.types.beta import (
    BetaBase64ImageSourceParam,
    BetaCacheControlEphemeralParam,
    BetaImageBlockParam,
    BetaMessageParam,
    BetaTextBlockParam,
)
from jinja2 import Environment, FileSystemLoader, select_autoescape
from pydantic import ValidationError

from bookly.models import (
    ExtractionResult,
    InputFragment,
    InventoryItem,
    SaleExtraction,
    parse_extraction_result,
)
from bookly.pipeline.quota import FAILED_REQUEST_TOKENS, QuotaTracker

logger = logging.getLogger(__name__)

STRUCTURED_OUTPUTS_BETA = "structured-outputs-2025-11-13"
DEFAULT_IMAGE_MEDIA_TYPE = "image/jpeg"

_FENCE_PATTERN = re.compile(r"```(?:json)?\s*([\s\S]*?)\s*```")
_DATA_URL_PATTERN = re.compile(r"^data:([\w.+-]+/[\w.+-]+);base64$")

# Leading base64 characters of each supported image format's magic bytes.
_BASE64_SIGNATURES = (
    ("iVBORw0KGgo", "image/png"),
    ("/9j/", "image/jpeg"),
    ("R0lGOD", "image/gif"),
    ("UklGR", "image/webp"),
)
SUPPORTED_IMAGE_MEDIA_TYPES = frozenset(media_type for _, media_type in _BASE64_SIGNATURES)


def _object(properties: dict, required: list[str] | None = None) -> dict:
    return {
        "type": "object",
        "properties": properties,
        "required": required or [],
        "additionalProperties": False,
    }


ORDER_ITEM_SCHEMA = _object(
    {
        "productName": {"type": "string"},
        "quantity": {"type": "integer"},
        "variant": {"type": "string"},
        "unitPrice": {"type": "number"},
    }
)

CUSTOMER_SCHEMA = _object(
    {
        "handle": {"type": "string"},
        "platform": {"type": "string"},
        "deliveryFee": {"type": "number"},
        "paymentMethod": {"type": "string"},
        "items": {"type": "array", "items": ORDER_ITEM_SCHEMA},
        "orderTotal": {"type": "number"},
        "address": {"type": "string"},
    }
)

RESPONSE_SCHEMA = _object(
    {
        "intent": {"type": "string", "enum": ["sale", "product", "expense", "inquiry"]},
        "recordType": {"type": "string", "enum": ["order", "expense"]},
        "confidence": {"type": "string", "enum": ["high", "medium", "low"]},
        "suggestedActions": {"type": "array", "items": {"type": "string"}},
        "orderType": {"type": "string", "enum": ["single", "batch"]},
        "customers": {"type": "array", "items": CUSTOMER_SCHEMA},
        "name": {"type": "string"},
        "price": {"type": "number"},
        "costPrice": {"type": "number"},
        "stock": {"type": "integer"},
        "category": {"type": "string"},
        "amount": {"type": "number"},
        "description": {"type": "string"},
        "vendor": {"type": "string"},
        "paymentMethod": {"type": "string"},
        "date": {"type": "string"},
    },
    required=["intent", "confidence"],
)


class ExtractionError(Exception):
    """Base exception for extraction errors."""


class ExtractionRefusedError(ExtractionError):
    """Raised when the model refuses to process the request."""


class ExtractionIncompleteError(ExtractionError):
    """Raised when the response is truncated due to token limits."""


class ExtractionParseError(ExtractionError):
    """Raised when the model output is not a valid extraction JSON object."""


def clean_json_response(text: str) -> str:
    """
    Trim model output down to the JSON object it contains.

    Strips a Markdown code fence if present, then keeps everything from the
    first "{" to the last "}".
    """
    cleaned = text.strip()
    if "```" in cleaned:
        match = _FENCE_PATTERN.search(cleaned)
        if match and match.group(1):
            cleaned = match.group(1).strip()

    first = cleaned.find("{")
    last = cleaned.rfind("}")
    if first != -1 and last > first:
        cleaned = cleaned[first : last + 1]
    return cleaned


def parse_model_output(text: str) -> ExtractionResult:
    """
    Decode and normalise raw model text into an ExtractionResult.

    Sales get per-customer order totals filled in, and single-customer sales
    are flattened onto the top-level fields.

    Raises:
        ExtractionParseError: If the text is not JSON or does not fit the schema
    """
    try:
        data = json.loads(clean_json_response(text))
    except ValueError as e:
        raise ExtractionParseError(f"Model returned invalid JSON: {e}") from e

    if not isinstance(data, dict):
        raise ExtractionParseError("Model output is not a JSON object")

    try:
        result = parse_extraction_result(data)
    except ValidationError as e:
        raise ExtractionParseError(f"Model output does not match schema: {e}") from e

    if isinstance(result, SaleExtraction) and result.customers:
        result.fill_order_totals()
        result.flatten_single_customer()
    return result


def sniff_image_media_type(data: str) -> str:
    """Guess an image MIME type from base64 data, defaulting to JPEG."""
    for prefix, media_type in _BASE64_SIGNATURES:
        if data.startswith(prefix):
            return media_type
    return DEFAULT_IMAGE_MEDIA_TYPE


def _image_block(image_base64: str) -> BetaImageBlockParam:
    media_type = None
    data = image_base64
    if "," in image_base64:
        header, data = image_base64.split(",", 1)
        match = _DATA_URL_PATTERN.match(header.strip())
        if match:
            media_type = match.group(1)
    if media_type is None:
        media_type = sniff_image_media_type(data.strip())
    return BetaImageBlockParam(
        type="image",
        source=BetaBase64ImageSourceParam(
            type="base64",
            media_type=media_type,  # type: ignore[typeddict-item]
            data=data,
        ),
    )


class AnthropicExtractor:
    """
    Anthropic-powered extractor turning business input into structured records.

    Every call is charged to the quota tracker: successful calls with the
    usage reported by the API, failed calls with a fixed small amount since
    the request still counts against the upstream quota.
    """

    def __init__(
        self,
        api_key: str,
        quota: QuotaTracker,
        model: str = "claude-haiku-4-5",
        max_tokens: int = 2048,
        temperature: float = 0.1,
        request_timeout: float = 30.0,
        prompts_dir: str | None = None,
    ) -> None:
        """
        Initialize the Anthropic extractor.

        Args:
            api_key: Anthropic API key
            quota: Tracker charged for every request
            model: Model to use (default: claude-haiku-4-5)
            max_tokens: Maximum tokens for response (default: 2048)
            temperature: Sampling temperature (default: 0.1)
            request_timeout: Seconds before a request times out (default: 30)
            prompts_dir: Directory containing Jinja2 templates
                (default: the package's prompts/ directory)
        """
        # Backoff is owned by the retry controller, not the SDK.
        self.client = AsyncAnthropic(
            api_key=api_key, timeout=request_timeout, max_retries=0
        )
        self.quota = quota
        self.model = model
        self.max_tokens = max_tokens
        self.temperature = temperature

        if prompts_dir is None:
            prompts_dir = str(Path(__file__).parent.parent / "prompts")

        self.jinja_env = Environment(
            loader=FileSystemLoader(prompts_dir),
            autoescape=select_autoescape(),
            trim_blocks=True,
            lstrip_blocks=True,
        )

    def _render_system_prompt(self, inventory: list[InventoryItem]) -> str:
        template = self.jinja_env.get_template("extractor_system.jinja2")
        return template.render(inventory=inventory)

    def _build_content(
        self, inputs: list[InputFragment]
    ) -> list[BetaTextBlockParam | BetaImageBlockParam]:
        """Turn input fragments into ordered text and image content blocks."""
        template = self.jinja_env.get_template("extractor_input.jinja2")
        content: list[BetaTextBlockParam | BetaImageBlockParam] = []
        for fragment in inputs:
            if fragment.text:
                content.append(
                    BetaTextBlockParam(type="text", text=template.render(text=fragment.text))
                )
            if fragment.image_base64:
                content.append(_image_block(fragment.image_base64))
        return content

    async def extract(
        self,
        inputs: list[InputFragment],
        inventory: list[InventoryItem],
    ) -> ExtractionResult:
        """
        Extract one structured record from the given input fragments.

        Args:
            inputs: Ordered text and/or image fragments
            inventory: Known products the model should try to match

        Returns:
            The parsed and normalised ExtractionResult

        Raises:
            ExtractionRefusedError: If the model refuses the request
            ExtractionIncompleteError: If response is truncated
            ExtractionParseError: If the response is not valid extraction JSON
            ExtractionError: If the response is empty or there is no input
            anthropic.APIError: For transport, auth and rate-limit failures
        """
        content = self._build_content(inputs)
        if not content:
            raise ExtractionError("No text or image input to extract from")

        try:
            messages: list[BetaMessageParam] = [{"role": "user", "content": content}]

            response = await self.client.beta.messages.create(
                model=self.model,
                max_tokens=self.max_tokens,
                temperature=self.temperature,
                betas=[STRUCTURED_OUTPUTS_BETA],
                system=[
                    BetaTextBlockParam(
                        type="text",
                        text=self._render_system_prompt(inventory),
                        cache_control=BetaCacheControlEphemeralParam(type="ephemeral"),
                    )
                ],
                messages=messages,
                output_format={"type": "json_schema", "schema": RESPONSE_SCHEMA},
            )

            if response.stop_reason == "refusal":
                raise ExtractionRefusedError("Model refused to process the request")

            if response.stop_reason == "max_tokens":
                raise ExtractionIncompleteError(
                    "Response truncated due to token limit. Try increasing max_tokens."
                )

            text = "".join(
                block.text for block in response.content if block.type == "text"
            )
            if not text.strip():
                raise ExtractionError("Model returned an empty response")

            result = parse_model_output(text)
        except Exception as e:
            logger.error("Extraction failed: %s", e)
            self.quota.track_usage(FAILED_REQUEST_TOKENS)
            raise

        self.quota.track_usage(response.usage.input_tokens + response.usage.output_tokens)
        return result
