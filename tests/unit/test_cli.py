import json
from unittest.mock import AsyncMock, patch

import pytest
from typer.testing import CliRunner

from bookly.integrations.anthropic_extractor import AnthropicExtractor
from bookly.main import app, build_inputs
from bookly.models import InquiryExtraction
from bookly.pipeline.quota import QuotaTracker
from tests.utils import clean_cli_output

pytestmark = pytest.mark.unit

runner = CliRunner()


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch, tmp_path):
    """Keep the cache in a temp dir and start without an API key."""
    monkeypatch.setenv("BOOKLY_CACHE_DIR", str(tmp_path / "cache"))
    monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)


@pytest.fixture
def mock_extractor(monkeypatch):
    monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-test-key-12345")
    with patch("bookly.main.AnthropicExtractor") as mock:
        mock.return_value.extract = AsyncMock(
            return_value=InquiryExtraction(
                confidence="high", suggested_actions=["Send Account Details"]
            )
        )
        yield mock


def test_commands_exist():
    """Verify that the extract and cache commands are registered."""
    result = runner.invoke(app, ["--help"])
    assert result.exit_code == 0
    clean_stdout = clean_cli_output(result.stdout.lower())
    assert "extract" in clean_stdout
    assert "cache" in clean_stdout


def test_extract_requires_input():
    result = runner.invoke(app, ["extract"])
    assert result.exit_code == 1
    assert "provide some text" in result.output


def test_extract_without_api_key_uses_fallback():
    result = runner.invoke(app, ["extract", "I paid 5000 for delivery"])

    assert result.exit_code == 0
    assert "ANTHROPIC_API_KEY not found" in result.output
    assert "Source: fallback" in result.output
    assert '"amount": 5000' in result.output
    assert '"category": "Logistics"' in result.output
    assert "API Quota: 0% used" in result.output


def test_extract_without_fallback_exits_nonzero():
    result = runner.invoke(app, ["extract", "I paid 5000 for delivery", "--no-fallback"])

    assert result.exit_code == 1
    assert "Source: none" in result.output
    assert "Please enter manually" in result.output


def test_extract_with_remote(mock_extractor, tmp_path):
    inventory_file = tmp_path / "inventory.json"
    inventory_file.write_text(json.dumps([{"name": "Leather Bag", "price": 22000, "stock": 3}]))

    result = runner.invoke(
        app,
        ["extract", "Do you have the leather bag?", "--inventory", str(inventory_file)],
    )

    assert result.exit_code == 0
    assert "Source: api" in result.output
    assert "Send Account Details" in result.output
    inputs, inventory = mock_extractor.return_value.extract.call_args.args
    assert inputs[0].text == "Do you have the leather bag?"
    assert inventory[0].name == "Leather Bag"


def test_second_run_served_from_cache(mock_extractor):
    runner.invoke(app, ["extract", "Do you have the leather bag?"])
    result = runner.invoke(app, ["extract", "Do you have the leather bag?"])

    assert result.exit_code == 0
    assert "Source: cache" in result.output
    assert '"confidence": "cached"' in result.output
    assert mock_extractor.return_value.extract.await_count == 1


def test_image_is_base64_encoded(mock_extractor, tmp_path):
    image = tmp_path / "receipt.jpg"
    image.write_bytes(b"\xff\xd8\xff\xe0fake-jpeg")

    result = runner.invoke(app, ["extract", "--image", str(image)])

    assert result.exit_code == 0
    inputs, _ = mock_extractor.return_value.extract.call_args.args
    assert inputs[0].text is None
    assert inputs[0].image_base64 == "data:image/jpeg;base64,/9j/4GZha2UtanBlZw=="


def test_invalid_inventory_file(tmp_path):
    inventory_file = tmp_path / "inventory.json"
    inventory_file.write_text('{"not": "a list"}')

    result = runner.invoke(app, ["extract", "hello", "--inventory", str(inventory_file)])

    assert result.exit_code == 1
    assert "invalid inventory file" in result.output


def test_cache_stats_and_clear(mock_extractor):
    runner.invoke(app, ["extract", "Do you have the leather bag?"])

    stats = runner.invoke(app, ["cache", "stats"])
    assert stats.exit_code == 0
    assert "Entries: 1" in stats.output

    cleared = runner.invoke(app, ["cache", "clear"])
    assert cleared.exit_code == 0
    assert "Extraction cache cleared" in cleared.output

    stats = runner.invoke(app, ["cache", "stats"])
    assert "Entries: 0" in stats.output


PNG_HEADER = b"\x89PNG\r\n\x1a\n\x00\x00\x00\rIHDR"


def test_png_image_keeps_its_media_type(tmp_path):
    """A .png screenshot reaches the API as image/png, not the JPEG default."""
    image = tmp_path / "shot.png"
    image.write_bytes(PNG_HEADER)

    inputs = build_inputs([], [image])
    assert inputs[0].image_base64.startswith("data:image/png;base64,iVBORw0KGgo")

    extractor = AnthropicExtractor(api_key="sk-test-key-12345", quota=QuotaTracker())
    block = extractor._build_content(inputs)[0]

    assert block["type"] == "image"
    assert block["source"]["media_type"] == "image/png"
    assert block["source"]["data"].startswith("iVBORw0KGgo")


def test_unknown_extension_is_typed_from_content(tmp_path):
    image = tmp_path / "screenshot.img"
    image.write_bytes(PNG_HEADER)

    inputs = build_inputs([], [image])
    assert inputs[0].image_base64.startswith("iVBORw0KGgo")

    extractor = AnthropicExtractor(api_key="sk-test-key-12345", quota=QuotaTracker())
    block = extractor._build_content(inputs)[0]

    assert block["source"]["media_type"] == "image/png"
