"""Runtime settings read from the environment (and a local .env file)."""

import os
from dataclasses import dataclass
from pathlib import Path

DEFAULT_MODEL = "claude-haiku-4-5"
DEFAULT_CACHE_DIR = Path.home() / ".cache" / "bookly"


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return int(value)
    except ValueError as e:
        raise ValueError(f"{name} must be an integer, got {value!r}") from e


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return float(value)
    except ValueError as e:
        raise ValueError(f"{name} must be a number, got {value!r}") from e


@dataclass(frozen=True)
class Settings:
    """Bookly configuration."""

    anthropic_api_key: str | None = None
    model: str = DEFAULT_MODEL
    max_tokens: int = 2048
    request_timeout: float = 30.0
    cache_dir: Path = DEFAULT_CACHE_DIR
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        """
        Build settings from environment variables.

        Raises:
            ValueError: If a numeric variable cannot be parsed
        """
        cache_dir = os.getenv("BOOKLY_CACHE_DIR")
        return cls(
            anthropic_api_key=os.getenv("ANTHROPIC_API_KEY") or None,
            model=os.getenv("BOOKLY_MODEL") or DEFAULT_MODEL,
            max_tokens=_env_int("BOOKLY_MAX_TOKENS", 2048),
            request_timeout=_env_float("BOOKLY_REQUEST_TIMEOUT", 30.0),
            cache_dir=Path(cache_dir).expanduser() if cache_dir else DEFAULT_CACHE_DIR,
            log_level=os.getenv("LOG_LEVEL") or "INFO",
        )
