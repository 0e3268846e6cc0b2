import functools
import inspect
import os

import pytest
from anthropic import PermissionDeniedError, RateLimitError


def skip_if_missing_env_vars(required_vars):
    """
    Decorator to skip tests if required environment variables are not set.

    Works for both plain and ``async def`` tests.

    Args:
        required_vars (list): List of environment variable names to check.
    """

    def check():
        missing = [var for var in required_vars if not os.getenv(var)]
        if missing:
            pytest.skip(
                f"Missing required environment variables: {', '.join(missing)}. "
                "Ensure they are set in your environment or .env file."
            )

    def decorator(func):
        if inspect.iscoroutinefunction(func):

            @functools.wraps(func)
            async def async_wrapper(*args, **kwargs):
                check()
                return await func(*args, **kwargs)

            return async_wrapper

        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            check()
            return func(*args, **kwargs)

        return wrapper

    return decorator


def skip_on_account_limits(func):
    """
    Decorator to skip async tests when the Anthropic account cannot serve them.

    Rate limits and disabled billing are account state, not regressions.
    """

    @functools.wraps(func)
    async def wrapper(*args, **kwargs):
        try:
            return await func(*args, **kwargs)
        except RateLimitError:
            pytest.skip("Anthropic API rate limit reached; try the integration tests later.")
        except PermissionDeniedError as e:
            if "billing" in str(e).lower() or "credit" in str(e).lower():
                pytest.skip("Anthropic account has no available credit.")
            raise

    return wrapper


def verify_cli_success(result, expected_source):
    """
    Verify common CLI success criteria for extraction runs.

    Args:
        result: CliRunner result object from typer.testing
        expected_source: Expected extraction source reported by the CLI
    """
    assert result.exit_code == 0, (
        f"Expected exit code 0, got {result.exit_code}\nOutput: {result.output}"
    )

    assert f"Source: {expected_source}" in result.output, (
        f"Expected source {expected_source} in output\nOutput: {result.output}"
    )
