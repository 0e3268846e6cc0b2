import re

# Optional currency symbol followed by digits with optional 3-digit groups
# separated by commas, dots or spaces ("5000", "5,000", "1.250.000", "₦12 500").
AMOUNT_PATTERN = r"(?:₦|\$)?(\d+(?:[,.\s]\d{3})*)"

_SEPARATORS = re.compile(r"[,.\s]")


def parse_amount(value: str | None) -> int:
    """
    Convert a matched amount string into an integer.

    Thousands separators (commas, dots and whitespace) are stripped before
    conversion. Missing or malformed values yield 0.
    """
    if not value:
        return 0
    try:
        return int(_SEPARATORS.sub("", value))
    except ValueError:
        return 0
