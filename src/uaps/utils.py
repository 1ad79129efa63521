"""
Utility functions for UAPS.

Includes logging setup, input sanitization, JSON location in free-form AI
output, and numeric helpers.
"""

import json
import logging
import math
import re
from typing import Any, Iterable, Tuple

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


# =======================
# INPUT SANITIZATION
# =======================

def sanitize_text_input(text: str, max_length: int = 5000) -> str:
    """
    Sanitize free text before it is placed inside a prompt.

    Args:
        text: Raw review or note text
        max_length: Maximum allowed length

    Returns:
        Sanitized text
    """
    if not text:
        return ""

    text = text[:max_length]

    # Role markers and instruction overrides
    dangerous_patterns = [
        r'ignore[\s\.\,\:\;]+(previous|all|the|above)',
        r'disregard[\s\.\,\:\;]+previous',
        r'system[\s\.\,\:\;]*:',
        r'assistant[\s\.\,\:\;]*:',
        r'\[INST\]',
        r'\[/INST\]',
        r'<\|im_(start|end)\|>',
        r'you\s+are\s+now',
    ]

    for pattern in dangerous_patterns:
        text = re.sub(pattern, '', text, flags=re.IGNORECASE | re.MULTILINE)

    # Keep max 2 consecutive newlines
    text = re.sub(r'\n{3,}', '\n\n', text)

    # Remove non-printable characters (except newlines, tabs)
    text = ''.join(char for char in text if char.isprintable() or char in '\n\t')

    return text.strip()


# =======================
# AI OUTPUT PARSING
# =======================

def extract_first_json(text: str, expect: Tuple[type, ...] = (dict, list)) -> Any:
    """
    Locate and decode the first top-level JSON literal in a response.

    Models wrap JSON in prose, markdown fences or links such as
    ``[Decanter](https://...)``; every ``{`` or ``[`` is tried in order and
    the first position that decodes to one of the ``expect`` types wins, so
    a footnote marker like ``[1]`` is skipped when an object is wanted.

    Args:
        text: Raw model output
        expect: Accepted top-level types

    Returns:
        Decoded JSON object or array

    Raises:
        ValueError: If no JSON literal is found or it does not decode
    """
    if not text:
        raise ValueError("Empty response")

    decoder = json.JSONDecoder()
    last_error = None
    for match in re.finditer(r'[\{\[]', text):
        try:
            value, _ = decoder.raw_decode(text, match.start())
        except json.JSONDecodeError as e:
            last_error = e
            continue
        if isinstance(value, expect):
            return value

    if last_error is None:
        raise ValueError("No JSON literal found in response")
    raise ValueError(f"Malformed JSON literal: {last_error}") from last_error


# =======================
# NUMERIC HELPERS
# =======================

def safe_divide(numerator: float, denominator: float, default: float = 0.0) -> float:
    """
    Safely divide two numbers, handling zero division.

    Args:
        numerator: Number to divide
        denominator: Number to divide by
        default: Value to return if division by zero

    Returns:
        Result of division or default
    """
    if denominator == 0:
        logger.warning(f"Division by zero: {numerator}/{denominator}, returning {default}")
        return default
    return numerator / denominator


def clamp(value: float, low: float = 0.0, high: float = 100.0) -> float:
    """Clamp a value into [low, high]."""
    return max(low, min(high, value))


def round1(value: float) -> float:
    """Round to one decimal place, the precision of every reported score."""
    return round(value * 10) / 10


def parse_float(raw: Any) -> float:
    """
    Parse a number from a config string or JSON value.

    Raises:
        ValueError: If the value is missing, non-numeric, or not finite
    """
    if raw is None or isinstance(raw, bool):
        raise ValueError(f"Not a number: {raw!r}")
    value = float(str(raw).strip())
    if not math.isfinite(value):
        raise ValueError(f"Not a finite number: {raw!r}")
    return value


def count_hits(text: str, cues: Iterable[str]) -> int:
    """Count cues that occur in text as case-insensitive substrings."""
    lower = text.lower()
    return sum(1 for cue in cues if cue in lower)
