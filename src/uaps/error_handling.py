"""
Standardized Error Handling for UAPS

One exception hierarchy for the whole engine plus the helpers the AI layers
use to classify and log upstream failures.
"""

import json
import logging
from typing import Any, Dict, Optional

from pydantic import ValidationError

logger = logging.getLogger(__name__)


class UAPSError(Exception):
    """Base exception for the UAPS engine."""
    pass


class InputValidationError(UAPSError):
    """Missing or invalid product id or duration. Raised before any pipeline work."""
    pass


class UpstreamAIError(UAPSError):
    """An AI call failed (API error, timeout, unparseable or malformed output).

    Always recovered inside the engine by the model-fallback chain.
    """

    def __init__(self, message: str, model: Optional[str] = None):
        super().__init__(message)
        self.model = model


class DataUnavailableError(UAPSError):
    """No terrestrial data or no model groups to match against."""
    pass


class PersistenceError(UAPSError):
    """Storing a valid prediction failed.

    Carries the computed prediction so a retry can skip recomputation.
    """

    def __init__(self, message: str, prediction: Any = None):
        super().__init__(message)
        self.prediction = prediction


class PredictionCancelledError(UAPSError):
    """The triggering request was aborted; partial state was discarded."""
    pass


class PipelineExhaustedError(UAPSError):
    """The pipeline could not produce a prediction despite every fallback."""
    pass


def handle_llm_error(error: Exception, operation: str, model: Optional[str] = None) -> UpstreamAIError:
    """
    Standardized AI error handling.

    Logs the failure with its category and wraps it in UpstreamAIError so the
    fallback chain treats every kind of failure the same way.

    Args:
        error: Exception that occurred
        operation: Description of operation
        model: Model identifier that was called

    Returns:
        UpstreamAIError wrapping the original error
    """
    if isinstance(error, UpstreamAIError):
        logger.warning(f"{operation} failed on {model}: {error}")
        return error

    error_type = type(error).__name__
    target = model or "unknown model"

    if isinstance(error, ValidationError):
        logger.warning(f"AI response validation failed during {operation} ({target}): {error.error_count()} errors")
    elif isinstance(error, (json.JSONDecodeError, ValueError)):
        logger.warning(f"Unparseable AI output during {operation} ({target}): {error}")
    elif "timeout" in error_type.lower() or isinstance(error, TimeoutError):
        logger.warning(f"AI call timed out during {operation} ({target})")
    elif "rate limit" in str(error).lower() or error_type == "RateLimitError":
        logger.warning(f"Rate limit hit during {operation} ({target}): {error}")
    elif "api" in error_type.lower():
        logger.warning(f"API error during {operation} ({target}): {error}")
    else:
        logger.warning(f"Unexpected error during {operation} ({target}): {error_type} - {error}")

    wrapped = UpstreamAIError(f"{operation} failed on {target}: {error_type}", model=model)
    wrapped.__cause__ = error
    return wrapped


def validate_llm_response(
    response: Any,
    expected_keys: list,
    operation: str
) -> Dict:
    """
    Validate an AI response has the expected structure.

    Args:
        response: Decoded JSON response
        expected_keys: List of required keys
        operation: Operation name for error messages

    Returns:
        The response, unchanged

    Raises:
        UpstreamAIError: If the response is not a dict or keys are missing
    """
    if not isinstance(response, dict):
        raise UpstreamAIError(f"AI response is not an object during {operation}: {type(response).__name__}")

    missing_keys = [key for key in expected_keys if key not in response]
    if missing_keys:
        raise UpstreamAIError(f"AI response missing keys during {operation}: {missing_keys}")

    return response


__all__ = [
    'UAPSError',
    'InputValidationError',
    'UpstreamAIError',
    'DataUnavailableError',
    'PersistenceError',
    'PredictionCancelledError',
    'PipelineExhaustedError',
    'handle_llm_error',
    'validate_llm_response',
]
