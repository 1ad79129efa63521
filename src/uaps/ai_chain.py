"""
AI fallback chain.

Every AI-backed step follows one pattern: an ordered list of strategies
behind a single try_extract() interface, each called once, then a pure
terminal strategy that never raises. OpenAIJsonStrategy is the model-backed
strategy: exactly one chat completion per model, strict JSON instruction,
first JSON literal located in the reply, then a parse/validate callback.
"""

import logging
import os
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Generic, List, Optional, Sequence, Tuple, TypeVar

from dotenv import load_dotenv
from openai import OpenAI

from uaps.config import AI_CALL_TIMEOUT_SECONDS, OPENAI_SEED, OPENAI_TEMPERATURE
from uaps.error_handling import PredictionCancelledError, UpstreamAIError, handle_llm_error
from uaps.utils import extract_first_json

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Builds chat messages from the chain payload
MessageBuilder = Callable[[Any], List[Dict[str, str]]]
# Validates decoded JSON (plus the raw message, for annotations) into a result
ResponseParser = Callable[[Any, Any, Any], Any]


class InferenceStrategy(ABC, Generic[T]):
    """One way of turning a payload into a result. Raises on any failure."""

    name: str = "strategy"

    @abstractmethod
    def try_extract(self, payload: Any) -> T:
        ...


class OpenAIJsonStrategy(InferenceStrategy[T]):
    """
    One OpenAI model, one call.

    Args:
        client: OpenAI client (constructed with max_retries=0)
        model: Model identifier
        build_messages: payload -> chat messages
        parse: (decoded_json, message, payload) -> result; raises on bad shape
        json_mode: Request response_format json_object (unsupported by search models)
        temperature: Sampling temperature, None to omit
        timeout: Per-attempt timeout in seconds
        expect: Top-level JSON types accepted from the reply
    """

    def __init__(
        self,
        client: OpenAI,
        model: str,
        build_messages: MessageBuilder,
        parse: ResponseParser,
        json_mode: bool = True,
        temperature: Optional[float] = OPENAI_TEMPERATURE,
        timeout: float = AI_CALL_TIMEOUT_SECONDS,
        expect: Tuple[type, ...] = (dict, list),
    ):
        self.client = client
        self.model = model
        self.name = model
        self.build_messages = build_messages
        self.parse = parse
        self.json_mode = json_mode
        self.temperature = temperature
        self.timeout = timeout
        self.expect = expect

    def try_extract(self, payload: Any) -> T:
        kwargs = {
            "model": self.model,
            "messages": self.build_messages(payload),
            "timeout": self.timeout,
        }
        if self.json_mode:
            kwargs["response_format"] = {"type": "json_object"}
            kwargs["seed"] = OPENAI_SEED
        if self.temperature is not None:
            kwargs["temperature"] = self.temperature

        logger.debug(f"Calling {self.model}...")
        completion = self.client.chat.completions.create(**kwargs)
        message = completion.choices[0].message
        data = extract_first_json(message.content or "", self.expect)
        return self.parse(data, message, payload)


@dataclass
class ChainOutcome(Generic[T]):
    """Result of a chain run: the value, who produced it, and what failed first."""
    value: T
    source: str
    errors: List[UpstreamAIError] = field(default_factory=list)
    used_terminal: bool = False


class FallbackChain(Generic[T]):
    """
    Ordered strategies, tried until one succeeds, then the terminal strategy.

    Any exception from a strategy advances the chain. Without a terminal
    strategy, exhaustion raises UpstreamAIError for the caller to absorb.

    Cancellation is checked before each attempt and before the terminal
    strategy. A call already in flight is not interrupted; it is bounded by
    the per-attempt timeout, and its result is discarded if the request was
    cancelled meanwhile.
    """

    def __init__(
        self,
        strategies: Sequence[InferenceStrategy[T]],
        terminal: Optional[InferenceStrategy[T]] = None,
        operation: str = "AI inference",
    ):
        self.strategies = list(strategies)
        self.terminal = terminal
        self.operation = operation

    def run(self, payload: Any, cancel_event: Optional[threading.Event] = None) -> ChainOutcome[T]:
        errors: List[UpstreamAIError] = []

        for strategy in self.strategies:
            _check_cancelled(cancel_event, self.operation)
            try:
                value = strategy.try_extract(payload)
            except Exception as e:
                errors.append(handle_llm_error(e, self.operation, strategy.name))
                continue
            _check_cancelled(cancel_event, self.operation)
            logger.info(f"{self.operation} succeeded with {strategy.name}")
            return ChainOutcome(value=value, source=strategy.name, errors=errors)

        _check_cancelled(cancel_event, self.operation)

        if self.terminal is None:
            raise UpstreamAIError(f"{self.operation}: all {len(self.strategies)} models failed")

        if self.strategies:
            logger.warning(f"{self.operation}: all models failed, using {self.terminal.name}")
        value = self.terminal.try_extract(payload)
        return ChainOutcome(value=value, source=self.terminal.name, errors=errors, used_terminal=True)


def _check_cancelled(cancel_event: Optional[threading.Event], operation: str):
    if cancel_event is not None and cancel_event.is_set():
        raise PredictionCancelledError(f"{operation} cancelled")


def build_openai_client() -> Optional[OpenAI]:
    """
    OpenAI client from OPENAI_API_KEY (.env supported).

    Returns None when no key is configured; callers skip their AI layers and
    use the deterministic fallbacks.
    """
    load_dotenv()

    api_key = os.getenv("OPENAI_API_KEY")
    if not api_key:
        logger.warning("OPENAI_API_KEY not found in environment; AI layers disabled, using fallbacks")
        return None

    # One call per model; the chain is the retry policy
    return OpenAI(api_key=api_key, max_retries=0, timeout=AI_CALL_TIMEOUT_SECONDS)


def openai_strategies(
    client: Optional[OpenAI],
    models: Sequence[str],
    build_messages: MessageBuilder,
    parse: ResponseParser,
    **options,
) -> List[OpenAIJsonStrategy]:
    """One OpenAIJsonStrategy per model; empty without a client."""
    if client is None:
        return []
    return [OpenAIJsonStrategy(client, model, build_messages, parse, **options) for model in models]
