"""
Tests for the shared AI fallback chain and the keyword scorer.
"""

import threading

import pytest

from uaps.ai_chain import FallbackChain, InferenceStrategy, OpenAIJsonStrategy
from uaps.error_handling import PredictionCancelledError, UpstreamAIError
from uaps.keyword_scorer import hits_to_score, score_text
from uaps.utils import extract_first_json


class Always(InferenceStrategy):
    def __init__(self, name, value=None, error=None):
        self.name = name
        self.value = value
        self.error = error
        self.calls = 0

    def try_extract(self, payload):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.value


class TestKeywordScorer:
    def test_reference_sentence(self):
        """Deterministic scores for a known review."""
        scores = score_text("bright citrus and crisp acidity, hints of brioche")
        assert scores.fruity == 40
        assert scores.floral_mineral == 0
        assert scores.yeasty_autolytic == 40
        assert scores.acidity_freshness == 80
        assert scores.body_texture == 0
        assert scores.finish_complexity == 0

    def test_case_insensitive(self):
        assert score_text("CITRUS LEMON").fruity == 60

    @pytest.mark.parametrize("hits,score", [(0, 0), (1, 40), (2, 60), (3, 80), (7, 80)])
    def test_thresholds(self, hits, score):
        assert hits_to_score(hits) == score

    def test_empty_text(self):
        assert score_text("").to_array().sum() == 0
        assert score_text(None).to_array().sum() == 0


class TestFallbackChain:
    def test_first_success_wins(self):
        first, second = Always("a", value=1), Always("b", value=2)
        outcome = FallbackChain([first, second], terminal=Always("t", value=0)).run(None)
        assert outcome.value == 1
        assert outcome.source == "a"
        assert second.calls == 0

    def test_failures_advance_once_each(self):
        """Each strategy gets exactly one attempt."""
        failing = [Always(f"m{i}", error=ValueError("bad")) for i in range(2)]
        good = Always("m3", value="ok")
        outcome = FallbackChain(failing + [good], terminal=Always("t", value=None)).run(None)
        assert outcome.value == "ok"
        assert [s.calls for s in failing] == [1, 1]
        assert len(outcome.errors) == 2
        assert all(isinstance(e, UpstreamAIError) for e in outcome.errors)

    def test_terminal_after_exhaustion(self):
        outcome = FallbackChain([Always("a", error=TimeoutError())], terminal=Always("t", value="kw")).run(None)
        assert outcome.value == "kw"
        assert outcome.used_terminal

    def test_no_terminal_raises_upstream_error(self):
        with pytest.raises(UpstreamAIError):
            FallbackChain([Always("a", error=RuntimeError())]).run(None)

    def test_cancel_stops_before_next_attempt(self):
        cancel = threading.Event()

        class CancelOnCall(Always):
            def try_extract(self, payload):
                cancel.set()
                raise RuntimeError("aborted")

        later = Always("later", value=1)
        chain = FallbackChain([CancelOnCall("first"), later], terminal=Always("t", value=0))
        with pytest.raises(PredictionCancelledError):
            chain.run(None, cancel_event=cancel)
        assert later.calls == 0

    def test_result_discarded_when_cancelled_during_call(self):
        """A call that completes after cancellation does not produce an outcome."""
        cancel = threading.Event()

        class CancelWhileRunning(Always):
            def try_extract(self, payload):
                cancel.set()
                return "late answer"

        terminal = Always("t", value=0)
        chain = FallbackChain([CancelWhileRunning("slow")], terminal=terminal)
        with pytest.raises(PredictionCancelledError):
            chain.run(None, cancel_event=cancel)
        assert terminal.calls == 0


class TestOpenAIJsonStrategy:
    def _strategy(self, client, model="m1", **kwargs):
        return OpenAIJsonStrategy(
            client, model,
            build_messages=lambda payload: [{"role": "user", "content": payload}],
            parse=lambda data, message, payload: data,
            **kwargs
        )

    def test_json_wrapped_in_prose(self, fake_openai):
        client = fake_openai({"m1": 'Sure! ```json\n{"a": 1}\n``` hope this helps'})
        assert self._strategy(client).try_extract("x") == {"a": 1}

    def test_request_carries_timeout_and_json_mode(self, fake_openai):
        client = fake_openai({"m1": '{"a": 1}'})
        self._strategy(client).try_extract("x")
        call = client.chat.completions.calls[0]
        assert call["timeout"] > 0
        assert call["response_format"] == {"type": "json_object"}

    def test_search_mode_omits_unsupported_options(self, fake_openai):
        client = fake_openai({"m1": '{"a": 1}'})
        self._strategy(client, json_mode=False, temperature=None).try_extract("x")
        call = client.chat.completions.calls[0]
        assert "response_format" not in call
        assert "temperature" not in call

    def test_unparseable_raises(self, fake_openai):
        client = fake_openai({"m1": "I cannot answer that."})
        with pytest.raises(ValueError):
            self._strategy(client).try_extract("x")


class TestExtractFirstJson:
    def test_array(self):
        assert extract_first_json('result: [1, 2] trailing') == [1, 2]

    def test_first_literal_only(self):
        assert extract_first_json('{"a": 1} {"b": 2}') == {"a": 1}

    def test_json_after_markdown_link(self):
        """A bracket that does not start valid JSON is skipped."""
        text = 'According to [Decanter](https://decanter.com/x), the wine shows: {"confidence": 0.8}'
        assert extract_first_json(text) == {"confidence": 0.8}

    def test_footnote_marker_skipped_when_object_expected(self):
        text = 'Reviews agree [1]: {"confidence": 0.7}'
        assert extract_first_json(text) == [1]
        assert extract_first_json(text, expect=(dict,)) == {"confidence": 0.7}

    @pytest.mark.parametrize("text", ["", "no json here", '{"a": 1'])
    def test_invalid(self, text):
        with pytest.raises(ValueError):
            extract_first_json(text)
