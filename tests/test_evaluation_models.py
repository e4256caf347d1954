"""Tests for evaluation requests and per-model run state."""

import pytest

from evalarena.evaluation.models import EvaluationRequest, ModelRunState
from evalarena.providers.base import StreamTimer
from evalarena.scoring.metrics import EvaluationMetric
from utils.exceptions import RequestError


def _make_body(**overrides) -> dict:
    body = {
        "systemPrompt": "You are helpful",
        "userMessage": "2+2?",
        "expectedOutput": "4",
        "selectedModels": ["gpt-4o", "gemini-1.5-flash"],
        "selectedMetrics": ["EXACT_MATCH", "LLM_JUDGE"],
    }
    body.update(overrides)
    return body


class TestEvaluationRequest:
    def test_from_dict(self) -> None:
        request = EvaluationRequest.from_dict(_make_body())

        assert request.selected_models == ("gpt-4o", "gemini-1.5-flash")
        assert request.selected_metrics == (EvaluationMetric.EXACT_MATCH, EvaluationMetric.LLM_JUDGE)
        assert request.to_dict() == _make_body()

    def test_metrics_optional(self) -> None:
        body = _make_body()
        del body["selectedMetrics"]
        assert EvaluationRequest.from_dict(body).selected_metrics == ()

    def test_duplicates_removed_in_order(self) -> None:
        request = EvaluationRequest.from_dict(
            _make_body(selectedModels=["b", "a", "b"], selectedMetrics=["LLM_JUDGE", "LLM_JUDGE"])
        )
        assert request.selected_models == ("b", "a")
        assert request.selected_metrics == (EvaluationMetric.LLM_JUDGE,)

    def test_missing_fields(self) -> None:
        with pytest.raises(RequestError, match="userMessage, expectedOutput"):
            EvaluationRequest.from_dict({"systemPrompt": "", "selectedModels": ["a"]})

    @pytest.mark.parametrize("models", [[], [""], "gpt-4o", [1, 2]])
    def test_invalid_models(self, models) -> None:
        with pytest.raises(RequestError, match="selectedModels"):
            EvaluationRequest.from_dict(_make_body(selectedModels=models))

    def test_unknown_metric(self) -> None:
        with pytest.raises(RequestError, match="Unknown metric 'BLEU'"):
            EvaluationRequest.from_dict(_make_body(selectedMetrics=["BLEU"]))

    def test_metrics_must_be_list(self) -> None:
        with pytest.raises(RequestError):
            EvaluationRequest.from_dict(_make_body(selectedMetrics="EXACT_MATCH"))

    def test_not_a_dict(self) -> None:
        with pytest.raises(RequestError):
            EvaluationRequest.from_dict(["gpt-4o"])

    def test_messages(self) -> None:
        messages = EvaluationRequest.from_dict(_make_body()).messages()
        assert [(m.role, m.content) for m in messages] == [
            ("system", "You are helpful"),
            ("user", "2+2?"),
        ]

    def test_immutable(self) -> None:
        request = EvaluationRequest.from_dict(_make_body())
        with pytest.raises(AttributeError):
            request.user_message = "changed"


class TestModelRunState:
    def test_append_accumulates(self) -> None:
        state = ModelRunState("m")
        state.append("Hel")
        event = state.append("lo")

        assert event.to_dict() == {"model": "m", "response": "Hello", "delta": "lo"}
        assert state.deltas == 2

    def test_finish_with_scores(self) -> None:
        state = ModelRunState("m")
        state.append("4")
        state.last_timing = StreamTimer().finish()

        event = state.finish({"EXACT_MATCH": 1.0})

        assert state.terminal
        assert event.response == "4"
        assert event.metrics["evaluation"] == {"EXACT_MATCH": 1.0}
        assert "duration" in event.metrics
        assert event.error is None

    def test_finish_without_timing_or_scores(self) -> None:
        event = ModelRunState("m").finish()
        assert event.metrics == {}

    def test_fail_discards_response(self) -> None:
        state = ModelRunState("m")
        state.append("partial")

        event = state.fail("boom")

        assert event.to_dict() == {"model": "m", "response": "", "error": "boom"}
        assert state.error == "boom"

    def test_append_after_terminal_raises(self) -> None:
        state = ModelRunState("m")
        state.fail("boom")
        with pytest.raises(RuntimeError):
            state.append("late")
