"""Tests for the generative service client and answer validation."""

import json
import time
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest

from src.api.exceptions import UpstreamError
from src.api.metrics import metrics_service
from src.recommender.llm import (
    GeminiRanker,
    Rejected,
    Validated,
    call_with_timeout,
    extract_json_array,
    strip_code_fence,
    validate_picks,
)

VALID_PICK = {
    "id": "p00002",
    "name": "Oat Loaf",
    "price": 10.0,
    "sodium": "150mg",
    "sugar": "3g",
    "reasoning": "Low sodium and within budget.",
}


def make_client(text=None, error=None):
    client = MagicMock()
    if error is not None:
        client.models.generate_content.side_effect = error
    else:
        client.models.generate_content.return_value = SimpleNamespace(text=text)
    return client


def test_strip_code_fence():
    assert strip_code_fence('```json\n["a"]\n```') == '["a"]'
    assert strip_code_fence('  ["a"]  ') == '["a"]'


def test_extract_json_array_tolerates_surrounding_prose():
    text = 'Here are my picks:\n[{"id": "p00002"}]\nHope this helps!'

    assert extract_json_array(text) == [{"id": "p00002"}]


@pytest.mark.parametrize("text", ["no array here", "] backwards [", "[not json]"])
def test_extract_json_array_rejects_bad_text(text):
    with pytest.raises(ValueError):
        extract_json_array(text)


def test_validate_picks_accepts_well_formed_answer():
    second = dict(VALID_PICK, id="p00007", sodium="300.5mg", sugar="4.25g")

    outcome = validate_picks(json.dumps([VALID_PICK, second]))

    assert isinstance(outcome, Validated)
    assert [pick.id for pick in outcome.picks] == ["p00002", "p00007"]


@pytest.mark.parametrize(
    "override",
    [
        {"sodium": "150"},
        {"sodium": "150 mg"},
        {"sugar": "3mg"},
        {"sugar": "3"},
        {"price": "10.00"},
        {"price": 0},
        {"reasoning": ""},
    ],
)
def test_validate_picks_rejects_malformed_entry(override):
    """Missing units, string prices and empty reasoning all reject."""
    outcome = validate_picks(json.dumps([dict(VALID_PICK, **override)]))

    assert isinstance(outcome, Rejected)


def test_validate_picks_is_all_or_nothing():
    """One bad entry rejects the whole answer."""
    bad = dict(VALID_PICK, id="p00007", sugar="lots")

    outcome = validate_picks(json.dumps([VALID_PICK, bad]))

    assert isinstance(outcome, Rejected)
    assert "Schema validation failed" in outcome.reason


def test_validate_picks_rejects_missing_field():
    entry = dict(VALID_PICK)
    del entry["reasoning"]

    assert isinstance(validate_picks(json.dumps([entry])), Rejected)


def test_validate_picks_rejects_unparseable_text():
    outcome = validate_picks("I recommend the oat loaf.")

    assert isinstance(outcome, Rejected)
    assert "Unparseable" in outcome.reason


def test_call_with_timeout_returns_result():
    assert call_with_timeout(lambda: 42, timeout_seconds=1.0) == 42
    assert call_with_timeout(lambda: 42, timeout_seconds=None) == 42


def test_call_with_timeout_expiry_is_upstream_error():
    with pytest.raises(UpstreamError):
        call_with_timeout(lambda: time.sleep(0.5), timeout_seconds=0.05)


def test_gemini_ranker_requires_api_key():
    with pytest.raises(ValueError):
        GeminiRanker(api_key=None)


def test_gemini_ranker_returns_text():
    client = make_client(text='["salt"]')
    ranker = GeminiRanker(api_key=None, model="test-model", client=client)

    assert ranker.generate("prompt") == '["salt"]'

    kwargs = client.models.generate_content.call_args.kwargs
    assert kwargs["model"] == "test-model"
    assert kwargs["contents"] == "prompt"
    assert metrics_service.get_metrics()["model_calls"] == 1


def test_gemini_ranker_wraps_transport_errors():
    ranker = GeminiRanker(api_key=None, client=make_client(error=ConnectionError("reset")))

    with pytest.raises(UpstreamError) as exc_info:
        ranker.generate("prompt")

    assert exc_info.value.details["error_type"] == "ConnectionError"
    assert metrics_service.get_metrics()["model_failures"] == 1


def test_gemini_ranker_empty_answer_is_upstream_error():
    ranker = GeminiRanker(api_key=None, client=make_client(text=None))

    with pytest.raises(UpstreamError):
        ranker.generate("prompt")
