from __future__ import annotations

from typing import List

import pytest

from core import Candidate
from intelligence import InstructionalClassifier, detect_content_type, extract_json_object, parse_classification
from intelligence.llm import BaseLLM, LLMResponse, Message, get_llm
from utils.exceptions import ConfigurationError, LLMError


class _FakeLLM(BaseLLM):
    def __init__(self, replies: List[object]) -> None:
        super().__init__(model="fake-model")
        self.replies = list(replies)
        self.prompts: List[List[Message]] = []

    @property
    def provider(self) -> str:
        return "fake"

    def complete(self, messages: List[Message], **kwargs) -> LLMResponse:
        self.prompts.append(messages)
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return LLMResponse(content=str(reply), model=self.model)


def _candidate() -> Candidate:
    return Candidate(
        video_id="vid1",
        title="How to finish the armbar from closed guard",
        channel_title="Grappling Lab",
        duration_seconds=600,
    )


def test_extract_json_object_variants() -> None:
    assert extract_json_object('{"a": 1}') == {"a": 1}
    assert extract_json_object('Sure!\n```json\n{"a": {"b": 2}}\n```') == {"a": {"b": 2}}
    assert extract_json_object('Result: {"text": "brace } inside", "n": 3} trailing') == {
        "text": "brace } inside",
        "n": 3,
    }
    assert extract_json_object('Use { carefully. Answer: {"is_instructional": true, "quality": 8}') == {
        "is_instructional": True,
        "quality": 8,
    }
    assert extract_json_object("no json here") is None
    assert extract_json_object('{"unterminated": ') is None
    assert extract_json_object(None) is None


def test_parse_classification_coerces_loose_types() -> None:
    result = parse_classification(
        {
            "is_instructional": "yes",
            "quality": "12",
            "technique": "Armbar",
            "instructor": "null",
            "difficulty": 2.6,
            "belt_levels": "White",
            "gi_type": "No-Gi",
            "problems_solved": ["losing the arm"],
        }
    )
    assert result.is_instructional is True
    assert result.quality_estimate == 10.0
    assert result.instructor_name is None
    assert result.difficulty == 3
    assert result.belt_levels == ["white"]
    assert result.gi_type == "nogi"
    assert result.available is True


def test_detect_content_type_hints() -> None:
    assert detect_content_type("Gordon Ryan vs Felipe Pena ADCC finals") == "highlight"
    assert detect_content_type("Day in the life of a black belt") == "vlog"
    assert detect_content_type("Kimura setup step by step") == "instructional"


def test_classify_parses_reply_wrapped_in_prose() -> None:
    llm = _FakeLLM(
        [
            'Here you go: {"is_instructional": true, "quality": 8, "technique": "Armbar", '
            '"instructor": "John Danaher", "difficulty": 4, "reasoning": "clear teaching"}'
        ]
    )
    classifier = InstructionalClassifier(llm)

    result = classifier.classify(_candidate())

    assert result.is_instructional is True
    assert result.quality_estimate == 8.0
    assert result.instructor_name == "John Danaher"
    assert classifier.calls == 1
    assert llm.prompts[0][0].content.startswith("You are a Brazilian jiu-jitsu coach")
    assert "armbar from closed guard" in llm.prompts[0][1].content


def test_classify_inference_failure_is_neutral() -> None:
    classifier = InstructionalClassifier(_FakeLLM([LLMError("timeout", provider="fake")]))

    result = classifier.classify(_candidate())

    assert result.available is False
    assert result.is_instructional is False
    assert "inference failed" in result.reasoning


def test_classify_unparseable_reply_is_neutral() -> None:
    classifier = InstructionalClassifier(_FakeLLM(["I think this is a great video!"]))

    result = classifier.classify(_candidate())

    assert result.available is False
    assert "unparseable" in result.reasoning


def test_get_llm_rejects_unknown_provider() -> None:
    with pytest.raises(ConfigurationError):
        get_llm(provider="mystery")
