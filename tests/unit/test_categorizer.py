"""Unit tests for LinkCategorizer -- LLM response parsing, normalisation and retry."""

from __future__ import annotations

import json
from unittest.mock import MagicMock

import pytest

from linkforge.services.categorizer import LinkCategorizer
from linkforge.utils.errors import CategorizationError, LLMError

_VALID = {
    "category": "LLM Frameworks",
    "tags": ["langchain", "agents"],
    "summary": "A framework for composing LLM calls.",
    "quality": "high",
    "forge_score": 0.9,
    "content_type": "tool",
    "purpose": "Build LLM apps",
    "key_concepts": ["chains", "tools"],
}


def _categorizer(mock_llm: MagicMock) -> LinkCategorizer:
    return LinkCategorizer(llm_provider=mock_llm)


# ─── Parsing ──────────────────────────────────────────────────────────


class TestParseResponse:
    def test_bare_json(self, mock_llm: MagicMock) -> None:
        result = _categorizer(mock_llm).parse_response(json.dumps(_VALID))

        assert result.category == "LLM Frameworks"
        assert result.tags == ["langchain", "agents"]
        assert result.forge_score == 0.9
        assert result.content_type == "tool"
        assert result.key_concepts == ["chains", "tools"]

    def test_markdown_fence(self, mock_llm: MagicMock) -> None:
        response = f"Here you go:\n```json\n{json.dumps(_VALID)}\n```\nHope that helps."
        assert _categorizer(mock_llm).parse_response(response).category == "LLM Frameworks"

    def test_braces_inside_prose(self, mock_llm: MagicMock) -> None:
        response = f"The categorisation is {json.dumps(_VALID)} as requested."
        assert _categorizer(mock_llm).parse_response(response).quality == "high"

    def test_no_json(self, mock_llm: MagicMock) -> None:
        with pytest.raises(CategorizationError, match="No JSON object"):
            _categorizer(mock_llm).parse_response("I cannot categorise this page.")

    def test_json_array_is_not_an_object(self, mock_llm: MagicMock) -> None:
        with pytest.raises(CategorizationError):
            _categorizer(mock_llm).parse_response('["tool"]')

    def test_missing_category_fails_validation(self, mock_llm: MagicMock) -> None:
        data = {k: v for k, v in _VALID.items() if k != "category"}
        with pytest.raises(CategorizationError, match="validation"):
            _categorizer(mock_llm).parse_response(json.dumps(data))


class TestNormalisation:
    def test_tags_are_cleaned_deduplicated_and_capped(self, mock_llm: MagicMock) -> None:
        data = dict(_VALID, tags=["Vector DB", "vector_db", "RAG", "", 7, "a", "b", "c", "d"])
        result = _categorizer(mock_llm).parse_response(json.dumps(data))
        assert result.tags == ["vector-db", "rag", "a", "b", "c"]

    @pytest.mark.parametrize(("raw", "expected"), [(1.7, 1.0), (-0.2, 0.0), (0.42, 0.42)])
    def test_forge_score_is_clamped(self, mock_llm: MagicMock, raw: float, expected: float) -> None:
        data = dict(_VALID, forge_score=raw)
        assert _categorizer(mock_llm).parse_response(json.dumps(data)).forge_score == expected

    def test_missing_forge_score_defaults(self, mock_llm: MagicMock) -> None:
        data = {k: v for k, v in _VALID.items() if k != "forge_score"}
        assert _categorizer(mock_llm).parse_response(json.dumps(data)).forge_score == 0.5

    def test_unknown_enums_fall_back(self, mock_llm: MagicMock) -> None:
        data = dict(_VALID, content_type="podcast", quality="stellar")
        result = _categorizer(mock_llm).parse_response(json.dumps(data))
        assert result.content_type == "reference"
        assert result.quality == "medium"

    def test_optional_text_fields(self, mock_llm: MagicMock) -> None:
        data = dict(_VALID, summary=None, purpose=3, key_concepts=["  x ", "", None])
        result = _categorizer(mock_llm).parse_response(json.dumps(data))
        assert result.summary == ""
        assert result.purpose == ""
        assert result.key_concepts == ["x"]


# ─── categorize() ─────────────────────────────────────────────────────


class TestCategorize:
    @pytest.mark.asyncio
    async def test_first_attempt_succeeds(self, mock_llm: MagicMock) -> None:
        mock_llm.complete.return_value = json.dumps(_VALID)

        result = await _categorizer(mock_llm).categorize(
            title="LangChain", description="Docs", text="body " * 2000, url="https://x.dev"
        )

        assert result.category == "LLM Frameworks"
        assert mock_llm.complete.await_count == 1
        kwargs = mock_llm.complete.await_args.kwargs
        assert kwargs["temperature"] == 0.2
        assert "URL: https://x.dev" in kwargs["user_prompt"]
        assert "Title: LangChain" in kwargs["user_prompt"]
        # Only an excerpt of the body is sent.
        assert len(kwargs["user_prompt"]) < 4200

    @pytest.mark.asyncio
    async def test_retries_with_simple_prompt(self, mock_llm: MagicMock) -> None:
        mock_llm.complete.side_effect = ["Sorry, here is prose only.", json.dumps(_VALID)]

        result = await _categorizer(mock_llm).categorize("T", "D", "text", "https://x.dev")

        assert result.content_type == "tool"
        assert mock_llm.complete.await_count == 2
        retry_kwargs = mock_llm.complete.await_args_list[1].kwargs
        assert retry_kwargs["temperature"] == 0.1
        assert retry_kwargs["max_tokens"] == 800

    @pytest.mark.asyncio
    async def test_gives_up_after_retry(self, mock_llm: MagicMock) -> None:
        mock_llm.complete.side_effect = ["nope", "still nope"]

        with pytest.raises(CategorizationError, match="after retry") as exc_info:
            await _categorizer(mock_llm).categorize("T", "D", "text", "https://x.dev")

        assert exc_info.value.provider_name == "fake_llm"

    @pytest.mark.asyncio
    async def test_provider_errors_propagate(self, mock_llm: MagicMock) -> None:
        mock_llm.complete.side_effect = LLMError("rate limited", provider_name="fake_llm")

        with pytest.raises(LLMError):
            await _categorizer(mock_llm).categorize("T", "D", "text", "https://x.dev")
        assert mock_llm.complete.await_count == 1
