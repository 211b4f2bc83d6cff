"""Unit tests for the Pydantic domain models."""

from __future__ import annotations

import hashlib
from datetime import datetime, timezone
from pathlib import Path

import pytest
from pydantic import ValidationError

from linkforge.models.content import LinkCategorization, TextChunk
from linkforge.models.graph import ChunkNode, LinkNode, MatchType, SearchResult
from linkforge.models.queue import (
    TERMINAL_STATES,
    JobState,
    PayloadKind,
    QueueConfig,
    QueueJob,
    QueuePayload,
    QueueStats,
)

_NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


# ======================================================================
# Queue models
# ======================================================================


class TestJobState:
    def test_terminal_states(self) -> None:
        assert set(TERMINAL_STATES) == {JobState.COMPLETED, JobState.DEAD_LETTER}
        assert JobState.FAILED not in TERMINAL_STATES

    def test_values_round_trip_from_strings(self) -> None:
        assert JobState("dead_letter") is JobState.DEAD_LETTER


class TestQueuePayload:
    def test_for_url_canonicalises_key_and_parent(self) -> None:
        payload = QueuePayload.for_url(
            "HTTPS://Example.com:443/post#comments",
            parent_url="https://News.ycombinator.com/item?id=1",
            submitted_by="alice",
        )

        assert payload.kind is PayloadKind.URL
        assert payload.key == payload.ref == "https://example.com/post"
        assert payload.parent_url == "https://news.ycombinator.com/item?id=1"
        assert payload.submitted_by == "alice"

    def test_for_url_rejects_relative(self) -> None:
        with pytest.raises(ValueError):
            QueuePayload.for_url("/just/a/path")

    def test_for_file_hashes_content(self, tmp_path: Path) -> None:
        path = tmp_path / "paper.pdf"
        path.write_bytes(b"%PDF-1.7 fake")

        payload = QueuePayload.for_file(path)

        assert payload.kind is PayloadKind.FILE
        assert payload.key == hashlib.sha256(b"%PDF-1.7 fake").hexdigest()
        assert payload.ref == str(path)
        assert payload.file_name == "paper.pdf"

    def test_for_file_uses_given_hash_and_name(self, tmp_path: Path) -> None:
        payload = QueuePayload.for_file(
            tmp_path / "abc.pdf", file_name="Attention.pdf", content_hash="abc"
        )
        assert payload.key == "abc"
        assert payload.file_name == "Attention.pdf"

    def test_is_frozen(self) -> None:
        payload = QueuePayload.for_url("https://example.com/")
        with pytest.raises(ValidationError):
            payload.key = "other"  # type: ignore[misc]

    def test_empty_key_rejected(self) -> None:
        with pytest.raises(ValidationError):
            QueuePayload(kind=PayloadKind.URL, key="", ref="https://example.com/")


class TestQueueJob:
    def test_payload_view(self) -> None:
        job = QueueJob(
            id=4,
            payload_kind=PayloadKind.URL,
            payload_key="https://example.com/",
            payload_ref="https://example.com/",
            comment="worth a read",
            state=JobState.QUEUED,
            attempts=0,
            max_attempts=3,
            created_at=_NOW,
            updated_at=_NOW,
        )

        assert job.payload == QueuePayload(
            kind=PayloadKind.URL,
            key="https://example.com/",
            ref="https://example.com/",
            comment="worth a read",
        )

    def test_attempts_cannot_be_negative(self) -> None:
        with pytest.raises(ValidationError):
            QueueJob(
                id=1,
                payload_kind=PayloadKind.URL,
                payload_key="k",
                payload_ref="r",
                state=JobState.QUEUED,
                attempts=-1,
                max_attempts=3,
                created_at=_NOW,
                updated_at=_NOW,
            )


class TestQueueStatsAndConfig:
    def test_total_and_as_dict(self) -> None:
        stats = QueueStats(queued=2, processing=1, completed=5, dead_letter=1)

        assert stats.total == 9
        assert stats.as_dict() == {
            "queued": 2,
            "processing": 1,
            "completed": 5,
            "failed": 0,
            "dead_letter": 1,
        }

    def test_config_defaults(self) -> None:
        config = QueueConfig()
        assert config.max_attempts == 3
        assert config.lease_seconds == 300
        assert config.reclaim_counts_as_failure is False

    @pytest.mark.parametrize("field", [{"max_attempts": 0}, {"lease_seconds": 0}])
    def test_config_rejects_non_positive(self, field: dict) -> None:
        with pytest.raises(ValidationError):
            QueueConfig(**field)


# ======================================================================
# Graph and content models
# ======================================================================


class TestGraphModels:
    def test_chunk_id(self) -> None:
        assert ChunkNode.make_id("https://example.com/a", 3) == "https://example.com/a#chunk-3"

    def test_forge_score_bounds(self) -> None:
        with pytest.raises(ValidationError):
            LinkNode(url="https://example.com/", forge_score=1.5)

    def test_search_result_serialises_match_type(self) -> None:
        result = SearchResult(
            link=LinkNode(url="https://example.com/"),
            score=0.5,
            match_type=MatchType.KEYWORD,
        )
        assert result.model_dump(mode="json")["match_type"] == "keyword"


class TestContentModels:
    def test_categorization_requires_category(self) -> None:
        with pytest.raises(ValidationError):
            LinkCategorization(category="", forge_score=0.5)

    def test_categorization_forge_score_range(self) -> None:
        with pytest.raises(ValidationError):
            LinkCategorization(category="Tools", forge_score=-0.1)

    def test_chunk_index_non_negative(self) -> None:
        with pytest.raises(ValidationError):
            TextChunk(index=-1, text="x")
