"""Unit tests for log pattern extraction.

Tests the masking of variable tokens and the clustering of messages by
template.
"""

import pytest

from dd_triage.tools.logs.patterns import (
    PatternExtractor,
    extract_pattern,
    extract_patterns,
)


class TestExtractPattern:
    """Tests for masking a single message."""

    def test_uuid_and_ip(self):
        message = "User 123e4567-e89b-12d3-a456-426614174000 failed at 10.0.0.1"
        assert extract_pattern(message) == "User <UUID> failed at <IP>"

    @pytest.mark.parametrize(
        "message,expected",
        [
            ("Request took 250 ms", "Request took <N> ms"),
            ("retry 3 of 5", "retry <N> of <N>"),
            ("ts 12:30:05", "ts <N>:<N>:<N>"),
            ("sha " + "a" * 40, "sha <HEX>"),
            ("Mail sent to jane.doe+ops@example.co.uk", "Mail sent to <EMAIL>"),
            ("GET https://api.example.com/v1/users?id=7 failed", "GET <URL> failed"),
            ('Missing key "user_id" in payload', 'Missing key "<STR>" in payload'),
            ("Unknown flag 'verbose'", "Unknown flag '<STR>'"),
            ("host-12 and v2 stay", "host-<N> and v2 stay"),
        ],
    )
    def test_masks(self, message, expected):
        assert extract_pattern(message) == expected

    def test_whitespace_collapses(self):
        assert extract_pattern("  too   many \t spaces\n") == "too many spaces"

    def test_empty(self):
        assert extract_pattern("") == ""
        assert extract_pattern(None) == ""

    @pytest.mark.parametrize(
        "message",
        [
            "User 123e4567-e89b-12d3-a456-426614174000 failed at 10.0.0.1",
            "GET https://example.com/a/1 -> 500 for ops@example.com",
            'Key "abc" missing after 3 retries from 192.168.1.20',
            "plain text without variables",
        ],
    )
    def test_idempotent(self, message):
        """Masking a template again leaves it unchanged."""
        template = extract_pattern(message)
        assert extract_pattern(template) == template


class TestPatternExtractor:
    """Tests for clustering messages by template."""

    def test_clusters_similar_messages(self):
        extractor = PatternExtractor()
        for i in range(10):
            extractor.add(f"User {i} logged in")
        assert extractor.unique_patterns == 1
        assert extractor.total == 10

        [bucket] = extractor.get_patterns()
        assert bucket.pattern == "User <N> logged in"
        assert bucket.count == 10
        assert bucket.sample == "User 0 logged in"

    def test_sample_is_first_message(self):
        extractor = PatternExtractor().add_all(["retry 9", "retry 1", "retry 5"])
        assert extractor.get_patterns()[0].sample == "retry 9"

    def test_none_counts_as_empty(self):
        extractor = PatternExtractor().add_all([None, ""])
        [bucket] = extractor.get_patterns()
        assert bucket.pattern == ""
        assert bucket.count == 2


class TestExtractPatterns:
    def test_sorted_by_count_ties_first_seen(self):
        messages = ["alpha 1", "beta 1", "beta 2", "alpha 3", "gamma", "delta"]
        patterns = extract_patterns(messages)
        assert [(p.pattern, p.count) for p in patterns] == [
            ("alpha <N>", 2),
            ("beta <N>", 2),
            ("gamma", 1),
            ("delta", 1),
        ]

    def test_counts_sum_to_input_size(self):
        messages = [f"job {i % 3} done" for i in range(7)] + ["boot", "boot"]
        patterns = extract_patterns(messages)
        assert sum(p.count for p in patterns) == len(messages)
        assert all(p.count >= 1 for p in patterns)

    def test_limit(self):
        messages = [f"event-{chr(ord('a') + i)}" for i in range(10)]
        assert len(extract_patterns(messages, limit=3)) == 3
        assert extract_patterns(messages, limit=0) == []

    def test_empty_input(self):
        assert extract_patterns([]) == []
