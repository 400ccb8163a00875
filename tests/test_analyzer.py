"""Tests for conversation analysis and topic-change detection."""

from __future__ import annotations

import pytest

from memory_relevance.analysis.analyzer import (
    analyze_conversation,
    calculate_analysis_confidence,
    detect_code_context_from_text,
    detect_conversation_intent,
    extract_entities_from_text,
    extract_topics_from_text,
)
from memory_relevance.analysis.changes import detect_topic_changes
from memory_relevance.models import Analysis, Intent, Topic

SQLITE_DEBUG_TEXT = (
    "Let me debug this SQLite performance issue in the mcp-memory-service database."
)


def _analysis(topics=(), intent=None) -> Analysis:
    return Analysis(
        topics=[Topic(name=name, confidence=conf, weight=conf) for name, conf in topics],
        intent=Intent(name=intent[0], confidence=intent[1]) if intent else None,
    )


# ---------------------------------------------------------------------------
# Analyzer
# ---------------------------------------------------------------------------

class TestAnalyzeConversation:
    def test_fresh_session_strong_topic(self):
        analysis = analyze_conversation(SQLITE_DEBUG_TEXT)

        topics = {t.name: t.confidence for t in analysis.topics}
        assert topics["database"] == pytest.approx(0.81)
        assert topics["debugging"] == pytest.approx(0.54)
        # Single weak mentions stay below the default threshold
        assert "backend" not in topics
        assert "memory-management" not in topics

        entity_names = [e.name for e in analysis.entities]
        assert "sqlite" in entity_names
        assert analysis.intent is not None
        assert analysis.intent.name == "problem-solving"
        assert 0.0 < analysis.confidence <= 1.0
        assert analysis.metadata.length == len(SQLITE_DEBUG_TEXT)

    def test_topics_sorted_by_confidence(self):
        analysis = analyze_conversation(SQLITE_DEBUG_TEXT)
        confidences = [t.confidence for t in analysis.topics]
        assert confidences == sorted(confidences, reverse=True)

    def test_empty_text(self):
        analysis = analyze_conversation("")
        assert analysis.topics == []
        assert analysis.entities == []
        assert analysis.intent is None
        assert analysis.confidence == 0
        assert analysis.code_context is not None
        assert not analysis.code_context.is_code_related

    @pytest.mark.parametrize("value", [None, 12345, ["not", "text"]])
    def test_malformed_input_does_not_raise(self, value):
        analysis = analyze_conversation(value)
        assert isinstance(analysis, Analysis)

    def test_deterministic(self):
        first = analyze_conversation(SQLITE_DEBUG_TEXT)
        second = analyze_conversation(SQLITE_DEBUG_TEXT)
        assert first.topics == second.topics
        assert first.entities == second.entities
        assert first.intent == second.intent
        assert first.confidence == second.confidence

    def test_factors_can_be_disabled(self):
        analysis = analyze_conversation(
            SQLITE_DEBUG_TEXT,
            extract_topics=False,
            extract_entities=False,
            detect_intent=False,
            detect_code_context=False,
        )
        assert analysis.topics == []
        assert analysis.entities == []
        assert analysis.intent is None
        assert analysis.code_context is None
        assert analysis.confidence == 0


class TestTopics:
    def test_min_confidence_filters(self):
        assert extract_topics_from_text("check the api", 0.3) == []
        topics = extract_topics_from_text("check the api", 0.2)
        assert [t.name for t in topics] == ["api"]
        assert topics[0].confidence == pytest.approx(0.21)
        assert topics[0].weight == topics[0].confidence

    def test_score_capped_at_one(self):
        text = "architecture design structure pattern system framework architect"
        topics = extract_topics_from_text(text)
        assert topics[0].name == "architecture"
        assert topics[0].confidence == 1.0

    def test_word_boundaries(self):
        # "debugger" and "apis" are not whole-word matches
        assert extract_topics_from_text("debugger apis", 0.0) == []

    def test_case_insensitive(self):
        topics = extract_topics_from_text("DEBUG the BUG", 0.3)
        assert topics[0].name == "debugging"

    def test_at_most_ten_topics(self):
        text = " ".join(
            ["debug bug", "architecture design", "implement build", "test testing",
             "deploy release", "refactor cleanup", "database sql", "api endpoint",
             "frontend ui", "backend server", "security auth", "docker container",
             "memory cache", "hook plugin", "claude llm"]
        )
        topics = extract_topics_from_text(text)
        assert len(topics) == 10


class TestEntities:
    def test_lowercased_and_deduplicated(self):
        entities = extract_entities_from_text("Python and python and PYTHON with React")
        assert [(e.name, e.type) for e in entities] == [
            ("python", "language"),
            ("react", "framework"),
        ]
        assert all(e.confidence == 0.8 for e in entities)

    def test_project_entities(self):
        entities = extract_entities_from_text("Storing vectors with sqlite-vec behind MCP")
        names = {e.name: e.type for e in entities}
        assert names["sqlite-vec"] == "project"
        assert names["mcp"] == "project"
        # "sqlite" in "sqlite-vec" is also a whole word
        assert names["sqlite"] == "database"


class TestIntent:
    def test_highest_score_wins(self):
        intent = detect_conversation_intent("help me fix this")
        assert intent.name == "problem-solving"
        assert intent.confidence == pytest.approx(0.24)

    def test_tie_goes_to_earlier_rule(self):
        intent = detect_conversation_intent("optimize then review")
        assert intent.name == "optimization"

    def test_no_intent(self):
        assert detect_conversation_intent("the weather is nice") is None


class TestCodeContext:
    def test_all_probes(self):
        text = (
            "Run `pytest` on src/app.py, see https://example.com/docs\n"
            "$ npm install\n"
            "```python\nprint('hi')\n```\n"
            "```Bash\nls\n```\n"
            "Got a Traceback"
        )
        ctx = detect_code_context_from_text(text)
        assert ctx.has_code_blocks
        assert ctx.has_inline_code
        assert ctx.has_file_paths
        assert ctx.has_urls
        assert ctx.has_commands
        assert ctx.has_error_messages
        assert ctx.languages == ["python", "bash"]
        assert ctx.is_code_related

    def test_plain_prose(self):
        ctx = detect_code_context_from_text("Let's talk about the roadmap")
        assert not ctx.is_code_related
        assert ctx.languages == []


def test_confidence_is_mean_of_present_factors():
    analysis = analyze_conversation("debug debug")
    # debugging topic 0.54 and problem-solving intent 0.48, nothing else
    assert analysis.confidence == pytest.approx((0.54 + 0.48) / 2)


def test_confidence_counts_code_context():
    assert calculate_analysis_confidence([], [], None, None) == 0.0
    ctx = detect_code_context_from_text("`x`")
    assert calculate_analysis_confidence([], [], None, ctx) == pytest.approx(0.8)


# ---------------------------------------------------------------------------
# Change detection
# ---------------------------------------------------------------------------

class TestDetectTopicChanges:
    def test_first_analysis(self):
        change = detect_topic_changes(None, analyze_conversation(SQLITE_DEBUG_TEXT))
        assert change.has_topic_shift
        assert change.significance_score >= 0.4
        assert change.significance_score == pytest.approx(0.8)
        assert {t.name for t in change.new_topics} == {"debugging", "database"}

    def test_first_analysis_ignores_weak_topics(self):
        change = detect_topic_changes(None, _analysis(topics=[("api", 0.3)]))
        assert not change.has_topic_shift
        assert change.significance_score == 0

    def test_identical_analyses(self):
        analysis = analyze_conversation(SQLITE_DEBUG_TEXT)
        change = detect_topic_changes(analysis, analysis)
        assert not change.has_topic_shift
        assert change.new_topics == []
        assert not change.changed_intents
        assert change.significance_score == 0

    def test_intent_change_alone_is_a_shift(self):
        previous = _analysis(topics=[("api", 0.5)], intent=("learning", 0.6))
        current = _analysis(topics=[("api", 0.5)], intent=("problem-solving", 0.6))
        change = detect_topic_changes(previous, current)
        assert change.changed_intents
        assert change.significance_score == pytest.approx(0.4)
        assert change.has_topic_shift

    def test_lost_intent_is_not_a_change(self):
        previous = _analysis(intent=("learning", 0.6))
        change = detect_topic_changes(previous, _analysis())
        assert not change.changed_intents

    def test_new_topic_needs_more_than_point_four(self):
        previous = _analysis(topics=[("api", 0.5)])
        current = _analysis(topics=[("api", 0.5), ("security", 0.4), ("testing", 0.45)])
        change = detect_topic_changes(previous, current)
        assert [t.name for t in change.new_topics] == ["testing"]
        assert change.significance_score == pytest.approx(0.3)
        assert change.has_topic_shift

    def test_significance_bounded_and_consistent(self):
        names = ["debugging", "database", "api", "security", "testing"]
        previous = _analysis(topics=[("api", 0.9)], intent=("learning", 0.5))
        for count in range(len(names) + 1):
            for intent in (None, ("learning", 0.5), ("review", 0.5)):
                current = _analysis(topics=[(n, 0.9) for n in names[:count]], intent=intent)
                change = detect_topic_changes(previous, current)
                assert 0.0 <= change.significance_score <= 1.0
                assert change.has_topic_shift == (change.significance_score >= 0.3)

    def test_no_current_analysis(self):
        change = detect_topic_changes(_analysis(), None)
        assert not change.has_topic_shift
        assert change.significance_score == 0
