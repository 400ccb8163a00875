"""Topic-shift detection between consecutive conversation analyses."""

from __future__ import annotations

from typing import Optional

from memory_relevance.models import Analysis, TopicChange

# A first analysis counts a topic as new above this confidence.
FIRST_ANALYSIS_MIN_CONFIDENCE = 0.3
# Later analyses need more confidence before a topic counts as new.
NEW_TOPIC_MIN_CONFIDENCE = 0.4
SHIFT_THRESHOLD = 0.3


def detect_topic_changes(
    previous: Optional[Analysis], current: Optional[Analysis]
) -> TopicChange:
    """Compare two analyses and score how far the conversation moved."""
    if current is None:
        return TopicChange()

    if previous is None:
        new_topics = [
            t for t in current.topics if t.confidence > FIRST_ANALYSIS_MIN_CONFIDENCE
        ]
        significance = min(len(new_topics) * 0.4, 1.0)
        return TopicChange(
            has_topic_shift=bool(new_topics),
            new_topics=new_topics,
            significance_score=significance,
        )

    previous_names = {t.name for t in previous.topics}
    new_topics = [
        t
        for t in current.topics
        if t.name not in previous_names and t.confidence > NEW_TOPIC_MIN_CONFIDENCE
    ]

    previous_intent = previous.intent.name if previous.intent else None
    changed_intents = (
        current.intent is not None and current.intent.name != previous_intent
    )

    significance = len(new_topics) * 0.3
    if changed_intents:
        significance += 0.4
    significance = min(significance, 1.0)

    return TopicChange(
        has_topic_shift=significance >= SHIFT_THRESHOLD,
        new_topics=new_topics,
        changed_intents=changed_intents,
        significance_score=significance,
    )
