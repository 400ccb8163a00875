"""Heuristic topic, entity and intent extraction from conversation text."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Optional

from memory_relevance.analysis.patterns import (
    CODE_BLOCK_RE,
    COMMAND_RE,
    ENTITY_CONFIDENCE,
    ENTITY_RULES,
    ERROR_MESSAGE_RE,
    FENCE_LANGUAGE_RE,
    FILE_PATH_RE,
    INLINE_CODE_RE,
    INTENT_RULES,
    TOPIC_RULES,
    URL_RE,
)
from memory_relevance.models import (
    Analysis,
    AnalysisMetadata,
    CodeContext,
    Entity,
    Intent,
    Topic,
)

logger = logging.getLogger(__name__)

MAX_TOPICS = 10
CODE_CONTEXT_CONFIDENCE = 0.8


def analyze_conversation(
    conversation_text: Any,
    extract_topics: bool = True,
    extract_entities: bool = True,
    detect_intent: bool = True,
    detect_code_context: bool = True,
    min_topic_confidence: float = 0.3,
) -> Analysis:
    """Analyze conversation text for topics, entities, intent and code context.

    Never raises: a factor that fails is logged and left empty, and the
    analysis is built from whatever succeeded.
    """
    if conversation_text is None:
        text = ""
    elif isinstance(conversation_text, str):
        text = conversation_text
    else:
        text = str(conversation_text)

    topics: list[Topic] = []
    entities: list[Entity] = []
    intent: Optional[Intent] = None
    code_context: Optional[CodeContext] = None

    if extract_topics:
        try:
            topics = extract_topics_from_text(text, min_topic_confidence)
        except Exception:
            logger.warning("Topic extraction failed", exc_info=True)

    if extract_entities:
        try:
            entities = extract_entities_from_text(text)
        except Exception:
            logger.warning("Entity extraction failed", exc_info=True)

    if detect_intent:
        try:
            intent = detect_conversation_intent(text)
        except Exception:
            logger.warning("Intent detection failed", exc_info=True)

    if detect_code_context:
        try:
            code_context = detect_code_context_from_text(text)
        except Exception:
            logger.warning("Code context detection failed", exc_info=True)

    confidence = calculate_analysis_confidence(topics, entities, intent, code_context)

    logger.debug(
        "Found %d topics, %d entities, confidence: %.1f%%",
        len(topics),
        len(entities),
        confidence * 100,
    )

    return Analysis(
        topics=topics,
        entities=entities,
        intent=intent,
        code_context=code_context,
        confidence=confidence,
        metadata=AnalysisMetadata(
            length=len(text), analyzed_at=datetime.now(timezone.utc)
        ),
    )


def extract_topics_from_text(text: str, min_confidence: float = 0.3) -> list[Topic]:
    """Score each topic rule and keep the best labels above ``min_confidence``."""
    scores: dict[str, float] = {}

    for rule in TOPIC_RULES:
        matches = len(rule.pattern.findall(text))
        if matches == 0:
            continue
        score = min(matches * rule.weight * 0.3, 1.0)
        if score >= min_confidence:
            scores[rule.topic] = max(scores.get(rule.topic, 0.0), score)

    topics = [
        Topic(name=name, confidence=score, weight=score) for name, score in scores.items()
    ]
    topics.sort(key=lambda t: t.confidence, reverse=True)
    return topics[:MAX_TOPICS]


def extract_entities_from_text(text: str) -> list[Entity]:
    """Collect technology mentions, lower-cased and de-duplicated by name."""
    entities: list[Entity] = []
    seen: set[str] = set()

    for rule in ENTITY_RULES:
        for match in rule.pattern.findall(text):
            name = match.lower()
            if name in seen:
                continue
            seen.add(name)
            entities.append(Entity(name=name, type=rule.type, confidence=ENTITY_CONFIDENCE))

    return entities


def detect_conversation_intent(text: str) -> Optional[Intent]:
    best: Optional[Intent] = None
    best_score = 0.0

    for rule in INTENT_RULES:
        matches = len(rule.pattern.findall(text))
        if matches == 0:
            continue
        score = min(matches * rule.weight * 0.3, 1.0)
        if score > best_score:
            best_score = score
            best = Intent(name=rule.intent, confidence=score)

    return best


def detect_code_context_from_text(text: str) -> CodeContext:
    flags = {
        "has_code_blocks": bool(CODE_BLOCK_RE.search(text)),
        "has_inline_code": bool(INLINE_CODE_RE.search(text)),
        "has_file_paths": bool(FILE_PATH_RE.search(text)),
        "has_error_messages": bool(ERROR_MESSAGE_RE.search(text)),
        "has_commands": bool(COMMAND_RE.search(text)),
        "has_urls": bool(URL_RE.search(text)),
    }

    languages: list[str] = []
    for lang in FENCE_LANGUAGE_RE.findall(text):
        lang = lang.lower()
        if lang not in languages:
            languages.append(lang)

    return CodeContext(
        **flags,
        languages=languages,
        is_code_related=any(flags.values()) or bool(languages),
    )


def calculate_analysis_confidence(
    topics: list[Topic],
    entities: list[Entity],
    intent: Optional[Intent],
    code_context: Optional[CodeContext],
) -> float:
    """Mean of the confidence of every factor that produced something."""
    factors: list[float] = []

    if topics:
        factors.append(sum(t.confidence for t in topics) / len(topics))
    if entities:
        factors.append(sum(e.confidence for e in entities) / len(entities))
    if intent is not None:
        factors.append(intent.confidence)
    if code_context is not None and code_context.is_code_related:
        factors.append(CODE_CONTEXT_CONFIDENCE)

    return sum(factors) / len(factors) if factors else 0.0
