"""Heuristic taxonomies used by the conversation analyzer.

Rule order matters: topic ties keep the first label seen, intent ties go to
the earlier rule, and entities are reported in rule order.
"""

from __future__ import annotations

import re
from typing import NamedTuple


class TopicRule(NamedTuple):
    pattern: re.Pattern[str]
    topic: str
    weight: float


class EntityRule(NamedTuple):
    pattern: re.Pattern[str]
    type: str


class IntentRule(NamedTuple):
    pattern: re.Pattern[str]
    intent: str
    weight: float


def _words(*alternatives: str) -> re.Pattern[str]:
    return re.compile(r"\b(?:" + "|".join(alternatives) + r")\b", re.IGNORECASE)


TOPIC_RULES: tuple[TopicRule, ...] = (
    # Development activities
    TopicRule(_words("debug", "debugging", "bug", "error", "exception", "fix", "fixing",
                     "issue", "issues", "problem"), "debugging", 0.9),
    TopicRule(_words("architect", "architecture", "design", "structure", "pattern",
                     "system", "framework"), "architecture", 1.0),
    TopicRule(_words("implement", "implementation", "build", "develop", "code"),
              "implementation", 0.7),
    TopicRule(_words("test", "testing", "unit test", "integration", "spec"), "testing", 0.7),
    TopicRule(_words("deploy", "deployment", "release", "production", "staging"),
              "deployment", 0.6),
    TopicRule(_words("refactor", "refactoring", "cleanup", "optimize", "performance"),
              "refactoring", 0.7),
    # Technologies
    TopicRule(_words("database", "db", "sql", "query", "schema", "migration", "sqlite",
                     "postgres", "mysql", "performance"), "database", 0.9),
    TopicRule(_words("api", "endpoint", "rest", "graphql", "request", "response"), "api", 0.7),
    TopicRule(_words("frontend", "ui", "ux", "interface", "component", "react", "vue"),
              "frontend", 0.7),
    TopicRule(_words("backend", "server", "service", "microservice", "lambda"), "backend", 0.7),
    TopicRule(_words("security", "auth", "authentication", "authorization", "jwt", "oauth"),
              "security", 0.8),
    TopicRule(_words("docker", "container", "kubernetes", "deployment", r"ci/cd"), "devops", 0.6),
    # Concepts
    TopicRule(_words("memory", "storage", "cache", "persistence", "state"),
              "memory-management", 0.7),
    TopicRule(_words("hook", "plugin", "extension", "integration"), "integration", 0.6),
    TopicRule(_words("claude", "ai", "gpt", "llm", "automation"), "ai-integration", 0.8),
)

ENTITY_RULES: tuple[EntityRule, ...] = (
    EntityRule(_words("javascript", "js", "typescript", "ts", "python", "java", r"c\+\+",
                      "rust", "go", "php", "ruby"), "language"),
    EntityRule(_words("react", "vue", "angular", r"next\.js", "express", "fastapi", "django",
                      "flask", "spring"), "framework"),
    EntityRule(_words("postgresql", "postgres", "mysql", "mongodb", "sqlite", "redis",
                      "elasticsearch"), "database"),
    EntityRule(_words("docker", "kubernetes", "git", "github", "gitlab", "jenkins", "webpack",
                      "vite"), "tool"),
    EntityRule(_words("aws", "azure", "gcp", "vercel", "netlify", "heroku"), "cloud"),
    EntityRule(_words("claude", "mcp", "memory-service", "sqlite-vec", "chroma"), "project"),
)

ENTITY_CONFIDENCE = 0.8

INTENT_RULES: tuple[IntentRule, ...] = (
    IntentRule(_words("help", "how", "explain", "understand", "learn", "guide"), "learning", 0.7),
    IntentRule(_words("fix", "solve", "debug", "error", "problem", "issue"),
               "problem-solving", 0.8),
    IntentRule(_words("build", "create", "implement", "develop", "add"), "development", 0.7),
    IntentRule(_words("optimize", "improve", "enhance", "refactor", "better"),
               "optimization", 0.6),
    IntentRule(_words("review", "check", "analyze", "audit", "validate"), "review", 0.6),
    IntentRule(_words("plan", "design", "architect", "structure", "approach"), "planning", 0.7),
)

# Keywords a memory should mention to line up with a detected intent.
INTENT_KEYWORDS: dict[str, tuple[str, ...]] = {
    "learning": ("learn", "understand", "explain", "how", "tutorial", "guide"),
    "problem-solving": ("fix", "error", "debug", "issue", "problem", "solve"),
    "development": ("build", "create", "implement", "develop", "code", "feature"),
    "optimization": ("optimize", "improve", "performance", "faster", "better"),
    "review": ("review", "check", "analyze", "audit", "validate"),
    "planning": ("plan", "design", "architecture", "approach", "strategy"),
}

CODE_INDICATORS: tuple[str, ...] = (
    "code", "function", "class", "method", "variable", "api", "library",
)

# Code-context probes
CODE_BLOCK_RE = re.compile(r"```[\s\S]*?```")
INLINE_CODE_RE = re.compile(r"`[^`]+`")
FILE_PATH_RE = re.compile(
    r"\b[\w.-]+\.(?:js|ts|py|java|cpp|rs|go|php|rb|md|json|yaml|yml)\b", re.IGNORECASE
)
ERROR_MESSAGE_RE = _words("error", "exception", "failed", "traceback", "stack trace")
COMMAND_RE = re.compile(r"\$\s+[\w\-./]+")
URL_RE = re.compile(r"https?://\S+")
FENCE_LANGUAGE_RE = re.compile(r"```(\w+)")
