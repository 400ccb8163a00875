"""CLI entry point for the topic-change hook.

Designed to be called by the host on each user turn:
    memory-topic-hook

Reads JSON from stdin with the conversation text and, optionally, the
detected project profile:

    {"conversation_text": "...", "project": {"name": "...", "language": "..."}}

The camelCase keys ``conversationText`` and ``projectContext`` are accepted
too. When a context update is produced it is written to stdout; logs go to
stderr.
"""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from typing import Any, Optional

from pydantic import ValidationError

logging.basicConfig(
    level=logging.INFO,
    stream=sys.stderr,
    format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
)
logger = logging.getLogger(__name__)


def _read_payload(hook_input: dict[str, Any]) -> tuple[str, dict[str, Any]]:
    text = hook_input.get("conversation_text", hook_input.get("conversationText", ""))
    project = hook_input.get("project", hook_input.get("projectContext")) or {}
    if not isinstance(text, str):
        text = ""
    if not isinstance(project, dict):
        project = {}
    return text, project


async def _run(conversation_text: str, project_data: dict[str, Any]) -> tuple[dict, Optional[str]]:
    from memory_relevance.config import get_settings, load_hooks_config
    from memory_relevance.models import ProjectProfile, SessionContext
    from memory_relevance.updater import DynamicContextUpdater

    settings = get_settings()
    logging.getLogger().setLevel(settings.log_level.upper())

    config = load_hooks_config()
    if not config.hooks.topic_change.enabled:
        logger.info("Topic change hook is disabled, skipping")
        return {"processed": False, "reason": "disabled"}, None

    try:
        project = ProjectProfile.model_validate(project_data)
    except ValidationError:
        logger.warning("Ignoring malformed project profile", exc_info=True)
        project = ProjectProfile()

    # A hook process handles a single turn, so there is nothing to debounce.
    options = config.updater_options(settings).model_copy(update={"debounce_ms": 0})
    updater = DynamicContextUpdater(options=options)
    updater.initialize(SessionContext(project=project))

    injected: list[str] = []
    result = await updater.process_conversation_update(
        conversation_text, config.memory_service, injected.append
    )
    return result.model_dump(), injected[0] if injected else None


def main():
    """Entry point: read hook JSON from stdin, run one update, print the injection."""
    try:
        hook_input = json.load(sys.stdin)
    except (json.JSONDecodeError, ValueError):
        logger.error("Failed to parse JSON from stdin")
        sys.exit(1)

    if not isinstance(hook_input, dict):
        logger.error("Hook input must be a JSON object")
        sys.exit(1)

    conversation_text, project_data = _read_payload(hook_input)

    try:
        result, update_text = asyncio.run(_run(conversation_text, project_data))
    except Exception:
        logger.exception("Topic change processing failed")
        return

    logger.info("Topic change result: %s", json.dumps(result))
    if update_text:
        print(update_text)


if __name__ == "__main__":
    main()
