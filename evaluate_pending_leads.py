#!/usr/bin/env python3
"""
Evaluate pending leads - run one follow-up decision cycle over the lead store

Conversation history is read from JSON exports in ./conversations/<sender_id>.json
(a list of {"role": ..., "content": ..., "created_at": ...} objects, oldest first).
Decisions are written to the followup_decisions audit table.
"""

import asyncio
import json
from datetime import datetime
from pathlib import Path

import structlog

from followup_engine.config import get_settings
from followup_engine.database.init_db import DatabaseManager
from followup_engine.domain.models import ConversationMessage
from followup_engine.services.followup_service import FollowupEvaluationService
from followup_engine.utils.log_config import configure_logging

logger = structlog.get_logger("followup.cli")

CONVERSATIONS_DIR = Path("./conversations")


async def load_history(lead):
    """Load a lead's conversation export, empty if none exists"""
    path = CONVERSATIONS_DIR / f"{lead.sender_id}.json"
    if not path.exists():
        logger.warning("No conversation export for lead", lead_id=lead.id)
        return []

    with open(path, "r", encoding="utf-8") as f:
        raw = json.load(f)

    messages = []
    for item in raw:
        created_at = item.get("created_at")
        if isinstance(created_at, str):
            item = {**item, "created_at": datetime.fromisoformat(created_at)}
        messages.append(ConversationMessage.from_dict(item))
    return messages


async def main():
    settings = get_settings()
    configure_logging(settings.log_level, json_output=not settings.debug)

    db_manager = DatabaseManager()
    await db_manager.init_database()

    try:
        service = FollowupEvaluationService(db_manager, settings=settings)
        results = await service.evaluate_pending_leads(load_history)

        print(f"\n{'=' * 60}")
        print(f"Evaluated {len(results)} leads")
        print(f"{'=' * 60}")
        for lead_id, decision in results:
            status = "SEND" if decision.should_follow_up else "HOLD"
            print(f"{status}  {lead_id}  score={decision.score.total:3d}  {decision.reasoning}")
    finally:
        await db_manager.close()


if __name__ == "__main__":
    asyncio.run(main())
