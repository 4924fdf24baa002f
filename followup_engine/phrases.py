"""
Phrase lists used by the follow-up heuristics
Defaults are built in; a JSON file can override any list without a redeploy
"""

import json
from dataclasses import dataclass, fields, replace
from functools import lru_cache
from pathlib import Path
from typing import Iterable, List, Optional, Tuple

import structlog

logger = structlog.get_logger("followup.phrases")


@dataclass(frozen=True)
class PhraseBook:
    """All phrase/keyword lists consulted by the engine. Entries are lowercase."""

    # Hard limit: outgoing text that pressures the lead
    guilt_language: Tuple[str, ...] = (
        "still waiting",
        "haven't heard",
        "no response",
        "waiting for your",
        "following up again",
        "just checking if you",
        "did you get my",
        "please respond",
        "urgent",
    )

    # Lead messages that signal withdrawal
    disengagement: Tuple[str, ...] = (
        "busy",
        "later",
        "not now",
        "will check",
        "get back to you",
        "i'll think about it",
        "maybe later",
        "not interested",
        "no thanks",
        "stop",
        "unsubscribe",
    )

    # Lead messages that are an explicit "no"
    explicit_no: Tuple[str, ...] = (
        "not interested",
        "no thanks",
        "don't contact",
        "stop messaging",
        "remove me",
    )

    # Outgoing text signalling urgency, care or responsibility
    acceptable_signals: Tuple[str, ...] = (
        "just wanted to make sure",
        "in case you missed",
        "thought you might",
        "wanted to share",
        "quick update",
        "following up on your question",
        "as promised",
        "here's the info",
        "good news",
        "special for you",
    )

    # Outgoing text signalling anxiety, automation or desperation
    bad_signals: Tuple[str, ...] = (
        "still waiting",
        "haven't heard back",
        "did you see my",
        "please respond",
        "why no reply",
        "i really need",
        "last chance",
        "act now or",
        "don't miss out",
        "limited time only",
    )

    # Sub-classification of the primary signal
    urgency_markers: Tuple[str, ...] = ("urgent", "today", "asap")
    care_markers: Tuple[str, ...] = ("thought", "wanted")
    anxiety_markers: Tuple[str, ...] = ("waiting", "haven't heard")
    desperation_markers: Tuple[str, ...] = ("limited", "act now")

    # Time pressure keywords searched in the conversation tail
    urgency_keywords: Tuple[str, ...] = (
        "today",
        "tomorrow",
        "asap",
        "urgent",
        "deadline",
        "limited",
        "last chance",
        "ending soon",
        "sale ends",
        "only",
        "hurry",
    )

    # Pipeline stages that raise the stakes score
    high_value_stages: Tuple[str, ...] = ("qualified", "proposal", "negotiation", "hot")

    # Pipeline stages that justify proactive contact
    justifying_stages: Tuple[str, ...] = ("qualified", "proposal", "negotiation", "hot", "interested")


DEFAULT_PHRASES = PhraseBook()


def find_phrases(text: Optional[str], phrases: Iterable[str]) -> List[str]:
    """Return the phrases contained in text (case-insensitive substring match)"""
    if not text:
        return []
    lowered = text.lower()
    return [phrase for phrase in phrases if phrase in lowered]


def contains_any(text: Optional[str], phrases: Iterable[str]) -> bool:
    if not text:
        return False
    lowered = text.lower()
    return any(phrase in lowered for phrase in phrases)


def load_phrase_book(path: Optional[str]) -> PhraseBook:
    """
    Load phrase lists from a JSON object keyed by PhraseBook field name

    Missing keys keep their defaults. An unreadable file falls back to the
    built-in lists and is logged.
    """
    if not path:
        return DEFAULT_PHRASES

    file_path = Path(path)
    if not file_path.exists():
        logger.warning("Phrase book file not found, using defaults", path=str(file_path))
        return DEFAULT_PHRASES

    try:
        with open(file_path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        logger.error(f"Failed to load phrase book: {e}", path=str(file_path))
        return DEFAULT_PHRASES

    known = {f.name for f in fields(PhraseBook)}
    overrides = {}
    for key, values in data.items():
        if key not in known:
            logger.warning("Unknown phrase list ignored", key=key)
            continue
        if not isinstance(values, list):
            logger.warning("Phrase list must be an array", key=key)
            continue
        overrides[key] = tuple(str(v).lower() for v in values)

    logger.info("Phrase book loaded", path=str(file_path), overridden=sorted(overrides))
    return replace(DEFAULT_PHRASES, **overrides)


@lru_cache()
def get_phrase_book() -> PhraseBook:
    """Phrase book for the configured override file"""
    from .config import get_settings
    return load_phrase_book(get_settings().phrase_book_path)
