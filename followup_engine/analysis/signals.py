"""
Spam Signal Classifier
Does an outgoing message read as urgency/care/responsibility, or as anxiety/automation/desperation?
Informational only: exposed to callers, never a decision gate
"""

from typing import Optional

from ..domain.models import SpamSignalAnalysis, SpamSignalType
from ..phrases import PhraseBook, get_phrase_book, contains_any, find_phrases
from ..utils.helpers import round_half_up

NEUTRAL_INDICATOR = "(neutral tone - acceptable)"


def classify_spam_signal(message: str, phrases: Optional[PhraseBook] = None) -> SpamSignalAnalysis:
    """
    Classify the motive an outgoing message signals

    Majority of matched phrases decides; ties and no matches count as acceptable.
    """
    phrases = phrases or get_phrase_book()

    acceptable = find_phrases(message, phrases.acceptable_signals)
    bad = find_phrases(message, phrases.bad_signals)
    indicators = [f'✓ "{p}"' for p in acceptable] + [f'✗ "{p}"' for p in bad]

    total = len(acceptable) + len(bad)

    if total == 0:
        return SpamSignalAnalysis(
            primary_signal=SpamSignalType.CARE,
            is_acceptable=True,
            confidence=50,
            indicators=[NEUTRAL_INDICATOR],
        )

    if len(acceptable) >= len(bad):
        if contains_any(message, phrases.urgency_markers):
            primary = SpamSignalType.URGENCY
        elif contains_any(message, phrases.care_markers):
            primary = SpamSignalType.CARE
        else:
            primary = SpamSignalType.RESPONSIBILITY
        is_acceptable = True
    else:
        if contains_any(message, phrases.anxiety_markers):
            primary = SpamSignalType.ANXIETY
        elif contains_any(message, phrases.desperation_markers):
            primary = SpamSignalType.DESPERATION
        else:
            primary = SpamSignalType.AUTOMATION
        is_acceptable = False

    margin = abs(len(acceptable) - len(bad)) / total
    confidence = round_half_up(50 + min(50.0, margin * 50))

    return SpamSignalAnalysis(
        primary_signal=primary,
        is_acceptable=is_acceptable,
        confidence=confidence,
        indicators=indicators,
    )
