import logging
import re
from typing import List, Pattern, Sequence, Tuple

from schemas import Segment

logger = logging.getLogger(__name__)

_WORD_NUMBERS = (
    "One|Two|Three|Four|Five|Six|Seven|Eight|Nine|Ten|Eleven|Twelve|Thirteen|"
    "Fourteen|Fifteen|Sixteen|Seventeen|Eighteen|Nineteen|Twenty"
)

# Tried in order; the first pattern that yields two or more lessons wins
LESSON_PATTERNS: Sequence[Tuple[str, Pattern[str]]] = (
    ("lesson_word", re.compile(rf"\n(?=Lesson\s+(?:{_WORD_NUMBERS})[:\s])", re.IGNORECASE)),
    ("lesson_word_caps", re.compile(r"\n(?=LESSON\s+(?:ONE|TWO|THREE|FOUR|FIVE|SIX|SEVEN|EIGHT|NINE|TEN|ELEVEN|TWELVE)[:\s])")),
    ("week_number", re.compile(r"\n(?=Week\s+\d+[:\s])", re.IGNORECASE)),
    ("week_number_caps", re.compile(r"\n(?=WEEK\s+\d+[:\s])")),
    ("chapter_number", re.compile(r"\n(?=Chapter\s+\d+[:\s])", re.IGNORECASE)),
)


def split_with_pattern(document_text: str, pattern: Pattern[str], min_chars: int = 100) -> List[str]:
    """Split on a header pattern, keeping only parts longer than ``min_chars`` once trimmed."""
    parts = pattern.split(document_text)
    if len(parts) < 2:
        return []
    return [part for part in parts if len(part.strip()) > min_chars]


def split_into_lessons(
    document_text: str,
    min_chars: int = 100,
    patterns: Sequence[Tuple[str, Pattern[str]]] = LESSON_PATTERNS,
) -> List[Segment]:
    """
    Split a document into per-lesson segments using header heuristics.

    Returns the whole document as a single segment when no pattern produces at
    least two non-trivial parts; callers read that as "could not segment".
    """
    for name, pattern in patterns:
        parts = split_with_pattern(document_text, pattern, min_chars)
        if len(parts) > 1:
            logger.info("Split into %d lessons using '%s' headers", len(parts), name)
            return [Segment(index=i, text=part) for i, part in enumerate(parts)]

    logger.info("No lesson headers matched; document kept as one segment")
    return [Segment(index=0, text=document_text)]
