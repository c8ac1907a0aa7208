from __future__ import annotations

import asyncio
import json
import random
from dataclasses import dataclass, replace
from typing import Any, Callable, Iterable, Optional, Sequence, Tuple, Union

import pytest

from config import ExtractionConfig, ModelConfig
from oracle import OracleReply, StopReason
from prompts import CONCISE_SYSTEM_PROMPT, FULL_SYSTEM_PROMPT, SINGLE_LESSON_PROMPT


@dataclass(frozen=True)
class OracleCall:
    system_prompt: Optional[str]
    user_message: str
    max_output_tokens: int

    @property
    def kind(self) -> str:
        if self.system_prompt == FULL_SYSTEM_PROMPT:
            return "full"
        if self.system_prompt == CONCISE_SYSTEM_PROMPT:
            return "concise"
        if self.system_prompt == SINGLE_LESSON_PROMPT:
            return "lesson"
        if self.user_message.startswith("Extract ONLY the study title"):
            return "header"
        if self.user_message.startswith("Analyze this Bible study document"):
            return "analysis"
        return "unknown"


Reply = Union[OracleReply, str, BaseException]


class ScriptedOracle:
    """
    Stub oracle that answers through a responder function and records every call.

    The responder receives the OracleCall and returns a reply, a bare string
    (read as a complete reply), or an exception to raise. Optional random
    latency shuffles completion order among concurrent calls.
    """

    def __init__(
        self,
        responder: Callable[[OracleCall], Reply],
        latency: Tuple[float, float] = (0.0, 0.0),
        seed: int = 7,
    ):
        self.responder = responder
        self.latency = latency
        self.calls: list[OracleCall] = []
        self.in_flight = 0
        self.max_in_flight = 0
        self._rng = random.Random(seed)

    async def generate(self, system_prompt: Optional[str], user_message: str, max_output_tokens: int) -> OracleReply:
        call = OracleCall(system_prompt, user_message, max_output_tokens)
        self.calls.append(call)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            low, high = self.latency
            if high > 0:
                await asyncio.sleep(self._rng.uniform(low, high))
            reply = self.responder(call)
        finally:
            self.in_flight -= 1

        if isinstance(reply, BaseException):
            raise reply
        if isinstance(reply, str):
            return OracleReply(reply, StopReason.COMPLETE)
        return reply

    def calls_of(self, kind: str) -> list[OracleCall]:
        return [call for call in self.calls if call.kind == kind]


def truncated(text: str) -> OracleReply:
    return OracleReply(text, StopReason.LENGTH)


def question_dicts(count: int, order_start: int = 1) -> list[dict[str, Any]]:
    return [
        {"questionText": f"Question {i + 1}?", "questionType": "text", "order": order_start + i}
        for i in range(count)
    ]


def week_dict(
    title: str = "Lesson One: Sound Doctrine",
    days: Sequence[int] = (3,),
    week_number: int = 1,
) -> dict[str, Any]:
    """Week object with one day per entry in ``days`` holding that many questions."""
    return {
        "weekNumber": week_number,
        "title": title,
        "description": None,
        "days": [
            {
                "dayNumber": d + 1,
                "title": f"Day {d + 1}",
                "content": "Read the passage.",
                "scripture": "1 Timothy 1:3-7",
                "questions": question_dicts(count),
            }
            for d, count in enumerate(days)
        ],
    }


def study_envelope(weeks: Iterable[dict[str, Any]], title: str = "Sound Doctrine") -> str:
    return json.dumps(
        {
            "success": True,
            "study": {"title": title, "description": "A study of 1 Timothy", "author": None, "weeks": list(weeks)},
        }
    )


def clarification_envelope(question: str = "Which format does this study use?") -> str:
    return json.dumps(
        {
            "success": False,
            "clarifyingQuestions": [
                {"id": "q1", "question": question, "context": "Headers are inconsistent", "options": ["A", "B"]}
            ],
            "rawAnalysis": "Two possible structures",
        }
    )


HEADER_REPLY = json.dumps({"title": "Sound Doctrine", "description": "A study of 1 Timothy", "author": "J. Smith"})


def make_document(weeks: int, days: int, questions: int, filler_repeats: int, preamble: str = "") -> str:
    """Synthetic study with "Week N:" headers, "Day M:" blocks and numbered questions."""
    filler = "Read the passage slowly and consider its setting in the letter. " * filler_repeats
    parts = [preamble] if preamble else []
    for w in range(1, weeks + 1):
        lines = [f"Week {w}: Lesson title {w}"]
        for d in range(1, days + 1):
            lines.append(f"Day {d}: Day title {d}")
            lines.append(filler.strip())
            lines.extend(f"{q}. What does verse {q} teach us?" for q in range(1, questions + 1))
        parts.append("\n".join(lines))
    return "\n".join(parts)


@pytest.fixture
def config() -> ExtractionConfig:
    return ExtractionConfig(
        model=ModelConfig(name="test-model", max_output_tokens=16_000),
        oracle_timeout_seconds=5.0,
        analysis_enabled=False,
        debug_enabled=False,
    )


@pytest.fixture
def make_config(config: ExtractionConfig) -> Callable[..., ExtractionConfig]:
    def _make(**overrides: Any) -> ExtractionConfig:
        return replace(config, **overrides)

    return _make
