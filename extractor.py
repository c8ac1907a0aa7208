import asyncio
import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Awaitable, Callable, Generic, List, Optional, Sequence, Tuple, TypeVar

from pydantic import ValidationError

from config import DEFAULT_CONFIG, ExtractionConfig
from json_recovery import attempt_partial_parse, safe_parse_json
from oracle import Oracle, OracleReply, call_oracle
from prompts import (
    CONCISE_SYSTEM_PROMPT,
    FULL_SYSTEM_PROMPT,
    SINGLE_LESSON_PROMPT,
    build_analysis_prompt,
    build_document_message,
    build_header_prompt,
    build_lesson_message,
)
from result import (
    AllSegmentsFailedError,
    ExtractionError,
    JSONParseError,
    OracleNoResponseError,
    OutputTruncatedError,
)
from schemas import DocumentAnalysis, ParsedStudy, ParsedWeek, Segment, StudyEnvelope, StudyHeader

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class LessonResult:
    """One successfully parsed lesson, tagged with its segment position."""
    position: int
    week: ParsedWeek
    salvaged: bool = False


def save_debug_text(config: ExtractionConfig, name: str, text: str) -> None:
    """Write an intermediate artifact to the debug directory when enabled."""
    if not config.debug_enabled:
        return
    debug_dir = Path(config.debug_dir)
    debug_dir.mkdir(parents=True, exist_ok=True)
    timestamp = time.strftime("%Y%m%d_%H%M%S")
    path = debug_dir / f"{name}_{timestamp}.txt"
    path.write_text(text, encoding="utf-8")
    logger.debug("Saved debug output to: %s", path)


def _has_study_weeks(data: Any) -> bool:
    if not isinstance(data, dict):
        return False
    study = data.get("study", data)
    return isinstance(study, dict) and bool(study.get("weeks"))


def _has_days(data: Any) -> bool:
    return isinstance(data, dict) and bool(data.get("days"))


def _parse_reply(reply: OracleReply, label: str, accept_partial: Callable[[Any], bool]) -> Tuple[Any, bool]:
    """
    Turn a raw reply into JSON data.

    Returns ``(data, salvaged)``. A reply cut at the output ceiling goes
    through truncation recovery and is only kept when ``accept_partial``
    finds a usable fragment in it.
    """
    if not reply.text.strip():
        raise OracleNoResponseError()

    if reply.truncated:
        logger.warning("[%s] Response was truncated at the output ceiling, attempting recovery", label)
        data = attempt_partial_parse(reply.text, label)
        if data is not None and accept_partial(data):
            logger.info("[%s] Successfully recovered partial data", label)
            return data, True
        raise OutputTruncatedError(
            "Response was truncated and could not be recovered",
            raw_text=reply.text,
        )

    return safe_parse_json(reply.text, label), False


def _to_envelope(data: Any) -> StudyEnvelope:
    if not isinstance(data, dict):
        raise JSONParseError("Expected a JSON object at the top level")
    # A bare study object is accepted as a successful reply
    if "study" not in data and "weeks" in data:
        data = {"success": True, "study": data}
    try:
        return StudyEnvelope.model_validate(data)
    except ValidationError as e:
        raise JSONParseError(f"Response did not match the study schema: {e}") from e


async def analyze_document_structure(
    oracle: Oracle,
    document_text: str,
    config: ExtractionConfig = DEFAULT_CONFIG,
) -> DocumentAnalysis:
    """Brief structural summary of the document; never raises."""
    label = "analyzeDocumentStructure"
    try:
        reply = await call_oracle(
            oracle,
            None,
            build_analysis_prompt(document_text[:config.analysis_scan_chars]),
            config.analysis_max_output_tokens,
            config.oracle_timeout_seconds,
            label,
        )
        if not reply.text.strip():
            raise OracleNoResponseError()
        return DocumentAnalysis.model_validate(safe_parse_json(reply.text, label))
    except (ExtractionError, ValidationError) as e:
        issue = f"Failed to parse analysis: {e}"
    except Exception as e:
        logger.exception("[%s] Error", label)
        issue = str(e) or type(e).__name__

    return DocumentAnalysis(summary="Error analyzing document", confidence=0.0, potential_issues=[issue])


async def extract_header(
    oracle: Oracle,
    document_text: str,
    config: ExtractionConfig = DEFAULT_CONFIG,
) -> StudyHeader:
    """Title, description and author from the document's opening; defaults on any failure."""
    label = "parseHeader"
    default = StudyHeader(title=config.default_study_title)
    try:
        reply = await call_oracle(
            oracle,
            None,
            build_header_prompt(document_text[:config.header_scan_chars]),
            config.header_max_output_tokens,
            config.oracle_timeout_seconds,
            label,
        )
        if not reply.text.strip():
            raise OracleNoResponseError()
        header = StudyHeader.model_validate(safe_parse_json(reply.text, label))
    except (ExtractionError, ValidationError) as e:
        logger.warning("[%s] Using default study header: %s", label, e)
        return default
    except Exception:
        logger.exception("[%s] Error parsing header", label)
        return default

    return StudyHeader(
        title=header.title or default.title,
        description=header.description,
        author=header.author,
    )


async def extract_full_document(
    oracle: Oracle,
    document_text: str,
    transcript: str = "",
    config: ExtractionConfig = DEFAULT_CONFIG,
) -> Tuple[StudyEnvelope, bool]:
    """Single verbose call over the whole document."""
    label = "parseDocument"
    reply = await call_oracle(
        oracle,
        FULL_SYSTEM_PROMPT,
        build_document_message(document_text, transcript),
        config.full_max_output_tokens,
        config.oracle_timeout_seconds,
        label,
    )
    save_debug_text(config, "full_reply", reply.text)
    data, salvaged = _parse_reply(reply, label, _has_study_weeks)
    return _to_envelope(data), salvaged


async def extract_concise_document(
    oracle: Oracle,
    document_text: str,
    transcript: str = "",
    config: ExtractionConfig = DEFAULT_CONFIG,
) -> Tuple[StudyEnvelope, bool]:
    """Single structure-only call over a document capped at ``max_concise_chars``."""
    label = "parseDocumentConcise"
    if len(document_text) > config.max_concise_chars:
        logger.info(
            "[%s] Truncating document from %d to %d chars",
            label, len(document_text), config.max_concise_chars,
        )
        document_text = document_text[:config.max_concise_chars] + config.truncation_marker

    reply = await call_oracle(
        oracle,
        CONCISE_SYSTEM_PROMPT,
        build_document_message(document_text, transcript, concise=True),
        config.concise_max_output_tokens,
        config.oracle_timeout_seconds,
        label,
    )
    save_debug_text(config, "concise_reply", reply.text)
    data, salvaged = _parse_reply(reply, label, _has_study_weeks)
    return _to_envelope(data), salvaged


async def extract_lesson(
    oracle: Oracle,
    segment: Segment,
    transcript: str = "",
    config: ExtractionConfig = DEFAULT_CONFIG,
) -> Optional[LessonResult]:
    """Parse one lesson chunk. Failures are logged and returned as None."""
    label = f"parseLesson-{segment.index}"
    try:
        reply = await call_oracle(
            oracle,
            SINGLE_LESSON_PROMPT,
            build_lesson_message(segment.text, segment.index, transcript),
            config.lesson_max_output_tokens,
            config.oracle_timeout_seconds,
            label,
        )
        save_debug_text(config, f"lesson_{segment.index:03d}_reply", reply.text)
        data, salvaged = _parse_reply(reply, label, _has_days)
        if not isinstance(data, dict):
            raise JSONParseError("Expected a JSON object for the lesson")
        week = ParsedWeek.model_validate(data)
    except (ExtractionError, ValidationError) as e:
        logger.warning("[%s] Failed to parse lesson %d: %s", label, segment.index + 1, e)
        return None
    except Exception:
        logger.exception("[%s] Error parsing lesson %d", label, segment.index + 1)
        return None

    return LessonResult(position=segment.index, week=week, salvaged=salvaged)


class ConcurrencyBatcher(Generic[T]):
    """
    Runs a worker over segments in consecutive batches of ``batch_size``.

    Calls within a batch run concurrently; the next batch starts only after
    every call of the current one has settled. Each call writes only its own
    slot in ``results``, so output order is input order whatever the
    completion order. On cancellation, slots from finished batches stay intact.
    """

    def __init__(self, worker: Callable[[Segment], Awaitable[Optional[T]]], batch_size: int = 3):
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        self.worker = worker
        self.batch_size = batch_size
        self.results: List[Optional[T]] = []
        self.batches_completed = 0

    async def _run_one(self, position: int, segment: Segment) -> None:
        try:
            self.results[position] = await self.worker(segment)
        except Exception:
            logger.exception("Segment %d failed", segment.index + 1)

    async def run(self, segments: Sequence[Segment]) -> List[Optional[T]]:
        self.results = [None] * len(segments)
        self.batches_completed = 0
        total_batches = -(-len(segments) // self.batch_size)  # Ceiling division

        for start in range(0, len(segments), self.batch_size):
            batch = segments[start:start + self.batch_size]
            logger.info(
                "Batch %d/%d: segments %d-%d",
                self.batches_completed + 1, total_batches, start + 1, start + len(batch),
            )
            await asyncio.gather(
                *(self._run_one(start + offset, segment) for offset, segment in enumerate(batch))
            )
            self.batches_completed += 1

        return list(self.results)


async def run_in_batches(
    oracle: Oracle,
    segments: Sequence[Segment],
    transcript: str = "",
    config: ExtractionConfig = DEFAULT_CONFIG,
) -> List[Optional[LessonResult]]:
    """Extract every segment with at most ``segment_batch_size`` calls in flight."""

    async def worker(segment: Segment) -> Optional[LessonResult]:
        return await extract_lesson(oracle, segment, transcript, config)

    batcher: ConcurrencyBatcher[LessonResult] = ConcurrencyBatcher(worker, config.segment_batch_size)
    return await batcher.run(segments)


def renumber_study(study: ParsedStudy) -> ParsedStudy:
    """Rewrite week, day and question numbering to contiguous 1..N sequences."""
    weeks = []
    for week_number, week in enumerate(study.weeks, 1):
        days = []
        for day_number, day in enumerate(week.days, 1):
            questions = [
                question.model_copy(update={"order": order})
                for order, question in enumerate(day.questions, 1)
            ]
            days.append(day.model_copy(update={"day_number": day_number, "questions": questions}))
        weeks.append(week.model_copy(update={"week_number": week_number, "days": days}))
    return study.model_copy(update={"weeks": weeks})


def assemble_study(header: StudyHeader, outcomes: Sequence[Optional[LessonResult]]) -> ParsedStudy:
    """Merge surviving lessons in segment order under the study header."""
    survivors = sorted((o for o in outcomes if o is not None), key=lambda o: o.position)
    dropped = len(outcomes) - len(survivors)
    if not survivors:
        raise AllSegmentsFailedError()
    if dropped:
        logger.warning("Dropped %d of %d lessons that failed to parse", dropped, len(outcomes))

    study = ParsedStudy(
        title=header.title or "",
        description=header.description,
        author=header.author,
        weeks=[o.week for o in survivors],
    )
    return renumber_study(study)
