"""Extraction pipeline orchestration."""

import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

from config import DEFAULT_CONFIG, ExtractionConfig
from extractor import (
    assemble_study,
    extract_concise_document,
    extract_full_document,
    extract_header,
    renumber_study,
    run_in_batches,
    save_debug_text,
)
from oracle import Oracle, OpenAIOracle
from prompts import build_clarification_transcript
from result import (
    EmptyInputError,
    ExtractionError,
    ExtractionResult,
    JSONParseError,
    OutputTruncatedError,
)
from schemas import ClarifyingQuestion, ExtractionRequest, Segment, StudyEnvelope
from segmenter import split_into_lessons
from validation import validate_parsed_study

logger = logging.getLogger(__name__)

FULL_DOCUMENT = "full_document"
SEGMENTED = "segmented"
CONCISE = "concise"


@dataclass
class DocumentStrategy:
    """Which extraction path a document takes."""
    mode: str
    document_length: int
    segment_count: int = 1

    @staticmethod
    def determine(
        document_length: int,
        config: ExtractionConfig = DEFAULT_CONFIG,
        segment_count: Optional[int] = None,
        full_truncated: bool = False,
    ) -> "DocumentStrategy":
        """
        Choose between one verbose call, batched per-lesson calls, or one concise call.

        Documents at or under the large-document threshold get the verbose call
        unless it already came back truncated. Past that point the choice
        depends on how many lessons the segmenter found, so ``segment_count``
        is required.
        """
        if document_length <= config.large_document_threshold and not full_truncated:
            return DocumentStrategy(FULL_DOCUMENT, document_length)

        if segment_count is None:
            raise ValueError("segment_count is required for documents that need splitting")

        if segment_count > 1:
            return DocumentStrategy(SEGMENTED, document_length, segment_count)
        return DocumentStrategy(CONCISE, document_length, segment_count)


@dataclass
class PipelineMetrics:
    """Metrics collected during extraction."""
    document_chars: int = 0
    strategy_used: str = ""
    segments_total: int = 0
    segments_failed: int = 0
    batches_processed: int = 0
    weeks_extracted: int = 0
    salvaged: bool = False
    duration_seconds: float = 0.0
    fallbacks: List[str] = field(default_factory=list)


class StudyExtractionPipeline:

    def __init__(
        self,
        request: ExtractionRequest,
        oracle: Optional[Oracle] = None,
        config: ExtractionConfig = DEFAULT_CONFIG,
    ):
        self.request = request
        self.oracle = oracle if oracle is not None else OpenAIOracle(config)
        self.config = config
        self.metrics = PipelineMetrics()

        self._transcript = (
            build_clarification_transcript(request.previous_questions, request.answers) if request.is_resume else ""
        )
        self._strategy: Optional[DocumentStrategy] = None

    async def run(self) -> ExtractionResult:
        """
        Execute the pipeline and return one of the three result variants.

        Never raises for extraction problems: every ``ExtractionError`` and any
        unexpected exception becomes a failure result. Cancellation propagates.
        """
        start_time = time.time()
        text = self.request.document_text

        try:
            if not text or not text.strip():
                raise EmptyInputError()

            self.metrics.document_chars = len(text)
            self._log(f"Document: {len(text):,} chars (clarification round {self.request.clarification_round})")
            if self.request.is_resume:
                self._log(f"Resuming with {len(self.request.answers or {})} clarifying answers")
            self._save_debug_input()

            result = await self._execute()
            if result.success:
                self._validate(result)

        except JSONParseError as e:
            result = ExtractionResult.fail(f"Failed to parse the model's response as JSON: {e}. Please try again.")
        except ExtractionError as e:
            result = ExtractionResult.fail(str(e))
        except Exception as e:
            logger.exception("Pipeline failed")
            result = ExtractionResult.fail(str(e) or "Unknown error occurred")

        self.metrics.duration_seconds = time.time() - start_time
        self.metrics.salvaged = result.salvaged
        self._log(f"Finished with status '{result.status}' in {self.metrics.duration_seconds:.1f}s")
        return result

    async def _execute(self) -> ExtractionResult:
        text = self.request.document_text
        full_truncated = False

        if len(text) <= self.config.large_document_threshold:
            self._determine_strategy()
            try:
                return await self._execute_full_document()
            except OutputTruncatedError:
                self._log("Full-document response truncated, retrying with the large-document path")
                self.metrics.fallbacks.append(FULL_DOCUMENT)
                full_truncated = True

        segments = split_into_lessons(text, self.config.min_segment_chars)
        self._determine_strategy(len(segments), full_truncated)

        if self._strategy.mode == SEGMENTED:
            return await self._execute_segmented(segments)
        return await self._execute_concise()

    def _determine_strategy(self, segment_count: Optional[int] = None, full_truncated: bool = False) -> None:
        self._strategy = DocumentStrategy.determine(
            len(self.request.document_text),
            self.config,
            segment_count=segment_count,
            full_truncated=full_truncated,
        )
        self.metrics.strategy_used = self._strategy.mode
        if segment_count is None:
            self._log(f"Strategy: {self._strategy.mode}")
        else:
            self._log(f"Strategy: {self._strategy.mode} ({segment_count} segment(s))")

    async def _execute_full_document(self) -> ExtractionResult:
        envelope, salvaged = await extract_full_document(
            self.oracle, self.request.document_text, self._transcript, self.config
        )
        return self._resolve_envelope(envelope, salvaged)

    async def _execute_concise(self) -> ExtractionResult:
        if len(self.request.document_text) > self.config.max_concise_chars:
            self.metrics.fallbacks.append("capped")
        try:
            envelope, salvaged = await extract_concise_document(
                self.oracle, self.request.document_text, self._transcript, self.config
            )
        except OutputTruncatedError as e:
            raise ExtractionError(
                "Response was too large. Try uploading a smaller document or contact support."
            ) from e
        return self._resolve_envelope(envelope, salvaged)

    async def _execute_segmented(self, segments: List[Segment]) -> ExtractionResult:
        self.metrics.segments_total = len(segments)
        self._save_debug_segments(segments)

        # Header first so at most one batch of calls is ever in flight
        header = await extract_header(self.oracle, self.request.document_text, self.config)
        self._log(f"Study header: {header.title!r}")

        outcomes = await run_in_batches(self.oracle, segments, self._transcript, self.config)
        self.metrics.batches_processed = -(-len(segments) // self.config.segment_batch_size)
        self.metrics.segments_failed = sum(1 for outcome in outcomes if outcome is None)

        study = assemble_study(header, outcomes)
        salvaged = any(outcome.salvaged for outcome in outcomes if outcome is not None)
        self.metrics.weeks_extracted = len(study.weeks)
        self._log(
            f"Assembled {len(study.weeks)} week(s) from {len(segments)} segment(s)"
            f" ({self.metrics.segments_failed} dropped)"
        )
        return ExtractionResult.ok(study, salvaged=salvaged)

    def _resolve_envelope(self, envelope: StudyEnvelope, salvaged: bool) -> ExtractionResult:
        """Map a single-call reply onto success, clarification or failure."""
        if envelope.success and envelope.study is not None:
            study = renumber_study(envelope.study)
            if not study.weeks:
                raise ExtractionError("Could not find any weeks in the document. Please check the document format.")
            if salvaged:
                self._log("Using salvaged partial response")
            self.metrics.weeks_extracted = len(study.weeks)
            return ExtractionResult.ok(study, salvaged=salvaged)

        if envelope.clarifying_questions:
            if envelope.raw_analysis:
                self._log(f"Model analysis: {envelope.raw_analysis[:500]}")
            return self._clarify(envelope.clarifying_questions)

        raise ExtractionError(envelope.error or "The model could not extract a study from the document.")

    def _clarify(self, questions: List[ClarifyingQuestion]) -> ExtractionResult:
        rounds_done = self.request.clarification_round
        if rounds_done >= self.config.max_clarification_rounds:
            raise ExtractionError(
                "The document is still too ambiguous to parse after "
                f"{self.config.max_clarification_rounds} clarification rounds."
            )
        self._log(f"Model asked {len(questions)} clarifying question(s)")
        return ExtractionResult.needs_clarification(
            questions,
            raw_text=self.request.document_text,
            clarification_round=rounds_done + 1,
        )

    def _validate(self, result: ExtractionResult) -> None:
        """Attach structural validation findings to a successful result."""
        report = validate_parsed_study(result.study)
        for message in report.errors + report.warnings:
            result.add_warning(message)
        if not report.valid:
            for error in report.errors:
                logger.warning("Validation: %s", error)
        elif report.warnings:
            self._log(f"Validation passed with {len(report.warnings)} warning(s)")

    def _save_debug_input(self) -> None:
        """Save input text for debugging if enabled."""
        if not self.config.debug_enabled:
            return
        save_debug_text(self.config, "input", self.request.document_text)

    def _save_debug_segments(self, segments: List[Segment]) -> None:
        if not self.config.debug_enabled:
            return
        for segment in segments:
            save_debug_text(self.config, f"segment_{segment.index:03d}", segment.text)
        self._log(f"Saved {len(segments)} segments to {Path(self.config.debug_dir)}")

    def _log(self, message: str) -> None:
        logger.info(message)


async def parse_study_text(
    document_text: str,
    oracle: Optional[Oracle] = None,
    config: ExtractionConfig = DEFAULT_CONFIG,
) -> ExtractionResult:
    """First pass over a document's text."""
    request = ExtractionRequest(document_text=document_text)
    return await StudyExtractionPipeline(request, oracle, config).run()


async def continue_with_answers(
    document_text: str,
    previous_questions: List[ClarifyingQuestion],
    answers: Dict[str, str],
    clarification_round: int = 1,
    oracle: Optional[Oracle] = None,
    config: ExtractionConfig = DEFAULT_CONFIG,
) -> ExtractionResult:
    """Resume after the caller answered a round of clarifying questions."""
    request = ExtractionRequest.resume(document_text, previous_questions, answers, clarification_round)
    return await StudyExtractionPipeline(request, oracle, config).run()
