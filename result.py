from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal, Optional

from schemas import ClarifyingQuestion, DocumentAnalysis, ParsedStudy

ResultStatus = Literal["success", "needs_clarification", "failure"]


@dataclass
class ExtractionResult:
    """Outcome of one pipeline call: a study, a question set, or an error."""

    status: ResultStatus
    study: Optional[ParsedStudy] = None
    clarifying_questions: List[ClarifyingQuestion] = field(default_factory=list)
    raw_text: Optional[str] = None
    error: Optional[str] = None
    salvaged: bool = False
    clarification_round: int = 0
    warnings: List[str] = field(default_factory=list)
    analysis: Optional[DocumentAnalysis] = None

    @classmethod
    def ok(
        cls,
        study: ParsedStudy,
        salvaged: bool = False,
        warnings: Optional[List[str]] = None,
    ) -> "ExtractionResult":
        """Create a successful result."""
        return cls(status="success", study=study, salvaged=salvaged, warnings=warnings or [])

    @classmethod
    def needs_clarification(
        cls,
        questions: List[ClarifyingQuestion],
        raw_text: str,
        clarification_round: int,
    ) -> "ExtractionResult":
        """The model cannot proceed without answers; the caller resumes with them."""
        return cls(
            status="needs_clarification",
            clarifying_questions=list(questions),
            raw_text=raw_text,
            clarification_round=clarification_round,
        )

    @classmethod
    def fail(cls, error: str) -> "ExtractionResult":
        """Create a failed result."""
        return cls(status="failure", error=error)

    @property
    def success(self) -> bool:
        return self.status == "success"

    def add_warning(self, warning: str) -> "ExtractionResult":
        self.warnings.append(warning)
        return self

    def unwrap(self) -> ParsedStudy:
        """Get the study or raise if the call did not succeed."""
        if not self.success or self.study is None:
            raise ValueError(self.error or f"Result has no study (status: {self.status})")
        return self.study

    def to_dict(self) -> Dict[str, Any]:
        """Caller-facing JSON shape."""
        if self.status == "success":
            payload: Dict[str, Any] = {
                "success": True,
                "study": self.study.model_dump(by_alias=True),
                "salvaged": self.salvaged,
            }
            if self.warnings:
                payload["warnings"] = list(self.warnings)
        elif self.status == "needs_clarification":
            payload = {
                "success": False,
                "clarifyingQuestions": [q.model_dump(by_alias=True) for q in self.clarifying_questions],
                "rawText": self.raw_text,
                "clarificationRound": self.clarification_round,
            }
        else:
            payload = {"success": False, "error": self.error}

        if self.analysis is not None:
            payload["analysis"] = self.analysis.model_dump(by_alias=True)
        return payload


class ExtractionError(Exception):
    """Raised when extraction fails."""


class EmptyInputError(ExtractionError):
    """Document text is empty or whitespace only."""

    def __init__(self, message: str = "The document appears to be empty or could not be read."):
        super().__init__(message)


class OracleNoResponseError(ExtractionError):
    """The model returned no usable text block (includes timeouts)."""

    def __init__(self, message: str = "No text response from the model"):
        super().__init__(message)


class JSONParseError(ExtractionError):
    """Best-effort JSON extraction did not yield valid JSON."""


class OutputTruncatedError(ExtractionError):
    """The model stopped at its output ceiling and the reply could not be salvaged."""

    def __init__(self, message: str, raw_text: str = ""):
        super().__init__(message)
        self.raw_text = raw_text


class AllSegmentsFailedError(ExtractionError):
    """Every segment of a batched run failed."""

    def __init__(
        self,
        message: str = "Could not parse any lessons from the document. Please check the document format.",
    ):
        super().__init__(message)
