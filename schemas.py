from dataclasses import dataclass, field
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


QuestionType = Literal["text", "reflection", "multiple_choice"]
QUESTION_TYPES = ("text", "reflection", "multiple_choice")


def _coerce_number(value):
    """Numbering is recomputed after assembly, so anything that is not an integer reads as 0."""
    if isinstance(value, bool):
        return 0
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            return 0
    return 0


class StudyModel(BaseModel):
    """Base for wire models: camelCase on the wire, snake_case in Python."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


# 1. QUESTION
class ParsedQuestion(StudyModel):
    question_text: str = Field("", alias="questionText", description="Question text as written in the document")
    question_type: QuestionType = Field("text", alias="questionType", description="text, reflection or multiple_choice")
    order: int = Field(0, description="1-based position within the day (recomputed after assembly)")

    @field_validator("question_type", mode="before")
    @classmethod
    def _coerce_question_type(cls, value):
        if isinstance(value, str) and value.strip().lower() in QUESTION_TYPES:
            return value.strip().lower()
        return "text"

    @field_validator("order", mode="before")
    @classmethod
    def _coerce_order(cls, value):
        return _coerce_number(value)

    @field_validator("question_text", mode="before")
    @classmethod
    def _none_to_empty(cls, value):
        return "" if value is None else value


# 2. DAY
class ParsedDay(StudyModel):
    day_number: int = Field(0, alias="dayNumber", description="1-based day within the week (recomputed)")
    title: str = Field("", description="Day title, e.g. 'One: Sound Doctrine'")
    content: Optional[str] = Field(None, description="Instructional content or summary")
    scripture: Optional[str] = Field(None, description="Scripture references, e.g. '1 Timothy 1:3-7'")
    questions: List[ParsedQuestion] = Field(default_factory=list)

    @field_validator("day_number", mode="before")
    @classmethod
    def _coerce_day_number(cls, value):
        return _coerce_number(value)

    @field_validator("title", mode="before")
    @classmethod
    def _none_to_empty(cls, value):
        return "" if value is None else value


# 3. WEEK
class ParsedWeek(StudyModel):
    week_number: int = Field(0, alias="weekNumber", description="1-based week within the study (recomputed)")
    title: str = Field("", description="Lesson or week title")
    description: Optional[str] = None
    days: List[ParsedDay] = Field(default_factory=list)

    @field_validator("week_number", mode="before")
    @classmethod
    def _coerce_week_number(cls, value):
        return _coerce_number(value)

    @field_validator("title", mode="before")
    @classmethod
    def _none_to_empty(cls, value):
        return "" if value is None else value


# 4. STUDY
class ParsedStudy(StudyModel):
    title: str = Field("", description="Study title")
    description: Optional[str] = None
    author: Optional[str] = None
    weeks: List[ParsedWeek] = Field(default_factory=list)

    @field_validator("title", mode="before")
    @classmethod
    def _none_to_empty(cls, value):
        return "" if value is None else value


# 5. CLARIFICATION
class ClarifyingQuestion(StudyModel):
    id: str = Field(..., description="Stable id, unique within one clarification round")
    question: str = Field(..., description="What the model needs to know")
    context: str = Field("", description="Why the model is asking")
    options: Optional[List[str]] = Field(None, description="Suggested answers, if the choice is finite")

    @field_validator("id", mode="before")
    @classmethod
    def _id_to_str(cls, value):
        return str(value) if isinstance(value, int) else value

    @field_validator("context", mode="before")
    @classmethod
    def _none_to_empty(cls, value):
        return "" if value is None else value


# 6. ORACLE RESPONSE ENVELOPES
class StudyEnvelope(StudyModel):
    """Top-level reply of the full and concise prompts."""
    success: bool = False
    study: Optional[ParsedStudy] = None
    clarifying_questions: Optional[List[ClarifyingQuestion]] = Field(None, alias="clarifyingQuestions")
    raw_analysis: Optional[str] = Field(None, alias="rawAnalysis")
    error: Optional[str] = None


class StudyHeader(StudyModel):
    """Reply of the header prompt."""
    title: Optional[str] = None
    description: Optional[str] = None
    author: Optional[str] = None


class DocumentAnalysis(StudyModel):
    """Reply of the analysis pre-pass."""
    summary: str = ""
    confidence: float = 0.0
    potential_issues: List[str] = Field(default_factory=list, alias="potentialIssues")


# 7. PIPELINE INPUTS (non-Pydantic, created fresh per call)
@dataclass(frozen=True)
class Segment:
    """A contiguous slice of the document assigned to one extraction call."""
    index: int
    text: str

    def __repr__(self) -> str:
        return f"Segment(index={self.index}, chars={len(self.text)})"


@dataclass(frozen=True)
class ExtractionRequest:
    """One call into the pipeline: first pass, or a resume after clarification."""
    document_text: str
    previous_questions: Optional[List[ClarifyingQuestion]] = None
    answers: Optional[Dict[str, str]] = None
    clarification_round: int = 0

    @property
    def is_resume(self) -> bool:
        return bool(self.previous_questions) and self.answers is not None

    @classmethod
    def resume(
        cls,
        document_text: str,
        previous_questions: List[ClarifyingQuestion],
        answers: Dict[str, str],
        clarification_round: int = 1,
    ) -> "ExtractionRequest":
        return cls(
            document_text=document_text,
            previous_questions=list(previous_questions),
            answers=dict(answers),
            clarification_round=clarification_round,
        )


@dataclass
class StudyStats:
    """Totals and averages for a parsed study."""
    total_weeks: int = 0
    total_days: int = 0
    total_questions: int = 0
    average_questions_per_day: float = 0.0
    average_days_per_week: float = 0.0


@dataclass
class ValidationReport:
    valid: bool
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
