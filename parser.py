import io
import logging
from pathlib import Path
from typing import Dict, List, Optional, Union

from docx import Document
from docx2python import docx2python

from config import DEFAULT_CONFIG, ExtractionConfig
from extractor import analyze_document_structure
from oracle import Oracle, OpenAIOracle
from pipeline import StudyExtractionPipeline, continue_with_answers
from result import EmptyInputError, ExtractionResult
from schemas import ClarifyingQuestion, ExtractionRequest

logger = logging.getLogger(__name__)

# Maximum upload size: 10MB
MAX_FILE_SIZE = 10 * 1024 * 1024

DOCX_SUFFIXES = (".docx",)
TEXT_SUFFIXES = (".txt", ".md")

Source = Union[str, Path, bytes]


class DocumentReadError(Exception):
    """The document could not be turned into text."""


class FileTooLargeError(DocumentReadError):
    """The document exceeds MAX_FILE_SIZE."""

    def __init__(self, size: int):
        super().__init__("File too large. Maximum size is 10MB.")
        self.size = size


def _flatten_docx2python_content(content) -> List[str]:
    result = []

    def recurse(item):
        if isinstance(item, str):
            text = item.strip()
            if text:
                result.append(text)
        elif isinstance(item, list):
            for sub_item in item:
                recurse(sub_item)

    recurse(content)
    return result


def _extract_docx_text_fallback(source: Union[str, io.BytesIO]) -> str:
    """
    Fallback method using python-docx if docx2python fails.
    """
    doc = Document(source)
    lines = [p.text.strip() for p in doc.paragraphs if p.text.strip()]

    # Lesson content sometimes sits in tables
    for table in doc.tables:
        for row in table.rows:
            for cell in row.cells:
                text = cell.text.strip()
                if text:
                    lines.append(text)

    return "\n".join(lines)


def extract_text_from_docx(source: Union[str, Path, bytes]) -> str:
    """Plain body text of a .docx, one paragraph per line."""
    def open_source():
        return io.BytesIO(source) if isinstance(source, bytes) else str(source)

    try:
        with docx2python(open_source()) as doc:
            return "\n".join(_flatten_docx2python_content(doc.body))
    except Exception as e:
        logger.warning("docx2python extraction failed: %s", e)

    try:
        return _extract_docx_text_fallback(open_source())
    except Exception as e:
        raise DocumentReadError(f"Could not read the document: {e}") from e


def extract_text(source: Source, filename: Optional[str] = None) -> str:
    """
    Read a document into plain text.

    ``source`` is a path or the raw bytes of an upload. Bytes are treated as a
    .docx unless ``filename`` says otherwise. Raises EmptyInputError when the
    document has no text.
    """
    if isinstance(source, bytes):
        size = len(source)
        suffix = Path(filename).suffix.lower() if filename else ".docx"
    else:
        path = Path(source)
        if not path.exists():
            raise FileNotFoundError(f"Document not found: {source}")
        size = path.stat().st_size
        suffix = path.suffix.lower()

    if suffix not in DOCX_SUFFIXES + TEXT_SUFFIXES:
        raise ValueError(f"Unsupported file format: {suffix}. Use DOCX, TXT or MD.")
    if size > MAX_FILE_SIZE:
        raise FileTooLargeError(size)

    if suffix in DOCX_SUFFIXES:
        text = extract_text_from_docx(source)
    elif isinstance(source, bytes):
        text = source.decode("utf-8", errors="replace")
    else:
        text = Path(source).read_text(encoding="utf-8", errors="replace")

    if not text.strip():
        raise EmptyInputError()

    logger.info("Extracted %d chars of text", len(text))
    return text


async def parse_document(
    source: Source,
    filename: Optional[str] = None,
    oracle: Optional[Oracle] = None,
    config: ExtractionConfig = DEFAULT_CONFIG,
) -> ExtractionResult:
    """
    Read a document, run the analysis pre-pass, then extract the study.

    FileTooLargeError propagates so callers can answer with their own limit error.
    """
    try:
        text = extract_text(source, filename)
    except FileTooLargeError:
        raise
    except (DocumentReadError, EmptyInputError) as e:
        return ExtractionResult.fail(str(e))

    oracle = oracle if oracle is not None else OpenAIOracle(config)

    analysis = None
    if config.analysis_enabled:
        analysis = await analyze_document_structure(oracle, text, config)
        logger.info("Document analysis (confidence %.2f): %s", analysis.confidence, analysis.summary)

    result = await StudyExtractionPipeline(ExtractionRequest(document_text=text), oracle, config).run()
    result.analysis = analysis
    return result


async def continue_parsing_with_answers(
    raw_text: str,
    previous_questions: List[ClarifyingQuestion],
    answers: Dict[str, str],
    clarification_round: int = 1,
    oracle: Optional[Oracle] = None,
    config: ExtractionConfig = DEFAULT_CONFIG,
) -> ExtractionResult:
    """Resume a parse with the caller's answers; no analysis pre-pass."""
    return await continue_with_answers(
        raw_text,
        previous_questions,
        answers,
        clarification_round=clarification_round,
        oracle=oracle,
        config=config,
    )
