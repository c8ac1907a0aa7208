"""Composable prompt components for consistent extraction instructions."""

from typing import Dict, List, Optional

from schemas import ClarifyingQuestion


JSON_ONLY_RULES = """CRITICAL: Output ONLY valid JSON. No markdown, no code blocks, no explanatory text. Start with { end with }."""


HIERARCHY_RULES = """Document hierarchy:
- Study → Lessons/Weeks → Days (usually 5/week) → Questions

Look for:
- Lesson headers: "Lesson One:", "Lesson Two:", etc. (word numbers), or "Week 1:", "Chapter 1:"
- Day headers: "One:", "Two:", "Three:", "Four:", "Five:" with subtitles, or "Day 1:"
- Questions: Numbered (1., 2., 3.) or lettered (a., b., c.) items
- Scripture: Book Chapter:Verse format (e.g., "1 Timothy 1:3-7")"""


QUESTION_TYPE_RULES = """Question types: "text", "reflection", "multiple_choice" """


CONCISE_RULES = """BE CONCISE - this is a structure extraction pass:
- For "content": Use max 100 chars summary, not full text
- For "questions": Include ALL questions but truncate questionText to first 150 chars if longer
- For "scripture": Just list the references, no full verses"""


FULL_OUTPUT_FORMAT = """Output format:
{"success":true,"study":{"title":"Study Title","description":"Brief description","author":"Author or null","weeks":[{"weekNumber":1,"title":"Lesson One: Title","description":"Week description or null","days":[{"dayNumber":1,"title":"One: Day Title","content":"Instructional content","scripture":"Scripture refs","questions":[{"questionText":"Full question text","questionType":"text","order":1}]}]}]}}"""


CONCISE_OUTPUT_FORMAT = """Output format:
{"success":true,"study":{"title":"Title","description":"Brief desc","author":"Author or null","weeks":[{"weekNumber":1,"title":"Lesson One: Title","description":null,"days":[{"dayNumber":1,"title":"One: Day Title","content":"[Brief summary]","scripture":"1 Tim 1:3-7","questions":[{"questionText":"Question text (truncated if long)...","questionType":"text","order":1}]}]}]}}"""


CLARIFICATION_FORMAT = """If clarification needed:
{"success":false,"clarifyingQuestions":[{"id":"q1","question":"What you need","context":"Why","options":["A","B"]}],"rawAnalysis":"Your analysis"}"""


LESSON_OUTPUT_FORMAT = """Output format:
{"weekNumber":1,"title":"Lesson Title","description":null,"days":[{"dayNumber":1,"title":"Day Title","content":"Content summary","scripture":"References","questions":[{"questionText":"Question","questionType":"text","order":1}]}]}"""


def build_full_prompt() -> str:
    """Verbose prompt: complete question text and day content, verbatim."""
    return f"""You are an expert at parsing Bible study documents. Extract structured content completely.

{JSON_ONLY_RULES}

{HIERARCHY_RULES}

{FULL_OUTPUT_FORMAT}

{CLARIFICATION_FORMAT}

{QUESTION_TYPE_RULES}
Extract ALL weeks, days, and questions. Preserve original question text."""


def build_concise_prompt() -> str:
    """Structure-only prompt for large documents: same schema, summarized content."""
    return f"""You are an expert at parsing Bible study documents. Extract the STRUCTURE only - be concise to save tokens.

{JSON_ONLY_RULES}

{HIERARCHY_RULES}

{CONCISE_RULES}

{CONCISE_OUTPUT_FORMAT}

{CLARIFICATION_FORMAT}

{QUESTION_TYPE_RULES}
Extract ALL weeks, ALL days, ALL questions. Be concise but complete."""


def build_lesson_prompt() -> str:
    """Minimal schema for one already-segmented lesson: a single week object."""
    return f"""Parse this SINGLE lesson/week from a Bible study. Extract all days and questions.

{JSON_ONLY_RULES}

{LESSON_OUTPUT_FORMAT}

{QUESTION_TYPE_RULES}
Extract ALL days and ALL questions from this lesson."""


FULL_SYSTEM_PROMPT = build_full_prompt()
CONCISE_SYSTEM_PROMPT = build_concise_prompt()
SINGLE_LESSON_PROMPT = build_lesson_prompt()


def build_header_prompt(header_text: str) -> str:
    return f"""Extract ONLY the study title, description, and author from this document header. Output JSON only:
{{"title":"Study Title","description":"Brief description or null","author":"Author name or null"}}

Header:
---
{header_text}
---"""


def build_analysis_prompt(document_text: str) -> str:
    return f"""Analyze this Bible study document and provide a brief summary of its structure.

IMPORTANT: Respond with ONLY a JSON object, no markdown, no code blocks, no extra text. Start with {{ and end with }}.

Required format:
{{"summary":"A brief description of what you found","confidence":0.85,"potentialIssues":["Issue 1","Issue 2"]}}

Document:
---
{document_text}
---"""


def build_clarification_transcript(
    questions: Optional[List[ClarifyingQuestion]],
    answers: Optional[Dict[str, str]],
) -> str:
    """Render prior Q/A pairs; empty string when there is nothing to replay."""
    if not questions or answers is None:
        return ""
    return "\n\n".join(
        f"Q: {q.question}\nA: {answers.get(q.id) or 'Not provided'}" for q in questions
    )


def _with_transcript(body: str, transcript: str) -> str:
    if not transcript:
        return body
    return (
        "Based on the previous clarifying questions, here are the answers:\n\n"
        f"{transcript}\n\n"
        f"Now please {body[0].lower()}{body[1:]}"
    )


def build_document_message(document_text: str, transcript: str = "", concise: bool = False) -> str:
    """User message for the single-call paths (full or concise)."""
    if concise:
        body = "Parse this Bible study document (structure extraction mode)"
    elif transcript:
        body = "Parse the document with this additional context"
    else:
        body = "Please parse this Bible study document and extract its structure"
    return _with_transcript(f"{body}:\n\n---\n{document_text}\n---", transcript)


def build_lesson_message(lesson_text: str, lesson_index: int, transcript: str = "") -> str:
    """User message for one lesson chunk in the batched path."""
    body = f"Parse this lesson (Lesson {lesson_index + 1}):\n\n---\n{lesson_text}\n---"
    return _with_transcript(body, transcript)
