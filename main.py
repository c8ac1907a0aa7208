import argparse
import asyncio
import json
import logging
import os
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

# Fix Windows console encoding
if sys.platform == "win32":
    sys.stdout.reconfigure(encoding='utf-8')
    sys.stderr.reconfigure(encoding='utf-8')

from config import DEFAULT_CONFIG, ExtractionConfig
from oracle import Oracle
from parser import DocumentReadError, continue_parsing_with_answers, extract_text, parse_document
from result import EmptyInputError
from schemas import ClarifyingQuestion


def _load_json_arg(value: str) -> Any:
    """Accept either inline JSON or a path to a JSON file."""
    path = Path(value)
    if path.suffix.lower() == ".json" and path.exists():
        return json.loads(path.read_text(encoding="utf-8"))
    return json.loads(value)


def process_document(
    file_path: str,
    verbose: bool = False,
    questions: Optional[List[Dict[str, Any]]] = None,
    answers: Optional[Dict[str, str]] = None,
    clarification_round: int = 1,
    oracle: Optional[Oracle] = None,
    config: ExtractionConfig = DEFAULT_CONFIG,
) -> dict:
    """Parse one document, or resume it when questions and answers are given."""
    if questions and answers is not None:
        if verbose:
            print(f"[1/2] Reading document: {file_path}")
        raw_text = extract_text(file_path)
        previous = [ClarifyingQuestion.model_validate(q) for q in questions]
        if verbose:
            print(f"[2/2] Resuming with {len(answers)} answer(s), clarification round {clarification_round}")
        result = asyncio.run(
            continue_parsing_with_answers(raw_text, previous, answers, clarification_round, oracle, config)
        )
    else:
        if verbose:
            print(f"[1/1] Parsing document with {config.model.name}: {file_path}")
        result = asyncio.run(parse_document(file_path, oracle=oracle, config=config))

    return result.to_dict()


def main():
    """Main entry point for CLI usage."""
    parser = argparse.ArgumentParser(
        description="Convert a Bible study document (DOCX/TXT/MD) to structured JSON",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    python main.py study.docx
    python main.py study.docx --verbose
    python main.py study.docx --questions study.json --answers '{"q1": "A"}' --round 1
        """
    )

    parser.add_argument(
        "file_path",
        help="Path to the document file (DOCX, TXT or MD)"
    )
    parser.add_argument(
        "--questions",
        help="Clarifying questions from a previous run (inline JSON list, or a JSON file holding them)"
    )
    parser.add_argument(
        "--answers",
        help="Answers keyed by question id (inline JSON object or JSON file)"
    )
    parser.add_argument(
        "--round",
        type=int,
        default=1,
        help="Clarification round reported by the previous run (default: 1)"
    )
    parser.add_argument(
        "-o", "--output",
        help="Output JSON path (default: input name with .json extension)"
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Print intermediate processing steps"
    )

    args = parser.parse_args()

    level = "DEBUG" if args.verbose else os.getenv("LOG_LEVEL", "INFO").upper()
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    try:
        questions = _load_json_arg(args.questions) if args.questions else None
        # A previous run's output file carries its questions under clarifyingQuestions
        if isinstance(questions, dict):
            questions = questions.get("clarifyingQuestions")
        answers = _load_json_arg(args.answers) if args.answers else None

        result = process_document(
            args.file_path,
            verbose=args.verbose,
            questions=questions,
            answers=answers,
            clarification_round=args.round,
        )

        output_json = json.dumps(result, indent=2, ensure_ascii=False)

        input_path = Path(args.file_path)
        output_path = Path(args.output) if args.output else input_path.with_suffix(".json")

        with open(output_path, "w", encoding="utf-8") as f:
            f.write(output_json)

        if result.get("success"):
            print(f"✓ Results saved to: {output_path}")
        elif "clarifyingQuestions" in result:
            print(f"? Clarification needed ({len(result['clarifyingQuestions'])} question(s)), saved to: {output_path}")
        else:
            print(f"✗ Error: {result.get('error')}", file=sys.stderr)
            sys.exit(1)

    except FileNotFoundError as e:
        print(f"✗ Error: {e}", file=sys.stderr)
        sys.exit(1)
    except (ValueError, DocumentReadError, EmptyInputError) as e:
        print(f"✗ Validation Error: {e}", file=sys.stderr)
        sys.exit(1)
    except Exception as e:
        print(f"✗ Unexpected Error: {type(e).__name__}: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
