import asyncio
import json
import logging
import os
from http.server import BaseHTTPRequestHandler, HTTPServer
from typing import Any, Dict, Optional, Type
from urllib.parse import parse_qs, urlparse

from config import DEFAULT_CONFIG, ExtractionConfig
from oracle import Oracle, OpenAIOracle
from parser import MAX_FILE_SIZE, DocumentReadError, FileTooLargeError, continue_parsing_with_answers, parse_document
from pipeline import parse_study_text
from result import ExtractionResult
from schemas import ClarifyingQuestion

logger = logging.getLogger(__name__)

PARSE_PATH = "/api/parse-study"
UPLOAD_PATH = "/api/upload-study"


class BadRequest(Exception):
    """Client error reported as a 400 with a JSON body."""


class StudyParserHandler(BaseHTTPRequestHandler):
    """HTTP handler with API endpoints for study extraction."""

    oracle: Optional[Oracle] = None
    config: ExtractionConfig = DEFAULT_CONFIG

    @property
    def cors_origin(self) -> str:
        return os.getenv("FRONTEND_ORIGIN", "*")

    def _set_cors_headers(self):
        self.send_header('Access-Control-Allow-Origin', self.cors_origin)
        self.send_header('Vary', 'Origin')
        self.send_header('Access-Control-Allow-Headers', 'Content-Type, Authorization, X-Filename')
        self.send_header('Access-Control-Allow-Methods', 'POST, OPTIONS')

    def _send_json(self, status: int, payload: Dict[str, Any]) -> None:
        body = json.dumps(payload, ensure_ascii=False).encode("utf-8")
        self.send_response(status)
        self._set_cors_headers()
        self.send_header('Content-Type', 'application/json')
        self.send_header('Content-Length', str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def _send_result(self, result: ExtractionResult) -> None:
        status = 400 if result.status == "failure" else 200
        self._send_json(status, result.to_dict())

    def _get_oracle(self) -> Oracle:
        if self.oracle is None:
            type(self).oracle = OpenAIOracle(self.config)
        return self.oracle

    def _read_body(self) -> bytes:
        length = int(self.headers.get('Content-Length') or 0)
        if length <= 0:
            raise BadRequest("Empty request body")
        return self.rfile.read(length)

    def do_OPTIONS(self):
        # CORS preflight support
        if urlparse(self.path).path in (PARSE_PATH, UPLOAD_PATH):
            self.send_response(204)
            self._set_cors_headers()
            self.end_headers()
        else:
            self.send_error(404, "Not Found")

    def do_POST(self):
        parsed_url = urlparse(self.path)
        try:
            if parsed_url.path == PARSE_PATH:
                self.handle_parse_study()
            elif parsed_url.path == UPLOAD_PATH:
                query_params = parse_qs(parsed_url.query)
                filename = self.headers.get('X-Filename') or query_params.get('filename', ['upload.docx'])[0]
                self.handle_upload_study(filename)
            else:
                self.send_error(404, "Not Found")
        except BadRequest as e:
            self._send_json(400, {"success": False, "error": str(e)})
        except Exception as e:
            logger.exception("Request to %s failed", parsed_url.path)
            self._send_json(500, {"success": False, "error": str(e)})

    def handle_parse_study(self):
        """
        Parse raw study text, or resume it with clarifying answers.

        Body: ``{rawText, previousQuestions?, clarifyingAnswers?, clarificationRound?}``.
        """
        try:
            payload = json.loads(self._read_body().decode("utf-8"))
        except ValueError as e:
            raise BadRequest(f"Invalid JSON body: {e}") from e
        if not isinstance(payload, dict):
            raise BadRequest("Expected a JSON object")

        raw_text = payload.get("rawText")
        if not isinstance(raw_text, str):
            raise BadRequest("rawText is required")

        previous = payload.get("previousQuestions")
        answers = payload.get("clarifyingAnswers")
        oracle = self._get_oracle()

        if previous and answers is not None:
            try:
                questions = [ClarifyingQuestion.model_validate(q) for q in previous]
            except ValueError as e:
                raise BadRequest(f"Invalid previousQuestions: {e}") from e
            round_number = int(payload.get("clarificationRound") or 1)
            logger.info("Resuming parse with %d answer(s), round %d", len(answers), round_number)
            result = asyncio.run(
                continue_parsing_with_answers(raw_text, questions, answers, round_number, oracle, self.config)
            )
        else:
            result = asyncio.run(parse_study_text(raw_text, oracle, self.config))

        self._send_result(result)

    def handle_upload_study(self, filename: str):
        """Parse an uploaded document sent as the raw request body."""
        length = int(self.headers.get('Content-Length') or 0)
        if length > MAX_FILE_SIZE:
            self._send_json(413, {"success": False, "error": "File too large. Maximum size is 10MB."})
            return

        data = self._read_body()
        logger.info("Converting upload: %s (%d bytes)", filename, len(data))
        try:
            result = asyncio.run(parse_document(data, filename, self._get_oracle(), self.config))
        except FileTooLargeError as e:
            self._send_json(413, {"success": False, "error": str(e)})
            return
        except (ValueError, DocumentReadError) as e:
            raise BadRequest(str(e)) from e

        self._send_result(result)

    def log_message(self, format, *args):
        """Custom logging."""
        if args and isinstance(args[0], str) and '/api/' in args[0]:
            logger.info("API: %s", args[0])


def make_handler(oracle: Optional[Oracle] = None, config: ExtractionConfig = DEFAULT_CONFIG) -> Type[StudyParserHandler]:
    """Handler class bound to one oracle and config."""
    return type("BoundStudyParserHandler", (StudyParserHandler,), {"oracle": oracle, "config": config})


def run_server(port=8000, host='localhost', oracle: Optional[Oracle] = None, config: ExtractionConfig = DEFAULT_CONFIG):
    """Start the server.

    In production, bind to host '0.0.0.0' and the provided PORT.
    """
    server = HTTPServer((host, port), make_handler(oracle, config))
    logger.info("Study parser listening on http://%s:%s (model %s)", host, port, config.model.name)

    try:
        server.serve_forever()
    except KeyboardInterrupt:
        logger.info("Server stopped.")
    finally:
        server.server_close()


if __name__ == '__main__':
    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    # Derive host/port from env for cloud platforms
    env_port = int(os.getenv('PORT', '8000'))
    env_host = os.getenv('HOST', '0.0.0.0' if os.getenv('PORT') else 'localhost')
    run_server(port=env_port, host=env_host)
