"""Shared plumbing for the workflow HTTP functions (not routed by Vercel)."""

import asyncio
import json
from http.server import BaseHTTPRequestHandler

from src.utils.errors import WorkflowError
from src.utils.logging import get_structured_logger, setup_logging
from src.utils.logging_config import LoggingConfig

setup_logging()
logger = get_structured_logger(__name__)


def run(coro):
    """Run a coroutine on this worker's event loop."""
    try:
        loop = asyncio.get_event_loop()
    except RuntimeError:
        loop = None
    if loop is None or loop.is_closed():
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
    return loop.run_until_complete(coro)


class JsonHandler(BaseHTTPRequestHandler):
    """Base handler: JSON in, JSON out, workflow errors mapped to status codes."""

    def read_json(self) -> dict:
        content_length = int(self.headers.get('Content-Length', 0) or 0)
        raw_body = self.rfile.read(content_length).decode('utf-8') if content_length > 0 else ""
        if not raw_body:
            return {}
        body = json.loads(raw_body)
        if not isinstance(body, dict):
            raise ValueError("JSON object expected")
        return body

    def correlation_id(self):
        return self.headers.get(LoggingConfig.LOG_CORRELATION_ID_HEADER)

    def acting_user_id(self):
        # Set by the authenticating gateway in front of the functions
        return self.headers.get('X-User-Id')

    def write_json(self, status: int, payload) -> None:
        self.send_response(status)
        self.send_header('Content-Type', 'application/json')
        self.end_headers()
        self.wfile.write(json.dumps(payload, default=str).encode('utf-8'))

    def write_error(self, error: Exception) -> None:
        if isinstance(error, WorkflowError):
            self.write_json(error.status_code, {"error": error.message})
            return
        if isinstance(error, (ValueError, KeyError)):
            self.write_json(400, {"error": f"invalid request: {error}"})
            return
        logger.error("Unhandled error in HTTP function", error=str(error), exc_info=True)
        self.write_json(500, {"error": "internal error"})
