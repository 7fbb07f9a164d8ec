"""Health check endpoint."""

from api._common import JsonHandler
from src.utils.logging_config import SERVICE_NAME


class handler(JsonHandler):
    """Liveness probe; does not touch Supabase."""

    def do_GET(self):
        self.write_json(200, {"status": "ok", "service": SERVICE_NAME})

    def do_POST(self):
        self.do_GET()
