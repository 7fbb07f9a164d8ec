"""Agent answers an appointment request."""

from api._common import JsonHandler, run
from src.services.directory import resolve_agent_for_user
from src.services.request_arbitration import respond
from src.utils.logging import correlation_context, get_structured_logger

logger = get_structured_logger(__name__)


async def _respond_as_user(user_id: str, request_id: str, decision: str):
    agent = await resolve_agent_for_user(user_id)
    return await respond(request_id, agent.agent_id, decision)


class handler(JsonHandler):
    """POST {request_id, decision: accepted|rejected} as the agent in X-User-Id."""

    def do_POST(self):
        with correlation_context(self.correlation_id()):
            try:
                user_id = self.acting_user_id()
                if not user_id:
                    self.write_json(401, {"error": "missing user"})
                    return
                body = self.read_json()
                request = run(_respond_as_user(user_id, body["request_id"], body["decision"]))
                self.write_json(200, request.model_dump(mode="json"))
            except Exception as e:
                logger.warning("Respond to appointment request failed", error=str(e))
                self.write_error(e)
