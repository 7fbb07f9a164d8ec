"""Admin vetting decision on an agent application."""

from api._common import JsonHandler, run
from src.models.user import UserType
from src.services.agent_vetting import decide
from src.services.supabase_client import get_user
from src.utils.errors import ForbiddenError
from src.utils.logging import correlation_context, get_structured_logger

logger = get_structured_logger(__name__)


async def _decide_as_admin(user_id: str, agent_id: str, decision: str, notes):
    user = await get_user(user_id)
    if not user or user.get("user_type") != UserType.ADMIN.value:
        raise ForbiddenError("Only admins can decide agent applications")
    return await decide(agent_id, decision, notes)


class handler(JsonHandler):
    """POST {agent_id, decision: approved|rejected, notes?} as the admin in X-User-Id."""

    def do_POST(self):
        with correlation_context(self.correlation_id()):
            try:
                user_id = self.acting_user_id()
                if not user_id:
                    self.write_json(401, {"error": "missing user"})
                    return
                body = self.read_json()
                agent = run(_decide_as_admin(user_id, body["agent_id"], body["decision"], body.get("notes")))
                self.write_json(200, agent.model_dump(mode="json"))
            except Exception as e:
                logger.warning("Agent decision failed", error=str(e))
                self.write_error(e)
