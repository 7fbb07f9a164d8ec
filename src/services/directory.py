"""Directory service - agent lookups by user identity and by geography."""

from src.models.agent import Agent, AgentApprovalStatus
from src.models.property import Area
from src.services.supabase_client import SupabaseClient, get_area
from src.utils.errors import NotFoundError, SupabaseError
from src.utils.logging import get_structured_logger, mask_user_id

logger = get_structured_logger(__name__)


async def get_agent(agent_id: str) -> Agent:
    """Get a non-deleted agent by ID."""
    async with SupabaseClient() as client:
        try:
            result = (
                client.table("agents")
                .select("*")
                .eq("agent_id", agent_id)
                .is_("deleted_at", "null")
                .execute()
            )
        except Exception as e:
            raise SupabaseError(f"Failed to get agent: {e}")
    
    if not result.data:
        raise NotFoundError("Agent not found")
    return Agent(**result.data[0])


async def resolve_agent_for_user(user_id: str) -> Agent:
    """Translate an authenticated user into their agent record."""
    async with SupabaseClient() as client:
        try:
            result = (
                client.table("agents")
                .select("*")
                .eq("user_id", user_id)
                .is_("deleted_at", "null")
                .execute()
            )
        except Exception as e:
            raise SupabaseError(f"Failed to resolve agent for user: {e}")
    
    if not result.data:
        logger.info("No agent record for user", user_id=mask_user_id(user_id))
        raise NotFoundError("Agent not found for this user")
    return Agent(**result.data[0])


async def find_eligible_agents(area_id: str) -> list[Agent]:
    """
    Approved agents serving an area.
    
    An agent serves the area when its area set contains it, or when it has no
    area scoping and the area's city is one of its cities. An empty list is a
    valid answer; callers decide whether that is a failure.
    """
    row = await get_area(area_id)
    if not row:
        raise NotFoundError("Area not found")
    city_id = Area(**row).city_id
    
    async with SupabaseClient() as client:
        try:
            by_area = (
                client.table("agents")
                .select("*")
                .eq("status", AgentApprovalStatus.APPROVED.value)
                .is_("deleted_at", "null")
                .contains("area_ids", [area_id])
                .execute()
            )
            by_city = []
            if city_id:
                by_city = (
                    client.table("agents")
                    .select("*")
                    .eq("status", AgentApprovalStatus.APPROVED.value)
                    .is_("deleted_at", "null")
                    .contains("city_ids", [city_id])
                    .execute()
                ).data or []
        except Exception as e:
            raise SupabaseError(f"Failed to find eligible agents: {e}")
    
    eligible: dict[str, Agent] = {}
    for row in (by_area.data or []) + by_city:
        agent = Agent(**row)
        if agent.agent_id not in eligible and agent.serves(area_id, city_id):
            eligible[agent.agent_id] = agent
    
    logger.info(
        "Resolved eligible agents",
        area_id=area_id,
        city_id=city_id,
        eligible_count=len(eligible)
    )
    return list(eligible.values())
