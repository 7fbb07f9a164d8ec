"""Agent vetting workflow - applications, scope assignment and approval decisions."""

from typing import Iterable, Optional

from src.models.agent import Agent, AgentApprovalStatus
from src.models.appointment_request import RequestStatus
from src.models.property import Area
from src.models.notification import NotificationType
from src.models.user import UserType
from src.services.appointment_store import restore_requests
from src.services.directory import get_agent
from src.services.notifications import notify, notify_by_role
from src.services.supabase_client import (
    SupabaseClient,
    generate_id,
    get_areas,
    get_user,
    is_duplicate_key_error,
    update_user_role,
    utc_now_iso,
)
from src.utils.errors import (
    BadRequestError,
    ConflictError,
    NotFoundError,
    SupabaseError,
)
from src.utils.logging import (
    get_structured_logger,
    log_timing,
    mask_user_id,
    sanitize_message_text,
)

logger = get_structured_logger(__name__)


def _unique(ids: Optional[Iterable[str]]) -> list[str]:
    """Drop blanks and duplicates, keeping first-seen order."""
    seen: list[str] = []
    for value in ids or []:
        if value and value not in seen:
            seen.append(str(value))
    return seen


async def _validate_areas(city_id: str, area_ids: list[str]) -> None:
    """Every area must exist and sit inside the agent's single city."""
    found = {row["area_id"]: Area(**row) for row in await get_areas(area_ids)}
    missing = [area_id for area_id in area_ids if area_id not in found]
    if missing:
        raise BadRequestError(f"Unknown areas: {', '.join(missing)}")
    foreign = [area_id for area_id in area_ids if found[area_id].city_id != city_id]
    if foreign:
        raise BadRequestError(f"Areas do not belong to the agent's city: {', '.join(foreign)}")


async def _update_agent(agent_id: str, updates: dict) -> Agent:
    updates["updated_at"] = utc_now_iso()
    async with SupabaseClient() as client:
        try:
            result = client.table("agents").update(updates).eq("agent_id", agent_id).execute()
        except Exception as e:
            raise SupabaseError(f"Failed to update agent: {e}")
    if not result.data:
        raise NotFoundError("Agent not found")
    return Agent(**result.data[0])


async def _restore_agent(agent_id: str, fields: dict) -> None:
    """Put back agent fields after a later step of the same operation failed."""
    try:
        await _update_agent(agent_id, dict(fields))
    except Exception as e:
        logger.error(
            "Failed to restore agent after partial update",
            agent_id=agent_id,
            fields=sorted(fields),
            error=str(e),
            exc_info=True
        )


async def _reinstate_requests(request_ids: list[str]) -> None:
    try:
        await restore_requests(request_ids)
    except Exception as e:
        logger.error(
            "Failed to reinstate withdrawn requests",
            request_count=len(request_ids),
            error=str(e),
            exc_info=True
        )


async def submit_application(
    user_id: str,
    city_ids: list[str],
    area_ids: Optional[list[str]] = None,
    identity_proof_ref: Optional[str] = None,
    residency_proof_ref: Optional[str] = None,
    submitted_by_admin: bool = False,
) -> Agent:
    """
    File an agent application for a user.
    
    Admin submissions are approved immediately and promote the user to the
    agent role; self-service applications start pending, keep the user a
    customer, and notify every admin.
    """
    with log_timing("submit_agent_application", logger=logger, user_id=mask_user_id(user_id)):
        async with SupabaseClient() as client:
            try:
                existing = (
                    client.table("agents")
                    .select("agent_id")
                    .eq("user_id", user_id)
                    .is_("deleted_at", "null")
                    .execute()
                )
            except Exception as e:
                raise SupabaseError(f"Failed to check existing agent: {e}")
        if existing.data:
            raise ConflictError("Agent application already exists for this user")
        
        user = await get_user(user_id)
        if not user:
            raise NotFoundError("User not found")
        
        city_ids = _unique(city_ids)
        if not city_ids:
            raise BadRequestError("At least one city is required")
        
        area_ids = _unique(area_ids)
        if len(city_ids) > 1:
            area_ids = []
        elif area_ids:
            await _validate_areas(city_ids[0], area_ids)
        
        status = AgentApprovalStatus.APPROVED if submitted_by_admin else AgentApprovalStatus.PENDING
        now = utc_now_iso()
        agent = Agent(
            agent_id=generate_id(),
            user_id=user_id,
            status=status,
            city_ids=city_ids,
            area_ids=area_ids,
            identity_proof_url=identity_proof_ref,
            residency_document_url=residency_proof_ref,
            created_at=now,
            updated_at=now,
        )
        
        async with SupabaseClient() as client:
            try:
                client.table("agents").insert(agent.model_dump(mode="json")).execute()
            except Exception as e:
                if is_duplicate_key_error(e):
                    raise ConflictError("Agent application already exists for this user")
                raise SupabaseError(f"Failed to create agent: {e}")
        
        role = UserType.AGENT if submitted_by_admin else UserType.CUSTOMER
        try:
            await update_user_role(user_id, role.value)
        except SupabaseError:
            async with SupabaseClient() as client:
                client.table("agents").delete().eq("agent_id", agent.agent_id).execute()
            raise
        
        logger.info(
            "Agent application created",
            agent_id=agent.agent_id,
            user_id=mask_user_id(user_id),
            status=status.value,
            city_count=len(city_ids),
            area_count=len(area_ids),
            submitted_by_admin=submitted_by_admin
        )
    
    if not submitted_by_admin:
        await notify_by_role(
            UserType.ADMIN,
            NotificationType.SYSTEM,
            "New Agent Application",
            f"Agent {user.get('full_name') or user_id} submitted application.",
            related_id=agent.agent_id,
        )
    
    return agent


async def decide(agent_id: str, decision: str, notes: Optional[str] = None) -> Agent:
    """Record an approval decision. Decisions may be revisited later."""
    try:
        decision = AgentApprovalStatus(decision)
    except ValueError:
        raise BadRequestError(f"Invalid decision: {decision}")
    if decision == AgentApprovalStatus.PENDING:
        raise BadRequestError("Decision must be approved or rejected")
    
    with log_timing("decide_agent_application", logger=logger, agent_id=agent_id):
        agent = await get_agent(agent_id)
        previous = agent.status
        previous_notes = agent.kyc_notes

        updates = {"status": decision.value}
        if notes:
            updates["kyc_notes"] = notes
        agent = await _update_agent(agent_id, updates)

        if decision == AgentApprovalStatus.APPROVED:
            try:
                await update_user_role(agent.user_id, UserType.AGENT.value)
            except SupabaseError:
                await _restore_agent(agent_id, {"status": previous.value, "kyc_notes": previous_notes})
                raise
        
        logger.info(
            "Agent vetting decision recorded",
            agent_id=agent_id,
            user_id=mask_user_id(agent.user_id),
            previous_status=previous.value,
            status=decision.value,
            notes=sanitize_message_text(notes, max_length=200) if notes else None
        )
    
    await notify(
        agent.user_id,
        NotificationType.SYSTEM,
        "Agent Registration Decision",
        f"Your agent registration request has been {decision.value}",
        related_id=agent.agent_id,
    )
    return agent


async def reassign_scope(
    agent_id: str,
    city_ids: Optional[list[str]] = None,
    area_ids: Optional[list[str]] = None,
) -> Agent:
    """Change the cities and/or areas an agent serves."""
    agent = await get_agent(agent_id)
    
    new_cities = list(agent.city_ids)
    new_areas = list(agent.area_ids)
    
    if city_ids is not None:
        requested = _unique(city_ids)
        if not requested:
            raise BadRequestError("At least one city is required")
        if len(requested) > 1 or requested != new_cities:
            # Area scoping from a different city no longer applies
            new_areas = []
        new_cities = requested
    
    if area_ids is not None:
        if len(new_cities) != 1:
            raise BadRequestError("Areas can only be assigned when agent has exactly ONE city")
        new_areas = _unique(area_ids)
        if new_areas:
            await _validate_areas(new_cities[0], new_areas)
    
    agent = await _update_agent(agent_id, {"city_ids": new_cities, "area_ids": new_areas})
    logger.info(
        "Agent scope reassigned",
        agent_id=agent_id,
        city_count=len(new_cities),
        area_count=len(new_areas)
    )
    return agent


async def remove_agent(agent_id: str) -> Agent:
    """Soft-delete an agent and withdraw its open invitations."""
    await get_agent(agent_id)
    now = utc_now_iso()
    
    async with SupabaseClient() as client:
        try:
            withdrawn = (
                client.table("agent_appointment_requests")
                .update({"status": RequestStatus.REJECTED.value, "responded_at": now})
                .eq("agent_id", agent_id)
                .eq("status", RequestStatus.PENDING.value)
                .execute()
            )
        except Exception as e:
            raise SupabaseError(f"Failed to withdraw agent requests: {e}")
    
    try:
        agent = await _update_agent(agent_id, {"deleted_at": now})
    except (SupabaseError, NotFoundError):
        await _reinstate_requests([row["request_id"] for row in withdrawn.data or []])
        raise
    
    logger.info(
        "Agent removed",
        agent_id=agent_id,
        withdrawn_requests=len(withdrawn.data or [])
    )
    return agent
