"""Request arbitration - agents answer invitations; the first durable acceptance wins."""

from typing import Optional

from src.models.appointment import Appointment, AppointmentStatus
from src.models.appointment_request import (
    AgentAppointmentRequest,
    AgentAppointments,
    Page,
    RequestStatus,
)
from src.models.notification import NotificationType
from src.models.user import User, UserType
from src.services.appointment_store import (
    commit_assignment,
    ensure_agent_is_free,
    get_appointment,
    get_request,
    transition_request,
)
from src.services.directory import get_agent
from src.services.notifications import notify, notify_by_role
from src.services.supabase_client import SupabaseClient, get_user
from src.utils.config import WorkflowConfig
from src.utils.errors import BadRequestError, ForbiddenError, SupabaseError
from src.utils.logging import get_structured_logger, log_timing, timed

logger = get_structured_logger(__name__)


def _parse_decision(decision) -> RequestStatus:
    try:
        decision = RequestStatus(decision)
    except ValueError:
        raise BadRequestError(f"Invalid decision: {decision}")
    if decision == RequestStatus.PENDING:
        raise BadRequestError("Decision must be accepted or rejected")
    return decision


async def respond(
    request_id: str,
    acting_agent_id: str,
    decision: str,
) -> AgentAppointmentRequest:
    """
    Answer an appointment request on behalf of the agent it was sent to.
    
    A request can be answered once. Rejecting only retires this request.
    Accepting checks the agent's calendar, then assigns the agent and rejects
    every sibling request as one unit; a concurrent acceptance of a sibling
    that loses the race fails with BadRequestError.
    """
    decision = _parse_decision(decision)
    
    with log_timing(
        "respond_to_appointment_request",
        logger=logger,
        request_id=request_id,
        agent_id=acting_agent_id,
        decision=decision.value
    ):
        request = await get_request(request_id)
        appointment = await get_appointment(request.appointment_id)
        agent = await get_agent(request.agent_id)
        
        if agent.agent_id != acting_agent_id:
            raise ForbiddenError("Access denied")
        
        if request.status != RequestStatus.PENDING:
            raise BadRequestError("Request has already been processed")
        
        if decision == RequestStatus.REJECTED:
            rejected = await transition_request(request_id, RequestStatus.REJECTED)
            if rejected is None:
                raise BadRequestError("Request has already been processed")
            logger.info(
                "Appointment request rejected",
                request_id=request_id,
                appointment_id=appointment.appointment_id,
                agent_id=agent.agent_id
            )
            return rejected
        
        if appointment.status != AppointmentStatus.PENDING or appointment.agent_id:
            raise BadRequestError("Appointment has already been assigned")
        
        await ensure_agent_is_free(agent.agent_id, appointment)
        
        confirmed, accepted, _ = await commit_assignment(
            appointment,
            agent.agent_id,
            changed_by=agent.user_id,
            request_id=request_id,
            notes="Accepted by agent",
        )
    
    await _announce_acceptance(confirmed, agent.user_id)
    return accepted


async def _announce_acceptance(appointment: Appointment, agent_user_id: str) -> None:
    agent_user = await _safe_get_user(agent_user_id)
    agent_name = (agent_user.full_name if agent_user else None) or "An agent"
    
    await notify(
        appointment.customer_id,
        NotificationType.APPOINTMENT_REMINDER,
        "Agent Accepted Appointment",
        f"Agent {agent_name} accepted your appointment request.",
        related_id=appointment.appointment_id,
    )
    await notify_by_role(
        UserType.ADMIN,
        NotificationType.SYSTEM,
        "Appointment Assigned",
        f"Appointment has been assigned to agent {agent_name}.",
        related_id=appointment.appointment_id,
    )


async def _safe_get_user(user_id: str) -> Optional[User]:
    """User lookup for notification text only; a failure must not fail the caller."""
    try:
        row = await get_user(user_id)
    except SupabaseError as e:
        logger.warning("Failed to load user for notification", error=str(e))
        return None
    return User(**row) if row else None


@timed("get_agent_appointments")
async def get_agent_appointments(
    agent_id: str,
    page: int = 1,
    limit: Optional[int] = None,
    pending_page: int = 1,
    pending_limit: Optional[int] = None,
) -> AgentAppointments:
    """An agent's assigned appointments and open invitations, each paginated on its own."""
    await get_agent(agent_id)
    page, limit = WorkflowConfig.clamp_page(page, limit)
    pending_page, pending_limit = WorkflowConfig.clamp_page(pending_page, pending_limit)
    
    async with SupabaseClient() as client:
        try:
            start = (page - 1) * limit
            assigned = (
                client.table("appointments")
                .select("*", count="exact")
                .eq("agent_id", agent_id)
                .order("appointment_date")
                .order("start_time")
                .range(start, start + limit - 1)
                .execute()
            )
            pending_start = (pending_page - 1) * pending_limit
            invitations = (
                client.table("agent_appointment_requests")
                .select("*", count="exact")
                .eq("agent_id", agent_id)
                .eq("status", RequestStatus.PENDING.value)
                .order("created_at")
                .range(pending_start, pending_start + pending_limit - 1)
                .execute()
            )
        except Exception as e:
            raise SupabaseError(f"Failed to load agent appointments: {e}")
    
    return AgentAppointments(
        confirmed=Page[Appointment](
            total_records=assigned.count or 0,
            current_page=page,
            per_page=limit,
            records=[Appointment(**row) for row in assigned.data or []],
        ),
        pending=Page[AgentAppointmentRequest](
            total_records=invitations.count or 0,
            current_page=pending_page,
            per_page=pending_limit,
            records=[AgentAppointmentRequest(**row) for row in invitations.data or []],
        ),
    )
