"""Appointment and request table operations shared by scheduling and arbitration.

Every state change here is a conditional update: the WHERE clause carries the
expected current state, and an empty result means another writer got there
first.
"""

from typing import Optional

from src.models.appointment import (
    Appointment,
    AppointmentStatus,
    AppointmentStatusHistory,
    BOOKED_STATUSES,
)
from src.models.appointment_request import AgentAppointmentRequest, RequestStatus
from src.services.supabase_client import SupabaseClient, generate_id, utc_now_iso
from src.utils.errors import BadRequestError, ConflictError, NotFoundError, SupabaseError
from src.utils.logging import get_structured_logger
from src.utils.time_windows import windows_overlap

logger = get_structured_logger(__name__)


async def get_appointment(appointment_id: str) -> Appointment:
    async with SupabaseClient() as client:
        try:
            result = client.table("appointments").select("*").eq("appointment_id", appointment_id).execute()
        except Exception as e:
            raise SupabaseError(f"Failed to get appointment: {e}")
    if not result.data:
        raise NotFoundError("Appointment not found")
    return Appointment(**result.data[0])


async def get_request(request_id: str) -> AgentAppointmentRequest:
    async with SupabaseClient() as client:
        try:
            result = (
                client.table("agent_appointment_requests")
                .select("*")
                .eq("request_id", request_id)
                .execute()
            )
        except Exception as e:
            raise SupabaseError(f"Failed to get appointment request: {e}")
    if not result.data:
        raise NotFoundError("Request not found")
    return AgentAppointmentRequest(**result.data[0])


async def append_status_history(
    appointment_id: str,
    old_status: Optional[AppointmentStatus],
    new_status: AppointmentStatus,
    changed_by: Optional[str],
    notes: Optional[str] = None,
) -> AppointmentStatusHistory:
    """Insert one audit row. History rows are never updated or deleted."""
    entry = AppointmentStatusHistory(
        history_id=generate_id(),
        appointment_id=appointment_id,
        old_status=old_status,
        new_status=new_status,
        changed_by=changed_by,
        notes=notes,
        created_at=utc_now_iso(),
    )
    async with SupabaseClient() as client:
        try:
            client.table("appointment_status_history").insert(entry.model_dump(mode="json")).execute()
        except Exception as e:
            raise SupabaseError(f"Failed to record status history: {e}")
    return entry


async def ensure_agent_is_free(agent_id: str, candidate: Appointment) -> None:
    """Raise ConflictError when the agent already holds an overlapping booking."""
    async with SupabaseClient() as client:
        try:
            result = (
                client.table("appointments")
                .select("*")
                .eq("agent_id", agent_id)
                .in_("status", [status.value for status in BOOKED_STATUSES])
                .neq("appointment_id", candidate.appointment_id)
                .execute()
            )
        except Exception as e:
            raise SupabaseError(f"Failed to load agent bookings: {e}")
    
    for row in result.data or []:
        booked = Appointment(**row)
        if windows_overlap(booked.starts_at, booked.ends_at, candidate.starts_at, candidate.ends_at):
            logger.info(
                "Double booking prevented",
                agent_id=agent_id,
                appointment_id=candidate.appointment_id,
                conflicting_appointment_id=booked.appointment_id
            )
            raise ConflictError("Agent already has a confirmed appointment at this time")


async def claim_appointment(appointment_id: str, agent_id: str) -> Optional[Appointment]:
    """
    Compare-and-swap an unassigned pending appointment to confirmed for an agent.
    
    Returns None when the appointment is no longer claimable.
    """
    async with SupabaseClient() as client:
        try:
            result = (
                client.table("appointments")
                .update({
                    "agent_id": agent_id,
                    "status": AppointmentStatus.CONFIRMED.value,
                    "updated_at": utc_now_iso(),
                })
                .eq("appointment_id", appointment_id)
                .eq("status", AppointmentStatus.PENDING.value)
                .is_("agent_id", "null")
                .execute()
            )
        except Exception as e:
            raise SupabaseError(f"Failed to claim appointment: {e}")
    return Appointment(**result.data[0]) if result.data else None


async def release_claim(appointment_id: str, agent_id: str) -> None:
    """Undo claim_appointment for the same agent."""
    async with SupabaseClient() as client:
        client.table("appointments").update({
            "agent_id": None,
            "status": AppointmentStatus.PENDING.value,
            "updated_at": utc_now_iso(),
        }).eq("appointment_id", appointment_id).eq("agent_id", agent_id).eq(
            "status", AppointmentStatus.CONFIRMED.value
        ).execute()


async def transition_request(
    request_id: str,
    new_status: RequestStatus,
    responded_at: Optional[str] = None,
) -> Optional[AgentAppointmentRequest]:
    """Compare-and-swap a pending request to its answer. None if it was already answered."""
    async with SupabaseClient() as client:
        try:
            result = (
                client.table("agent_appointment_requests")
                .update({
                    "status": new_status.value,
                    "responded_at": responded_at or utc_now_iso(),
                })
                .eq("request_id", request_id)
                .eq("status", RequestStatus.PENDING.value)
                .execute()
            )
        except Exception as e:
            raise SupabaseError(f"Failed to update appointment request: {e}")
    return AgentAppointmentRequest(**result.data[0]) if result.data else None


async def reopen_request(request_id: str) -> None:
    """Undo transition_request(accepted) when the surrounding acceptance fails."""
    async with SupabaseClient() as client:
        client.table("agent_appointment_requests").update({
            "status": RequestStatus.PENDING.value,
            "responded_at": None,
        }).eq("request_id", request_id).eq("status", RequestStatus.ACCEPTED.value).execute()


async def reject_pending_requests(
    appointment_id: str,
    except_request_id: Optional[str] = None,
    responded_at: Optional[str] = None,
) -> list[AgentAppointmentRequest]:
    """Bulk-reject every still-pending request for an appointment."""
    async with SupabaseClient() as client:
        try:
            query = (
                client.table("agent_appointment_requests")
                .update({
                    "status": RequestStatus.REJECTED.value,
                    "responded_at": responded_at or utc_now_iso(),
                })
                .eq("appointment_id", appointment_id)
                .eq("status", RequestStatus.PENDING.value)
            )
            if except_request_id:
                query = query.neq("request_id", except_request_id)
            result = query.execute()
        except Exception as e:
            raise SupabaseError(f"Failed to reject sibling requests: {e}")
    return [AgentAppointmentRequest(**row) for row in result.data or []]


async def restore_requests(request_ids: list[str]) -> None:
    """Undo a cascade rejection for the given requests."""
    if not request_ids:
        return
    async with SupabaseClient() as client:
        client.table("agent_appointment_requests").update({
            "status": RequestStatus.PENDING.value,
            "responded_at": None,
        }).in_("request_id", request_ids).eq("status", RequestStatus.REJECTED.value).execute()


async def _undo_assignment(
    appointment_id: str,
    agent_id: str,
    accepted_request_id: Optional[str],
    rejected_request_ids: list[str],
) -> None:
    """Best-effort compensation for a partially applied assignment."""
    steps = [
        ("restore_requests", restore_requests(rejected_request_ids)),
        ("reopen_request", reopen_request(accepted_request_id) if accepted_request_id else None),
        ("release_claim", release_claim(appointment_id, agent_id)),
    ]
    for name, step in steps:
        if step is None:
            continue
        try:
            await step
        except Exception as e:
            logger.error(
                "Failed to compensate partial assignment",
                appointment_id=appointment_id,
                agent_id=agent_id,
                step=name,
                error=str(e),
                exc_info=True
            )


async def commit_assignment(
    appointment: Appointment,
    agent_id: str,
    changed_by: Optional[str],
    request_id: Optional[str] = None,
    notes: Optional[str] = None,
) -> tuple[Appointment, Optional[AgentAppointmentRequest], list[AgentAppointmentRequest]]:
    """
    Assign an agent to a pending appointment as one unit of work.
    
    The appointment is claimed first with a compare-and-swap scoped to the
    appointment, so of any number of concurrent callers exactly one gets past
    this point. The winner then accepts its own request (if any), rejects every
    other pending sibling and writes the history row. If any of those writes
    fails, the earlier ones are undone and the error propagates.
    
    Returns (appointment, accepted_request, rejected_siblings).
    """
    appointment_id = appointment.appointment_id
    log = logger.bind(appointment_id=appointment_id, agent_id=agent_id, request_id=request_id)
    claimed = await claim_appointment(appointment_id, agent_id)
    if claimed is None:
        log.info("Appointment claim lost")
        raise BadRequestError("Appointment has already been assigned")
    
    responded_at = utc_now_iso()
    accepted: Optional[AgentAppointmentRequest] = None
    rejected: list[AgentAppointmentRequest] = []
    try:
        if request_id:
            accepted = await transition_request(request_id, RequestStatus.ACCEPTED, responded_at)
            if accepted is None:
                raise BadRequestError("Request has already been processed")
        rejected = await reject_pending_requests(
            appointment_id,
            except_request_id=request_id,
            responded_at=responded_at,
        )
        await append_status_history(
            appointment_id,
            AppointmentStatus(appointment.status),
            AppointmentStatus.CONFIRMED,
            changed_by,
            notes,
        )
    except (SupabaseError, BadRequestError):
        await _undo_assignment(
            appointment_id,
            agent_id,
            accepted.request_id if accepted else None,
            [r.request_id for r in rejected],
        )
        raise
    
    log.info("Appointment assigned", rejected_siblings=len(rejected))
    return claimed, accepted, rejected
