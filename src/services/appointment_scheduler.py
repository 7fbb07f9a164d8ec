"""Appointment scheduler - viewing requests, fan-out to eligible agents, admin transitions."""

from datetime import date, time
from typing import Optional, Union

from src.models.agent import AgentApprovalStatus
from src.models.appointment import (
    Appointment,
    AppointmentStatus,
    AppointmentStatusHistory,
    OPEN_STATUSES,
    can_transition,
)
from src.models.appointment_request import AgentAppointmentRequest, RequestStatus
from src.models.notification import NotificationType
from src.models.property import Property
from src.models.user import UserType
from src.services import appointment_store
from src.services.appointment_store import (
    append_status_history,
    commit_assignment,
    ensure_agent_is_free,
    reject_pending_requests,
    restore_requests,
)
from src.services.directory import find_eligible_agents, get_agent
from src.services.notifications import notify, notify_by_role
from src.services.supabase_client import (
    SupabaseClient,
    generate_id,
    get_property,
    get_user,
    utc_now_iso,
)
from src.utils.errors import (
    BadRequestError,
    ConflictError,
    NotFoundError,
    SupabaseError,
)
from src.utils.logging import get_structured_logger, log_timing, mask_user_id, timed
from src.utils.time_windows import (
    format_time,
    parse_date,
    parse_time,
    window_for,
    windows_overlap,
)

logger = get_structured_logger(__name__)

STATUS_MESSAGES = {
    AppointmentStatus.CONFIRMED: "Your appointment has been confirmed.",
    AppointmentStatus.IN_PROGRESS: "Your appointment is currently in progress.",
    AppointmentStatus.COMPLETED: "Your appointment has been completed.",
    AppointmentStatus.CANCELLED: "Your appointment has been cancelled.",
}


async def _ensure_no_overlap(customer_id: str, property_id: str, day: date, start_at, end_at) -> None:
    """Customers may not hold two open viewings of one property at overlapping times."""
    async with SupabaseClient() as client:
        try:
            result = (
                client.table("appointments")
                .select("*")
                .eq("customer_id", customer_id)
                .eq("property_id", property_id)
                .eq("appointment_date", day.isoformat())
                .in_("status", [status.value for status in OPEN_STATUSES])
                .execute()
            )
        except Exception as e:
            raise SupabaseError(f"Failed to check overlapping appointments: {e}")
    
    for row in result.data or []:
        existing = Appointment(**row)
        if windows_overlap(existing.starts_at, existing.ends_at, start_at, end_at):
            raise ConflictError(
                "You already have an appointment (pending or accepted) at this time for this property."
            )


async def _discard_appointment(appointment_id: str) -> None:
    """Remove a half-written appointment and its requests."""
    try:
        async with SupabaseClient() as client:
            client.table("agent_appointment_requests").delete().eq("appointment_id", appointment_id).execute()
            client.table("appointments").delete().eq("appointment_id", appointment_id).execute()
    except Exception as e:
        logger.error(
            "Failed to discard partially created appointment",
            appointment_id=appointment_id,
            error=str(e),
            exc_info=True
        )


async def create_appointment(
    property_id: str,
    customer_id: str,
    appointment_date: Union[str, date],
    start_time: Union[str, time],
    end_time: Union[str, time],
    customer_notes: Optional[str] = None,
) -> Appointment:
    """
    Book a viewing and invite every eligible agent in the property's area.
    
    The appointment, its requests and the first history row are written as
    one unit: if a write fails, what was already written is removed. Agents,
    the customer and admins are notified afterwards on a best-effort basis.
    """
    with log_timing(
        "create_appointment",
        logger=logger,
        property_id=property_id,
        customer_id=mask_user_id(customer_id)
    ):
        day = parse_date(appointment_date)
        start_at, end_at = window_for(day, start_time, end_time)
        
        property_row = await get_property(property_id)
        if not property_row:
            raise NotFoundError("Property not found")
        listing = Property(**property_row)
        area_id = listing.area_id
        if not area_id:
            raise NotFoundError("Property area not found")
        
        customer = await get_user(customer_id)
        if not customer:
            raise NotFoundError("Customer not found")
        
        await _ensure_no_overlap(customer_id, property_id, day, start_at, end_at)
        
        agents = await find_eligible_agents(area_id)
        if not agents:
            raise NotFoundError("No agents available in this area")
        
        now = utc_now_iso()
        appointment = Appointment(
            appointment_id=generate_id(),
            property_id=property_id,
            customer_id=customer_id,
            agent_id=None,
            appointment_date=day,
            start_time=parse_time(start_time),
            end_time=parse_time(end_time),
            status=AppointmentStatus.PENDING,
            customer_notes=customer_notes,
            created_at=now,
            updated_at=now,
        )
        requests = [
            AgentAppointmentRequest(
                request_id=generate_id(),
                appointment_id=appointment.appointment_id,
                agent_id=agent.agent_id,
                status=RequestStatus.PENDING,
                created_at=now,
            )
            for agent in agents
        ]
        
        row = appointment.model_dump(mode="json")
        row["start_time"] = format_time(appointment.start_time)
        row["end_time"] = format_time(appointment.end_time)
        
        async with SupabaseClient() as client:
            try:
                client.table("appointments").insert(row).execute()
            except Exception as e:
                raise SupabaseError(f"Failed to create appointment: {e}")
        try:
            async with SupabaseClient() as client:
                try:
                    client.table("agent_appointment_requests").insert(
                        [request.model_dump(mode="json") for request in requests]
                    ).execute()
                except Exception as e:
                    raise SupabaseError(f"Failed to create appointment requests: {e}")
            await append_status_history(
                appointment.appointment_id,
                None,
                AppointmentStatus.PENDING,
                customer_id,
                "Appointment requested",
            )
        except SupabaseError:
            await _discard_appointment(appointment.appointment_id)
            raise
        
        logger.info(
            "Appointment created",
            appointment_id=appointment.appointment_id,
            property_id=property_id,
            area_id=area_id,
            appointment_date=day.isoformat(),
            requests_created=len(requests)
        )
    
    for agent in agents:
        await notify(
            agent.user_id,
            NotificationType.SYSTEM,
            "New Appointment Request",
            "A customer wants to visit a property in your area. Please accept or reject the request.",
            related_id=appointment.appointment_id,
        )
    
    await notify(
        customer_id,
        NotificationType.APPOINTMENT_REMINDER,
        "Appointment Created",
        "Your appointment request was sent to agents in the area.",
        related_id=appointment.appointment_id,
    )
    
    await notify_by_role(
        UserType.ADMIN,
        NotificationType.SYSTEM,
        "New Appointment Created",
        f"A customer created an appointment for property: {listing.title}",
        related_id=appointment.appointment_id,
    )
    
    return appointment


async def get_appointment(appointment_id: str) -> Appointment:
    return await appointment_store.get_appointment(appointment_id)


@timed("get_status_history")
async def get_status_history(appointment_id: str) -> list[AppointmentStatusHistory]:
    """Audit trail for an appointment, oldest first."""
    await appointment_store.get_appointment(appointment_id)
    async with SupabaseClient() as client:
        try:
            result = (
                client.table("appointment_status_history")
                .select("*")
                .eq("appointment_id", appointment_id)
                .order("created_at")
                .execute()
            )
        except Exception as e:
            raise SupabaseError(f"Failed to load status history: {e}")
    return [AppointmentStatusHistory(**row) for row in result.data or []]


async def _revert_status(
    appointment_id: str,
    old_status: AppointmentStatus,
    new_status: AppointmentStatus,
    withdrawn_request_ids: list[str],
) -> None:
    """Undo a status change whose follow-up writes failed."""
    try:
        await restore_requests(withdrawn_request_ids)
        async with SupabaseClient() as client:
            client.table("appointments").update({"status": old_status.value}).eq(
                "appointment_id", appointment_id
            ).eq("status", new_status.value).execute()
    except Exception as e:
        logger.error(
            "Failed to revert appointment status",
            appointment_id=appointment_id,
            old_status=old_status.value,
            new_status=new_status.value,
            error=str(e),
            exc_info=True
        )


async def update_status(
    appointment_id: str,
    new_status: str,
    changed_by: Optional[str],
    notes: Optional[str] = None,
) -> Appointment:
    """Administrative status change (start, complete, cancel)."""
    try:
        new_status = AppointmentStatus(new_status)
    except ValueError:
        raise BadRequestError(f"Invalid status: {new_status}")
    
    appointment = await appointment_store.get_appointment(appointment_id)
    old_status = appointment.status
    if not can_transition(old_status, new_status):
        raise BadRequestError(
            f"Cannot change appointment status from {old_status.value} to {new_status.value}"
        )
    
    async with SupabaseClient() as client:
        try:
            result = (
                client.table("appointments")
                .update({"status": new_status.value, "updated_at": utc_now_iso()})
                .eq("appointment_id", appointment_id)
                .eq("status", old_status.value)
                .execute()
            )
        except Exception as e:
            raise SupabaseError(f"Failed to update appointment status: {e}")
    if not result.data:
        raise ConflictError("Appointment status changed concurrently, reload and retry")
    updated = Appointment(**result.data[0])
    
    withdrawn = []
    try:
        if new_status == AppointmentStatus.CANCELLED:
            withdrawn = await reject_pending_requests(appointment_id)
        await append_status_history(appointment_id, old_status, new_status, changed_by, notes)
    except SupabaseError:
        await _revert_status(appointment_id, old_status, new_status, [r.request_id for r in withdrawn])
        raise

    logger.info(
        "Appointment status updated",
        appointment_id=appointment_id,
        old_status=old_status.value,
        new_status=new_status.value,
        changed_by=mask_user_id(changed_by),
        withdrawn_requests=len(withdrawn)
    )
    
    await _announce_status(updated, new_status)
    return updated


async def _announce_status(appointment: Appointment, status: AppointmentStatus) -> None:
    message = STATUS_MESSAGES.get(status)
    if not message:
        return
    
    await notify(
        appointment.customer_id,
        NotificationType.APPOINTMENT_REMINDER,
        "Appointment Status Updated",
        message,
        related_id=appointment.appointment_id,
    )
    if appointment.agent_id:
        try:
            agent = await get_agent(appointment.agent_id)
        except (NotFoundError, SupabaseError) as e:
            logger.warning("Assigned agent not notified", agent_id=appointment.agent_id, error=str(e))
            return
        await notify(
            agent.user_id,
            NotificationType.APPOINTMENT_REMINDER,
            "Appointment Status Updated",
            message,
            related_id=appointment.appointment_id,
        )


async def assign_agent(appointment_id: str, agent_id: str, changed_by: Optional[str]) -> Appointment:
    """
    Admin override: assign an approved agent to a pending appointment.
    
    Goes through the same claim and cascade as an agent acceptance, so it
    cannot race with one.
    """
    appointment = await appointment_store.get_appointment(appointment_id)
    if appointment.status != AppointmentStatus.PENDING or appointment.agent_id:
        raise BadRequestError("Only unassigned pending appointments can be assigned")
    
    agent = await get_agent(agent_id)
    if agent.status != AgentApprovalStatus.APPROVED:
        raise BadRequestError("Agent is not approved")
    
    await ensure_agent_is_free(agent_id, appointment)
    
    async with SupabaseClient() as client:
        try:
            own = (
                client.table("agent_appointment_requests")
                .select("request_id")
                .eq("appointment_id", appointment_id)
                .eq("agent_id", agent_id)
                .eq("status", RequestStatus.PENDING.value)
                .execute()
            )
        except Exception as e:
            raise SupabaseError(f"Failed to load agent request: {e}")
    request_id = own.data[0]["request_id"] if own.data else None
    
    confirmed, _, _ = await commit_assignment(
        appointment,
        agent_id,
        changed_by=changed_by,
        request_id=request_id,
        notes="Assigned by admin",
    )
    
    customer_message = "An agent has been assigned to your property viewing appointment."
    await notify(
        confirmed.customer_id,
        NotificationType.APPOINTMENT_REMINDER,
        "Agent Assigned to Your Appointment",
        customer_message,
        related_id=appointment_id,
    )
    await notify(
        agent.user_id,
        NotificationType.APPOINTMENT_REMINDER,
        "You Have Been Assigned to a New Appointment",
        "You have been assigned to a property viewing appointment.",
        related_id=appointment_id,
    )
    return confirmed
