"""Tests for appointment creation, admin transitions and admin assignment."""

import pytest

from src.models.appointment import AppointmentStatus
from src.services.appointment_scheduler import (
    assign_agent,
    create_appointment,
    get_appointment,
    get_status_history,
    update_status,
)
from src.utils.errors import BadRequestError, ConflictError, NotFoundError, SupabaseError
from tests.utils.factories import (
    create_appointment_data,
    create_property_data,
    create_request_data,
)

DAY = "2025-01-15"


async def _book(world, start="10:00", end="11:00", day=DAY):
    return await create_appointment(world.property_id, world.customer_id, day, start, end)


@pytest.mark.unit
@pytest.mark.asyncio
async def test_create_appointment_fans_out(world, fake_db):
    appointment = await _book(world)
    
    assert appointment.status == AppointmentStatus.PENDING
    assert appointment.agent_id is None
    stored = fake_db.get("appointments", appointment_id=appointment.appointment_id)
    assert stored["start_time"] == "10:00"
    assert stored["end_time"] == "11:00"
    assert stored["appointment_date"] == DAY
    
    requests = fake_db.find("agent_appointment_requests", appointment_id=appointment.appointment_id)
    assert sorted(r["agent_id"] for r in requests) == sorted(world.agent_ids)
    assert all(r["status"] == "pending" and r["responded_at"] is None for r in requests)
    
    history = await get_status_history(appointment.appointment_id)
    assert [(h.old_status, h.new_status) for h in history] == [(None, AppointmentStatus.PENDING)]
    assert history[0].changed_by == world.customer_id


@pytest.mark.unit
@pytest.mark.asyncio
async def test_create_appointment_notifies_everyone(world, fake_db):
    appointment = await _book(world)
    
    notices = fake_db.find("notifications", related_id=appointment.appointment_id)
    by_title = {}
    for notice in notices:
        by_title.setdefault(notice["title"], []).append(notice["user_id"])
    
    assert sorted(by_title["New Appointment Request"]) == sorted(world.agent_user_ids)
    assert by_title["Appointment Created"] == [world.customer_id]
    assert sorted(by_title["New Appointment Created"]) == sorted(world.admin_ids)


@pytest.mark.unit
@pytest.mark.asyncio
@pytest.mark.parametrize("start,end", [("11:00", "10:00"), ("10:00", "10:00")])
async def test_create_rejects_inverted_window(world, fake_db, start, end):
    with pytest.raises(BadRequestError):
        await _book(world, start, end)
    assert fake_db.find("appointments") == []


@pytest.mark.unit
@pytest.mark.asyncio
async def test_create_unknown_property(world):
    with pytest.raises(NotFoundError, match="Property not found"):
        await create_appointment("prop-missing", world.customer_id, DAY, "10:00", "11:00")


@pytest.mark.unit
@pytest.mark.asyncio
async def test_create_unknown_customer(world):
    with pytest.raises(NotFoundError, match="Customer not found"):
        await create_appointment(world.property_id, "user-missing", DAY, "10:00", "11:00")


@pytest.mark.unit
@pytest.mark.asyncio
async def test_overlapping_booking_conflicts_but_adjacent_succeeds(world, fake_db):
    await _book(world, "10:00", "11:00")
    
    with pytest.raises(ConflictError):
        await _book(world, "10:30", "11:30")
    
    adjacent = await _book(world, "11:00", "12:00")
    assert adjacent.status == AppointmentStatus.PENDING
    assert len(fake_db.find("appointments")) == 2


@pytest.mark.unit
@pytest.mark.asyncio
@pytest.mark.parametrize("status,conflicts", [
    ("pending", True),
    ("confirmed", True),
    ("accepted", True),
    ("cancelled", False),
    ("completed", False),
])
async def test_overlap_only_counts_open_appointments(world, fake_db, status, conflicts):
    fake_db.seed("appointments", create_appointment_data(
        world.property_id, world.customer_id, DAY, "09:00", "12:00", status=status
    ))
    
    if conflicts:
        with pytest.raises(ConflictError):
            await _book(world, "10:00", "11:00")
    else:
        assert await _book(world, "10:00", "11:00")


@pytest.mark.unit
@pytest.mark.asyncio
async def test_overlap_ignores_other_dates(world):
    await _book(world, "10:00", "11:00")
    
    assert await _book(world, "10:00", "11:00", day="2025-01-16")


@pytest.mark.unit
@pytest.mark.asyncio
async def test_create_without_eligible_agents(world, fake_db):
    lonely = create_property_data(world.city_id, world.sibling_area_id, property_id="prop-lonely")
    fake_db.seed("properties", lonely)
    
    with pytest.raises(NotFoundError, match="No agents available"):
        await create_appointment("prop-lonely", world.customer_id, DAY, "10:00", "11:00")
    assert fake_db.find("appointments") == []


@pytest.mark.unit
@pytest.mark.asyncio
async def test_failed_fan_out_leaves_nothing_behind(world, fake_db):
    fake_db.fail_on.add(("agent_appointment_requests", "insert"))
    
    with pytest.raises(SupabaseError):
        await _book(world)
    assert fake_db.find("appointments") == []
    assert fake_db.find("notifications") == []


@pytest.mark.unit
@pytest.mark.asyncio
async def test_failed_history_write_leaves_nothing_behind(world, fake_db):
    fake_db.fail_on.add(("appointment_status_history", "insert"))
    
    with pytest.raises(SupabaseError):
        await _book(world)
    assert fake_db.find("appointments") == []
    assert fake_db.find("agent_appointment_requests") == []


@pytest.mark.unit
@pytest.mark.asyncio
async def test_notification_outage_does_not_fail_booking(world, fake_db):
    fake_db.fail_on.add(("notifications", "insert"))
    
    appointment = await _book(world)
    
    assert fake_db.get("appointments", appointment_id=appointment.appointment_id)


@pytest.mark.unit
@pytest.mark.asyncio
async def test_get_appointment_not_found(world):
    with pytest.raises(NotFoundError):
        await get_appointment("ap-missing")


@pytest.fixture
def confirmed_appointment(world, fake_db):
    row = create_appointment_data(
        world.property_id, world.customer_id, DAY, "10:00", "11:00",
        status="confirmed", agent_id=world.agent_ids[0],
    )
    fake_db.seed("appointments", row)
    return row


@pytest.mark.unit
@pytest.mark.asyncio
async def test_update_status_walks_lifecycle(world, fake_db, confirmed_appointment):
    appointment_id = confirmed_appointment["appointment_id"]
    
    started = await update_status(appointment_id, "in_progress", world.admin_ids[0])
    finished = await update_status(appointment_id, "completed", world.admin_ids[0], notes="Went well")
    
    assert started.status == AppointmentStatus.IN_PROGRESS
    assert finished.status == AppointmentStatus.COMPLETED
    history = await get_status_history(appointment_id)
    assert [(h.old_status.value, h.new_status.value) for h in history] == [
        ("confirmed", "in_progress"),
        ("in_progress", "completed"),
    ]
    assert history[1].notes == "Went well"
    
    recipients = {n["user_id"] for n in fake_db.find("notifications", related_id=appointment_id)}
    assert recipients == {world.customer_id, world.agent_user_ids[0]}


@pytest.mark.unit
@pytest.mark.asyncio
@pytest.mark.parametrize("target", ["completed", "pending", "confirmed"])
async def test_update_status_rejects_illegal_moves(world, confirmed_appointment, target):
    with pytest.raises(BadRequestError):
        await update_status(confirmed_appointment["appointment_id"], target, world.admin_ids[0])


@pytest.mark.unit
@pytest.mark.asyncio
async def test_terminal_appointment_cannot_change(world, confirmed_appointment):
    appointment_id = confirmed_appointment["appointment_id"]
    await update_status(appointment_id, "cancelled", world.admin_ids[0])
    
    with pytest.raises(BadRequestError):
        await update_status(appointment_id, "in_progress", world.admin_ids[0])


@pytest.mark.unit
@pytest.mark.asyncio
async def test_update_status_unknown_value(world, confirmed_appointment):
    with pytest.raises(BadRequestError):
        await update_status(confirmed_appointment["appointment_id"], "teleported", world.admin_ids[0])


@pytest.mark.unit
@pytest.mark.asyncio
async def test_cancelling_pending_appointment_withdraws_requests(world, fake_db):
    appointment = await _book(world)
    
    cancelled = await update_status(appointment.appointment_id, "cancelled", world.customer_id)
    
    assert cancelled.status == AppointmentStatus.CANCELLED
    requests = fake_db.find("agent_appointment_requests", appointment_id=appointment.appointment_id)
    assert requests and all(r["status"] == "rejected" for r in requests)


@pytest.mark.unit
@pytest.mark.asyncio
async def test_assign_agent_claims_and_cascades(world, fake_db):
    appointment = await _book(world)
    
    confirmed = await assign_agent(appointment.appointment_id, world.agent_ids[2], world.admin_ids[0])
    
    assert confirmed.status == AppointmentStatus.CONFIRMED
    assert confirmed.agent_id == world.agent_ids[2]
    statuses = {
        r["agent_id"]: r["status"]
        for r in fake_db.find("agent_appointment_requests", appointment_id=appointment.appointment_id)
    }
    assert statuses == {
        world.agent_ids[0]: "rejected",
        world.agent_ids[1]: "rejected",
        world.agent_ids[2]: "accepted",
    }
    history = await get_status_history(appointment.appointment_id)
    assert history[-1].changed_by == world.admin_ids[0]
    assert history[-1].new_status == AppointmentStatus.CONFIRMED


@pytest.mark.unit
@pytest.mark.asyncio
async def test_assign_agent_requires_pending_unassigned(world, confirmed_appointment):
    with pytest.raises(BadRequestError):
        await assign_agent(confirmed_appointment["appointment_id"], world.agent_ids[1], world.admin_ids[0])


@pytest.mark.unit
@pytest.mark.asyncio
async def test_assign_agent_requires_approved_agent(world, fake_db):
    appointment = await _book(world)
    fake_db.table("agents").update({"status": "pending"}).eq("agent_id", world.agent_ids[1]).execute()
    
    with pytest.raises(BadRequestError, match="not approved"):
        await assign_agent(appointment.appointment_id, world.agent_ids[1], world.admin_ids[0])


@pytest.mark.unit
@pytest.mark.asyncio
async def test_assign_agent_respects_double_booking(world, fake_db, confirmed_appointment):
    other = create_appointment_data("prop-elsewhere", "user-other", DAY, "10:30", "11:30")
    fake_db.seed("appointments", other)
    fake_db.seed("agent_appointment_requests", create_request_data(other["appointment_id"], world.agent_ids[0]))
    
    with pytest.raises(ConflictError):
        await assign_agent(other["appointment_id"], world.agent_ids[0], world.admin_ids[0])
    assert fake_db.get("appointments", appointment_id=other["appointment_id"])["status"] == "pending"


@pytest.mark.unit
@pytest.mark.asyncio
async def test_cancel_is_undone_when_withdrawal_fails(world, fake_db):
    appointment = await _book(world)
    fake_db.fail_on.add(("agent_appointment_requests", "update"))
    
    with pytest.raises(SupabaseError):
        await update_status(appointment.appointment_id, "cancelled", world.admin_ids[0])
    
    assert fake_db.get("appointments", appointment_id=appointment.appointment_id)["status"] == "pending"
    requests = fake_db.find("agent_appointment_requests", appointment_id=appointment.appointment_id)
    assert len(requests) == 3
    assert all(r["status"] == "pending" for r in requests)
    history = await get_status_history(appointment.appointment_id)
    assert [h.new_status for h in history] == [AppointmentStatus.PENDING]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_cancel_is_undone_when_history_write_fails(world, fake_db):
    appointment = await _book(world)
    fake_db.fail_on.add(("appointment_status_history", "insert"))
    
    with pytest.raises(SupabaseError):
        await update_status(appointment.appointment_id, "cancelled", world.admin_ids[0])
    
    assert fake_db.get("appointments", appointment_id=appointment.appointment_id)["status"] == "pending"
    requests = fake_db.find("agent_appointment_requests", appointment_id=appointment.appointment_id)
    assert all(r["status"] == "pending" and r["responded_at"] is None for r in requests)


@pytest.mark.unit
@pytest.mark.asyncio
async def test_failed_revert_keeps_original_error(world, fake_db, confirmed_appointment):
    fake_db.fail_on.add(("appointment_status_history", "insert"))
    updates = {"count": 0}
    
    def fail_second_appointment_update(table, op, filters):
        if table == "appointments" and op == "update":
            updates["count"] += 1
            if updates["count"] == 2:
                raise RuntimeError("connection reset")
    
    fake_db.on_execute = fail_second_appointment_update
    
    with pytest.raises(SupabaseError, match="status history"):
        await update_status(confirmed_appointment["appointment_id"], "in_progress", world.admin_ids[0])
    assert updates["count"] == 2
