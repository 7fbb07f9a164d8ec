"""Shared pytest fixtures and configuration."""

import os
import pytest
from dataclasses import dataclass, field
from freezegun import freeze_time

# Set test environment variables
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("SUPABASE_URL", "https://test.supabase.co")
os.environ.setdefault("SUPABASE_SERVICE_ROLE_KEY", "test-key")
os.environ.setdefault("LOG_FORMAT", "text")

from src.services import supabase_client
from tests.utils.fake_supabase import FakeSupabase
from tests.utils.factories import (
    create_agent_data,
    create_area_data,
    create_property_data,
    create_user_data,
)


@pytest.fixture
def fake_db(monkeypatch) -> FakeSupabase:
    """Install an in-memory store as the process-wide Supabase client."""
    db = FakeSupabase()
    db.add_unique("agents", ("user_id",), where=lambda row: row.get("deleted_at") is None)
    db.add_unique(
        "agent_appointment_requests",
        ("appointment_id",),
        where=lambda row: row.get("status") == "accepted",
    )
    monkeypatch.setattr(supabase_client, "_client", db)
    return db


@dataclass
class World:
    """Seeded marketplace: two cities, three areas, admins, a customer, agents, a property."""
    city_id: str
    other_city_id: str
    area_id: str
    sibling_area_id: str
    foreign_area_id: str
    property_id: str
    customer_id: str
    admin_ids: list[str]
    agent_ids: list[str]
    agent_user_ids: list[str]
    extra: dict = field(default_factory=dict)


@pytest.fixture
def world(fake_db) -> World:
    city_id, other_city_id = "city-cairo", "city-giza"
    area = create_area_data(city_id, area_id="area-maadi")
    sibling = create_area_data(city_id, area_id="area-zamalek")
    foreign = create_area_data(other_city_id, area_id="area-dokki")
    fake_db.seed("cities", {"city_id": city_id, "name": "Cairo"}, {"city_id": other_city_id, "name": "Giza"})
    fake_db.seed("areas", area, sibling, foreign)
    
    prop = create_property_data(city_id, area["area_id"], property_id="prop-1")
    fake_db.seed("properties", prop)
    
    customer = create_user_data("customer", user_id="user-customer")
    admins = [create_user_data("admin", user_id=f"user-admin-{i}") for i in range(2)]
    fake_db.seed("users", customer, *admins)
    
    agent_user_ids, agent_ids = [], []
    for i in range(3):
        user = create_user_data("agent", user_id=f"user-agent-{i}")
        fake_db.seed("users", user)
        agent = create_agent_data(
            user["user_id"], [city_id], [area["area_id"]], agent_id=f"agent-{i}"
        )
        fake_db.seed("agents", agent)
        agent_user_ids.append(user["user_id"])
        agent_ids.append(agent["agent_id"])
    
    return World(
        city_id=city_id,
        other_city_id=other_city_id,
        area_id=area["area_id"],
        sibling_area_id=sibling["area_id"],
        foreign_area_id=foreign["area_id"],
        property_id=prop["property_id"],
        customer_id=customer["user_id"],
        admin_ids=[a["user_id"] for a in admins],
        agent_ids=agent_ids,
        agent_user_ids=agent_user_ids,
    )


@pytest.fixture
def freeze_time_fixture():
    """Fixture for freezing time in tests."""
    with freeze_time("2024-12-09 12:00:00") as frozen_time:
        yield frozen_time
