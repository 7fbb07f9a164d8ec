"""Supabase client wrapper with async context manager support."""

import os
from datetime import datetime, timezone
from typing import Optional
from supabase import create_client, Client
from supabase.client import ClientOptions
from ulid import ULID
from src.utils.errors import SupabaseError, WorkflowError
import logging

logger = logging.getLogger(__name__)

# Global client instance (singleton pattern)
_client: Optional[Client] = None


def get_supabase_client() -> Client:
    """Get or create Supabase client singleton."""
    global _client
    
    if _client is None:
        url = os.environ.get("SUPABASE_URL")
        key = os.environ.get("SUPABASE_SERVICE_ROLE_KEY")
        
        if not url or not key:
            raise SupabaseError("SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY must be set")
        
        options = ClientOptions(
            auto_refresh_token=False,
            persist_session=False,
        )
        
        _client = create_client(url, key, options)
        logger.info("Supabase client initialized", extra={"url": url})
    
    return _client


class SupabaseClient:
    """Async context manager for Supabase client."""
    
    def __init__(self):
        self.client: Optional[Client] = None
    
    async def __aenter__(self) -> Client:
        self.client = get_supabase_client()
        return self.client
    
    async def __aexit__(self, exc_type, exc_val, exc_tb):
        # Business rule failures are expected; only store errors are logged here
        if exc_type and not issubclass(exc_type, WorkflowError):
            logger.error(
                "Supabase operation error",
                extra={"error": str(exc_val), "type": exc_type.__name__}
            )
        return False


def generate_id() -> str:
    """Generate a text-based row ID (ULID format)."""
    return str(ULID())


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def is_duplicate_key_error(error: Exception) -> bool:
    """True for unique-constraint violations reported by PostgREST."""
    text = str(error).lower()
    return "duplicate key" in text or "23505" in text


# Users table operations
async def get_user(user_id: str) -> Optional[dict]:
    """Get user by ID."""
    async with SupabaseClient() as client:
        try:
            result = client.table("users").select("*").eq("user_id", user_id).execute()
            return result.data[0] if result.data and len(result.data) > 0 else None
        except Exception as e:
            raise SupabaseError(f"Failed to get user: {e}")


async def get_users_by_role(user_type: str) -> list[dict]:
    """Current members of a role, resolved at call time."""
    async with SupabaseClient() as client:
        try:
            result = client.table("users").select("user_id").eq("user_type", user_type).execute()
            return result.data if result.data else []
        except Exception as e:
            raise SupabaseError(f"Failed to get users by role: {e}")


async def update_user_role(user_id: str, user_type: str) -> dict:
    """Set a user's account role."""
    async with SupabaseClient() as client:
        try:
            result = client.table("users").update({
                "user_type": user_type,
                "updated_at": utc_now_iso()
            }).eq("user_id", user_id).execute()
            if result.data and len(result.data) > 0:
                return result.data[0]
            raise SupabaseError(f"Failed to update user role: {user_id}")
        except SupabaseError:
            raise
        except Exception as e:
            raise SupabaseError(f"Failed to update user role: {e}")


# Properties / geography operations
async def get_property(property_id: str) -> Optional[dict]:
    """Get a non-deleted property by ID."""
    async with SupabaseClient() as client:
        try:
            result = (
                client.table("properties")
                .select("*")
                .eq("property_id", property_id)
                .is_("deleted_at", "null")
                .execute()
            )
            return result.data[0] if result.data and len(result.data) > 0 else None
        except Exception as e:
            raise SupabaseError(f"Failed to get property: {e}")


async def get_area(area_id: str) -> Optional[dict]:
    """Get an area by ID."""
    async with SupabaseClient() as client:
        try:
            result = client.table("areas").select("*").eq("area_id", area_id).execute()
            return result.data[0] if result.data and len(result.data) > 0 else None
        except Exception as e:
            raise SupabaseError(f"Failed to get area: {e}")


async def get_areas(area_ids: list[str]) -> list[dict]:
    """Get several areas by ID."""
    if not area_ids:
        return []
    async with SupabaseClient() as client:
        try:
            result = client.table("areas").select("*").in_("area_id", list(area_ids)).execute()
            return result.data if result.data else []
        except Exception as e:
            raise SupabaseError(f"Failed to get areas: {e}")
