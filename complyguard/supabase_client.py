"""Supabase client for ComplyGuard."""

from __future__ import annotations

from supabase._async.client import AsyncClient
from supabase._async.client import create_client as create_async_client

from config.settings import settings

_async_client: AsyncClient | None = None


async def get_async_supabase_client() -> AsyncClient:
    """Return a singleton Supabase client (async)."""
    global _async_client
    if _async_client is None:
        if not settings.supabase_url or not settings.supabase_service_role_key:
            raise RuntimeError("SUPABASE_URL or SUPABASE_SERVICE_ROLE_KEY is not set")
        _async_client = await create_async_client(
            settings.supabase_url,
            settings.supabase_service_role_key,
        )
    return _async_client

