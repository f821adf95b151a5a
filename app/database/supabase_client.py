"""
Supabase client construction.

Clients are built per call context and handed to services explicitly. A
request-scoped client carries the caller's access token, so every PostgREST
call is evaluated by the founders RLS policies as that caller.
"""
from typing import Optional

from supabase import Client, ClientOptions, create_client

from app.config import settings


def _options(access_token: Optional[str] = None) -> ClientOptions:
    headers = {}
    if access_token:
        headers["Authorization"] = f"Bearer {access_token}"
    return ClientOptions(
        headers=headers,
        postgrest_client_timeout=settings.request_timeout_seconds,
        storage_client_timeout=settings.request_timeout_seconds,
        auto_refresh_token=False,
        persist_session=False,
    )


def create_supabase(access_token: Optional[str] = None) -> Client:
    """Client acting as the given identity, or as `anon` when no token is passed."""
    client = create_client(settings.supabase_url, settings.supabase_key, options=_options(access_token))
    if access_token:
        client.postgrest.auth(access_token)
    return client


def create_service_supabase() -> Client:
    """Client with service_role key; bypasses RLS. Use for schema checks only."""
    if not settings.supabase_service_role_key:
        raise ValueError("SUPABASE_SERVICE_ROLE_KEY must be configured for service operations")
    return create_client(settings.supabase_url, settings.supabase_service_role_key, options=_options())


def get_anon_supabase() -> Client:
    return create_supabase()


def get_service_supabase() -> Client:
    return create_service_supabase()
