from typing import Optional

from supabase import create_client, Client

from config import Settings
from supabase_client import SupabaseClient


class SupabaseUserClient:
    """
    User-authenticated Supabase client that works with Row Level Security (RLS).
    Every PostgREST request carries the user's access token so RLS policies see auth.uid().
    """

    def __init__(self, settings: Settings, user_token: str):
        """
        Initialize a user-authenticated Supabase client.

        Args:
            settings: Process configuration with the Supabase URL and anon key
            user_token: JWT access token for the authenticated user
        """
        url = settings.supabase_url
        key = settings.supabase_anon_key

        if not url or not key:
            raise ValueError("SUPABASE_URL and SUPABASE_ANON_KEY must be set in environment variables")

        self._client = create_client(url, key)
        self._client.postgrest.auth(user_token)

    @property
    def client(self) -> Client:
        return self._client


def create_user_client(settings: Settings, user_token: str) -> SupabaseUserClient:
    """
    Create a user-authenticated Supabase client.

    Args:
        settings: Process configuration
        user_token: JWT token for the authenticated user

    Returns:
        SupabaseUserClient instance
    """
    return SupabaseUserClient(settings, user_token)


class ClientFactory:
    """
    Hands out the right Supabase client for a request: a user client when there is an access token
    (so RLS applies), the shared server client otherwise.
    """

    def __init__(self, settings: Settings, server: Optional[SupabaseClient] = None):
        self.settings = settings
        self.server = server or SupabaseClient(settings)

    def __call__(self, user_token: Optional[str] = None) -> Client:
        if user_token and not self.settings.supabase_service_role_key:
            return create_user_client(self.settings, user_token).client
        return self.server.client
