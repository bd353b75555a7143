from supabase import create_client, Client

from config import Settings


class SupabaseClient:
    """
    Server-side Supabase client, built once at startup from the settings.

    Uses the service role key if configured, otherwise the anon key.
    """

    def __init__(self, settings: Settings):
        url = settings.supabase_url
        key = settings.supabase_service_role_key or settings.supabase_anon_key

        if not url or not key:
            raise ValueError("SUPABASE_URL and either SUPABASE_SERVICE_ROLE_KEY or SUPABASE_ANON_KEY must be set in environment variables")

        self.settings = settings
        self._client = create_client(url, key)

    @property
    def client(self) -> Client:
        return self._client
