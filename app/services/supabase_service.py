from supabase import create_client, Client
from typing import Optional, Dict, Any
import asyncio
import logging

logger = logging.getLogger(__name__)


class SupabaseService:
    """Subscription documents stored in a Supabase table keyed by ``uid``.

    Writes are upserts that only touch the columns supplied, so concurrent
    writers updating different fields never clobber each other.
    """

    def __init__(self, client: Optional[Client], table: str = "subscriptions"):
        self.supabase = client
        self.table = table

    @classmethod
    def from_credentials(cls, url: str, key: str, table: str = "subscriptions") -> "SupabaseService":
        client = None
        if url and key:
            try:
                client = create_client(supabase_url=url, supabase_key=key)
                logger.info("✅ Supabase client initialized successfully")
            except Exception as e:
                logger.error(f"❌ Failed to initialize Supabase client: {e}")
        else:
            logger.warning("❌ Supabase URL or KEY not provided")
        return cls(client, table=table)

    def _check_client(self):
        if not self.supabase:
            raise Exception("Supabase client not initialized. Check your SUPABASE_URL and SUPABASE_KEY.")

    async def get_subscription(self, uid: str) -> Optional[Dict[str, Any]]:
        """Fetch the subscription document for a uid, or None"""
        self._check_client()
        response = await asyncio.to_thread(
            self.supabase.table(self.table).select("*").eq("uid", uid).limit(1).execute
        )
        if response.data:
            return response.data[0]
        return None

    async def subscription_exists(self, uid: str) -> bool:
        self._check_client()
        response = await asyncio.to_thread(
            self.supabase.table(self.table).select("uid").eq("uid", uid).limit(1).execute
        )
        return bool(response.data)

    async def upsert_subscription(self, uid: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        """Create the document if absent, else merge ``fields`` into it"""
        self._check_client()
        document = {**fields, "uid": uid}
        response = await asyncio.to_thread(
            self.supabase.table(self.table).upsert(document, on_conflict="uid").execute
        )
        return response.data[0] if response.data else document
