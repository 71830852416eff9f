from supabase import create_client, Client
from fieldtrack.core.config import settings
from fieldtrack.store.base import EntityStore

_supabase_client: Client | None = None
_store: EntityStore | None = None


def get_supabase() -> Client:
    global _supabase_client
    if _supabase_client is None:
        _supabase_client = create_client(
            settings.SUPABASE_URL,
            settings.SUPABASE_SERVICE_KEY or settings.SUPABASE_KEY,
        )
    return _supabase_client


def get_store() -> EntityStore:
    global _store
    if _store is None:
        if settings.STORE_BACKEND == "supabase":
            from fieldtrack.store.supabase import SupabaseEntityStore
            _store = SupabaseEntityStore(get_supabase())
        else:
            from fieldtrack.store.memory import MemoryEntityStore
            _store = MemoryEntityStore()
    return _store
