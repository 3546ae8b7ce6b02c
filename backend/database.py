from motor.motor_asyncio import AsyncIOMotorClient

from config.env import MONGO_URI, STORE_BACKEND

_client = None
_store = None


def get_db():
    global _client
    if _client is None:
        if not MONGO_URI:
            raise RuntimeError("MONGODB_URI not set")
        _client = AsyncIOMotorClient(MONGO_URI)
    return _client.get_default_database()


def get_store():
    """
    Process-wide store. The store also owns the per-seller locks,
    so every request and worker in this process must share it.
    """
    global _store
    if _store is None:
        if STORE_BACKEND == "memory":
            from utils.memory_store import MemoryOrderStore
            _store = MemoryOrderStore()
        elif STORE_BACKEND == "mongo":
            from utils.order_store import MongoOrderStore
            _store = MongoOrderStore(get_db())
        else:
            raise RuntimeError(f"Unsupported STORE_BACKEND: {STORE_BACKEND}")
    return _store
