import httpx

from backend.config import get_settings
from backend.services.state_store import StateStore


def get_state_store() -> StateStore:
    return StateStore()


def get_upstream_client() -> httpx.AsyncClient:
    settings = get_settings()
    return httpx.AsyncClient(
        timeout=httpx.Timeout(settings.upstream_connect_timeout, read=None)
    )
