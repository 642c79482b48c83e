import logging

from fastapi import APIRouter, Depends
from backend.config import get_settings
from backend.models.schemas import ClientConfigResponse, HealthResponse
from backend.services.state_store import StateStore
from backend.dependencies import get_state_store

logger = logging.getLogger(__name__)
router = APIRouter(tags=["health"])


@router.get("/health", response_model=HealthResponse)
async def health_check(store: StateStore = Depends(get_state_store)):
    """Return service health.  If the DB isn't ready yet (e.g. during
    startup before lifespan runs), return a 200 with status="starting"
    so container healthchecks don't fail."""
    settings = get_settings()
    try:
        stored = await store.count()
        return HealthResponse(
            status="healthy",
            default_server=settings.ollama_default_server,
            stored_states=stored,
        )
    except Exception as exc:
        logger.warning("Health check: DB not ready yet (%s)", exc)
        return HealthResponse(status="starting", default_server=settings.ollama_default_server)


@router.get("/config", response_model=ClientConfigResponse)
async def client_config():
    """Defaults the chat client applies to new chats."""
    settings = get_settings()
    return ClientConfigResponse(
        default_server=settings.ollama_default_server,
        locale=settings.locale,
        generation_defaults=settings.default_params,
    )
