from fastapi import APIRouter, Depends

from backend.models.schemas import StateEnvelope
from backend.services.state_store import StateStore
from backend.dependencies import get_state_store

router = APIRouter(prefix="/state", tags=["state"])


@router.get("", response_model=StateEnvelope)
async def load_state(store: StateStore = Depends(get_state_store)):
    return StateEnvelope(state=await store.load())


@router.put("", response_model=StateEnvelope)
async def save_state(
    body: StateEnvelope,
    store: StateStore = Depends(get_state_store),
):
    if body.state is None:
        await store.delete()
    else:
        await store.save(body.state)
    return body
