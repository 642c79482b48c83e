from pydantic import BaseModel, Field
from typing import Optional


# --- Client state ---
class StateEnvelope(BaseModel):
    state: Optional[dict] = None


# --- Client config ---
class ClientConfigResponse(BaseModel):
    default_server: str
    locale: str = "en"
    generation_defaults: dict = Field(default_factory=dict)


# --- Health ---
class HealthResponse(BaseModel):
    status: str = "healthy"
    version: str = "0.1.0"
    default_server: str = ""
    stored_states: int = 0
