import logging
from typing import Optional

import httpx

from frontend.api_client import APIClient
from frontend.models import AppState

logger = logging.getLogger(__name__)


class StateStore:
    """Loads and saves the client snapshot through the backend ``/state`` API.

    Failures are logged and never interrupt a turn; the in-memory state
    stays authoritative.
    """

    def __init__(self, api_client: APIClient):
        self._api = api_client

    def load(self) -> Optional[AppState]:
        try:
            data = self._api.load_state()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("Could not load saved state: %s", e)
            return None
        if not isinstance(data, dict):
            return None
        return AppState.from_dict(data)

    def save(self, state: AppState):
        try:
            self._api.save_state(state.to_dict())
        except httpx.HTTPError as e:
            logger.warning("Could not save state: %s", e)
