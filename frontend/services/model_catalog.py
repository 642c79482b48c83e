import logging

from frontend.api_client import APIClient
from frontend.models import AppState
from frontend.services.errors import TransportError

logger = logging.getLogger(__name__)


class ModelCatalog:
    """Cached list of model names offered by the generation server."""

    def __init__(self, api_client: APIClient):
        self._api = api_client
        self.models: list[str] = []
        self.last_error: str | None = None

    def refresh(self, state: AppState) -> bool:
        """Reload the catalog and fill in missing model choices.

        Returns False when the server could not be reached; the previous
        catalog is kept in that case.
        """
        try:
            self.models = self._api.list_models()
        except (TransportError, ValueError) as e:
            self.last_error = str(e)
            logger.warning("Model catalog unavailable: %s", e)
            return False

        self.last_error = None
        if not state.default_model and self.models:
            state.default_model = self.models[0]
        for chat in state.chats:
            if not chat.model:
                chat.model = state.default_model
        logger.info("Model catalog refreshed: %d model(s)", len(self.models))
        return True

    def options_for(self, current: str | None) -> list[str]:
        """Catalog entries plus the current choice if the server lacks it."""
        options = list(self.models)
        if current and current not in options:
            options.append(current)
        return options
