import json
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import httpx

from frontend.config import get_frontend_settings
from frontend.services.cancellation import CancellationToken
from frontend.services.errors import TransportError

logger = logging.getLogger(__name__)

SERVER_HEADER = "X-Ollama-Server"


def sanitize_server_url(value: str | None, default: str = "") -> str:
    if not value or not value.strip():
        return default.rstrip("/")
    return value.strip().rstrip("/")


def ollama_path(path: str) -> str:
    if not path:
        return "/ollama/"
    return "/ollama" + (path if path.startswith("/") else f"/{path}")


class APIClient:
    """Talks to the backend: the ``/ollama`` proxy and the ``/state`` store."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        server_url: Optional[str] = None,
        transport: Optional[httpx.BaseTransport] = None,
        async_transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        settings = get_frontend_settings()
        self.base_url = (base_url or settings.backend_url).rstrip("/")
        self._default_server = settings.ollama_default_server
        self.server_url = sanitize_server_url(server_url, self._default_server)
        self._connect_timeout = settings.connect_timeout
        self._transport = transport
        self._async_transport = async_transport

    def set_server(self, server_url: str | None):
        self.server_url = sanitize_server_url(server_url, self._default_server)

    def _headers(self) -> dict:
        return {SERVER_HEADER: self.server_url}

    def _client(self, timeout: float = 10.0) -> httpx.Client:
        return httpx.Client(
            base_url=self.base_url, timeout=timeout, transport=self._transport
        )

    # --- Streaming chat ---

    @asynccontextmanager
    async def open_chat_stream(
        self, payload: dict, token: CancellationToken
    ) -> AsyncIterator[AsyncIterator[bytes]]:
        """POST a chat request and yield its body as a chunk iterator.

        The chunk iterator stops as soon as ``token`` is cancelled, even
        while waiting on a stalled connection.
        """
        timeout = httpx.Timeout(self._connect_timeout, read=None)
        try:
            async with httpx.AsyncClient(
                base_url=self.base_url, timeout=timeout, transport=self._async_transport
            ) as client:
                async with client.stream(
                    "POST",
                    ollama_path("/api/chat"),
                    json=payload,
                    headers=self._headers(),
                ) as response:
                    if response.status_code >= 400:
                        body = (await response.aread()).decode("utf-8", "replace")
                        raise TransportError(
                            _error_detail(body)
                            or f"Generation server responded with status {response.status_code}",
                            status_code=response.status_code,
                        )
                    yield token.guard(response.aiter_bytes())
        except httpx.HTTPError as e:
            raise TransportError(f"Connection to generation server failed: {e}") from e

    # --- Model catalog ---

    def list_models(self) -> list[str]:
        with self._client() as client:
            try:
                r = client.get(ollama_path("/api/tags"), headers=self._headers())
            except httpx.HTTPError as e:
                raise TransportError(str(e)) from e
            if r.status_code >= 400:
                raise TransportError(
                    f"Server responded with status {r.status_code}", status_code=r.status_code
                )
            payload = r.json()
        models = []
        for item in (payload or {}).get("models") or []:
            if not isinstance(item, dict):
                continue
            name = item.get("model") or item.get("name")
            if name and name not in models:
                models.append(name)
        return models

    # --- State snapshot ---

    def load_state(self) -> Optional[dict]:
        with self._client() as client:
            r = client.get("/state")
            r.raise_for_status()
            return r.json().get("state")

    def save_state(self, state: dict):
        with self._client() as client:
            r = client.put("/state", json={"state": state})
            r.raise_for_status()

    def get_client_config(self) -> dict:
        """Defaults for new chats; empty when the backend is unavailable."""
        try:
            with self._client(timeout=5.0) as client:
                r = client.get("/config")
                r.raise_for_status()
                return r.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("Could not load client config: %s", e)
            return {}

    def health_check(self) -> dict:
        with self._client(timeout=5.0) as client:
            r = client.get("/health")
            r.raise_for_status()
            return r.json()


def _error_detail(body: str) -> str:
    """Pull a readable message out of an Ollama or proxy error body."""
    try:
        data = json.loads(body)
    except ValueError:
        return body.strip()[:300]
    if isinstance(data, dict):
        return str(data.get("error") or data.get("detail") or "")
    return ""
