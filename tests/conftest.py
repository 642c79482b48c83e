import tempfile
from pathlib import Path

import httpx
import pytest
import pytest_asyncio

from backend.database import set_db_path, init_db
from frontend.api_client import APIClient
from frontend.models import AppState, Conversation


@pytest.fixture
def temp_db_path():
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        path = f.name
    yield path
    Path(path).unlink(missing_ok=True)


@pytest.fixture
def test_settings(temp_db_path):
    from backend.config import Settings
    return Settings(
        database_url=temp_db_path,
        ollama_default_server="http://ollama.test:11434",
    )


@pytest_asyncio.fixture
async def initialized_db(temp_db_path):
    set_db_path(temp_db_path)
    await init_db()
    yield temp_db_path


@pytest.fixture
def app_state():
    chat = Conversation(model="llama3")
    return AppState(
        server_url="http://ollama.test:11434",
        default_model="llama3",
        active_chat_id=chat.id,
        chats=[chat],
    )


@pytest.fixture
def make_api_client():
    """Build an APIClient whose streaming calls hit ``handler``."""
    def _make(handler) -> APIClient:
        return APIClient(
            base_url="http://backend.test",
            server_url="http://ollama.test:11434",
            transport=httpx.MockTransport(handler),
            async_transport=httpx.MockTransport(handler),
        )
    return _make
