import logging
from pathlib import Path

from dotenv import load_dotenv

# Load .env so the Streamlit process sees the same env vars as the backend
load_dotenv(Path(__file__).parent.parent / ".env")

import streamlit as st
from frontend.api_client import APIClient
from frontend.config import get_frontend_settings
from frontend.models import AppState, GenerationParams
from frontend.persistence import StateStore
from frontend.services.chat_controller import ChatController
from frontend.services.model_catalog import ModelCatalog
from frontend.components.sidebar import render_sidebar
from frontend.components.chat_view import render_chat

settings = get_frontend_settings()
logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)

st.set_page_config(
    page_title="Ollama Chat",
    layout="wide",
    initial_sidebar_state="expanded",
)

# --- Custom CSS ---
st.markdown("""
<style>
    /* Chat message styling */
    .stChatMessage { border-radius: 12px; margin-bottom: 8px; }

    /* Thinking blocks read as secondary text */
    .stChatMessage details summary { color: #888; font-style: italic; }

    /* Hide Streamlit branding */
    #MainMenu { visibility: hidden; }
    footer { visibility: hidden; }
</style>
""", unsafe_allow_html=True)


def _bootstrap():
    """Build the controller once per browser session."""
    api = APIClient()
    config = api.get_client_config()
    locale = config.get("locale") or settings.locale
    store = StateStore(api)

    state = store.load() or AppState()
    state.server_url = state.server_url or config.get("default_server") or api.server_url
    api.set_server(state.server_url)
    state.ensure_chat()

    controller = ChatController(state, api, store=store, locale=locale)
    controller.default_params = GenerationParams.from_dict(config.get("generation_defaults"))

    catalog = ModelCatalog(api)
    if catalog.refresh(state):
        controller.set_default_model(state.default_model)
    logger.info("Chat client ready with %d chat(s)", len(state.chats))

    st.session_state.api_client = api
    st.session_state.controller = controller
    st.session_state.catalog = catalog


# --- Initialize session state ---
if "controller" not in st.session_state:
    _bootstrap()
if "resubmit_text" not in st.session_state:
    st.session_state.resubmit_text = None

# --- Sidebar ---
with st.sidebar:
    render_sidebar()

# --- Main area ---
render_chat()
