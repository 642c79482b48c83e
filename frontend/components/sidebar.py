from datetime import datetime, timezone

import streamlit as st

from frontend.models import GenerationParams
from frontend.services.errors import ChatError
from frontend.services.notices import notice
from frontend.services.request_builder import parse_float_or_none, parse_int_or_none


def _time_ago(iso_str: str) -> str:
    """Convert ISO datetime string to relative time."""
    try:
        dt = datetime.fromisoformat(iso_str.replace("Z", "+00:00"))
    except (TypeError, ValueError):
        return ""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    seconds = (datetime.now(timezone.utc) - dt).total_seconds()
    if seconds < 60:
        return "just now"
    elif seconds < 3600:
        return f"{int(seconds / 60)}m ago"
    elif seconds < 86400:
        return f"{int(seconds / 3600)}h ago"
    return f"{int(seconds / 86400)}d ago"


def _text(value) -> str:
    return "" if value is None else str(value)


def render_sidebar():
    controller = st.session_state.controller
    catalog = st.session_state.catalog
    state = controller.state
    locale = controller.locale
    busy = controller.request_pending

    st.markdown("## Ollama Chat")
    st.caption("Local models, streamed answers, visible reasoning")

    # --- Server ---
    server = st.text_input("Server", value=state.server_url, disabled=busy)
    if server.strip().rstrip("/") != state.server_url:
        controller.set_server_url(server)
        if catalog.refresh(state):
            controller.set_default_model(state.default_model)

    # --- Model selector ---
    col1, col2 = st.columns([4, 1])
    with col2:
        if st.button("↻", help="Refresh models", disabled=busy):
            if catalog.refresh(state):
                controller.set_default_model(state.default_model)
                st.toast(notice("models_refreshed", locale, count=len(catalog.models)))
    if catalog.last_error:
        st.caption(notice("models_failed", locale, error=catalog.last_error))

    chat = state.active_chat()
    if chat is None:
        return

    options = catalog.options_for(chat.model)
    with col1:
        if options:
            selected = st.selectbox(
                "Model",
                options,
                index=options.index(chat.model) if chat.model in options else 0,
                disabled=busy,
            )
            if selected != chat.model:
                controller.set_chat_model(selected)
                if not state.default_model:
                    controller.set_default_model(selected)
        else:
            st.selectbox("Model", ["—"], disabled=True)

    # --- Generation parameters ---
    with st.expander("Parameters"):
        p = chat.params
        temperature = st.text_input("Temperature", value=_text(p.temperature), key=f"temp_{chat.id}")
        top_k = st.text_input("Top K", value=_text(p.top_k), key=f"topk_{chat.id}")
        top_p = st.text_input("Top P", value=_text(p.top_p), key=f"topp_{chat.id}")
        repeat_penalty = st.text_input(
            "Repeat penalty", value=_text(p.repeat_penalty), key=f"rp_{chat.id}"
        )
        mirostat = st.text_input("Mirostat", value=_text(p.mirostat), key=f"miro_{chat.id}")
        seed = st.text_input("Seed", value=_text(p.seed), key=f"seed_{chat.id}")
        show_thinking = st.toggle("Show thinking", value=p.show_thinking, key=f"think_{chat.id}")

        params = GenerationParams(
            temperature=parse_float_or_none(temperature),
            top_k=parse_int_or_none(top_k),
            top_p=parse_float_or_none(top_p),
            repeat_penalty=parse_float_or_none(repeat_penalty),
            mirostat=parse_int_or_none(mirostat),
            seed=parse_int_or_none(seed),
            show_thinking=show_thinking,
        )
        if params != p:
            controller.update_params(params)

    st.divider()

    # --- Conversation management ---
    st.markdown("**Chats**")
    if st.button("New chat", use_container_width=True, type="primary", disabled=busy):
        controller.new_chat()
        st.toast(notice("chat_created", locale))
        st.rerun()

    for conv in sorted(state.chats, key=lambda c: c.updated_at, reverse=True):
        is_active = conv.id == state.active_chat_id
        col1, col2 = st.columns([5, 1])
        with col1:
            label = f"**{conv.title[:40]}**" if is_active else conv.title[:40]
            if st.button(
                label,
                key=f"chat_{conv.id}",
                use_container_width=True,
                disabled=is_active or busy,
            ):
                controller.select_chat(conv.id)
                st.rerun()
            meta = [m for m in (_time_ago(conv.updated_at), conv.model) if m]
            if meta:
                st.caption(" · ".join(meta))
        with col2:
            if st.button("X", key=f"del_{conv.id}", disabled=busy):
                try:
                    controller.delete_chat(conv.id)
                except ChatError as e:
                    st.warning(str(e))
                else:
                    st.toast(notice("chat_deleted", locale))
                    st.rerun()

    with st.expander("Rename chat"):
        title = st.text_input("Title", value=chat.title, key=f"title_{chat.id}")
        if title != chat.title:
            controller.rename_chat(title)
