import asyncio
import logging

import streamlit as st

from frontend.models import Attachment, Conversation, Message, MessagePurpose
from frontend.services.errors import ChatError
from frontend.services.formatting import format_stats
from frontend.services.lifecycle import TurnState
from frontend.services.notices import notice

logger = logging.getLogger(__name__)

IMAGE_TYPES = ["png", "jpg", "jpeg", "gif", "webp"]


def _render_attachments(message: Message):
    if message.attachments:
        st.image(
            [a.data_url for a in message.attachments],
            caption=[a.name or None for a in message.attachments],
            width=240,
        )


def _render_thinking(message: Message):
    label = "Thinking …" if message.pending else "Thinking"
    with st.expander(label, expanded=not message.collapsed):
        if message.thinking:
            st.markdown(message.thinking)
        else:
            st.caption("…")


def _render_message_body(message: Message, locale: str):
    if message.purpose is MessagePurpose.THINKING:
        _render_thinking(message)
        return

    if message.content:
        st.markdown(message.content + (" |" if message.pending else ""))
    elif message.pending:
        st.markdown("*…*")
    _render_attachments(message)
    if message.error:
        st.error(notice("answer_error", locale, error=message.error))
    if message.stats is not None:
        st.markdown(format_stats(message.stats, locale))


def render_conversation(chat: Conversation, locale: str):
    """Draw every message without controls; used while a turn streams."""
    for message in chat.messages:
        with st.chat_message(message.role):
            _render_message_body(message, locale)


def _render_edit_box(controller, message: Message):
    text = st.text_area(
        "Edit question", value=message.content, key=f"edit_{message.id}", label_visibility="collapsed"
    )
    col1, col2 = st.columns(2)
    if col1.button("Send", key=f"edit_send_{message.id}", type="primary"):
        st.session_state.pending_edit = text
        st.rerun()
    if col2.button("Cancel", key=f"edit_cancel_{message.id}"):
        controller.cancel_edit()
        st.rerun()


def _render_controls(controller, chat: Conversation, message: Message):
    last_user = chat.last_user_message()
    cols = st.columns([1, 1, 8])
    if cols[0].button("🗑", key=f"delmsg_{message.id}", help="Delete message"):
        try:
            result = controller.delete_message(message.id)
        except ChatError as e:
            st.session_state.status = ("warning", str(e))
        else:
            st.session_state.status = ("info", notice("message_deleted", controller.locale))
            st.session_state.resubmit_text = result.resubmit_text
        st.rerun()
    if last_user is not None and message.id == last_user.id:
        if cols[1].button("✎", key=f"editmsg_{message.id}", help="Edit question"):
            try:
                controller.begin_edit(message.id)
            except ChatError as e:
                st.session_state.status = ("warning", str(e))
            st.rerun()


def _show_status():
    status = st.session_state.pop("status", None)
    if status:
        level, text = status
        getattr(st, level)(text)


def _run(coro, controller):
    """Run one turn to completion and report how it ended."""
    try:
        outcome = asyncio.run(coro)
    except ChatError as e:
        logger.warning("Turn rejected: %s", e)
        st.session_state.status = ("warning", str(e))
        return
    if outcome is TurnState.CANCELLED:
        st.session_state.status = ("info", notice("cancelled", controller.locale))
    elif outcome is TurnState.ERRORED:
        st.session_state.status = (
            "error", notice("answer_error", controller.locale, error=controller.last_error)
        )


def _stream_turn(controller, start):
    """Redraw the conversation into a single placeholder on every change.

    Streamlit delivers a Stop click by raising a script-control exception
    from the next ``st`` call. Every call made while the turn runs goes
    through ``_host_call``, which turns that exception into ``cancel()`` and
    holds it until the turn has settled. The periodic tick keeps making such
    calls even when the backend sends nothing.
    """
    st.button("Stop", key="stop_turn")
    pulse = st.empty()
    area = st.empty()
    interrupted = []

    def _host_call(fn):
        if interrupted:
            return
        try:
            fn()
        except Exception:
            raise
        except BaseException as e:
            logger.info("Script interrupted while streaming; stopping the turn")
            interrupted.append(e)
            controller.cancel()

    def _redraw(conversation: Conversation):
        def _draw():
            with area.container():
                render_conversation(conversation, controller.locale)
        _host_call(_draw)

    controller.set_on_change(_redraw)
    try:
        _run(controller.run_watched(start(), lambda: _host_call(pulse.empty)), controller)
    finally:
        controller.set_on_change(None)
    if interrupted:
        raise interrupted[0]
    st.rerun()


def render_chat():
    """Render the active chat and handle new input."""
    controller = st.session_state.controller
    locale = controller.locale
    chat = controller.state.active_chat()
    if chat is None:
        st.info(notice("no_chat", locale))
        return

    _show_status()

    if (edit_text := st.session_state.pop("pending_edit", None)) is not None:
        _stream_turn(controller, lambda: controller.submit_edit(edit_text))
        return

    if st.session_state.get("pending_prompt"):
        prompt, attachments = st.session_state.pop("pending_prompt")
        _stream_turn(controller, lambda: controller.submit(prompt, attachments))
        return

    if not chat.messages:
        st.markdown("### What would you like to ask?")

    for message in chat.messages:
        with st.chat_message(message.role):
            if message.id == controller.editing_message_id:
                _render_edit_box(controller, message)
                continue
            _render_message_body(message, locale)
            if message.purpose is not MessagePurpose.THINKING:
                _render_controls(controller, chat, message)

    if resubmit := st.session_state.get("resubmit_text"):
        st.caption(notice("resubmit_offered", locale))
        if st.button(f"Send again: {resubmit[:60]}", key="resubmit"):
            st.session_state.resubmit_text = None
            st.session_state.pending_prompt = (resubmit, [])
            st.rerun()

    uploads = st.file_uploader(
        "Images", type=IMAGE_TYPES, accept_multiple_files=True, key=f"upload_{chat.id}"
    )

    if prompt := st.chat_input("Ask anything..."):
        attachments = [
            Attachment.from_bytes(f.getvalue(), name=f.name, mime=f.type or "image/png")
            for f in uploads or []
        ]
        st.session_state.resubmit_text = None
        st.session_state.pending_prompt = (prompt, attachments)
        st.rerun()
