import asyncio
import logging
from dataclasses import replace
from typing import Awaitable, Callable, Optional

from frontend.api_client import APIClient, sanitize_server_url
from frontend.models import AppState, Attachment, Conversation, GenerationParams, Message
from frontend.persistence import StateStore
from frontend.services.errors import (
    BackendError,
    ChatError,
    EditRejected,
    SessionBusy,
    TransportError,
)
from frontend.services.frame_parser import iter_frames, iter_lines
from frontend.services.lifecycle import DeleteResult, MessageLifecycle, TurnState
from frontend.services.notices import DEFAULT_LOCALE, notice
from frontend.services.request_builder import build_chat_request
from frontend.services.session import GenerationSession

logger = logging.getLogger(__name__)

# How often a running turn hands control back to the host
TICK_SECONDS = 0.25


class ChatController:
    """Drives turns for the whole application.

    There is a single session slot: while one turn is pending anywhere, new
    turns, edits, deletions and chat switches are refused.
    """

    def __init__(
        self,
        state: AppState,
        api_client: APIClient,
        store: Optional[StateStore] = None,
        on_change: Optional[Callable[[Conversation], None]] = None,
        locale: str = DEFAULT_LOCALE,
    ):
        self.state = state
        self._api = api_client
        self._store = store
        self._on_change = on_change
        self.locale = locale
        self.lifecycle = MessageLifecycle(locale)
        self._session: Optional[GenerationSession] = None
        self.turn_state = TurnState.IDLE
        self.last_error: Optional[str] = None
        self.editing_message_id: Optional[str] = None
        self.default_params = GenerationParams()

    # --- State helpers ---

    @property
    def session(self) -> Optional[GenerationSession]:
        return self._session

    @property
    def request_pending(self) -> bool:
        return self._session is not None

    def set_on_change(self, callback: Optional[Callable[[Conversation], None]]):
        self._on_change = callback

    def _save(self):
        if self._store is not None:
            self._store.save(self.state)

    async def _persist(self):
        # the store does blocking HTTP; keep it off the event loop
        if self._store is not None:
            await asyncio.to_thread(self._store.save, self.state)

    def _notify(self, conversation: Conversation):
        if self._on_change is not None:
            self._on_change(conversation)

    def _changed(self, conversation: Conversation):
        self._save()
        self._notify(conversation)

    def _require_idle(self, key: str = "please_wait"):
        if self._session is not None:
            raise SessionBusy(notice(key, self.locale))

    def _chat(self, chat_id: Optional[str] = None) -> Conversation:
        chat_id = chat_id or self.state.active_chat_id
        for chat in self.state.chats:
            if chat.id == chat_id:
                return chat
        raise ChatError(notice("no_chat", self.locale))

    def _model_for(self, chat: Conversation) -> str:
        model = chat.model or self.state.default_model
        if not model:
            raise ChatError(notice("no_model", self.locale))
        return model

    # --- Turns ---

    async def submit(
        self,
        text: str,
        attachments: Optional[list[Attachment]] = None,
        chat_id: Optional[str] = None,
    ) -> TurnState:
        """Send a new user message and stream the answer into the chat."""
        self._require_idle()
        chat = self._chat(chat_id)
        content = (text or "").strip()
        if not content:
            raise ChatError(notice("empty_message", self.locale))
        model = self._model_for(chat)

        user_message = Message(role="user", content=content, attachments=list(attachments or []))
        return await self._run_turn(chat, user_message, model)

    def cancel(self) -> bool:
        """Ask the running turn to stop; False if nothing is running."""
        if self._session is None:
            return False
        self._session.token.cancel()
        return True

    async def run_watched(
        self,
        turn: Awaitable[Optional[TurnState]],
        on_tick: Callable[[], None],
        interval: float = TICK_SECONDS,
    ) -> Optional[TurnState]:
        """Await ``turn`` and call ``on_tick`` every ``interval`` seconds meanwhile.

        The tick is where the host looks for a Stop request and calls
        ``cancel()``, so even a backend that sends nothing can be stopped.
        """
        task = asyncio.ensure_future(turn)
        try:
            while True:
                done, _ = await asyncio.wait({task}, timeout=interval)
                if done:
                    return task.result()
                on_tick()
        finally:
            if not task.done():
                if not self.cancel():
                    task.cancel()
                await asyncio.gather(task, return_exceptions=True)

    async def _run_turn(
        self, chat: Conversation, user_message: Message, model: str
    ) -> TurnState:
        thinking, preview = self.lifecycle.create_placeholders(chat, user_message)
        session = GenerationSession(
            conversation_id=chat.id,
            thinking_message_id=thinking.id,
            preview_message_id=preview.id,
            show_thinking=chat.params.show_thinking,
        )
        self._session = session
        self.turn_state = TurnState.CREATED
        self.last_error = None
        payload = build_chat_request(chat, model)
        logger.info("Starting turn in chat %s with model %s", chat.id, model)

        try:
            await self._persist()
            self._notify(chat)
            self.turn_state = await self._stream(chat, session, payload)
        except (BackendError, TransportError) as e:
            logger.error("Turn in chat %s failed: %s", chat.id, e)
            self._fail(chat, session, str(e))
        except Exception as e:
            logger.exception("Turn in chat %s broke", chat.id)
            self._fail(chat, session, str(e))
            self._session = None
            await self._persist()
            raise
        except BaseException:
            # task cancellation or the host stopping the script
            self.lifecycle.cancel(chat, session)
            self.turn_state = TurnState.CANCELLED
            self._session = None
            self._save()
            raise

        self._session = None
        await self._persist()
        self._notify(chat)
        return self.turn_state

    def _fail(self, chat: Conversation, session: GenerationSession, error: str):
        self.lifecycle.fail(chat, session, error)
        self.last_error = error
        self.turn_state = TurnState.ERRORED

    async def _stream(
        self, chat: Conversation, session: GenerationSession, payload: dict
    ) -> TurnState:
        async with self._api.open_chat_stream(payload, session.token) as chunks:
            self.turn_state = TurnState.STREAMING
            async for frame in iter_frames(iter_lines(chunks)):
                if session.token.cancelled:
                    break
                if session.apply_frame(frame):
                    self.lifecycle.sync(chat, session)
                    self._notify(chat)

        if session.token.cancelled:
            logger.info("Turn in chat %s cancelled after %d frame(s)", chat.id, session.frames_applied)
            self.lifecycle.cancel(chat, session)
            return TurnState.CANCELLED

        self.lifecycle.finalize(chat, session)
        return TurnState.FINALIZED

    # --- Message deletion ---

    def delete_message(self, message_id: str, chat_id: Optional[str] = None) -> DeleteResult:
        self._require_idle("delete_blocked")
        chat = self._chat(chat_id)
        result = self.lifecycle.delete_message(chat, message_id)
        if result.removed_ids:
            if self.editing_message_id in result.removed_ids:
                self.editing_message_id = None
            self._changed(chat)
        return result

    # --- Edit and regenerate ---

    def begin_edit(self, message_id: str, chat_id: Optional[str] = None):
        self._require_idle()
        chat = self._chat(chat_id)
        last_user = chat.last_user_message()
        if last_user is None or last_user.id != message_id:
            raise EditRejected(notice("edit_only_last", self.locale))
        self.editing_message_id = message_id

    def cancel_edit(self):
        self.editing_message_id = None

    async def submit_edit(self, text: str, chat_id: Optional[str] = None) -> Optional[TurnState]:
        """Apply an edit to the last user message and regenerate the answer.

        Returns None when the text is unchanged (edit mode just ends).
        """
        self._require_idle()
        if self.editing_message_id is None:
            raise EditRejected(notice("edit_only_last", self.locale))
        chat = self._chat(chat_id)
        new_text = (text or "").strip()
        if not new_text:
            raise EditRejected(notice("edit_empty", self.locale))

        message = chat.find_message(self.editing_message_id)
        if message is None or message is not chat.last_user_message():
            self.editing_message_id = None
            raise EditRejected(notice("edit_only_last", self.locale))
        if new_text == message.content:
            self.editing_message_id = None
            return None
        model = self._model_for(chat)

        message.content = new_text
        index = chat.index_of(message.id)
        dropped = len(chat.messages) - index - 1
        del chat.messages[index + 1:]
        self.editing_message_id = None
        logger.info("Edited last question in chat %s, dropped %d message(s)", chat.id, dropped)
        self._notify(chat)
        return await self._run_turn(chat, message, model)

    # --- Chat management ---

    def new_chat(self) -> Conversation:
        self._require_idle()
        chat = Conversation(
            model=self.state.default_model,
            params=replace(self.default_params),
        )
        self.state.chats.append(chat)
        self.state.active_chat_id = chat.id
        self.editing_message_id = None
        self._changed(chat)
        return chat

    def select_chat(self, chat_id: str) -> Conversation:
        self._require_idle()
        chat = self._chat(chat_id)
        if self.state.active_chat_id != chat.id:
            self.state.active_chat_id = chat.id
            self.editing_message_id = None
            self._save()
        return chat

    def delete_chat(self, chat_id: str) -> Conversation:
        """Remove a chat and return the chat that becomes active."""
        self._require_idle()
        chat = self._chat(chat_id)
        self.state.chats = [c for c in self.state.chats if c.id != chat.id]
        if self.state.active_chat_id == chat.id:
            self.state.active_chat_id = None
            self.editing_message_id = None
        active = self.state.ensure_chat()
        self._changed(active)
        return active

    def rename_chat(self, title: str, chat_id: Optional[str] = None):
        chat = self._chat(chat_id)
        chat.title = title.strip() or notice("untitled_chat", self.locale)
        chat.touch()
        self._save()

    def set_chat_model(self, model: str, chat_id: Optional[str] = None):
        chat = self._chat(chat_id)
        chat.model = model
        chat.touch()
        self._save()

    def update_params(self, params: GenerationParams, chat_id: Optional[str] = None):
        chat = self._chat(chat_id)
        chat.params = params
        chat.touch()
        self._save()

    def set_server_url(self, server_url: str):
        self.state.server_url = sanitize_server_url(server_url, self._api.server_url)
        self._api.set_server(self.state.server_url)
        self._save()

    def set_default_model(self, model: str):
        self.state.default_model = model
        for chat in self.state.chats:
            if not chat.model:
                chat.model = model
        self._save()
