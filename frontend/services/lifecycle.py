import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from frontend.models import Conversation, Message, MessagePurpose
from frontend.services.errors import SessionBusy
from frontend.services.notices import DEFAULT_LOCALE, notice
from frontend.services.session import GenerationSession
from frontend.services.tag_splitter import split_thinking

logger = logging.getLogger(__name__)


class TurnState(str, Enum):
    IDLE = "idle"
    CREATED = "created"
    STREAMING = "streaming"
    FINALIZED = "finalized"
    CANCELLED = "cancelled"
    ERRORED = "errored"

    @property
    def is_terminal(self) -> bool:
        return self in (TurnState.FINALIZED, TurnState.CANCELLED, TurnState.ERRORED)


@dataclass
class DeleteResult:
    removed_ids: list[str] = field(default_factory=list)
    resubmit_text: Optional[str] = None


class MessageLifecycle:
    """Creates, updates, promotes and removes the placeholder pair of a turn."""

    def __init__(self, locale: str = DEFAULT_LOCALE):
        self.locale = locale

    def create_placeholders(
        self, conversation: Conversation, user_message: Message
    ) -> tuple[Message, Message]:
        """Place the thinking/preview pair directly after ``user_message``.

        The user message is appended first when it is not yet part of the
        conversation (a fresh turn); an existing one (a regenerated turn)
        stays where it is.
        """
        for message in conversation.messages:
            if message.purpose.is_placeholder and message.pending:
                raise SessionBusy(notice("please_wait", self.locale))

        index = conversation.index_of(user_message.id)
        if index == -1:
            conversation.messages.append(user_message)
            index = len(conversation.messages) - 1

        thinking = Message(
            role="assistant",
            purpose=MessagePurpose.THINKING,
            pending=True,
        )
        preview = Message(
            role="assistant",
            purpose=MessagePurpose.RESPONSE_PREVIEW,
            pending=True,
            related_thinking_id=thinking.id,
        )
        conversation.messages[index + 1:index + 1] = [thinking, preview]
        conversation.touch()
        return thinking, preview

    def _pair(
        self, conversation: Conversation, session: GenerationSession
    ) -> tuple[Optional[Message], Optional[Message]]:
        return (
            conversation.find_message(session.thinking_message_id),
            conversation.find_message(session.preview_message_id),
        )

    def sync(self, conversation: Conversation, session: GenerationSession):
        """Mirror the running session onto the visible placeholders."""
        thinking, preview = self._pair(conversation, session)
        if thinking is not None:
            thinking.thinking = session.thinking.lstrip()
            thinking.pending = session.pending
        if preview is not None:
            preview.content = session.text
            preview.attachments = list(session.attachments)
            preview.pending = session.pending
        conversation.touch()

    def finalize(
        self, conversation: Conversation, session: GenerationSession
    ) -> Optional[Message]:
        """Promote the preview to a response and settle the thinking placeholder.

        Returns the response message, or None if the turn produced nothing
        to show.
        """
        thinking, preview = self._pair(conversation, session)

        thinking_text = session.thinking
        answer = session.text
        split = split_thinking(answer)
        if split is not None:
            answer = split.answer
            if split.thinking and not thinking_text.strip():
                thinking_text = split.thinking

        response = None
        if preview is not None:
            if answer or session.attachments:
                preview.content = answer
                preview.attachments = list(session.attachments)
                preview.stats = session.stats
                preview.purpose = MessagePurpose.RESPONSE
                preview.pending = False
                response = preview
            else:
                conversation.messages.remove(preview)

        if thinking is not None:
            keep = session.show_thinking and thinking_text.strip()
            if keep:
                thinking.thinking = thinking_text.strip()
                thinking.pending = False
                thinking.collapsed = True
            else:
                conversation.messages.remove(thinking)
                if response is not None:
                    response.related_thinking_id = None

        conversation.touch()
        return response

    def cancel(self, conversation: Conversation, session: GenerationSession):
        """Keep everything streamed so far and note the abort on the placeholder."""
        thinking, preview = self._pair(conversation, session)
        note = notice("cancelled", self.locale)
        if thinking is not None:
            existing = thinking.thinking.strip()
            thinking.thinking = f"{existing}\n{note}" if existing else note
            thinking.pending = False
        if preview is not None:
            preview.content = session.text
            preview.attachments = list(session.attachments)
            preview.pending = False
        conversation.touch()

    def fail(
        self, conversation: Conversation, session: GenerationSession, error: str
    ):
        """Attach a failure to both halves of the pair without dropping output."""
        thinking, preview = self._pair(conversation, session)
        note = notice("answer_error", self.locale, error=error)
        if thinking is not None:
            existing = thinking.thinking.strip()
            thinking.thinking = f"{existing}\n{note}" if existing else note
            thinking.error = error
            thinking.pending = False
        if preview is not None:
            preview.error = error
            preview.pending = False
            preview.content = session.text or note
            preview.attachments = list(session.attachments)
        conversation.touch()

    def delete_message(self, conversation: Conversation, message_id: str) -> DeleteResult:
        """Delete a message together with its thinking/answer partner."""
        index = conversation.index_of(message_id)
        if index == -1:
            return DeleteResult()
        target = conversation.messages[index]

        doomed = {target.id}
        if target.related_thinking_id:
            doomed.add(target.related_thinking_id)
        if target.purpose == MessagePurpose.THINKING:
            doomed.update(
                m.id for m in conversation.messages if m.related_thinking_id == target.id
            )

        previous_user = None
        if target.role == "assistant":
            previous_user = next(
                (
                    m for m in reversed(conversation.messages[:index])
                    if m.role == "user"
                ),
                None,
            )

        removed = [m for m in conversation.messages if m.id in doomed]
        conversation.messages = [m for m in conversation.messages if m.id not in doomed]
        conversation.touch()
        result = DeleteResult(removed_ids=[m.id for m in removed])

        if previous_user is not None:
            user_index = conversation.index_of(previous_user.id)
            has_answer = any(
                m.role == "assistant" for m in conversation.messages[user_index + 1:]
            )
            if not has_answer:
                result.resubmit_text = previous_user.content
        logger.info("Deleted %d message(s) from chat %s", len(removed), conversation.id)
        return result
