import logging
from dataclasses import dataclass, field
from typing import Optional

from frontend.models import Attachment, Stats
from frontend.services.cancellation import CancellationToken
from frontend.services.errors import BackendError
from frontend.services.text_merge import merge_text
from frontend.services.thinking import (
    classify_thinking,
    extract_answer,
    extract_images,
    is_done,
)

logger = logging.getLogger(__name__)


@dataclass
class GenerationSession:
    """Running state of the one generation currently in flight."""
    conversation_id: str
    thinking_message_id: str
    preview_message_id: str
    show_thinking: bool = True
    text: str = ""
    thinking: str = ""
    attachments: list[Attachment] = field(default_factory=list)
    stats: Optional[Stats] = None
    pending: bool = True
    saw_structured_thinking: bool = False
    frames_applied: int = 0
    token: CancellationToken = field(default_factory=CancellationToken)

    def apply_frame(self, frame: dict) -> bool:
        """Fold one frame into the session; return True if a redraw is due."""
        error = frame.get("error")
        if error:
            raise BackendError(error if isinstance(error, str) else str(error))

        self.frames_applied += 1
        changed = False

        if self.show_thinking:
            match = classify_thinking(frame)
            for fragment in match.fragments:
                self.thinking = merge_text(self.thinking, fragment)
            if match.fragments:
                self.saw_structured_thinking = True
                changed = True

        # answer deltas are true increments, no overlap detection
        chunk = extract_answer(frame)
        if chunk:
            self.text += chunk
            changed = True

        images = extract_images(frame)
        if images:
            self.attachments = [Attachment(data=img, mime="image/png") for img in images]
            changed = True

        if is_done(frame):
            self.pending = False
            self.stats = Stats.from_frame(frame)
            changed = True
            logger.info(
                "Generation done: %d frames, %d answer chars, %d thinking chars",
                self.frames_applied, len(self.text), len(self.thinking),
            )

        return changed
