"""Classify the fields of a single stream frame.

Backends disagree about where reasoning text lives. The known shapes are:

* ``{"thinking": "..."}`` (Ollama ``think`` mode)
* ``{"reasoning": "..."}`` or ``{"delta": {"reasoning"|"thinking": "..."}}``
* ``{"message": {"thinking"|"reasoning": "..."}}``
* ``{"type": "thinking", "content": "..."}`` on the frame, its ``message``
  or its ``delta``

The first shape that yields text wins, so the same text is never counted
twice for one frame.
"""
from dataclasses import dataclass, field
from enum import Enum


class FrameShape(str, Enum):
    DIRECT_THINKING = "direct_thinking"
    REASONING = "reasoning"
    NESTED_MESSAGE = "nested_message"
    TYPED_CONTENT = "typed_content"
    NONE = "none"


@dataclass
class ThinkingMatch:
    shape: FrameShape = FrameShape.NONE
    fragments: list[str] = field(default_factory=list)


def _as_dict(value) -> dict:
    return value if isinstance(value, dict) else {}


def _text_fragments(*values) -> list[str]:
    return [v for v in values if isinstance(v, str) and v.strip()]


def _typed_thinking_content(obj: dict) -> str | None:
    if obj.get("type") == "thinking" and isinstance(obj.get("content"), str):
        return obj["content"]
    return None


def classify_thinking(frame: dict) -> ThinkingMatch:
    message = _as_dict(frame.get("message"))
    delta = _as_dict(frame.get("delta"))

    direct = frame.get("thinking")
    if isinstance(direct, str) and direct:
        return ThinkingMatch(FrameShape.DIRECT_THINKING, [direct])

    fragments = _text_fragments(
        frame.get("reasoning"), delta.get("reasoning"), delta.get("thinking")
    )
    if fragments:
        return ThinkingMatch(FrameShape.REASONING, fragments)

    fragments = _text_fragments(message.get("thinking"), message.get("reasoning"))
    if fragments:
        return ThinkingMatch(FrameShape.NESTED_MESSAGE, fragments)

    fragments = _text_fragments(
        _typed_thinking_content(frame),
        _typed_thinking_content(message),
        _typed_thinking_content(delta),
    )
    if fragments:
        return ThinkingMatch(FrameShape.TYPED_CONTENT, fragments)

    return ThinkingMatch()


def extract_answer(frame: dict) -> str:
    response = frame.get("response")
    if isinstance(response, str) and response:
        return response

    message = _as_dict(frame.get("message"))
    content = message.get("content")
    if not isinstance(content, str) or not content:
        return ""
    # typed thinking messages carry reasoning, not answer text
    if message.get("type") == "thinking":
        return ""
    if message.get("role") in (None, "", "assistant"):
        return content
    return ""


def extract_images(frame: dict) -> list[str]:
    images = frame.get("images")
    if not isinstance(images, list):
        images = _as_dict(frame.get("message")).get("images")
    if not isinstance(images, list):
        return []
    return [img for img in images if isinstance(img, str) and img]


def is_done(frame: dict) -> bool:
    return frame.get("done") is True


def done_reason(frame: dict) -> str | None:
    reason = frame.get("done_reason")
    return reason if isinstance(reason, str) else None
