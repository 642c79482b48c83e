from dataclasses import dataclass

THINK_OPEN = "<think>"
THINK_CLOSE = "</think>"


@dataclass(frozen=True)
class ThinkSplit:
    thinking: str
    answer: str


def split_thinking(text: str) -> ThinkSplit | None:
    """Pull an inline ``<think>`` block out of a finished answer.

    Only meaningful on the complete text: a tag cut across two frames would
    otherwise be taken for plain answer text. An unterminated block runs to
    the end of the text.
    """
    if not text:
        return None
    open_idx = text.find(THINK_OPEN)
    if open_idx == -1:
        return None

    body_start = open_idx + len(THINK_OPEN)
    close_idx = text.find(THINK_CLOSE, body_start)
    if close_idx == -1:
        return ThinkSplit(
            thinking=text[body_start:].strip(),
            answer=text[:open_idx].strip(),
        )

    before = text[:open_idx]
    after = text[close_idx + len(THINK_CLOSE):]
    return ThinkSplit(
        thinking=text[body_start:close_idx].strip(),
        answer=(before + after).strip(),
    )
