class ChatError(Exception):
    """Base class for failures raised by the chat core."""


class MalformedFrame(ChatError):
    """A single stream line that is not a JSON object."""

    def __init__(self, line: str, reason: str):
        super().__init__(f"Malformed stream line ({reason}): {line[:200]}")
        self.line = line
        self.reason = reason


class BackendError(ChatError):
    """The generation server reported an error inside a well-formed frame."""


class TransportError(ChatError):
    """The HTTP exchange with the generation server failed."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class SessionBusy(ChatError):
    """A turn was started while another one is still pending."""


class EditRejected(ChatError):
    """An edit request that cannot be applied."""
