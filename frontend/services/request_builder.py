from frontend.models import Conversation, GenerationParams, Message

OPTION_FIELDS = ("temperature", "top_k", "top_p", "repeat_penalty", "mirostat", "seed")


def parse_float_or_none(value) -> float | None:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def parse_int_or_none(value) -> int | None:
    if value is None or value == "":
        return None
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return None


def build_options(params: GenerationParams) -> dict:
    options = {}
    for key in OPTION_FIELDS:
        value = getattr(params, key)
        if value is None or value == "":
            continue
        options[key] = value
    options["include_thinking"] = params.show_thinking
    options["thinking"] = params.show_thinking
    return options


def serialize_message(message: Message) -> dict | None:
    if message.purpose.is_placeholder:
        return None
    result = {"role": message.role, "content": message.content or ""}
    images = [a.data for a in message.attachments if a.data]
    if images:
        result["images"] = images
    return result


def build_chat_request(conversation: Conversation, model: str) -> dict:
    """Body of the streamed ``/api/chat`` call for the conversation as it stands."""
    messages = []
    for message in conversation.messages:
        serialized = serialize_message(message)
        if serialized is not None:
            messages.append(serialized)
    return {
        "model": model,
        "messages": messages,
        "stream": True,
        "options": build_options(conversation.params),
    }
