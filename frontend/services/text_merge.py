def merge_text(current: str, incoming: str) -> str:
    """Combine streamed text whether the backend sends deltas or snapshots.

    A cumulative snapshot (``incoming`` extends ``current``) replaces the
    current text, a fragment already sitting at the tail is dropped, and
    anything else is appended as a delta. A genuine delta that happens to
    equal the current tail is dropped too; telling the two apart needs
    protocol knowledge the frames do not carry.
    """
    if not current:
        return incoming
    if not incoming:
        return current
    if incoming.startswith(current):
        return incoming
    if current.endswith(incoming):
        return current
    return current + incoming
