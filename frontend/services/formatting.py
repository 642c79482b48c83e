from frontend.models import Stats

STAT_LABELS = {
    "en": {
        "title": "Statistics:",
        "done_reason": "Finish reason",
        "total_duration": "Total duration",
        "load_duration": "Load duration",
        "prompt_eval_count": "Prompt tokens",
        "prompt_eval_duration": "Prompt duration",
        "eval_count": "Answer tokens",
        "eval_duration": "Answer duration",
        "context_length": "Context length",
        "tokens_per_second": "Tokens/s",
    },
    "de": {
        "title": "Statistiken:",
        "done_reason": "Beendigungsgrund",
        "total_duration": "Gesamtdauer",
        "load_duration": "Ladedauer",
        "prompt_eval_count": "Prompt-Tokens",
        "prompt_eval_duration": "Prompt-Dauer",
        "eval_count": "Antwort-Tokens",
        "eval_duration": "Antwort-Dauer",
        "context_length": "Kontext-Länge",
        "tokens_per_second": "Tokens/s",
    },
}


def format_duration(nanoseconds) -> str:
    if not isinstance(nanoseconds, (int, float)):
        return str(nanoseconds)
    seconds = nanoseconds / 1e9
    if seconds >= 1:
        return f"{seconds:.2f} s"
    milliseconds = nanoseconds / 1e6
    if milliseconds >= 1:
        return f"{milliseconds:.2f} ms"
    return f"{nanoseconds / 1e3:.2f} µs"


def format_stats(stats: Stats | None, locale: str = "en") -> str:
    """Markdown block shown under a finished answer."""
    if stats is None:
        return ""
    labels = STAT_LABELS.get(locale, STAT_LABELS["en"])
    lines = ["---", labels["title"]]

    if stats.done_reason:
        lines.append(f"- {labels['done_reason']}: {stats.done_reason}")
    for key in ("total_duration", "load_duration"):
        value = getattr(stats, key)
        if value is not None:
            lines.append(f"- {labels[key]}: {format_duration(value)}")
    if stats.prompt_eval_count is not None:
        lines.append(f"- {labels['prompt_eval_count']}: {stats.prompt_eval_count}")
    if stats.prompt_eval_duration is not None:
        lines.append(f"- {labels['prompt_eval_duration']}: {format_duration(stats.prompt_eval_duration)}")
    if stats.eval_count is not None:
        lines.append(f"- {labels['eval_count']}: {stats.eval_count}")
    if stats.eval_duration is not None:
        lines.append(f"- {labels['eval_duration']}: {format_duration(stats.eval_duration)}")
    if stats.tokens_per_second is not None:
        lines.append(f"- {labels['tokens_per_second']}: {stats.tokens_per_second:.1f}")
    if stats.context_length is not None:
        lines.append(f"- {labels['context_length']}: {stats.context_length}")
    return "\n".join(lines)
