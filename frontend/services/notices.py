NOTICES = {
    "en": {
        "please_wait": "Please wait until the current answer has finished.",
        "cancelled": "Generation cancelled.",
        "cancelling": "Cancelling generation …",
        "nothing_to_cancel": "No running request to cancel.",
        "answer_error": "Error while answering: {error}",
        "no_chat": "No active chat available.",
        "no_model": "Please choose a model first.",
        "empty_message": "Message is empty.",
        "delete_blocked": "Messages cannot be deleted while an answer is running.",
        "message_deleted": "Message deleted.",
        "resubmit_offered": "The last question can be sent again.",
        "edit_only_last": "Only the most recent question can be edited.",
        "edit_empty": "The edited question must not be empty.",
        "models_refreshed": "Models refreshed ({count})",
        "models_failed": "Could not load models: {error}",
        "server_status": "Server answered with status {status}",
        "chat_created": "New chat created",
        "chat_deleted": "Chat deleted",
        "untitled_chat": "Untitled chat",
    },
    "de": {
        "please_wait": "Bitte warte, bis die aktuelle Antwort beendet ist.",
        "cancelled": "Generierung abgebrochen.",
        "cancelling": "Generierung wird abgebrochen …",
        "nothing_to_cancel": "Keine laufende Anfrage zum Abbrechen.",
        "answer_error": "Fehler bei der Antwort: {error}",
        "no_chat": "Kein aktiver Chat verfügbar",
        "no_model": "Bitte zuerst ein Modell auswählen.",
        "empty_message": "Die Nachricht ist leer.",
        "delete_blocked": "Während einer laufenden Antwort können keine Nachrichten gelöscht werden.",
        "message_deleted": "Nachricht gelöscht.",
        "resubmit_offered": "Letzte Frage kann erneut gesendet werden.",
        "edit_only_last": "Nur die letzte Frage kann bearbeitet werden.",
        "edit_empty": "Die bearbeitete Frage darf nicht leer sein.",
        "models_refreshed": "Modelle aktualisiert ({count})",
        "models_failed": "Modelle konnten nicht geladen werden: {error}",
        "server_status": "Server antwortete mit Status {status}",
        "chat_created": "Neuer Chat erstellt",
        "chat_deleted": "Chat gelöscht",
        "untitled_chat": "Unbenannter Chat",
    },
}

DEFAULT_LOCALE = "en"


def notice(key: str, locale: str = DEFAULT_LOCALE, **kwargs) -> str:
    table = NOTICES.get(locale) or NOTICES[DEFAULT_LOCALE]
    template = table.get(key) or NOTICES[DEFAULT_LOCALE][key]
    return template.format(**kwargs) if kwargs else template
