"""Localized message text used for redaction placeholders."""

from __future__ import annotations

import threading

REDACT_DATE_FORMAT = "general_redact_date_format"

DEFAULT_MESSAGES: dict[str, str] = {
    REDACT_DATE_FORMAT: "%Y-%m-%d",
}


class MessageCatalog:
    """Message text keyed by code and locale.

    Lookup falls back from the full locale (``fr-FR``) to its language
    (``fr``), then to the locale-neutral text, then to the code itself.
    """

    def __init__(self, messages: dict[str, str] | None = None) -> None:
        self._lock = threading.Lock()
        self._messages: dict[tuple[str, str | None], str] = {}
        for code, text in {**DEFAULT_MESSAGES, **(messages or {})}.items():
            self._messages[(code, None)] = text

    def add(self, code: str, text: str, locale: str | None = None) -> None:
        with self._lock:
            self._messages[(code, locale.lower() if locale else None)] = text

    def get(self, code: str, locale: str | None = None) -> str:
        candidates: list[str | None] = []
        if locale:
            locale = locale.lower()
            candidates.append(locale)
            language = locale.replace("_", "-").split("-")[0]
            if language != locale:
                candidates.append(language)
        candidates.append(None)
        for candidate in candidates:
            text = self._messages.get((code, candidate))
            if text is not None:
                return text
        return code
