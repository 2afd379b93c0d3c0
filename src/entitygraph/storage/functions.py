"""Python implementations of SQL functions for SQLite databases.

PostgreSQL deployments provide these server-side.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

TRANSLATION_SEPARATOR = "#"


def get_translation(value: str | None, locale: str | None) -> str | None:
    """Pick the text for ``locale`` out of a multi-language value.

    Values hold ``#`` separated segments. The first segment without a locale
    prefix is the default text, the rest are ``locale:text``:

        >>> get_translation("Male#fr:Homme#es:Hombre", "fr")
        'Homme'

    A full locale such as ``fr-CA`` falls back to its language. Without a
    locale, or with one that has no segment, the default text is returned.
    """
    if value is None:
        return None
    default: str | None = None
    translations: dict[str, str] = {}
    for segment in value.split(TRANSLATION_SEPARATOR):
        prefix, sep, text = segment.partition(":")
        if sep and 0 < len(prefix) <= 5 and " " not in prefix:
            translations[prefix.lower()] = text
        elif default is None:
            default = segment
    fallback = default if default is not None else value
    if not locale:
        return fallback
    locale = locale.lower().replace("_", "-")
    if locale in translations:
        return translations[locale]
    return translations.get(locale.split("-")[0], fallback)


def default_sql_functions() -> dict[str, Callable[..., Any]]:
    """SQL functions registered on every SQLite connection."""
    return {"get_translation": get_translation}
