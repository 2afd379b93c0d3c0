"""Engine settings and database URL resolution."""

from __future__ import annotations

import os

from pydantic import BaseModel, Field

DATABASE_URL_ENV = "ENTITYGRAPH_URL"
DEFAULT_DATABASE_URL = "sqlite:///./entitygraph.db"


class EngineSettings(BaseModel):
    """Tunables shared by the load and save engines."""

    translation_function: str = Field(
        default="get_translation",
        description="SQL function applied to localized columns: fn(value, locale)",
    )
    default_locale: str | None = Field(
        default=None, description="Locale used when neither the filter nor context has one"
    )
    echo_sql: bool = Field(default=False, description="Echo SQL statements to the log")


def get_database_url(url: str | None = None) -> str:
    """Resolve database URL from an explicit value, environment variable, or default.

    Priority:
    1. Explicit URL argument
    2. ENTITYGRAPH_URL environment variable
    3. Default: sqlite:///./entitygraph.db
    """
    if url:
        return url
    if env_url := os.getenv(DATABASE_URL_ENV):
        return env_url
    return DEFAULT_DATABASE_URL
