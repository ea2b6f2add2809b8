from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class DiscourseIndexSettings(BaseSettings):
    """Unified configuration for the discourse index.

    Environment variables are prefixed with DISCOURSE_INDEX_.
    """

    model_config = SettingsConfigDict(env_prefix="DISCOURSE_INDEX_", extra="ignore")

    # --- Core ---
    log_level: str = Field(default="INFO", description="Python logging level")
    db_path: str = Field(default="~/.discourse_index/index.db")
    registry_path: str | None = Field(
        default=None, description="JSON file extending node/relation types and formulas"
    )

    # --- Document collection ---
    search_paths: list[str] = Field(default_factory=lambda: ["."])
    file_patterns: list[str] = Field(default_factory=lambda: ["*.org"])

    # --- Smart scan ---
    # Markers placed after this many bytes in an untracked document are not seen
    # by the probe until the document is tracked by a full scan.
    probe_bytes: int = Field(default=8192, ge=1)
    type_marker: str = Field(default=":TYPE:")

    # --- Formulas ---
    formula_max_depth: int = Field(default=32, ge=1)

    # --- Session ---
    refresh_delay: float = Field(default=0.5, ge=0.0, description="Seconds of inactivity")
    history_size: int = Field(default=100, ge=1)


settings = DiscourseIndexSettings()
