from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class MindScribeSettings(BaseSettings):
    """Unified configuration for the MindScribe content graph.

    Environment variables are prefixed with MINDSCRIBE_.
    """

    model_config = SettingsConfigDict(env_prefix="MINDSCRIBE_", extra="ignore")

    # --- Core ---
    log_level: str = Field(default="INFO", description="Python logging level")
    db_path: str = Field(default="~/.mindscribe/graph.db", description="SQLite store location")

    # --- Graph lifecycle ---
    snapshot_key: str = Field(default="mindscribe-knowledge-graph")
    auto_save: bool = True
    save_interval: float = Field(default=30.0, description="Seconds between snapshot saves")
    layout_update_interval: float = Field(default=60.0, description="Seconds between layout refreshes")
    layout_refresh_iterations: int = 50
    initial_layout_iterations: int = 200
    max_nodes: int = 1000
    enable_clustering: bool = True

    # --- Relationship inference ---
    min_strength: float = Field(default=0.3, ge=0.0, le=1.0)
    max_relationships_per_content: int = 15
    processing_delay: float = Field(default=1.0, description="Debounce window in seconds")
    batch_processing_interval: float = 30.0
    batch_size: int = 50
    relationship_ttl_days: float | None = Field(default=None, description="Unset means no expiry")

    # --- HTTP ---
    bind_host: str = "127.0.0.1"
    bind_port: int = 8089
    api_key: str | None = Field(default=None, description="If set, require X-API-Key")


settings = MindScribeSettings()
