"""Application settings."""

import os
from typing import Optional
from pydantic import BaseModel


class Settings(BaseModel):
    """Application configuration settings."""

    # LLM Provider settings
    llm_provider: str = "openai"  # "openai" or "anthropic"
    llm_model: Optional[str] = None  # Override default vision model

    # API Keys
    openai_api_key: Optional[str] = None
    anthropic_api_key: Optional[str] = None

    # Storage (conversation memory and push tokens share one SQLite file)
    db_path: str = "data/cupid.db"

    # Push delivery
    expo_push_url: str = "https://exp.host/--/api/v2/push/send"
    expo_access_token: Optional[str] = None

    # Identity
    fallback_device_id: str = "unknown-device"

    # Tool loop
    max_tool_steps: int = 4

    # Logging
    verbose: bool = False

    def __init__(self, **data):
        # Auto-load secrets from environment if not provided
        if "openai_api_key" not in data or data["openai_api_key"] is None:
            data["openai_api_key"] = os.environ.get("OPENAI_API_KEY")

        if "anthropic_api_key" not in data or data["anthropic_api_key"] is None:
            data["anthropic_api_key"] = os.environ.get("ANTHROPIC_API_KEY")

        if "expo_access_token" not in data or data["expo_access_token"] is None:
            data["expo_access_token"] = os.environ.get("EXPO_ACCESS_TOKEN")

        if "db_path" not in data and os.environ.get("CUPID_DB_PATH"):
            data["db_path"] = os.environ["CUPID_DB_PATH"]

        super().__init__(**data)

    def get_llm_api_key(self) -> Optional[str]:
        """Get the API key for the configured LLM provider."""
        if self.llm_provider == "openai":
            return self.openai_api_key
        elif self.llm_provider == "anthropic":
            return self.anthropic_api_key
        return None
