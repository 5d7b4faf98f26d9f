"""
Settings for the TokenWatch status API, read from the environment and .env.
"""

from typing import List

from pydantic_settings import BaseSettings


class APIConfig(BaseSettings):
    """Status API settings."""

    # OpenAPI metadata
    api_title: str = "TokenWatch Status API"
    api_version: str = "1.0.0"
    api_description: str = "Inspect tracked targets, their stored values and trigger checks"

    # uvicorn bind address
    host: str = "0.0.0.0"
    port: int = 8000
    debug: bool = False

    # API_KEYS=key1,key2
    api_keys: str = ""

    # Requests allowed per key within rate_limit_window seconds
    default_rate_limit: int = 100
    rate_limit_window: int = 3600

    log_level: str = "INFO"

    model_config = {
        "env_file": ".env",
        "extra": "ignore",
    }

    def get_api_keys(self) -> List[str]:
        """Parse the comma-separated API keys."""
        return [key.strip() for key in self.api_keys.split(",") if key.strip()]


config = APIConfig()
