"""
TokenWatch settings read from the environment and .env.
Handles all tracker settings with proper validation and defaults.
"""

from typing import Dict, Optional
from pydantic import Field, validator
from pydantic_settings import BaseSettings
from pathlib import Path


class TrackerConfig(BaseSettings):
    """
    Configuration class for tracker settings.
    Uses pydantic BaseSettings for environment variable management.
    """

    # State Storage
    state_dir: str = Field(default="state", env="STATE_DIR")
    state_format: str = Field(default="json", env="STATE_FORMAT")

    # Targets
    targets_file: str = Field(default="targets.json", env="TARGETS_FILE")

    # Fetch Configuration
    request_timeout_ms: int = Field(default=30000, env="REQUEST_TIMEOUT_MS")
    user_agent: str = Field(default="TokenWatch/1.0 (+change tracker)", env="USER_AGENT")
    rate_limit_per_second: float = Field(default=2.0, env="RATE_LIMIT_PER_SECOND")

    # Detection
    first_run_policy: str = Field(default="baseline", env="FIRST_RUN_POLICY")

    # Logging Configuration
    log_level: str = Field(default="INFO", env="LOG_LEVEL")
    log_format: str = Field(default="json", env="LOG_FORMAT")
    log_file: Optional[str] = Field(default=None, env="LOG_FILE")

    # Development/Testing
    debug: bool = Field(default=False, env="DEBUG")

    # Scheduler Configuration
    poll_interval_minutes: int = Field(default=360, env="POLL_INTERVAL_MINUTES")
    timezone: str = Field(default="UTC", env="TIMEZONE")
    max_concurrent_targets: int = Field(default=5, env="MAX_CONCURRENT_TARGETS")

    # Alerting Configuration
    alerting_enabled: bool = Field(default=True, env="ALERTING_ENABLED")
    max_alerts_per_hour: int = Field(default=10, env="MAX_ALERTS_PER_HOUR")
    alert_cooldown_minutes: int = Field(default=0, env="ALERT_COOLDOWN_MINUTES")
    webhook_url: Optional[str] = Field(default=None, env="WEBHOOK_URL")
    webhook_timeout_ms: int = Field(default=10000, env="WEBHOOK_TIMEOUT_MS")
    alert_on_persistence_failure: bool = Field(default=True, env="ALERT_ON_PERSISTENCE_FAILURE")

    @validator('state_format')
    def validate_state_format(cls, v):
        """Ensure state format is supported."""
        valid_formats = ['json', 'text']
        if v.lower() not in valid_formats:
            raise ValueError(f'state_format must be one of: {valid_formats}')
        return v.lower()

    @validator('request_timeout_ms')
    def validate_timeout(cls, v):
        """Bound the default fetch timeout to 1s..300s."""
        if v < 1000 or v > 300000:
            raise ValueError('request_timeout_ms must be between 1000 and 300000')
        return v

    @validator('rate_limit_per_second')
    def validate_rate_limit(cls, v):
        """Keep the shared request budget within 0.1 to 10 per second."""
        if v < 0.1 or v > 10:
            raise ValueError('rate_limit_per_second must be between 0.1 and 10')
        return v

    @validator('first_run_policy')
    def validate_first_run_policy(cls, v):
        """Ensure first run policy is known."""
        valid_policies = ['baseline', 'alert']
        if v.lower() not in valid_policies:
            raise ValueError(f'first_run_policy must be one of: {valid_policies}')
        return v.lower()

    @validator('log_level')
    def validate_log_level(cls, v):
        """Accept stdlib level names in any case."""
        valid_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
        if v.upper() not in valid_levels:
            raise ValueError(f'log_level must be one of: {valid_levels}')
        return v.upper()

    @validator('log_format')
    def validate_log_format(cls, v):
        """Accept json or console."""
        valid_formats = ['json', 'console']
        if v.lower() not in valid_formats:
            raise ValueError(f'log_format must be one of: {valid_formats}')
        return v.lower()

    @validator('poll_interval_minutes')
    def validate_poll_interval(cls, v):
        """Ensure the poll interval is at least a minute."""
        if v < 1:
            raise ValueError('poll_interval_minutes must be at least 1')
        return v

    @validator('max_concurrent_targets')
    def validate_concurrent_targets(cls, v):
        """Ensure concurrent targets is reasonable."""
        if v < 1 or v > 50:
            raise ValueError('max_concurrent_targets must be between 1 and 50')
        return v

    class Config:
        """Pydantic configuration."""
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False
        extra = "ignore"  # Ignore extra fields from .env

    def get_state_dir_path(self) -> Path:
        """Get state directory as Path object."""
        return Path(self.state_dir)

    def get_targets_file_path(self) -> Path:
        """Get targets file path as Path object."""
        return Path(self.targets_file)

    def get_log_file_path(self) -> Optional[Path]:
        """Return LOG_FILE as a Path, or None when unset."""
        if self.log_file:
            return Path(self.log_file)
        return None

    def get_target_defaults(self) -> Dict[str, object]:
        """Defaults applied to target definitions that omit them."""
        return {
            "timeout_ms": self.request_timeout_ms,
            "user_agent": self.user_agent,
        }

    def get_headers(self) -> Dict[str, str]:
        """Get default headers for HTTP requests."""
        return {
            "User-Agent": self.user_agent,
            "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,application/json;q=0.9,*/*;q=0.8",
            "Accept-Language": "en-US,en;q=0.5",
        }


# Module-level settings shared by the entry points
config = TrackerConfig()
